"""Custom exceptions for exam portal API errors."""


class PortalAPIError(Exception):
    """Base exception for exam portal API errors."""
    pass


class AuthenticationError(PortalAPIError):
    """Missing, invalid or expired access token."""
    pass


class RateLimitError(PortalAPIError):
    """API rate limit exceeded."""
    pass


class NetworkError(PortalAPIError):
    """Network connectivity issues or unexpected HTTP status."""
    pass


class DataNotFoundError(PortalAPIError):
    """Requested test or question not found on the portal."""
    pass


class InvalidResponseError(PortalAPIError):
    """API returned unexpected response format."""
    pass
