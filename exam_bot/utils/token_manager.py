"""Access to the student's portal token and an authorised API client."""
import logging

from config import settings
from database.crud import get_user
from portal_api.client import PortalClient
from portal_api.exceptions import AuthenticationError

logger = logging.getLogger(__name__)


async def ensure_token(user_id: int) -> str:
    """
    Get the stored portal token of a user.

    Tokens are issued by the portal; the bot never refreshes them. An expired
    token shows up as AuthenticationError from the API and the student has to
    link a new one with /start.

    Raises:
        AuthenticationError: user not linked or token unreadable
    """
    user = await get_user(user_id)

    if not user:
        raise AuthenticationError("User is not registered")

    token = user.get("portal_token")
    if not token:
        logger.error("Stored token of user_id=%d is unreadable", user_id)
        raise AuthenticationError("Stored token is unreadable, link it again")

    return token


def create_client(token: str) -> PortalClient:
    """Portal client configured from settings."""
    return PortalClient(
        settings.PORTAL_BASE_URL,
        token=token,
        timeout=settings.PORTAL_TIMEOUT,
    )
