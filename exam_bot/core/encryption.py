"""Fernet encryption of portal access tokens kept in the local database."""
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class TokenCipher:
    """Encrypts and decrypts access tokens with one Fernet key."""

    def __init__(self, key: str):
        """
        Args:
            key: Base64-encoded Fernet key (Settings.ENCRYPTION_KEY)
        """
        if not key:
            raise ValueError(
                "ENCRYPTION_KEY is empty. Generate one with: "
                "python -c 'from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())'"
            )
        self._fernet = Fernet(key.encode())

    def encrypt(self, token: str) -> str:
        return self._fernet.encrypt(token.encode()).decode()

    def decrypt(self, ciphertext: str) -> Optional[str]:
        """
        Returns:
            Plain token, or None if it was encrypted with another key
        """
        try:
            return self._fernet.decrypt(ciphertext.encode()).decode()
        except InvalidToken:
            logger.warning("Stored token cannot be decrypted with the current key")
            return None


_cipher: Optional[TokenCipher] = None


def get_cipher() -> TokenCipher:
    """Get the global cipher, created from settings on first use."""
    global _cipher
    if _cipher is None:
        from config import settings
        _cipher = TokenCipher(settings.ENCRYPTION_KEY)
    return _cipher


def encrypt(token: str) -> str:
    return get_cipher().encrypt(token)


def decrypt(ciphertext: str) -> Optional[str]:
    return get_cipher().decrypt(ciphertext)
