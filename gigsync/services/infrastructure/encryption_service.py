"""
Encryption service for calendar OAuth tokens.
Uses Fernet symmetric encryption for token storage at rest.
"""

from cryptography.fernet import Fernet, InvalidToken

from gigsync.config import settings
from gigsync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EncryptionError(Exception):
    """Custom exception for encryption/decryption errors."""

    pass


def _get_fernet() -> Fernet:
    """
    Get Fernet instance with encryption key from environment.

    Raises:
        EncryptionError: If encryption key is not configured
    """
    if not settings.ENCRYPTION_KEY:
        raise EncryptionError("ENCRYPTION_KEY not configured in environment")

    try:
        return Fernet(settings.ENCRYPTION_KEY.encode("utf-8"))
    except Exception as e:
        logger.error("Failed to initialize Fernet cipher", error=str(e))
        raise EncryptionError(f"Invalid encryption key: {e}") from e


def encrypt_token(token: str) -> str:
    """
    Encrypt a token string for storage.

    Returns the Fernet token as text so it fits a TEXT column and any row
    store implementation.

    Raises:
        EncryptionError: If encryption fails
    """
    if not token or not isinstance(token, str):
        raise EncryptionError("Token must be a non-empty string")

    try:
        return _get_fernet().encrypt(token.encode("utf-8")).decode("ascii")
    except EncryptionError:
        raise
    except Exception as e:
        logger.error("Failed to encrypt token", error=str(e))
        raise EncryptionError(f"Encryption failed: {e}") from e


def decrypt_token(encrypted_token: str | bytes) -> str:
    """
    Decrypt a token read from storage.

    Raises:
        EncryptionError: If decryption fails or token is invalid
    """
    if not encrypted_token:
        raise EncryptionError("Encrypted token must be non-empty")

    if isinstance(encrypted_token, memoryview):
        encrypted_token = encrypted_token.tobytes()
    if isinstance(encrypted_token, str):
        encrypted_token = encrypted_token.encode("ascii")

    try:
        return _get_fernet().decrypt(encrypted_token).decode("utf-8")
    except InvalidToken as e:
        logger.error("Token decryption failed - invalid token")
        raise EncryptionError("Invalid or corrupted token") from e
    except EncryptionError:
        raise
    except Exception as e:
        logger.error("Failed to decrypt token", error=str(e))
        raise EncryptionError(f"Decryption failed: {e}") from e


def generate_new_key() -> str:
    """Generate a new Fernet key (initial setup or rotation)."""
    return Fernet.generate_key().decode("utf-8")
