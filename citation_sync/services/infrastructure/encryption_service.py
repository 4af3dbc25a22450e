"""
Encryption service for provider credentials.
Uses Fernet symmetric encryption for values stored in provider_credentials.
"""

from cryptography.fernet import Fernet, InvalidToken

from citation_sync.config import settings
from citation_sync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EncryptionError(Exception):
    """Custom exception for encryption/decryption errors."""

    pass


def _get_fernet() -> Fernet:
    """
    Get Fernet instance with encryption key from environment.

    Raises:
        EncryptionError: If encryption key is not configured or invalid
    """
    if not settings.ENCRYPTION_KEY:
        raise EncryptionError("ENCRYPTION_KEY not configured in environment")

    try:
        return Fernet(settings.ENCRYPTION_KEY.encode("utf-8"))
    except Exception as e:
        logger.error("Failed to initialize Fernet cipher", error=str(e))
        raise EncryptionError(f"Invalid encryption key: {e}") from e


def encrypt_credential(value: str) -> bytes:
    """
    Encrypt a credential value for BYTEA storage.

    Raises:
        EncryptionError: If the value is empty or encryption fails
    """
    if not value or not isinstance(value, str):
        raise EncryptionError("Credential must be a non-empty string")

    fernet = _get_fernet()
    try:
        encrypted = fernet.encrypt(value.encode("utf-8"))
    except Exception as e:
        logger.error("Failed to encrypt credential", error=str(e))
        raise EncryptionError(f"Encryption failed: {e}") from e

    logger.debug("Credential encrypted", encrypted_length=len(encrypted))
    return encrypted


def decrypt_credential(encrypted_value: bytes) -> str:
    """
    Decrypt a credential read from the database.

    Raises:
        EncryptionError: If decryption fails or the token is invalid
    """
    if isinstance(encrypted_value, memoryview):
        encrypted_value = encrypted_value.tobytes()
    if not encrypted_value or not isinstance(encrypted_value, bytes):
        raise EncryptionError("Encrypted credential must be non-empty bytes")

    fernet = _get_fernet()
    try:
        return fernet.decrypt(encrypted_value).decode("utf-8")
    except InvalidToken as e:
        logger.error("Credential decryption failed - invalid token")
        raise EncryptionError("Invalid or corrupted credential") from e
    except Exception as e:
        logger.error("Failed to decrypt credential", error=str(e))
        raise EncryptionError(f"Decryption failed: {e}") from e


def validate_encryption_config() -> bool:
    """True if ENCRYPTION_KEY is set and round-trips a test value."""
    try:
        test_value = "citation_credential_check"
        is_valid = decrypt_credential(encrypt_credential(test_value)) == test_value
    except EncryptionError as e:
        logger.error("Encryption configuration validation failed", error=str(e))
        return False

    if is_valid:
        logger.info("Encryption configuration validated successfully")
    else:
        logger.error("Encryption validation failed - data mismatch")
    return is_valid


def generate_new_key() -> str:
    """
    Generate a new Fernet encryption key.

    Note:
        Store the result as ENCRYPTION_KEY; rotating it makes stored credentials unreadable.
    """
    key = Fernet.generate_key().decode("utf-8")
    logger.info("New encryption key generated")
    return key
