"""
Fernet-based symmetric encryption for stored marketplace OAuth tokens.

Uses the ENCRYPTION_KEY from app settings. The key must be a valid
Fernet key (base64-encoded 32 bytes), generated with:
    python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
"""

from cryptography.fernet import Fernet, InvalidToken

from marketsync.config import get_settings
from marketsync.core.exceptions import ReconnectRequired

_fernet: Fernet | None = None


def _get_fernet() -> Fernet:
    """Lazily initialize the Fernet cipher from settings."""
    global _fernet
    if _fernet is None:
        settings = get_settings()
        _fernet = Fernet(settings.encryption_key.encode())
    return _fernet


def reset_cipher() -> None:
    """Drop the cached cipher (after the encryption key changes)."""
    global _fernet
    _fernet = None


def encrypt(plaintext: str) -> str:
    """Encrypt a string and return the base64-encoded ciphertext."""
    if not plaintext:
        return ""
    return _get_fernet().encrypt(plaintext.encode()).decode()


def decrypt(ciphertext: str) -> str:
    """
    Decrypt a base64-encoded ciphertext and return the plaintext string.

    Raises:
        ReconnectRequired: The stored token was encrypted with another key
            and can no longer be used.
    """
    if not ciphertext:
        return ""
    try:
        return _get_fernet().decrypt(ciphertext.encode()).decode()
    except InvalidToken as e:
        raise ReconnectRequired(
            "Stored marketplace token cannot be decrypted; reconnect the account"
        ) from e
