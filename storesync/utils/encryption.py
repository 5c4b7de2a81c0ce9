"""
Encryption utilities for stored OAuth credential bundles.
Uses Fernet symmetric encryption with the configured ENCRYPTION_KEY.

Values are treated as opaque strings: nothing here trims, escapes or
otherwise rewrites them, so tokens round-trip byte-for-byte.
"""
import logging
from typing import Optional

logger = logging.getLogger(__name__)


def _get_fernet():
    """Get a Fernet cipher using the configured encryption key."""
    from cryptography.fernet import Fernet
    from storesync.config import get_settings
    settings = get_settings()

    key = settings.encryption_key
    if not key:
        return None

    return Fernet(key.encode() if isinstance(key, str) else key)


def encrypt_value(plaintext: str) -> str:
    """
    Encrypt a string value. Returns the encrypted token as a string.
    Falls back to storing plaintext if encryption key is not configured.
    """
    if not plaintext:
        return plaintext

    fernet = _get_fernet()
    if fernet is None:
        return plaintext

    return fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")


def decrypt_value(encrypted: str) -> Optional[str]:
    """
    Decrypt a string value. Returns the plaintext string.
    Returns the value as-is when it is not a Fernet token
    (rows written before ENCRYPTION_KEY was configured).
    """
    if not encrypted:
        return encrypted

    fernet = _get_fernet()
    if fernet is None:
        return encrypted

    from cryptography.fernet import InvalidToken
    try:
        return fernet.decrypt(encrypted.encode("ascii")).decode("utf-8")
    except (InvalidToken, UnicodeEncodeError):
        return encrypted
