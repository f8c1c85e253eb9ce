"""
Encryption for third-party OAuth tokens stored in the database
"""
import base64
import hashlib
import logging
from functools import lru_cache
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from ..config import SECRET_KEY, TOKEN_ENCRYPTION_KEY

logger = logging.getLogger(__name__)


class TokenDecryptionError(Exception):
    """Stored token could not be decrypted with the configured key"""


@lru_cache(maxsize=1)
def get_cipher_suite() -> Fernet:
    if TOKEN_ENCRYPTION_KEY:
        return Fernet(TOKEN_ENCRYPTION_KEY.encode())

    # Fernet needs 32 url-safe base64 bytes; derive them from SECRET_KEY
    derived = base64.urlsafe_b64encode(hashlib.sha256(SECRET_KEY.encode()).digest())
    return Fernet(derived)


def encrypt_token(token: Optional[str]) -> Optional[str]:
    """Encrypt a token for storage"""
    if token is None:
        return None
    return get_cipher_suite().encrypt(token.encode()).decode()


def decrypt_token(encrypted_token: Optional[str]) -> Optional[str]:
    """Decrypt a stored token"""
    if encrypted_token is None:
        return None
    try:
        return get_cipher_suite().decrypt(encrypted_token.encode()).decode()
    except InvalidToken as e:
        logger.error("❌ Failed to decrypt stored calendar token (key rotated?)")
        raise TokenDecryptionError("Stored token could not be decrypted") from e


def redact_token(token: Optional[str]) -> Optional[str]:
    """Mask a token for API responses: '***' when set, None otherwise"""
    return "***" if token else None
