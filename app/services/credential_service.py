"""
credential_service.py — Encryption helpers for secrets kept in system_config.

Secrets (the Shopify access token and webhook secret) are encrypted at rest
with Fernet. The key is derived from the app's SECRET_KEY via PBKDF2.

Business Rules:
- Plaintext is never returned by the API — only masked values
- A masked value submitted back by the UI means "keep the stored secret"

Called by: services/settings_service.py
Depends on: config.py (secret_key)
"""

import base64

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..config import settings

MASK_CHAR = "●"


def _get_fernet() -> Fernet:
    """Derive a Fernet key from the app secret and return a Fernet instance."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=b"production-tracker-credentials-v1",
        iterations=100_000,
    )
    key = base64.urlsafe_b64encode(kdf.derive(settings.secret_key.encode()))
    return Fernet(key)


def encrypt_value(plaintext: str) -> str:
    """Encrypt a credential value. Returns a base64 Fernet token string."""
    return _get_fernet().encrypt(plaintext.encode()).decode()


def decrypt_value(ciphertext: str) -> str:
    """Decrypt a credential value. Raises InvalidToken if the key changed."""
    return _get_fernet().decrypt(ciphertext.encode()).decode()


def try_decrypt(ciphertext: str | None) -> str:
    """Decrypt, returning "" for empty or undecryptable values."""
    if not ciphertext:
        return ""
    try:
        return decrypt_value(ciphertext)
    except InvalidToken:
        return ""


def mask_value(plaintext: str) -> str:
    """Mask a credential value for display: show last 4 chars only."""
    if not plaintext:
        return ""
    if len(plaintext) <= 4:
        return "****"
    return MASK_CHAR * min(8, len(plaintext) - 4) + plaintext[-4:]


def is_masked(value: str | None) -> bool:
    return bool(value) and (value.startswith(MASK_CHAR) or value == "****")
