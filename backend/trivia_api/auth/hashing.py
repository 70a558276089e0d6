"""
Credential hashing utilities.

Security notes:
  • API keys are hashed with SHA-256. They are high-entropy random strings
    (not low-entropy passwords), so a fast digest is sufficient and keeps
    the per-request lookup cheap.
  • Passwords are hashed with bcrypt (salted, cost 12).
  • generate_api_key() returns the raw key exactly once; the caller must
    display it to the user immediately. It is never stored.
"""

import hashlib
import secrets

import bcrypt

_KEY_PREFIX = "trv_"


def hash_api_key(raw_key: str) -> str:
    """
    Hash a raw API key using SHA-256.

    Returns the hex digest string for storage/lookup.
    """
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_api_key() -> tuple[str, str]:
    """
    Generate a new API key.

    Returns:
        (raw_key, key_hash): raw_key is shown once, key_hash is stored.
    """
    random_part = secrets.token_hex(24)  # 48 hex chars = 192 bits
    raw_key = f"{_KEY_PREFIX}{random_part}"
    return raw_key, hash_api_key(raw_key)


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a plain password against its bcrypt hash. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False
