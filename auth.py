"""
auth.py
Owner login gate (bcrypt hashing, verify, login).

The app has a single static owner credential. It keeps casual visitors out of the
admin pages; it is not a security boundary (the GitHub token is what protects data).
"""

from __future__ import annotations

import hmac
import os
from functools import lru_cache

import bcrypt

DEFAULT_OWNER_USERNAME = "owner"
DEFAULT_OWNER_PASSWORD = "StrongPass!23"


def _to_bcrypt_secret(password: str) -> bytes:
    """
    bcrypt only uses the first 72 BYTES of the password.
    We truncate to 72 bytes to avoid ValueError and to make behavior explicit.
    """
    pw = password.encode("utf-8")
    if len(pw) > 72:
        pw = pw[:72]
    return pw


def hash_password(password: str) -> str:
    """
    Returns a bcrypt hash as a UTF-8 string (suitable for GYMHQ_OWNER_PASSWORD_HASH).
    """
    secret = _to_bcrypt_secret(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(secret, salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    secret = _to_bcrypt_secret(password)
    stored = password_hash.encode("utf-8")
    return bcrypt.checkpw(secret, stored)


def owner_username() -> str:
    return os.getenv("GYMHQ_OWNER_USERNAME") or DEFAULT_OWNER_USERNAME


@lru_cache(maxsize=1)
def _default_owner_hash() -> str:
    return hash_password(DEFAULT_OWNER_PASSWORD)


def owner_password_hash() -> str:
    return os.getenv("GYMHQ_OWNER_PASSWORD_HASH") or _default_owner_hash()


def login(username: str, password: str) -> bool:
    if not hmac.compare_digest(username.strip().encode("utf-8"), owner_username().encode("utf-8")):
        return False
    return verify_password(password, owner_password_hash())
