"""
Crypto utilities: bcrypt password hashing and opaque token helpers.

Password hashing:
  bcrypt ($2b$) with 12 rounds. Hashes from other bcrypt implementations
  ($2a$ / $2y$) verify as well.

Opaque tokens (password reset links, personal access tokens):
  32 random bytes rendered as 64 hex characters. Only the SHA-256 digest of a
  personal access token is stored; reset tokens are stored as issued.
"""

import hashlib
import secrets

import bcrypt
from flask import current_app, has_app_context

DEFAULT_ROUNDS = 12


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password with bcrypt (BCRYPT_ROUNDS, default 12)."""
    rounds = DEFAULT_ROUNDS
    if has_app_context():
        rounds = current_app.config.get("BCRYPT_ROUNDS", DEFAULT_ROUNDS)
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify a plain-text password against its bcrypt hash."""
    if not password_hash or not plain_password:
        return False
    if password_hash.startswith("$2y$"):
        password_hash = "$2b$" + password_hash[4:]
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def generate_token(nbytes: int = 32) -> str:
    """Random hex token (64 chars for the default 32 bytes)."""
    return secrets.token_hex(nbytes)


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()
