"""
Crypto utilities — bcrypt password hashing and HMAC signature checks.

Password hashing:
  Supports both bcrypt ($2b$) and werkzeug (scrypt/pbkdf2) hashes so that
  accounts imported with werkzeug hashes can still log in.

Webhook signatures:
  Hex HMAC-SHA256 over the raw request body, compared in constant time.
"""

import hashlib
import hmac

import bcrypt
from werkzeug.security import check_password_hash


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password with bcrypt (12 rounds)."""
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify a plain-text password against its hash."""
    if not password_hash:
        return False

    if password_hash.startswith(("$2b$", "$2a$")):
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            password_hash.encode("utf-8"),
        )

    return check_password_hash(password_hash, plain_password)


def hmac_sha256_hex(secret: str, payload: bytes | str) -> str:
    """Hex HMAC-SHA256 of *payload* keyed by *secret*."""
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def signatures_match(expected: str, actual: str) -> bool:
    """Constant-time comparison of two hex signatures."""
    return hmac.compare_digest(expected.encode("utf-8"), (actual or "").encode("utf-8"))
