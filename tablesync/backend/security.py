"""Password and identity helpers for the development authority."""

from __future__ import annotations

import hashlib
import hmac
import secrets


IDENTITY_BYTES = 24


def generate_identity() -> str:
    """Generate a URL-safe identity string for a new participant."""
    return secrets.token_urlsafe(IDENTITY_BYTES)


def hash_password(password: str, server_salt: str) -> str:
    """Create deterministic password hash via sha256(password + server_salt)."""
    payload = f"{password}{server_salt}".encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def verify_password(raw_password: str, expected_hash: str, server_salt: str) -> bool:
    """Compare a raw password against a stored hash."""
    return hmac.compare_digest(hash_password(raw_password, server_salt), expected_hash)
