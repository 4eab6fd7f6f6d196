"""Security helpers for password hashing and session token digests."""
from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass

from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

SALT_BYTES = 16
DERIVED_KEY_BYTES = 64
SESSION_TOKEN_BYTES = 32

# scrypt cost parameters (N, r, p)
_SCRYPT_N = 2**14
_SCRYPT_R = 8
_SCRYPT_P = 1


@dataclass(frozen=True, slots=True)
class HashedPassword:
    hash: str
    salt: str


def _derive(password: str, salt: str) -> bytes:
    kdf = Scrypt(
        salt=salt.encode("utf-8"),
        length=DERIVED_KEY_BYTES,
        n=_SCRYPT_N,
        r=_SCRYPT_R,
        p=_SCRYPT_P,
    )
    return kdf.derive(password.encode("utf-8"))


class PasswordHasher:
    """Hash and verify user passwords using salted scrypt."""

    @staticmethod
    def hash(password: str, salt: str | None = None) -> HashedPassword:
        salt = salt if salt is not None else secrets.token_hex(SALT_BYTES)
        return HashedPassword(hash=_derive(password, salt).hex(), salt=salt)

    @staticmethod
    def verify(password: str, stored_hash: str, stored_salt: str) -> bool:
        try:
            candidate = _derive(password, stored_salt)
            expected = bytes.fromhex(stored_hash)
        except Exception:
            return False
        if len(candidate) != len(expected):
            return False
        return hmac.compare_digest(candidate, expected)


def generate_session_token() -> str:
    """Return a fresh opaque bearer token (64 hex characters)."""

    return secrets.token_hex(SESSION_TOKEN_BYTES)


def hash_session_token(token: str, secret: str) -> str:
    """Digest a bearer token with the process-wide auth secret."""

    return hmac.new(secret.encode("utf-8"), token.encode("utf-8"), hashlib.sha256).hexdigest()
