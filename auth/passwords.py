"""
auth/passwords.py -- Password hashing (bcrypt, used directly).

bcrypt is used without a passlib wrapper: passlib's wrap-bug detection feeds
bcrypt a >72-byte password, which bcrypt 4.x+ rejects outright.

bcrypt only reads the first 72 bytes of a password, and recent releases raise
instead of truncating. PasswordHasher truncates explicitly so hashing and
verification always see the same bytes on every bcrypt version.

Errors:
  hash_password   -- any bcrypt failure becomes HashError.
  verify_password -- a normal mismatch returns False; a malformed digest
                     (bcrypt raises ValueError "Invalid salt") becomes HashError.
"""

from __future__ import annotations

import logging

import bcrypt

from core.errors import HashError

logger = logging.getLogger("usergate.auth")

_BCRYPT_MAX_BYTES = 72
DEFAULT_ROUNDS = 10


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


class PasswordHasher:
    """Salted, adaptive one-way hashing with a fixed work factor.

    Usage:
        hasher = PasswordHasher(rounds=10)
        digest = hasher.hash_password("secret")
        hasher.verify_password("secret", digest)  # True
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        self.rounds = rounds
        # Timing equalization: unknown-email signins verify against this so
        # they cost the same bcrypt work as a wrong-password signin.
        self._dummy_hash = self.hash_password("usergate_timing_dummy")

    def hash_password(self, plain: str) -> str:
        """Return a bcrypt hash of the plaintext password."""
        try:
            return bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")
        except (ValueError, TypeError, MemoryError) as exc:
            logger.error("Error hashing the password: %s", exc)
            raise HashError("Error hashing the password") from exc

    def verify_password(self, plain: str, hashed: str) -> bool:
        """Return True if plain matches hashed. Constant-time comparison inside bcrypt."""
        try:
            return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
        except (ValueError, TypeError) as exc:
            logger.error("Error comparing the password: %s", exc)
            raise HashError("Error comparing the password") from exc

    def dummy_verify(self, plain: str) -> None:
        """Spend one verification's worth of CPU without a real hash."""
        self.verify_password(plain, self._dummy_hash)
