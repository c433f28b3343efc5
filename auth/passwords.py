"""
auth/passwords.py -- bcrypt credential hashing.

bcrypt output is a modular-crypt string ("$2b$14$<salt><digest>") that carries
algorithm, cost, and salt, so verification needs nothing but the stored value.

bcrypt is used directly rather than through passlib: passlib's wrap-bug self-check
builds a >72 byte password that bcrypt 4.x+ rejects outright. The same limit
applies to us: hash() refuses inputs over 72 UTF-8 bytes instead of letting
bcrypt truncate or raise, and the API layer enforces it on registration.

Concurrency: bcrypt at cost 14 is deliberately CPU-heavy. FastAPI runs our
sync route handlers in its worker thread pool, and a BoundedSemaphore caps
how many of those threads may be inside bcrypt at once so a login burst cannot
starve the pool for cheap requests.
"""

from __future__ import annotations

import logging
import threading

import bcrypt

logger = logging.getLogger("userbase.auth.passwords")

MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """Salted one-way password hashing with a configurable work factor.

    Usage:
        hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
        digest = hasher.hash("Abcdef12")
        hasher.verify("Abcdef12", digest)  # True
    """

    def __init__(self, rounds: int = 14, max_concurrency: int = 4) -> None:
        self.rounds = rounds
        self._slots = threading.BoundedSemaphore(max_concurrency)
        # Timing equalization target [C1]. Hashed at the configured cost so a
        # lookup miss costs the same as a wrong password.
        self._dummy_hash = self.hash("userbase_timing_dummy")

    def hash(self, plaintext: str) -> str:
        """Return a bcrypt digest of plaintext. Raises ValueError on unusable input."""
        if not plaintext:
            raise ValueError("Password must not be empty")
        raw = plaintext.encode("utf-8")
        if len(raw) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        with self._slots:
            return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plaintext: str, digest: str) -> bool:
        """Return True if plaintext matches digest.

        Never raises: empty inputs, over-long passwords, and malformed digests
        all return False.
        """
        if not plaintext or not digest:
            return False
        try:
            with self._slots:
                return bcrypt.checkpw(plaintext.encode("utf-8"), digest.encode("utf-8"))
        except ValueError:
            logger.debug("Rejected malformed password digest")
            return False

    def verify_dummy(self, plaintext: str) -> None:
        """Burn one verification so callers can equalize timing on a lookup miss."""
        self.verify(plaintext or "x", self._dummy_hash)
