"""
auth/passwords.py -- bcrypt password hashing.

bcrypt is used directly (no passlib wrapper). Its cost factor makes
brute-forcing low-entropy secrets expensive, and checkpw compares in
constant time.

bcrypt only looks at the first 72 bytes of its input, and recent releases
refuse longer inputs outright, so hash() rejects them with ValidationError
instead of letting two different passwords share a digest.

Timing equalization: equalize() runs a full bcrypt check against a digest
computed once at import, so a sign-in for an unknown email costs the same as
one with a wrong password and response time does not reveal which emails
are registered.
"""

from __future__ import annotations

import secrets

import bcrypt

from auth.errors import ValidationError

MAX_PASSWORD_BYTES = 72


def _check_length(plaintext: str) -> bytes:
    raw = plaintext.encode("utf-8")
    if len(raw) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.", field="password")
    return raw


_DUMMY_HASH: bytes = bcrypt.hashpw(b"hostgate_timing_dummy", bcrypt.gensalt())


class PasswordHasher:
    """One-way salted hashing and verification of passwords."""

    def __init__(self, rounds: int = 12) -> None:
        self._rounds = rounds

    def hash(self, plaintext: str) -> str:
        """Return a bcrypt digest with a fresh salt."""
        raw = _check_length(plaintext)
        return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=self._rounds)).decode("utf-8")

    def compare(self, plaintext: str, digest: str) -> bool:
        """Return True if plaintext matches digest.

        A mismatch (including an over-long plaintext) is False. A digest that
        is not a bcrypt hash raises ValueError from bcrypt itself.
        """
        raw = plaintext.encode("utf-8")
        if len(raw) > MAX_PASSWORD_BYTES:
            self.equalize(plaintext)
            return False
        return bcrypt.checkpw(raw, digest.encode("utf-8"))

    def equalize(self, plaintext: str) -> None:
        """Burn one bcrypt comparison. Call on every early-exit credential path."""
        bcrypt.checkpw(plaintext.encode("utf-8")[:MAX_PASSWORD_BYTES], _DUMMY_HASH)

    def synthetic(self) -> str:
        """Digest of a random secret nobody knows, for OAuth-created accounts."""
        return self.hash(secrets.token_urlsafe(32))
