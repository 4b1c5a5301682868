"""
auth/passwords.py -- bcrypt password hashing.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error.

bcrypt accepts at most 72 bytes of input; current releases raise ValueError
beyond that. RegistrationService rejects longer passwords (measured in UTF-8
bytes) before encode() is reached, and matches() treats the error as a
mismatch.
"""

from __future__ import annotations

import bcrypt

_DEFAULT_ROUNDS = 12


class BcryptPasswordVerifier:
    """PasswordVerifier backed by bcrypt.

    rounds is the log2 work factor. Tests pass the bcrypt minimum (4) to keep
    the suite fast; production keeps the default.
    """

    def __init__(self, rounds: int = _DEFAULT_ROUNDS) -> None:
        self.rounds = rounds

    def encode(self, raw: str) -> str:
        return bcrypt.hashpw(raw.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def matches(self, raw: str, hashed: str) -> bool:
        """Return True if raw matches the bcrypt hash.

        A malformed or empty hash makes bcrypt raise ValueError; that is a
        mismatch, not an error.
        """
        if not hashed:
            return False
        try:
            return bcrypt.checkpw(raw.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False
