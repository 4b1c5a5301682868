"""
auth/interfaces.py -- Capability interfaces consumed by the auth services.

Each protocol has one production implementation and one in-memory double:

    PasswordVerifier   auth.passwords.BcryptPasswordVerifier   auth.memory.InMemoryPasswordVerifier
    TokenIssuer        auth.tokens.JwtTokenIssuer              auth.memory.InMemoryTokenIssuer
    RefreshTokenStore  auth.store.SqlRefreshTokenStore         auth.memory.InMemoryRefreshTokenStore
    UserDirectory      auth.store.UserStore                    auth.memory.InMemoryUserDirectory
    Clock              auth.clock.SystemClock                  auth.memory.FixedClock

Services depend on these protocols only, never on a concrete class.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from auth.models import RefreshToken, User


@runtime_checkable
class Clock(Protocol):
    def now(self) -> datetime:
        """Return the current instant as a timezone-aware UTC datetime."""
        ...


@runtime_checkable
class PasswordVerifier(Protocol):
    def encode(self, raw: str) -> str:
        """Return a salted one-way hash of raw."""
        ...

    def matches(self, raw: str, hashed: str) -> bool:
        """Return True if raw hashes to hashed. Never raises on a malformed hash."""
        ...


@runtime_checkable
class TokenIssuer(Protocol):
    def generate_access_token(self, subject: str) -> str: ...

    def generate_refresh_token(self, subject: str) -> str: ...

    def extract_claims(self, token: str) -> dict[str, Any]:
        """Verify the signature and return the claims. Raises InvalidToken."""
        ...

    def extract_expiration(self, token: str) -> datetime:
        """Raises InvalidToken on a bad signature or format."""
        ...

    def extract_username(self, token: str) -> str:
        """Raises InvalidToken on a bad signature or format."""
        ...

    def validate(self, token: str, expected_subject: str) -> bool:
        """True iff the token is well formed, its subject matches and it has not expired."""
        ...


@runtime_checkable
class RefreshTokenStore(Protocol):
    """Persistence for refresh-token records.

    Services authorize only through find_active_by_value() and revoke().
    find_by_value() and list_for_user() are read-only audit views: they
    return records in any state and must never decide whether a token is
    accepted.
    """

    def save(self, record: RefreshToken) -> RefreshToken: ...

    def find_active_by_value(self, token: str) -> RefreshToken | None:
        """Return the record only if it exists and is not revoked."""
        ...

    def find_by_value(self, token: str) -> RefreshToken | None:
        """Audit only. Return the record whatever its state, e.g. to follow replaced_by_token."""
        ...

    def revoke(self, token: str, replacement: str | None) -> int:
        """Atomically revoke token if it is still active.

        Sets revoked=True and replaced_by_token=replacement in a single
        conditional write. Returns the number of records changed: 1 if this
        call performed the transition, 0 if the token was unknown or already
        revoked.
        """
        ...

    def delete_all_for_user(self, user_id: int) -> int: ...

    def list_for_user(self, user_id: int) -> list[RefreshToken]:
        """Audit only. Every record owned by user_id, oldest first."""
        ...


@runtime_checkable
class UserDirectory(Protocol):
    def find_by_email(self, email: str) -> User | None: ...

    def find_by_id(self, user_id: int) -> User | None: ...

    def exists_by_email(self, email: str) -> bool: ...

    def create(self, user: User) -> User:
        """Persist user and return it with id and timestamps set. Raises AlreadyExists."""
        ...

    def delete(self, user_id: int) -> bool: ...
