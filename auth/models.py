"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores map rows to
these, services do the work, routes map them to Pydantic responses.

All timestamps are timezone-aware UTC datetimes.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """An account that can log in and hold refresh tokens.

    email is the login identifier and the subject ("sub") of every token
    issued for this user. It is unique across all users.
    """

    email: str
    name: str
    role: str = "user"
    id: int | None = None
    password_hash: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class RefreshToken:
    """A persisted refresh token.

    State machine: Active (revoked=False) -> Revoked (terminal). A record
    revoked by rotation links the token that superseded it through
    replaced_by_token; a record revoked by expiry or logout has no link.
    Following replaced_by_token from the first record yields the token family.
    """

    token: str
    user_id: int
    expires_at: datetime
    created_at: datetime
    id: int | None = None
    revoked: bool = False
    replaced_by_token: str | None = None


@dataclass(frozen=True)
class Credentials:
    email: str
    password: str


@dataclass(frozen=True)
class NewUser:
    email: str
    name: str
    password: str


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a successful login, registration or rotation."""

    user: User
    access_token: str
    refresh_token: str
