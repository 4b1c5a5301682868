"""
auth/memory.py -- In-memory implementations of the auth capability interfaces.

These are the test doubles for auth/interfaces.py. They honour the same
contracts as the production implementations, including the atomic
conditional revoke: InMemoryRefreshTokenStore.revoke() is a compare-and-swap
under a lock, so the rotation race behaves exactly as it does against SQL.

Nothing here is durable; process exit loses all state.
"""

from __future__ import annotations

import hashlib
import secrets
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from itertools import count
from typing import Any

from auth.errors import AlreadyExists, InvalidToken
from auth.models import RefreshToken, User


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2030, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs: float) -> None:
        """Move forward by a timedelta, e.g. clock.advance(days=8)."""
        self._now = self._now + timedelta(**kwargs)


class InMemoryPasswordVerifier:
    """Salted SHA-256. Fast, and still never stores the raw password.

    Format: "<salt hex>$<digest hex>".
    """

    def encode(self, raw: str) -> str:
        salt = secrets.token_hex(8)
        return f"{salt}${self._digest(salt, raw)}"

    def matches(self, raw: str, hashed: str) -> bool:
        salt, sep, digest = (hashed or "").partition("$")
        if not sep or not salt or not digest:
            return False
        return secrets.compare_digest(self._digest(salt, raw), digest)

    @staticmethod
    def _digest(salt: str, raw: str) -> str:
        return hashlib.sha256(f"{salt}:{raw}".encode("utf-8")).hexdigest()


class InMemoryTokenIssuer:
    """TokenIssuer that hands out opaque counter-based values.

    Tokens look like "access-3" / "refresh-4". Claims are remembered in a dict,
    so any value this issuer did not mint is treated as forged.
    """

    def __init__(self, clock: Any, access_ttl_seconds: int = 900, refresh_ttl_seconds: int = 604800) -> None:
        self._clock = clock
        self.access_ttl = timedelta(seconds=access_ttl_seconds)
        self.refresh_ttl = timedelta(seconds=refresh_ttl_seconds)
        self._counter = count(1)
        self._claims: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def generate_access_token(self, subject: str) -> str:
        return self._mint("access", subject, self.access_ttl)

    def generate_refresh_token(self, subject: str) -> str:
        return self._mint("refresh", subject, self.refresh_ttl)

    def _mint(self, token_type: str, subject: str, ttl: timedelta) -> str:
        with self._lock:
            token = f"{token_type}-{next(self._counter)}"
            self._claims[token] = {"sub": subject, "type": token_type, "exp": self._clock.now() + ttl}
        return token

    def extract_claims(self, token: str) -> dict[str, Any]:
        try:
            return dict(self._claims[token])
        except KeyError:
            raise InvalidToken("Unknown token.") from None

    def extract_expiration(self, token: str) -> datetime:
        return self.extract_claims(token)["exp"]

    def extract_username(self, token: str) -> str:
        return self.extract_claims(token)["sub"]

    def validate(self, token: str, expected_subject: str) -> bool:
        claims = self._claims.get(token)
        if claims is None or claims["sub"] != expected_subject:
            return False
        return self._clock.now() < claims["exp"]


class InMemoryRefreshTokenStore:
    """RefreshTokenStore over a dict keyed by token value.

    Records are copied on the way in and out so callers can never mutate
    stored state except through revoke().
    """

    def __init__(self) -> None:
        self._records: dict[str, RefreshToken] = {}
        self._ids = count(1)
        self._lock = threading.Lock()

    def save(self, record: RefreshToken) -> RefreshToken:
        with self._lock:
            if record.token in self._records:
                raise ValueError("Duplicate refresh token value.")
            stored = replace(record, id=next(self._ids))
            self._records[stored.token] = stored
        return replace(stored)

    def find_active_by_value(self, token: str) -> RefreshToken | None:
        record = self._records.get(token)
        if record is None or record.revoked:
            return None
        return replace(record)

    def find_by_value(self, token: str) -> RefreshToken | None:
        record = self._records.get(token)
        return replace(record) if record is not None else None

    def revoke(self, token: str, replacement: str | None) -> int:
        """Compare-and-swap revoked False -> True under the store lock."""
        with self._lock:
            record = self._records.get(token)
            if record is None or record.revoked:
                return 0
            self._records[token] = replace(record, revoked=True, replaced_by_token=replacement)
            return 1

    def delete_all_for_user(self, user_id: int) -> int:
        with self._lock:
            doomed = [t for t, r in self._records.items() if r.user_id == user_id]
            for token in doomed:
                del self._records[token]
        return len(doomed)

    def list_for_user(self, user_id: int) -> list[RefreshToken]:
        return sorted(
            (replace(r) for r in self._records.values() if r.user_id == user_id),
            key=lambda r: r.id,
        )


class InMemoryUserDirectory:
    def __init__(self) -> None:
        self._by_id: dict[int, User] = {}
        self._ids = count(1)
        self._lock = threading.Lock()

    def create(self, user: User) -> User:
        now = datetime.now(timezone.utc)
        with self._lock:
            if any(u.email == user.email for u in self._by_id.values()):
                raise AlreadyExists()
            stored = replace(user, id=next(self._ids), created_at=now, updated_at=now)
            self._by_id[stored.id] = stored
        return replace(stored)

    def find_by_email(self, email: str) -> User | None:
        for user in self._by_id.values():
            if user.email == email:
                return replace(user)
        return None

    def find_by_id(self, user_id: int) -> User | None:
        user = self._by_id.get(user_id)
        return replace(user) if user is not None else None

    def exists_by_email(self, email: str) -> bool:
        return self.find_by_email(email) is not None

    def delete(self, user_id: int) -> bool:
        with self._lock:
            return self._by_id.pop(user_id, None) is not None
