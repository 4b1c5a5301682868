"""
tests/conftest.py -- Shared test fixtures for AuthRotor.

This module provides:
  - clock / memory_services: the full service graph over the in-memory doubles
  - sql_engine / sql_services: the same graph over a real SQLite database
  - api_client: TestClient wired to an isolated shared-memory SQLite database

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the TestClient because it runs route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. The threaded rotation tests use a file database under
tmp_path for the same reason.

DEBUG and LOGIN_RATE_LIMIT must be set before any api/ or core/ import so
get_settings() auto-generates SECRET_KEY in dev mode and the suite does not
trip the production login rate limit.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from itertools import count

# CRITICAL: set before any core/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.clock import SystemClock
from auth.memory import (
    FixedClock,
    InMemoryPasswordVerifier,
    InMemoryRefreshTokenStore,
    InMemoryTokenIssuer,
    InMemoryUserDirectory,
)
from auth.passwords import BcryptPasswordVerifier
from auth.services import AuthServices, build_auth_services
from auth.store import SqlRefreshTokenStore, UserStore, create_db_engine
from auth.tokens import JwtTokenIssuer
from core.config import get_settings

TEST_SECRET = "t" * 48

_db_names = count(1)


# ---------------------------------------------------------------------------
# In-memory service graph
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def refresh_store() -> InMemoryRefreshTokenStore:
    return InMemoryRefreshTokenStore()


@pytest.fixture
def memory_services(clock: FixedClock, refresh_store: InMemoryRefreshTokenStore) -> AuthServices:
    """Every service wired to the in-memory doubles and a FixedClock."""
    return build_auth_services(
        users=InMemoryUserDirectory(),
        passwords=InMemoryPasswordVerifier(),
        tokens=InMemoryTokenIssuer(clock),
        refresh_tokens=refresh_store,
        clock=clock,
    )


# ---------------------------------------------------------------------------
# SQL service graph
# ---------------------------------------------------------------------------


@pytest.fixture
def sql_engine(tmp_path):
    """File-backed SQLite engine so connections from several threads share one DB."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'auth.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def sql_services(sql_engine, clock: FixedClock) -> AuthServices:
    """Production implementations (bcrypt at minimum cost, JWT, SQL stores)."""
    return build_auth_services(
        users=UserStore(sql_engine),
        passwords=BcryptPasswordVerifier(rounds=4),
        tokens=JwtTokenIssuer(TEST_SECRET, 900, 7 * 24 * 3600, clock),
        refresh_tokens=SqlRefreshTokenStore(sql_engine),
        clock=clock,
    )


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


def _patch_lifespan(db_url: str):
    """Return an async context manager that replaces the real lifespan.

    Wires a fresh shared-memory database and fast bcrypt into app.state so
    TestClient routes never touch the production database file.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        settings = get_settings()
        engine = create_db_engine(db_url)
        clock = SystemClock()
        app.state.settings = settings
        app.state.engine = engine
        app.state.services = build_auth_services(
            users=UserStore(engine),
            passwords=BcryptPasswordVerifier(rounds=4),
            tokens=JwtTokenIssuer(
                settings.secret_key,
                settings.access_token_expire_seconds,
                settings.refresh_token_expire_seconds,
                clock,
            ),
            refresh_tokens=SqlRefreshTokenStore(engine),
            clock=clock,
        )
        yield
        engine.dispose()

    return test_lifespan


@pytest.fixture
def api_client() -> Generator[TestClient, None, None]:
    """Yield a TestClient backed by its own named shared-memory database."""
    db_url = f"sqlite:///file:test_auth_{next(_db_names)}?mode=memory&cache=shared&uri=true"
    app.router.lifespan_context = _patch_lifespan(db_url)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client


@pytest.fixture(params=["memory", "sql"])
def services(request) -> AuthServices:
    """Run the test once against the in-memory doubles and once against SQL + JWT + bcrypt."""
    return request.getfixturevalue(f"{request.param}_services")
