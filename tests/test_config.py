"""
tests/test_config.py -- Unit tests for core/config.py Settings validation.

Settings is constructed directly with _env_file=None so a developer's .env
file cannot leak into the assertions. Keyword arguments override the
DEBUG=true set by conftest.py.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings, get_settings

GOOD_KEY = "k" * 32


def test_production_mode_requires_secret_key():
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(_env_file=None, debug=False, secret_key="")


def test_short_secret_key_is_rejected():
    with pytest.raises(ValidationError, match="at least 32 characters"):
        Settings(_env_file=None, debug=False, secret_key="k" * 31)


def test_debug_mode_generates_a_key():
    first = Settings(_env_file=None, debug=True, secret_key="")
    second = Settings(_env_file=None, debug=True, secret_key="")
    assert len(first.secret_key) >= 32
    assert first.secret_key != second.secret_key


def test_defaults():
    settings = Settings(_env_file=None, debug=False, secret_key=GOOD_KEY, login_rate_limit="10/minute")
    assert settings.access_token_expire_seconds == 900
    assert settings.refresh_token_expire_seconds == 7 * 24 * 3600
    assert settings.default_role == "user"
    assert settings.login_rate_limit == "10/minute"
    assert settings.database_url.startswith("sqlite:///")


@pytest.mark.parametrize(
    "access,refresh",
    [(0, 3600), (900, 0), (-1, 3600), (3600, 3600), (3600, 900)],
)
def test_bad_token_ttls_are_rejected(access, refresh):
    with pytest.raises(ValidationError):
        Settings(
            _env_file=None,
            secret_key=GOOD_KEY,
            access_token_expire_seconds=access,
            refresh_token_expire_seconds=refresh,
        )


def test_env_vars_are_read(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", GOOD_KEY)
    monkeypatch.setenv("ACCESS_TOKEN_EXPIRE_SECONDS", "60")
    monkeypatch.setenv("REFRESH_TOKEN_EXPIRE_SECONDS", "120")
    settings = Settings(_env_file=None)
    assert settings.secret_key == GOOD_KEY
    assert settings.access_token_expire_seconds == 60
    assert settings.refresh_token_expire_seconds == 120


def test_get_settings_is_cached():
    assert get_settings() is get_settings()
