"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (to mount SlowAPIMiddleware) and by
api/routes/v1/auth.py (to apply @limiter.limit() to the credential
endpoints). One shared instance means one shared counter store.

The limit itself is read from settings at request time (LOGIN_RATE_LIMIT),
so tests and deployments can change it without touching code.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def credential_rate_limit() -> str:
    """Limit applied to login, register and refresh."""
    return get_settings().login_rate_limit
