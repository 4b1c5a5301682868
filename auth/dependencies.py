"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Access tokens arrive as "Authorization: Bearer <token>". A token is accepted
only if its signature verifies, its type claim is "access" (a refresh token
is never a bearer credential), it has not expired, and its subject still
names an existing user.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: this module may import from fastapi because it is part of the
FastAPI dependency injection system. It does not import from api/.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.errors import InvalidToken
from auth.models import User
from auth.services import AuthServices
from auth.tokens import ACCESS


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def try_get_current_user(request: Request) -> User | None:
    """Resolve the bearer access token to a User. Never raises."""
    token = _bearer_token(request)
    if token is None:
        return None

    services: AuthServices = request.app.state.services
    try:
        claims = services.tokens.extract_claims(token)
    except InvalidToken:
        return None
    if claims.get("type") != ACCESS:
        return None
    if not services.tokens.validate(token, claims["sub"]):
        return None
    return services.users.find_by_email(claims["sub"])


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user
