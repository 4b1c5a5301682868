"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/register   -- create account; 201 + token pair
  POST /api/v1/auth/login      -- password login; 200 + token pair
  POST /api/v1/auth/refresh    -- rotate a refresh token; 200 + new token pair
  POST /api/v1/auth/logout     -- revoke a refresh token; always 200
  GET  /api/v1/auth/me         -- current user (requires Bearer access token)

Handlers are plain `def`: the services block on bcrypt and the database, so
FastAPI runs them in its threadpool.

Service failures (AuthError subclasses) are NOT caught here. They propagate
to the AuthError exception handler in api/main.py, which owns the mapping
from ErrorKind to HTTP status.

Security:
  [H1] register/login/refresh are rate-limited per client IP (LOGIN_RATE_LIMIT).
  [H2] Cache-Control: no-store on every response that carries tokens.
  [H3] logout answers 200 whether or not the token was active, so it cannot
       be used to probe token state.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import credential_rate_limit, limiter
from api.models import (
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    TokenPairResponse,
    UserSummary,
)
from auth.dependencies import get_current_user
from auth.models import AuthResult, Credentials, NewUser, User
from auth.services import AuthServices

# Auth policy:
# - POST /api/v1/auth/register: public
# - POST /api/v1/auth/login:    public
# - POST /api/v1/auth/refresh:  public -- the refresh token is the credential
# - POST /api/v1/auth/logout:   public -- the refresh token is the credential
# - GET  /api/v1/auth/me:       requires Bearer access token (get_current_user)
router = APIRouter()


def _services(request: Request) -> AuthServices:
    return request.app.state.services


def _token_response(request: Request, result: AuthResult, status_code: int = 200) -> JSONResponse:
    expires_in = request.app.state.settings.access_token_expire_seconds
    resp = JSONResponse(
        status_code=status_code,
        content=TokenPairResponse.from_result(result, expires_in).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [H2]
    return resp


@router.post("/auth/register", response_model=TokenPairResponse, status_code=201)
@limiter.limit(credential_rate_limit)  # [H1]
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account and return its first access/refresh token pair."""
    result = _services(request).registration.execute(
        NewUser(email=body.email, name=body.name, password=body.password)
    )
    return _token_response(request, result, status_code=201)


@router.post("/auth/login", response_model=TokenPairResponse)
@limiter.limit(credential_rate_limit)  # [H1]
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Wrong password and unknown email produce the same 401 body.
    """
    result = _services(request).authentication.execute(Credentials(email=body.email, password=body.password))
    return _token_response(request, result)


@router.post("/auth/refresh", response_model=TokenPairResponse)
@limiter.limit(credential_rate_limit)  # [H1]
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Exchange a refresh token for a new pair. The presented token is revoked."""
    result = _services(request).refresh.execute(body.refresh_token)
    return _token_response(request, result)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, body: RefreshRequest) -> MessageResponse:
    """Revoke the given refresh token. [H3]"""
    _services(request).logout.execute(body.refresh_token)
    return MessageResponse(message="Logged out.")


@router.get("/auth/me", response_model=UserSummary)
def me(current_user: User = Depends(get_current_user)) -> UserSummary:
    """Return identity information for the currently authenticated user."""
    return UserSummary.from_user(current_user)
