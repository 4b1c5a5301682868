"""
API request and response models for AuthRotor REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request models only enforce transport-level shape (types, length caps).
Domain rules (email must contain "@", name 3 to 100 characters, password
at least 8 characters and at most 72 UTF-8 bytes) are enforced by
RegistrationService so every caller gets them, not just HTTP.

Only email and name are whitespace-stripped. Passwords are passed through
exactly as sent.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from auth.models import AuthResult, User

# bcrypt accepts at most 72 bytes. A character count can never exceed the
# byte count, so this cap only rejects what the byte check would too; the
# byte limit itself is checked by RegistrationService.
_PASSWORD_MAX = 72

StrippedStr = Annotated[str, StringConstraints(strip_whitespace=True, max_length=255)]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    email: StrippedStr
    name: StrippedStr
    password: str = Field(max_length=_PASSWORD_MAX)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: StrippedStr
    password: str = Field(max_length=_PASSWORD_MAX)


class RefreshRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh and /api/v1/auth/logout."""

    model_config = ConfigDict(str_strip_whitespace=True)

    refresh_token: str = Field(min_length=1, max_length=1024)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserSummary(BaseModel):
    """Public view of a user. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    name: str
    role: str

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(id=user.id, email=user.email, name=user.name, role=user.role)


class TokenPairResponse(BaseModel):
    """Response for register, login and refresh."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserSummary

    @classmethod
    def from_result(cls, result: AuthResult, expires_in: int) -> "TokenPairResponse":
        """Build the response from a service AuthResult (Factory Method)."""
        return cls(
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            expires_in=expires_in,
            user=UserSummary.from_user(result.user),
        )


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
