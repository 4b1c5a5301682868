"""
auth/services.py -- Login, registration, refresh-token rotation, logout and
account deletion.

Each service composes the capability interfaces from auth/interfaces.py and
either returns a result or raises an AuthError subclass. Nothing here
retries; every failure propagates to the caller verbatim.

Security design decisions:
  [S1] No credential oracle. Unknown email and wrong password raise the same
       AuthenticationFailed, and both paths run one password comparison so
       response time does not reveal which case occurred (the unknown-email
       path compares against a dummy hash computed once per service).

  [S2] No refresh-token state oracle. Never issued, already rotated, expired,
       forged and owner mismatch all raise the same InvalidRefreshToken. The
       specific reason is logged server side only.

  [S3] Rotation ordering. The new record is written before the old one is
       revoked, and the revoke is the conditional write from
       RefreshTokenStore.revoke(). If it reports zero rows a concurrent
       request won; we raise ConcurrencyConflict and the record we just
       inserted stays unreachable because its value is never returned.

  [S4] Registration ordering. The user row is committed before any token is
       issued. If issuance fails afterwards the account is still valid and a
       later login succeeds.

Token values and passwords are never logged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from auth.errors import (
    AlreadyExists,
    AuthenticationFailed,
    ConcurrencyConflict,
    IntegrityError,
    InvalidRefreshToken,
    InvalidToken,
    NotFound,
    ValidationError,
)
from auth.interfaces import Clock, PasswordVerifier, RefreshTokenStore, TokenIssuer, UserDirectory
from auth.models import AuthResult, Credentials, NewUser, RefreshToken, User

logger = logging.getLogger("authrotor.auth")

_MIN_NAME_LENGTH = 3
_MAX_NAME_LENGTH = 100
_MIN_PASSWORD_LENGTH = 8
# bcrypt refuses input longer than this many bytes.
_MAX_PASSWORD_BYTES = 72
_TIMING_DUMMY_PASSWORD = "authrotor_timing_dummy"


def _issue_token_pair(
    user: User,
    tokens: TokenIssuer,
    refresh_tokens: RefreshTokenStore,
    clock: Clock,
) -> AuthResult:
    """Mint an access/refresh pair for user and persist the refresh record.

    Shared by login and registration. Rotation does not use this helper
    because it must interleave the conditional revoke [S3].
    """
    access_token = tokens.generate_access_token(user.email)
    refresh_value = tokens.generate_refresh_token(user.email)
    refresh_tokens.save(
        RefreshToken(
            token=refresh_value,
            user_id=user.id,
            expires_at=tokens.extract_expiration(refresh_value),
            created_at=clock.now(),
        )
    )
    return AuthResult(user=user, access_token=access_token, refresh_token=refresh_value)


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


class AuthenticationService:
    def __init__(
        self,
        users: UserDirectory,
        passwords: PasswordVerifier,
        tokens: TokenIssuer,
        refresh_tokens: RefreshTokenStore,
        clock: Clock,
    ) -> None:
        self.users = users
        self.passwords = passwords
        self.tokens = tokens
        self.refresh_tokens = refresh_tokens
        self.clock = clock
        self._dummy_hash = passwords.encode(_TIMING_DUMMY_PASSWORD)

    def execute(self, credentials: Credentials) -> AuthResult:
        """Verify email + password and issue a fresh token pair.

        Raises AuthenticationFailed for every rejection [S1].
        """
        if not credentials.email or not credentials.password:
            # Still pay for one comparison so blank input is not a fast path.
            self.passwords.matches(credentials.password or "", self._dummy_hash)
            raise AuthenticationFailed()

        user = self.users.find_by_email(credentials.email)
        if user is None or not user.password_hash:
            self.passwords.matches(credentials.password, self._dummy_hash)
            logger.warning("Login rejected: bad credentials")
            raise AuthenticationFailed()
        if not self.passwords.matches(credentials.password, user.password_hash):
            logger.warning("Login rejected: bad credentials (user_id=%s)", user.id)
            raise AuthenticationFailed()

        result = _issue_token_pair(user, self.tokens, self.refresh_tokens, self.clock)
        logger.info("Login succeeded (user_id=%s)", user.id)
        return result


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def validate_email(email: str | None) -> None:
    if not email or "@" not in email:
        raise ValidationError("Invalid email format.")


def validate_name(name: str | None) -> None:
    if name is None or len(name) < _MIN_NAME_LENGTH:
        raise ValidationError(f"Name must be at least {_MIN_NAME_LENGTH} characters.")
    if len(name) > _MAX_NAME_LENGTH:
        raise ValidationError(f"Name must be at most {_MAX_NAME_LENGTH} characters.")


def validate_password(password: str | None) -> None:
    """Length is checked in characters, the upper bound in UTF-8 bytes."""
    if not password or len(password) < _MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {_MIN_PASSWORD_LENGTH} characters.")
    if len(password.encode("utf-8")) > _MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {_MAX_PASSWORD_BYTES} bytes.")


class RegistrationService:
    def __init__(
        self,
        users: UserDirectory,
        passwords: PasswordVerifier,
        tokens: TokenIssuer,
        refresh_tokens: RefreshTokenStore,
        clock: Clock,
        default_role: str = "user",
    ) -> None:
        self.users = users
        self.passwords = passwords
        self.tokens = tokens
        self.refresh_tokens = refresh_tokens
        self.clock = clock
        self.default_role = default_role

    def execute(self, new_user: NewUser) -> AuthResult:
        """Create an account and issue its first token pair.

        Validation runs before any side effect. Duplicate emails raise
        AlreadyExists, whether caught by the pre-check or by the directory's
        unique constraint when two registrations race.
        """
        validate_email(new_user.email)
        validate_name(new_user.name)
        validate_password(new_user.password)

        if self.users.exists_by_email(new_user.email):
            logger.warning("Registration rejected: email already registered")
            raise AlreadyExists()

        created = self.users.create(
            User(
                email=new_user.email,
                name=new_user.name,
                role=self.default_role,
                password_hash=self.passwords.encode(new_user.password),
            )
        )
        logger.info("User registered (user_id=%s)", created.id)

        # [S4] the user row is committed; from here on a failure leaves a
        # valid account behind.
        return _issue_token_pair(created, self.tokens, self.refresh_tokens, self.clock)


# ---------------------------------------------------------------------------
# Rotation
# ---------------------------------------------------------------------------


class TokenRefreshService:
    """Exchange an active refresh token for a new access/refresh pair.

    State machine per record: Active -> Revoked (terminal). Steps, each of
    which short-circuits the rest on failure:

      1. Look up the active record.                   missing -> InvalidRefreshToken
      2. Check stored expiry against the clock.       expired -> revoke, InvalidRefreshToken
      3. Re-derive the subject from the token itself. bad     -> InvalidRefreshToken
      4. Load the owning user.                        missing -> IntegrityError
      5. Compare stored owner with loaded user.       differ  -> InvalidRefreshToken
      6. Mint new access + refresh values.
      7. Persist the new refresh record.
      8. Conditionally revoke the old record.         0 rows  -> ConcurrencyConflict
      9. Return the new pair.
    """

    def __init__(
        self,
        users: UserDirectory,
        tokens: TokenIssuer,
        refresh_tokens: RefreshTokenStore,
        clock: Clock,
    ) -> None:
        self.users = users
        self.tokens = tokens
        self.refresh_tokens = refresh_tokens
        self.clock = clock

    def execute(self, token_value: str) -> AuthResult:
        if not token_value:
            raise InvalidRefreshToken()

        current = self.refresh_tokens.find_active_by_value(token_value)
        if current is None:
            logger.warning("Refresh rejected: token not found or already revoked")
            raise InvalidRefreshToken()

        if current.expires_at <= self.clock.now():
            self.refresh_tokens.revoke(token_value, None)
            logger.warning("Refresh rejected: token expired (user_id=%s)", current.user_id)
            raise InvalidRefreshToken()

        try:
            subject = self.tokens.extract_username(token_value)
        except InvalidToken:
            logger.warning("Refresh rejected: stored token failed verification (user_id=%s)", current.user_id)
            raise InvalidRefreshToken() from None

        user = self.users.find_by_email(subject)
        if user is None:
            logger.error("Refresh failed: token owner no longer exists (user_id=%s)", current.user_id)
            raise IntegrityError()

        if current.user_id != user.id:
            logger.warning(
                "Refresh rejected: owner mismatch (record user_id=%s, subject user_id=%s)",
                current.user_id,
                user.id,
            )
            raise InvalidRefreshToken()

        access_token = self.tokens.generate_access_token(user.email)
        new_value = self.tokens.generate_refresh_token(user.email)
        self.refresh_tokens.save(
            RefreshToken(
                token=new_value,
                user_id=user.id,
                expires_at=self.tokens.extract_expiration(new_value),
                created_at=self.clock.now(),
            )
        )

        # [S3] last write; conditions on the record still being active.
        if self.refresh_tokens.revoke(token_value, new_value) == 0:
            logger.warning("Refresh lost a concurrent rotation (user_id=%s)", user.id)
            raise ConcurrencyConflict()

        logger.info("Refresh token rotated (user_id=%s)", user.id)
        return AuthResult(user=user, access_token=access_token, refresh_token=new_value)


# ---------------------------------------------------------------------------
# Logout and account deletion
# ---------------------------------------------------------------------------


class LogoutService:
    def __init__(self, refresh_tokens: RefreshTokenStore) -> None:
        self.refresh_tokens = refresh_tokens

    def execute(self, token_value: str) -> bool:
        """Revoke token_value without a replacement.

        Idempotent: unknown or already revoked values are a silent no-op, so
        the caller learns nothing about token state. Returns True if this call
        revoked an active record.
        """
        if not token_value:
            return False
        revoked = self.refresh_tokens.revoke(token_value, None) == 1
        if revoked:
            logger.info("Refresh token revoked by logout")
        return revoked


class AccountDeletionService:
    def __init__(self, users: UserDirectory, refresh_tokens: RefreshTokenStore) -> None:
        self.users = users
        self.refresh_tokens = refresh_tokens

    def execute(self, user_id: int) -> int:
        """Delete a user and every refresh token they own.

        Tokens go first: the user row is the foreign-key parent. Returns the
        number of refresh-token records removed. Raises NotFound for an
        unknown user_id.
        """
        if self.users.find_by_id(user_id) is None:
            raise NotFound()
        removed = self.refresh_tokens.delete_all_for_user(user_id)
        self.users.delete(user_id)
        logger.info("User deleted (user_id=%s, refresh_tokens_removed=%d)", user_id, removed)
        return removed


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


@dataclass
class AuthServices:
    """Every service, wired to one set of collaborators. Lives on app.state."""

    users: UserDirectory
    tokens: TokenIssuer
    refresh_tokens: RefreshTokenStore
    authentication: AuthenticationService
    registration: RegistrationService
    refresh: TokenRefreshService
    logout: LogoutService
    account_deletion: AccountDeletionService


def build_auth_services(
    users: UserDirectory,
    passwords: PasswordVerifier,
    tokens: TokenIssuer,
    refresh_tokens: RefreshTokenStore,
    clock: Clock,
    default_role: str = "user",
) -> AuthServices:
    return AuthServices(
        users=users,
        tokens=tokens,
        refresh_tokens=refresh_tokens,
        authentication=AuthenticationService(users, passwords, tokens, refresh_tokens, clock),
        registration=RegistrationService(users, passwords, tokens, refresh_tokens, clock, default_role),
        refresh=TokenRefreshService(users, tokens, refresh_tokens, clock),
        logout=LogoutService(refresh_tokens),
        account_deletion=AccountDeletionService(users, refresh_tokens),
    )
