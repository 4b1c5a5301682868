"""
auth/tokens.py -- JWT issuing and parsing for access and refresh tokens.

Security design decisions:
  JWT: python-jose with HS256. Both token kinds are signed with the same
       process-wide SECRET_KEY, loaded once from core.config at startup.
       Key rotation is out of scope.

  Claims: sub (user email), type ("access" | "refresh"), iat, exp and jti.
       jti is a random UUID so two tokens minted for the same subject in the
       same second are still distinct values. Refresh token values are stored
       under a UNIQUE constraint, so this is required, not cosmetic.

  Expiry: signature and format are verified by jose; exp is checked against
       the injected Clock rather than jose's own wall clock so that the
       services and this module agree on what "now" is. extract_* therefore
       accept expired tokens; validate() rejects them.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from auth.errors import InvalidToken
from auth.interfaces import Clock

logger = logging.getLogger("authrotor.tokens")

ALGORITHM = "HS256"
ACCESS = "access"
REFRESH = "refresh"


class JwtTokenIssuer:
    """TokenIssuer that signs HS256 JWTs.

    Usage:
        issuer = JwtTokenIssuer(settings.secret_key, 900, 604800, SystemClock())
        token = issuer.generate_access_token("dexter@x.com")
        issuer.validate(token, "dexter@x.com")   # True
    """

    def __init__(
        self,
        secret_key: str,
        access_ttl_seconds: int,
        refresh_ttl_seconds: int,
        clock: Clock,
    ) -> None:
        self._secret_key = secret_key
        self.access_ttl = timedelta(seconds=access_ttl_seconds)
        self.refresh_ttl = timedelta(seconds=refresh_ttl_seconds)
        self._clock = clock

    # ------------------------------------------------------------------
    # Issuing
    # ------------------------------------------------------------------

    def generate_access_token(self, subject: str) -> str:
        return self._encode(subject, ACCESS, self.access_ttl)

    def generate_refresh_token(self, subject: str) -> str:
        return self._encode(subject, REFRESH, self.refresh_ttl)

    def _encode(self, subject: str, token_type: str, ttl: timedelta) -> str:
        now = self._clock.now()
        payload = {
            "sub": subject,
            "type": token_type,
            "iat": now,
            "exp": now + ttl,
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self._secret_key, algorithm=ALGORITHM)

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def extract_claims(self, token: str) -> dict[str, Any]:
        """Verify the signature and return the claims dict.

        Raises InvalidToken on a bad signature, a malformed token or missing
        sub/exp claims. Does NOT reject expired tokens.
        """
        try:
            claims = jwt.decode(
                token,
                self._secret_key,
                algorithms=[ALGORITHM],
                options={"verify_exp": False},
            )
        except (JWTError, AttributeError) as exc:
            raise InvalidToken("Token signature or format is invalid.") from exc
        if not isinstance(claims.get("sub"), str) or not isinstance(claims.get("exp"), (int, float)):
            raise InvalidToken("Token is missing required claims.")
        return claims

    def extract_expiration(self, token: str) -> datetime:
        return datetime.fromtimestamp(self.extract_claims(token)["exp"], tz=timezone.utc)

    def extract_username(self, token: str) -> str:
        return self.extract_claims(token)["sub"]

    def validate(self, token: str, expected_subject: str) -> bool:
        """Return True iff the subject matches and the token has not expired.

        Never raises. Any parse failure is simply "not valid".
        """
        try:
            claims = self.extract_claims(token)
        except InvalidToken:
            return False
        if claims["sub"] != expected_subject:
            return False
        expires_at = datetime.fromtimestamp(claims["exp"], tz=timezone.utc)
        return self._clock.now() < expires_at
