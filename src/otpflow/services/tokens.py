"""Access and refresh token issuance using signed JWTs."""

import logging
from datetime import UTC, datetime, timedelta
from typing import Literal

from jose import JWTError, jwt
from pydantic import BaseModel

from otpflow.config import Settings

logger = logging.getLogger(__name__)

TokenKind = Literal["access", "refresh"]


class TokenClaims(BaseModel):
    """Identity carried inside a session token."""

    id: str
    email: str | None = None
    phone: str | None = None


class TokenIssuer:
    """Creates and validates stateless session tokens.

    Access and refresh tokens are signed with different secrets and carry a
    ``type`` claim, so one kind never validates as the other. Validity is
    signature plus expiry; there is no revocation list and no clock leeway.
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        algorithm: str = "HS256",
        access_lifetime: timedelta = timedelta(days=7),
        refresh_lifetime: timedelta = timedelta(days=30),
    ) -> None:
        self.algorithm = algorithm
        self._secrets: dict[TokenKind, str] = {
            "access": access_secret,
            "refresh": refresh_secret,
        }
        self._lifetimes: dict[TokenKind, timedelta] = {
            "access": access_lifetime,
            "refresh": refresh_lifetime,
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenIssuer":
        return cls(
            access_secret=settings.jwt_access_secret,
            refresh_secret=settings.jwt_refresh_secret,
            algorithm=settings.jwt_algorithm,
            access_lifetime=timedelta(days=settings.access_token_expiration_days),
            refresh_lifetime=timedelta(days=settings.refresh_token_expiration_days),
        )

    def _issue(self, kind: TokenKind, claims: TokenClaims, now: datetime | None = None) -> str:
        issued_at = now or datetime.now(UTC)
        payload = {
            "sub": claims.id,
            "email": claims.email,
            "phone": claims.phone,
            "type": kind,
            "iat": issued_at,
            "exp": issued_at + self._lifetimes[kind],
        }
        return jwt.encode(payload, self._secrets[kind], algorithm=self.algorithm)

    def _validate(self, kind: TokenKind, token: str) -> TokenClaims | None:
        try:
            payload = jwt.decode(token, self._secrets[kind], algorithms=[self.algorithm])
        except JWTError as e:
            logger.debug(f"{kind} token rejected: {e}")
            return None

        user_id = payload.get("sub")
        if payload.get("type") != kind or not user_id:
            logger.debug(f"{kind} token rejected: wrong type or missing subject")
            return None

        return TokenClaims(id=user_id, email=payload.get("email"), phone=payload.get("phone"))

    def issue_access(self, claims: TokenClaims, now: datetime | None = None) -> str:
        """Create a short-lived access token."""
        return self._issue("access", claims, now)

    def issue_refresh(self, claims: TokenClaims, now: datetime | None = None) -> str:
        """Create a long-lived refresh token."""
        return self._issue("refresh", claims, now)

    def validate_access(self, token: str) -> TokenClaims | None:
        """Return the claims of a valid access token, None otherwise."""
        return self._validate("access", token)

    def validate_refresh(self, token: str) -> TokenClaims | None:
        """Return the claims of a valid refresh token, None otherwise."""
        return self._validate("refresh", token)
