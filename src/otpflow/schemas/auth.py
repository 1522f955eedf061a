"""Request and response bodies for the auth endpoints."""

from datetime import datetime

from pydantic import Field

from otpflow.models import UserRead
from otpflow.schemas.common import CamelModel
from otpflow.services.identifiers import IdentifierType


class IdentifierRequest(CamelModel):
    """Body for register, signin and resend."""

    identifier: str = Field(min_length=1, description="Email or phone")
    type: IdentifierType | None = None


class OtpValidationRequest(CamelModel):
    """Body for validate-otp."""

    identifier: str = Field(min_length=1, description="Email or phone")
    code: str = Field(min_length=4, max_length=8)
    type: IdentifierType | None = None


class VerifyRequest(CamelModel):
    """Body for verify. The identifier type is always inferred."""

    identifier: str = Field(min_length=1, description="Email or phone")
    code: str = Field(min_length=4, max_length=8)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(min_length=1)


class CodeIssuedData(CamelModel):
    """Data returned after a code is issued."""

    expires_at: datetime
    identifier: str
    type: IdentifierType
    user_id: str | None = None
    # Present only when OTP_DELIVERY=echo
    verification_code: str | None = None


class SessionData(CamelModel):
    """Data returned after a code is redeemed."""

    user: UserRead
    token: str
    refresh_token: str | None = None


class VerifyData(CamelModel):
    """Data returned by verify, which never issues a refresh token."""

    user: UserRead
    token: str


class UserData(CamelModel):
    user: UserRead


class TokenData(CamelModel):
    token: str
