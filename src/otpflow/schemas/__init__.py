"""Pydantic schemas for API requests/responses."""

from otpflow.schemas.auth import (
    CodeIssuedData,
    IdentifierRequest,
    OtpValidationRequest,
    RefreshRequest,
    SessionData,
    TokenData,
    UserData,
    VerifyData,
    VerifyRequest,
)
from otpflow.schemas.common import CamelModel, ErrorResponse, SuccessResponse

__all__ = [
    "CamelModel",
    "CodeIssuedData",
    "ErrorResponse",
    "IdentifierRequest",
    "OtpValidationRequest",
    "RefreshRequest",
    "SessionData",
    "SuccessResponse",
    "TokenData",
    "UserData",
    "VerifyData",
    "VerifyRequest",
]
