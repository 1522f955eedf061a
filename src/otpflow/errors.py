"""Error taxonomy for the authentication flow.

Every failure leaving an :class:`~otpflow.services.auth_flow.AuthFlow`
operation is one of these. The API layer renders them as the error envelope
``{"success": false, "error": ..., "code": ..., "details": ...}``.
"""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from otpflow.services.rate_limit import RateLimitResult


class AuthError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 400
    code: str = "BAD_REQUEST"

    def __init__(self, message: str, details: Any | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(AuthError):
    """Malformed identifier, malformed code, or a conflicting request."""

    status_code = 400
    code = "VALIDATION_ERROR"


class InvalidIdentifierFormat(ValidationError):
    """Identifier is neither a valid email nor a supported phone number."""

    def __init__(self, message: str = "Invalid email or phone format") -> None:
        super().__init__(message)


class InvalidOrExpiredCode(ValidationError):
    """No unused, unexpired code matches."""

    def __init__(self, message: str = "Invalid or expired verification code") -> None:
        super().__init__(message)


class NotFoundError(AuthError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message)


class UnauthorizedError(AuthError):
    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class RateLimitError(AuthError):
    """Too many requests for this action from this client."""

    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(
        self,
        message: str = "Too many requests",
        result: "RateLimitResult | None" = None,
    ) -> None:
        super().__init__(message)
        self.result = result


class InternalError(AuthError):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)


class CodeDeliveryError(AuthError):
    status_code = 500
    code = "DELIVERY_FAILED"

    def __init__(self, message: str = "Failed to deliver verification code") -> None:
        super().__init__(message)
