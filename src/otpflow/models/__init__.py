"""SQLModel database models."""

from otpflow.models.base import TimestampMixin, generate_nanoid
from otpflow.models.user import User, UserRead
from otpflow.models.verification_code import VerificationCode, VerificationType

__all__ = [
    "TimestampMixin",
    "User",
    "UserRead",
    "VerificationCode",
    "VerificationType",
    "generate_nanoid",
]
