"""Verification code model for one-time passcodes."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Index
from sqlmodel import Field, SQLModel

from otpflow.models.base import generate_nanoid, utcnow


class VerificationType(str, Enum):
    """What a verification code proves."""

    EMAIL = "EMAIL"
    PHONE = "PHONE"
    PASSWORD_RESET = "PASSWORD_RESET"


class VerificationCode(SQLModel, table=True):
    """A one-time code owned by a single user.

    A code can be consumed iff ``is_used`` is false and ``expires_at`` is in
    the future. Once ``is_used`` is set it is never cleared, and rows are
    never deleted by the application.
    """

    __tablename__ = "verification_codes"
    __table_args__ = (
        Index("verification_codes_user_type_idx", "user_id", "type"),
    )

    id: str = Field(default_factory=generate_nanoid, primary_key=True, max_length=21)
    user_id: str = Field(foreign_key="users.id", ondelete="CASCADE", max_length=21)
    code: str = Field(min_length=4, max_length=8)
    type: VerificationType
    expires_at: datetime = Field(
        index=True,
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
        description="Code expiration time",
    )
    is_used: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
    )
