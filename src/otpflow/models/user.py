"""User model."""

from datetime import datetime

from pydantic import ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from otpflow.models.base import TimestampMixin, generate_nanoid


class User(TimestampMixin, SQLModel, table=True):
    """An identity that signs in by email or phone.

    At least one of ``email`` / ``phone`` is set, and each is unique when
    present. Users start unverified and become verified the first time a
    verification code issued to them is consumed.
    """

    __tablename__ = "users"

    id: str = Field(default_factory=generate_nanoid, primary_key=True, max_length=21)
    email: str | None = Field(default=None, unique=True, index=True, max_length=255)
    phone: str | None = Field(default=None, unique=True, index=True, max_length=32)
    is_verified: bool = Field(default=False)
    verified_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
    )


class UserRead(SQLModel):
    """Schema for reading a user."""

    model_config = ConfigDict(  # type: ignore[assignment]
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    id: str
    email: str | None
    phone: str | None
    is_verified: bool
    verified_at: datetime | None
