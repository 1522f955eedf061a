"""SQLModel-backed store."""

from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from otpflow.models import User, VerificationCode, VerificationType
from otpflow.stores.base import AuthStore, DuplicateIdentityError


class SQLAuthStore(AuthStore):
    """Store backed by an async SQLAlchemy session.

    Each unit of work ends with a commit, or a rollback if the block raises.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[None]:
        try:
            yield
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

    async def find_user_by_email(self, email: str) -> User | None:
        result = await self.session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def find_user_by_phone(self, phone: str) -> User | None:
        result = await self.session.execute(select(User).where(User.phone == phone))
        return result.scalar_one_or_none()

    async def get_user(self, user_id: str) -> User | None:
        return await self.session.get(User, user_id)

    async def list_users(self) -> Sequence[User]:
        result = await self.session.execute(select(User).order_by(col(User.created_at)))
        return result.scalars().all()

    async def create_user(self, email: str | None = None, phone: str | None = None) -> User:
        user = User(email=email, phone=phone, is_verified=False)
        self.session.add(user)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise DuplicateIdentityError(email or phone) from e
        return user

    async def mark_verified(self, user_id: str, now: datetime) -> User:
        await self.session.execute(
            update(User)
            .where(col(User.id) == user_id, col(User.is_verified).is_(False))
            .values(is_verified=True, verified_at=now)
        )
        user = await self.session.get(User, user_id, populate_existing=True)
        if user is None:
            raise LookupError(f"User {user_id} disappeared during verification")
        return user

    async def lock_user(self, user_id: str) -> None:
        # Row lock on Postgres; SQLite serializes writers on its own
        await self.session.execute(
            select(User.id).where(User.id == user_id).with_for_update()
        )

    async def find_unused_codes(
        self, user_id: str, kind: VerificationType
    ) -> Sequence[VerificationCode]:
        result = await self.session.execute(
            select(VerificationCode).where(
                VerificationCode.user_id == user_id,
                VerificationCode.type == kind,
                col(VerificationCode.is_used).is_(False),
            )
        )
        return result.scalars().all()

    async def invalidate(self, code_ids: Sequence[str]) -> None:
        if not code_ids:
            return
        await self.session.execute(
            update(VerificationCode)
            .where(col(VerificationCode.id).in_(code_ids))
            .values(is_used=True)
        )

    async def insert_code(self, record: VerificationCode) -> VerificationCode:
        self.session.add(record)
        await self.session.flush()
        return record

    async def find_valid_code(
        self,
        user_id: str,
        code: str,
        kind: VerificationType,
        now: datetime,
    ) -> VerificationCode | None:
        result = await self.session.execute(
            select(VerificationCode)
            .where(
                VerificationCode.user_id == user_id,
                VerificationCode.code == code,
                VerificationCode.type == kind,
                col(VerificationCode.is_used).is_(False),
                col(VerificationCode.expires_at) > now,
            )
            .order_by(col(VerificationCode.created_at).desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def mark_code_used(self, code_id: str) -> bool:
        result = await self.session.execute(
            update(VerificationCode)
            .where(col(VerificationCode.id) == code_id, col(VerificationCode.is_used).is_(False))
            .values(is_used=True)
        )
        return result.rowcount == 1  # type: ignore[attr-defined]
