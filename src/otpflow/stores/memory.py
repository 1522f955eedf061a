"""In-process store for development and tests."""

from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime

from otpflow.models import User, VerificationCode, VerificationType
from otpflow.stores.base import AuthStore, DuplicateIdentityError


class InMemoryAuthStore(AuthStore):
    """Dictionary-backed store.

    Note: This is suitable for single-process development and tests only;
    nothing survives a restart. No call awaits between reading and writing
    shared state, so each call is atomic on the event loop. A unit of work
    snapshots state on entry and restores it if the block raises.
    """

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._codes: dict[str, VerificationCode] = {}

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[None]:
        users = dict(self._users)
        codes = dict(self._codes)
        verified = {u.id: (u.is_verified, u.verified_at) for u in users.values()}
        used = {c.id: c.is_used for c in codes.values()}
        try:
            yield
        except Exception:
            for user_id, (is_verified, verified_at) in verified.items():
                users[user_id].is_verified = is_verified
                users[user_id].verified_at = verified_at
            for code_id, is_used in used.items():
                codes[code_id].is_used = is_used
            self._users, self._codes = users, codes
            raise

    async def find_user_by_email(self, email: str) -> User | None:
        return next((u for u in self._users.values() if u.email == email), None)

    async def find_user_by_phone(self, phone: str) -> User | None:
        return next((u for u in self._users.values() if u.phone == phone), None)

    async def get_user(self, user_id: str) -> User | None:
        return self._users.get(user_id)

    async def list_users(self) -> Sequence[User]:
        return sorted(self._users.values(), key=lambda u: u.created_at)

    async def create_user(self, email: str | None = None, phone: str | None = None) -> User:
        for existing in self._users.values():
            if (email and existing.email == email) or (phone and existing.phone == phone):
                raise DuplicateIdentityError(email or phone)
        user = User(email=email, phone=phone, is_verified=False)
        self._users[user.id] = user
        return user

    async def mark_verified(self, user_id: str, now: datetime) -> User:
        user = self._users[user_id]
        if not user.is_verified:
            user.is_verified = True
            user.verified_at = now
        return user

    async def lock_user(self, user_id: str) -> None:
        return None

    async def find_unused_codes(
        self, user_id: str, kind: VerificationType
    ) -> Sequence[VerificationCode]:
        return [
            c
            for c in self._codes.values()
            if c.user_id == user_id and c.type == kind and not c.is_used
        ]

    async def invalidate(self, code_ids: Sequence[str]) -> None:
        for code_id in code_ids:
            self._codes[code_id].is_used = True

    async def insert_code(self, record: VerificationCode) -> VerificationCode:
        self._codes[record.id] = record
        return record

    async def find_valid_code(
        self,
        user_id: str,
        code: str,
        kind: VerificationType,
        now: datetime,
    ) -> VerificationCode | None:
        matches = [
            c
            for c in self._codes.values()
            if c.user_id == user_id
            and c.code == code
            and c.type == kind
            and not c.is_used
            and c.expires_at > now
        ]
        return max(matches, key=lambda c: c.created_at, default=None)

    async def mark_code_used(self, code_id: str) -> bool:
        record = self._codes.get(code_id)
        if record is None or record.is_used:
            return False
        record.is_used = True
        return True
