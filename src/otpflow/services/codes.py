"""Verification code generation, issuance and consumption."""

import asyncio
import logging
import secrets
from collections.abc import AsyncIterator, Callable, Hashable
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

from otpflow.errors import InvalidOrExpiredCode
from otpflow.models import VerificationCode, VerificationType
from otpflow.stores import AuthStore

logger = logging.getLogger(__name__)

MIN_CODE_LENGTH = 4
MAX_CODE_LENGTH = 8


def generate_code(length: int = MIN_CODE_LENGTH) -> str:
    """Generate a numeric code of exactly ``length`` digits.

    Sampled uniformly from [10^(length-1), 10^length - 1] with a CSPRNG, so
    the first digit is never zero.
    """
    if not MIN_CODE_LENGTH <= length <= MAX_CODE_LENGTH:
        raise ValueError(f"Code length must be between {MIN_CODE_LENGTH} and {MAX_CODE_LENGTH}")
    low = 10 ** (length - 1)
    high = 10**length - 1
    return str(low + secrets.randbelow(high - low + 1))


class KeyedLock:
    """One asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._waiters: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if not self._waiters[key]:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class VerificationCodeManager:
    """Lifecycle of one-time codes for a store.

    At most one valid code exists per (user, kind): issuing a code marks
    every earlier unused code of that kind as used, and does so in the same
    unit of work as the insert, under a per-(user, kind) lock.
    """

    def __init__(
        self,
        store: AuthStore,
        locks: KeyedLock,
        code_length: int = MIN_CODE_LENGTH,
        ttl_minutes: int = 10,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.store = store
        self.locks = locks
        self.code_length = code_length
        self.ttl = timedelta(minutes=ttl_minutes)
        self.clock = clock

    async def issue(self, user_id: str, kind: VerificationType) -> VerificationCode:
        """Replace any outstanding code of ``kind`` for the user with a new one."""
        async with self.locks.hold((user_id, kind)), self.store.unit_of_work():
            await self.store.lock_user(user_id)

            outstanding = await self.store.find_unused_codes(user_id, kind)
            if outstanding:
                await self.store.invalidate([c.id for c in outstanding])
                logger.debug(f"Invalidated {len(outstanding)} {kind.value} code(s) for user {user_id}")

            now = self.clock()
            record = VerificationCode(
                user_id=user_id,
                code=generate_code(self.code_length),
                type=kind,
                created_at=now,
                expires_at=now + self.ttl,
                is_used=False,
            )
            return await self.store.insert_code(record)

    async def consume(self, user_id: str, code: str, kind: VerificationType) -> VerificationCode:
        """Mark a matching valid code as used and return it.

        Raises:
            InvalidOrExpiredCode: If no unused, unexpired code matches, or a
                concurrent call consumed it first
        """
        async with self.store.unit_of_work():
            record = await self.store.find_valid_code(user_id, code, kind, self.clock())
            if record is None or not await self.store.mark_code_used(record.id):
                raise InvalidOrExpiredCode()
        return record
