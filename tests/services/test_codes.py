"""Verification code generation and lifecycle tests."""

import asyncio
from datetime import timedelta

import pytest

from otpflow.errors import InvalidOrExpiredCode
from otpflow.models import User, VerificationType
from otpflow.services.codes import KeyedLock, VerificationCodeManager, generate_code
from otpflow.stores import AuthStore, InMemoryAuthStore


async def create_user(store: AuthStore, email: str = "alice@example.com") -> User:
    async with store.unit_of_work():
        return await store.create_user(email=email)


@pytest.fixture
def fixed_codes(monkeypatch):
    """Make generate_code return the given codes in order."""

    def _set(*codes: str) -> None:
        it = iter(codes)
        monkeypatch.setattr("otpflow.services.codes.generate_code", lambda length: next(it))

    return _set


class TestGenerateCode:
    @pytest.mark.parametrize("length", [4, 5, 6, 7, 8])
    def test_length(self, length: int):
        for _ in range(50):
            code = generate_code(length)
            assert len(code) == length
            assert code.isdigit()
            assert code[0] != "0"

    @pytest.mark.parametrize("length", [0, 3, 9])
    def test_invalid_length(self, length: int):
        with pytest.raises(ValueError):
            generate_code(length)


class TestKeyedLock:
    @pytest.mark.asyncio
    async def test_same_key_is_serialized(self):
        locks = KeyedLock()
        events: list[str] = []

        async def worker(name: str):
            async with locks.hold("k"):
                events.append(f"{name}-start")
                await asyncio.sleep(0)
                events.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))
        assert events == ["a-start", "a-end", "b-start", "b-end"]

    @pytest.mark.asyncio
    async def test_locks_are_released(self):
        locks = KeyedLock()
        async with locks.hold("a"):
            async with locks.hold("b"):
                assert len(locks) == 2
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_released_on_error(self):
        locks = KeyedLock()
        with pytest.raises(RuntimeError):
            async with locks.hold("a"):
                raise RuntimeError("boom")
        assert len(locks) == 0


class TestVerificationCodeManager:
    @pytest.mark.asyncio
    async def test_issue(self, store: AuthStore, clock):
        user = await create_user(store)
        codes = VerificationCodeManager(store, KeyedLock(), code_length=6, clock=clock.now)

        record = await codes.issue(user.id, VerificationType.EMAIL)

        assert len(record.code) == 6
        assert record.user_id == user.id
        assert record.type is VerificationType.EMAIL
        assert record.is_used is False
        assert record.expires_at == clock.now() + timedelta(minutes=10)

    @pytest.mark.asyncio
    async def test_issue_invalidates_outstanding_codes(self, store: AuthStore, clock, fixed_codes):
        fixed_codes("1111", "2222")
        user = await create_user(store)
        codes = VerificationCodeManager(store, KeyedLock(), clock=clock.now)

        await codes.issue(user.id, VerificationType.EMAIL)
        await codes.issue(user.id, VerificationType.EMAIL)

        unused = await store.find_unused_codes(user.id, VerificationType.EMAIL)
        assert [c.code for c in unused] == ["2222"]

        with pytest.raises(InvalidOrExpiredCode):
            await codes.consume(user.id, "1111", VerificationType.EMAIL)
        consumed = await codes.consume(user.id, "2222", VerificationType.EMAIL)
        assert consumed.code == "2222"

    @pytest.mark.asyncio
    async def test_issue_keeps_codes_of_other_kinds(self, store: AuthStore, clock, fixed_codes):
        fixed_codes("1111", "2222")
        user = await create_user(store)
        codes = VerificationCodeManager(store, KeyedLock(), clock=clock.now)

        await codes.issue(user.id, VerificationType.EMAIL)
        await codes.issue(user.id, VerificationType.PASSWORD_RESET)

        assert len(await store.find_unused_codes(user.id, VerificationType.EMAIL)) == 1
        assert len(await store.find_unused_codes(user.id, VerificationType.PASSWORD_RESET)) == 1

    @pytest.mark.asyncio
    async def test_consume_once(self, store: AuthStore, clock):
        user = await create_user(store)
        codes = VerificationCodeManager(store, KeyedLock(), clock=clock.now)
        record = await codes.issue(user.id, VerificationType.EMAIL)

        await codes.consume(user.id, record.code, VerificationType.EMAIL)
        with pytest.raises(InvalidOrExpiredCode):
            await codes.consume(user.id, record.code, VerificationType.EMAIL)

    @pytest.mark.asyncio
    async def test_consume_wrong_kind(self, store: AuthStore, clock):
        user = await create_user(store)
        codes = VerificationCodeManager(store, KeyedLock(), clock=clock.now)
        record = await codes.issue(user.id, VerificationType.EMAIL)

        with pytest.raises(InvalidOrExpiredCode):
            await codes.consume(user.id, record.code, VerificationType.PHONE)

    @pytest.mark.asyncio
    async def test_consume_wrong_user(self, store: AuthStore, clock):
        alice = await create_user(store, "alice@example.com")
        bob = await create_user(store, "bob@example.com")
        codes = VerificationCodeManager(store, KeyedLock(), clock=clock.now)
        record = await codes.issue(alice.id, VerificationType.EMAIL)

        with pytest.raises(InvalidOrExpiredCode):
            await codes.consume(bob.id, record.code, VerificationType.EMAIL)

    @pytest.mark.asyncio
    async def test_consume_expires_at_ttl(self, store: AuthStore, clock):
        user = await create_user(store)
        codes = VerificationCodeManager(store, KeyedLock(), ttl_minutes=10, clock=clock.now)
        record = await codes.issue(user.id, VerificationType.EMAIL)

        clock.advance(minutes=10)
        with pytest.raises(InvalidOrExpiredCode):
            await codes.consume(user.id, record.code, VerificationType.EMAIL)

    @pytest.mark.asyncio
    async def test_consume_just_before_expiry(self, store: AuthStore, clock):
        user = await create_user(store)
        codes = VerificationCodeManager(store, KeyedLock(), ttl_minutes=10, clock=clock.now)
        record = await codes.issue(user.id, VerificationType.EMAIL)

        clock.advance(minutes=9, seconds=59)
        await codes.consume(user.id, record.code, VerificationType.EMAIL)

    @pytest.mark.asyncio
    async def test_zero_ttl_is_immediately_expired(self, store: AuthStore, clock):
        user = await create_user(store)
        codes = VerificationCodeManager(store, KeyedLock(), ttl_minutes=0, clock=clock.now)
        record = await codes.issue(user.id, VerificationType.EMAIL)

        with pytest.raises(InvalidOrExpiredCode):
            await codes.consume(user.id, record.code, VerificationType.EMAIL)

    @pytest.mark.asyncio
    async def test_concurrent_consume_succeeds_once(self, clock):
        store = InMemoryAuthStore()
        user = await create_user(store)
        codes = VerificationCodeManager(store, KeyedLock(), clock=clock.now)
        record = await codes.issue(user.id, VerificationType.EMAIL)

        results = await asyncio.gather(
            *(codes.consume(user.id, record.code, VerificationType.EMAIL) for _ in range(5)),
            return_exceptions=True,
        )

        assert sum(not isinstance(r, Exception) for r in results) == 1
        assert sum(isinstance(r, InvalidOrExpiredCode) for r in results) == 4

    @pytest.mark.asyncio
    async def test_concurrent_issue_leaves_one_valid_code(self, clock):
        store = InMemoryAuthStore()
        user = await create_user(store)
        codes = VerificationCodeManager(store, KeyedLock(), clock=clock.now)

        await asyncio.gather(*(codes.issue(user.id, VerificationType.EMAIL) for _ in range(5)))

        assert len(await store.find_unused_codes(user.id, VerificationType.EMAIL)) == 1
