"""Abstract store contract consumed by the authentication flow."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from contextlib import AbstractAsyncContextManager
from datetime import datetime

from otpflow.models import User, VerificationCode, VerificationType


class DuplicateIdentityError(Exception):
    """A user with this email or phone already exists."""


class AuthStore(ABC):
    """Storage for users and their verification codes.

    Mutating calls made inside :meth:`unit_of_work` are applied together or
    not at all.
    """

    @abstractmethod
    def unit_of_work(self) -> AbstractAsyncContextManager[None]:
        """Group the calls made inside the block into one atomic unit."""

    @abstractmethod
    async def find_user_by_email(self, email: str) -> User | None:
        pass

    @abstractmethod
    async def find_user_by_phone(self, phone: str) -> User | None:
        pass

    @abstractmethod
    async def get_user(self, user_id: str) -> User | None:
        pass

    @abstractmethod
    async def list_users(self) -> Sequence[User]:
        pass

    @abstractmethod
    async def create_user(self, email: str | None = None, phone: str | None = None) -> User:
        """Create an unverified user.

        Raises:
            DuplicateIdentityError: If the email or phone is taken
        """

    @abstractmethod
    async def mark_verified(self, user_id: str, now: datetime) -> User:
        """Set ``is_verified`` and ``verified_at`` unless already verified."""

    @abstractmethod
    async def lock_user(self, user_id: str) -> None:
        """Block other units of work issuing codes for this user until this one ends."""

    @abstractmethod
    async def find_unused_codes(
        self, user_id: str, kind: VerificationType
    ) -> Sequence[VerificationCode]:
        pass

    @abstractmethod
    async def invalidate(self, code_ids: Sequence[str]) -> None:
        """Mark codes as used without consuming them."""

    @abstractmethod
    async def insert_code(self, record: VerificationCode) -> VerificationCode:
        pass

    @abstractmethod
    async def find_valid_code(
        self,
        user_id: str,
        code: str,
        kind: VerificationType,
        now: datetime,
    ) -> VerificationCode | None:
        """Find an unused code that expires strictly after ``now``."""

    @abstractmethod
    async def mark_code_used(self, code_id: str) -> bool:
        """Compare-and-set ``is_used`` from false to true.

        Returns:
            False if the code was already used
        """
