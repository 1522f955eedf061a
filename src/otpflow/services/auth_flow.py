"""Passwordless sign-in flow: register or sign in, then redeem a one-time code.

Per identifier the flow moves Unregistered -> Registered (unverified) ->
Verified. ``register``/``signin``/``resend`` issue a code; ``validate_otp``
and ``verify`` redeem one and hand out session tokens.

Every public operation raises only :class:`~otpflow.errors.AuthError`
subclasses; anything else is logged and re-raised as ``InternalError``.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from functools import wraps
from typing import ParamSpec, TypeVar

from otpflow.errors import (
    AuthError,
    CodeDeliveryError,
    InternalError,
    InvalidOrExpiredCode,
    NotFoundError,
    RateLimitError,
    UnauthorizedError,
    ValidationError,
)
from otpflow.models import User
from otpflow.services.codes import MAX_CODE_LENGTH, MIN_CODE_LENGTH, VerificationCodeManager
from otpflow.services.delivery import CodeSender
from otpflow.services.identifiers import IdentifierType, mask_identifier, resolve, sanitize
from otpflow.services.rate_limit import FixedWindowRateLimiter, RateLimitAction
from otpflow.services.tokens import TokenClaims, TokenIssuer
from otpflow.stores import AuthStore, DuplicateIdentityError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

RATE_LIMIT_MESSAGES: dict[RateLimitAction, str] = {
    RateLimitAction.REGISTER: "Too many registration attempts. Please try again later.",
    RateLimitAction.SIGNIN: "Too many signin attempts. Please try again later.",
    RateLimitAction.RESEND: "Too many resend attempts. Please try again later.",
    RateLimitAction.VALIDATE_OTP: "Too many OTP validation attempts. Please try again later.",
    RateLimitAction.VERIFY: "Too many verification attempts. Please try again later.",
    RateLimitAction.REFRESH: "Too many refresh attempts. Please try again later.",
}


REGISTER_DELIVERY_FAILED_MESSAGE = (
    "User registered, but the verification code could not be delivered. "
    "Use signin to request a new code."
)


@dataclass
class CodeIssued:
    """Outcome of an operation that issued a verification code."""

    user_id: str
    identifier: str
    type: IdentifierType
    expires_at: datetime
    delivered: bool
    # Only set when codes are echoed back (development)
    verification_code: str | None = None


@dataclass
class AuthResult:
    """Outcome of an operation that authenticated a user."""

    user: User
    access_token: str
    refresh_token: str | None = None


def operation_boundary(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
    """Translate unexpected exceptions into InternalError."""

    @wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return await func(*args, **kwargs)
        except AuthError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in {func.__name__}")
            raise InternalError() from e

    return wrapper


def validate_code_format(code: str) -> None:
    if not code.isdigit() or not MIN_CODE_LENGTH <= len(code) <= MAX_CODE_LENGTH:
        raise ValidationError(
            f"Code must be {MIN_CODE_LENGTH} to {MAX_CODE_LENGTH} digits",
            details={"field": "code"},
        )


class AuthFlow:
    """Composes rate limiting, classification, codes and tokens."""

    def __init__(
        self,
        store: AuthStore,
        limiter: FixedWindowRateLimiter,
        tokens: TokenIssuer,
        codes: VerificationCodeManager,
        sender: CodeSender,
        *,
        echo_codes: bool = False,
        require_delivery: bool = False,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.store = store
        self.limiter = limiter
        self.tokens = tokens
        self.codes = codes
        self.sender = sender
        self.echo_codes = echo_codes
        self.require_delivery = require_delivery
        self.clock = clock

    async def _rate_limit(self, action: RateLimitAction, client_origin: str, identifier: str) -> None:
        result = await self.limiter.check_action(action, client_origin)
        if not result.allowed:
            logger.warning(
                f"Rate limit exceeded for {action.value}: "
                f"{mask_identifier(identifier)} from {client_origin}"
            )
            raise RateLimitError(RATE_LIMIT_MESSAGES[action], result=result)

    async def _find_user(self, identifier: str, identifier_type: IdentifierType) -> User | None:
        match identifier_type:
            case IdentifierType.EMAIL:
                return await self.store.find_user_by_email(identifier)
            case IdentifierType.PHONE:
                return await self.store.find_user_by_phone(identifier)

    async def _create_user(self, identifier: str, identifier_type: IdentifierType) -> User:
        async with self.store.unit_of_work():
            match identifier_type:
                case IdentifierType.EMAIL:
                    return await self.store.create_user(email=identifier)
                case IdentifierType.PHONE:
                    return await self.store.create_user(phone=identifier)

    async def _issue_code(
        self,
        user: User,
        identifier: str,
        identifier_type: IdentifierType,
    ) -> CodeIssued:
        record = await self.codes.issue(user.id, identifier_type.verification_type)
        issued = CodeIssued(
            user_id=user.id,
            identifier=identifier,
            type=identifier_type,
            expires_at=record.expires_at,
            delivered=False,
        )

        if self.echo_codes:
            issued.verification_code = record.code
            return issued

        ttl_minutes = int(self.codes.ttl.total_seconds() // 60)
        issued.delivered = await self.sender.send(identifier, identifier_type, record.code, ttl_minutes)
        if issued.delivered:
            logger.info(f"Verification code sent to {mask_identifier(identifier)}")
        else:
            logger.warning(f"Failed to send verification code to {mask_identifier(identifier)}")
            if self.require_delivery:
                raise CodeDeliveryError()
        return issued

    @operation_boundary
    async def register(
        self,
        identifier: str,
        client_origin: str,
        identifier_type: IdentifierType | None = None,
    ) -> CodeIssued:
        """Create an unverified user and issue their first code.

        Raises:
            RateLimitError: Over the ``register`` policy
            ValidationError: Malformed identifier or user already exists
            CodeDeliveryError: Sending failed while delivery is required; the
                user stays registered and can request a code with signin
        """
        cleaned = sanitize(identifier)
        await self._rate_limit(RateLimitAction.REGISTER, client_origin, cleaned)
        normalized, resolved_type = resolve(cleaned, identifier_type)

        if await self._find_user(normalized, resolved_type) is not None:
            logger.info(f"Auth register failure: {mask_identifier(normalized)} already exists")
            raise ValidationError("User already exists with this email/phone")

        try:
            user = await self._create_user(normalized, resolved_type)
        except DuplicateIdentityError as e:
            # Lost a race with a concurrent registration
            raise ValidationError("User already exists with this email/phone") from e

        try:
            issued = await self._issue_code(user, normalized, resolved_type)
        except CodeDeliveryError as e:
            # The user is committed; a retried register would hit "already exists"
            raise CodeDeliveryError(REGISTER_DELIVERY_FAILED_MESSAGE) from e
        logger.info(f"Auth register success: {mask_identifier(normalized)} user={user.id}")
        return issued

    async def _request_code(
        self,
        action: RateLimitAction,
        identifier: str,
        client_origin: str,
        identifier_type: IdentifierType | None,
    ) -> CodeIssued:
        cleaned = sanitize(identifier)
        await self._rate_limit(action, client_origin, cleaned)
        normalized, resolved_type = resolve(cleaned, identifier_type)

        user = await self._find_user(normalized, resolved_type)
        if user is None:
            logger.info(f"Auth {action.value} failure: {mask_identifier(normalized)} not found")
            raise NotFoundError("User not found")

        issued = await self._issue_code(user, normalized, resolved_type)
        logger.info(f"Auth {action.value} success: {mask_identifier(normalized)} user={user.id}")
        return issued

    @operation_boundary
    async def signin(
        self,
        identifier: str,
        client_origin: str,
        identifier_type: IdentifierType | None = None,
    ) -> CodeIssued:
        """Issue a code to an existing user."""
        return await self._request_code(RateLimitAction.SIGNIN, identifier, client_origin, identifier_type)

    @operation_boundary
    async def resend(self, identifier: str, client_origin: str) -> CodeIssued:
        """Replace the outstanding code of an existing user."""
        return await self._request_code(RateLimitAction.RESEND, identifier, client_origin, None)

    async def _redeem(
        self,
        action: RateLimitAction,
        identifier: str,
        code: str,
        client_origin: str,
        identifier_type: IdentifierType | None,
        issue_refresh: bool,
    ) -> AuthResult:
        cleaned = sanitize(identifier)
        cleaned_code = sanitize(code)
        validate_code_format(cleaned_code)
        await self._rate_limit(action, client_origin, cleaned)
        normalized, resolved_type = resolve(cleaned, identifier_type)

        user = await self._find_user(normalized, resolved_type)
        if user is None:
            raise NotFoundError("User not found")

        try:
            await self.codes.consume(user.id, cleaned_code, resolved_type.verification_type)
        except InvalidOrExpiredCode:
            logger.info(f"Auth {action.value} failure: bad code for {mask_identifier(normalized)}")
            raise

        async with self.store.unit_of_work():
            user = await self.store.mark_verified(user.id, self.clock())

        claims = TokenClaims(id=user.id, email=user.email, phone=user.phone)
        result = AuthResult(user=user, access_token=self.tokens.issue_access(claims))
        if issue_refresh:
            result.refresh_token = self.tokens.issue_refresh(claims)

        logger.info(f"Auth {action.value} success: {mask_identifier(normalized)} user={user.id}")
        return result

    @operation_boundary
    async def validate_otp(
        self,
        identifier: str,
        code: str,
        client_origin: str,
        identifier_type: IdentifierType | None = None,
    ) -> AuthResult:
        """Redeem a code for an access token and a refresh token.

        The caller may declare the identifier type; it must match the
        classified one.

        Raises:
            RateLimitError: Over the ``validate-otp`` policy
            ValidationError: Malformed input, or InvalidOrExpiredCode
            NotFoundError: No user with this identifier
        """
        return await self._redeem(
            RateLimitAction.VALIDATE_OTP,
            identifier,
            code,
            client_origin,
            identifier_type,
            issue_refresh=True,
        )

    @operation_boundary
    async def verify(self, identifier: str, code: str, client_origin: str) -> AuthResult:
        """Redeem a code for an access token only.

        Unlike :meth:`validate_otp` the identifier type is always inferred
        and no refresh token is issued.
        """
        return await self._redeem(
            RateLimitAction.VERIFY,
            identifier,
            code,
            client_origin,
            None,
            issue_refresh=False,
        )

    @operation_boundary
    async def current_user(self, access_token: str | None) -> User:
        """Resolve the user behind an access token."""
        claims = self.tokens.validate_access(access_token) if access_token else None
        if claims is None:
            raise UnauthorizedError("Invalid or missing authentication token")

        user = await self.store.get_user(claims.id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    @operation_boundary
    async def refresh(self, refresh_token: str, client_origin: str) -> AuthResult:
        """Exchange a refresh token for a new access token with fresh claims."""
        result = await self.limiter.check_action(RateLimitAction.REFRESH, client_origin)
        if not result.allowed:
            raise RateLimitError(RATE_LIMIT_MESSAGES[RateLimitAction.REFRESH], result=result)

        claims = self.tokens.validate_refresh(refresh_token)
        if claims is None:
            raise UnauthorizedError("Invalid or expired refresh token")

        user = await self.store.get_user(claims.id)
        if user is None:
            raise UnauthorizedError("User not found")

        fresh = TokenClaims(id=user.id, email=user.email, phone=user.phone)
        return AuthResult(user=user, access_token=self.tokens.issue_access(fresh))
