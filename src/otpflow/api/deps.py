"""FastAPI dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from otpflow.config import settings
from otpflow.database import get_session
from otpflow.models import User
from otpflow.services.auth_flow import AuthFlow
from otpflow.services.codes import KeyedLock, VerificationCodeManager
from otpflow.services.delivery import CodeSender
from otpflow.services.rate_limit import FixedWindowRateLimiter, get_client_origin
from otpflow.services.tokens import TokenIssuer
from otpflow.stores import AuthStore, SQLAuthStore

# Type alias for database session dependency
SessionDep = Annotated[AsyncSession, Depends(get_session)]

# Security scheme
security = HTTPBearer(auto_error=False)


def get_rate_limiter(request: Request) -> FixedWindowRateLimiter:
    """Rate limiter owned by the application."""
    return request.app.state.rate_limiter


def get_token_issuer(request: Request) -> TokenIssuer:
    return request.app.state.token_issuer


def get_code_sender(request: Request) -> CodeSender:
    return request.app.state.code_sender


def get_code_locks(request: Request) -> KeyedLock:
    return request.app.state.code_locks


def get_auth_store(request: Request, session: SessionDep) -> AuthStore:
    """Store for the configured backend."""
    if settings.auth_store_backend == "memory":
        return request.app.state.memory_store
    return SQLAuthStore(session)


def get_auth_flow(
    store: Annotated[AuthStore, Depends(get_auth_store)],
    limiter: Annotated[FixedWindowRateLimiter, Depends(get_rate_limiter)],
    tokens: Annotated[TokenIssuer, Depends(get_token_issuer)],
    sender: Annotated[CodeSender, Depends(get_code_sender)],
    locks: Annotated[KeyedLock, Depends(get_code_locks)],
) -> AuthFlow:
    """Build the auth flow for a request."""
    codes = VerificationCodeManager(
        store,
        locks,
        code_length=settings.verification_code_length,
        ttl_minutes=settings.verification_code_expiry_minutes,
    )
    return AuthFlow(
        store,
        limiter,
        tokens,
        codes,
        sender,
        echo_codes=settings.echo_codes,
        require_delivery=settings.is_production,
    )


def client_origin(request: Request) -> str:
    return get_client_origin(request)


async def get_current_user(
    flow: Annotated[AuthFlow, Depends(get_auth_flow)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> User:
    """Get current authenticated user or raise UnauthorizedError."""
    return await flow.current_user(credentials.credentials if credentials else None)


# Type aliases for common dependencies
AuthFlowDep = Annotated[AuthFlow, Depends(get_auth_flow)]
ClientOrigin = Annotated[str, Depends(client_origin)]
CurrentUser = Annotated[User, Depends(get_current_user)]
