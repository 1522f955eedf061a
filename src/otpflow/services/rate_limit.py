"""Rate limiting service using a fixed window counter."""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from fastapi import Request


class RateLimitAction(str, Enum):
    """Actions with independent rate limit namespaces."""

    REGISTER = "register"
    SIGNIN = "signin"
    RESEND = "resend"
    VALIDATE_OTP = "validate-otp"
    VERIFY = "verify"
    REFRESH = "refresh"


@dataclass
class RateLimitPolicy:
    """Maximum requests allowed per window."""

    requests: int
    window_seconds: float


# How often check() drops elapsed windows
SWEEP_INTERVAL_SECONDS = 5 * 60

RATE_LIMIT_POLICIES: dict[RateLimitAction, RateLimitPolicy] = {
    RateLimitAction.REGISTER: RateLimitPolicy(requests=3, window_seconds=15 * 60),
    RateLimitAction.SIGNIN: RateLimitPolicy(requests=5, window_seconds=15 * 60),
    RateLimitAction.RESEND: RateLimitPolicy(requests=3, window_seconds=5 * 60),
    RateLimitAction.VALIDATE_OTP: RateLimitPolicy(requests=10, window_seconds=15 * 60),
    RateLimitAction.VERIFY: RateLimitPolicy(requests=10, window_seconds=15 * 60),
    RateLimitAction.REFRESH: RateLimitPolicy(requests=10, window_seconds=15 * 60),
}


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""

    allowed: bool
    limit: int
    remaining: int
    reset: int  # Unix timestamp in seconds


@dataclass
class _Window:
    count: int
    reset_at: float


class FixedWindowRateLimiter:
    """In-memory fixed window rate limiter.

    The first request for a key opens a window of ``window_seconds``; every
    request inside it shares one counter. Once the window has passed, the
    next request opens a fresh window with a count of 1, whatever the
    previous count was. A client can therefore burst up to twice the limit
    across a window boundary.

    Expired windows are swept from inside :meth:`check` at most once every
    ``sweep_interval`` seconds, so the table only holds recently seen keys.

    State lives in this process only and is lost on restart. Share one
    instance per application; for multi-process deployments back it with an
    external cache instead.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
    ) -> None:
        self._windows: dict[str, _Window] = {}
        self._lock = asyncio.Lock()
        self._clock = clock
        self.sweep_interval = sweep_interval
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._windows)

    def _sweep(self, now: float) -> int:
        # Caller holds self._lock
        expired = [key for key, window in self._windows.items() if now > window.reset_at]
        for key in expired:
            del self._windows[key]
        self._last_sweep = now
        return len(expired)

    async def check(
        self,
        key: str,
        max_requests: int,
        window_seconds: float,
    ) -> RateLimitResult:
        """Count a request against ``key``.

        Args:
            key: Composite key, e.g. "signin:1.2.3.4"
            max_requests: Requests allowed per window
            window_seconds: Window length

        Returns:
            RateLimitResult with allowed status and limit info
        """
        async with self._lock:
            now = self._clock()
            if now - self._last_sweep >= self.sweep_interval:
                self._sweep(now)

            window = self._windows.get(key)

            if window is None or now > window.reset_at:
                window = _Window(count=1, reset_at=now + window_seconds)
                self._windows[key] = window
                return RateLimitResult(
                    allowed=True,
                    limit=max_requests,
                    remaining=max(0, max_requests - 1),
                    reset=int(window.reset_at),
                )

            if window.count >= max_requests:
                return RateLimitResult(
                    allowed=False,
                    limit=max_requests,
                    remaining=0,
                    reset=int(window.reset_at),
                )

            window.count += 1
            return RateLimitResult(
                allowed=True,
                limit=max_requests,
                remaining=max_requests - window.count,
                reset=int(window.reset_at),
            )

    async def check_action(self, action: RateLimitAction, client_origin: str) -> RateLimitResult:
        """Check the configured policy for an action from a client."""
        policy = RATE_LIMIT_POLICIES[action]
        return await self.check(
            f"{action.value}:{client_origin}",
            policy.requests,
            policy.window_seconds,
        )

    def reset(self) -> None:
        """Reset all rate limit entries. Useful for testing."""
        self._windows.clear()

    async def cleanup_expired(self) -> int:
        """Remove windows that have already elapsed.

        Returns:
            Number of entries removed
        """
        async with self._lock:
            return self._sweep(self._clock())


def get_client_ip(request: Request) -> str | None:
    """Extract client IP from request headers.

    Checks common headers used by proxies and load balancers.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # x-forwarded-for can be a comma-separated list, take the first IP
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    cf_connecting_ip = request.headers.get("cf-connecting-ip")
    if cf_connecting_ip:
        return cf_connecting_ip.strip()

    if request.client:
        return request.client.host

    return None


def get_client_origin(request: Request) -> str:
    """Rate limit origin for a request."""
    return f"ip:{get_client_ip(request) or 'unknown'}"


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Generate rate limit headers for response.

    Args:
        result: Rate limit check result

    Returns:
        Dictionary of headers to add to response
    """
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset),
    }

    if not result.allowed:
        retry_after = max(0, result.reset - int(time.time()))
        headers["Retry-After"] = str(retry_after)

    return headers
