"""
API Gateway Rate Limiting - per IP for credential endpoints, per live token otherwise.

Auth POSTs (login, register, OTP, password reset) are limited per IP so that
passwords and 6-digit codes cannot be guessed at speed. Other calls are
limited per session token only when the token is live.
"""

import time
from typing import Callable, Dict, Optional, Tuple

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from fortas.config import Settings
from fortas.logging_config import get_logger

logger = get_logger(__name__)


def _get_client_ip(request: Request) -> str:
    """Get client IP from request (X-Forwarded-For or direct)."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _get_bearer_token(request: Request) -> Optional[str]:
    """Raw bearer token if present. Not validated here; auth runs later."""
    auth = request.headers.get("authorization")
    if not auth or not auth.lower().startswith("bearer "):
        return None
    return auth[7:].strip() or None


class InMemoryRateLimitStore:
    """Fixed-window in-memory store. Key -> (count, window_start_ts)."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._data: Dict[str, Tuple[int, float]] = {}
        self._window_sec: Dict[str, int] = {}
        self._clock = clock

    def _key(self, scope: str, identifier: str) -> str:
        return f"{scope}:{identifier}"

    def check_and_incr(
        self,
        scope: str,
        identifier: str,
        limit: int,
        window_seconds: int,
    ) -> bool:
        """Returns True if under limit (and increments). False if over limit (no increment)."""
        key = self._key(scope, identifier)
        now = self._clock()
        if key not in self._data:
            self._data[key] = (1, now)
            self._window_sec[key] = window_seconds
            return True
        count, start = self._data[key]
        win = self._window_sec.get(key, window_seconds)
        if now - start >= win:
            self._data[key] = (1, now)
            self._window_sec[key] = window_seconds
            return True
        if count >= limit:
            return False
        self._data[key] = (count + 1, start)
        return True

    def cleanup_old(self, max_age_seconds: int = 3600) -> None:
        """Remove entries older than max_age_seconds to avoid unbounded growth."""
        now = self._clock()
        to_remove = [k for k, (_, start) in self._data.items() if now - start > max_age_seconds]
        for k in to_remove:
            self._data.pop(k, None)
            self._window_sec.pop(k, None)

    def __len__(self) -> int:
        return len(self._data)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Rate limit by scope:
    - auth: POST under {prefix}/auth except /logout -> per IP
    - api: other {prefix} requests -> per live bearer token, else per IP

    Each middleware instance owns its store (single process).
    """

    def __init__(
        self,
        app: ASGIApp,
        settings: Settings,
        store: Optional[InMemoryRateLimitStore] = None,
        token_validator: Optional[Callable[[str], bool]] = None,
    ):
        super().__init__(app)
        self.settings = settings
        self.store = store or InMemoryRateLimitStore()
        self.token_validator = token_validator

    def _api_identifier(self, request: Request) -> str:
        # Only live tokens get a bucket of their own
        token = _get_bearer_token(request)
        if token and self.token_validator is not None and self.token_validator(token):
            return f"token:{token}"
        return _get_client_ip(request)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        settings = self.settings
        if not settings.rate_limit_enabled:
            return await call_next(request)

        prefix = settings.api_v1_prefix
        path = request.url.path or ""
        if not path.startswith(prefix):
            return await call_next(request)

        # Periodic cleanup
        self.store.cleanup_old(max_age_seconds=7200)

        if (
            request.method == "POST"
            and path.startswith(f"{prefix}/auth")
            and not path.startswith(f"{prefix}/auth/logout")
            and not path.startswith(f"{prefix}/auth/me")
        ):
            scope = "auth"
            limit = settings.rate_limit_auth_per_minute
            identifier = _get_client_ip(request)
        else:
            scope = "api"
            limit = settings.rate_limit_api_per_minute
            identifier = self._api_identifier(request)

        if not self.store.check_and_incr(scope, identifier, limit, 60):
            logger.warning(
                "Rate limit exceeded",
                extra={"scope": scope, "path": path},
            )
            return Response(
                content='{"detail":"Too many requests. Please try again later."}',
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                media_type="application/json",
            )
        return await call_next(request)
