"""Per-client-IP token-bucket limiting for the JSON API, as ASGI middleware.

Each ``/api/`` request runs a full pipeline cycle against the upstream feed,
so those paths are limited; health checks and static files are not.
"""

from __future__ import annotations

from collections.abc import Sequence

from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from secrelay.rate_limit import RateLimiter

DEFAULT_LIMITED_PREFIXES: tuple[str, ...] = ("/api/",)


def _client_ip(scope: Scope) -> str:
    """Extract the client IP from the ASGI scope."""
    client = scope.get("client")
    if client:
        return client[0]
    return "unknown"


def _is_limited(path: str, prefixes: Sequence[str]) -> bool:
    return any(path.startswith(prefix) for prefix in prefixes)


class RateLimitMiddleware:
    """ASGI middleware that enforces a per-IP requests-per-minute budget.

    Parameters
    ----------
    app:
        The wrapped ASGI application.
    enabled:
        Kill-switch: when *False* the middleware is a no-op passthrough.
    requests_per_minute:
        Sustained rate and burst size per client IP.
    prefixes:
        Path prefixes subject to limiting.
    limiter:
        Optional external ``RateLimiter`` (useful for testing).
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        enabled: bool = True,
        requests_per_minute: int = 60,
        prefixes: Sequence[str] | None = None,
        limiter: RateLimiter | None = None,
    ) -> None:
        self.app = app
        self.enabled = enabled
        self.prefixes = tuple(prefixes) if prefixes is not None else DEFAULT_LIMITED_PREFIXES
        self.limiter = limiter or RateLimiter(interval=60.0 / requests_per_minute, burst=requests_per_minute)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self.enabled:
            await self.app(scope, receive, send)
            return

        path: str = scope.get("path", "/")
        if scope.get("method") == "OPTIONS" or not _is_limited(path, self.prefixes):
            await self.app(scope, receive, send)
            return

        ip = _client_ip(scope)
        if not self.limiter.allow(ip):
            retry_after = self.limiter.retry_after(ip)
            response = JSONResponse(
                {"detail": "Rate limit exceeded. Try again later."},
                status_code=429,
                headers={"Retry-After": str(int(retry_after) + 1)},
            )
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)
