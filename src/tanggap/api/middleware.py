"""Per-client sliding-window rate limit for the /api routes."""

import asyncio
import logging
import time
from collections import deque

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger(__name__)

RATE_LIMITED_PREFIX = "/api"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Limit each client IP to ``max_requests_per_minute`` requests on /api paths.

    Webhooks and health checks are not limited; WhatsApp retries a webhook
    that is not acknowledged.

    ``trusted_proxy_count`` is the number of reverse proxies in front of the
    app. The client is read from ``X-Forwarded-For`` by counting
    ``trusted_proxy_count + 1`` entries from the right; with 0 the header is
    ignored and the direct connection address is used.
    """

    def __init__(
        self,
        app,
        max_requests_per_minute: int = 100,
        window_seconds: float = 60.0,
        trusted_proxy_count: int = 0,
    ):
        super().__init__(app)
        self.max_requests = max_requests_per_minute
        self.trusted_proxy_count = trusted_proxy_count
        self.window_seconds = window_seconds
        self._requests: dict[str, deque[float]] = {}
        self._lock = asyncio.Lock()
        self._cleanup_counter = 0
        self._cleanup_interval = 1000

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not request.url.path.startswith(RATE_LIMITED_PREFIX):
            return await call_next(request)

        client_ip = self._client_ip(request)
        now = time.monotonic()

        async with self._lock:
            self._cleanup_counter += 1
            if self._cleanup_counter >= self._cleanup_interval:
                self._cleanup_counter = 0
                self._cleanup(now)

            window = self._requests.setdefault(client_ip, deque())
            while window and window[0] < now - self.window_seconds:
                window.popleft()

            if len(window) >= self.max_requests:
                retry_after = max(1, int(self.window_seconds - (now - window[0])) + 1)
                logger.warning(f"Rate limit exceeded for {client_ip} ({len(window)} requests)")
                return JSONResponse(
                    status_code=429,
                    content={
                        "success": False,
                        "error": "Too many requests, please try again later.",
                    },
                    headers={"Retry-After": str(retry_after)},
                )

            window.append(now)
            remaining = self.max_requests - len(window)

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response

    def _client_ip(self, request: Request) -> str:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for and self.trusted_proxy_count > 0:
            ips = [ip.strip() for ip in forwarded_for.split(",")]
            client_index = -(self.trusted_proxy_count + 1)
            if abs(client_index) <= len(ips):
                return ips[client_index]
            # Shorter than the proxy chain: every entry came from a trusted hop
            return ips[0]
        if request.client:
            return request.client.host
        return "unknown"

    def _cleanup(self, now: float) -> None:
        window_start = now - self.window_seconds
        stale = [ip for ip, dq in self._requests.items() if not dq or dq[-1] < window_start]
        for ip in stale:
            del self._requests[ip]
