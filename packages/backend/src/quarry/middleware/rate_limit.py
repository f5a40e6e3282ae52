"""Rate limiting middleware — fixed one-minute windows per client IP.

Learn: Counters live in a RateLimitStore, which is swappable:
- MemoryRateLimitStore → a dict in this process (single-process deploys)
- RedisRateLimitStore  → shared counters for several workers

The store is abuse mitigation only. It is never consulted by the auth
logic, losing it on restart is fine, and if it is missing or failing
the request simply goes through unlimited.

Login/register/refresh get a much stricter limit to slow down password
guessing and token stuffing.
"""

import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

import redis.asyncio as aioredis
import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = structlog.get_logger()

AUTH_PATHS = (
    "/api/v1/auth/login",
    "/api/v1/auth/register",
    "/api/v1/auth/refresh",
)

WINDOW_SECONDS = 60


# ═══════════════════════════════════════════════════════════
# Counter stores
# ═══════════════════════════════════════════════════════════


class RateLimitStore(ABC):
    """Counts hits per key. Keys expire `ttl` seconds after first hit."""

    @abstractmethod
    async def hit(self, key: str, ttl: int) -> int:
        """Increment `key` and return the new count."""

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class MemoryRateLimitStore(RateLimitStore):
    """In-process counters. Not shared between workers, lost on restart."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._counts: dict[str, tuple[int, float]] = {}

    async def hit(self, key: str, ttl: int) -> int:
        now = self._clock()
        self._prune(now)
        count, expires_at = self._counts.get(key, (0, now + ttl))
        count += 1
        self._counts[key] = (count, expires_at)
        return count

    def _prune(self, now: float) -> None:
        expired = [k for k, (_, exp) in self._counts.items() if exp <= now]
        for k in expired:
            del self._counts[k]


class RedisRateLimitStore(RateLimitStore):
    """Counters in Redis, shared by every worker."""

    def __init__(self, client: aioredis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisRateLimitStore":
        return cls(aioredis.from_url(url, encoding="utf-8", decode_responses=True))

    async def hit(self, key: str, ttl: int) -> int:
        count = await self.client.incr(key)
        if count == 1:
            await self.client.expire(key, ttl)
        return count

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def close(self) -> None:
        await self.client.aclose()


# ═══════════════════════════════════════════════════════════
# Middleware
# ═══════════════════════════════════════════════════════════


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP, per-minute limits. Reads its store from app.state."""

    def __init__(
        self,
        app,
        default_rpm: int = 120,
        auth_rpm: int = 5,
        trust_proxy_headers: bool = False,
    ):
        super().__init__(app)
        self.default_rpm = default_rpm
        self.auth_rpm = auth_rpm
        self.trust_proxy_headers = trust_proxy_headers

    def client_ip(self, request: Request) -> str:
        """The caller's address. X-Forwarded-For is only read when trusted."""
        if self.trust_proxy_headers:
            forwarded = request.headers.get("x-forwarded-for", "")
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return first_hop
        return request.client.host if request.client else "unknown"

    async def dispatch(self, request: Request, call_next) -> Response:
        store: Optional[RateLimitStore] = getattr(
            request.app.state, "rate_limit_store", None
        )
        if store is None:
            return await call_next(request)

        client_ip = self.client_ip(request)
        is_auth = request.url.path.startswith(AUTH_PATHS)
        rpm = self.auth_rpm if is_auth else self.default_rpm

        window = int(time.time() // WINDOW_SECONDS)
        bucket = "auth" if is_auth else "api"
        key = f"quarry:rl:{client_ip}:{bucket}:{window}"

        try:
            count = await store.hit(key, ttl=WINDOW_SECONDS * 2)
        except Exception as e:
            # Counter store down — don't block the request
            logger.warning("rate_limit.store_error", error=str(e))
            return await call_next(request)

        if count > rpm:
            logger.info("rate_limit.exceeded", client_ip=client_ip, bucket=bucket)
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests. Please try again later."},
                headers={"Retry-After": str(WINDOW_SECONDS)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(rpm)
        response.headers["X-RateLimit-Remaining"] = str(max(0, rpm - count))
        return response
