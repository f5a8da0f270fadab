"""
Fixed-window rate limiting.

Counters live in a ``CounterStore`` injected into the app factory:

    InMemoryCounterStore  per-process dict, fine for a single instance
    RedisCounterStore     INCR + PEXPIRE NX, shared by every instance;
                          decrements run as a Lua script

A window opens on the first hit for a key and lasts ``window_seconds``;
the (limit + 1)-th hit inside it is rejected. Keys are
``ratelimit:<limiter name>:<client ip>``.
"""

import json
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Sequence

import redis.asyncio as redis
from fastapi import Request

from app.core.config import settings
from app.core.constants import ERROR_MESSAGES
from app.core.exceptions import RateLimitExceededError
from app.core.logger import logger


@dataclass
class WindowState:
    count: int
    reset_in: float  # seconds until the window closes


class CounterStore(ABC):
    @abstractmethod
    async def increment(self, key: str, window_seconds: int) -> WindowState:
        """Counts one hit and returns the state of the key's current window."""

    @abstractmethod
    async def decrement(self, key: str) -> None:
        """Takes one hit back (used to skip successful requests)."""

    @abstractmethod
    async def reset(self, key: str) -> None:
        ...

    async def close(self) -> None:
        pass


class InMemoryCounterStore(CounterStore):
    SWEEP_EVERY = 1000

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        # key -> [count, window_end]
        self._windows: Dict[str, list] = {}
        self._ops = 0

    async def increment(self, key: str, window_seconds: int) -> WindowState:
        now = self._clock()
        window = self._windows.get(key)
        if window is None or now >= window[1]:
            window = [0, now + window_seconds]
            self._windows[key] = window
        window[0] += 1

        self._ops += 1
        if self._ops % self.SWEEP_EVERY == 0:
            self._sweep(now)

        return WindowState(count=window[0], reset_in=window[1] - now)

    async def decrement(self, key: str) -> None:
        window = self._windows.get(key)
        if window and window[0] > 0 and self._clock() < window[1]:
            window[0] -= 1

    async def reset(self, key: str) -> None:
        self._windows.pop(key, None)

    def _sweep(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if now >= window[1]]
        for key in expired:
            del self._windows[key]
        if expired:
            logger.debug(f"🧹 Cleaned up {len(expired)} expired rate limit windows")


# DECR only while the window key still exists, in one server-side step
DECREMENT_IF_PRESENT = """
if redis.call('EXISTS', KEYS[1]) == 1 then
    return redis.call('DECR', KEYS[1])
end
return 0
"""


class RedisCounterStore(CounterStore):
    def __init__(self, client):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCounterStore":
        return cls(redis.from_url(url, decode_responses=True, socket_connect_timeout=5, socket_timeout=5))

    async def increment(self, key: str, window_seconds: int) -> WindowState:
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.pexpire(key, window_seconds * 1000, nx=True)
            pipe.pttl(key)
            count, _, ttl_ms = await pipe.execute()
        reset_in = ttl_ms / 1000 if ttl_ms and ttl_ms > 0 else float(window_seconds)
        return WindowState(count=int(count), reset_in=reset_in)

    async def decrement(self, key: str) -> None:
        await self._client.eval(DECREMENT_IF_PRESENT, 1, key)

    async def reset(self, key: str) -> None:
        await self._client.delete(key)

    async def close(self) -> None:
        await self._client.aclose()


def build_counter_store() -> CounterStore:
    if settings.RATE_LIMIT_REDIS_URL:
        logger.info("📡 Rate limit counters stored in Redis")
        return RedisCounterStore.from_url(settings.RATE_LIMIT_REDIS_URL)
    return InMemoryCounterStore()


def client_ip(request: Request) -> str:
    if settings.TRUST_PROXY:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RateLimiter:
    def __init__(
        self,
        name: str,
        limit: int,
        window_seconds: int,
        message: str,
        store: CounterStore,
        log_fields: Sequence[str] = (),
    ):
        self.name = name
        self.limit = limit
        self.window_seconds = window_seconds
        self.message = message
        self.store = store
        self.log_fields = tuple(log_fields)

    def key_for(self, request: Request) -> str:
        return f"ratelimit:{self.name}:{client_ip(request)}"

    async def check(self, request: Request) -> WindowState:
        """Counts the request; raises RateLimitExceededError once the window is full."""
        try:
            state = await self.store.increment(self.key_for(request), self.window_seconds)
        except redis.RedisError as e:
            # Fail open
            logger.error(f"❌ Rate limit store unavailable for '{self.name}': {e}")
            return WindowState(count=0, reset_in=float(self.window_seconds))
        if state.count <= self.limit:
            return state

        retry_after = max(1, math.ceil(state.reset_in))
        details = await self._logged_fields(request)
        logger.warning(
            f"🚫 Rate limit '{self.name}' exceeded | ip={client_ip(request)} "
            f"method={request.method} path={request.url.path}{details}"
        )
        raise RateLimitExceededError(self.message, retry_after=retry_after)

    async def forget(self, request: Request) -> None:
        await self.store.decrement(self.key_for(request))

    async def _logged_fields(self, request: Request) -> str:
        if not self.log_fields:
            return ""
        try:
            body = json.loads(await request.body() or b"{}")
        except ValueError:
            return ""
        if not isinstance(body, dict):
            return ""
        return "".join(f" {field}={body.get(field)}" for field in self.log_fields)


def window_label(minutes: int) -> str:
    """Indonesian wording for a limiter window: "15 menit", "1 jam"."""
    if minutes >= 60 and minutes % 60 == 0:
        return f"{minutes // 60} jam"
    return f"{minutes} menit"


def _limit_message(key: str, minutes: int) -> str:
    return ERROR_MESSAGES[key].format(window=window_label(minutes))


def build_rate_limiters(store: CounterStore) -> Dict[str, RateLimiter]:
    return {
        "general": RateLimiter(
            "general",
            settings.RATE_LIMIT_MAX,
            settings.RATE_LIMIT_WINDOW * 60,
            _limit_message("RATE_LIMIT_EXCEEDED", settings.RATE_LIMIT_WINDOW),
            store,
        ),
        "auth": RateLimiter(
            "auth",
            settings.AUTH_RATE_LIMIT_MAX,
            settings.AUTH_RATE_LIMIT_WINDOW * 60,
            _limit_message("AUTH_RATE_LIMIT", settings.AUTH_RATE_LIMIT_WINDOW),
            store,
            log_fields=("username",),
        ),
        "booking": RateLimiter(
            "booking",
            settings.BOOKING_RATE_LIMIT_MAX,
            settings.BOOKING_RATE_LIMIT_WINDOW * 60,
            _limit_message("BOOKING_RATE_LIMIT", settings.BOOKING_RATE_LIMIT_WINDOW),
            store,
            log_fields=("patient_name", "patient_phone"),
        ),
    }


def rate_limit(name: str) -> Callable:
    """FastAPI dependency applying the app's limiter ``name``; returns the limiter."""

    async def dependency(request: Request) -> RateLimiter:
        limiter: RateLimiter = request.app.state.rate_limiters[name]
        await limiter.check(request)
        return limiter

    return dependency
