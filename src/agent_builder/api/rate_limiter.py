"""In-memory sliding window rate limiting for the HTTP API."""
from __future__ import annotations

import asyncio
import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict

from ..errors import ErrorKind, ServiceError


class SlidingWindowRateLimiter:
    """A coroutine-friendly sliding window limiter keyed by caller."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = asyncio.Lock()

    async def allow(self, key: str) -> bool:
        now = self._clock()
        async with self._lock:
            hits = self._hits[key]
            while hits and now - hits[0] > self.window_seconds:
                hits.popleft()
            if len(hits) >= self.max_requests:
                return False
            hits.append(now)
            return True

    async def enforce(self, key: str) -> None:
        if not await self.allow(key):
            raise ServiceError(
                ErrorKind.RATE_LIMIT,
                "Rate limit exceeded",
                {"retry_after_seconds": self.window_seconds},
            )
