"""
Fixed-window request counter per client address, applied to every route.

In-process only: each worker keeps its own counters.
"""

import asyncio
import math
import time
from typing import Callable, Dict, Optional, Tuple

from fastapi import Request

from app.core.exceptions import RateLimitExceededError


class RateLimiter:
    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._lock = asyncio.Lock()

    async def hit(self, key: str) -> Optional[int]:
        """Count one request for key. Returns seconds to wait when over the limit, else None."""
        async with self._lock:
            now = self._clock()
            started, count = self._windows.get(key, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0
            if count >= self.max_requests:
                return max(1, math.ceil(started + self.window_seconds - now))
            self._windows[key] = (started, count + 1)
            self._prune(now)
            return None

    def _prune(self, now: float) -> None:
        if len(self._windows) < 1024:
            return
        expired = [key for key, (started, _) in self._windows.items() if now - started >= self.window_seconds]
        for key in expired:
            del self._windows[key]


async def enforce_rate_limit(request: Request) -> None:
    limiter: Optional[RateLimiter] = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        return
    key = request.client.host if request.client else "unknown"
    retry_after = await limiter.hit(key)
    if retry_after is not None:
        raise RateLimitExceededError(retry_after)
