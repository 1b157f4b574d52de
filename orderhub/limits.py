# orderhub/limits.py
from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class TokenBucket:
    """Simple token bucket: capacity = fill_rate (QPS), refilled continuously"""

    def __init__(self, capacity: float, fill_rate: float):
        self.capacity = max(1.0, float(capacity))
        self.fill_rate = float(fill_rate)
        self.tokens = float(self.capacity)
        self.ts = time.monotonic()

    def _refill(self) -> None:
        now = time.monotonic()
        self.tokens = min(self.capacity, self.tokens + (now - self.ts) * self.fill_rate)
        self.ts = now

    def allow(self, n: int = 1) -> bool:
        self._refill()
        if self.tokens >= n:
            self.tokens -= n
            return True
        return False

    def wait_time(self, n: int = 1) -> float:
        self._refill()
        missing = n - self.tokens
        return max(0.0, missing / self.fill_rate) if self.fill_rate > 0 else 1.0


class ProviderLimiter:
    """
    Per-provider caps shared by every bulk run in the process:
      - at most `max_in_flight` concurrent calls per provider
      - at most `qps` call starts per second per provider
    """

    def __init__(self, *, max_in_flight: int, qps: float):
        self.max_in_flight = max(1, int(max_in_flight))
        self.qps = float(qps)
        self._sems: Dict[str, asyncio.Semaphore] = {}
        self._buckets: Dict[str, TokenBucket] = {}

    def _sem(self, provider: str) -> asyncio.Semaphore:
        if provider not in self._sems:
            self._sems[provider] = asyncio.Semaphore(self.max_in_flight)
        return self._sems[provider]

    def bucket(self, provider: str) -> TokenBucket:
        if provider not in self._buckets:
            self._buckets[provider] = TokenBucket(capacity=self.qps, fill_rate=self.qps)
        return self._buckets[provider]

    @asynccontextmanager
    async def slot(self, provider: str) -> AsyncIterator[None]:
        async with self._sem(provider):
            bucket = self.bucket(provider)
            while not bucket.allow():
                await asyncio.sleep(bucket.wait_time())
            yield
