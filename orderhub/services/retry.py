# orderhub/services/retry.py
from __future__ import annotations

import asyncio
import logging
import random
from contextlib import nullcontext
from dataclasses import dataclass
from typing import AsyncContextManager, Awaitable, Callable, Optional, TypeVar

from orderhub.adapters.errors import TransientError
from orderhub.core.config import AppSettings
from orderhub.metrics import PROVIDER_RETRIES

log = logging.getLogger("orderhub.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with full jitter, TransientError only."""

    attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 8.0

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "RetryPolicy":
        return cls(
            attempts=settings.RETRY_ATTEMPTS,
            base_delay=settings.RETRY_BASE_DELAY_SECONDS,
            max_delay=settings.RETRY_MAX_DELAY_SECONDS,
        )

    def delay_for(self, attempt: int, rand: Callable[[float, float], float] = random.uniform) -> float:
        """Delay before attempt `attempt + 1` (attempt counts from 1)."""
        cap = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        return rand(0.0, cap) if cap > 0 else 0.0


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    timeout: float,
    provider: str,
    operation: str,
    label: str = "",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_retry: Optional[Callable[[int, TransientError], None]] = None,
    slot: Optional[Callable[[], AsyncContextManager[None]]] = None,
) -> T:
    """
    Run fn() with a per-attempt timeout. Timeouts count as TransientError.
    `slot` (e.g. ProviderLimiter.slot) is entered before the timeout starts and
    released between attempts; waiting for it is not part of the timeout.
    Non-transient errors propagate immediately; TransientError propagates once
    the budget is spent.
    """
    attempt = 1
    while True:
        try:
            async with (slot() if slot is not None else nullcontext()):
                return await asyncio.wait_for(fn(), timeout=timeout)
        except asyncio.TimeoutError as e:
            err = TransientError(f"{provider} {operation} timed out after {timeout:g}s", provider=provider)
            err.__cause__ = e
        except TransientError as e:
            err = e

        if attempt >= policy.attempts:
            raise err

        delay = policy.delay_for(attempt)
        log.info(
            "%s %s %s: transient failure (attempt %d/%d), retrying in %.2fs: %s",
            provider, operation, label, attempt, policy.attempts, delay, err,
        )
        PROVIDER_RETRIES.labels(provider, operation).inc()
        if on_retry is not None:
            on_retry(attempt, err)
        await sleep(delay)
        attempt += 1
