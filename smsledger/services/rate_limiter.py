"""
Outbound SMS throttling.

A limiter instance only throttles the callers that share it. With scope
"process" the gateway holds one limiter for the whole worker process; separate
workers or instances are not coordinated.
"""

import asyncio
import logging
import time
from typing import Callable, Awaitable

logger = logging.getLogger(__name__)

SCOPE_PROCESS = "process"
SCOPE_NONE = "none"

class RateLimiter:
    """Enforce a minimum interval between consecutive sends"""

    def __init__(
        self,
        min_interval_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.min_interval = max(0.0, min_interval_seconds)
        self._clock = clock
        self._sleep = sleep
        self._last_sent = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> float:
        """Wait until the next send is allowed; returns seconds waited"""
        async with self._lock:
            waited = 0.0
            if self._last_sent is not None:
                elapsed = self._clock() - self._last_sent
                if elapsed < self.min_interval:
                    waited = self.min_interval - elapsed
                    logger.info(f"SMS rate limiting: waiting {waited * 1000:.0f}ms before sending SMS...")
                    await self._sleep(waited)
            self._last_sent = self._clock()
            return waited

class NoopRateLimiter:
    min_interval = 0.0

    async def acquire(self) -> float:
        return 0.0

def build_rate_limiter(scope: str, min_interval_ms: int):
    """Build the limiter for a configured scope"""
    scope = (scope or SCOPE_PROCESS).lower()
    if scope == SCOPE_NONE or min_interval_ms <= 0:
        return NoopRateLimiter()
    if scope != SCOPE_PROCESS:
        raise ValueError(f"Unsupported SMS rate limit scope: {scope}")
    return RateLimiter(min_interval_ms / 1000.0)
