"""
Longshot - Capture Rate Limiter

Viewport acquisition is rate limited by the browser for the whole process,
so one limiter instance is shared by every capture session. It spaces calls
by a minimum interval and retries the distinguished throttling error with a
linearly increasing backoff.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional, Sequence

from config.defaults import Defaults
from utils.error_handler import CaptureThrottledError

logger = logging.getLogger(__name__)


class CaptureRateLimiter:
    """
    Serializes viewport captures and enforces the minimum spacing between them.

    Retry policy: a CaptureThrottledError is retried once per entry of
    retry_delays_ms (sleeping that long first); the error raised by the final
    attempt propagates. Any other exception propagates immediately.
    """

    def __init__(
        self,
        min_interval_ms: Optional[int] = None,
        retry_delays_ms: Optional[Sequence[int]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.min_interval_ms = Defaults.MIN_CAPTURE_INTERVAL_MS if min_interval_ms is None else min_interval_ms
        self.retry_delays_ms = tuple(
            Defaults.THROTTLE_RETRY_DELAYS_MS if retry_delays_ms is None else retry_delays_ms
        )
        self._sleep = sleep
        self._clock = clock
        self._lock = asyncio.Lock()

        self.last_capture_at: Optional[float] = None  # clock() of last successful capture

        # Metrics
        self.total_captures = 0
        self.total_throttled = 0

        logger.info(
            f"[CaptureRateLimiter] Initialized (interval={self.min_interval_ms}ms, "
            f"retries={len(self.retry_delays_ms)})"
        )

    def _wait_needed_ms(self) -> float:
        if self.last_capture_at is None:
            return 0
        elapsed_ms = (self._clock() - self.last_capture_at) * 1000
        return max(0.0, self.min_interval_ms - elapsed_ms)

    async def acquire(self, capture: Callable[[], Awaitable[bytes]]) -> bytes:
        """Run capture() once the spacing allows it, retrying throttling errors."""
        async with self._lock:
            wait_ms = self._wait_needed_ms()
            if wait_ms > 0:
                logger.debug(f"[CaptureRateLimiter] Waiting {wait_ms:.0f}ms before capture")
                await self._sleep(wait_ms / 1000)

            attempts = len(self.retry_delays_ms) + 1
            for attempt in range(attempts):
                try:
                    result = await capture()
                except CaptureThrottledError:
                    self.total_throttled += 1
                    if attempt >= attempts - 1:
                        logger.error(f"[CaptureRateLimiter] Still throttled after {attempts} attempts")
                        raise
                    delay_ms = self.retry_delays_ms[attempt]
                    logger.warning(
                        f"[CaptureRateLimiter] Throttled (attempt {attempt + 1}/{attempts}), "
                        f"retrying in {delay_ms}ms"
                    )
                    await self._sleep(delay_ms / 1000)
                    continue

                self.last_capture_at = self._clock()
                self.total_captures += 1
                return result

    def get_stats(self) -> dict:
        return {
            "min_interval_ms": self.min_interval_ms,
            "total_captures": self.total_captures,
            "total_throttled": self.total_throttled,
        }
