"""
Longshot - Page Driver Interfaces

Abstract interfaces for the two collaborators the capture pipeline drives:
- a page driver that reports scroll metrics and scrolls on request
- a viewport grabber that returns the currently visible viewport as image bytes

Concrete drivers (Playwright, test fakes) inherit from these so the settle
detection loop is shared.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

from capture_models import PageMetrics
from config.defaults import Defaults
from utils.error_handler import CaptureEnvironmentError

logger = logging.getLogger(__name__)


async def wait_for_settled(
    get_metrics: Callable[[], Awaitable[Optional[PageMetrics]]],
    timeout_ms: Optional[int] = None,
    stable_ms: Optional[int] = None,
    poll_ms: Optional[int] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> PageMetrics:
    """
    Poll page metrics until layout stops changing.

    Any change in document height/width, scroll position or viewport height
    resets the stability window. Returns as soon as the page has been stable
    for stable_ms, or the latest sample once timeout_ms has elapsed. Samples
    that could not be read (None) are skipped and the last good one is kept.

    Raises:
        CaptureEnvironmentError: if no sample could be read at all
    """
    timeout_ms = Defaults.PAGE_SETTLE_TIMEOUT_MS if timeout_ms is None else timeout_ms
    stable_ms = Defaults.PAGE_SETTLE_STABLE_MS if stable_ms is None else stable_ms
    poll_ms = Defaults.PAGE_SETTLE_POLL_MS if poll_ms is None else poll_ms

    started_at = clock()
    last = await get_metrics()
    stable_since = started_at

    while (clock() - started_at) * 1000 < timeout_ms:
        await sleep(poll_ms / 1000)
        current = await get_metrics()

        if current is None:
            logger.debug("[PageSettle] Metrics unavailable, skipping sample")
            continue

        if last is None or current.layout_key() != last.layout_key():
            last = current
            stable_since = clock()
            continue

        if (clock() - stable_since) * 1000 >= stable_ms:
            return current

    logger.debug(f"[PageSettle] Not stable after {timeout_ms}ms, using latest metrics")
    latest = (await get_metrics()) or last
    if latest is None:
        raise CaptureEnvironmentError("Unable to read page info")
    return latest


class BasePageDriver(ABC):
    """Abstract scroll root of one page.

    All scroll positions and sizes are CSS pixels of the page's scroll root.
    """

    def __init__(self, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self._sleep = sleep
        self._clock = clock

    @abstractmethod
    async def get_page_metrics(self) -> Optional[PageMetrics]:
        """Return a fresh metrics snapshot, or None when the page cannot be read."""
        pass

    @abstractmethod
    async def scroll_to(self, y: float) -> Optional[float]:
        """Scroll the root to y (clamped by the page). Returns the actual scroll position."""
        pass

    async def wait_for_settled(self, timeout_ms: Optional[int] = None) -> PageMetrics:
        """Wait until the layout is stable, bounded by timeout_ms."""
        return await wait_for_settled(
            self.get_page_metrics,
            timeout_ms=timeout_ms,
            sleep=self._sleep,
            clock=self._clock,
        )


class BaseViewportGrabber(ABC):
    """Abstract viewport acquisition primitive."""

    @abstractmethod
    async def capture_visible_viewport(self, window_handle: Any) -> bytes:
        """
        Capture the visible viewport of window_handle as encoded image bytes.

        Raises:
            CaptureThrottledError: when called too often per second
        """
        pass
