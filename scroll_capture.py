"""
Longshot - Scroll Capture Coordinator
Drives a page driver and a viewport grabber through a sequence of scroll
stops, collecting overlapping viewport frames that cover the capture rect.

Strategy:
1. Scroll to the next stop, wait a fixed delay, then wait for layout to settle
2. Capture the viewport through the shared rate limiter
3. Tag the frame with the ACTUAL scroll position (scrolling may clamp)
4. Stop at the explicit bottom bound, or at the document end once a longer
   re-check confirms the document stopped growing
5. Always restore the original scroll position
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

from capture_geometry import resolve_capture_rect
from capture_limiter import CaptureRateLimiter
from capture_models import CaptureFrame, CaptureRect, CropBounds, PageMetrics
from config.defaults import Defaults
from page_driver import BasePageDriver, BaseViewportGrabber
from utils.error_handler import CaptureEnvironmentError

logger = logging.getLogger(__name__)


@dataclass
class ScrollCaptureResult:
    """Frames collected by one coordinator run"""
    frames: List[CaptureFrame]
    final_metrics: PageMetrics
    rect: CaptureRect
    original_scroll_y: float
    scroll_count: int = 0
    duration_ms: int = 0
    frame_limit_reached: bool = False
    metadata: dict = field(default_factory=dict)


def compute_scroll_step(viewport_height: float) -> tuple:
    """Return (overlap, step) in CSS px for a viewport height."""
    overlap = max(Defaults.OVERLAP_MIN_PX, int(math.floor(viewport_height * Defaults.OVERLAP_RATIO)))
    step = max(Defaults.STEP_MIN_PX, viewport_height - overlap)
    return overlap, step


class ScrollCaptureCoordinator:
    """
    Sequential scroll-and-capture loop for one page.

    Frames are acquired one at a time through the injected rate limiter;
    the limiter is process-wide, the coordinator holds no other shared state.
    """

    def __init__(
        self,
        limiter: CaptureRateLimiter,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        settle_timeout_ms: Optional[int] = None,
        max_frames: Optional[int] = None,
    ):
        """
        Initialize scroll capture coordinator

        Args:
            limiter: Process-wide CaptureRateLimiter shared by all sessions
            sleep: Awaitable sleep (injectable for tests)
            settle_timeout_ms: Page settle timeout per scroll stop
            max_frames: Safety limit on frames per capture
        """
        self.limiter = limiter
        self._sleep = sleep

        # Configuration - empirically tuned, treat as constants
        self.settle_timeout_ms = settle_timeout_ms or Defaults.PAGE_SETTLE_TIMEOUT_MS
        self.bottom_recheck_timeout_ms = self.settle_timeout_ms + Defaults.PAGE_SETTLE_BOTTOM_EXTRA_MS
        self.scroll_delay_ms = Defaults.SCROLL_SETTLE_DELAY_MS
        self.edge_tolerance = Defaults.EDGE_TOLERANCE_PX
        self.max_frames = max_frames or Defaults.MAX_CAPTURE_FRAMES
        self.max_stalled_scrolls = Defaults.MAX_STALLED_SCROLLS

        logger.info("[ScrollCapture] Initialized")

    async def capture(
        self,
        driver: BasePageDriver,
        grabber: BaseViewportGrabber,
        window_handle: Any,
        crop_bounds: Optional[CropBounds] = None,
        max_height: int = 0,
    ) -> ScrollCaptureResult:
        """
        Capture the frames covering the crop region of the page.

        Returns:
            ScrollCaptureResult with frames ordered by scroll position and the
            page metrics observed at completion (the page may have grown).
        """
        start_time = time.time()

        page_info = await driver.get_page_metrics()
        if page_info is None:
            raise CaptureEnvironmentError("Unable to read page info")

        rect = resolve_capture_rect(page_info, crop_bounds, max_height)
        overlap, step = compute_scroll_step(page_info.viewport_height)

        logger.info(
            f"[ScrollCapture] Starting capture: rect y={rect.y0}-{rect.y1} x={rect.x0} w={rect.width}, "
            f"viewport={page_info.viewport_width:.0f}x{page_info.viewport_height:.0f}, "
            f"overlap={overlap}px, step={step:.0f}px"
        )

        frames: List[CaptureFrame] = []
        original_pos = page_info.scroll_y
        target_y: float = rect.y0
        latest = page_info
        scroll_count = 0
        frame_limit_reached = False
        stalled = 0

        try:
            while True:
                actual_y = await driver.scroll_to(target_y)
                scroll_count += 1
                await self._sleep(self.scroll_delay_ms / 1000)

                latest = (await driver.wait_for_settled(self.settle_timeout_ms)) or latest
                page_y = actual_y if actual_y is not None else latest.scroll_y

                raw = await self.limiter.acquire(
                    lambda: grabber.capture_visible_viewport(window_handle)
                )
                frame = CaptureFrame(page_offset_y=page_y, raw_image=raw)

                if frames and frames[-1].page_offset_y == page_y:
                    # Page did not move: replace instead of stacking a duplicate
                    logger.debug(f"[ScrollCapture] Scroll stuck at y={page_y}, replacing last frame")
                    frames[-1] = frame
                    stalled += 1
                else:
                    stalled = 0
                    frames.append(frame)
                    logger.debug(f"[ScrollCapture] Frame {len(frames)} at y={page_y}")

                visible_bottom = page_y + latest.viewport_height

                if len(frames) >= self.max_frames:
                    logger.warning(
                        f"[ScrollCapture] Frame limit {self.max_frames} reached at y={page_y}, stopping"
                    )
                    frame_limit_reached = True
                    break

                if stalled >= self.max_stalled_scrolls:
                    logger.warning(
                        f"[ScrollCapture] Page stopped scrolling at y={page_y} after {stalled} attempts, stopping"
                    )
                    break

                if rect.has_explicit_bottom_bound:
                    if visible_bottom >= rect.y1 - self.edge_tolerance:
                        break
                    target_y = page_y + step
                    continue

                if visible_bottom < latest.doc_height - self.edge_tolerance:
                    target_y = page_y + step
                    continue

                # Apparent bottom: give lazy-loaded content a longer chance to appear
                settled_bottom = (await driver.wait_for_settled(self.bottom_recheck_timeout_ms)) or latest
                latest = settled_bottom
                if visible_bottom < settled_bottom.doc_height - self.edge_tolerance:
                    logger.info(
                        f"[ScrollCapture] Document grew to {settled_bottom.doc_height:.0f}px, continuing"
                    )
                    target_y = page_y + step
                    continue

                break
        finally:
            await self._restore_scroll(driver, original_pos)

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"[ScrollCapture] Complete: {len(frames)} frames, {scroll_count} scrolls in {duration_ms}ms"
        )

        return ScrollCaptureResult(
            frames=frames,
            final_metrics=latest,
            rect=rect,
            original_scroll_y=original_pos,
            scroll_count=scroll_count,
            duration_ms=duration_ms,
            frame_limit_reached=frame_limit_reached,
            metadata={
                "overlap": overlap,
                "step": step,
                "doc_height": latest.doc_height,
            },
        )

    async def _restore_scroll(self, driver: BasePageDriver, original_pos: float):
        """Scroll back to where the user was; runs on every exit path."""
        try:
            await driver.scroll_to(original_pos)
            logger.debug(f"[ScrollCapture] Restored scroll position y={original_pos}")
        except Exception as e:
            logger.warning(f"[ScrollCapture] Failed to restore scroll position: {e}")
