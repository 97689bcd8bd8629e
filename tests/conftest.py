"""
Shared fixtures and fakes for the capture pipeline tests

A synthetic page is a tall Pillow image whose every CSS row has its own
colour, so stitched output can be compared to the page pixel for pixel.
The fake driver and grabber serve that page, and a fake clock makes every
sleep instant while still advancing time.

Usage:
    def test_something(page, fake_clock):
        driver = FakePageDriver(page, fake_clock, scroll_y=300)
"""

import io
from contextlib import asynccontextmanager
from typing import List, Optional

import numpy as np
import pytest
from PIL import Image

from capture_limiter import CaptureRateLimiter
from capture_models import PageMetrics
from longshot_service import CaptureTarget, LongshotService
from page_driver import BasePageDriver, BaseViewportGrabber
from scroll_capture import ScrollCaptureCoordinator
from session_store import CaptureSessionStore, CropBoundsStore
from utils.error_handler import CaptureThrottledError


# ============================================================================
# Clock
# ============================================================================

class FakeClock:
    """Monotonic clock advanced only by its own sleep()"""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += max(0.0, seconds)


# ============================================================================
# Synthetic page
# ============================================================================

def make_page_image(width: int, height: int, dpr: int = 1) -> Image.Image:
    """Page bitmap at device resolution; device rows of the same CSS row share a colour"""
    rows = np.arange(height * dpr) // dpr
    colors = np.stack([rows % 256, (rows // 256) % 256, (rows * 7) % 256], axis=-1).astype(np.uint8)
    # Vertical stripe so horizontal crops are checkable too
    pixels = np.repeat(colors[:, None, :], width * dpr, axis=1)
    columns = np.arange(width * dpr) // dpr
    pixels[:, :, 2] = ((pixels[:, :, 2].astype(np.int32) + columns[None, :]) % 256).astype(np.uint8)
    return Image.fromarray(pixels, "RGB")


class SyntheticPage:
    """A page with a fixed viewport and a (possibly growing) document"""

    def __init__(self, width: int = 200, height: int = 2000, viewport_height: int = 500,
                 dpr: int = 1, initial_height: Optional[int] = None, grow_by: int = 0):
        self.width = width
        self.full_height = height
        self.viewport_height = viewport_height
        self.dpr = dpr
        self.image = make_page_image(width, height, dpr)
        self.doc_height = initial_height or height
        self.grow_by = grow_by

    def css_crop(self, left: int, top: int, right: int, bottom: int) -> Image.Image:
        d = self.dpr
        return self.image.crop((left * d, top * d, right * d, bottom * d))


class FakePageDriver(BasePageDriver):
    """Scroll root of a SyntheticPage"""

    def __init__(self, page: SyntheticPage, clock: FakeClock, scroll_y: float = 0,
                 max_scroll: Optional[float] = None, fail_metrics: bool = False):
        super().__init__(sleep=clock.sleep, clock=clock)
        self.page = page
        self.scroll_y = scroll_y
        self.max_scroll = max_scroll
        self.fail_metrics = fail_metrics
        self.scroll_calls: List[float] = []

    def _max_y(self) -> float:
        limit = max(0, self.page.doc_height - self.page.viewport_height)
        if self.max_scroll is not None:
            limit = min(limit, self.max_scroll)
        return limit

    async def get_page_metrics(self) -> Optional[PageMetrics]:
        if self.fail_metrics:
            return None
        page = self.page
        # Lazy loading: content appears once the reader reaches the bottom
        if page.grow_by and self.scroll_y + page.viewport_height >= page.doc_height:
            page.doc_height = min(page.full_height, page.doc_height + page.grow_by)
            page.grow_by = 0
        return PageMetrics(
            viewport_width=page.width,
            viewport_height=page.viewport_height,
            doc_width=page.width,
            doc_height=page.doc_height,
            scroll_y=self.scroll_y,
            device_pixel_ratio=page.dpr,
        )

    async def scroll_to(self, y: float) -> float:
        self.scroll_calls.append(y)
        self.scroll_y = max(0, min(self._max_y(), y))
        return self.scroll_y


class FakeViewportGrabber(BaseViewportGrabber):
    """Returns the visible part of the page as PNG bytes"""

    def __init__(self, driver: FakePageDriver, throttle_times: int = 0,
                 fail_on_call: Optional[int] = None, error: Optional[Exception] = None):
        self.driver = driver
        self.throttle_times = throttle_times
        self.fail_on_call = fail_on_call
        self.error = error
        self.calls = 0

    async def capture_visible_viewport(self, window_handle) -> bytes:
        self.calls += 1
        if self.throttle_times > 0:
            self.throttle_times -= 1
            raise CaptureThrottledError()
        if self.fail_on_call is not None and self.calls >= self.fail_on_call:
            raise self.error or RuntimeError("capture failed")

        page = self.driver.page
        top = int(self.driver.scroll_y)
        viewport = page.css_crop(0, top, page.width, top + page.viewport_height)
        buffer = io.BytesIO()
        viewport.save(buffer, format="PNG")
        return buffer.getvalue()


class FakeQRProvider:
    """QR provider returning a solid black code (or nothing)"""

    def __init__(self, available: bool = True):
        self.available = available
        self.requested: List[str] = []
        self.closed = False

    async def fetch_code(self, url):
        self.requested.append(url)
        if not self.available or not url:
            return None
        return Image.new("RGB", (180, 180), "black")

    def get_stats(self) -> dict:
        return {"requested": len(self.requested)}

    def close(self):
        self.closed = True


# ============================================================================
# Helpers
# ============================================================================

def image_array(image: Image.Image) -> np.ndarray:
    return np.asarray(image.convert("RGB"))


def png_bytes(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(fake_clock) -> CaptureRateLimiter:
    return CaptureRateLimiter(sleep=fake_clock.sleep, clock=fake_clock)


@pytest.fixture
def coordinator(limiter, fake_clock) -> ScrollCaptureCoordinator:
    return ScrollCaptureCoordinator(limiter, sleep=fake_clock.sleep)


@pytest.fixture
def page() -> SyntheticPage:
    return SyntheticPage()


@pytest.fixture
def driver(page, fake_clock) -> FakePageDriver:
    return FakePageDriver(page, fake_clock)


@pytest.fixture
def grabber(driver) -> FakeViewportGrabber:
    return FakeViewportGrabber(driver)


@pytest.fixture
def target(driver, grabber) -> CaptureTarget:
    return CaptureTarget(driver=driver, grabber=grabber, window_handle=1,
                         page_url="https://example.com/article")


@pytest.fixture
def qr_provider() -> FakeQRProvider:
    return FakeQRProvider()


@pytest.fixture
def session_store(tmp_path) -> CaptureSessionStore:
    return CaptureSessionStore(data_dir=str(tmp_path / "data"))


@pytest.fixture
def crop_bounds_store(tmp_path) -> CropBoundsStore:
    return CropBoundsStore(data_dir=str(tmp_path / "data"))


@pytest.fixture
def service(tmp_path, session_store, crop_bounds_store, limiter, coordinator, qr_provider) -> LongshotService:
    return LongshotService(
        session_store=session_store,
        limiter=limiter,
        coordinator=coordinator,
        qr_provider=qr_provider,
        crop_bounds_store=crop_bounds_store,
        output_dir=str(tmp_path / "out"),
    )


@pytest.fixture
def target_factory(target):
    """Async context manager factory yielding the fake target with the requested URL"""

    @asynccontextmanager
    async def factory(url: str):
        target.page_url = url
        yield target

    return factory
