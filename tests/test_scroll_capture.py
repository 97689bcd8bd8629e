"""
Scroll capture coordinator: stepping, termination, replacement and restore
"""

import asyncio

import pytest

from capture_models import CropBounds
from scroll_capture import ScrollCaptureCoordinator, compute_scroll_step
from utils.error_handler import CaptureEnvironmentError, CaptureThrottledError, ScreenshotCaptureError

from conftest import FakePageDriver, FakeViewportGrabber, SyntheticPage


def test_compute_scroll_step():
    assert compute_scroll_step(500) == (80, 420)
    assert compute_scroll_step(1000) == (150, 850)
    assert compute_scroll_step(150) == (80, 100)


class TestScrollCaptureCoordinator:

    def test_frames_cover_document_and_clamp_last_stop(self, coordinator, driver, grabber):
        result = asyncio.run(coordinator.capture(driver, grabber, window_handle=1))

        assert [f.page_offset_y for f in result.frames] == [0, 420, 840, 1260, 1500]
        assert result.final_metrics.doc_height == 2000
        assert result.rect.y1 == 2000
        assert not result.frame_limit_reached

    def test_scroll_position_restored(self, coordinator, page, fake_clock):
        driver = FakePageDriver(page, fake_clock, scroll_y=300)
        grabber = FakeViewportGrabber(driver)

        result = asyncio.run(coordinator.capture(driver, grabber, window_handle=1))

        assert result.original_scroll_y == 300
        assert driver.scroll_y == 300
        assert driver.scroll_calls[-1] == 300

    def test_explicit_bottom_bound_stops_early(self, coordinator, driver, grabber):
        bounds = CropBounds(top=100, bottom=600)
        result = asyncio.run(coordinator.capture(driver, grabber, window_handle=1, crop_bounds=bounds))

        assert [f.page_offset_y for f in result.frames] == [100]
        assert result.rect.has_explicit_bottom_bound

    def test_lazy_loaded_content_is_followed(self, coordinator, fake_clock):
        page = SyntheticPage(height=2300, initial_height=2000, grow_by=300)
        driver = FakePageDriver(page, fake_clock)
        grabber = FakeViewportGrabber(driver)

        result = asyncio.run(coordinator.capture(driver, grabber, window_handle=1))

        assert result.final_metrics.doc_height == 2300
        assert result.frames[-1].page_offset_y == 1800

    def test_stuck_scroll_replaces_last_frame(self, coordinator, page, fake_clock):
        driver = FakePageDriver(page, fake_clock, max_scroll=420)
        grabber = FakeViewportGrabber(driver)

        result = asyncio.run(coordinator.capture(driver, grabber, window_handle=1))

        # No duplicate positions, and the loop gives up on a page that will not move
        assert [f.page_offset_y for f in result.frames] == [0, 420]
        assert grabber.calls == 2 + coordinator.max_stalled_scrolls

    def test_frame_limit(self, limiter, fake_clock, driver, grabber):
        coordinator = ScrollCaptureCoordinator(limiter, sleep=fake_clock.sleep, max_frames=2)
        result = asyncio.run(coordinator.capture(driver, grabber, window_handle=1))

        assert len(result.frames) == 2
        assert result.frame_limit_reached

    def test_failure_still_restores_scroll(self, coordinator, page, fake_clock):
        driver = FakePageDriver(page, fake_clock, scroll_y=250)
        grabber = FakeViewportGrabber(driver, fail_on_call=2, error=ScreenshotCaptureError("tab closed"))

        with pytest.raises(ScreenshotCaptureError):
            asyncio.run(coordinator.capture(driver, grabber, window_handle=1))
        assert driver.scroll_y == 250

    def test_persistent_throttling_surfaces_after_retries(self, coordinator, page, fake_clock):
        driver = FakePageDriver(page, fake_clock, scroll_y=40)
        grabber = FakeViewportGrabber(driver, throttle_times=10)

        with pytest.raises(CaptureThrottledError):
            asyncio.run(coordinator.capture(driver, grabber, window_handle=1))
        assert grabber.calls == 4
        assert driver.scroll_y == 40

    def test_transient_throttling_is_absorbed(self, coordinator, driver, fake_clock):
        grabber = FakeViewportGrabber(driver, throttle_times=3)
        result = asyncio.run(coordinator.capture(driver, grabber, window_handle=1))

        assert len(result.frames) == 5
        for delay in (0.8, 1.2, 1.6):
            assert delay in fake_clock.sleeps

    def test_unreadable_page(self, coordinator, page, fake_clock):
        driver = FakePageDriver(page, fake_clock, fail_metrics=True)
        with pytest.raises(CaptureEnvironmentError):
            asyncio.run(coordinator.capture(driver, FakeViewportGrabber(driver), window_handle=1))
        assert driver.scroll_calls == []

    def test_unreadable_sample_mid_capture_is_skipped(self, coordinator, page, fake_clock):
        driver = FlakyMetricsDriver(page, fake_clock, none_on_calls={3})
        grabber = FakeViewportGrabber(driver)

        result = asyncio.run(coordinator.capture(driver, grabber, window_handle=1))

        assert driver.metrics_calls > 3
        assert [f.page_offset_y for f in result.frames] == [0, 420, 840, 1260, 1500]
        assert result.final_metrics.doc_height == 2000


class FlakyMetricsDriver(FakePageDriver):
    """Returns None from get_page_metrics on the given (1-based) calls"""

    def __init__(self, page, clock, none_on_calls=(), **kwargs):
        super().__init__(page, clock, **kwargs)
        self.none_on_calls = set(none_on_calls)
        self.metrics_calls = 0

    async def get_page_metrics(self):
        self.metrics_calls += 1
        if self.metrics_calls in self.none_on_calls:
            return None
        return await super().get_page_metrics()


class TestWaitForSettled:

    def test_never_readable_raises_environment_error(self, page, fake_clock):
        driver = FakePageDriver(page, fake_clock, fail_metrics=True)

        with pytest.raises(CaptureEnvironmentError, match="Unable to read page info"):
            asyncio.run(driver.wait_for_settled(200))

    def test_unreadable_first_sample_recovers(self, page, fake_clock):
        driver = FlakyMetricsDriver(page, fake_clock, scroll_y=120, none_on_calls={1})

        metrics = asyncio.run(driver.wait_for_settled(2000))

        assert metrics.scroll_y == 120

    def test_unreadable_final_sample_keeps_last_good(self, page, fake_clock):
        # Every poll after the first sample fails, so the timeout path is taken
        driver = FlakyMetricsDriver(page, fake_clock, scroll_y=60, none_on_calls=set(range(2, 100)))

        metrics = asyncio.run(driver.wait_for_settled(200))

        assert metrics.scroll_y == 60
