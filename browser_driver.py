"""
Longshot - Playwright Browser Driver
Concrete page driver and viewport grabber backed by a headless Chromium page.

The scroll root is the element with the largest scrollable area (weighted by
width, preferring the one under the viewport centre); pages that scroll an
inner container are handled the same way as pages that scroll the document.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, async_playwright

from capture_models import PageMetrics
from config.defaults import Defaults
from longshot_service import CaptureTarget
from page_driver import BasePageDriver, BaseViewportGrabber
from utils.error_handler import CaptureEnvironmentError, ScreenshotCaptureError

logger = logging.getLogger(__name__)

SCROLL_ROOT_ATTR = "data-longshot-root"

# Finds (and tags) the scroll root once per page
FIND_SCROLL_ROOT_JS = f"""
() => {{
    const tagged = document.querySelector('[{SCROLL_ROOT_ATTR}]');
    if (tagged) return tagged;
    const documentRoot = document.scrollingElement || document.documentElement;
    const centerEl = document.elementFromPoint(window.innerWidth / 2, window.innerHeight / 2);
    const isScrollable = (el) => {{
        if (!el || el === document.body || el === document.documentElement) return false;
        const overflowY = window.getComputedStyle(el).overflowY;
        const canScroll = overflowY === 'auto' || overflowY === 'scroll' || overflowY === 'overlay';
        return canScroll && el.scrollHeight - el.clientHeight > 80 && el.clientHeight > 200;
    }};
    let best = documentRoot;
    let bestScore = 0;
    const candidates = [documentRoot, ...Array.from(document.querySelectorAll('div, main, section, article')).filter(isScrollable)];
    for (const el of candidates) {{
        const scrollable = Math.max(0, el.scrollHeight - el.clientHeight);
        const width = el === documentRoot ? window.innerWidth : el.clientWidth;
        let score = scrollable * Math.max(1, width);
        if (centerEl && el.contains && el.contains(centerEl)) score *= 1.4;
        if (score > bestScore) {{
            bestScore = score;
            best = el;
        }}
    }}
    if (best !== documentRoot) best.setAttribute('{SCROLL_ROOT_ATTR}', '1');
    return best;
}}
"""

PAGE_METRICS_JS = f"""
() => {{
    const root = ({FIND_SCROLL_ROOT_JS})();
    const isDocument = root === document.scrollingElement || root === document.documentElement || root === document.body;
    let rect;
    if (isDocument) {{
        rect = {{ left: 0, top: 0, width: window.innerWidth, height: window.innerHeight }};
    }} else {{
        const r = root.getBoundingClientRect();
        rect = {{ left: r.left, top: r.top, width: root.clientWidth, height: root.clientHeight }};
    }}
    return {{
        viewport_width: Math.max(1, rect.width),
        viewport_height: Math.max(1, rect.height),
        viewport_offset_x: Math.max(0, rect.left),
        viewport_offset_y: Math.max(0, rect.top),
        doc_height: Math.max(root.scrollHeight, root.clientHeight),
        doc_width: Math.max(root.scrollWidth, root.clientWidth),
        scroll_y: root.scrollTop,
        scroll_x: root.scrollLeft,
        device_pixel_ratio: window.devicePixelRatio || 1,
    }};
}}
"""

SCROLL_TO_JS = f"""
(y) => {{
    const root = ({FIND_SCROLL_ROOT_JS})();
    const maxY = Math.max(0, root.scrollHeight - root.clientHeight);
    root.scrollTop = Math.max(0, Math.min(maxY, y));
    return root.scrollTop;
}}
"""


class PlaywrightPageDriver(BasePageDriver):
    """Page driver evaluating metrics and scroll calls inside a Playwright page"""

    def __init__(self, page: Page, **kwargs):
        super().__init__(**kwargs)
        self.page = page

    async def get_page_metrics(self) -> Optional[PageMetrics]:
        try:
            data = await self.page.evaluate(PAGE_METRICS_JS)
        except PlaywrightError as e:
            logger.error(f"[PlaywrightPageDriver] Failed to read page metrics: {e}")
            return None
        return PageMetrics(**data) if data else None

    async def scroll_to(self, y: float) -> Optional[float]:
        return await self.page.evaluate(SCROLL_TO_JS, y)


class PlaywrightViewportGrabber(BaseViewportGrabber):
    """Captures the visible viewport as PNG bytes at device resolution"""

    async def capture_visible_viewport(self, window_handle: Any) -> bytes:
        page: Page = window_handle
        if page is None or page.is_closed():
            raise ScreenshotCaptureError("Page is closed", window_handle=window_handle)
        try:
            return await page.screenshot(type="png", scale="device")
        except PlaywrightError as e:
            raise ScreenshotCaptureError(f"Screenshot failed: {e}", window_handle=page.url) from e


@asynccontextmanager
async def open_browser_target(
    url: str,
    viewport_width: Optional[int] = None,
    viewport_height: Optional[int] = None,
    device_scale_factor: Optional[float] = None,
    headless: bool = True,
) -> AsyncIterator[CaptureTarget]:
    """
    Launch Chromium, open url and yield a CaptureTarget for it.

    The browser is closed when the context exits.
    """
    width = viewport_width or Defaults.BROWSER_VIEWPORT_WIDTH
    height = viewport_height or Defaults.BROWSER_VIEWPORT_HEIGHT
    scale = device_scale_factor or Defaults.BROWSER_DEVICE_SCALE_FACTOR

    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=headless, args=["--disable-gpu"])
        try:
            context = await browser.new_context(
                viewport={"width": width, "height": height},
                device_scale_factor=scale,
            )
            page = await context.new_page()
            logger.info(f"[Browser] Opening {url} ({width}x{height} @{scale}x)")
            try:
                await page.goto(url, wait_until="load", timeout=Defaults.BROWSER_NAVIGATION_TIMEOUT_MS)
            except PlaywrightError as e:
                raise CaptureEnvironmentError(f"Failed to open page: {e}", page_url=url) from e

            # Let late layout (web fonts, lazy images above the fold) land
            await asyncio.sleep(Defaults.SCROLL_SETTLE_DELAY_MS / 1000)

            yield CaptureTarget(
                driver=PlaywrightPageDriver(page),
                grabber=PlaywrightViewportGrabber(),
                window_handle=page,
                page_url=page.url,
            )
        finally:
            await browser.close()
            logger.info("[Browser] Closed")
