"""
Longshot - Capture Service
Orchestrates one capture run end to end and the split-export flow.

run_capture:
    validate options -> check page environment -> scroll capture ->
    fetch QR image -> stitch -> write one PNG, or store a split session
export_session:
    load session -> normalize boundaries -> split -> write N PNGs
"""

import asyncio
import io
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, Optional
from urllib.parse import urlparse

from PIL import Image

from capture_limiter import CaptureRateLimiter
from capture_models import (
    CaptureRequest,
    CaptureResult,
    CaptureSession,
    ExportResult,
    FooterOptions,
)
from capture_options import clamp_max_height, get_grid_count, validate_optional_url
from config.defaults import Defaults
from footer_compositor import Footer, FooterCompositor, QRCodeProvider
from image_splitter import ImageSplitter, default_boundaries, get_footer_heights, normalize_boundaries
from page_driver import BasePageDriver, BaseViewportGrabber
from screenshot_stitcher import FrameStitcher
from scroll_capture import ScrollCaptureCoordinator
from session_store import CaptureSessionStore, CropBoundsStore, new_session_id, now_ms
from utils.error_handler import CaptureEnvironmentError, InvalidInputError, SessionExpiredError

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMES = ("http", "https")


@dataclass
class CaptureTarget:
    """The page to capture: its driver, viewport grabber, window and URL"""
    driver: Optional[BasePageDriver]
    grabber: Optional[BaseViewportGrabber]
    window_handle: Any
    page_url: str = ""


class LongshotService:
    """
    Capture and export service.

    One instance per process; every capture goes through the same rate
    limiter so concurrent captures still respect the acquisition limit.
    """

    def __init__(
        self,
        session_store: CaptureSessionStore,
        limiter: Optional[CaptureRateLimiter] = None,
        coordinator: Optional[ScrollCaptureCoordinator] = None,
        qr_provider: Optional[QRCodeProvider] = None,
        crop_bounds_store: Optional[CropBoundsStore] = None,
        output_dir: Optional[str] = None,
        file_prefix: Optional[str] = None,
    ):
        self.session_store = session_store
        self.limiter = limiter or CaptureRateLimiter()
        self.coordinator = coordinator or ScrollCaptureCoordinator(self.limiter)
        self.qr_provider = qr_provider or QRCodeProvider()
        self.crop_bounds_store = crop_bounds_store
        self.footer_compositor = FooterCompositor()
        self.stitcher = FrameStitcher(self.footer_compositor)
        self.splitter = ImageSplitter(self.footer_compositor)

        self.output_dir = Path(output_dir or Defaults.OUTPUT_DIR)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.file_prefix = file_prefix or Defaults.FILE_PREFIX

        logger.info(f"[LongshotService] Initialized (output: {self.output_dir})")

    # =========================================================================
    # Capture
    # =========================================================================

    def _validate(self, target: Optional[CaptureTarget], request: CaptureRequest):
        if target is None or target.driver is None or target.grabber is None:
            raise InvalidInputError("Missing tab id", field="target")
        if not validate_optional_url(request.footer_url):
            raise InvalidInputError("Invalid URL", field="footer_url")

    def _check_environment(self, target: CaptureTarget):
        if target.window_handle is None:
            raise CaptureEnvironmentError("Invalid tab/window context", page_url=target.page_url)
        scheme = urlparse(target.page_url or "").scheme.lower()
        if scheme not in SUPPORTED_SCHEMES:
            raise CaptureEnvironmentError(
                "This page is unsupported. Open an http/https page.", page_url=target.page_url
            )

    async def _resolve_footer(self, options: FooterOptions) -> Optional[Footer]:
        """Fetch the QR image up front so composition stays synchronous"""
        if not options.enabled:
            return None
        qr_image = await self.qr_provider.fetch_code(options.url)
        if qr_image is None:
            logger.warning("[LongshotService] QR code unavailable, footer uses a placeholder")
        return Footer(url=options.url, language=options.language, qr_image=qr_image)

    async def run_capture(self, target: Optional[CaptureTarget], request: Optional[CaptureRequest] = None) -> CaptureResult:
        """
        Capture a page and deliver it as one image or as a split session.

        Args:
            target: Page to capture
            request: Capture options

        Returns:
            CaptureResult with mode "downloaded" (one file written) or
            "needs_split_editor" (session created, export pending)

        Raises:
            InvalidInputError: missing target or malformed footer URL
            CaptureEnvironmentError: page cannot be captured
            CaptureThrottledError: acquisition still throttled after retries
        """
        request = request or CaptureRequest()
        self._validate(target, request)
        self._check_environment(target)

        grid_count = get_grid_count(request.output_mode)
        max_height = clamp_max_height(request.max_height)
        footer_options = request.footer_options()

        crop_bounds = request.crop_bounds
        if crop_bounds is None and self.crop_bounds_store is not None:
            crop_bounds = self.crop_bounds_store.load(target.page_url)

        logger.info(
            f"[LongshotService] Capture {target.page_url} (mode={request.output_mode}, "
            f"quality={request.output_quality}, max_height={max_height or 'unlimited'})"
        )

        scroll_result = await self.coordinator.capture(
            target.driver,
            target.grabber,
            target.window_handle,
            crop_bounds=crop_bounds,
            max_height=max_height,
        )

        # The QR footer is only drawn on the long image here; split parts get
        # their footers at export time.
        footer = None
        if grid_count == 1:
            footer = await self._resolve_footer(footer_options)

        composed = await asyncio.to_thread(
            self.stitcher.compose,
            scroll_result.frames,
            scroll_result.final_metrics,
            crop_bounds,
            max_height,
            request.output_quality,
            footer,
        )
        png = await asyncio.to_thread(composed.to_png)

        metadata = {
            "frames": len(scroll_result.frames),
            "scrolls": scroll_result.scroll_count,
            "duration_ms": scroll_result.duration_ms,
            "frame_limit_reached": scroll_result.frame_limit_reached,
            "width": composed.pixel_width,
            "height": composed.pixel_height,
        }

        if grid_count == 1:
            path = self.output_dir / f"{self.file_prefix}_{now_ms()}.png"
            await asyncio.to_thread(path.write_bytes, png)
            logger.info(f"[LongshotService] Saved {path.name} ({composed.pixel_width}x{composed.pixel_height})")
            return CaptureResult(
                mode="downloaded",
                file_count=1,
                files=[str(path)],
                grid_count=1,
                metadata=metadata,
            )

        session = CaptureSession(
            id=new_session_id(),
            created_at=now_ms(),
            width=composed.pixel_width,
            height=composed.pixel_height,
            css_width=composed.css_width,
            css_height=composed.css_height,
            pixel_ratio=composed.pixel_ratio or 1,
            ui_language=request.language or "en",
            grid_count=grid_count,
            footer_url=footer_options.url or "",
            footer_scope=footer_options.scope,
            footer_height=composed.footer_height,
        )
        session.boundaries = default_boundaries(
            session.content_height,
            grid_count,
            get_footer_heights(grid_count, footer_options, self.footer_compositor.height),
        )
        await asyncio.to_thread(self.session_store.save, session, png)

        logger.info(f"[LongshotService] Created split session {session.id} ({grid_count} parts)")
        return CaptureResult(
            mode="needs_split_editor",
            session_id=session.id,
            grid_count=grid_count,
            metadata=metadata,
        )

    # =========================================================================
    # Sessions
    # =========================================================================

    def get_session(self, session_id: Optional[str]) -> CaptureSession:
        """Return a live session or raise SessionExpiredError."""
        if not session_id:
            raise InvalidInputError("Missing sessionId", field="session_id")
        session = self.session_store.get(session_id)
        if session is None:
            raise SessionExpiredError(session_id)
        return session

    def get_session_image(self, session_id: Optional[str]) -> bytes:
        if not session_id:
            raise InvalidInputError("Missing sessionId", field="session_id")
        data = self.session_store.get_with_image(session_id)
        if data is None:
            raise SessionExpiredError(session_id)
        return data[1]

    async def export_session(self, session_id: Optional[str], boundaries: Optional[Iterable] = None) -> ExportResult:
        """
        Split a stored session at boundaries and write the parts.

        Boundaries are CSS px from the top of the content; None uses the
        session's default boundaries. The session is kept so it can be
        exported again until it expires.
        """
        if not session_id:
            raise InvalidInputError("Missing sessionId", field="session_id")
        data = self.session_store.get_with_image(session_id)
        if data is None:
            raise SessionExpiredError(session_id)
        session, image_bytes = data

        if boundaries is None:
            boundaries = session.boundaries
        clean = normalize_boundaries(boundaries, session.content_height)

        footer = None
        if session.footer_options().enabled:
            footer = await self._resolve_footer(session.footer_options())

        parts = await asyncio.to_thread(self._split, session, image_bytes, clean, footer)

        stamp = now_ms()
        files: List[str] = []
        for index, png in enumerate(parts, start=1):
            path = self.output_dir / f"{self.file_prefix}_{stamp}_{index:02d}.png"
            await asyncio.to_thread(path.write_bytes, png)
            files.append(str(path))

        logger.info(f"[LongshotService] Exported session {session_id} into {len(files)} parts")
        return ExportResult(part_count=len(files), files=files)

    def _split(self, session: CaptureSession, image_bytes: bytes, boundaries: List[int],
               footer: Optional[Footer]) -> List[bytes]:
        with Image.open(io.BytesIO(image_bytes)) as img:
            img.load()
            image = img.convert("RGB")

        images = self.splitter.split(
            image,
            boundaries,
            session.content_height,
            pixel_ratio=session.pixel_ratio or 1,
            footer_scope=session.footer_scope,
            footer=footer,
        )

        encoded = []
        for part in images:
            buffer = io.BytesIO()
            part.save(buffer, format="PNG")
            encoded.append(buffer.getvalue())
        return encoded

    def delete_session(self, session_id: Optional[str]):
        if not session_id:
            raise InvalidInputError("Missing sessionId", field="session_id")
        self.session_store.delete(session_id)

    def cleanup_expired(self) -> int:
        return self.session_store.cleanup_expired()

    def close(self):
        self.qr_provider.close()

    def get_stats(self) -> dict:
        return {
            "limiter": self.limiter.get_stats(),
            "qr_cache": self.qr_provider.get_stats(),
            "sessions": len(self.session_store.list_session_ids()),
            "output_dir": str(self.output_dir),
            "timestamp": time.time(),
        }
