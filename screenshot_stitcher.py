"""
Longshot - Screenshot Stitcher
Merges ordered, overlapping viewport frames into one gapless image.

Frames carry the scroll position they were captured at, so alignment is
positional (no image matching): each frame contributes the rows of the
capture rect that the previous frames did not already draw, minus a 2px
redraw margin that hides sub-pixel seams.
"""

import io
import logging
import math
from typing import List, Optional

from PIL import Image

from capture_geometry import resolve_capture_rect
from capture_models import CaptureFrame, ComposedImage, CropBounds, PageMetrics
from capture_options import get_render_scale
from footer_compositor import Footer, FooterCompositor

logger = logging.getLogger(__name__)

SEAM_REDRAW_PX = 2


class FrameStitcher:
    """
    Composes CaptureFrames into a ComposedImage

    Pure and synchronous: everything it needs (frames, final page metrics,
    the resolved footer with its QR image) is passed in.
    """

    def __init__(self, footer_compositor: Optional[FooterCompositor] = None):
        self.footer_compositor = footer_compositor or FooterCompositor()
        logger.info("[FrameStitcher] Initialized")

    def compose(
        self,
        frames: List[CaptureFrame],
        metrics: PageMetrics,
        crop_bounds: Optional[CropBounds] = None,
        max_height: int = 0,
        output_quality: str = "max",
        footer: Optional[Footer] = None,
    ) -> ComposedImage:
        """
        Stitch frames into one image.

        Args:
            frames: Frames from the scroll coordinator (any order)
            metrics: Page metrics observed when capture finished
            crop_bounds: Optional crop edges in page coordinates
            max_height: Height cap in CSS px (0 = unlimited)
            output_quality: "standard" | "high" | "max"
            footer: Footer to append below the content, or None

        Returns:
            ComposedImage; its content height is trimmed to what the frames
            actually covered when the document ended early.
        """
        rect = resolve_capture_rect(metrics, crop_bounds, max_height)
        dpr = metrics.device_pixel_ratio or 1
        render_scale = get_render_scale(dpr, output_quality)
        footer_height = self.footer_compositor.height if footer else 0

        canvas = self._new_canvas(rect.width, rect.height + footer_height, render_scale)

        sorted_frames = sorted(frames, key=lambda f: f.page_offset_y)
        last_draw_bottom = rect.y0
        drawn = 0

        for index, frame in enumerate(sorted_frames):
            frame_top = frame.page_offset_y
            frame_bottom = frame.page_offset_y + metrics.viewport_height

            draw_top = max(frame_top, rect.y0, last_draw_bottom - SEAM_REDRAW_PX)
            draw_bottom = min(frame_bottom, rect.y1)
            if draw_bottom <= draw_top:
                logger.debug(f"[FrameStitcher] Frame {index} at y={frame_top} adds nothing, skipped")
                continue

            with Image.open(io.BytesIO(frame.raw_image)) as img:
                img.load()
                source = img.convert("RGB")

            src_x = max(0, int(math.floor((metrics.viewport_offset_x + rect.x0) * dpr)))
            src_y = max(0, int(math.floor((metrics.viewport_offset_y + (draw_top - frame_top)) * dpr)))
            src_w = min(source.width - src_x, int(math.floor(rect.width * dpr)))
            wanted_h = int(math.floor((draw_bottom - draw_top) * dpr))
            src_h = min(source.height - src_y, wanted_h)
            if src_w <= 0 or src_h <= 0:
                logger.debug(f"[FrameStitcher] Frame {index} source region empty, skipped")
                continue

            dest_y = int(math.floor((draw_top - rect.y0) * render_scale))
            dest_w = int(math.floor((src_w / dpr) * render_scale))
            dest_h = int(math.floor((src_h / dpr) * render_scale))
            if dest_w <= 0 or dest_h <= 0:
                continue

            region = source.crop((src_x, src_y, src_x + src_w, src_y + src_h))
            if region.size != (dest_w, dest_h):
                region = region.resize((dest_w, dest_h), Image.Resampling.LANCZOS)
            canvas.paste(region, (0, dest_y))

            # A bitmap shorter than the viewport only covers the rows it actually has
            covered_bottom = draw_bottom if src_h >= wanted_h else draw_top + src_h / dpr
            last_draw_bottom = max(last_draw_bottom, covered_bottom)
            drawn += 1
            logger.debug(
                f"[FrameStitcher] Frame {index}: rows {draw_top:.0f}-{draw_bottom:.0f} -> dest y={dest_y} h={dest_h}"
            )

        if footer:
            self._draw_footer(canvas, rect.width, rect.height, render_scale, footer)

        actual_content_height = int(max(1, min(rect.height, math.floor(last_draw_bottom - rect.y0))))

        if actual_content_height != rect.height:
            # Document ended before the requested height: re-render at the real size
            logger.info(
                f"[FrameStitcher] Trimming content {rect.height}px -> {actual_content_height}px"
            )
            trimmed = self._new_canvas(rect.width, actual_content_height + footer_height, render_scale)
            content_rows = int(math.floor(actual_content_height * render_scale))
            trimmed.paste(canvas.crop((0, 0, trimmed.width, content_rows)), (0, 0))
            if footer:
                self._draw_footer(trimmed, rect.width, actual_content_height, render_scale, footer)
            canvas = trimmed

        composed = ComposedImage(
            image=canvas,
            css_width=rect.width,
            css_height=actual_content_height + footer_height,
            pixel_ratio=render_scale,
            footer_height=footer_height,
        )

        logger.info(
            f"[FrameStitcher] Composed {drawn}/{len(frames)} frames -> "
            f"{composed.pixel_width}x{composed.pixel_height}px (scale {render_scale})"
        )
        return composed

    def _new_canvas(self, css_width: int, css_height: int, scale: float) -> Image.Image:
        return Image.new(
            "RGB",
            (
                max(1, int(math.floor(css_width * scale))),
                max(1, int(math.floor(css_height * scale))),
            ),
            "white",
        )

    def _draw_footer(self, canvas: Image.Image, css_width: int, content_height: int,
                     scale: float, footer: Footer):
        top = int(math.floor(content_height * scale))
        self.footer_compositor.draw_footer(canvas, top, css_width, scale, footer)

