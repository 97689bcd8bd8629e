"""
Longshot - Image Splitter
Turns one tall composed image into N ordered parts.

- normalize_boundaries: clean, sort and space user supplied split points
- default_boundaries: evenly sized parts, accounting for footer bands
- ImageSplitter.split: slice the image at the boundaries, adding footers

Boundaries are CSS pixel rows measured from the top of the content region
(footer bands excluded); they map to image rows through the pixel ratio.
"""

import logging
import math
from typing import Iterable, List, Optional

from PIL import Image

from capture_models import FooterOptions, FooterScope
from config.defaults import Defaults
from footer_compositor import Footer, FooterCompositor

logger = logging.getLogger(__name__)

MIN_GAP = Defaults.BOUNDARY_MIN_GAP_PX


def normalize_boundaries(boundaries: Optional[Iterable], total_height: float, min_gap: int = MIN_GAP) -> List[int]:
    """
    Return a strictly increasing boundary list inside (0, total_height).

    Non-numeric, non-finite, non-positive and out-of-range values are dropped,
    the rest floored and sorted; a value is kept only when it is at least
    min_gap past the last kept value.
    """
    clean = []
    for value in boundaries or []:
        try:
            n = float(value or 0)
        except (TypeError, ValueError):
            continue
        if not math.isfinite(n):
            continue
        n = int(math.floor(n))
        if 0 < n < total_height:
            clean.append(n)
    clean.sort()

    unique: List[int] = []
    for value in clean:
        if not unique or value - unique[-1] >= min_gap:
            unique.append(value)
    return unique


def footer_qualifies(index: int, part_count: int, footer_scope) -> bool:
    """Whether part index (0-based) of part_count gets a footer band."""
    scope = FooterScope(footer_scope)
    if scope == FooterScope.ALL:
        return True
    if scope == FooterScope.LAST:
        return index == part_count - 1
    return False


def get_footer_heights(grid_count: int, footer: Optional[FooterOptions],
                       footer_height: int = Defaults.FOOTER_HEIGHT_PX) -> List[int]:
    """Footer band height per part for a footer configuration."""
    if not footer or not footer.enabled:
        return [0] * grid_count
    return [
        footer_height if footer_qualifies(i, grid_count, footer.scope) else 0
        for i in range(grid_count)
    ]


def default_boundaries(total_height: int, grid_count: int, footer_heights: Optional[List[int]] = None) -> List[int]:
    """
    Boundaries that make every final part (content + its footer) equally tall.

    Integer arithmetic only: the final height is divided evenly, the remainder
    handed out one pixel at a time to the earliest parts, then each part's
    footer is subtracted to get its content share. Every part keeps at least
    1px of content.
    """
    total_height = int(total_height)
    if grid_count <= 1:
        return []
    footer_heights = list(footer_heights or [0] * grid_count)

    total_final_height = total_height + sum(footer_heights)
    base_final_height, remainder = divmod(total_final_height, grid_count)

    result = []
    accumulated = 0
    for i in range(grid_count - 1):
        final_height = base_final_height + (1 if remainder > 0 else 0)
        remainder = max(0, remainder - 1)
        remaining_min_height = grid_count - i - 1
        desired = max(1, final_height - footer_heights[i])
        available = max(1, total_height - accumulated - remaining_min_height)
        accumulated += min(desired, available)
        result.append(accumulated)
    return result


class ImageSplitter:
    """Slices composed images into ordered parts with optional footers."""

    def __init__(self, footer_compositor: Optional[FooterCompositor] = None):
        self.footer_compositor = footer_compositor or FooterCompositor()

    def cut_rows(self, boundaries: List[int], content_height: float, pixel_ratio: float,
                 image_height: int) -> List[int]:
        """Pixel rows [0, ..., content_bottom] for already-normalized CSS boundaries."""
        content_px = min(image_height, max(1, int(math.floor(content_height * pixel_ratio))))
        rows = [0]
        for boundary in boundaries:
            rows.append(min(content_px, int(math.floor(boundary * pixel_ratio))))
        rows.append(content_px)
        return rows

    def split(
        self,
        image: Image.Image,
        boundaries: Optional[Iterable],
        content_height: float,
        pixel_ratio: float = 1.0,
        footer_scope=FooterScope.NONE,
        footer: Optional[Footer] = None,
    ) -> List[Image.Image]:
        """
        Split image into parts, top to bottom.

        Args:
            image: Composed image
            boundaries: Candidate CSS boundaries (normalized here)
            content_height: CSS height of the content region of image
            pixel_ratio: Image pixels per CSS pixel
            footer_scope: Which parts get a footer
            footer: Resolved footer, or None for no footers

        Returns:
            List of part images; part i covers rows cut[i]..cut[i+1]
        """
        clean = normalize_boundaries(boundaries, content_height)
        rows = self.cut_rows(clean, content_height, pixel_ratio, image.height)
        part_count = len(rows) - 1
        band_px = self.footer_compositor.band_pixel_height(pixel_ratio)
        css_width = image.width / pixel_ratio

        parts = []
        for i in range(part_count):
            top, bottom = rows[i], rows[i + 1]
            height = bottom - top
            if height <= 0:
                continue

            with_footer = footer is not None and footer_qualifies(i, part_count, footer_scope)
            footer_px = band_px if with_footer else 0

            part = Image.new("RGB", (image.width, height + footer_px), "white")
            part.paste(image.crop((0, top, image.width, bottom)), (0, 0))
            if with_footer:
                self.footer_compositor.draw_footer(part, height, css_width, pixel_ratio, footer)

            parts.append(part)
            logger.debug(f"[ImageSplitter] Part {len(parts)}: rows {top}-{bottom}, footer={footer_px}px")

        logger.info(f"[ImageSplitter] Split {image.width}x{image.height} into {len(parts)} parts")
        return parts


def split_by_boundaries(
    image: Image.Image,
    boundaries: Optional[Iterable],
    content_height: float,
    pixel_ratio: float = 1.0,
    footer_scope=FooterScope.NONE,
    footer: Optional[Footer] = None,
) -> List[Image.Image]:
    """Module-level shortcut for ImageSplitter().split(...)"""
    return ImageSplitter().split(image, boundaries, content_height, pixel_ratio, footer_scope, footer)
