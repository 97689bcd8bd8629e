"""
Longshot - Capture Geometry

Turns page metrics, optional crop bounds and an optional height cap into the
canonical capture rectangle used by both the scroll coordinator and the
stitcher.
"""

import math
from typing import Optional

from capture_models import CaptureRect, CropBounds, PageMetrics


def resolve_capture_rect(
    metrics: PageMetrics,
    bounds: Optional[CropBounds] = None,
    max_height: int = 0,
) -> CaptureRect:
    """
    Resolve the region of the page to capture.

    Horizontal bounds are clamped to the visible width (the capture never
    scrolls sideways); vertical bounds are clamped to the document height and
    then capped to max_height when it is positive.
    """
    bounds = bounds or CropBounds()
    viewport_width = int(math.floor(metrics.viewport_width))
    doc_height = int(math.floor(metrics.doc_height))

    x0 = max(0, int(math.floor(bounds.left or 0)))
    max_visible_right = max(viewport_width, x0 + 1)
    requested_right = viewport_width if bounds.right is None else int(math.floor(bounds.right))
    x1 = max(x0 + 1, min(requested_right, max_visible_right))

    y0 = max(0, int(math.floor(bounds.top or 0)))
    requested_bottom = doc_height if bounds.bottom is None else int(math.floor(bounds.bottom))
    y1 = max(y0 + 1, min(requested_bottom, doc_height))

    width = max(1, x1 - x0)
    height = max(1, y1 - y0)
    if max_height and max_height > 0:
        height = min(height, int(max_height))

    return CaptureRect(
        x0=x0,
        y0=y0,
        y1=y0 + height,
        width=width,
        height=height,
        has_explicit_bottom_bound=bounds.bottom is not None,
    )
