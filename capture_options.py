"""
Longshot - Capture Option Helpers

Small coercion helpers shared by the API, the CLI and the capture service.
"""

import math
from typing import Any, Optional
from urllib.parse import urlparse


GRID_COUNTS = {
    "long": 1,
    "grid3": 3,
    "grid4": 4,
    "grid6": 6,
    "grid9": 9,
}


def validate_optional_url(url: Optional[str]) -> bool:
    """An empty URL is valid (no footer); otherwise it must be absolute."""
    if not url:
        return True
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return bool(parsed.scheme) and bool(parsed.netloc or parsed.path)


def get_grid_count(output_mode: Any) -> int:
    """Number of output parts for an output mode. Unknown modes mean one long image."""
    key = getattr(output_mode, "value", output_mode)
    return GRID_COUNTS.get(key, 1) if isinstance(key, str) else 1


def clamp_max_height(value: Any) -> int:
    """
    Coerce a user supplied height cap to a non-negative integer.

    0 means unlimited. Anything non-numeric, non-finite or non-positive
    collapses to 0.
    """
    try:
        n = float(value or 0)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(n) or n <= 0:
        return 0
    return int(math.floor(n))


def get_render_scale(dpr: float, output_quality: Any) -> float:
    """Output scale for a device pixel ratio and quality setting, never below 1."""
    quality = getattr(output_quality, "value", output_quality)
    dpr = dpr or 1
    if quality == "standard":
        return 1
    if quality == "high":
        return max(1, min(dpr, 1.5))
    return max(1, dpr)
