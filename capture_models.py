"""
Longshot - Capture Models

Pydantic models and plain dataclasses shared by the capture pipeline:
page metrics, crop bounds, frames, composed images and split sessions.
"""

import io
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from PIL import Image
from pydantic import BaseModel, Field, field_validator, model_validator


class OutputMode(str, Enum):
    """How the stitched page is delivered"""
    LONG = "long"  # One tall image
    GRID3 = "grid3"
    GRID4 = "grid4"
    GRID6 = "grid6"
    GRID9 = "grid9"


class OutputQuality(str, Enum):
    """Render scale preset"""
    STANDARD = "standard"  # 1x
    HIGH = "high"  # min(dpr, 1.5)
    MAX = "max"  # dpr


class FooterScope(str, Enum):
    """Which output parts receive the QR footer band"""
    NONE = "none"
    LAST = "last"
    ALL = "all"


class PageMetrics(BaseModel):
    """Snapshot of the scroll root reported by a page driver (CSS pixels)"""
    viewport_width: float = Field(1, ge=1)
    viewport_height: float = Field(1, ge=1)
    viewport_offset_x: float = Field(0, ge=0)
    viewport_offset_y: float = Field(0, ge=0)
    doc_width: float = Field(1, ge=0)
    doc_height: float = Field(1, ge=0)
    scroll_x: float = 0
    scroll_y: float = 0
    device_pixel_ratio: float = Field(1.0, gt=0)

    def layout_key(self) -> tuple:
        """Fields whose change means the page has not settled yet"""
        return (self.doc_height, self.doc_width, self.scroll_y, self.viewport_height)


def _coerce_edge(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(n):
        return None
    return max(0.0, n)


class CropBounds(BaseModel):
    """
    Optional crop edges in page coordinates.

    Missing edges mean "no bound on that edge". Inverted pairs are swapped,
    never rejected.
    """
    left: Optional[float] = None
    right: Optional[float] = None
    top: Optional[float] = None
    bottom: Optional[float] = None

    @field_validator("left", "right", "top", "bottom", mode="before")
    @classmethod
    def _edge(cls, value):
        return _coerce_edge(value)

    @model_validator(mode="after")
    def _ordered(self):
        if self.left is not None and self.right is not None and self.left > self.right:
            self.left, self.right = self.right, self.left
        if self.top is not None and self.bottom is not None and self.top > self.bottom:
            self.top, self.bottom = self.bottom, self.top
        return self

    def is_empty(self) -> bool:
        return all(v is None for v in (self.left, self.right, self.top, self.bottom))


@dataclass(frozen=True)
class CaptureRect:
    """Canonical capture rectangle in page CSS pixels; rows [y0, y1)"""
    x0: int
    y0: int
    y1: int
    width: int
    height: int
    has_explicit_bottom_bound: bool = False


@dataclass(frozen=True)
class CaptureFrame:
    """One viewport snapshot tagged with the scroll position it was taken at"""
    page_offset_y: float
    raw_image: bytes


@dataclass
class ComposedImage:
    """Stitched bitmap plus the scale that maps CSS rows to pixel rows"""
    image: Image.Image
    css_width: int
    css_height: int
    pixel_ratio: float
    footer_height: int = 0  # CSS px of footer band included at the bottom

    @property
    def pixel_width(self) -> int:
        return self.image.width

    @property
    def pixel_height(self) -> int:
        return self.image.height

    @property
    def content_height(self) -> int:
        """CSS height of the page content, excluding any footer band"""
        return max(1, self.css_height - self.footer_height)

    def to_png(self) -> bytes:
        buffer = io.BytesIO()
        self.image.save(buffer, format="PNG")
        return buffer.getvalue()


class FooterOptions(BaseModel):
    """Footer settings chosen by the user"""
    url: Optional[str] = ""
    scope: FooterScope = FooterScope.NONE
    language: str = "en"

    @property
    def enabled(self) -> bool:
        return bool(self.url) and self.scope != FooterScope.NONE


class CaptureSession(BaseModel):
    """Persisted metadata of a multi-part capture awaiting split export"""
    id: str
    created_at: float  # epoch milliseconds
    width: int
    height: int
    css_width: int
    css_height: int
    pixel_ratio: float = 1.0
    ui_language: str = "en"
    grid_count: int = 1
    footer_url: str = ""
    footer_scope: FooterScope = FooterScope.NONE
    footer_height: int = 0
    boundaries: List[int] = Field(default_factory=list)

    @property
    def content_height(self) -> int:
        return max(1, self.css_height - self.footer_height)

    def footer_options(self) -> FooterOptions:
        return FooterOptions(url=self.footer_url, scope=self.footer_scope, language=self.ui_language)


class CaptureRequest(BaseModel):
    """Options for one capture run"""
    crop_bounds: Optional[CropBounds] = None
    max_height: Any = 0
    output_mode: str = OutputMode.LONG.value
    output_quality: str = OutputQuality.HIGH.value
    footer_url: Optional[str] = ""
    footer_scope: FooterScope = FooterScope.NONE
    language: str = "en"

    def footer_options(self) -> FooterOptions:
        return FooterOptions(url=self.footer_url or "", scope=self.footer_scope, language=self.language)


@dataclass
class CaptureResult:
    """Outcome of a capture run"""
    mode: str  # "downloaded" or "needs_split_editor"
    file_count: int = 0
    files: List[str] = field(default_factory=list)
    session_id: Optional[str] = None
    grid_count: int = 1
    metadata: dict = field(default_factory=dict)


@dataclass
class ExportResult:
    """Outcome of a split export"""
    part_count: int
    files: List[str] = field(default_factory=list)
