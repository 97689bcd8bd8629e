"""
Longshot - Footer Compositor

Renders the fixed-height informational band appended below captured images:
gradient background, two soft decorative circles, a rounded card holding a
framed QR code and a one-line caption.

All layout constants are CSS pixels; rendering multiplies them by the output
scale so the band matches the image it is attached to.
"""

import asyncio
import io
import logging
import math
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
import httpx
from PIL import Image, ImageDraw, ImageFilter, ImageFont

from config.defaults import Defaults

logger = logging.getLogger(__name__)

FOOTER_HEIGHT = Defaults.FOOTER_HEIGHT_PX

GRADIENT_STOPS = (0.0, 0.52, 1.0)
GRADIENT_COLORS = ((0xF7, 0xEF, 0xE5), (0xEF, 0xE9, 0xFF), (0xE5, 0xF0, 0xFF))

QR_FRAME_SIZE = 148
QR_SIZE = 108

FOOTER_COPY = {
    "en": {"helper": "Scan QR to view full page"},
    "zh": {"helper": "扫描二维码查看全文"},
}

FONT_CANDIDATES = {
    "en": ["DejaVuSans-Bold.ttf", "segoeuib.ttf", "arialbd.ttf", "Arial Bold.ttf", "LiberationSans-Bold.ttf"],
    "zh": ["NotoSansCJK-Bold.ttc", "NotoSansSC-Bold.otf", "msyhbd.ttc", "PingFang.ttc", "wqy-microhei.ttc"],
}


def get_footer_copy(language: str) -> dict:
    return FOOTER_COPY.get(language, FOOTER_COPY["en"])


def fit_text(measure: Callable[[str], float], text: str, max_width: float) -> str:
    """
    Truncate text with an ellipsis so that measure(result) <= max_width.

    Binary search over the kept prefix length.
    """
    if not text:
        return ""
    if measure(text) <= max_width:
        return text

    ellipsis = "..."
    low, high = 0, len(text)
    while low < high:
        mid = (low + high + 1) // 2
        if measure(f"{text[:mid]}{ellipsis}") <= max_width:
            low = mid
        else:
            high = mid - 1
    return f"{text[:low]}{ellipsis}"


def load_font(size: int, language: str = "en"):
    """Bold font for the caption; falls back to Pillow's bundled font."""
    candidates = FONT_CANDIDATES.get(language, []) + FONT_CANDIDATES["en"]
    for name in candidates:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    try:
        return ImageFont.load_default(size=size)
    except TypeError:
        # Pillow < 10.1 has no sized default font
        return ImageFont.load_default()


@dataclass
class Footer:
    """A footer ready to draw: URL, caption language and the fetched QR image"""
    url: str
    language: str = "en"
    qr_image: Optional[Image.Image] = None


class QRCodeProvider:
    """
    Fetches QR code images for URLs from an HTTP endpoint.

    Results are kept in a bounded LRU cache with a TTL. Failures are not
    cached and return None so the footer can draw a placeholder.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        max_entries: Optional[int] = None,
        ttl_s: Optional[int] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.endpoint = endpoint or Defaults.QR_ENDPOINT
        self.max_entries = max_entries or Defaults.QR_CACHE_MAX_ENTRIES
        self.ttl_s = ttl_s or Defaults.QR_CACHE_TTL_S
        self.timeout = timeout or Defaults.QR_FETCH_TIMEOUT
        self._owns_client = client is None
        self._client = client or httpx.Client()
        self._cache: "OrderedDict[str, dict]" = OrderedDict()

        self._cache_hits = 0
        self._cache_misses = 0

        logger.info(f"[QRCodeProvider] Initialized (endpoint: {self.endpoint})")

    def _get_cached(self, url: str) -> Optional[Image.Image]:
        entry = self._cache.get(url)
        if not entry:
            return None
        if time.time() - entry["timestamp"] > self.ttl_s:
            del self._cache[url]
            return None
        self._cache.move_to_end(url)
        self._cache_hits += 1
        return entry["image"]

    def _set_cached(self, url: str, image: Image.Image):
        self._cache[url] = {"image": image, "timestamp": time.time()}
        self._cache.move_to_end(url)
        while len(self._cache) > self.max_entries:
            self._cache.popitem(last=False)

    def _download(self, url: str) -> Optional[Image.Image]:
        size = Defaults.QR_IMAGE_SIZE
        response = self._client.get(
            self.endpoint,
            params={"size": f"{size}x{size}", "margin": 0, "data": url},
            timeout=self.timeout,
        )
        if response.status_code != 200:
            logger.warning(f"[QRCodeProvider] QR endpoint returned HTTP {response.status_code}")
            return None
        image = Image.open(io.BytesIO(response.content))
        image.load()
        return image.convert("RGB")

    async def fetch_code(self, url: Optional[str]) -> Optional[Image.Image]:
        """Return the QR image for url, or None when unavailable."""
        if not url:
            return None

        cached = self._get_cached(url)
        if cached is not None:
            return cached

        self._cache_misses += 1
        try:
            image = await asyncio.to_thread(self._download, url)
        except (httpx.HTTPError, OSError) as e:
            logger.warning(f"[QRCodeProvider] Failed to fetch QR code: {e}")
            return None

        if image is not None:
            self._set_cached(url, image)
        return image

    def get_stats(self) -> dict:
        return {
            "entries": len(self._cache),
            "hits": self._cache_hits,
            "misses": self._cache_misses,
        }

    def close(self):
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            self._client.close()


class FooterCompositor:
    """Draws the QR footer band at a given scale and locale."""

    def __init__(self, height: int = FOOTER_HEIGHT):
        self.height = height
        self._fonts = {}

    def _font(self, size: int, language: str):
        key = (size, language)
        if key not in self._fonts:
            self._fonts[key] = load_font(size, language)
        return self._fonts[key]

    def band_pixel_height(self, scale: float) -> int:
        return max(1, int(round(self.height * scale)))

    def _gradient(self, pw: int, ph: int, width: float, scale: float) -> Image.Image:
        # Linear gradient from the band's top-left to its bottom-right corner
        h = float(self.height)
        xs = (np.arange(pw) + 0.5) / scale
        ys = (np.arange(ph) + 0.5) / scale
        t = (xs[None, :] * width + ys[:, None] * h) / (width * width + h * h)
        t = np.clip(t, 0.0, 1.0)
        channels = [
            np.interp(t, GRADIENT_STOPS, [color[i] for color in GRADIENT_COLORS])
            for i in range(3)
        ]
        rgb = np.stack(channels, axis=-1).round().astype(np.uint8)
        return Image.fromarray(rgb, "RGB").convert("RGBA")

    def render_band(
        self,
        width: float,
        scale: float,
        qr_image: Optional[Image.Image] = None,
        language: str = "en",
    ) -> Image.Image:
        """
        Render the footer band for a content width (CSS px) at scale.

        Returns:
            RGB image of floor(width * scale) x round(FOOTER_HEIGHT * scale) pixels
        """
        pw = max(1, int(math.floor(width * scale)))
        ph = self.band_pixel_height(scale)

        def s(value: float) -> int:
            return int(round(value * scale))

        def rounded(draw, x, y, w, h, radius, fill):
            r = max(0, min(radius, min(w, h) / 2))
            draw.rounded_rectangle([s(x), s(y), s(x + w), s(y + h)], radius=s(r), fill=fill)

        band = self._gradient(pw, ph, max(1.0, float(width)), scale)

        # Decorative circles
        circles = Image.new("RGBA", band.size, (0, 0, 0, 0))
        cdraw = ImageDraw.Draw(circles)
        for cx, cy, r, color in (
            (max(84, width - 112), 56, 52, (0xFB, 0x92, 0x3C, 178)),
            (56, self.height - 32, 38, (0x25, 0x63, 0xEB, 178)),
        ):
            cdraw.ellipse([s(cx - r), s(cy - r), s(cx + r), s(cy + r)], fill=color)
        band = Image.alpha_composite(band, circles)

        card_x, card_y = 20, 20
        card_w = max(1, width - 40)
        card_h = self.height - 40

        # Card shadow
        shadow = Image.new("RGBA", band.size, (0, 0, 0, 0))
        rounded(ImageDraw.Draw(shadow), card_x, card_y + 12, card_w, card_h, 30, (15, 23, 42, 31))
        shadow = shadow.filter(ImageFilter.GaussianBlur(radius=max(1, s(14))))
        band = Image.alpha_composite(band, shadow)

        for alpha in (235, 209):
            card = Image.new("RGBA", band.size, (0, 0, 0, 0))
            rounded(ImageDraw.Draw(card), card_x, card_y, card_w, card_h, 30, (255, 255, 255, alpha))
            band = Image.alpha_composite(band, card)

        draw = ImageDraw.Draw(band)

        # QR frame
        qr_x = card_x + 26
        qr_y = card_y + (card_h - QR_FRAME_SIZE) // 2
        rounded(draw, qr_x, qr_y, QR_FRAME_SIZE, QR_FRAME_SIZE, 30, "#111827")
        rounded(draw, qr_x + 12, qr_y + 12, QR_FRAME_SIZE - 24, QR_FRAME_SIZE - 24, 20, "#ffffff")
        if qr_image is not None:
            inset = (QR_FRAME_SIZE - QR_SIZE) // 2
            code = qr_image.convert("RGBA").resize((s(QR_SIZE), s(QR_SIZE)), Image.Resampling.NEAREST)
            band.paste(code, (s(qr_x + inset), s(qr_y + inset)))
        else:
            rounded(draw, qr_x + 10, qr_y + 10, QR_FRAME_SIZE - 20, QR_FRAME_SIZE - 20, 18, "#e2e8f0")

        # Caption
        copy = get_footer_copy(language)
        text_x = qr_x + QR_FRAME_SIZE + 30
        text_width = max(120, card_x + card_w - text_x - 28)
        font_size = 26 if language == "zh" else 24
        font = self._font(max(1, s(font_size)), language)

        caption = fit_text(lambda t: draw.textlength(t, font=font), copy["helper"], text_width * scale)
        if caption:
            left, top, right, bottom = draw.textbbox((0, 0), caption, font=font)
            text_y = s(card_y) + (s(card_h) - (bottom - top)) / 2 - top
            draw.text((s(text_x), text_y), caption, font=font, fill="#334155")

        return band.convert("RGB")

    def draw_footer(
        self,
        target: Image.Image,
        top: int,
        width: float,
        scale: float,
        footer: Footer,
    ) -> Image.Image:
        """Paste a rendered band onto target at pixel row top."""
        band = self.render_band(width, scale, footer.qr_image, footer.language)
        if band.width != target.width:
            band = band.resize((target.width, band.height), Image.Resampling.BILINEAR)
        target.paste(band, (0, top))
        return target
