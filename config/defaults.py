"""
Longshot - Default Configuration Constants

Centralized configuration for the capture pipeline and the API server.
Values can be overridden via environment variables.

Usage:
    from config.defaults import Defaults
    interval = Defaults.MIN_CAPTURE_INTERVAL_MS
"""

import os
from dataclasses import dataclass, field
from typing import Tuple


@dataclass
class AppDefaults:
    """Application-wide default configuration."""

    # ==========================================================================
    # Server Settings
    # ==========================================================================
    SERVER_PORT: int = 8082
    SERVER_HOST: str = "0.0.0.0"

    # ==========================================================================
    # Viewport Acquisition (milliseconds)
    # ==========================================================================
    MIN_CAPTURE_INTERVAL_MS: int = 700  # Process-wide spacing between captures
    THROTTLE_RETRY_DELAYS_MS: Tuple[int, ...] = field(default=(800, 1200, 1600))

    # ==========================================================================
    # Page Settle Detection (milliseconds)
    # ==========================================================================
    PAGE_SETTLE_TIMEOUT_MS: int = 2200
    PAGE_SETTLE_BOTTOM_EXTRA_MS: int = 900  # Longer re-check at apparent bottom
    PAGE_SETTLE_STABLE_MS: int = 320
    PAGE_SETTLE_POLL_MS: int = 80
    SCROLL_SETTLE_DELAY_MS: int = 160

    # ==========================================================================
    # Scroll Stepping (CSS pixels)
    # ==========================================================================
    OVERLAP_MIN_PX: int = 80
    OVERLAP_RATIO: float = 0.15
    STEP_MIN_PX: int = 100
    EDGE_TOLERANCE_PX: int = 2
    MAX_CAPTURE_FRAMES: int = 400  # Safety limit for endless feeds
    MAX_STALLED_SCROLLS: int = 3  # Consecutive scrolls that did not move the page

    # ==========================================================================
    # Splitting / Footer
    # ==========================================================================
    BOUNDARY_MIN_GAP_PX: int = 40
    FOOTER_HEIGHT_PX: int = 220
    QR_ENDPOINT: str = "https://api.qrserver.com/v1/create-qr-code/"
    QR_IMAGE_SIZE: int = 180
    QR_FETCH_TIMEOUT: int = 8  # seconds
    QR_CACHE_MAX_ENTRIES: int = 64
    QR_CACHE_TTL_S: int = 3600

    # ==========================================================================
    # Sessions / Output
    # ==========================================================================
    SESSION_TTL_S: int = 2 * 60 * 60
    SESSION_SWEEP_INTERVAL_S: int = 300
    DATA_DIR: str = "data"
    OUTPUT_DIR: str = "data/longshot"
    FILE_PREFIX: str = "longshot"

    # ==========================================================================
    # Browser Driver
    # ==========================================================================
    BROWSER_VIEWPORT_WIDTH: int = 1280
    BROWSER_VIEWPORT_HEIGHT: int = 800
    BROWSER_DEVICE_SCALE_FACTOR: float = 1.0
    BROWSER_NAVIGATION_TIMEOUT_MS: int = 30000

    @classmethod
    def from_env(cls) -> "AppDefaults":
        """Create config from environment variables with defaults."""
        return cls(
            SERVER_PORT=int(os.getenv("SERVER_PORT", cls.SERVER_PORT)),
            SERVER_HOST=os.getenv("SERVER_HOST", cls.SERVER_HOST),
            MIN_CAPTURE_INTERVAL_MS=int(os.getenv("MIN_CAPTURE_INTERVAL_MS", cls.MIN_CAPTURE_INTERVAL_MS)),
            PAGE_SETTLE_TIMEOUT_MS=int(os.getenv("PAGE_SETTLE_TIMEOUT_MS", cls.PAGE_SETTLE_TIMEOUT_MS)),
            MAX_CAPTURE_FRAMES=int(os.getenv("MAX_CAPTURE_FRAMES", cls.MAX_CAPTURE_FRAMES)),
            SESSION_TTL_S=int(os.getenv("SESSION_TTL_S", cls.SESSION_TTL_S)),
            DATA_DIR=os.getenv("LONGSHOT_DATA_DIR", cls.DATA_DIR),
            OUTPUT_DIR=os.getenv("LONGSHOT_OUTPUT_DIR", cls.OUTPUT_DIR),
            FILE_PREFIX=os.getenv("LONGSHOT_FILE_PREFIX", cls.FILE_PREFIX),
            QR_ENDPOINT=os.getenv("QR_ENDPOINT", cls.QR_ENDPOINT),
        )


# Global defaults instance - can be overridden at runtime
Defaults = AppDefaults()


def load_defaults_from_env():
    """Reload defaults from environment variables."""
    global Defaults
    Defaults = AppDefaults.from_env()
    return Defaults
