"""
Longshot - Command Line Capture

Usage:
    python capture_cli.py capture https://example.com --mode grid4 --footer-url https://example.com
    python capture_cli.py export 1700000000000_a1b2c3 --boundaries 900 1800 2700
    python capture_cli.py session 1700000000000_a1b2c3
    python capture_cli.py cleanup
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from browser_driver import open_browser_target
from capture_limiter import CaptureRateLimiter
from capture_models import CaptureRequest, CropBounds, FooterScope, OutputMode, OutputQuality
from config.defaults import load_defaults_from_env
from footer_compositor import QRCodeProvider
from longshot_service import LongshotService
from scroll_capture import ScrollCaptureCoordinator
from session_store import CaptureSessionStore, CropBoundsStore
from utils.error_handler import LongshotError, get_user_friendly_message

logger = logging.getLogger(__name__)


def build_service(defaults) -> LongshotService:
    limiter = CaptureRateLimiter(min_interval_ms=defaults.MIN_CAPTURE_INTERVAL_MS)
    return LongshotService(
        session_store=CaptureSessionStore(data_dir=defaults.DATA_DIR, ttl_s=defaults.SESSION_TTL_S),
        limiter=limiter,
        coordinator=ScrollCaptureCoordinator(
            limiter,
            settle_timeout_ms=defaults.PAGE_SETTLE_TIMEOUT_MS,
            max_frames=defaults.MAX_CAPTURE_FRAMES,
        ),
        qr_provider=QRCodeProvider(endpoint=defaults.QR_ENDPOINT),
        crop_bounds_store=CropBoundsStore(data_dir=defaults.DATA_DIR),
        output_dir=defaults.OUTPUT_DIR,
        file_prefix=defaults.FILE_PREFIX,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Capture a scrolling web page as one long image or N parts")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    capture = sub.add_parser("capture", help="Capture a page")
    capture.add_argument("url", help="Page URL (http/https)")
    capture.add_argument("--mode", default=OutputMode.LONG.value,
                         choices=[m.value for m in OutputMode], help="Output mode")
    capture.add_argument("--quality", default=OutputQuality.HIGH.value,
                         choices=[q.value for q in OutputQuality], help="Render scale preset")
    capture.add_argument("--max-height", type=float, default=0, help="Height cap in CSS px (0 = unlimited)")
    capture.add_argument("--left", type=float, help="Crop left edge")
    capture.add_argument("--right", type=float, help="Crop right edge")
    capture.add_argument("--top", type=float, help="Crop top edge")
    capture.add_argument("--bottom", type=float, help="Crop bottom edge")
    capture.add_argument("--footer-url", default="", help="URL encoded in the QR footer")
    capture.add_argument("--footer-scope", default=FooterScope.NONE.value,
                         choices=[s.value for s in FooterScope], help="Which parts get the footer")
    capture.add_argument("--language", default="en", choices=["en", "zh"], help="Footer caption language")
    capture.add_argument("--width", type=int, help="Browser viewport width")
    capture.add_argument("--height", type=int, help="Browser viewport height")
    capture.add_argument("--scale", type=float, help="Device scale factor")
    capture.add_argument("--export", action="store_true",
                         help="Export split sessions right away with default boundaries")

    export = sub.add_parser("export", help="Export a split session")
    export.add_argument("session_id")
    export.add_argument("--boundaries", type=float, nargs="*", help="Cut rows in CSS px")

    session = sub.add_parser("session", help="Show a split session")
    session.add_argument("session_id")

    sub.add_parser("cleanup", help="Delete expired split sessions")
    return parser


def _crop_bounds(args) -> Optional[CropBounds]:
    bounds = CropBounds(left=args.left, right=args.right, top=args.top, bottom=args.bottom)
    return None if bounds.is_empty() else bounds


async def run_capture(service: LongshotService, args) -> dict:
    request = CaptureRequest(
        crop_bounds=_crop_bounds(args),
        max_height=args.max_height,
        output_mode=args.mode,
        output_quality=args.quality,
        footer_url=args.footer_url,
        footer_scope=args.footer_scope,
        language=args.language,
    )
    async with open_browser_target(args.url, args.width, args.height, args.scale) as target:
        result = await service.run_capture(target, request)

    output = {
        "mode": result.mode,
        "files": result.files,
        "session_id": result.session_id,
        "grid_count": result.grid_count,
        "metadata": result.metadata,
    }
    if result.session_id and args.export:
        exported = await service.export_session(result.session_id)
        output["files"] = exported.files
    return output


async def run_export(service: LongshotService, session_id: str, boundaries: Optional[List[float]]) -> dict:
    result = await service.export_session(session_id, boundaries)
    return {"part_count": result.part_count, "files": result.files}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='[%(asctime)s] %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    defaults = load_defaults_from_env()
    service = build_service(defaults)

    try:
        if args.command == "capture":
            output = asyncio.run(run_capture(service, args))
        elif args.command == "export":
            output = asyncio.run(run_export(service, args.session_id, args.boundaries))
        elif args.command == "session":
            output = service.get_session(args.session_id).model_dump(mode="json")
        else:
            output = {"removed": service.cleanup_expired()}
    except LongshotError as e:
        print(get_user_friendly_message(e), file=sys.stderr)
        return 1
    finally:
        service.close()

    print(json.dumps(output, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
