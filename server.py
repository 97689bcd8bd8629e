"""
Longshot - FastAPI Server
Scrolling page capture, stitching and split export over HTTP.
"""

import asyncio
import logging
import os
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from browser_driver import open_browser_target
from capture_limiter import CaptureRateLimiter
from config.defaults import load_defaults_from_env
from footer_compositor import QRCodeProvider
from longshot_service import LongshotService
from routes import RouteDependencies, set_dependencies
from routes import longshot as longshot_routes
from scroll_capture import ScrollCaptureCoordinator
from session_store import CaptureSessionStore, CropBoundsStore

APP_VERSION = "0.1.0"

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='[%(asctime)s] %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

logger = logging.getLogger(__name__)

Defaults = load_defaults_from_env()

app = FastAPI(
    title="Longshot API",
    version=APP_VERSION,
    description="Scrolling page capture, stitching and split export"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log and return detailed validation errors"""
    logger.error(f"[VALIDATION ERROR] {request.method} {request.url}: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "detail": exc.errors(),
        }
    )


app.include_router(longshot_routes.router)

longshot_service: Optional[LongshotService] = None
_sweep_task: Optional[asyncio.Task] = None


async def session_sweep_loop(service: LongshotService, interval_s: int):
    """Periodically delete expired split sessions"""
    while True:
        await asyncio.sleep(interval_s)
        try:
            service.cleanup_expired()
        except OSError as e:
            logger.error(f"[Server] Session sweep failed: {e}")


@app.on_event("startup")
async def startup_event():
    """Wire the capture service and start the session sweeper"""
    global longshot_service, _sweep_task

    logger.info(f"[Server] Starting Longshot v{APP_VERSION}")

    # One limiter for the whole process: acquisition is rate limited globally
    limiter = CaptureRateLimiter(min_interval_ms=Defaults.MIN_CAPTURE_INTERVAL_MS)
    coordinator = ScrollCaptureCoordinator(
        limiter,
        settle_timeout_ms=Defaults.PAGE_SETTLE_TIMEOUT_MS,
        max_frames=Defaults.MAX_CAPTURE_FRAMES,
    )
    session_store = CaptureSessionStore(data_dir=Defaults.DATA_DIR, ttl_s=Defaults.SESSION_TTL_S)
    crop_bounds_store = CropBoundsStore(data_dir=Defaults.DATA_DIR)

    longshot_service = LongshotService(
        session_store=session_store,
        limiter=limiter,
        coordinator=coordinator,
        qr_provider=QRCodeProvider(endpoint=Defaults.QR_ENDPOINT),
        crop_bounds_store=crop_bounds_store,
        output_dir=Defaults.OUTPUT_DIR,
        file_prefix=Defaults.FILE_PREFIX,
    )

    set_dependencies(RouteDependencies(
        longshot_service=longshot_service,
        crop_bounds_store=crop_bounds_store,
        target_factory=open_browser_target,
    ))

    removed = longshot_service.cleanup_expired()
    logger.info(f"[Server] ✅ Capture service initialized ({removed} expired sessions removed)")

    _sweep_task = asyncio.create_task(
        session_sweep_loop(longshot_service, Defaults.SESSION_SWEEP_INTERVAL_S)
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    logger.info("[Server] Shutting down Longshot...")

    if _sweep_task:
        _sweep_task.cancel()

    if longshot_service:
        longshot_service.close()

    logger.info("[Server] Shutdown complete")


@app.api_route("/api/health", methods=["GET", "HEAD"])
async def health_check():
    """Health check endpoint"""
    return {
        "status": "ok",
        "version": APP_VERSION,
        "message": "Longshot is running",
    }


def main():
    port = int(os.getenv("PORT", Defaults.SERVER_PORT))

    logger.info(f"Starting Longshot v{APP_VERSION}")
    logger.info(f"API: http://localhost:{port}/api/longshot")

    uvicorn.run(
        app,
        host=Defaults.SERVER_HOST,
        port=port,
        log_level="info"
    )


if __name__ == "__main__":
    main()
