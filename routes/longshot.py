"""
Longshot Routes - Capture, Split Sessions and Crop Bounds

Provides endpoints for the capture pipeline:
- Run a capture of a URL (one long image, or a split session)
- Inspect, export and delete split sessions
- Sweep expired sessions
- Remember crop bounds per page URL

Errors are returned in the standard error envelope with a hint
(see utils.error_handler.handle_api_error).
"""

import base64
import logging
from dataclasses import asdict
from typing import Any, List, Optional

from fastapi import APIRouter
from pydantic import BaseModel

from capture_models import CaptureRequest, CropBounds
from routes import get_deps
from utils.error_handler import (
    CaptureEnvironmentError,
    InvalidInputError,
    LongshotError,
    create_success_response,
    handle_api_error,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/longshot", tags=["longshot"])


class CapturePageRequest(CaptureRequest):
    """Capture options plus the page to open"""
    url: str = ""


class ExportRequest(BaseModel):
    boundaries: Optional[List[Any]] = None


class CropBoundsRequest(BaseModel):
    page_url: str
    bounds: Optional[CropBounds] = None


# =============================================================================
# CAPTURE
# =============================================================================

@router.post("/capture")
async def capture_page(request: CapturePageRequest):
    """
    Open request.url in the browser and capture it.

    Returns mode "downloaded" with the written file, or "needs_split_editor"
    with the session id to export later.
    """
    deps = get_deps()
    try:
        if not request.url:
            raise InvalidInputError("Missing page URL", field="url")
        if deps.target_factory is None:
            raise CaptureEnvironmentError("No browser available", page_url=request.url)

        logger.info(f"[API] Capture requested for {request.url}")
        async with deps.target_factory(request.url) as target:
            result = await deps.longshot_service.run_capture(target, request)

        return create_success_response(asdict(result))
    except LongshotError as e:
        return handle_api_error(e)
    except Exception as e:
        logger.error(f"[API] Capture failed: {e}")
        return handle_api_error(e)


# =============================================================================
# SPLIT SESSIONS
# =============================================================================

@router.get("/sessions/{session_id}")
async def get_session(session_id: str, include_image: bool = False):
    """Session metadata (and optionally the composed image as a data URL) for the split editor"""
    deps = get_deps()
    try:
        session = deps.longshot_service.get_session(session_id)
        data = session.model_dump(mode="json")
        data["content_height"] = session.content_height
        if include_image:
            image_bytes = deps.longshot_service.get_session_image(session_id)
            data["image_data_url"] = "data:image/png;base64," + base64.b64encode(image_bytes).decode("ascii")
        return create_success_response(data)
    except LongshotError as e:
        return handle_api_error(e)


@router.post("/sessions/{session_id}/export")
async def export_session(session_id: str, request: Optional[ExportRequest] = None):
    """Split a session at the given boundaries (CSS px) and write the parts"""
    deps = get_deps()
    try:
        boundaries = request.boundaries if request else None
        result = await deps.longshot_service.export_session(session_id, boundaries)
        logger.info(f"[API] Exported session {session_id}: {result.part_count} parts")
        return create_success_response(asdict(result))
    except LongshotError as e:
        return handle_api_error(e)
    except Exception as e:
        logger.error(f"[API] Export failed: {e}")
        return handle_api_error(e)


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    deps = get_deps()
    try:
        deps.longshot_service.delete_session(session_id)
        return create_success_response(message=f"Session {session_id} deleted")
    except LongshotError as e:
        return handle_api_error(e)


@router.post("/sessions/cleanup")
async def cleanup_sessions():
    """Delete all expired sessions"""
    deps = get_deps()
    removed = deps.longshot_service.cleanup_expired()
    return create_success_response({"removed": removed})


# =============================================================================
# CROP BOUNDS
# =============================================================================

@router.get("/crop-bounds")
async def get_crop_bounds(page_url: str):
    """Last crop bounds saved for page_url (empty when saved for another page)"""
    deps = get_deps()
    bounds = deps.crop_bounds_store.load(page_url)
    return create_success_response({"page_url": page_url, "bounds": bounds.model_dump()})


@router.put("/crop-bounds")
async def save_crop_bounds(request: CropBoundsRequest):
    deps = get_deps()
    bounds = deps.crop_bounds_store.save(request.page_url, request.bounds)
    return create_success_response({"page_url": request.page_url, "bounds": bounds.model_dump()})


@router.get("/stats")
async def get_stats():
    deps = get_deps()
    return create_success_response(deps.longshot_service.get_stats())
