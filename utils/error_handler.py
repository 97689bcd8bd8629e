"""
Centralized Error Handling Module for Longshot

Provides consistent error responses, logging, and user-friendly messages.
"""

import logging
import traceback
from typing import Dict, Any, Optional
from fastapi import status
from fastapi.responses import JSONResponse

# Configure logging
logger = logging.getLogger("longshot")


# =============================================================================
# ERROR HINTS - User-friendly troubleshooting suggestions
# =============================================================================

ERROR_HINTS = {
    "invalid_url": {
        "message": "Invalid URL",
        "hint": "Use a full address including the scheme, for example https://example.com/page.",
    },
    "missing_identifier": {
        "message": "Missing required identifier",
        "hint": "Pass the session id or target page returned by the previous step.",
    },
    "unsupported_page": {
        "message": "This page is unsupported. Open an http/https page.",
        "hint": "Only http and https pages can be captured. Browser internal pages and local files are rejected.",
    },
    "missing_context": {
        "message": "Invalid tab/window context",
        "hint": "The page closed or lost its window before capture started. Reload it and try again.",
    },
    "capture_throttled": {
        "message": "Viewport capture is being rate limited",
        "hint": "Another capture is running. Wait a few seconds and capture again.",
    },
    "screenshot_failed": {
        "message": "Failed to capture screenshot",
        "hint": "The page may have navigated away or the browser closed during capture.",
    },
    "session_expired": {
        "message": "Capture session expired. Please capture again.",
        "hint": "Split sessions are kept for two hours. Run the capture again to get a new session.",
    },
    "timeout": {
        "message": "Operation timed out",
        "hint": "The page kept changing while loading. Try again once the page has finished loading.",
    },
}


def classify_error(error_message: str) -> str:
    """
    Classify an error message to determine the appropriate hint type.

    Args:
        error_message: The error message to classify

    Returns:
        Error type key for ERROR_HINTS lookup
    """
    msg = error_message.lower()

    if "expired" in msg or ("session" in msg and "not found" in msg):
        return "session_expired"
    if "invalid url" in msg:
        return "invalid_url"
    if "missing" in msg and ("id" in msg or "target" in msg):
        return "missing_identifier"
    if "unsupported" in msg:
        return "unsupported_page"
    if "tab" in msg or "window" in msg:
        return "missing_context"
    if "rate limit" in msg or "throttl" in msg or "per second" in msg:
        return "capture_throttled"
    if "timeout" in msg or "timed out" in msg:
        return "timeout"
    if "capture" in msg or "screenshot" in msg:
        return "screenshot_failed"

    # Default - no specific hint
    return ""


class LongshotError(Exception):
    """Base exception for all Longshot errors"""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class InvalidInputError(LongshotError):
    """Raised for malformed options or missing identifiers"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, code="INVALID_INPUT", details={"field": field})


class CaptureEnvironmentError(LongshotError):
    """Raised when the target page cannot be captured at all"""

    def __init__(self, message: str, page_url: Optional[str] = None):
        super().__init__(
            message, code="CAPTURE_ENVIRONMENT_ERROR", details={"page_url": page_url}
        )


class CaptureThrottledError(LongshotError):
    """Raised by viewport acquisition when called too many times per second"""

    def __init__(self, message: str = "Too many viewport captures per second"):
        super().__init__(message, code="CAPTURE_THROTTLED")


class ScreenshotCaptureError(LongshotError):
    """Raised when viewport capture fails for any other reason"""

    def __init__(self, message: str, window_handle: Optional[Any] = None):
        super().__init__(
            message,
            code="SCREENSHOT_CAPTURE_ERROR",
            details={"window_handle": str(window_handle) if window_handle is not None else None},
        )


class SessionExpiredError(LongshotError):
    """Raised when a split session is missing or past its TTL"""

    def __init__(self, session_id: str):
        super().__init__(
            "Capture session expired. Please capture again.",
            code="SESSION_EXPIRED",
            details={"session_id": session_id},
        )


def create_error_response(
    error: Exception,
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
    include_traceback: bool = False,
) -> JSONResponse:
    """
    Create a standardized error response

    Args:
        error: The exception that occurred
        status_code: HTTP status code
        include_traceback: Include full traceback in response (debug only)

    Returns:
        JSONResponse with error details
    """
    error_response = {
        "success": False,
        "error": {"message": str(error), "type": error.__class__.__name__},
    }

    if isinstance(error, LongshotError):
        error_response["error"]["code"] = error.code
        error_response["error"]["details"] = error.details

    hint_type = classify_error(str(error))
    if hint_type:
        error_response["error"]["hint"] = ERROR_HINTS[hint_type]["hint"]

    if include_traceback:
        error_response["error"]["traceback"] = traceback.format_exc()

    # Expected conditions are not worth a stack trace in the log
    if status_code >= 500:
        logger.error(f"{error.__class__.__name__}: {error}", exc_info=True)
    else:
        logger.warning(f"{error.__class__.__name__}: {error}")

    return JSONResponse(status_code=status_code, content=error_response)


def handle_api_error(error: Exception) -> JSONResponse:
    """
    Handle API errors with appropriate status codes

    Args:
        error: The exception to handle

    Returns:
        JSONResponse with appropriate status code
    """
    if isinstance(error, SessionExpiredError):
        return create_error_response(error, status.HTTP_404_NOT_FOUND)

    elif isinstance(error, (InvalidInputError, ValueError)):
        return create_error_response(error, status.HTTP_400_BAD_REQUEST)

    elif isinstance(error, CaptureEnvironmentError):
        return create_error_response(error, status.HTTP_422_UNPROCESSABLE_ENTITY)

    elif isinstance(error, CaptureThrottledError):
        return create_error_response(error, status.HTTP_429_TOO_MANY_REQUESTS)

    elif isinstance(error, ScreenshotCaptureError):
        return create_error_response(error, status.HTTP_500_INTERNAL_SERVER_ERROR)

    else:
        # Generic error
        return create_error_response(error, status.HTTP_500_INTERNAL_SERVER_ERROR)


def get_user_friendly_message(error: Exception) -> str:
    """
    Get a user-friendly error message for frontend or CLI display

    Args:
        error: The exception

    Returns:
        User-friendly error message
    """
    if isinstance(error, SessionExpiredError):
        return error.message

    elif isinstance(error, InvalidInputError):
        return f"Invalid input: {error.message}"

    elif isinstance(error, CaptureEnvironmentError):
        return error.message

    elif isinstance(error, CaptureThrottledError):
        return "The browser refused more captures right now. Please wait a moment and capture again."

    elif isinstance(error, ScreenshotCaptureError):
        return f"Failed to capture the page: {error.message}"

    else:
        return f"An unexpected error occurred: {str(error)}"


def create_success_response(
    data: Any = None,
    message: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create a standardized success response

    Args:
        data: The response data payload
        message: Optional success message

    Returns:
        Dict with success response format: {success: True, data: ..., message: ...}
    """
    response = {"success": True}

    if data is not None:
        response["data"] = data

    if message is not None:
        response["message"] = message

    return response
