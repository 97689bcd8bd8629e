"""
Error envelope, status mapping and user-facing messages
"""

import json

import pytest

from utils.error_handler import (
    CaptureEnvironmentError,
    CaptureThrottledError,
    InvalidInputError,
    ScreenshotCaptureError,
    SessionExpiredError,
    classify_error,
    create_success_response,
    get_user_friendly_message,
    handle_api_error,
)


@pytest.mark.parametrize("error, status", [
    (SessionExpiredError("abc"), 404),
    (InvalidInputError("Missing sessionId"), 400),
    (ValueError("bad number"), 400),
    (CaptureEnvironmentError("Invalid tab/window context"), 422),
    (CaptureThrottledError(), 429),
    (ScreenshotCaptureError("Screenshot failed"), 500),
    (RuntimeError("boom"), 500),
])
def test_status_codes(error, status):
    assert handle_api_error(error).status_code == status


def test_error_envelope():
    response = handle_api_error(SessionExpiredError("abc"))
    body = json.loads(response.body)

    assert body["success"] is False
    assert body["error"]["code"] == "SESSION_EXPIRED"
    assert body["error"]["details"] == {"session_id": "abc"}
    assert body["error"]["type"] == "SessionExpiredError"
    assert "two hours" in body["error"]["hint"]


@pytest.mark.parametrize("message, kind", [
    ("Capture session expired. Please capture again.", "session_expired"),
    ("Invalid URL", "invalid_url"),
    ("Missing tab id", "missing_identifier"),
    ("This page is unsupported. Open an http/https page.", "unsupported_page"),
    ("Invalid tab/window context", "missing_context"),
    ("Too many viewport captures per second", "capture_throttled"),
    ("Screenshot failed: Target closed", "screenshot_failed"),
    ("something else", ""),
])
def test_classify_error(message, kind):
    assert classify_error(message) == kind


def test_user_friendly_messages():
    assert get_user_friendly_message(SessionExpiredError("x")) == "Capture session expired. Please capture again."
    assert get_user_friendly_message(InvalidInputError("Invalid URL")) == "Invalid input: Invalid URL"
    assert "wait" in get_user_friendly_message(CaptureThrottledError())


def test_success_response():
    assert create_success_response({"a": 1}) == {"success": True, "data": {"a": 1}}
    assert create_success_response(message="done") == {"success": True, "message": "done"}
