"""
Longshot - Session Store
Persists multi-part capture sessions (metadata + composed PNG) with a TTL,
and the last crop bounds chosen for a page.

Storage layout (default data/ directory):
- data/sessions/meta/captureMeta_<id>.json   session metadata
- data/sessions/blobs/<id>.png               composed image bytes
- data/crop_bounds.json                      last crop bounds + page URL
"""

import json
import logging
import re
import time
import uuid
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import ValidationError

from capture_models import CaptureSession, CropBounds
from config.defaults import Defaults

logger = logging.getLogger(__name__)

CAPTURE_META_PREFIX = "captureMeta_"


def _safe_key(key: str) -> str:
    """Sanitize a key for use as a filename"""
    return re.sub(r"[^A-Za-z0-9_.-]", "_", key)


def now_ms() -> int:
    return int(time.time() * 1000)


def new_session_id() -> str:
    """Timestamp plus a short random suffix, e.g. 1700000000000_a1b2c3"""
    return f"{now_ms()}_{uuid.uuid4().hex[:6]}"


class JsonKeyValueStore:
    """Key-value store holding one JSON document per key"""

    def __init__(self, storage_dir: str):
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.storage_dir / f"{_safe_key(key)}.json"

    def put(self, key: str, value: dict):
        with open(self._path(key), "w", encoding="utf-8") as f:
            json.dump(value, f, indent=2, default=str)

    def get(self, key: str) -> Optional[dict]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"[JsonKeyValueStore] Failed to read {key}: {e}")
            return None

    def delete(self, key: str):
        self._path(key).unlink(missing_ok=True)

    def keys(self, prefix: str = "") -> List[str]:
        safe_prefix = _safe_key(prefix)
        return sorted(p.stem for p in self.storage_dir.glob("*.json") if p.stem.startswith(safe_prefix))


class FileBlobStore:
    """Binary blob store, one file per key"""

    def __init__(self, storage_dir: str, suffix: str = ".png"):
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self.suffix = suffix

    def _path(self, key: str) -> Path:
        return self.storage_dir / f"{_safe_key(key)}{self.suffix}"

    def put(self, key: str, data: bytes):
        self._path(key).write_bytes(data)

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def delete(self, key: str):
        self._path(key).unlink(missing_ok=True)


class CaptureSessionStore:
    """
    Stores CaptureSessions for the split editor.

    Sessions are not removed after export, so the same session can be
    exported repeatedly until it expires. Expired sessions are deleted
    lazily on read or by cleanup_expired().
    """

    def __init__(
        self,
        kv_store: Optional[JsonKeyValueStore] = None,
        blob_store: Optional[FileBlobStore] = None,
        ttl_s: Optional[int] = None,
        data_dir: Optional[str] = None,
    ):
        data_dir = Path(data_dir or Defaults.DATA_DIR) / "sessions"
        self.kv_store = kv_store or JsonKeyValueStore(str(data_dir / "meta"))
        self.blob_store = blob_store or FileBlobStore(str(data_dir / "blobs"))
        self.ttl_ms = (ttl_s if ttl_s is not None else Defaults.SESSION_TTL_S) * 1000

        logger.info(f"[SessionStore] Initialized (ttl={self.ttl_ms // 1000}s)")

    @staticmethod
    def _meta_key(session_id: str) -> str:
        return f"{CAPTURE_META_PREFIX}{session_id}"

    def is_expired(self, session: CaptureSession, at_ms: Optional[int] = None) -> bool:
        return (at_ms if at_ms is not None else now_ms()) - (session.created_at or 0) > self.ttl_ms

    def save(self, session: CaptureSession, image_bytes: bytes):
        """Persist session metadata and its composed image"""
        self.kv_store.put(self._meta_key(session.id), session.model_dump(mode="json"))
        self.blob_store.put(session.id, image_bytes)
        logger.info(f"[SessionStore] Saved session {session.id} ({len(image_bytes)} bytes)")

    def get(self, session_id: str) -> Optional[CaptureSession]:
        """Return the session, or None if missing or expired (expired ones are deleted)"""
        if not session_id:
            return None
        data = self.kv_store.get(self._meta_key(session_id))
        if not data:
            return None
        try:
            session = CaptureSession(**data)
        except ValidationError as e:
            logger.error(f"[SessionStore] Corrupt session {session_id}: {e}")
            return None

        if self.is_expired(session):
            logger.info(f"[SessionStore] Session {session_id} expired")
            self.delete(session_id)
            return None
        return session

    def get_with_image(self, session_id: str) -> Optional[Tuple[CaptureSession, bytes]]:
        session = self.get(session_id)
        if session is None:
            return None
        image_bytes = self.blob_store.get(session_id)
        if image_bytes is None:
            logger.warning(f"[SessionStore] Session {session_id} has no image")
            return None
        return session, image_bytes

    def delete(self, session_id: str):
        self.kv_store.delete(self._meta_key(session_id))
        self.blob_store.delete(session_id)
        logger.debug(f"[SessionStore] Deleted session {session_id}")

    def list_session_ids(self) -> List[str]:
        prefix = _safe_key(CAPTURE_META_PREFIX)
        return [key[len(prefix):] for key in self.kv_store.keys(CAPTURE_META_PREFIX)]

    def cleanup_expired(self) -> int:
        """Delete every expired session. Returns the number removed."""
        removed = 0
        current = now_ms()
        for session_id in self.list_session_ids():
            data = self.kv_store.get(self._meta_key(session_id))
            try:
                session = CaptureSession(**data) if data else None
            except ValidationError:
                session = None
            if session is None or self.is_expired(session, current):
                self.delete(session_id)
                removed += 1
        if removed:
            logger.info(f"[SessionStore] Cleaned up {removed} expired sessions")
        return removed


class CropBoundsStore:
    """
    Remembers the last crop bounds together with the page URL they were set on.

    Bounds are returned only for the same page URL; any other page starts
    with empty bounds.
    """

    KEY = "lastCropBounds"

    def __init__(self, kv_store: Optional[JsonKeyValueStore] = None, data_dir: Optional[str] = None):
        self.kv_store = kv_store or JsonKeyValueStore(data_dir or Defaults.DATA_DIR)

    def save(self, page_url: str, bounds: Optional[CropBounds]) -> CropBounds:
        bounds = bounds or CropBounds()
        self.kv_store.put(self.KEY, {
            "bounds": bounds.model_dump(),
            "page_url": page_url,
            "saved_at": now_ms(),
        })
        logger.info(f"[CropBoundsStore] Saved bounds for {page_url}")
        return bounds

    def load(self, page_url: str) -> CropBounds:
        data = self.kv_store.get(self.KEY)
        if not data:
            return CropBounds()
        stored_url = data.get("page_url")
        if stored_url and stored_url != page_url:
            return CropBounds()
        try:
            return CropBounds(**(data.get("bounds") or {}))
        except ValidationError:
            return CropBounds()

    def clear(self):
        self.kv_store.delete(self.KEY)
