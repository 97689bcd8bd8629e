"""
Route Dependencies - Centralized dependency injection for route modules

This module provides a dependency injection pattern to avoid circular imports
and make route modules testable. All service instances are injected at startup.
"""

from dataclasses import dataclass
from typing import Callable, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    # Type hints only - avoid runtime circular imports
    from longshot_service import LongshotService
    from session_store import CropBoundsStore


@dataclass
class RouteDependencies:
    """
    Container for all dependencies needed by route modules

    Usage in route modules:
        from routes import get_deps

        @router.get("/endpoint")
        async def handler():
            deps = get_deps()
            session = deps.longshot_service.get_session(session_id)
    """

    # =========================================================================
    # CORE SERVICES (Always initialized)
    # =========================================================================
    longshot_service: "LongshotService"
    crop_bounds_store: "CropBoundsStore"

    # =========================================================================
    # OPTIONAL
    # =========================================================================
    # Async context manager factory: target_factory(url) -> CaptureTarget
    target_factory: Optional[Callable] = None


# Global dependencies instance (set once at startup)
_deps: Optional[RouteDependencies] = None


def set_dependencies(deps: RouteDependencies) -> None:
    """
    Set global dependencies (called once at server startup)

    Args:
        deps: RouteDependencies instance with all services initialized
    """
    global _deps
    _deps = deps


def get_deps() -> RouteDependencies:
    """
    Get dependencies for route handlers

    Raises:
        RuntimeError: If dependencies not initialized (call set_dependencies first)
    """
    if _deps is None:
        raise RuntimeError(
            "Dependencies not initialized. "
            "Call set_dependencies() in server startup before registering routes."
        )
    return _deps


# Export public API
__all__ = [
    "RouteDependencies",
    "set_dependencies",
    "get_deps",
]
