"""REST API layer for autoheal.

Exposes:
    create_app -- FastAPI application factory.
    build_app  -- Alias for create_app (used by autoheal.app bootstrap).
"""

from autoheal.api.app import create_app

# The bootstrap in autoheal.app imports `build_app` from this package.
build_app = create_app

__all__ = ["build_app", "create_app"]
