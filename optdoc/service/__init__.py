"""HTTP service mode for expanding and rendering records."""

from .app import create_app, run_service

__all__ = ["create_app", "run_service"]
