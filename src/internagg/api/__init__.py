"""HTTP API for external listings."""

from .app import create_app

__all__ = ["create_app"]
