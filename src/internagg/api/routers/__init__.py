"""API routers."""

from . import external

__all__ = ["external"]
