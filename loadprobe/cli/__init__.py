"""Command line interface for loadprobe."""

from .main import app

__all__ = ["app"]
