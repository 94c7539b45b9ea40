"""HTTP API over the event catalogue."""

from .app import create_app

__all__ = ["create_app"]
