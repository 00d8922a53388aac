"""API routes for the video processing pipeline."""

from vidforge.api import routes, websocket

__all__ = ["routes", "websocket"]
