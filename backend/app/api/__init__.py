"""API routes for the video processing pipeline."""

from app.api import routes, websocket

__all__ = ["routes", "websocket"]
