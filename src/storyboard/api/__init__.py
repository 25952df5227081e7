"""FastAPI application exposing the storyboard editor."""

from .app import create_app

__all__ = ["create_app"]
