"""Companion aiohttp server exposing /ping, /testfile and /upload."""

from .app import LinkThrottle, create_app, run_server

__all__ = ["LinkThrottle", "create_app", "run_server"]
