"""HTTP API for sanctuary.

Public API:
    create_app -- FastAPI application factory
"""

from sanctuary.api.server import create_app

__all__ = ["create_app"]
