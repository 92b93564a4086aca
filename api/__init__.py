"""API Package.

FastAPI server for the fish farm intake pipeline.
"""

from api.server import create_app, app

__all__ = [
    "create_app",
    "app",
]
