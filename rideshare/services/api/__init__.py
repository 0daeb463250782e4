# rideshare/services/api/__init__.py
"""
HTTP API (FastAPI).
"""

from rideshare.services.api.app import app, create_app

__all__ = ["app", "create_app"]
