"""
asgi.py -- ASGI entry point for CourtStats.

Run with:  uvicorn asgi:app --reload

Kept separate from api/main.py so process managers have one stable import
path regardless of how the api/ package is organized.
"""

from api.main import app

__all__ = ["app"]
