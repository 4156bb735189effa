"""
asgi.py -- ASGI entry point for Gatekeeper.

Run with:  uvicorn asgi:app --reload
           uvicorn asgi:app --host 0.0.0.0 --port 8000 --workers 4

Kept separate from api/main.py so process managers and the CLI import the
same app object without pulling in anything else.
"""

from api.main import app

__all__ = ["app"]
