"""
asgi.py -- ASGI entry point for AccountGuard.

Servers import `app` from here rather than from api.main so the import path
stays stable if more layers are mounted later.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
