"""FastAPI HTTP layer package.

Public re-export so callers can write::

    from inquiry.api import app

    uvicorn inquiry.api:app --reload
"""

from inquiry.api.app import app

__all__ = ["app"]
