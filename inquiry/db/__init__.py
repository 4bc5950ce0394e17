"""Document store package.

Public re-exports so callers can write::

    from inquiry.db import get_connection, init_db
"""

from inquiry.db.connection import get_connection, transaction
from inquiry.db.migrations import init_db

__all__ = ["get_connection", "init_db", "transaction"]
