"""Database layer package.

Public re-exports so callers can write::

    from linkray.db import get_connection, init_db, ScanStore
"""

from linkray.db.connection import get_connection
from linkray.db.migrations import init_db
from linkray.db.scans import ScanStore

__all__ = ["get_connection", "init_db", "ScanStore"]
