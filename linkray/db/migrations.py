"""Database initialisation.

``init_db(conn)`` is idempotent — safe to call on an existing database.
"""

from __future__ import annotations

import sqlite3

from linkray.config import settings


def init_db(conn: sqlite3.Connection) -> None:
    """Create the ``scans`` table and its indexes.

    Every DDL statement in ``schema.sql`` uses ``IF NOT EXISTS`` so calling
    this on an initialised database is safe.
    """
    conn.executescript(settings.schema_path.read_text(encoding="utf-8"))
