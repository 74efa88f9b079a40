"""Result cache / store for the ``scans`` table.

Storage errors never escape this module: a failed lookup reads as a cache
miss, a failed save returns ``None`` and a failed listing returns ``[]``.
Rows whose tags column cannot be decoded are treated as absent.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid
from time import time
from typing import Optional

from linkray.classifier.models import AnalysisResult
from linkray.config import settings
from linkray.db.models import ScanRecord

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _decode_tags(raw: Optional[str]) -> list[str]:
    tags = json.loads(raw or "[]")
    if not isinstance(tags, list):
        raise ValueError(f"tags column holds {type(tags).__name__}, not a list")
    return [str(t) for t in tags]


def _row_to_scan(row: sqlite3.Row) -> ScanRecord:
    """Build a record from *row*; raises ``ValueError`` on a corrupt tags column."""
    return ScanRecord(
        id=row["id"],
        user_id=row["user_id"],
        url_hash=row["url_hash"],
        url=row["url"],
        depth=row["depth"],
        summary=row["summary"],
        risk_score=row["risk_score"],
        reason=row["reason"],
        category=row["category"],
        tags=_decode_tags(row["tags"]),
        created_at=row["created_at"],
    )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class ScanStore:
    """Owner-scoped scan storage with a freshness window for cache hits.

    One connection may be shared by request threads; the store serialises
    access to it.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        ttl_seconds: Optional[float] = None,
    ) -> None:
        self._conn = conn
        self._ttl = settings.cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._lock = threading.Lock()

    def lookup(
        self,
        url_hash: str,
        user_id: Optional[str],
        depth: str = "page",
        now: Optional[float] = None,
    ) -> Optional[ScanRecord]:
        """Return the newest fresh scan of *url_hash* owned by *user_id*.

        Anonymous callers (``user_id`` empty or ``None``) never get a hit.
        """
        if not user_id:
            return None
        cutoff = (time() if now is None else now) - self._ttl
        try:
            with self._lock:
                row = self._conn.execute(
                    """
                    SELECT * FROM scans
                    WHERE user_id = ? AND url_hash = ? AND depth = ? AND created_at >= ?
                    ORDER BY created_at DESC, rowid DESC
                    LIMIT 1
                    """,
                    (user_id, url_hash, depth, cutoff),
                ).fetchone()
            return _row_to_scan(row) if row else None
        except (sqlite3.Error, ValueError) as exc:
            logger.error("Error fetching cached scan: %s", exc)
            return None

    def save(
        self,
        user_id: str,
        url_hash: str,
        url: str,
        result: AnalysisResult,
        depth: str = "page",
        now: Optional[float] = None,
    ) -> Optional[ScanRecord]:
        """Insert a new scan row and return it, or ``None`` on storage failure.

        Earlier rows for the same ``(user_id, url_hash)`` are left in place.
        """
        record = ScanRecord(
            id=str(uuid.uuid4()),
            user_id=user_id,
            url_hash=url_hash,
            url=url,
            depth=depth,
            summary=result.summary,
            risk_score=result.risk_score,
            reason=result.reason,
            category=result.category,
            tags=list(result.tags),
            created_at=time() if now is None else now,
        )
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    """
                    INSERT INTO scans (id, user_id, url_hash, url, depth, summary,
                                       risk_score, reason, category, tags, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.id,
                        record.user_id,
                        record.url_hash,
                        record.url,
                        record.depth,
                        record.summary,
                        record.risk_score,
                        record.reason,
                        record.category,
                        json.dumps(record.tags),
                        record.created_at,
                    ),
                )
        except sqlite3.Error as exc:
            logger.error("Error saving scan for %s: %s", url, exc)
            return None
        return record

    def list_recent(self, user_id: Optional[str], limit: int = 10) -> list[ScanRecord]:
        """Return *user_id*'s scans, newest first, at most *limit* of them."""
        if not user_id:
            return []
        try:
            with self._lock:
                rows = self._conn.execute(
                    """
                    SELECT * FROM scans
                    WHERE user_id = ?
                    ORDER BY created_at DESC, rowid DESC
                    LIMIT ?
                    """,
                    (user_id, max(0, limit)),
                ).fetchall()
        except sqlite3.Error as exc:
            logger.error("Error fetching recent scans: %s", exc)
            return []
        logger.debug("list_recent returned %d row(s) for %s", len(rows), user_id)
        records: list[ScanRecord] = []
        for row in rows:
            try:
                records.append(_row_to_scan(row))
            except ValueError as exc:
                logger.warning("Skipping unreadable scan %s: %s", row["id"], exc)
        return records
