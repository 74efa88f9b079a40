"""Dataclass models representing DB rows.

These are plain Python objects – not ORM models.  The DB layer serialises /
deserialises to and from these types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from linkray.classifier.models import AnalysisResult


def isoformat(timestamp: float) -> str:
    """Render a Unix timestamp as an ISO-8601 UTC string."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


@dataclass
class ScanRecord:
    id: str
    user_id: str
    url_hash: str
    url: str
    depth: str
    summary: str
    risk_score: int
    reason: str
    category: str
    created_at: float
    tags: list[str] = field(default_factory=list)

    @property
    def result(self) -> AnalysisResult:
        return AnalysisResult(
            summary=self.summary,
            risk_score=self.risk_score,
            reason=self.reason,
            category=self.category,
            tags=tuple(self.tags),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "url_hash": self.url_hash,
            "url": self.url,
            "depth": self.depth,
            **self.result.to_dict(),
            "created_at": isoformat(self.created_at),
        }
