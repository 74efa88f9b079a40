"""Data models produced by the classifier gateway."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Tuple


@dataclass(frozen=True)
class AnalysisResult:
    """Sanitised risk assessment for one website."""

    summary: str
    risk_score: int
    reason: str
    category: str
    tags: Tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "risk_score": self.risk_score,
            "reason": self.reason,
            "category": self.category,
            "tags": list(self.tags),
        }


@dataclass(frozen=True)
class BackendFailure:
    """Why one classifier backend was skipped."""

    backend: str
    reason: str


@dataclass
class Classification:
    """A successful gateway call and the failures that preceded it."""

    result: AnalysisResult
    backend: str
    failures: List[BackendFailure] = field(default_factory=list)
