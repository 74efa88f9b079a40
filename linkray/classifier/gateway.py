"""Classifier gateway with ordered backend failover.

Backends are tried in list order, each at most once per call.  The first
backend whose reply parses as a JSON object wins; its payload is sanitised
into an :class:`AnalysisResult`.  Each failure is logged and recorded as a
:class:`BackendFailure`.  When every backend fails the call raises
:class:`~linkray.errors.AnalysisFailed`; no placeholder result is made up.
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, List, Sequence

from linkray.classifier.backends import ClassifierBackend, ClassifierConfig, build_backends
from linkray.classifier.models import AnalysisResult, BackendFailure, Classification
from linkray.classifier.prompt import build_prompt
from linkray.errors import AnalysisFailed
from linkray.scanner.models import ExtractedContent

logger = logging.getLogger(__name__)

DEFAULT_SCORE = 50
MAX_TAGS = 5
SUMMARY_PLACEHOLDER = "Unable to generate summary"
REASON_PLACEHOLDER = "No explanation provided."
CATEGORY_PLACEHOLDER = "Unknown"

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


# ---------------------------------------------------------------------------
# Reply handling
# ---------------------------------------------------------------------------

def parse_reply(raw: Any) -> dict[str, Any]:
    """Decode a backend reply into a dict.

    Accepts bare JSON, JSON wrapped in a markdown code fence, or a reply
    with prose around the object (the first ``{...}`` is decoded).

    Raises:
        ValueError: If the reply is empty, not JSON, or not a JSON object.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError("empty reply")
    text = raw.strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        payload = json.loads(text)
    except ValueError:
        start = text.find("{")
        if start < 0:
            raise
        payload, _ = json.JSONDecoder().raw_decode(text, start)
    if not isinstance(payload, dict):
        raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
    return payload


def _score(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_SCORE
    if not math.isfinite(value):
        return DEFAULT_SCORE
    return max(0, min(100, int(round(value))))


def _text(value: Any, placeholder: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return placeholder


def _tags(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    tags = [t.strip() for t in value if isinstance(t, str) and t.strip()]
    return tuple(tags[:MAX_TAGS])


def sanitize(payload: dict[str, Any]) -> AnalysisResult:
    """Coerce a decoded reply into a valid :class:`AnalysisResult`."""
    return AnalysisResult(
        summary=_text(payload.get("summary"), SUMMARY_PLACEHOLDER),
        risk_score=_score(payload.get("risk_score")),
        reason=_text(payload.get("reason"), REASON_PLACEHOLDER),
        category=_text(payload.get("category"), CATEGORY_PLACEHOLDER),
        tags=_tags(payload.get("tags")),
    )


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

class ClassifierGateway:
    """Try backends in order; return the first usable classification."""

    def __init__(self, backends: Sequence[ClassifierBackend]) -> None:
        self._backends: List[ClassifierBackend] = list(backends)

    @classmethod
    def from_config(cls, config: ClassifierConfig) -> "ClassifierGateway":
        return cls(build_backends(config))

    @property
    def backend_names(self) -> List[str]:
        return [b.name for b in self._backends]

    def classify(self, content: ExtractedContent) -> Classification:
        """Classify *content*.

        Raises:
            AnalysisFailed: If every backend failed (or none is configured).
        """
        prompt = build_prompt(content)
        failures: List[BackendFailure] = []

        for backend in self._backends:
            logger.info("Attempting analysis with %s", backend.name)
            try:
                payload = parse_reply(backend.invoke(prompt))
            except Exception as exc:
                reason = f"{type(exc).__name__}: {exc}"
                logger.warning("Classifier backend %s failed: %s", backend.name, reason)
                failures.append(BackendFailure(backend=backend.name, reason=reason))
                continue

            result = sanitize(payload)
            logger.info(
                "Classified with %s (risk_score=%d) after %d failure(s)",
                backend.name,
                result.risk_score,
                len(failures),
            )
            return Classification(result=result, backend=backend.name, failures=failures)

        logger.error("All %d classifier backend(s) failed", len(self._backends))
        raise AnalysisFailed(failures)
