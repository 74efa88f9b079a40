"""Error taxonomy for a scan request.

Every error carries a short ``user_message`` that is safe to show to the
caller and an HTTP-style ``status_code``.  ``detail`` holds the technical
cause for logs only.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from linkray.classifier.models import BackendFailure


class ScanError(Exception):
    """Base class for errors that abort a scan."""

    status_code = 500
    default_message = "Internal Server Error"

    def __init__(
        self,
        user_message: Optional[str] = None,
        detail: str = "",
        stage: Optional[str] = None,
    ):
        self.user_message = user_message or self.default_message
        self.detail = detail
        self.stage = stage
        super().__init__(detail or self.user_message)


class InvalidUrl(ScanError):
    status_code = 400
    default_message = "Invalid URL"


class FetchFailed(ScanError):
    default_message = "Failed to load website. It might be blocking bots."

    def __init__(
        self,
        user_message: Optional[str] = None,
        detail: str = "",
        stage: Optional[str] = None,
        timed_out: bool = False,
    ):
        super().__init__(user_message, detail, stage)
        self.timed_out = timed_out


class NoContent(ScanError):
    status_code = 422
    default_message = "Website has no readable content."


class AnalysisFailed(ScanError):
    default_message = (
        "AI analysis failed. This is likely due to API quota limits or "
        "service issues. Please try again later."
    )

    def __init__(
        self,
        failures: Sequence["BackendFailure"] = (),
        user_message: Optional[str] = None,
        stage: Optional[str] = None,
    ):
        self.failures = list(failures)
        detail = "; ".join(f"{f.backend}: {f.reason}" for f in self.failures)
        super().__init__(user_message, detail or "no classifier backends configured", stage)


class InternalError(ScanError):
    pass
