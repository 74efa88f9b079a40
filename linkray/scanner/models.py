"""Data models for the scanner pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class NormalizedUrl:
    """A validated absolute ``http``/``https`` URL in canonical form."""

    url: str
    host: str

    def __str__(self) -> str:
        return self.url


@dataclass
class RawPage:
    """The raw HTTP response for a single URL fetch."""

    url: str
    html: str
    status_code: int
    content_type: str = ""


@dataclass
class CrawledPage:
    """One successfully fetched page of a crawl."""

    url: str
    raw_content: str


@dataclass
class PageFailure:
    """A page the crawler tried and skipped."""

    url: str
    reason: str


@dataclass
class CrawlResult:
    pages: List[CrawledPage] = field(default_factory=list)
    failures: List[PageFailure] = field(default_factory=list)
    visited: int = 0


@dataclass
class ExtractedContent:
    """Cleaned, readable text plus a title for one page or a whole site."""

    text: str
    title: str
