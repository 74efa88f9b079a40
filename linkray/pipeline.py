"""Scan pipeline — one request from a raw URL to a risk assessment.

``ScanPipeline.run`` walks the stages in order::

    validating → cache_check → fetching → extracting → classifying
               → persisting → responding

``cache_check`` and ``persisting`` only run for an authenticated owner.  A
cache hit jumps straight to ``responding``.  Any stage can abort by raising a
:class:`~linkray.errors.ScanError`; the error records the stage it came from.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from time import time
from typing import Any, Callable, List, Optional, Union

from linkray.classifier.gateway import ClassifierGateway
from linkray.classifier.models import AnalysisResult
from linkray.config import settings
from linkray.db.models import ScanRecord, isoformat
from linkray.db.scans import ScanStore
from linkray.errors import FetchFailed, NoContent, ScanError
from linkray.scanner.crawler import crawl
from linkray.scanner.extractor import aggregate_pages, extract_content, is_analyzable
from linkray.scanner.fetcher import fetch_page
from linkray.scanner.models import CrawledPage, CrawlResult, ExtractedContent, NormalizedUrl, RawPage
from linkray.scanner.urls import fingerprint, normalize_url, screenshot_url

logger = logging.getLogger(__name__)

ANONYMOUS_ID = "anon"


class ScanDepth(str, Enum):
    PAGE = "page"    # one timed fetch of the URL itself
    QUICK = "quick"  # crawl capped at settings.quick_scan_max_pages
    DEEP = "deep"    # crawl capped at settings.deep_scan_max_pages


class ScanStage(str, Enum):
    VALIDATING = "validating"
    CACHE_CHECK = "cache_check"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    CLASSIFYING = "classifying"
    PERSISTING = "persisting"
    RESPONDING = "responding"


@dataclass
class ScanOutcome:
    """What the caller gets back: the assessment plus where it came from."""

    url: str
    url_hash: str
    depth: str
    result: AnalysisResult
    created_at: float
    from_cache: bool = False
    id: str = ANONYMOUS_ID
    user_id: str = ""

    @classmethod
    def from_record(cls, record: ScanRecord, from_cache: bool) -> "ScanOutcome":
        return cls(
            url=record.url,
            url_hash=record.url_hash,
            depth=record.depth,
            result=record.result,
            created_at=record.created_at,
            from_cache=from_cache,
            id=record.id,
            user_id=record.user_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "url": self.url,
            "url_hash": self.url_hash,
            "depth": self.depth,
            **self.result.to_dict(),
            "screenshot_url": screenshot_url(self.url),
            "created_at": isoformat(self.created_at),
            "from_cache": self.from_cache,
        }


class ScanPipeline:
    """Sequence normaliser, cache, fetcher/crawler, extractor and classifier.

    Args:
        store: Result store; ``None`` disables caching and persistence.
        gateway: Classifier gateway.
        fetch: Single-page fetcher (``page`` depth).  Defaults to
            :func:`~linkray.scanner.fetcher.fetch_page`.
        crawler: Bounded crawler (``quick`` / ``deep`` depth).  Defaults to
            :func:`~linkray.scanner.crawler.crawl`.
    """

    def __init__(
        self,
        store: Optional[ScanStore],
        gateway: ClassifierGateway,
        *,
        fetch: Optional[Callable[[str], RawPage]] = None,
        crawler: Optional[Callable[..., CrawlResult]] = None,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._fetch = fetch or fetch_page
        self._crawl = crawler or crawl

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _fetch_pages(
        self,
        url: NormalizedUrl,
        depth: ScanDepth,
        cancel_event: Optional[threading.Event],
    ) -> List[CrawledPage]:
        if depth is ScanDepth.PAGE:
            if cancel_event is not None and cancel_event.is_set():
                raise FetchFailed(detail="cancelled before fetch")
            raw = self._fetch(url.url)
            return [CrawledPage(url=url.url, raw_content=raw.html)]

        limit = (
            settings.quick_scan_max_pages
            if depth is ScanDepth.QUICK
            else settings.deep_scan_max_pages
        )
        crawled = self._crawl(url, limit, cancel_event=cancel_event)
        if not crawled.pages:
            raise FetchFailed(
                detail=f"no pages retrieved ({len(crawled.failures)} failure(s))"
            )
        return crawled.pages

    def _extract(self, pages: List[CrawledPage], depth: ScanDepth) -> ExtractedContent:
        if depth is ScanDepth.PAGE:
            content: Optional[ExtractedContent] = extract_content(pages[0].raw_content)
            if not is_analyzable(content.text):
                content = None
        else:
            content = aggregate_pages(pages)

        if content is None:
            raise NoContent(detail=f"nothing analyzable in {len(pages)} page(s)")
        return content

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(
        self,
        raw_url: str,
        *,
        user_id: Optional[str] = None,
        depth: Union[ScanDepth, str] = ScanDepth.PAGE,
        cancel_event: Optional[threading.Event] = None,
    ) -> ScanOutcome:
        """Scan *raw_url* and return a :class:`ScanOutcome`.

        Args:
            raw_url: URL as typed by the user; a missing scheme means https.
            user_id: Authenticated owner, or ``None`` for anonymous callers.
            depth: ``page``, ``quick`` or ``deep``.
            cancel_event: Set it to stop crawling before the next page.

        Raises:
            InvalidUrl: *raw_url* is not a usable http(s) URL.
            FetchFailed: The site could not be retrieved.
            NoContent: Pages were retrieved but hold no analyzable text.
            AnalysisFailed: Every classifier backend failed.
        """
        depth = ScanDepth(depth)
        owner = user_id or None
        use_store = owner is not None and self._store is not None
        stage = ScanStage.VALIDATING

        try:
            url = normalize_url(raw_url)
            url_hash = fingerprint(url)
            logger.debug("[%s] %s -> %s", stage.value, raw_url, url.url)

            if use_store:
                stage = ScanStage.CACHE_CHECK
                cached = self._store.lookup(url_hash, owner, depth.value)
                if cached is not None:
                    logger.info("Cache hit for %s (%s) owned by %s", url.url, depth.value, owner)
                    return ScanOutcome.from_record(cached, from_cache=True)

            stage = ScanStage.FETCHING
            logger.debug("[%s] %s (%s)", stage.value, url.url, depth.value)
            pages = self._fetch_pages(url, depth, cancel_event)

            stage = ScanStage.EXTRACTING
            content = self._extract(pages, depth)

            stage = ScanStage.CLASSIFYING
            logger.debug("[%s] %d chars titled %r", stage.value, len(content.text), content.title)
            classification = self._gateway.classify(content)

            outcome = ScanOutcome(
                url=url.url,
                url_hash=url_hash,
                depth=depth.value,
                result=classification.result,
                created_at=time(),
                user_id=owner or "",
            )

            if use_store:
                stage = ScanStage.PERSISTING
                record = self._store.save(
                    owner, url_hash, url.url, classification.result, depth.value
                )
                if record is None:
                    logger.warning("Returning unsaved result for %s", url.url)
                else:
                    outcome = ScanOutcome.from_record(record, from_cache=False)

            stage = ScanStage.RESPONDING
            return outcome

        except ScanError as exc:
            if exc.stage is None:
                exc.stage = stage.value
            logger.info(
                "Scan of %r aborted during %s: %s (%s)",
                raw_url,
                exc.stage,
                exc.user_message,
                exc.detail,
            )
            raise
