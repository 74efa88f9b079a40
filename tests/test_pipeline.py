"""Tests for the end-to-end scan pipeline.

Mocking strategy:
- The fetcher and crawler are injected as plain callables.
- The classifier gateway wraps a scripted backend; no LLM is contacted.
- The store is a real ``ScanStore`` on an in-memory SQLite database.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from typing import List, Optional
from unittest.mock import MagicMock

import pytest

from linkray.classifier.backends import ClassifierBackend
from linkray.classifier.gateway import ClassifierGateway
from linkray.config import settings
from linkray.db import ScanStore, get_connection, init_db
from linkray.errors import AnalysisFailed, FetchFailed, InvalidUrl, NoContent
from linkray.pipeline import ANONYMOUS_ID, ScanDepth, ScanOutcome, ScanPipeline
from linkray.scanner.fetcher import TIMEOUT_MESSAGE
from linkray.scanner.models import CrawledPage, CrawlResult, PageFailure, RawPage
from linkray.scanner.urls import fingerprint


# ---------------------------------------------------------------------------
# Fixtures / helpers
# ---------------------------------------------------------------------------

_EXAMPLE_HTML = (
    "<html><head><title>Example Domain</title></head><body><main>"
    "<p>This domain is for use in illustrative examples in documents. You may use "
    "this domain in literature without prior coordination or asking for permission.</p>"
    "</main></body></html>"
)

_REPLY = json.dumps({
    "summary": "Reserved example domain.",
    "risk_score": 92,
    "reason": "Maintained by IANA for documentation.",
    "category": "Reference",
    "tags": ["documentation"],
})


class ScriptedBackend(ClassifierBackend):
    def __init__(self, reply: str = _REPLY, error: Optional[Exception] = None) -> None:
        self.reply = reply
        self.error = error
        self.prompts: List[str] = []

    @property
    def name(self) -> str:
        return "scripted"

    def invoke(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


class RecordingFetch:
    def __init__(self, html: str = _EXAMPLE_HTML, error: Optional[Exception] = None) -> None:
        self.html = html
        self.error = error
        self.calls: List[str] = []

    def __call__(self, url: str) -> RawPage:
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return RawPage(url=url, html=self.html, status_code=200, content_type="text/html")


@pytest.fixture()
def store() -> ScanStore:
    conn = get_connection(":memory:")
    init_db(conn)
    yield ScanStore(conn)
    conn.close()


@pytest.fixture()
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture()
def fetch() -> RecordingFetch:
    return RecordingFetch()


@pytest.fixture()
def pipeline(store: ScanStore, backend: ScriptedBackend, fetch: RecordingFetch) -> ScanPipeline:
    return ScanPipeline(store, ClassifierGateway([backend]), fetch=fetch)


# ---------------------------------------------------------------------------
# Happy path and caching
# ---------------------------------------------------------------------------

class TestScanFlow:
    def test_fresh_scan_returns_assessment(
        self, pipeline: ScanPipeline, fetch: RecordingFetch
    ) -> None:
        outcome = pipeline.run("example.com", user_id="alice")

        assert isinstance(outcome, ScanOutcome)
        assert fetch.calls == ["https://example.com/"]
        assert outcome.url == "https://example.com/"
        assert outcome.url_hash == fingerprint("https://example.com/")
        assert outcome.result.risk_score == 92
        assert outcome.from_cache is False
        assert outcome.user_id == "alice"
        assert outcome.id != ANONYMOUS_ID

    def test_repeat_scan_served_from_cache(
        self, pipeline: ScanPipeline, fetch: RecordingFetch, backend: ScriptedBackend
    ) -> None:
        first = pipeline.run("example.com", user_id="alice")
        second = pipeline.run("https://EXAMPLE.com", user_id="alice")

        assert second.from_cache is True
        assert second.id == first.id
        assert second.result == first.result
        assert len(fetch.calls) == 1
        assert len(backend.prompts) == 1

    def test_cache_is_per_owner(
        self, pipeline: ScanPipeline, fetch: RecordingFetch
    ) -> None:
        pipeline.run("example.com", user_id="alice")
        outcome = pipeline.run("example.com", user_id="bob")
        assert outcome.from_cache is False
        assert len(fetch.calls) == 2

    def test_anonymous_scan_is_never_cached_or_saved(
        self, pipeline: ScanPipeline, fetch: RecordingFetch, store: ScanStore
    ) -> None:
        first = pipeline.run("example.com")
        second = pipeline.run("example.com", user_id="")

        assert first.id == second.id == ANONYMOUS_ID
        assert first.user_id == ""
        assert second.from_cache is False
        assert len(fetch.calls) == 2

    def test_runs_without_store(self, backend: ScriptedBackend, fetch: RecordingFetch) -> None:
        outcome = ScanPipeline(None, ClassifierGateway([backend]), fetch=fetch).run(
            "example.com", user_id="alice"
        )
        assert outcome.id == ANONYMOUS_ID
        assert outcome.user_id == "alice"

    def test_to_dict_shape(self, pipeline: ScanPipeline) -> None:
        data = pipeline.run("example.com", user_id="alice").to_dict()
        assert data["url"] == "https://example.com/"
        assert data["risk_score"] == 92
        assert data["tags"] == ["documentation"]
        assert data["depth"] == "page"
        assert data["from_cache"] is False
        assert data["screenshot_url"].startswith(settings.screenshot_service_url)
        assert "example.com" in data["screenshot_url"]
        assert data["created_at"].endswith("+00:00")


# ---------------------------------------------------------------------------
# Failure stages
# ---------------------------------------------------------------------------

class TestScanFailures:
    def test_invalid_url_aborts_before_any_work(
        self, pipeline: ScanPipeline, fetch: RecordingFetch, backend: ScriptedBackend
    ) -> None:
        with pytest.raises(InvalidUrl) as info:
            pipeline.run("not a url!!", user_id="alice")

        assert info.value.stage == "validating"
        assert info.value.status_code == 400
        assert fetch.calls == []
        assert backend.prompts == []

    def test_fetch_failure(self, store: ScanStore, backend: ScriptedBackend) -> None:
        fetch = RecordingFetch(error=FetchFailed(detail="HTTP 403 for https://example.com/"))
        pipeline = ScanPipeline(store, ClassifierGateway([backend]), fetch=fetch)

        with pytest.raises(FetchFailed) as info:
            pipeline.run("example.com", user_id="alice")

        assert info.value.stage == "fetching"
        assert info.value.user_message == "Failed to load website. It might be blocking bots."
        assert backend.prompts == []

    def test_fetch_timeout(self, store: ScanStore, backend: ScriptedBackend) -> None:
        fetch = RecordingFetch(error=FetchFailed(detail=TIMEOUT_MESSAGE, timed_out=True))
        pipeline = ScanPipeline(store, ClassifierGateway([backend]), fetch=fetch)

        with pytest.raises(FetchFailed) as info:
            pipeline.run("example.com")
        assert info.value.timed_out is True

    def test_thin_page_is_no_content(self, store: ScanStore, backend: ScriptedBackend) -> None:
        fetch = RecordingFetch(html="<html><body><p>Loading...</p></body></html>")
        pipeline = ScanPipeline(store, ClassifierGateway([backend]), fetch=fetch)

        with pytest.raises(NoContent) as info:
            pipeline.run("example.com", user_id="alice")

        assert info.value.stage == "extracting"
        assert info.value.status_code == 422
        assert backend.prompts == []

    def test_analysis_failure_saves_nothing(
        self, store: ScanStore, fetch: RecordingFetch
    ) -> None:
        failing = ScriptedBackend(error=RuntimeError("quota"))
        pipeline = ScanPipeline(store, ClassifierGateway([failing]), fetch=fetch)

        with pytest.raises(AnalysisFailed) as info:
            pipeline.run("example.com", user_id="alice")

        assert info.value.stage == "classifying"
        assert store.list_recent("alice") == []

    def test_save_failure_returns_unsaved_result(
        self, backend: ScriptedBackend, fetch: RecordingFetch
    ) -> None:
        store = MagicMock(spec=ScanStore)
        store.lookup.return_value = None
        store.save.return_value = None
        pipeline = ScanPipeline(store, ClassifierGateway([backend]), fetch=fetch)

        outcome = pipeline.run("example.com", user_id="alice")

        store.save.assert_called_once()
        assert outcome.id == ANONYMOUS_ID
        assert outcome.user_id == "alice"
        assert outcome.result.risk_score == 92

    def test_broken_database_still_scans(
        self, backend: ScriptedBackend, fetch: RecordingFetch
    ) -> None:
        conn = sqlite3.connect(":memory:")
        store = ScanStore(conn)  # schema never created
        pipeline = ScanPipeline(store, ClassifierGateway([backend]), fetch=fetch)

        outcome = pipeline.run("example.com", user_id="alice")
        assert outcome.result.risk_score == 92
        assert outcome.id == ANONYMOUS_ID
        conn.close()

    def test_cancelled_page_scan(self, pipeline: ScanPipeline, fetch: RecordingFetch) -> None:
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(FetchFailed):
            pipeline.run("example.com", cancel_event=cancel)
        assert fetch.calls == []


# ---------------------------------------------------------------------------
# Crawl depths
# ---------------------------------------------------------------------------

class TestCrawlDepths:
    @staticmethod
    def _crawler(pages: List[CrawledPage], failures: Optional[List[PageFailure]] = None):
        crawler = MagicMock(return_value=CrawlResult(pages=pages, failures=failures or []))
        return crawler

    def test_quick_scan_crawls_with_quick_cap(
        self, store: ScanStore, backend: ScriptedBackend, fetch: RecordingFetch
    ) -> None:
        crawler = self._crawler([
            CrawledPage(url="https://example.com/", raw_content=_EXAMPLE_HTML),
            CrawledPage(url="https://example.com/about", raw_content=_EXAMPLE_HTML),
        ])
        pipeline = ScanPipeline(store, ClassifierGateway([backend]), fetch=fetch, crawler=crawler)

        outcome = pipeline.run("example.com", user_id="alice", depth="quick")

        seed, limit = crawler.call_args.args
        assert seed.url == "https://example.com/"
        assert limit == settings.quick_scan_max_pages
        assert fetch.calls == []
        assert outcome.depth == "quick"
        assert "[https://example.com/about]" in backend.prompts[0]

    def test_deep_scan_uses_deep_cap(
        self, store: ScanStore, backend: ScriptedBackend
    ) -> None:
        crawler = self._crawler([CrawledPage(url="https://example.com/", raw_content=_EXAMPLE_HTML)])
        pipeline = ScanPipeline(store, ClassifierGateway([backend]), crawler=crawler)

        pipeline.run("example.com", depth=ScanDepth.DEEP)
        assert crawler.call_args.args[1] == settings.deep_scan_max_pages

    def test_crawl_with_no_pages_is_fetch_failure(
        self, store: ScanStore, backend: ScriptedBackend
    ) -> None:
        crawler = self._crawler([], [PageFailure(url="https://example.com/", reason="HTTP 500")])
        pipeline = ScanPipeline(store, ClassifierGateway([backend]), crawler=crawler)

        with pytest.raises(FetchFailed) as info:
            pipeline.run("example.com", depth="deep")
        assert info.value.stage == "fetching"

    def test_crawl_with_only_thin_pages_is_no_content(
        self, store: ScanStore, backend: ScriptedBackend
    ) -> None:
        crawler = self._crawler([CrawledPage(url="https://example.com/", raw_content="<p>hi</p>")])
        pipeline = ScanPipeline(store, ClassifierGateway([backend]), crawler=crawler)

        with pytest.raises(NoContent):
            pipeline.run("example.com", depth="quick")

    def test_cache_is_per_depth(
        self, store: ScanStore, backend: ScriptedBackend, fetch: RecordingFetch
    ) -> None:
        crawler = self._crawler([CrawledPage(url="https://example.com/", raw_content=_EXAMPLE_HTML)])
        pipeline = ScanPipeline(store, ClassifierGateway([backend]), fetch=fetch, crawler=crawler)

        pipeline.run("example.com", user_id="alice", depth="page")
        deep = pipeline.run("example.com", user_id="alice", depth="deep")
        again = pipeline.run("example.com", user_id="alice", depth="deep")

        assert deep.from_cache is False
        assert again.from_cache is True
        assert crawler.call_count == 1

    def test_unknown_depth_rejected(self, pipeline: ScanPipeline) -> None:
        with pytest.raises(ValueError):
            pipeline.run("example.com", depth="huge")
