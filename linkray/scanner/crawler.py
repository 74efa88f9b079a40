"""Bounded, same-host crawler.

Traversal is depth-first over an explicit stack.  A URL is marked visited
the moment it is claimed, so it is fetched at most once even if the fetch
fails, and the visited set never grows beyond ``max_pages``.

With ``concurrency > 1`` the crawler claims up to that many URLs per wave
and fetches them on a thread pool.  Claiming happens only in the calling
thread, which keeps check-and-mark atomic and the page cap exact.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import ExitStack
from functools import partial
from typing import Callable, List, Optional, Union
from urllib.parse import urlsplit

import httpx

from linkray.config import settings
from linkray.errors import FetchFailed
from linkray.scanner.extractor import extract_links
from linkray.scanner.fetcher import default_headers, fetch_page
from linkray.scanner.models import (
    CrawledPage,
    CrawlResult,
    NormalizedUrl,
    PageFailure,
    RawPage,
)
from linkray.scanner.urls import normalize_url

logger = logging.getLogger(__name__)

FetchFn = Callable[[str], RawPage]

_HTML_TYPES = ("text/html", "application/xhtml+xml", "text/plain")


class _Frontier:
    """Work stack plus visited set, bounded by *limit* claims."""

    def __init__(self, seed: str, limit: int) -> None:
        self._stack: List[str] = [seed]
        self._visited: set[str] = set()
        self._limit = limit

    @property
    def visited(self) -> int:
        return len(self._visited)

    def claim(self, count: int) -> List[str]:
        """Pop up to *count* unvisited URLs and mark them visited."""
        batch: List[str] = []
        while self._stack and len(batch) < count and len(self._visited) < self._limit:
            url = self._stack.pop()
            if url in self._visited:
                continue
            self._visited.add(url)
            batch.append(url)
        return batch

    def push(self, links: List[str]) -> None:
        # Reversed so the first link on the page is explored first.
        for link in reversed(links):
            if link not in self._visited:
                self._stack.append(link)


def _is_html(raw: RawPage) -> bool:
    content_type = raw.content_type.lower()
    return not content_type or any(t in content_type for t in _HTML_TYPES)


def _same_host_links(raw: RawPage, host: str) -> List[str]:
    links: List[str] = []
    for link in extract_links(raw.html, raw.url):
        try:
            link_host = urlsplit(link).hostname
        except ValueError:
            continue
        if link_host == host:
            links.append(link)
    return links


def _fetch_one(fetch: FetchFn, url: str) -> Union[RawPage, PageFailure]:
    logger.info("[crawler] Crawling: %s", url)
    try:
        raw = fetch(url)
    except FetchFailed as exc:
        reason = exc.detail or exc.user_message
    except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
        reason = f"{type(exc).__name__}: {exc}"
    else:
        if _is_html(raw):
            return raw
        reason = f"non-HTML content ({raw.content_type})"

    logger.warning("[crawler] Error crawling %s: %s", url, reason)
    return PageFailure(url=url, reason=reason)


def crawl(
    seed: Union[NormalizedUrl, str],
    max_pages: Optional[int] = None,
    *,
    fetch: Optional[FetchFn] = None,
    concurrency: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
) -> CrawlResult:
    """Crawl same-host pages reachable from *seed*.

    Args:
        seed: Start URL; plain strings are normalised first.
        max_pages: Hard ceiling on distinct URLs visited (fetched or failed).
            Defaults to ``settings.deep_scan_max_pages``.
        fetch: Page fetcher.  Defaults to :func:`fetch_page` on a shared
            client with ``settings.crawl_timeout``.
        concurrency: Fetches per wave.  Defaults to ``settings.crawl_concurrency``.
        cancel_event: When set, the crawl stops before the next fetch.

    Returns:
        A :class:`CrawlResult` holding the fetched pages in visit order and
        a :class:`PageFailure` for every page that was skipped.
    """
    if not isinstance(seed, NormalizedUrl):
        seed = normalize_url(seed)
    limit = settings.deep_scan_max_pages if max_pages is None else max_pages
    workers = max(1, concurrency or settings.crawl_concurrency)

    frontier = _Frontier(seed.url, limit)
    result = CrawlResult()

    with ExitStack() as stack:
        if fetch is None:
            client = stack.enter_context(
                httpx.Client(
                    headers=default_headers(),
                    timeout=settings.crawl_timeout,
                    follow_redirects=True,
                )
            )
            fetch = partial(fetch_page, client=client, timeout=settings.crawl_timeout)

        pool: Optional[ThreadPoolExecutor] = None
        if workers > 1:
            pool = stack.enter_context(ThreadPoolExecutor(max_workers=workers))

        while True:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("[crawler] Cancelled after %d page(s)", frontier.visited)
                break

            batch = frontier.claim(workers)
            if not batch:
                break

            if pool is None:
                outcomes = [_fetch_one(fetch, url) for url in batch]
            else:
                outcomes = list(pool.map(partial(_fetch_one, fetch), batch))

            fetched: List[RawPage] = []
            for url, outcome in zip(batch, outcomes):
                if isinstance(outcome, PageFailure):
                    result.failures.append(outcome)
                    continue
                result.pages.append(CrawledPage(url=url, raw_content=outcome.html))
                fetched.append(outcome)

            for raw in reversed(fetched):
                frontier.push(_same_host_links(raw, seed.host))

    result.visited = frontier.visited
    logger.info(
        "[crawler] Finished %s: %d page(s), %d failure(s)",
        seed.url,
        len(result.pages),
        len(result.failures),
    )
    return result
