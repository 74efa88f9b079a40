"""Scanner package — URL handling, fetch, crawl & content extraction."""

from linkray.scanner.crawler import crawl
from linkray.scanner.extractor import aggregate_pages, extract_content, is_analyzable
from linkray.scanner.fetcher import fetch_page
from linkray.scanner.models import (
    CrawledPage,
    CrawlResult,
    ExtractedContent,
    NormalizedUrl,
    PageFailure,
    RawPage,
)
from linkray.scanner.urls import fingerprint, normalize_url, screenshot_url

__all__ = [
    "crawl",
    "fetch_page",
    "extract_content",
    "aggregate_pages",
    "is_analyzable",
    "normalize_url",
    "fingerprint",
    "screenshot_url",
    "NormalizedUrl",
    "RawPage",
    "CrawledPage",
    "CrawlResult",
    "PageFailure",
    "ExtractedContent",
]
