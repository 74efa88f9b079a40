"""Content extraction: turns raw markup into an :class:`ExtractedContent`."""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional
from urllib.parse import urldefrag, urljoin, urlsplit

from bs4 import BeautifulSoup

from linkray.config import settings
from linkray.scanner.models import CrawledPage, ExtractedContent

logger = logging.getLogger(__name__)

PLACEHOLDER_TITLE = "Unknown Website"
PAGE_DELIMITER = "\n---\n"
TITLE_SEPARATOR = " | "

# Elements that never contribute analyzable text.
_NOISE_TAGS = ["script", "style", "nav", "footer", "header", "iframe", "noscript", "svg"]

# Candidate containers for the main content.  The longest text wins; order
# only breaks ties.
_MAIN_SELECTORS = ("main", "article", '[role="main"]', "#content", ".content", "body")

_WHITESPACE_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _collapse(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def _extract_title(soup: BeautifulSoup) -> str:
    """Return the document title, or :data:`PLACEHOLDER_TITLE`."""
    tag = soup.find("title")
    title = _collapse(tag.get_text(" ")) if tag else ""
    return title or PLACEHOLDER_TITLE


def _main_text(soup: BeautifulSoup) -> str:
    best = ""
    for selector in _MAIN_SELECTORS:
        candidate = _collapse(" ".join(el.get_text(" ") for el in soup.select(selector)))
        if len(candidate) > len(best):
            best = candidate
    if not best:
        # Fragments parsed without a <body>.
        best = _collapse(soup.get_text(" "))
    return best


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_content(html: str, max_chars: Optional[int] = None) -> ExtractedContent:
    """Extract clean, readable text and the title from *html*.

    Non-content elements are stripped first, then the longest of the
    structural candidates is kept, whitespace-collapsed and truncated to
    ``max_chars`` (``settings.max_content_chars`` by default).
    """
    limit = settings.max_content_chars if max_chars is None else max_chars
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup(_NOISE_TAGS):
        tag.decompose()

    return ExtractedContent(text=_main_text(soup)[:limit], title=_extract_title(soup))


def is_analyzable(text: Optional[str]) -> bool:
    """Return ``True`` when *text* is long enough to be worth classifying."""
    return bool(text) and len(text) >= settings.min_content_chars


def extract_links(html: str, base_url: str) -> List[str]:
    """Return absolute, de-duplicated ``http(s)`` links found in *html*.

    Relative hrefs are resolved against *base_url* and fragments dropped.
    Hrefs that cannot be resolved are skipped.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    seen: set[str] = set()
    links: List[str] = []
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.startswith("#"):
            continue
        try:
            absolute, _ = urldefrag(urljoin(base_url, href))
            scheme = urlsplit(absolute).scheme
        except ValueError as exc:
            logger.debug("Skipping malformed link %r on %s: %s", href, base_url, exc)
            continue
        if scheme in ("http", "https") and absolute not in seen:
            seen.add(absolute)
            links.append(absolute)
    return links


def aggregate_pages(
    pages: Iterable[CrawledPage], max_chars: Optional[int] = None
) -> Optional[ExtractedContent]:
    """Merge several crawled pages into one :class:`ExtractedContent`.

    Each page's text is placed under a ``[<url>]`` section marker; pages
    whose own text is not analyzable are left out entirely.  Returns ``None``
    when no page survives.
    """
    limit = settings.max_content_chars if max_chars is None else max_chars
    sections: List[str] = []
    titles: List[str] = []
    for page in pages:
        content = extract_content(page.raw_content)
        if not is_analyzable(content.text):
            logger.debug("Dropping %s: only %d chars of text", page.url, len(content.text))
            continue
        sections.append(f"{PAGE_DELIMITER}[{page.url}]\n{content.text}")
        titles.append(content.title)

    if not sections:
        return None
    return ExtractedContent(
        text="".join(sections)[:limit],
        title=TITLE_SEPARATOR.join(titles),
    )
