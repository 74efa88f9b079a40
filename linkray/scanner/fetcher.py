"""HTTP fetcher for a single page with a hard timeout."""

from __future__ import annotations

import logging
import time
from contextlib import ExitStack
from typing import Optional

import httpx

from linkray.config import settings
from linkray.errors import FetchFailed
from linkray.scanner.models import RawPage

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Request timeout: Site took too long to respond"

_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


def default_headers() -> dict[str, str]:
    """Headers sent with every page request."""
    return {"User-Agent": settings.user_agent, "Accept": _ACCEPT}


class _DeadlineExceeded(Exception):
    pass


def _read_body(response: httpx.Response, deadline: float) -> bytes:
    """Read the streamed body, giving up once *deadline* has passed."""
    chunks: list[bytes] = []
    for chunk in response.iter_bytes():
        if time.monotonic() > deadline:
            raise _DeadlineExceeded
        chunks.append(chunk)
    return b"".join(chunks)


def fetch_page(
    url: str,
    *,
    timeout: Optional[float] = None,
    client: Optional[httpx.Client] = None,
) -> RawPage:
    """Fetch *url* and return a :class:`RawPage`.

    The budget covers the whole request, body included.  httpx enforces it
    per connect/read, and the body is streamed so a server trickling bytes
    is cut off once the deadline passes.

    Args:
        url: Absolute URL to fetch.
        timeout: Overall budget in seconds.  Defaults to ``settings.fetch_timeout``.
        client: Reuse an open client (the crawler shares one across pages).

    Raises:
        FetchFailed: On timeout (``timed_out=True``), transport errors and
            non-2xx responses.
    """
    budget = settings.fetch_timeout if timeout is None else timeout
    deadline = time.monotonic() + budget
    try:
        with ExitStack() as stack:
            if client is None:
                client = stack.enter_context(
                    httpx.Client(
                        headers=default_headers(),
                        timeout=budget,
                        follow_redirects=True,
                    )
                )
            response = stack.enter_context(client.stream("GET", url, timeout=budget))
            response.raise_for_status()
            body = _read_body(response, deadline)
    except (httpx.TimeoutException, _DeadlineExceeded) as exc:
        logger.warning("Timed out fetching %s after %.1fs", url, budget)
        raise FetchFailed(detail=TIMEOUT_MESSAGE, timed_out=True) from exc
    except httpx.HTTPStatusError as exc:
        status = exc.response.status_code
        raise FetchFailed(detail=f"HTTP {status} for {url}") from exc
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise FetchFailed(detail=f"{type(exc).__name__}: {exc}") from exc

    return RawPage(
        url=url,
        html=body.decode(response.encoding or "utf-8", errors="replace"),
        status_code=response.status_code,
        content_type=response.headers.get("content-type", ""),
    )
