"""URL normalisation, fingerprinting and the preview-image template."""

from __future__ import annotations

import hashlib
import ipaddress
import re
from urllib.parse import quote, urlsplit, urlunsplit

from linkray.config import settings
from linkray.errors import InvalidUrl
from linkray.scanner.models import NormalizedUrl

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")
_HOST_RE = re.compile(r"^[a-z0-9_-]{1,63}(?:\.[a-z0-9_-]{1,63})*\.?$")
_DEFAULT_PORTS = {"http": 80, "https": 443}

# Characters left untouched when percent-encoding; "%" keeps encoding idempotent.
_PATH_SAFE = "/%:@!$&'()*+,;=~"
_QUERY_SAFE = _PATH_SAFE + "?"


def _canonical_host(hostname: str) -> str:
    """Return the lower-cased ASCII form of *hostname* or raise ``ValueError``."""
    if ":" in hostname:
        return f"[{ipaddress.IPv6Address(hostname).compressed}]"
    try:
        host = hostname.encode("idna").decode("ascii").lower()
    except UnicodeError as exc:
        raise ValueError(f"bad hostname {hostname!r}") from exc
    if not _HOST_RE.match(host):
        raise ValueError(f"bad hostname {hostname!r}")
    return host


def normalize_url(raw: str) -> NormalizedUrl:
    """Validate *raw* and return it in canonical form.

    A missing scheme defaults to ``https``.  Scheme and host are lower-cased,
    default ports and fragments are dropped and an empty path becomes ``/``.

    Raises:
        InvalidUrl: If *raw* cannot be parsed, has no valid host, or uses a
            scheme other than ``http``/``https``.
    """
    if not isinstance(raw, str):
        raise InvalidUrl(detail=f"expected a string, got {type(raw).__name__}")

    candidate = raw.strip()
    if not candidate:
        raise InvalidUrl(detail="empty URL")
    if not _SCHEME_RE.match(candidate):
        candidate = "https://" + candidate

    try:
        parts = urlsplit(candidate)
        scheme = parts.scheme.lower()
        if scheme not in _DEFAULT_PORTS:
            raise ValueError(f"unsupported scheme {scheme!r}")
        if not parts.hostname:
            raise ValueError("missing host")
        host = _canonical_host(parts.hostname)
        port = parts.port
    except ValueError as exc:
        raise InvalidUrl(detail=f"{raw!r}: {exc}") from exc

    netloc = host
    if port is not None and port != _DEFAULT_PORTS[scheme]:
        netloc = f"{host}:{port}"

    path = quote(parts.path, safe=_PATH_SAFE) or "/"
    query = quote(parts.query, safe=_QUERY_SAFE)
    url = urlunsplit((scheme, netloc, path, query, ""))
    return NormalizedUrl(url=url, host=host.strip("[]"))


def fingerprint(url: NormalizedUrl | str) -> str:
    """Return the 32-char MD5 hex digest used as the cache key for *url*."""
    key = str(url).lower().strip()
    return hashlib.md5(key.encode("utf-8")).hexdigest()


def screenshot_url(url: NormalizedUrl | str) -> str:
    """Build the preview-image URL for *url* (no network call)."""
    encoded = quote(str(url), safe="!~*'()")
    return (
        f"{settings.screenshot_service_url}?url={encoded}"
        "&screenshot=true&meta=false&embed=screenshot.url"
    )
