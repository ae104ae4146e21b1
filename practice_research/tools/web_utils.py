from __future__ import annotations

import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import httpx

from practice_research.config import settings
from practice_research.services.errors import ProviderError

_TAG_RE = re.compile(r"<[^>]*>")
_NON_WORD_RE = re.compile(r"[^a-z0-9\u4e00-\u9fa5\s-]")
_FRACTION_RE = re.compile(r"\.(\d+)(?=[+-]\d{2}:?\d{2}$|$)")

# tried in order when the value is not ISO-8601
DATE_FALLBACK_FORMATS = (
    "%Y/%m/%d",
    "%b %d %Y",
    "%B %d %Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
    "%a, %d %b %Y %H:%M:%S %z",
    "%a, %d %b %Y %H:%M:%S %Z",
)


def is_valid_url(url: str) -> bool:
    """Basic URL validation."""
    try:
        result = urlparse(url)
        return all([result.scheme in ("http", "https"), result.netloc])
    except ValueError:
        return False


def strip_tags(text: str | None) -> str:
    """Drop inline markup from provider titles and snippets, collapse whitespace."""
    return re.sub(r"\s+", " ", _TAG_RE.sub(" ", str(text or ""))).strip()


def tokenize(text: str | None) -> list[str]:
    """Lower-case word tokens of length >= 2; CJK characters are kept."""
    cleaned = _NON_WORD_RE.sub(" ", str(text or "").lower())
    return [token for token in cleaned.split() if len(token) >= 2]


def unique(values: list[str]) -> list[str]:
    """Order-preserving de-duplication that drops empty values."""
    return list(dict.fromkeys(value for value in values if value))


def extract_domain(url: str | None) -> str:
    """Host of a URL without a leading ``www.``; ``unknown`` when unparseable."""
    try:
        host = urlparse(str(url or "")).hostname
    except ValueError:
        return "unknown"
    if not host:
        return "unknown"
    host = host.lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def to_number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def epoch_to_iso(value: Any) -> str | None:
    seconds = to_number(value)
    if not seconds:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def parse_iso_datetime(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp, then a few common written date forms.

    Fractions of a second are cut to microseconds so any precision parses.
    Naive values are taken as UTC.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(lambda match: "." + match.group(1)[:6].ljust(6, "0"), text)

    parsed: datetime | None = None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        for fmt in DATE_FALLBACK_FORMATS:
            try:
                parsed = datetime.strptime(value.strip(), fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def domain_allowed(domain: str, allowed: list[str]) -> bool:
    if not allowed:
        return True
    return any(domain == item or domain.endswith(f".{item}") for item in allowed)


def sanitize_ssl_keylogfile() -> None:
    """Unset SSLKEYLOGFILE when it points to an unusable path.

    A globally exported keylog path that cannot be written makes httpx fail
    while building its SSL context, which would turn every provider call into
    a retry storm.
    """
    keylog_path = os.getenv("SSLKEYLOGFILE", "").strip()
    if not keylog_path:
        return

    try:
        path = Path(keylog_path)
        if not path.parent.exists():
            os.environ.pop("SSLKEYLOGFILE", None)
            return
        with open(path, "a", encoding="utf-8"):
            pass
    except OSError:
        os.environ.pop("SSLKEYLOGFILE", None)


def default_headers(accept: str = "application/json,*/*") -> dict[str, str]:
    return {
        "User-Agent": settings.user_agent,
        "Accept": accept,
    }


async def fetch_json(
    url: str,
    *,
    provider: str,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout_ms: int = 5000,
) -> Any:
    """GET a JSON document, mapping every transport failure to ProviderError."""
    sanitize_ssl_keylogfile()
    merged_headers = {**default_headers(), **(headers or {})}
    timeout_seconds = max(timeout_ms / 1000.0, 0.1)

    try:
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            response = await client.get(url, params=params, headers=merged_headers)
    except httpx.TimeoutException as exc:
        raise ProviderError(provider, f"Request timeout: {url}") from exc
    except httpx.HTTPError as exc:
        raise ProviderError(provider, f"Request failed for {url}: {exc}") from exc

    if response.status_code < 200 or response.status_code >= 300:
        raise ProviderError(provider, f"HTTP {response.status_code} when requesting {url}")

    try:
        return response.json()
    except ValueError as exc:
        raise ProviderError(provider, f"Invalid JSON response from {url}") from exc
