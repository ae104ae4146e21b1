"""Evidence extraction for the top ranked results.

Each page is fetched once, reduced to plain text and split into sentences;
the sentences that cover the most topic keywords become the result's
evidence. A failed fetch never drops the result, it only leaves its
evidence empty.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup
from loguru import logger

from practice_research.config import EnrichStage
from practice_research.models.schemas import CollectedResult, Evidence, EvidenceLink
from practice_research.services.errors import FetchError
from practice_research.tools.web_utils import default_headers, is_valid_url, sanitize_ssl_keylogfile, tokenize

MIN_SENTENCE_CHARS = 36
RECOMMENDATION_BONUS = 0.1
REDIRECT_STATUSES = {301, 302, 303, 307, 308}
TEXTUAL_CONTENT_MARKERS = ("text", "html", "json")

_SENTENCE_SPLIT_RE = re.compile(r"(?<=[。！？.!?])\s+")
_RECOMMENDATION_RE = re.compile(
    r"(best practice|recommended|should|must|avoid|pitfall|建议|必须|避免|最佳实践)",
    re.IGNORECASE,
)

Fetcher = Callable[[str], Awaitable[str]]


@dataclass(slots=True)
class FetchFailure:
    url: str
    message: str


@dataclass(slots=True)
class EnrichOutcome:
    results: list[CollectedResult]
    errors: list[FetchFailure] = field(default_factory=list)
    fetched_count: int = 0


# --- Fetching ---


async def fetch_text(
    url: str,
    *,
    client: httpx.AsyncClient,
    max_bytes: int = 200_000,
    max_redirects: int = 2,
) -> str:
    """GET a textual page, following at most ``max_redirects`` redirects."""
    current = url
    for _hop in range(max_redirects + 1):
        if not is_valid_url(current):
            raise FetchError(url, f"Unsupported URL: {current}")
        try:
            async with client.stream(
                "GET",
                current,
                headers=default_headers("text/html,text/plain,*/*"),
            ) as response:
                location = response.headers.get("location")
                if response.status_code in REDIRECT_STATUSES and location:
                    current = urljoin(current, location)
                    continue

                if response.status_code < 200 or response.status_code >= 300:
                    raise FetchError(url, f"HTTP {response.status_code}")

                content_type = response.headers.get("content-type", "").lower()
                if not any(marker in content_type for marker in TEXTUAL_CONTENT_MARKERS):
                    raise FetchError(url, f"Unsupported content-type: {content_type or 'unknown'}")

                body = bytearray()
                async for chunk in response.aiter_bytes():
                    remaining = max_bytes - len(body)
                    if remaining <= 0:
                        break
                    body.extend(chunk[:remaining])
                encoding = response.encoding or "utf-8"
                return body.decode(encoding, errors="replace")
        except httpx.TimeoutException as exc:
            raise FetchError(url, "Request timeout") from exc
        except httpx.HTTPError as exc:
            raise FetchError(url, str(exc) or exc.__class__.__name__) from exc

    raise FetchError(url, f"Too many redirects (>{max_redirects})")


# --- Text processing ---


def strip_html(html: str) -> str:
    """Visible text of a page with script/style removed and whitespace collapsed."""
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    text = soup.get_text(" ")
    return re.sub(r"\s+", " ", text.replace("\xa0", " ")).strip()


def split_sentences(text: str) -> list[str]:
    return [
        line.strip()
        for line in _SENTENCE_SPLIT_RE.split(text or "")
        if len(line.strip()) >= MIN_SENTENCE_CHARS
    ]


def compute_coverage(sentence: str, keywords: list[str]) -> float:
    if not keywords:
        return 0.0
    tokens = set(tokenize(sentence))
    return sum(1 for keyword in keywords if keyword in tokens) / len(keywords)


def score_sentence(sentence: str, keywords: list[str]) -> float:
    bonus = RECOMMENDATION_BONUS if _RECOMMENDATION_RE.search(sentence) else 0.0
    return min(1.0, compute_coverage(sentence, keywords) + bonus)


def _ellipsize(text: str, max_length: int) -> str:
    if max_length <= 0 or len(text) <= max_length:
        return text
    return text[: max_length - 1] + "…"


def pick_evidence_sentences(
    text: str,
    keywords: list[str],
    *,
    max_evidence: int = 2,
    min_coverage: float = 0.2,
    max_length: int = 240,
) -> list[Evidence]:
    candidates = [
        (sentence, compute_coverage(sentence, keywords), score_sentence(sentence, keywords))
        for sentence in split_sentences(text)
    ]
    candidates = [item for item in candidates if item[1] >= min_coverage]
    candidates.sort(key=lambda item: item[2], reverse=True)
    return [
        Evidence(text=_ellipsize(sentence, max_length), coverage=coverage, score=score)
        for sentence, coverage, score in candidates[: max(max_evidence, 0)]
    ]


# --- Stage ---


async def enrich_ranked_results(
    ranked: list[CollectedResult],
    keywords: list[str],
    stage: EnrichStage,
    *,
    fetcher: Fetcher | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> EnrichOutcome:
    if not stage.enabled or not ranked:
        return EnrichOutcome(results=list(ranked))

    results = list(ranked)
    errors: list[FetchFailure] = []
    limit = min(max(stage.max_fetch, 0), len(results))

    owns_client = fetcher is None and http_client is None
    if owns_client:
        sanitize_ssl_keylogfile()
        http_client = httpx.AsyncClient(timeout=max(stage.timeout_ms / 1000.0, 0.1))

    async def _default_fetch(url: str) -> str:
        assert http_client is not None
        return await fetch_text(url, client=http_client, max_bytes=stage.max_bytes)

    fetch = fetcher or _default_fetch
    try:
        for index in range(limit):
            item = results[index]
            try:
                raw = await fetch(item.url)
            except Exception as exc:
                message = str(exc) or exc.__class__.__name__
                logger.warning(f"Evidence fetch failed for {item.url}: {message}")
                errors.append(FetchFailure(url=item.url, message=message))
                results[index] = item.model_copy(update={"evidence": []})
                continue

            evidence = pick_evidence_sentences(
                strip_html(raw),
                keywords,
                max_evidence=stage.max_evidence_per_result,
                min_coverage=stage.min_coverage,
                max_length=stage.max_sentence_length,
            )
            results[index] = item.model_copy(update={"evidence": evidence})
    finally:
        if owns_client and http_client is not None:
            await http_client.aclose()

    return EnrichOutcome(results=results, errors=errors, fetched_count=limit)


def build_evidence_chain(
    results: list[CollectedResult],
    *,
    max_items: int = 5,
    max_evidence_per_item: int = 1,
) -> list[EvidenceLink]:
    chain: list[EvidenceLink] = []
    for item in results[:max_items]:
        for snippet in item.evidence[:max_evidence_per_item]:
            chain.append(
                EvidenceLink(title=item.title, url=item.url, excerpt=snippet.text, score=snippet.score)
            )
    return chain
