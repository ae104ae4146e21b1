from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from practice_research.models.schemas import ProviderRow
from practice_research.services.errors import ProviderError
from practice_research.services.logger import log_provider_call
from practice_research.tools import (
    github_search,
    hn_search,
    official_docs,
    reddit_search,
    stackoverflow_search,
)
from practice_research.tools.web_utils import to_number

SUPPORTED_PROVIDERS = (
    official_docs.PROVIDER_ID,
    stackoverflow_search.PROVIDER_ID,
    hn_search.PROVIDER_ID,
    reddit_search.PROVIDER_ID,
    github_search.PROVIDER_ID,
)


@dataclass(slots=True)
class ProviderCall:
    """Everything a provider adapter may need for one request."""
    provider: str
    query: str
    max_results: int = 4
    timeout_ms: int = 5000
    subreddits: list[str] = field(default_factory=list)
    options: dict[str, Any] = field(default_factory=dict)
    docs: official_docs.OfficialDocsQuery = field(default_factory=official_docs.OfficialDocsQuery)


ProviderSearch = Callable[[ProviderCall], Awaitable[list[ProviderRow]]]


def _option(options: dict[str, Any], key: str, default: float) -> float:
    value = to_number(options.get(key))
    return value if value else default


async def search(call: ProviderCall) -> list[ProviderRow]:
    """Dispatch one request to the adapter for ``call.provider``."""
    options = call.options
    match call.provider:
        case official_docs.PROVIDER_ID:
            docs = call.docs
            docs.max_results = call.max_results
            docs.min_score = _option(options, "minScore", 0.2)
            if "stackBoostWeight" in options:
                docs.stack_boost_weight = _option(options, "stackBoostWeight", 0.2)
            rows = await official_docs.search(call.query, docs)
        case stackoverflow_search.PROVIDER_ID:
            rows = await stackoverflow_search.search(
                call.query,
                max_results=call.max_results,
                min_score=_option(options, "minScore", 5),
                timeout_ms=call.timeout_ms,
            )
        case hn_search.PROVIDER_ID:
            rows = await hn_search.search(
                call.query,
                max_results=call.max_results,
                min_points=_option(options, "minPoints", 5),
                timeout_ms=call.timeout_ms,
            )
        case reddit_search.PROVIDER_ID:
            rows = await reddit_search.search(
                call.query,
                max_results=call.max_results,
                min_upvotes=_option(options, "minUpvotes", 10),
                subreddits=call.subreddits,
                timeout_ms=call.timeout_ms,
            )
        case github_search.PROVIDER_ID:
            rows = await github_search.search(
                call.query,
                max_results=call.max_results,
                min_stars=_option(options, "minStars", 300),
                timeout_ms=call.timeout_ms,
            )
        case _:
            raise ProviderError(call.provider, f"Unsupported provider: {call.provider}")

    log_provider_call(call.provider, call.query, "success", rows=len(rows))
    return rows
