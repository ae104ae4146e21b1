from __future__ import annotations

from practice_research.models.schemas import ProviderRow
from practice_research.tools.web_utils import (
    epoch_to_iso,
    extract_domain,
    fetch_json,
    strip_tags,
    to_number,
)

PROVIDER_ID = "stackoverflow"
STACKEXCHANGE_SEARCH_URL = "https://api.stackexchange.com/2.3/search/advanced"


async def search(
    query: str,
    *,
    max_results: int = 4,
    min_score: float = 5,
    timeout_ms: int = 5000,
) -> list[ProviderRow]:
    """Search Stack Overflow questions sorted by votes."""
    payload = await fetch_json(
        STACKEXCHANGE_SEARCH_URL,
        provider=PROVIDER_ID,
        params={
            "order": "desc",
            "sort": "votes",
            "site": "stackoverflow",
            "pagesize": max_results,
            "q": query,
        },
        timeout_ms=timeout_ms,
    )

    items = payload.get("items", []) if isinstance(payload, dict) else []
    rows: list[ProviderRow] = []
    for item in items:
        if not isinstance(item, dict) or not item.get("link"):
            continue
        score = to_number(item.get("score"))
        if score < min_score:
            continue
        rows.append(
            ProviderRow(
                title=strip_tags(item.get("title")),
                url=item["link"],
                snippet="StackOverflow question",
                provider=PROVIDER_ID,
                published_at=epoch_to_iso(item.get("creation_date")),
                engagement={
                    "score": score,
                    "answers": to_number(item.get("answer_count")),
                },
                domain=extract_domain(item["link"]),
            )
        )
    return rows
