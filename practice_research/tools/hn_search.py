from __future__ import annotations

from practice_research.models.schemas import ProviderRow
from practice_research.tools.web_utils import extract_domain, fetch_json, strip_tags, to_number

PROVIDER_ID = "hn"
HN_SEARCH_URL = "https://hn.algolia.com/api/v1/search"


async def search(
    query: str,
    *,
    max_results: int = 4,
    min_points: float = 5,
    timeout_ms: int = 5000,
) -> list[ProviderRow]:
    """Search Hacker News stories through the Algolia API."""
    payload = await fetch_json(
        HN_SEARCH_URL,
        provider=PROVIDER_ID,
        params={"tags": "story", "hitsPerPage": max_results, "query": query},
        timeout_ms=timeout_ms,
    )

    hits = payload.get("hits", []) if isinstance(payload, dict) else []
    rows: list[ProviderRow] = []
    for hit in hits:
        if not isinstance(hit, dict):
            continue
        url = hit.get("url") or hit.get("story_url")
        points = to_number(hit.get("points"))
        if not url or points < min_points:
            continue
        rows.append(
            ProviderRow(
                title=strip_tags(hit.get("title") or hit.get("story_title") or "HN Story"),
                url=url,
                snippet="Hacker News discussion",
                provider=PROVIDER_ID,
                published_at=hit.get("created_at") or None,
                engagement={
                    "points": points,
                    "comments": to_number(hit.get("num_comments")),
                },
                domain=extract_domain(url),
            )
        )
    return rows
