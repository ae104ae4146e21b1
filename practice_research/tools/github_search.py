from __future__ import annotations

import re

from practice_research.models.schemas import ProviderRow
from practice_research.tools.web_utils import extract_domain, fetch_json, strip_tags, to_number

PROVIDER_ID = "github"
GITHUB_SEARCH_URL = "https://api.github.com/search/repositories"

_STARS_QUALIFIER_RE = re.compile(r"stars:\s*>")


def with_stars_qualifier(query: str, min_stars: float) -> str:
    if _STARS_QUALIFIER_RE.search(query):
        return query
    return f"{query} stars:>{int(min_stars)}"


async def search(
    query: str,
    *,
    max_results: int = 4,
    min_stars: float = 300,
    timeout_ms: int = 5000,
) -> list[ProviderRow]:
    """Search GitHub repositories sorted by stars."""
    payload = await fetch_json(
        GITHUB_SEARCH_URL,
        provider=PROVIDER_ID,
        params={
            "per_page": max_results,
            "sort": "stars",
            "order": "desc",
            "q": with_stars_qualifier(query, min_stars),
        },
        headers={"Accept": "application/vnd.github+json"},
        timeout_ms=timeout_ms,
    )

    items = payload.get("items", []) if isinstance(payload, dict) else []
    rows: list[ProviderRow] = []
    for item in items:
        if not isinstance(item, dict) or not item.get("html_url"):
            continue
        stars = to_number(item.get("stargazers_count"))
        if stars < min_stars:
            continue
        rows.append(
            ProviderRow(
                title=strip_tags(item.get("full_name") or item.get("name") or "GitHub Repository"),
                url=item["html_url"],
                snippet=strip_tags(item.get("description")),
                provider=PROVIDER_ID,
                published_at=item.get("updated_at") or None,
                engagement={
                    "stars": stars,
                    "forks": to_number(item.get("forks_count")),
                },
                domain=extract_domain(item["html_url"]),
            )
        )
    return rows
