from __future__ import annotations

from practice_research.models.schemas import ProviderRow
from practice_research.tools.web_utils import (
    epoch_to_iso,
    extract_domain,
    fetch_json,
    strip_tags,
    to_number,
)

PROVIDER_ID = "reddit"
REDDIT_SEARCH_URL = "https://www.reddit.com/search.json"
SNIPPET_CHARS = 220


def build_reddit_query(query: str, subreddits: list[str]) -> str:
    if not subreddits:
        return query.strip()
    scope = " OR ".join(f"subreddit:{name}" for name in subreddits)
    return f"({scope}) {query}".strip()


async def search(
    query: str,
    *,
    max_results: int = 4,
    min_upvotes: float = 10,
    subreddits: list[str] | None = None,
    timeout_ms: int = 5000,
) -> list[ProviderRow]:
    """Search top Reddit posts of the past year, optionally scoped to subreddits."""
    payload = await fetch_json(
        REDDIT_SEARCH_URL,
        provider=PROVIDER_ID,
        params={
            "sort": "top",
            "t": "year",
            "limit": max_results,
            "q": build_reddit_query(query, subreddits or []),
        },
        timeout_ms=timeout_ms,
    )

    data = payload.get("data", {}) if isinstance(payload, dict) else {}
    children = data.get("children", []) if isinstance(data, dict) else []
    posts = [child.get("data") or {} for child in children if isinstance(child, dict)]

    rows: list[ProviderRow] = []
    for post in posts:
        upvotes = to_number(post.get("ups"))
        if not post.get("title") or upvotes < min_upvotes:
            continue

        subreddit = post.get("subreddit") or ""
        if post.get("permalink"):
            url = f"https://www.reddit.com{post['permalink']}"
        else:
            url = f"https://www.reddit.com/r/{subreddit or 'all'}"

        selftext = post.get("selftext")
        snippet = strip_tags(selftext)[:SNIPPET_CHARS] if selftext else f"r/{subreddit or 'unknown'}"
        rows.append(
            ProviderRow(
                title=strip_tags(post["title"]),
                url=url,
                snippet=snippet,
                provider=PROVIDER_ID,
                published_at=epoch_to_iso(post.get("created_utc")),
                engagement={
                    "upvotes": upvotes,
                    "comments": to_number(post.get("num_comments")),
                },
                domain=extract_domain(url),
            )
        )
    return rows
