from __future__ import annotations

import json

import httpx
import pytest

from practice_research.services.errors import ProviderError
from practice_research.tools import (
    github_search,
    hn_search,
    official_docs,
    reddit_search,
    search_provider,
    stackoverflow_search,
)
from practice_research.tools.search_provider import ProviderCall
from practice_research.tools.web_utils import fetch_json


def _capture(monkeypatch, module, payload):
    captured: dict = {}

    async def fake_fetch_json(url, **kwargs):
        captured["url"] = url
        captured.update(kwargs)
        return payload

    monkeypatch.setattr(module, "fetch_json", fake_fetch_json)
    return captured


@pytest.mark.asyncio
async def test_stackoverflow_filters_by_score(monkeypatch):
    captured = _capture(
        monkeypatch,
        stackoverflow_search,
        {
            "items": [
                {
                    "title": "How to handle errors in <b>async</b> functions?",
                    "link": "https://stackoverflow.com/questions/1/errors",
                    "score": 42,
                    "answer_count": 3,
                    "creation_date": 1700000000,
                },
                {"title": "Low score", "link": "https://stackoverflow.com/questions/2", "score": 1},
            ]
        },
    )

    rows = await search_provider.search(
        ProviderCall(provider="stackoverflow", query="node errors", max_results=3, options={"minScore": 8})
    )

    assert captured["params"]["q"] == "node errors"
    assert captured["params"]["sort"] == "votes"
    assert captured["params"]["pagesize"] == 3
    assert len(rows) == 1
    row = rows[0]
    assert row.title == "How to handle errors in async functions?"
    assert row.domain == "stackoverflow.com"
    assert row.snippet == "StackOverflow question"
    assert row.engagement == {"score": 42, "answers": 3}
    assert row.published_at == "2023-11-14T22:13:20Z"


@pytest.mark.asyncio
async def test_hn_requires_url_and_points(monkeypatch):
    _capture(
        monkeypatch,
        hn_search,
        {
            "hits": [
                {"title": "Ask HN: no link", "points": 100},
                {"story_title": "Error handling in Go", "story_url": "https://go.dev/blog/errors", "points": 12},
                {"title": "Too quiet", "url": "https://example.com", "points": 2},
            ]
        },
    )

    rows = await hn_search.search("errors", min_points=5)

    assert [row.url for row in rows] == ["https://go.dev/blog/errors"]
    assert rows[0].title == "Error handling in Go"
    assert rows[0].domain == "go.dev"


def test_reddit_query_scopes_subreddits():
    assert reddit_search.build_reddit_query("hooks", ["react", "webdev"]) == (
        "(subreddit:react OR subreddit:webdev) hooks"
    )
    assert reddit_search.build_reddit_query(" hooks ", []) == "hooks"


@pytest.mark.asyncio
async def test_reddit_maps_posts(monkeypatch):
    captured = _capture(
        monkeypatch,
        reddit_search,
        {
            "data": {
                "children": [
                    {
                        "data": {
                            "title": "Node error handling patterns",
                            "permalink": "/r/node/comments/abc/patterns/",
                            "ups": 250,
                            "num_comments": 40,
                            "subreddit": "node",
                            "selftext": "x" * 300,
                            "created_utc": 1700000000,
                        }
                    },
                    {"data": {"title": "No permalink", "ups": 30, "subreddit": "webdev"}},
                    {"data": {"title": "Not enough votes", "ups": 3}},
                ]
            }
        },
    )

    rows = await reddit_search.search("errors", min_upvotes=20, subreddits=["node"])

    assert captured["params"]["q"] == "(subreddit:node) errors"
    assert [row.url for row in rows] == [
        "https://www.reddit.com/r/node/comments/abc/patterns/",
        "https://www.reddit.com/r/webdev",
    ]
    assert len(rows[0].snippet) == reddit_search.SNIPPET_CHARS
    assert rows[1].snippet == "r/webdev"
    assert rows[0].domain == "reddit.com"


@pytest.mark.asyncio
async def test_github_adds_stars_qualifier_once(monkeypatch):
    captured = _capture(
        monkeypatch,
        github_search,
        {
            "items": [
                {
                    "full_name": "goldbergyoni/nodebestpractices",
                    "html_url": "https://github.com/goldbergyoni/nodebestpractices",
                    "description": "The Node.js best practices list",
                    "stargazers_count": 99000,
                    "forks_count": 10000,
                    "updated_at": "2024-05-01T00:00:00Z",
                },
                {"full_name": "tiny/repo", "html_url": "https://github.com/tiny/repo", "stargazers_count": 5},
            ]
        },
    )

    rows = await github_search.search("node best practices", min_stars=300)

    assert captured["params"]["q"] == "node best practices stars:>300"
    assert len(rows) == 1
    assert rows[0].engagement == {"stars": 99000, "forks": 10000}
    assert github_search.with_stars_qualifier("x stars:>10", 300) == "x stars:>10"


@pytest.mark.asyncio
async def test_unknown_provider_raises():
    with pytest.raises(ProviderError, match="Unsupported provider"):
        await search_provider.search(ProviderCall(provider="bing", query="anything"))


@pytest.mark.asyncio
async def test_fetch_json_maps_http_failures(monkeypatch):
    monkeypatch.delenv("SSLKEYLOGFILE", raising=False)
    responses = iter(
        [
            httpx.Response(503, request=httpx.Request("GET", "https://api.example.com")),
            httpx.Response(200, content=b"not json", request=httpx.Request("GET", "https://api.example.com")),
            httpx.Response(200, json={"ok": True}, request=httpx.Request("GET", "https://api.example.com")),
        ]
    )

    async def fake_get(self, url, **kwargs):  # noqa: ARG001
        return next(responses)

    monkeypatch.setattr(httpx.AsyncClient, "get", fake_get)

    with pytest.raises(ProviderError, match="HTTP 503"):
        await fetch_json("https://api.example.com", provider="hn")
    with pytest.raises(ProviderError, match="Invalid JSON"):
        await fetch_json("https://api.example.com", provider="hn")
    assert await fetch_json("https://api.example.com", provider="hn") == {"ok": True}


@pytest.mark.asyncio
async def test_fetch_json_maps_timeouts(monkeypatch):
    monkeypatch.delenv("SSLKEYLOGFILE", raising=False)

    async def fake_get(self, url, **kwargs):  # noqa: ARG001
        raise httpx.ReadTimeout("slow")

    monkeypatch.setattr(httpx.AsyncClient, "get", fake_get)

    with pytest.raises(ProviderError, match="timeout") as excinfo:
        await fetch_json("https://api.example.com", provider="github")
    assert excinfo.value.provider == "github"


# --- official docs index ---


@pytest.mark.asyncio
async def test_official_docs_matches_node_errors_entry():
    rows = await official_docs.search(
        "Node.js error handling best practices",
        official_docs.OfficialDocsQuery(topic="Node.js error handling", stack="Node.js", max_results=3),
    )

    assert rows
    assert rows[0].url == "https://nodejs.org/api/errors.html"
    assert rows[0].domain == "nodejs.org"
    assert "Tags: node" in rows[0].snippet
    assert rows[0].engagement["score"] >= 0.2


def test_dedupe_entries_keeps_higher_priority():
    entries = [
        official_docs.normalize_entry({"title": "Low", "url": "https://a.dev/x", "priority": 0}),
        official_docs.normalize_entry({"title": "High", "url": "https://a.dev/x", "priority": 0.3}),
        official_docs.normalize_entry({"title": "Lower again", "url": "https://a.dev/x", "priority": 0.1}),
    ]

    deduped = official_docs.dedupe_entries(entries)

    assert [entry.title for entry in deduped] == ["High"]


def test_normalize_entry_requires_title_and_url():
    assert official_docs.normalize_entry({"title": "No url"}) is None
    assert official_docs.normalize_entry({"url": "https://a.dev"}) is None
    assert official_docs.normalize_entry("not a mapping") is None


def test_build_index_merges_file_and_inline_entries(tmp_path):
    index_path = tmp_path / "index.json"
    index_path.write_text(
        json.dumps({"entries": [{"title": "Internal Guide", "url": "https://docs.internal.dev/guide", "tags": ["guide"]}]}),
        encoding="utf-8",
    )

    merged = official_docs.build_index(
        official_docs.OfficialDocsQuery(
            index_path=str(index_path),
            inline_index=[{"title": "Inline", "url": "https://inline.dev/", "tags": ["x"]}],
        )
    )
    urls = {entry.url for entry in merged}
    assert "https://docs.internal.dev/guide" in urls
    assert "https://inline.dev/" in urls
    assert "https://nodejs.org/api/errors.html" in urls

    custom_only = official_docs.build_index(
        official_docs.OfficialDocsQuery(index_path=str(index_path), merge_default_index=False)
    )
    assert [entry.url for entry in custom_only] == ["https://docs.internal.dev/guide"]


def test_stack_profiles_override_the_built_in_tag_table():
    assert official_docs.infer_stack_tokens("Acme Cloud") == ["cloud", "aws", "gcp", "azure", "architecture"]
    assert official_docs.infer_stack_tokens("Acme Cloud", {"acme": ["widgets"]}) == ["widgets"]
    assert official_docs.infer_stack_tokens("") == []
