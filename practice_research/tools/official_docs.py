from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

from practice_research.defaults import DEFAULT_STACK_TAGS
from practice_research.models.schemas import ProviderRow
from practice_research.tools.web_utils import extract_domain, tokenize, unique

PROVIDER_ID = "official-docs"

OFFICIAL_DOC_INDEX: list[dict[str, Any]] = [
    {
        "title": "Node.js - Errors",
        "url": "https://nodejs.org/api/errors.html",
        "tags": ["node", "node.js", "error", "exception", "handling"],
        "snippet": "Node.js official API reference for errors and exception handling.",
    },
    {
        "title": "Node.js - Diagnostics Channel",
        "url": "https://nodejs.org/api/diagnostics_channel.html",
        "tags": ["node", "observability", "tracing", "diagnostics"],
        "snippet": "Node.js diagnostics_channel for observability and instrumentation.",
    },
    {
        "title": "TypeScript Handbook",
        "url": "https://www.typescriptlang.org/docs/",
        "tags": ["typescript", "ts", "types", "api", "design"],
        "snippet": "TypeScript official handbook and language guides.",
    },
    {
        "title": "TypeScript TSConfig Reference",
        "url": "https://www.typescriptlang.org/tsconfig",
        "tags": ["typescript", "strict", "compiler", "tsconfig"],
        "snippet": "TypeScript compiler options and strictness best practices.",
    },
    {
        "title": "MDN JavaScript Guide",
        "url": "https://developer.mozilla.org/en-US/docs/Web/JavaScript/Guide",
        "tags": ["javascript", "js", "best", "practice", "guide"],
        "snippet": "MDN JavaScript guide with language and runtime best practices.",
    },
    {
        "title": "React Docs - Learn",
        "url": "https://react.dev/learn",
        "tags": ["react", "component", "hooks", "state", "forms"],
        "snippet": "React official learning materials and recommended patterns.",
    },
    {
        "title": "Next.js Docs - App Router",
        "url": "https://nextjs.org/docs/app",
        "tags": ["next", "react", "routing", "server", "app-router"],
        "snippet": "Next.js app router architecture and production best practices.",
    },
    {
        "title": "Vue Docs - Guide",
        "url": "https://vuejs.org/guide/introduction.html",
        "tags": ["vue", "composition", "api", "component", "forms"],
        "snippet": "Vue official guide and composition API best practices.",
    },
    {
        "title": "Nuxt Docs",
        "url": "https://nuxt.com/docs",
        "tags": ["nuxt", "vue", "routing", "ssr", "performance"],
        "snippet": "Nuxt documentation for architecture and deployment best practices.",
    },
    {
        "title": "NestJS Documentation",
        "url": "https://docs.nestjs.com/",
        "tags": ["nest", "node", "architecture", "testing", "api"],
        "snippet": "NestJS official documentation for modular backend architecture.",
    },
    {
        "title": "Python Docs",
        "url": "https://docs.python.org/3/",
        "tags": ["python", "standard-library", "typing", "async"],
        "snippet": "Python official documentation and standard library references.",
    },
    {
        "title": "FastAPI Documentation",
        "url": "https://fastapi.tiangolo.com/",
        "tags": ["fastapi", "python", "api", "validation", "async"],
        "snippet": "FastAPI official documentation for API design and validation.",
    },
    {
        "title": "Django Documentation",
        "url": "https://docs.djangoproject.com/",
        "tags": ["django", "python", "orm", "security", "testing"],
        "snippet": "Django official docs with patterns for security and maintainability.",
    },
    {
        "title": "Go Documentation",
        "url": "https://go.dev/doc/",
        "tags": ["go", "golang", "concurrency", "context", "testing"],
        "snippet": "Go official docs and effective Go best practices.",
    },
    {
        "title": "Rust Book",
        "url": "https://doc.rust-lang.org/book/",
        "tags": ["rust", "ownership", "error", "design", "testing"],
        "snippet": "The Rust Programming Language book and idiomatic patterns.",
    },
    {
        "title": "Spring Framework Reference",
        "url": "https://docs.spring.io/spring-framework/reference/",
        "tags": ["spring", "java", "dependency injection", "transaction", "testing"],
        "snippet": "Spring framework reference for enterprise Java best practices.",
    },
    {
        "title": "PostgreSQL Documentation",
        "url": "https://www.postgresql.org/docs/",
        "tags": ["postgres", "sql", "index", "performance", "transaction"],
        "snippet": "PostgreSQL official docs for query and schema best practices.",
    },
    {
        "title": "Redis Documentation",
        "url": "https://redis.io/docs/latest/",
        "tags": ["redis", "cache", "data", "performance", "persistence"],
        "snippet": "Redis official docs for caching patterns and reliability.",
    },
    {
        "title": "Docker Documentation",
        "url": "https://docs.docker.com/",
        "tags": ["docker", "container", "security", "build", "deployment"],
        "snippet": "Docker documentation for image build and runtime best practices.",
    },
    {
        "title": "Kubernetes Documentation",
        "url": "https://kubernetes.io/docs/home/",
        "tags": ["kubernetes", "k8s", "cluster", "deployment", "reliability"],
        "snippet": "Kubernetes official documentation and production guides.",
    },
    {
        "title": "AWS Well-Architected Framework",
        "url": "https://docs.aws.amazon.com/wellarchitected/latest/framework/welcome.html",
        "tags": ["aws", "cloud", "architecture", "reliability", "security"],
        "snippet": "AWS official architecture framework for reliability and operations.",
    },
    {
        "title": "Google Cloud Architecture Framework",
        "url": "https://cloud.google.com/architecture/framework",
        "tags": ["gcp", "google", "cloud", "architecture", "operations"],
        "snippet": "Google Cloud architecture best practices and recommendations.",
    },
    {
        "title": "Azure Architecture Center",
        "url": "https://learn.microsoft.com/en-us/azure/architecture/",
        "tags": ["azure", "cloud", "architecture", "operations", "security"],
        "snippet": "Azure architecture guidance for scalable and reliable systems.",
    },
]


@dataclass(slots=True)
class IndexEntry:
    title: str
    url: str
    snippet: str = ""
    tags: list[str] = field(default_factory=list)
    published_at: str | None = None
    priority: float = 0.0


@dataclass(slots=True)
class OfficialDocsQuery:
    """Everything the offline matcher needs besides the query string."""
    topic: str = ""
    stack: str = ""
    objective: str = ""
    max_results: int = 4
    min_score: float = 0.2
    stack_boost_weight: float = 0.2
    merge_default_index: bool = True
    index_path: str | None = None
    inline_index: list[dict[str, Any]] = field(default_factory=list)
    stack_profiles: dict[str, list[str]] | None = None


# path -> (mtime, entries); reloaded whenever the file changes on disk
_INDEX_FILE_CACHE: dict[str, tuple[float, list[IndexEntry]]] = {}


def normalize_entry(raw: Any) -> IndexEntry | None:
    if not isinstance(raw, Mapping):
        return None
    title = str(raw.get("title") or "").strip()
    url = str(raw.get("url") or "").strip()
    if not title or not url:
        return None

    tags = raw.get("tags")
    try:
        priority = float(raw.get("priority") or 0)
    except (TypeError, ValueError):
        priority = 0.0
    return IndexEntry(
        title=title,
        url=url,
        snippet=str(raw.get("snippet") or "").strip(),
        tags=[str(tag).strip().lower() for tag in tags if str(tag).strip()]
        if isinstance(tags, list)
        else [],
        published_at=str(raw["publishedAt"]) if raw.get("publishedAt") else None,
        priority=priority,
    )


def dedupe_entries(entries: list[IndexEntry]) -> list[IndexEntry]:
    """One entry per URL; later entries win unless their priority is lower."""
    table: dict[str, IndexEntry] = {}
    for entry in entries:
        existing = table.get(entry.url)
        if existing is None or entry.priority >= existing.priority:
            table[entry.url] = entry
    return list(table.values())


def parse_index_payload(payload: Any) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping) and isinstance(payload.get("entries"), list):
        return payload["entries"]
    return []


def load_index_file(index_path: str | Path) -> list[IndexEntry]:
    path = Path(index_path).resolve()
    mtime = path.stat().st_mtime
    cached = _INDEX_FILE_CACHE.get(str(path))
    if cached and cached[0] == mtime:
        return cached[1]

    payload = json.loads(path.read_text(encoding="utf-8"))
    entries = [
        entry
        for entry in (normalize_entry(item) for item in parse_index_payload(payload))
        if entry is not None
    ]
    _INDEX_FILE_CACHE[str(path)] = (mtime, entries)
    return entries


def build_index(options: OfficialDocsQuery) -> list[IndexEntry]:
    file_entries: list[IndexEntry] = []
    if options.index_path:
        try:
            file_entries = load_index_file(options.index_path)
        except (OSError, ValueError) as exc:
            logger.warning(f"Official docs index {options.index_path} unusable: {exc}")

    raw_entries = OFFICIAL_DOC_INDEX if options.merge_default_index else []
    merged = [entry for entry in map(normalize_entry, raw_entries) if entry is not None]
    merged.extend(file_entries)
    merged.extend(entry for entry in map(normalize_entry, options.inline_index) if entry is not None)
    return dedupe_entries(merged)


def infer_stack_tokens(stack: str, profiles: dict[str, list[str]] | None = None) -> list[str]:
    stack_text = (stack or "").lower()
    if not stack_text:
        return []

    tokens: list[str] = []
    for matcher, values in (profiles or DEFAULT_STACK_TAGS).items():
        aliases = [alias.strip().lower() for alias in str(matcher).split("|") if alias.strip()]
        if any(alias in stack_text for alias in aliases):
            tokens.extend(str(value).strip().lower() for value in values)
    return unique(tokens)


def score_entry(
    entry: IndexEntry,
    query_tokens: list[str],
    stack_tokens: list[str],
    stack_boost_weight: float = 0.2,
) -> float:
    tag_set = {*entry.tags, *tokenize(entry.title), *tokenize(entry.snippet)}

    query_score = (
        sum(1 for token in query_tokens if token in tag_set) / len(query_tokens)
        if query_tokens
        else 0.0
    )
    stack_score = (
        sum(1 for token in stack_tokens if token in tag_set) / len(stack_tokens)
        if stack_tokens
        else 0.0
    )
    priority_boost = max(0.0, entry.priority)
    return query_score * (1 - stack_boost_weight) + stack_score * stack_boost_weight + priority_boost


async def search(query: str, options: OfficialDocsQuery) -> list[ProviderRow]:
    """Match the query against the offline documentation index."""
    query_tokens = [
        token
        for token in tokenize(" ".join([query, options.topic, options.objective]))
        if not token.startswith("site")
    ]
    stack_tokens = infer_stack_tokens(options.stack, options.stack_profiles)

    scored = [
        (score_entry(entry, query_tokens, stack_tokens, options.stack_boost_weight), entry)
        for entry in build_index(options)
    ]
    scored = [item for item in scored if item[0] >= options.min_score]
    scored.sort(key=lambda item: item[0], reverse=True)

    return [
        ProviderRow(
            title=entry.title,
            url=entry.url,
            snippet=f"{entry.snippet} Tags: {', '.join(entry.tags)}",
            provider=PROVIDER_ID,
            published_at=entry.published_at,
            engagement={"score": match_score},
            domain=extract_domain(entry.url),
        )
        for match_score, entry in scored[: max(options.max_results, 0)]
    ]
