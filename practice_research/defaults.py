"""Built-in defaults for the practice search pipeline.

Values here are heuristic constants carried over from the first release of
the engine; treat them as tunable defaults, not derived quantities.
"""

from __future__ import annotations

from typing import Any

DEFAULT_FALLBACK_OBJECTIVE = "Deliver a high-quality, maintainable, testable implementation"

DEFAULT_QUERY_STACK_PROFILES: dict[str, list[str]] = {
    "react|next": ["hooks", "state management", "performance", "rendering"],
    "vue|nuxt": ["composition api", "reactivity", "state management", "performance"],
    "node|express|nest": ["error handling", "observability", "api design", "testing"],
    "typescript|ts": ["type safety", "api design", "strict mode", "tooling"],
    "python|django|fastapi": ["dependency injection", "testing", "api design", "async"],
    "java|spring": ["transaction", "layered architecture", "testing", "exception handling"],
    "go|golang": ["concurrency", "context", "error handling", "testing"],
    "kubernetes|k8s|docker": ["deployment", "observability", "security", "scaling"],
}

# Tags used by the official-docs provider to boost entries matching the stack.
DEFAULT_STACK_TAGS: dict[str, list[str]] = {
    "react|next": ["react", "hooks", "state", "component", "next"],
    "vue|nuxt": ["vue", "nuxt", "composition", "reactivity"],
    "node|express|nest": ["node", "api", "backend", "error", "observability"],
    "typescript|ts": ["typescript", "types", "strict", "compiler"],
    "python|django|fastapi": ["python", "django", "fastapi", "async", "validation"],
    "java|spring": ["java", "spring", "transaction", "dependency"],
    "go|golang": ["go", "golang", "concurrency", "context"],
    "kubernetes|k8s|docker": ["kubernetes", "k8s", "docker", "container", "deployment"],
    "aws|gcp|azure|cloud": ["cloud", "aws", "gcp", "azure", "architecture"],
}

DEFAULT_QUERY_TEMPLATES = [
    "{{topic}} {{stack}} best practices",
    "{{topic}} {{stack}} architecture",
    "{{topic}} {{stack}} error handling",
    "{{topic}} {{stack}} testing strategy",
]

DEFAULT_EXPANSION_TEMPLATES = [
    "{{topic}} {{stack}} {{keyword}} best practices",
    "{{topic}} {{stack}} {{keyword}} common pitfalls",
]

DEFAULT_PROVIDER_ORDER = ["official-docs", "stackoverflow", "hn", "reddit", "github"]

DEFAULT_AUTHORITY_BY_TIER: dict[str, float] = {
    "official": 0.95,
    "high": 0.8,
    "medium": 0.65,
}

DEFAULT_DOMAIN_AUTHORITY: dict[str, float] = {
    "developer.mozilla.org": 0.98,
    "nodejs.org": 0.97,
    "typescriptlang.org": 0.97,
    "react.dev": 0.96,
    "vuejs.org": 0.96,
    "kubernetes.io": 0.95,
    "aws.amazon.com": 0.95,
    "cloud.google.com": 0.95,
    "stackoverflow.com": 0.86,
    "github.com": 0.76,
    "news.ycombinator.com": 0.78,
    "reddit.com": 0.72,
}

DEFAULT_SOURCES: list[dict[str, Any]] = [
    {
        "id": "stackoverflow-best",
        "label": "Stack Overflow",
        "enabled": True,
        "tier": "high",
        "provider": "stackoverflow",
        "domains": ["stackoverflow.com"],
        "providerOptions": {"minScore": 8},
    },
    {
        "id": "github-repos",
        "label": "GitHub Repositories",
        "enabled": True,
        "tier": "high",
        "provider": "github",
        "domains": ["github.com"],
        "providerOptions": {"minStars": 300},
        "querySuffix": "in:description in:readme",
    },
    {
        "id": "hn-discussions",
        "label": "Hacker News Discussions",
        "enabled": True,
        "tier": "high",
        "provider": "hn",
        "domains": [],
        "providerOptions": {"minPoints": 10},
    },
    {
        "id": "reddit-dev",
        "label": "Reddit Dev Community",
        "enabled": True,
        "tier": "medium",
        "provider": "reddit",
        "subreddits": ["programming", "webdev", "javascript", "typescript", "node"],
        "domains": ["reddit.com"],
        "providerOptions": {"minUpvotes": 20},
    },
    {
        "id": "official-doc-links",
        "label": "Official Documentation Links",
        "enabled": True,
        "tier": "official",
        "provider": "official-docs",
        "providerOptions": {"minScore": 0.2},
        "domains": [
            "developer.mozilla.org",
            "nodejs.org",
            "typescriptlang.org",
            "react.dev",
            "vuejs.org",
            "kubernetes.io",
            "aws.amazon.com",
            "cloud.google.com",
        ],
    },
]

# Generic words that say nothing about what a topic is actually about.
TOPIC_STOPWORDS = frozenset(
    {
        "best",
        "practice",
        "practices",
        "code",
        "coding",
        "api",
        "apis",
        "design",
        "architecture",
        "implementation",
        "guide",
        "guideline",
        "js",
        "ts",
    }
)

HOOK_STAGES = ("afterIntent", "afterQuery", "afterCollect", "afterRank", "beforeReturn")
