from __future__ import annotations

import re

from practice_research.config import QueryStage
from practice_research.defaults import TOPIC_STOPWORDS
from practice_research.models.schemas import SearchContext
from practice_research.tools.web_utils import tokenize, unique

_PLACEHOLDER_RE = re.compile(r"\{\{\s*(topic|stack|objective|keyword)\s*\}\}")


def filter_meaningful_tokens(tokens: list[str]) -> list[str]:
    return [token for token in tokens if token not in TOPIC_STOPWORDS]


def render_template(template: str, context: SearchContext, keyword: str = "") -> str:
    values = {
        "topic": context.topic,
        "stack": context.stack,
        "objective": context.objective,
        "keyword": keyword,
    }
    rendered = _PLACEHOLDER_RE.sub(lambda match: values[match.group(1)], template or "")
    return " ".join(rendered.split())


def _profile_matches(matcher: str, haystack: str) -> bool:
    aliases = [alias.strip().lower() for alias in str(matcher).split("|") if alias.strip()]
    return any(alias in haystack for alias in aliases)


def build_expansion_keywords(context: SearchContext, stage: QueryStage) -> list[str]:
    """Stack-profile keywords followed by the topic's own meaningful tokens."""
    if not stage.enable_expansion or stage.max_expansion_keywords <= 0:
        return []

    haystack = f"{context.stack} {context.topic}".lower()
    keywords: list[str] = []
    for matcher, values in stage.stack_profiles.items():
        if _profile_matches(matcher, haystack):
            keywords.extend(str(value).strip() for value in values)

    keywords.extend(filter_meaningful_tokens(tokenize(context.topic)))
    return unique(keywords)[: stage.max_expansion_keywords]


def build_queries(context: SearchContext, stage: QueryStage) -> list[str]:
    """Deterministic, deduplicated and capped list of search queries."""
    queries = [render_template(template, context) for template in stage.templates]

    extra_keywords = [keyword.strip() for keyword in stage.extra_keywords if keyword.strip()]
    if extra_keywords:
        queries.append(" ".join(f"{context.topic} {context.stack} {' '.join(extra_keywords)}".split()))

    for keyword in build_expansion_keywords(context, stage):
        for template in stage.expansion_templates:
            queries.append(render_template(template, context, keyword))

    return unique(queries)[: max(stage.max_queries, 0)]
