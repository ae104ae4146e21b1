from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from practice_research.config import PracticeConfig, ScoreStage, SourceDefinition
from practice_research.models.schemas import (
    CollectedResult,
    ProviderRow,
    ResultScore,
    SearchContext,
    SearchRequest,
)
from practice_research.services.query_planner import filter_meaningful_tokens
from practice_research.tools.web_utils import parse_iso_datetime, tokenize, unique

DEFAULT_AUTHORITY = 0.6
UNKNOWN_DATE_RECENCY = 0.45

# (max age in days, score); older than the last bucket scores RECENCY_FLOOR
RECENCY_BUCKETS = (
    (30, 1.0),
    (90, 0.85),
    (180, 0.72),
    (365, 0.58),
)
RECENCY_FLOOR = 0.4


@dataclass(slots=True)
class KeywordSets:
    relevance: list[str]
    coverage: list[str]


def build_keyword_sets(context: SearchContext) -> KeywordSets:
    """Relevance uses topic+stack tokens; coverage the topic's meaningful tokens."""
    relevance = unique(tokenize(f"{context.topic} {context.stack}"))
    core = unique(filter_meaningful_tokens(tokenize(context.topic)))
    return KeywordSets(relevance=relevance, coverage=core or relevance)


def authority_score(domain: str, tier: str, config: PracticeConfig) -> float:
    if domain in config.domain_authority:
        return float(config.domain_authority[domain])
    by_tier = config.stages.score.authority_by_tier
    if tier in by_tier:
        return float(by_tier[tier])
    return DEFAULT_AUTHORITY


def recency_score(published_at: str | None, now: datetime | None = None) -> float:
    published = parse_iso_datetime(published_at)
    if published is None:
        return UNKNOWN_DATE_RECENCY

    current = now or datetime.now(timezone.utc)
    days = (current - published).total_seconds() / 86400
    for max_days, score in RECENCY_BUCKETS:
        if days <= max_days:
            return score
    return RECENCY_FLOOR


def keyword_overlap(text: str, keywords: list[str]) -> float:
    tokens = set(tokenize(text))
    if not tokens or not keywords:
        return 0.0
    hits = sum(1 for keyword in keywords if keyword in tokens)
    return min(1.0, hits / len(keywords))


def total_score(score: ResultScore, stage: ScoreStage) -> float:
    weights = stage.weights
    return (
        score.authority * weights.authority
        + score.recency * weights.recency
        + score.relevance * weights.relevance
    )


def score_row(
    row: ProviderRow,
    request: SearchRequest,
    source: SourceDefinition | None,
    keywords: KeywordSets,
    config: PracticeConfig,
    *,
    fetched_from_cache: bool = False,
    now: datetime | None = None,
) -> CollectedResult:
    source_id = source.id if source else request.source_id
    tier = source.tier if source else "medium"
    label = source.label if source else request.source_label

    doc_text = f"{row.title} {row.snippet}"
    score = ResultScore(
        authority=authority_score(row.domain, tier, config),
        recency=recency_score(row.published_at, now),
        relevance=keyword_overlap(doc_text, keywords.relevance),
        topic_coverage=keyword_overlap(doc_text, keywords.coverage),
    )
    return CollectedResult(
        title=row.title,
        url=row.url,
        snippet=row.snippet,
        domain=row.domain,
        query=request.query,
        source_id=source_id,
        source_tier=tier,
        source_label=label,
        provider=row.provider,
        published_at=row.published_at,
        engagement=row.engagement,
        score=score,
        total_score=total_score(score, config.stages.score),
        fetched_from_cache=fetched_from_cache,
        evidence=[],
    )


def dedupe_results(results: list[CollectedResult]) -> list[CollectedResult]:
    """One result per URL; a strictly higher total score replaces the earlier one."""
    table: dict[str, CollectedResult] = {}
    for item in results:
        existing = table.get(item.url)
        if existing is None or item.total_score > existing.total_score:
            table[item.url] = item
    return list(table.values())


def passes_thresholds(item: CollectedResult, stage: ScoreStage) -> bool:
    return (
        item.total_score >= stage.minimum_score
        and item.score.relevance >= stage.minimum_relevance
        and item.score.topic_coverage >= stage.minimum_topic_coverage
    )


def limit_by_domain(results: list[CollectedResult], max_per_domain: int) -> list[CollectedResult]:
    counts: dict[str, int] = {}
    output: list[CollectedResult] = []
    for item in results:
        count = counts.get(item.domain, 0)
        if count >= max_per_domain:
            continue
        output.append(item)
        counts[item.domain] = count + 1
    return output


def rank_results(
    collected: list[CollectedResult],
    stage: ScoreStage,
    *,
    top_n: int,
    max_per_domain: int,
) -> list[CollectedResult]:
    """Dedupe, filter, sort, cap per domain and truncate to ``top_n``."""
    kept = [item for item in dedupe_results(collected) if passes_thresholds(item, stage)]
    # sorted() is stable, so equal scores keep collection (request) order
    ranked = sorted(kept, key=lambda item: item.total_score, reverse=True)
    return limit_by_domain(ranked, max_per_domain)[: max(top_n, 0)]
