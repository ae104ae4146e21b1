from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from practice_research.config import PracticeConfig, SourceDefinition
from practice_research.models.schemas import (
    CollectedResult,
    ProviderRow,
    RequestError,
    SearchContext,
    SearchRequest,
)
from practice_research.services.cache_store import CacheStore, create_cache_key
from practice_research.services.logger import log_provider_call
from practice_research.services.retry import RetryPolicy, Sleep, run_with_retry
from practice_research.services.scoring import KeywordSets, score_row
from practice_research.tools import official_docs, search_provider
from practice_research.tools.search_provider import ProviderCall, ProviderSearch
from practice_research.tools.web_utils import domain_allowed, extract_domain

UNRANKED_PROVIDER = 10**9


@dataclass(slots=True)
class CacheMode:
    store: CacheStore
    enabled: bool = True  # writes allowed
    read_enabled: bool = True


@dataclass(slots=True)
class CollectOutcome:
    collected: list[CollectedResult] = field(default_factory=list)
    errors: list[RequestError] = field(default_factory=list)
    cache_hit_count: int = 0
    cache_miss_count: int = 0
    retry_used_count: int = 0


@dataclass(slots=True)
class _RequestOutcome:
    rows: list[ProviderRow] = field(default_factory=list)
    from_cache: bool = False
    retry_used: int = 0
    error: RequestError | None = None


def build_search_requests(queries: list[str], config: PracticeConfig) -> list[SearchRequest]:
    """Cross product of sources x queries, in provider-priority order, capped."""
    stage = config.stages.collect
    provider_order = [provider.strip().lower() for provider in stage.providers if provider.strip()]
    rank = {provider: index for index, provider in enumerate(provider_order)}

    def sort_key(source: SourceDefinition) -> tuple[int, str]:
        return rank.get(source.provider.lower(), UNRANKED_PROVIDER), source.id

    requests: list[SearchRequest] = []
    if stage.max_requests <= 0:
        return requests

    for source in sorted(config.sources, key=sort_key):
        if not source.enabled:
            continue
        if provider_order and source.provider.lower() not in rank:
            continue

        for query in queries:
            effective = " ".join(f"{source.query_prefix} {query} {source.query_suffix}".split())
            requests.append(
                SearchRequest(
                    index=len(requests),
                    source_id=source.id,
                    source_tier=source.tier,
                    source_label=source.label,
                    provider=source.provider,
                    domains=list(source.domains),
                    subreddits=list(source.subreddits),
                    provider_options=dict(source.provider_options),
                    query=effective,
                )
            )
            if len(requests) >= stage.max_requests:
                return requests
    return requests


def _docs_query(context: SearchContext, config: PracticeConfig, index_path: Path | None) -> official_docs.OfficialDocsQuery:
    docs = config.stages.collect.official_docs
    return official_docs.OfficialDocsQuery(
        topic=context.topic,
        stack=context.stack,
        objective=context.objective,
        stack_boost_weight=docs.stack_boost_weight,
        merge_default_index=docs.merge_default_index,
        index_path=str(index_path) if index_path else None,
        inline_index=list(docs.index),
        stack_profiles=docs.stack_profiles,
    )


def request_cache_key(
    request: SearchRequest,
    context: SearchContext,
    config: PracticeConfig,
    index_path: Path | None,
) -> str:
    stage = config.stages.collect
    options: dict[str, Any] = dict(request.provider_options)
    if request.provider == official_docs.PROVIDER_ID:
        options.update(
            {
                "stack": context.stack,
                "topic": context.topic,
                "objective": context.objective,
                "indexPath": str(index_path) if index_path else None,
                "stackBoostWeight": stage.official_docs.stack_boost_weight,
                "stackProfiles": stage.official_docs.stack_profiles,
            }
        )
    return create_cache_key(
        {
            "cacheVersion": stage.cache_version,
            "provider": request.provider,
            "query": request.query,
            "subreddits": request.subreddits,
            "options": options,
            "maxResults": stage.per_provider_results,
        }
    )


def _rows_from_cache(value: Any) -> list[ProviderRow] | None:
    if not isinstance(value, list):
        return None
    try:
        rows = [ProviderRow.model_validate(item) for item in value]
    except PydanticValidationError:
        return None
    return [
        row if row.domain != "unknown" else row.model_copy(update={"domain": extract_domain(row.url)})
        for row in rows
    ]


async def collect(
    requests: list[SearchRequest],
    context: SearchContext,
    config: PracticeConfig,
    cache: CacheMode,
    keywords: KeywordSets,
    *,
    official_docs_index_path: Path | None = None,
    provider_search: ProviderSearch = search_provider.search,
    sleep: Sleep | None = None,
) -> CollectOutcome:
    """Run every request through cache, retry and provider, then score the rows."""
    stage = config.stages.collect
    policy = RetryPolicy(
        retries=stage.retries,
        retry_delay_ms=stage.retry_delay_ms,
        backoff_factor=stage.retry_backoff_factor,
    )
    semaphore = asyncio.Semaphore(max(stage.max_parallel_requests, 1))
    sources = {source.id: source for source in config.sources}

    async def run_request(request: SearchRequest) -> _RequestOutcome:
        # read, fetch and write under one slot so a later request sees earlier writes
        async with semaphore:
            return await _run_request(request)

    async def _run_request(request: SearchRequest) -> _RequestOutcome:
        key = request_cache_key(request, context, config, official_docs_index_path)

        if cache.read_enabled:
            cached_rows = _rows_from_cache(cache.store.read(key, stage.cache_ttl_ms))
            if cached_rows is not None:
                log_provider_call(request.provider, request.query, "cached", rows=len(cached_rows), from_cache=True)
                return _RequestOutcome(rows=cached_rows, from_cache=True)

        call = ProviderCall(
            provider=request.provider,
            query=request.query,
            max_results=stage.per_provider_results,
            timeout_ms=stage.timeout_ms,
            subreddits=list(request.subreddits),
            options=dict(request.provider_options),
            docs=_docs_query(context, config, official_docs_index_path),
        )

        async def attempt(_attempt: int) -> list[ProviderRow]:
            return await provider_search(call)

        try:
            fetched = await run_with_retry(
                attempt,
                policy,
                sleep=sleep or asyncio.sleep,
                label=f"{request.provider}:{request.query}",
            )
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            log_provider_call(
                request.provider,
                request.query,
                "failed",
                attempts=policy.max_attempts,
                error=message,
            )
            return _RequestOutcome(
                error=RequestError(
                    query=request.query,
                    source_id=request.source_id,
                    provider=request.provider,
                    message=message,
                ),
            )

        rows = [
            row if row.domain != "unknown" else row.model_copy(update={"domain": extract_domain(row.url)})
            for row in fetched.value
        ]
        if cache.enabled:
            try:
                cache.store.write(key, [row.model_dump(by_alias=True) for row in rows])
            except OSError as exc:
                logger.warning(f"Cache write failed for {request.provider}: {exc}")
        return _RequestOutcome(rows=rows, retry_used=fetched.retry_used)

    outcomes = await asyncio.gather(*(run_request(request) for request in requests))

    # merge strictly in request order so concurrency never changes the result
    result = CollectOutcome()
    for request, outcome in zip(requests, outcomes):
        if outcome.error is not None:
            result.cache_miss_count += 1
            result.errors.append(outcome.error)
            continue
        if outcome.from_cache:
            result.cache_hit_count += 1
        else:
            result.cache_miss_count += 1
            result.retry_used_count += outcome.retry_used

        source = sources.get(request.source_id)
        for row in outcome.rows:
            if not domain_allowed(row.domain, request.domains):
                continue
            result.collected.append(
                score_row(
                    row,
                    request,
                    source,
                    keywords,
                    config,
                    fetched_from_cache=outcome.from_cache,
                )
            )
    return result
