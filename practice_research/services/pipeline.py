"""Best-practice search pipeline.

intent -> plan -> collect -> rank -> enrich -> report, with a hook
applied after each of the first four stages and once more before the
report is returned. Only intent validation can abort a run; provider,
fetch and hook failures are recorded in the report.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from practice_research.config import LoadedConfig, load_practice_config, parse_practice_input, resolve_relative_path
from practice_research.models.schemas import (
    CollectedResult,
    ConfigSummary,
    ExecutionStats,
    PracticeReport,
    RequestError,
    SearchContext,
)
from practice_research.services import collector, enricher, query_planner, report, scoring
from practice_research.services.cache_store import CacheStore, resolve_cache_dir
from practice_research.services.errors import ValidationError
from practice_research.services.hooks import HookRegistry, HookRunner, load_hook_registry
from practice_research.services.logger import log_event, log_stage
from practice_research.services.retry import Sleep
from practice_research.tools import search_provider
from practice_research.tools.search_provider import ProviderSearch

_RESULTS = TypeAdapter(list[CollectedResult])
_ERRORS = TypeAdapter(list[RequestError])


def resolve_intent(payload: Mapping[str, Any], loaded: LoadedConfig) -> SearchContext:
    intent = loaded.config.stages.intent
    topic = str(payload.get("topic") or "").strip()
    if intent.required_topic and not topic:
        raise ValidationError("practice search requires input.topic")
    return SearchContext(
        topic=topic,
        stack=str(payload.get("stack") or "").strip(),
        objective=str(payload.get("objective") or "").strip() or intent.fallback_objective,
    )


def _max_results(payload: Mapping[str, Any], default: int) -> int:
    value = payload.get("maxResults")
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        return default
    return int(value)


class _HookStage:
    """Applies one hook and validates the keys it hands back."""

    def __init__(self, runner: HookRunner, context: SearchContext, loaded: LoadedConfig):
        self.runner = runner
        self.context = context
        self.loaded = loaded

    async def run(self, stage: str, payload: dict[str, Any]) -> dict[str, Any]:
        # every stage sees the current context alongside its own data
        full = {"context": self.context.model_dump(by_alias=True), **payload}
        return await self.runner.apply(stage, full, self.context, self.loaded.config)

    def validated(self, stage: str, updated: dict[str, Any], key: str, adapter: Any, fallback: Any) -> Any:
        if key not in updated:
            return fallback
        try:
            return adapter.validate_python(updated[key])
        except PydanticValidationError as exc:
            self.runner.record_failure(stage, f"invalid {key}: {exc.error_count()} validation error(s)")
            return fallback


async def run_practice_search(
    raw_input: str | Mapping[str, Any] | None,
    *,
    config_path: str | Path | None = None,
    no_cache: bool = False,
    refresh_cache: bool = False,
    hooks: HookRegistry | None = None,
    sleep: Sleep = asyncio.sleep,
    provider_search: ProviderSearch = search_provider.search,
    fetcher: enricher.Fetcher | None = None,
) -> dict[str, Any]:
    """Run one search and return the report as a camelCase dict."""
    payload = parse_practice_input(raw_input)
    loaded = load_practice_config(config_path, payload.get("config"))
    config = loaded.config
    stages = config.stages

    context = resolve_intent(payload, loaded)
    log_stage("intent", "completed", {"topic": context.topic, "stack": context.stack})

    registry = HookRegistry(hooks=dict(hooks.hooks)) if hooks else HookRegistry()
    runner = HookRunner(load_hook_registry(config.hooks, loaded.config_path, registry))
    hook_stage = _HookStage(runner, context, loaded)

    updated = await hook_stage.run("afterIntent", {"input": dict(payload)})
    context = hook_stage.validated("afterIntent", updated, "context", TypeAdapter(SearchContext), context)
    hook_stage.context = context

    # --- plan ---
    queries = query_planner.build_queries(context, stages.query)
    updated = await hook_stage.run("afterQuery", {"queries": list(queries)})
    queries = hook_stage.validated("afterQuery", updated, "queries", TypeAdapter(list[str]), queries)
    log_stage("query", "completed", {"count": len(queries)})

    # --- collect ---
    cache_enabled = stages.collect.cache_enabled and not no_cache
    cache_read_enabled = cache_enabled and not refresh_cache
    cache_dir = resolve_cache_dir(stages.collect.cache_dir, loaded.config_path)
    index_path = resolve_relative_path(stages.collect.official_docs.index_path, loaded.config_path)

    requests = collector.build_search_requests(queries, config)
    keywords = scoring.build_keyword_sets(context)
    outcome = await collector.collect(
        requests,
        context,
        config,
        collector.CacheMode(
            store=CacheStore(cache_dir),
            enabled=cache_enabled,
            read_enabled=cache_read_enabled,
        ),
        keywords,
        official_docs_index_path=index_path,
        provider_search=provider_search,
        sleep=sleep,
    )
    collected, errors = outcome.collected, outcome.errors
    log_stage(
        "collect",
        "completed",
        {
            "requests": len(requests),
            "collected": len(collected),
            "errors": len(errors),
            "cache_hits": outcome.cache_hit_count,
        },
    )

    updated = await hook_stage.run(
        "afterCollect",
        {
            "queries": list(queries),
            "collected": [item.model_dump(by_alias=True) for item in collected],
            "errors": [item.model_dump(by_alias=True) for item in errors],
        },
    )
    collected = hook_stage.validated("afterCollect", updated, "collected", _RESULTS, collected)
    errors = hook_stage.validated("afterCollect", updated, "errors", _ERRORS, errors)

    # --- rank ---
    top_n = _max_results(payload, stages.synthesize.top_n)
    ranked = scoring.rank_results(
        collected,
        stages.score,
        top_n=top_n,
        max_per_domain=stages.synthesize.max_per_domain,
    )
    updated = await hook_stage.run(
        "afterRank",
        {
            "ranked": [item.model_dump(by_alias=True) for item in ranked],
            "collected": [item.model_dump(by_alias=True) for item in collected],
        },
    )
    ranked = hook_stage.validated("afterRank", updated, "ranked", _RESULTS, ranked)
    log_stage("rank", "completed", {"ranked": len(ranked)})

    # --- enrich ---
    enriched = await enricher.enrich_ranked_results(ranked, keywords.coverage, stages.enrich, fetcher=fetcher)
    ranked = enriched.results
    errors = [
        *errors,
        *(
            RequestError(query=failure.url, source_id="enrich", provider="fetch", message=failure.message)
            for failure in enriched.errors
        ),
    ]
    log_stage("enrich", "completed", {"fetched": enriched.fetched_count, "errors": len(enriched.errors)})

    # --- report ---
    summary = report.build_summary(ranked)
    practice_report = PracticeReport(
        topic=context.topic,
        stack=context.stack,
        objective=context.objective,
        config=ConfigSummary(
            path=str(loaded.config_path),
            loaded_from_disk=loaded.loaded_from_disk,
            source_count=len(config.sources),
            stage_keys=list(type(stages).model_fields),
            cache_enabled=cache_enabled,
            cache_read_enabled=cache_read_enabled,
            refresh_cache=refresh_cache,
            cache_ttl_ms=stages.collect.cache_ttl_ms,
            cache_version=stages.collect.cache_version,
            cache_dir=str(cache_dir),
            official_docs_index_path=str(index_path) if index_path else None,
        ),
        execution=ExecutionStats(
            query_count=len(queries),
            request_count=len(requests),
            collected_count=len(collected),
            ranked_count=len(ranked),
            fetched_for_evidence=enriched.fetched_count,
            cache_hit_count=outcome.cache_hit_count,
            cache_miss_count=outcome.cache_miss_count,
            cache_bypass=not cache_enabled,
            cache_refresh=refresh_cache,
            retry_used_count=outcome.retry_used_count,
            error_count=len(errors),
            generated_at=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            hooks_executed=len(runner.executed),
            hooks_failed=len(runner.failed),
        ),
        queries=queries,
        results=ranked,
        summary=summary,
        prompts=report.build_prompts(
            context,
            ranked,
            summary,
            include_prompt_draft=stages.synthesize.include_prompt_draft,
        ),
        errors=errors,
    )

    result = practice_report.model_dump(by_alias=True)
    updated = await hook_stage.run("beforeReturn", {"result": result})
    if isinstance(updated.get("result"), dict):
        result = updated["result"]
    elif "result" in updated:
        runner.record_failure("beforeReturn", "result must be an object")

    result["hooks"] = runner.log.model_dump(by_alias=True)
    log_event(
        "practice_search_complete",
        f"{len(ranked)} results for {context.topic!r}",
        errors=len(errors),
        hooks_failed=len(runner.failed),
    )
    return result
