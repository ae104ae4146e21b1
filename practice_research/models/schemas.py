from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Pipeline inputs ---


class SearchContext(_Record):
    topic: str = ""
    stack: str = ""
    objective: str = ""


class SearchRequest(_Record):
    """One (source x query) pairing."""
    index: int  # position in the ordered request list, used as tie-break key
    source_id: str
    source_tier: str
    source_label: str
    provider: str
    domains: list[str] = []
    subreddits: list[str] = []
    provider_options: dict[str, Any] = {}
    query: str


# --- Provider rows and scored results ---


class ProviderRow(_Record):
    title: str
    url: str
    snippet: str = ""
    provider: str
    published_at: str | None = None
    engagement: dict[str, float] = {}
    domain: str = "unknown"


class ResultScore(_Record):
    authority: float
    recency: float
    relevance: float
    topic_coverage: float


class Evidence(_Record):
    text: str
    coverage: float
    score: float


class CollectedResult(_Record):
    title: str
    url: str
    snippet: str = ""
    domain: str
    query: str
    source_id: str
    source_tier: str
    source_label: str
    provider: str
    published_at: str | None = None
    engagement: dict[str, float] = {}
    score: ResultScore
    total_score: float
    fetched_from_cache: bool = False
    evidence: list[Evidence] = []


class RequestError(_Record):
    query: str
    source_id: str
    provider: str
    message: str


# --- Report ---


class EvidenceLink(_Record):
    title: str
    url: str
    excerpt: str
    score: float


class ReportSummary(_Record):
    highlights: list[str] = []
    recommendations: list[str] = []
    evidence_chain: list[EvidenceLink] = []


class PromptDrafts(_Record):
    codex: str = ""
    claude: str = ""


class HookExecution(_Record):
    stage: str
    name: str


class HookFailure(_Record):
    stage: str
    message: str


class HookLog(_Record):
    executed: list[HookExecution] = []
    failed: list[HookFailure] = []


class ConfigSummary(_Record):
    path: str
    loaded_from_disk: bool
    source_count: int
    stage_keys: list[str]
    cache_enabled: bool
    cache_read_enabled: bool
    refresh_cache: bool
    cache_ttl_ms: int
    cache_version: int
    cache_dir: str
    official_docs_index_path: str | None = None


class ExecutionStats(_Record):
    query_count: int = 0
    request_count: int = 0
    collected_count: int = 0
    ranked_count: int = 0
    fetched_for_evidence: int = 0
    cache_hit_count: int = 0
    cache_miss_count: int = 0
    cache_bypass: bool = False
    cache_refresh: bool = False
    retry_used_count: int = 0
    error_count: int = 0
    generated_at: str = ""
    hooks_executed: int = 0
    hooks_failed: int = 0


class PracticeReport(_Record):
    type: str = "practice_report"
    topic: str
    stack: str
    objective: str
    config: ConfigSummary
    execution: ExecutionStats
    queries: list[str] = []
    results: list[CollectedResult] = []
    summary: ReportSummary = Field(default_factory=ReportSummary)
    prompts: PromptDrafts = Field(default_factory=PromptDrafts)
    hooks: HookLog = Field(default_factory=HookLog)
    errors: list[RequestError] = []
