from __future__ import annotations

import copy
import json
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings

from practice_research import defaults
from practice_research.services.errors import ConfigError


class Settings(BaseSettings):
    # Home-derived locations, resolved once at startup
    practice_home: str = "~/.bps"
    config_path: str = ""  # optional override of <practice_home>/practice.config.json
    cache_dir: str = ""  # optional override of <practice_home>/cache/practice

    # HTTP
    user_agent: str = "best-practice-skill/0.1"

    # Logging
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = ""  # empty disables the file sink

    model_config = {
        "env_prefix": "PRACTICE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def default_config_path(self) -> Path:
        if self.config_path:
            return Path(self.config_path).expanduser()
        return Path(self.practice_home).expanduser() / "practice.config.json"

    @property
    def default_cache_dir(self) -> Path:
        if self.cache_dir:
            return Path(self.cache_dir).expanduser()
        return Path(self.practice_home).expanduser() / "cache" / "practice"


settings = Settings()


# --- Practice config ---


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class IntentStage(_ConfigModel):
    required_topic: bool = True
    fallback_objective: str = defaults.DEFAULT_FALLBACK_OBJECTIVE


class QueryStage(_ConfigModel):
    max_queries: int = 7
    templates: list[str] = Field(default_factory=lambda: list(defaults.DEFAULT_QUERY_TEMPLATES))
    extra_keywords: list[str] = Field(default_factory=list)
    enable_expansion: bool = True
    max_expansion_keywords: int = 3
    expansion_templates: list[str] = Field(
        default_factory=lambda: list(defaults.DEFAULT_EXPANSION_TEMPLATES)
    )
    stack_profiles: dict[str, list[str]] = Field(
        default_factory=lambda: copy.deepcopy(defaults.DEFAULT_QUERY_STACK_PROFILES)
    )


class OfficialDocsOptions(_ConfigModel):
    merge_default_index: bool = True
    index_path: str | None = None
    index: list[dict[str, Any]] = Field(default_factory=list)
    stack_boost_weight: float = 0.2
    stack_profiles: dict[str, list[str]] | None = None  # overrides the built-in stack tag table


class CollectStage(_ConfigModel):
    max_requests: int = 12
    per_provider_results: int = 4
    timeout_ms: int = 5000
    retries: int = 2
    retry_delay_ms: int = 320
    retry_backoff_factor: float = 2.0
    max_parallel_requests: int = 1
    cache_enabled: bool = True
    cache_ttl_ms: int = 1000 * 60 * 60 * 24
    cache_version: int = 3
    cache_dir: str | None = None
    providers: list[str] = Field(default_factory=lambda: list(defaults.DEFAULT_PROVIDER_ORDER))
    official_docs: OfficialDocsOptions = Field(default_factory=OfficialDocsOptions)


class ScoreWeights(_ConfigModel):
    authority: float = 0.45
    recency: float = 0.2
    relevance: float = 0.35


class ScoreStage(_ConfigModel):
    weights: ScoreWeights = Field(default_factory=ScoreWeights)
    minimum_score: float = 0.35
    minimum_relevance: float = 0.25
    minimum_topic_coverage: float = 0.3
    authority_by_tier: dict[str, float] = Field(
        default_factory=lambda: dict(defaults.DEFAULT_AUTHORITY_BY_TIER)
    )


class EnrichStage(_ConfigModel):
    enabled: bool = True
    max_fetch: int = 3
    timeout_ms: int = 5000
    max_bytes: int = 200_000
    max_evidence_per_result: int = 2
    min_coverage: float = 0.2
    max_sentence_length: int = 240


class SynthesizeStage(_ConfigModel):
    top_n: int = 8
    max_per_domain: int = 2
    include_prompt_draft: bool = True


class Stages(_ConfigModel):
    intent: IntentStage = Field(default_factory=IntentStage)
    query: QueryStage = Field(default_factory=QueryStage)
    collect: CollectStage = Field(default_factory=CollectStage)
    score: ScoreStage = Field(default_factory=ScoreStage)
    enrich: EnrichStage = Field(default_factory=EnrichStage)
    synthesize: SynthesizeStage = Field(default_factory=SynthesizeStage)


class HookDefinition(_ConfigModel):
    module: str
    export_name: str | None = None
    enabled: bool = True


class HooksConfig(_ConfigModel):
    after_intent: HookDefinition | None = None
    after_query: HookDefinition | None = None
    after_collect: HookDefinition | None = None
    after_rank: HookDefinition | None = None
    before_return: HookDefinition | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_shorthand(cls, value: Any) -> Any:
        # "path/to/hook.py" is shorthand for {"module": "path/to/hook.py"}
        if isinstance(value, str):
            return {"module": value} if value.strip() else None
        if isinstance(value, Mapping) and not value.get("module"):
            return None
        return value

    def for_stage(self, stage: str) -> HookDefinition | None:
        value = getattr(self, _stage_attr(stage), None)
        return value if isinstance(value, HookDefinition) else None


class SourceDefinition(_ConfigModel):
    id: str
    label: str = ""
    enabled: bool = True
    tier: str = "medium"
    provider: str = "hn"
    domains: list[str] = Field(default_factory=list)
    subreddits: list[str] = Field(default_factory=list)
    query_prefix: str = ""
    query_suffix: str = ""
    provider_options: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, (int, float)) else value

    @field_validator("domains", "subreddits")
    @classmethod
    def _normalize_names(cls, value: list[str]) -> list[str]:
        return [item.strip().lower() for item in value if item and item.strip()]

    @field_validator("query_prefix", "query_suffix")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()


class PracticeConfig(_ConfigModel):
    version: int = 1
    stages: Stages = Field(default_factory=Stages)
    hooks: HooksConfig = Field(default_factory=HooksConfig)
    sources: list[SourceDefinition] = Field(
        default_factory=lambda: [
            SourceDefinition.model_validate(item) for item in defaults.DEFAULT_SOURCES
        ]
    )
    domain_authority: dict[str, float] = Field(
        default_factory=lambda: dict(defaults.DEFAULT_DOMAIN_AUTHORITY)
    )


def _stage_attr(stage: str) -> str:
    return "".join(f"_{ch.lower()}" if ch.isupper() else ch for ch in stage)


# --- Merge ---

M = TypeVar("M", bound=BaseModel)


def _merge_dict(base: Mapping[str, Any], extra: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in extra.items():
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = _merge_dict(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def merge_config(base: M, override: M) -> M:
    """Merge two config instances of the same type.

    Only fields explicitly present in ``override`` are applied. Nested models
    and mappings merge key by key, lists and scalars replace wholesale.
    """
    updates: dict[str, Any] = {}
    for name in override.model_fields_set:
        value = getattr(override, name)
        current = getattr(base, name, None)
        if (
            isinstance(value, BaseModel)
            and isinstance(current, BaseModel)
            and type(value) is type(current)
        ):
            updates[name] = merge_config(current, value)
        elif isinstance(value, Mapping) and isinstance(current, Mapping):
            updates[name] = _merge_dict(current, value)
        else:
            updates[name] = copy.deepcopy(value)
    return base.model_copy(update=updates)


def normalize_sources(
    sources: list[SourceDefinition],
    default_sources: list[SourceDefinition] | None = None,
) -> list[SourceDefinition]:
    """Fill each source from the default of the same id and drop disabled ones."""
    if default_sources is None:
        default_sources = PracticeConfig().sources
    by_id = {item.id: item for item in default_sources}

    normalized: list[SourceDefinition] = []
    for source in sources:
        base = by_id.get(source.id)
        merged = merge_config(base, source) if base is not None and base is not source else source
        if not merged.label:
            merged = merged.model_copy(update={"label": merged.id})
        if merged.enabled:
            normalized.append(merged)
    return normalized


def parse_config(raw: Mapping[str, Any] | None) -> PracticeConfig:
    """Validate a partial JSON config; unset fields stay unset for merging."""
    if raw is None:
        return PracticeConfig.model_construct(_fields_set=set())
    if not isinstance(raw, Mapping):
        raise ConfigError("practice config must be a JSON object")
    try:
        return PracticeConfig.model_validate(dict(raw))
    except PydanticValidationError as exc:
        raise ConfigError(f"Invalid practice config: {exc}") from exc


def normalize_config(*overrides: Mapping[str, Any] | None) -> PracticeConfig:
    config = PracticeConfig()
    for raw in overrides:
        if not raw:
            continue
        config = merge_config(config, parse_config(raw))
    return config.model_copy(update={"sources": normalize_sources(config.sources)})


# --- Loading ---


@dataclass(slots=True)
class LoadedConfig:
    config: PracticeConfig
    config_path: Path
    loaded_from_disk: bool


def _safe_read_json(path: Path) -> Any:
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning(f"Ignoring unreadable practice config {path}: {exc}")
        return None


def parse_practice_input(raw_input: str | Mapping[str, Any] | None) -> dict[str, Any]:
    if not raw_input:
        return {}
    if isinstance(raw_input, Mapping):
        return dict(raw_input)
    try:
        parsed = json.loads(raw_input)
    except ValueError as exc:
        raise ConfigError("Invalid practice input JSON payload") from exc
    if not isinstance(parsed, dict):
        raise ConfigError("Practice input must be a JSON object")
    return parsed


def load_practice_config(
    config_path: str | Path | None = None,
    inline_config: Mapping[str, Any] | None = None,
) -> LoadedConfig:
    effective_path = (
        Path(config_path).expanduser().resolve() if config_path else settings.default_config_path
    )
    if inline_config is not None and not isinstance(inline_config, Mapping):
        raise ConfigError("input.config must be a JSON object")

    disk_config = _safe_read_json(effective_path)
    if disk_config is not None and not isinstance(disk_config, Mapping):
        logger.warning(f"Ignoring practice config {effective_path}: top level is not an object")
        disk_config = None

    return LoadedConfig(
        config=normalize_config(disk_config, inline_config),
        config_path=effective_path,
        loaded_from_disk=disk_config is not None,
    )


def init_practice_config(target_path: str | Path | None = None, *, force: bool = False) -> Path:
    """Write the default config to disk, refusing to overwrite unless forced."""
    path = Path(target_path).expanduser().resolve() if target_path else settings.default_config_path
    if path.exists() and not force:
        raise ConfigError(f"Config already exists: {path}. Use force to overwrite.")
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = PracticeConfig().model_dump(by_alias=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    return path


def resolve_relative_path(value: str | None, config_path: Path) -> Path | None:
    if not value:
        return None
    candidate = Path(value).expanduser()
    if candidate.is_absolute():
        return candidate
    return (config_path.parent / candidate).resolve()
