from __future__ import annotations

import importlib.util
import inspect
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from loguru import logger

from practice_research.config import HooksConfig, PracticeConfig, resolve_relative_path
from practice_research.defaults import HOOK_STAGES
from practice_research.models.schemas import HookExecution, HookFailure, HookLog, SearchContext
from practice_research.services.errors import HookError

HookFn = Callable[[dict[str, Any], dict[str, Any]], Any]


@dataclass(slots=True)
class RegisteredHook:
    stage: str
    fn: HookFn
    name: str


@dataclass(slots=True)
class HookRegistry:
    """Hooks bound to pipeline stages, registered once before a run."""
    hooks: dict[str, RegisteredHook] = field(default_factory=dict)
    load_failures: list[HookFailure] = field(default_factory=list)

    def register(self, stage: str, fn: HookFn, name: str | None = None) -> None:
        if stage not in HOOK_STAGES:
            raise ValueError(f"Unknown hook stage: {stage}")
        if not callable(fn):
            raise TypeError(f"Hook for {stage} is not callable")
        label = name or getattr(fn, "__qualname__", None) or repr(fn)
        self.hooks[stage] = RegisteredHook(stage=stage, fn=fn, name=label)

    def get(self, stage: str) -> RegisteredHook | None:
        return self.hooks.get(stage)


def _load_module_callable(module_path: Path, export_name: str | None) -> HookFn:
    spec = importlib.util.spec_from_file_location(f"practice_hook_{module_path.stem}", module_path)
    if spec is None or spec.loader is None:
        raise HookError("load", f"Cannot load hook module: {module_path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    candidates = [export_name] if export_name else ["hook", "default"]
    for candidate in candidates:
        fn = getattr(module, candidate, None)
        if callable(fn):
            return fn
    raise HookError("load", f"Hook function not found: {module_path}#{export_name or 'hook'}")


def load_hook_registry(
    hooks_config: HooksConfig,
    config_path: Path,
    registry: HookRegistry | None = None,
) -> HookRegistry:
    """Resolve hook files named in the config into a registry.

    Paths are absolute or relative to the config file's directory. Hooks
    already registered by the host take precedence over configured ones.
    """
    registry = registry or HookRegistry()
    for stage in HOOK_STAGES:
        definition = hooks_config.for_stage(stage)
        if definition is None or not definition.enabled or stage in registry.hooks:
            continue

        module_path = resolve_relative_path(definition.module, config_path)
        try:
            fn = _load_module_callable(module_path, definition.export_name)
        except Exception as exc:
            logger.warning(f"Hook {stage} could not be loaded from {module_path}: {exc}")
            registry.load_failures.append(HookFailure(stage=stage, message=str(exc)))
            continue
        registry.register(stage, fn, name=f"{module_path}#{definition.export_name or fn.__name__}")
    return registry


class HookRunner:
    """Invokes registered hooks and keeps the executed/failed log."""

    def __init__(self, registry: HookRegistry | None = None):
        self.registry = registry or HookRegistry()
        self.executed: list[HookExecution] = []
        self.failed: list[HookFailure] = list(self.registry.load_failures)

    @property
    def log(self) -> HookLog:
        return HookLog(executed=list(self.executed), failed=list(self.failed))

    def record_failure(self, stage: str, message: str) -> None:
        logger.warning(f"Hook {stage} failed: {message}")
        self.failed.append(HookFailure(stage=stage, message=message))

    async def apply(
        self,
        stage: str,
        payload: dict[str, Any],
        context: SearchContext,
        config: PracticeConfig,
    ) -> dict[str, Any]:
        """Run the hook for ``stage``; returns its dict result or ``payload`` unchanged."""
        hook = self.registry.get(stage)
        if hook is None:
            return payload

        metadata = {
            "stage": stage,
            "topic": context.topic,
            "stack": context.stack,
            "objective": context.objective,
            "config": config.model_dump(by_alias=True),
        }
        try:
            result = hook.fn(payload, metadata)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            self.record_failure(stage, str(exc) or exc.__class__.__name__)
            return payload

        self.executed.append(HookExecution(stage=stage, name=hook.name))
        if isinstance(result, dict):
            return result
        return payload
