from __future__ import annotations

from pathlib import Path

import pytest

from practice_research.config import normalize_config
from practice_research.models.schemas import SearchContext
from practice_research.services.hooks import HookRegistry, HookRunner, load_hook_registry

CONTEXT = SearchContext(topic="react hooks", stack="react", objective="ship")
EXAMPLE_HOOK = Path(__file__).resolve().parents[1] / "scripts" / "practice_hooks" / "after_rank_example.py"


def test_register_rejects_unknown_stage():
    registry = HookRegistry()

    with pytest.raises(ValueError, match="Unknown hook stage"):
        registry.register("afterEverything", lambda payload, metadata: payload)


@pytest.mark.asyncio
async def test_dict_result_replaces_payload_and_metadata_is_passed():
    seen: dict = {}

    def add_query(payload, metadata):
        seen.update(metadata)
        return {"queries": [*payload["queries"], "react hooks testing"]}

    registry = HookRegistry()
    registry.register("afterQuery", add_query, name="add-query")
    runner = HookRunner(registry)

    updated = await runner.apply("afterQuery", {"queries": ["react hooks"]}, CONTEXT, normalize_config())

    assert updated == {"queries": ["react hooks", "react hooks testing"]}
    assert seen["stage"] == "afterQuery"
    assert seen["topic"] == "react hooks"
    assert seen["config"]["stages"]["query"]["maxQueries"] == 7
    assert [(item.stage, item.name) for item in runner.executed] == [("afterQuery", "add-query")]


@pytest.mark.asyncio
async def test_async_hooks_are_awaited_and_non_dict_results_ignored():
    async def async_hook(payload, metadata):
        return {"ranked": []}

    def returns_none(payload, metadata):
        return None

    registry = HookRegistry()
    registry.register("afterRank", async_hook)
    registry.register("afterCollect", returns_none)
    runner = HookRunner(registry)
    config = normalize_config()

    assert await runner.apply("afterRank", {"ranked": [{"url": "x"}]}, CONTEXT, config) == {"ranked": []}
    original = {"collected": [], "errors": []}
    assert await runner.apply("afterCollect", original, CONTEXT, config) is original
    assert len(runner.executed) == 2


@pytest.mark.asyncio
async def test_hook_exceptions_are_recorded_not_raised():
    def boom(payload, metadata):
        raise RuntimeError("hook exploded")

    registry = HookRegistry()
    registry.register("afterIntent", boom)
    runner = HookRunner(registry)
    payload = {"context": CONTEXT.model_dump(by_alias=True)}

    assert await runner.apply("afterIntent", payload, CONTEXT, normalize_config()) is payload
    assert runner.executed == []
    assert runner.log.model_dump(by_alias=True) == {
        "executed": [],
        "failed": [{"stage": "afterIntent", "message": "hook exploded"}],
    }


@pytest.mark.asyncio
async def test_unbound_stage_returns_payload():
    runner = HookRunner()
    payload = {"result": {"type": "practice_report"}}

    assert await runner.apply("beforeReturn", payload, CONTEXT, normalize_config()) is payload
    assert runner.log.executed == []


def test_load_hook_registry_resolves_relative_paths(tmp_path):
    hook_dir = tmp_path / "hooks"
    hook_dir.mkdir()
    (hook_dir / "custom.py").write_text(
        "def rewrite(payload, metadata):\n    return {'queries': ['rewritten']}\n",
        encoding="utf-8",
    )
    config = normalize_config(
        {
            "hooks": {
                "afterQuery": {"module": "hooks/custom.py", "exportName": "rewrite"},
                "afterRank": str(EXAMPLE_HOOK),
                "afterCollect": {"module": "hooks/custom.py", "enabled": False},
            }
        }
    )

    registry = load_hook_registry(config.hooks, tmp_path / "practice.config.json")

    assert set(registry.hooks) == {"afterQuery", "afterRank"}
    assert registry.get("afterQuery").fn({}, {}) == {"queries": ["rewritten"]}
    assert registry.load_failures == []


def test_load_failures_become_failed_hooks(tmp_path):
    (tmp_path / "empty.py").write_text("VALUE = 1\n", encoding="utf-8")
    config = normalize_config(
        {"hooks": {"afterIntent": "missing.py", "beforeReturn": "empty.py"}}
    )

    registry = load_hook_registry(config.hooks, tmp_path / "practice.config.json")
    runner = HookRunner(registry)

    assert registry.hooks == {}
    assert sorted(failure.stage for failure in runner.failed) == ["afterIntent", "beforeReturn"]


def test_host_registered_hooks_take_precedence(tmp_path):
    def host_hook(payload, metadata):
        return payload

    registry = HookRegistry()
    registry.register("afterRank", host_hook, name="host")
    config = normalize_config({"hooks": {"afterRank": str(EXAMPLE_HOOK)}})

    load_hook_registry(config.hooks, tmp_path / "practice.config.json", registry)

    assert registry.get("afterRank").name == "host"


def test_example_hook_drops_reddit_results():
    registry = load_hook_registry(
        normalize_config({"hooks": {"afterRank": str(EXAMPLE_HOOK)}}).hooks,
        EXAMPLE_HOOK,
    )
    ranked = [
        {"url": "https://nodejs.org/api/errors.html", "domain": "nodejs.org"},
        {"url": "https://www.reddit.com/r/node/1", "domain": "reddit.com"},
        {"url": "https://old.reddit.com/r/node/2", "domain": "old.reddit.com"},
    ]

    result = registry.get("afterRank").fn({"ranked": ranked}, {})

    assert [item["domain"] for item in result["ranked"]] == ["nodejs.org"]
