from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

from practice_research.services import cache_store
from practice_research.services.cache_store import CacheStore, clear_cache_entries, create_cache_key, get_cache_stats


def _write_aged(store: CacheStore, key: str, value, age: timedelta) -> None:
    created = (datetime.now(timezone.utc) - age).isoformat().replace("+00:00", "Z")
    store.cache_dir.mkdir(parents=True, exist_ok=True)
    store.path_for(key).write_text(
        json.dumps({"key": key, "createdAt": created, "value": value}),
        encoding="utf-8",
    )


def test_cache_key_ignores_key_order():
    first = create_cache_key({"provider": "hn", "query": "react", "options": {"a": 1, "b": 2}})
    second = create_cache_key({"options": {"b": 2, "a": 1}, "query": "react", "provider": "hn"})

    assert first == second
    assert len(first) == 64
    assert create_cache_key({"provider": "hn", "query": "vue"}) != first


def test_write_then_read_round_trip(tmp_path):
    store = CacheStore(tmp_path / "cache")
    key = store.key_for({"query": "react hooks"})

    store.write(key, [{"title": "Rules of Hooks", "url": "https://react.dev/reference/rules"}])

    assert store.read(key, ttl_ms=60_000) == [
        {"title": "Rules of Hooks", "url": "https://react.dev/reference/rules"}
    ]
    entry = json.loads(store.path_for(key).read_text(encoding="utf-8"))
    assert entry["key"] == key
    assert entry["createdAt"].endswith("Z")
    # no temp files are left behind
    assert [path.name for path in store.cache_dir.iterdir()] == [f"{key}.json"]


def test_expired_entries_miss_unless_ttl_disabled(tmp_path):
    store = CacheStore(tmp_path)
    _write_aged(store, "old", ["value"], timedelta(hours=2))

    assert store.read("old", ttl_ms=60 * 60 * 1000) is None
    assert store.read("old", ttl_ms=0) == ["value"]
    assert store.read("missing", ttl_ms=0) is None


def test_corrupt_files_read_as_miss(tmp_path):
    store = CacheStore(tmp_path)
    store.path_for("broken").write_text("{not json", encoding="utf-8")
    store.path_for("no-date").write_text(json.dumps({"key": "no-date", "value": 1}), encoding="utf-8")

    assert store.read("broken", ttl_ms=0) is None
    assert store.read("no-date", ttl_ms=0) is None


def test_list_and_stats_newest_first(tmp_path):
    store = CacheStore(tmp_path)
    _write_aged(store, "older", 1, timedelta(days=3))
    _write_aged(store, "newer", 2, timedelta(minutes=1))

    entries = store.list()
    assert [entry.key for entry in entries] == ["newer", "older"]
    assert entries[0].age_ms is not None and entries[0].age_ms < entries[1].age_ms

    stats = get_cache_stats(tmp_path)
    assert stats["exists"] is True
    assert stats["fileCount"] == 2
    assert stats["totalSizeBytes"] == sum(entry.size_bytes for entry in entries)
    assert stats["newestCreatedAt"] == entries[0].created_at
    assert stats["oldestCreatedAt"] == entries[1].created_at


def test_stats_for_missing_directory(tmp_path):
    stats = get_cache_stats(tmp_path / "absent")

    assert stats["exists"] is False
    assert stats["fileCount"] == 0
    assert stats["newestCreatedAt"] is None


def test_clean_with_threshold_keeps_young_and_unknown_age(tmp_path):
    store = CacheStore(tmp_path)
    _write_aged(store, "stale", 1, timedelta(days=2))
    _write_aged(store, "fresh", 2, timedelta(minutes=5))
    store.path_for("unknown").write_text("garbage", encoding="utf-8")

    dry = clear_cache_entries(tmp_path, older_than_ms=24 * 60 * 60 * 1000, dry_run=True)
    assert dry["scannedCount"] == 3
    assert dry["removedCount"] == 1
    assert dry["keptCount"] == 2
    assert dry["dryRun"] is True
    assert store.path_for("stale").exists()

    result = clear_cache_entries(tmp_path, older_than_ms=24 * 60 * 60 * 1000)
    assert result["removedCount"] == 1
    assert result["freedBytes"] > 0
    assert not store.path_for("stale").exists()
    assert store.path_for("fresh").exists()
    assert store.path_for("unknown").exists()


def test_clean_without_threshold_removes_everything(tmp_path):
    store = CacheStore(tmp_path)
    _write_aged(store, "a", 1, timedelta(seconds=1))
    store.path_for("b").write_text("garbage", encoding="utf-8")

    result = store.clean()

    assert result["removedCount"] == 2
    assert result["keptCount"] == 0
    assert store.list() == []


def test_resolve_cache_dir(monkeypatch, tmp_path):
    monkeypatch.setattr(cache_store.settings, "cache_dir", str(tmp_path / "default"))
    config_path = tmp_path / "conf" / "practice.config.json"

    assert cache_store.resolve_cache_dir(None) == tmp_path / "default"
    assert cache_store.resolve_cache_dir("cache", config_path) == (tmp_path / "conf" / "cache").resolve()
    assert cache_store.resolve_cache_dir(str(tmp_path / "abs")) == tmp_path / "abs"
