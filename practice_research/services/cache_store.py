from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from hashlib import sha256
from pathlib import Path
from typing import Any

from loguru import logger

from practice_research.config import settings
from practice_research.tools.web_utils import parse_iso_datetime


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def stable_dumps(payload: Any) -> str:
    """Canonical JSON: sorted keys, no insignificant whitespace."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def create_cache_key(payload: Any) -> str:
    return sha256(stable_dumps(payload).encode("utf-8")).hexdigest()


def resolve_cache_dir(
    cache_dir: str | None,
    config_path: str | Path | None = None,
    default: Path | None = None,
) -> Path:
    """Absolute paths as-is, relative ones against the config file's directory."""
    if not cache_dir:
        return default if default is not None else settings.default_cache_dir
    candidate = Path(cache_dir).expanduser()
    if candidate.is_absolute():
        return candidate
    if config_path:
        return (Path(config_path).parent / candidate).resolve()
    return candidate.resolve()


@dataclass(slots=True)
class CacheFileInfo:
    file_name: str
    key: str
    path: Path
    size_bytes: int
    created_at: str | None
    age_ms: int | None


class CacheStore:
    """Directory of ``<key>.json`` files holding ``{key, createdAt, value}``."""

    def __init__(self, cache_dir: str | Path):
        self.cache_dir = Path(cache_dir)

    @staticmethod
    def key_for(payload: Any) -> str:
        return create_cache_key(payload)

    def path_for(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    def _read_payload(self, path: Path) -> dict[str, Any] | None:
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.debug(f"Ignoring unreadable cache file {path.name}: {exc}")
            return None
        return payload if isinstance(payload, dict) else None

    def read(self, key: str, ttl_ms: int) -> Any | None:
        """Cached value for ``key``, or None when absent, corrupt or expired."""
        if not key:
            return None

        path = self.path_for(key)
        if not path.exists():
            return None

        payload = self._read_payload(path)
        if payload is None:
            return None

        created_at = parse_iso_datetime(payload.get("createdAt"))
        if created_at is None:
            return None

        age_ms = (_utc_now() - created_at).total_seconds() * 1000
        if ttl_ms > 0 and age_ms >= ttl_ms:
            return None

        return payload.get("value")

    def write(self, key: str, value: Any) -> None:
        if not key:
            return

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        payload = {
            "key": key,
            "createdAt": _iso(_utc_now()),
            "value": value,
        }
        # temp file + rename keeps readers from seeing a half-written entry
        fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(json.dumps(payload, ensure_ascii=False, indent=2) + "\n")
            os.replace(tmp_name, self.path_for(key))
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def list(self) -> list[CacheFileInfo]:
        """Entries newest first; unreadable files are listed with unknown age."""
        if not self.cache_dir.exists():
            return []

        now = _utc_now()
        entries: list[CacheFileInfo] = []
        for path in self.cache_dir.glob("*.json"):
            try:
                size = path.stat().st_size
            except OSError:
                continue
            payload = self._read_payload(path) or {}
            created_raw = payload.get("createdAt") if isinstance(payload.get("createdAt"), str) else None
            created_at = parse_iso_datetime(created_raw)
            entries.append(
                CacheFileInfo(
                    file_name=path.name,
                    key=str(payload.get("key") or path.stem),
                    path=path,
                    size_bytes=size,
                    created_at=created_raw,
                    age_ms=max(0, int((now - created_at).total_seconds() * 1000))
                    if created_at
                    else None,
                )
            )

        entries.sort(key=lambda item: (item.age_ms is None, item.age_ms or 0))
        return entries

    def stats(self) -> dict[str, Any]:
        entries = self.list()
        return {
            "cacheDir": str(self.cache_dir),
            "exists": self.cache_dir.exists(),
            "fileCount": len(entries),
            "totalSizeBytes": sum(item.size_bytes for item in entries),
            "oldestCreatedAt": entries[-1].created_at if entries else None,
            "newestCreatedAt": entries[0].created_at if entries else None,
        }

    def clean(self, older_than_ms: int = 0, dry_run: bool = False) -> dict[str, Any]:
        """Remove entries at least ``older_than_ms`` old, or all when no threshold."""
        result = {
            "cacheDir": str(self.cache_dir),
            "scannedCount": 0,
            "removedCount": 0,
            "keptCount": 0,
            "freedBytes": 0,
            "dryRun": bool(dry_run),
        }
        if not self.cache_dir.exists():
            return result

        entries = self.list()
        result["scannedCount"] = len(entries)
        for entry in entries:
            keep = older_than_ms > 0 and (entry.age_ms is None or entry.age_ms < older_than_ms)
            if keep:
                result["keptCount"] += 1
                continue
            if not dry_run:
                entry.path.unlink(missing_ok=True)
            result["removedCount"] += 1
            result["freedBytes"] += entry.size_bytes

        logger.info(
            f"Cache clean in {self.cache_dir}: removed {result['removedCount']}, "
            f"kept {result['keptCount']}, dry_run={dry_run}"
        )
        return result


def get_cache_stats(cache_dir: str | Path | None = None) -> dict[str, Any]:
    return CacheStore(resolve_cache_dir(str(cache_dir) if cache_dir else None)).stats()


def clear_cache_entries(
    cache_dir: str | Path | None = None,
    *,
    older_than_ms: int = 0,
    dry_run: bool = False,
) -> dict[str, Any]:
    store = CacheStore(resolve_cache_dir(str(cache_dir) if cache_dir else None))
    return store.clean(older_than_ms=older_than_ms, dry_run=dry_run)
