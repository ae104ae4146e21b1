"""Best-practice research - JSON runner

Usage:
    python main.py practice --input '{"topic": "Node.js error handling", "stack": "Node.js"}'
    python main.py cache stats
    python main.py cache clean --older-than-ms 86400000 --dry-run
    python main.py config init --force
"""

import argparse
import asyncio
import json
import sys

from practice_research.config import init_practice_config, settings
from practice_research.services.cache_store import clear_cache_entries, get_cache_stats
from practice_research.services.errors import PracticeError
from practice_research.services.logger import configure_logging
from practice_research.services.pipeline import run_practice_search


def _print_json(payload) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


async def run_practice(args: argparse.Namespace) -> dict:
    raw_input = args.input
    if raw_input == "-":
        raw_input = sys.stdin.read()
    return await run_practice_search(
        raw_input,
        config_path=args.config,
        no_cache=args.no_cache,
        refresh_cache=args.refresh_cache,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Best-practice research engine")
    parser.add_argument("--log-level", help="Log level (default: from settings)")
    commands = parser.add_subparsers(dest="command", required=True)

    practice = commands.add_parser("practice", help="Run a best-practice search")
    practice.add_argument("--input", "-i", required=True, help="JSON input, or - to read stdin")
    practice.add_argument("--config", "-c", help="Path to practice.config.json")
    practice.add_argument("--no-cache", action="store_true", help="Disable cache reads and writes")
    practice.add_argument("--refresh-cache", action="store_true", help="Skip cache reads, still write")

    cache = commands.add_parser("cache", help="Inspect or clean the result cache")
    cache_commands = cache.add_subparsers(dest="cache_command", required=True)
    stats = cache_commands.add_parser("stats", help="Show cache statistics")
    stats.add_argument("--cache-dir", help="Cache directory (default: from settings)")
    clean = cache_commands.add_parser("clean", help="Remove cache entries")
    clean.add_argument("--cache-dir", help="Cache directory (default: from settings)")
    clean.add_argument("--older-than-ms", type=int, default=0, help="Only remove entries older than this")
    clean.add_argument("--dry-run", action="store_true", help="Report without deleting")

    config = commands.add_parser("config", help="Manage the practice config file")
    config_commands = config.add_subparsers(dest="config_command", required=True)
    init = config_commands.add_parser("init", help="Write the default config")
    init.add_argument("--path", help=f"Target path (default: {settings.default_config_path})")
    init.add_argument("--force", action="store_true", help="Overwrite an existing file")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(level=args.log_level)

    try:
        if args.command == "practice":
            _print_json(asyncio.run(run_practice(args)))
        elif args.command == "cache" and args.cache_command == "stats":
            _print_json(get_cache_stats(args.cache_dir))
        elif args.command == "cache" and args.cache_command == "clean":
            _print_json(
                clear_cache_entries(
                    args.cache_dir,
                    older_than_ms=args.older_than_ms,
                    dry_run=args.dry_run,
                )
            )
        elif args.command == "config":
            path = init_practice_config(args.path, force=args.force)
            _print_json({"ok": True, "path": str(path)})
    except PracticeError as exc:
        _print_json({"ok": False, "error": str(exc)})
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
