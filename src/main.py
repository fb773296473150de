# src/main.py - v2
"""CLI entry point: operations, cache maintenance and executable management.

Usage:
    weaverkit validate --project NAME [--project-root DIR] [--config FILE] [options]
    weaverkit generate|docs|clean --project NAME ...
    weaverkit cache stats|invalidate|compact
    weaverkit tool resolve|validate VERSION
    weaverkit tool list|cleanup
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import timedelta
from pathlib import Path
from typing import Any

from weaverkit.config.settings import Settings
from weaverkit.version import __version__

logger = logging.getLogger(__name__)

OPERATIONS = ("validate", "generate", "docs", "clean")


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        settings = _load_settings()
        _setup_logging(settings, args.verbose)
        return args.func(args, settings)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        describe = getattr(exc, "describe", None)
        logger.error("Fatal error: %s", describe() if describe else exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="weaverkit",
        description=f"weaverkit v{__version__} - cached weaver operations",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging and echo executed commands",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- operations ---
    for operation in OPERATIONS:
        p_op = subparsers.add_parser(operation, help=f"Run weaver {operation} for a project")
        p_op.add_argument("--project", required=True, help="Project name")
        p_op.add_argument(
            "--project-root", type=Path, default=Path("."),
            help="Project root directory (default: .)",
        )
        p_op.add_argument(
            "--config", type=Path, default=None,
            help="JSON file with 'workspace' and 'project' sections",
        )
        p_op.add_argument(
            "--tool-version", default=None,
            help="Weaver version, overriding the configuration",
        )
        p_op.add_argument("--dry-run", action="store_true", help="Show what would run")
        p_op.add_argument("--force", action="store_true", help="Ignore cached results")
        p_op.add_argument(
            "--timeout", type=float, default=None,
            help="Overall operation timeout in seconds",
        )
        p_op.add_argument(
            "--option", action="append", default=[], metavar="KEY=VALUE",
            help="Extra weaver flag, repeatable (KEY alone for a boolean flag)",
        )
        p_op.set_defaults(func=_cmd_operation, operation=operation)

    # --- cache ---
    p_cache = subparsers.add_parser("cache", help="Inspect or maintain the result cache")
    cache_sub = p_cache.add_subparsers(dest="cache_command", required=True)

    p_stats = cache_sub.add_parser("stats", help="Show cache statistics")
    p_stats.set_defaults(func=_cmd_cache_stats)

    p_inv = cache_sub.add_parser("invalidate", help="Remove cache entries")
    p_inv.add_argument("--project", default=None, help="Only this project")
    p_inv.add_argument("--operation", default=None, choices=OPERATIONS, help="Only this operation")
    p_inv.set_defaults(func=_cmd_cache_invalidate)

    p_compact = cache_sub.add_parser("compact", help="Drop expired entries and enforce size cap")
    p_compact.add_argument(
        "--max-size-mb", type=int, default=None,
        help="Size cap in MiB (default: WEAVER_CACHE_MAX_SIZE_MB)",
    )
    p_compact.set_defaults(func=_cmd_cache_compact)

    # --- tool ---
    p_tool = subparsers.add_parser("tool", help="Manage installed weaver executables")
    tool_sub = p_tool.add_subparsers(dest="tool_command", required=True)

    p_resolve = tool_sub.add_parser("resolve", help="Print the executable path, downloading if needed")
    p_resolve.add_argument("tool_version", help="Weaver version (x.y.z)")
    p_resolve.set_defaults(func=_cmd_tool_resolve)

    p_validate = tool_sub.add_parser("validate", help="Verify an installed executable")
    p_validate.add_argument("tool_version", help="Weaver version (x.y.z)")
    p_validate.set_defaults(func=_cmd_tool_validate)

    p_list = tool_sub.add_parser("list", help="List installed executables")
    p_list.set_defaults(func=_cmd_tool_list)

    p_cleanup = tool_sub.add_parser("cleanup", help="Remove executables unused for a while")
    p_cleanup.add_argument(
        "--retention-days", type=int, default=None,
        help="Keep executables used within this many days (default: WEAVER_EXECUTABLE_RETENTION_DAYS)",
    )
    p_cleanup.set_defaults(func=_cmd_tool_cleanup)

    return parser


# --- operations ---

def _cmd_operation(args: argparse.Namespace, settings: Settings) -> int:
    """Run one operation through the facade."""
    from weaverkit.api.facade import execute, load_config_document
    from weaverkit.api.models import ConfigDocument, ExecutorRequest

    document = load_config_document(args.config) if args.config else ConfigDocument()
    project = document.project
    if args.tool_version:
        project = project.model_copy(update={"version": args.tool_version})

    request = ExecutorRequest(
        operation=args.operation,
        project=args.project,
        project_root=args.project_root.resolve(),
        dry_run=args.dry_run,
        verbose=args.verbose,
        force=args.force,
        options=parse_options(args.option),
        timeout_s=args.timeout,
    )
    result = execute(request, document.workspace, project, settings=settings)

    if result.output:
        print(result.output)
    if not result.success:
        print(result.error or f"{args.operation} failed", file=sys.stderr)
        return 1
    return 0


def parse_options(items: list[str]) -> dict[str, Any]:
    """Turn ``KEY=VALUE`` strings into options; a bare ``KEY`` means True."""
    options: dict[str, Any] = {}
    for item in items:
        key, sep, value = item.partition("=")
        key = key.strip().lstrip("-")
        if not key:
            raise ValueError(f"Invalid option: {item!r}")
        options[key] = value if sep else True
    return options


# --- cache ---

def _cmd_cache_stats(args: argparse.Namespace, settings: Settings) -> int:
    from weaverkit.cache.cache_factory import create_cache_store

    store = create_cache_store(settings)
    try:
        stats = store.stats()
    finally:
        store.close()

    print(f"\nCache statistics for {settings.cache_root} ({settings.cache_backend}):")
    print(f"  Entries:      {stats.total_entries}")
    print(f"  Size:         {stats.total_size_bytes / 1024:.1f} KiB")
    print(f"  Oldest entry: {stats.oldest_entry or '-'}")
    print(f"  Newest entry: {stats.newest_entry or '-'}")
    return 0


def _cmd_cache_invalidate(args: argparse.Namespace, settings: Settings) -> int:
    from weaverkit.cache.cache_factory import create_cache_store

    store = create_cache_store(settings)
    try:
        removed = store.invalidate(project=args.project, operation=args.operation)
    finally:
        store.close()
    print(f"Removed {removed} cache entries")
    return 0


def _cmd_cache_compact(args: argparse.Namespace, settings: Settings) -> int:
    from weaverkit.cache.cache_factory import create_cache_store

    store = create_cache_store(settings)
    cap = args.max_size_mb * 1024 * 1024 if args.max_size_mb is not None else None
    try:
        report = store.compact(cap)
    finally:
        store.close()
    print(json.dumps(report.model_dump(), indent=2))
    return 0


# --- tool ---

def _cmd_tool_resolve(args: argparse.Namespace, settings: Settings) -> int:
    from weaverkit.executable.manager import ExecutableManager

    with ExecutableManager(settings) as manager:
        print(manager.resolve_path(args.tool_version))
    return 0


def _cmd_tool_validate(args: argparse.Namespace, settings: Settings) -> int:
    from weaverkit.executable.manager import ExecutableManager

    with ExecutableManager(settings) as manager:
        ok = manager.validate(args.tool_version)
    print(f"weaver {args.tool_version}: {'valid' if ok else 'missing or invalid'}")
    return 0 if ok else 1


def _cmd_tool_list(args: argparse.Namespace, settings: Settings) -> int:
    from weaverkit.executable.manager import ExecutableManager

    with ExecutableManager(settings) as manager:
        records = manager.installed()
    if not records:
        print("No executables installed")
        return 0
    for record in records:
        print(f"  {record.version:<12} {record.platform:<28} last used {record.last_used_at:%Y-%m-%d}")
    return 0


def _cmd_tool_cleanup(args: argparse.Namespace, settings: Settings) -> int:
    from weaverkit.executable.manager import ExecutableManager

    retention = timedelta(days=args.retention_days) if args.retention_days is not None else None
    with ExecutableManager(settings) as manager:
        removed = manager.cleanup(retention)
    print(f"Removed {len(removed)} executables")
    for record in removed:
        print(f"  {record.version} ({record.platform})")
    return 0


def _load_settings() -> Settings:
    from weaverkit.config.settings import load_settings

    return load_settings()


def _setup_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from weaverkit.logging.logger import setup_logging

    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )


if __name__ == "__main__":
    sys.exit(main())
