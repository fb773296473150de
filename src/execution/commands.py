# src/execution/commands.py - v1
"""Translate an operation and its configuration into weaver command-line arguments."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from weaverkit.config.models import ResolvedConfig

SUBCOMMANDS: dict[str, list[str]] = {
    "validate": ["registry", "check"],
    "generate": ["registry", "generate"],
    "docs": ["registry", "generate"],
}

OUTPUT_OPERATIONS = frozenset({"generate", "docs"})
DOCS_SUBDIR = "docs"


def output_dir_for(operation: str, output_dir: Path) -> Path:
    """Docs are generated into their own subdirectory of the output directory."""
    return output_dir / DOCS_SUBDIR if operation == "docs" else output_dir


def build_command_args(
    operation: str,
    config: ResolvedConfig,
    *,
    schema_dir: Path | None = None,
    output_dir: Path | None = None,
    options: Mapping[str, Any] | None = None,
) -> list[str]:
    """Build the argument vector (without the executable itself).

    Order: subcommand, ``--registry``, ``--output`` (generate/docs only),
    per-operation args from config, then options as flags. Boolean options
    become bare flags when true and are dropped when false; ``None`` values
    are dropped.
    """
    args = list(SUBCOMMANDS.get(operation, [operation]))

    args += ["--registry", str(schema_dir or config.schema_directory)]

    if operation in OUTPUT_OPERATIONS:
        args += ["--output", str(output_dir_for(operation, output_dir or config.output_directory))]

    args += config.args_for(operation)

    for key, value in (options or {}).items():
        if value is None or value is False:
            continue
        if value is True:
            args.append(f"--{key}")
        else:
            args += [f"--{key}", str(value)]

    return args
