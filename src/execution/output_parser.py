# src/execution/output_parser.py - v1
"""Best-effort extraction of structured results from weaver's console output."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from weaverkit.cache.models import ValidationSummary

_QUOTED_PATH = re.compile(r"""['"]([^'"]+)['"]""")

_GENERATED_MARKERS = ("Generated:", "Created:")
_DOCS_MARKERS = ("Documentation generated:",)
_CLEANED_MARKERS = ("Cleaned:", "Removed:")


@dataclass
class ParsedOutput:
    validation: ValidationSummary | None = None
    files_generated: list[str] = field(default_factory=list)
    files_deleted: list[str] = field(default_factory=list)


def parse_output(operation: str, stdout: str) -> ParsedOutput:
    """Parse tool output for ``operation``. Unknown operations yield an empty result."""
    lines = stdout.splitlines()

    if operation == "validate":
        return ParsedOutput(validation=_parse_validation(lines))
    if operation == "generate":
        return ParsedOutput(files_generated=_quoted_paths(lines, _GENERATED_MARKERS))
    if operation == "docs":
        return ParsedOutput(files_generated=_quoted_paths(lines, _DOCS_MARKERS + _GENERATED_MARKERS))
    if operation == "clean":
        return ParsedOutput(files_deleted=_quoted_paths(lines, _CLEANED_MARKERS))
    return ParsedOutput()


def _parse_validation(lines: list[str]) -> ValidationSummary:
    errors: list[str] = []
    warnings: list[str] = []
    for line in lines:
        lowered = line.lower()
        if "error" in lowered:
            errors.append(line.strip())
        elif "warning" in lowered:
            warnings.append(line.strip())
    return ValidationSummary(valid=not errors, errors=errors, warnings=warnings)


def _quoted_paths(lines: list[str], markers: tuple[str, ...]) -> list[str]:
    paths = []
    for line in lines:
        if any(m in line for m in markers):
            match = _QUOTED_PATH.search(line)
            if match:
                paths.append(match.group(1))
    return paths
