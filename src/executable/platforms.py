# src/executable/platforms.py - v2
"""Host platform detection and release target coordinates."""

from __future__ import annotations

import platform as _platform
import string
from dataclasses import dataclass

from weaverkit.core.errors import ConfigurationError, UnsupportedPlatformError

# Placeholders accepted in download and checksum URL templates
TEMPLATE_FIELDS = frozenset({"version", "platform", "os", "arch"})

_MACHINE_ALIASES = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "aarch64": "aarch64",
}

_SYSTEM_ALIASES = {
    "linux": "linux",
    "darwin": "darwin",
    "windows": "windows",
    "win32": "windows",
}

# (system, machine) -> release target triple
TARGETS: dict[tuple[str, str], str] = {
    ("linux", "x86_64"): "x86_64-unknown-linux-gnu",
    ("linux", "aarch64"): "aarch64-unknown-linux-gnu",
    ("darwin", "x86_64"): "x86_64-apple-darwin",
    ("darwin", "aarch64"): "aarch64-apple-darwin",
    ("windows", "x86_64"): "x86_64-pc-windows-msvc",
}


@dataclass(frozen=True)
class PlatformCoordinate:
    """Where a release artifact lives for one OS/architecture pair."""

    system: str
    machine: str
    target: str

    @property
    def executable_name(self) -> str:
        return "weaver.exe" if self.system == "windows" else "weaver"

    def template_vars(self, version: str) -> dict[str, str]:
        """Substitutions available to download and checksum URL templates."""
        return {
            "version": version,
            "platform": self.target,
            "os": self.system,
            "arch": self.machine,
        }


def detect_platform(system: str | None = None, machine: str | None = None) -> PlatformCoordinate:
    """Map the host (or the given system/machine) to a release coordinate.

    Raises:
        UnsupportedPlatformError: If no release target exists for the pair.
    """
    raw_system = (system or _platform.system()).lower()
    raw_machine = (machine or _platform.machine()).lower()

    norm_system = _SYSTEM_ALIASES.get(raw_system)
    norm_machine = _MACHINE_ALIASES.get(raw_machine)
    target = TARGETS.get((norm_system or "", norm_machine or ""))
    if target is None:
        raise UnsupportedPlatformError(raw_system, raw_machine)

    return PlatformCoordinate(system=norm_system, machine=norm_machine, target=target)


def template_errors(template: str) -> list[str]:
    """Problems with a URL template: bad braces or unknown placeholders."""
    try:
        fields = [f for _, f, _, _ in string.Formatter().parse(template) if f is not None]
    except ValueError as e:
        return [f"malformed template {template!r}: {e}"]
    unknown = sorted({f or "{}" for f in fields if f not in TEMPLATE_FIELDS})
    if unknown:
        allowed = ", ".join("{" + f + "}" for f in sorted(TEMPLATE_FIELDS))
        return [f"unknown placeholder(s) {', '.join(unknown)} in {template!r} (allowed: {allowed})"]
    return []


def render_template(template: str, variables: dict[str, str]) -> str:
    """Fill a URL template.

    Raises:
        ConfigurationError: If the template cannot be filled from ``variables``.
    """
    try:
        return template.format(**variables)
    except (KeyError, IndexError, ValueError) as e:
        raise ConfigurationError(
            f"Cannot fill URL template {template!r}: {e}",
            suggestions=["Use only {version}, {platform}, {os} and {arch} in URL templates"],
        ) from e
