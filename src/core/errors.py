# src/core/errors.py - v2
"""Error taxonomy for fingerprinting, caching, executable acquisition and execution.

Every error carries a stable ``code``, a ``fatal`` flag telling the
orchestrator whether the operation can continue or retry, and optional
human-readable suggestions surfaced to the user.
"""

from __future__ import annotations

from typing import Any


class WeaverError(Exception):
    """Base class for all weaverkit errors."""

    code: str = "WEAVER_ERROR"
    fatal: bool = False

    def __init__(
        self,
        message: str,
        *,
        suggestions: list[str] | tuple[str, ...] = (),
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.suggestions = list(suggestions)
        self.context = context or {}

    def describe(self) -> str:
        """Message plus suggestions, formatted for end users."""
        if not self.suggestions:
            return self.message
        hints = "\n".join(f"  - {s}" for s in self.suggestions)
        return f"{self.message}\n\nSuggestions:\n{hints}"


class ConfigurationError(WeaverError):
    """Raised when configuration is missing or internally inconsistent."""

    code = "CONFIG_ERROR"
    fatal = True


class InputUnreadable(WeaverError):
    """A fingerprint input file could not be read."""

    code = "INPUT_UNREADABLE"

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(
            f"Cannot read input file {path}: {reason}",
            suggestions=["Check that the file exists and is readable"],
            context={"path": path},
        )
        self.path = path


class DownloadError(WeaverError):
    """Network or transport failure while fetching the executable."""

    code = "DOWNLOAD_ERROR"

    def __init__(
        self,
        message: str,
        *,
        version: str = "",
        url: str = "",
        retryable: bool = True,
        attempts: int = 0,
    ) -> None:
        super().__init__(
            message,
            suggestions=[
                "Check your network connection",
                "Verify that the version exists for this platform",
            ],
            context={"version": version, "url": url, "attempts": attempts},
        )
        self.version = version
        self.url = url
        self.retryable = retryable
        self.attempts = attempts


class HashMismatchError(WeaverError):
    """Integrity check of a downloaded or installed binary failed."""

    code = "HASH_MISMATCH"
    fatal = True

    def __init__(self, message: str, *, expected: str = "", actual: str = "") -> None:
        super().__init__(
            message,
            suggestions=[
                "Verify the configured download and checksum URL templates",
                "Do not retry: the artifact itself does not match its checksum",
            ],
            context={"expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


class UnsupportedPlatformError(WeaverError):
    """No download coordinate exists for the host platform."""

    code = "UNSUPPORTED_PLATFORM"
    fatal = True

    def __init__(self, system: str, machine: str) -> None:
        super().__init__(
            f"Unsupported platform: {system}/{machine}",
            suggestions=["Install the executable manually and point the configuration at it"],
            context={"system": system, "machine": machine},
        )
        self.system = system
        self.machine = machine


class InvalidVersionError(WeaverError):
    """The requested tool version is not a concrete semantic version."""

    code = "INVALID_VERSION"
    fatal = True

    def __init__(self, version: str) -> None:
        super().__init__(
            f"Invalid version format: {version!r}. Expected format: x.y.z",
            suggestions=["Pin the tool to an explicit release such as 0.13.2"],
            context={"version": version},
        )
        self.version = version


class CommandTimeoutError(WeaverError, TimeoutError):
    """The subprocess exceeded its timeout and was killed."""

    code = "TIMEOUT"

    def __init__(
        self,
        operation: str,
        timeout_s: float,
        *,
        stdout: str = "",
        stderr: str = "",
        duration_ms: int = 0,
    ) -> None:
        WeaverError.__init__(
            self,
            f"{operation} timed out after {timeout_s:g}s",
            suggestions=["Increase the command timeout"],
            context={"operation": operation, "timeout_s": timeout_s},
        )
        self.operation = operation
        self.timeout_s = timeout_s
        self.stdout = stdout
        self.stderr = stderr
        self.duration_ms = duration_ms


class OperationTimeoutError(WeaverError, TimeoutError):
    """The caller-level deadline for a whole operation expired."""

    code = "OPERATION_TIMEOUT"

    def __init__(self, message: str, *, stdout: str = "", stderr: str = "") -> None:
        super().__init__(message, suggestions=["Increase the operation timeout"])
        self.stdout = stdout
        self.stderr = stderr


class OperationCancelled(WeaverError):
    """The operation was cancelled by its caller."""

    code = "CANCELLED"

    def __init__(self, message: str, *, stdout: str = "", stderr: str = "") -> None:
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr


class ExecutionError(WeaverError):
    """The tool could not be launched or exited unsuccessfully."""

    code = "EXECUTION_ERROR"
    fatal = True

    def __init__(
        self,
        message: str,
        *,
        operation: str = "",
        exit_code: int | None = None,
        output: str = "",
    ) -> None:
        super().__init__(
            message,
            suggestions=["Check schema syntax", "Run the validate operation first"],
            context={"operation": operation, "exit_code": exit_code},
        )
        self.operation = operation
        self.exit_code = exit_code
        self.output = output


class CacheCorruption(WeaverError):
    """A stored cache entry could not be deserialized or failed its integrity check.

    Never propagated to callers: stores log it and report a miss.
    """

    code = "CACHE_CORRUPTION"

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Corrupted cache entry {key}: {reason}", context={"key": key})
        self.key = key
