# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Exception types for hook dispatch.

This module defines the error taxonomy of the dispatch engine:

- HookError: Base exception for all hook errors
- PayloadValidationError: Event payload failed its contract (fail-open)
- ResponseValidationError: Handler returned a malformed verdict (fail-open)
- HandlerExecutionError: Handler crashed, exited non-zero or timed out (fail-open)
- ConfigurationError: Invalid invocation, e.g. unknown event type (fatal to the call)
- ManifestLoadError: Plugin manifest could not be read or validated

Only ConfigurationError (and its subclasses) ever reaches the caller of a
dispatch. The other three are converted into advisory ``continue`` responses
by the dispatcher so that one misbehaving handler can never block an
unrelated action.
"""

from __future__ import annotations

from pathlib import Path

__all__ = [
    "HookError",
    "PayloadValidationError",
    "ResponseValidationError",
    "HandlerExecutionError",
    "ConfigurationError",
    "ManifestLoadError",
]


class HookError(Exception):
    """Base exception for hook dispatch errors."""

    pass


class PayloadValidationError(HookError):
    """Raised when an event payload does not conform to its event contract.

    Attributes:
        event_type: Name of the event whose contract was violated.
        violations: One human-readable line per violated constraint,
            formatted as ``<field.path>: <reason>``.

    Example:
        >>> raise PayloadValidationError("PreToolUse", ["tool_name: Field required"])
        PayloadValidationError: PreToolUse: tool_name: Field required
    """

    def __init__(self, event_type: str, violations: list[str]) -> None:
        self.event_type = event_type
        self.violations = list(violations)
        super().__init__(f"{event_type}: {'; '.join(self.violations)}")


class ResponseValidationError(HookError):
    """Raised when a handler returns a value that is not a valid HookResponse."""

    pass


class HandlerExecutionError(HookError):
    """Raised when a handler cannot produce a verdict.

    Covers exceptions thrown by in-process handlers as well as boundary-level
    failures of the isolated subprocess (timeout, non-zero exit, protocol
    violation on stdout).

    Attributes:
        exit_code: Exit status of the handler subprocess, if one ran.
        stderr: Trailing stderr output of the handler subprocess, if any.
    """

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        stderr: str | None = None,
    ) -> None:
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(message)


class ConfigurationError(HookError):
    """Raised for invalid dispatch invocations.

    Unlike the validation and execution errors, this is never converted into
    a ``continue`` verdict: asking for an unknown event type or loading a
    broken manifest is a caller bug and is surfaced as such.
    """

    pass


class ManifestLoadError(ConfigurationError):
    """Raised when a plugin manifest fails to load or validate.

    Attributes:
        path: Path to the manifest file that failed.
        cause: The underlying exception that caused the failure.
    """

    def __init__(
        self, message: str, path: Path, cause: Exception | None = None
    ) -> None:
        super().__init__(message)
        self.path = path
        self.cause = cause
