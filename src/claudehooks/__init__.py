# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""claude-hooks - typed, sandboxed lifecycle hooks for AI coding assistants.

Register handlers for assistant events (tool use, prompt submission, session
start/stop, notifications, compaction) and let the dispatch engine validate
each event, run the handlers in order and reduce their verdicts to one
``continue`` / ``block`` / ``modify`` response.

Example:
    >>> from claudehooks import ModelHookResponse, hooks
    >>>
    >>> def no_env_writes(payload):
    ...     if payload.tool_input.get("file_path", "").endswith(".env"):
    ...         return ModelHookResponse.block("refusing to touch .env files")
    ...
    >>> ctx = hooks(on_pre_tool_use=no_env_writes)
    >>> result = ctx.dispatch("PreToolUse", payload_json)
    >>> print(result.verdict.to_json_line())
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from claudehooks.hooks import (
    ConfigurationError,
    EventType,
    HandlerExecutionError,
    HookAction,
    HookError,
    ModelHookResponse,
    ModelPermissionDescriptor,
    PayloadValidationError,
    Plugin,
    PluginRegistry,
    ResponseValidationError,
    resolve_permissions,
    validate_payload,
    validate_response,
)
from claudehooks.hooks.dispatcher import (
    DispatchContext,
    DispatchState,
    ModelDispatchResult,
    aggregate,
    dispatch,
    hooks,
)

try:
    __version__ = version("claude-hooks")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "__version__",
    "ConfigurationError",
    "DispatchContext",
    "DispatchState",
    "EventType",
    "HandlerExecutionError",
    "HookAction",
    "HookError",
    "ModelDispatchResult",
    "ModelHookResponse",
    "ModelPermissionDescriptor",
    "PayloadValidationError",
    "Plugin",
    "PluginRegistry",
    "ResponseValidationError",
    "aggregate",
    "dispatch",
    "hooks",
    "resolve_permissions",
    "validate_payload",
    "validate_response",
]
