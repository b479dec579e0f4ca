# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""claude-hooks event contracts, permissions and plugin registration.

This package provides:
- Per-event payload contracts and the HookResponse verdict model
- Permission descriptors and their resolution into sandbox flags
- Plugin bundles and the ordered plugin registry

The dispatch engine lives in ``claudehooks.hooks.dispatcher`` and is
re-exported from the top-level ``claudehooks`` package.

Example:
    >>> from claudehooks.hooks import EventType, validate_payload
    >>> payload = validate_payload(
    ...     EventType.SESSION_START,
    ...     {"context": {"session_id": "s1", "working_directory": "/work"}},
    ... )
"""

from __future__ import annotations

from claudehooks.hooks.exceptions import (
    ConfigurationError,
    HandlerExecutionError,
    HookError,
    ManifestLoadError,
    PayloadValidationError,
    ResponseValidationError,
)
from claudehooks.hooks.permissions import (
    Capability,
    ModelPermissionDescriptor,
    ModelPermissionSet,
    SandboxFlag,
    flags_to_args,
    parse_flag_arg,
    resolve_permissions,
)
from claudehooks.hooks.plugins import (
    HandlerRef,
    ModelRegistrationResult,
    Plugin,
    PluginRegistry,
)
from claudehooks.hooks.schemas import (
    PAYLOAD_MODELS,
    EventType,
    HookAction,
    ModelHookContext,
    ModelHookPayload,
    ModelHookPayloadBase,
    ModelHookResponse,
    ModelNotificationPayload,
    ModelPostToolUsePayload,
    ModelPreCompactPayload,
    ModelPreToolUsePayload,
    ModelSessionStartPayload,
    ModelStopPayload,
    ModelSubagentStopPayload,
    ModelUserPromptSubmitPayload,
    validate_payload,
    validate_response,
)

__all__ = [
    # Exceptions
    "HookError",
    "PayloadValidationError",
    "ResponseValidationError",
    "HandlerExecutionError",
    "ConfigurationError",
    "ManifestLoadError",
    # Event contracts
    "EventType",
    "HookAction",
    "ModelHookContext",
    "ModelHookPayload",
    "ModelHookPayloadBase",
    "ModelPreToolUsePayload",
    "ModelPostToolUsePayload",
    "ModelNotificationPayload",
    "ModelUserPromptSubmitPayload",
    "ModelStopPayload",
    "ModelSubagentStopPayload",
    "ModelPreCompactPayload",
    "ModelSessionStartPayload",
    "ModelHookResponse",
    "PAYLOAD_MODELS",
    "validate_payload",
    "validate_response",
    # Permissions
    "Capability",
    "ModelPermissionSet",
    "ModelPermissionDescriptor",
    "SandboxFlag",
    "resolve_permissions",
    "flags_to_args",
    "parse_flag_arg",
    # Plugins
    "HandlerRef",
    "Plugin",
    "ModelRegistrationResult",
    "PluginRegistry",
]
