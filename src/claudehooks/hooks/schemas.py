# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Event contracts for assistant lifecycle hooks.

This module is the single gate through which every event payload passes
before any handler executes. It defines:

    - EventType: the closed set of lifecycle events a plugin may observe
    - One payload model per EventType, all carrying a ModelHookContext
    - ModelHookResponse: the verdict shape handlers must return
    - validate_payload() / validate_response(): the validation entry points

Key Design Decisions:
    - **Strict primitive typing**: Payloads are untrusted external input.
      Models use ``strict=True`` so that ``"5"`` is not silently accepted
      as a number and ``1`` is not accepted as a string. The only narrowing
      performed is JSON text -> payload.
    - **Frozen models**: A validated payload is shared (by copy) across all
      handlers of a dispatch run and must never be mutated in place.
    - **Unknown keys ignored**: The assistant adds fields over time
      (transcript paths, hook names). They are dropped rather than rejected
      so newer assistants keep working against this contract.

Example:
    >>> payload = validate_payload(
    ...     "PreToolUse",
    ...     {
    ...         "tool_name": "Write",
    ...         "tool_input": {"file_path": "/tmp/x"},
    ...         "context": {"session_id": "s1", "working_directory": "/tmp"},
    ...     },
    ... )
    >>> payload.tool_name
    'Write'
"""

from __future__ import annotations

import json
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from claudehooks.hooks.exceptions import (
    ConfigurationError,
    PayloadValidationError,
    ResponseValidationError,
)

# =============================================================================
# Event Types
# =============================================================================


class EventType(StrEnum):
    """Lifecycle events emitted by the assistant.

    Values are the event names used on the wire and in the assistant's
    settings document. Each member also knows the attribute name a Python
    handler bundle uses for it (see ``handler_name``).
    """

    PRE_TOOL_USE = "PreToolUse"
    POST_TOOL_USE = "PostToolUse"
    NOTIFICATION = "Notification"
    USER_PROMPT_SUBMIT = "UserPromptSubmit"
    STOP = "Stop"
    SUBAGENT_STOP = "SubagentStop"
    PRE_COMPACT = "PreCompact"
    SESSION_START = "SessionStart"

    @property
    def handler_name(self) -> str:
        """Attribute name of this event's callback on a handler bundle.

        Example:
            >>> EventType.PRE_TOOL_USE.handler_name
            'on_pre_tool_use'
        """
        return "on_" + self.name.lower()

    @property
    def is_tool_event(self) -> bool:
        """Whether the event concerns a single tool invocation."""
        return self in (EventType.PRE_TOOL_USE, EventType.POST_TOOL_USE)

    @classmethod
    def parse(cls, value: str | EventType) -> EventType:
        """Parse an event name, accepting either the wire name or a member.

        Raises:
            ConfigurationError: If the name is not one of the eight events.
        """
        if isinstance(value, EventType):
            return value
        try:
            return cls(value)
        except ValueError:
            known = ", ".join(e.value for e in cls)
            raise ConfigurationError(
                f"Unknown event type: {value!r}. Expected one of: {known}"
            ) from None


NotificationType = Literal["permission_request", "idle", "error"]
StopReason = Literal["completed", "error", "interrupted"]


# =============================================================================
# Payload Models
# =============================================================================


class ModelHookContext(BaseModel):
    """Session context carried by every payload."""

    model_config = ConfigDict(frozen=True, strict=True, extra="ignore")

    session_id: str = Field(..., description="Assistant session identifier")
    user_id: str | None = Field(default=None, description="Optional user identifier")
    working_directory: str = Field(
        ..., description="Working directory of the assistant session"
    )


class ModelHookPayloadBase(BaseModel):
    """Common base for all event payloads."""

    model_config = ConfigDict(frozen=True, strict=True, extra="ignore")

    context: ModelHookContext


class ModelPreToolUsePayload(ModelHookPayloadBase):
    """Payload emitted before the assistant runs a tool."""

    tool_name: str
    tool_input: dict[str, Any]


class ModelPostToolUsePayload(ModelHookPayloadBase):
    """Payload emitted after a tool finished."""

    tool_name: str
    tool_input: dict[str, Any]
    tool_output: Any = None


class ModelNotificationPayload(ModelHookPayloadBase):
    """Payload emitted when the assistant notifies the user."""

    type: NotificationType
    message: str


class ModelUserPromptSubmitPayload(ModelHookPayloadBase):
    """Payload emitted when the user submits a prompt."""

    prompt: str


class ModelStopPayload(ModelHookPayloadBase):
    """Payload emitted when the assistant finishes its turn."""

    reason: StopReason


class ModelSubagentStopPayload(ModelHookPayloadBase):
    """Payload emitted when a subagent finishes."""

    subagent_type: str
    reason: StopReason


class ModelPreCompactPayload(ModelHookPayloadBase):
    """Payload emitted before the conversation context is compacted."""

    context_size: int | float


class ModelSessionStartPayload(ModelHookPayloadBase):
    """Payload emitted when a session starts. Carries only the context."""

    pass


ModelHookPayload = (
    ModelPreToolUsePayload
    | ModelPostToolUsePayload
    | ModelNotificationPayload
    | ModelUserPromptSubmitPayload
    | ModelStopPayload
    | ModelSubagentStopPayload
    | ModelPreCompactPayload
    | ModelSessionStartPayload
)

PAYLOAD_MODELS: dict[EventType, type[ModelHookPayloadBase]] = {
    EventType.PRE_TOOL_USE: ModelPreToolUsePayload,
    EventType.POST_TOOL_USE: ModelPostToolUsePayload,
    EventType.NOTIFICATION: ModelNotificationPayload,
    EventType.USER_PROMPT_SUBMIT: ModelUserPromptSubmitPayload,
    EventType.STOP: ModelStopPayload,
    EventType.SUBAGENT_STOP: ModelSubagentStopPayload,
    EventType.PRE_COMPACT: ModelPreCompactPayload,
    EventType.SESSION_START: ModelSessionStartPayload,
}


# =============================================================================
# Response Model
# =============================================================================


class HookAction(StrEnum):
    """Verdict a handler (or a whole dispatch run) returns."""

    CONTINUE = "continue"
    BLOCK = "block"
    MODIFY = "modify"


class ModelHookResponse(BaseModel):
    """Verdict returned by a handler.

    Attributes:
        action: What the assistant should do with the pending action.
        message: Optional human-readable explanation or diagnostic.
        modified_input: Replacement tool input when ``action`` is ``modify``.
        context: Free-form data for the assistant.

    Example:
        >>> ModelHookResponse.block("nope").to_wire()
        {'action': 'block', 'message': 'nope'}
    """

    model_config = ConfigDict(frozen=True, strict=True, extra="ignore")

    # Lax so that plain "block" strings from handlers validate into the enum.
    action: HookAction = Field(..., strict=False)
    message: str | None = None
    modified_input: dict[str, Any] | None = None
    context: dict[str, Any] | None = None

    @classmethod
    def proceed(cls, message: str | None = None) -> ModelHookResponse:
        """Create a ``continue`` verdict."""
        return cls(action=HookAction.CONTINUE, message=message)

    @classmethod
    def block(cls, message: str | None = None) -> ModelHookResponse:
        """Create a ``block`` verdict."""
        return cls(action=HookAction.BLOCK, message=message)

    @classmethod
    def modify(
        cls, modified_input: dict[str, Any], message: str | None = None
    ) -> ModelHookResponse:
        """Create a ``modify`` verdict carrying replacement tool input."""
        return cls(
            action=HookAction.MODIFY, modified_input=modified_input, message=message
        )

    @property
    def is_block(self) -> bool:
        return self.action is HookAction.BLOCK

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the JSON-compatible wire shape (unset fields omitted)."""
        return self.model_dump(mode="json", exclude_none=True)

    def to_json_line(self) -> str:
        """Serialize to a single line of JSON."""
        return json.dumps(self.to_wire(), separators=(",", ":"))


# =============================================================================
# Validation Entry Points
# =============================================================================


def format_validation_errors(error: ValidationError) -> list[str]:
    """Flatten a pydantic ValidationError into ``path: message`` lines."""
    lines = []
    for item in error.errors():
        loc = ".".join(str(part) for part in item["loc"]) or "<root>"
        lines.append(f"{loc}: {item['msg']}")
    return lines


def validate_payload(
    event_type: str | EventType, raw: object
) -> ModelHookPayloadBase:
    """Validate a raw payload against its event contract.

    Args:
        event_type: Event name or EventType member.
        raw: A mapping, or JSON text (``str``/``bytes``) decoding to one.

    Returns:
        The validated, frozen payload model for the event.

    Raises:
        ConfigurationError: If ``event_type`` is unknown.
        PayloadValidationError: If ``raw`` violates the event's contract.
    """
    event = EventType.parse(event_type)
    model = PAYLOAD_MODELS[event]
    try:
        if isinstance(raw, (str, bytes, bytearray)):
            return model.model_validate_json(raw)
        return model.model_validate(raw)
    except ValidationError as e:
        raise PayloadValidationError(event.value, format_validation_errors(e)) from e


def validate_response(raw: object) -> ModelHookResponse:
    """Validate a handler's return value against the HookResponse contract.

    ``None`` means the handler has no opinion and is normalized to a plain
    ``continue``.

    Raises:
        ResponseValidationError: If ``raw`` lacks a recognized ``action`` or
            any optional field has the wrong type.
    """
    if raw is None:
        return ModelHookResponse.proceed()
    if isinstance(raw, ModelHookResponse):
        return raw
    try:
        return ModelHookResponse.model_validate(raw)
    except ValidationError as e:
        raise ResponseValidationError("; ".join(format_validation_errors(e))) from e


__all__ = [
    "EventType",
    "HookAction",
    "NotificationType",
    "StopReason",
    "ModelHookContext",
    "ModelHookPayloadBase",
    "ModelHookPayload",
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
    "format_validation_errors",
    "validate_payload",
    "validate_response",
]
