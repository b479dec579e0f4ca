# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Tests for the event contract registry.

Tests cover:
    - Every event type accepts its minimal valid payload
    - Missing required fields, wrong primitive types and out-of-set enum
      values are rejected with PayloadValidationError
    - Unknown keys are ignored; payloads are frozen
    - HookResponse validation and wire serialization
"""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from claudehooks.hooks.exceptions import (
    ConfigurationError,
    PayloadValidationError,
    ResponseValidationError,
)
from claudehooks.hooks.schemas import (
    PAYLOAD_MODELS,
    EventType,
    HookAction,
    ModelHookResponse,
    ModelPostToolUsePayload,
    ModelPreToolUsePayload,
    ModelSessionStartPayload,
    validate_payload,
    validate_response,
)

# All tests in this module are unit tests
pytestmark = pytest.mark.unit

# =============================================================================
# EventType Tests
# =============================================================================


class TestEventType:
    """Tests for the closed set of event types."""

    def test_eight_events(self) -> None:
        assert [e.value for e in EventType] == [
            "PreToolUse",
            "PostToolUse",
            "Notification",
            "UserPromptSubmit",
            "Stop",
            "SubagentStop",
            "PreCompact",
            "SessionStart",
        ]

    @pytest.mark.parametrize(
        ("event", "expected"),
        [
            (EventType.PRE_TOOL_USE, "on_pre_tool_use"),
            (EventType.USER_PROMPT_SUBMIT, "on_user_prompt_submit"),
            (EventType.SUBAGENT_STOP, "on_subagent_stop"),
            (EventType.SESSION_START, "on_session_start"),
        ],
    )
    def test_handler_name(self, event: EventType, expected: str) -> None:
        assert event.handler_name == expected

    def test_only_tool_events_are_tool_events(self) -> None:
        tool_events = {e for e in EventType if e.is_tool_event}
        assert tool_events == {EventType.PRE_TOOL_USE, EventType.POST_TOOL_USE}

    def test_parse_accepts_wire_name_and_member(self) -> None:
        assert EventType.parse("Stop") is EventType.STOP
        assert EventType.parse(EventType.STOP) is EventType.STOP

    def test_parse_unknown_raises_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown event type"):
            EventType.parse("PreToolCall")

    def test_every_event_has_a_payload_model(self) -> None:
        assert set(PAYLOAD_MODELS) == set(EventType)


# =============================================================================
# Payload Validation Tests
# =============================================================================


class TestValidatePayload:
    """Tests for validate_payload()."""

    @pytest.mark.parametrize("event", list(EventType))
    def test_minimal_valid_payload(self, event: EventType, raw_payload) -> None:
        payload = validate_payload(event, raw_payload(event))
        assert isinstance(payload, PAYLOAD_MODELS[event])
        assert payload.context.session_id == "sess-1"
        assert payload.context.user_id is None

    @pytest.mark.parametrize("event", list(EventType))
    def test_missing_context_rejected(self, event: EventType, raw_payload) -> None:
        raw = raw_payload(event)
        del raw["context"]
        with pytest.raises(PayloadValidationError) as exc_info:
            validate_payload(event, raw)
        assert exc_info.value.event_type == event.value
        assert any(v.startswith("context") for v in exc_info.value.violations)

    @pytest.mark.parametrize(
        ("event", "field"),
        [
            (EventType.PRE_TOOL_USE, "tool_name"),
            (EventType.PRE_TOOL_USE, "tool_input"),
            (EventType.POST_TOOL_USE, "tool_name"),
            (EventType.NOTIFICATION, "type"),
            (EventType.NOTIFICATION, "message"),
            (EventType.USER_PROMPT_SUBMIT, "prompt"),
            (EventType.STOP, "reason"),
            (EventType.SUBAGENT_STOP, "subagent_type"),
            (EventType.PRE_COMPACT, "context_size"),
        ],
    )
    def test_missing_required_field_rejected(
        self, event: EventType, field: str, raw_payload
    ) -> None:
        raw = raw_payload(event)
        del raw[field]
        with pytest.raises(PayloadValidationError) as exc_info:
            validate_payload(event, raw)
        assert any(v.startswith(field) for v in exc_info.value.violations)

    def test_missing_session_id_rejected(self, raw_payload) -> None:
        raw = raw_payload(EventType.STOP, context={"working_directory": "/w"})
        with pytest.raises(PayloadValidationError, match="context.session_id"):
            validate_payload(EventType.STOP, raw)

    @pytest.mark.parametrize(
        ("event", "overrides"),
        [
            (EventType.PRE_TOOL_USE, {"tool_name": 5}),
            (EventType.PRE_TOOL_USE, {"tool_input": ["not", "a", "mapping"]}),
            (EventType.USER_PROMPT_SUBMIT, {"prompt": None}),
            (EventType.PRE_COMPACT, {"context_size": "5"}),
            (EventType.PRE_COMPACT, {"context_size": True}),
            (
                EventType.SESSION_START,
                {"context": {"session_id": 1, "working_directory": "/w"}},
            ),
        ],
    )
    def test_wrong_primitive_type_rejected(
        self, event: EventType, overrides: dict, raw_payload
    ) -> None:
        with pytest.raises(PayloadValidationError):
            validate_payload(event, raw_payload(event, **overrides))

    @pytest.mark.parametrize(
        ("event", "overrides"),
        [
            (EventType.NOTIFICATION, {"type": "reminder"}),
            (EventType.STOP, {"reason": "paused"}),
            (EventType.SUBAGENT_STOP, {"reason": "timeout"}),
        ],
    )
    def test_enum_outside_closed_set_rejected(
        self, event: EventType, overrides: dict, raw_payload
    ) -> None:
        with pytest.raises(PayloadValidationError):
            validate_payload(event, raw_payload(event, **overrides))

    def test_float_context_size_accepted(self, raw_payload) -> None:
        payload = validate_payload(
            EventType.PRE_COMPACT, raw_payload(EventType.PRE_COMPACT, context_size=0.75)
        )
        assert payload.context_size == 0.75

    def test_tool_output_may_be_absent(self, raw_payload) -> None:
        raw = raw_payload(EventType.POST_TOOL_USE)
        del raw["tool_output"]
        payload = validate_payload(EventType.POST_TOOL_USE, raw)
        assert isinstance(payload, ModelPostToolUsePayload)
        assert payload.tool_output is None

    def test_tool_output_accepts_any_value(self, raw_payload) -> None:
        for value in ("text", 3, [1, 2], {"nested": {"ok": True}}):
            payload = validate_payload(
                EventType.POST_TOOL_USE,
                raw_payload(EventType.POST_TOOL_USE, tool_output=value),
            )
            assert payload.tool_output == value

    def test_unknown_keys_ignored(self, raw_payload) -> None:
        raw = raw_payload(EventType.SESSION_START, transcript_path="/tmp/t.jsonl")
        raw["context"]["hook_event_name"] = "SessionStart"
        payload = validate_payload(EventType.SESSION_START, raw)
        assert isinstance(payload, ModelSessionStartPayload)
        assert not hasattr(payload, "transcript_path")

    def test_json_text_and_bytes_accepted(self, raw_payload) -> None:
        text = json.dumps(raw_payload(EventType.PRE_TOOL_USE))
        from_text = validate_payload("PreToolUse", text)
        from_bytes = validate_payload("PreToolUse", text.encode("utf-8"))
        assert from_text == from_bytes
        assert isinstance(from_text, ModelPreToolUsePayload)

    def test_malformed_json_rejected(self) -> None:
        with pytest.raises(PayloadValidationError):
            validate_payload(EventType.STOP, "{not json")

    def test_non_mapping_rejected(self) -> None:
        with pytest.raises(PayloadValidationError):
            validate_payload(EventType.STOP, ["completed"])

    def test_unknown_event_raises_configuration_error(self, raw_payload) -> None:
        with pytest.raises(ConfigurationError):
            validate_payload("Bogus", raw_payload(EventType.STOP))

    def test_payload_is_frozen(self, raw_payload) -> None:
        payload = validate_payload(EventType.PRE_TOOL_USE, raw_payload(EventType.PRE_TOOL_USE))
        with pytest.raises(ValidationError):
            payload.tool_name = "Bash"  # type: ignore[misc]

    def test_error_message_names_event(self) -> None:
        with pytest.raises(PayloadValidationError) as exc_info:
            validate_payload(EventType.STOP, {})
        assert str(exc_info.value).startswith("Stop: ")


# =============================================================================
# Response Tests
# =============================================================================


class TestValidateResponse:
    """Tests for validate_response() and ModelHookResponse."""

    def test_none_means_continue(self) -> None:
        response = validate_response(None)
        assert response.action is HookAction.CONTINUE
        assert response.message is None

    def test_dict_with_block(self) -> None:
        response = validate_response({"action": "block", "message": "nope"})
        assert response.is_block
        assert response.message == "nope"

    def test_modify_carries_input(self) -> None:
        response = validate_response(
            {"action": "modify", "modified_input": {"command": "ls"}}
        )
        assert response.action is HookAction.MODIFY
        assert response.modified_input == {"command": "ls"}

    def test_model_passes_through(self) -> None:
        original = ModelHookResponse.block("stop")
        assert validate_response(original) is original

    @pytest.mark.parametrize(
        "raw",
        [
            {},
            {"message": "no action"},
            {"action": "deny"},
            {"action": "block", "message": 42},
            {"action": "modify", "modified_input": "ls"},
            "block",
            7,
        ],
    )
    def test_invalid_responses_rejected(self, raw: object) -> None:
        with pytest.raises(ResponseValidationError):
            validate_response(raw)

    def test_to_wire_omits_unset_fields(self) -> None:
        assert ModelHookResponse.proceed().to_wire() == {"action": "continue"}
        assert ModelHookResponse.block("no").to_wire() == {
            "action": "block",
            "message": "no",
        }

    def test_to_json_line_is_single_compact_line(self) -> None:
        line = ModelHookResponse.modify({"a": 1}, message="m").to_json_line()
        assert "\n" not in line
        assert json.loads(line) == {
            "action": "modify",
            "message": "m",
            "modified_input": {"a": 1},
        }
