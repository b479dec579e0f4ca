# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Shared fixtures for claude-hooks tests."""

from __future__ import annotations

import textwrap
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from claudehooks.config import clear_settings_cache
from claudehooks.hooks.schemas import EventType

# Minimal valid event-specific fields for every event type.
EVENT_FIELDS: dict[EventType, dict[str, Any]] = {
    EventType.PRE_TOOL_USE: {
        "tool_name": "Write",
        "tool_input": {"file_path": "notes.txt", "content": "hi"},
    },
    EventType.POST_TOOL_USE: {
        "tool_name": "Write",
        "tool_input": {"file_path": "notes.txt"},
        "tool_output": {"success": True},
    },
    EventType.NOTIFICATION: {"type": "idle", "message": "Waiting for input"},
    EventType.USER_PROMPT_SUBMIT: {"prompt": "Refactor the parser"},
    EventType.STOP: {"reason": "completed"},
    EventType.SUBAGENT_STOP: {"subagent_type": "reviewer", "reason": "completed"},
    EventType.PRE_COMPACT: {"context_size": 120000},
    EventType.SESSION_START: {},
}


def make_raw_payload(
    event: EventType,
    working_directory: str = "/workspace/project",
    **overrides: Any,
) -> dict[str, Any]:
    """Build a valid raw payload for ``event``; ``overrides`` replace fields."""
    payload: dict[str, Any] = {
        "context": {"session_id": "sess-1", "working_directory": working_directory},
        **EVENT_FIELDS[event],
    }
    payload.update(overrides)
    return payload


@pytest.fixture(autouse=True)
def reset_settings() -> Any:
    """Give every test a fresh Settings instance."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def raw_payload() -> Callable[..., dict[str, Any]]:
    """Factory fixture for valid raw payloads."""
    return make_raw_payload


@pytest.fixture
def write_module(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write a dedented Python module under ``tmp_path/handlers``."""

    def _write(name: str, source: str) -> Path:
        directory = tmp_path / "handlers"
        directory.mkdir(exist_ok=True)
        path = directory / name
        path.write_text(textwrap.dedent(source), encoding="utf-8")
        return path

    return _write
