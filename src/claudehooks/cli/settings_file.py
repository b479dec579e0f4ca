# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Generation and merging of the assistant's settings document.

The assistant reads hook bindings from ``settings.json``::

    {
      "hooks": {
        "PreToolUse": [
          {"matcher": ".*", "hooks": [{"type": "command", "command": "..."}]}
        ],
        "Stop": [
          {"hooks": [{"type": "command", "command": "..."}]}
        ]
      }
    }

``init`` generates one binding per event that runs
``claude-hooks run <manifest> <Event>`` and merges it into any existing
document without disturbing unrelated settings or bindings installed by
other tools.
"""

from __future__ import annotations

import copy
import json
import logging
import shlex
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any

from claudehooks.hooks.schemas import EventType

__all__ = [
    "SettingsScope",
    "ScopeTarget",
    "resolve_scope",
    "generate_hooks_config",
    "smart_merge_settings",
    "read_settings",
    "write_settings",
]

logger = logging.getLogger(__name__)


class SettingsScope(StrEnum):
    """Where ``init`` installs the hook bindings."""

    USER = "user"
    PROJECT = "project"
    LOCAL = "local"


@dataclass(frozen=True)
class ScopeTarget:
    """Resolved file locations for one scope."""

    scope: SettingsScope
    claude_dir: Path
    settings_file: Path
    manifest_file: Path
    description: str

    def manifest_reference(self, cwd: Path) -> str:
        """Manifest path as written into the binding command.

        Project-scoped manifests are referenced relative to the project so
        the settings document can be committed; user-scoped ones are
        absolute.
        """
        if self.scope is SettingsScope.USER:
            return str(self.manifest_file)
        try:
            return str(self.manifest_file.relative_to(cwd))
        except ValueError:
            return str(self.manifest_file)


def resolve_scope(
    scope: SettingsScope | str,
    cwd: Path,
    home: Path,
    manifest_name: str = "hooks.yaml",
) -> ScopeTarget:
    """Map a scope to its ``.claude`` directory, settings file and manifest.

    The local scope uses ``settings.local.json`` and ``<stem>.local<suffix>``
    for the manifest, which the assistant keeps out of version control.
    """
    scope = SettingsScope(scope)
    if scope is SettingsScope.USER:
        claude_dir = home / ".claude"
        return ScopeTarget(
            scope,
            claude_dir,
            claude_dir / "settings.json",
            claude_dir / manifest_name,
            "User settings (~/.claude/settings.json)",
        )
    claude_dir = cwd / ".claude"
    if scope is SettingsScope.PROJECT:
        return ScopeTarget(
            scope,
            claude_dir,
            claude_dir / "settings.json",
            claude_dir / manifest_name,
            "Project settings (./.claude/settings.json)",
        )
    manifest = Path(manifest_name)
    return ScopeTarget(
        scope,
        claude_dir,
        claude_dir / "settings.local.json",
        claude_dir / f"{manifest.stem}.local{manifest.suffix}",
        "Local project settings (./.claude/settings.local.json)",
    )


def generate_hooks_config(command: str, manifest_path: str) -> dict[str, Any]:
    """Build the ``{"hooks": {...}}`` bindings for every event.

    Example:
        >>> config = generate_hooks_config("claude-hooks", ".claude/hooks.yaml")
        >>> config["hooks"]["Stop"]
        [{'hooks': [{'type': 'command', 'command': 'claude-hooks run .claude/hooks.yaml Stop'}]}]
    """
    hooks: dict[str, list[dict[str, Any]]] = {}
    for event in EventType:
        binding: dict[str, Any] = {}
        if event.is_tool_event:
            binding["matcher"] = ".*"
        binding["hooks"] = [
            {
                "type": "command",
                "command": f"{command} run {shlex.quote(manifest_path)} {event.value}",
            }
        ]
        hooks[event.value] = [binding]
    return {"hooks": hooks}


def _is_own_command(hook: Any, command_name: str) -> bool:
    if not isinstance(hook, dict) or hook.get("type") != "command":
        return False
    command = hook.get("command")
    if not isinstance(command, str):
        return False
    return command.startswith(command_name) or f"/{command_name}" in command


def _is_own_binding(binding: Any, command_name: str) -> bool:
    if _is_own_command(binding, command_name):
        return True
    if isinstance(binding, dict) and isinstance(binding.get("hooks"), list):
        return any(_is_own_command(h, command_name) for h in binding["hooks"])
    return False


def smart_merge_settings(
    existing: dict[str, Any],
    generated: dict[str, Any],
    command_name: str = "claude-hooks",
) -> dict[str, Any]:
    """Merge generated bindings into an existing settings document.

    Unrelated top-level keys and bindings of other tools are preserved;
    bindings that invoke ``command_name`` are replaced by the generated
    ones. Neither input is modified.
    """
    result = copy.deepcopy(existing)
    existing_hooks = result.get("hooks")
    if not isinstance(existing_hooks, dict):
        if existing_hooks is not None:
            logger.warning("settings_hooks_replaced", extra={"reason": "not a mapping"})
        result["hooks"] = copy.deepcopy(generated.get("hooks", {}))
        return result

    for event_name, new_bindings in generated.get("hooks", {}).items():
        current = existing_hooks.get(event_name)
        if not isinstance(current, list):
            current = []
        preserved = [b for b in current if not _is_own_binding(b, command_name)]
        existing_hooks[event_name] = preserved + copy.deepcopy(new_bindings)
    return result


def read_settings(path: Path) -> dict[str, Any]:
    """Read a settings document. A missing file reads as an empty document.

    Raises:
        ValueError: If the file is not valid JSON or not a JSON object.
    """
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"{path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level is not a JSON object")
    return data


def write_settings(path: Path, settings: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(settings, indent=2) + "\n", encoding="utf-8")
