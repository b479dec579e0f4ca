# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""File templates written by ``claude-hooks init``."""

from __future__ import annotations

import textwrap

__all__ = ["HANDLER_FILE_NAME", "HANDLER_TEMPLATE", "MANIFEST_TEMPLATE"]

HANDLER_FILE_NAME = "example_hooks.py"

MANIFEST_TEMPLATE = textwrap.dedent(
    """\
    # claude-hooks plugin manifest.
    #
    # Plugins run in the order listed. Each handler runs in its own sandboxed
    # interpreter and may only use the capabilities granted under
    # `permissions` (read, write, net, env, run, sys).
    #
    #   claude-hooks list <this file>     show plugins and their sandbox flags
    #   claude-hooks run <this file> SessionStart --payload '{...}'

    plugins:
      - name: example
        version: "0.1.0"
        description: Blocks destructive shell commands
        module: example_hooks.py
        handlers:
          PreToolUse: on_pre_tool_use
          SessionStart: on_session_start
        permissions:
          allow:
            read: ["."]
        timeout: 10
    """
)

HANDLER_TEMPLATE = textwrap.dedent(
    '''\
    """Example claude-hooks handlers.

    Each handler receives the validated event payload and returns a verdict:
    a ModelHookResponse, a dict such as {"action": "block", "message": "..."},
    or None for "no opinion". print() output goes to stderr.
    """

    from claudehooks import ModelHookResponse

    DESTRUCTIVE_PATTERNS = ("rm -rf /", "rm -rf ~", "mkfs", ":(){ :|:& };:")


    def on_pre_tool_use(payload):
        if payload.tool_name != "Bash":
            return None
        command = str(payload.tool_input.get("command", ""))
        for pattern in DESTRUCTIVE_PATTERNS:
            if pattern in command:
                return ModelHookResponse.block(f"Refusing to run {pattern!r}")
        return None


    def on_session_start(payload):
        print(f"session {payload.context.session_id} started")
        return ModelHookResponse.proceed()
    '''
)
