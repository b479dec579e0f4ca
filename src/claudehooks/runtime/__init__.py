# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Handler execution: the isolated subprocess boundary and its sandbox."""

from __future__ import annotations

from claudehooks.runtime.boundary import RUNNER_MODULE, IsolatedBoundary
from claudehooks.runtime.invoke import call_handler, load_target, split_ref
from claudehooks.runtime.policy import SandboxDenied, SandboxPolicy

__all__ = [
    "RUNNER_MODULE",
    "IsolatedBoundary",
    "SandboxDenied",
    "SandboxPolicy",
    "call_handler",
    "load_target",
    "split_ref",
]
