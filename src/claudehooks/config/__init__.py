# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""claude-hooks configuration - Pydantic Settings for environment configuration."""

from __future__ import annotations

from .settings import Settings, clear_settings_cache, get_settings

__all__ = [
    "Settings",
    "clear_settings_cache",
    "get_settings",
]
