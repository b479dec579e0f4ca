# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Plugin manifest (``hooks.yaml``) models and loader."""

from __future__ import annotations

from claudehooks.contracts.loader import ManifestLoader, build_context, load_plugins
from claudehooks.contracts.models import ModelPluginManifest, ModelPluginManifestEntry

__all__ = [
    "ManifestLoader",
    "ModelPluginManifest",
    "ModelPluginManifestEntry",
    "build_context",
    "load_plugins",
]
