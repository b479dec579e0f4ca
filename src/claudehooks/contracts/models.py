# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Pydantic models for the plugin manifest (``hooks.yaml``).

Example manifest::

    permissions:            # default for plugins that declare none
      allow:
        read: ["."]

    plugins:
      - name: protect-secrets
        version: "1.0.0"
        module: hooks/secrets.py
        handlers:
          PreToolUse: on_pre_tool_use
          Stop: other_pkg.notify:on_stop     # full reference
        permissions:
          allow:
            read: ["."]
            env: [HOME]
        timeout: 5
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from claudehooks.hooks.permissions import ModelPermissionDescriptor
from claudehooks.hooks.schemas import EventType

__all__ = ["ModelPluginManifestEntry", "ModelPluginManifest"]


class ModelPluginManifestEntry(BaseModel):
    """One plugin declared in the manifest.

    Handler values (and ``on_load``/``on_unload``) are either an attribute
    name looked up in ``module`` or a full ``<module>:<attribute>``
    reference.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1, description="Plugin name used in diagnostics")
    version: str | None = None
    description: str | None = None
    module: str | None = Field(
        default=None,
        description="Handler module: file path relative to the manifest, or dotted name",
    )
    handlers: dict[EventType, str] = Field(default_factory=dict)
    on_load: str | None = None
    on_unload: str | None = None
    permissions: ModelPermissionDescriptor | None = None
    timeout: float | None = Field(default=None, gt=0, description="Seconds")

    @model_validator(mode="after")
    def _bare_names_need_module(self) -> ModelPluginManifestEntry:
        refs = [*self.handlers.values(), self.on_load, self.on_unload]
        bare = [ref for ref in refs if ref is not None and ":" not in ref]
        if bare and not self.module:
            raise ValueError(
                f"'module' is required when handlers are given as attribute names: {bare}"
            )
        return self


class ModelPluginManifest(BaseModel):
    """Top-level manifest document."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    permissions: ModelPermissionDescriptor | None = None
    plugins: list[ModelPluginManifestEntry] = Field(default_factory=list)
