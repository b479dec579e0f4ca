# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Plugin manifest loader.

Reads a ``hooks.yaml`` manifest, validates it against ModelPluginManifest and
turns each entry into a Plugin whose handlers are import references. File
modules are resolved relative to the manifest's directory, so a manifest and
its handler files can be moved together.

Usage:
    >>> from pathlib import Path
    >>> from claudehooks.contracts.loader import ManifestLoader
    >>>
    >>> loader = ManifestLoader(Path(".claude/hooks.yaml"))
    >>> ctx = loader.build_context()
    >>> result = ctx.dispatch("PreToolUse", payload_json)
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from claudehooks.contracts.models import ModelPluginManifest, ModelPluginManifestEntry
from claudehooks.hooks.dispatcher import DispatchContext
from claudehooks.hooks.exceptions import ConfigurationError, ManifestLoadError
from claudehooks.hooks.plugins import Plugin
from claudehooks.hooks.schemas import format_validation_errors
from claudehooks.runtime.boundary import IsolatedBoundary
from claudehooks.runtime.invoke import is_file_module, split_ref

__all__ = ["ManifestLoader", "load_plugins", "build_context"]

logger = logging.getLogger(__name__)


class ManifestLoader:
    """Loader for a plugin manifest file.

    Attributes:
        manifest_path: Path to the manifest.
        base_dir: Directory relative handler modules are resolved against.
    """

    def __init__(self, manifest_path: Path) -> None:
        self._manifest_path = Path(manifest_path)
        self._base_dir = self._manifest_path.resolve().parent
        logger.debug("ManifestLoader initialized with: %s", manifest_path)

    @property
    def manifest_path(self) -> Path:
        return self._manifest_path

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def load_manifest(self) -> ModelPluginManifest:
        """Read and validate the manifest.

        Raises:
            ManifestLoadError: If the file is missing, not valid YAML, not a
                mapping, or fails validation.
        """
        path = self._manifest_path
        try:
            with open(path, encoding="utf-8") as f:
                raw_data = yaml.safe_load(f)
        except FileNotFoundError as e:
            raise ManifestLoadError(
                f"Manifest file not found: {path}", path=path, cause=e
            ) from e
        except OSError as e:
            raise ManifestLoadError(
                f"Cannot read manifest file: {path}: {e}", path=path, cause=e
            ) from e
        except yaml.YAMLError as e:
            raise ManifestLoadError(
                f"Invalid YAML in manifest file: {path}", path=path, cause=e
            ) from e

        if raw_data is None:
            # An empty manifest declares no plugins.
            return ModelPluginManifest()

        if not isinstance(raw_data, dict):
            raise ManifestLoadError(
                f"Manifest must be a YAML mapping, got {type(raw_data).__name__}: {path}",
                path=path,
            )

        try:
            manifest = ModelPluginManifest.model_validate(raw_data)
        except ValidationError as e:
            details = [f"  - {line}" for line in format_validation_errors(e)]
            raise ManifestLoadError(
                f"Manifest validation failed for {path}:\n" + "\n".join(details),
                path=path,
                cause=e,
            ) from e

        logger.info("Loaded manifest %s with %d plugin(s)", path, len(manifest.plugins))
        return manifest

    def resolve_ref(self, entry: ModelPluginManifestEntry, value: str) -> str:
        """Turn a manifest handler value into an absolute import reference.

        Raises:
            ManifestLoadError: If a file module does not exist.
        """
        if ":" in value:
            module, attr = split_ref(value)
        else:
            module, attr = entry.module or "", value

        if not is_file_module(module):
            return f"{module}:{attr}"

        path = Path(module).expanduser()
        if not path.is_absolute():
            path = self._base_dir / path
        path = path.resolve()
        if not path.is_file():
            raise ManifestLoadError(
                f"Handler module of plugin {entry.name!r} not found: {path}",
                path=self._manifest_path,
            )
        return f"{path}:{attr}"

    def load_plugins(self) -> list[Plugin]:
        """Load the manifest and build its plugins, in declaration order.

        Raises:
            ManifestLoadError: If the manifest or any plugin is invalid.
        """
        manifest = self.load_manifest()
        plugins: list[Plugin] = []
        for entry in manifest.plugins:
            try:
                handlers = {
                    event: self.resolve_ref(entry, value)
                    for event, value in entry.handlers.items()
                }
                plugin = Plugin(
                    name=entry.name,
                    handlers=handlers,
                    version=entry.version,
                    description=entry.description,
                    permissions=entry.permissions or manifest.permissions,
                    on_load=self.resolve_ref(entry, entry.on_load) if entry.on_load else None,
                    on_unload=(
                        self.resolve_ref(entry, entry.on_unload) if entry.on_unload else None
                    ),
                    timeout=entry.timeout,
                )
            except ManifestLoadError:
                raise
            except ConfigurationError as e:
                raise ManifestLoadError(str(e), path=self._manifest_path, cause=e) from e
            plugins.append(plugin)
        return plugins

    def build_context(
        self,
        boundary: IsolatedBoundary | None = None,
        default_timeout: float | None = None,
    ) -> DispatchContext:
        """Create a DispatchContext with the manifest's plugins registered."""
        return DispatchContext(
            self.load_plugins(), boundary=boundary, default_timeout=default_timeout
        )


def load_plugins(manifest_path: Path) -> list[Plugin]:
    """Convenience wrapper for ``ManifestLoader(path).load_plugins()``."""
    return ManifestLoader(manifest_path).load_plugins()


def build_context(manifest_path: Path) -> DispatchContext:
    """Convenience wrapper for ``ManifestLoader(path).build_context()``."""
    return ManifestLoader(manifest_path).build_context()
