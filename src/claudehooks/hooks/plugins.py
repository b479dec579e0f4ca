# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Plugin (handler bundle) definitions and the ordered plugin registry.

A Plugin is a named bundle of event handlers. Its handler table is an
explicit ``dict[EventType, HandlerRef]`` built when the plugin is created,
so the dispatcher never discovers handlers by attribute lookup at dispatch
time.

A HandlerRef is one of:
    - a Python callable: trusted code, called in-process with a private
      copy of the payload. It is not confined, so a plugin with callable
      handlers (or lifecycle callables) may not declare permissions;
    - an import reference ``"path/to/file.py:attr"`` or
      ``"package.module:attr"``: always executed behind the isolated
      execution boundary with the plugin's sandbox flags.

Registration order is invocation order.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from claudehooks.hooks.exceptions import ConfigurationError
from claudehooks.hooks.permissions import (
    ModelPermissionDescriptor,
    SandboxFlag,
    resolve_permissions,
)
from claudehooks.hooks.schemas import EventType

__all__ = [
    "HandlerRef",
    "Plugin",
    "ModelRegistrationResult",
    "PluginRegistry",
]

logger = logging.getLogger(__name__)

# Callable (in-process) or "<module>:<attribute>" (isolated subprocess).
HandlerRef = Callable[..., Any] | str
LifecycleRef = Callable[[], Any] | str


def _check_ref(owner: str, what: str, ref: object) -> None:
    if isinstance(ref, str):
        if ":" not in ref:
            raise ConfigurationError(
                f"Plugin {owner!r}: {what} reference {ref!r} must be '<module>:<attribute>'"
            )
    elif not callable(ref):
        raise ConfigurationError(
            f"Plugin {owner!r}: {what} must be a callable or an import reference, "
            f"got {type(ref).__name__}"
        )


@dataclass(frozen=True, eq=False)
class Plugin:
    """A named bundle of event handlers.

    Attributes:
        name: Identifier used in diagnostics. Must be non-empty to register.
        handlers: Event -> handler table. Keys may be EventType members or
            wire names ("PreToolUse"); they are normalized on creation.
        version: Optional version string.
        description: Optional human-readable description.
        permissions: Capabilities granted to the plugin's isolated handlers.
            A non-empty grant requires every handler to be a reference.
        on_load: Called before each handler invocation of this plugin.
        on_unload: Called after it, whatever the outcome.
        timeout: Per-invocation timeout in seconds; the configured default
            applies when None.

    Example:
        >>> plugin = Plugin(
        ...     name="no-rm",
        ...     handlers={"PreToolUse": "hooks/no_rm.py:on_pre_tool_use"},
        ...     permissions={"allow": {"read": ["."]}},
        ... )
        >>> plugin.events
        (<EventType.PRE_TOOL_USE: 'PreToolUse'>,)
    """

    name: str
    handlers: Mapping[EventType | str, HandlerRef] = field(default_factory=dict)
    version: str | None = None
    description: str | None = None
    permissions: ModelPermissionDescriptor | Mapping[str, Any] | None = None
    on_load: LifecycleRef | None = None
    on_unload: LifecycleRef | None = None
    timeout: float | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str):
            raise ConfigurationError(
                f"Plugin name must be a string, got {type(self.name).__name__}"
            )
        table: dict[EventType, HandlerRef] = {}
        for key, ref in dict(self.handlers).items():
            event = EventType.parse(key)
            _check_ref(self.name, event.value, ref)
            table[event] = ref
        for hook_name in ("on_load", "on_unload"):
            ref = getattr(self, hook_name)
            if ref is not None:
                _check_ref(self.name, hook_name, ref)
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError(
                f"Plugin {self.name!r}: timeout must be positive, got {self.timeout}"
            )
        permissions = ModelPermissionDescriptor.parse(self.permissions)
        if resolve_permissions(permissions):
            refs = [*table.values(), self.on_load, self.on_unload]
            unconfined = [ref for ref in refs if ref is not None and not isinstance(ref, str)]
            if unconfined:
                raise ConfigurationError(
                    f"Plugin {self.name!r}: permissions only confine import-reference "
                    "handlers, but it has callable handlers that run unconfined "
                    "in-process. Use '<module>:<attribute>' references or drop "
                    "the permissions."
                )
        object.__setattr__(self, "handlers", MappingProxyType(table))
        object.__setattr__(self, "permissions", permissions)

    def handler_for(self, event_type: EventType) -> HandlerRef | None:
        return self.handlers.get(event_type)

    @property
    def events(self) -> tuple[EventType, ...]:
        """Handled events, in EventType declaration order."""
        return tuple(e for e in EventType if e in self.handlers)

    @property
    def sandbox_flags(self) -> list[SandboxFlag]:
        return resolve_permissions(self.permissions)

    @classmethod
    def from_object(cls, obj: object, name: str | None = None) -> Plugin:
        """Build a plugin from an object exposing ``on_<event>`` callables.

        Recognized attributes are the EventType handler names
        (``on_pre_tool_use``, ``on_stop``, ...), ``on_load``, ``on_unload``,
        and optionally ``name``, ``version``, ``description``,
        ``permissions`` and ``timeout``. Works for modules, classes and
        instances alike.

        Raises:
            ConfigurationError: If no name can be determined.
        """
        resolved = (
            name
            or getattr(obj, "name", None)
            or getattr(obj, "__name__", None)
            or type(obj).__name__
        )
        handlers: dict[EventType | str, HandlerRef] = {}
        for event in EventType:
            func = getattr(obj, event.handler_name, None)
            if callable(func):
                handlers[event] = func
        return cls(
            name=resolved,
            handlers=handlers,
            version=getattr(obj, "version", None),
            description=getattr(obj, "description", None),
            permissions=getattr(obj, "permissions", None),
            on_load=getattr(obj, "on_load", None),
            on_unload=getattr(obj, "on_unload", None),
            timeout=getattr(obj, "timeout", None),
        )


class ModelRegistrationResult(BaseModel):
    """Outcome of a single plugin registration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    success: bool
    plugin_name: str
    position: int | None = Field(
        default=None, description="Index in the invocation order, when registered"
    )
    error_message: str | None = None


class PluginRegistry:
    """Ordered collection of plugins for one dispatch context.

    There is no process-wide registry: each DispatchContext owns one.
    """

    def __init__(self, plugins: Iterable[Plugin | object] = ()) -> None:
        self._plugins: list[Plugin] = []
        for plugin in plugins:
            self.use(plugin)

    def register(self, plugin: Plugin | object) -> ModelRegistrationResult:
        """Append a plugin to the invocation order.

        Objects that are not Plugin instances are converted with
        ``Plugin.from_object``. Registration fails only for an empty name;
        a duplicate name is accepted and logged.
        """
        if not isinstance(plugin, Plugin):
            plugin = Plugin.from_object(plugin)
        if not plugin.name.strip():
            logger.warning("plugin_registration_rejected", extra={"reason": "empty name"})
            return ModelRegistrationResult(
                success=False,
                plugin_name=plugin.name,
                error_message="Plugin name must not be empty",
            )
        if any(existing.name == plugin.name for existing in self._plugins):
            logger.warning(
                "plugin_name_duplicate", extra={"plugin_name": plugin.name}
            )
        self._plugins.append(plugin)
        position = len(self._plugins) - 1
        logger.debug(
            "plugin_registered",
            extra={
                "plugin_name": plugin.name,
                "position": position,
                "events": [e.value for e in plugin.events],
            },
        )
        return ModelRegistrationResult(
            success=True, plugin_name=plugin.name, position=position
        )

    def use(self, plugin: Plugin | object) -> PluginRegistry:
        """Register a plugin and return the registry for chaining.

        Raises:
            ConfigurationError: If registration fails.
        """
        result = self.register(plugin)
        if not result.success:
            raise ConfigurationError(result.error_message or "Plugin registration failed")
        return self

    @property
    def plugins(self) -> tuple[Plugin, ...]:
        return tuple(self._plugins)

    def __iter__(self) -> Iterator[Plugin]:
        return iter(tuple(self._plugins))

    def __len__(self) -> int:
        return len(self._plugins)
