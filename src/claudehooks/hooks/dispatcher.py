# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Hook event dispatch engine.

Takes one raw event, validates it, runs every registered plugin's handler for
that event in registration order, and reduces their verdicts to the single
HookResponse the assistant acts on.

State machine of one dispatch run::

    VALIDATING --invalid payload--> FAILED
        |
        v
    INVOKING --(per plugin: on_load, handler, validate, on_unload)--+
        |                         ^                                 |
        |                         +------- next plugin -------------+
        | (all plugins done, or a block)
        v
    AGGREGATING --> DONE

Fail-open contract:
    Only an explicit, well-formed ``block`` can block. A plugin whose
    on_load fails, whose handler crashes or times out, or whose response is
    malformed contributes a ``continue`` response carrying the diagnostic in
    its ``message``; dispatch moves on to the next plugin. A handler calling
    ``sys.exit()`` counts as a crash. Only an unknown
    event type (ConfigurationError) is raised to the caller.

Aggregation:
    first ``block`` if any, otherwise the last response, otherwise a bare
    ``continue``.

Lifecycle:
    ``on_unload`` runs for every plugin whose ``on_load`` succeeded (or that
    has none), including the plugin whose handler blocked. Its failures are
    logged and never change the result.

Example:
    >>> ctx = hooks(on_pre_tool_use=lambda p: {"action": "block", "message": "no"})
    >>> ctx.dispatch("PreToolUse", raw_payload).verdict.to_wire()
    {'action': 'block', 'message': 'no'}
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict

from claudehooks.config import get_settings
from claudehooks.hooks.exceptions import (
    ConfigurationError,
    PayloadValidationError,
    ResponseValidationError,
)
from claudehooks.hooks.permissions import ModelPermissionDescriptor
from claudehooks.hooks.plugins import (
    HandlerRef,
    LifecycleRef,
    ModelRegistrationResult,
    Plugin,
    PluginRegistry,
)
from claudehooks.hooks.schemas import (
    EventType,
    ModelHookPayloadBase,
    ModelHookResponse,
    validate_payload,
    validate_response,
)
from claudehooks.runtime.boundary import IsolatedBoundary
from claudehooks.runtime.invoke import call_handler

__all__ = [
    "DispatchState",
    "ModelDispatchResult",
    "DispatchContext",
    "aggregate",
    "dispatch",
    "hooks",
]

logger = logging.getLogger(__name__)


class DispatchState(StrEnum):
    """States of a single dispatch run."""

    VALIDATING = "validating"
    INVOKING = "invoking"
    AGGREGATING = "aggregating"
    DONE = "done"
    FAILED = "failed"


class ModelDispatchResult(BaseModel):
    """Outcome of one dispatch run.

    Attributes:
        event_type: The dispatched event.
        state: Final state, DONE or FAILED (invalid payload).
        responses: One response per plugin that produced a verdict, in
            invocation order.
        verdict: The single effective response for the assistant.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    event_type: EventType
    state: DispatchState
    responses: tuple[ModelHookResponse, ...] = ()
    verdict: ModelHookResponse

    @property
    def blocked(self) -> bool:
        return self.verdict.is_block


def aggregate(responses: Sequence[ModelHookResponse]) -> ModelHookResponse:
    """Reduce ordered responses to the effective verdict.

    Example:
        >>> aggregate([]).to_wire()
        {'action': 'continue'}
    """
    for response in responses:
        if response.is_block:
            return response
    if responses:
        return responses[-1]
    return ModelHookResponse.proceed()


def _describe(error: BaseException) -> str:
    if isinstance(error, SystemExit):
        return f"sys.exit({error.code!r}) called"
    return str(error) or type(error).__name__


class DispatchContext:
    """Explicit dispatch state: the plugin registry and execution settings.

    Independent contexts share nothing, so separate runs (or tests) never
    see each other's plugins.

    Args:
        registry: A PluginRegistry, or plugins to register in order.
        boundary: Isolated boundary for reference handlers. Created on first
            use when omitted.
        default_timeout: Per-handler timeout for plugins that declare none.
            Defaults to the configured ``handler_timeout_seconds``.
    """

    def __init__(
        self,
        registry: PluginRegistry | Iterable[Plugin | object] | None = None,
        boundary: IsolatedBoundary | None = None,
        default_timeout: float | None = None,
    ) -> None:
        if isinstance(registry, PluginRegistry):
            self._registry = registry
        else:
            self._registry = PluginRegistry(registry or ())
        self._boundary = boundary
        self._default_timeout = default_timeout

    @property
    def registry(self) -> PluginRegistry:
        return self._registry

    @property
    def plugins(self) -> tuple[Plugin, ...]:
        return self._registry.plugins

    @property
    def boundary(self) -> IsolatedBoundary:
        if self._boundary is None:
            self._boundary = IsolatedBoundary()
        return self._boundary

    @property
    def default_timeout(self) -> float:
        if self._default_timeout is None:
            return get_settings().handler_timeout_seconds
        return self._default_timeout

    def register(self, plugin: Plugin | object) -> ModelRegistrationResult:
        return self._registry.register(plugin)

    def dispatch(self, event_type: str | EventType, raw_payload: object) -> ModelDispatchResult:
        """Run all handlers for one event and aggregate their verdicts.

        Args:
            event_type: Event name or member.
            raw_payload: Mapping or JSON text of the event payload.

        Returns:
            The dispatch result; ``verdict`` is always a well-formed response.

        Raises:
            ConfigurationError: If ``event_type`` is unknown.
        """
        event = EventType.parse(event_type)
        try:
            payload = validate_payload(event, raw_payload)
        except PayloadValidationError as e:
            logger.warning(
                "payload_invalid",
                extra={"event_type": event.value, "violations": e.violations},
            )
            return ModelDispatchResult(
                event_type=event,
                state=DispatchState.FAILED,
                verdict=ModelHookResponse.proceed(
                    "invalid payload: " + "; ".join(e.violations)
                ),
            )

        responses: list[ModelHookResponse] = []
        for plugin in self._registry:
            response = self._run_plugin(plugin, event, payload)
            if response is None:
                continue
            responses.append(response)
            if response.is_block:
                logger.info(
                    "dispatch_blocked",
                    extra={"event_type": event.value, "plugin_name": plugin.name},
                )
                break

        verdict = aggregate(responses)
        logger.debug(
            "dispatch_complete",
            extra={
                "event_type": event.value,
                "responses": len(responses),
                "action": verdict.action.value,
            },
        )
        return ModelDispatchResult(
            event_type=event,
            state=DispatchState.DONE,
            responses=tuple(responses),
            verdict=verdict,
        )

    # =========================================================================
    # Per-plugin execution
    # =========================================================================

    def _timeout_for(self, plugin: Plugin) -> float:
        return plugin.timeout if plugin.timeout is not None else self.default_timeout

    def _run_plugin(
        self, plugin: Plugin, event: EventType, payload: ModelHookPayloadBase
    ) -> ModelHookResponse | None:
        """Run one plugin. Returns None when it has no handler for the event."""
        if plugin.on_load is not None:
            try:
                self._run_lifecycle(plugin, plugin.on_load, payload)
            except (Exception, SystemExit) as e:
                logger.warning(
                    "plugin_load_failed",
                    extra={"plugin_name": plugin.name, "error": _describe(e)},
                )
                return ModelHookResponse.proceed(f"Plugin error: {_describe(e)}")

        try:
            handler = plugin.handler_for(event)
            if handler is None:
                return None
            try:
                raw = self._invoke(plugin, event, handler, payload)
            except (Exception, SystemExit) as e:
                logger.warning(
                    "handler_failed",
                    extra={
                        "plugin_name": plugin.name,
                        "event_type": event.value,
                        "error": _describe(e),
                    },
                )
                return ModelHookResponse.proceed(
                    f"Hook execution error: {_describe(e)}"
                )
            try:
                return validate_response(raw)
            except ResponseValidationError as e:
                logger.warning(
                    "handler_response_invalid",
                    extra={"plugin_name": plugin.name, "error": _describe(e)},
                )
                return ModelHookResponse.proceed(
                    f"Plugin returned invalid response: {_describe(e)}"
                )
        finally:
            if plugin.on_unload is not None:
                try:
                    self._run_lifecycle(plugin, plugin.on_unload, payload)
                except (Exception, SystemExit) as e:
                    logger.warning(
                        "plugin_unload_failed",
                        extra={"plugin_name": plugin.name, "error": _describe(e)},
                    )

    def _invoke(
        self,
        plugin: Plugin,
        event: EventType,
        handler: HandlerRef,
        payload: ModelHookPayloadBase,
    ) -> Any:
        timeout = self._timeout_for(plugin)
        if isinstance(handler, str):
            return self.boundary.invoke(
                handler, event, payload, plugin.sandbox_flags, timeout
            )
        return call_handler(handler, payload.model_copy(deep=True), timeout=timeout)

    def _run_lifecycle(
        self, plugin: Plugin, ref: LifecycleRef, payload: ModelHookPayloadBase
    ) -> None:
        timeout = self._timeout_for(plugin)
        if isinstance(ref, str):
            self.boundary.invoke_lifecycle(
                ref,
                plugin.sandbox_flags,
                timeout,
                working_directory=payload.context.working_directory,
            )
        else:
            call_handler(ref, timeout=timeout)


def dispatch(
    context: DispatchContext, event_type: str | EventType, raw_payload: object
) -> ModelDispatchResult:
    """Dispatch one event through ``context``. See DispatchContext.dispatch."""
    return context.dispatch(event_type, raw_payload)


def hooks(
    *,
    name: str = "inline-hooks",
    version: str | None = None,
    description: str | None = None,
    permissions: ModelPermissionDescriptor | Mapping[str, Any] | None = None,
    on_load: LifecycleRef | None = None,
    on_unload: LifecycleRef | None = None,
    timeout: float | None = None,
    plugins: Iterable[Plugin | object] = (),
    boundary: IsolatedBoundary | None = None,
    **handlers: HandlerRef,
) -> DispatchContext:
    """Build a dispatch context from inline handlers.

    Keyword handlers are named after the event (``on_pre_tool_use=...``, or
    the wire name via ``**{"PreToolUse": ...}``). They form the first
    plugin; ``plugins`` are registered after it, in order.

    Raises:
        ConfigurationError: If a keyword names no known event, or
            ``permissions`` are combined with callable handlers.

    Example:
        >>> ctx = hooks(
        ...     on_pre_tool_use="hooks/guard.py:on_pre_tool_use",
        ...     on_stop="hooks/notify.py:on_stop",
        ...     permissions={"allow": {"net": ["api.example.com"]}},
        ...     plugins=[audit_plugin],
        ... )
    """
    by_attr = {event.handler_name: event for event in EventType}
    table: dict[EventType | str, HandlerRef] = {}
    for key, handler in handlers.items():
        event = by_attr.get(key)
        if event is None:
            try:
                event = EventType.parse(key)
            except ConfigurationError:
                known = ", ".join(sorted(by_attr))
                raise ConfigurationError(
                    f"Unknown handler keyword {key!r}. Expected one of: {known}"
                ) from None
        table[event] = handler

    inline = Plugin(
        name=name,
        handlers=table,
        version=version,
        description=description,
        permissions=permissions,
        on_load=on_load,
        on_unload=on_unload,
        timeout=timeout,
    )
    return DispatchContext([inline, *plugins], boundary=boundary)
