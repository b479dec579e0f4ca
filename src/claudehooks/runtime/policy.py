# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Sandbox policy evaluation.

``SandboxPolicy`` answers a single question: may the handler touch this
resource with this capability? It is built from the resolved SandboxFlag
list and used on both sides of the boundary:

    - by the parent, to filter the environment handed to the runner (env);
    - by the child's guard, to allow or refuse file, network, process and
      system-information operations (read, write, net, run, sys).

Matching rules:
    read / write  Scopes are paths, resolved against ``base_dir``. A scope
                  covers itself and everything below it. Resources should be
                  absolute; relative ones are also taken against ``base_dir``.
    net           Scopes are ``host`` (any port) or ``host:port``.
    env           Scopes are variable names.
    run           Scopes are command names or paths; a bare name matches any
                  path with that basename.
    sys           Scopes are information names (hostname, osRelease, ...).

A resource matched by a deny flag is always refused.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from claudehooks.hooks.permissions import Capability, SandboxFlag

__all__ = ["SandboxPolicy", "SandboxDenied"]


class SandboxDenied(PermissionError):
    """Raised inside the runner when the policy refuses an operation."""

    def __init__(self, capability: Capability, resource: str) -> None:
        self.capability = capability
        self.resource = resource
        super().__init__(
            f"Requires {capability.value} access to {resource!r}, "
            f"grant it with permissions.allow.{capability.value}"
        )


@dataclass
class _Rule:
    allow_all: bool = False
    deny_all: bool = False
    allowed: list[str] = field(default_factory=list)
    denied: list[str] = field(default_factory=list)


def _split_host(value: str) -> tuple[str, str | None]:
    if value.startswith("["):
        host, _, rest = value[1:].partition("]")
        port = rest[1:] if rest.startswith(":") else None
        return host.lower(), port or None
    if value.count(":") == 1:
        host, _, port = value.partition(":")
        return host.lower(), port or None
    return value.lower(), None


class SandboxPolicy:
    """Evaluates resource access against a list of sandbox flags.

    Args:
        flags: Resolved flags, in any order.
        base_dir: Directory relative path scopes and resources resolve
            against. Defaults to the current working directory.
        implicit_read: Paths readable regardless of the flags (the
            interpreter's own library directories, the handler module).
    """

    def __init__(
        self,
        flags: Iterable[SandboxFlag],
        base_dir: str | Path | None = None,
        implicit_read: Iterable[str | Path] = (),
    ) -> None:
        self._base_dir = Path(base_dir) if base_dir is not None else Path.cwd()
        self._flags = list(flags)
        self._rules: dict[Capability, _Rule] = {cap: _Rule() for cap in Capability}
        for flag in self._flags:
            rule = self._rules[flag.capability]
            scope = self._normalize(flag.capability, flag.scope) if flag.scope else None
            if flag.allow:
                if scope is None:
                    rule.allow_all = True
                else:
                    rule.allowed.append(scope)
            elif scope is None:
                rule.deny_all = True
            else:
                rule.denied.append(scope)
        self._implicit_read = [
            self._normalize(Capability.READ, str(p)) for p in implicit_read
        ]

    @property
    def flags(self) -> list[SandboxFlag]:
        return list(self._flags)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _normalize(self, capability: Capability, value: str) -> str:
        if capability in (Capability.READ, Capability.WRITE):
            return os.path.realpath(os.path.join(self._base_dir, os.path.expanduser(value)))
        return value

    def _matches(self, capability: Capability, scope: str, resource: str) -> bool:
        if capability in (Capability.READ, Capability.WRITE):
            if resource == scope:
                return True
            return resource.startswith(scope.rstrip(os.sep) + os.sep)
        if capability is Capability.NET:
            scope_host, scope_port = _split_host(scope)
            host, port = _split_host(resource)
            return scope_host == host and (scope_port is None or scope_port == port)
        if capability is Capability.RUN:
            if resource == scope:
                return True
            if os.sep not in scope and os.path.basename(resource) == scope:
                return True
            return os.path.isabs(scope) and os.path.realpath(resource) == os.path.realpath(scope)
        return resource == scope

    def permits(self, capability: Capability, resource: str) -> bool:
        """Whether the policy allows ``capability`` on ``resource``."""
        rule = self._rules[capability]
        target = self._normalize(capability, resource)
        if rule.deny_all or any(self._matches(capability, s, target) for s in rule.denied):
            return False
        if rule.allow_all:
            return True
        if any(self._matches(capability, s, target) for s in rule.allowed):
            return True
        if capability is Capability.READ:
            return any(self._matches(capability, s, target) for s in self._implicit_read)
        return False

    def grants(self, capability: Capability) -> bool:
        """Whether ``capability`` is allowed for at least one resource."""
        rule = self._rules[capability]
        return not rule.deny_all and (rule.allow_all or bool(rule.allowed))

    def check(self, capability: Capability, resource: str) -> None:
        """Raise SandboxDenied unless the policy allows the access."""
        if not self.permits(capability, resource):
            raise SandboxDenied(capability, resource)

    def filter_environment(self, environ: Mapping[str, str]) -> dict[str, str]:
        """Return the subset of ``environ`` the handler is allowed to see."""
        return {
            name: value
            for name, value in environ.items()
            if self.permits(Capability.ENV, name)
        }
