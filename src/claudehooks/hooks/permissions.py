# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Permission descriptors and their translation into sandbox flags.

A plugin declares what its handlers may touch with a descriptor of the form::

    permissions:
      allow:
        read: ["."]          # scoped: one flag per entry
        write: true          # unscoped: everything
        env: [HOME, PWD]
      deny:
        write: ["/etc"]      # narrows the allow above

``resolve_permissions()`` turns the descriptor into an ordered list of
SandboxFlag values. The flags are what the isolated runner is started with;
the runner never sees the descriptor itself.

Ordering contract:
    Capabilities are walked in the fixed order read, write, net, env, run,
    sys. For each capability the allow flags come first (in the order they
    were listed), followed by the deny flags for the same capability. The
    result is therefore deterministic for a given descriptor.

Deny flags only ever narrow what allow flags grant: a resource matched by a
deny flag is refused even when an allow-all flag exists for the capability.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from claudehooks.hooks.exceptions import ConfigurationError
from claudehooks.hooks.schemas import format_validation_errors


class Capability(StrEnum):
    """Capabilities a handler may be granted, in resolution order."""

    READ = "read"
    WRITE = "write"
    NET = "net"
    ENV = "env"
    RUN = "run"
    SYS = "sys"


# =============================================================================
# Descriptor Models
# =============================================================================


class ModelPermissionSet(BaseModel):
    """One section (``allow`` or ``deny``) of a permission descriptor.

    Each capability is either a list of resource scopes (paths, hosts,
    variable names, command names, system info names) or a boolean meaning
    "all" / "none". Unknown capability keys are ignored so that descriptors
    written for newer versions still load.
    """

    model_config = ConfigDict(frozen=True, strict=True, extra="ignore")

    read: list[str] | bool | None = None
    write: list[str] | bool | None = None
    net: list[str] | bool | None = None
    env: list[str] | bool | None = None
    run: list[str] | bool | None = None
    sys: list[str] | bool | None = None

    def grant(self, capability: Capability) -> list[str] | bool | None:
        """Return the raw grant for a capability."""
        return getattr(self, capability.value)


class ModelPermissionDescriptor(BaseModel):
    """Declarative allow/deny capability descriptor of a plugin."""

    model_config = ConfigDict(frozen=True, strict=True, extra="ignore")

    allow: ModelPermissionSet = Field(default_factory=ModelPermissionSet)
    deny: ModelPermissionSet = Field(default_factory=ModelPermissionSet)

    @classmethod
    def parse(
        cls, raw: ModelPermissionDescriptor | Mapping[str, object] | None
    ) -> ModelPermissionDescriptor:
        """Validate a raw descriptor mapping.

        Raises:
            ConfigurationError: If a capability value is neither a list of
                strings nor a boolean.
        """
        if raw is None:
            return cls()
        if isinstance(raw, ModelPermissionDescriptor):
            return raw
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationError(
                "Invalid permission descriptor: "
                + "; ".join(format_validation_errors(e))
            ) from e


# =============================================================================
# Sandbox Flags
# =============================================================================


@dataclass(frozen=True)
class SandboxFlag:
    """A single resolved permission granted to (or withheld from) a handler.

    Attributes:
        capability: The capability the flag applies to.
        scope: The resource the flag is limited to, or None for all resources.
        allow: True for a grant, False for a denial.

    Example:
        >>> SandboxFlag(Capability.READ, ".").to_arg()
        '--allow=read=.'
        >>> SandboxFlag(Capability.WRITE, "/etc", allow=False).to_arg()
        '--deny=write=/etc'
    """

    capability: Capability
    scope: str | None = None
    allow: bool = True

    @property
    def is_unscoped(self) -> bool:
        return self.scope is None

    def to_arg(self) -> str:
        """Render the flag as a runner command-line argument."""
        kind = "allow" if self.allow else "deny"
        if self.scope is None:
            return f"--{kind}={self.capability.value}"
        return f"--{kind}={self.capability.value}={self.scope}"

    def __str__(self) -> str:
        return self.to_arg()


def _flags_for(
    capability: Capability, grant: list[str] | bool | None, allow: bool
) -> list[SandboxFlag]:
    if grant is True:
        return [SandboxFlag(capability, None, allow)]
    if not grant:
        return []
    return [SandboxFlag(capability, scope, allow) for scope in grant]


def resolve_permissions(
    descriptor: ModelPermissionDescriptor | Mapping[str, object] | None,
) -> list[SandboxFlag]:
    """Translate a permission descriptor into an ordered list of sandbox flags.

    Args:
        descriptor: A descriptor model, a raw mapping, or None (no grants).

    Returns:
        Flags ordered by capability (read, write, net, env, run, sys); within
        a capability, allow flags in listed order followed by deny flags.

    Raises:
        ConfigurationError: If a raw mapping is not a valid descriptor.

    Example:
        >>> [str(f) for f in resolve_permissions({"allow": {"read": ["."], "write": True}})]
        ['--allow=read=.', '--allow=write']
    """
    parsed = ModelPermissionDescriptor.parse(descriptor)
    flags: list[SandboxFlag] = []
    for capability in Capability:
        flags.extend(_flags_for(capability, parsed.allow.grant(capability), True))
        flags.extend(_flags_for(capability, parsed.deny.grant(capability), False))
    return flags


def flags_to_args(flags: list[SandboxFlag]) -> list[str]:
    """Render flags as runner command-line arguments, preserving order."""
    return [flag.to_arg() for flag in flags]


def parse_flag_arg(value: str, allow: bool = True) -> SandboxFlag:
    """Parse the value of a ``--allow``/``--deny`` runner argument.

    Args:
        value: ``"<capability>"`` or ``"<capability>=<scope>"``. Only the first
            ``=`` separates the capability, so scopes may contain ``=``.
        allow: Whether the argument came from ``--allow`` (True) or
            ``--deny`` (False).

    Raises:
        ConfigurationError: If the capability is unknown or the scope empty.
    """
    name, sep, scope = value.partition("=")
    try:
        capability = Capability(name)
    except ValueError:
        raise ConfigurationError(f"Unknown capability: {name!r}") from None
    if sep and not scope:
        raise ConfigurationError(f"Empty scope for capability: {name!r}")
    return SandboxFlag(capability, scope if sep else None, allow)


__all__ = [
    "Capability",
    "ModelPermissionSet",
    "ModelPermissionDescriptor",
    "SandboxFlag",
    "resolve_permissions",
    "flags_to_args",
    "parse_flag_arg",
]
