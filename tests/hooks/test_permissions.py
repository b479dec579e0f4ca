# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Tests for permission descriptor resolution into sandbox flags."""

from __future__ import annotations

import pytest

from claudehooks.hooks.exceptions import ConfigurationError
from claudehooks.hooks.permissions import (
    Capability,
    ModelPermissionDescriptor,
    SandboxFlag,
    flags_to_args,
    parse_flag_arg,
    resolve_permissions,
)

# All tests in this module are unit tests
pytestmark = pytest.mark.unit


def _args(descriptor: object) -> list[str]:
    return flags_to_args(resolve_permissions(descriptor))


# =============================================================================
# Resolution Tests
# =============================================================================


class TestResolvePermissions:
    """Tests for resolve_permissions()."""

    def test_none_grants_nothing(self) -> None:
        assert resolve_permissions(None) == []
        assert resolve_permissions({}) == []

    def test_scoped_list_preserves_order(self) -> None:
        assert _args({"allow": {"read": ["src", ".", "/opt/data"]}}) == [
            "--allow=read=src",
            "--allow=read=.",
            "--allow=read=/opt/data",
        ]

    def test_true_is_one_unscoped_flag(self) -> None:
        flags = resolve_permissions({"allow": {"net": True}})
        assert flags == [SandboxFlag(Capability.NET)]
        assert flags[0].is_unscoped

    def test_false_and_empty_list_emit_nothing(self) -> None:
        assert resolve_permissions({"allow": {"net": False, "env": []}}) == []

    def test_capabilities_in_fixed_order(self) -> None:
        descriptor = {
            "allow": {
                "sys": ["hostname"],
                "run": ["git"],
                "env": ["HOME"],
                "net": ["api.example.com"],
                "write": ["out"],
                "read": ["."],
            }
        }
        assert _args(descriptor) == [
            "--allow=read=.",
            "--allow=write=out",
            "--allow=net=api.example.com",
            "--allow=env=HOME",
            "--allow=run=git",
            "--allow=sys=hostname",
        ]

    def test_deny_follows_allow_of_same_capability(self) -> None:
        descriptor = {
            "deny": {"write": ["/etc"], "net": ["evil.example"]},
            "allow": {"write": True, "net": ["api.example.com"], "read": ["."]},
        }
        assert _args(descriptor) == [
            "--allow=read=.",
            "--allow=write",
            "--deny=write=/etc",
            "--allow=net=api.example.com",
            "--deny=net=evil.example",
        ]

    def test_deny_true_is_unscoped_deny(self) -> None:
        assert _args({"deny": {"run": True}}) == ["--deny=run"]

    def test_unknown_capability_keys_ignored(self) -> None:
        descriptor = {"allow": {"gpu": True, "read": ["."]}, "audit": {"x": 1}}
        assert _args(descriptor) == ["--allow=read=."]

    def test_resolution_is_deterministic(self) -> None:
        descriptor = {
            "allow": {"read": ["a", "b"], "env": True},
            "deny": {"read": ["a/secret"]},
        }
        assert resolve_permissions(descriptor) == resolve_permissions(descriptor)

    def test_accepts_parsed_descriptor(self) -> None:
        parsed = ModelPermissionDescriptor.parse({"allow": {"env": ["PATH"]}})
        assert _args(parsed) == ["--allow=env=PATH"]

    @pytest.mark.parametrize(
        "descriptor",
        [
            {"allow": {"read": "yes"}},
            {"allow": {"read": [1, 2]}},
            {"allow": ["read"]},
        ],
    )
    def test_invalid_descriptor_raises(self, descriptor: object) -> None:
        with pytest.raises(ConfigurationError, match="Invalid permission descriptor"):
            resolve_permissions(descriptor)


# =============================================================================
# Flag Argument Tests
# =============================================================================


class TestSandboxFlagArgs:
    """Tests for rendering and parsing runner flag arguments."""

    def test_to_arg(self) -> None:
        assert SandboxFlag(Capability.READ, ".").to_arg() == "--allow=read=."
        assert SandboxFlag(Capability.WRITE).to_arg() == "--allow=write"
        assert (
            SandboxFlag(Capability.WRITE, "/etc", allow=False).to_arg()
            == "--deny=write=/etc"
        )
        assert str(SandboxFlag(Capability.SYS, "hostname")) == "--allow=sys=hostname"

    @pytest.mark.parametrize(
        ("value", "allow", "expected"),
        [
            ("read", True, SandboxFlag(Capability.READ)),
            ("net=api.example.com:443", True, SandboxFlag(Capability.NET, "api.example.com:443")),
            ("env=A=B", True, SandboxFlag(Capability.ENV, "A=B")),
            ("write=/etc", False, SandboxFlag(Capability.WRITE, "/etc", allow=False)),
        ],
    )
    def test_parse_flag_arg(self, value: str, allow: bool, expected: SandboxFlag) -> None:
        assert parse_flag_arg(value, allow=allow) == expected

    def test_parse_reverses_to_arg(self) -> None:
        flags = resolve_permissions(
            {"allow": {"read": ["."], "run": True}, "deny": {"read": ["./.env"]}}
        )
        parsed = []
        for arg in flags_to_args(flags):
            kind, _, value = arg[2:].partition("=")
            parsed.append(parse_flag_arg(value, allow=kind == "allow"))
        assert parsed == flags

    def test_unknown_capability_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown capability"):
            parse_flag_arg("gpu")

    def test_empty_scope_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="Empty scope"):
            parse_flag_arg("read=")
