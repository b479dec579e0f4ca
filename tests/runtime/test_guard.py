# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Tests for the runner's audit-hook guard.

The guard is never installed here: audit hooks cannot be removed, so these
tests call AuditGuard instances directly with synthetic audit events. The
installed guard is exercised end to end by the boundary integration tests.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

import claudehooks
from claudehooks.hooks.permissions import resolve_permissions
from claudehooks.runtime.guard import (
    AuditGuard,
    _guard_fork_exec,
    guard_functions,
    interpreter_paths,
)
from claudehooks.runtime.policy import SandboxDenied, SandboxPolicy

# All tests in this module are unit tests
pytestmark = pytest.mark.unit


def _policy(tmp_path: Path, descriptor: dict | None = None) -> SandboxPolicy:
    return SandboxPolicy(resolve_permissions(descriptor), base_dir=tmp_path)


@pytest.fixture
def make_guard(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    # The runner starts in the directory its policy is based on.
    monkeypatch.chdir(tmp_path)

    def _make(descriptor: dict | None = None) -> AuditGuard:
        return AuditGuard(_policy(tmp_path, descriptor))

    return _make


# =============================================================================
# File Event Tests
# =============================================================================


class TestFileEvents:
    """open() and path-taking os/shutil events."""

    def test_open_for_read_needs_read(self, make_guard, tmp_path: Path) -> None:
        target = str(tmp_path / "data.txt")
        with pytest.raises(SandboxDenied, match="Requires read access"):
            make_guard()("open", (target, "r", os.O_RDONLY))
        make_guard({"allow": {"read": ["."]}})("open", (target, "r", os.O_RDONLY))

    @pytest.mark.parametrize("mode", ["w", "a", "x", "r+", "wb"])
    def test_open_for_write_needs_write(self, make_guard, tmp_path: Path, mode: str) -> None:
        guard = make_guard({"allow": {"read": ["."]}})
        with pytest.raises(SandboxDenied, match="Requires write access"):
            guard("open", (str(tmp_path / "out.txt"), mode, 0))

    def test_os_open_flags_classified(self, make_guard, tmp_path: Path) -> None:
        guard = make_guard({"allow": {"read": ["."]}})
        flags = os.O_WRONLY | os.O_CREAT
        with pytest.raises(SandboxDenied):
            guard("open", (str(tmp_path / "out.txt"), None, flags))

    def test_open_file_descriptor_ignored(self, make_guard) -> None:
        make_guard()("open", (3, "r", 0))

    def test_bytes_path_decoded(self, make_guard, tmp_path: Path) -> None:
        guard = make_guard({"allow": {"read": ["."]}})
        guard("open", (os.fsencode(tmp_path / "a.txt"), "rb", 0))

    def test_listdir_none_means_cwd(self, make_guard) -> None:
        with pytest.raises(SandboxDenied):
            make_guard()("os.listdir", (None,))
        make_guard({"allow": {"read": ["."]}})("os.listdir", (None,))

    def test_remove_needs_write(self, make_guard) -> None:
        with pytest.raises(SandboxDenied, match="write"):
            make_guard({"allow": {"read": ["."]}})("os.remove", ("notes.txt", -1))

    def test_rename_checks_both_paths(self, make_guard) -> None:
        guard = make_guard({"allow": {"write": ["a"]}})
        guard("os.rename", ("a/one", "a/two", -1, -1))
        with pytest.raises(SandboxDenied):
            guard("os.rename", ("a/one", "b/two", -1, -1))

    def test_copyfile_reads_source_writes_destination(self, make_guard) -> None:
        guard = make_guard({"allow": {"read": ["src"], "write": ["out"]}})
        guard("shutil.copyfile", ("src/a", "out/a"))
        with pytest.raises(SandboxDenied, match="read"):
            guard("shutil.copyfile", ("other/a", "out/a"))

    def test_relative_path_follows_current_directory(
        self, make_guard, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (tmp_path / "inside").mkdir()
        (tmp_path / "outside").mkdir()
        guard = make_guard({"allow": {"read": ["inside"]}})

        monkeypatch.chdir(tmp_path / "outside")
        with pytest.raises(SandboxDenied) as exc_info:
            guard("open", ("secret.txt", "r", os.O_RDONLY))
        assert exc_info.value.resource == os.path.join(os.getcwd(), "secret.txt")

        monkeypatch.chdir(tmp_path / "inside")
        guard("open", ("secret.txt", "r", os.O_RDONLY))

    def test_chdir_needs_read(self, make_guard, tmp_path: Path) -> None:
        (tmp_path / "inside").mkdir()
        guard = make_guard({"allow": {"read": ["inside"]}})
        guard("os.chdir", ("inside",))
        with pytest.raises(SandboxDenied, match="Requires read access"):
            guard("os.chdir", (str(tmp_path.parent),))

    def test_fchdir_descriptor_ignored(self, make_guard) -> None:
        make_guard()("os.chdir", (5,))


# =============================================================================
# Process Event Tests
# =============================================================================


class TestProcessEvents:
    """subprocess, os.system, exec and spawn events."""

    def test_popen_argv_list(self, make_guard) -> None:
        guard = make_guard({"allow": {"run": ["git"]}})
        guard("subprocess.Popen", (None, ["git", "status"], None, None))
        with pytest.raises(SandboxDenied, match="Requires run access"):
            guard("subprocess.Popen", (None, ["curl", "x"], None, None))

    def test_popen_executable_wins(self, make_guard) -> None:
        guard = make_guard({"allow": {"run": ["git"]}})
        with pytest.raises(SandboxDenied):
            guard("subprocess.Popen", ("/bin/sh", ["git"], None, None))

    def test_popen_shell_string(self, make_guard) -> None:
        guard = make_guard({"allow": {"run": ["ls"]}})
        guard("subprocess.Popen", (None, "ls -la", None, None))
        with pytest.raises(SandboxDenied):
            guard("subprocess.Popen", (None, "rm -rf /", None, None))

    def test_os_system(self, make_guard) -> None:
        with pytest.raises(SandboxDenied):
            make_guard()("os.system", (b"echo hi",))

    def test_exec_and_spawn(self, make_guard) -> None:
        guard = make_guard({"allow": {"run": ["python3"]}})
        guard("os.exec", ("/usr/bin/python3", ["python3"], None))
        guard("os.spawn", (os.P_WAIT, "/usr/bin/python3", ["python3"], None))
        with pytest.raises(SandboxDenied):
            guard("os.posix_spawn", ("/bin/sh", ["sh"], None))

    @pytest.mark.parametrize("event", ["os.fork", "os.forkpty"])
    def test_fork_needs_a_run_grant(self, make_guard, event: str) -> None:
        with pytest.raises(SandboxDenied, match="Requires run access"):
            make_guard()(event, ())
        with pytest.raises(SandboxDenied):
            make_guard({"allow": {"run": True}, "deny": {"run": True}})(event, ())
        make_guard({"allow": {"run": ["git"]}})(event, ())


class TestForkExec:
    """The wrapper around the unaudited _posixsubprocess.fork_exec."""

    def test_every_candidate_checked(self, tmp_path: Path) -> None:
        real = MagicMock(return_value=4242)
        fork_exec = _guard_fork_exec(_policy(tmp_path, {"allow": {"run": ["git"]}}), real)

        candidates = [b"/usr/local/bin/git", b"/usr/bin/git"]
        assert fork_exec([b"git", b"status"], candidates, True) == 4242
        real.assert_called_once_with([b"git", b"status"], candidates, True)

    def test_denied_before_the_call(self, tmp_path: Path) -> None:
        real = MagicMock()
        fork_exec = _guard_fork_exec(_policy(tmp_path), real)
        with pytest.raises(SandboxDenied, match="Requires run access"):
            fork_exec([b"/bin/sh", b"-c", b"echo hi"], [b"/bin/sh"])
        real.assert_not_called()

    def test_argv_used_without_candidates(self, tmp_path: Path) -> None:
        real = MagicMock()
        fork_exec = _guard_fork_exec(_policy(tmp_path, {"allow": {"run": ["git"]}}), real)
        with pytest.raises(SandboxDenied, match="'curl'"):
            fork_exec([b"curl", b"x"], None)
        real.assert_not_called()


class TestGuardFunctions:
    """Tests for guard_functions()."""

    def test_information_function_needs_sys(self, tmp_path: Path) -> None:
        native = SimpleNamespace(uname=lambda: "vm", getpid=lambda: 1)
        guard_functions(_policy(tmp_path), native, (("uname", "osRelease"),))
        with pytest.raises(SandboxDenied, match="Requires sys access to 'osRelease'"):
            native.uname()
        assert native.getpid() == 1

    def test_granted_scope_passes_through(self, tmp_path: Path) -> None:
        native = SimpleNamespace(getuid=lambda: 1000)
        policy = _policy(tmp_path, {"allow": {"sys": ["uid"]}})
        guard_functions(policy, native, (("getuid", "uid"), ("getloadavg", "loadavg")))
        assert native.getuid() == 1000
        assert not hasattr(native, "getloadavg")


# =============================================================================
# Network Event Tests
# =============================================================================


class TestNetworkEvents:
    """socket and DNS events."""

    def test_connect_checks_host_and_port(self, make_guard) -> None:
        guard = make_guard({"allow": {"net": ["api.example.com:443"]}})
        guard("socket.connect", (object(), ("api.example.com", 443)))
        with pytest.raises(SandboxDenied, match="Requires net access"):
            guard("socket.connect", (object(), ("api.example.com", 80)))

    def test_unix_socket_is_a_path(self, make_guard) -> None:
        with pytest.raises(SandboxDenied, match="write"):
            make_guard({"allow": {"net": True}})("socket.connect", (object(), "/run/x.sock"))

    def test_getaddrinfo(self, make_guard) -> None:
        guard = make_guard({"allow": {"net": ["example.com"]}})
        guard("socket.getaddrinfo", ("example.com", 443, 0, 0, 0))
        with pytest.raises(SandboxDenied):
            guard("socket.getaddrinfo", (b"other.example", None, 0, 0, 0))

    def test_gethostbyname(self, make_guard) -> None:
        with pytest.raises(SandboxDenied):
            make_guard()("socket.gethostbyname", ("example.com",))

    def test_gethostname_needs_sys(self, make_guard) -> None:
        with pytest.raises(SandboxDenied, match="Requires sys access"):
            make_guard()("socket.gethostname", ())
        make_guard({"allow": {"sys": ["hostname"]}})("socket.gethostname", ())


# =============================================================================
# Miscellaneous Tests
# =============================================================================


class TestGuardBehaviour:
    """Always-refused events, unrelated events and reentrancy."""

    @pytest.mark.parametrize("event", ["ctypes.dlopen", "socket.sethostname"])
    def test_always_refused(self, make_guard, event: str) -> None:
        guard = make_guard(
            {"allow": {"read": True, "write": True, "net": True, "run": True, "sys": True}}
        )
        with pytest.raises(PermissionError, match="not permitted"):
            guard(event, ("libc.so.6",))

    def test_unrelated_events_pass(self, make_guard) -> None:
        guard = make_guard()
        guard("import", ("json", None, [], [], []))
        guard("builtins.id", (1,))

    def test_reentrant_calls_are_skipped(self, make_guard, tmp_path: Path) -> None:
        guard = make_guard()
        guard._local.active = True
        guard("open", (str(tmp_path / "x"), "w", 0))


# =============================================================================
# interpreter_paths() Tests
# =============================================================================


class TestInterpreterPaths:
    """Tests for interpreter_paths()."""

    def test_contains_prefix_and_package(self) -> None:
        paths = interpreter_paths()
        assert sys.prefix in paths
        assert str(Path(claudehooks.__file__).resolve().parent) in paths

    def test_sorted_and_unique(self) -> None:
        paths = interpreter_paths()
        assert paths == sorted(set(paths))
