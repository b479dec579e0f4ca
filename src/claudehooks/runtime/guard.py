# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""In-process confinement of handler code inside the runner subprocess.

``install_guard()`` registers a ``sys.addaudithook`` hook (PEP 578) that
checks every audited file, socket and process operation against the
SandboxPolicy, and wraps the handful of functions the interpreter does not
audit. Audit hooks cannot be removed once added, so the guard is only ever
installed in the short-lived runner process, never in the dispatching parent.

Operations are mapped to capabilities as follows:

    read    open() for reading, os.listdir/os.scandir, os.chdir, copy sources
    write   open() for writing/appending/creating, mkdir, remove, rename, ...
    net     socket connect/bind/sendto, DNS resolution
    run     subprocess.Popen, os.system, os.exec*, os.posix_spawn, os.spawn*,
            os.fork/os.forkpty (any run grant), _posixsubprocess.fork_exec
    sys     hostname, uname (osRelease), loadavg, cpus, uid, gid,
            networkInterfaces

Relative paths are resolved against the current directory at the time of
the operation, so changing directory never widens a grant.

The unaudited functions are wrapped both on the public module (``os``,
``socket``) and on the native module behind it (``posix``/``nt``,
``_socket``). Loading native code through ctypes would bypass all of the
above and is refused unconditionally.
"""

from __future__ import annotations

import logging
import os
import shlex
import socket
import subprocess
import sys
import sysconfig
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

from claudehooks.hooks.permissions import Capability
from claudehooks.runtime.policy import SandboxDenied, SandboxPolicy

__all__ = ["AuditGuard", "install_guard", "interpreter_paths", "guard_functions"]

logger = logging.getLogger(__name__)

# Event name -> ((argument index, capability), ...) for path-taking events.
_PATH_EVENTS: dict[str, tuple[tuple[int, Capability], ...]] = {
    "os.chdir": ((0, Capability.READ),),
    "os.listdir": ((0, Capability.READ),),
    "os.scandir": ((0, Capability.READ),),
    "os.mkdir": ((0, Capability.WRITE),),
    "os.remove": ((0, Capability.WRITE),),
    "os.rmdir": ((0, Capability.WRITE),),
    "os.rename": ((0, Capability.WRITE), (1, Capability.WRITE)),
    "os.link": ((0, Capability.READ), (1, Capability.WRITE)),
    "os.symlink": ((1, Capability.WRITE),),
    "os.chmod": ((0, Capability.WRITE),),
    "os.chown": ((0, Capability.WRITE),),
    "os.truncate": ((0, Capability.WRITE),),
    "os.utime": ((0, Capability.WRITE),),
    "shutil.copyfile": ((0, Capability.READ), (1, Capability.WRITE)),
    "shutil.copytree": ((0, Capability.READ), (1, Capability.WRITE)),
    "shutil.move": ((0, Capability.WRITE), (1, Capability.WRITE)),
    "shutil.rmtree": ((0, Capability.WRITE),),
}

# Event name -> index of the executable argument.
_PROCESS_EVENTS: dict[str, int] = {
    "os.exec": 0,
    "os.posix_spawn": 0,
    "os.spawn": 1,
    "os.startfile": 0,
}

# Forking runs no program yet; any run grant allows it.
_FORK_EVENTS = frozenset({"os.fork", "os.forkpty"})

_SOCKET_ADDRESS_EVENTS = frozenset({"socket.connect", "socket.bind", "socket.sendto"})

_ALWAYS_REFUSED = frozenset({"ctypes.dlopen", "socket.sethostname"})

_WRITE_FLAGS = os.O_WRONLY | os.O_RDWR | os.O_APPEND | os.O_CREAT | os.O_TRUNC

# (attribute, sys scope) for unaudited system-information functions of os.
_OS_INFO_FUNCTIONS: tuple[tuple[str, str], ...] = (
    ("uname", "osRelease"),
    ("getloadavg", "loadavg"),
    ("cpu_count", "cpus"),
    ("getuid", "uid"),
    ("getgid", "gid"),
)

_SOCKET_INFO_FUNCTIONS: tuple[tuple[str, str], ...] = (
    ("if_nameindex", "networkInterfaces"),
)


def interpreter_paths() -> list[str]:
    """Directories the interpreter itself must be able to read from.

    Covers the installation prefixes, the standard library and site-packages
    directories, every entry of ``sys.path`` (the import system lists them),
    and the directory this package is installed in.
    """
    paths = {sys.prefix, sys.base_prefix, sys.exec_prefix, sys.base_exec_prefix}
    for key in ("stdlib", "platstdlib", "purelib", "platlib"):
        value = sysconfig.get_path(key)
        if value:
            paths.add(value)
    paths.update(entry for entry in sys.path if entry)
    paths.add(str(Path(__file__).resolve().parent.parent))
    return sorted(p for p in paths if p)


def _as_path(value: Any) -> str | None:
    """Absolute form of an audit path argument, or None for an fd.

    Audit path arguments may be str, bytes, PathLike, fd ints or None (the
    current directory).
    """
    if value is None:
        value = "."
    if isinstance(value, int):
        return None
    value = os.fspath(value)
    if isinstance(value, bytes):
        value = os.fsdecode(value)
    if os.path.isabs(value):
        return value
    return os.path.join(os.getcwd(), value)


def _is_write_open(mode: Any, flags: Any) -> bool:
    if isinstance(mode, str):
        return any(ch in mode for ch in "wax+")
    if isinstance(flags, int):
        return bool(flags & _WRITE_FLAGS)
    return False


def _command_of(value: Any) -> str | None:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    value = os.fspath(value)
    if isinstance(value, bytes):
        value = os.fsdecode(value)
    return value


def _first_word(command_line: Any) -> str:
    """Program name of a shell command line."""
    text = _command_of(command_line) or ""
    try:
        tokens = shlex.split(text)
    except ValueError:
        tokens = text.split()
    return tokens[0] if tokens else ""


class AuditGuard:
    """Audit hook enforcing a SandboxPolicy.

    Instances are plain callables with the ``(event, args)`` audit hook
    signature, which keeps them testable without installing them.
    """

    def __init__(self, policy: SandboxPolicy) -> None:
        self._policy = policy
        self._local = threading.local()

    def __call__(self, event: str, args: tuple[Any, ...]) -> None:
        if getattr(self._local, "active", False):
            return
        self._local.active = True
        try:
            self._check(event, args)
        finally:
            self._local.active = False

    def _check(self, event: str, args: tuple[Any, ...]) -> None:
        if event in _ALWAYS_REFUSED:
            raise PermissionError(f"{event} is not permitted inside the hook sandbox")

        if event == "open":
            path = _as_path(args[0])
            if path is None:
                return
            mode = args[1] if len(args) > 1 else None
            flags = args[2] if len(args) > 2 else None
            capability = Capability.WRITE if _is_write_open(mode, flags) else Capability.READ
            self._policy.check(capability, path)
            return

        path_rules = _PATH_EVENTS.get(event)
        if path_rules is not None:
            for index, capability in path_rules:
                if index < len(args):
                    path = _as_path(args[index])
                    if path is not None:
                        self._policy.check(capability, path)
            return

        if event == "subprocess.Popen":
            executable, argv = args[0], args[1]
            command = _command_of(executable)
            if command is None:
                if isinstance(argv, (str, bytes)):
                    command = _first_word(argv) or None
                else:
                    command = _command_of(argv)
            if command is not None:
                self._policy.check(Capability.RUN, command)
            return

        if event == "os.system":
            self._policy.check(Capability.RUN, _first_word(args[0] if args else None))
            return

        index = _PROCESS_EVENTS.get(event)
        if index is not None:
            command = _command_of(args[index]) if index < len(args) else None
            if command is not None:
                self._policy.check(Capability.RUN, command)
            return

        if event in _FORK_EVENTS:
            if not self._policy.grants(Capability.RUN):
                raise SandboxDenied(Capability.RUN, event)
            return

        if event in _SOCKET_ADDRESS_EVENTS:
            address = args[1] if len(args) > 1 else None
            if isinstance(address, tuple) and address:
                self._policy.check(Capability.NET, f"{address[0]}:{address[1]}")
            elif isinstance(address, (str, bytes)) and address:
                # AF_UNIX sockets are files.
                path = _as_path(address)
                if path is not None:
                    self._policy.check(Capability.WRITE, path)
            return

        if event == "socket.getaddrinfo":
            host, port = args[0], args[1] if len(args) > 1 else None
            if host is not None:
                host = os.fsdecode(host) if isinstance(host, bytes) else str(host)
                self._policy.check(Capability.NET, f"{host}:{port}" if port else host)
            return

        if event in ("socket.gethostbyname", "socket.gethostbyaddr"):
            self._policy.check(Capability.NET, str(args[0]))
            return

        if event == "socket.gethostname":
            self._policy.check(Capability.SYS, "hostname")


def _guard_function(
    policy: SandboxPolicy, func: Callable[..., Any], scope: str
) -> Callable[..., Any]:
    def guarded(*args: Any, **kwargs: Any) -> Any:
        policy.check(Capability.SYS, scope)
        return func(*args, **kwargs)

    guarded.__name__ = getattr(func, "__name__", scope)
    guarded.__doc__ = getattr(func, "__doc__", None)
    return guarded


def _guard_fork_exec(policy: SandboxPolicy, func: Callable[..., Any]) -> Callable[..., Any]:
    """Check every candidate executable before the unaudited fork_exec runs."""

    def fork_exec(*args: Any) -> Any:
        argv = args[0] if args else None
        candidates = list(args[1]) if len(args) > 1 and args[1] else [argv]
        for executable in candidates:
            policy.check(Capability.RUN, _command_of(executable) or "")
        return func(*args)

    fork_exec.__doc__ = getattr(func, "__doc__", None)
    return fork_exec


def guard_functions(
    policy: SandboxPolicy, module: Any, table: tuple[tuple[str, str], ...]
) -> None:
    """Replace ``module``'s system-information functions with checked ones."""
    for attr, scope in table:
        func = getattr(module, attr, None)
        if func is not None:
            setattr(module, attr, _guard_function(policy, func, scope))


def install_guard(policy: SandboxPolicy) -> AuditGuard:
    """Confine the current process to ``policy``. Irreversible.

    Returns:
        The installed AuditGuard.
    """
    # posix or nt, the native module os re-exports.
    native_os = sys.modules.get(os.name)
    for module in (os, native_os):
        if module is not None:
            guard_functions(policy, module, _OS_INFO_FUNCTIONS)
    for module in (socket, sys.modules.get("_socket")):
        if module is not None:
            guard_functions(policy, module, _SOCKET_INFO_FUNCTIONS)

    # Imported by subprocess on POSIX; fork_exec raises no audit event.
    posixsubprocess = sys.modules.get("_posixsubprocess")
    for module, attr in ((posixsubprocess, "fork_exec"), (subprocess, "_fork_exec")):
        func = getattr(module, attr, None) if module is not None else None
        if func is not None:
            setattr(module, attr, _guard_fork_exec(policy, func))

    guard = AuditGuard(policy)
    sys.addaudithook(guard)
    logger.debug(
        "sandbox_guard_installed",
        extra={"flags": [str(flag) for flag in policy.flags]},
    )
    return guard
