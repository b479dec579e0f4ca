# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Parent side of the isolated execution boundary.

Every handler given as an import reference runs in a fresh interpreter::

    python -B -P -m claudehooks.runtime --allow=read=. ... --event PreToolUse ref

The payload is written to the child's stdin as JSON; the child answers with
exactly one JSON line on stdout. The child never inherits more of the
environment than the ``env`` flags grant, runs in the payload's working
directory, and leads its own process session so that a timeout can kill the
handler together with anything it spawned. Without a ``run`` grant it also
starts with RLIMIT_NPROC set to zero (POSIX), so it cannot create processes
even through calls the audit-hook guard never sees.

stdout is read as it arrives and the process group is killed as soon as it
passes ``max_output_bytes``; only the tail of stderr is kept.

Failure modes, all reported as HandlerExecutionError:
    - interpreter missing or not executable
    - timeout (the whole process group is killed)
    - stdout larger than the cap (the whole process group is killed)
    - non-zero exit (the last stderr line is the detail)
    - stdout empty, more than one line, or not JSON
"""

from __future__ import annotations

import json
import logging
import os
import signal
import subprocess
import threading
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import IO, Any

from claudehooks.config import Settings, get_settings
from claudehooks.hooks.exceptions import HandlerExecutionError
from claudehooks.hooks.permissions import Capability, SandboxFlag, flags_to_args
from claudehooks.hooks.schemas import EventType, ModelHookPayloadBase
from claudehooks.runtime.invoke import module_file, split_ref
from claudehooks.runtime.policy import SandboxPolicy

__all__ = ["IsolatedBoundary", "RUNNER_MODULE"]

logger = logging.getLogger(__name__)

RUNNER_MODULE = "claudehooks.runtime"

# Directory containing the claudehooks package; put on the child's
# PYTHONPATH so the runner module is importable from a source checkout.
_PACKAGE_ROOT = str(Path(__file__).resolve().parent.parent.parent)

_CHUNK_SIZE = 65536

# Grace period for pipe threads once the child has exited.
_DRAIN_SECONDS = 5.0


def _last_line(text: str | None) -> str:
    lines = [line for line in (text or "").splitlines() if line.strip()]
    return lines[-1].strip() if lines else ""


def _forbid_new_processes() -> None:
    """Runs in the child just before exec: it may not fork or spawn.

    RLIMIT_NPROC also counts threads on Linux, so a handler without a run
    grant is single-threaded. The kernel does not apply the limit to root;
    the guard's fork and fork_exec checks still do.
    """
    import resource

    resource.setrlimit(resource.RLIMIT_NPROC, (0, 0))


def _feed(stream: IO[bytes], data: bytes) -> None:
    try:
        if data:
            stream.write(data)
        stream.close()
    except BrokenPipeError:
        # The child may exit without reading its input.
        pass


class _PipeReader(threading.Thread):
    """Drains one child pipe without ever holding more than ``limit`` + 1 bytes.

    With ``keep_tail`` the last ``limit`` bytes are kept and reading goes on
    to EOF. Otherwise reading stops at the first ``limit`` + 1 bytes,
    ``overflowed`` is set and ``on_overflow`` is called.
    """

    def __init__(
        self,
        stream: IO[bytes],
        limit: int,
        *,
        keep_tail: bool = False,
        on_overflow: Callable[[], None] | None = None,
    ) -> None:
        super().__init__(daemon=True)
        self._stream = stream
        self._limit = limit
        self._keep_tail = keep_tail
        self._on_overflow = on_overflow
        self.data = bytearray()
        self.overflowed = False

    def run(self) -> None:
        while True:
            chunk = self._stream.read1(_CHUNK_SIZE)
            if not chunk:
                return
            self.data += chunk
            if len(self.data) <= self._limit:
                continue
            if self._keep_tail:
                del self.data[: len(self.data) - self._limit]
                continue
            del self.data[self._limit + 1 :]
            self.overflowed = True
            if self._on_overflow is not None:
                self._on_overflow()
            return

    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")


def _absolute_ref(ref: str) -> str:
    """Make a file reference absolute against the dispatching process' cwd.

    The child runs in the payload's working directory, so relative file
    references must be resolved before it starts.
    """
    path = module_file(ref)
    if path is None:
        return ref
    _, attr = split_ref(ref)
    return f"{path}:{attr}"


class IsolatedBoundary:
    """Runs handler references in a confined child interpreter.

    Args:
        python_executable: Interpreter for the child. Defaults to the
            configured ``python_executable``.
        max_output_bytes: Cap on the child's stdout. Defaults to the
            configured ``max_output_bytes``.
        settings: Settings to read defaults from. Defaults to
            ``get_settings()``.

    Example:
        >>> boundary = IsolatedBoundary()
        >>> boundary.invoke(
        ...     "hooks/guard.py:on_pre_tool_use",
        ...     EventType.PRE_TOOL_USE,
        ...     payload,
        ...     flags=resolve_permissions({"allow": {"read": ["."]}}),
        ...     timeout=10,
        ... )
        {'action': 'block', 'message': 'writes outside the project'}
    """

    def __init__(
        self,
        python_executable: str | None = None,
        max_output_bytes: int | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.python_executable = python_executable or settings.python_executable
        self.max_output_bytes = max_output_bytes or settings.max_output_bytes

    def build_command(self, flags: Sequence[SandboxFlag], *args: str) -> list[str]:
        """Full child command line for the given flags and runner arguments."""
        return [
            self.python_executable,
            "-B",
            "-P",
            "-m",
            RUNNER_MODULE,
            *flags_to_args(list(flags)),
            *args,
        ]

    def build_environment(
        self,
        flags: Sequence[SandboxFlag],
        environ: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """Environment of the child: granted variables plus runner plumbing."""
        source = os.environ if environ is None else environ
        env = SandboxPolicy(flags).filter_environment(source)
        pythonpath = env.get("PYTHONPATH")
        env["PYTHONPATH"] = (
            _PACKAGE_ROOT + os.pathsep + pythonpath if pythonpath else _PACKAGE_ROOT
        )
        env["PYTHONIOENCODING"] = "utf-8"
        return env

    def invoke(
        self,
        handler_ref: str,
        event_type: EventType,
        payload: ModelHookPayloadBase,
        flags: Sequence[SandboxFlag],
        timeout: float,
    ) -> Any:
        """Run one handler and return its decoded (not yet validated) verdict.

        Raises:
            HandlerExecutionError: On any failure of the child process or of
                the stdout protocol.
        """
        ref = _absolute_ref(handler_ref)
        stdout = self._run(
            ["--event", event_type.value, ref],
            flags,
            stdin=payload.model_dump_json(),
            timeout=timeout,
            cwd=payload.context.working_directory,
        )
        return self._decode(stdout)

    def invoke_lifecycle(
        self,
        ref: str,
        flags: Sequence[SandboxFlag],
        timeout: float,
        working_directory: str | None = None,
    ) -> None:
        """Run an ``on_load``/``on_unload`` reference. Its output is ignored.

        Raises:
            HandlerExecutionError: If the child fails or times out.
        """
        self._run(
            ["--lifecycle", _absolute_ref(ref)],
            flags,
            stdin="",
            timeout=timeout,
            cwd=working_directory,
        )

    def _decode(self, stdout: str) -> Any:
        if len(stdout.encode("utf-8")) > self.max_output_bytes:
            raise HandlerExecutionError(
                f"handler output exceeds {self.max_output_bytes} bytes"
            )
        lines = stdout.splitlines()
        if len(lines) != 1 or not lines[0].strip():
            raise HandlerExecutionError(
                f"handler must print exactly one JSON line, got {len(lines)} lines"
            )
        try:
            return json.loads(lines[0])
        except json.JSONDecodeError as e:
            raise HandlerExecutionError(f"handler output is not JSON: {e}") from e

    def _run(
        self,
        args: list[str],
        flags: Sequence[SandboxFlag],
        *,
        stdin: str,
        timeout: float,
        cwd: str | None,
    ) -> str:
        command = self.build_command(flags, *args)
        workdir = cwd if cwd and os.path.isdir(cwd) else None
        preexec_fn = None
        if os.name != "nt" and not SandboxPolicy(flags).grants(Capability.RUN):
            preexec_fn = _forbid_new_processes
        logger.debug(
            "handler_subprocess_start",
            extra={"command": command, "cwd": workdir, "timeout": timeout},
        )
        try:
            proc = subprocess.Popen(
                command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=workdir,
                env=self.build_environment(flags),
                start_new_session=os.name != "nt",
                preexec_fn=preexec_fn,
            )
        except OSError as e:
            raise HandlerExecutionError(
                f"cannot start handler runner {self.python_executable}: {e}"
            ) from e

        stdout_reader = _PipeReader(
            proc.stdout, self.max_output_bytes, on_overflow=lambda: self._kill(proc)
        )
        stderr_reader = _PipeReader(proc.stderr, self.max_output_bytes, keep_tail=True)
        writer = threading.Thread(
            target=_feed, args=(proc.stdin, stdin.encode("utf-8")), daemon=True
        )
        for thread in (stdout_reader, stderr_reader, writer):
            thread.start()

        timed_out = False
        try:
            proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            timed_out = True
            self._kill(proc)
            proc.wait()
        finally:
            if proc.poll() is None:
                self._kill(proc)
                proc.wait()
            for thread in (stdout_reader, stderr_reader, writer):
                thread.join(_DRAIN_SECONDS)
                if thread.is_alive():
                    # A descendant still holds the pipe open.
                    self._kill(proc)
                    thread.join(_DRAIN_SECONDS)

        stderr = stderr_reader.text()
        if timed_out:
            raise HandlerExecutionError(f"timed out after {timeout:g}s", stderr=stderr)
        if stderr:
            logger.debug("handler_subprocess_stderr", extra={"stderr": stderr})
        if stdout_reader.overflowed:
            raise HandlerExecutionError(
                f"handler output exceeds {self.max_output_bytes} bytes", stderr=stderr
            )
        if proc.returncode != 0:
            detail = _last_line(stderr)
            message = f"handler exited with code {proc.returncode}"
            raise HandlerExecutionError(
                f"{message}: {detail}" if detail else message,
                exit_code=proc.returncode,
                stderr=stderr,
            )
        return stdout_reader.text()

    @staticmethod
    def _kill(proc: subprocess.Popen[bytes]) -> None:
        try:
            if os.name != "nt":
                os.killpg(proc.pid, signal.SIGKILL)
            else:
                proc.kill()
        except (ProcessLookupError, PermissionError):
            pass
