# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Child side of the isolated execution boundary.

Started by IsolatedBoundary, never by users directly::

    python -B -P -m claudehooks.runtime [--allow=CAP[=SCOPE]]... \\
        [--deny=CAP[=SCOPE]]... --event EVENT MODULE:ATTR < payload.json

    python -B -P -m claudehooks.runtime [flags]... --lifecycle MODULE:ATTR

Sequence:
    1. Parse the sandbox flags and read the payload from stdin.
    2. Validate the payload against the event contract.
    3. Install the audit-hook guard. Nothing after this point can leave the
       granted capabilities.
    4. Import the handler module and call the handler, with its stdout
       redirected to stderr.
    5. Print the verdict as exactly one JSON line.

Exit codes:
    0 - verdict printed (or lifecycle callback completed)
    1 - the handler (or its module) raised; ``<Type>: <message>`` on stderr
    2 - invalid runner invocation
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

import click
from pydantic import BaseModel

from claudehooks.hooks.permissions import SandboxFlag, parse_flag_arg
from claudehooks.hooks.schemas import EventType, ModelHookResponse, validate_payload
from claudehooks.runtime.guard import install_guard, interpreter_paths
from claudehooks.runtime.invoke import call_handler, load_target, module_file
from claudehooks.runtime.policy import SandboxPolicy

logger = logging.getLogger(__name__)


def _encode(result: Any) -> str:
    """Render a handler's return value as the verdict line.

    The value is not validated here; the dispatching parent does that.
    """
    if result is None:
        wire: Any = ModelHookResponse.proceed().to_wire()
    elif isinstance(result, BaseModel):
        wire = result.model_dump(mode="json", exclude_none=True)
    else:
        wire = result
    return json.dumps(wire, separators=(",", ":"))


def _build_policy(flags: list[SandboxFlag], handler_ref: str) -> SandboxPolicy:
    implicit_read: list[str] = interpreter_paths()
    handler_file = module_file(handler_ref, Path.cwd())
    if handler_file is not None:
        implicit_read.append(str(handler_file))
    return SandboxPolicy(flags, base_dir=Path.cwd(), implicit_read=implicit_read)


def run_handler(
    handler_ref: str,
    flags: list[SandboxFlag],
    event: str | None,
    lifecycle: bool,
    stdin: str,
) -> str | None:
    """Confine the process, run the handler and return the verdict line.

    Returns None for lifecycle callbacks, which produce no verdict.
    """
    payload = None
    if not lifecycle:
        payload = validate_payload(EventType.parse(event or ""), stdin)

    policy = _build_policy(flags, handler_ref)
    # Variables loaded from .env files at import time are filtered again.
    allowed = policy.filter_environment(os.environ)
    for name in [n for n in os.environ if n not in allowed]:
        del os.environ[name]
    install_guard(policy)

    with contextlib.redirect_stdout(sys.stderr):
        target = load_target(handler_ref, Path.cwd())
        if lifecycle:
            call_handler(target)
            return None
        result = call_handler(target, payload)
    return _encode(result)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--allow", "allow", multiple=True, metavar="CAP[=SCOPE]", help="Grant a capability."
)
@click.option(
    "--deny", "deny", multiple=True, metavar="CAP[=SCOPE]", help="Withhold a capability."
)
@click.option("--event", "event", default=None, help="Event the payload belongs to.")
@click.option(
    "--lifecycle", is_flag=True, help="Run an on_load/on_unload callback instead."
)
@click.argument("handler_ref")
def main(
    allow: tuple[str, ...],
    deny: tuple[str, ...],
    event: str | None,
    lifecycle: bool,
    handler_ref: str,
) -> None:
    """Run one hook handler inside the sandbox."""
    if not lifecycle and not event:
        raise click.UsageError("--event is required unless --lifecycle is given")

    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    logger.debug(
        "handler_runner_start",
        extra={"handler_ref": handler_ref, "event": event, "lifecycle": lifecycle},
    )

    try:
        flags = [parse_flag_arg(value, allow=True) for value in allow]
        flags += [parse_flag_arg(value, allow=False) for value in deny]
        stdin = "" if lifecycle else sys.stdin.read()
        line = run_handler(handler_ref, flags, event, lifecycle, stdin)
    except Exception as e:
        click.echo(f"{type(e).__name__}: {e}", err=True)
        sys.exit(1)

    if line is not None:
        sys.stdout.write(line + "\n")
        sys.stdout.flush()


if __name__ == "__main__":
    main()
