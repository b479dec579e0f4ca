# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Loading and calling handler code.

Shared by both sides of the isolation boundary: the dispatcher uses
``call_handler`` for trusted in-process callables, and the child runner uses
``load_target`` + ``call_handler`` for handler references after its guard is
installed.

Handler references have the form ``<module>:<attribute>`` where ``<module>``
is either a file path (``hooks/guard.py``) or a dotted module name
(``mypkg.hooks``), and ``<attribute>`` may be dotted (``bundle.on_stop``).
"""

from __future__ import annotations

import asyncio
import hashlib
import importlib
import importlib.util
import inspect
import os
import sys
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from functools import reduce
from pathlib import Path
from typing import Any

from claudehooks.hooks.exceptions import ConfigurationError, HandlerExecutionError

__all__ = [
    "split_ref",
    "is_file_module",
    "module_file",
    "load_target",
    "call_handler",
]


def split_ref(ref: str) -> tuple[str, str]:
    """Split a handler reference into its module and attribute parts.

    Raises:
        ConfigurationError: If the reference has no ``:`` separator or either
            side is empty.

    Example:
        >>> split_ref("hooks/guard.py:on_pre_tool_use")
        ('hooks/guard.py', 'on_pre_tool_use')
    """
    module, sep, attr = ref.rpartition(":")
    if not sep or not module or not attr:
        raise ConfigurationError(
            f"Invalid handler reference {ref!r}: expected '<module>:<attribute>'"
        )
    return module, attr


def is_file_module(module: str) -> bool:
    """Whether the module part of a reference names a file rather than a package."""
    return module.endswith(".py") or "/" in module or os.sep in module


def module_file(ref: str, base_dir: Path | None = None) -> Path | None:
    """Absolute path of the file a reference loads, or None for dotted modules."""
    module, _ = split_ref(ref)
    if not is_file_module(module):
        return None
    path = Path(module)
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    return path.resolve()


def _load_file_module(path: Path) -> Any:
    if not path.is_file():
        raise ConfigurationError(f"Handler module not found: {path}")
    digest = hashlib.sha1(str(path).encode("utf-8")).hexdigest()[:12]
    name = f"claudehooks_handler_{path.stem}_{digest}"
    if name in sys.modules:
        return sys.modules[name]
    spec = importlib.util.spec_from_file_location(name, path)
    if spec is None or spec.loader is None:
        raise ConfigurationError(f"Cannot load handler module: {path}")
    module = importlib.util.module_from_spec(spec)
    # Registered before exec so dataclasses/pickle inside the module resolve it.
    sys.modules[name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(name, None)
        raise
    return module


def load_target(ref: str, base_dir: Path | None = None) -> Callable[..., Any]:
    """Import the module of a handler reference and return the callable.

    Args:
        ref: ``<module>:<attribute>`` reference.
        base_dir: Directory relative file modules are resolved against.
            Defaults to the current working directory.

    Raises:
        ConfigurationError: If the reference is malformed, the module cannot
            be found, or the attribute is missing or not callable.
    """
    module_name, attr = split_ref(ref)
    path = module_file(ref, base_dir)
    if path is not None:
        module = _load_file_module(path)
    else:
        try:
            module = importlib.import_module(module_name)
        except ModuleNotFoundError as e:
            raise ConfigurationError(f"Handler module not found: {module_name}") from e

    try:
        target = reduce(getattr, attr.split("."), module)
    except AttributeError as e:
        raise ConfigurationError(
            f"Handler {attr!r} not found in {module_name}"
        ) from e
    if not callable(target):
        raise ConfigurationError(f"Handler {ref!r} is not callable")
    return target


def call_handler(
    func: Callable[..., Any], *args: Any, timeout: float | None = None
) -> Any:
    """Call a handler, driving it to completion if it returns an awaitable.

    Coroutine handlers run on a fresh event loop with ``asyncio.wait_for``.
    When the caller is itself inside a running loop, that fresh loop runs on
    a worker thread and the caller blocks until it finishes. Synchronous
    handlers cannot be interrupted and ignore ``timeout``.

    Raises:
        HandlerExecutionError: If an awaitable handler exceeds ``timeout``.
        Exception: Whatever the handler itself raises.
    """
    result = func(*args)
    if not inspect.isawaitable(result):
        return result

    async def wait() -> Any:
        return await asyncio.wait_for(result, timeout=timeout)

    try:
        asyncio.get_running_loop()
    except RuntimeError:
        in_loop = False
    else:
        in_loop = True

    try:
        if not in_loop:
            return asyncio.run(wait())
        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="claudehooks-handler") as pool:
            return pool.submit(asyncio.run, wait()).result()
    except TimeoutError as e:
        raise HandlerExecutionError(f"timed out after {timeout:g}s") from e
