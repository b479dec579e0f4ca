# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""CLI entry point for claude-hooks.

Commands:
    claude-hooks run MANIFEST EVENT [--payload JSON]
        Dispatch one event through the manifest's plugins and print the
        verdict as a single JSON line on stdout. The payload is read from
        stdin when --payload is omitted. This is the command the assistant's
        settings document binds to each event.

    claude-hooks init [--scope user|project|local] [--force]
        Create a manifest and an example handler module under .claude/ and
        merge the hook bindings into the assistant's settings document.

    claude-hooks list MANIFEST
        Show the manifest's plugins, handled events and sandbox flags.

Exit codes (run):
    0 - a verdict was printed, whatever it is
    1 - the manifest could not be loaded
    2 - invalid invocation (unknown event type)

Stdout carries only the verdict line; diagnostics go to stderr.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import NoReturn

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from claudehooks import __version__
from claudehooks.cli.settings_file import (
    SettingsScope,
    generate_hooks_config,
    read_settings,
    resolve_scope,
    smart_merge_settings,
    write_settings,
)
from claudehooks.cli.templates import (
    HANDLER_FILE_NAME,
    HANDLER_TEMPLATE,
    MANIFEST_TEMPLATE,
)
from claudehooks.config import get_settings
from claudehooks.contracts.loader import ManifestLoader
from claudehooks.hooks.exceptions import ConfigurationError, ManifestLoadError
from claudehooks.hooks.schemas import EventType

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Console helpers
# ---------------------------------------------------------------------------

console = Console()
error_console = Console(stderr=True)


def _configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, get_settings().log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _load_failed(error: ManifestLoadError) -> NoReturn:
    error_console.print(f"[red]error:[/red] {escape(str(error))}")
    sys.exit(1)


def _write_template(path: Path, content: str, force: bool) -> None:
    if path.exists() and not force:
        console.print(f"{path.name} already exists at: {path}")
        return
    path.write_text(content, encoding="utf-8")
    console.print(f"Created {path.name} at: {path}")


# =============================================================================
# CLI Commands
# =============================================================================


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version and exit.")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """Typed, sandboxed lifecycle hooks for AI coding assistants.

    Examples:

        # Set up hooks for the current project
        claude-hooks init

        # Dispatch an event by hand
        echo '{"context": {...}}' | claude-hooks run .claude/hooks.yaml SessionStart

    """
    _configure_logging()
    if version:
        click.echo(f"claude-hooks {__version__}")
        ctx.exit(0)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command("run")
@click.argument("manifest", type=click.Path(path_type=Path))
@click.argument("event")
@click.option(
    "--payload", default=None, help="Event payload JSON. Read from stdin if omitted."
)
def cmd_run(manifest: Path, event: str, payload: str | None) -> None:
    """Dispatch EVENT through the plugins declared in MANIFEST."""
    try:
        event_type = EventType.parse(event)
    except ConfigurationError as e:
        raise click.BadParameter(str(e), param_hint="EVENT") from e

    try:
        context = ManifestLoader(manifest).build_context()
    except ManifestLoadError as e:
        _load_failed(e)

    raw = payload if payload is not None else click.get_text_stream("stdin").read()
    result = context.dispatch(event_type, raw)
    logger.debug(
        "run_complete",
        extra={
            "event_type": event_type.value,
            "state": result.state.value,
            "action": result.verdict.action.value,
        },
    )
    click.echo(result.verdict.to_json_line())


@cli.command("init")
@click.option(
    "--scope",
    type=click.Choice([s.value for s in SettingsScope]),
    default=SettingsScope.PROJECT.value,
    show_default=True,
    help="Which settings document to install the bindings into.",
)
@click.option(
    "--force", is_flag=True, help="Overwrite an existing manifest and example handler."
)
def cmd_init(scope: str, force: bool) -> None:
    """Create a manifest and bind it to every assistant event."""
    settings = get_settings()
    cwd = Path.cwd()
    target = resolve_scope(scope, cwd, Path.home(), settings.manifest_name)
    target.claude_dir.mkdir(parents=True, exist_ok=True)

    _write_template(target.manifest_file, MANIFEST_TEMPLATE, force)
    _write_template(target.claude_dir / HANDLER_FILE_NAME, HANDLER_TEMPLATE, force)

    try:
        existing = read_settings(target.settings_file)
    except ValueError as e:
        error_console.print(
            f"[yellow]warning:[/yellow] could not parse existing settings, "
            f"replacing them: {escape(str(e))}"
        )
        existing = {}

    generated = generate_hooks_config(
        settings.command_name, target.manifest_reference(cwd)
    )
    merged = smart_merge_settings(existing, generated, settings.command_name)
    write_settings(target.settings_file, merged)
    console.print(f"Updated hooks configuration in: {target.settings_file}")

    console.print()
    console.print(f"[green]Hooks initialized[/green] ({target.description})")
    console.print("To test your hooks:")
    console.print(
        f"  {settings.command_name} run {target.manifest_reference(cwd)} SessionStart"
        " --payload '{\"context\": {\"session_id\": \"test\", "
        "\"working_directory\": \".\"}}'",
        markup=False,
    )


@cli.command("list")
@click.argument("manifest", type=click.Path(path_type=Path))
def cmd_list(manifest: Path) -> None:
    """Show the plugins declared in MANIFEST."""
    try:
        plugins = ManifestLoader(manifest).load_plugins()
    except ManifestLoadError as e:
        _load_failed(e)

    if not plugins:
        console.print(f"No plugins declared in {manifest}")
        return

    table = Table(title=str(manifest))
    table.add_column("#", justify="right")
    table.add_column("Plugin", style="bold")
    table.add_column("Version")
    table.add_column("Events")
    table.add_column("Sandbox flags")
    table.add_column("Timeout")
    for position, plugin in enumerate(plugins):
        flags = plugin.sandbox_flags
        table.add_row(
            str(position),
            escape(plugin.name),
            escape(plugin.version or "-"),
            ", ".join(e.value for e in plugin.events) or "-",
            escape(" ".join(str(f) for f in flags)) if flags else "(none)",
            f"{plugin.timeout:g}s" if plugin.timeout is not None else "default",
        )
    console.print(table)


# =============================================================================
# Module Entry Point
# =============================================================================


def main() -> None:
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
