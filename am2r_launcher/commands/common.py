"""Helpers shared by CLI commands."""

from __future__ import annotations

import json
from concurrent.futures import Future, wait
from typing import Any, TypeVar

import click
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from am2r_launcher.core.config import LauncherConfig
from am2r_launcher.core.launcher import Launcher

T = TypeVar("T")


def get_context_objects(ctx: click.Context) -> tuple[LauncherConfig, Console, bool, bool]:
    """Extract common context objects."""
    config: LauncherConfig = ctx.obj["config"]
    console: Console = ctx.obj["console"]
    verbose: bool = ctx.obj.get("verbose", False)
    debug: bool = ctx.obj.get("debug", False)
    return config, console, verbose, debug


def get_launcher(ctx: click.Context) -> Launcher:
    """Get the launcher for this invocation, creating it on first use."""
    launcher: Launcher | None = ctx.obj.get("launcher")
    if launcher is None:
        launcher = Launcher(ctx.obj["config"])
        ctx.obj["launcher"] = launcher
        ctx.call_on_close(launcher.shutdown)
    return launcher


def save_config(ctx: click.Context) -> None:
    """Persist the configuration to the file it was loaded from."""
    config: LauncherConfig = ctx.obj["config"]
    config.save(ctx.obj.get("config_file"))


def output_json(data: dict[str, Any] | list[Any]) -> None:
    """Output data as JSON."""
    print(json.dumps(data, indent=2, default=str))


def wait_with_progress(
    launcher: Launcher,
    future: Future[T],
    console: Console,
    description: str,
) -> T:
    """Render worker progress until an operation finishes.

    Ctrl-C cancels a running sync. Installs and packaging cannot be
    interrupted, so the interrupt is reported and waiting continues.
    """
    with Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TextColumn("{task.fields[status]}"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task(description, total=100, status="")

        def _apply_events() -> None:
            for event in launcher.progress.drain():
                progress.update(task, completed=event.percent, status=event.status or "")

        while not future.done():
            try:
                _apply_events()
                wait([future], timeout=0.1)
            except KeyboardInterrupt:
                if launcher.request_cancel():
                    console.print("[yellow]Cancelling...[/yellow]")
                elif not launcher.can_close():
                    console.print(
                        "[yellow]This operation cannot be interrupted, "
                        "waiting for it to finish[/yellow]"
                    )
                else:
                    raise
        _apply_events()

    return future.result()
