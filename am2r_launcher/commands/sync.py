"""Repository sync and mirror commands."""

from __future__ import annotations

import click
from rich.table import Table

from am2r_launcher.commands.common import (
    get_context_objects,
    get_launcher,
    output_json,
    save_config,
    wait_with_progress,
)
from am2r_launcher.core.errors import LauncherError, SyncCancelledError


@click.command()
@click.option(
    "--mirror",
    "-m",
    type=str,
    help="Mirror URL to clone from (default: configured mirror)",
)
@click.pass_context
def sync(ctx: click.Context, mirror: str | None) -> None:
    """Download or update PatchData.

    Clones the patch repository when it is missing or corrupt and pulls
    the latest changes otherwise. Press Ctrl-C to cancel the transfer.
    """
    config, console, verbose, _ = get_context_objects(ctx)
    launcher = get_launcher(ctx)

    try:
        future = launcher.sync(mirror)
        updated = wait_with_progress(launcher, future, console, "Syncing PatchData")
    except SyncCancelledError as e:
        raise click.ClickException("Sync cancelled") from e
    except LauncherError as e:
        raise click.ClickException(str(e)) from e

    if updated:
        console.print("[green]PatchData is up to date[/green]")
    else:
        console.print("[yellow]Could not update PatchData, using the existing copy[/yellow]")

    if verbose:
        console.print(f"Next action: {launcher.refresh().primary.value}")


@click.group()
def mirrors() -> None:
    """Manage PatchData mirrors."""
    pass


@mirrors.command("list")
@click.pass_context
def list_mirrors(ctx: click.Context) -> None:
    """List the available mirrors."""
    config, console, _, _ = get_context_objects(ctx)
    urls = config.mirrors.mirrors.get(config.platform, [])
    current = config.current_mirror

    if config.output_format == "json":
        output_json({
            "mirrors": urls,
            "mirror_index": config.mirrors.mirror_index,
            "custom_mirror": config.mirrors.custom_mirror,
            "current": current,
        })
        return

    table = Table(title=f"Mirrors ({config.platform.value})", show_header=True)
    table.add_column("Index", justify="right", style="cyan")
    table.add_column("URL", style="magenta")
    table.add_column("Active", style="green")

    for index, url in enumerate(urls):
        table.add_row(str(index), url, "*" if url == current else "")
    if config.mirrors.custom_mirror:
        table.add_row("custom", config.mirrors.custom_mirror, "*")

    console.print(table)


@mirrors.command("use")
@click.argument("index", type=int, required=False)
@click.option("--custom", type=str, help="Use a custom mirror URL instead")
@click.pass_context
def use_mirror(ctx: click.Context, index: int | None, custom: str | None) -> None:
    """Select mirror INDEX or a custom mirror URL."""
    _, console, _, _ = get_context_objects(ctx)
    if index is None and custom is None:
        raise click.UsageError("Pass a mirror index or --custom URL")

    launcher = get_launcher(ctx)
    try:
        url = launcher.use_mirror(index=index, custom=custom)
    except LauncherError as e:
        raise click.ClickException(str(e)) from e

    save_config(ctx)
    console.print(f"[green]Using mirror {url}[/green]")
    if launcher.repository.pending_mirror:
        console.print("[yellow]The switch applies once the running sync finishes[/yellow]")
