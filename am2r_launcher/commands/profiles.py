"""Profile commands: listing, installing, playing and packaging."""

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
from am2r_launcher.core.errors import InstallError, LauncherError


@click.group()
def profiles() -> None:
    """Manage installed and available profiles."""
    pass


@profiles.command("list")
@click.pass_context
def list_profiles(ctx: click.Context) -> None:
    """List discovered profiles."""
    config, console, verbose, _ = get_context_objects(ctx)
    launcher = get_launcher(ctx)

    discovered = launcher.catalog.discover()
    selected = launcher.selected_profile()

    if config.output_format == "json":
        output_json([
            {
                **profile.model_dump(),
                "content_path": profile.content_path,
                "installed": launcher.catalog.is_installed(profile),
                "selected": selected is not None and profile.name == selected.name,
            }
            for profile in discovered
        ])
        return

    if not discovered:
        console.print("[yellow]No profiles found, run 'am2r-launcher sync' first[/yellow]")
        return

    table = Table(title="Profiles", show_header=True)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Version", style="yellow")
    table.add_column("Author", style="green")
    table.add_column("Installed", justify="center")
    table.add_column("Android", justify="center")
    if verbose:
        table.add_column("Source", style="dim")

    for profile in discovered:
        name = profile.name
        if selected is not None and profile.name == selected.name:
            name = f"[bold]{name}[/bold] *"
        if not profile.installable:
            name = f"{name} [dim](archived)[/dim]"
        row = [
            name,
            profile.version,
            profile.author,
            "yes" if launcher.catalog.is_installed(profile) else "",
            "yes" if profile.supports_android else "",
        ]
        if verbose:
            row.append(profile.content_path or "")
        table.add_row(*row)

    console.print(table)

    for entry in launcher.catalog.skipped:
        console.print(f"[yellow]Skipped {entry.path}: {entry.reason}[/yellow]")


@profiles.command("select")
@click.argument("name")
@click.pass_context
def select_profile(ctx: click.Context, name: str) -> None:
    """Select profile NAME for install and play."""
    _, console, _, _ = get_context_objects(ctx)
    launcher = get_launcher(ctx)
    try:
        launcher.select_profile(name)
    except LauncherError as e:
        raise click.ClickException(str(e)) from e
    save_config(ctx)
    console.print(f"[green]Selected {name}[/green]")


@profiles.command("delete")
@click.argument("name")
@click.confirmation_option(prompt="Delete this profile and its installation?")
@click.pass_context
def delete_profile(ctx: click.Context, name: str) -> None:
    """Delete profile NAME from Mods and Profiles."""
    _, console, _, _ = get_context_objects(ctx)
    launcher = get_launcher(ctx)
    try:
        launcher.delete_profile(name)
    except LauncherError as e:
        raise click.ClickException(str(e)) from e
    console.print(f"[green]Deleted {name}[/green]")


@profiles.command("archive")
@click.argument("name")
@click.pass_context
def archive_profile(ctx: click.Context, name: str) -> None:
    """Archive profile NAME as a versioned, non-installable copy."""
    _, console, _, _ = get_context_objects(ctx)
    launcher = get_launcher(ctx)
    try:
        archived = launcher.archive_profile(name)
    except LauncherError as e:
        raise click.ClickException(str(e)) from e
    console.print(f"[green]Archived {name} as {archived.name}[/green]")


@click.command()
@click.argument("name", required=False)
@click.option(
    "--hq-music/--no-hq-music",
    default=None,
    help="Install high quality music (default: from config)",
)
@click.pass_context
def install(ctx: click.Context, name: str | None, hq_music: bool | None) -> None:
    """Install profile NAME, or the selected profile."""
    _, console, _, _ = get_context_objects(ctx)
    launcher = get_launcher(ctx)

    try:
        future = launcher.install(name, use_hq_music=hq_music)
        install_dir = wait_with_progress(launcher, future, console, "Installing")
    except InstallError as e:
        raise click.ClickException(f"{e} (step: {e.step.value})") from e
    except LauncherError as e:
        raise click.ClickException(str(e)) from e

    console.print(f"[green]Installed to {install_dir}[/green]")


@click.command()
@click.argument("name", required=False)
@click.option(
    "--log/--no-log",
    "use_logging",
    default=None,
    help="Write a game log (default: from config)",
)
@click.pass_context
def play(ctx: click.Context, name: str | None, use_logging: bool | None) -> None:
    """Start profile NAME, or the selected profile."""
    _, console, verbose, _ = get_context_objects(ctx)
    launcher = get_launcher(ctx)

    try:
        future = launcher.play(name, use_logging=use_logging)
        console.print("[cyan]Game running...[/cyan]")
        result = future.result()
    except LauncherError as e:
        raise click.ClickException(str(e)) from e

    if verbose or result.exit_code != 0:
        console.print(f"Game exited with code {result.exit_code}")


@click.command()
@click.argument("name", required=False)
@click.option(
    "--hq-music/--no-hq-music",
    default=None,
    help="Package high quality music (default: from config)",
)
@click.pass_context
def package(ctx: click.Context, name: str | None, hq_music: bool | None) -> None:
    """Create an Android APK for profile NAME, or the selected profile."""
    _, console, _, _ = get_context_objects(ctx)
    launcher = get_launcher(ctx)

    try:
        future = launcher.package(name, use_hq_music=hq_music)
        apk = wait_with_progress(launcher, future, console, "Creating APK")
    except LauncherError as e:
        raise click.ClickException(str(e)) from e

    if apk is None:
        console.print("[yellow]This profile does not support Android[/yellow]")
    else:
        console.print(f"[green]Created {apk}[/green]")
