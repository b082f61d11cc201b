"""Launcher status command."""

from __future__ import annotations

import click
from rich.table import Table

from am2r_launcher.commands.common import get_context_objects, get_launcher, output_json
from am2r_launcher.core.types import WorkingTreeStatus


@click.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the launcher state and the next action."""
    config, console, verbose, _ = get_context_objects(ctx)
    launcher = get_launcher(ctx)

    state = launcher.refresh()
    tree_status = launcher.repository.inspect(config.patch_data_dir)
    profile = launcher.selected_profile()
    base_asset_valid = launcher.base_asset.is_valid()

    info = {
        "platform": config.platform.value,
        "root": str(config.root_dir),
        "patch_data": tree_status.value,
        "base_asset": "valid" if base_asset_valid else "missing",
        "selected_profile": profile.name if profile else None,
        "installed": launcher.catalog.is_installed(profile) if profile else False,
        "action": state.primary.value,
        "package_enabled": state.package_enabled,
        "package_disabled_reason": state.package_disabled_reason,
        "busy": launcher.state_machine.is_busy,
        "mirror": config.current_mirror,
    }

    if config.output_format == "json":
        output_json(info)
        return

    table = Table(title="AM2R Launcher Status", show_header=True)
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="magenta")

    tree_style = "green" if tree_status == WorkingTreeStatus.VALID else "yellow"
    table.add_row("Platform", config.platform.value)
    table.add_row("Root", str(config.root_dir))
    table.add_row("PatchData", f"[{tree_style}]{tree_status.value}[/{tree_style}]")
    table.add_row("Base archive", "[green]valid[/green]" if base_asset_valid else "[yellow]missing[/yellow]")
    table.add_row("Profile", profile.name if profile else "-")
    table.add_row("Next action", state.primary.value)
    if state.package_enabled:
        table.add_row("Android package", "available")
    else:
        table.add_row("Android package", f"[dim]{state.package_disabled_reason}[/dim]")
    if verbose:
        table.add_row("Mirror", config.current_mirror)

    console.print(table)

    if launcher.catalog.skipped:
        console.print(f"[yellow]{len(launcher.catalog.skipped)} Mods entries were skipped[/yellow]")
