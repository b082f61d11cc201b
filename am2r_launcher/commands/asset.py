"""Base archive commands."""

from __future__ import annotations

from pathlib import Path

import click

from am2r_launcher.commands.common import get_context_objects, get_launcher, output_json
from am2r_launcher.core.errors import InvalidBaseAssetError, LauncherError
from am2r_launcher.core.types import ValidationResult
from am2r_launcher.core.utils import compute_file_md5, format_size

_MESSAGES = {
    ValidationResult.VALID: "AM2R 1.1 archive is valid",
    ValidationResult.MISSING_EXECUTABLE: "AM2R.exe is missing from the archive",
    ValidationResult.EXECUTABLE_IN_SUBDIRECTORY: (
        "The game is inside a subfolder; zip the game files directly"
    ),
    ValidationResult.INVALID_EXECUTABLE_DIGEST: "AM2R.exe is not the AM2R 1.1 executable",
    ValidationResult.MISSING_OR_INVALID_PRIMARY_DATA_FILE: "data.win is missing or modified",
    ValidationResult.MISSING_OR_INVALID_AUXILIARY_LIBRARY: "D3DX9_43.dll is missing or modified",
}


@click.group()
def asset() -> None:
    """Manage the AM2R 1.1 base archive."""
    pass


@asset.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def select(ctx: click.Context, path: Path) -> None:
    """Validate PATH and use it as the base archive."""
    config, console, _, _ = get_context_objects(ctx)
    launcher = get_launcher(ctx)

    try:
        launcher.import_base_asset(path)
    except InvalidBaseAssetError as e:
        message = _MESSAGES.get(ValidationResult(e.result), str(e)) if e.result else str(e)
        raise click.ClickException(message) from e
    except LauncherError as e:
        raise click.ClickException(str(e)) from e

    console.print(f"[green]{_MESSAGES[ValidationResult.VALID]}, copied to {config.base_asset_path}[/green]")


@asset.command()
@click.argument(
    "path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=False,
)
@click.pass_context
def check(ctx: click.Context, path: Path | None) -> None:
    """Validate PATH, or the installed base archive, without changing anything."""
    config, console, verbose, _ = get_context_objects(ctx)
    launcher = get_launcher(ctx)

    target = path or config.base_asset_path
    if not target.is_file():
        raise click.ClickException(f"No base archive at {target}")

    result = launcher.base_asset.validator.validate(target)

    if config.output_format == "json":
        output_json({
            "path": str(target),
            "result": result.value,
            "md5": compute_file_md5(target),
            "size": target.stat().st_size,
        })
    else:
        style = "green" if result == ValidationResult.VALID else "red"
        console.print(f"[{style}]{_MESSAGES[result]}[/{style}]")
        if verbose:
            console.print(f"MD5: {compute_file_md5(target)}")
            console.print(f"Size: {format_size(target.stat().st_size)}")

    if result != ValidationResult.VALID:
        ctx.exit(1)
