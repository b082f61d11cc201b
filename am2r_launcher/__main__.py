"""Main entry point for am2r-launcher CLI."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import click
import structlog
from pydantic import ValidationError
from rich.console import Console

from am2r_launcher import __version__
from am2r_launcher.commands.asset import asset
from am2r_launcher.commands.profiles import install, package, play, profiles
from am2r_launcher.commands.status import status
from am2r_launcher.commands.sync import mirrors, sync
from am2r_launcher.core.config import LauncherConfig

# Configure structured logging
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


@click.group()
@click.version_option(version=__version__, prog_name="am2r-launcher")
@click.option(
    "--config",
    "-c",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Configuration file path",
)
@click.option(
    "--root",
    "-r",
    type=click.Path(file_okay=False, path_type=Path),
    help="Launcher data directory (overrides the configured root)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", "-d", is_flag=True, help="Enable debug output")
@click.option(
    "--output",
    "-o",
    type=click.Choice(["rich", "json", "plain"], case_sensitive=False),
    default="rich",
    help="Output format",
)
@click.pass_context
def main(
    ctx: click.Context,
    config: Path | None,
    root: Path | None,
    verbose: bool,
    debug: bool,
    output: str,
) -> None:
    """Install, update and play AM2R profiles."""
    ctx.ensure_object(dict)

    # Load configuration
    try:
        launcher_config = LauncherConfig.load(config)
    except (OSError, ValueError, ValidationError) as e:
        logger.error("config_load_failed", error=str(e))
        sys.exit(1)

    # Override config with CLI options
    if root is not None:
        launcher_config.root_dir = root
    if verbose or debug:
        launcher_config.log_level = "DEBUG" if debug else "INFO"
    if output:
        launcher_config.output_format = output.lower()

    logging.basicConfig(
        level=getattr(logging, launcher_config.log_level),
        format="%(message)s",
        stream=sys.stderr,
    )

    # Create console for rich output
    console = Console(
        force_terminal=output == "rich",
        no_color=output != "rich",
        width=None if output == "rich" else 120,
    )

    # Store config and console in context for subcommands
    ctx.obj["config"] = launcher_config
    ctx.obj["config_file"] = config
    ctx.obj["console"] = console
    ctx.obj["verbose"] = verbose or debug
    ctx.obj["debug"] = debug

    logger.debug("cli_initialized", config=launcher_config.model_dump(mode="json"))


@main.command()
@click.pass_context
def version(ctx: click.Context) -> None:
    """Show version information."""
    console: Console = ctx.obj["console"]
    config: LauncherConfig = ctx.obj["config"]

    if config.output_format == "json":
        import json

        info = {
            "name": "am2r-launcher",
            "version": __version__,
            "python_version": sys.version.replace("\n", " "),
            "platform": config.platform.value,
        }
        # Use regular print for JSON to avoid Rich formatting
        print(json.dumps(info, indent=2))
    else:
        console.print(f"am2r-launcher {__version__}")
        if ctx.obj["verbose"]:
            console.print(f"Python {sys.version}")
            console.print(f"Platform: {config.platform.value}")


# Register commands
main.add_command(status)
main.add_command(sync)
main.add_command(mirrors)
main.add_command(asset)
main.add_command(profiles)
main.add_command(install)
main.add_command(play)
main.add_command(package)


def handle_exception(exc_type: type[BaseException], exc_value: BaseException, exc_traceback: Any) -> None:
    """Handle uncaught exceptions."""
    if issubclass(exc_type, KeyboardInterrupt):
        logger.info("operation_cancelled_by_user")
        sys.exit(1)

    logger.error(
        "uncaught_exception",
        exc_info=(exc_type, exc_value, exc_traceback),
    )
    sys.exit(1)


if __name__ == "__main__":
    # Install exception handler
    sys.excepthook = handle_exception
    main()
