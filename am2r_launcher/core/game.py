"""Starting installed profiles."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import structlog

from am2r_launcher import __version__
from am2r_launcher.core.config import LauncherConfig
from am2r_launcher.core.errors import LauncherError
from am2r_launcher.core.platforms import PlatformStrategy
from am2r_launcher.core.process import ProcessResult, ProcessRunner
from am2r_launcher.core.utils import rollover_file
from am2r_launcher.formats.profile_xml import ProfileDescriptor

logger = structlog.get_logger()

MAX_GAME_LOGS = 5


class GameRunner:
    """Runs an installed profile and waits for it to exit."""

    def __init__(
        self,
        config: LauncherConfig,
        strategy: PlatformStrategy,
        runner: ProcessRunner | None = None,
    ):
        self.config = config
        self.strategy = strategy
        self.runner = runner or ProcessRunner()

    def log_file(self, profile: ProfileDescriptor) -> Path:
        save_dir = self.strategy.expand_save_location(profile.save_location)
        return save_dir / "logs" / f"{profile.name}.txt"

    def run(self, profile: ProfileDescriptor, use_logging: bool = False) -> ProcessResult:
        """Start a profile and block until the game exits.

        Raises:
            LauncherError: If the profile is not installed
            ToolMissingError: If the game executable cannot be started
        """
        install_dir = self.config.profiles_dir / profile.name
        if not self.strategy.is_installed(install_dir):
            raise LauncherError(f"Profile {profile.name} is not installed")

        self.strategy.prepare_launch(self.strategy.expand_save_location(profile.save_location))

        log_file = self._prepare_log(profile) if use_logging else None
        command = self.strategy.launch_command(install_dir, log_file)

        logger.info("game_launch", name=profile.name, cwd=str(install_dir))
        result = self.runner.run(command.executable, command.args, cwd=install_dir)

        if command.captures_output and log_file is not None:
            with open(log_file, "a", encoding="utf-8") as f:
                for output in (result.stdout, result.stderr):
                    if output:
                        f.write(output if output.endswith("\n") else output + "\n")

        logger.info("game_exited", name=profile.name, exit_code=result.exit_code)
        return result

    def _prepare_log(self, profile: ProfileDescriptor) -> Path:
        log_file = self.log_file(profile)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        if log_file.exists():
            rollover_file(log_file, MAX_GAME_LOGS)

        date = datetime.now().strftime("%Y.%m.%d %H-%M-%S")
        log_file.write_text(f"AM2RLauncher {__version__} log generated at {date}\n", encoding="utf-8")
        logger.debug("game_log_prepared", path=str(log_file))
        return log_file
