"""Per-platform installation strategies.

Each supported platform lays out an installed profile differently:

- Windows: the game files sit directly in ``Profiles/<name>/``
- Linux: assets go to ``assets/`` and are packaged into ``AM2R.AppImage``
- macOS: the profile is an ``AM2R.app`` bundle with Frameworks, MacOS
  and Resources directories

The strategy is chosen once from the configured platform and handles the
layout, the patch set, post-processing, the installed marker and the
launch command.
"""

from __future__ import annotations

import os
import re
import shutil
import stat
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import structlog

from am2r_launcher.core.errors import ToolExecutionError
from am2r_launcher.core.patcher import BUNDLED_XDELTA, SYSTEM_XDELTA, XdeltaPatcher
from am2r_launcher.core.process import ProcessRunner
from am2r_launcher.core.types import Platform
from am2r_launcher.core.utils import copy_tree, delete_directory, lowercase_files
from am2r_launcher.formats.profile_xml import ProfileDescriptor

logger = structlog.get_logger()

# Entries of the unpatched base archive
BASE_DATA_FILE = "data.win"
BASE_EXECUTABLE = "AM2R.exe"
BASE_LIBRARY = "D3DX9_43.dll"

APPIMAGE_NAME = "AM2R.AppImage"
APPIMAGE_TOOL_OUTPUT = "AM2R-x86_64.AppImage"
APPDIR_NAME = "AM2R.AppDir"
DEFAULT_LINUX_RUNNER = "runner"
MAC_BUNDLE = "AM2R.app"
LINUX_DEFAULT_GAME_CONFIG = '[Screen]\nFullscreen="0"\nScale="3"'

_EXEC_LINE = re.compile(r"^Exec=(?P<exe>.*)$", re.MULTILINE)
_WINDOWS_ENV_VAR = re.compile(r"%(?P<name>[^%]+)%")

ProgressReport = Callable[[int], None]


@dataclass(frozen=True)
class GameFileNames:
    """Names of the patched data file and executable on a platform."""

    data_file: str
    executable: str


@dataclass(frozen=True)
class LaunchCommand:
    """How to start an installed profile.

    Attributes:
        executable: Program to run
        args: Argument vector
        captures_output: Whether stdout and stderr must be written to the log by the caller
    """

    executable: str | Path
    args: list[str]
    captures_output: bool = False


class PlatformStrategy(ABC):
    """Installation behaviour of one target platform."""

    platform: Platform
    # Progress reported once patching finishes
    patch_progress = 66

    def __init__(self, root: Path, build_appimage: bool = True):
        self.root = root
        self.build_appimage = build_appimage

    @property
    def patch_data_dir(self) -> Path:
        return self.root / "PatchData"

    @property
    def template_dir(self) -> Path:
        return self.patch_data_dir / "data"

    def xdelta_tool(self) -> str | Path:
        """xdelta3 executable used on this platform."""
        return SYSTEM_XDELTA

    @abstractmethod
    def prepare_layout(self, install_dir: Path) -> Path:
        """Create the installation skeleton and return the asset root."""
        ...

    @abstractmethod
    def expected_names(self) -> GameFileNames:
        """Resolve the patched data file and executable names."""
        ...

    @abstractmethod
    def patch(
        self,
        patcher: XdeltaPatcher,
        install_dir: Path,
        asset_root: Path,
        content_dir: Path,
        names: GameFileNames,
        profile: ProfileDescriptor,
    ) -> None:
        """Apply the profile's patch set to an extracted base archive."""
        ...

    @abstractmethod
    def post_process(
        self,
        runner: ProcessRunner,
        install_dir: Path,
        asset_root: Path,
        content_dir: Path,
        names: GameFileNames,
        report: ProgressReport,
    ) -> None:
        """Finish the platform-specific layout after all files are in place."""
        ...

    @abstractmethod
    def installed_marker(self, install_dir: Path) -> Path:
        """Path whose existence means the profile is installed."""
        ...

    @abstractmethod
    def launch_command(self, install_dir: Path, log_file: Path | None) -> LaunchCommand:
        """Build the command that starts an installed profile."""
        ...

    def is_installed(self, install_dir: Path) -> bool:
        return self.installed_marker(install_dir).is_file()

    def expand_save_location(self, save_location: str) -> Path:
        """Expand the home directory in a save location."""
        return Path(save_location.replace("~", str(Path.home())))

    def prepare_launch(self, save_dir: Path) -> None:
        """Prepare the save directory before the game starts."""


class WindowsPlatform(PlatformStrategy):
    """Windows layout: executable and data next to each other."""

    platform = Platform.WINDOWS

    def prepare_layout(self, install_dir: Path) -> Path:
        install_dir.mkdir(parents=True, exist_ok=True)
        return install_dir

    def expected_names(self) -> GameFileNames:
        return GameFileNames(data_file=BASE_DATA_FILE, executable=BASE_EXECUTABLE)

    def patch(
        self,
        patcher: XdeltaPatcher,
        install_dir: Path,
        asset_root: Path,
        content_dir: Path,
        names: GameFileNames,
        profile: ProfileDescriptor,
    ) -> None:
        data_file = asset_root / BASE_DATA_FILE
        if profile.uses_yyc:
            # YYC builds compile the data into the executable
            patcher.apply(data_file, content_dir / "AM2R.xdelta", asset_root / names.executable)
            data_file.unlink()
        else:
            patcher.apply(data_file, content_dir / "data.xdelta", asset_root / names.data_file)
            patcher.apply(
                asset_root / BASE_EXECUTABLE,
                content_dir / "AM2R.xdelta",
                asset_root / names.executable,
            )

    def post_process(
        self,
        runner: ProcessRunner,
        install_dir: Path,
        asset_root: Path,
        content_dir: Path,
        names: GameFileNames,
        report: ProgressReport,
    ) -> None:
        return None

    def xdelta_tool(self) -> str | Path:
        return self.root / BUNDLED_XDELTA

    def installed_marker(self, install_dir: Path) -> Path:
        return install_dir / BASE_EXECUTABLE

    def launch_command(self, install_dir: Path, log_file: Path | None) -> LaunchCommand:
        args: list[str] = []
        if log_file is not None:
            args = ["-debugoutput", str(log_file), "-output", str(log_file)]
        return LaunchCommand(install_dir / BASE_EXECUTABLE, args)

    def expand_save_location(self, save_location: str) -> Path:
        """Expand %VARIABLE% references in a save location."""

        def _lookup(match: re.Match[str]) -> str:
            name = match.group("name")
            return os.environ.get(name) or os.environ.get(name.upper()) or match.group(0)

        return Path(_WINDOWS_ENV_VAR.sub(_lookup, save_location))


class _UnixPlatform(PlatformStrategy):
    """Shared patching for Linux and macOS.

    YYC and VM builds are patched the same way on Unix: data.win becomes
    the platform data file and AM2R.exe becomes the native runner.
    """

    def patch(
        self,
        patcher: XdeltaPatcher,
        install_dir: Path,
        asset_root: Path,
        content_dir: Path,
        names: GameFileNames,
        profile: ProfileDescriptor,
    ) -> None:
        patcher.apply(
            asset_root / BASE_DATA_FILE,
            content_dir / "game.xdelta",
            asset_root / names.data_file,
        )
        runner = asset_root / names.executable
        patcher.apply(asset_root / BASE_EXECUTABLE, content_dir / "AM2R.xdelta", runner)
        runner.chmod(runner.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

        for name in (BASE_DATA_FILE, BASE_EXECUTABLE, BASE_LIBRARY):
            (asset_root / name).unlink(missing_ok=True)

        destination = self.runner_path(install_dir, names)
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(runner, destination)

    @abstractmethod
    def runner_path(self, install_dir: Path, names: GameFileNames) -> Path:
        """Final location of the native runner."""
        ...


class LinuxPlatform(_UnixPlatform):
    """Linux layout: assets directory packaged into an AppImage."""

    platform = Platform.LINUX
    # AppImage creation takes a while, leave room for it
    patch_progress = 44

    @property
    def desktop_file(self) -> Path:
        return self.template_dir / APPDIR_NAME / "AM2R.desktop"

    def prepare_layout(self, install_dir: Path) -> Path:
        asset_root = install_dir / "assets"
        asset_root.mkdir(parents=True, exist_ok=True)
        return asset_root

    def expected_names(self) -> GameFileNames:
        """Read the runner name from the AppImage desktop entry.

        Raises:
            FileNotFoundError: If the desktop entry is missing
            ValueError: If it has no Exec line
        """
        match = _EXEC_LINE.search(self.desktop_file.read_text(encoding="utf-8"))
        if match is None or not match.group("exe").strip():
            raise ValueError(f"No Exec entry in {self.desktop_file}")
        executable = match.group("exe").strip()
        logger.info("runner_name_resolved", executable=executable)
        return GameFileNames(data_file="game.unx", executable=executable)

    def runner_path(self, install_dir: Path, names: GameFileNames) -> Path:
        return install_dir / names.executable

    def post_process(
        self,
        runner: ProcessRunner,
        install_dir: Path,
        asset_root: Path,
        content_dir: Path,
        names: GameFileNames,
        report: ProgressReport,
    ) -> None:
        lowercase_files(asset_root, ".ogg")
        if not self.build_appimage:
            return

        appdir = install_dir / APPDIR_NAME
        copy_tree(self.template_dir / APPDIR_NAME, appdir)
        bin_dir = appdir / "usr" / "bin"
        (bin_dir / "assets").mkdir(parents=True, exist_ok=True)
        copy_tree(asset_root, bin_dir / "assets")
        shutil.copy2(install_dir / names.executable, bin_dir / names.executable)
        report(66)

        tool = self.patch_data_dir / "utilities" / "appimagetool-x86_64.AppImage"
        result = runner.run(tool, ["-n", APPDIR_NAME], cwd=install_dir, env={"ARCH": "x86_64"})
        if not result.ok:
            raise ToolExecutionError(
                f"appimagetool failed with exit code {result.exit_code}",
                tool=str(tool),
                exit_code=result.exit_code,
                stderr=result.stderr,
            )

        delete_directory(asset_root)
        (install_dir / names.executable).unlink(missing_ok=True)
        delete_directory(appdir)
        (install_dir / APPIMAGE_NAME).unlink(missing_ok=True)
        (install_dir / APPIMAGE_TOOL_OUTPUT).rename(install_dir / APPIMAGE_NAME)
        logger.info("appimage_created", path=str(install_dir / APPIMAGE_NAME))

    def installed_marker(self, install_dir: Path) -> Path:
        if self.build_appimage:
            return install_dir / APPIMAGE_NAME
        try:
            return install_dir / self.expected_names().executable
        except (OSError, ValueError):
            return install_dir / DEFAULT_LINUX_RUNNER

    def launch_command(self, install_dir: Path, log_file: Path | None) -> LaunchCommand:
        return LaunchCommand(
            self.installed_marker(install_dir),
            [],
            captures_output=log_file is not None,
        )

    def prepare_launch(self, save_dir: Path) -> None:
        """Write a windowed default config for first launches.

        GameMaker 1.4 misbehaves on some Linux setups when it starts in
        fullscreen without a config.
        """
        config_file = save_dir / "config.ini"
        if config_file.exists():
            return
        save_dir.mkdir(parents=True, exist_ok=True)
        config_file.write_text(LINUX_DEFAULT_GAME_CONFIG, encoding="utf-8")
        logger.info("game_config_created", path=str(config_file))


class MacPlatform(_UnixPlatform):
    """macOS layout: an AM2R.app bundle."""

    platform = Platform.MAC

    @staticmethod
    def contents_dir(install_dir: Path) -> Path:
        return install_dir / MAC_BUNDLE / "Contents"

    def prepare_layout(self, install_dir: Path) -> Path:
        contents = self.contents_dir(install_dir)
        (contents / "MacOS").mkdir(parents=True, exist_ok=True)
        resources = contents / "Resources"
        resources.mkdir(parents=True, exist_ok=True)
        return resources

    def expected_names(self) -> GameFileNames:
        return GameFileNames(data_file="game.ios", executable="Mac_Runner")

    def runner_path(self, install_dir: Path, names: GameFileNames) -> Path:
        return self.contents_dir(install_dir) / "MacOS" / names.executable

    def post_process(
        self,
        runner: ProcessRunner,
        install_dir: Path,
        asset_root: Path,
        content_dir: Path,
        names: GameFileNames,
        report: ProgressReport,
    ) -> None:
        lowercase_files(asset_root, ".ogg")

        # Custom fonts crash the macOS runtime
        delete_directory(asset_root / "lang" / "fonts")

        contents = self.contents_dir(install_dir)
        copy_tree(self.template_dir / "Frameworks", contents / "Frameworks")
        shutil.copyfile(content_dir / "Info.plist", contents / "Info.plist")
        shutil.copyfile(self.template_dir / "PkgInfo", contents / "PkgInfo")

    def installed_marker(self, install_dir: Path) -> Path:
        return install_dir / MAC_BUNDLE

    def is_installed(self, install_dir: Path) -> bool:
        return self.installed_marker(install_dir).is_dir()

    def launch_command(self, install_dir: Path, log_file: Path | None) -> LaunchCommand:
        args = [MAC_BUNDLE, "-W"]
        if log_file is not None:
            args += ["--stdout", str(log_file), "--stderr", str(log_file)]
        return LaunchCommand("open", args)


_STRATEGIES: dict[Platform, type[PlatformStrategy]] = {
    Platform.WINDOWS: WindowsPlatform,
    Platform.LINUX: LinuxPlatform,
    Platform.MAC: MacPlatform,
}


def get_platform(platform: Platform, root: Path, build_appimage: bool = True) -> PlatformStrategy:
    """Create the strategy for a platform."""
    return _STRATEGIES[platform](root, build_appimage=build_appimage)
