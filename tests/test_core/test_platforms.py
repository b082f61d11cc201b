"""Tests for am2r_launcher.core.platforms module."""

from pathlib import Path
from unittest.mock import patch

import pytest

from am2r_launcher.core.patcher import BUNDLED_XDELTA, SYSTEM_XDELTA
from am2r_launcher.core.platforms import (
    LINUX_DEFAULT_GAME_CONFIG,
    GameFileNames,
    LinuxPlatform,
    MacPlatform,
    WindowsPlatform,
    get_platform,
)
from am2r_launcher.core.types import Platform


class TestGetPlatform:
    """Test get_platform function."""

    @pytest.mark.parametrize(
        ("platform", "cls"),
        [
            (Platform.WINDOWS, WindowsPlatform),
            (Platform.LINUX, LinuxPlatform),
            (Platform.MAC, MacPlatform),
        ],
    )
    def test_strategy_per_platform(self, temp_dir: Path, platform: Platform, cls: type):
        strategy = get_platform(platform, temp_dir)
        assert isinstance(strategy, cls)
        assert strategy.platform == platform

    def test_build_appimage_passed(self, temp_dir: Path):
        assert get_platform(Platform.LINUX, temp_dir, build_appimage=False).build_appimage is False


class TestWindowsPlatform:
    """Test WindowsPlatform strategy."""

    def test_names(self, temp_dir: Path):
        assert WindowsPlatform(temp_dir).expected_names() == GameFileNames("data.win", "AM2R.exe")

    def test_bundled_xdelta(self, temp_dir: Path):
        assert WindowsPlatform(temp_dir).xdelta_tool() == temp_dir / BUNDLED_XDELTA

    def test_layout(self, temp_dir: Path):
        install_dir = temp_dir / "Profiles" / "Mod"
        assert WindowsPlatform(temp_dir).prepare_layout(install_dir) == install_dir
        assert install_dir.is_dir()

    def test_launch_without_log(self, temp_dir: Path):
        command = WindowsPlatform(temp_dir).launch_command(temp_dir / "Mod", None)
        assert command.executable == temp_dir / "Mod" / "AM2R.exe"
        assert command.args == []
        assert command.captures_output is False

    def test_launch_with_log(self, temp_dir: Path):
        log = temp_dir / "logs" / "Mod.txt"
        command = WindowsPlatform(temp_dir).launch_command(temp_dir / "Mod", log)
        assert command.args == ["-debugoutput", str(log), "-output", str(log)]

    def test_expand_save_location(self, temp_dir: Path):
        with patch.dict("os.environ", {"LOCALAPPDATA": "C:/Users/samus/AppData/Local"}):
            path = WindowsPlatform(temp_dir).expand_save_location("%localappdata%/AM2R")
        assert path == Path("C:/Users/samus/AppData/Local/AM2R")

    def test_unknown_variable_kept(self, temp_dir: Path):
        with patch.dict("os.environ", {}, clear=True):
            path = WindowsPlatform(temp_dir).expand_save_location("%NOPE%/AM2R")
        assert path == Path("%NOPE%/AM2R")


class TestLinuxPlatform:
    """Test LinuxPlatform strategy."""

    def test_system_xdelta(self, temp_dir: Path):
        assert LinuxPlatform(temp_dir).xdelta_tool() == SYSTEM_XDELTA

    def test_names_from_desktop_entry(self, config, patch_data):
        names = LinuxPlatform(config.root_dir).expected_names()
        assert names == GameFileNames("game.unx", "runner")

    def test_desktop_entry_without_exec(self, config, patch_data):
        desktop = patch_data / "data" / "AM2R.AppDir" / "AM2R.desktop"
        desktop.write_text("[Desktop Entry]\nName=AM2R\n")
        with pytest.raises(ValueError, match="No Exec entry"):
            LinuxPlatform(config.root_dir).expected_names()

    def test_layout(self, temp_dir: Path):
        install_dir = temp_dir / "Mod"
        asset_root = LinuxPlatform(temp_dir).prepare_layout(install_dir)
        assert asset_root == install_dir / "assets"
        assert asset_root.is_dir()

    def test_installed_marker(self, config, patch_data):
        install_dir = config.profiles_dir / "Mod"
        assert LinuxPlatform(config.root_dir).installed_marker(install_dir) == install_dir / "AM2R.AppImage"
        raw = LinuxPlatform(config.root_dir, build_appimage=False)
        assert raw.installed_marker(install_dir) == install_dir / "runner"

    def test_installed_marker_default_runner(self, temp_dir: Path):
        """Test the fallback runner name without PatchData."""
        strategy = LinuxPlatform(temp_dir, build_appimage=False)
        assert strategy.installed_marker(temp_dir / "Mod") == temp_dir / "Mod" / "runner"

    def test_launch_command(self, temp_dir: Path):
        install_dir = temp_dir / "Mod"
        strategy = LinuxPlatform(temp_dir)
        command = strategy.launch_command(install_dir, temp_dir / "log.txt")
        assert command.executable == install_dir / "AM2R.AppImage"
        assert command.args == []
        assert command.captures_output is True
        assert strategy.launch_command(install_dir, None).captures_output is False

    def test_expand_home(self, temp_dir: Path):
        path = LinuxPlatform(temp_dir).expand_save_location("~/.config/AM2R")
        assert path == Path.home() / ".config" / "AM2R"

    def test_prepare_launch_writes_config(self, temp_dir: Path):
        save_dir = temp_dir / "save"
        LinuxPlatform(temp_dir).prepare_launch(save_dir)
        assert (save_dir / "config.ini").read_text() == LINUX_DEFAULT_GAME_CONFIG

    def test_prepare_launch_keeps_existing(self, temp_dir: Path):
        (temp_dir / "config.ini").write_text("[Screen]\nFullscreen=\"1\"")
        LinuxPlatform(temp_dir).prepare_launch(temp_dir)
        assert "Fullscreen=\"1\"" in (temp_dir / "config.ini").read_text()


class TestMacPlatform:
    """Test MacPlatform strategy."""

    def test_names(self, temp_dir: Path):
        assert MacPlatform(temp_dir).expected_names() == GameFileNames("game.ios", "Mac_Runner")

    def test_layout(self, temp_dir: Path):
        install_dir = temp_dir / "Mod"
        resources = MacPlatform(temp_dir).prepare_layout(install_dir)
        assert resources == install_dir / "AM2R.app" / "Contents" / "Resources"
        assert (install_dir / "AM2R.app" / "Contents" / "MacOS").is_dir()

    def test_installed_is_bundle_directory(self, temp_dir: Path):
        strategy = MacPlatform(temp_dir)
        install_dir = temp_dir / "Mod"
        assert not strategy.is_installed(install_dir)
        (install_dir / "AM2R.app").mkdir(parents=True)
        assert strategy.is_installed(install_dir)

    def test_launch_command(self, temp_dir: Path):
        log = temp_dir / "log.txt"
        command = MacPlatform(temp_dir).launch_command(temp_dir / "Mod", log)
        assert command.executable == "open"
        assert command.args == ["AM2R.app", "-W", "--stdout", str(log), "--stderr", str(log)]
        assert MacPlatform(temp_dir).launch_command(temp_dir / "Mod", None).args == ["AM2R.app", "-W"]
