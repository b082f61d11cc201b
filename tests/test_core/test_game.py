"""Tests for am2r_launcher.core.game module."""

from pathlib import Path

import pytest

from am2r_launcher import __version__
from am2r_launcher.core.errors import LauncherError
from am2r_launcher.core.game import GameRunner
from am2r_launcher.core.platforms import LinuxPlatform, WindowsPlatform
from am2r_launcher.formats.profile_xml import ProfileDescriptor


@pytest.fixture
def profile(temp_dir: Path) -> ProfileDescriptor:
    return ProfileDescriptor(name="Mod", save_location=str(temp_dir / "save"))


def _install_windows(config, name: str) -> Path:
    install_dir = config.profiles_dir / name
    install_dir.mkdir(parents=True)
    (install_dir / "AM2R.exe").write_bytes(b"exe")
    return install_dir


class TestGameRunner:
    """Test GameRunner class."""

    def test_not_installed(self, config, profile, fake_runner):
        runner = GameRunner(config, WindowsPlatform(config.root_dir), fake_runner)
        with pytest.raises(LauncherError, match="not installed"):
            runner.run(profile)
        assert fake_runner.calls == []

    def test_run_without_log(self, config, profile, fake_runner, temp_dir: Path):
        install_dir = _install_windows(config, "Mod")
        runner = GameRunner(config, WindowsPlatform(config.root_dir), fake_runner)

        result = runner.run(profile, use_logging=False)

        assert result.ok
        call = fake_runner.calls[0]
        assert call.tool == "AM2R.exe"
        assert call.args == []
        assert call.cwd == install_dir
        assert not (temp_dir / "save" / "logs").exists()

    def test_run_with_log(self, config, profile, fake_runner, temp_dir: Path):
        _install_windows(config, "Mod")
        runner = GameRunner(config, WindowsPlatform(config.root_dir), fake_runner)

        runner.run(profile, use_logging=True)

        log_file = temp_dir / "save" / "logs" / "Mod.txt"
        assert runner.log_file(profile) == log_file
        assert log_file.read_text().startswith(f"AM2RLauncher {__version__} log generated at ")
        assert fake_runner.calls[0].args == ["-debugoutput", str(log_file), "-output", str(log_file)]

    def test_previous_logs_rolled_over(self, config, profile, fake_runner, temp_dir: Path):
        _install_windows(config, "Mod")
        logs = temp_dir / "save" / "logs"
        logs.mkdir(parents=True)
        (logs / "Mod.txt").write_text("previous run")
        runner = GameRunner(config, WindowsPlatform(config.root_dir), fake_runner)

        runner.run(profile, use_logging=True)

        assert (logs / "Mod.txt.1").read_text() == "previous run"

    def test_linux_output_captured(self, config, profile, make_runner, temp_dir: Path):
        """Test that stdout is appended to the log when the runtime cannot write it."""
        install_dir = config.profiles_dir / "Mod"
        install_dir.mkdir(parents=True)
        (install_dir / "AM2R.AppImage").write_bytes(b"appimage")
        fake = make_runner(game_output="Room: rm_a0h01")
        runner = GameRunner(config, LinuxPlatform(config.root_dir), fake)

        runner.run(profile, use_logging=True)

        log = (temp_dir / "save" / "logs" / "Mod.txt").read_text()
        assert log.endswith("Room: rm_a0h01\n")
        assert fake.calls[0].tool == "AM2R.AppImage"
        assert (temp_dir / "save" / "config.ini").is_file()
