"""Pytest configuration and shared fixtures for am2r_launcher tests."""

import hashlib
import tempfile
import zipfile
from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from am2r_launcher.core.config import BaseAssetSpec, LauncherConfig
from am2r_launcher.core.errors import ToolMissingError
from am2r_launcher.core.process import ProcessResult, ProcessRunner
from am2r_launcher.core.types import Platform
from am2r_launcher.formats.profile_xml import ProfileDescriptor, ProfileXmlParser

# Contents of the fake unpatched base archive
BASE_FILES = {
    "AM2R.exe": b"MZ fake AM2R 1.1 executable",
    "data.win": b"FORM fake AM2R 1.1 data",
    "D3DX9_43.dll": b"MZ fake d3dx9 library",
    "readme.txt": b"Another Metroid 2 Remake",
    "mods/palette.png": b"png",
    "lang/headers/english.txt": b"header",
    "lang/fonts/font.ttf": b"font",
    "MusTitle.ogg": b"ogg",
}

PRIMARY_NAME = "Community Updates (Latest)"


def _md5(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


@dataclass
class FakeCall:
    """One recorded process invocation."""

    tool: str
    args: list[str]
    cwd: Path | None
    env: dict[str, str] = field(default_factory=dict)


class FakeProcessRunner(ProcessRunner):
    """ProcessRunner that emulates the external tools on the filesystem.

    - xdelta3 writes the source bytes followed by the patch bytes
    - appimagetool creates AM2R-x86_64.AppImage in its working directory
    - java runs apktool (d/b) and uber-apk-signer by creating their outputs

    Tools named in ``missing`` cannot be started; tools named in
    ``failing`` exit with the given status.
    """

    def __init__(
        self,
        missing: tuple[str, ...] = (),
        failing: dict[str, int] | None = None,
        game_output: str = "",
    ):
        self.calls: list[FakeCall] = []
        self.missing = set(missing)
        self.failing = dict(failing or {})
        self.game_output = game_output

    def run(self, executable, args, cwd=None, env=None):
        tool = Path(str(executable)).name
        str_args = [str(arg) for arg in args]
        self.calls.append(FakeCall(tool, str_args, cwd, dict(env or {})))

        if self._matches(tool, self.missing):
            raise ToolMissingError(f"Cannot start {tool}", tool=tool)
        for name, exit_code in self.failing.items():
            if tool.startswith(name) or (tool == "java" and any(name in a for a in str_args)):
                return ProcessResult(exit_code=exit_code, stderr=f"{name} failed")

        if tool.startswith("xdelta3") and str_args[:1] == ["-f"]:
            return self._xdelta(str_args, cwd)
        if tool.startswith("appimagetool"):
            (cwd / "AM2R-x86_64.AppImage").write_bytes(b"appimage")
            return ProcessResult(exit_code=0)
        if tool == "java" and str_args[:1] == ["-jar"]:
            return self._java(str_args[1:], cwd)
        return ProcessResult(exit_code=0, stdout=self.game_output)

    def calls_for(self, tool: str) -> list[FakeCall]:
        return [call for call in self.calls if call.tool.startswith(tool)]

    @staticmethod
    def _matches(tool: str, names: set[str]) -> bool:
        return any(tool.startswith(name) for name in names)

    @staticmethod
    def _xdelta(args: list[str], cwd: Path | None) -> ProcessResult:
        base = cwd or Path.cwd()
        original, patch, output = (base / arg for arg in args[3:6])
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(original.read_bytes() + patch.read_bytes())
        return ProcessResult(exit_code=0)

    @staticmethod
    def _java(args: list[str], cwd: Path) -> ProcessResult:
        jar = Path(args[0]).name
        if jar == "apktool.jar" and args[1] == "d":
            wrapper = cwd / Path(args[2]).stem
            (wrapper / "assets").mkdir(parents=True, exist_ok=True)
            (wrapper / "apktool.yml").write_text("doNotCompress:\n- arsc\n", encoding="utf-8")
        elif jar == "apktool.jar" and args[1] == "b":
            (cwd / args[args.index("-o") + 1]).write_bytes(b"apk")
        elif jar == "uber-apk-signer.jar":
            apk = Path(args[args.index("-a") + 1])
            (cwd / f"{apk.stem}-aligned-debugSigned.apk").write_bytes(b"signed apk")
        return ProcessResult(exit_code=0)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def base_asset_spec() -> BaseAssetSpec:
    """Digests matching the fake base archive."""
    return BaseAssetSpec(
        executable_md5=_md5(BASE_FILES["AM2R.exe"]),
        data_file_md5=_md5(BASE_FILES["data.win"]),
        library_md5=_md5(BASE_FILES["D3DX9_43.dll"]),
    )


@pytest.fixture
def make_base_archive() -> Callable[..., Path]:
    """Factory writing a base archive, optionally with overridden entries.

    Passing ``None`` as an entry's content leaves it out; ``prefix``
    nests every entry in a subdirectory.
    """

    def _make(
        path: Path,
        prefix: str = "",
        overrides: dict[str, bytes | None] | None = None,
    ) -> Path:
        files = dict(BASE_FILES)
        for name, content in (overrides or {}).items():
            if content is None:
                files.pop(name, None)
            else:
                files[name] = content
        path.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(path, "w") as zf:
            for name, content in files.items():
                zf.writestr(f"{prefix}{name}", content)
        return path

    return _make


@pytest.fixture
def write_profile() -> Callable[..., ProfileDescriptor]:
    """Factory writing a profile.xml into a directory."""

    def _write(directory: Path, name: str, **attrs) -> ProfileDescriptor:
        profile = ProfileDescriptor(name=name, **attrs)
        ProfileXmlParser().build_file(profile, directory / "profile.xml")
        return profile

    return _write


@pytest.fixture
def config(temp_dir: Path, base_asset_spec: BaseAssetSpec) -> LauncherConfig:
    """Launcher configuration rooted in a temporary directory."""
    launcher_config = LauncherConfig(
        config_dir=temp_dir / "config",
        root_dir=temp_dir / "root",
        platform=Platform.WINDOWS,
        base_asset=base_asset_spec,
    )
    launcher_config.ensure_directories()
    return launcher_config


@pytest.fixture
def patch_data(config: LauncherConfig, write_profile) -> Path:
    """A PatchData checkout with the primary profile and its patches."""
    root = config.patch_data_dir
    data = root / "data"
    (data / "files_to_copy").mkdir(parents=True)
    for name in ("data.xdelta", "AM2R.xdelta", "game.xdelta", "droid.xdelta"):
        (data / name).write_bytes(f"+{name}".encode())
    (data / "files_to_copy" / "extra.txt").write_text("extra", encoding="utf-8")
    (data / "Info.plist").write_text("<plist/>", encoding="utf-8")
    (data / "PkgInfo").write_text("APPL????", encoding="utf-8")
    (data / "Frameworks" / "lib").mkdir(parents=True)
    (data / "Frameworks" / "lib" / "libogg.dylib").write_bytes(b"dylib")
    (data / "android").mkdir()
    (data / "android" / "AM2RWrapper.apk").write_bytes(b"wrapper")
    (data / "AM2R.ini").write_text("[ini]", encoding="utf-8")

    appdir = data / "AM2R.AppDir"
    appdir.mkdir()
    (appdir / "AM2R.desktop").write_text(
        "[Desktop Entry]\nName=AM2R\nExec=runner\nType=Application\n", encoding="utf-8"
    )

    hq_music = data / "HDR_HQ_in-game_music"
    hq_music.mkdir()
    (hq_music / "musHQ.ogg").write_bytes(b"hq")

    utilities = root / "utilities"
    (utilities / "xdelta").mkdir(parents=True)
    (utilities / "android").mkdir()

    write_profile(
        root,
        PRIMARY_NAME,
        version="1.5.5",
        author="AM2R Community Developers",
        save_location="%localappdata%/AM2R",
        supports_android=True,
    )
    return root


@pytest.fixture
def base_archive(config: LauncherConfig, make_base_archive) -> Path:
    """A valid base archive placed at the launcher's base asset path."""
    return make_base_archive(config.base_asset_path)


@pytest.fixture
def fake_runner() -> FakeProcessRunner:
    """Process runner emulating xdelta3, appimagetool and java."""
    return FakeProcessRunner()


# Pytest configuration
def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest settings."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests that need external tools such as git"
    )


@pytest.fixture
def make_runner() -> type[FakeProcessRunner]:
    """Factory for fake runners with missing or failing tools."""
    return FakeProcessRunner


# CLI Testing Fixtures


@pytest.fixture
def mock_repository():
    """RepositorySync mock reporting a valid PatchData clone."""
    from unittest.mock import Mock

    from am2r_launcher.core.repository import RepositorySync
    from am2r_launcher.core.types import WorkingTreeStatus

    repository = Mock(spec=RepositorySync)
    repository.inspect.return_value = WorkingTreeStatus.VALID
    repository.check_connectivity.return_value = True
    repository.pull.return_value = True
    repository.pending_mirror = None
    return repository


@pytest.fixture
def cli_context(config, fake_runner, mock_repository):
    """Click context object with a launcher wired to fakes.

    Commands find the launcher in ``ctx.obj`` and never build a real one.
    """
    from rich.console import Console

    from am2r_launcher.core.launcher import Launcher

    launcher = Launcher(config, runner=fake_runner, repository=mock_repository)
    obj = {
        "config": config,
        "config_file": config.config_dir / "config.json",
        "console": Console(force_terminal=False, no_color=True, width=200),
        "verbose": False,
        "debug": False,
        "launcher": launcher,
    }
    yield obj
    launcher.shutdown()
