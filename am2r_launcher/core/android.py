"""Android APK creation.

An APK is built by decompiling the profile's AM2RWrapper.apk with
apktool, dropping the patched game data into its assets, rebuilding and
debug-signing it with uber-apk-signer. Both tools run through Java.
"""

from __future__ import annotations

import shutil
import zipfile
from collections.abc import Callable
from pathlib import Path

import structlog

from am2r_launcher.core.config import LauncherConfig
from am2r_launcher.core.errors import LauncherError, PackagingError, ToolExecutionError
from am2r_launcher.core.install import HQ_MUSIC_DIR
from am2r_launcher.core.patcher import XdeltaPatcher
from am2r_launcher.core.process import ProcessRunner, ensure_java
from am2r_launcher.core.types import Platform
from am2r_launcher.core.utils import copy_tree, delete_directory
from am2r_launcher.formats.profile_xml import ProfileDescriptor

logger = structlog.get_logger()

WRAPPER_NAME = "AM2RWrapper"

# Base archive files the Android runtime does not use
UNUSED_FILES = (
    "AM2R.exe",
    "D3DX9_43.dll",
    "explanations.txt",
    "modifiers.ini",
    "readme.txt",
    "data.win",
)
UNUSED_DIRECTORIES = ("mods", Path("lang") / "headers")

PackageProgress = Callable[[int], None]


class AndroidPackager:
    """Builds debug-signed APKs for profiles that support Android."""

    def __init__(
        self,
        config: LauncherConfig,
        patcher: XdeltaPatcher,
        runner: ProcessRunner | None = None,
    ):
        self.config = config
        self.patcher = patcher
        self.runner = runner or ProcessRunner()

    @property
    def apktool(self) -> Path:
        return self.config.patch_data_dir / "utilities" / "android" / "apktool.jar"

    @property
    def signer(self) -> Path:
        return self.config.patch_data_dir / "utilities" / "android" / "uber-apk-signer.jar"

    def create(
        self,
        profile: ProfileDescriptor,
        use_hq_music: bool = False,
        on_progress: PackageProgress | None = None,
    ) -> Path | None:
        """Create an APK for a profile.

        Args:
            profile: Discovered profile with a content path
            use_hq_music: Include the HQ music overlay
            on_progress: Receives progress values between 0 and 100

        Returns:
            Path of the signed APK in the launcher root, or None if the
            profile does not support Android

        Raises:
            JavaMissingError: If no Java runtime is available
            ToolExecutionError: If apktool or the signer fail
            PackagingError: If the wrapper contents are not as expected
        """
        report = on_progress or (lambda _percent: None)

        if not profile.supports_android:
            report(100)
            return None

        ensure_java(self.runner)

        if not profile.content_path:
            raise PackagingError(f"Profile {profile.name} has no content path")
        content_dir = self.config.root_dir / profile.content_path
        temp_dir = self.config.temp_dir.resolve()
        output = self.config.root_dir / f"{profile.name}.apk"

        logger.info("apk_create_start", name=profile.name)
        try:
            delete_directory(temp_dir)
            temp_dir.mkdir(parents=True)
            report(14)

            self._java(
                [self.apktool, "d", (content_dir / "android" / f"{WRAPPER_NAME}.apk").resolve()],
                temp_dir,
            )
            report(28)

            assets = temp_dir / WRAPPER_NAME / "assets"
            with zipfile.ZipFile(self.config.base_asset_path) as zf:
                zf.extractall(assets)
            copy_tree(content_dir / "files_to_copy", assets)
            if use_hq_music:
                copy_tree(self.config.patch_data_dir / HQ_MUSIC_DIR, assets)
            for ini_file in sorted(content_dir.glob("*.ini")):
                shutil.copyfile(ini_file, assets / ini_file.name)
            report(42)

            self.patcher.apply(assets / "data.win", content_dir / "droid.xdelta", assets / "game.droid")
            report(56)

            self._remove_unused(assets)
            self._keep_ogg_uncompressed(temp_dir / WRAPPER_NAME / "apktool.yml")
            report(70)

            apk_name = f"{profile.name}.apk"
            self._java([self.apktool, "b", WRAPPER_NAME, "-o", apk_name], temp_dir)
            report(84)

            self._java([self.signer, "-a", apk_name], temp_dir)
            shutil.copyfile(temp_dir / f"{profile.name}-aligned-debugSigned.apk", output)
        except (OSError, zipfile.BadZipFile) as e:
            raise PackagingError(f"Creating APK for {profile.name} failed: {e}") from e
        except LauncherError:
            logger.error("apk_create_failed", name=profile.name)
            raise
        finally:
            delete_directory(temp_dir)

        report(100)
        logger.info("apk_created", name=profile.name, path=str(output))
        return output

    def _java(self, args: list[str | Path], cwd: Path) -> None:
        jar_args = ["-jar", *args]
        result = self.runner.run("java", jar_args, cwd=cwd)
        if not result.ok:
            raise ToolExecutionError(
                f"java {Path(str(args[0])).name} failed with exit code {result.exit_code}",
                tool=str(args[0]),
                exit_code=result.exit_code,
                stderr=result.stderr,
            )

    def _remove_unused(self, assets: Path) -> None:
        for name in UNUSED_FILES:
            (assets / name).unlink(missing_ok=True)
        for directory in UNUSED_DIRECTORIES:
            delete_directory(assets / directory)
        if self.config.platform == Platform.LINUX:
            (assets / "icon.png").unlink(missing_ok=True)

    @staticmethod
    def _keep_ogg_uncompressed(apktool_yml: Path) -> None:
        text = apktool_yml.read_text(encoding="utf-8")
        apktool_yml.write_text(text.replace("doNotCompress:", "doNotCompress:\n- ogg", 1), encoding="utf-8")
