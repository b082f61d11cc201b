"""Profile installation pipeline.

Installing a profile always starts from a clean copy of the base archive:

1. Recreate a staging directory next to the final installation
2. Extract the base archive into the platform asset root
3. Resolve the platform data file and executable names
4. Apply the profile's xdelta patches
5. Copy files_to_copy and, optionally, the HQ music overlay
6. Run platform post-processing
7. Copy the profile manifest for later update checks
8. Swap the staging directory into Profiles/<name>

A failure at any step leaves the previous installation untouched.
"""

from __future__ import annotations

import shutil
import zipfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import structlog

from am2r_launcher.core.config import LauncherConfig
from am2r_launcher.core.errors import InstallError, InstallStep, LauncherError
from am2r_launcher.core.patcher import XdeltaPatcher
from am2r_launcher.core.platforms import PlatformStrategy
from am2r_launcher.core.process import ProcessRunner
from am2r_launcher.core.utils import copy_tree, delete_directory
from am2r_launcher.formats.profile_xml import MANIFEST_NAME, ProfileDescriptor

logger = structlog.get_logger()

HQ_MUSIC_DIR = Path("data") / "HDR_HQ_in-game_music"

InstallProgress = Callable[[int], None]


@dataclass(frozen=True)
class InstallOptions:
    """User choices for an installation."""

    use_hq_music: bool = False


class InstallationPipeline:
    """Materializes profiles into Profiles/<name>."""

    def __init__(
        self,
        config: LauncherConfig,
        strategy: PlatformStrategy,
        runner: ProcessRunner | None = None,
        patcher: XdeltaPatcher | None = None,
    ):
        self.config = config
        self.strategy = strategy
        self.runner = runner or ProcessRunner()
        self.patcher = patcher or XdeltaPatcher(
            self.runner, strategy.xdelta_tool(), config.root_dir
        )

    def install(
        self,
        profile: ProfileDescriptor,
        options: InstallOptions | None = None,
        on_progress: InstallProgress | None = None,
    ) -> Path:
        """Install a profile.

        Args:
            profile: Discovered profile with a content path
            options: Installation choices
            on_progress: Receives progress values between 0 and 100

        Returns:
            Installation directory

        Raises:
            InstallError: If any step fails, with the failing step attached
        """
        options = options or InstallOptions()
        report = on_progress or (lambda _percent: None)

        install_dir = self.config.profiles_dir / profile.name
        staging = self.config.profiles_dir / f".staging-{profile.name}"

        logger.info("profile_install_start", name=profile.name, platform=self.strategy.platform.value)

        step = InstallStep.PREPARE
        try:
            content_dir = self._content_dir(profile)
            delete_directory(staging)
            staging.mkdir(parents=True)

            step = InstallStep.EXTRACT
            asset_root = self.strategy.prepare_layout(staging)
            with zipfile.ZipFile(self.config.base_asset_path) as zf:
                zf.extractall(asset_root)
            report(33)

            step = InstallStep.RESOLVE_NAMES
            names = self.strategy.expected_names()

            step = InstallStep.PATCH
            self.strategy.patch(self.patcher, staging, asset_root, content_dir, names, profile)
            report(self.strategy.patch_progress)

            step = InstallStep.COPY_FILES
            copy_tree(content_dir / "files_to_copy", asset_root)
            if options.use_hq_music and not profile.uses_custom_music:
                copy_tree(self.config.patch_data_dir / HQ_MUSIC_DIR, asset_root)

            step = InstallStep.POST_PROCESS
            self.strategy.post_process(self.runner, staging, asset_root, content_dir, names, report)

            step = InstallStep.COPY_MANIFEST
            shutil.copyfile(self._manifest_source(content_dir), staging / MANIFEST_NAME)

            step = InstallStep.FINALIZE
            self._swap_into_place(staging, install_dir)
        except (LauncherError, OSError, ValueError, zipfile.BadZipFile) as e:
            logger.error("profile_install_failed", name=profile.name, step=step.value, error=str(e))
            if self.config.keep_failed_installs:
                logger.info("failed_install_kept", path=str(staging))
            else:
                delete_directory(staging)
            raise InstallError(
                f"Installing {profile.name} failed during {step.value}: {e}",
                step=step,
                profile=profile.name,
            ) from e

        report(100)
        logger.info("profile_installed", name=profile.name, path=str(install_dir))
        return install_dir

    def _content_dir(self, profile: ProfileDescriptor) -> Path:
        if not profile.content_path:
            raise ValueError(f"Profile {profile.name} has no content path")
        content_dir = self.config.root_dir / profile.content_path
        if not content_dir.is_dir():
            raise FileNotFoundError(f"Profile content directory missing: {content_dir}")
        return content_dir

    @staticmethod
    def _manifest_source(content_dir: Path) -> Path:
        # The primary profile keeps its manifest at the PatchData root
        if content_dir.parent.name == "PatchData":
            return content_dir.parent / MANIFEST_NAME
        return content_dir / MANIFEST_NAME

    @staticmethod
    def _swap_into_place(staging: Path, install_dir: Path) -> None:
        previous = install_dir.with_name(f".previous-{install_dir.name}")
        delete_directory(previous)

        if install_dir.exists():
            install_dir.rename(previous)
        try:
            staging.rename(install_dir)
        except OSError:
            if previous.exists():
                previous.rename(install_dir)
            raise

        delete_directory(previous)
