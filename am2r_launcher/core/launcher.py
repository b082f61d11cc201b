"""Launcher orchestration.

The Launcher wires the pipeline components together, derives the
lifecycle state and runs long operations on a single worker thread.
Progress flows back to the interactive thread through a ProgressChannel.
"""

from __future__ import annotations

import queue
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, TypeVar

import structlog
from pydantic import ValidationError

from am2r_launcher.core.android import AndroidPackager
from am2r_launcher.core.archival import ArchivalManager
from am2r_launcher.core.catalog import ProfileCatalog
from am2r_launcher.core.config import LauncherConfig, MirrorConfig
from am2r_launcher.core.errors import (
    BusyError,
    CorruptRepositoryError,
    IllegalTransitionError,
    LauncherError,
    NetworkUnavailableError,
    SyncCancelledError,
)
from am2r_launcher.core.game import GameRunner
from am2r_launcher.core.install import InstallationPipeline, InstallOptions
from am2r_launcher.core.integrity import BaseAssetStore, BaseAssetValidator
from am2r_launcher.core.patcher import XdeltaPatcher
from am2r_launcher.core.platforms import get_platform
from am2r_launcher.core.process import ProcessResult, ProcessRunner
from am2r_launcher.core.repository import RepositorySync
from am2r_launcher.core.state_machine import LifecycleInputs, LifecycleState, LifecycleStateMachine
from am2r_launcher.core.types import (
    OperationKind,
    PrimaryAction,
    ProgressEvent,
    TransferProgress,
    ValidationResult,
    WorkingTreeStatus,
)
from am2r_launcher.core.utils import delete_directory
from am2r_launcher.formats.profile_xml import ProfileDescriptor

logger = structlog.get_logger()

T = TypeVar("T")


class ProgressChannel:
    """Thread-safe queue of progress events from the worker thread."""

    def __init__(self) -> None:
        self._queue: queue.Queue[ProgressEvent] = queue.Queue()

    def publish(self, percent: int, status: str | None = None) -> None:
        self._queue.put(ProgressEvent(percent=max(0, min(100, percent)), status=status))

    def drain(self) -> list[ProgressEvent]:
        """Take all pending events without blocking."""
        events: list[ProgressEvent] = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events


class Launcher:
    """Coordinates sync, installation, packaging and play."""

    def __init__(
        self,
        config: LauncherConfig,
        runner: ProcessRunner | None = None,
        repository: RepositorySync | None = None,
    ):
        self.config = config
        config.ensure_directories()

        self.runner = runner or ProcessRunner()
        self.strategy = get_platform(config.platform, config.root_dir, config.build_appimage)
        self.patcher = XdeltaPatcher(self.runner, self.strategy.xdelta_tool(), config.root_dir)
        self.repository = repository or RepositorySync(timeout=config.connectivity_timeout)
        self.base_asset = BaseAssetStore(
            config.base_asset_path, BaseAssetValidator(config.base_asset)
        )
        self.catalog = ProfileCatalog(config, self.strategy)
        self.installer = InstallationPipeline(config, self.strategy, self.runner, self.patcher)
        self.archiver = ArchivalManager(config, self.strategy)
        self.packager = AndroidPackager(config, self.patcher, self.runner)
        self.game = GameRunner(config, self.strategy, self.runner)

        self.state_machine = LifecycleStateMachine()
        self.progress = ProgressChannel()
        self.selected_name: str | None = config.selected_profile

        self._cancel = threading.Event()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="am2r-worker")

    @property
    def state(self) -> LifecycleState:
        return self.state_machine.state

    def selected_profile(self) -> ProfileDescriptor | None:
        """The selected profile, falling back to the first discovered one."""
        profiles = self.catalog.profiles
        if self.selected_name is not None:
            for profile in profiles:
                if profile.name == self.selected_name:
                    return profile
        return profiles[0] if profiles else None

    def select_profile(self, name: str) -> ProfileDescriptor:
        """Select a profile by name.

        Raises:
            LauncherError: If no such profile exists
        """
        profile = self.catalog.find(name)
        if profile is None:
            raise LauncherError(f"Unknown profile: {name}")
        self.selected_name = name
        self.config.selected_profile = name
        return profile

    def refresh(self) -> LifecycleState:
        """Re-read the environment and derive the lifecycle state.

        While an operation runs the state is left unchanged.
        """
        if self.state_machine.is_busy:
            return self.state_machine.state

        cleaned: set[str] = set()
        while True:
            status = self.repository.inspect(self.config.patch_data_dir)
            base_asset_valid = self.base_asset.is_valid()
            self.catalog.discover()
            profile = self.selected_profile()

            state = self.state_machine.derive(
                LifecycleInputs(
                    repository_valid=status == WorkingTreeStatus.VALID,
                    base_asset_valid=base_asset_valid,
                    profile=profile,
                    profile_installed=profile is not None and self.catalog.is_installed(profile),
                    profile_removable=(
                        profile is not None
                        and profile.name not in cleaned
                        and (profile.content_path or "").startswith("Mods/")
                    ),
                )
            )
            if not state.needs_cleanup or profile is None:
                return state

            logger.info("orphaned_profile_cleanup", name=profile.name)
            self.catalog.delete(profile)
            cleaned.add(profile.name)
            if self.selected_name == profile.name:
                self.selected_name = None

    def sync(self, mirror: str | None = None) -> Future[bool]:
        """Clone or pull PatchData on the worker thread."""
        self.refresh()
        self._cancel.clear()
        return self._submit(OperationKind.SYNC, self._sync, mirror)

    def install(
        self,
        name: str | None = None,
        use_hq_music: bool | None = None,
    ) -> Future[Path]:
        """Install a profile on the worker thread."""
        if name is not None:
            self.select_profile(name)
        self.refresh()
        self.state_machine.check_action(PrimaryAction.INSTALL)
        profile = self._require_profile()
        hq_music = self.config.use_hq_music if use_hq_music is None else use_hq_music
        return self._submit(
            OperationKind.INSTALL,
            self.installer.install,
            profile,
            InstallOptions(use_hq_music=hq_music),
            self._on_percent,
        )

    def package(
        self,
        name: str | None = None,
        use_hq_music: bool | None = None,
    ) -> Future[Path | None]:
        """Create an Android APK on the worker thread."""
        if name is not None:
            self.select_profile(name)
        state = self.refresh()
        if not state.package_enabled:
            raise IllegalTransitionError(
                f"Cannot create APK: {state.package_disabled_reason}",
                expected="create",
                actual=state.package.value,
            )
        profile = self._require_profile()
        hq_music = self.config.use_hq_music_android if use_hq_music is None else use_hq_music
        return self._submit(
            OperationKind.PACKAGE,
            self.packager.create,
            profile,
            hq_music,
            self._on_percent,
        )

    def play(self, name: str | None = None, use_logging: bool | None = None) -> Future[ProcessResult]:
        """Run the selected profile on the worker thread."""
        if name is not None:
            self.select_profile(name)
        self.refresh()
        self.state_machine.check_action(PrimaryAction.PLAY)
        profile = self._require_profile()
        logging_enabled = self.config.profile_debug_log if use_logging is None else use_logging
        return self._submit(OperationKind.PLAY, self.game.run, profile, logging_enabled)

    def import_base_asset(self, source: Path) -> ValidationResult:
        """Validate a user-selected base archive and copy it into place."""
        self._ensure_idle()
        result = self.base_asset.import_archive(source)
        self.refresh()
        return result

    def archive_profile(self, name: str) -> ProfileDescriptor:
        self._ensure_idle()
        profile = self._find(name)
        archived = self.archiver.archive(profile)
        self.refresh()
        return archived

    def delete_profile(self, name: str) -> None:
        self._ensure_idle()
        profile = self._find(name)
        self.catalog.delete(profile)
        if self.selected_name == name:
            self.selected_name = None
        self.refresh()

    def use_mirror(self, index: int | None = None, custom: str | None = None) -> str:
        """Select a mirror by index or a custom URL.

        The origin remote of an existing clone follows the new mirror; if
        a sync is running the switch is applied when it finishes.
        """
        mirrors = self.config.mirrors
        if custom is not None:
            update: dict[str, Any] = {"custom_mirror": custom}
        else:
            available = mirrors.mirrors.get(self.config.platform, [])
            if index is None or not 0 <= index < len(available):
                raise LauncherError(f"Mirror index out of range: {index}")
            update = {"custom_mirror": None, "mirror_index": index}
        try:
            self.config.mirrors = MirrorConfig.model_validate({**mirrors.model_dump(), **update})
        except ValidationError as e:
            raise LauncherError(f"Invalid mirror: {custom}") from e

        url = self.config.current_mirror
        if self.repository.inspect(self.config.patch_data_dir) == WorkingTreeStatus.VALID:
            self.repository.switch_mirror(self.config.patch_data_dir, url)
        logger.info("mirror_selected", url=url)
        return url

    def request_cancel(self) -> bool:
        """Ask a running sync to stop. Other operations cannot be cancelled."""
        if self.state_machine.active != OperationKind.SYNC:
            return False
        self._cancel.set()
        return True

    def can_close(self) -> bool:
        """Installs and packaging must finish before the launcher exits."""
        return self.state_machine.active not in (OperationKind.INSTALL, OperationKind.PACKAGE)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
        self.repository.close()

    def __enter__(self) -> Launcher:
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown()

    def _sync(self, mirror: str | None) -> bool:
        patch_data = self.config.patch_data_dir
        status = self.repository.inspect(patch_data)

        if status == WorkingTreeStatus.VALID:
            try:
                updated = self.repository.pull(patch_data, self._on_transfer)
            except CorruptRepositoryError as e:
                logger.warning("repository_corrupt", path=str(patch_data), error=str(e))
                status = WorkingTreeStatus.CORRUPT
            else:
                if updated:
                    self._archive_outdated_primary()
                return updated

        if status == WorkingTreeStatus.CORRUPT:
            logger.info("corrupt_repository_removed", path=str(patch_data))
            delete_directory(patch_data)

        url = mirror or self.config.current_mirror
        if not self.repository.check_connectivity(url):
            raise NetworkUnavailableError(f"No connection to {url}", url=url)

        try:
            self.repository.clone(url, patch_data, self._on_transfer)
        except LauncherError:
            delete_directory(patch_data)
            raise
        return True

    def _archive_outdated_primary(self) -> None:
        profiles = self.catalog.discover()
        if profiles and profiles[0].content_path == "PatchData/data":
            self.archiver.archive_outdated_primary(profiles[0])

    def _on_transfer(self, progress: TransferProgress) -> bool:
        self.progress.publish(progress.percent, progress.display())
        return not self._cancel.is_set()

    def _on_percent(self, percent: int) -> None:
        self.progress.publish(percent)

    def _submit(self, kind: OperationKind, func: Callable[..., T], *args: Any) -> Future[T]:
        self.state_machine.begin(kind)
        try:
            return self._executor.submit(self._guarded, kind, func, *args)
        except RuntimeError:
            self.state_machine.end()
            raise

    def _guarded(self, kind: OperationKind, func: Callable[..., T], *args: Any) -> T:
        try:
            return func(*args)
        except SyncCancelledError:
            logger.info("operation_cancelled", kind=kind.value)
            raise
        except LauncherError as e:
            logger.error("operation_failed", kind=kind.value, error=str(e))
            raise
        finally:
            self.state_machine.end()
            self._settle()

    def _settle(self) -> None:
        """Derive the state left behind by a finished operation."""
        try:
            self.refresh()
        except (LauncherError, OSError) as e:
            logger.warning("refresh_failed", error=str(e))

    def _ensure_idle(self) -> None:
        active = self.state_machine.active
        if active is not None:
            raise BusyError(f"{active.value} is running", active=active.value)

    def _require_profile(self) -> ProfileDescriptor:
        profile = self.selected_profile()
        if profile is None:
            raise LauncherError("No profile available")
        return profile

    def _find(self, name: str) -> ProfileDescriptor:
        profile = self.catalog.find(name)
        if profile is None:
            raise LauncherError(f"Unknown profile: {name}")
        return profile
