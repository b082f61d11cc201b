"""Launcher lifecycle state.

The primary action is derived from the environment in a fixed order:

| Condition                                 | Primary action      |
|-------------------------------------------|---------------------|
| an operation is running                   | unchanged           |
| PatchData missing or corrupt              | DOWNLOAD            |
| base archive not validated                | SELECT_BASE_ASSET   |
| selected profile installed                | PLAY                |
| selected Mods profile not installable     | cleanup, recompute  |
| otherwise                                 | INSTALL             |

A single busy flag guards sync, install, package and play so that no two
long-running operations overlap.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace

import structlog

from am2r_launcher.core.errors import BusyError, IllegalTransitionError
from am2r_launcher.core.types import OperationKind, PackageAction, PrimaryAction
from am2r_launcher.formats.profile_xml import ProfileDescriptor

logger = structlog.get_logger()

_BUSY_ACTIONS = {
    OperationKind.SYNC: PrimaryAction.DOWNLOADING,
    OperationKind.INSTALL: PrimaryAction.INSTALLING,
    OperationKind.PLAY: PrimaryAction.PLAYING,
}


@dataclass(frozen=True)
class LifecycleInputs:
    """Observed environment the state is derived from."""

    repository_valid: bool
    base_asset_valid: bool
    profile: ProfileDescriptor | None = None
    profile_installed: bool = False
    # Only Mods entries can be deleted; the primary lives in PatchData
    profile_removable: bool = True


@dataclass(frozen=True)
class LifecycleState:
    """Derived launcher state.

    Attributes:
        primary: Primary action
        package: Android packaging action
        package_enabled: Whether packaging can start
        package_disabled_reason: Why packaging is unavailable
        needs_cleanup: The selected profile is an orphaned archive that must be deleted
    """

    primary: PrimaryAction
    package: PackageAction = PackageAction.CREATE
    package_enabled: bool = False
    package_disabled_reason: str | None = None
    needs_cleanup: bool = False


class LifecycleStateMachine:
    """Derives launcher state and owns the busy flag."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: OperationKind | None = None
        self._state = LifecycleState(primary=PrimaryAction.DOWNLOAD)

    @property
    def state(self) -> LifecycleState:
        with self._lock:
            return self._state

    @property
    def active(self) -> OperationKind | None:
        with self._lock:
            return self._active

    @property
    def is_busy(self) -> bool:
        return self.active is not None

    def derive(self, inputs: LifecycleInputs) -> LifecycleState:
        """Recompute the state, unless an operation is running."""
        with self._lock:
            if self._active is not None:
                return self._state
            self._state = self._compute(inputs)
            return self._state

    @staticmethod
    def _compute(inputs: LifecycleInputs) -> LifecycleState:
        if not inputs.repository_valid:
            primary = PrimaryAction.DOWNLOAD
        elif not inputs.base_asset_valid:
            primary = PrimaryAction.SELECT_BASE_ASSET
        elif inputs.profile is not None and inputs.profile_installed:
            primary = PrimaryAction.PLAY
        elif (
            inputs.profile is not None
            and not inputs.profile.installable
            and inputs.profile_removable
        ):
            return LifecycleState(
                primary=PrimaryAction.INSTALL,
                package_disabled_reason="Profile is being removed",
                needs_cleanup=True,
            )
        else:
            primary = PrimaryAction.INSTALL

        reason = _package_disabled_reason(inputs.profile, primary)
        return LifecycleState(
            primary=primary,
            package_enabled=reason is None,
            package_disabled_reason=reason,
        )

    def begin(self, kind: OperationKind) -> None:
        """Mark an operation as running.

        Raises:
            BusyError: If another operation is already running
        """
        with self._lock:
            if self._active is not None:
                raise BusyError(
                    f"Cannot start {kind.value} while {self._active.value} is running",
                    active=self._active.value,
                )
            self._active = kind
            if kind == OperationKind.PACKAGE:
                self._state = replace(
                    self._state,
                    package=PackageAction.CREATING,
                    package_enabled=False,
                    package_disabled_reason="Android package is being created",
                )
            else:
                self._state = replace(
                    self._state,
                    primary=_BUSY_ACTIONS[kind],
                    package_enabled=False,
                    package_disabled_reason=f"{kind.value} in progress",
                )
        logger.debug("operation_begin", kind=kind.value)

    def end(self) -> None:
        """Clear the busy flag."""
        with self._lock:
            kind, self._active = self._active, None
            self._state = replace(self._state, package=PackageAction.CREATE)
        if kind is not None:
            logger.debug("operation_end", kind=kind.value)

    @contextmanager
    def operation(self, kind: OperationKind) -> Iterator[None]:
        """Hold the busy flag for the duration of a block."""
        self.begin(kind)
        try:
            yield
        finally:
            self.end()

    def check_action(self, expected: PrimaryAction) -> None:
        """Reject an action that no longer matches the current state.

        Raises:
            IllegalTransitionError: If the current primary action differs
        """
        current = self.state.primary
        if current != expected:
            raise IllegalTransitionError(
                f"Cannot {expected.value}: current action is {current.value}",
                expected=expected.value,
                actual=current.value,
            )


def _package_disabled_reason(
    profile: ProfileDescriptor | None,
    primary: PrimaryAction,
) -> str | None:
    if profile is None:
        return "No profile selected"
    if not profile.supports_android:
        return f"{profile.name} does not support Android"
    if not profile.installable:
        return f"{profile.name} is an archived profile"
    if primary not in (PrimaryAction.INSTALL, PrimaryAction.PLAY):
        return "Download PatchData and select the base archive first"
    return None
