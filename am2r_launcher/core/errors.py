"""Exception taxonomy for launcher operations.

Every error raised by a pipeline component derives from LauncherError so
the launcher can surface it uniformly and return to a safe state.
"""

from __future__ import annotations

from enum import StrEnum


class LauncherError(Exception):
    """Base class for all launcher errors."""


class NetworkUnavailableError(LauncherError):
    """Raised when a mirror cannot be reached (DNS, connect or TLS failure).

    Attributes:
        url: Mirror URL that was being contacted
    """

    def __init__(self, message: str, *, url: str | None = None):
        self.url = url
        super().__init__(message)


class CorruptRepositoryError(LauncherError):
    """Raised when the PatchData working tree is structurally broken.

    The caller is expected to delete the working tree and clone again.
    """

    def __init__(self, message: str, *, path: str | None = None):
        self.path = path
        super().__init__(message)


class SyncCancelledError(LauncherError):
    """Raised when the user aborts a clone or pull through the progress callback."""


class InvalidBaseAssetError(LauncherError):
    """Raised when a user-supplied base archive fails validation.

    Attributes:
        result: The ValidationResult value describing the failure
    """

    def __init__(self, message: str, *, result: str | None = None):
        self.result = result
        super().__init__(message)


class ToolMissingError(LauncherError):
    """Raised when an external tool cannot be started."""

    def __init__(self, message: str, *, tool: str | None = None):
        self.tool = tool
        super().__init__(message)


class JavaMissingError(ToolMissingError):
    """Raised when no Java runtime is available for Android packaging."""


class ToolExecutionError(LauncherError):
    """Raised when an external tool exits with a nonzero status.

    Attributes:
        tool: Tool executable
        exit_code: Process exit code
        stderr: Captured standard error output
    """

    def __init__(
        self,
        message: str,
        *,
        tool: str | None = None,
        exit_code: int | None = None,
        stderr: str = "",
    ):
        self.tool = tool
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(message)


class PatchFailedError(ToolExecutionError):
    """Raised when xdelta3 fails to apply a patch."""


class PatchFinalizeError(LauncherError):
    """Raised when a patched file cannot replace its original.

    The patched artifact is left on disk for manual recovery.

    Attributes:
        artifact: Path of the patched output that was kept
    """

    def __init__(self, message: str, *, artifact: str | None = None):
        self.artifact = artifact
        super().__init__(message)


class InstallStep(StrEnum):
    """Steps of the installation pipeline, used to identify failures."""

    PREPARE = "prepare"
    EXTRACT = "extract"
    RESOLVE_NAMES = "resolve_names"
    PATCH = "patch"
    COPY_FILES = "copy_files"
    POST_PROCESS = "post_process"
    COPY_MANIFEST = "copy_manifest"
    FINALIZE = "finalize"


class InstallError(LauncherError):
    """Raised when a step of the installation pipeline fails.

    Attributes:
        step: The failing InstallStep
        profile: Name of the profile being installed
    """

    def __init__(
        self,
        message: str,
        *,
        step: InstallStep,
        profile: str | None = None,
    ):
        self.step = step
        self.profile = profile
        super().__init__(message)


class PackagingError(LauncherError):
    """Raised when Android packaging fails outside of a tool invocation."""


class ArchiveError(LauncherError):
    """Raised when a profile cannot be archived."""


class ProfileManifestError(LauncherError):
    """Raised when a profile.xml cannot be parsed."""

    def __init__(self, message: str, *, path: str | None = None):
        self.path = path
        super().__init__(message)


class BusyError(LauncherError):
    """Raised when a long-running operation is requested while another runs."""

    def __init__(self, message: str, *, active: str | None = None):
        self.active = active
        super().__init__(message)


class IllegalTransitionError(LauncherError):
    """Raised when an action does not match the current lifecycle state."""

    def __init__(
        self,
        message: str,
        *,
        expected: str | None = None,
        actual: str | None = None,
    ):
        self.expected = expected
        self.actual = actual
        super().__init__(message)
