"""Core type definitions for am2r_launcher."""

import sys
from enum import StrEnum

from pydantic import BaseModel, Field


class Platform(StrEnum):
    """Target operating systems with distinct installation layouts."""
    WINDOWS = "windows"
    LINUX = "linux"
    MAC = "mac"

    @classmethod
    def current(cls) -> "Platform":
        """Detect the platform the launcher runs on."""
        if sys.platform.startswith("win"):
            return cls.WINDOWS
        if sys.platform == "darwin":
            return cls.MAC
        return cls.LINUX


class ValidationResult(StrEnum):
    """Verdicts of base archive validation."""
    VALID = "valid"
    MISSING_EXECUTABLE = "missing_executable"
    EXECUTABLE_IN_SUBDIRECTORY = "executable_in_subdirectory"
    INVALID_EXECUTABLE_DIGEST = "invalid_executable_digest"
    MISSING_OR_INVALID_PRIMARY_DATA_FILE = "missing_or_invalid_primary_data_file"
    MISSING_OR_INVALID_AUXILIARY_LIBRARY = "missing_or_invalid_auxiliary_library"


class WorkingTreeStatus(StrEnum):
    """State of the local PatchData clone."""
    ABSENT = "absent"
    VALID = "valid"
    CORRUPT = "corrupt"


class PrimaryAction(StrEnum):
    """What the primary launcher action does next."""
    DOWNLOAD = "download"
    DOWNLOADING = "downloading"
    SELECT_BASE_ASSET = "select_base_asset"
    INSTALL = "install"
    INSTALLING = "installing"
    PLAY = "play"
    PLAYING = "playing"

    @property
    def is_busy(self) -> bool:
        return self in (PrimaryAction.DOWNLOADING, PrimaryAction.INSTALLING, PrimaryAction.PLAYING)


class PackageAction(StrEnum):
    """State of the Android packaging action."""
    CREATE = "create"
    CREATING = "creating"


class OperationKind(StrEnum):
    """Long-running operations guarded by the busy flag."""
    SYNC = "sync"
    INSTALL = "install"
    PACKAGE = "package"
    PLAY = "play"


class ProgressEvent(BaseModel):
    """Progress update delivered from a worker to the interactive side."""
    percent: int = Field(..., ge=0, le=100, description="Progress from 0 to 100")
    status: str | None = Field(None, description="Optional status text")


class TransferProgress(BaseModel):
    """Git transfer progress for clone and pull operations."""
    received_objects: int = Field(default=0, description="Objects received so far")
    total_objects: int = Field(default=0, description="Total objects to receive")
    received_bytes: int = Field(default=0, description="Bytes received so far")
    stage: str = Field(default="", description="Git progress stage")

    @property
    def percent(self) -> int:
        """Integer percentage of received objects."""
        if self.total_objects <= 0:
            return 0
        return min(100, self.received_objects * 100 // self.total_objects)

    def display(self) -> str:
        """Format the transfer progress as a status line."""
        megabytes = self.received_bytes // 1_000_000
        return (
            f"{self.received_objects} ({megabytes}MB) / "
            f"{self.total_objects} objects"
        )
