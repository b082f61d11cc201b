"""Core functionality for am2r_launcher.

This module provides the installation pipeline and its shared pieces:
- Configuration management
- Type definitions and errors
- Repository synchronization
- Base archive validation
- Profile catalog, installation and archival
"""

from am2r_launcher.core.errors import (
    InstallError,
    InstallStep,
    LauncherError,
)
from am2r_launcher.core.types import (
    OperationKind,
    PackageAction,
    Platform,
    PrimaryAction,
    ProgressEvent,
    TransferProgress,
    ValidationResult,
    WorkingTreeStatus,
)
from am2r_launcher.core.utils import (
    chunked_read,
    compute_file_md5,
    copy_tree,
    delete_directory,
    format_size,
    rollover_file,
)

__all__ = [
    # Errors
    "LauncherError",
    "InstallError",
    "InstallStep",
    # Types
    "Platform",
    "ValidationResult",
    "WorkingTreeStatus",
    "PrimaryAction",
    "PackageAction",
    "OperationKind",
    "ProgressEvent",
    "TransferProgress",
    # Utils
    "chunked_read",
    "compute_file_md5",
    "copy_tree",
    "delete_directory",
    "format_size",
    "rollover_file",
]
