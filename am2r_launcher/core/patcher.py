"""Binary patch application with xdelta3."""

from __future__ import annotations

import os
from pathlib import Path

import structlog

from am2r_launcher.core.errors import PatchFailedError, PatchFinalizeError
from am2r_launcher.core.process import ProcessRunner
from am2r_launcher.core.utils import relative_to_root

logger = structlog.get_logger()

BUNDLED_XDELTA = Path("PatchData") / "utilities" / "xdelta" / "xdelta3.exe"
SYSTEM_XDELTA = "xdelta3"


class XdeltaPatcher:
    """Applies VCDIFF patches with the xdelta3 command line tool.

    Paths are passed to xdelta3 relative to the working directory, which
    is the launcher root.
    """

    def __init__(
        self,
        runner: ProcessRunner,
        tool: str | Path,
        working_dir: Path,
    ):
        self.runner = runner
        self.tool = tool
        self.working_dir = working_dir

    def is_available(self) -> bool:
        """Probe whether xdelta3 can be started."""
        return self.runner.is_available(self.tool, ["-V"])

    def apply(self, original: Path, patch: Path, output: Path) -> None:
        """Apply a patch to a file.

        When output is the same file as original, the result is written
        next to it with a trailing underscore and then moved over the
        original.

        Args:
            original: Source file
            patch: xdelta patch file
            output: Destination file

        Raises:
            ToolMissingError: If xdelta3 cannot be started
            PatchFailedError: If xdelta3 exits with a nonzero status
            PatchFinalizeError: If no patched file was written or it cannot
                replace the original
        """
        in_place = original.resolve() == output.resolve()
        target = output.with_name(output.name + "_") if in_place else output

        args = [
            "-f", "-d", "-s",
            relative_to_root(original, self.working_dir),
            relative_to_root(patch, self.working_dir),
            relative_to_root(target, self.working_dir),
        ]

        result = self.runner.run(self.tool, args, cwd=self.working_dir)
        if not result.ok:
            logger.error(
                "patch_failed",
                original=str(original),
                patch=str(patch),
                exit_code=result.exit_code,
                stderr=result.stderr.strip(),
            )
            raise PatchFailedError(
                f"xdelta3 failed to apply {patch.name} to {original.name} "
                f"(exit code {result.exit_code})",
                tool=str(self.tool),
                exit_code=result.exit_code,
                stderr=result.stderr,
            )

        if not target.is_file():
            logger.error("patch_output_missing", patch=patch.name, output=str(target))
            raise PatchFinalizeError(
                f"xdelta3 did not produce {target.name} from {patch.name}",
                artifact=str(target),
            )

        if in_place:
            try:
                os.replace(target, original)
            except OSError as e:
                raise PatchFinalizeError(
                    f"Cannot replace {original} with patched file: {e}",
                    artifact=str(target),
                ) from e

        logger.debug("patch_applied", patch=patch.name, output=str(output))
