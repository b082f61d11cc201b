"""Base archive verification.

The unpatched game archive (AM2R_11.zip) is checked by extracting three
entries and comparing their MD5 digests against known values:

1. The executable must exist at the archive root
2. The primary data file must match its digest
3. The auxiliary library must match its digest

Verdicts are cached per archive digest so unchanged archives are not
re-extracted.
"""

from __future__ import annotations

import shutil
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path

import structlog

from am2r_launcher.core.config import BaseAssetSpec
from am2r_launcher.core.errors import InvalidBaseAssetError
from am2r_launcher.core.types import ValidationResult
from am2r_launcher.core.utils import compute_file_md5, rollover_file

logger = structlog.get_logger()


@dataclass(frozen=True)
class ValidationCache:
    """Verdict computed for one archive digest.

    Attributes:
        digest: MD5 of the archive the verdict was computed for
        verdict: Validation result for that archive
    """

    digest: str
    verdict: ValidationResult

    def matches(self, digest: str) -> bool:
        return digest != "" and digest == self.digest


class BaseAssetValidator:
    """Validates that an archive is the expected unpatched game release."""

    def __init__(self, expected: BaseAssetSpec | None = None):
        self.expected = expected or BaseAssetSpec()

    def validate(self, archive: Path) -> ValidationResult:
        """Validate a base archive.

        Args:
            archive: Path to the zip archive

        Returns:
            The first failing check, or VALID
        """
        try:
            zf = zipfile.ZipFile(archive)
        except (zipfile.BadZipFile, OSError) as e:
            logger.info("base_asset_unreadable", path=str(archive), error=str(e))
            return ValidationResult.MISSING_EXECUTABLE

        with zf, tempfile.TemporaryDirectory(prefix="am2r-validate-") as tmp:
            tmp_dir = Path(tmp)
            names = zf.namelist()

            executable = self.expected.executable
            if executable not in names:
                if any(executable in name for name in names):
                    return ValidationResult.EXECUTABLE_IN_SUBDIRECTORY
                return ValidationResult.MISSING_EXECUTABLE

            if self._entry_digest(zf, executable, tmp_dir) != self.expected.executable_md5:
                return ValidationResult.INVALID_EXECUTABLE_DIGEST

            if (
                self.expected.data_file not in names
                or self._entry_digest(zf, self.expected.data_file, tmp_dir)
                != self.expected.data_file_md5
            ):
                return ValidationResult.MISSING_OR_INVALID_PRIMARY_DATA_FILE

            if (
                self.expected.library not in names
                or self._entry_digest(zf, self.expected.library, tmp_dir)
                != self.expected.library_md5
            ):
                return ValidationResult.MISSING_OR_INVALID_AUXILIARY_LIBRARY

        logger.info("base_asset_valid", path=str(archive))
        return ValidationResult.VALID

    @staticmethod
    def _entry_digest(zf: zipfile.ZipFile, name: str, tmp_dir: Path) -> str:
        return compute_file_md5(zf.extract(name, tmp_dir))


class BaseAssetStore:
    """The launcher's single base archive and its cached verdict.

    Invalid archives are rotated to numbered backups (AM2R_11.zip.1, ...)
    rather than deleted.
    """

    def __init__(self, path: Path, validator: BaseAssetValidator | None = None):
        self.path = path
        self.validator = validator or BaseAssetValidator()
        self.cache: ValidationCache | None = None

    def is_valid(self) -> bool:
        """Check whether a valid base archive is in place.

        The cached verdict is reused only while the archive digest is
        unchanged.
        """
        digest = compute_file_md5(self.path)
        if digest == "":
            self.cache = None
            return False

        if self.cache is not None and self.cache.matches(digest):
            return self.cache.verdict == ValidationResult.VALID

        verdict = self.validator.validate(self.path)
        self.cache = ValidationCache(digest=digest, verdict=verdict)

        if verdict != ValidationResult.VALID:
            logger.warning("base_asset_invalid", path=str(self.path), result=verdict.value)
            rollover_file(self.path)
            return False
        return True

    def import_archive(self, source: Path) -> ValidationResult:
        """Validate a user-selected archive and copy it into place.

        Raises:
            InvalidBaseAssetError: If the archive fails validation
        """
        verdict = self.validator.validate(source)
        if verdict != ValidationResult.VALID:
            raise InvalidBaseAssetError(
                f"{source.name} is not a valid base archive: {verdict.value}",
                result=verdict.value,
            )

        self.path.parent.mkdir(parents=True, exist_ok=True)
        if source.resolve() != self.path.resolve():
            shutil.copyfile(source, self.path)
        self.cache = ValidationCache(digest=compute_file_md5(self.path), verdict=verdict)
        logger.info("base_asset_imported", source=str(source), path=str(self.path))
        return verdict
