"""Profile archival.

Archiving demotes an installed profile to a read-only launch reference:
the installation is renamed to "<name> (<version>)" and a non-installable
manifest is written to Mods under the same name.
"""

from __future__ import annotations

import re

import structlog

from am2r_launcher.core.config import LauncherConfig
from am2r_launcher.core.errors import ArchiveError, ProfileManifestError
from am2r_launcher.core.platforms import PlatformStrategy
from am2r_launcher.core.utils import delete_directory
from am2r_launcher.formats.profile_xml import MANIFEST_NAME, ProfileDescriptor, ProfileXmlParser

logger = structlog.get_logger()

_LATEST_QUALIFIER = re.compile(r"\s*\(?\bLatest\)?\s*$", re.IGNORECASE)


def archive_name(profile: ProfileDescriptor) -> str:
    """Compute the archived name of a profile.

    Example:
        >>> archive_name(ProfileDescriptor(Name="Community Updates (Latest)", Version="1.5.5"))
        'Community Updates (1.5.5)'
    """
    base = _LATEST_QUALIFIER.sub("", profile.name) or profile.name
    return f"{base} ({profile.version})"


class ArchivalManager:
    """Archives installed profiles."""

    def __init__(
        self,
        config: LauncherConfig,
        strategy: PlatformStrategy,
        parser: ProfileXmlParser | None = None,
    ):
        self.config = config
        self.strategy = strategy
        self.parser = parser or ProfileXmlParser()

    def archive(self, profile: ProfileDescriptor) -> ProfileDescriptor:
        """Archive a profile.

        An existing Profiles/<archive name> directory is treated as a user
        archive: only the original installation is removed. An existing
        Mods/<archive name> entry is never overwritten; it already describes
        the archive, so the renamed installation is kept and stays playable
        under that entry.

        Args:
            profile: Profile to archive, left unmodified

        Returns:
            The archived descriptor

        Raises:
            ArchiveError: If the filesystem operations fail
        """
        archived = profile.model_copy(deep=True)
        archived.name = archive_name(profile)
        archived.installable = False
        archived.content_path = f"Mods/{archived.name}"

        original_dir = self.config.profiles_dir / profile.name
        archive_dir = self.config.profiles_dir / archived.name
        mods_entry = self.config.mods_dir / archived.name

        logger.info("profile_archive_start", name=profile.name, archive=archived.name)
        try:
            if archive_dir.exists():
                delete_directory(original_dir)
                logger.info("profile_archive_exists", archive=archived.name)
                return archived

            if original_dir.exists():
                original_dir.rename(archive_dir)

            if mods_entry.exists():
                logger.info("mods_archive_exists", archive=archived.name)
                return archived

            self.parser.build_file(archived, mods_entry / MANIFEST_NAME)
        except (OSError, ValueError) as e:
            raise ArchiveError(f"Cannot archive {profile.name}: {e}") from e

        logger.info("profile_archived", archive=archived.name)
        return archived

    def archive_outdated_primary(self, primary: ProfileDescriptor) -> ProfileDescriptor | None:
        """Archive the installed primary profile if the repository moved on.

        Compares the manifest copied at install time with the repository
        manifest.

        Returns:
            The archived descriptor, or None when nothing was archived
        """
        install_dir = self.config.profiles_dir / primary.name
        if not self.strategy.is_installed(install_dir):
            return None

        installed_manifest = install_dir / MANIFEST_NAME
        try:
            installed = self.parser.parse_file(installed_manifest)
        except (ProfileManifestError, ValueError) as e:
            logger.warning("installed_manifest_unreadable", path=str(installed_manifest), error=str(e))
            return None

        if installed.same_version(primary):
            return None

        logger.info(
            "primary_profile_outdated",
            installed=installed.version,
            available=primary.version,
        )
        # Archive under the installed directory's name
        installed.name = primary.name
        return self.archive(installed)
