"""Profile discovery across PatchData and the Mods directory."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import structlog

from am2r_launcher.core.config import LauncherConfig
from am2r_launcher.core.errors import ProfileManifestError
from am2r_launcher.core.platforms import PlatformStrategy
from am2r_launcher.core.utils import delete_directory
from am2r_launcher.formats.profile_xml import MANIFEST_NAME, ProfileDescriptor, ProfileXmlParser

logger = structlog.get_logger()

PRIMARY_CONTENT_PATH = "PatchData/data"


@dataclass(frozen=True)
class SkippedEntry:
    """A Mods entry left out of discovery.

    Attributes:
        path: Manifest path
        reason: Why the entry was skipped
    """

    path: Path
    reason: str


class ProfileCatalog:
    """Builds the ordered list of available profiles.

    The primary profile from PatchData always comes first, followed by
    Mods entries in sorted directory order. The list is rebuilt wholesale
    on every discover() call.
    """

    def __init__(
        self,
        config: LauncherConfig,
        strategy: PlatformStrategy,
        parser: ProfileXmlParser | None = None,
    ):
        self.config = config
        self.strategy = strategy
        self.parser = parser or ProfileXmlParser()
        self.skipped: list[SkippedEntry] = []
        self._profiles: list[ProfileDescriptor] | None = None

    @property
    def profiles(self) -> list[ProfileDescriptor]:
        """Profiles from the last discovery, discovering on first access."""
        if self._profiles is None:
            return self.discover()
        return self._profiles

    def discover(self) -> list[ProfileDescriptor]:
        """Scan PatchData and Mods for profile manifests.

        Malformed manifests and duplicate names are skipped and recorded
        in ``skipped``. Archived entries without an installation are
        deleted.
        """
        self.skipped = []
        profiles: list[ProfileDescriptor] = []
        names: set[str] = set()

        primary_manifest = self.config.patch_data_dir / MANIFEST_NAME
        if primary_manifest.is_file():
            primary = self._load(primary_manifest)
            if primary is not None:
                primary.content_path = PRIMARY_CONTENT_PATH
                profiles.append(primary)
                names.add(primary.name)

        mods_dir = self.config.mods_dir
        mods_dir.mkdir(parents=True, exist_ok=True)

        for entry in sorted(mods_dir.iterdir()):
            manifest = entry / MANIFEST_NAME
            if not entry.is_dir() or not manifest.is_file():
                continue

            profile = self._load(manifest)
            if profile is None:
                continue
            profile.content_path = f"Mods/{entry.name}"

            if profile.name in names:
                logger.warning("profile_duplicate_skipped", name=profile.name, path=str(manifest))
                self.skipped.append(SkippedEntry(manifest, f"duplicate profile name {profile.name!r}"))
                continue

            if not profile.installable and not self.is_installed(profile):
                logger.info("stale_archive_removed", name=profile.name)
                self.delete(profile)
                continue

            profiles.append(profile)
            names.add(profile.name)

        logger.info("profiles_loaded", count=len(profiles), skipped=len(self.skipped))
        self._profiles = profiles
        return profiles

    def find(self, name: str) -> ProfileDescriptor | None:
        """Look up a discovered profile by name."""
        for profile in self.profiles:
            if profile.name == name:
                return profile
        return None

    def install_dir(self, profile: ProfileDescriptor) -> Path:
        return self.config.profiles_dir / profile.name

    def is_installed(self, profile: ProfileDescriptor) -> bool:
        return self.strategy.is_installed(self.install_dir(profile))

    def delete(self, profile: ProfileDescriptor) -> None:
        """Remove a profile's Mods entry, its zip and its installation.

        The primary profile's content in PatchData is never touched.
        """
        logger.info("profile_delete", name=profile.name)

        if profile.content_path and profile.content_path.startswith("Mods/"):
            content_dir = self.config.root_dir / profile.content_path
            delete_directory(content_dir)
            content_dir.with_name(content_dir.name + ".zip").unlink(missing_ok=True)

        delete_directory(self.install_dir(profile))

        if self._profiles is not None:
            self._profiles = [p for p in self._profiles if p.name != profile.name]

    def _load(self, manifest: Path) -> ProfileDescriptor | None:
        try:
            return self.parser.parse_file(manifest)
        except (ProfileManifestError, ValueError) as e:
            logger.warning("profile_manifest_skipped", path=str(manifest), error=str(e))
            self.skipped.append(SkippedEntry(manifest, str(e)))
            return None
