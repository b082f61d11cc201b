"""Configuration management for am2r-launcher."""

from __future__ import annotations

import json
import re
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, field_validator

from am2r_launcher.core.types import Platform

logger = structlog.get_logger()

GIT_URL_PATTERN = re.compile(r"^https://.*\.git$")

DEFAULT_MIRRORS: dict[Platform, list[str]] = {
    Platform.WINDOWS: [
        "https://github.com/AM2R-Community-Developers/AM2R-Autopatcher-Windows.git",
        "https://gitlab.com/am2r-community-developers/AM2R-Autopatcher-Windows.git",
    ],
    Platform.LINUX: [
        "https://github.com/AM2R-Community-Developers/AM2R-Autopatcher-Linux.git",
        "https://gitlab.com/am2r-community-developers/AM2R-Autopatcher-Linux.git",
    ],
    Platform.MAC: [
        "https://github.com/Miepee/AM2R-Autopatcher-Mac.git",
    ],
}


def _default_mirrors() -> dict[Platform, list[str]]:
    return {platform: list(urls) for platform, urls in DEFAULT_MIRRORS.items()}


class MirrorConfig(BaseModel):
    """Content repository mirrors."""

    # Order matters: index 0 is the default mirror
    mirrors: dict[Platform, list[str]] = Field(
        default_factory=_default_mirrors,
        description="Mirror URLs per platform in priority order"
    )
    mirror_index: int = Field(default=0, description="Selected mirror index")
    custom_mirror: str | None = Field(
        default=None,
        description="User-supplied mirror, overrides the list entirely"
    )

    def mirrors_for(self, platform: Platform) -> list[str]:
        """Get the effective mirror list for a platform."""
        if self.custom_mirror:
            return [self.custom_mirror]
        return self.mirrors.get(platform, [])

    def current_mirror(self, platform: Platform) -> str:
        """Get the selected mirror URL for a platform.

        Raises:
            ValueError: If the platform has no mirrors
        """
        mirrors = self.mirrors_for(platform)
        if not mirrors:
            raise ValueError(f"No mirrors configured for {platform}")
        if self.custom_mirror:
            return mirrors[0]
        return mirrors[min(self.mirror_index, len(mirrors) - 1)]

    @field_validator("mirror_index")
    @classmethod
    def validate_mirror_index(cls, v: int) -> int:
        """Validate mirror index value."""
        if v < 0:
            raise ValueError("Mirror index must be non-negative")
        return v

    @field_validator("custom_mirror")
    @classmethod
    def validate_custom_mirror(cls, v: str | None) -> str | None:
        """Validate that a custom mirror looks like an https git URL."""
        if v is None or v == "":
            return None
        if not GIT_URL_PATTERN.match(v):
            raise ValueError(f"Invalid git URL: {v}")
        return v


class BaseAssetSpec(BaseModel):
    """Expected contents of the unpatched base archive."""

    archive_name: str = Field(default="AM2R_11.zip", description="Archive file name")
    executable: str = Field(default="AM2R.exe", description="Primary executable entry")
    executable_md5: str = Field(default="15253f7a66d6ea3feef004ebbee9b438")
    data_file: str = Field(default="data.win", description="Primary data file entry")
    data_file_md5: str = Field(default="f2b84fe5ba64cb64e284be1066ca08ee")
    library: str = Field(default="D3DX9_43.dll", description="Auxiliary library entry")
    library_md5: str = Field(default="86e39e9161c3d930d93822f1563c280d")

    @field_validator("executable_md5", "data_file_md5", "library_md5")
    @classmethod
    def validate_md5(cls, v: str) -> str:
        """Validate a hex MD5 digest."""
        v = v.lower()
        if len(v) != 32 or any(c not in "0123456789abcdef" for c in v):
            raise ValueError(f"Invalid MD5 digest: {v}")
        return v


class LauncherConfig(BaseModel):
    """Launcher configuration."""

    # Directory settings
    config_dir: Path = Field(
        default=Path.home() / ".config" / "am2r-launcher",
        description="Configuration directory"
    )
    root_dir: Path = Field(
        default=Path.home() / ".local" / "share" / "AM2RLauncher",
        description="Launcher data root holding PatchData, Mods and Profiles"
    )

    platform: Platform = Field(default_factory=Platform.current, description="Target platform")
    mirrors: MirrorConfig = Field(default_factory=MirrorConfig)
    base_asset: BaseAssetSpec = Field(default_factory=BaseAssetSpec)

    # Behaviour settings
    auto_update: bool = Field(default=True, description="Pull PatchData on startup")
    use_hq_music: bool = Field(default=False, description="Install HQ music")
    use_hq_music_android: bool = Field(default=False, description="Package HQ music into APKs")
    profile_debug_log: bool = Field(default=True, description="Write game logs when playing")
    build_appimage: bool = Field(default=True, description="Package Linux installs as AppImage")
    keep_failed_installs: bool = Field(
        default=False,
        description="Keep the staging directory of a failed install for diagnosis"
    )
    connectivity_timeout: float = Field(default=10.0, description="Connectivity probe timeout")
    selected_profile: str | None = Field(default=None, description="Last selected profile name")

    # Output settings
    output_format: str = Field(
        default="rich",
        description="Output format (rich, json, plain)"
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    @property
    def patch_data_dir(self) -> Path:
        return self.root_dir / "PatchData"

    @property
    def mods_dir(self) -> Path:
        return self.root_dir / "Mods"

    @property
    def profiles_dir(self) -> Path:
        return self.root_dir / "Profiles"

    @property
    def base_asset_path(self) -> Path:
        return self.root_dir / self.base_asset.archive_name

    @property
    def temp_dir(self) -> Path:
        return self.root_dir / "temp"

    @property
    def current_mirror(self) -> str:
        return self.mirrors.current_mirror(self.platform)

    def ensure_directories(self) -> None:
        """Create the launcher root directories."""
        self.root_dir.mkdir(parents=True, exist_ok=True)
        self.mods_dir.mkdir(parents=True, exist_ok=True)
        self.profiles_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def load(cls, config_file: Path | None = None) -> LauncherConfig:
        """Load configuration from file.

        Args:
            config_file: Path to config file, uses default if None

        Returns:
            Launcher configuration
        """
        if config_file is None:
            config_file = Path.home() / ".config" / "am2r-launcher" / "config.json"

        if config_file.exists():
            with open(config_file) as f:
                data = json.load(f)
                return cls(**data)

        # Return defaults
        return cls()

    def save(self, config_file: Path | None = None) -> None:
        """Save configuration to file.

        Args:
            config_file: Path to config file, uses default if None
        """
        if config_file is None:
            config_file = self.config_dir / "config.json"

        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

        logger.info("config_saved", path=str(config_file))

    @field_validator("output_format")
    @classmethod
    def validate_output_format(cls, v: str) -> str:
        """Validate output format."""
        valid_formats = {"rich", "json", "plain"}
        if v not in valid_formats:
            raise ValueError(f"Invalid output format: {v}. Valid formats: {valid_formats}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Valid levels: {valid_levels}")
        return v

    @field_validator("connectivity_timeout")
    @classmethod
    def validate_connectivity_timeout(cls, v: float) -> float:
        """Validate connectivity timeout value."""
        if v <= 0:
            raise ValueError("Connectivity timeout must be positive")
        return v
