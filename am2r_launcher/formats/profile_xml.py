"""profile.xml manifest format.

A profile manifest is a single ``<message>`` element whose attributes
describe one installable game variant::

    <message OperatingSystem="Windows" XMLVersion="1" Version="1.5.5"
             Name="Community Updates (Latest)" Author="AM2R Community"
             UsesCustomMusic="false" SaveLocation="%localappdata%/AM2R"
             SupportsAndroid="true" UsesYYC="true" Installable="true"
             ProfileNotes="" />

One manifest lives at the PatchData root (the primary profile) and one in
each Mods/<name>/ directory.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import PureWindowsPath

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from am2r_launcher.core.errors import ProfileManifestError
from am2r_launcher.formats.base import FormatParser

MANIFEST_NAME = "profile.xml"
ROOT_TAG = "message"

# Profile names and versions become directory names under Profiles/ and Mods/
_PATH_SEPARATORS = ("/", "\\", "\0")


class ProfileDescriptor(BaseModel):
    """Identity and installation metadata of one profile."""

    operating_system: str = Field(default="", alias="OperatingSystem")
    xml_version: int = Field(default=1, alias="XMLVersion")
    version: str = Field(default="", alias="Version")
    name: str = Field(..., alias="Name", min_length=1)
    author: str = Field(default="", alias="Author")
    uses_custom_music: bool = Field(default=False, alias="UsesCustomMusic")
    save_location: str = Field(default="", alias="SaveLocation")
    supports_android: bool = Field(default=False, alias="SupportsAndroid")
    uses_yyc: bool = Field(
        default=False,
        alias="UsesYYC",
        description="Built with the YoYo compiler; selects the combined patch set"
    )
    installable: bool = Field(default=True, alias="Installable")
    notes: str = Field(default="", alias="ProfileNotes")

    # Assigned by ProfileCatalog at discovery, never persisted
    content_path: str | None = Field(default=None, exclude=True)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate that the name is usable as a single directory name."""
        if v.strip() in (".", ".."):
            raise ValueError(f"Invalid profile name: {v!r}")
        if any(separator in v for separator in _PATH_SEPARATORS):
            raise ValueError(f"Profile name must not contain path separators: {v!r}")
        if PureWindowsPath(v).drive:
            raise ValueError(f"Profile name must not be a drive: {v!r}")
        return v

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        """Validate that the version can be appended to archive names."""
        if any(separator in v for separator in _PATH_SEPARATORS):
            raise ValueError(f"Profile version must not contain path separators: {v!r}")
        return v

    def version_key(self) -> tuple[str, ...]:
        """Split the version into components for component-wise comparison."""
        return tuple(self.version.split("."))

    def same_version(self, other: ProfileDescriptor) -> bool:
        return self.version_key() == other.version_key()


def _format_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class ProfileXmlParser(FormatParser[ProfileDescriptor]):
    """Parser for profile.xml manifests."""

    def parse(self, data: bytes | str) -> ProfileDescriptor:
        """Parse a profile.xml document.

        Raises:
            ProfileManifestError: If the XML is malformed or misses required attributes
        """
        try:
            root = ET.fromstring(data)
        except ET.ParseError as e:
            raise ProfileManifestError(f"Malformed profile manifest: {e}") from e

        if root.tag != ROOT_TAG:
            raise ProfileManifestError(
                f"Unexpected root element <{root.tag}>, expected <{ROOT_TAG}>"
            )

        try:
            return ProfileDescriptor.model_validate(dict(root.attrib))
        except ValidationError as e:
            raise ProfileManifestError(f"Invalid profile manifest: {e}") from e

    def build(self, obj: ProfileDescriptor) -> bytes:
        """Serialize a profile to profile.xml bytes.

        The runtime content path is never written.
        """
        attributes = {
            key: _format_value(value)
            for key, value in obj.model_dump(by_alias=True).items()
        }
        root = ET.Element(ROOT_TAG, attributes)
        ET.indent(root)
        return ET.tostring(root, encoding="utf-8", xml_declaration=True)
