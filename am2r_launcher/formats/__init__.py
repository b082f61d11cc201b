"""Manifest formats used by the launcher.

- profile.xml: per-profile metadata in PatchData and Mods entries
"""

from am2r_launcher.formats.base import FormatParser
from am2r_launcher.formats.profile_xml import (
    MANIFEST_NAME,
    ProfileDescriptor,
    ProfileXmlParser,
)

__all__ = [
    "FormatParser",
    "MANIFEST_NAME",
    "ProfileDescriptor",
    "ProfileXmlParser",
]
