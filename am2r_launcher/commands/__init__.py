"""CLI command implementations for am2r_launcher.

This module contains all command-line interface implementations:
- status: Show the derived launcher state
- sync: Clone or update PatchData
- mirrors: List and select PatchData mirrors
- asset: Select and check the AM2R 1.1 archive
- profiles: List, select, delete and archive profiles
- install / play / package: Profile actions
"""

from am2r_launcher.commands.asset import asset
from am2r_launcher.commands.profiles import install, package, play, profiles
from am2r_launcher.commands.status import status
from am2r_launcher.commands.sync import mirrors, sync

__all__ = ["asset", "install", "mirrors", "package", "play", "profiles", "status", "sync"]
