"""AM2R Launcher - install, update and package AM2R profiles.

This package keeps a local clone of the AM2R patch repository, validates
the unpatched AM2R 1.1 archive and turns it into playable profiles by
applying xdelta patches.

Key modules:
- core: Pipeline components (sync, validation, install, archival, packaging)
- formats: profile.xml manifest parsing
- commands: CLI command implementations
"""

__version__ = "0.1.0"
__author__ = "AM2R Community Developers"
