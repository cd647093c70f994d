"""Build orchestration module.

This module handles:
- Canonical build identity (flags, pinned plugin closure, hash)
- Build records and lifecycle transitions
- Compile job dispatch
- Artifact addressing and signed downloads
"""

from meshforge.builds.models import Build

__all__ = ["Build"]

# Access submodules via meshforge.builds.canonical, meshforge.builds.service, etc.
