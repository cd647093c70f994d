"""Mesh Forge - build configuration resolution for custom firmware builds.

This package resolves user-assembled firmware configurations (target, version,
excluded modules, plugins) into content-addressed build identities, tracks
dispatched builds through their lifecycle, and derives artifact addresses.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
