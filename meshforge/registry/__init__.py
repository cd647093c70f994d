"""Static registry module.

This module handles:
- Plugin registry schema and validation
- Hardware target list schema and validation
- Loading registries and the architecture parent map from files
"""

from meshforge.registry.catalog import PluginRegistry, TargetCatalog
from meshforge.registry.schema import (
    ConfigOptionSchema,
    PluginRegistryEntry,
    TargetEntry,
)

__all__ = [
    "ConfigOptionSchema",
    "PluginRegistry",
    "PluginRegistryEntry",
    "TargetCatalog",
    "TargetEntry",
]
