"""Target compatibility module.

This module handles:
- Architecture ancestor chains and plugin/target compatibility
- Generating the architecture parent map from a firmware tree
"""

from meshforge.targets.hierarchy import ArchitectureHierarchy, normalize_name

__all__ = ["ArchitectureHierarchy", "normalize_name"]
