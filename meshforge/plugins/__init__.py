"""Plugin resolution module.

This module handles:
- Dependency closure and explicit/implicit classification
- Selection toggle semantics
- Plugin usage statistics
"""

from meshforge.plugins.models import PluginStat

__all__ = ["PluginStat"]

# Access resolution helpers via meshforge.plugins.resolver and
# meshforge.plugins.selection.
