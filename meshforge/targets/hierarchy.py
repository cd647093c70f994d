"""Architecture hierarchy and plugin/target compatibility.

Compatibility is decided against a precomputed flat parent map
(``child -> parent | None``). A target is compatible with a plugin when its
ancestor chain intersects the plugin's includes and does not intersect its
excludes. Names are normalized by stripping hyphens and underscores because
upstream data sources disagree on separator style.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from meshforge.registry.catalog import TargetCatalog
from meshforge.registry.schema import PluginRegistryEntry


def normalize_name(name: str) -> str:
    """Strip hyphens and underscores; case is preserved."""
    return name.replace("-", "").replace("_", "")


class ArchitectureHierarchy:
    """Resolves ancestor chains and compatibility verdicts.

    Attributes:
        parent_map: Normalized child -> parent mapping.
        catalog: Optional target catalog consulted for targets missing from
            the parent map.
    """

    def __init__(
        self,
        parent_map: Mapping[str, str | None] | None = None,
        catalog: TargetCatalog | None = None,
    ) -> None:
        self.parent_map: dict[str, str | None] = {
            normalize_name(child): (normalize_name(parent) if parent else None)
            for child, parent in (parent_map or {}).items()
        }
        self.catalog = catalog
        self._catalog_arch: dict[str, str] = {}
        if catalog is not None:
            for target, entry in catalog.items():
                if entry.architecture:
                    self._catalog_arch[normalize_name(target)] = normalize_name(
                        entry.architecture
                    )

    def __repr__(self) -> str:
        return f"<ArchitectureHierarchy(entries={len(self.parent_map)})>"

    def ancestors(self, target: str) -> list[str]:
        """Return the target followed by each ancestor, nearest first.

        The walk stops at a base architecture (parent None), an unmapped
        name, or a name already visited.

        Args:
            target: Target or architecture name (any separator style).

        Returns:
            Normalized chain, e.g. ``["tbeam", "esp32"]``.
        """
        current: str | None = normalize_name(target)
        chain: list[str] = []
        while current is not None and current not in chain:
            chain.append(current)
            if current in self.parent_map:
                current = self.parent_map[current]
            elif len(chain) == 1 and current in self._catalog_arch:
                current = self._catalog_arch[current]
            else:
                current = None
        return chain

    def compatible(
        self,
        includes: Iterable[str] | None,
        excludes: Iterable[str] | None,
        target: str | None,
    ) -> bool:
        """Decide whether a target satisfies include/exclude constraints.

        Args:
            includes: Names the plugin supports (None or empty = any).
            excludes: Names the plugin does not support.
            target: Target name; None means no target chosen yet.

        Returns:
            True if compatible.
        """
        if not target:
            return True

        include_set = {normalize_name(n) for n in includes or () if n}
        exclude_set = {normalize_name(n) for n in excludes or () if n}
        if not include_set and not exclude_set:
            return True

        compat = set(self.ancestors(target))
        if exclude_set & compat:
            return False
        if include_set:
            return bool(include_set & compat)
        return True

    def is_plugin_compatible(
        self, entry: PluginRegistryEntry, target: str | None
    ) -> bool:
        """Check a registry entry against a target."""
        return self.compatible(entry.effective_includes, entry.excludes, target)

    def compatible_targets(
        self,
        slugs: Iterable[str],
        registry: Mapping[str, PluginRegistryEntry],
        targets: Iterable[str] | None = None,
    ) -> list[str]:
        """List targets compatible with every given plugin.

        Args:
            slugs: Plugin slugs; unknown slugs impose no constraint.
            registry: Plugin registry.
            targets: Candidate targets; defaults to the catalog.

        Returns:
            Compatible targets in candidate order.
        """
        if targets is None:
            targets = list(self.catalog) if self.catalog is not None else []
        entries = [registry[s] for s in slugs if s in registry]
        return [
            t
            for t in targets
            if all(self.is_plugin_compatible(entry, t) for entry in entries)
        ]


__all__ = ["ArchitectureHierarchy", "normalize_name"]
