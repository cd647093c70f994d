"""Typed read-only views over the plugin and hardware registries."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping

from meshforge.registry.schema import PluginRegistryEntry, TargetEntry


class PluginRegistry(Mapping[str, PluginRegistryEntry]):
    """Read-only mapping of plugin slug to registry entry."""

    def __init__(self, entries: Iterable[PluginRegistryEntry] = ()) -> None:
        self._entries: dict[str, PluginRegistryEntry] = {
            entry.slug: entry for entry in entries
        }

    def __getitem__(self, slug: str) -> PluginRegistryEntry:
        return self._entries[slug]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"<PluginRegistry(entries={len(self._entries)})>"

    def dependencies_of(self, slug: str) -> list[str]:
        """Return the declared dependency slugs of a plugin, sorted.

        Unknown plugins have no dependencies.
        """
        entry = self._entries.get(slug)
        if entry is None:
            return []
        return sorted(entry.dependencies)

    def version_of(self, slug: str) -> str | None:
        """Return the published version of a plugin, or None if unknown."""
        entry = self._entries.get(slug)
        if entry is None or not entry.version:
            return None
        return entry.version

    def sorted_for_display(self) -> list[PluginRegistryEntry]:
        """Featured plugins first, then alphabetical by name."""
        return sorted(
            self._entries.values(),
            key=lambda e: (not e.featured, (e.name or e.slug).lower()),
        )


class TargetCatalog(Mapping[str, TargetEntry]):
    """Read-only mapping of target id to hardware entry, ordered by name."""

    def __init__(self, entries: Iterable[TargetEntry] = ()) -> None:
        ordered = sorted(entries, key=lambda e: e.name.lower())
        self._entries: dict[str, TargetEntry] = {}
        for entry in ordered:
            self._entries.setdefault(entry.platformio_target, entry)

    def __getitem__(self, target: str) -> TargetEntry:
        return self._entries[target]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"<TargetCatalog(targets={len(self._entries)})>"

    def categories(self) -> list[str]:
        """Return the sorted list of target categories."""
        return sorted({entry.category for entry in self._entries.values()})

    def grouped(self) -> dict[str, list[str]]:
        """Group target ids by category, preserving display order."""
        groups: dict[str, list[str]] = {}
        for target, entry in self._entries.items():
            groups.setdefault(entry.category, []).append(target)
        return groups


__all__ = ["PluginRegistry", "TargetCatalog"]
