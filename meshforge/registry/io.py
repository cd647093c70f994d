"""Loading helpers for registry data files.

The plugin registry is a mapping of slug to entry, the hardware list is a
list of board entries, and the architecture hierarchy is a flat
``child -> parent | null`` mapping. Registries may be JSON or YAML.
"""

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from meshforge.registry.catalog import PluginRegistry, TargetCatalog
from meshforge.registry.schema import PluginRegistryEntry, TargetEntry

logger = logging.getLogger(__name__)


class RegistryLoadError(Exception):
    """Raised when a registry file cannot be read or has the wrong shape."""

    def __init__(self, message: str, code: str = "registry_invalid") -> None:
        super().__init__(message)
        self.code = code


def load_data_file(path: Path) -> Any:
    """Load a JSON or YAML file based on its extension.

    Args:
        path: Path to a .json, .yaml or .yml file.

    Returns:
        Parsed content.

    Raises:
        RegistryLoadError: If the file is missing or cannot be parsed.
    """
    try:
        with open(path, encoding="utf-8") as f:
            if path.suffix.lower() in (".yaml", ".yml"):
                return yaml.safe_load(f)
            return json.load(f)
    except FileNotFoundError:
        raise RegistryLoadError(f"Registry file not found: {path}") from None
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise RegistryLoadError(f"Failed to parse {path}: {e}") from e


def parse_plugin_registry(data: Any) -> PluginRegistry:
    """Validate raw registry data into a PluginRegistry.

    Entries failing validation are skipped with a warning.

    Args:
        data: Mapping of slug -> entry data.

    Returns:
        PluginRegistry instance.

    Raises:
        RegistryLoadError: If data is not a mapping.
    """
    if data is None:
        return PluginRegistry()
    if not isinstance(data, dict):
        raise RegistryLoadError(
            f"Expected a plugin registry mapping, got {type(data).__name__}"
        )

    entries: list[PluginRegistryEntry] = []
    for slug, raw in data.items():
        if not isinstance(raw, dict):
            logger.warning("Skipping plugin %s: entry is not a mapping", slug)
            continue
        try:
            entries.append(PluginRegistryEntry.model_validate({**raw, "slug": slug}))
        except ValidationError as e:
            logger.warning("Skipping plugin %s: %s", slug, e.errors()[0]["msg"])
    return PluginRegistry(entries)


def parse_target_catalog(data: Any) -> TargetCatalog:
    """Validate a raw hardware list into a TargetCatalog.

    Boards without a build target are skipped.

    Args:
        data: List of hardware entries.

    Returns:
        TargetCatalog instance.

    Raises:
        RegistryLoadError: If data is not a list.
    """
    if data is None:
        return TargetCatalog()
    if not isinstance(data, list):
        raise RegistryLoadError(
            f"Expected a hardware list, got {type(data).__name__}"
        )

    entries: list[TargetEntry] = []
    for raw in data:
        if not isinstance(raw, dict):
            continue
        try:
            entries.append(TargetEntry.model_validate(raw))
        except ValidationError:
            logger.debug("Skipping hardware entry without target: %s", raw)
    return TargetCatalog(entries)


def parse_parent_map(data: Any) -> dict[str, str | None]:
    """Validate a raw architecture parent map.

    Args:
        data: Mapping of child -> parent (or None for base architectures).

    Returns:
        Parent map with string keys and string-or-None values.

    Raises:
        RegistryLoadError: If data is not a mapping.
    """
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise RegistryLoadError(
            f"Expected an architecture mapping, got {type(data).__name__}"
        )
    return {
        str(child): (str(parent) if parent else None) for child, parent in data.items()
    }


def load_plugin_registry(path: Path | None) -> PluginRegistry:
    """Load the plugin registry from a file, or an empty one if no path."""
    if path is None:
        return PluginRegistry()
    registry = parse_plugin_registry(load_data_file(path))
    logger.info("Loaded %d plugins from %s", len(registry), path)
    return registry


def load_target_catalog(path: Path | None) -> TargetCatalog:
    """Load the hardware list from a file, or an empty catalog if no path."""
    if path is None:
        return TargetCatalog()
    catalog = parse_target_catalog(load_data_file(path))
    logger.info("Loaded %d targets from %s", len(catalog), path)
    return catalog


def load_parent_map(path: Path | None) -> dict[str, str | None]:
    """Load the architecture parent map from a file, or an empty map."""
    if path is None:
        return {}
    return parse_parent_map(load_data_file(path))


__all__ = [
    "RegistryLoadError",
    "load_data_file",
    "load_parent_map",
    "load_plugin_registry",
    "load_target_catalog",
    "parse_parent_map",
    "parse_plugin_registry",
    "parse_target_catalog",
]
