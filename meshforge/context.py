"""Static runtime context shared by the frontends.

Registries and the hierarchy are loaded once per process and treated as
read-only. The HTTP app, the CLI and the MCP server all build one of these
from settings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from meshforge.builds.artifacts import HmacUrlSigner, UrlSigner
from meshforge.builds.dispatch import Dispatcher, GitHubDispatcher
from meshforge.config import Settings, get_settings
from meshforge.registry.catalog import PluginRegistry, TargetCatalog
from meshforge.registry.io import (
    load_parent_map,
    load_plugin_registry,
    load_target_catalog,
)
from meshforge.targets.hierarchy import ArchitectureHierarchy

logger = logging.getLogger(__name__)


@dataclass
class RuntimeContext:
    """Loaded registries plus the configured collaborators.

    Attributes:
        settings: Application settings.
        registry: Plugin registry.
        catalog: Target catalog.
        hierarchy: Architecture hierarchy.
        dispatcher: Compile job dispatcher.
        signer: Download URL signer, None when no signing key is configured.
    """

    settings: Settings
    registry: PluginRegistry
    catalog: TargetCatalog
    hierarchy: ArchitectureHierarchy
    dispatcher: Dispatcher
    signer: UrlSigner | None = None


def build_signer(settings: Settings) -> UrlSigner | None:
    """Create the URL signer, or None when no signing key is configured."""
    if settings.url_signing_key is None:
        return None
    return HmacUrlSigner(
        settings.artifacts_base_url,
        settings.url_signing_key.get_secret_value(),
        ttl=settings.download_url_ttl,
    )


def load_context(settings: Settings | None = None) -> RuntimeContext:
    """Load registries and construct collaborators from settings.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        RuntimeContext instance.

    Raises:
        RegistryLoadError: If a configured registry file is unreadable.
    """
    if settings is None:
        settings = get_settings()

    registry = load_plugin_registry(settings.registry_path)
    catalog = load_target_catalog(settings.hardware_list_path)
    parent_map = load_parent_map(settings.hierarchy_path)
    logger.debug(
        "Loaded %d plugins, %d targets, %d hierarchy entries",
        len(registry),
        len(catalog),
        len(parent_map),
    )
    return RuntimeContext(
        settings=settings,
        registry=registry,
        catalog=catalog,
        hierarchy=ArchitectureHierarchy(parent_map, catalog),
        dispatcher=GitHubDispatcher(settings),
        signer=build_signer(settings),
    )


__all__ = ["RuntimeContext", "build_signer", "load_context"]
