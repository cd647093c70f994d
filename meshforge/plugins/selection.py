"""Explicit plugin selection state and toggle semantics.

A selection holds only what the user chose; dependencies are always
recovered through resolution. Toggling follows these rules:

- enabling a slug adds it to the explicit set;
- disabling is a no-op when the slug is an implicit-only dependency or
  another explicit selection still requires it;
- after a removal, option state for plugins that dropped out of the closure
  (and are not explicit) is pruned.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from meshforge.plugins.resolver import (
    Registry,
    closure,
    explicit_only_tokens,
    implicit_only,
    is_required_by_others,
    token_slugs,
)

if TYPE_CHECKING:
    from meshforge.builds.schema import BuildConfig

logger = logging.getLogger(__name__)


class PluginSelection:
    """Mutable explicit selection plus per-plugin option state.

    Attributes:
        registry: Plugin registry used for resolution.
        explicit: Explicitly selected slugs, in selection order.
        options: Plugin slug -> option key -> enabled.
    """

    def __init__(
        self,
        registry: Registry,
        explicit: list[str] | None = None,
        options: dict[str, dict[str, bool]] | None = None,
    ) -> None:
        self.registry = registry
        self.explicit: list[str] = token_slugs(explicit or [])
        self.options: dict[str, dict[str, bool]] = {
            slug: dict(opts) for slug, opts in (options or {}).items() if opts
        }

    def __repr__(self) -> str:
        return f"<PluginSelection(explicit={self.explicit})>"

    @property
    def enabled(self) -> list[str]:
        """All enabled plugins (explicit and implicit), sorted."""
        return closure(self.explicit, self.registry)

    @property
    def implicit(self) -> set[str]:
        """Plugins enabled only because another selection needs them."""
        return implicit_only(self.explicit, self.registry)

    def is_locked(self, slug: str) -> bool:
        """Whether the user may not disable ``slug`` right now."""
        return slug in self.implicit or is_required_by_others(
            slug, self.explicit, self.registry
        )

    def toggle(self, slug: str, enabled: bool) -> bool:
        """Enable or disable a plugin.

        Args:
            slug: Plugin slug.
            enabled: Desired state.

        Returns:
            True if the selection changed.
        """
        if enabled:
            if slug in self.explicit:
                return False
            self.explicit.append(slug)
            return True

        if slug in self.implicit:
            logger.debug("Ignoring disable of implicit dependency %s", slug)
            return False
        if is_required_by_others(slug, self.explicit, self.registry):
            logger.debug("Ignoring disable of %s: required by another plugin", slug)
            return False
        if slug not in self.explicit:
            return False

        self.explicit.remove(slug)
        still_needed = set(closure(self.explicit, self.registry))
        for option_slug in list(self.options):
            if option_slug not in still_needed and option_slug not in self.explicit:
                del self.options[option_slug]
        return True

    def set_option(self, slug: str, key: str, enabled: bool) -> None:
        """Set or clear a per-plugin option flag."""
        plugin_options = dict(self.options.get(slug, {}))
        if enabled:
            plugin_options[key] = True
        else:
            plugin_options.pop(key, None)

        if plugin_options:
            self.options[slug] = plugin_options
        else:
            self.options.pop(slug, None)

    def reset(self) -> None:
        """Clear every selection and option."""
        self.explicit.clear()
        self.options.clear()

    @classmethod
    def from_config(cls, config: BuildConfig, registry: Registry) -> PluginSelection:
        """Restore a selection from a stored build configuration.

        Version pins are dropped, and slugs unknown to the registry or
        already pulled in by another selection are not restored as explicit.

        Args:
            config: Stored configuration.
            registry: Plugin registry.

        Returns:
            PluginSelection instance.
        """
        slugs = explicit_only_tokens(token_slugs(config.plugins_enabled), registry)
        explicit = [slug for slug in slugs if slug in registry]
        return cls(registry, explicit, config.plugin_configs or {})

    def to_config(
        self,
        version: str,
        target: str,
        modules_excluded: dict[str, bool] | None = None,
    ) -> BuildConfig:
        """Produce a build configuration for this selection.

        Explicit slugs are pinned to their registry version; option state is
        limited to enabled plugins.

        Args:
            version: Firmware version.
            target: Hardware target.
            modules_excluded: Module exclusion map.

        Returns:
            BuildConfig instance.
        """
        from meshforge.builds.schema import BuildConfig

        tokens: list[str] = []
        for slug in self.explicit:
            entry = self.registry.get(slug)
            tokens.append(
                f"{slug}@{entry.version}" if entry and entry.version else slug
            )

        enabled = set(self.enabled)
        plugin_configs = {
            slug: opts
            for slug, opts in self.options.items()
            if slug in enabled and opts
        }
        return BuildConfig(
            version=version,
            target=target,
            modules_excluded=dict(modules_excluded or {}),
            plugins_enabled=tokens,
            plugin_configs=plugin_configs or None,
        )


__all__ = ["PluginSelection"]
