"""Canonical build identity computation.

This module handles:
- Rendering compiler flags from excluded modules and plugin options
- Pinning the plugin dependency closure to concrete versions
- Hashing the canonical form into a content address
- Normalizing configs so only explicit selections are stored

Two configs that differ only in key order, plugin order or in listing a
dependency explicitly produce the same hash.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field

from meshforge.builds.schema import BuildConfig
from meshforge.plugins.resolver import (
    Registry,
    closure,
    explicit_only_tokens,
    pinned_closure,
)

DIAGNOSTICS_OPTION = "diagnostics"


@dataclass(frozen=True)
class CanonicalConfig:
    """Canonical form of a build configuration.

    Attributes:
        flags: Space separated compiler defines.
        closure: Sorted ``slug@version`` tokens of every plugin to install.
    """

    flags: str = ""
    closure: list[str] = field(default_factory=list)


def diagnostics_define(slug: str) -> str:
    """Return the diagnostics define name for a plugin slug."""
    return f"{slug.upper().replace('-', '_')}_PLUGIN_DIAGNOSTICS"


def compute_flags(config: BuildConfig, registry: Registry) -> str:
    """Render compiler flags for a build configuration.

    Module flags come first (``-D<ID>=1`` for each excluded module, sorted),
    followed by plugin option defines for plugins in the closure, ordered by
    slug then option key. Options unknown to the registry are ignored.

    Args:
        config: Build configuration.
        registry: Plugin registry.

    Returns:
        Flags joined by single spaces (empty string when none).
    """
    flags = [f"-D{module}=1" for module in config.excluded_modules()]

    enabled = set(closure(config.plugins_enabled, registry))
    for slug in sorted(config.plugin_configs or {}):
        if slug not in enabled:
            continue
        options = config.plugin_configs[slug]
        entry = registry.get(slug)
        for key in sorted(options):
            if not options[key]:
                continue
            if key == DIAGNOSTICS_OPTION:
                flags.append(f"-D{diagnostics_define(slug)}")
            elif entry is not None and key in entry.config_options:
                flags.append(f"-D{entry.config_options[key].define}")

    return " ".join(flags)


def canonicalize(config: BuildConfig, registry: Registry) -> CanonicalConfig:
    """Compute flags and the pinned plugin closure.

    Args:
        config: Build configuration.
        registry: Plugin registry.

    Returns:
        CanonicalConfig instance.
    """
    return CanonicalConfig(
        flags=compute_flags(config, registry),
        closure=pinned_closure(config.plugins_enabled, registry),
    )


def compute_build_hash(config: BuildConfig, registry: Registry) -> str:
    """Compute the content address of a build configuration.

    The hash is SHA-256 over the JSON array ``[version, target, flags,
    closure]`` serialized canonically, rendered as lowercase hex.

    Args:
        config: Build configuration.
        registry: Plugin registry.

    Returns:
        64 character hex digest.
    """
    canonical = canonicalize(config, registry)
    payload = json.dumps(
        [config.version, config.target, canonical.flags, canonical.closure],
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def normalize_build_config(config: BuildConfig, registry: Registry) -> BuildConfig:
    """Reduce a configuration to explicit selections before storage.

    Tokens already required by another selection are dropped unless they
    carry a non-registry pin, duplicate slugs collapse to one token, and
    option state is limited to non-empty maps for plugins in the closure.
    The hash is unchanged.

    Args:
        config: Submitted configuration.
        registry: Plugin registry.

    Returns:
        Normalized BuildConfig.
    """
    tokens = explicit_only_tokens(config.plugins_enabled, registry)
    enabled = set(closure(tokens, registry))

    plugin_configs: dict[str, dict[str, bool]] = {}
    for slug, options in (config.plugin_configs or {}).items():
        kept = {key: True for key, value in options.items() if value}
        if slug in enabled and kept:
            plugin_configs[slug] = kept

    return config.model_copy(
        update={
            "plugins_enabled": tokens,
            "plugin_configs": plugin_configs or None,
        }
    )


__all__ = [
    "CanonicalConfig",
    "canonicalize",
    "compute_build_hash",
    "compute_flags",
    "diagnostics_define",
    "normalize_build_config",
]
