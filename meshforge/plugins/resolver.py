"""Plugin dependency resolution.

This module handles:
- Parsing ``slug`` / ``slug@version`` selection tokens
- Transitive dependency closure over the plugin registry
- Classifying plugins as explicit (user-selected) or implicit (pulled in)

Resolution never raises: dependency cycles stop expanding and dependencies
that are not registry plugins (e.g. firmware version markers) are ignored.
All functions are pure.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from meshforge.registry.schema import PluginRegistryEntry

Registry = Mapping[str, PluginRegistryEntry]


def parse_plugin_token(token: str) -> tuple[str, str | None]:
    """Split a selection token into slug and optional version pin.

    Args:
        token: ``slug`` or ``slug@version``.

    Returns:
        Tuple of (slug, version or None).
    """
    slug, sep, version = token.strip().partition("@")
    return slug, (version or None) if sep else None


def token_slugs(tokens: Iterable[str]) -> list[str]:
    """Return the slugs of selection tokens, deduplicated in order."""
    seen: dict[str, None] = {}
    for token in tokens:
        slug, _ = parse_plugin_token(token)
        if slug:
            seen.setdefault(slug, None)
    return list(seen)


def _pin_rank(token: str) -> tuple[bool, str]:
    _, version = parse_plugin_token(token)
    return version is not None, version or ""


def preferred_tokens(tokens: Iterable[str]) -> dict[str, str]:
    """Pick one token per slug, keyed by slug in first-seen order.

    A pinned token beats a bare one and the highest pin wins among several,
    so the choice does not depend on submission order.

    Args:
        tokens: Selection tokens as submitted.

    Returns:
        Mapping of slug to its chosen token.
    """
    chosen: dict[str, str] = {}
    for token in tokens:
        token = token.strip()
        slug, _ = parse_plugin_token(token)
        if not slug:
            continue
        current = chosen.get(slug)
        if current is None or _pin_rank(token) > _pin_rank(current):
            chosen[slug] = token
    return chosen


def closure(explicit: Iterable[str], registry: Registry) -> list[str]:
    """Compute the full set of plugins required by an explicit selection.

    Args:
        explicit: Explicitly selected slugs (tokens with versions accepted).
        registry: Plugin registry.

    Returns:
        Sorted list of explicit slugs plus every transitively reachable
        dependency that exists in the registry.
    """
    visited: set[str] = set()
    stack = list(reversed(token_slugs(explicit)))
    while stack:
        slug = stack.pop()
        if slug in visited:
            continue
        visited.add(slug)
        entry = registry.get(slug)
        if entry is None:
            continue
        stack.extend(
            dep
            for dep in sorted(entry.dependencies, reverse=True)
            if dep in registry and dep not in visited
        )
    return sorted(visited)


def implicit_only(explicit: Iterable[str], registry: Registry) -> set[str]:
    """Return plugins present only because another selection needs them."""
    explicit_slugs = token_slugs(explicit)
    return set(closure(explicit_slugs, registry)) - set(explicit_slugs)


def is_required_by_others(
    slug: str, explicit: Iterable[str], registry: Registry
) -> bool:
    """Check whether another explicit selection depends on ``slug``.

    Args:
        slug: Plugin to check.
        explicit: Explicitly selected slugs.
        registry: Plugin registry.

    Returns:
        True iff the closure of some other explicit slug contains ``slug``.
    """
    for other in token_slugs(explicit):
        if other == slug:
            continue
        if slug in closure([other], registry):
            return True
    return False


def pinned_closure(tokens: Iterable[str], registry: Registry) -> list[str]:
    """Render the dependency closure as sorted ``slug@version`` tokens.

    The version is the explicit pin when the user gave one, otherwise the
    registry version. Conflicting pins resolve as in ``preferred_tokens``.
    Slugs without a known version are rendered bare.

    Args:
        tokens: Explicit selection tokens.
        registry: Plugin registry.

    Returns:
        Sorted list of pinned tokens.
    """
    token_list = list(tokens)
    pins: dict[str, str] = {}
    for slug, token in preferred_tokens(token_list).items():
        _, version = parse_plugin_token(token)
        if version:
            pins[slug] = version

    rendered: list[str] = []
    for slug in closure(token_list, registry):
        entry = registry.get(slug)
        version = pins.get(slug) or (entry.version if entry else None)
        rendered.append(f"{slug}@{version}" if version else slug)
    return rendered


def _carries_pin(token: str, registry: Registry) -> bool:
    slug, version = parse_plugin_token(token)
    entry = registry.get(slug)
    return version is not None and (entry is None or version != entry.version)


def explicit_only_tokens(tokens: Iterable[str], registry: Registry) -> list[str]:
    """Drop tokens whose slug is already required by another selection.

    Tokens are examined in order; a slug is dropped when the remaining
    selection already pulls it in, so the closure never changes (one member
    of a dependency cycle always survives). A token pinned to a version other
    than the registry version is always kept, so the pinned closure does not
    change either. Duplicate slugs collapse to the token chosen by
    ``preferred_tokens``.

    Args:
        tokens: Selection tokens as submitted.
        registry: Plugin registry.

    Returns:
        Tokens that represent genuine user intent, in submitted order.
    """
    chosen = preferred_tokens(tokens)

    remaining = list(chosen)
    for slug in list(remaining):
        if _carries_pin(chosen[slug], registry):
            continue
        others = [s for s in remaining if s != slug]
        if slug in closure(others, registry):
            remaining = others
    return [chosen[slug] for slug in remaining]


__all__ = [
    "closure",
    "explicit_only_tokens",
    "implicit_only",
    "is_required_by_others",
    "parse_plugin_token",
    "pinned_closure",
    "preferred_tokens",
    "token_slugs",
]
