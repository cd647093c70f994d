"""Tests for plugins/resolver.py module.

Tests dependency closure, implicit classification, cycle safety and
version pinning.
"""

import pytest

from meshforge.plugins.resolver import (
    closure,
    explicit_only_tokens,
    implicit_only,
    is_required_by_others,
    parse_plugin_token,
    pinned_closure,
    preferred_tokens,
    token_slugs,
)
from meshforge.registry.catalog import PluginRegistry
from meshforge.registry.schema import PluginRegistryEntry


def make_registry(entries: dict[str, dict]) -> PluginRegistry:
    """Build a registry from slug -> entry data."""
    return PluginRegistry(
        PluginRegistryEntry.model_validate({"slug": slug, **data})
        for slug, data in entries.items()
    )


@pytest.fixture
def registry() -> PluginRegistry:
    """bbs depends on storage; mail depends on bbs and a firmware marker."""
    return make_registry(
        {
            "bbs": {"version": "1.2.0", "dependencies": {"storage": "^1.0"}},
            "storage": {"version": "1.0.3"},
            "mail": {
                "version": "0.4.0",
                "dependencies": {"bbs": "*", "meshtastic": ">=2.7"},
            },
            "lofs": {"version": "2.0.0"},
        }
    )


class TestParsePluginToken:
    """Tests for parse_plugin_token and token_slugs."""

    def test_plain_slug(self) -> None:
        """A bare slug has no version."""
        assert parse_plugin_token("bbs") == ("bbs", None)

    def test_pinned_slug(self) -> None:
        """slug@version splits into both parts."""
        assert parse_plugin_token("bbs@1.2.0") == ("bbs", "1.2.0")

    def test_empty_version(self) -> None:
        """A trailing @ means no version."""
        assert parse_plugin_token("bbs@") == ("bbs", None)

    def test_token_slugs_deduplicates_in_order(self) -> None:
        """Duplicates keep their first position."""
        assert token_slugs(["b@1", "a", "b@2", " c "]) == ["b", "a", "c"]


class TestClosure:
    """Tests for closure."""

    def test_includes_transitive_dependencies(self, registry: PluginRegistry) -> None:
        """mail pulls in bbs, which pulls in storage."""
        assert closure(["mail"], registry) == ["bbs", "mail", "storage"]

    def test_contains_explicit(self, registry: PluginRegistry) -> None:
        """The closure is a superset of the explicit selection."""
        explicit = ["lofs", "bbs"]
        assert set(explicit) <= set(closure(explicit, registry))

    def test_idempotent(self, registry: PluginRegistry) -> None:
        """Resolving a closure again yields the same closure."""
        first = closure(["mail", "lofs"], registry)
        assert closure(first, registry) == first

    def test_order_independent(self, registry: PluginRegistry) -> None:
        """Selection order does not change the result."""
        assert closure(["lofs", "bbs"], registry) == closure(["bbs", "lofs"], registry)

    def test_ignores_non_registry_dependencies(self, registry: PluginRegistry) -> None:
        """Firmware markers in dependencies are not plugins."""
        assert "meshtastic" not in closure(["mail"], registry)

    def test_keeps_unknown_explicit_slug(self, registry: PluginRegistry) -> None:
        """An unknown explicit slug stays in the closure."""
        assert closure(["ghost"], registry) == ["ghost"]

    def test_cycle_terminates(self) -> None:
        """A -> B -> A resolves to {A, B}."""
        cyclic = make_registry(
            {"a": {"dependencies": {"b": "*"}}, "b": {"dependencies": {"a": "*"}}}
        )
        assert closure(["a"], cyclic) == ["a", "b"]

    def test_self_dependency(self) -> None:
        """A plugin depending on itself resolves to itself."""
        selfish = make_registry({"a": {"dependencies": {"a": "*"}}})
        assert closure(["a"], selfish) == ["a"]

    def test_deep_chain(self) -> None:
        """Long dependency chains resolve without hitting the recursion limit."""
        names = [f"p{i:04d}" for i in range(3000)]
        chain = make_registry(
            {
                name: {"dependencies": {dep: "*"}}
                for name, dep in zip(names, names[1:])
            }
            | {names[-1]: {}}
        )
        assert closure([names[0]], chain) == names

    def test_empty(self, registry: PluginRegistry) -> None:
        """No selection, no plugins."""
        assert closure([], registry) == []


class TestImplicitAndRequired:
    """Tests for implicit_only and is_required_by_others."""

    def test_implicit_only(self, registry: PluginRegistry) -> None:
        """Dependencies not explicitly selected are implicit."""
        assert implicit_only(["bbs"], registry) == {"storage"}

    def test_explicit_dependency_is_not_implicit(
        self, registry: PluginRegistry
    ) -> None:
        """Listing a dependency explicitly removes it from implicit."""
        assert implicit_only(["bbs", "storage"], registry) == set()

    def test_required_by_other_selection(self, registry: PluginRegistry) -> None:
        """storage is load-bearing for bbs."""
        assert is_required_by_others("storage", ["bbs", "storage"], registry)

    def test_not_required_by_itself(self, registry: PluginRegistry) -> None:
        """A plugin never requires itself for this check."""
        assert not is_required_by_others("bbs", ["bbs"], registry)

    def test_not_required_when_unrelated(self, registry: PluginRegistry) -> None:
        """Unrelated selections do not require each other."""
        assert not is_required_by_others("lofs", ["lofs", "bbs"], registry)


class TestPinnedClosure:
    """Tests for pinned_closure."""

    def test_uses_registry_versions(self, registry: PluginRegistry) -> None:
        """Unpinned plugins use the registry version."""
        assert pinned_closure(["bbs"], registry) == ["bbs@1.2.0", "storage@1.0.3"]

    def test_explicit_pin_wins(self, registry: PluginRegistry) -> None:
        """An explicit pin overrides the registry version."""
        assert pinned_closure(["bbs@1.1.0"], registry) == [
            "bbs@1.1.0",
            "storage@1.0.3",
        ]

    def test_unknown_slug_is_bare(self, registry: PluginRegistry) -> None:
        """Plugins without a known version are rendered bare."""
        assert pinned_closure(["ghost"], registry) == ["ghost"]

    def test_conflicting_pins_are_order_independent(
        self, registry: PluginRegistry
    ) -> None:
        """Two pins for one slug resolve the same way in any order."""
        forward = pinned_closure(["bbs@1.1.0", "bbs@1.3.0", "bbs"], registry)
        backward = pinned_closure(["bbs", "bbs@1.3.0", "bbs@1.1.0"], registry)
        assert forward == backward == ["bbs@1.3.0", "storage@1.0.3"]


class TestPreferredTokens:
    """Tests for preferred_tokens."""

    def test_pin_beats_bare(self) -> None:
        """A pinned token is chosen over a bare one."""
        assert preferred_tokens(["bbs", "bbs@1.2.0"]) == {"bbs": "bbs@1.2.0"}
        assert preferred_tokens(["bbs@1.2.0", "bbs"]) == {"bbs": "bbs@1.2.0"}

    def test_slugs_in_first_seen_order(self) -> None:
        """Slugs keep submission order; blank tokens are skipped."""
        chosen = preferred_tokens([" lofs ", "", "bbs", "lofs@2.0.0"])
        assert list(chosen) == ["lofs", "bbs"]
        assert chosen["lofs"] == "lofs@2.0.0"


class TestExplicitOnlyTokens:
    """Tests for explicit_only_tokens."""

    def test_drops_dependencies_of_other_selections(
        self, registry: PluginRegistry
    ) -> None:
        """storage is dropped because bbs already requires it."""
        assert explicit_only_tokens(["storage", "bbs@1.2.0"], registry) == ["bbs@1.2.0"]

    def test_drops_duplicates(self, registry: PluginRegistry) -> None:
        """Duplicate slugs collapse to the pinned token."""
        assert explicit_only_tokens(["lofs@2.0.0", "lofs"], registry) == ["lofs@2.0.0"]
        assert explicit_only_tokens(["lofs", "lofs@2.0.0"], registry) == ["lofs@2.0.0"]

    def test_keeps_non_registry_pin_on_dependency(
        self, registry: PluginRegistry
    ) -> None:
        """A dependency pinned away from the registry version is kept."""
        tokens = ["bbs", "storage@0.9.0"]
        assert explicit_only_tokens(tokens, registry) == tokens
        assert explicit_only_tokens(["bbs", "storage@1.0.3"], registry) == ["bbs"]

    def test_preserves_pinned_closure(self, registry: PluginRegistry) -> None:
        """Normalization never changes the pinned closure."""
        tokens = ["storage@0.9.0", "mail", "bbs@1.1.0", "bbs", "lofs"]
        normalized = explicit_only_tokens(tokens, registry)
        assert pinned_closure(normalized, registry) == pinned_closure(tokens, registry)

    def test_preserves_closure(self, registry: PluginRegistry) -> None:
        """Normalization never changes the closure."""
        tokens = ["storage", "mail", "bbs", "lofs"]
        assert closure(explicit_only_tokens(tokens, registry), registry) == closure(
            tokens, registry
        )

    def test_cycle_keeps_one_member(self) -> None:
        """In A <-> B one member survives so the closure is kept."""
        cyclic = make_registry(
            {"a": {"dependencies": {"b": "*"}}, "b": {"dependencies": {"a": "*"}}}
        )
        assert explicit_only_tokens(["a", "b"], cyclic) == ["b"]

    def test_cycle_keeps_pinned_members(self) -> None:
        """Pinned cycle members survive in any order."""
        cyclic = make_registry(
            {
                "a": {"version": "1", "dependencies": {"b": "*"}},
                "b": {"version": "1", "dependencies": {"a": "*"}},
            }
        )
        assert explicit_only_tokens(["a@2", "b@3"], cyclic) == ["a@2", "b@3"]
        assert explicit_only_tokens(["b@3", "a@2"], cyclic) == ["b@3", "a@2"]
