"""Hardware target endpoints.

- GET /targets - List targets grouped by category
- GET /targets/{target}/compatibility - Check plugins against a target
"""

from typing import Any

from fastapi import APIRouter, Depends, Query

from meshforge.context import RuntimeContext
from meshforge.plugins.resolver import token_slugs
from web.deps import get_context

router = APIRouter()


@router.get("")
def list_targets_endpoint(
    context: RuntimeContext = Depends(get_context),
) -> dict[str, Any]:
    """List known targets.

    Returns:
        Categories and, for each, the targets with display names.
    """
    catalog = context.catalog
    return {
        "categories": catalog.categories(),
        "targets": {
            category: [
                {
                    "target": t,
                    "name": catalog[t].name,
                    "architecture": catalog[t].architecture,
                }
                for t in targets
            ]
            for category, targets in catalog.grouped().items()
        },
    }


@router.get("/{target}/compatibility")
def compatibility_endpoint(
    target: str,
    plugins: list[str] | None = Query(None, description="Plugin slugs"),
    context: RuntimeContext = Depends(get_context),
) -> dict[str, Any]:
    """Check plugins against a target.

    Plugins unknown to the registry impose no constraint.

    Returns:
        Target ancestors, per-plugin verdicts and the overall verdict.
    """
    hierarchy = context.hierarchy
    verdicts = {
        slug: hierarchy.is_plugin_compatible(context.registry[slug], target)
        if slug in context.registry
        else True
        for slug in token_slugs(plugins or [])
    }
    return {
        "target": target,
        "ancestors": hierarchy.ancestors(target),
        "plugins": verdicts,
        "compatible": all(verdicts.values()),
    }
