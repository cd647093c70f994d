"""Plugin registry endpoints.

- GET /plugins - List registry plugins with usage counts
- POST /plugins/resolve - Resolve an explicit selection to its closure
"""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from meshforge.context import RuntimeContext
from meshforge.plugins.resolver import (
    closure,
    explicit_only_tokens,
    implicit_only,
    pinned_closure,
)
from meshforge.plugins.service import get_flash_counts
from web.deps import get_context, get_db

router = APIRouter()


class ResolveRequest(BaseModel):
    """Request body for plugin resolution."""

    plugins: list[str] = Field(default_factory=list)


@router.get("")
def list_plugins_endpoint(
    db: Session = Depends(get_db),
    context: RuntimeContext = Depends(get_context),
) -> list[dict[str, Any]]:
    """List registry plugins, featured first.

    Returns:
        Plugin entries with their flash counts.
    """
    counts = get_flash_counts(db)
    return [
        {
            "slug": entry.slug,
            "name": entry.name,
            "version": entry.version,
            "description": entry.description,
            "dependencies": sorted(entry.dependencies),
            "includes": entry.effective_includes,
            "excludes": entry.excludes,
            "config_options": {
                key: opt.model_dump() for key, opt in entry.config_options.items()
            },
            "featured": entry.featured,
            "homepage": entry.homepage,
            "repo": entry.repo,
            "image_url": entry.image_url,
            "flash_count": counts.get(entry.slug, 0),
        }
        for entry in context.registry.sorted_for_display()
    ]


@router.post("/resolve")
def resolve_plugins_endpoint(
    request: ResolveRequest,
    context: RuntimeContext = Depends(get_context),
) -> dict[str, Any]:
    """Resolve an explicit selection.

    Returns:
        Sorted closure, implicit-only dependencies, pinned closure and the
        explicit tokens that would be stored.
    """
    registry = context.registry
    return {
        "closure": closure(request.plugins, registry),
        "implicit": sorted(implicit_only(request.plugins, registry)),
        "pinned": pinned_closure(request.plugins, registry),
        "explicit": explicit_only_tokens(request.plugins, registry),
    }
