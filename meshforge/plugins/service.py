"""Plugin usage statistics service."""

import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from meshforge.plugins.models import PluginStat
from meshforge.plugins.resolver import token_slugs

logger = logging.getLogger(__name__)


def _get_stat(session: Session, slug: str) -> PluginStat | None:
    stmt = select(PluginStat).where(PluginStat.slug == slug).with_for_update()
    return session.execute(stmt).scalar_one_or_none()


def record_plugin_usage(session: Session, tokens: Iterable[str]) -> None:
    """Increment the usage counter of each explicitly selected plugin.

    A first-time slug is inserted in a savepoint; when a concurrent request
    inserted it first, the unique violation is rolled back and the winner's
    row is incremented instead.

    Args:
        session: Database session.
        tokens: Explicit selection tokens (``slug`` or ``slug@version``).
    """
    now = datetime.now(timezone.utc)
    for slug in token_slugs(tokens):
        stat = _get_stat(session, slug)
        if stat is None:
            stat = PluginStat(slug=slug, flash_count=0, updated_at=now)
            try:
                with session.begin_nested():
                    session.add(stat)
            except IntegrityError:
                logger.info("Lost insert race for plugin %s, reusing winner", slug)
                stat = _get_stat(session, slug)
                if stat is None:
                    raise
        stat.flash_count += 1
        stat.updated_at = now
    session.flush()


def get_flash_counts(session: Session) -> dict[str, int]:
    """Return plugin slug -> usage count for every recorded plugin."""
    stmt = select(PluginStat).order_by(PluginStat.slug)
    return {s.slug: s.flash_count for s in session.execute(stmt).scalars()}


__all__ = ["get_flash_counts", "record_plugin_usage"]
