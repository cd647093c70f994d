"""Plugin ORM models.

This module defines the PluginStat model tracking how often each plugin
is explicitly selected for a build.
"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from meshforge.db import Base


class PluginStat(Base):
    """ORM model for per-plugin usage counters.

    Attributes:
        id: Primary key.
        slug: Plugin slug (unique).
        flash_count: Number of build requests selecting the plugin.
        updated_at: Timestamp of the last increment.
    """

    __tablename__ = "plugin_stats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    flash_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )

    def __repr__(self) -> str:
        """Return string representation of PluginStat."""
        return f"<PluginStat(slug='{self.slug}', flash_count={self.flash_count})>"


__all__ = ["PluginStat"]
