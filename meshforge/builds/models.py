"""Build ORM models.

This module defines the Build model: one record per distinct build hash,
tracking the compile lifecycle reported by the external compiler.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from meshforge.db import Base
from meshforge.types import BuildStatus, is_terminal


class Build(Base):
    """ORM model for build records.

    Attributes:
        id: Primary key.
        build_hash: Content address of the canonical config (unique).
        config: Normalized build configuration (camelCase JSON).
        status: ``queued``, an opaque intermediate, ``success`` or ``failure``.
        started_at: Timestamp of creation.
        updated_at: Timestamp of the last applied change.
        completed_at: Set iff status is terminal.
        run_id: Current compiler run id.
        run_id_history: Superseded run ids.
        firmware_path: Object key of the firmware archive.
        source_path: Object key of the source archive.
        error_message: Dispatch or build failure detail.
    """

    __tablename__ = "builds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    build_hash: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True, index=True
    )
    config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    # Status and timing
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=BuildStatus.QUEUED.value, index=True
    )
    started_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Compiler run tracking
    run_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    run_id_history: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=list
    )

    # Artifacts
    firmware_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    source_path: Mapped[str | None] = mapped_column(String(500), nullable=True)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (Index("ix_builds_status_updated", "status", "updated_at"),)

    def __repr__(self) -> str:
        """Return string representation of Build."""
        return (
            f"<Build(id={self.id}, status='{self.status}', "
            f"build_hash='{self.build_hash[:12]}...')>"
        )

    def is_terminal(self) -> bool:
        """Check if this build reached success or failure."""
        return is_terminal(self.status)


__all__ = ["Build"]
