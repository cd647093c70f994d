"""Build lifecycle state transitions.

Status updates arrive from the external compiler at-least-once and possibly
out of order. The rules applied here keep a build record consistent under
that delivery model:

- a run id that was already superseded is stale and ignored;
- an intermediate status for the current run never reopens a terminal build;
- a repeated terminal status for the current run only records newly reported
  artifact paths and keeps ``completed_at``;
- a new run id supersedes the previous one and clears its artifacts;
- ``queued`` clears artifacts and the error message;
- ``completed_at`` is set iff the status is terminal.

Functions here only mutate the ORM object; persistence is up to the caller.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from meshforge.builds.models import Build
from meshforge.types import BuildStatus, is_terminal

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _clear_artifacts(build: Build) -> None:
    build.firmware_path = None
    build.source_path = None


def _apply_replay(
    build: Build, firmware_path: str | None, source_path: str | None
) -> bool:
    changed = False
    if firmware_path and firmware_path != build.firmware_path:
        build.firmware_path = firmware_path
        changed = True
    if source_path and source_path != build.source_path:
        build.source_path = source_path
        changed = True
    if changed:
        build.updated_at = _now()
    else:
        logger.info(
            "Ignoring repeated %s update for build %s", build.status, build.id
        )
    return changed


def apply_status(
    build: Build,
    status: str,
    run_id: str | None = None,
    firmware_path: str | None = None,
    source_path: str | None = None,
) -> bool:
    """Apply a reported status to a build.

    Args:
        build: Build record to update.
        status: Reported status.
        run_id: Compiler run id, if reported.
        firmware_path: Firmware object key, if reported.
        source_path: Source object key, if reported.

    Returns:
        True if the update changed the build, False if it was stale or a
        repeat.
    """
    history = list(build.run_id_history or [])

    if run_id is not None and run_id in history:
        logger.info(
            "Ignoring stale update for build %s: run %s was superseded",
            build.id,
            run_id,
        )
        return False

    same_run = run_id is None or run_id == build.run_id
    if (
        same_run
        and build.is_terminal()
        and not is_terminal(status)
        and status != BuildStatus.QUEUED.value
    ):
        logger.info(
            "Ignoring late %s update for terminal build %s", status, build.id
        )
        return False

    if same_run and build.is_terminal() and status == build.status:
        return _apply_replay(build, firmware_path, source_path)

    if run_id is not None and run_id != build.run_id:
        if build.run_id is not None and build.run_id not in history:
            history.append(build.run_id)
        _clear_artifacts(build)
        build.run_id = run_id
        build.run_id_history = history

    if status == BuildStatus.QUEUED.value:
        _clear_artifacts(build)
        build.error_message = None

    build.status = status
    now = _now()
    build.completed_at = now if is_terminal(status) else None

    if firmware_path:
        build.firmware_path = firmware_path
    if source_path:
        build.source_path = source_path

    build.updated_at = now
    logger.debug("Build %s -> %s (run %s)", build.id, status, build.run_id)
    return True


def mark_dispatch_failure(build: Build, message: str) -> None:
    """Move a build to failure after the compiler could not be triggered.

    Args:
        build: Build record.
        message: Failure detail stored on the record.
    """
    apply_status(build, BuildStatus.FAILURE.value)
    build.error_message = message
    logger.error("Dispatch failed for build %s: %s", build.id, message)


def reset_for_retry(build: Build) -> None:
    """Return a build to ``queued`` ahead of a fresh dispatch."""
    apply_status(build, BuildStatus.QUEUED.value)


__all__ = ["apply_status", "mark_dispatch_failure", "reset_for_retry"]
