"""Build service module.

This module provides the high-level build API:
- ensure_build(): Main entry point - normalize, hash, get-or-create, dispatch
- retry_build(): Re-dispatch a build from its stored configuration
- update_build_status() / handle_webhook(): Apply compiler status reports
- Build queries and download URL generation

Services flush but never commit; the caller owns the transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from meshforge.builds.artifacts import (
    DEFAULT_PRODUCT,
    UrlSigner,
    download_filename,
    resolve_object_key,
)
from meshforge.builds.canonical import (
    canonicalize,
    compute_build_hash,
    normalize_build_config,
)
from meshforge.builds.dispatch import Dispatcher, DispatchError, DispatchRequest
from meshforge.builds.lifecycle import (
    apply_status,
    mark_dispatch_failure,
    reset_for_retry,
)
from meshforge.builds.models import Build
from meshforge.builds.schema import BuildConfig, WebhookPayload
from meshforge.plugins.service import record_plugin_usage
from meshforge.types import ArtifactType, BuildStatus

if TYPE_CHECKING:
    from meshforge.plugins.resolver import Registry

logger = logging.getLogger(__name__)


class BuildNotFoundError(Exception):
    """Raised when a build is not found."""

    def __init__(self, build_ref: int | str, code: str = "build_not_found") -> None:
        super().__init__(f"Build not found: {build_ref}")
        self.build_ref = build_ref
        self.code = code


@dataclass
class EnsureResult:
    """Outcome of ensure_build.

    Attributes:
        build: The build record for the config's hash.
        existed: True if the record already existed.
        dispatched: True if a compile job was started by this call.
    """

    build: Build
    existed: bool
    dispatched: bool = False


@dataclass
class DownloadLink:
    """Signed download location of an artifact."""

    url: str
    filename: str
    object_key: str


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _find_by_hash(session: Session, build_hash: str) -> Build | None:
    stmt = select(Build).where(Build.build_hash == build_hash)
    return session.execute(stmt).scalar_one_or_none()


def get_or_create(
    session: Session,
    build_hash: str,
    config: dict[str, Any],
) -> tuple[Build, bool]:
    """Return the build for a hash, creating it in ``queued`` if absent.

    Concurrent creators of the same hash converge on one record: the insert
    runs in a savepoint, a unique violation returns the winner, and a
    successful insert is re-checked so the earliest row survives.

    Args:
        session: Database session.
        build_hash: Build content address.
        config: Normalized configuration to store on creation.

    Returns:
        Tuple of (Build, existed).
    """
    existing = _find_by_hash(session, build_hash)
    if existing is not None:
        return existing, True

    stmt = select(Build).where(Build.build_hash == build_hash)
    now = _now()
    build = Build(
        build_hash=build_hash,
        config=config,
        status=BuildStatus.QUEUED.value,
        run_id_history=[],
        started_at=now,
        updated_at=now,
    )
    try:
        with session.begin_nested():
            session.add(build)
    except IntegrityError:
        logger.info("Lost creation race for hash %s, reusing winner", build_hash[:12])
        return session.execute(stmt).scalar_one(), True

    rows = list(session.execute(stmt.order_by(Build.id)).scalars().all())
    if rows and rows[0] is not build:
        logger.warning(
            "Duplicate build rows for hash %s, keeping %d", build_hash[:12], rows[0].id
        )
        session.delete(build)
        session.flush()
        return rows[0], True

    logger.info("Created build %d (hash=%s)", build.id, build_hash[:12])
    return build, False


def dispatch_build(
    session: Session,
    build: Build,
    registry: Registry,
    dispatcher: Dispatcher,
) -> bool:
    """Start a compile job for a build's stored configuration.

    Flags and the pinned plugin closure are recomputed from the stored
    config; the stored hash is the job's identity.

    Args:
        session: Database session.
        build: Build record.
        registry: Plugin registry.
        dispatcher: Compiler dispatcher.

    Returns:
        True if dispatched, False if dispatch failed (build marked failure).

    Raises:
        DispatchConfigError: If the dispatcher is not configured.
    """
    config = BuildConfig.model_validate(build.config)
    canonical = canonicalize(config, registry)
    request = DispatchRequest(
        target=config.target,
        version=config.version,
        flags=canonical.flags,
        build_id=build.id,
        build_hash=build.build_hash,
        plugins=canonical.closure,
    )
    try:
        dispatcher.dispatch(request)
    except DispatchError as e:
        mark_dispatch_failure(build, str(e))
        session.flush()
        return False
    return True


def ensure_build(
    session: Session,
    config: BuildConfig,
    registry: Registry,
    dispatcher: Dispatcher,
) -> EnsureResult:
    """Get or create the build for a configuration.

    This is the main entry point for build requests. It:
    1. Normalizes the config to explicit selections
    2. Computes the build hash
    3. Gets or creates the build record
    4. Records plugin usage
    5. Dispatches a compile job when the record is new

    Args:
        session: Database session.
        config: Submitted configuration.
        registry: Plugin registry.
        dispatcher: Compiler dispatcher.

    Returns:
        EnsureResult instance.

    Raises:
        DispatchConfigError: If the dispatcher is not configured.
    """
    normalized = normalize_build_config(config, registry)
    build_hash = compute_build_hash(normalized, registry)
    build, existed = get_or_create(session, build_hash, normalized.to_storage())

    record_plugin_usage(session, normalized.plugins_enabled)

    if existed:
        logger.info("Reusing build %d (hash=%s)", build.id, build_hash[:12])
        return EnsureResult(build=build, existed=True)

    dispatched = dispatch_build(session, build, registry, dispatcher)
    return EnsureResult(build=build, existed=False, dispatched=dispatched)


def _get_build_locked(session: Session, build_id: int) -> Build:
    stmt = select(Build).where(Build.id == build_id).with_for_update()
    build = session.execute(stmt).scalar_one_or_none()
    if build is None:
        raise BuildNotFoundError(build_id)
    return build


def retry_build(
    session: Session,
    build_id: int,
    registry: Registry,
    dispatcher: Dispatcher,
) -> tuple[Build, bool]:
    """Reset a build to ``queued`` and dispatch it again.

    Args:
        session: Database session.
        build_id: Build ID.
        registry: Plugin registry.
        dispatcher: Compiler dispatcher.

    Returns:
        Tuple of (Build, dispatched).

    Raises:
        BuildNotFoundError: If build not found.
        DispatchConfigError: If the dispatcher is not configured.
    """
    build = _get_build_locked(session, build_id)
    reset_for_retry(build)
    session.flush()
    logger.info("Retrying build %d (hash=%s)", build.id, build.build_hash[:12])
    dispatched = dispatch_build(session, build, registry, dispatcher)
    return build, dispatched


def update_build_status(
    session: Session,
    build_id: int,
    status: str,
    run_id: str | None = None,
    firmware_path: str | None = None,
    source_path: str | None = None,
) -> tuple[Build, bool]:
    """Apply a status report to a build under a row lock.

    Args:
        session: Database session.
        build_id: Build ID.
        status: Reported status.
        run_id: Compiler run id.
        firmware_path: Firmware object key.
        source_path: Source object key.

    Returns:
        Tuple of (Build, applied).

    Raises:
        BuildNotFoundError: If build not found.
    """
    build = _get_build_locked(session, build_id)
    applied = apply_status(
        build,
        status,
        run_id=run_id,
        firmware_path=firmware_path,
        source_path=source_path,
    )
    session.flush()
    if applied:
        logger.info("Build %d status -> %s", build.id, status)
    return build, applied


def handle_webhook(session: Session, payload: WebhookPayload) -> tuple[Build, bool]:
    """Apply a validated webhook payload.

    Raises:
        BuildNotFoundError: If the build does not exist.
    """
    return update_build_status(
        session,
        payload.build_id,
        payload.status,
        run_id=payload.run_id,
        firmware_path=payload.artifact_paths.firmware,
        source_path=payload.artifact_paths.source,
    )


def get_build(session: Session, build_id: int) -> Build:
    """Get a build by ID.

    Raises:
        BuildNotFoundError: If build not found.
    """
    build = session.get(Build, build_id)
    if build is None:
        raise BuildNotFoundError(build_id)
    return build


def get_build_or_none(session: Session, build_id: int) -> Build | None:
    """Get a build by ID, or None if not found."""
    return session.get(Build, build_id)


def get_build_by_hash(session: Session, build_hash: str) -> Build:
    """Get a build by its content address.

    Raises:
        BuildNotFoundError: If build not found.
    """
    stmt = select(Build).where(Build.build_hash == build_hash)
    build = session.execute(stmt).scalar_one_or_none()
    if build is None:
        raise BuildNotFoundError(build_hash)
    return build


def list_builds(
    session: Session,
    status: str | None = None,
    limit: int = 100,
) -> list[Build]:
    """List builds, newest first.

    Args:
        session: Database session.
        status: Filter by status.
        limit: Maximum results to return.

    Returns:
        List of Build instances.
    """
    stmt = select(Build)
    if status is not None:
        stmt = stmt.where(Build.status == status)
    stmt = stmt.order_by(Build.id.desc()).limit(limit)
    return list(session.execute(stmt).scalars().all())


def list_failed_builds(session: Session, limit: int = 100) -> list[Build]:
    """List failed builds, most recently updated first."""
    stmt = (
        select(Build)
        .where(Build.status == BuildStatus.FAILURE.value)
        .order_by(Build.updated_at.desc(), Build.id.desc())
        .limit(limit)
    )
    return list(session.execute(stmt).scalars().all())


def generate_download_url(
    session: Session,
    build_id: int,
    artifact_type: ArtifactType,
    signer: UrlSigner,
    profile_slug: str | None = None,
    product: str = DEFAULT_PRODUCT,
) -> DownloadLink:
    """Produce a signed download URL for a build artifact.

    Args:
        session: Database session.
        build_id: Build ID.
        artifact_type: Artifact kind.
        signer: URL signer.
        profile_slug: Optional profile slug for the filename.
        product: Filename prefix.

    Returns:
        DownloadLink instance.

    Raises:
        BuildNotFoundError: If build not found.
        ArtifactNotAvailableError: If the artifact cannot be located.
        InvalidArtifactPathError: If the object key has an unknown extension.
    """
    build = get_build(session, build_id)
    key = resolve_object_key(build, artifact_type)
    filename = download_filename(
        build, artifact_type, profile_slug=profile_slug, product=product
    )
    logger.info("Signing %s download for build %d", artifact_type.value, build.id)
    return DownloadLink(
        url=signer.sign(key, filename), filename=filename, object_key=key
    )


__all__ = [
    "BuildNotFoundError",
    "DownloadLink",
    "EnsureResult",
    "dispatch_build",
    "ensure_build",
    "generate_download_url",
    "get_build",
    "get_build_by_hash",
    "get_build_or_none",
    "get_or_create",
    "handle_webhook",
    "list_builds",
    "list_failed_builds",
    "retry_build",
    "update_build_status",
]
