"""Build management endpoints.

- POST /builds - Ensure a build for a configuration
- GET /builds - List builds
- GET /builds/failed - List failed builds
- GET /builds/id/{id} - Get build by ID
- POST /builds/id/{id}/retry - Retry a build
- POST /builds/id/{id}/download-url - Signed artifact download URL
- GET /builds/{hash} - Get build by hash
- GET /builds/{hash}/reproduce - Commands reproducing a build locally
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from meshforge.builds.artifacts import (
    ArtifactNotAvailableError,
    InvalidArtifactPathError,
    UrlSigner,
)
from meshforge.builds.dispatch import DispatchConfigError
from meshforge.builds.models import Build
from meshforge.builds.reproduce import reproduce_commands
from meshforge.builds.schema import BuildConfig
from meshforge.builds.service import (
    BuildNotFoundError,
    ensure_build,
    generate_download_url,
    get_build,
    get_build_by_hash,
    list_builds,
    list_failed_builds,
    retry_build,
)
from meshforge.context import RuntimeContext
from meshforge.types import ArtifactType, humanize_status
from web.deps import get_context, get_db, get_signer

router = APIRouter()


class DownloadUrlRequest(BaseModel):
    """Request body for download URL generation."""

    artifact_type: ArtifactType = ArtifactType.FIRMWARE
    profile_slug: str | None = None


def _build_to_dict(build: Build) -> dict[str, Any]:
    """Convert a build record to a dictionary."""
    return {
        "id": build.id,
        "build_hash": build.build_hash,
        "config": build.config,
        "status": build.status,
        "status_label": humanize_status(build.status),
        "run_id": build.run_id,
        "run_id_history": list(build.run_id_history or []),
        "firmware_path": build.firmware_path,
        "source_path": build.source_path,
        "error_message": build.error_message,
        "started_at": build.started_at.isoformat() if build.started_at else None,
        "updated_at": build.updated_at.isoformat() if build.updated_at else None,
        "completed_at": build.completed_at.isoformat() if build.completed_at else None,
    }


def _not_found(e: BuildNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail={"code": e.code, "message": str(e)})


def _not_configured(e: DispatchConfigError) -> HTTPException:
    return HTTPException(status_code=500, detail={"code": e.code, "message": str(e)})


@router.post("", status_code=200)
def ensure_build_endpoint(
    config: BuildConfig,
    db: Session = Depends(get_db),
    context: RuntimeContext = Depends(get_context),
) -> dict[str, Any]:
    """Get or create the build for a configuration.

    A new build is dispatched to the compiler; an existing one is returned
    as is.

    Returns:
        Build id, hash, whether it existed and its status.
    """
    try:
        result = ensure_build(db, config, context.registry, context.dispatcher)
    except DispatchConfigError as e:
        raise _not_configured(e) from e

    return {
        "build_id": result.build.id,
        "build_hash": result.build.build_hash,
        "existed": result.existed,
        "dispatched": result.dispatched,
        "status": result.build.status,
    }


@router.get("")
def list_builds_endpoint(
    status: str | None = Query(None, description="Filter by status"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum results"),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    """List build records, newest first."""
    return [_build_to_dict(b) for b in list_builds(db, status=status, limit=limit)]


@router.get("/failed")
def list_failed_builds_endpoint(
    limit: int = Query(100, ge=1, le=1000, description="Maximum results"),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    """List failed builds, most recently updated first."""
    return [_build_to_dict(b) for b in list_failed_builds(db, limit=limit)]


@router.get("/id/{build_id}")
def get_build_endpoint(
    build_id: int,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Get a build by ID.

    Raises:
        HTTPException: 404 if build not found.
    """
    try:
        return _build_to_dict(get_build(db, build_id))
    except BuildNotFoundError as e:
        raise _not_found(e) from e


@router.post("/id/{build_id}/retry")
def retry_build_endpoint(
    build_id: int,
    db: Session = Depends(get_db),
    context: RuntimeContext = Depends(get_context),
) -> dict[str, Any]:
    """Reset a build to queued and dispatch it again.

    Raises:
        HTTPException: 404 if build not found, 500 if dispatch is not configured.
    """
    try:
        build, dispatched = retry_build(
            db, build_id, context.registry, context.dispatcher
        )
    except BuildNotFoundError as e:
        raise _not_found(e) from e
    except DispatchConfigError as e:
        raise _not_configured(e) from e

    return {**_build_to_dict(build), "dispatched": dispatched}


@router.post("/id/{build_id}/download-url")
def download_url_endpoint(
    build_id: int,
    request: DownloadUrlRequest,
    db: Session = Depends(get_db),
    context: RuntimeContext = Depends(get_context),
    signer: UrlSigner = Depends(get_signer),
) -> dict[str, str]:
    """Generate a signed download URL for a build artifact.

    Raises:
        HTTPException: 404 if the build or artifact is missing, 400 if the
            stored path has an unknown extension.
    """
    try:
        link = generate_download_url(
            db,
            build_id,
            request.artifact_type,
            signer,
            profile_slug=request.profile_slug,
            product=context.settings.product_name,
        )
    except (BuildNotFoundError, ArtifactNotAvailableError) as e:
        raise HTTPException(
            status_code=404, detail={"code": e.code, "message": str(e)}
        ) from e
    except InvalidArtifactPathError as e:
        raise HTTPException(
            status_code=400, detail={"code": e.code, "message": str(e)}
        ) from e

    return {"url": link.url, "filename": link.filename, "object_key": link.object_key}


@router.get("/{build_hash}")
def get_build_by_hash_endpoint(
    build_hash: str,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Get a build by its content address.

    Raises:
        HTTPException: 404 if build not found.
    """
    try:
        return _build_to_dict(get_build_by_hash(db, build_hash))
    except BuildNotFoundError as e:
        raise _not_found(e) from e


@router.get("/{build_hash}/reproduce")
def reproduce_endpoint(
    build_hash: str,
    db: Session = Depends(get_db),
    context: RuntimeContext = Depends(get_context),
) -> dict[str, Any]:
    """Get bash commands reproducing a build locally.

    Raises:
        HTTPException: 404 if build not found.
    """
    try:
        build = get_build_by_hash(db, build_hash)
    except BuildNotFoundError as e:
        raise _not_found(e) from e

    commands = reproduce_commands(
        build, context.registry, product=context.settings.product_name
    )
    return {
        "build_hash": build.build_hash,
        "commands": commands,
        "script": "\n".join(commands),
    }
