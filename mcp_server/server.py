"""MCP server implementation.

This module creates the FastMCP server and registers all tools.
Tools are thin wrappers around core meshforge services:
- ensure_build is idempotent: the same configuration returns the same build
- Errors are returned as structured dicts with stable codes
"""

from typing import Annotated, Any

from mcp.server.fastmcp import FastMCP
from pydantic import Field, ValidationError

from mcp_server.errors import (
    DISPATCH_FAILED,
    INTERNAL_ERROR,
    build_not_found,
    make_error,
    validation_error,
)
from mcp_server.schemas import (
    BuildSummary,
    CompatibilityResponse,
    EnsureBuildResponse,
    GetBuildResponse,
    ListBuildsResponse,
    ResolvePluginsResponse,
)

# Create the FastMCP server instance
mcp = FastMCP(
    name="meshforge",
)


def _get_session_factory() -> Any:
    """Get the database session factory.

    Returns:
        Session factory callable.
    """
    from meshforge.db import create_all_tables, get_engine, get_session_factory

    engine = get_engine()
    create_all_tables(engine)
    return get_session_factory(engine)


def _get_context() -> Any:
    """Load registries and collaborators from settings."""
    from meshforge.context import load_context

    return load_context()


def _summarize(build: Any) -> BuildSummary:
    """Convert a build record to a BuildSummary."""
    from meshforge.types import humanize_status

    config = build.config or {}
    return BuildSummary(
        id=build.id,
        build_hash=build.build_hash,
        status=build.status,
        status_label=humanize_status(build.status),
        target=config.get("target"),
        version=config.get("version"),
        run_id=build.run_id,
        firmware_path=build.firmware_path,
        source_path=build.source_path,
        error_message=build.error_message,
        updated_at=build.updated_at.isoformat() if build.updated_at else None,
        completed_at=build.completed_at.isoformat() if build.completed_at else None,
    )


@mcp.tool()
def ensure_build(
    version: Annotated[str, Field(description="Firmware version, e.g. v2.7.16")],
    target: Annotated[str, Field(description="Hardware target, e.g. tbeam")],
    plugins: Annotated[
        list[str] | None,
        Field(description="Explicit plugins as slug or slug@version"),
    ] = None,
    modules_excluded: Annotated[
        list[str] | None, Field(description="Core module ids to exclude")
    ] = None,
    plugin_configs: Annotated[
        dict[str, dict[str, bool]] | None,
        Field(description="Per-plugin option flags"),
    ] = None,
) -> EnsureBuildResponse:
    """Get or create the build for a configuration.

    Idempotent: equivalent configurations (any order, dependencies listed
    or not) map to the same build. Only a newly created build is
    dispatched to the compiler.

    Args:
        version: Firmware version.
        target: Hardware target.
        plugins: Explicit plugin selection.
        modules_excluded: Core modules to exclude.
        plugin_configs: Per-plugin option flags.

    Returns:
        EnsureBuildResponse with the build or error.
    """
    from meshforge.builds.dispatch import DispatchConfigError
    from meshforge.builds.schema import BuildConfig
    from meshforge.builds.service import ensure_build as svc_ensure_build

    try:
        config = BuildConfig(
            version=version,
            target=target,
            plugins_enabled=plugins or [],
            modules_excluded={module: True for module in modules_excluded or []},
            plugin_configs=plugin_configs,
        )
    except ValidationError as e:
        return EnsureBuildResponse(
            success=False,
            error=validation_error(
                "Invalid build configuration",
                details={"errors": e.errors(include_url=False, include_context=False)},
            ).to_dict(),
        )

    try:
        context = _get_context()
        factory = _get_session_factory()
        with factory() as session:
            try:
                result = svc_ensure_build(
                    session, config, context.registry, context.dispatcher
                )
                session.commit()
            except DispatchConfigError as e:
                session.rollback()
                return EnsureBuildResponse(
                    success=False, error=make_error(e.code, str(e)).to_dict()
                )

            error = None
            if not result.existed and not result.dispatched:
                error = make_error(
                    DISPATCH_FAILED, result.build.error_message or "Dispatch failed"
                ).to_dict()
            return EnsureBuildResponse(
                success=error is None,
                build=_summarize(result.build),
                existed=result.existed,
                dispatched=result.dispatched,
                error=error,
            )

    except Exception as e:
        error = make_error(getattr(e, "code", INTERNAL_ERROR), str(e))
        return EnsureBuildResponse(success=False, error=error.to_dict())


@mcp.tool()
def get_build(
    build_id: Annotated[int | None, Field(description="Build ID")] = None,
    build_hash: Annotated[str | None, Field(description="Build hash")] = None,
) -> GetBuildResponse:
    """Get a build by ID or hash.

    Args:
        build_id: Build ID.
        build_hash: Build content address.

    Returns:
        GetBuildResponse with the build or error.
    """
    from meshforge.builds.service import (
        BuildNotFoundError,
        get_build_by_hash,
    )
    from meshforge.builds.service import get_build as svc_get_build

    if build_id is None and not build_hash:
        return GetBuildResponse(
            success=False,
            error=validation_error("Provide build_id or build_hash").to_dict(),
        )

    try:
        factory = _get_session_factory()
        with factory() as session:
            try:
                if build_id is not None:
                    build = svc_get_build(session, build_id)
                else:
                    build = get_build_by_hash(session, build_hash or "")
            except BuildNotFoundError as e:
                return GetBuildResponse(
                    success=False, error=build_not_found(e.build_ref).to_dict()
                )
            return GetBuildResponse(success=True, build=_summarize(build))

    except Exception as e:
        error = make_error(INTERNAL_ERROR, str(e))
        return GetBuildResponse(success=False, error=error.to_dict())


@mcp.tool()
def list_builds(
    status: Annotated[
        str | None,
        Field(description="Filter by status: queued, in_progress, success, failure"),
    ] = None,
    failed_only: Annotated[
        bool, Field(description="Only failed builds, most recently updated first")
    ] = False,
    limit: Annotated[int, Field(description="Maximum results to return")] = 100,
) -> ListBuildsResponse:
    """List builds with optional filters.

    Args:
        status: Filter by build status.
        failed_only: Only list failed builds.
        limit: Maximum number of results.

    Returns:
        ListBuildsResponse with list of builds or error.
    """
    from meshforge.builds.service import list_builds as svc_list_builds
    from meshforge.builds.service import list_failed_builds

    if limit < 1:
        error = validation_error("limit must be at least 1")
        return ListBuildsResponse(
            success=False, builds=[], total=0, error=error.to_dict()
        )

    try:
        factory = _get_session_factory()
        with factory() as session:
            if failed_only:
                builds = list_failed_builds(session, limit=limit)
            else:
                builds = svc_list_builds(session, status=status, limit=limit)
            summaries = [_summarize(b) for b in builds]
            return ListBuildsResponse(
                success=True, builds=summaries, total=len(summaries)
            )

    except Exception as e:
        error = make_error(INTERNAL_ERROR, str(e))
        return ListBuildsResponse(
            success=False, builds=[], total=0, error=error.to_dict()
        )


@mcp.tool()
def retry_build(
    build_id: Annotated[int, Field(description="Build ID to retry")],
) -> GetBuildResponse:
    """Reset a build to queued and dispatch it again.

    Args:
        build_id: Build ID.

    Returns:
        GetBuildResponse with the updated build or error.
    """
    from meshforge.builds.dispatch import DispatchConfigError
    from meshforge.builds.service import BuildNotFoundError
    from meshforge.builds.service import retry_build as svc_retry_build

    try:
        context = _get_context()
        factory = _get_session_factory()
        with factory() as session:
            try:
                build, dispatched = svc_retry_build(
                    session, build_id, context.registry, context.dispatcher
                )
                session.commit()
            except BuildNotFoundError:
                return GetBuildResponse(
                    success=False, error=build_not_found(build_id).to_dict()
                )
            except DispatchConfigError as e:
                session.rollback()
                return GetBuildResponse(
                    success=False, error=make_error(e.code, str(e)).to_dict()
                )
            error = None
            if not dispatched:
                error = make_error(
                    DISPATCH_FAILED, build.error_message or "Dispatch failed"
                ).to_dict()
            return GetBuildResponse(
                success=dispatched, build=_summarize(build), error=error
            )

    except Exception as e:
        error = make_error(getattr(e, "code", INTERNAL_ERROR), str(e))
        return GetBuildResponse(success=False, error=error.to_dict())


@mcp.tool()
def resolve_plugins(
    plugins: Annotated[
        list[str], Field(description="Explicit plugins as slug or slug@version")
    ],
) -> ResolvePluginsResponse:
    """Resolve an explicit plugin selection to its dependency closure.

    Args:
        plugins: Explicit selection.

    Returns:
        ResolvePluginsResponse with closure, implicit dependencies and pins.
    """
    from meshforge.plugins.resolver import closure, implicit_only, pinned_closure

    try:
        registry = _get_context().registry
        return ResolvePluginsResponse(
            success=True,
            closure=closure(plugins, registry),
            implicit=sorted(implicit_only(plugins, registry)),
            pinned=pinned_closure(plugins, registry),
        )
    except Exception as e:
        error = make_error(getattr(e, "code", INTERNAL_ERROR), str(e))
        return ResolvePluginsResponse(success=False, error=error.to_dict())


@mcp.tool()
def check_compatibility(
    target: Annotated[str, Field(description="Hardware target")],
    plugins: Annotated[list[str], Field(description="Plugin slugs to check")],
) -> CompatibilityResponse:
    """Check whether plugins can be built for a target.

    Plugins unknown to the registry impose no constraint.

    Args:
        target: Hardware target.
        plugins: Plugin slugs.

    Returns:
        CompatibilityResponse with per-plugin verdicts.
    """
    from meshforge.plugins.resolver import token_slugs

    try:
        context = _get_context()
        hierarchy = context.hierarchy
        verdicts = {
            slug: hierarchy.is_plugin_compatible(context.registry[slug], target)
            if slug in context.registry
            else True
            for slug in token_slugs(plugins)
        }
        return CompatibilityResponse(
            success=True,
            target=target,
            ancestors=hierarchy.ancestors(target),
            plugins=verdicts,
            compatible=all(verdicts.values()),
        )
    except Exception as e:
        error = make_error(getattr(e, "code", INTERNAL_ERROR), str(e))
        return CompatibilityResponse(
            success=False, target=target, error=error.to_dict()
        )


__all__ = [
    "check_compatibility",
    "ensure_build",
    "get_build",
    "list_builds",
    "mcp",
    "resolve_plugins",
    "retry_build",
]
