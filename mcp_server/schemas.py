"""Pydantic schemas for MCP tool responses.

These schemas define the structured output formats for MCP tools,
ensuring consistent JSON responses across all tools.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict


class BuildSummary(BaseModel):
    """Summary of a build record."""

    model_config = ConfigDict(extra="forbid")

    id: int
    build_hash: str
    status: str
    status_label: str
    target: str | None = None
    version: str | None = None
    run_id: str | None = None
    firmware_path: str | None = None
    source_path: str | None = None
    error_message: str | None = None
    updated_at: str | None = None
    completed_at: str | None = None


class EnsureBuildResponse(BaseModel):
    """Response for ensure_build tool."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    build: BuildSummary | None = None
    existed: bool = False
    dispatched: bool = False
    error: dict[str, Any] | None = None


class GetBuildResponse(BaseModel):
    """Response for get_build and retry_build tools."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    build: BuildSummary | None = None
    error: dict[str, Any] | None = None


class ListBuildsResponse(BaseModel):
    """Response for list_builds tool."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    builds: list[BuildSummary]
    total: int
    error: dict[str, Any] | None = None


class ResolvePluginsResponse(BaseModel):
    """Response for resolve_plugins tool."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    closure: list[str] = []
    implicit: list[str] = []
    pinned: list[str] = []
    error: dict[str, Any] | None = None


class CompatibilityResponse(BaseModel):
    """Response for check_compatibility tool."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    target: str
    ancestors: list[str] = []
    plugins: dict[str, bool] = {}
    compatible: bool = False
    error: dict[str, Any] | None = None


__all__ = [
    "BuildSummary",
    "CompatibilityResponse",
    "EnsureBuildResponse",
    "GetBuildResponse",
    "ListBuildsResponse",
    "ResolvePluginsResponse",
]
