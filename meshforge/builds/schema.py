"""Pydantic models for build configurations and status webhooks.

BuildConfig is the user-facing description of a firmware build. It accepts
both snake_case and camelCase keys so payloads produced by browser clients
validate unchanged.
"""

from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from meshforge.plugins.resolver import parse_plugin_token


class BuildConfig(BaseModel):
    """Schema for a firmware build configuration.

    Attributes:
        version: Firmware version (e.g. ``v2.7.16``).
        target: Hardware target (PlatformIO environment name).
        modules_excluded: Core module id -> excluded flag.
        plugins_enabled: Explicit plugin tokens (``slug`` or ``slug@version``).
        plugin_configs: Plugin slug -> option key -> enabled.
    """

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    version: str = Field(min_length=1, description="Firmware version")
    target: str = Field(min_length=1, description="Hardware target")
    modules_excluded: dict[str, bool] = Field(
        default_factory=dict, description="Core modules to exclude"
    )
    plugins_enabled: list[str] = Field(
        default_factory=list, description="Explicitly selected plugins"
    )
    plugin_configs: dict[str, dict[str, bool]] | None = Field(
        default=None, description="Per-plugin option flags"
    )

    @field_validator("version", "target")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject whitespace-only values."""
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    @field_validator("plugins_enabled")
    @classmethod
    def validate_plugin_tokens(cls, v: list[str]) -> list[str]:
        """Strip tokens, drop empty ones and reject conflicting pins."""
        tokens = [token.strip() for token in v if token and token.strip()]
        pins: dict[str, str] = {}
        for token in tokens:
            slug, version = parse_plugin_token(token)
            if version is None:
                continue
            if pins.setdefault(slug, version) != version:
                raise ValueError(
                    f"conflicting pins for {slug}: {pins[slug]} and {version}"
                )
        return tokens

    def excluded_modules(self) -> list[str]:
        """Return the ids of excluded modules, sorted."""
        return sorted(k for k, excluded in self.modules_excluded.items() if excluded)

    def to_storage(self) -> dict[str, Any]:
        """Serialize for the database using camelCase keys."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ArtifactPaths(BaseModel):
    """Object keys reported for a completed run."""

    model_config = ConfigDict(extra="ignore")

    firmware: str | None = None
    source: str | None = None


class WebhookPayload(BaseModel):
    """Schema for inbound build status updates.

    The workflow reports ``state`` and ``github_run_id``; both the short and
    the legacy names are accepted. Legacy ``artifactPath`` / ``artifact_path``
    designates the firmware archive.

    Attributes:
        build_id: Build record id.
        status: Reported status (opaque for intermediates).
        run_id: Compiler run id, normalized to a string.
        artifact_paths: Reported object keys.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    build_id: int
    status: str = Field(validation_alias=AliasChoices("status", "state"))
    run_id: str | None = Field(
        default=None, validation_alias=AliasChoices("run_id", "github_run_id")
    )
    artifact_paths: ArtifactPaths = Field(
        default_factory=ArtifactPaths,
        validation_alias=AliasChoices("artifact_paths", "artifactPaths"),
    )

    @model_validator(mode="before")
    @classmethod
    def merge_legacy_paths(cls, data: Any) -> Any:
        """Fold legacy top-level path fields into artifact_paths."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        paths = dict(data.get("artifact_paths") or data.get("artifactPaths") or {})
        firmware = (
            data.pop("firmware_path", None)
            or data.pop("artifact_path", None)
            or data.pop("artifactPath", None)
        )
        source = data.pop("source_path", None)
        if firmware and not paths.get("firmware"):
            paths["firmware"] = firmware
        if source and not paths.get("source"):
            paths["source"] = source
        data.pop("artifactPaths", None)
        data["artifact_paths"] = paths
        return data

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        """Reject empty status values."""
        if not v or not v.strip():
            raise ValueError("status must not be empty")
        return v.strip()

    @field_validator("run_id", mode="before")
    @classmethod
    def normalize_run_id(cls, v: Any) -> str | None:
        """Accept numeric run ids and store them as strings."""
        if v is None or v == "":
            return None
        if isinstance(v, bool):
            raise ValueError("run_id must be a string or integer")
        return str(v)


__all__ = ["ArtifactPaths", "BuildConfig", "WebhookPayload"]
