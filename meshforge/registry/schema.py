"""Pydantic models for the static plugin and hardware registries.

Registries are produced upstream and consumed read-only. Their optional
fields are frequently missing or malformed, so validators coerce anything
unusable to an empty value instead of rejecting the entry.
"""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class ConfigOptionSchema(BaseModel):
    """A per-plugin build option exposed to users.

    Attributes:
        define: Preprocessor define emitted when the option is enabled.
        name: Display name.
        description: Longer description.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    define: str = Field(min_length=1)
    name: str | None = None
    description: str | None = None


class PluginRegistryEntry(BaseModel):
    """A plugin as published in the plugin registry.

    Attributes:
        slug: Registry key.
        name: Display name.
        version: Current published version.
        description: Optional description.
        dependencies: Dependency slug -> version range. Presence alone means
            "required"; ranges are informational.
        includes: Architectures/targets the plugin supports.
        excludes: Architectures/targets the plugin does not support.
        config_options: Option key -> option definition.
    """

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    slug: str = Field(min_length=1)
    name: str = ""
    version: str = ""
    description: str | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)
    includes: list[str] = Field(default_factory=list)
    excludes: list[str] = Field(default_factory=list)
    architectures: list[str] = Field(default_factory=list)
    config_options: dict[str, ConfigOptionSchema] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("config_options", "configOptions"),
    )
    featured: bool = False
    homepage: str | None = None
    repo: str | None = None
    image_url: str | None = Field(
        default=None, validation_alias=AliasChoices("image_url", "imageUrl")
    )

    @field_validator("dependencies", mode="before")
    @classmethod
    def coerce_dependencies(cls, v: Any) -> dict[str, str]:
        """Treat missing or non-mapping dependencies as none."""
        if not isinstance(v, dict):
            return {}
        return {str(k): str(val) for k, val in v.items()}

    @field_validator("includes", "excludes", "architectures", mode="before")
    @classmethod
    def coerce_name_list(cls, v: Any) -> list[str]:
        """Treat missing or non-list constraints as empty."""
        if isinstance(v, str):
            return [v]
        if not isinstance(v, list | tuple):
            return []
        return [str(item) for item in v if item]

    @field_validator("config_options", mode="before")
    @classmethod
    def coerce_config_options(cls, v: Any) -> dict[str, Any]:
        """Drop option definitions that are not mappings with a define."""
        if not isinstance(v, dict):
            return {}
        return {
            key: opt
            for key, opt in v.items()
            if isinstance(opt, dict) and opt.get("define")
        }

    @property
    def effective_includes(self) -> list[str]:
        """Include constraints, falling back to the legacy architectures field."""
        return self.includes or self.architectures

    @property
    def has_constraints(self) -> bool:
        """Whether the plugin declares any target constraint."""
        return bool(self.effective_includes or self.excludes)


class TargetEntry(BaseModel):
    """A hardware target from the hardware list.

    Attributes:
        platformio_target: Build environment name (the target id).
        display_name: Human-readable board name.
        tags: Free-form tags; the first is used as category.
        architecture: Architecture the board belongs to.
    """

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    platformio_target: str = Field(
        min_length=1,
        validation_alias=AliasChoices("platformio_target", "platformioTarget"),
    )
    display_name: str | None = Field(
        default=None, validation_alias=AliasChoices("display_name", "displayName")
    )
    tags: list[str] = Field(default_factory=list)
    architecture: str | None = None

    @field_validator("tags", mode="before")
    @classmethod
    def coerce_tags(cls, v: Any) -> list[str]:
        """Treat missing tags as empty."""
        if not isinstance(v, list):
            return []
        return [str(t) for t in v]

    @property
    def name(self) -> str:
        """Display name, falling back to the target id."""
        return self.display_name or self.platformio_target

    @property
    def category(self) -> str:
        """Category used to group targets."""
        return self.tags[0] if self.tags else "Other"


__all__ = ["ConfigOptionSchema", "PluginRegistryEntry", "TargetEntry"]
