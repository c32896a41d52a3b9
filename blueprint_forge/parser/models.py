"""Pydantic v2 models for blueprint manifests.

Defines the immutable data model loaded from a blueprint's ``template.yaml``:
variable definitions, file entries, dependency entries and post-generation
hooks.  Instances are frozen once validated; a manifest is identified by its
``name`` and ``version``.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class VariableType(str, Enum):
    """The legal shapes of a blueprint variable."""
    STRING = "string"
    BOOL = "bool"
    ENUM = "enum"


_TYPE_ALIASES: dict[str, VariableType] = {
    "string": VariableType.STRING,
    "str": VariableType.STRING,
    "int": VariableType.STRING,
    "integer": VariableType.STRING,
    "bool": VariableType.BOOL,
    "boolean": VariableType.BOOL,
    "enum": VariableType.ENUM,
    "select": VariableType.ENUM,
    "choice": VariableType.ENUM,
}


# ---------------------------------------------------------------------------
# Manifest entries
# ---------------------------------------------------------------------------

class VariableSpec(BaseModel):
    """Defines the legal shape of one context entry."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str = Field(..., min_length=1, description="Variable name as referenced by templates")
    type: VariableType = Field(default=VariableType.STRING)
    description: str = Field(default="")
    required: bool = Field(default=False)
    default: Any = Field(default=None, description="Value used when nothing else resolves")
    choices: tuple[str, ...] = Field(default=())
    validation_pattern: Optional[str] = Field(
        default=None,
        alias="validation",
        description="Regular expression the resolved value must match",
    )

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, value: Any) -> Any:
        if isinstance(value, VariableType) or value is None:
            return value or VariableType.STRING
        key = str(value).strip().lower()
        if key not in _TYPE_ALIASES:
            raise ValueError(f"unsupported variable type '{value}'")
        return _TYPE_ALIASES[key]

    @field_validator("choices", mode="before")
    @classmethod
    def _stringify_choices(cls, value: Any) -> Any:
        if value is None:
            return ()
        return tuple(str(choice) for choice in value)

    @field_validator("validation_pattern")
    @classmethod
    def _pattern_compiles(cls, value: Optional[str]) -> Optional[str]:
        if value:
            try:
                re.compile(value)
            except re.error as exc:
                raise ValueError(f"invalid validation pattern {value!r}: {exc}") from exc
        return value or None

    @model_validator(mode="after")
    def _enum_needs_choices(self) -> "VariableSpec":
        if self.type is VariableType.ENUM and not self.choices:
            raise ValueError(f"enum variable '{self.name}' declares no choices")
        if (
            self.choices
            and self.default not in (None, "")
            and str(self.default) not in self.choices
        ):
            raise ValueError(
                f"default {self.default!r} of variable '{self.name}' is not one of "
                f"{list(self.choices)}"
            )
        return self


class FileEntry(BaseModel):
    """One template file and where it lands in the generated project."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    source: str = Field(..., min_length=1, description="Template source id (path inside the blueprint)")
    destination: str = Field(..., min_length=1, description="Templated destination path")
    condition: str = Field(default="", description="Inclusion condition; empty means always")
    executable: bool = Field(default=False)

    @field_validator("condition", mode="before")
    @classmethod
    def _condition_as_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, bool):
            return "true" if value else "false"
        return value


class DependencySpec(BaseModel):
    """A dependency to declare in the generated project's build file."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    module: str = Field(..., min_length=1)
    version: str = Field(default="")
    condition: str = Field(default="")

    @field_validator("version", "condition", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    @property
    def requirement(self) -> str:
        """``module@version`` (or just ``module`` when unversioned)."""
        return f"{self.module}@{self.version}" if self.version else self.module


class HookSpec(BaseModel):
    """A post-generation command; opaque to the engine."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(default="")
    command: str = Field(..., min_length=1)
    args: tuple[str, ...] = Field(default=())
    work_dir: str = Field(default="")

    @field_validator("work_dir", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return "" if value is None else value


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------

class BlueprintManifest(BaseModel):
    """The structured description of a generatable project template."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str = Field(..., min_length=1)
    version: str = Field(default="0.0.0")
    description: str = Field(default="")
    type: str = Field(default="")
    architecture: str = Field(default="")
    variables: tuple[VariableSpec, ...] = Field(default=())
    files: tuple[FileEntry, ...] = Field(default=())
    dependencies: tuple[DependencySpec, ...] = Field(default=())
    post_hooks: tuple[HookSpec, ...] = Field(default=())
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("version", mode="before")
    @classmethod
    def _version_as_text(cls, value: Any) -> Any:
        return "0.0.0" if value is None else str(value)

    @field_validator("variables", "files", "dependencies", "post_hooks", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return () if value is None else value

    @model_validator(mode="after")
    def _unique_variable_names(self) -> "BlueprintManifest":
        seen: set[str] = set()
        for variable in self.variables:
            if variable.name in seen:
                raise ValueError(f"variable '{variable.name}' is declared more than once")
            seen.add(variable.name)
        return self

    @property
    def identifier(self) -> str:
        """``name@version``, the manifest's identity."""
        return f"{self.name}@{self.version}"

    def variable(self, name: str) -> Optional[VariableSpec]:
        """Return the spec for *name*, or ``None`` if it is not declared."""
        for spec in self.variables:
            if spec.name == name:
                return spec
        return None
