"""Blueprint Forge configuration.

Centralised, typed configuration for the engine and the CLI.  All settings use
Pydantic v2 models so they are validated at construction time and serialise
to/from JSON or environment variables without boiler-plate.  User profiles
(named sets of variable values) are kept in a separate YAML file.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, model_validator

from blueprint_forge.errors import ConfigurationError
from blueprint_forge.hardener.limits import MIB
from blueprint_forge.utils import load_yaml


class LimitsConfig(BaseModel):
    """Resource ceilings applied to every generation run."""

    max_files: int = Field(default=1000, ge=1)
    max_directories: int = Field(default=100, ge=1)
    max_file_size: int = Field(default=10 * MIB, ge=1, description="Bytes per rendered file")
    max_total_bytes: Optional[int] = Field(
        default=None, ge=1, description="Aggregate bytes; defaults to max_file_size * max_files"
    )

    @model_validator(mode="after")
    def _default_total(self) -> "LimitsConfig":
        if self.max_total_bytes is None:
            self.max_total_bytes = self.max_file_size * self.max_files
        return self


class SecurityConfig(BaseModel):
    """Ceilings used by the template and path audits."""

    max_template_size: int = Field(default=1 * MIB, ge=1, description="Bytes per template source")
    max_path_length: int = Field(default=260, ge=1)
    max_loop_depth: int = Field(default=2, ge=1)
    max_format_width: int = Field(default=99999, ge=1)


class Config(BaseModel):
    """Global Blueprint Forge configuration.

    Instances are typically created once by the CLI entry point and then
    passed to the ``ProjectGenerator``.
    """

    blueprints_dir: Path = Field(default=Path("./blueprints"))
    profiles_path: Path = Field(default=Path("~/.config/blueprint-forge/profiles.yaml"))
    active_profile: str = Field(default="", description="Overrides the profile file's current_profile")
    variable_env_prefix: str = Field(default="FORGE_VAR_")
    max_workers: int = Field(default=8, ge=1, description="Concurrent template renders")
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Persist the configuration to a JSON file.

        Returns:
            The path where the file was written.
        """
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            FORGE_BLUEPRINTS_DIR, FORGE_PROFILES_PATH, FORGE_PROFILE,
            FORGE_VAR_PREFIX, FORGE_MAX_WORKERS,
            FORGE_MAX_FILES, FORGE_MAX_DIRECTORIES, FORGE_MAX_FILE_SIZE,
            FORGE_MAX_TOTAL_BYTES, FORGE_MAX_TEMPLATE_SIZE,
            FORGE_MAX_PATH_LENGTH, FORGE_MAX_LOOP_DEPTH.
        """
        limits_kwargs: dict[str, Any] = {}
        for env_name, field_name in (
            ("FORGE_MAX_FILES", "max_files"),
            ("FORGE_MAX_DIRECTORIES", "max_directories"),
            ("FORGE_MAX_FILE_SIZE", "max_file_size"),
            ("FORGE_MAX_TOTAL_BYTES", "max_total_bytes"),
        ):
            if os.environ.get(env_name):
                limits_kwargs[field_name] = int(os.environ[env_name])

        security_kwargs: dict[str, Any] = {}
        for env_name, field_name in (
            ("FORGE_MAX_TEMPLATE_SIZE", "max_template_size"),
            ("FORGE_MAX_PATH_LENGTH", "max_path_length"),
            ("FORGE_MAX_LOOP_DEPTH", "max_loop_depth"),
        ):
            if os.environ.get(env_name):
                security_kwargs[field_name] = int(os.environ[env_name])

        kwargs: dict[str, Any] = {}
        if os.environ.get("FORGE_BLUEPRINTS_DIR"):
            kwargs["blueprints_dir"] = Path(os.environ["FORGE_BLUEPRINTS_DIR"])
        if os.environ.get("FORGE_PROFILES_PATH"):
            kwargs["profiles_path"] = Path(os.environ["FORGE_PROFILES_PATH"])
        if os.environ.get("FORGE_VAR_PREFIX"):
            kwargs["variable_env_prefix"] = os.environ["FORGE_VAR_PREFIX"]
        if os.environ.get("FORGE_MAX_WORKERS"):
            kwargs["max_workers"] = int(os.environ["FORGE_MAX_WORKERS"])

        return cls(
            active_profile=os.environ.get("FORGE_PROFILE", ""),
            limits=LimitsConfig(**limits_kwargs),
            security=SecurityConfig(**security_kwargs),
            **kwargs,
        )


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


class Profiles(BaseModel):
    """Named sets of variable values kept between runs."""

    current_profile: str = Field(default="")
    profiles: dict[str, dict[str, Any]] = Field(default_factory=dict)

    def resolve(self, name: str = "") -> dict[str, Any]:
        """Return the values of profile *name* (or the current profile).

        An empty selection with no current profile yields no values.

        Raises:
            ConfigurationError: If a named profile does not exist.
        """
        selected = name or self.current_profile
        if not selected:
            return {}
        if selected not in self.profiles:
            raise ConfigurationError(
                f"profile '{selected}' not found (available: {', '.join(sorted(self.profiles)) or 'none'})",
                location=selected,
            )
        return dict(self.profiles[selected] or {})


def load_profiles(path: str | Path) -> Profiles:
    """Load the profile file; a missing file means no profiles.

    Raises:
        ConfigurationError: If the file is not valid YAML or has the wrong shape.
    """
    profile_path = Path(path).expanduser()
    if not profile_path.exists():
        return Profiles()
    try:
        return Profiles.model_validate(load_yaml(profile_path))
    except (yaml.YAMLError, ValueError) as exc:
        raise ConfigurationError(f"{profile_path}: invalid profile file: {exc}", location=str(profile_path)) from exc
