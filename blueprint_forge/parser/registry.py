"""Explicit blueprint registry.

A registry is an ordinary value created by the caller and handed to the
generator.  There is no module-level instance, so tests (or concurrent
callers) can keep as many isolated registries as they like.
"""

from __future__ import annotations

import threading
from pathlib import Path

from blueprint_forge.errors import BlueprintNotFoundError, ConfigurationError
from blueprint_forge.parser.loader import Blueprint, discover_blueprints


class BlueprintRegistry:
    """Name-indexed collection of loaded blueprints."""

    def __init__(self, blueprints: list[Blueprint] | None = None) -> None:
        self._lock = threading.Lock()
        self._blueprints: dict[str, Blueprint] = {}
        for blueprint in blueprints or []:
            self.register(blueprint)

    @classmethod
    def from_directory(cls, root: str | Path) -> "BlueprintRegistry":
        """Register every blueprint found directly below *root*."""
        return cls(discover_blueprints(root))

    def register(self, blueprint: Blueprint, *, replace: bool = False) -> None:
        """Add *blueprint*; a second blueprint with the same name is an error
        unless *replace* is set."""
        with self._lock:
            if blueprint.name in self._blueprints and not replace:
                raise ConfigurationError(
                    f"blueprint '{blueprint.name}' is already registered",
                    location=blueprint.name,
                )
            self._blueprints[blueprint.name] = blueprint

    def get(self, name: str) -> Blueprint:
        with self._lock:
            blueprint = self._blueprints.get(name)
            if blueprint is None:
                raise BlueprintNotFoundError(name, sorted(self._blueprints))
            return blueprint

    def remove(self, name: str) -> None:
        with self._lock:
            if self._blueprints.pop(name, None) is None:
                raise BlueprintNotFoundError(name, sorted(self._blueprints))

    def exists(self, name: str) -> bool:
        with self._lock:
            return name in self._blueprints

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._blueprints)

    def list(self) -> list[Blueprint]:
        """All registered blueprints, sorted by name."""
        with self._lock:
            return [self._blueprints[name] for name in sorted(self._blueprints)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._blueprints)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.exists(name)
