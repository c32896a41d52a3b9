"""Exception hierarchy for the blueprint engine.

Leaf modules raise these at their boundaries; the generation orchestrator in
``blueprint_forge.scaffolder.generator`` catches them and turns them into
``GenerationIssue`` values so callers always receive a typed result.
"""

from __future__ import annotations


class ForgeError(Exception):
    """Base class for every error raised by blueprint_forge."""


class ConfigurationError(ForgeError):
    """The blueprint or the supplied configuration is broken (not malicious)."""

    def __init__(self, message: str, *, location: str = "") -> None:
        self.location = location
        super().__init__(message)


class ManifestError(ConfigurationError):
    """A blueprint manifest could not be loaded or failed validation."""


class ConditionError(ConfigurationError):
    """A condition expression is malformed or uses an unknown function."""

    def __init__(self, expression: str, message: str) -> None:
        self.expression = expression
        super().__init__(f"invalid condition {expression!r}: {message}")


class BlueprintNotFoundError(ConfigurationError):
    """Raised when a registry has no blueprint with the requested name."""

    def __init__(self, name: str, available: list[str] | None = None) -> None:
        self.name = name
        self.available = list(available or [])
        message = f"blueprint '{name}' not found"
        if self.available:
            message += f" (available: {', '.join(self.available)})"
        super().__init__(message)


class ContextError(ConfigurationError):
    """One or more variables could not be resolved into a valid context.

    Every problem found is kept in :attr:`problems` so the caller can report
    all of them at once.
    """

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__("; ".join(self.problems) or "invalid variable context")


class ResolutionError(ConfigurationError):
    """The manifest cannot be resolved unambiguously against the context.

    Raised for broken conditions, colliding destinations and conflicting
    dependency versions; every problem found is kept in :attr:`problems`.
    """

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__("; ".join(self.problems) or "manifest could not be resolved")


class RenderError(ForgeError):
    """A template failed to parse or render against the given context."""

    def __init__(self, template_id: str, message: str) -> None:
        self.template_id = template_id
        super().__init__(f"{template_id}: {message}")


class CommitError(ForgeError):
    """Writing the staged project into the output directory failed."""

    def __init__(self, message: str, *, cleanup: str = "") -> None:
        self.cleanup = cleanup
        full = message if not cleanup else f"{message} (cleanup: {cleanup})"
        super().__init__(full)
