"""Generation orchestrator.

Drives one generation run through its states::

    LOADING -> RESOLVING -> VALIDATING -> RENDERING -> LIMIT_CHECKING
            -> COMMITTING -> DONE | FAILED

No state is entered twice and any failure jumps straight to ``FAILED``.
Errors raised by the leaf modules are caught here and returned as ordered
``GenerationIssue`` values inside a ``GenerationResult``; nothing is printed
and nothing is written to disk unless every earlier stage succeeded.
"""

from __future__ import annotations

import asyncio
import os
import threading
import time
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field

from blueprint_forge.config import Config
from blueprint_forge.errors import (
    CommitError,
    ConfigurationError,
    ContextError,
    RenderError,
    ResolutionError,
)
from blueprint_forge.hardener.limits import ResourceLimiter
from blueprint_forge.hardener.models import ValidationViolation, ViolationKind
from blueprint_forge.hardener.path_audit import validate_path
from blueprint_forge.hardener.template_audit import TemplateAuditor
from blueprint_forge.parser.loader import Blueprint, TemplateSourceError
from blueprint_forge.parser.registry import BlueprintRegistry
from blueprint_forge.scaffolder.context import VariableContext, build_context, env_variables
from blueprint_forge.scaffolder.resolver import PlannedFile, PlannedHook, Resolution, resolve
from blueprint_forge.scaffolder.templates import TemplateRenderer
from blueprint_forge.scaffolder.writer import AtomicWriter, StagedFile, check_output_dir


# ---------------------------------------------------------------------------
# Result model
# ---------------------------------------------------------------------------


class GenerationState(str, Enum):
    LOADING = "loading"
    RESOLVING = "resolving"
    VALIDATING = "validating"
    RENDERING = "rendering"
    LIMIT_CHECKING = "limit_checking"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


class IssueCategory(str, Enum):
    CONFIGURATION = "configuration"
    SECURITY = "security"
    RESOURCE_LIMIT = "resource_limit"
    RENDERING = "rendering"
    IO = "io"
    CANCELLED = "cancelled"


_RESOURCE_KINDS = {ViolationKind.SIZE_LIMIT_EXCEEDED, ViolationKind.COUNT_LIMIT_EXCEEDED}


class GenerationIssue(BaseModel):
    """One problem reported by a generation run."""

    category: IssueCategory
    message: str
    location: str = Field(default="")
    kind: Optional[ViolationKind] = Field(
        default=None, description="Set when the issue is a security or resource violation"
    )

    @classmethod
    def from_violation(cls, violation: ValidationViolation) -> "GenerationIssue":
        category = (
            IssueCategory.RESOURCE_LIMIT
            if violation.kind in _RESOURCE_KINDS
            else IssueCategory.SECURITY
        )
        return cls(
            category=category,
            message=violation.description,
            location=violation.location,
            kind=violation.kind,
        )

    def __str__(self) -> str:
        label = self.kind.value if self.kind else self.category.value
        where = f" at {self.location}" if self.location else ""
        return f"[{label}] {self.message}{where}"


class GenerationResult(BaseModel):
    """Typed outcome of :meth:`ProjectGenerator.generate`."""

    blueprint: str
    output_dir: str
    dry_run: bool = False
    state: GenerationState = GenerationState.LOADING
    success: bool = False
    written_paths: list[str] = Field(default_factory=list)
    planned_paths: list[str] = Field(default_factory=list, description="Destinations, relative")
    dependencies: list[str] = Field(default_factory=list, description="module@version lines")
    hooks: list[PlannedHook] = Field(default_factory=list)
    issues: list[GenerationIssue] = Field(default_factory=list)
    state_history: list[GenerationState] = Field(default_factory=list)
    duration: float = 0.0

    @property
    def violations(self) -> list[GenerationIssue]:
        """The issues that are security or resource violations."""
        return [issue for issue in self.issues if issue.kind is not None]

    def has_kind(self, kind: ViolationKind) -> bool:
        return any(issue.kind is kind for issue in self.issues)


class _Failed(Exception):
    """Internal: stop the run; issues are already recorded."""


# ---------------------------------------------------------------------------
# ProjectGenerator
# ---------------------------------------------------------------------------


class ProjectGenerator:
    """Generates projects from the blueprints in a registry.

    The generator holds no per-run state, so one instance may serve several
    concurrent :meth:`generate` calls; each call builds its own context,
    limiter and file set.

    Usage::

        registry = BlueprintRegistry.from_directory("blueprints/")
        generator = ProjectGenerator(registry, Config())
        result = await generator.generate(
            "web-api", "./my-service", overrides={"ProjectName": "my-service"}
        )
        if not result.success:
            for issue in result.issues:
                print(issue)
    """

    def __init__(
        self,
        registry: BlueprintRegistry,
        config: Config | None = None,
        *,
        renderer: TemplateRenderer | None = None,
        writer: AtomicWriter | None = None,
    ) -> None:
        self.registry = registry
        self.config = config or Config()
        self.renderer = renderer or TemplateRenderer(max_output_size=self.config.limits.max_file_size)
        self.writer = writer or AtomicWriter()
        self.auditor = TemplateAuditor.from_config(self.config.security)

    # -- Public API --------------------------------------------------------

    async def generate(
        self,
        blueprint_name: str,
        output_dir: str | Path,
        *,
        overrides: Mapping[str, Any] | None = None,
        profile: Mapping[str, Any] | None = None,
        env: Mapping[str, str] | None = None,
        dry_run: bool = False,
    ) -> GenerationResult:
        """Run one generation.

        Args:
            blueprint_name: Name of a blueprint in the registry.
            output_dir: Where the project is created; must be absent or an
                empty directory unless *dry_run* is set.
            overrides: Explicit values for this run (highest precedence).
            profile: Values from the active profile.
            env: Process environment to take prefixed variables from;
                defaults to ``os.environ``.
            dry_run: Resolve, validate and render, but write nothing.

        Returns:
            A ``GenerationResult``; failures are reported in ``issues`` rather
            than raised.

        Raises:
            asyncio.CancelledError: If cancelled before the commit starts
                (nothing has been written).
        """
        started = time.monotonic()
        output = Path(output_dir).absolute()
        result = GenerationResult(blueprint=blueprint_name, output_dir=str(output), dry_run=dry_run)

        try:
            await self._run(result, output, overrides, profile, env, dry_run)
        except _Failed:
            self._enter(result, GenerationState.FAILED)
        result.success = result.state is GenerationState.DONE
        result.duration = time.monotonic() - started
        return result

    # -- Stages ------------------------------------------------------------

    async def _run(
        self,
        result: GenerationResult,
        output: Path,
        overrides: Mapping[str, Any] | None,
        profile: Mapping[str, Any] | None,
        env: Mapping[str, str] | None,
        dry_run: bool,
    ) -> None:
        self._enter(result, GenerationState.LOADING)
        blueprint, ctx = self._load(result, output, overrides, profile, env, dry_run)

        self._enter(result, GenerationState.RESOLVING)
        resolution = self._resolve(result, blueprint, ctx, output)
        result.planned_paths = resolution.destinations
        result.dependencies = [dep.requirement for dep in resolution.dependencies]
        result.hooks = list(resolution.hooks)

        self._enter(result, GenerationState.VALIDATING)
        limiter = ResourceLimiter.from_config(self.config.limits)
        sources = await asyncio.to_thread(self._validate, result, blueprint, resolution, limiter)

        self._enter(result, GenerationState.RENDERING)
        staged = await self._render_all(result, resolution.files, sources, ctx, limiter)

        self._enter(result, GenerationState.LIMIT_CHECKING)
        self._fail_on_violations(result, limiter.final_check())

        if dry_run:
            self._enter(result, GenerationState.DONE)
            return

        self._enter(result, GenerationState.COMMITTING)
        await self._commit(result, staged, output)
        self._enter(result, GenerationState.DONE)

    def _load(
        self,
        result: GenerationResult,
        output: Path,
        overrides: Mapping[str, Any] | None,
        profile: Mapping[str, Any] | None,
        env: Mapping[str, str] | None,
        dry_run: bool,
    ) -> tuple[Blueprint, VariableContext]:
        try:
            blueprint = self.registry.get(result.blueprint)
            environ = os.environ if env is None else env
            ctx = build_context(
                blueprint.manifest.variables,
                profile=profile,
                overrides=overrides,
                env=env_variables(environ, self.config.variable_env_prefix),
            )
            if not dry_run:
                check_output_dir(output)
        except ContextError as exc:
            for problem in exc.problems:
                self._issue(result, IssueCategory.CONFIGURATION, problem, result.blueprint)
            raise _Failed from exc
        except ConfigurationError as exc:
            self._issue(result, IssueCategory.CONFIGURATION, str(exc), exc.location)
            raise _Failed from exc
        result.blueprint = blueprint.identifier
        return blueprint, ctx

    def _resolve(
        self, result: GenerationResult, blueprint: Blueprint, ctx: VariableContext, output: Path
    ) -> Resolution:
        try:
            return resolve(blueprint.manifest, ctx, self.renderer, output_path=str(output))
        except ResolutionError as exc:
            for problem in exc.problems:
                self._issue(result, IssueCategory.CONFIGURATION, problem, blueprint.identifier)
            raise _Failed from exc
        except RenderError as exc:
            self._issue(result, IssueCategory.RENDERING, str(exc), exc.template_id)
            raise _Failed from exc

    def _validate(
        self,
        result: GenerationResult,
        blueprint: Blueprint,
        resolution: Resolution,
        limiter: ResourceLimiter,
    ) -> dict[str, str]:
        """Audit destinations and template sources; return the source bodies."""
        violations: list[ValidationViolation] = []
        for planned in resolution.files:
            violations.extend(
                validate_path(planned.destination, max_length=self.config.security.max_path_length)
            )
        violations.extend(limiter.plan_destinations(resolution.destinations))

        sources: dict[str, str] = {}
        for planned in resolution.files:
            if planned.source in sources:
                continue
            try:
                size = blueprint.store.size(planned.source)
                if size > self.auditor.max_template_size:
                    violations.append(
                        ValidationViolation(
                            kind=ViolationKind.SIZE_LIMIT_EXCEEDED,
                            description=(
                                f"template size {size} exceeds maximum "
                                f"{self.auditor.max_template_size} bytes"
                            ),
                            location=planned.source,
                        )
                    )
                    sources[planned.source] = ""
                    continue
                body = blueprint.store.read(planned.source)
            except TemplateSourceError as exc:
                if exc.violations:
                    violations.extend(exc.violations)
                else:
                    self._issue(result, IssueCategory.CONFIGURATION, str(exc), exc.source)
                sources[planned.source] = ""
                continue
            except OSError as exc:
                self._issue(result, IssueCategory.IO, f"{planned.source}: {exc}", planned.source)
                sources[planned.source] = ""
                continue
            sources[planned.source] = body
            violations.extend(self.auditor.validate_template(body, planned.source))

        for violation in violations:
            result.issues.append(GenerationIssue.from_violation(violation))
        if result.issues:
            raise _Failed
        return sources

    async def _render_all(
        self,
        result: GenerationResult,
        files: tuple[PlannedFile, ...],
        sources: Mapping[str, str],
        ctx: VariableContext,
        limiter: ResourceLimiter,
    ) -> list[StagedFile]:
        semaphore = asyncio.Semaphore(self.config.max_workers)
        abort = threading.Event()

        def render_one(planned: PlannedFile) -> tuple[Optional[StagedFile], list[GenerationIssue]]:
            if abort.is_set():
                return None, []
            try:
                content = self.renderer.render(sources[planned.source], ctx, template_id=planned.source)
            except RenderError as exc:
                abort.set()
                return None, [
                    GenerationIssue(
                        category=IssueCategory.RENDERING,
                        message=str(exc),
                        location=planned.destination,
                    )
                ]
            over = limiter.record_file(planned.destination, len(content))
            if over:
                abort.set()
                return None, [GenerationIssue.from_violation(v) for v in over]
            return StagedFile(planned.destination, content, planned.executable), []

        async def bounded(planned: PlannedFile):
            async with semaphore:
                return await asyncio.to_thread(render_one, planned)

        try:
            outcomes = await asyncio.gather(*(bounded(planned) for planned in files))
        except asyncio.CancelledError:
            # Threads already running finish their file; queued ones return at once.
            abort.set()
            raise

        staged: list[StagedFile] = []
        for staged_file, issues in outcomes:
            result.issues.extend(issues)
            if staged_file is not None:
                staged.append(staged_file)
        if result.issues:
            raise _Failed
        return staged

    async def _commit(self, result: GenerationResult, staged: list[StagedFile], output: Path) -> None:
        commit = asyncio.ensure_future(asyncio.to_thread(self.writer.commit, staged, output))
        cancelled = False
        try:
            try:
                written = await asyncio.shield(commit)
            except asyncio.CancelledError:
                # Too late to abandon: let the commit finish, then report.
                cancelled = True
                written = await commit
        except CommitError as exc:
            self._issue(result, IssueCategory.IO, str(exc), str(output))
            raise _Failed from exc
        except (ConfigurationError, OSError) as exc:
            category = IssueCategory.CONFIGURATION if isinstance(exc, ConfigurationError) else IssueCategory.IO
            self._issue(result, category, str(exc), str(output))
            raise _Failed from exc

        result.written_paths = [str(path) for path in written]
        if cancelled:
            self._issue(
                result,
                IssueCategory.CANCELLED,
                "cancelled during commit; the project was written completely and may be removed",
                str(output),
            )
            raise _Failed

    # -- Helpers -----------------------------------------------------------

    @staticmethod
    def _enter(result: GenerationResult, state: GenerationState) -> None:
        result.state = state
        result.state_history.append(state)

    @staticmethod
    def _issue(result: GenerationResult, category: IssueCategory, message: str, location: str = "") -> None:
        result.issues.append(GenerationIssue(category=category, message=message, location=location))

    def _fail_on_violations(self, result: GenerationResult, violations: list[ValidationViolation]) -> None:
        if violations:
            result.issues.extend(GenerationIssue.from_violation(v) for v in violations)
            raise _Failed
