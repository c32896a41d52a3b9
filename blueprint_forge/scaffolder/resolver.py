"""Manifest resolution.

Turns a manifest plus a ``VariableContext`` into the concrete, ordered plan
for one generation run: which template lands at which destination, which
dependencies to declare and which hooks to run afterwards.  Nothing is
rendered or written here except the (short) destination strings.
"""

from __future__ import annotations

import os
import posixpath
from dataclasses import dataclass

from blueprint_forge.errors import ConditionError, ResolutionError
from blueprint_forge.parser.models import BlueprintManifest, DependencySpec, HookSpec
from blueprint_forge.scaffolder.conditions import Node, evaluate, parse_condition
from blueprint_forge.scaffolder.context import VariableContext
from blueprint_forge.scaffolder.templates import TemplateRenderer


@dataclass(frozen=True)
class PlannedFile:
    """One selected file: where its template comes from and where it goes."""

    source: str
    destination: str
    executable: bool = False


@dataclass(frozen=True)
class PlannedHook:
    name: str
    command: str
    args: tuple[str, ...]
    work_dir: str


@dataclass(frozen=True)
class Resolution:
    files: tuple[PlannedFile, ...]
    dependencies: tuple[DependencySpec, ...]
    hooks: tuple[PlannedHook, ...] = ()

    @property
    def destinations(self) -> list[str]:
        return [planned.destination for planned in self.files]


def _destination_key(destination: str) -> str:
    """Collision key: separators unified and ``./`` noise removed."""
    return posixpath.normpath(destination.replace("\\", "/"))


def _parents(key: str) -> list[str]:
    """``"a/b/c.go"`` -> ``["a", "a/b"]``."""
    parts = key.split("/")[:-1]
    return ["/".join(parts[: index + 1]) for index in range(len(parts)) if parts[index]]


def _parse_all(manifest: BlueprintManifest) -> tuple[list[Node], list[Node], list[str]]:
    problems: list[str] = []

    def parse(expression: str, where: str) -> Node:
        try:
            return parse_condition(expression)
        except ConditionError as exc:
            problems.append(f"{where}: {exc}")
            return parse_condition("")

    file_conditions = [
        parse(entry.condition, f"files[{index}] ({entry.source})")
        for index, entry in enumerate(manifest.files)
    ]
    dependency_conditions = [
        parse(dep.condition, f"dependencies[{index}] ({dep.module})")
        for index, dep in enumerate(manifest.dependencies)
    ]
    return file_conditions, dependency_conditions, problems


def resolve(
    manifest: BlueprintManifest,
    ctx: VariableContext,
    renderer: TemplateRenderer,
    *,
    output_path: str = "",
) -> Resolution:
    """Resolve *manifest* against *ctx*.

    Files keep manifest order.  Each destination is rendered before its
    condition is evaluated.  Two selected files may never share a
    destination, and no selected file may sit where another needs a
    directory.  Dependencies are filtered by their own conditions and
    de-duplicated by module (first occurrence wins; a different version for
    the same module is an error).

    Args:
        manifest: The blueprint manifest.
        ctx: The run's variable context, shared by every condition.
        renderer: Renders destination strings and hook working directories.
        output_path: Exposed as ``OutputPath`` when rendering hook
            working directories, and the base a relative one is joined to.

    Raises:
        ResolutionError: Listing every malformed condition, destination
            collision, file/directory clash and dependency conflict.
        RenderError: If a destination string fails to render.
    """
    file_conditions, dependency_conditions, problems = _parse_all(manifest)
    if problems:
        raise ResolutionError(problems)

    files: list[PlannedFile] = []
    claimed: dict[str, str] = {}
    # Directories implied by claimed files, mapped to the first file needing each.
    directories: dict[str, str] = {}
    for entry, condition in zip(manifest.files, file_conditions):
        destination = renderer.render_path(entry.destination, ctx)
        if not evaluate(condition, ctx):
            continue
        key = _destination_key(destination)
        if key in claimed:
            problems.append(
                f"destination '{destination}' is produced by both "
                f"'{claimed[key]}' and '{entry.source}'"
            )
            continue
        if key in directories:
            problems.append(
                f"destination '{destination}' of '{entry.source}' is also a directory "
                f"needed by '{directories[key]}'"
            )
            continue
        clash = next((parent for parent in _parents(key) if parent in claimed), None)
        if clash is not None:
            problems.append(
                f"destination '{destination}' of '{entry.source}' needs directory "
                f"'{clash}', which is a file produced by '{claimed[clash]}'"
            )
            continue
        claimed[key] = entry.source
        for parent in _parents(key):
            directories.setdefault(parent, entry.source)
        files.append(PlannedFile(entry.source, destination, entry.executable))

    dependencies: list[DependencySpec] = []
    versions: dict[str, str] = {}
    for dep, condition in zip(manifest.dependencies, dependency_conditions):
        if not evaluate(condition, ctx):
            continue
        if dep.module in versions:
            if dep.version and versions[dep.module] and dep.version != versions[dep.module]:
                problems.append(
                    f"dependency '{dep.module}' requested at both "
                    f"{versions[dep.module]} and {dep.version}"
                )
            continue
        versions[dep.module] = dep.version
        dependencies.append(dep)

    if problems:
        raise ResolutionError(problems)

    hooks = tuple(_plan_hook(hook, ctx, renderer, output_path) for hook in manifest.post_hooks)
    return Resolution(tuple(files), tuple(dependencies), hooks)


def _plan_hook(
    hook: HookSpec, ctx: VariableContext, renderer: TemplateRenderer, output_path: str
) -> PlannedHook:
    work_dir = renderer.render_path(hook.work_dir, ctx, extra={"OutputPath": output_path})
    if not work_dir:
        work_dir = output_path
    elif output_path and not os.path.isabs(work_dir):
        work_dir = os.path.join(output_path, work_dir)
    return PlannedHook(
        name=hook.name or hook.command,
        command=hook.command,
        args=hook.args,
        work_dir=work_dir,
    )
