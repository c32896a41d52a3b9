"""Blueprint Forge command-line interface.

Gathers inputs (blueprint, output path, variable overrides, profile), runs the
generation engine and presents its typed result with Rich.  After a
successful commit it writes the dependency list and runs the blueprint's
post-generation hooks.

Usage::

    forge list
    forge new web-api -o ./my-service --set ProjectName=my-service --set AuthType=jwt
    forge new web-api -o ./my-service --dry-run
    forge scan web-api --output json

Exit codes: 0 success, 1 generation failure, 2 usage error.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import shlex
import sys
from pathlib import Path
from typing import Any

from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from blueprint_forge.config import Config, load_profiles
from blueprint_forge.errors import ConfigurationError
from blueprint_forge.hardener.models import ValidationViolation
from blueprint_forge.hardener.path_audit import validate_path
from blueprint_forge.hardener.template_audit import TemplateAuditor
from blueprint_forge.parser.loader import Blueprint, TemplateSourceError
from blueprint_forge.parser.registry import BlueprintRegistry
from blueprint_forge.scaffolder.generator import GenerationResult, ProjectGenerator
from blueprint_forge.scaffolder.resolver import PlannedHook
from blueprint_forge.utils import (
    console,
    create_progress,
    ensure_dir,
    format_duration,
    parse_assignments,
    print_error,
    print_success,
    print_summary_table,
    print_warning,
    run_command,
    save_json,
)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


# ---------------------------------------------------------------------------
# External collaborators: dependency file and hooks
# ---------------------------------------------------------------------------


def write_dependencies(path: str | Path, dependencies: list[str]) -> Path:
    """Write one ``module@version`` line per dependency."""
    target = ensure_dir(Path(path).parent) / Path(path).name
    target.write_text("".join(f"{line}\n" for line in dependencies), encoding="utf-8")
    return target


def hook_argv(hook: PlannedHook) -> list[str]:
    """Program and arguments for *hook*.

    A hook without ``args`` may spell its arguments inline (``go mod tidy``);
    the command is then split with shell quoting rules, but never run by a
    shell.

    Raises:
        ValueError: If the inline command has unbalanced quotes.
    """
    if hook.args:
        return [hook.command, *hook.args]
    return shlex.split(hook.command)


async def run_hooks(hooks: list[PlannedHook], timeout: int = 300) -> list[str]:
    """Run post-generation hooks in order.

    Returns:
        One warning per hook that failed; failures never stop later hooks.
    """
    warnings: list[str] = []
    for hook in hooks:
        console.print(f"  [dim]Running hook {escape(hook.name)}...[/dim]")
        try:
            argv = hook_argv(hook)
        except ValueError as exc:
            warnings.append(f"hook '{hook.name}' failed: cannot parse command: {exc}")
            continue
        if not argv:
            warnings.append(f"hook '{hook.name}' failed: empty command")
            continue
        outcome = await run_command(argv, cwd=hook.work_dir or None, timeout=timeout)
        if not outcome.ok:
            warnings.append(f"hook '{hook.name}' failed: {outcome.failure_reason()}")
    return warnings


# ---------------------------------------------------------------------------
# Presentation
# ---------------------------------------------------------------------------


def print_result(result: GenerationResult) -> None:
    """Pretty-print a generation result."""
    if result.issues:
        table = Table(title="Issues", show_lines=False)
        table.add_column("Category", style="bold red", no_wrap=True)
        table.add_column("Kind", no_wrap=True)
        table.add_column("Location", style="dim")
        table.add_column("Message")
        for issue in result.issues:
            table.add_row(
                issue.category.value,
                issue.kind.value if issue.kind else "",
                escape(issue.location),
                escape(issue.message),
            )
        console.print(table)

    summary = {
        "Blueprint": result.blueprint,
        "Output": result.output_dir,
        "State": " -> ".join(state.value for state in result.state_history),
        "Files": str(len(result.written_paths) if not result.dry_run else len(result.planned_paths)),
        "Dependencies": str(len(result.dependencies)),
        "Duration": format_duration(result.duration),
    }
    if result.dry_run:
        summary["Mode"] = "dry run (nothing written)"
    print_summary_table(summary, title="Generation")

    if result.dry_run and result.success:
        for path in result.planned_paths:
            console.print(f"  [green]+[/green] {escape(path)}")


def print_violations(blueprint: Blueprint, violations: list[ValidationViolation]) -> None:
    if not violations:
        print_success(f"{blueprint.identifier}: no violations found")
        return
    table = Table(title=f"Violations in {blueprint.identifier}")
    table.add_column("Kind", style="bold red", no_wrap=True)
    table.add_column("Location", style="dim")
    table.add_column("Description")
    for violation in violations:
        table.add_row(violation.kind.value, escape(violation.location), escape(violation.description))
    console.print(table)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_list(registry: BlueprintRegistry) -> int:
    blueprints = registry.list()
    if not blueprints:
        print_warning("No blueprints found.")
        return EXIT_OK
    table = Table(title="Blueprints", show_header=True, header_style="bold cyan")
    table.add_column("Name", no_wrap=True)
    table.add_column("Version")
    table.add_column("Type")
    table.add_column("Description")
    for blueprint in blueprints:
        manifest = blueprint.manifest
        table.add_row(manifest.name, manifest.version, manifest.type, escape(manifest.description))
    console.print(table)
    return EXIT_OK


def scan_blueprint(blueprint: Blueprint, config: Config) -> list[ValidationViolation]:
    """Audit every template and literal destination of *blueprint*.

    Conditions are ignored: every file entry is checked.  Destinations that
    contain template markup are only checked once rendered, during
    generation.
    """
    auditor = TemplateAuditor.from_config(config.security)
    violations: list[ValidationViolation] = []
    seen: set[str] = set()
    for entry in blueprint.manifest.files:
        if "{" not in entry.destination:
            violations.extend(
                validate_path(entry.destination, max_length=config.security.max_path_length)
            )
        if entry.source in seen:
            continue
        seen.add(entry.source)
        try:
            body = blueprint.store.read(entry.source)
        except TemplateSourceError as exc:
            violations.extend(exc.violations)
            continue
        violations.extend(auditor.validate_template(body, entry.source))
    return violations


def cmd_scan(registry: BlueprintRegistry, config: Config, name: str, output: str) -> int:
    blueprint = registry.get(name)
    violations = scan_blueprint(blueprint, config)
    if output == "json":
        payload: dict[str, Any] = {
            "blueprint": blueprint.identifier,
            "violations": [violation.model_dump(mode="json") for violation in violations],
        }
        console.print_json(json.dumps(payload))
    else:
        print_violations(blueprint, violations)
    return EXIT_FAILURE if violations else EXIT_OK


async def cmd_new(registry: BlueprintRegistry, config: Config, args: argparse.Namespace) -> int:
    overrides = parse_assignments(args.set or [])
    profile = load_profiles(config.profiles_path).resolve(args.profile or config.active_profile)

    console.print(
        Panel(
            f"[bold bright_cyan]Blueprint Forge[/bold bright_cyan]\n"
            f"Blueprint : {escape(args.blueprint)}\n"
            f"Output    : {escape(str(Path(args.output).absolute()))}\n"
            f"Variables : {len(overrides)} set, profile {escape(args.profile or config.active_profile or '(none)')}",
            title="[bold]New Project[/bold]",
            border_style="bright_cyan",
        )
    )

    generator = ProjectGenerator(registry, config)
    with create_progress() as progress:
        progress.add_task(f"Generating {args.blueprint}...", total=None)
        result = await generator.generate(
            args.blueprint,
            args.output,
            overrides=overrides,
            profile=profile,
            dry_run=args.dry_run,
        )

    print_result(result)
    if args.report:
        await save_json(result.model_dump(mode="json"), args.report)
        console.print(f"  [dim]Report saved to {escape(str(args.report))}[/dim]")
    if not result.success:
        print_error(f"Generation failed with {len(result.issues)} issue(s).")
        return EXIT_FAILURE

    if args.deps_file and result.dependencies:
        written = write_dependencies(args.deps_file, result.dependencies)
        console.print(f"  [green]+[/green] Dependencies written to {escape(str(written))}")

    if result.dry_run:
        print_success("Dry run complete; nothing was written.")
        return EXIT_OK

    if result.hooks and not args.no_hooks:
        for warning in await run_hooks(result.hooks):
            print_warning(warning)

    print_success(f"Project generated in {result.output_dir}")
    return EXIT_OK


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="forge",
        description="Blueprint Forge -- generate projects from secure blueprints",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  forge list\n"
            "  forge new web-api -o ./my-service --set ProjectName=my-service\n"
            "  forge scan web-api --output json\n"
        ),
    )
    parser.add_argument(
        "--blueprints-dir",
        default=None,
        help="Directory holding blueprint directories (default: $FORGE_BLUEPRINTS_DIR or ./blueprints)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="JSON configuration file saved with Config.save()",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List available blueprints")

    new = sub.add_parser("new", help="Generate a project from a blueprint")
    new.add_argument("blueprint", help="Blueprint name")
    new.add_argument("--output", "-o", required=True, help="Output directory (must be absent or empty)")
    new.add_argument(
        "--set",
        action="append",
        metavar="NAME=VALUE",
        help="Set a variable (repeatable); overrides profile and environment values",
    )
    new.add_argument("--profile", default="", help="Profile to take variable values from")
    new.add_argument("--dry-run", action="store_true", help="Validate and render without writing")
    new.add_argument("--no-hooks", action="store_true", help="Do not run post-generation hooks")
    new.add_argument("--deps-file", default=None, help="Write the resolved dependency list here")
    new.add_argument("--report", default=None, help="Save the generation result as JSON")

    scan = sub.add_parser("scan", help="Audit a blueprint's templates without generating")
    scan.add_argument("blueprint", help="Blueprint name")
    scan.add_argument("--output", choices=("console", "json"), default="console")

    return parser


def _load_config(args: argparse.Namespace) -> Config:
    config = Config.load(Path(args.config)) if args.config else Config.from_env()
    if args.blueprints_dir:
        config = config.model_copy(update={"blueprints_dir": Path(args.blueprints_dir)})
    return config


def run(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the selected command and return its exit code."""
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_USAGE

    if args.command == "new":
        try:
            parse_assignments(args.set or [])
        except ValueError as exc:
            console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
            return EXIT_USAGE

    try:
        config = _load_config(args)
        registry = BlueprintRegistry.from_directory(config.blueprints_dir)
        if args.command == "list":
            return cmd_list(registry)
        if args.command == "scan":
            return cmd_scan(registry, config, args.blueprint, args.output)
        return asyncio.run(cmd_new(registry, config, args))
    except ConfigurationError as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        return EXIT_FAILURE
    except (OSError, ValueError) as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        return EXIT_FAILURE
    except KeyboardInterrupt:
        print_warning("Cancelled before commit; nothing was written.")
        return EXIT_FAILURE


def main() -> None:
    """CLI entry point for ``forge`` and ``python -m blueprint_forge.pipeline``."""
    sys.exit(run())


if __name__ == "__main__":
    main()
