"""Shared utility functions for Blueprint Forge.

Helpers used by the CLI layer and the configuration loader: running hook
commands, YAML/JSON file I/O, ``--set`` parsing and Rich console output.
The generation engine itself never prints.
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Any, NamedTuple, Sequence

import yaml
from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

console = Console()

START_FAILURE_CODE = 127
TIMEOUT_CODE = -1


# ---------------------------------------------------------------------------
# Hook command execution
# ---------------------------------------------------------------------------


class CommandResult(NamedTuple):
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def failure_reason(self) -> str:
        """Last line of stderr, or the exit code when stderr is empty."""
        lines = self.stderr.splitlines()
        return lines[-1] if lines else f"exit code {self.returncode}"


async def run_command(
    argv: Sequence[str],
    cwd: str | Path | None = None,
    timeout: int = 300,
    env: dict[str, str] | None = None,
) -> CommandResult:
    """Run *argv* without a shell and capture its output.

    Hook arguments come from blueprints, so they are never handed to a shell.

    Args:
        argv: Program followed by its arguments.
        cwd: Working directory for the child process.
        timeout: Seconds before the process is killed.
        env: Extra environment variables layered over ``os.environ``.

    Returns:
        A :class:`CommandResult`.  A program that cannot be started yields
        ``START_FAILURE_CODE`` and a timeout yields ``TIMEOUT_CODE``, each with
        the reason in ``stderr``.
    """
    child_env = {**os.environ, **env} if env else None
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
            env=child_env,
        )
    except OSError as exc:
        return CommandResult(START_FAILURE_CODE, "", f"Could not start command: {exc}")

    try:
        out, err = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        return CommandResult(TIMEOUT_CODE, "", f"Command timed out after {timeout}s: {' '.join(argv)}")

    return CommandResult(
        process.returncode or 0,
        (out or b"").decode("utf-8", errors="replace").strip(),
        (err or b"").decode("utf-8", errors="replace").strip(),
    )


# ---------------------------------------------------------------------------
# File I/O
# ---------------------------------------------------------------------------


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML mapping; an empty document yields ``{}``.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        ValueError: If the document is not a mapping.
    """
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level, got {type(data).__name__}")
    return data


async def save_json(data: dict[str, Any] | list[Any], path: str | Path) -> Path:
    """Write *data* as indented JSON off the event loop and return the path."""
    target = Path(path)
    content = json.dumps(data, indent=2, ensure_ascii=False, default=str) + "\n"

    def _write() -> None:
        ensure_dir(target.parent)
        target.write_text(content, encoding="utf-8")

    await asyncio.to_thread(_write)
    return target


def ensure_dir(path: str | Path) -> Path:
    """Create *path* and its parents if needed; return it resolved."""
    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory.resolve()


# ---------------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------------


def parse_assignments(pairs: list[str]) -> dict[str, str]:
    """Turn ``["Name=demo", "Port=8080"]`` into a mapping.

    Only the first ``=`` splits, so values may contain ``=``.  A later
    assignment to the same name wins.

    Raises:
        ValueError: If an item has no ``=`` or an empty name.
    """
    values: dict[str, str] = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        name = name.strip()
        if not sep or not name:
            raise ValueError(f"expected NAME=VALUE, got {pair!r}")
        values[name] = value
    return values


def format_duration(seconds: float) -> str:
    """``3.74`` -> ``"3.7s"``, ``65.2`` -> ``"1m 5s"``, ``3661`` -> ``"1h 1m 1s"``."""
    seconds = max(seconds, 0.0)
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    parts = [f"{hours}h"] if hours else []
    if minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{secs}s")
    return " ".join(parts)


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


def print_summary_table(data: dict[str, str], title: str = "Summary") -> None:
    table = Table(title=title, show_header=False, title_style="bold cyan", box=None, padding=(0, 2))
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")
    for key, value in data.items():
        table.add_row(escape(key), escape(str(value)))
    console.print(table)
    console.print()


def print_success(message: str) -> None:
    console.print(f"[bold green]✓ {escape(message)}[/bold green]")


def print_error(message: str) -> None:
    console.print(f"[bold red]✗ {escape(message)}[/bold red]")


def print_warning(message: str) -> None:
    console.print(f"[bold yellow]! {escape(message)}[/bold yellow]")


def create_progress() -> Progress:
    """Transient spinner shown while a generation runs."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )
