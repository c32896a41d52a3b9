"""All-or-nothing commit of rendered files.

Every file is first written into a private staging directory created next to
the output path.  Only when the whole tree has been staged is the staging
directory renamed onto the output path in one step, so an observer sees
either no project or the complete project.  Any failure removes the staging
directory and reports what cleanup achieved.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from blueprint_forge.errors import CommitError, ConfigurationError


EXECUTABLE_MODE = 0o755
DIRECTORY_MODE = 0o755
STAGING_PREFIX = ".forge-staging-"


@dataclass(frozen=True)
class StagedFile:
    """A rendered file ready to be committed."""

    destination: str
    content: bytes
    executable: bool = False


def check_output_dir(output_dir: str | Path) -> None:
    """Refuse output paths that already hold something.

    Raises:
        ConfigurationError: If *output_dir* exists and is not an empty
            directory.
    """
    path = Path(output_dir)
    if not path.exists():
        return
    if not path.is_dir():
        raise ConfigurationError(f"output path {path} exists and is not a directory", location=str(path))
    if any(path.iterdir()):
        raise ConfigurationError(f"output directory {path} is not empty", location=str(path))


class AtomicWriter:
    """Commits a resolved file set into an output directory."""

    def commit(self, files: Sequence[StagedFile], output_dir: str | Path) -> list[Path]:
        """Write *files* below *output_dir* atomically.

        Returns:
            The absolute paths written, in the order given.

        Raises:
            ConfigurationError: If *output_dir* is not absent or empty.
            CommitError: On any I/O failure; the message carries the cleanup
                outcome and *output_dir* is left as it was found.
        """
        output = Path(output_dir).absolute()
        check_output_dir(output)
        existed = output.exists()

        created_parents = self._make_parents(output.parent)
        staging: Path | None = None
        removed_empty_output = False
        try:
            staging = Path(tempfile.mkdtemp(prefix=STAGING_PREFIX, dir=output.parent))
            # mkdtemp creates 0700; the project root should look like any mkdir.
            staging.chmod(DIRECTORY_MODE)
            for staged in files:
                self._stage(staging, staged)
            if existed:
                output.rmdir()
                removed_empty_output = True
            os.replace(staging, output)
        except OSError as exc:
            cleanup = self._cleanup(staging, created_parents, output, removed_empty_output)
            raise CommitError(f"could not write project to {output}: {exc}", cleanup=cleanup) from exc

        return [output / staged.destination for staged in files]

    # -- Internals ---------------------------------------------------------

    @staticmethod
    def _make_parents(parent: Path) -> list[Path]:
        missing = []
        current = parent
        while not current.exists():
            missing.append(current)
            current = current.parent
        parent.mkdir(parents=True, exist_ok=True)
        return missing

    @staticmethod
    def _stage(staging: Path, staged: StagedFile) -> None:
        target = staging / staged.destination
        # Destinations have been audited; this only guards the staging root.
        if not target.resolve().is_relative_to(staging.resolve()):
            raise OSError(f"destination '{staged.destination}' resolves outside the project")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(staged.content)
        if staged.executable:
            target.chmod(EXECUTABLE_MODE)

    @staticmethod
    def _cleanup(
        staging: Path | None,
        created_parents: list[Path],
        output: Path,
        removed_empty_output: bool,
    ) -> str:
        notes = []
        if staging is not None and staging.exists():
            try:
                shutil.rmtree(staging)
                notes.append("removed staging directory")
            except OSError as exc:
                notes.append(f"could not remove staging directory {staging}: {exc}")
        if removed_empty_output and not output.exists():
            try:
                output.mkdir()
                notes.append("restored empty output directory")
            except OSError as exc:
                notes.append(f"could not restore empty output directory: {exc}")
        for parent in created_parents:
            try:
                parent.rmdir()
            except OSError:
                break
        return "; ".join(notes) or "nothing to clean up"
