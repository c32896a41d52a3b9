"""Resource ceilings for a single generation run.

The limiter is fed incrementally while files are resolved and rendered, so a
runaway blueprint is rejected as soon as a ceiling is crossed rather than
after everything has been produced.  Counters are guarded by a lock because
rendering happens on worker threads.
"""

from __future__ import annotations

import threading
from pathlib import PurePosixPath
from typing import Optional

from blueprint_forge.hardener.models import ValidationViolation, ViolationKind


MIB = 1024 * 1024


class ResourceLimiter:
    """Counts files, directories and bytes against configured ceilings.

    Args:
        max_files: Maximum number of files one run may emit.
        max_directories: Maximum number of distinct directories one run may
            create below the output directory.
        max_file_size: Maximum size in bytes of a single rendered file.
        max_total_bytes: Maximum aggregate size.  Defaults to
            ``max_file_size * max_files``.
    """

    def __init__(
        self,
        max_files: int = 1000,
        max_directories: int = 100,
        max_file_size: int = 10 * MIB,
        max_total_bytes: Optional[int] = None,
    ) -> None:
        self.max_files = max_files
        self.max_directories = max_directories
        self.max_file_size = max_file_size
        self.max_total_bytes = (
            max_total_bytes if max_total_bytes is not None else max_file_size * max_files
        )
        self._lock = threading.Lock()
        self._files = 0
        self._bytes = 0
        self._directories: set[str] = set()

    @classmethod
    def from_config(cls, limits) -> "ResourceLimiter":
        """Build a limiter from a :class:`~blueprint_forge.config.LimitsConfig`."""
        return cls(
            max_files=limits.max_files,
            max_directories=limits.max_directories,
            max_file_size=limits.max_file_size,
            max_total_bytes=limits.max_total_bytes,
        )

    # -- Snapshot ----------------------------------------------------------

    @property
    def file_count(self) -> int:
        with self._lock:
            return self._files

    @property
    def directory_count(self) -> int:
        with self._lock:
            return len(self._directories)

    @property
    def total_bytes(self) -> int:
        with self._lock:
            return self._bytes

    # -- Checks ------------------------------------------------------------

    def check_usage(
        self, file_count: int, dir_count: int, total_bytes: int
    ) -> list[ValidationViolation]:
        """Compare absolute usage figures with the ceilings."""
        violations: list[ValidationViolation] = []
        if file_count > self.max_files:
            violations.append(
                ValidationViolation(
                    kind=ViolationKind.COUNT_LIMIT_EXCEEDED,
                    description=f"too many files: {file_count} (max {self.max_files})",
                    location="files",
                )
            )
        if dir_count > self.max_directories:
            violations.append(
                ValidationViolation(
                    kind=ViolationKind.COUNT_LIMIT_EXCEEDED,
                    description=(
                        f"too many directories: {dir_count} (max {self.max_directories})"
                    ),
                    location="directories",
                )
            )
        if total_bytes > self.max_total_bytes:
            violations.append(
                ValidationViolation(
                    kind=ViolationKind.SIZE_LIMIT_EXCEEDED,
                    description=(
                        f"total project size {total_bytes} bytes exceeds "
                        f"{self.max_total_bytes} bytes"
                    ),
                    location="total",
                )
            )
        return violations

    def check_file_size(self, size: int, location: str = "") -> list[ValidationViolation]:
        """Check a single file's size against ``max_file_size``."""
        if size > self.max_file_size:
            return [
                ValidationViolation(
                    kind=ViolationKind.SIZE_LIMIT_EXCEEDED,
                    description=f"file size {size} exceeds maximum {self.max_file_size} bytes",
                    location=location,
                )
            ]
        return []

    # -- Incremental accounting -------------------------------------------

    def plan_destinations(self, destinations: list[str]) -> list[ValidationViolation]:
        """Count planned files and their parent directories before rendering."""
        directories = set()
        for destination in destinations:
            directories.update(_parent_directories(destination))
        return self.check_usage(len(destinations), len(directories), 0)

    def record_file(self, destination: str, size: int) -> list[ValidationViolation]:
        """Account for one rendered file and return any ceiling it crosses."""
        violations = self.check_file_size(size, destination)
        with self._lock:
            self._files += 1
            self._bytes += size
            self._directories.update(_parent_directories(destination))
            files, dirs, total = self._files, len(self._directories), self._bytes
        return violations + self.check_usage(files, dirs, total)

    def final_check(self) -> list[ValidationViolation]:
        """Check the accumulated totals once every file has been recorded."""
        with self._lock:
            files, dirs, total = self._files, len(self._directories), self._bytes
        return self.check_usage(files, dirs, total)


def _parent_directories(destination: str) -> list[str]:
    parents = PurePosixPath(destination.replace("\\", "/")).parents
    return [str(parent) for parent in parents if str(parent) not in (".", "")]
