"""Tests for the atomic writer."""

from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from blueprint_forge.errors import CommitError, ConfigurationError
from blueprint_forge.scaffolder.writer import (
    STAGING_PREFIX,
    AtomicWriter,
    StagedFile,
    check_output_dir,
)


pytestmark = pytest.mark.unit


FILES = [
    StagedFile("main.go", b"package main\n"),
    StagedFile("internal/auth/auth.go", b"package auth\n"),
    StagedFile("scripts/run.sh", b"#!/bin/sh\n", executable=True),
]


def _leftover_staging(parent: Path) -> list[Path]:
    return [p for p in parent.iterdir() if p.name.startswith(STAGING_PREFIX)]


# ---------------------------------------------------------------------------
# check_output_dir
# ---------------------------------------------------------------------------


class TestCheckOutputDir:
    def test_absent_ok(self, tmp_path: Path):
        check_output_dir(tmp_path / "new")

    def test_empty_ok(self, tmp_path: Path):
        check_output_dir(tmp_path)

    def test_not_empty(self, tmp_path: Path):
        (tmp_path / "existing.txt").write_text("x")
        with pytest.raises(ConfigurationError, match="not empty"):
            check_output_dir(tmp_path)

    def test_file_in_the_way(self, tmp_path: Path):
        target = tmp_path / "file"
        target.write_text("x")
        with pytest.raises(ConfigurationError, match="not a directory"):
            check_output_dir(target)


# ---------------------------------------------------------------------------
# commit
# ---------------------------------------------------------------------------


class TestCommit:
    def test_writes_all_files(self, output_dir: Path):
        written = AtomicWriter().commit(FILES, output_dir)
        assert written == [output_dir.absolute() / f.destination for f in FILES]
        assert (output_dir / "main.go").read_bytes() == b"package main\n"
        assert (output_dir / "internal" / "auth" / "auth.go").exists()
        assert _leftover_staging(output_dir.parent) == []

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_executable_bit(self, output_dir: Path):
        AtomicWriter().commit(FILES, output_dir)
        mode = (output_dir / "scripts" / "run.sh").stat().st_mode
        assert mode & stat.S_IXUSR
        assert not (output_dir / "main.go").stat().st_mode & stat.S_IXUSR

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_root_is_not_private(self, output_dir: Path):
        AtomicWriter().commit(FILES, output_dir)
        assert stat.S_IMODE(output_dir.stat().st_mode) == 0o755

    def test_into_existing_empty_directory(self, tmp_path: Path):
        target = tmp_path / "empty"
        target.mkdir()
        AtomicWriter().commit(FILES, target)
        assert sorted(p.name for p in target.iterdir()) == ["internal", "main.go", "scripts"]

    def test_no_files(self, output_dir: Path):
        assert AtomicWriter().commit([], output_dir) == []
        assert output_dir.is_dir()

    def test_refuses_non_empty(self, tmp_path: Path):
        (tmp_path / "keep.txt").write_text("mine")
        with pytest.raises(ConfigurationError):
            AtomicWriter().commit(FILES, tmp_path)
        assert (tmp_path / "keep.txt").read_text() == "mine"


class TestCommitFailure:
    def test_failure_leaves_nothing(self, output_dir: Path):
        # "main.go" is a file, so "main.go/x" cannot be created.
        files = FILES + [StagedFile("main.go/x", b"boom")]
        with pytest.raises(CommitError) as excinfo:
            AtomicWriter().commit(files, output_dir)
        assert "removed staging directory" in excinfo.value.cleanup
        assert not output_dir.exists()
        # Parent directories created for the run are removed again.
        assert not output_dir.parent.exists()

    def test_failure_restores_empty_output(self, tmp_path: Path):
        target = tmp_path / "empty"
        target.mkdir()

        class FailingWriter(AtomicWriter):
            @staticmethod
            def _stage(staging, staged):
                raise OSError("disk full")

        with pytest.raises(CommitError, match="disk full"):
            FailingWriter().commit(FILES, target)
        assert target.is_dir()
        assert list(target.iterdir()) == []
        assert _leftover_staging(tmp_path) == []

    def test_staging_escape_guard(self, output_dir: Path):
        with pytest.raises(CommitError, match="outside the project"):
            AtomicWriter().commit([StagedFile("../escape.txt", b"x")], output_dir)
        assert not (output_dir.parent / "escape.txt").exists()
