"""Tests for ResourceLimiter."""

from __future__ import annotations

import threading

import pytest

from blueprint_forge.config import LimitsConfig
from blueprint_forge.hardener.limits import MIB, ResourceLimiter
from blueprint_forge.hardener.models import ViolationKind


pytestmark = pytest.mark.unit


class TestResourceLimiter:
    def test_defaults(self):
        limiter = ResourceLimiter()
        assert limiter.max_files == 1000
        assert limiter.max_directories == 100
        assert limiter.max_file_size == 10 * MIB
        assert limiter.max_total_bytes == 10 * MIB * 1000

    def test_from_config(self):
        limiter = ResourceLimiter.from_config(LimitsConfig(max_files=3, max_file_size=10))
        assert limiter.max_files == 3
        assert limiter.max_total_bytes == 30

    def test_usage_within_limits(self):
        assert ResourceLimiter().check_usage(1000, 100, 0) == []

    def test_usage_over_limits(self):
        violations = ResourceLimiter(max_total_bytes=10).check_usage(1001, 101, 11)
        assert [v.kind for v in violations] == [
            ViolationKind.COUNT_LIMIT_EXCEEDED,
            ViolationKind.COUNT_LIMIT_EXCEEDED,
            ViolationKind.SIZE_LIMIT_EXCEEDED,
        ]
        assert [v.location for v in violations] == ["files", "directories", "total"]

    def test_file_size(self):
        limiter = ResourceLimiter(max_file_size=100)
        assert limiter.check_file_size(100) == []
        violation = limiter.check_file_size(101, "big.txt")[0]
        assert violation.kind is ViolationKind.SIZE_LIMIT_EXCEEDED
        assert violation.location == "big.txt"


class TestPlanning:
    def test_counts_parent_directories(self):
        limiter = ResourceLimiter(max_directories=2)
        assert limiter.plan_destinations(["a/x", "a/y", "b/z", "top.txt"]) == []
        violations = limiter.plan_destinations(["a/b/c/x"])
        assert violations[0].kind is ViolationKind.COUNT_LIMIT_EXCEEDED
        assert "too many directories: 3" in violations[0].description

    def test_too_many_files(self):
        limiter = ResourceLimiter(max_files=1000)
        destinations = [f"f{i}.txt" for i in range(1001)]
        violations = limiter.plan_destinations(destinations)
        assert [v.kind for v in violations] == [ViolationKind.COUNT_LIMIT_EXCEEDED]

    def test_planning_does_not_record(self):
        limiter = ResourceLimiter()
        limiter.plan_destinations(["a/b"])
        assert limiter.file_count == 0


class TestRecording:
    def test_record(self):
        limiter = ResourceLimiter()
        assert limiter.record_file("a/b/c.txt", 10) == []
        assert limiter.file_count == 1
        assert limiter.directory_count == 2
        assert limiter.total_bytes == 10

    def test_record_oversized_file(self):
        limiter = ResourceLimiter(max_file_size=5)
        kinds = [v.kind for v in limiter.record_file("x", 6)]
        assert ViolationKind.SIZE_LIMIT_EXCEEDED in kinds

    def test_total_crossed_incrementally(self):
        limiter = ResourceLimiter(max_file_size=10, max_total_bytes=15)
        assert limiter.record_file("a", 10) == []
        violations = limiter.record_file("b", 10)
        assert [v.location for v in violations] == ["total"]
        assert len(limiter.final_check()) == 1

    def test_thread_safe(self):
        limiter = ResourceLimiter()

        def worker(n: int) -> None:
            for i in range(100):
                limiter.record_file(f"d{n}/f{i}", 1)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert limiter.file_count == 800
        assert limiter.total_bytes == 800
        assert limiter.directory_count == 8
        assert limiter.final_check() == []
