"""Violation model shared by the template audit, path audit and resource limiter."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ViolationKind(str, Enum):
    """Closed set of reasons a generation run can be rejected before writing."""
    DANGEROUS_PATTERN = "DangerousPattern"
    UNSAFE_FUNCTION = "UnsafeFunction"
    PATH_TRAVERSAL = "PathTraversal"
    RESERVED_NAME = "ReservedName"
    SIZE_LIMIT_EXCEEDED = "SizeLimitExceeded"
    COUNT_LIMIT_EXCEEDED = "CountLimitExceeded"


class ValidationViolation(BaseModel):
    """A single security or resource violation."""

    model_config = ConfigDict(frozen=True)

    kind: ViolationKind
    description: str = Field(..., description="Human-readable description of the problem")
    location: str = Field(
        default="",
        description="Where it was found, e.g. 'main.go.tmpl:12' or a destination path",
    )

    def __str__(self) -> str:
        where = f" at {self.location}" if self.location else ""
        return f"[{self.kind.value}] {self.description}{where}"
