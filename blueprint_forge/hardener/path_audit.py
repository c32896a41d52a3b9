"""Destination path audit.

Pure checks over a destination string: traversal (plain and percent-encoded),
absolute or home-relative paths, null bytes and other characters that are
unsafe on at least one target filesystem, OS-reserved device names and the
path length ceiling.  No filesystem access happens here.
"""

from __future__ import annotations

import posixpath
import re
from urllib.parse import unquote

from blueprint_forge.hardener.models import ValidationViolation, ViolationKind


DEFAULT_MAX_PATH_LENGTH = 260

RESERVED_NAMES: frozenset[str] = frozenset(
    {"CON", "PRN", "AUX", "NUL"}
    | {f"COM{i}" for i in range(1, 10)}
    | {f"LPT{i}" for i in range(1, 10)}
)

# Encoded or obfuscated traversal sequences, compared lower-cased.
_ENCODED_TRAVERSAL = (
    "%2e%2e%2f",
    "%2e%2e/",
    "..%2f",
    "%2e%2e%5c",
    "%2e%2e\\",
    "..%5c",
    "%252e%252e%252f",
    "%252e%252e",
    "%c0%ae%c0%ae",
    "....//",
    "..../",
    "....\\\\",
)

_DANGEROUS_CHARS = ("<", ">", ":", '"', "|", "?", "*")
_CONTROL_CHARS = re.compile(r"[\x01-\x1f\x7f]")
_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")

# Percent-decoding is repeated to catch double encoding; bounded so hostile
# input cannot make us loop.
_MAX_DECODE_ROUNDS = 3


def _segments(path: str) -> list[str]:
    return [part for part in re.split(r"[\\/]+", path) if part]


def _decoded_forms(path: str) -> list[str]:
    forms = [path]
    current = path
    for _ in range(_MAX_DECODE_ROUNDS):
        decoded = unquote(current)
        if decoded == current:
            break
        forms.append(decoded)
        current = decoded
    return forms


def _is_reserved(segment: str) -> bool:
    # Windows ignores the extension and trailing dots/spaces: "con.txt" and
    # "NUL " are both the device.
    stem = segment.split(".", 1)[0].rstrip(" .").upper()
    return stem in RESERVED_NAMES


def validate_path(
    path: str, *, max_length: int = DEFAULT_MAX_PATH_LENGTH
) -> list[ValidationViolation]:
    """Return every violation found in destination *path*.

    An empty list means the path is safe to create below an output directory.
    """
    violations: list[ValidationViolation] = []

    def add(kind: ViolationKind, description: str) -> None:
        violations.append(ValidationViolation(kind=kind, description=description, location=path))

    if not path or not path.strip():
        add(ViolationKind.PATH_TRAVERSAL, "destination path is empty")
        return violations

    if len(path) > max_length:
        add(
            ViolationKind.SIZE_LIMIT_EXCEEDED,
            f"destination path is {len(path)} characters long (max {max_length})",
        )

    if "\x00" in path:
        add(ViolationKind.PATH_TRAVERSAL, "destination path contains a null byte")

    lowered = path.lower()
    if any(pattern in lowered for pattern in _ENCODED_TRAVERSAL):
        add(ViolationKind.PATH_TRAVERSAL, "destination path contains an encoded traversal sequence")

    for form in _decoded_forms(path):
        if form.startswith(("/", "\\")) or _DRIVE_PREFIX.match(form):
            add(ViolationKind.PATH_TRAVERSAL, "destination path is absolute")
            break
    if path.startswith("~"):
        add(ViolationKind.PATH_TRAVERSAL, "destination path refers to a home directory")

    for form in _decoded_forms(path):
        normalised = posixpath.normpath(form.replace("\\", "/"))
        if ".." in _segments(normalised):
            add(ViolationKind.PATH_TRAVERSAL, "destination path escapes the output directory")
            break

    found = sorted({char for char in _DANGEROUS_CHARS if char in path})
    if found:
        add(
            ViolationKind.PATH_TRAVERSAL,
            f"destination path contains dangerous characters: {' '.join(found)}",
        )
    if _CONTROL_CHARS.search(path):
        add(ViolationKind.PATH_TRAVERSAL, "destination path contains control characters")

    reserved = [segment for segment in _segments(path) if _is_reserved(segment)]
    for segment in reserved:
        add(ViolationKind.RESERVED_NAME, f"'{segment}' is a reserved device name")

    return violations


def validate_source_path(source: str) -> list[ValidationViolation]:
    """Check a template source id before it is resolved inside a blueprint.

    Sources are always relative to their blueprint directory.
    """
    violations: list[ValidationViolation] = []
    if ".." in _segments(source.replace("\\", "/")):
        violations.append(
            ValidationViolation(
                kind=ViolationKind.PATH_TRAVERSAL,
                description="template source contains a path traversal attempt",
                location=source,
            )
        )
    if source.startswith(("/", "\\", "~")) or _DRIVE_PREFIX.match(source):
        violations.append(
            ValidationViolation(
                kind=ViolationKind.PATH_TRAVERSAL,
                description="template source must be relative to its blueprint",
                location=source,
            )
        )
    return violations
