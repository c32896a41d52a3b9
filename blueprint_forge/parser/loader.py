"""Blueprint manifest loading and template-source stores.

A blueprint on disk is a directory holding a ``template.yaml`` (or
``template.yml`` / ``template.json``) manifest next to its template files.
Template sources are fetched through a small store interface so the engine
can equally run against in-memory blueprints (tests, embedded blueprints).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Protocol

import yaml
from pydantic import ValidationError

from blueprint_forge.errors import ManifestError
from blueprint_forge.hardener.models import ValidationViolation, ViolationKind
from blueprint_forge.hardener.path_audit import validate_source_path
from blueprint_forge.parser.models import BlueprintManifest


MANIFEST_FILENAMES = ("template.yaml", "template.yml", "template.json")


# ---------------------------------------------------------------------------
# Template stores
# ---------------------------------------------------------------------------


class TemplateSourceError(LookupError):
    """A template source could not be read.

    Carries the violations when the source id itself is unsafe.
    """

    def __init__(self, source: str, message: str, violations: list[ValidationViolation] | None = None) -> None:
        self.source = source
        self.violations = list(violations or [])
        super().__init__(f"{source}: {message}")


class TemplateStore(Protocol):
    """Where template bodies come from."""

    def read(self, source: str) -> str:
        ...

    def size(self, source: str) -> int:
        ...


class DirectoryTemplateStore:
    """Reads template sources from files below a blueprint directory."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    def _locate(self, source: str) -> Path:
        violations = validate_source_path(source)
        if violations:
            raise TemplateSourceError(source, "unsafe template source", violations)
        path = (self.root / source).resolve()
        if not path.is_relative_to(self.root):
            raise TemplateSourceError(
                source,
                "template source escapes the blueprint directory",
                [
                    ValidationViolation(
                        kind=ViolationKind.PATH_TRAVERSAL,
                        description="template source escapes the blueprint directory",
                        location=source,
                    )
                ],
            )
        if not path.is_file():
            raise TemplateSourceError(source, "template source not found")
        return path

    def size(self, source: str) -> int:
        return self._locate(source).stat().st_size

    def read(self, source: str) -> str:
        path = self._locate(source)
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise TemplateSourceError(source, f"not valid UTF-8: {exc}") from exc


class InMemoryTemplateStore:
    """Template sources kept in a plain ``{source_id: body}`` mapping."""

    def __init__(self, sources: Mapping[str, str] | None = None) -> None:
        self._sources = dict(sources or {})

    def size(self, source: str) -> int:
        return len(self.read(source).encode("utf-8"))

    def read(self, source: str) -> str:
        try:
            return self._sources[source]
        except KeyError:
            raise TemplateSourceError(source, "template source not found") from None


# ---------------------------------------------------------------------------
# Manifest loading
# ---------------------------------------------------------------------------


def _format_validation_error(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        where = ".".join(str(part) for part in error.get("loc", ()))
        problems.append(f"{where}: {error.get('msg', 'invalid')}" if where else error.get("msg", "invalid"))
    return "; ".join(problems)


def parse_manifest(data: Any, *, location: str = "<memory>") -> BlueprintManifest:
    """Validate an already-decoded manifest document.

    Raises:
        ManifestError: If *data* is not a mapping or fails validation.
    """
    if not isinstance(data, dict):
        raise ManifestError(f"{location}: manifest must be a mapping", location=location)
    try:
        return BlueprintManifest.model_validate(data)
    except ValidationError as exc:
        raise ManifestError(
            f"{location}: {_format_validation_error(exc)}", location=location
        ) from exc


def load_manifest(path: str | Path) -> BlueprintManifest:
    """Read and validate a manifest file (YAML or JSON).

    Raises:
        ManifestError: If the file cannot be read, decoded or validated.
    """
    manifest_path = Path(path)
    try:
        raw = manifest_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ManifestError(f"{manifest_path}: {exc}", location=str(manifest_path)) from exc

    try:
        if manifest_path.suffix == ".json":
            data = json.loads(raw)
        else:
            data = yaml.safe_load(raw)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ManifestError(
            f"{manifest_path}: cannot decode manifest: {exc}", location=str(manifest_path)
        ) from exc

    return parse_manifest(data, location=str(manifest_path))


# ---------------------------------------------------------------------------
# Blueprints
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Blueprint:
    """A manifest together with the store its template sources come from."""

    manifest: BlueprintManifest
    store: TemplateStore = field(compare=False)
    path: Path | None = None

    @property
    def name(self) -> str:
        return self.manifest.name

    @property
    def identifier(self) -> str:
        return self.manifest.identifier


def find_manifest(directory: str | Path) -> Path | None:
    """Return the manifest file inside *directory*, if there is one."""
    root = Path(directory)
    for filename in MANIFEST_FILENAMES:
        candidate = root / filename
        if candidate.is_file():
            return candidate
    return None


def load_blueprint(directory: str | Path) -> Blueprint:
    """Load the blueprint stored in *directory*.

    Raises:
        ManifestError: If the directory has no manifest or it is invalid.
    """
    root = Path(directory)
    manifest_path = find_manifest(root)
    if manifest_path is None:
        raise ManifestError(
            f"{root}: no manifest found (expected one of {', '.join(MANIFEST_FILENAMES)})",
            location=str(root),
        )
    manifest = load_manifest(manifest_path)
    return Blueprint(manifest=manifest, store=DirectoryTemplateStore(root), path=root)


def discover_blueprints(root: str | Path) -> list[Blueprint]:
    """Load every blueprint directory directly below *root*, sorted by name.

    Directories without a manifest are skipped; a broken manifest raises.
    """
    base = Path(root)
    if not base.is_dir():
        return []
    blueprints = []
    for child in sorted(base.iterdir()):
        if child.is_dir() and find_manifest(child) is not None:
            blueprints.append(load_blueprint(child))
    return blueprints


def blueprint_from_mapping(
    manifest: Mapping[str, Any] | BlueprintManifest,
    sources: Mapping[str, str],
) -> Blueprint:
    """Build an in-memory blueprint from a manifest document and its sources."""
    if not isinstance(manifest, BlueprintManifest):
        manifest = parse_manifest(dict(manifest))
    return Blueprint(manifest=manifest, store=InMemoryTemplateStore(sources))
