"""Shared pytest fixtures for the Blueprint Forge test suite.

Provides reusable fixtures for:
- A realistic "web-api" blueprint written to a temporary directory
- Registries, configuration and generators bound to that blueprint
- A helper for writing ad-hoc blueprints inside a test
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from blueprint_forge.config import Config
from blueprint_forge.parser.registry import BlueprintRegistry
from blueprint_forge.scaffolder.generator import ProjectGenerator
from blueprint_forge.scaffolder.templates import TemplateRenderer


# ---------------------------------------------------------------------------
# Sample blueprint
# ---------------------------------------------------------------------------

WEB_API_MANIFEST: dict[str, Any] = {
    "name": "web-api",
    "version": "1.2.0",
    "description": "Go web API with optional auth and Docker support",
    "type": "web-api",
    "architecture": "standard",
    "variables": [
        {
            "name": "ProjectName",
            "type": "string",
            "description": "Project name",
            "required": True,
            "validation": r"^[a-z][a-z0-9-]*$",
        },
        {"name": "ModulePath", "type": "string", "default": "github.com/example/app"},
        {"name": "AuthType", "type": "string", "choices": ["", "jwt", "session"], "default": ""},
        {"name": "EnableDocker", "type": "bool", "default": False},
        {"name": "LogLevel", "type": "select", "choices": ["debug", "info", "warn"], "default": "info"},
    ],
    "files": [
        {"source": "main.go.tmpl", "destination": "main.go"},
        {
            "source": "auth.go.tmpl",
            "destination": "internal/auth/auth.go",
            "condition": '{{ne .AuthType ""}}',
        },
        {
            "source": "handler.go.tmpl",
            "destination": "internal/{{ ProjectName | snake_case }}/handler.go",
        },
        {"source": "Dockerfile.tmpl", "destination": "Dockerfile", "condition": "{{.EnableDocker}}"},
        {"source": "run.sh.tmpl", "destination": "scripts/run.sh", "executable": True},
    ],
    "dependencies": [
        {"module": "github.com/gin-gonic/gin", "version": "v1.9.1"},
        {
            "module": "github.com/golang-jwt/jwt/v5",
            "version": "v5.2.0",
            "condition": '{{eq .AuthType "jwt"}}',
        },
        {
            "module": "github.com/gorilla/sessions",
            "version": "v1.2.2",
            "condition": '{{eq .AuthType "session"}}',
        },
    ],
    "post_hooks": [
        {"name": "format", "command": "gofmt", "args": ["-w", "."], "work_dir": "{{ OutputPath }}"},
    ],
}

WEB_API_SOURCES: dict[str, str] = {
    "main.go.tmpl": (
        "package main\n"
        "\n"
        'import "{{ ModulePath }}/internal/{{ ProjectName | snake_case }}"\n'
        "\n"
        "// Log level: {{ LogLevel }}\n"
        "func main() {\n"
        "{% if AuthType %}\n"
        "\t// auth: {{ AuthType }}\n"
        "{% endif %}\n"
        "\t{{ ProjectName | snake_case }}.Run()\n"
        "}\n"
    ),
    "auth.go.tmpl": "package auth\n\n// Strategy: {{ AuthType | upper }}\n",
    "handler.go.tmpl": "package {{ ProjectName | snake_case }}\n\nfunc Run() {}\n",
    "Dockerfile.tmpl": "FROM golang:1.22\nWORKDIR /src/{{ ProjectName }}\n",
    "run.sh.tmpl": "#!/bin/sh\n# {{ ProjectName }}\nexec go run .\n",
}


def write_blueprint(root: Path, manifest: dict[str, Any], sources: dict[str, str]) -> Path:
    """Write *manifest* as ``template.yaml`` plus its sources under ``root/<name>``."""
    blueprint_dir = root / manifest["name"]
    blueprint_dir.mkdir(parents=True, exist_ok=True)
    (blueprint_dir / "template.yaml").write_text(
        yaml.safe_dump(manifest, sort_keys=False), encoding="utf-8"
    )
    for source, body in sources.items():
        path = blueprint_dir / source
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(body, encoding="utf-8")
    return blueprint_dir


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def web_api_manifest() -> dict[str, Any]:
    """A deep copy of the sample manifest, safe to mutate."""
    return yaml.safe_load(yaml.safe_dump(WEB_API_MANIFEST))


@pytest.fixture
def blueprints_dir(tmp_path: Path) -> Path:
    """Directory holding the sample ``web-api`` blueprint."""
    root = tmp_path / "blueprints"
    write_blueprint(root, WEB_API_MANIFEST, WEB_API_SOURCES)
    return root


@pytest.fixture
def registry(blueprints_dir: Path) -> BlueprintRegistry:
    return BlueprintRegistry.from_directory(blueprints_dir)


@pytest.fixture
def config(blueprints_dir: Path, tmp_path: Path) -> Config:
    return Config(
        blueprints_dir=blueprints_dir,
        profiles_path=tmp_path / "profiles.yaml",
        max_workers=4,
    )


@pytest.fixture
def generator(registry: BlueprintRegistry, config: Config) -> ProjectGenerator:
    return ProjectGenerator(registry, config)


@pytest.fixture
def renderer() -> TemplateRenderer:
    return TemplateRenderer()


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    """An output path that does not exist yet."""
    return tmp_path / "out" / "my-service"


@pytest.fixture
def web_api_sources() -> dict[str, str]:
    return dict(WEB_API_SOURCES)


@pytest.fixture
def make_blueprint(tmp_path: Path):
    """Factory writing ad-hoc blueprints under ``tmp_path/blueprints``."""
    root = tmp_path / "blueprints"

    def _make(manifest: dict[str, Any], sources: dict[str, str]) -> Path:
        return write_blueprint(root, manifest, sources)

    return _make
