"""Tests for manifest resolution (file selection, dependencies, hooks)."""

from __future__ import annotations

import os
from typing import Any

import pytest

from blueprint_forge.errors import RenderError, ResolutionError
from blueprint_forge.parser.models import BlueprintManifest
from blueprint_forge.scaffolder.context import VariableContext, build_context
from blueprint_forge.scaffolder.resolver import PlannedFile, PlannedHook, resolve
from blueprint_forge.scaffolder.templates import TemplateRenderer


pytestmark = pytest.mark.unit


def _resolve(manifest_data: dict[str, Any], renderer: TemplateRenderer, **values: Any):
    manifest = BlueprintManifest.model_validate(manifest_data)
    ctx = build_context(manifest.variables, overrides={"ProjectName": "my-service", **values})
    return resolve(manifest, ctx, renderer, output_path="/work/my-service")


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


class TestFileSelection:
    def test_default_selection(self, web_api_manifest, renderer):
        resolution = _resolve(web_api_manifest, renderer)
        assert resolution.destinations == [
            "main.go",
            "internal/my_service/handler.go",
            "scripts/run.sh",
        ]
        assert resolution.files[-1] == PlannedFile("run.sh.tmpl", "scripts/run.sh", True)

    def test_auth_and_docker(self, web_api_manifest, renderer):
        resolution = _resolve(web_api_manifest, renderer, AuthType="jwt", EnableDocker=True)
        assert resolution.destinations == [
            "main.go",
            "internal/auth/auth.go",
            "internal/my_service/handler.go",
            "Dockerfile",
            "scripts/run.sh",
        ]

    def test_empty_manifest(self, renderer):
        resolution = resolve(BlueprintManifest(name="empty"), VariableContext(), renderer)
        assert resolution.files == ()
        assert resolution.dependencies == ()
        assert resolution.hooks == ()

    def test_collision_is_rejected(self, renderer):
        data = {
            "name": "clash",
            "files": [
                {"source": "a.tmpl", "destination": "out/{{ Name }}.go"},
                {"source": "b.tmpl", "destination": "./out/x.go"},
            ],
        }
        manifest = BlueprintManifest.model_validate(data)
        with pytest.raises(ResolutionError, match="produced by both 'a.tmpl' and 'b.tmpl'"):
            resolve(manifest, VariableContext.from_plain({"Name": "x"}), renderer)

    def test_excluded_files_do_not_collide(self, renderer):
        data = {
            "name": "alt",
            "files": [
                {"source": "a.tmpl", "destination": "main.go", "condition": "{{.UseA}}"},
                {"source": "b.tmpl", "destination": "main.go", "condition": "{{not .UseA}}"},
            ],
        }
        manifest = BlueprintManifest.model_validate(data)
        resolution = resolve(manifest, VariableContext.from_plain({"UseA": False}), renderer)
        assert [f.source for f in resolution.files] == ["b.tmpl"]

    def test_leading_dot_destination(self, renderer):
        manifest = BlueprintManifest.model_validate(
            {
                "name": "domain",
                "files": [
                    {"source": "handler.go.tmpl", "destination": "internal/{{.DomainName}}/handler.go"},
                ],
            }
        )
        ctx = VariableContext.from_plain({"DomainName": "billing"})
        resolution = resolve(manifest, ctx, renderer)
        assert resolution.destinations == ["internal/billing/handler.go"]

    @pytest.mark.parametrize(
        "first, second",
        [
            ("internal/api", "internal/api/handler.go"),
            ("internal/api/handler.go", "./internal/api"),
        ],
    )
    def test_file_directory_clash_is_rejected(self, renderer, first, second):
        manifest = BlueprintManifest.model_validate(
            {
                "name": "clash",
                "files": [
                    {"source": "a.tmpl", "destination": first},
                    {"source": "b.tmpl", "destination": second},
                ],
            }
        )
        with pytest.raises(ResolutionError, match="directory") as excinfo:
            resolve(manifest, VariableContext(), renderer)
        assert "'a.tmpl'" in excinfo.value.problems[0]
        assert "'b.tmpl'" in excinfo.value.problems[0]

    def test_sibling_files_share_directories(self, renderer):
        manifest = BlueprintManifest.model_validate(
            {
                "name": "siblings",
                "files": [
                    {"source": "a.tmpl", "destination": "internal/api/a.go"},
                    {"source": "b.tmpl", "destination": "internal/api/b.go"},
                    {"source": "c.tmpl", "destination": "internal/apiv2"},
                ],
            }
        )
        resolution = resolve(manifest, VariableContext(), renderer)
        assert len(resolution.files) == 3

    def test_destination_render_error(self, renderer):
        manifest = BlueprintManifest.model_validate(
            {"name": "x", "files": [{"source": "a", "destination": "{{ Nope }}/a.go"}]}
        )
        with pytest.raises(RenderError):
            resolve(manifest, VariableContext(), renderer)

    def test_destination_rendered_even_when_excluded(self, renderer):
        manifest = BlueprintManifest.model_validate(
            {
                "name": "x",
                "files": [{"source": "a", "destination": "{{ Nope }}/a.go", "condition": "false"}],
            }
        )
        with pytest.raises(RenderError):
            resolve(manifest, VariableContext(), renderer)

    def test_malformed_conditions_all_reported(self, renderer):
        manifest = BlueprintManifest.model_validate(
            {
                "name": "x",
                "files": [{"source": "a", "destination": "a", "condition": "{{xor .A .B}}"}],
                "dependencies": [{"module": "m", "condition": "{{ne .A}}"}],
            }
        )
        with pytest.raises(ResolutionError) as excinfo:
            resolve(manifest, VariableContext(), renderer)
        assert len(excinfo.value.problems) == 2
        assert excinfo.value.problems[0].startswith("files[0] (a)")


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


class TestDependencies:
    @pytest.mark.parametrize(
        "auth, expected",
        [
            ("", ["github.com/gin-gonic/gin"]),
            ("jwt", ["github.com/gin-gonic/gin", "github.com/golang-jwt/jwt/v5"]),
            ("session", ["github.com/gin-gonic/gin", "github.com/gorilla/sessions"]),
        ],
    )
    def test_conditional(self, web_api_manifest, renderer, auth, expected):
        resolution = _resolve(web_api_manifest, renderer, AuthType=auth)
        assert [dep.module for dep in resolution.dependencies] == expected

    def test_duplicates_collapse(self, renderer):
        manifest = BlueprintManifest.model_validate(
            {
                "name": "x",
                "dependencies": [
                    {"module": "m", "version": "v1"},
                    {"module": "m", "version": "v1"},
                    {"module": "m"},
                ],
            }
        )
        resolution = resolve(manifest, VariableContext(), renderer)
        assert [dep.requirement for dep in resolution.dependencies] == ["m@v1"]

    def test_version_conflict(self, renderer):
        manifest = BlueprintManifest.model_validate(
            {
                "name": "x",
                "dependencies": [
                    {"module": "m", "version": "v1"},
                    {"module": "m", "version": "v2"},
                ],
            }
        )
        with pytest.raises(ResolutionError, match="requested at both v1 and v2"):
            resolve(manifest, VariableContext(), renderer)


# ---------------------------------------------------------------------------
# Hooks
# ---------------------------------------------------------------------------


class TestHooks:
    def test_work_dir_rendered(self, web_api_manifest, renderer):
        resolution = _resolve(web_api_manifest, renderer)
        assert resolution.hooks == (
            PlannedHook(name="format", command="gofmt", args=("-w", "."), work_dir="/work/my-service"),
        )

    def test_defaults(self, renderer):
        manifest = BlueprintManifest.model_validate(
            {"name": "x", "post_hooks": [{"command": "go", "args": ["mod", "tidy"]}]}
        )
        resolution = resolve(manifest, VariableContext(), renderer, output_path="/o")
        assert resolution.hooks[0] == PlannedHook("go", "go", ("mod", "tidy"), "/o")

    @pytest.mark.parametrize(
        "work_dir, expected",
        [
            ("{{.OutputPath}}", "/work/my-service"),
            ("{{ .OutputPath }}/cmd", "/work/my-service/cmd"),
            ("cmd", os.path.join("/work/my-service", "cmd")),
            ("cmd/{{.ProjectName}}", os.path.join("/work/my-service", "cmd/my-service")),
            ("/srv/shared", "/srv/shared"),
        ],
    )
    def test_work_dir_forms(self, renderer, work_dir, expected):
        data = {
            "name": "x",
            "variables": [{"name": "ProjectName", "type": "string"}],
            "post_hooks": [{"command": "go mod tidy", "work_dir": work_dir}],
        }
        resolution = _resolve(data, renderer)
        assert resolution.hooks[0].work_dir == expected
