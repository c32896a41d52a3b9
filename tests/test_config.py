"""Unit tests for configuration and profiles (blueprint_forge.config).

Tests cover:
- LimitsConfig / SecurityConfig defaults and bounds
- Config defaults, save/load round trip, from_env
- Profiles.resolve and load_profiles
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from blueprint_forge.config import (
    Config,
    LimitsConfig,
    Profiles,
    SecurityConfig,
    load_profiles,
)
from blueprint_forge.errors import ConfigurationError

MIB = 1024 * 1024


# ---------------------------------------------------------------------------
# LimitsConfig / SecurityConfig
# ---------------------------------------------------------------------------


class TestLimitsConfig:
    @pytest.mark.unit
    def test_defaults(self):
        limits = LimitsConfig()
        assert limits.max_files == 1000
        assert limits.max_directories == 100
        assert limits.max_file_size == 10 * MIB
        assert limits.max_total_bytes == 10 * MIB * 1000

    @pytest.mark.unit
    def test_total_follows_custom_ceilings(self):
        limits = LimitsConfig(max_files=10, max_file_size=100)
        assert limits.max_total_bytes == 1000

    @pytest.mark.unit
    def test_explicit_total_kept(self):
        assert LimitsConfig(max_total_bytes=42).max_total_bytes == 42

    @pytest.mark.unit
    def test_zero_files_rejected(self):
        with pytest.raises(ValidationError):
            LimitsConfig(max_files=0)


class TestSecurityConfig:
    @pytest.mark.unit
    def test_defaults(self):
        security = SecurityConfig()
        assert security.max_template_size == 1 * MIB
        assert security.max_path_length == 260
        assert security.max_loop_depth == 2
        assert security.max_format_width == 99999


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


class TestConfig:
    @pytest.mark.unit
    def test_defaults(self):
        config = Config()
        assert config.variable_env_prefix == "FORGE_VAR_"
        assert config.max_workers == 8
        assert config.active_profile == ""
        assert isinstance(config.limits, LimitsConfig)
        assert isinstance(config.security, SecurityConfig)

    @pytest.mark.unit
    def test_workers_minimum(self):
        with pytest.raises(ValidationError):
            Config(max_workers=0)

    @pytest.mark.unit
    def test_save_load_round_trip(self, tmp_path: Path):
        config = Config(
            blueprints_dir=tmp_path / "bp",
            max_workers=3,
            limits=LimitsConfig(max_files=50),
        )
        target = config.save(tmp_path / "nested" / "config.json")
        assert target.exists()

        loaded = Config.load(target)
        assert loaded == config
        assert loaded.limits.max_files == 50
        assert loaded.limits.max_total_bytes == 50 * 10 * MIB

    @pytest.mark.unit
    def test_from_env(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        monkeypatch.setenv("FORGE_BLUEPRINTS_DIR", str(tmp_path))
        monkeypatch.setenv("FORGE_PROFILE", "work")
        monkeypatch.setenv("FORGE_MAX_WORKERS", "2")
        monkeypatch.setenv("FORGE_MAX_FILES", "12")
        monkeypatch.setenv("FORGE_MAX_PATH_LENGTH", "100")
        monkeypatch.setenv("FORGE_VAR_PREFIX", "MY_")

        config = Config.from_env()
        assert config.blueprints_dir == tmp_path
        assert config.active_profile == "work"
        assert config.max_workers == 2
        assert config.limits.max_files == 12
        assert config.security.max_path_length == 100
        assert config.variable_env_prefix == "MY_"

    @pytest.mark.unit
    def test_from_env_without_variables(self, monkeypatch: pytest.MonkeyPatch):
        for name in ("FORGE_BLUEPRINTS_DIR", "FORGE_PROFILE", "FORGE_MAX_WORKERS", "FORGE_MAX_FILES"):
            monkeypatch.delenv(name, raising=False)
        config = Config.from_env()
        assert config.max_workers == 8
        assert config.limits.max_files == 1000


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


class TestProfiles:
    @pytest.mark.unit
    def test_resolve_current(self):
        profiles = Profiles(
            current_profile="work",
            profiles={"work": {"ModulePath": "github.com/acme/x"}, "home": {}},
        )
        assert profiles.resolve() == {"ModulePath": "github.com/acme/x"}
        assert profiles.resolve("home") == {}

    @pytest.mark.unit
    def test_no_selection_is_empty(self):
        assert Profiles().resolve() == {}

    @pytest.mark.unit
    def test_unknown_profile(self):
        with pytest.raises(ConfigurationError, match="profile 'ghost' not found"):
            Profiles(profiles={"work": {}}).resolve("ghost")

    @pytest.mark.unit
    def test_load_missing_file(self, tmp_path: Path):
        profiles = load_profiles(tmp_path / "absent.yaml")
        assert profiles.profiles == {}

    @pytest.mark.unit
    def test_load_yaml(self, tmp_path: Path):
        path = tmp_path / "profiles.yaml"
        path.write_text(
            "current_profile: work\n"
            "profiles:\n"
            "  work:\n"
            "    AuthType: jwt\n"
            "    EnableDocker: true\n",
            encoding="utf-8",
        )
        profiles = load_profiles(path)
        assert profiles.resolve() == {"AuthType": "jwt", "EnableDocker": True}

    @pytest.mark.unit
    def test_load_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "profiles.yaml"
        path.write_text("profiles: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="invalid profile file"):
            load_profiles(path)

    @pytest.mark.unit
    def test_load_wrong_shape(self, tmp_path: Path):
        path = tmp_path / "profiles.yaml"
        path.write_text("profiles: [1, 2]\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_profiles(path)

    @pytest.mark.unit
    def test_load_non_mapping_document(self, tmp_path: Path):
        path = tmp_path / "profiles.yaml"
        path.write_text("- work\n- home\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="invalid profile file"):
            load_profiles(path)
