"""Tests for routegraph_common.settings module.

Tests cover defaults, YAML loading, environment overrides, precedence and
fail-fast validation.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from graph_management.properties import GraphManagementRuntimeProperties, GraphRepoType
from routegraph_common.errors import SettingsError
from routegraph_common.settings import GraphManagementSettings, load_settings

YAML_CONFIG = """\
enabled: true
graphs_root_path: /srv/graphs
download_interval_s: 3600
repository:
  uri: https://repo.example.org/graphs
  name: vendor-xyz
  profile_group: fastisochrones
  coverage: heidelberg
profiles:
  car:
    encoder_name: driving-car
  bike:
    enabled: false
  walk:
    repository:
      uri: /mnt/local-repo
"""


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "routegraph.yml"
    path.write_text(YAML_CONFIG, encoding="utf-8")
    return path


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self) -> None:
        """Graph management is disabled and no cycle is scheduled by default."""
        settings = GraphManagementSettings()
        assert settings.enabled is False
        assert settings.graphs_root_path == Path("graphs")
        assert settings.download_interval_s is None
        assert settings.activation_interval_s is None
        assert settings.retry_interval_s == 60.0
        assert settings.max_backups is None
        assert settings.repository.retry_attempts == 3

    def test_extra_fields_forbidden(self) -> None:
        """Unknown fields fail fast with SettingsError."""
        with pytest.raises(SettingsError, match="Configuration validation failed"):
            GraphManagementSettings(unknown_field="value")


class TestLoadSettings:
    """Tests for load_settings."""

    def test_yaml_file(self, config_file: Path) -> None:
        """Values are read from the YAML file."""
        settings = load_settings(config_file)
        assert settings.enabled is True
        assert settings.graphs_root_path == Path("/srv/graphs")
        assert settings.download_interval_s == 3600
        assert settings.profiles["car"].encoder_name == "driving-car"
        assert settings.enabled_profiles() == ["car", "walk"]

    def test_environment_beats_yaml(
        self, config_file: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Environment variables override the YAML file."""
        monkeypatch.setenv("ROUTEGRAPH_REPOSITORY__COVERAGE", "planet")
        settings = load_settings(config_file)
        assert settings.repository.coverage == "planet"
        assert settings.repository.name == "vendor-xyz"

    def test_overrides_beat_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Explicit overrides win over the environment."""
        monkeypatch.setenv("ROUTEGRAPH_MAX_BACKUPS", "2")
        assert load_settings().max_backups == 2
        assert load_settings(max_backups=5).max_backups == 5

    def test_missing_file(self, tmp_path: Path) -> None:
        """A missing configuration file is a SettingsError."""
        with pytest.raises(SettingsError, match="not found"):
            load_settings(tmp_path / "missing.yml")

    def test_invalid_value(self, tmp_path: Path) -> None:
        """Invalid values carry the validation errors."""
        path = tmp_path / "bad.yml"
        path.write_text("update_workers: 0\n", encoding="utf-8")
        with pytest.raises(SettingsError) as excinfo:
            load_settings(path)
        assert excinfo.value.context["validation_errors"]


class TestRuntimeProperties:
    """Tests for per-profile property derivation."""

    def test_http_profile(self, config_file: Path) -> None:
        """Shared repository settings apply to the profile."""
        props = GraphManagementRuntimeProperties.from_settings(load_settings(config_file), "car")
        assert props.encoder_name == "driving-car"
        assert props.derived_repo_type is GraphRepoType.HTTP
        assert props.derived_repo_base_url == "https://repo.example.org/graphs"
        assert props.uses_graph_repository() is True
        assert str(props.identity) == "car(driving-car)"

    def test_profile_override(self, config_file: Path) -> None:
        """Profile repository overrides win over the shared block."""
        props = GraphManagementRuntimeProperties.from_settings(load_settings(config_file), "walk")
        assert props.derived_repo_type is GraphRepoType.FILESYSTEM
        assert props.derived_repo_path == Path("/mnt/local-repo")
        assert props.encoder_name == "walk"
        assert str(props.identity) == "walk"

    def test_disabled_management(self, config_file: Path) -> None:
        """With management disabled no profile uses the repository."""
        settings = load_settings(config_file, enabled=False)
        props = GraphManagementRuntimeProperties.from_settings(settings, "car")
        assert props.uses_graph_repository() is False

    def test_file_uri(self, tmp_path: Path) -> None:
        """file:// URIs select the filesystem backend."""
        props = GraphManagementRuntimeProperties(
            profile_name="car",
            graphs_root_path=tmp_path,
            repo_uri=f"file://{tmp_path}/repo",
            repo_name="vendor-xyz",
        )
        assert props.derived_repo_type is GraphRepoType.FILESYSTEM
        assert props.derived_repo_path == tmp_path / "repo"

    def test_blank_repository(self, tmp_path: Path) -> None:
        """A blank repository name or URI disables the repository."""
        no_name = GraphManagementRuntimeProperties(
            profile_name="car", graphs_root_path=tmp_path, repo_uri="/repo"
        )
        no_uri = GraphManagementRuntimeProperties(
            profile_name="car", graphs_root_path=tmp_path, repo_name="vendor-xyz"
        )
        assert no_name.uses_graph_repository() is False
        assert no_uri.derived_repo_type is GraphRepoType.NULL
        assert no_uri.uses_graph_repository() is False
