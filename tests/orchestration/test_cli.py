"""Tests for the routegraph command line interface."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import pytest
from typer.testing import CliRunner

from graph_management.graph_info import GraphInfo
from graph_management.properties import GraphManagementRuntimeProperties
from orchestration import cli

type InfoFactory = Callable[..., GraphInfo]
type Publisher = Callable[..., tuple[Path, Path]]
type GraphWriter = Callable[..., Path]

runner = CliRunner()


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "setup_logging", lambda level: None)


@pytest.fixture
def config_factory(
    tmp_path: Path, graphs_root: Path, repo_root: Path
) -> Callable[..., Path]:
    def _write(*, enabled: bool = True, graphs_path: Path | None = None) -> Path:
        path = tmp_path / "routegraph.yml"
        path.write_text(
            f"enabled: {str(enabled).lower()}\n"
            f"graphs_root_path: {graphs_path or graphs_root}\n"
            "metrics_enabled: false\n"
            "repository:\n"
            f"  uri: {repo_root}\n"
            "  name: vendor-xyz\n"
            "  profile_group: fastisochrones\n"
            "  coverage: heidelberg\n"
            "profiles:\n"
            "  car:\n"
            "    encoder_name: driving-car\n",
            encoding="utf-8",
        )
        return path

    return _write


class TestConfiguration:
    """Tests for configuration handling."""

    def test_missing_config_file(self, tmp_path: Path) -> None:
        """A missing file exits with the configuration error code."""
        result = runner.invoke(cli.app, ["status", "--config", str(tmp_path / "missing.yml")])
        assert result.exit_code == cli.EXIT_CONFIG
        assert "Configuration file not found" in result.output

    def test_invalid_config_file(self, tmp_path: Path) -> None:
        """Unknown keys are rejected with a Problem Details payload."""
        path = tmp_path / "bad.yml"
        path.write_text("no_such_setting: 1\n", encoding="utf-8")
        result = runner.invoke(cli.app, ["status", "-c", str(path)])
        assert result.exit_code == cli.EXIT_CONFIG
        assert "configuration-error" in result.output

    def test_disabled_management(self, config_factory: Callable[..., Path]) -> None:
        """Cycle commands refuse to run while graph management is disabled."""
        config = config_factory(enabled=False)
        result = runner.invoke(cli.app, ["check-updates", "-c", str(config)])
        assert result.exit_code == cli.EXIT_DISABLED
        assert "disabled" in result.output


class TestCommands:
    """Tests for status, check-updates and activate."""

    def test_update_then_activate(
        self,
        config_factory: Callable[..., Path],
        props: GraphManagementRuntimeProperties,
        publish: Publisher,
        make_info: InfoFactory,
        write_graph: GraphWriter,
        graphs_root: Path,
    ) -> None:
        """check-updates stages the newer graph and activate swaps it in."""
        config = str(config_factory())
        write_graph(graphs_root / "car", make_info(day=25), payload="old")
        publish(props, make_info(day=26), files={"edges": "new"})

        result = runner.invoke(cli.app, ["check-updates", "-c", config])
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == {"staged": ["car"]}

        result = runner.invoke(cli.app, ["status", "-c", config])
        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert payload["enabled"] is True
        assert payload["state"] == "idle"
        assert payload["profiles"][0]["state"] == "active_and_staged"

        result = runner.invoke(cli.app, ["activate", "-c", config])
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == {"activated": True, "activation_was_blocked": False}
        assert (graphs_root / "car" / "edges").read_text(encoding="utf-8") == "new"

    def test_status_does_not_create_graphs_root(
        self, config_factory: Callable[..., Path], tmp_path: Path
    ) -> None:
        """status only reads; a missing graphs root stays missing."""
        missing = tmp_path / "not-yet-created"
        config = str(config_factory(graphs_path=missing))
        result = runner.invoke(cli.app, ["status", "-c", config])
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["profiles"][0]["state"] == "none"
        assert not missing.exists()

    def test_activate_with_lock(
        self,
        config_factory: Callable[..., Path],
        write_graph: GraphWriter,
        graphs_root: Path,
    ) -> None:
        """The activation lock is reported as a blocked activation."""
        config = str(config_factory())
        write_graph(graphs_root / "car_new")
        (graphs_root / "activation.lock").touch()
        result = runner.invoke(cli.app, ["activate", "-c", config])
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == {"activated": False, "activation_was_blocked": True}
        assert (graphs_root / "car_new").is_dir()
