"""Command line interface for routing graph management."""

from __future__ import annotations

import dataclasses
import json
import signal
import threading
from pathlib import Path
from typing import Annotated

import typer
from prometheus_client import start_http_server

from graph_management.metrics import GraphMetrics, default_metrics
from orchestration.coordinator import GraphCoordinatorService, build_managers_from_settings
from orchestration.restart import LoggingRestartHandler, RestartHandler, SignalRestartHandler
from orchestration.scheduler import ThreadedScheduler
from routegraph_common.errors import SettingsError
from routegraph_common.logging import get_logger, setup_logging
from routegraph_common.settings import GraphManagementSettings, load_settings

__all__ = ["app"]

LOGGER = get_logger(__name__)

EXIT_DISABLED = 1
EXIT_CONFIG = 2

app = typer.Typer(
    help="Download, stage and activate routing graphs from a graph repository.",
    no_args_is_help=True,
    add_completion=False,
)

_ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="YAML configuration file", dir_okay=False),
]


def _load(config: Path | None) -> GraphManagementSettings:
    try:
        settings = load_settings(config)
    except SettingsError as exc:
        problem = exc.to_problem_details(instance="urn:cli:routegraph:config")
        typer.echo(json.dumps(problem, sort_keys=True), err=True)
        typer.echo(exc.message, err=True)
        raise typer.Exit(code=EXIT_CONFIG) from exc
    setup_logging(settings.log_level)
    return settings


def _metrics(settings: GraphManagementSettings) -> GraphMetrics:
    return default_metrics() if settings.metrics_enabled else GraphMetrics.disabled()


def _coordinator(
    settings: GraphManagementSettings,
    restart_handler: RestartHandler,
    *,
    run_startup: bool,
    create_dirs: bool = True,
) -> GraphCoordinatorService:
    metrics = _metrics(settings)
    coordinator = GraphCoordinatorService(
        settings,
        restart_handler,
        manager_factory=lambda: build_managers_from_settings(
            settings, metrics=metrics, run_startup=False
        ),
        metrics=metrics,
    )
    managers = build_managers_from_settings(
        settings, metrics=metrics, run_startup=run_startup, create_dirs=create_dirs
    )
    for manager in managers:
        coordinator.add_graph_manager_instance(manager)
    return coordinator


def _require_enabled(settings: GraphManagementSettings) -> None:
    if not settings.enabled:
        typer.echo("Graph management is disabled (set enabled: true)", err=True)
        raise typer.Exit(code=EXIT_DISABLED)


def _echo_json(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2, sort_keys=True, default=str))


@app.command()
def status(config: _ConfigOption = None) -> None:
    """Print the state of every profile that uses a graph repository."""
    settings = _load(config)
    coordinator = _coordinator(
        settings, LoggingRestartHandler(), run_startup=False, create_dirs=False
    )
    _echo_json(dataclasses.asdict(coordinator.status()))


@app.command(name="check-updates")
def check_updates(config: _ConfigOption = None) -> None:
    """Run one update check: download and extract newer graphs."""
    settings = _load(config)
    _require_enabled(settings)
    coordinator = _coordinator(settings, LoggingRestartHandler(), run_startup=False)
    staged = coordinator.check_for_updates_in_repo("Manual")
    _echo_json({"staged": staged})


@app.command()
def activate(config: _ConfigOption = None) -> None:
    """Run one activation check; the restart is only logged."""
    settings = _load(config)
    _require_enabled(settings)
    coordinator = _coordinator(settings, LoggingRestartHandler(), run_startup=False)
    activated = coordinator.check_for_downloaded_graphs_to_activate("Manual")
    _echo_json(
        {
            "activated": activated,
            "activation_was_blocked": coordinator.activation_was_blocked,
        }
    )


@app.command()
def run(
    config: _ConfigOption = None,
    metrics_port: Annotated[
        int | None, typer.Option(help="Serve Prometheus metrics on this port")
    ] = None,
) -> None:
    """Resolve startup state, then run the update and activation cycles until stopped.

    After an activation the process sends itself ``SIGHUP`` so a supervisor
    restarts the routing service.
    """
    settings = _load(config)
    _require_enabled(settings)
    if metrics_port is not None:
        start_http_server(metrics_port)
    coordinator = _coordinator(settings, SignalRestartHandler(), run_startup=True)
    scheduler = ThreadedScheduler()
    stopped = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stopped.set())
    coordinator.start(scheduler)
    LOGGER.info(
        "Managing graphs for %s",
        ", ".join(m.profile_name for m in coordinator.managers) or "no profiles",
        extra={"operation": "run"},
    )
    try:
        while not stopped.wait(1.0):
            pass
    except KeyboardInterrupt:
        typer.echo("Interrupted", err=True)
    finally:
        coordinator.stop()
        scheduler.shutdown(wait=False)


def main() -> None:
    """Entry point of the ``routegraph`` script."""
    app()
