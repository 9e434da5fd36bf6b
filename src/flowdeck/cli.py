# src/flowdeck/cli.py
"""Flowdeck Command Line Interface.

Entry point for the flowdeck CLI tool.
"""

import json
from pathlib import Path

import typer
from pydantic import ValidationError

from flowdeck import __version__
from flowdeck.core.config import FlowdeckSettings, default_config_path, load_settings
from flowdeck.core.graph_layout import build_graph_layout_ordered
from flowdeck.core.ordering import find_cycle, topological_sort

app = typer.Typer(
    name="flowdeck",
    help="Flowdeck: terminal dashboard for workflow orchestration servers.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"flowdeck version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Flowdeck: terminal dashboard for workflow orchestration servers."""
    pass


def _load_settings_or_exit(file: Path | None) -> FlowdeckSettings:
    config_path = file or default_config_path()
    try:
        return load_settings(config_path)
    except FileNotFoundError:
        typer.echo(f"Error: Config file not found: {config_path}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


@app.command()
def run(
    file: Path | None = typer.Option(
        None,
        "--file",
        "-f",
        help="Path to config YAML file (default: $XDG_CONFIG_HOME/flowdeck/config.yaml).",
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Log level for the debug log file (DEBUG, INFO, WARNING, ERROR).",
    ),
) -> None:
    """Start the dashboard."""
    from flowdeck.core.log_archive import LogArchive
    from flowdeck.core.logging import configure_logging, debug_log_path, get_logger
    from flowdeck.engine.synchronizer import ViewSynchronizer
    from flowdeck.engine.worker import SyncWorker
    from flowdeck.tui.dashboard_app import DashboardApp
    from flowdeck.views.app_state import AppState

    settings = _load_settings_or_exit(file)

    try:
        configure_logging(
            log_level or settings.log_level, debug_log_path(settings.state_dir)
        )
    except (ValueError, OSError) as e:
        typer.echo(f"Error: Cannot configure logging: {e}", err=True)
        raise typer.Exit(1) from None

    logger = get_logger(__name__)
    logger.info("Starting dashboard", servers=settings.server_names)

    state = AppState(run_page_size=settings.run_page_size, log_lru_size=settings.log_lru_size)
    synchronizer = ViewSynchronizer(state, settings.servers)
    log_archive = LogArchive(settings.state_dir / "task-logs")
    worker = SyncWorker(state, settings, log_archive=log_archive, synchronizer=synchronizer)

    worker.start()
    try:
        DashboardApp(
            state,
            worker,
            synchronizer,
            log_archive=log_archive,
            tick_rate_ms=settings.tick_rate_ms,
            initial_server=settings.active_server,
        ).run()
    finally:
        worker.stop()


@app.command()
def servers(
    file: Path | None = typer.Option(
        None,
        "--file",
        "-f",
        help="Path to config YAML file.",
    ),
) -> None:
    """List configured servers (* marks the active one)."""
    settings = _load_settings_or_exit(file)
    if not settings.servers:
        typer.echo("No servers configured.")
        return
    for server in settings.servers:
        marker = "*" if server.name == settings.active_server else " "
        typer.echo(f"{marker} {server.name}  {server.endpoint}  ({server.version.value})")


@app.command()
def order(
    file: Path = typer.Option(
        ...,
        "--file",
        "-f",
        help="JSON object mapping task id to its downstream task ids.",
    ),
    tree: bool = typer.Option(
        False,
        "--tree",
        "-t",
        help="Print the dependency tree instead of the flat order.",
    ),
) -> None:
    """Print the display order of a task dependency map."""
    try:
        data = json.loads(file.read_text(encoding="utf-8"))
    except FileNotFoundError:
        typer.echo(f"Error: File not found: {file}", err=True)
        raise typer.Exit(1) from None
    except json.JSONDecodeError as e:
        typer.echo(f"Error: Invalid JSON in {file}: {e}", err=True)
        raise typer.Exit(1) from None

    if not isinstance(data, dict) or not all(
        isinstance(targets, list) and all(isinstance(t, str) for t in targets)
        for targets in data.values()
    ):
        typer.echo("Error: Expected an object of task id -> list of task ids", err=True)
        raise typer.Exit(1)

    if tree:
        for task_id, prefix in build_graph_layout_ordered(data):
            typer.echo(f"{prefix}{task_id}")
        return

    cycle = find_cycle(data)
    if cycle:
        path = " -> ".join([*(source for source, _ in cycle), cycle[0][0]])
        typer.echo(f"Warning: dependency cycle: {path}", err=True)
    for task_id in topological_sort(data):
        typer.echo(task_id)
