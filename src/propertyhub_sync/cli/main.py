"""CLI entry point for propertyhub-sync.

Invoked as::

    propertyhub-sync [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m propertyhub_sync.cli.main

Commands
--------
- ``status``       Show the sync status of an offline database.
- ``queue``        List pending mutations in FIFO order.
- ``enqueue``      Append a mutation to the durable queue.
- ``sync``         Drain the queue against a simulated remote.
- ``cache-size``   Count cached records per collection.
- ``clear-cache``  Evict all domain collections.
"""
from __future__ import annotations

import json
import sys
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from propertyhub_sync.engine import OfflineSyncEngine

console = Console()


@click.group()
@click.version_option()
def cli() -> None:
    """Inspect and drive a PropertyHub offline sync database"""


def _database_options(func: Callable[..., Any]) -> Callable[..., Any]:
    func = click.option(
        "--config",
        "-c",
        "config_path",
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        default=None,
        help="YAML engine configuration file.",
    )(func)
    func = click.option(
        "--db",
        "database_path",
        type=click.Path(dir_okay=False, path_type=Path),
        default=None,
        help="Offline database file. Overrides the config's database_path.",
    )(func)
    return func


def _open_engine(
    database_path: Path | None,
    config_path: Path | None,
    online: bool = False,
    fault_rate: float = 0.0,
    seed: int | None = None,
) -> OfflineSyncEngine:
    """Build and initialize an engine over a simulated remote."""
    from propertyhub_sync.config import load_config
    from propertyhub_sync.engine import OfflineSyncEngine
    from propertyhub_sync.errors import StorageInitError
    from propertyhub_sync.network.monitor import NetworkMonitor
    from propertyhub_sync.testing import RandomFaults, SimulatedRemote

    config = load_config(config_path)
    if database_path is not None:
        config = config.model_copy(update={"database_path": str(database_path)})
    engine = OfflineSyncEngine(
        SimulatedRemote(fault_policy=RandomFaults(fault_rate, seed=seed)),
        config,
        network=NetworkMonitor(initial_online=online),
    )
    try:
        engine.initialize()
    except StorageInitError as exc:
        console.print(f"[red]Storage error:[/red] {exc}")
        sys.exit(1)
    return engine


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from propertyhub_sync import __version__

    console.print(f"[bold]propertyhub-sync[/bold] v{__version__}")


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command(name="status")
@_database_options
@click.option("--json-output", is_flag=True, default=False, help="Output status as JSON.")
def status_command(
    database_path: Path | None, config_path: Path | None, json_output: bool
) -> None:
    """Show pending actions and the last sync time.

    Examples:

    \b
        propertyhub-sync status --db offline.db
        propertyhub-sync status -c engine.yaml --json-output
    """
    engine = _open_engine(database_path, config_path)
    try:
        status = engine.status()
    finally:
        engine.close()

    if json_output:
        console.print_json(json.dumps(status.to_dict()))
        return

    last_sync = status.last_sync_time.isoformat() if status.last_sync_time else "never"
    console.print(
        Panel(
            f"[bold]{status.pending_actions}[/bold] pending action(s)\n"
            f"Last sync: {last_sync}",
            title="Offline Sync Status",
            expand=False,
        )
    )
    if status.last_error:
        console.print(f"[yellow]Last error:[/yellow] {status.last_error}")


# ---------------------------------------------------------------------------
# queue
# ---------------------------------------------------------------------------


@cli.command(name="queue")
@_database_options
@click.option("--json-output", is_flag=True, default=False, help="Output actions as JSON.")
def queue_command(
    database_path: Path | None, config_path: Path | None, json_output: bool
) -> None:
    """List pending mutations in the order they will be sent."""
    engine = _open_engine(database_path, config_path)
    try:
        actions = engine.queue.snapshot()
    finally:
        engine.close()

    if json_output:
        console.print_json(json.dumps([action.to_record() for action in actions]))
        return

    if not actions:
        console.print("[green]No pending actions.[/green]")
        return

    table = Table(title="Pending Actions", show_header=True)
    table.add_column("#", justify="right")
    table.add_column("ID", style="cyan")
    table.add_column("Kind", style="yellow")
    table.add_column("Resource")
    table.add_column("Retries", justify="right")
    table.add_column("Enqueued At", style="dim")
    for position, action in enumerate(actions, start=1):
        table.add_row(
            str(position),
            action.id,
            action.kind.value,
            action.resource,
            f"{action.retry_count}/{action.max_retries}",
            action.enqueued_at.isoformat(),
        )
    console.print(table)


# ---------------------------------------------------------------------------
# enqueue
# ---------------------------------------------------------------------------


@cli.command(name="enqueue")
@click.argument("kind", type=click.Choice(["CREATE", "UPDATE", "DELETE"], case_sensitive=False))
@click.argument("resource")
@click.option("--payload", "-p", default="null", help="JSON payload for the remote call.")
@_database_options
def enqueue_command(
    kind: str,
    resource: str,
    payload: str,
    database_path: Path | None,
    config_path: Path | None,
) -> None:
    """Append a mutation to the durable queue.

    Examples:

    \b
        propertyhub-sync enqueue CREATE booking -p '{"id": "b1"}' --db offline.db
        propertyhub-sync enqueue delete property -p '{"id": "p9"}'
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        console.print(f"[red]Invalid --payload JSON:[/red] {exc}")
        sys.exit(1)

    engine = _open_engine(database_path, config_path)
    try:
        pending = engine.enqueue(kind.upper(), resource, data)
    except ValueError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)
    finally:
        engine.close()
    console.print(f"Queued {kind.upper()} {resource}. [bold]{pending}[/bold] pending action(s).")


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------


@cli.command(name="sync")
@_database_options
@click.option(
    "--fault-rate",
    default=0.0,
    type=click.FloatRange(0.0, 1.0),
    help="Probability that the simulated remote rejects an action.",
    show_default=True,
)
@click.option("--seed", default=None, type=int, help="Seed for the simulated fault rate.")
def sync_command(
    database_path: Path | None,
    config_path: Path | None,
    fault_rate: float,
    seed: int | None,
) -> None:
    """Run one pass against a simulated remote.

    Useful to rehearse retry and drop behaviour on a copy of a device
    database. Exits 1 if the pass failed as a whole.
    """
    engine = _open_engine(database_path, config_path, online=True, fault_rate=fault_rate, seed=seed)
    try:
        history = engine.orchestrator.history()
        status = engine.status()
    finally:
        engine.close()

    if not history:
        console.print("[yellow]No pass ran.[/yellow]")
        sys.exit(1)
    report = history[-1]

    table = Table(title="Sync Pass", show_header=True)
    table.add_column("Outcome", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Succeeded", str(report.succeeded))
    table.add_row("Retried", str(report.retried))
    table.add_row("Dropped", str(report.dropped))
    table.add_row("Skipped (backoff)", str(report.skipped))
    table.add_row("Still pending", str(status.pending_actions))
    console.print(table)

    if status.last_error:
        console.print(f"[yellow]Last error:[/yellow] {status.last_error}")
    sys.exit(0 if report.ok else 1)


# ---------------------------------------------------------------------------
# cache-size / clear-cache
# ---------------------------------------------------------------------------


@cli.command(name="cache-size")
@_database_options
def cache_size_command(database_path: Path | None, config_path: Path | None) -> None:
    """Count cached records per collection."""
    engine = _open_engine(database_path, config_path)
    try:
        counts = {name: engine.store.count(name) for name in engine.store.schemas}
        total = engine.cache_size()
    finally:
        engine.close()

    table = Table(title="Cached Records", show_header=True)
    table.add_column("Collection", style="cyan")
    table.add_column("Records", justify="right")
    for name, count in counts.items():
        table.add_row(name, str(count))
    table.add_row("[bold]total[/bold]", f"[bold]{total}[/bold]")
    console.print(table)


@cli.command(name="clear-cache")
@_database_options
@click.confirmation_option(prompt="Evict all cached domain records?")
def clear_cache_command(database_path: Path | None, config_path: Path | None) -> None:
    """Evict every domain collection. Pending actions are kept."""
    engine = _open_engine(database_path, config_path)
    try:
        removed = engine.clear_cache()
    finally:
        engine.close()
    console.print(f"[green]Removed {removed} cached record(s).[/green]")


if __name__ == "__main__":
    cli()
