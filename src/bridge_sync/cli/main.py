import asyncio
import logging
import signal
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from bridge_sync.config import AUTO_SYNC_INTERVAL_SECONDS
from bridge_sync.connectivity import ConnectivityMonitor
from bridge_sync.db.connection import verify_integrity
from bridge_sync.db.store import SQLiteLocalStore
from bridge_sync.dump import build_dump
from bridge_sync.errors import SyncError
from bridge_sync.manager import SyncManager, load_remote_config, save_remote_config
from bridge_sync.metrics import configure_logging
from bridge_sync.models import RemoteConfig
from bridge_sync.notify import Notifier
from bridge_sync.scheduler import AutoSyncScheduler

app = typer.Typer(help="Bridge Sync CLI")
console = Console()
logger = logging.getLogger("cli")


class ConsoleNotifier(Notifier):
    """Prints user feedback to the terminal."""

    def __init__(self, out: Console):
        self._out = out

    def info(self, message: str) -> None:
        self._out.print(message, style="cyan", markup=False)

    def success(self, message: str) -> None:
        self._out.print(message, style="green", markup=False)

    def warning(self, message: str) -> None:
        self._out.print(message, style="yellow", markup=False)

    def error(self, message: str) -> None:
        self._out.print(message, style="red", markup=False)


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit JSON log lines"),
):
    configure_logging(level=log_level, json_format=json_logs)


def open_store(db_path: str) -> SQLiteLocalStore:
    store = SQLiteLocalStore(db_path)
    store.initialize()
    return store


def _manager(store: SQLiteLocalStore) -> SyncManager:
    return SyncManager(store, notifier=ConsoleNotifier(console))


def _print_metrics(manager: SyncManager) -> None:
    session = manager.last_session
    if session is not None:
        console.print(
            f"Last {session.direction.value}: {session.state.value} in {session.duration:.2f}s",
            markup=False,
        )
    typer.echo(manager.metrics.registry.export_prometheus())


async def _run_with_manager(store: SQLiteLocalStore, action, show_metrics: bool = False):
    async with _manager(store) as manager:
        result = await action(manager)
        if show_metrics:
            _print_metrics(manager)
        return result


@app.command()
def init(db_path: str = typer.Argument(..., help="Path to SQLite database")):
    """Create the local tables."""
    with open_store(db_path) as store:
        console.print(f"[green]Initialized {len(store.catalog)} tables in {db_path}[/green]")


@app.command()
def configure(
    db_path: str = typer.Argument(..., help="Path to SQLite database"),
    url: Optional[str] = typer.Option(None, "--url", help="Bridge URL"),
    host: Optional[str] = typer.Option(None, "--host", help="Remote database host"),
    port: Optional[str] = typer.Option(None, "--port", help="Remote database port"),
    user: Optional[str] = typer.Option(None, "--user", help="Remote database user"),
    password: Optional[str] = typer.Option(None, "--password", help="Remote database password"),
    database: Optional[str] = typer.Option(None, "--database", help="Remote database name"),
):
    """Store the remote connection settings."""
    with open_store(db_path) as store:
        current = load_remote_config(store)
        updated = RemoteConfig(
            api_url=url if url is not None else current.api_url,
            host=host if host is not None else current.host,
            port=port if port is not None else current.port,
            user=user if user is not None else current.user,
            password=password if password is not None else current.password,
            database=database if database is not None else current.database,
        )
        save_remote_config(store, updated)
        console.print("[green]Remote configuration saved[/green]")


@app.command("show-config")
def show_config(db_path: str = typer.Argument(..., help="Path to SQLite database")):
    """Show the remote connection settings."""
    with open_store(db_path) as store:
        config = load_remote_config(store)
        table = Table(title="Remote Configuration")
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="magenta")
        for key, value in config.redacted().items():
            table.add_row(key, value or "-")
        console.print(table)


@app.command()
def test(db_path: str = typer.Argument(..., help="Path to SQLite database")):
    """Check the bridge connection and credentials."""
    with open_store(db_path) as store:
        check = asyncio.run(_run_with_manager(store, lambda m: m.test_connection()))
    if check.ok:
        console.print(check.message or 'Connection successful', style="green", markup=False)
    elif check.database_missing:
        console.print(check.message, style="yellow", markup=False)
        raise typer.Exit(code=2)
    else:
        console.print(check.message or 'Connection failed', style="red", markup=False)
        raise typer.Exit(code=1)


@app.command()
def push(
    db_path: str = typer.Argument(..., help="Path to SQLite database"),
    metrics: bool = typer.Option(False, "--metrics", help="Print sync metrics afterwards"),
):
    """Replace the remote database with the local data."""
    with open_store(db_path) as store:
        ok = asyncio.run(_run_with_manager(store, lambda m: m.push_to_remote(show_feedback=True), metrics))
    if not ok:
        raise typer.Exit(code=1)


@app.command()
def pull(
    db_path: str = typer.Argument(..., help="Path to SQLite database"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    metrics: bool = typer.Option(False, "--metrics", help="Print sync metrics afterwards"),
):
    """Replace the local data with the remote database."""
    if not yes:
        typer.confirm("This discards every local record. Continue?", abort=True)
    with open_store(db_path) as store:
        ok = asyncio.run(_run_with_manager(store, lambda m: m.pull_from_remote(), metrics))
    if not ok:
        raise typer.Exit(code=1)


@app.command()
def dump(
    db_path: str = typer.Argument(..., help="Path to SQLite database"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the script to this file"),
):
    """Print or save the dump script that a push would send."""
    with open_store(db_path) as store:
        try:
            result = build_dump(store)
        except SyncError as e:
            console.print(f"Dump failed: {e}", style="red", markup=False)
            raise typer.Exit(code=1)
    if result is None:
        console.print("[yellow]Nothing to export[/yellow]")
        return
    if output is None:
        typer.echo(result.sql, nl=False)
        return
    output.write_text(result.sql, encoding="utf-8")
    console.print(
        f"[green]Wrote {result.stats.rows} rows from {result.stats.tables} tables "
        f"({result.size_bytes} bytes) to {output}[/green]"
    )
    if result.stats.empty_tables:
        console.print(f"Empty tables: {', '.join(result.stats.empty_tables)}", markup=False)


@app.command()
def auto(
    db_path: str = typer.Argument(..., help="Path to SQLite database"),
    interval: float = typer.Option(AUTO_SYNC_INTERVAL_SECONDS, "--interval", "-i", help="Seconds between pushes"),
    probe: bool = typer.Option(True, "--probe/--no-probe", help="Push as soon as the bridge host is reachable again"),
):
    """Run silent auto-sync pushes until interrupted."""

    async def _run() -> None:
        with open_store(db_path) as store:
            async with _manager(store) as manager:
                scheduler = AutoSyncScheduler(manager, monitor=ConnectivityMonitor(), probe=probe)
                stop = asyncio.Event()
                loop = asyncio.get_running_loop()
                for sig in (signal.SIGINT, signal.SIGTERM):
                    try:
                        loop.add_signal_handler(sig, stop.set)
                    except (NotImplementedError, RuntimeError):
                        pass
                await scheduler.start(interval)
                console.print(f"[bold green]Auto-sync running (interval={interval}s). Press Ctrl+C to stop.[/bold green]")
                try:
                    await stop.wait()
                finally:
                    await scheduler.stop()
                    console.print("[green]Auto-sync stopped.[/green]")
                    _print_metrics(manager)

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        pass


@app.command()
def status(db_path: str = typer.Argument(..., help="Path to SQLite database")):
    """Show row counts per synchronized table."""
    with open_store(db_path) as store:
        config = load_remote_config(store)
        table = Table(title="Local Store")
        table.add_column("Table", style="cyan")
        table.add_column("Rows", style="magenta", justify="right")
        for descriptor in store.catalog:
            table.add_row(descriptor.name, str(store.count(descriptor.name)))
        console.print(table)
        console.print(f"Bridge: {config.api_url or '[yellow]not configured[/yellow]'}")
        console.print(f"Integrity: {'ok' if verify_integrity(store.connection) else '[red]FAILED[/red]'}")


if __name__ == "__main__":
    app()
