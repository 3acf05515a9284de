"""
CLI commands for circuit breaker inspection and administrative overrides.

Operates on the persisted state store, so it sees what every process
guarding the same dependency has written.
"""

import asyncio
import json
import time
from datetime import datetime
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from tandem.core.config import StateStoreBackend
from tandem.infrastructure.resilience import (
    CircuitBreaker,
    CircuitState,
    CircuitStateRecord,
    FileStateStore,
)
from tandem.services import TandemFactory

console = Console()

STATE_STYLES = {
    CircuitState.CLOSED: "green",
    CircuitState.OPEN: "red",
    CircuitState.HALF_OPEN: "yellow",
}


def _file_store(factory: TandemFactory) -> FileStateStore:
    if factory.config.state_store.backend != StateStoreBackend.FILE:
        raise click.ClickException(
            "Breaker commands need a shared state store; "
            "set [state_store] backend = \"file\" in the configuration"
        )
    return factory.state_store


def _build_breaker(factory: TandemFactory, name: str) -> CircuitBreaker:
    _file_store(factory)
    return factory.create_breaker(name)


def _record_status(record: CircuitStateRecord, reset_timeout: float, now: float) -> str:
    """Whether a new breaker would adopt this record."""
    if record.is_expired(now):
        return "expired"
    if now - record.last_state_change >= 2 * reset_timeout:
        return "stale"
    return "live"


def _format_time(timestamp: Optional[float]) -> str:
    if not timestamp:
        return "Never"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


@click.group()
def breaker():
    """Inspect and override persisted circuit breakers."""
    pass


@breaker.command()
@click.argument("name", required=False)
@click.option(
    "--format", "-f", "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@click.pass_context
def status(ctx: click.Context, name: Optional[str], output_format: str):
    """Show persisted breaker state (all breakers, or NAME only)."""
    factory: TandemFactory = ctx.obj["factory"]
    store = _file_store(factory)

    if name:
        record = store.get(name)
        records = [record] if record is not None else []
    else:
        records = store.list_records()

    if not records:
        console.print(f"No persisted state for breaker: {name}" if name else "No persisted breaker state found")
        return

    now = time.time()
    if output_format == "json":
        payload = []
        for record in records:
            entry = record.to_dict()
            reset_timeout = factory.config_manager.get_breaker_settings(record.name).reset_timeout
            entry["status"] = _record_status(record, reset_timeout, now)
            payload.append(entry)
        click.echo(json.dumps(payload, indent=2))
        return

    table = Table(title="Circuit Breaker Status")
    table.add_column("Breaker", style="cyan")
    table.add_column("State")
    table.add_column("Requests", justify="right")
    table.add_column("Failures", justify="right")
    table.add_column("Error Rate", justify="right")
    table.add_column("Last Change")
    table.add_column("Record")

    for record in records:
        reset_timeout = factory.config_manager.get_breaker_settings(record.name).reset_timeout
        style = STATE_STYLES.get(record.state, "white")
        table.add_row(
            record.name,
            f"[{style}]{record.state.value}[/{style}]",
            str(record.metrics.total_requests),
            str(record.metrics.failures),
            f"{record.metrics.error_rate:.1f}%",
            _format_time(record.last_state_change),
            _record_status(record, reset_timeout, now),
        )

    console.print(table)


@breaker.command()
@click.argument("name")
@click.pass_context
def reset(ctx: click.Context, name: str):
    """Force breaker NAME to CLOSED with zeroed counters."""
    cb = _build_breaker(ctx.obj["factory"], name)
    asyncio.run(cb.reset())
    console.print(f"[green]Circuit breaker '{name}' reset to CLOSED[/green]")


@breaker.command()
@click.argument("name")
@click.pass_context
def trip(ctx: click.Context, name: str):
    """Force breaker NAME to OPEN."""
    cb = _build_breaker(ctx.obj["factory"], name)
    asyncio.run(cb.trip())
    console.print(f"[red]Circuit breaker '{name}' forced OPEN[/red]")
