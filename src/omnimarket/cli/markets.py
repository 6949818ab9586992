"""Markets subcommand: refresh, watch, list, stats, purge."""

from __future__ import annotations

import asyncio
import signal
import sys

import typer

from omnimarket.ingestion.scheduler import CycleReport, RefreshScheduler
from omnimarket.storage.db import get_connection, init_schema
from omnimarket.storage.markets import (
    count_markets,
    delete_older_than_days,
    list_markets as storage_list_markets,
    market_totals,
)

app = typer.Typer(help="Market refresh, listing and maintenance")


def _echo_report(report: CycleReport) -> None:
    for s in report.sources:
        status = "ok" if s.ok else f"FAILED ({s.error})"
        typer.echo(f"  {s.platform:<12} {len(s.records):>5} markets  {status}")
    if report.error:
        typer.echo(f"Store write failed: {report.error}")
    elif report.fetched == 0:
        typer.echo("No markets fetched from any source.")
    else:
        typer.echo(f"Upserted {report.upserted} markets, removed {report.removed} stale.")


@app.command("refresh")
def refresh(ctx: typer.Context) -> None:
    """Run one refresh cycle: fetch all sources, upsert, evict stale markets."""
    settings = ctx.obj["settings"]
    scheduler = RefreshScheduler.from_settings(settings)
    try:
        report = asyncio.run(scheduler.run_cycle())
    finally:
        scheduler.close()
    _echo_report(report)
    if not report.ok:
        raise typer.Exit(1)


@app.command("watch")
def watch(
    ctx: typer.Context,
    interval: float | None = typer.Option(
        None, "--interval", "-i", help="Seconds between cycles (overrides config)"
    ),
) -> None:
    """Run the refresh loop in the foreground (no HTTP server)."""
    settings = ctx.obj["settings"]
    scheduler = RefreshScheduler.from_settings(settings)
    if interval is not None:
        scheduler.interval_sec = interval
    stop_event = asyncio.Event()

    def shutdown() -> None:
        stop_event.set()

    loop = asyncio.new_event_loop()
    if sys.platform != "win32":
        loop.add_signal_handler(signal.SIGINT, shutdown)
        loop.add_signal_handler(signal.SIGTERM, shutdown)
    try:
        typer.echo(f"Refreshing every {scheduler.interval_sec:g}s (Ctrl+C to stop)...")
        loop.run_until_complete(scheduler.run(stop_event=stop_event))
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.close()
        loop.close()
    typer.echo(f"Stopped after {scheduler.cycle_count} cycles.")


@app.command("list")
def list_markets(
    ctx: typer.Context,
    limit: int = typer.Option(50, "--limit", "-n", help="Max rows to print"),
    platform: str | None = typer.Option(None, "--platform", help="Only this platform"),
) -> None:
    """List visible markets by total volume."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        rows = storage_list_markets(conn)
        if platform:
            rows = [r for r in rows if r.platform == platform]
        for r in rows[:limit]:
            typer.echo(f"  {r.platform:<10} {r.external_id[:24]:<24}  {float(r.total_volume):>14,.0f}  {r.question[:60]}")
        typer.echo(f"Total: {len(rows)} markets")
    finally:
        conn.close()


@app.command("stats")
def stats(ctx: typer.Context) -> None:
    """Show market counts and volume totals per platform."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        totals = market_totals(conn)
        stored = count_markets(conn)
    finally:
        conn.close()
    typer.echo(f"Visible markets: {totals['market_count']} (stored: {stored})")
    typer.echo(f"Total volume: {totals['total_volume']}")
    typer.echo(f"24h volume: {totals['volume_24h']}")
    for p in totals["by_platform"]:
        typer.echo(f"  {p['platform']:<12} {p['market_count']:>5}  {p['total_volume']:>16}  {p['volume_24h']:>14}")


@app.command("purge")
def purge(
    ctx: typer.Context,
    days: int = typer.Option(..., "--days", "-d", min=0, help="Delete markets not updated in this many days"),
) -> None:
    """Delete markets whose last update is older than --days."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        removed = delete_older_than_days(conn, days)
    finally:
        conn.close()
    typer.echo(f"Removed {removed} markets not updated in {days} days.")
