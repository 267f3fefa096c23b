"""Quota inspection, monitoring and preference commands."""

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from structlog import get_logger

from claude_quota_monitor.cli.context import get_state
from claude_quota_monitor.core.timeutils import format_hours_short
from claude_quota_monitor.exceptions import ConfigValidationError
from claude_quota_monitor.history.ledger import TrendDirection
from claude_quota_monitor.monitor import QuotaMonitor
from claude_quota_monitor.notifications.notifier import Urgency
from claude_quota_monitor.quota.models import QuotaLevel, QuotaSnapshot


app = typer.Typer(name="quota", help="Inspect and monitor usage quotas")

console = Console()
logger = get_logger(__name__)

_LEVEL_STYLES = {
    QuotaLevel.NORMAL: "green",
    QuotaLevel.WARNING: "yellow",
    QuotaLevel.CRITICAL: "red",
}
_TREND_SYMBOLS = {
    TrendDirection.UP: "↑",
    TrendDirection.DOWN: "↓",
    TrendDirection.STABLE: "→",
}
_URGENCY_STYLES = {
    Urgency.LOW: "blue",
    Urgency.NORMAL: "yellow",
    Urgency.CRITICAL: "red",
}


class ConsoleNotifier:
    """Shows notifications as panels on the terminal."""

    def __init__(self, out: Console | None = None) -> None:
        self.out = out or console

    def show(self, title: str, body: str, urgency: Urgency) -> None:
        self.out.print(
            Panel(body, title=title, border_style=_URGENCY_STYLES.get(urgency, "white"))
        )


def render_snapshot(monitor: QuotaMonitor, snapshot: QuotaSnapshot | None) -> Table | str:
    """Quota table for a snapshot, or a message when there is none."""
    error = monitor.get_last_error()
    if snapshot is None:
        message = error.message if error else "No quota data yet."
        return f"[red]✗[/red] {message}"

    trend = monitor.get_trend(30)
    table = Table(
        show_header=True,
        header_style="bold cyan",
        box=box.ROUNDED,
        title="Claude Usage",
        title_style="bold white",
        caption=(
            f"[red]{snapshot.error.message}[/red]"
            if snapshot.error
            else f"Updated {snapshot.last_updated.astimezone():%H:%M:%S}"
        ),
    )
    table.add_column("Window", style="cyan")
    table.add_column("Used", justify="right")
    table.add_column("Trend", justify="center")
    table.add_column("Resets in", justify="right")
    table.add_column("Period elapsed", justify="right")

    windows = [
        ("Session (5h)", snapshot.five_hour, trend.five_hour if trend else None),
        ("Weekly (7d)", snapshot.seven_day, trend.seven_day if trend else None),
    ]
    for label, window, window_trend in windows:
        style = _LEVEL_STYLES[monitor.notifications.get_level(window.utilization)]
        table.add_row(
            label,
            f"[{style}]{window.utilization:.0f}%[/{style}]",
            _TREND_SYMBOLS[window_trend.direction] if window_trend else "",
            window.resets_in,
            f"{window.reset_progress}%",
        )

    ttc = monitor.get_time_to_critical()
    if ttc is not None and ttc.soonest is not None:
        table.add_section()
        table.add_row("Est. critical in", f"~{format_hours_short(ttc.soonest)}", "", "", "")
    return table


@app.command(name="status")
def status_command(ctx: typer.Context) -> None:
    """Fetch and show the current quota once."""
    monitor = get_state(ctx).build_monitor()

    async def fetch() -> QuotaSnapshot | None:
        try:
            await monitor.engine.initialize()
            return await monitor.fetch_quota(force_refresh=True)
        finally:
            await monitor.fetcher.aclose()

    snapshot = asyncio.run(fetch())
    console.print(render_snapshot(monitor, snapshot))
    if snapshot is None:
        raise typer.Exit(1)


@app.command(name="watch")
def watch_command(ctx: typer.Context) -> None:
    """Keep polling and alert on threshold changes until interrupted."""
    monitor = get_state(ctx).build_monitor(notifier=ConsoleNotifier())

    def on_refresh() -> None:
        if monitor.get_pause_status().paused:
            console.print("[dim]Monitoring paused[/dim]")
            return
        console.print(render_snapshot(monitor, monitor.get_cached_quota()))
        next_run = monitor.scheduler.get_next_refresh_time()
        if next_run is not None:
            console.print(
                f"[dim]Next refresh at {next_run.astimezone():%H:%M:%S} "
                f"(every {monitor.get_refresh_interval():g}s)[/dim]"
            )

    monitor.subscribe(on_refresh)

    async def run() -> None:
        async with monitor:
            await asyncio.Event().wait()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped[/dim]")


@app.command(name="history")
def history_command(
    ctx: typer.Context,
    hours: Annotated[
        int, typer.Option("--hours", min=1, max=168, help="Period to summarize.")
    ] = 24,
    csv_path: Annotated[
        Path | None,
        typer.Option("--csv", help="Write the period's samples to this CSV file."),
    ] = None,
    clear: Annotated[
        bool, typer.Option("--clear", help="Delete all recorded samples.")
    ] = False,
) -> None:
    """Summarize, export or clear recorded quota samples."""
    monitor = get_state(ctx).build_monitor()

    if clear:
        monitor.clear_history()
        console.print("[green]✓[/green] History cleared")
        return

    if csv_path is not None:
        csv_path.write_text(monitor.export_history_csv(hours), encoding="utf-8")
        console.print(f"[green]✓[/green] Exported to {csv_path}")
        return

    stats = monitor.get_history_stats(hours)
    if stats is None:
        console.print(f"No samples in the last {hours}h.")
        return

    table = Table(
        show_header=True,
        header_style="bold cyan",
        box=box.ROUNDED,
        title=f"Last {hours}h ({stats.entry_count} samples)",
        title_style="bold white",
    )
    table.add_column("Window", style="cyan")
    table.add_column("Average", justify="right")
    table.add_column("Min", justify="right")
    table.add_column("Max", justify="right")
    table.add_row(
        "Session (5h)",
        f"{stats.avg_five_hour}%",
        f"{stats.min_five_hour}%",
        f"{stats.max_five_hour}%",
    )
    table.add_row(
        "Weekly (7d)",
        f"{stats.avg_seven_day}%",
        f"{stats.min_seven_day}%",
        f"{stats.max_seven_day}%",
    )
    console.print(table)


@app.command(name="configure")
def configure_command(
    ctx: typer.Context,
    interval: Annotated[
        int | None,
        typer.Option("--interval", help="Base refresh interval: 30, 60, 120, 300 or 600."),
    ] = None,
    warning: Annotated[
        int | None, typer.Option("--warning", help="Warning threshold (50-99).")
    ] = None,
    critical: Annotated[
        int | None, typer.Option("--critical", help="Critical threshold (50-99).")
    ] = None,
    adaptive: Annotated[
        bool | None,
        typer.Option("--adaptive/--no-adaptive", help="Poll faster near the limit."),
    ] = None,
    notifications: Annotated[
        bool | None,
        typer.Option("--notifications/--no-notifications", help="Emit alerts."),
    ] = None,
) -> None:
    """Show or change persisted preferences."""
    store = get_state(ctx).preferences()
    changes = {
        "refresh_interval": interval,
        "warning_threshold": warning,
        "critical_threshold": critical,
        "adaptive_refresh": adaptive,
        "notifications_enabled": notifications,
    }
    try:
        store.update(**{k: v for k, v in changes.items() if v is not None})
    except ConfigValidationError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1) from e

    table = Table(show_header=True, header_style="bold cyan", box=box.ROUNDED)
    table.add_column("Preference", style="cyan")
    table.add_column("Value", style="white")
    for key, value in store.current.model_dump(mode="json").items():
        table.add_row(key, str(value))
    console.print(table)
