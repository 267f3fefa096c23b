"""Authentication commands."""

import asyncio
from typing import Annotated

import typer
from rich import box
from rich.console import Console
from rich.table import Table
from structlog import get_logger

from claude_quota_monitor.cli.context import get_state
from claude_quota_monitor.core.timeutils import format_time_until
from claude_quota_monitor.exceptions import CredentialsError, OAuthLoginError
from claude_quota_monitor.monitor import QuotaMonitor


app = typer.Typer(name="auth", help="Sign in, sign out and inspect credentials")

console = Console()
logger = get_logger(__name__)


@app.command(name="login")
def login_command(
    ctx: typer.Context,
    no_browser: Annotated[
        bool,
        typer.Option("--no-browser", help="Print the authorization URL only."),
    ] = False,
) -> None:
    """Sign in with your Claude account.

    Opens the authorization page, then asks for the code shown after
    approving access.
    """
    state = get_state(ctx)
    monitor = QuotaMonitor.from_settings(
        state.settings,
        preferences=state.preferences(),
        browser_opener=(lambda url: None) if no_browser else None,
    )

    try:
        url = monitor.start_login()
    except OAuthLoginError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1) from e

    console.print("[bold cyan]Claude OAuth Login[/bold cyan]")
    console.print("\nOpen this URL if the browser did not start:")
    console.print(f"[link={url}]{url}[/link]\n")
    code = typer.prompt("Paste the authorization code")

    result = asyncio.run(monitor.auth.submit_authorization_code(code))
    if not result.success:
        console.print(f"[red]✗[/red] {result.error}")
        raise typer.Exit(1)
    console.print("[green]✓[/green] Signed in")


@app.command(name="logout")
def logout_command(ctx: typer.Context) -> None:
    """Forget stored credentials.

    Credentials owned by Claude Code are left untouched.
    """
    monitor = get_state(ctx).build_monitor()
    try:
        asyncio.run(monitor.logout())
    except CredentialsError as e:
        console.print(f"[red]Error signing out:[/red] {e}")
        raise typer.Exit(1) from e
    console.print("[green]✓[/green] Signed out")


async def _load_status(monitor: QuotaMonitor) -> tuple[str, dict[str, str]]:
    state = await monitor.engine.initialize()
    credentials = await monitor.engine.store.load()
    rows: dict[str, str] = {
        "Source": str(monitor.auth.mode),
        "Location": monitor.engine.store.get_location(),
    }
    if credentials is not None:
        rows["Email"] = credentials.email or "Unknown"
        rows["Plan"] = credentials.subscription_type or "Unknown"
        expires = credentials.expires_at_datetime
        if expires is not None:
            rows["Expires"] = (
                f"{expires.strftime('%Y-%m-%d %H:%M:%S UTC')} "
                f"({format_time_until(expires)})"
            )
        if credentials.scopes:
            rows["Scopes"] = ", ".join(credentials.scopes)
    return str(state), rows


@app.command(name="status")
def status_command(ctx: typer.Context) -> None:
    """Show the credential source and authentication state."""
    monitor = get_state(ctx).build_monitor()
    auth_state, rows = asyncio.run(_load_status(monitor))

    table = Table(
        show_header=True,
        header_style="bold cyan",
        box=box.ROUNDED,
        title="Authentication",
        title_style="bold white",
    )
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")

    style = {"authenticated": "green", "expired": "red"}.get(auth_state, "yellow")
    table.add_row("State", f"[{style}]{auth_state}[/{style}]")
    for key, value in rows.items():
        table.add_row(key, value)
    console.print(table)

    if auth_state == "unauthenticated":
        console.print("\n[dim]To sign in, run:[/dim]")
        console.print("[cyan]claude-quota-monitor auth login[/cyan]")
