"""Main entry point for the quota monitor CLI."""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from claude_quota_monitor._version import __version__
from claude_quota_monitor.cli.commands.auth import app as auth_app
from claude_quota_monitor.cli.commands.quota import app as quota_app
from claude_quota_monitor.cli.context import CliState
from claude_quota_monitor.config.settings import Settings
from claude_quota_monitor.core.logging import setup_logging
from claude_quota_monitor.exceptions import ConfigurationError


console = Console()

app = typer.Typer(
    name="claude-quota-monitor",
    help="Track Claude session and weekly usage quotas.",
    rich_markup_mode="rich",
    no_args_is_help=True,
)

app.add_typer(auth_app)
app.add_typer(quota_app)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"claude-quota-monitor {__version__}")
        raise typer.Exit()


@app.callback()
def app_main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to a TOML configuration file.",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="Override the configured log level."),
    ] = None,
    json_logs: Annotated[
        bool,
        typer.Option("--json-logs", help="Render logs as JSON lines."),
    ] = False,
) -> None:
    """Claude Quota Monitor."""
    try:
        settings = Settings.from_config(config_path=config)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1) from e

    setup_logging(
        json_logs=json_logs or settings.logging.json_logs,
        log_level_name=log_level or settings.logging.level,
        log_file=settings.logging.file,
    )
    ctx.obj = CliState(settings=settings)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
