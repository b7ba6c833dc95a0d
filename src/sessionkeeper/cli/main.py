"""sessionkeeper CLI - keep a backend session alive.

Runs the keep-alive service, performs one-off cycles and inspects a running
instance from the terminal.
"""

import json
import os
from typing import Annotated, Any

import requests
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

import sessionkeeper
from sessionkeeper.config import KeepAliveSettings, get_settings
from sessionkeeper.exceptions import ConfigurationError
from sessionkeeper.keepalive.state import NextAction
from sessionkeeper.logging import bind_service_context, configure_logging, get_logger

# Configure logging early using env vars directly; loading settings here would
# fail before `--help` can be shown when required variables are missing.
configure_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    json_output=os.environ.get("LOG_FORMAT", "console") == "json",
)

LOG = get_logger(__name__)

app = typer.Typer(
    name="sessionkeeper",
    help="""
    🔐 sessionkeeper - keep a backend session alive

    Periodically logs in and out of a cookie-authenticated HTTP API and
    reports health over a small status server.

    \b
    Quick start:
      sessionkeeper run        Start the service
      sessionkeeper once       Run a single login cycle
      sessionkeeper config     Show effective configuration
      sessionkeeper status     Query a running instance
    """,
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)
console = Console()
err_console = Console(stderr=True)


def _load_settings_or_exit():
    try:
        return get_settings()
    except ConfigurationError as exc:
        err_console.print(f"[red]✗ {exc}[/red]")
        raise typer.Exit(1) from None


def _verbosity_level(verbose: int, default: str) -> str:
    if verbose >= 2:
        return "DEBUG"
    if verbose >= 1:
        return "INFO"
    return default


def _configure_service_logging(ctx: typer.Context, settings: KeepAliveSettings) -> None:
    """Apply settings-driven logging, keeping any -v or --log-format given on the command line."""
    options = ctx.obj or {}
    log_format = options.get("log_format") or settings.log_format
    configure_logging(
        level=_verbosity_level(options.get("verbose", 0), settings.log_level),
        json_output=log_format == "json",
        log_dir=settings.log_dir,
        retention_days=settings.log_retention_days,
        error_retention_days=settings.log_error_retention_days,
    )
    bind_service_context()


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose",
            "-v",
            count=True,
            help="Increase verbosity (-v for info, -vv for debug)",
        ),
    ] = 0,
    log_format: Annotated[
        str | None,
        typer.Option(
            "--log-format",
            help="Log output format: console (human-readable) or json (structured)",
        ),
    ] = None,
) -> None:
    """sessionkeeper - keep a backend session alive."""
    ctx.obj = {"verbose": verbose, "log_format": log_format}
    if verbose or log_format is not None:
        configure_logging(
            level=_verbosity_level(verbose, os.environ.get("LOG_LEVEL", "INFO")),
            json_output=(log_format or os.environ.get("LOG_FORMAT", "console")) == "json",
        )
    bind_service_context()


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"sessionkeeper [bold cyan]{sessionkeeper.__version__}[/bold cyan]")


@app.command()
def run(ctx: typer.Context) -> None:
    """Run the keep-alive service until SIGINT/SIGTERM."""
    from sessionkeeper.service import KeepAliveService

    settings = _load_settings_or_exit()
    _configure_service_logging(ctx, settings)
    raise typer.Exit(KeepAliveService(settings).run())


@app.command()
def once(
    ctx: typer.Context,
    logout: Annotated[
        bool,
        typer.Option("--logout/--no-logout", help="Log out again after a successful login"),
    ] = True,
) -> None:
    """Run one login cycle (and optionally the following logout) and exit."""
    from sessionkeeper.service import build_engine

    settings = _load_settings_or_exit()
    _configure_service_logging(ctx, settings)
    engine = build_engine(settings)
    try:
        outcomes = [engine.run_cycle()]
        if logout and engine.next_action is NextAction.LOGOUT:
            outcomes.append(engine.run_cycle())
    finally:
        engine.client.close()

    table = Table(title="Keep-alive cycle")
    table.add_column("Action", style="cyan")
    table.add_column("Result")
    table.add_column("Attempts", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Error", style="dim")
    for outcome in outcomes:
        table.add_row(
            outcome.action.value if outcome.action else "-",
            "[green]✓ ok[/green]" if outcome.success else "[red]✗ failed[/red]",
            str(outcome.attempts),
            f"{outcome.duration:.2f}s",
            outcome.error or "",
        )
    console.print(table)

    if not outcomes[0].success:
        raise typer.Exit(1)


@app.command("config")
def show_config(
    as_json: Annotated[bool, typer.Option("--json", help="Print as JSON")] = False,
) -> None:
    """Show the effective configuration (secrets masked)."""
    settings = _load_settings_or_exit()
    data = settings.masked()
    if as_json:
        console.print_json(json.dumps(data, default=str))
        return

    table = Table(title="sessionkeeper configuration", show_header=False)
    table.add_column("Setting", style="dim")
    table.add_column("Value")
    for key, value in data.items():
        table.add_row(key, "" if value is None else str(value))
    console.print(table)


def _render_health(data: dict[str, Any]) -> str:
    stats = data.get("stats", {})
    logged_in = "[green]● logged in[/green]" if data.get("isLoggedIn") else "[dim]○ logged out[/dim]"
    return f"""
{logged_in}  next: {data.get("nextAction", "?")}  state: {data.get("state", "?")}

[dim]Uptime:[/dim]      {data.get("uptime", 0):.0f}s
[dim]Last run:[/dim]    {data.get("lastRun") or "never"}
[dim]Next run:[/dim]    {data.get("nextRun") or "not scheduled"}
[dim]Runs:[/dim]        {stats.get("totalRuns", 0)} total, {stats.get("successfulRuns", 0)} ok, {stats.get("failedRuns", 0)} failed
[dim]Last error:[/dim]  {data.get("lastError") or "none"}"""


@app.command()
def status(
    url: Annotated[
        str,
        typer.Option("--url", help="Base URL of a running sessionkeeper instance"),
    ] = "http://localhost:3000",
) -> None:
    """Show the health of a running instance."""
    try:
        response = requests.get(f"{url.rstrip('/')}/health", timeout=5)
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as exc:
        console.print(
            Panel(
                f"[dim]No healthy instance at {url}[/dim]\n{exc}",
                title="⏸ Keep-alive Status",
                border_style="yellow",
            )
        )
        raise typer.Exit(1) from None

    console.print(Panel(_render_health(data).strip(), title="🔄 Keep-alive Status", border_style="cyan"))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
