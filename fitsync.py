#!/usr/bin/env python3
"""
FitSync CLI Tool

Compares the weight and body-fat history stored in Fitbit with an Apple
Health export and lists the Fitbit entries the export is missing.

Usage:
    fitsync auth login
    fitsync auth status
    fitsync auth logout --yes
    fitsync sync --export ~/Downloads/apple_health_export/export.xml
    fitsync sync --export export.xml --years 5 --json
"""

import asyncio
import logging
import os
import secrets
import webbrowser
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qs, urlparse

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from fitsync_cloud_connector import (
    AppleHealthExportSource,
    AuthenticationError,
    CloudConnectorError,
    FitbitConfig,
    FitbitConnector,
    TokenStore,
    build_credential_store,
)
from fitsync_core import MetricReport, SyncError, SyncOrchestrator, SyncReport
from fitsync_core.formatting import format_date, format_value
from fitsync_core.orchestrator import DEFAULT_HISTORY_YEARS

__version__ = "0.1.0"

CLI_ROOT = Path(__file__).parent

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="fitsync",
    help="FitSync CLI - Fitbit weight and body-fat sync tool",
    no_args_is_help=True,
)

def version_callback(value: bool):
    """Show version and exit."""
    if value:
        console.print(f"[bold cyan]FitSync CLI[/bold cyan] version [green]{__version__}[/green]")
        raise typer.Exit()

@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
    env_file: Optional[Path] = typer.Option(
        None,
        "--env-file",
        help="Load configuration from this file (overrides the environment)",
    ),
):
    """FitSync CLI - Fitbit weight and body-fat sync tool."""
    _load_env(env_file)


# ============================================================================
# Helper Functions
# ============================================================================

def _load_env(env_file: Optional[Path] = None):
    """Load .env.local then .env from the working directory, or an explicit file."""
    if env_file:
        if not env_file.exists():
            console.print(f"[red]❌ Env file not found: {env_file}[/red]")
            raise typer.Exit(1)
        load_dotenv(env_file, override=True)
        return

    # Existing variables win, so .env.local takes precedence over .env
    for name in (".env.local", ".env"):
        env_path = Path.cwd() / name
        if env_path.exists():
            load_dotenv(env_path, override=False)


def _setup_logging(verbose: bool):
    """Route library logging through rich; DEBUG with --verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )
    if not verbose:
        # httpx logs every request at INFO
        logging.getLogger("httpx").setLevel(logging.WARNING)


def _build_token_store() -> TokenStore:
    """Create the token store selected by FITSYNC_CREDENTIAL_BACKEND."""
    credential_store = build_credential_store(
        backend=os.getenv("FITSYNC_CREDENTIAL_BACKEND", "file"),
        path=os.getenv("FITSYNC_CREDENTIALS_FILE") or None,
        key=os.getenv("FITSYNC_CREDENTIAL_KEY") or None,
        prefix=os.getenv("FITSYNC_SECRET_PREFIX", "fitsync"),
        region_name=os.getenv("AWS_REGION") or None,
    )
    return TokenStore(credential_store)


def _build_connector(token_store: Optional[TokenStore] = None) -> FitbitConnector:
    """Create a Fitbit connector from FITBIT_* environment variables."""
    return FitbitConnector(FitbitConfig.from_env(), token_store or _build_token_store())


def _open_token_store() -> TokenStore:
    try:
        return _build_token_store()
    except (ValueError, CloudConnectorError) as e:
        console.print(f"[red]❌ Credential store unavailable: {e}[/red]")
        raise typer.Exit(1)


def _open_connector() -> FitbitConnector:
    try:
        return _build_connector(_open_token_store())
    except ValueError as e:
        console.print(f"[red]❌ Invalid configuration: {e}[/red]")
        raise typer.Exit(1)


def _history_years(years: Optional[int]) -> int:
    if years is not None:
        return years
    raw = os.getenv("FITSYNC_HISTORY_YEARS")
    if not raw:
        return DEFAULT_HISTORY_YEARS
    try:
        years = int(raw)
    except ValueError:
        years = 0
    if years < 1:
        console.print(f"[red]❌ FITSYNC_HISTORY_YEARS must be a whole number of at least 1, got {raw!r}[/red]")
        raise typer.Exit(1)
    return years


def _callback_state(callback: str) -> Optional[str]:
    """Return the state parameter of a redirect URL, if any."""
    values = parse_qs(urlparse(callback.strip()).query).get("state")
    return values[0] if values else None


def _has_tokens(connector: FitbitConnector) -> bool:
    try:
        return connector.is_authenticated
    except CloudConnectorError:
        # Unreadable credentials still count as stored
        return True


def _clear_credentials(connector: FitbitConnector):
    """Forget stored tokens after the provider rejected them."""
    try:
        connector.token_store.delete_tokens()
    except CloudConnectorError as e:
        console.print(f"[yellow]⚠️  Could not clear stored credentials: {e}[/yellow]")


async def _exchange(connector: FitbitConnector, code: str):
    async with connector:
        return await connector.exchange_code(code)


async def _logout(connector: FitbitConnector, revoke: bool):
    async with connector:
        await connector.logout(revoke=revoke)


async def _run_sync(connector: FitbitConnector, orchestrator: SyncOrchestrator) -> SyncReport:
    async with connector:
        return await orchestrator.sync_all()


# ============================================================================
# AUTH Commands - Fitbit Authorization
# ============================================================================

auth_app = typer.Typer(help="Fitbit authorization")
app.add_typer(auth_app, name="auth")


@auth_app.command("login")
def auth_login(
    code: Optional[str] = typer.Option(
        None, "--code", "-c", help="Authorization code or the full redirected URL"
    ),
    no_browser: bool = typer.Option(False, "--no-browser", help="Print the URL instead of opening it"),
    verbose: bool = typer.Option(False, "--verbose", help="Verbose logging"),
):
    """
    Authorize FitSync to read your Fitbit weight data.

    Example:
        fitsync auth login
        fitsync auth login --code "http://localhost:8080/callback?code=..."
    """
    _setup_logging(verbose)
    connector = _open_connector()

    if not connector.config.is_configured:
        console.print("[red]❌ Fitbit client credentials are not configured[/red]")
        console.print("   Set [cyan]FITBIT_CLIENT_ID[/cyan] and [cyan]FITBIT_CLIENT_SECRET[/cyan] in .env.local")
        raise typer.Exit(1)

    if not code:
        state = secrets.token_urlsafe(16)
        auth_url = connector.build_authorization_url(state=state)

        console.print("🔐 Open this URL to authorize FitSync:")
        console.print(f"   {auth_url}", soft_wrap=True, markup=False)
        console.print()
        if not no_browser:
            webbrowser.open(auth_url)

        code = typer.prompt("Paste the URL you were redirected to (or the code)")

        returned_state = _callback_state(code)
        if returned_state is not None and returned_state != state:
            console.print("[red]❌ State mismatch - the redirect does not belong to this login[/red]")
            raise typer.Exit(1)

    try:
        tokens = asyncio.run(_exchange(connector, code))
    except CloudConnectorError as e:
        console.print(f"[red]❌ Login failed: {e}[/red]")
        raise typer.Exit(1)

    console.print("[green]✅ Logged in to Fitbit[/green]")
    if tokens.user_id:
        console.print(f"   User: [cyan]{tokens.user_id}[/cyan]")
    if tokens.expires_at:
        console.print(f"   Access expires: [cyan]{format_date(tokens.expires_at)}[/cyan]")


@auth_app.command("status")
def auth_status():
    """
    Show whether Fitbit tokens are stored.

    Example:
        fitsync auth status
    """
    token_store = _open_token_store()

    try:
        tokens = token_store.get_tokens()
    except CloudConnectorError as e:
        console.print(f"[red]❌ Stored credentials unreadable: {e}[/red]")
        console.print("   Log in again: [cyan]fitsync auth login[/cyan]")
        raise typer.Exit(1)

    config = FitbitConfig.from_env()
    backend = os.getenv("FITSYNC_CREDENTIAL_BACKEND", "file")

    table = Table(title="Fitbit Authorization")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Client configured", "yes" if config.is_configured else "[red]no[/red]")
    table.add_row("Credential backend", backend)

    if not tokens:
        table.add_row("Logged in", "[yellow]no[/yellow]")
        console.print(table)
        console.print("   Log in with: [cyan]fitsync auth login[/cyan]")
        return

    table.add_row("Logged in", "[green]yes[/green]")
    table.add_row("User", tokens.user_id or "-")
    table.add_row("Scopes", " ".join(tokens.scopes) or "-")
    if tokens.expires_at:
        expiry = format_date(tokens.expires_at)
        if tokens.is_expired():
            expiry += " [yellow](expired, will refresh)[/yellow]"
        table.add_row("Access expires", expiry)
    console.print(table)


@auth_app.command("logout")
def auth_logout(
    confirm: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    no_revoke: bool = typer.Option(False, "--no-revoke", help="Only delete local tokens"),
):
    """
    Revoke and delete stored Fitbit tokens.

    Example:
        fitsync auth logout --yes
    """
    if not confirm:
        confirm = typer.confirm("Are you sure you want to log out of Fitbit?")
        if not confirm:
            console.print("Cancelled.")
            raise typer.Exit(0)

    connector = _open_connector()

    try:
        asyncio.run(_logout(connector, revoke=not no_revoke))
    except CloudConnectorError as e:
        console.print(f"[red]❌ Logout failed: {e}[/red]")
        raise typer.Exit(1)

    console.print("[green]✅ Logged out of Fitbit[/green]")


# ============================================================================
# SYNC Command
# ============================================================================

def _render_metric(report: MetricReport, limit: int):
    metric = report.metric

    table = Table(title=f"{metric.label} ({metric.unit})")
    table.add_column("Source", style="cyan")
    table.add_column("Entries", justify="right")
    table.add_column("First")
    table.add_column("Last")
    table.add_column("Average", justify="right")

    for source, summary, count in (
        ("Fitbit", report.remote, report.remote_count),
        ("Apple Health", report.local, report.local_count),
    ):
        if summary.is_empty:
            table.add_row(source, str(count), "-", "-", "-")
            continue
        table.add_row(
            source,
            str(count),
            f"{format_value(metric, summary.first.value)} ({format_date(summary.first.timestamp)})",
            f"{format_value(metric, summary.last.value)} ({format_date(summary.last.timestamp)})",
            format_value(metric, summary.average),
        )
    console.print(table)

    if not report.missing:
        console.print(f"[green]✅ Apple Health has every Fitbit {metric.label.lower()} entry[/green]")
        console.print()
        return

    console.print(
        f"[yellow]📥 {len(report.missing)} {metric.label.lower()} entries missing from Apple Health[/yellow]"
    )
    for entry in report.missing[:limit]:
        console.print(f"   {format_date(entry.timestamp)}: [bold]{format_value(metric, entry.value)}[/bold]")
    if len(report.missing) > limit:
        console.print(f"   ... and {len(report.missing) - limit} more")
    console.print()


def _render_report(report: SyncReport, limit: int):
    console.print(
        f"[bold]📊 Sync Summary[/bold] "
        f"({format_date(report.date_range.start)} to {format_date(report.date_range.end)})"
    )
    console.print()
    for metric_report in report.metrics():
        _render_metric(metric_report, limit)


@app.command()
def sync(
    export: Optional[Path] = typer.Option(
        None, "--export", "-e", help="Apple Health export.xml (default: $APPLE_HEALTH_EXPORT)"
    ),
    years: Optional[int] = typer.Option(
        None, "--years", "-y", min=1, help="Years of history to compare (default: 2)"
    ),
    json_output: bool = typer.Option(False, "--json", help="Print the report as JSON"),
    limit: int = typer.Option(10, "--limit", "-n", min=0, help="Missing entries to list per metric"),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output"),
):
    """
    Compare Fitbit with Apple Health and list missing entries.

    Examples:
        fitsync sync --export export.xml
        fitsync sync --export export.xml --years 5 --json
    """
    _setup_logging(verbose)

    export_path = export or os.getenv("APPLE_HEALTH_EXPORT")
    if not export_path:
        console.print("[red]❌ No Apple Health export given[/red]")
        console.print("   Use [cyan]--export PATH[/cyan] or set [cyan]APPLE_HEALTH_EXPORT[/cyan]")
        raise typer.Exit(1)

    history_years = _history_years(years)
    connector = _open_connector()
    orchestrator = SyncOrchestrator(
        remote=connector,
        local=AppleHealthExportSource(export_path),
        history_years=history_years,
    )

    try:
        if json_output:
            report = asyncio.run(_run_sync(connector, orchestrator))
        else:
            with console.status("[bold green]Fetching Fitbit and Apple Health data..."):
                report = asyncio.run(_run_sync(connector, orchestrator))
    except SyncError as e:
        never_logged_in = isinstance(e.cause, AuthenticationError) and not _has_tokens(connector)
        if e.requires_reauthentication and not never_logged_in:
            _clear_credentials(connector)

        if json_output:
            console.print_json(data=e.to_dict())
        elif never_logged_in:
            console.print("[red]❌ Not logged in to Fitbit[/red]")
            console.print("   Log in first: [cyan]fitsync auth login[/cyan]")
        elif e.requires_reauthentication:
            console.print("[red]❌ Fitbit authorization is no longer valid[/red]")
            console.print("   Stored credentials were cleared. Log in again: [cyan]fitsync auth login[/cyan]")
        else:
            console.print(f"[red]❌ Sync failed: {e}[/red]")
            if e.is_retryable:
                console.print("   [dim]This looks temporary - try again in a few minutes[/dim]")
        raise typer.Exit(1)

    if json_output:
        console.print_json(data=report.to_dict())
        return

    _render_report(report, limit)


# ============================================================================
# VERSION Command
# ============================================================================

@app.command()
def version():
    """Show version information."""
    console.print("[bold]FitSync CLI[/bold]")
    console.print(f"Version: [cyan]{__version__}[/cyan]")
    console.print()
    console.print(f"Repository: [dim]{CLI_ROOT}[/dim]")


# ============================================================================
# Main Entry Point
# ============================================================================

if __name__ == "__main__":
    app()
