"""
CLI interface for the AI gateway.

Provides database initialization, a quota status view and the API server.
"""

import sqlite3
import sys
from typing import Optional

import typer
from dotenv import load_dotenv
import yaml
import uvicorn
from rich.console import Console
from rich.table import Table

from cube_ai_gateway.api.app import create_app, setup_logging
from cube_ai_gateway.config.loader import (
    ConfigProvider,
    EnvironmentConfigProvider,
    YamlConfigProvider,
    resolve_gateway_config,
)
from cube_ai_gateway.core.quota import QuotaLedger
from cube_ai_gateway.core.status import StatusReporter
from cube_ai_gateway.semantic.metadata import YamlCubeMetadataProvider
from cube_ai_gateway.storage.repository import SettingsRepository, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

CONFIG_OPTION_HELP = "YAML configuration file (defaults to environment variables)"


def _config_provider(config_path: Optional[str]) -> ConfigProvider:
    if config_path:
        return YamlConfigProvider(config_path)
    # A .env file in the working directory fills in unset variables
    load_dotenv(".env")
    return EnvironmentConfigProvider()


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Cube AI Gateway CLI."""
    if ctx.invoked_subcommand is None:
        console.print("Cube AI Gateway - Use --help to see available commands")


@app.command()
def init(
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP)
):
    """Initialize the settings database."""
    try:
        gateway_config = resolve_gateway_config(_config_provider(config))
        initialize_schema(gateway_config.db_path)
        console.print(f"[green]✓[/] Database initialized at {gateway_config.db_path}")
        sys.exit(EXIT_CODE_PASS)
    except (OSError, ValueError, yaml.YAMLError, sqlite3.Error) as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def status(
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP)
):
    """Show model configuration and shared-key quota usage."""
    try:
        gateway_config = resolve_gateway_config(_config_provider(config))
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error loading configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    ledger = QuotaLedger(SettingsRepository(gateway_config.db_path), limit=gateway_config.daily_limit)
    report = StatusReporter(gateway_config, ledger).report()
    _display_status(report)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to listen on"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
    cubes: Optional[str] = typer.Option(None, "--cubes", help="YAML cube definitions (defaults to the bundled demo model)")
):
    """Run the gateway API server."""
    setup_logging()
    try:
        provider = _config_provider(config)
        resolve_gateway_config(provider)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error loading configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    api = create_app(
        config_provider=provider,
        metadata_provider=YamlCubeMetadataProvider(cubes)
    )
    uvicorn.run(api, host=host, port=port)


def _format_usage(used: Optional[int], limit: int) -> str:
    if used is None:
        return "[yellow]unavailable[/]"
    colour = "red" if used >= limit else "green"
    return f"[{colour}]{used}/{limit}[/]"


def _display_status(report):
    """Display the status report as a table."""
    rate_limit = report["rateLimit"]
    validation = report["validation"]

    table = Table(title="AI Gateway Status")
    table.add_column("Setting")
    table.add_column("Value")
    table.add_row("Provider", report["provider"])
    table.add_row("Model", report["model"])
    table.add_row("Server key configured", "yes" if report["server_key_configured"] else "no")
    table.add_row("Shared key usage", _format_usage(rate_limit["used"], rate_limit["dailyLimit"]))
    remaining = rate_limit["remaining"]
    table.add_row("Remaining today", "-" if remaining is None else str(remaining))
    table.add_row(
        "Prompt length",
        f"{validation['minPromptLength']}-{validation['maxPromptLength']} characters"
    )
    console.print(table)


if __name__ == "__main__":
    app()
