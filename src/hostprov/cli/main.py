"""Main CLI implementation using Typer."""

from pathlib import Path
from typing import Any, Callable, Optional

import typer
from pydantic import ValidationError
from rich.console import Console

from hostprov.cli.commands import (
    build_overrides,
    list_services,
    run_provision,
    validate_config,
    verify_services,
)
from hostprov.utils.logging import setup_logging


# Create Typer app
app = typer.Typer(
    name="hostprov",
    help="Provision a Home Assistant host: packages, containers and services",
    add_completion=False,
)

# Console for rich output
console = Console()


def _run_cli_command(handler: Callable[..., Any], **kwargs: Any):
    """Helper to run a command handler with error handling and exit codes."""
    try:
        code = handler(**kwargs)
    except ValidationError as e:
        console.print(f"[red]Invalid configuration:[/red]\n{e}")
        raise typer.Exit(1) from e
    except (ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    if code:
        raise typer.Exit(code)


@app.command("run")
def run_command(
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Configuration file"
    ),
    preset: Optional[str] = typer.Option(
        None, "--preset", "-p", help="Preset (standard, lowmem, verbose)"
    ),
    services: Optional[str] = typer.Option(
        None, "--services", help="Comma-separated services to provision"
    ),
    min_ram_mb: Optional[int] = typer.Option(
        None, "--min-ram-mb", help="RAM below which a swap file is ensured"
    ),
    min_disk_gb: Optional[float] = typer.Option(
        None, "--min-disk-gb", help="Minimum free disk space"
    ),
    arch: Optional[str] = typer.Option(
        None, "--arch", help="Expected CPU architecture"
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Only run host checks"
    ),
    credentials_policy: Optional[str] = typer.Option(
        None, "--credentials-policy", help="regenerate or preserve"
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", "-l", help="Log level"
    ),
):
    """Provision the host end to end."""
    setup_logging(log_level or "INFO")
    overrides = build_overrides(
        preset=preset,
        services=services,
        min_ram_mb=min_ram_mb,
        min_disk_gb=min_disk_gb,
        arch=arch,
        dry_run=dry_run,
        credentials_policy=credentials_policy,
        log_level=log_level,
    )
    _run_cli_command(run_provision, config_file=config, overrides=overrides)


@app.command("services")
def services_command(
    preset: str = typer.Option(
        "standard", "--preset", "-p", help="Preset to resolve the catalog with"
    ),
):
    """List the service catalog."""
    _run_cli_command(list_services, preset=preset)


@app.command("verify")
def verify_command(
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Configuration file"
    ),
    services: Optional[str] = typer.Option(
        None, "--services", help="Comma-separated services to check"
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", "-l", help="Log level"
    ),
):
    """Check that provisioned services answer."""
    setup_logging(log_level or "WARNING")
    overrides = build_overrides(services=services, log_level=log_level)
    _run_cli_command(verify_services, config_file=config, overrides=overrides)


# Config subcommands
config_app = typer.Typer(help="Configuration commands")
app.add_typer(config_app, name="config")


@config_app.command("validate")
def config_validate_command(
    config_file: Path = typer.Argument(..., help="Configuration file to validate"),
):
    """Validate a configuration file."""
    _run_cli_command(validate_config, config_file=config_file)


def main():
    """Main entry point for CLI."""
    app()
