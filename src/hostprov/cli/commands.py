"""Command implementations for CLI."""

import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from hostprov.checks.health import HealthVerifier, VerificationReport
from hostprov.errors import RERUN_COMMAND
from hostprov.models.report import InstallationReport, StepStatus
from hostprov.provision.catalog import PRESETS, build_services, get_preset
from hostprov.provision.config import ConfigManager
from hostprov.provision.engine import provision
from hostprov.utils.logging import setup_logging


console = Console()

STATUS_STYLES = {
    StepStatus.SUCCESS: "[green]✓[/green]",
    StepStatus.FAILURE: "[red]✗[/red]",
    StepStatus.SKIPPED: "[dim]-[/dim]",
    StepStatus.WARNING: "[yellow]![/yellow]",
}


def build_overrides(
    preset: Optional[str] = None,
    services: Optional[str] = None,
    min_ram_mb: Optional[int] = None,
    min_disk_gb: Optional[float] = None,
    arch: Optional[str] = None,
    dry_run: bool = False,
    credentials_policy: Optional[str] = None,
    log_level: Optional[str] = None,
) -> Dict[str, Any]:
    """Translate command-line flags into nested configuration overrides."""
    overrides: Dict[str, Any] = {}
    host: Dict[str, Any] = {}

    if preset:
        overrides["preset"] = preset
    if services:
        overrides["services"] = parse_services(services)
    if min_ram_mb is not None:
        host["min_ram_mb"] = min_ram_mb
    if min_disk_gb is not None:
        host["min_disk_gb"] = min_disk_gb
    if arch:
        host["expected_arch"] = arch
    if host:
        overrides["host"] = host
    if dry_run:
        overrides["dry_run"] = True
    if credentials_policy:
        overrides["credentials"] = {"policy": credentials_policy}
    if log_level:
        overrides["log_level"] = log_level
    return overrides


def parse_services(value: str) -> List[str]:
    """Split a comma-separated service list."""
    return [name.strip() for name in value.split(",") if name.strip()]


def run_provision(config_file: Optional[Path], overrides: Dict[str, Any]) -> int:
    """Run a full provisioning pass and print the summary. Returns the exit code."""
    manager = ConfigManager(config_file)
    asyncio.run(manager.load(overrides))
    setup_logging(manager.config.log_level)

    if manager.config.dry_run:
        console.print("[yellow]Dry run:[/yellow] only host checks are performed")

    report = asyncio.run(provision(manager))
    show_report(report)
    return report.exit_code


def show_report(report: InstallationReport):
    """Print step outcomes, then either the fatal error or the access summary."""
    table = Table(title="Provisioning")
    table.add_column("Phase", style="magenta")
    table.add_column("Step", style="cyan")
    table.add_column("Status")
    table.add_column("Detail", style="dim", max_width=60)

    for step in report.steps:
        table.add_row(step.phase.value, step.step, STATUS_STYLES[step.status], step.detail)
    console.print(table)

    if report.fatal:
        fatal = report.fatal
        console.print()
        console.print(f"[red]Failed during {fatal.phase.value}:[/red] {fatal.message}")
        console.print(f"[bold]Hint:[/bold] {fatal.hint}")
        console.print(f"Exit code: {fatal.exit_code}")
        return

    if report.endpoints:
        console.print()
        show_endpoints(report.endpoints)

    if report.access:
        console.print()
        access = Table(title="Access", show_header=False)
        access.add_column("Item", style="cyan")
        access.add_column("Value")
        for item, value in report.access.items():
            access.add_row(item, value)
        console.print(access)

    console.print()
    if report.warning_count:
        console.print(
            f"[yellow]Completed with {report.warning_count} warning(s).[/yellow] "
            f"Re-run with: {RERUN_COMMAND}"
        )
    elif report.dry_run:
        console.print("[green]Checks passed.[/green] Nothing was changed.")
    else:
        console.print("[green]Provisioning complete.[/green]")


def show_endpoints(outcomes):
    table = Table(title="Health")
    table.add_column("Service", style="cyan")
    table.add_column("Target")
    table.add_column("Ready")
    table.add_column("Attempts", justify="right")
    table.add_column("Elapsed", justify="right")

    for outcome in outcomes:
        ready = "[green]●[/green]" if outcome.ready else "[red]○[/red]"
        table.add_row(
            outcome.service,
            outcome.target,
            ready,
            str(outcome.attempts),
            f"{outcome.elapsed:.1f}s",
        )
    console.print(table)


def list_services(preset: str = "standard"):
    """Show the service catalog as resolved for a preset."""
    specs = build_services(preset=preset)
    table = Table(title=f"Services ({preset}: {get_preset(preset)['description']})")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Image", style="magenta")
    table.add_column("Ports")
    table.add_column("Memory")
    table.add_column("Health")

    for spec in specs:
        if spec.network_mode == "host":
            ports = "host network"
        else:
            ports = ", ".join(port.to_arg() for port in spec.ports)
        health = f"{spec.health.protocol}:{spec.health.port}" if spec.health else ""
        table.add_row(spec.name, spec.image, ports, spec.resources.memory or "", health)
    console.print(table)

    presets = Table(title="Presets")
    presets.add_column("Name", style="cyan")
    presets.add_column("Description")
    for name, info in PRESETS.items():
        presets.add_row(name, info["description"])
    console.print()
    console.print(presets)


def verify_services(config_file: Optional[Path], overrides: Dict[str, Any]) -> int:
    """Run only the health verifier. Returns 1 when any service is not ready."""
    manager = ConfigManager(config_file)
    asyncio.run(manager.load(overrides))
    setup_logging(manager.config.log_level)

    checks = {spec.name: spec.health for spec in manager.services if spec.health}
    verifier = HealthVerifier(interval=manager.config.verify.interval)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task(f"Waiting for {len(checks)} service(s)...", total=None)
        result: VerificationReport = asyncio.run(
            verifier.wait_ready(checks, manager.config.verify.timeout)
        )
        progress.update(task, completed=True)

    show_endpoints(result.outcomes)
    if result.all_ready:
        console.print("[green]All services ready[/green]")
        return 0
    for error in result.errors:
        console.print(f"[yellow]Warning:[/yellow] {error}")
    return 1


def validate_config(config_file: Path):
    """Load a configuration file and print what it resolves to."""
    manager = ConfigManager(config_file)
    asyncio.run(manager.load())
    config = manager.config

    console.print(f"[green]✓[/green] {config_file} is valid")
    console.print(f"  Preset: {config.preset}")
    console.print(f"  Services: {', '.join(spec.name for spec in manager.services) or 'none'}")
    console.print(f"  Packages: {len(manager.packages)}")
    console.print(f"  Base directory: {config.paths.base_dir}")
    console.print(f"  Credentials: {config.paths.credentials_file} ({config.credentials.policy})")
