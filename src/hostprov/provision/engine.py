"""Provisioning run engine."""

import logging
import subprocess
from datetime import datetime
from typing import List, Optional

from hostprov.checks.health import HealthVerifier
from hostprov.checks.preconditions import PreconditionChecker, SwapAction
from hostprov.errors import ConfigWriteError, ProvisionError
from hostprov.models.config import ProvisionerConfig
from hostprov.models.host import HostProfile
from hostprov.models.package import PackageSet
from hostprov.models.report import FatalError, InstallationReport, RunState, StepStatus
from hostprov.models.service import ServiceSpec
from hostprov.provision.config import ConfigManager
from hostprov.providers import ProviderRegistry
from hostprov.utils.command import CommandRunner


logger = logging.getLogger(__name__)

PHASE_EXIT_CODES = {
    RunState.CHECKING: 1,
    RunState.INSTALLING: 2,
    RunState.CONFIGURING: 3,
    RunState.ORCHESTRATING: 3,
}


class ProvisionEngine:
    """Drives the host through Checking, Installing, Configuring,
    Orchestrating and Verifying.

    Fatal errors stop the run in the phase that raised them. Verification
    outcomes are recorded but never fail the run.
    """

    def __init__(
        self,
        config: ProvisionerConfig,
        services: List[ServiceSpec],
        packages: PackageSet,
        provider_registry: ProviderRegistry,
        checker: PreconditionChecker,
        verifier: HealthVerifier,
    ):
        """Initialize provision engine."""
        self.config = config
        self.services = services
        self.packages = packages
        self.provider_registry = provider_registry
        self.checker = checker
        self.verifier = verifier

    async def run(self, profile: HostProfile) -> InstallationReport:
        """Perform a full provisioning run."""
        report = InstallationReport(dry_run=self.config.dry_run)
        start_time = datetime.now()
        logger.info(
            f"Provisioning {profile.hostname or 'host'} ({profile.arch}, "
            f"{profile.total_ram_mb}MB RAM, {profile.free_disk_gb:g}GB free) "
            f"with services: {', '.join(s.name for s in self.services) or 'none'}"
        )

        try:
            report.transition(RunState.CHECKING)
            await self._check(profile, report)
            if self.config.dry_run:
                report.transition(RunState.DONE)
                logger.info("Dry run complete, stopping after checks")
                return report

            report.transition(RunState.INSTALLING)
            await self._install(report)

            report.transition(RunState.CONFIGURING)
            await self._configure(report)

            report.transition(RunState.ORCHESTRATING)
            await self._orchestrate(report)
        except ProvisionError as e:
            self._fail(report, e)
            return report
        except (subprocess.SubprocessError, OSError) as e:
            logger.error(f"Unexpected failure during {report.state.value}: {e}", exc_info=True)
            self._fail(report, e)
            return report

        report.transition(RunState.VERIFYING)
        await self._verify(report)
        await self._collect_access_info(profile, report)
        report.transition(RunState.DONE)

        duration = (datetime.now() - start_time).total_seconds()
        logger.info(f"Provisioning completed in {duration:.2f}s with {report.warning_count} warning(s)")
        return report

    def _fail(self, report: InstallationReport, error: Exception) -> None:
        phase = report.state
        hint = getattr(error, "hint", "Fix the problem above and re-run: sudo hostprov run")
        report.record(type(error).__name__, StepStatus.FAILURE, str(error))
        report.fatal = FatalError(
            phase=phase,
            error=type(error).__name__,
            message=str(error),
            hint=hint,
            exit_code=PHASE_EXIT_CODES.get(phase, 1),
        )
        report.transition(RunState.FAILED)
        logger.error(f"Provisioning failed during {phase.value}: {error}")

    async def _check(self, profile: HostProfile, report: InstallationReport) -> None:
        result = await self.checker.check(profile)
        for warning in result.warnings:
            report.record(type(warning).__name__, StepStatus.WARNING, str(warning))
        if result.swap_action != SwapAction.NONE:
            report.record("swap", StepStatus.SUCCESS, result.swap_action.value)
        report.record("preconditions", StepStatus.SUCCESS)

    async def _install(self, report: InstallationReport) -> None:
        package_provider = self.provider_registry.get_provider("package")
        result = await package_provider.install(self.packages)
        if result.installed:
            report.record("packages", StepStatus.SUCCESS, f"installed {len(result.installed)}")
        else:
            report.record("packages", StepStatus.SKIPPED, "all packages already installed")

        docker_provider = self.provider_registry.get_provider("docker")
        if self.services:
            await docker_provider.present()
            report.record("docker", StepStatus.SUCCESS)

        container_provider = self.provider_registry.get_provider("container")
        for spec in self.services:
            for unit in await container_provider.release_host_units(spec):
                report.record(f"host unit {unit}", StepStatus.SUCCESS, "stopped and disabled")

        if self.config.python_env.enabled:
            await self.provider_registry.get_provider("pyenv").present()
            report.record("python-env", StepStatus.SUCCESS, self.config.python_env.path)
        else:
            report.record("python-env", StepStatus.SKIPPED, "disabled")

    async def _configure(self, report: InstallationReport) -> None:
        hostname = self.config.host.hostname
        if hostname:
            hostname_provider = self.provider_registry.get_provider("hostname")
            if not await hostname_provider.validate_spec(hostname):
                raise ConfigWriteError("/etc/hostname", f"invalid hostname {hostname!r}")
            await hostname_provider.present(hostname)
            report.record("hostname", StepStatus.SUCCESS, hostname)

        config_provider = self.provider_registry.get_provider("config")
        for spec in self.services:
            if not await config_provider.validate_spec(spec):
                raise ConfigWriteError(config_provider.service_dir(spec), "invalid configuration template")
            await config_provider.present(spec)
            report.record(f"config {spec.name}", StepStatus.SUCCESS, str(config_provider.service_dir(spec)))

        if self.services:
            compose_file = await config_provider.write_compose(self.services)
            report.record("compose", StepStatus.SUCCESS, str(compose_file))

    async def _orchestrate(self, report: InstallationReport) -> None:
        if not self.services:
            report.record("containers", StepStatus.SKIPPED, "no services selected")
            return

        container_provider = self.provider_registry.get_provider("container")
        await container_provider.converge(self.services)
        for spec in self.services:
            report.record(f"container {spec.name}", StepStatus.SUCCESS, spec.image)

    async def _verify(self, report: InstallationReport) -> None:
        checks = {spec.name: spec.health for spec in self.services if spec.health}
        if not checks:
            report.record("verify", StepStatus.SKIPPED, "no health checks")
            return

        result = await self.verifier.wait_ready(checks, self.config.verify.timeout)
        report.endpoints = result.outcomes
        if result.all_ready:
            report.record("verify", StepStatus.SUCCESS, f"{len(checks)} service(s) ready")
        else:
            for error in result.errors:
                logger.warning(str(error))
            report.record(
                "verify",
                StepStatus.WARNING,
                f"{len(result.errors)} of {len(checks)} service(s) not ready",
            )

    async def _collect_access_info(self, profile: HostProfile, report: InstallationReport) -> None:
        hostname = self.config.host.hostname or profile.hostname
        address = await self.host_address()
        for spec in self.services:
            if not spec.health:
                continue
            scheme = "http://" if spec.health.protocol == "http" else ""
            report.access[spec.name] = f"{scheme}{hostname}.local:{spec.health.port}"
            if address:
                report.access[f"{spec.name} (ip)"] = f"{scheme}{address}:{spec.health.port}"

        secrets_provider = self.provider_registry.get_provider("secrets")
        for spec in self.services:
            if spec.credential:
                credential = secrets_provider.issued(spec.credential.name)
                if credential:
                    report.access[f"{spec.credential.name} user"] = credential.username
        if any(spec.credential for spec in self.services):
            report.access["credentials file"] = self.config.paths.credentials_file
        if self.config.python_env.enabled:
            report.access["python env"] = self.config.python_env.path

    async def host_address(self) -> Optional[str]:
        """First address reported by `hostname -I`, if any."""
        try:
            result = await self.provider_registry.runner.run(["hostname", "-I"], check=False, timeout=10)
        except (subprocess.TimeoutExpired, OSError) as e:
            logger.debug(f"Cannot determine host address: {e}")
            return None
        addresses = result.stdout.split() if result.returncode == 0 else []
        return addresses[0] if addresses else None


async def provision(
    config_manager: ConfigManager,
    profile: Optional[HostProfile] = None,
) -> InstallationReport:
    """Build the provider stack for a loaded configuration and run it."""
    config = config_manager.config
    runner = CommandRunner.from_config(config.commands)
    profile = profile or HostProfile.detect(disk_path=config.host.disk_path)

    registry = ProviderRegistry(runner)
    await registry.initialize(config)
    try:
        engine = ProvisionEngine(
            config=config,
            services=config_manager.services,
            packages=config_manager.packages,
            provider_registry=registry,
            checker=PreconditionChecker(config.host, config.swap, runner, dry_run=config.dry_run),
            verifier=HealthVerifier(interval=config.verify.interval),
        )
        return await engine.run(profile)
    finally:
        await registry.shutdown()
