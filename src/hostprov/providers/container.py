"""Container provider managing service containers through the docker CLI."""

import asyncio
import logging
import subprocess
import time
from typing import List, Optional, TYPE_CHECKING

from hostprov.errors import EngineUnavailable, OrchestrationError
from hostprov.models.config import DockerConfig
from hostprov.models.service import ServiceSpec
from hostprov.providers.base import BaseProvider, ProviderStatus
from hostprov.utils.command import CommandRunner
from hostprov.utils.systemd import SystemdDBus

if TYPE_CHECKING:
    from hostprov.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

NOT_FOUND_MARKERS = ("No such container", "no such container")


class ContainerProvider(BaseProvider):
    """Provider for service containers."""

    def __init__(self):
        """Initialize container provider."""
        self.runner: Optional[CommandRunner] = None
        self.config: Optional[DockerConfig] = None
        self.base_dir = "/opt"
        self.systemd_dbus: Optional[SystemdDBus] = None
        self._engine_ready = False

    async def initialize(self, config, registry: "ProviderRegistry") -> None:
        """Initialize provider with configuration and registry."""
        self.runner = registry.runner
        self.config = config.docker
        self.base_dir = config.paths.base_dir
        self.systemd_dbus = SystemdDBus(self.runner)
        await self.systemd_dbus.connect()

    async def shutdown(self) -> None:
        """Release the DBus connection."""
        if self.systemd_dbus:
            await self.systemd_dbus.disconnect()

    async def status(self, spec: ServiceSpec) -> ProviderStatus:
        """Check if the service container exists."""
        try:
            names = await self.list_containers(spec.name)
        except Exception as e:
            logger.error(f"Error checking container {spec.name}: {e}")
            return ProviderStatus.ERROR
        return ProviderStatus.PRESENT if names else ProviderStatus.ABSENT

    async def present(self, spec: ServiceSpec) -> None:
        """Recreate the service container from its spec."""
        await self.ensure_engine()
        await self._remove(spec.name)

        logger.info(f"Starting container {spec.name} from {spec.image}")
        try:
            await self.runner.run(self.run_args(spec), timeout=self.runner.timeout)
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to create container {spec.name}: {e}. Stderr: {e.stderr}")
            raise OrchestrationError(spec.name, _last_line(e.stderr)) from e
        except subprocess.TimeoutExpired as e:
            raise OrchestrationError(spec.name, f"docker run timed out after {e.timeout}s") from e

        if not await self.is_running(spec):
            raise OrchestrationError(spec.name, "container is not running after start")
        logger.debug(f"Container {spec.name} running")

    async def absent(self, spec: ServiceSpec) -> None:
        """Ensure the service container is absent."""
        await self.ensure_engine()
        await self._remove(spec.name)

    async def validate_spec(self, spec: ServiceSpec) -> bool:
        """Validate container specification."""
        if spec.network_mode == "host" and spec.ports:
            logger.warning(f"Service {spec.name} uses host networking; published ports are ignored")
        return True

    async def release_host_units(self, spec: ServiceSpec) -> List[str]:
        """Stop and disable host units that would take the service's ports.

        Returns the units that were running and got stopped.
        """
        stopped = []
        for unit in spec.host_units:
            state = await self.systemd_dbus.get_unit_state(unit)
            if state in ("active", "activating", "reloading"):
                logger.info(f"Stopping host unit {unit} in favour of container {spec.name}")
                await self.systemd_dbus.stop_unit(unit)
                stopped.append(unit)
            try:
                await self.systemd_dbus.disable_unit(unit)
            except subprocess.CalledProcessError as e:
                # Unit not installed on this host
                logger.debug(f"Could not disable {unit}: {e}")
        return stopped

    async def converge(self, specs: List[ServiceSpec]) -> None:
        """Remove and recreate one container per spec, in order."""
        names = [spec.name for spec in specs]
        if len(set(names)) != len(names):
            raise OrchestrationError(",".join(names), "duplicate container names")

        await self.ensure_engine()
        for spec in specs:
            if not await self.validate_spec(spec):
                raise OrchestrationError(spec.name, "invalid service specification")
            await self.present(spec)

    async def ensure_engine(self) -> None:
        """Start the container engine if needed and wait until it answers.

        Polls with exponential backoff bounded by `engine_timeout`.
        """
        if self._engine_ready:
            return

        unit = self.config.unit
        start = time.monotonic()
        delay = self.config.backoff_initial
        start_requested = False

        while True:
            state = await self.systemd_dbus.get_unit_state(unit)
            if state == "active" and await self._engine_answers():
                logger.debug(f"Container engine {unit} is active")
                self._engine_ready = True
                return

            if state != "active" and not start_requested:
                logger.info(f"Container engine {unit} is {state or 'unknown'}, starting it")
                try:
                    await self.systemd_dbus.start_unit(unit)
                    await self.systemd_dbus.enable_unit(unit)
                except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
                    logger.warning(f"Failed to start {unit}: {e}")
                start_requested = True

            waited = time.monotonic() - start
            if waited + delay > self.config.engine_timeout:
                logger.error(f"Container engine {unit} not ready after {waited:.0f}s")
                raise EngineUnavailable(unit, waited)

            logger.debug(f"Waiting {delay:g}s for {unit}")
            await asyncio.sleep(delay)
            delay = min(delay * 2, self.config.backoff_max)

    async def _engine_answers(self) -> bool:
        try:
            result = await self.runner.run(["docker", "info", "--format", "{{.ServerVersion}}"], check=False, timeout=30)
        except (subprocess.TimeoutExpired, OSError) as e:
            logger.debug(f"docker info failed: {e}")
            return False
        return result.returncode == 0

    async def is_running(self, spec: ServiceSpec) -> bool:
        """Check if the container is in the running state."""
        result = await self.runner.run(
            ["docker", "inspect", "--format", "{{.State.Status}}", spec.name],
            check=False,
        )
        return result.returncode == 0 and result.stdout.strip() == "running"

    async def list_containers(self, name: str) -> List[str]:
        """Names of all containers, running or not, named exactly `name`."""
        result = await self.runner.run(
            ["docker", "ps", "-a", "--filter", f"name=^/{name}$", "--format", "{{.Names}}"],
        )
        return [line.strip() for line in result.stdout.splitlines() if line.strip() == name]

    def run_args(self, spec: ServiceSpec) -> List[str]:
        """Build the `docker run` command for a spec."""
        cmd = ["docker", "run", "-d", "--name", spec.name, "--restart", spec.restart]
        if spec.network_mode:
            cmd += ["--network", spec.network_mode]
        if spec.network_mode != "host":
            for port in spec.ports:
                cmd += ["-p", port.to_arg()]
        for volume in spec.volume_args(self.base_dir):
            cmd += ["-v", volume]
        if spec.resources.memory:
            cmd += ["--memory", spec.resources.memory]
        if spec.resources.cpus:
            cmd += ["--cpus", f"{spec.resources.cpus:g}"]
        for key, value in sorted(spec.environment.items()):
            cmd += ["-e", f"{key}={value}"]
        if spec.user:
            cmd += ["--user", spec.user]
        if spec.privileged:
            cmd.append("--privileged")
        cmd.append(spec.image)
        return cmd

    async def _remove(self, name: str) -> None:
        """Force-remove a container, ignoring 'not found'."""
        try:
            result = await self.runner.run(["docker", "rm", "-f", name], check=False)
        except subprocess.TimeoutExpired as e:
            raise OrchestrationError(name, f"docker rm timed out after {e.timeout}s") from e

        if result.returncode == 0:
            logger.debug(f"Removed previous container {name}")
        elif any(marker in result.stderr for marker in NOT_FOUND_MARKERS):
            logger.debug(f"No previous container {name}")
        else:
            logger.error(f"Failed to remove container {name}: {result.stderr.strip()}")
            raise OrchestrationError(name, f"cannot remove previous container: {_last_line(result.stderr)}")


def _last_line(text) -> str:
    lines = (text or "").strip().splitlines()
    return lines[-1] if lines else ""
