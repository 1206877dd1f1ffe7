"""Service configuration provider rendering files and password files."""

import asyncio
import io
import logging
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, TYPE_CHECKING

from jinja2 import TemplateError
from ruamel.yaml import YAML

from hostprov.errors import ConfigWriteError
from hostprov.models.credential import Credential
from hostprov.models.service import ServiceSpec
from hostprov.providers.base import BaseProvider, ProviderStatus
from hostprov.utils.command import CommandRunner
from hostprov.utils.files import atomic_target, atomic_write
from hostprov.utils.templates import render_template

if TYPE_CHECKING:
    from hostprov.providers.registry import ProviderRegistry
    from hostprov.providers.secrets import SecretsProvider

logger = logging.getLogger(__name__)


class ServiceConfigProvider(BaseProvider):
    """Provider for per-service configuration files."""

    def __init__(self):
        """Initialize configuration provider."""
        self.base_dir: Optional[Path] = None
        self.compose_file: Optional[Path] = None
        self.passwd_tool = "mosquitto_passwd"
        self.runner: Optional[CommandRunner] = None
        self.yaml = YAML()
        self.yaml.default_flow_style = False
        self._secrets_provider: Optional["SecretsProvider"] = None

    async def initialize(self, config, registry: "ProviderRegistry") -> None:
        """Initialize provider with configuration and registry."""
        self.base_dir = Path(config.paths.base_dir)
        self.compose_file = Path(config.compose_file)
        self.passwd_tool = config.paths.passwd_tool
        self.runner = registry.runner

        # Inject dependency explicitly
        self._secrets_provider = registry.get_provider("secrets")

    @property
    def secrets_provider(self) -> Optional["SecretsProvider"]:
        """Get secrets provider."""
        return self._secrets_provider

    def service_dir(self, spec: ServiceSpec) -> Path:
        return self.base_dir / spec.name

    async def status(self, spec: ServiceSpec) -> ProviderStatus:
        """PRESENT when every configuration file of the service exists."""
        service_dir = self.service_dir(spec)
        paths = [service_dir / f.path for f in spec.config_files]
        if spec.credential:
            paths.append(service_dir / spec.credential.password_file)
        for path in paths:
            if not await asyncio.to_thread(path.exists):
                return ProviderStatus.ABSENT
        return ProviderStatus.PRESENT

    def render_files(self, spec: ServiceSpec, credential: Optional[Credential] = None) -> Dict[str, str]:
        """Render the service's templates. Same inputs give the same bytes."""
        context = {
            "service": spec,
            "settings": spec.settings,
            "base_dir": str(self.base_dir),
            "service_dir": str(self.service_dir(spec)),
            "username": credential.username if credential else None,
        }
        return {
            config_file.path: render_template(config_file.template, **context)
            for config_file in spec.config_files
        }

    async def present(self, spec: ServiceSpec) -> None:
        """Create directories and write configuration for the service."""
        service_dir = self.service_dir(spec)
        logger.info(f"Configuring {spec.name} in {service_dir}")

        try:
            for directory in [".", *spec.directories]:
                await asyncio.to_thread(lambda d=directory: (service_dir / d).mkdir(parents=True, exist_ok=True))
        except OSError as e:
            raise ConfigWriteError(service_dir, str(e)) from e

        credential = None
        if spec.credential:
            if not self.secrets_provider:
                raise ConfigWriteError(service_dir / spec.credential.password_file, "no secrets provider")
            credential = await self.secrets_provider.get_credential(spec.credential.name)

        try:
            rendered = self.render_files(spec, credential)
        except TemplateError as e:
            raise ConfigWriteError(service_dir, f"template error: {e}") from e

        modes = {f.path: f.mode for f in spec.config_files}
        for rel_path, content in rendered.items():
            path = service_dir / rel_path
            try:
                await asyncio.to_thread(atomic_write, path, content, modes[rel_path])
            except OSError as e:
                logger.error(f"Failed to write {path}: {e}")
                raise ConfigWriteError(path, str(e)) from e
            logger.debug(f"Wrote {path}")

        if credential:
            await self._write_password_file(service_dir / spec.credential.password_file, credential)

    async def absent(self, spec: ServiceSpec) -> None:
        """Remove the service directory."""
        service_dir = self.service_dir(spec)
        if await asyncio.to_thread(service_dir.exists):
            await asyncio.to_thread(shutil.rmtree, service_dir)
            logger.info(f"Removed configuration directory {service_dir}")

    async def validate_spec(self, spec: ServiceSpec) -> bool:
        """Templates must render with a placeholder credential."""
        placeholder = None
        if spec.credential:
            placeholder = Credential(owner=spec.credential.name, username="validate", password="validate")
        try:
            self.render_files(spec, placeholder)
        except TemplateError as e:
            logger.error(f"Service {spec.name} has an invalid template: {e}")
            return False
        return True

    async def _write_password_file(self, path: Path, credential: Credential) -> None:
        """Write the broker password file with its own hashing tool.

        The plaintext pair goes into a 0600 temporary file that the tool
        hashes in place (`-U`), so it never reaches the final path or the
        command line.
        """
        try:
            with atomic_target(path, mode=0o600) as tmp_path:
                await asyncio.to_thread(tmp_path.write_text, f"{credential.username}:{credential.password}\n")
                await self.runner.run([self.passwd_tool, "-U", str(tmp_path)])
        except subprocess.CalledProcessError as e:
            logger.error(f"{self.passwd_tool} failed: {e}. Stderr: {e.stderr}")
            raise ConfigWriteError(path, f"{self.passwd_tool} failed") from e
        except subprocess.TimeoutExpired as e:
            raise ConfigWriteError(path, f"{self.passwd_tool} timed out") from e
        except OSError as e:
            raise ConfigWriteError(path, str(e)) from e
        logger.info(f"Wrote password file {path} for user {credential.username}")

    def compose_definition(self, specs: List[ServiceSpec]) -> dict:
        """Compose file equivalent of the declared services."""
        services = {}
        for spec in specs:
            entry = {
                "container_name": spec.name,
                "image": spec.image,
                "restart": spec.restart,
            }
            if spec.network_mode:
                entry["network_mode"] = spec.network_mode
            elif spec.ports:
                entry["ports"] = [f"{p.host}:{p.container}/{p.protocol}" for p in spec.ports]
            if spec.user:
                entry["user"] = spec.user
            if spec.privileged:
                entry["privileged"] = True
            if spec.volumes:
                entry["volumes"] = spec.volume_args(str(self.base_dir))
            if spec.environment:
                entry["environment"] = dict(spec.environment)
            if spec.resources.memory:
                entry["mem_limit"] = spec.resources.memory
            if spec.resources.cpus:
                entry["cpus"] = spec.resources.cpus
            services[spec.name] = entry
        return {"services": services}

    async def write_compose(self, specs: List[ServiceSpec]) -> Path:
        """Write the compose definition for the selected services."""
        stream = io.StringIO()
        self.yaml.dump(self.compose_definition(specs), stream)
        try:
            await asyncio.to_thread(atomic_write, self.compose_file, stream.getvalue())
        except OSError as e:
            raise ConfigWriteError(self.compose_file, str(e)) from e
        logger.info(f"Wrote compose definition {self.compose_file}")
        return self.compose_file
