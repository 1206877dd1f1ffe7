"""Docker engine bootstrap provider."""

import asyncio
import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Optional, TYPE_CHECKING

import httpx

from hostprov.errors import PackageInstallError
from hostprov.models.config import DockerConfig
from hostprov.providers.base import BaseProvider, ProviderStatus
from hostprov.utils.command import CommandRunner

if TYPE_CHECKING:
    from hostprov.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)


class DockerProvider(BaseProvider):
    """Installs the Docker engine with the upstream convenience script."""

    def __init__(self):
        """Initialize docker provider."""
        self.runner: Optional[CommandRunner] = None
        self.config: Optional[DockerConfig] = None
        self.install_timeout = 1800

    async def initialize(self, config, registry: "ProviderRegistry") -> None:
        """Initialize provider with configuration and registry."""
        self.runner = registry.runner
        self.config = config.docker
        self.install_timeout = config.packages.install_timeout

    def _docker_binary(self) -> Optional[str]:
        return shutil.which("docker", path=self.runner.env.get("PATH"))

    async def status(self, spec=None) -> ProviderStatus:
        """PRESENT when the docker CLI is on PATH."""
        return ProviderStatus.PRESENT if self._docker_binary() else ProviderStatus.ABSENT

    async def present(self, spec=None) -> None:
        """Ensure the Docker engine is installed."""
        if await self.status() == ProviderStatus.PRESENT:
            logger.debug("Docker already installed")
            return

        logger.info(f"Installing Docker from {self.config.script_url}")
        try:
            script = await self._download_script()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Failed to download Docker install script: {e}")
            raise PackageInstallError(["docker"], f"download failed: {e}") from e

        with tempfile.TemporaryDirectory(prefix="hostprov-docker-") as tmp:
            script_path = Path(tmp) / "get-docker.sh"
            await asyncio.to_thread(script_path.write_text, script)
            try:
                await self.runner.run(["sh", str(script_path)], timeout=self.install_timeout)
            except subprocess.CalledProcessError as e:
                logger.error(f"Docker install script failed: {e}. Stderr: {e.stderr}")
                raise PackageInstallError(["docker"], "install script failed") from e
            except subprocess.TimeoutExpired as e:
                raise PackageInstallError(["docker"], f"timed out after {e.timeout}s") from e

        if not self._docker_binary():
            raise PackageInstallError(["docker"], "docker binary missing after install")
        logger.info("Docker installed")

    async def absent(self, spec=None) -> None:
        """Removing the engine is out of scope; the host keeps Docker."""
        logger.debug("Docker removal is not managed")

    async def _download_script(self) -> str:
        async with httpx.AsyncClient(follow_redirects=True, timeout=60.0) as client:
            response = await client.get(self.config.script_url)
            response.raise_for_status()
            return response.text
