"""Python virtual environment provider for the YOLOv8 tooling."""

import asyncio
import logging
import shutil
import subprocess
from pathlib import Path
from typing import Optional, TYPE_CHECKING

from hostprov.errors import PackageInstallError
from hostprov.models.config import PythonEnvConfig
from hostprov.providers.base import BaseProvider, ProviderStatus
from hostprov.utils.command import CommandRunner

if TYPE_CHECKING:
    from hostprov.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)


class PythonEnvProvider(BaseProvider):
    """Provider for the object detection virtual environment."""

    def __init__(self):
        """Initialize python env provider."""
        self.runner: Optional[CommandRunner] = None
        self.config: Optional[PythonEnvConfig] = None

    async def initialize(self, config, registry: "ProviderRegistry") -> None:
        """Initialize provider with configuration and registry."""
        self.runner = registry.runner
        self.config = config.python_env

    @property
    def env_path(self) -> Path:
        return Path(self.config.path)

    @property
    def pip(self) -> str:
        return str(self.env_path / "bin" / "pip")

    async def status(self, spec=None) -> ProviderStatus:
        """PRESENT when the venv interpreter exists."""
        exists = await asyncio.to_thread((self.env_path / "bin" / "python").exists)
        return ProviderStatus.PRESENT if exists else ProviderStatus.ABSENT

    async def present(self, spec=None) -> None:
        """Create the venv if needed and install its requirements."""
        requirements = list(self.config.requirements)
        try:
            if await self.status() == ProviderStatus.ABSENT:
                logger.info(f"Creating Python environment {self.env_path}")
                await asyncio.to_thread(lambda: self.env_path.parent.mkdir(parents=True, exist_ok=True))
                await self.runner.run([self.config.interpreter, "-m", "venv", str(self.env_path)])
            else:
                logger.debug(f"Python environment {self.env_path} already present")

            await self.runner.run([self.pip, "install", "--upgrade", "pip"], timeout=self.config.timeout)
            if requirements:
                logger.info(f"Installing Python requirements: {' '.join(requirements)}")
                await self.runner.run([self.pip, "install", *requirements], timeout=self.config.timeout)
        except subprocess.CalledProcessError as e:
            logger.error(f"Python environment setup failed: {e}. Stderr: {e.stderr}")
            raise PackageInstallError(requirements or ["venv"], "pip install failed") from e
        except subprocess.TimeoutExpired as e:
            raise PackageInstallError(requirements or ["venv"], f"timed out after {e.timeout}s") from e

    async def absent(self, spec=None) -> None:
        """Remove the virtual environment."""
        if await asyncio.to_thread(self.env_path.exists):
            await asyncio.to_thread(shutil.rmtree, self.env_path)
            logger.info(f"Removed Python environment {self.env_path}")
