"""Hostname provider."""

import logging
import subprocess
from typing import Optional, TYPE_CHECKING

from hostprov.errors import ConfigWriteError
from hostprov.providers.base import BaseProvider, ProviderStatus
from hostprov.utils.command import CommandRunner

if TYPE_CHECKING:
    from hostprov.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)


class HostnameProvider(BaseProvider):
    """Sets the static hostname so the host answers as <name>.local."""

    def __init__(self):
        """Initialize hostname provider."""
        self.runner: Optional[CommandRunner] = None

    async def initialize(self, config, registry: "ProviderRegistry") -> None:
        """Initialize provider with configuration and registry."""
        self.runner = registry.runner

    async def current(self) -> str:
        result = await self.runner.run(["hostnamectl", "--static"], check=False)
        return result.stdout.strip()

    async def status(self, hostname: str) -> ProviderStatus:
        return ProviderStatus.PRESENT if await self.current() == hostname else ProviderStatus.ABSENT

    async def present(self, hostname: str) -> None:
        """Set the hostname unless it already matches."""
        if await self.status(hostname) == ProviderStatus.PRESENT:
            logger.debug(f"Hostname already {hostname}")
            return

        logger.info(f"Setting hostname to {hostname}")
        try:
            await self.runner.run(["hostnamectl", "set-hostname", hostname])
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to set hostname: {e}. Stderr: {e.stderr}")
            raise ConfigWriteError("/etc/hostname", "hostnamectl set-hostname failed") from e

    async def absent(self, hostname: str) -> None:
        """Hostnames are never unset."""
        logger.debug("Hostname removal is not managed")

    async def validate_spec(self, hostname: str) -> bool:
        labels = hostname.split(".")
        return all(
            0 < len(label) <= 63 and label[0] != "-" and label[-1] != "-"
            and all(c.isalnum() or c == "-" for c in label)
            for label in labels
        )
