"""Package provider wrapping apt and dpkg."""

import logging
import subprocess
from dataclasses import dataclass, field
from typing import List, Optional, Set, TYPE_CHECKING

from hostprov.errors import PackageInstallError
from hostprov.models.config import PackagesConfig
from hostprov.models.package import PackageSet
from hostprov.providers.base import BaseProvider, ProviderStatus
from hostprov.utils.command import CommandRunner

if TYPE_CHECKING:
    from hostprov.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)


@dataclass
class PackageInstallResult:
    """Which packages were installed by this call and which already were."""
    installed: List[str] = field(default_factory=list)
    already_present: List[str] = field(default_factory=list)
    repaired: bool = False


class PackageProvider(BaseProvider):
    """Provider for OS packages."""

    def __init__(self):
        """Initialize package provider."""
        self.runner: Optional[CommandRunner] = None
        self.config: Optional[PackagesConfig] = None

    async def initialize(self, config, registry: "ProviderRegistry") -> None:
        """Initialize provider with configuration and registry."""
        self.runner = registry.runner
        self.config = config.packages

    async def installed(self, packages: PackageSet) -> Set[str]:
        """Return the subset of `packages` dpkg reports as installed."""
        if not len(packages):
            return set()

        # dpkg-query exits non-zero when any name is unknown but still
        # prints the known ones.
        result = await self.runner.run(
            ["dpkg-query", "-W", "-f=${Package}\t${Status}\n", *packages],
            check=False,
        )
        found = set()
        for line in result.stdout.splitlines():
            if "\t" not in line:
                continue
            name, status = line.split("\t", 1)
            if status.strip().endswith("install ok installed"):
                found.add(name.split(":")[0])
        return found

    async def status(self, spec: PackageSet) -> ProviderStatus:
        """PRESENT when every package is installed."""
        try:
            missing = spec.missing_from(await self.installed(spec))
        except Exception as e:
            logger.error(f"Error querying packages: {e}")
            return ProviderStatus.ERROR
        return ProviderStatus.ABSENT if missing else ProviderStatus.PRESENT

    async def present(self, spec: PackageSet) -> None:
        """Ensure packages are installed."""
        await self.install(spec)

    async def absent(self, spec: PackageSet) -> None:
        """Ensure packages are removed."""
        present = [name for name in spec if name in await self.installed(spec)]
        if not present:
            logger.debug("Packages already absent")
            return
        logger.info(f"Removing packages: {' '.join(present)}")
        await self.runner.run(
            ["apt-get", "remove", "-y", *present],
            timeout=self.config.install_timeout,
        )

    async def install(self, packages: PackageSet) -> PackageInstallResult:
        """Install all missing packages in one apt invocation.

        Already installed packages are never passed to apt. A failed install
        gets one repair pass and one retry before PackageInstallError.
        """
        already = await self.installed(packages)
        missing = packages.missing_from(already)
        result = PackageInstallResult(already_present=[p for p in packages if p in already])

        if not missing:
            logger.info(f"All {len(packages)} packages already installed")
            return result

        logger.info(f"Installing {len(missing)} package(s): {' '.join(missing)}")
        try:
            await self._apt_install(missing)
        except subprocess.CalledProcessError as e:
            logger.warning(f"Package installation failed ({_last_line(e.stderr)}), running repair pass")
            result.repaired = True
            await self._repair(missing)
            try:
                await self._apt_install(missing)
            except subprocess.CalledProcessError as retry_error:
                still_missing = packages.missing_from(await self.installed(packages))
                logger.error(f"Package installation failed after repair: {_last_line(retry_error.stderr)}")
                raise PackageInstallError(
                    still_missing or missing, _last_line(retry_error.stderr)
                ) from retry_error

        result.installed = missing
        logger.info(f"Installed {len(missing)} package(s)")
        return result

    async def _apt_install(self, names: List[str]) -> None:
        try:
            await self.runner.run(["apt-get", "update"], timeout=self.config.update_timeout)
            await self.runner.run(
                ["apt-get", "install", "-y", *names],
                timeout=self.config.install_timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise PackageInstallError(names, f"timed out after {e.timeout}s") from e

    async def _repair(self, names: List[str]) -> None:
        """Equivalent of `dpkg --configure -a && apt-get install -f`."""
        for cmd in (["dpkg", "--configure", "-a"], ["apt-get", "install", "-f", "-y"]):
            try:
                await self.runner.run(cmd, timeout=self.config.install_timeout)
            except subprocess.CalledProcessError as e:
                logger.warning(f"Repair step {' '.join(cmd)} failed: {_last_line(e.stderr)}")
            except subprocess.TimeoutExpired as e:
                raise PackageInstallError(names, f"repair timed out after {e.timeout}s") from e


def _last_line(text) -> str:
    lines = (text or "").strip().splitlines()
    return lines[-1] if lines else ""
