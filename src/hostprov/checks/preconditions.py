"""Host precondition checks gating the provisioning run."""

import asyncio
import logging
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List

from hostprov.errors import (
    InsufficientPrivilege,
    InsufficientResources,
    ProvisionError,
    UnsupportedArchitecture,
)
from hostprov.models.config import HostConfig, SwapConfig
from hostprov.models.host import HostProfile
from hostprov.utils.command import CommandRunner
from hostprov.utils.files import atomic_target, atomic_write


logger = logging.getLogger(__name__)


class SwapAction(str, Enum):
    NONE = "none"
    ALREADY_ACTIVE = "already-active"
    ACTIVATED = "activated"
    CREATED = "created"
    PLANNED = "planned"


@dataclass
class PreconditionResult:
    """Non-fatal findings of a precondition check."""
    warnings: List[ProvisionError] = field(default_factory=list)
    swap_action: SwapAction = SwapAction.NONE


class PreconditionChecker:
    """Verifies privilege, architecture, memory and disk of the host."""

    def __init__(
        self,
        host_config: HostConfig,
        swap_config: SwapConfig,
        runner: CommandRunner,
        dry_run: bool = False,
    ):
        self.host_config = host_config
        self.swap_config = swap_config
        self.runner = runner
        self.dry_run = dry_run

    async def check(self, profile: HostProfile) -> PreconditionResult:
        """Run all checks.

        Raises InsufficientPrivilege or InsufficientResources on fatal
        findings. Low RAM creates and activates a swap file unless swap is
        already active.
        """
        result = PreconditionResult()

        if not profile.is_root:
            logger.error(f"Effective uid {profile.effective_uid} is not root")
            raise InsufficientPrivilege(profile.effective_uid)

        expected = self.host_config.expected_arch
        if expected and profile.arch != expected:
            warning = UnsupportedArchitecture(profile.arch, expected)
            logger.warning(str(warning))
            result.warnings.append(warning)

        if profile.free_disk_gb < self.host_config.min_disk_gb:
            logger.error(
                f"Free disk {profile.free_disk_gb:g}GB below minimum {self.host_config.min_disk_gb:g}GB"
            )
            raise InsufficientResources("disk", profile.free_disk_gb, self.host_config.min_disk_gb, "GB")

        if profile.total_ram_mb < self.host_config.min_ram_mb:
            logger.warning(
                f"RAM {profile.total_ram_mb}MB below minimum {self.host_config.min_ram_mb}MB, ensuring swap"
            )
            try:
                result.swap_action = await self.ensure_swap()
            except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as e:
                logger.error(f"Failed to set up swap file {self.swap_config.path}: {e}")
                raise InsufficientResources(
                    "memory", profile.total_ram_mb, self.host_config.min_ram_mb, "MB"
                ) from e

        logger.info("Host preconditions satisfied")
        return result

    def active_swaps(self) -> List[str]:
        """Swap areas listed in /proc/swaps."""
        swaps_path = Path(self.swap_config.swaps_path)
        try:
            lines = swaps_path.read_text().splitlines()
        except OSError as e:
            logger.warning(f"Cannot read {swaps_path}: {e}")
            return []
        # First line is the column header
        return [line.split()[0] for line in lines[1:] if line.strip()]

    async def ensure_swap(self) -> SwapAction:
        """Create, activate and persist the swap file as needed."""
        active = await asyncio.to_thread(self.active_swaps)
        if active:
            logger.info(f"Swap already active: {', '.join(active)}")
            return SwapAction.ALREADY_ACTIVE

        swap_path = Path(self.swap_config.path)
        exists = await asyncio.to_thread(swap_path.exists)

        if self.dry_run:
            logger.info(f"Dry run: would {'activate' if exists else 'create'} swap file {swap_path}")
            return SwapAction.PLANNED

        if exists:
            logger.info(f"Activating existing swap file {swap_path}")
            action = SwapAction.ACTIVATED
        else:
            await self._create_swap_file(swap_path)
            action = SwapAction.CREATED

        await self.runner.run(["swapon", str(swap_path)])
        await asyncio.to_thread(self._ensure_fstab_entry, swap_path)
        return action

    async def _create_swap_file(self, swap_path: Path) -> None:
        """Format the swap file at a temporary path and move it into place."""
        size_mb = self.swap_config.size_mb
        logger.info(f"Creating {size_mb}MB swap file {swap_path}")
        with atomic_target(swap_path, mode=0o600) as partial:
            try:
                await self.runner.run(["fallocate", "-l", f"{size_mb}M", str(partial)])
            except subprocess.CalledProcessError:
                # fallocate is unsupported on some filesystems
                logger.warning("fallocate failed, falling back to dd")
                await self.runner.run(
                    ["dd", "if=/dev/zero", f"of={partial}", "bs=1M", f"count={size_mb}"],
                    timeout=max(self.runner.timeout, size_mb),
                )
            await self.runner.run(["mkswap", str(partial)])

    def _ensure_fstab_entry(self, swap_path: Path) -> None:
        """Persist the swap activation across reboots."""
        fstab = Path(self.swap_config.fstab_path)
        content = fstab.read_text() if fstab.exists() else ""
        for line in content.splitlines():
            fields = line.split()
            if fields and not fields[0].startswith("#") and fields[0] == str(swap_path):
                logger.debug(f"{fstab} already mounts {swap_path}")
                return

        if content and not content.endswith("\n"):
            content += "\n"
        content += f"{swap_path} none swap sw 0 0\n"
        atomic_write(fstab, content, mode=0o644)
        logger.info(f"Added {swap_path} to {fstab}")
