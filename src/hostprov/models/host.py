"""Host profile model."""

import logging
import os
import platform
import shutil
import socket
from pathlib import Path
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field


logger = logging.getLogger(__name__)


class HostProfile(BaseModel):
    """Facts about the target machine, read once per run."""
    arch: str = Field(..., description="Machine architecture, e.g. aarch64")
    total_ram_mb: int = Field(..., ge=0)
    free_disk_gb: float = Field(..., ge=0)
    os_id: str = Field(default="unknown")
    os_version: str = Field(default="")
    effective_uid: int = Field(default=0)
    hostname: str = Field(default="")

    model_config = ConfigDict(frozen=True)

    @property
    def is_root(self) -> bool:
        return self.effective_uid == 0

    @classmethod
    def detect(
        cls,
        disk_path: str = "/",
        meminfo_path: Path = Path("/proc/meminfo"),
        os_release_path: Path = Path("/etc/os-release"),
    ) -> "HostProfile":
        """Read the profile of the running host."""
        meminfo = _read_key_values(meminfo_path, sep=":")
        # MemTotal is reported in kB
        mem_total_kb = int(meminfo.get("MemTotal", "0").split()[0] or 0)
        usage = shutil.disk_usage(disk_path)
        os_release = _read_key_values(os_release_path, sep="=")

        profile = cls(
            arch=platform.machine(),
            total_ram_mb=mem_total_kb // 1024,
            free_disk_gb=round(usage.free / 1024 ** 3, 2),
            os_id=os_release.get("ID", "unknown").strip('"'),
            os_version=os_release.get("VERSION_ID", "").strip('"'),
            effective_uid=os.geteuid(),
            hostname=socket.gethostname(),
        )
        logger.debug(f"Detected host profile: {profile}")
        return profile


def _read_key_values(path: Path, sep: str) -> Dict[str, str]:
    """Parse a `key<sep>value` file, ignoring blank and malformed lines."""
    data: Dict[str, str] = {}
    try:
        content = path.read_text()
    except OSError as e:
        logger.warning(f"Cannot read {path}: {e}")
        return data

    for line in content.splitlines():
        if sep not in line:
            continue
        key, value = line.split(sep, 1)
        data[key.strip()] = value.strip()
    return data
