"""Shared fixtures."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from hostprov.models.config import ProvisionerConfig
from hostprov.utils.command import CommandResult, CommandRunner


@pytest.fixture
def config(tmp_path):
    """Configuration with every persisted path under tmp_path."""
    return ProvisionerConfig(
        host={"hostname": "homeassistant", "min_ram_mb": 1024, "min_disk_gb": 10},
        swap={
            "path": str(tmp_path / "swapfile"),
            "swaps_path": str(tmp_path / "swaps"),
            "fstab_path": str(tmp_path / "fstab"),
        },
        paths={
            "base_dir": str(tmp_path / "opt"),
            "credentials_file": str(tmp_path / "etc" / "credentials"),
        },
        python_env={"path": str(tmp_path / "opt" / "yolo-env")},
        verify={"timeout": 1, "interval": 0.1},
        docker={"engine_timeout": 5, "backoff_initial": 0.01, "backoff_max": 0.05},
    )


@pytest.fixture
def runner():
    """CommandRunner whose commands all succeed with empty output."""
    mock_runner = MagicMock(spec=CommandRunner)
    mock_runner.env = {"PATH": "/usr/bin:/bin"}
    mock_runner.cwd = "/"
    mock_runner.timeout = 300
    mock_runner.run = AsyncMock(return_value=CommandResult(returncode=0))
    return mock_runner


@pytest.fixture
def registry(runner):
    """Stand-in registry handing out the mocked runner."""
    mock_registry = MagicMock()
    mock_registry.runner = runner
    mock_registry.get_provider.return_value = None
    return mock_registry
