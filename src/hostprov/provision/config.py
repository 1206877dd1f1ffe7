"""Configuration management for a provisioning run."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ruamel.yaml import YAML
from pydantic import ValidationError

from hostprov.models.config import ProvisionerConfig
from hostprov.models.package import PackageSet
from hostprov.models.service import ServiceSpec
from hostprov.provision.catalog import build_services, get_preset
from hostprov.utils.templates import merge_dicts


logger = logging.getLogger(__name__)


class ConfigManager:
    """Loads configuration from file, preset and command line.

    Precedence, lowest first: built-in defaults, preset, config file,
    command-line overrides.
    """

    def __init__(self, config_file: Optional[Path] = None):
        """Initialize configuration manager."""
        self.config_file = Path(config_file) if config_file else None
        self.yaml = YAML(typ="safe")
        self.config: Optional[ProvisionerConfig] = None
        self.services: List[ServiceSpec] = []
        self.packages: PackageSet = PackageSet()

    async def load(self, cli_overrides: Optional[Dict[str, Any]] = None):
        """Load and validate configuration."""
        file_data: Dict[str, Any] = {}
        if self.config_file:
            logger.info(f"Loading configuration from {self.config_file}")
            if not self.config_file.exists():
                raise FileNotFoundError(f"Config file not found: {self.config_file}")
            file_data = await self._read_yaml(self.config_file) or {}
            if not isinstance(file_data, dict):
                raise ValueError(f"Config file {self.config_file} must contain a mapping")

        cli_overrides = cli_overrides or {}
        preset_name = cli_overrides.get("preset") or file_data.get("preset") or "standard"
        preset = get_preset(preset_name)

        data = merge_dicts(preset["config"], file_data)
        data = merge_dicts(data, cli_overrides)
        data["preset"] = preset_name

        try:
            self.config = ProvisionerConfig(**data)
        except ValidationError as e:
            logger.error(f"Invalid configuration: {e}")
            raise

        self.services = build_services(
            preset=self.config.preset,
            selection=self.config.services,
            overrides=self.config.overrides,
        )
        self.packages = PackageSet(self.config.packages.install)

        logger.debug(
            f"Configuration loaded: preset={self.config.preset}, "
            f"services={[s.name for s in self.services]}, packages={len(self.packages)}"
        )

    async def _read_yaml(self, file_path: Path) -> Dict[str, Any]:
        """Read and parse YAML file."""
        content = await asyncio.to_thread(file_path.read_text)
        return self.yaml.load(content)

    def get_service_spec(self, name: str) -> Optional[ServiceSpec]:
        """Get service specification by name."""
        for spec in self.services:
            if spec.name == name:
                return spec
        return None
