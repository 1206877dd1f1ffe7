"""Provider registry for managing resource providers."""

import logging
from typing import Dict, Optional, Type

from hostprov.providers.base import BaseProvider
from hostprov.providers.configurator import ServiceConfigProvider
from hostprov.providers.container import ContainerProvider
from hostprov.providers.docker import DockerProvider
from hostprov.providers.hostname import HostnameProvider
from hostprov.providers.packages import PackageProvider
from hostprov.providers.pyenv import PythonEnvProvider
from hostprov.providers.secrets import SecretsProvider
from hostprov.utils.command import CommandRunner


logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Registry for managing providers.

    Every provider shares the registry's CommandRunner so commands run with
    one explicit environment.
    """

    def __init__(self, runner: CommandRunner):
        """Initialize provider registry."""
        self.runner = runner
        self._providers: Dict[str, BaseProvider] = {}
        self._provider_classes: Dict[str, Type[BaseProvider]] = {
            "package": PackageProvider,
            "docker": DockerProvider,
            "pyenv": PythonEnvProvider,
            "hostname": HostnameProvider,
            "secrets": SecretsProvider,
            "config": ServiceConfigProvider,
            "container": ContainerProvider,
        }

    async def initialize(self, config):
        """Initialize all providers with two-pass injection."""
        # Phase 1: Instantiate all providers
        for name, provider_class in self._provider_classes.items():
            try:
                self._providers[name] = provider_class()
            except Exception as e:
                logger.error(f"Failed to instantiate provider {name}: {e}")
                raise

        # Phase 2: Initialize and inject registry
        for name, provider in self._providers.items():
            try:
                await provider.initialize(config, self)
                logger.debug(f"Initialized provider: {name}")
            except Exception as e:
                logger.error(f"Failed to initialize provider {name}: {e}")
                raise

    async def shutdown(self):
        """Release provider resources."""
        for name, provider in self._providers.items():
            shutdown = getattr(provider, "shutdown", None)
            if shutdown is None:
                continue
            try:
                await shutdown()
            except Exception as e:
                logger.warning(f"Failed to shut down provider {name}: {e}")

    def get_provider(self, name: str) -> Optional[BaseProvider]:
        """Get a provider by name."""
        return self._providers.get(name)

    def list_providers(self) -> list[str]:
        """List available provider names."""
        return list(self._providers.keys())
