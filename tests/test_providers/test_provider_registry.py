"""Tests for provider registry."""

import pytest
from unittest.mock import AsyncMock, patch

from hostprov.providers.configurator import ServiceConfigProvider
from hostprov.providers.registry import ProviderRegistry
from hostprov.providers.secrets import SecretsProvider


@pytest.mark.asyncio
class TestProviderRegistry:
    """Test provider registry."""

    async def test_registry_initialization(self, config, runner):
        """Test registry initializes providers and injects dependencies."""
        registry = ProviderRegistry(runner)

        with patch("hostprov.providers.container.SystemdDBus") as mock_dbus_class:
            mock_dbus_class.return_value.connect = AsyncMock()
            await registry.initialize(config)

        assert registry.list_providers() == [
            "package", "docker", "pyenv", "hostname", "secrets", "config", "container",
        ]

        config_provider = registry.get_provider("config")
        assert isinstance(config_provider, ServiceConfigProvider)
        assert isinstance(config_provider.secrets_provider, SecretsProvider)
        assert config_provider.secrets_provider is registry.get_provider("secrets")
        assert registry.get_provider("container").runner is runner
        assert registry.get_provider("missing") is None

    async def test_shutdown_disconnects_dbus(self, config, runner):
        registry = ProviderRegistry(runner)

        with patch("hostprov.providers.container.SystemdDBus") as mock_dbus_class:
            dbus = mock_dbus_class.return_value
            dbus.connect = AsyncMock()
            dbus.disconnect = AsyncMock(side_effect=RuntimeError("bus gone"))
            await registry.initialize(config)
            await registry.shutdown()

        dbus.disconnect.assert_awaited_once()
