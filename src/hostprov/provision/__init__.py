"""Service catalog, configuration loading and the provisioning engine."""

from hostprov.provision.config import ConfigManager
from hostprov.provision.engine import ProvisionEngine, provision

__all__ = [
    "ConfigManager",
    "ProvisionEngine",
    "provision",
]
