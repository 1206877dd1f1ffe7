"""
hostprov - Home Assistant host provisioner.

Brings a single-board computer from a fresh OS install to a running
home-automation stack: packages, container engine, service configuration,
containers and health verification, idempotently.
"""

__version__ = "1.0.0"

from hostprov.models.config import ProvisionerConfig
from hostprov.models.report import InstallationReport
from hostprov.models.service import ServiceSpec

__all__ = [
    "ProvisionerConfig",
    "InstallationReport",
    "ServiceSpec",
]
