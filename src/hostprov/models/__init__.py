"""Pydantic models for configuration and validation."""

from hostprov.models.config import ProvisionerConfig, HostConfig, SwapConfig, CommandConfig
from hostprov.models.credential import Credential
from hostprov.models.host import HostProfile
from hostprov.models.package import PackageSet
from hostprov.models.report import InstallationReport, RunState, StepOutcome, StepStatus, EndpointOutcome
from hostprov.models.service import (
    ServiceSpec,
    PortMapping,
    VolumeMount,
    ResourceLimits,
    ConfigFileSpec,
    CredentialRef,
    HealthCheck,
)

__all__ = [
    "ProvisionerConfig",
    "HostConfig",
    "SwapConfig",
    "CommandConfig",
    "Credential",
    "HostProfile",
    "PackageSet",
    "InstallationReport",
    "RunState",
    "StepOutcome",
    "StepStatus",
    "EndpointOutcome",
    "ServiceSpec",
    "PortMapping",
    "VolumeMount",
    "ResourceLimits",
    "ConfigFileSpec",
    "CredentialRef",
    "HealthCheck",
]
