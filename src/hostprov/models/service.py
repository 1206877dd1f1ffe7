"""Service specification models."""

from pathlib import PurePosixPath
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class PortMapping(BaseModel):
    """Published container port."""
    host: int = Field(..., ge=1, le=65535)
    container: int = Field(..., ge=1, le=65535)
    protocol: Literal["tcp", "udp"] = Field(default="tcp")

    def to_arg(self) -> str:
        """Render as a `docker run -p` value."""
        return f"{self.host}:{self.container}/{self.protocol}"


class VolumeMount(BaseModel):
    """Bind mount; relative sources live under the service directory."""
    source: str = Field(..., description="Host path, absolute or relative to <base_dir>/<service>")
    target: str = Field(..., description="Path inside the container")
    read_only: bool = Field(default=False)


class ResourceLimits(BaseModel):
    """Container resource limits."""
    memory: Optional[str] = Field(None, description="Docker memory limit, e.g. 512m")
    cpus: Optional[float] = Field(None, gt=0)


class ConfigFileSpec(BaseModel):
    """Configuration file rendered from a Jinja2 template."""
    path: str = Field(..., description="Path relative to the service directory")
    template: str = Field(..., description="Jinja2 template content")
    mode: int = Field(default=0o644)

    model_config = ConfigDict(extra="forbid")


class CredentialRef(BaseModel):
    """Credential consumed by a service."""
    name: str = Field(..., description="Credential owner, e.g. mqtt")
    password_file: str = Field(..., description="Broker password file, relative to the service directory")


class HealthCheck(BaseModel):
    """Reachability check for a running service."""
    protocol: Literal["http", "tcp", "mqtt"] = Field(default="tcp")
    host: str = Field(default="127.0.0.1")
    port: int = Field(..., ge=1, le=65535)
    path: str = Field(default="/")
    expect_status: List[int] = Field(default_factory=lambda: [200])

    def accepts(self, status_code: int) -> bool:
        """Predicate applied to an HTTP response status."""
        return status_code in self.expect_status

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}{self.path}"


class ServiceSpec(BaseModel):
    """Containerized service specification."""
    name: str = Field(..., description="Service and container name")
    image: str = Field(..., description="Container image reference")
    ports: List[PortMapping] = Field(default_factory=list)
    volumes: List[VolumeMount] = Field(default_factory=list)
    resources: ResourceLimits = Field(default_factory=ResourceLimits)
    restart: Literal["no", "always", "unless-stopped", "on-failure"] = Field(default="unless-stopped")
    environment: Dict[str, str] = Field(default_factory=dict)
    network_mode: Optional[str] = None
    user: Optional[str] = None
    privileged: bool = Field(default=False)
    directories: List[str] = Field(default_factory=list)
    config_files: List[ConfigFileSpec] = Field(default_factory=list)
    credential: Optional[CredentialRef] = None
    health: Optional[HealthCheck] = None
    settings: Dict[str, Any] = Field(default_factory=dict, description="Template variables")
    host_units: List[str] = Field(
        default_factory=list,
        description="Host systemd units that claim the same ports and must stay stopped",
    )

    model_config = ConfigDict(extra="ignore")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        """Container names must be usable as docker names and directory names."""
        if not v or not all(c.isalnum() or c in "-_." for c in v) or not v[0].isalnum():
            raise ValueError(f"Invalid service name: {v!r}")
        return v

    def service_dir(self, base_dir: str) -> PurePosixPath:
        """Directory holding this service's files."""
        return PurePosixPath(base_dir) / self.name

    def volume_source(self, volume: VolumeMount, base_dir: str) -> str:
        """Absolute host path of a volume source."""
        if volume.source.startswith("/"):
            return volume.source
        return str(self.service_dir(base_dir) / volume.source)

    def volume_args(self, base_dir: str) -> List[str]:
        """Volumes as `source:target[:ro]` strings."""
        args = []
        for volume in self.volumes:
            arg = f"{self.volume_source(volume, base_dir)}:{volume.target}"
            if volume.read_only:
                arg += ":ro"
            args.append(arg)
        return args
