"""Configuration models."""

from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


DEFAULT_PATH = "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"

DEFAULT_PACKAGES = [
    "apparmor",
    "jq",
    "curl",
    "dbus",
    "lsb-release",
    "network-manager",
    "software-properties-common",
    "apt-transport-https",
    "ca-certificates",
    "gnupg",
    "mosquitto",
    "mosquitto-clients",
    "python3",
    "python3-pip",
    "python3-venv",
]

DEFAULT_PYTHON_REQUIREMENTS = [
    "ultralytics",
    "opencv-python",
    "numpy",
    "requests",
    "paho-mqtt",
    "imutils",
    "schedule",
]


class HostConfig(BaseModel):
    """Host identity and resource thresholds."""
    hostname: Optional[str] = Field(default="homeassistant")
    expected_arch: str = Field(default="aarch64")
    min_ram_mb: int = Field(default=1024, ge=0)
    min_disk_gb: float = Field(default=10, ge=0)
    disk_path: str = Field(default="/")


class SwapConfig(BaseModel):
    """Swap file created when RAM is below the minimum."""
    path: str = Field(default="/swapfile")
    size_mb: int = Field(default=1024, gt=0)
    swaps_path: str = Field(default="/proc/swaps")
    fstab_path: str = Field(default="/etc/fstab")


class CommandConfig(BaseModel):
    """Explicit environment for every external command."""
    env: Dict[str, str] = Field(default_factory=lambda: {
        "PATH": DEFAULT_PATH,
        "LANG": "C.UTF-8",
        "DEBIAN_FRONTEND": "noninteractive",
    })
    cwd: str = Field(default="/")
    timeout: int = Field(default=300, gt=0)


class PackagesConfig(BaseModel):
    """OS package installation."""
    install: List[str] = Field(default_factory=lambda: list(DEFAULT_PACKAGES))
    update_timeout: int = Field(default=600, gt=0)
    install_timeout: int = Field(default=1800, gt=0)


class DockerConfig(BaseModel):
    """Container engine bootstrap and readiness."""
    script_url: str = Field(default="https://get.docker.com")
    unit: str = Field(default="docker.service")
    engine_timeout: float = Field(default=120, gt=0)
    backoff_initial: float = Field(default=1.0, gt=0)
    backoff_max: float = Field(default=16.0, gt=0)


class PathsConfig(BaseModel):
    """Persisted state layout."""
    base_dir: str = Field(default="/opt")
    credentials_file: str = Field(default="/etc/hostprov/credentials")
    compose_file: Optional[str] = Field(default=None, description="Defaults to <base_dir>/docker-compose.yml")
    passwd_tool: str = Field(default="mosquitto_passwd")


class CredentialsConfig(BaseModel):
    """Credential generation policy."""
    policy: Literal["regenerate", "preserve"] = Field(default="regenerate")
    username: Optional[str] = Field(default=None, description="Fixed MQTT username, random when unset")
    password_length: int = Field(default=24, ge=12)


class PythonEnvConfig(BaseModel):
    """Virtual environment for YOLOv8 object detection."""
    enabled: bool = Field(default=True)
    path: str = Field(default="/opt/yolo-env")
    interpreter: str = Field(default="python3")
    requirements: List[str] = Field(default_factory=lambda: list(DEFAULT_PYTHON_REQUIREMENTS))
    timeout: int = Field(default=3600, gt=0)


class VerifyConfig(BaseModel):
    """Post-install health polling."""
    timeout: float = Field(default=180, gt=0)
    interval: float = Field(default=5, gt=0)


class ProvisionerConfig(BaseModel):
    """Main configuration model."""
    host: HostConfig = Field(default_factory=HostConfig)
    swap: SwapConfig = Field(default_factory=SwapConfig)
    commands: CommandConfig = Field(default_factory=CommandConfig)
    packages: PackagesConfig = Field(default_factory=PackagesConfig)
    docker: DockerConfig = Field(default_factory=DockerConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig)
    python_env: PythonEnvConfig = Field(default_factory=PythonEnvConfig)
    verify: VerifyConfig = Field(default_factory=VerifyConfig)
    preset: str = Field(default="standard")
    services: Optional[List[str]] = Field(default=None, description="Subset of catalog services, all when unset")
    overrides: Dict[str, dict] = Field(default_factory=dict)
    log_level: str = Field(default="INFO")
    dry_run: bool = Field(default=False)

    model_config = ConfigDict(extra="ignore")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @property
    def compose_file(self) -> str:
        """Location of the generated compose definition."""
        return self.paths.compose_file or f"{self.paths.base_dir.rstrip('/')}/docker-compose.yml"
