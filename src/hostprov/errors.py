"""Provisioning error taxonomy."""

from typing import List, Optional


RERUN_COMMAND = "sudo hostprov run"


class ProvisionError(Exception):
    """Base class for provisioning failures."""

    phase = "provision"
    exit_code = 1
    fatal = True

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.hint = hint or f"Fix the problem above and re-run: {RERUN_COMMAND}"


class InsufficientPrivilege(ProvisionError):
    """The run is not executing as root."""

    phase = "checking"
    exit_code = 1

    def __init__(self, uid: int):
        super().__init__(
            f"Must run as root (effective uid is {uid})",
            hint=f"Re-run as root: {RERUN_COMMAND}",
        )
        self.uid = uid


class InsufficientResources(ProvisionError):
    """Host is below a hard resource minimum."""

    phase = "checking"
    exit_code = 1

    def __init__(self, resource: str, available: float, required: float, unit: str):
        super().__init__(
            f"Insufficient {resource}: {available:g}{unit} available, {required:g}{unit} required"
        )
        self.resource = resource
        self.available = available
        self.required = required


class UnsupportedArchitecture(ProvisionError):
    """Host architecture differs from the expected one. Warning only."""

    phase = "checking"
    fatal = False

    def __init__(self, actual: str, expected: str):
        super().__init__(f"Architecture {actual} does not match expected {expected}")
        self.actual = actual
        self.expected = expected


class PackageInstallError(ProvisionError):
    """Packages could not be installed even after the repair pass."""

    phase = "installing"
    exit_code = 2

    def __init__(self, packages: List[str], reason: str = ""):
        names = ", ".join(packages) if packages else "<unknown>"
        message = f"Failed to install package(s): {names}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.packages = list(packages)


class ConfigWriteError(ProvisionError):
    """A configuration or credential file could not be written."""

    phase = "configuring"
    exit_code = 3

    def __init__(self, path, reason: str = ""):
        message = f"Failed to write {path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.path = str(path)


class EngineUnavailable(ProvisionError):
    """The container engine never became active."""

    phase = "orchestrating"
    exit_code = 3

    def __init__(self, unit: str, waited: float):
        super().__init__(
            f"Container engine {unit} not active after {waited:.0f}s",
            hint=f"Check 'systemctl status {unit}' and re-run: {RERUN_COMMAND}",
        )
        self.unit = unit


class OrchestrationError(ProvisionError):
    """A service container could not be (re)created."""

    phase = "orchestrating"
    exit_code = 3

    def __init__(self, service: str, reason: str = ""):
        message = f"Failed to start service {service}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            hint=f"Inspect 'docker logs {service}' and re-run: {RERUN_COMMAND} --services {service}",
        )
        self.service = service


class VerificationTimeout(ProvisionError):
    """A health check did not pass in time. Recorded, never raised by the engine."""

    phase = "verifying"
    exit_code = 0
    fatal = False

    def __init__(self, service: str, timeout: float):
        super().__init__(f"Service {service} not ready after {timeout:g}s")
        self.service = service
        self.timeout = timeout
