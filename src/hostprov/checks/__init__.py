"""Host precondition and post-install health checks."""

from hostprov.checks.health import HealthVerifier, VerificationReport
from hostprov.checks.preconditions import PreconditionChecker, PreconditionResult, SwapAction

__all__ = [
    "HealthVerifier",
    "VerificationReport",
    "PreconditionChecker",
    "PreconditionResult",
    "SwapAction",
]
