"""Resource providers for hostprov."""

from hostprov.providers.base import BaseProvider, ProviderStatus
from hostprov.providers.registry import ProviderRegistry

__all__ = [
    "BaseProvider",
    "ProviderStatus",
    "ProviderRegistry",
]
