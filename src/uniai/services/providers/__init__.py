"""Generation backends behind a uniform ``generate`` contract."""

from uniai.services.providers.base import GenerationParams, ProviderClient
from uniai.services.providers.registry import (
    PROVIDERS,
    DispatchMode,
    ProviderDescriptor,
    build_client,
    resolve_provider,
)

__all__ = [
    "GenerationParams",
    "ProviderClient",
    "ProviderDescriptor",
    "DispatchMode",
    "PROVIDERS",
    "build_client",
    "resolve_provider",
]
