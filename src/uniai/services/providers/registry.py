"""Static provider catalog and model → provider resolution."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx

from uniai.core.config import Settings
from uniai.services.exceptions import ConfigurationError, ValidationError
from uniai.services.providers.async_poll import AsyncPollClient
from uniai.services.providers.base import ProviderClient
from uniai.services.providers.replicate_client import DEFAULT_MODEL_VERSIONS, ReplicateImageClient
from uniai.services.providers.structured import StructuredContentClient
from uniai.services.providers.sync_client import SyncImageClient

NANO_BANANA_MODELS = (
    "nano-banana",
    "nano-banana-2",
    "nano-banana-2-2k",
    "nano-banana-2-4k",
    "nano-banana-hd",
    "nano-banana-pro",
)


class DispatchMode(str, Enum):
    """How a provider delivers results."""

    SYNC = "sync"
    ASYNC_POLL = "async-poll"


@dataclass(frozen=True)
class ProviderDescriptor:
    """Static description of a generation backend."""

    name: str
    display_name: str
    mode: DispatchMode
    credential_key: str
    models: tuple[str, ...]
    max_prompt_length: int
    storage_folder: str = "output"

    def supports(self, model: str) -> bool:
        return model in self.models


PROVIDERS: tuple[ProviderDescriptor, ...] = (
    ProviderDescriptor(
        name="nano_banana",
        display_name="Nano Banana",
        mode=DispatchMode.SYNC,
        credential_key="nano_banana_api_key",
        models=NANO_BANANA_MODELS,
        max_prompt_length=500,
    ),
    ProviderDescriptor(
        name="duomi",
        display_name="Duomi API",
        mode=DispatchMode.ASYNC_POLL,
        credential_key="duomi_api_key",
        models=NANO_BANANA_MODELS + ("gemini-3-pro-image-preview",),
        max_prompt_length=500,
    ),
    ProviderDescriptor(
        name="zimage",
        display_name="Z-Image-Turbo",
        mode=DispatchMode.SYNC,
        credential_key="zimage_api_key",
        models=("z-image-turbo",),
        max_prompt_length=800,
        storage_folder="zimage",
    ),
    ProviderDescriptor(
        name="replicate",
        display_name="Replicate",
        mode=DispatchMode.SYNC,
        credential_key="replicate_api_token",
        models=tuple(DEFAULT_MODEL_VERSIONS),
        max_prompt_length=1000,
    ),
)

PROVIDERS_BY_NAME = {descriptor.name: descriptor for descriptor in PROVIDERS}


def supported_models(providers: tuple[ProviderDescriptor, ...] = PROVIDERS) -> list[str]:
    """Every model name served by at least one provider, in catalog order."""
    models: list[str] = []
    for descriptor in providers:
        models.extend(model for model in descriptor.models if model not in models)
    return models


def resolve_provider(
    model: str,
    default_provider: Optional[str] = None,
    providers: tuple[ProviderDescriptor, ...] = PROVIDERS,
) -> ProviderDescriptor:
    """Pick the provider serving a model.

    A model served by one provider selects it. When several providers serve the
    model, the operator default wins if it is one of them; otherwise the first
    candidate in catalog order is used.

    Args:
        model: Requested model name
        default_provider: Operator-configured provider name (may be None)
        providers: Provider catalog

    Returns:
        Matching ProviderDescriptor

    Raises:
        ValidationError: If no provider serves the model
    """
    candidates = [descriptor for descriptor in providers if descriptor.supports(model)]
    if not candidates:
        raise ValidationError(
            f"Invalid model. Valid models: {', '.join(supported_models(providers))}"
        )

    for descriptor in candidates:
        if descriptor.name == default_provider:
            return descriptor
    return candidates[0]


def build_client(
    descriptor: ProviderDescriptor,
    api_key: str,
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ProviderClient:
    """Instantiate the client implementing a provider's protocol.

    Raises:
        ConfigurationError: If the descriptor names an unknown provider
    """
    timeout = settings.http_timeout_seconds
    if descriptor.name == "nano_banana":
        return SyncImageClient(
            api_key, url=settings.nano_banana_url, timeout=timeout, transport=transport
        )
    if descriptor.name == "duomi":
        return AsyncPollClient(
            api_key,
            url=settings.duomi_url,
            edit_url=settings.duomi_edit_url,
            status_url=settings.duomi_status_url,
            poll_interval=settings.poll_interval_seconds,
            max_attempts=settings.poll_max_attempts,
            timeout=timeout,
            transport=transport,
        )
    if descriptor.name == "zimage":
        return StructuredContentClient(
            api_key, url=settings.zimage_url, timeout=timeout, transport=transport
        )
    if descriptor.name == "replicate":
        return ReplicateImageClient(api_key, timeout=timeout)
    raise ConfigurationError(f"No client implementation for provider '{descriptor.name}'")
