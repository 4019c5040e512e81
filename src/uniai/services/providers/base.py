"""Provider client contract and shared HTTP error classification."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from uniai.services.exceptions import (
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitError,
)

ERROR_BODY_PREVIEW = 300


@dataclass(frozen=True)
class GenerationParams:
    """Generation parameters captured at task creation."""

    resolution: str = "2K"
    aspect_ratio: str = "1:1"
    width: Optional[int] = None
    height: Optional[int] = None
    sampler_method: Optional[str] = None
    sampling_steps: Optional[int] = None
    seed: Optional[int] = None
    num_images: Optional[int] = None

    def provider_specific(self) -> dict[str, Any]:
        """Optional parameters that were actually set, for persistence on the task."""
        values = {
            "width": self.width,
            "height": self.height,
            "sampler_method": self.sampler_method,
            "sampling_steps": self.sampling_steps,
            "seed": self.seed,
            "num_images": self.num_images,
        }
        return {key: value for key, value in values.items() if value is not None}


def check_response(response: httpx.Response, provider_name: str) -> None:
    """Raise a classified ProviderError for non-2xx responses.

    Classification rules:
        - 401/403 → ProviderAuthError
        - 429 → ProviderRateLimitError
        - Any other non-2xx → ProviderError
    """
    if response.is_success:
        return

    body = response.text[:ERROR_BODY_PREVIEW]
    status_code = response.status_code
    if status_code in (401, 403):
        raise ProviderAuthError(
            f"{provider_name} rejected the API key ({status_code}): {body}", status_code
        )
    if status_code == 429:
        raise ProviderRateLimitError(
            f"{provider_name} rate limit exceeded (429): {body}", status_code
        )
    raise ProviderError(f"{provider_name} API error: {status_code} - {body}", status_code)


def parse_json(response: httpx.Response, provider_name: str) -> Any:
    """Decode a JSON body, mapping malformed payloads to ProviderError."""
    try:
        return response.json()
    except ValueError as e:
        raise ProviderError(f"{provider_name} returned invalid JSON: {e}") from e


class ProviderClient(ABC):
    """Uniform generation contract shared by every backend.

    Subclasses own their wire protocol; callers only see an ordered list of
    image URLs or a ProviderError.
    """

    name: str = "provider"

    def __init__(
        self,
        api_key: str,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize provider client.

        Args:
            api_key: Provider credential
            timeout: Per-request HTTP timeout in seconds
            transport: Optional httpx transport (tests inject httpx.MockTransport)
        """
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _post(self, url: str, payload: dict, headers: dict) -> httpx.Response:
        """POST JSON, mapping transport failures to ProviderError."""
        try:
            async with self._client() as client:
                return await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise ProviderError(
                f"{self.name} request timeout after {self.timeout:g}s: {e}"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name} network error: {e}") from e

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        reference_image_urls: list[str],
        params: GenerationParams,
        model: str,
    ) -> list[str]:
        """Generate images.

        Args:
            prompt: Validated prompt text
            reference_image_urls: Optional input images (image-to-image)
            params: Generation parameters
            model: Requested model name

        Returns:
            Ordered list of image URLs (never empty)

        Raises:
            ProviderError: Any failure, including NormalizationError when the
                response carries no recognizable images
        """
