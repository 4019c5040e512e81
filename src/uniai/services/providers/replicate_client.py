"""Replicate API client for image generation with error classification."""

import asyncio
from typing import Any

import httpx
import replicate
import structlog
from replicate.exceptions import ReplicateError as ReplicateAPIError

from uniai.services.exceptions import (
    ContentPolicyError,
    NormalizationError,
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitError,
)
from uniai.services.normalizer import ResponseShape, normalize_images
from uniai.services.providers.base import GenerationParams, ProviderClient

logger = structlog.get_logger(__name__)

DEFAULT_MODEL_VERSIONS = {
    "flux-schnell": "black-forest-labs/flux-schnell",
    "flux-dev": "black-forest-labs/flux-dev",
}


def classify_error(exception: Exception) -> ProviderError:
    """Classify a Replicate SDK or network exception.

    Args:
        exception: Original exception from Replicate SDK or network layer

    Returns:
        Classified ProviderError subclass instance

    Classification rules:
        - 429 / rate limit → ProviderRateLimitError
        - 401/403 / authentication → ProviderAuthError
        - Content policy violations → ContentPolicyError
        - Timeouts and connection errors → ProviderError (network)
        - Anything else → ProviderError
    """
    error_message = str(exception)
    error_message_lower = error_message.lower()

    if "429" in error_message or "rate limit" in error_message_lower:
        return ProviderRateLimitError(f"Replicate rate limit exceeded: {error_message}", 429)

    if (
        "401" in error_message
        or "403" in error_message
        or "unauthorized" in error_message_lower
        or "forbidden" in error_message_lower
        or "authentication" in error_message_lower
        or "invalid api token" in error_message_lower
    ):
        return ProviderAuthError(f"Replicate authentication failed: {error_message}")

    if (
        "content policy" in error_message_lower
        or "nsfw" in error_message_lower
        or "safety" in error_message_lower
        or "inappropriate" in error_message_lower
    ):
        return ContentPolicyError(f"Content policy violation: {error_message}")

    if "timeout" in error_message_lower or isinstance(exception, (ConnectionError, OSError)):
        return ProviderError(f"Replicate network error: {error_message}")

    return ProviderError(f"Replicate error: {error_message}")


class ReplicateImageClient(ProviderClient):
    """Run a Replicate model through the official SDK.

    The SDK is synchronous, so the call runs in a worker thread.
    """

    name = "Replicate"

    def __init__(
        self,
        api_key: str,
        timeout: float = 120.0,
        model_versions: dict[str, str] | None = None,
    ):
        """Initialize Replicate client.

        Args:
            api_key: Replicate API token
            timeout: Per-request timeout in seconds for the SDK's HTTP calls
            model_versions: Model name to Replicate model reference mapping
        """
        super().__init__(api_key, timeout=timeout)
        self.model_versions = model_versions or DEFAULT_MODEL_VERSIONS

    def build_input(
        self, prompt: str, reference_image_urls: list[str], params: GenerationParams
    ) -> dict[str, Any]:
        model_input: dict[str, Any] = {"prompt": prompt, "aspect_ratio": params.aspect_ratio}
        if params.num_images:
            model_input["num_outputs"] = params.num_images
        if params.seed is not None and params.seed != -1:
            model_input["seed"] = params.seed
        if params.sampling_steps is not None:
            model_input["num_inference_steps"] = params.sampling_steps
        if reference_image_urls:
            model_input["image"] = reference_image_urls[0]
        return model_input

    async def generate(
        self,
        prompt: str,
        reference_image_urls: list[str],
        params: GenerationParams,
        model: str,
    ) -> list[str]:
        model_version = self.model_versions.get(model, model)
        model_input = self.build_input(prompt, reference_image_urls, params)
        logger.info("provider.request", provider=self.name, model=model_version)

        def _run_replicate() -> Any:
            client = replicate.Client(api_token=self.api_key, timeout=httpx.Timeout(self.timeout))
            return client.run(model_version, input=model_input)

        try:
            output = await asyncio.to_thread(_run_replicate)
        except ReplicateAPIError as e:
            raise classify_error(e) from e
        except (ConnectionError, OSError, TimeoutError) as e:
            raise classify_error(e) from e
        except Exception as e:
            raise ProviderError(f"Unexpected Replicate error: {e}") from e

        images = normalize_images(output, ResponseShape.REPLICATE_OUTPUT)
        if not images:
            raise NormalizationError(f"Unexpected output format from Replicate: {type(output)}")
        return images
