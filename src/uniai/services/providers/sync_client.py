"""Synchronous OpenAI-style image generation client (Nano Banana)."""

from typing import Optional

import httpx
import structlog

from uniai.services.exceptions import NormalizationError
from uniai.services.normalizer import ResponseShape, normalize_images
from uniai.services.providers.base import (
    GenerationParams,
    ProviderClient,
    check_response,
    parse_json,
)

logger = structlog.get_logger(__name__)


class SyncImageClient(ProviderClient):
    """One POST to ``/v1/images/generations``; the response carries the image URLs."""

    name = "Nano Banana"

    def __init__(
        self,
        api_key: str,
        url: str,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(api_key, timeout=timeout, transport=transport)
        self.url = url

    def build_payload(
        self,
        prompt: str,
        reference_image_urls: list[str],
        params: GenerationParams,
        model: str,
    ) -> dict:
        payload = {
            "prompt": prompt,
            "model": model,
            "aspect_ratio": params.aspect_ratio,
            "response_format": "url",
            "image_size": params.resolution,
        }
        # Reference images switch the endpoint to image-to-image mode
        if reference_image_urls:
            payload["image"] = list(reference_image_urls)
        return payload

    async def generate(
        self,
        prompt: str,
        reference_image_urls: list[str],
        params: GenerationParams,
        model: str,
    ) -> list[str]:
        logger.info(
            "provider.request",
            provider=self.name,
            model=model,
            image_count=len(reference_image_urls),
        )

        response = await self._post(
            self.url,
            self.build_payload(prompt, reference_image_urls, params, model),
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        check_response(response, self.name)

        images = normalize_images(parse_json(response, self.name), ResponseShape.OPENAI_DATA)
        if not images:
            raise NormalizationError(f"{self.name} response contained no images")
        return images
