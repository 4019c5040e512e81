"""Single-call structured-content client (Z-Image-Turbo via DashScope).

The success payload nests images in a chat-completion-like structure::

    {"output": {"choices": [{"message": {"content": [{"image": "https://..."}]}}]}}
"""

from typing import Any, Optional

import httpx
import structlog

from uniai.services.exceptions import NormalizationError, ProviderError
from uniai.services.normalizer import ResponseShape, normalize_images
from uniai.services.providers.base import (
    GenerationParams,
    ProviderClient,
    check_response,
    parse_json,
)

logger = structlog.get_logger(__name__)

BASE_EDGE = {"1K": 1024, "2K": 1536, "4K": 2048}

# (width factor, height factor) applied to the base edge
RATIO_FACTORS = {
    "1:1": (1.0, 1.0),
    "2:3": (0.82, 1.22),
    "3:2": (1.22, 0.82),
    "3:4": (0.86, 1.15),
    "4:3": (1.15, 0.86),
    "9:16": (0.72, 1.28),
    "16:9": (1.28, 0.72),
}


def size_for(params: GenerationParams) -> str:
    """Output size as ``W*H``: explicit width/height, else ratio and resolution."""
    if params.width and params.height:
        return f"{params.width}*{params.height}"

    base = BASE_EDGE.get(params.resolution, 1024)
    width_factor, height_factor = RATIO_FACTORS.get(params.aspect_ratio, (1.0, 1.0))
    return f"{round(base * width_factor)}*{round(base * height_factor)}"


class StructuredContentClient(ProviderClient):
    """One POST; images are the image-typed parts of the returned message content."""

    name = "Z-Image-Turbo"
    upstream_model = "z-image-turbo"

    def __init__(
        self,
        api_key: str,
        url: str,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(api_key, timeout=timeout, transport=transport)
        self.url = url

    def build_payload(self, prompt: str, params: GenerationParams) -> dict:
        """Build the multimodal-generation request body.

        The upstream API accepts exactly one text part, so reference images are
        not forwarded.
        """
        parameters: dict[str, Any] = {"prompt_extend": False, "size": size_for(params)}
        # -1 means "random seed" in the UI
        if params.seed is not None and params.seed != -1:
            parameters["seed"] = params.seed
        if params.sampling_steps is not None:
            parameters["steps"] = params.sampling_steps

        return {
            "model": self.upstream_model,
            "input": {"messages": [{"role": "user", "content": [{"text": prompt}]}]},
            "parameters": parameters,
        }

    async def generate(
        self,
        prompt: str,
        reference_image_urls: list[str],
        params: GenerationParams,
        model: str,
    ) -> list[str]:
        payload = self.build_payload(prompt, params)
        logger.info(
            "provider.request",
            provider=self.name,
            model=model,
            size=payload["parameters"]["size"],
            ignored_reference_images=len(reference_image_urls),
        )

        response = await self._post(
            self.url,
            payload,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        check_response(response, self.name)
        result = parse_json(response, self.name)

        choices = (result.get("output") or {}).get("choices") if isinstance(result, dict) else None
        if not choices:
            raise ProviderError(f"No choices returned from {self.name} API")

        images = normalize_images(result, ResponseShape.CHAT_CONTENT)
        if not images:
            raise NormalizationError(f"No images returned from {self.name} API")
        return images
