"""Asynchronous submit-then-poll generation client (Duomi API).

Protocol:
1. POST the job to the generate endpoint (or the edit endpoint when reference
   images are supplied). The response must carry ``code == 200`` and
   ``data.task_id``.
2. Sleep ``poll_interval`` seconds, then GET ``{status_url}/{task_id}``.
   Repeat up to ``max_attempts`` times.
3. ``data.state`` (or ``data.status``) decides the outcome. The provider is not
   consistent about spellings, so both the done and the failed spellings are
   matched against sets.

A failing poll request (network error, non-2xx, bad JSON, non-200 ``code``, a
``data`` field that is not an object) is logged and the loop continues. Only an
explicit failure state or the attempt budget ends the loop without images.
"""

import asyncio
from typing import Any, Optional

import httpx
import structlog

from uniai.services.exceptions import PollTimeoutError, ProviderError
from uniai.services.normalizer import ResponseShape, normalize_images
from uniai.services.providers.base import (
    GenerationParams,
    ProviderClient,
    check_response,
    parse_json,
)

logger = structlog.get_logger(__name__)

DONE_STATES = frozenset({"completed", "success", "succeeded", "done", "finished"})
FAILED_STATES = frozenset({"failed", "error", "failure", "cancelled", "canceled"})

DEFAULT_POLL_INTERVAL = 3.0
DEFAULT_MAX_ATTEMPTS = 60


def job_state(status_payload: dict) -> str:
    """Lower-cased provider state from a status payload ("" when absent)."""
    data = status_payload.get("data")
    if not isinstance(data, dict):
        return ""
    state = data.get("state") or data.get("status") or ""
    return str(state).strip().lower()


class AsyncPollClient(ProviderClient):
    """Submit a job, then poll its status until a terminal state."""

    name = "Duomi API"

    def __init__(
        self,
        api_key: str,
        url: str,
        edit_url: str,
        status_url: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize submit+poll client.

        Args:
            api_key: Duomi API key (sent verbatim in the Authorization header)
            url: Text-to-image submit endpoint
            edit_url: Image-to-image submit endpoint
            status_url: Status endpoint prefix; the job id is appended
            poll_interval: Seconds to wait before each status request
            max_attempts: Status requests allowed before PollTimeoutError
            timeout: Per-request HTTP timeout in seconds
            transport: Optional httpx transport for tests
        """
        super().__init__(api_key, timeout=timeout, transport=transport)
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.url = url
        self.edit_url = edit_url
        self.status_url = status_url.rstrip("/")
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts

    async def submit(
        self,
        prompt: str,
        reference_image_urls: list[str],
        params: GenerationParams,
        model: str,
    ) -> str:
        """Submit the job and return the provider-side job id.

        Raises:
            ProviderError: Non-2xx response or a payload without a job id
        """
        payload: dict[str, Any] = {
            "model": model,
            "prompt": prompt,
            "aspect_ratio": params.aspect_ratio,
            "image_size": params.resolution,
        }
        if reference_image_urls:
            payload["image_urls"] = list(reference_image_urls)
        url = self.edit_url if reference_image_urls else self.url

        response = await self._post(
            url,
            payload,
            headers={"Authorization": self.api_key, "Content-Type": "application/json"},
        )
        check_response(response, self.name)
        result = parse_json(response, self.name)

        job_id = None
        if isinstance(result, dict) and result.get("code") == 200:
            job_id = (result.get("data") or {}).get("task_id")
        if not job_id:
            message = result.get("msg") if isinstance(result, dict) else None
            raise ProviderError(f"{self.name} error: {message or 'no task id returned'}")

        return str(job_id)

    async def poll_once(self, client: httpx.AsyncClient, job_id: str) -> Optional[dict]:
        """Fetch one status payload, or None when this poll failed transiently."""
        try:
            response = await client.get(
                f"{self.status_url}/{job_id}", headers={"Authorization": self.api_key}
            )
        except httpx.HTTPError as e:
            logger.warning("provider.poll.retry", job_id=job_id, reason="network", error=str(e))
            return None

        if not response.is_success:
            logger.warning(
                "provider.poll.retry",
                job_id=job_id,
                reason="http",
                status_code=response.status_code,
            )
            return None

        try:
            payload = response.json()
        except ValueError:
            logger.warning("provider.poll.retry", job_id=job_id, reason="invalid_json")
            return None

        if (
            not isinstance(payload, dict)
            or payload.get("code") != 200
            or not isinstance(payload.get("data"), dict)
        ):
            logger.warning("provider.poll.retry", job_id=job_id, reason="unexpected_payload")
            return None

        return payload

    async def wait_for_result(self, job_id: str) -> list[str]:
        """Poll until done, failed, or the attempt budget is exhausted.

        Raises:
            ProviderError: Provider reported a failure state
            PollTimeoutError: No terminal state after max_attempts polls
        """
        async with self._client() as client:
            for attempt in range(1, self.max_attempts + 1):
                await asyncio.sleep(self.poll_interval)

                payload = await self.poll_once(client, job_id)
                if payload is None:
                    continue

                state = job_state(payload)
                logger.debug("provider.poll", job_id=job_id, attempt=attempt, state=state)

                if state in DONE_STATES:
                    images = normalize_images(payload, ResponseShape.TASK_RESULT)
                    if images:
                        logger.info(
                            "provider.poll.completed",
                            job_id=job_id,
                            attempts=attempt,
                            image_count=len(images),
                        )
                        return images
                    # Results are sometimes attached a poll after the state flips
                    logger.warning("provider.poll.completed_without_images", job_id=job_id)
                elif state in FAILED_STATES:
                    data = payload["data"]
                    reason = data.get("msg") or data.get("error") or "Unknown error"
                    raise ProviderError(f"{self.name} task failed: {reason}")

        raise PollTimeoutError(
            f"{self.name} task timeout: exceeded {self.max_attempts} polling attempts",
            self.max_attempts,
        )

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
        job_id = await self.submit(prompt, reference_image_urls, params, model)
        logger.info("provider.job_submitted", provider=self.name, job_id=job_id)
        return await self.wait_for_result(job_id)
