"""Provider client tests.

HTTP providers run against httpx.MockTransport handlers; the Replicate SDK is
patched with unittest.mock.
"""

import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from uniai.services.exceptions import (
    ContentPolicyError,
    NormalizationError,
    PollTimeoutError,
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitError,
)
from uniai.services.providers.async_poll import AsyncPollClient, job_state
from uniai.services.providers.base import GenerationParams
from uniai.services.providers.registry import PROVIDERS_BY_NAME, build_client
from uniai.services.providers.replicate_client import ReplicateImageClient, classify_error
from uniai.services.providers.structured import StructuredContentClient, size_for
from uniai.services.providers.sync_client import SyncImageClient

SYNC_URL = "https://sync.test/v1/images/generations"
SUBMIT_URL = "https://poll.test/api/gemini/nano-banana"
EDIT_URL = "https://poll.test/api/gemini/nano-banana-edit"
STATUS_URL = "https://poll.test/api/gemini/nano-banana"
ZIMAGE_URL = "https://zimage.test/generation"


def make_poll_client(handler, max_attempts: int = 60) -> AsyncPollClient:
    return AsyncPollClient(
        "raw-key",
        url=SUBMIT_URL,
        edit_url=EDIT_URL,
        status_url=STATUS_URL,
        poll_interval=0,
        max_attempts=max_attempts,
        transport=httpx.MockTransport(handler),
    )


class PollScript:
    """Handler answering submit with job-1, then status payloads in order."""

    def __init__(self, statuses):
        self.statuses = list(statuses)
        self.polls = 0
        self.submitted: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            self.submitted.append(request)
            return httpx.Response(200, json={"code": 200, "data": {"task_id": "job-1"}})

        assert request.url.path.endswith("/job-1")
        self.polls += 1
        status = self.statuses[min(self.polls, len(self.statuses)) - 1]
        if isinstance(status, httpx.Response):
            return status
        return httpx.Response(200, json=status)


def running():
    return {"code": 200, "data": {"state": "running"}}


def succeeded(*urls):
    return {
        "code": 200,
        "data": {"state": "succeeded", "data": {"images": [{"url": url} for url in urls]}},
    }


# Synchronous provider


@pytest.mark.asyncio
async def test_sync_client_returns_urls_from_data():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": [{"url": "https://x/1.png"}]})

    client = SyncImageClient("key-1", url=SYNC_URL, transport=httpx.MockTransport(handler))
    images = await client.generate(
        "a red fox", [], GenerationParams(resolution="4K", aspect_ratio="16:9"), "nano-banana-2"
    )

    assert images == ["https://x/1.png"]
    assert captured["auth"] == "Bearer key-1"
    assert captured["body"] == {
        "prompt": "a red fox",
        "model": "nano-banana-2",
        "aspect_ratio": "16:9",
        "response_format": "url",
        "image_size": "4K",
    }


@pytest.mark.asyncio
async def test_sync_client_sends_reference_images():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"data": [{"url": "https://x/1.png"}]})

    client = SyncImageClient("k", url=SYNC_URL, transport=httpx.MockTransport(handler))
    await client.generate("edit", ["https://ref/1.png"], GenerationParams(), "nano-banana")

    assert bodies[0]["image"] == ["https://ref/1.png"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status_code,error_type",
    [
        (401, ProviderAuthError),
        (403, ProviderAuthError),
        (429, ProviderRateLimitError),
        (500, ProviderError),
    ],
)
async def test_sync_client_classifies_http_errors(status_code, error_type):
    transport = httpx.MockTransport(lambda request: httpx.Response(status_code, text="nope"))
    client = SyncImageClient("k", url=SYNC_URL, transport=transport)

    with pytest.raises(error_type) as exc_info:
        await client.generate("p", [], GenerationParams(), "nano-banana")

    assert exc_info.value.status_code == status_code
    assert str(status_code) in str(exc_info.value)


@pytest.mark.asyncio
async def test_sync_client_network_error_becomes_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = SyncImageClient("k", url=SYNC_URL, transport=httpx.MockTransport(handler))

    with pytest.raises(ProviderError, match="network error"):
        await client.generate("p", [], GenerationParams(), "nano-banana")


@pytest.mark.asyncio
async def test_sync_client_without_images_raises_normalization_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"data": []}))
    client = SyncImageClient("k", url=SYNC_URL, transport=transport)

    with pytest.raises(NormalizationError):
        await client.generate("p", [], GenerationParams(), "nano-banana")


@pytest.mark.asyncio
async def test_sync_client_invalid_json_raises_provider_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
    client = SyncImageClient("k", url=SYNC_URL, transport=transport)

    with pytest.raises(ProviderError, match="invalid JSON"):
        await client.generate("p", [], GenerationParams(), "nano-banana")


# Asynchronous submit+poll provider


def test_job_state_reads_state_then_status():
    assert job_state({"data": {"state": "SUCCEEDED"}}) == "succeeded"
    assert job_state({"data": {"status": "Done"}}) == "done"
    assert job_state({"data": {}}) == ""
    assert job_state({"data": ["unexpected"]}) == ""


@pytest.mark.asyncio
async def test_poll_client_polls_until_succeeded():
    script = PollScript([running()] * 5 + [succeeded("https://d/1.png", "https://d/2.png")])
    client = make_poll_client(script)

    images = await client.generate("p", [], GenerationParams(), "nano-banana")

    assert images == ["https://d/1.png", "https://d/2.png"]
    assert script.polls == 6


@pytest.mark.asyncio
async def test_poll_client_times_out_after_exactly_max_attempts():
    script = PollScript([running()])
    client = make_poll_client(script, max_attempts=7)

    with pytest.raises(PollTimeoutError) as exc_info:
        await client.generate("p", [], GenerationParams(), "nano-banana")

    assert script.polls == 7
    assert exc_info.value.attempts == 7
    assert isinstance(exc_info.value, TimeoutError)


@pytest.mark.asyncio
async def test_poll_client_continues_after_transient_poll_failures():
    script = PollScript(
        [
            httpx.Response(502, text="bad gateway"),
            httpx.Response(200, text="not json"),
            {"code": 500, "msg": "busy"},
            succeeded("https://d/1.png"),
        ]
    )
    client = make_poll_client(script)

    assert await client.generate("p", [], GenerationParams(), "nano-banana") == [
        "https://d/1.png"
    ]
    assert script.polls == 4


@pytest.mark.asyncio
async def test_poll_client_retries_when_status_data_is_not_an_object():
    script = PollScript(
        [
            {"code": 200, "data": ["unexpected"]},
            {"code": 200, "data": "queued"},
            succeeded("https://d/1.png"),
        ]
    )
    client = make_poll_client(script)

    assert await client.generate("p", [], GenerationParams(), "nano-banana") == [
        "https://d/1.png"
    ]
    assert script.polls == 3


@pytest.mark.asyncio
async def test_poll_client_keeps_polling_when_done_without_images():
    script = PollScript(
        [{"code": 200, "data": {"state": "completed"}}, succeeded("https://d/late.png")]
    )
    client = make_poll_client(script)

    assert await client.generate("p", [], GenerationParams(), "nano-banana") == [
        "https://d/late.png"
    ]
    assert script.polls == 2


@pytest.mark.asyncio
async def test_poll_client_failed_state_ends_loop():
    script = PollScript([running(), {"code": 200, "data": {"state": "FAILED", "msg": "quota"}}])
    client = make_poll_client(script)

    with pytest.raises(ProviderError, match="task failed: quota"):
        await client.generate("p", [], GenerationParams(), "nano-banana")

    assert script.polls == 2


@pytest.mark.asyncio
async def test_poll_client_uses_edit_url_and_raw_key_with_reference_images():
    script = PollScript([succeeded("https://d/1.png")])
    client = make_poll_client(script)

    await client.generate(
        "p", ["https://ref/1.png"], GenerationParams(aspect_ratio="3:4"), "nano-banana-pro"
    )

    request = script.submitted[0]
    assert str(request.url) == EDIT_URL
    assert request.headers["Authorization"] == "raw-key"
    body = json.loads(request.content)
    assert body["image_urls"] == ["https://ref/1.png"]
    assert body["aspect_ratio"] == "3:4"
    assert body["model"] == "nano-banana-pro"


@pytest.mark.asyncio
async def test_poll_client_submit_without_task_id_raises():
    transport = httpx.MockTransport(
        lambda request: httpx.Response(200, json={"code": 400, "msg": "bad prompt"})
    )
    client = AsyncPollClient(
        "k", url=SUBMIT_URL, edit_url=EDIT_URL, status_url=STATUS_URL, transport=transport
    )

    with pytest.raises(ProviderError, match="bad prompt"):
        await client.generate("p", [], GenerationParams(), "nano-banana")


def test_poll_client_rejects_zero_attempts():
    with pytest.raises(ValueError):
        AsyncPollClient(
            "k", url=SUBMIT_URL, edit_url=EDIT_URL, status_url=STATUS_URL, max_attempts=0
        )


# Structured-content provider


def test_size_for_prefers_explicit_dimensions():
    assert size_for(GenerationParams(width=800, height=600)) == "800*600"


def test_size_for_derives_from_ratio_and_resolution():
    assert size_for(GenerationParams(resolution="2K", aspect_ratio="1:1")) == "1536*1536"
    assert size_for(GenerationParams(resolution="1K", aspect_ratio="16:9")) == "1311*737"


@pytest.mark.asyncio
async def test_structured_client_builds_chat_payload_and_reads_image_parts():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={
                "output": {
                    "choices": [
                        {"message": {"content": [{"image": "https://z/1.png"}, {"text": "ok"}]}}
                    ]
                }
            },
        )

    client = StructuredContentClient("zk", url=ZIMAGE_URL, transport=httpx.MockTransport(handler))
    images = await client.generate(
        "a lighthouse",
        ["https://ref/ignored.png"],
        GenerationParams(seed=-1, sampling_steps=8),
        "z-image-turbo",
    )

    assert images == ["https://z/1.png"]
    body = bodies[0]
    assert body["model"] == "z-image-turbo"
    assert body["input"]["messages"] == [{"role": "user", "content": [{"text": "a lighthouse"}]}]
    assert body["parameters"] == {"prompt_extend": False, "size": "1536*1536", "steps": 8}


@pytest.mark.asyncio
async def test_structured_client_sends_explicit_seed():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(
            200, json={"output": {"choices": [{"message": {"content": [{"image": "u"}]}}]}}
        )

    client = StructuredContentClient("zk", url=ZIMAGE_URL, transport=httpx.MockTransport(handler))
    await client.generate("p", [], GenerationParams(seed=42), "z-image-turbo")

    assert bodies[0]["parameters"]["seed"] == 42


@pytest.mark.asyncio
async def test_structured_client_without_choices_raises():
    transport = httpx.MockTransport(
        lambda request: httpx.Response(200, json={"output": {"choices": []}})
    )
    client = StructuredContentClient("zk", url=ZIMAGE_URL, transport=transport)

    with pytest.raises(ProviderError, match="No choices"):
        await client.generate("p", [], GenerationParams(), "z-image-turbo")


# Replicate provider


@pytest.mark.asyncio
async def test_replicate_client_runs_sdk_with_mapped_model():
    with patch("uniai.services.providers.replicate_client.replicate.Client") as client_cls:
        sdk = MagicMock()
        sdk.run.return_value = ["https://r/1.png"]
        client_cls.return_value = sdk

        client = ReplicateImageClient("r8_token", timeout=45)
        images = await client.generate("p", [], GenerationParams(seed=3), "flux-schnell")

    assert images == ["https://r/1.png"]
    client_cls.assert_called_once_with(api_token="r8_token", timeout=httpx.Timeout(45))
    assert sdk.run.call_args.args == ("black-forest-labs/flux-schnell",)
    assert sdk.run.call_args.kwargs["input"] == {"prompt": "p", "aspect_ratio": "1:1", "seed": 3}


@pytest.mark.asyncio
async def test_replicate_client_empty_output_raises_normalization_error():
    with patch("uniai.services.providers.replicate_client.replicate.Client") as client_cls:
        client_cls.return_value.run.return_value = []

        with pytest.raises(NormalizationError):
            await ReplicateImageClient("t").generate("p", [], GenerationParams(), "flux-dev")


def test_build_client_passes_http_timeout_to_every_client(settings):
    settings.http_timeout_seconds = 12.5

    for name in ("nano_banana", "duomi", "zimage", "replicate"):
        client = build_client(PROVIDERS_BY_NAME[name], "key", settings)
        assert client.timeout == 12.5


def test_classify_error():
    assert isinstance(classify_error(Exception("HTTP 429 Too Many")), ProviderRateLimitError)
    assert isinstance(classify_error(Exception("401 Unauthorized")), ProviderAuthError)
    assert isinstance(classify_error(Exception("NSFW content detected")), ContentPolicyError)
    generic = classify_error(Exception("model crashed"))
    assert type(generic) is ProviderError
