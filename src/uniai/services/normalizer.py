"""Result normalization for heterogeneous provider payloads.

Every provider reports generated images in its own shape. Each known shape is a
member of ``ResponseShape`` and owns an ordered list of primary extraction
strategies; a shared list of fallback strategies covers the field names
providers commonly drift to. ``normalize_images`` tries them in order and stops
at the first strategy that yields at least one URL.

Strategies are plain named objects so each one can be tested on its own::

    >>> FieldStrategy("images").extract({"images": ["a", "b"]})
    ['a', 'b']
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Sequence

URL_KEYS = ("url", "image_url", "src", "image")


def _url_from_item(item: Any) -> str | None:
    """Read a URL from a string or from the first URL-like key of an object."""
    if isinstance(item, str):
        return item or None
    if isinstance(item, dict):
        for key in URL_KEYS:
            value = item.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, dict) and isinstance(value.get("url"), str) and value["url"]:
                return value["url"]
    return None


def coerce_urls(value: Any) -> list[str]:
    """Turn a string, an object, or a list of either into a list of URLs."""
    if value is None:
        return []
    if isinstance(value, list):
        urls = [_url_from_item(item) for item in value]
        return [url for url in urls if url]
    url = _url_from_item(value)
    return [url] if url else []


def _dig(payload: Any, path: Sequence[str]) -> Any:
    current = payload
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


class FieldStrategy:
    """Read URLs from a (possibly nested) field.

    ``path`` components are dict keys walked from the payload root.
    """

    def __init__(self, *path: str):
        self.path = path

    @property
    def name(self) -> str:
        return ".".join(self.path)

    def extract(self, payload: Any) -> list[str]:
        return coerce_urls(_dig(payload, self.path))

    def __repr__(self) -> str:
        return f"FieldStrategy({self.name!r})"


@dataclass(frozen=True)
class CallableStrategy:
    """Wrap a custom extraction function under a readable name."""

    name: str
    func: Callable[[Any], list[str]]

    def extract(self, payload: Any) -> list[str]:
        return self.func(payload)


def _chat_image_parts(payload: Any) -> list[str]:
    """Collect image-typed content parts from ``output.choices[].message.content[]``."""
    output = payload.get("output", payload) if isinstance(payload, dict) else None
    choices = output.get("choices") if isinstance(output, dict) else None
    if not isinstance(choices, list):
        return []

    urls: list[str] = []
    for choice in choices:
        content = _dig(choice, ("message", "content"))
        if not isinstance(content, list):
            continue
        for part in content:
            if not isinstance(part, dict):
                continue
            part_type = part.get("type")
            if part_type not in (None, "image", "image_url"):
                continue
            image = part.get("image", part.get("image_url"))
            if isinstance(image, dict):
                image = image.get("url")
            if isinstance(image, str) and image:
                urls.append(image)
    return urls


def _sdk_output(payload: Any) -> list[str]:
    """Replicate returns a URL, a file object, or a list of either."""
    if isinstance(payload, (list, tuple)):
        items = payload
    elif payload is None:
        items = []
    else:
        items = [payload]
    urls = []
    for item in items:
        if isinstance(item, (str, dict)):
            url = _url_from_item(item)
        else:
            # FileOutput and similar SDK wrappers render as their URL
            url = str(item)
        if url:
            urls.append(url)
    return urls


class ResponseShape(str, Enum):
    """Known provider success payload variants."""

    OPENAI_DATA = "openai_data"  # {"data": [{"url": ...}]}
    TASK_RESULT = "task_result"  # {"data": {"state": ..., "data": {"images": [...]}}}
    CHAT_CONTENT = "chat_content"  # {"output": {"choices": [{"message": {"content": [...]}}]}}
    REPLICATE_OUTPUT = "replicate_output"  # "https://..." or ["https://...", ...]


FALLBACK_STRATEGIES: tuple = (
    FieldStrategy("images"),
    FieldStrategy("image_urls"),
    FieldStrategy("image_url"),
    FieldStrategy("url"),
)

PRIMARY_STRATEGIES: dict[ResponseShape, tuple] = {
    ResponseShape.OPENAI_DATA: (FieldStrategy("data"),),
    ResponseShape.TASK_RESULT: (
        FieldStrategy("data", "data", "images"),
        FieldStrategy("data", "data", "image_urls"),
        FieldStrategy("data", "data"),
        FieldStrategy("data", "images"),
        FieldStrategy("data", "image_urls"),
        FieldStrategy("data", "image_url"),
        FieldStrategy("data", "url"),
    ),
    ResponseShape.CHAT_CONTENT: (CallableStrategy("output.choices.content", _chat_image_parts),),
    ResponseShape.REPLICATE_OUTPUT: (CallableStrategy("sdk_output", _sdk_output),),
}


def strategies_for(shape: ResponseShape) -> tuple:
    """Full ordered strategy list for a response shape: primary, then fallbacks."""
    return PRIMARY_STRATEGIES[shape] + FALLBACK_STRATEGIES


def _unique(urls: list[str]) -> list[str]:
    seen: set[str] = set()
    unique = []
    for url in urls:
        if url not in seen:
            seen.add(url)
            unique.append(url)
    return unique


def normalize_images(payload: Any, shape: ResponseShape | None = None) -> list[str]:
    """Extract the ordered image URL list from a provider payload.

    Args:
        payload: Decoded provider success payload
        shape: Provider response variant; None tries only the fallback fields

    Returns:
        URLs from the first matching strategy, empty entries and repeats
        removed. An empty list means no strategy matched.
    """
    strategies = strategies_for(shape) if shape is not None else FALLBACK_STRATEGIES
    for strategy in strategies:
        urls = strategy.extract(payload)
        if urls:
            return _unique(urls)
    return []
