"""Result normalizer tests.

Each strategy is exercised on its own, then the ordered strategy lists per
response shape.
"""

from uniai.services.normalizer import (
    FALLBACK_STRATEGIES,
    CallableStrategy,
    FieldStrategy,
    ResponseShape,
    coerce_urls,
    normalize_images,
    strategies_for,
)


def test_field_strategy_reads_list_of_strings():
    assert FieldStrategy("images").extract({"images": ["a", "b"]}) == ["a", "b"]


def test_field_strategy_reads_single_string():
    assert FieldStrategy("image_url").extract({"image_url": "a"}) == ["a"]


def test_field_strategy_reads_objects_with_url_like_keys():
    payload = {"images": [{"url": "a"}, {"src": "b"}, {"image_url": "c"}, {"image": "d"}]}
    assert FieldStrategy("images").extract(payload) == ["a", "b", "c", "d"]


def test_field_strategy_walks_nested_path():
    payload = {"data": {"data": {"images": [{"url": "https://x/1.png"}]}}}
    strategy = FieldStrategy("data", "data", "images")
    assert strategy.name == "data.data.images"
    assert strategy.extract(payload) == ["https://x/1.png"]


def test_field_strategy_missing_field_yields_nothing():
    assert FieldStrategy("data", "images").extract({"data": "not-a-dict"}) == []
    assert FieldStrategy("images").extract(None) == []


def test_coerce_urls_drops_empty_and_unrecognized_entries():
    assert coerce_urls(["a", "", None, {"foo": "bar"}, {"url": "b"}]) == ["a", "b"]


def test_callable_strategy_uses_function():
    strategy = CallableStrategy("constant", lambda payload: ["x"])
    assert strategy.extract({}) == ["x"]


def test_fallback_order_examples():
    assert normalize_images({"images": ["a", "b"]}) == ["a", "b"]
    assert normalize_images({"image_url": "a"}) == ["a"]
    assert normalize_images({"nothing": "here"}) == []


def test_first_matching_strategy_wins():
    # images precedes image_url in the fallback list
    payload = {"image_url": "later", "images": ["first"]}
    assert normalize_images(payload) == ["first"]


def test_empty_strategy_result_falls_through():
    payload = {"images": [], "image_urls": ["b"]}
    assert normalize_images(payload) == ["b"]


def test_repeated_urls_keep_first_occurrence():
    assert normalize_images({"images": ["a", "b", "a", ""]}) == ["a", "b"]


def test_openai_data_shape():
    payload = {"created": 1, "data": [{"url": "https://x/1.png"}, {"url": "https://x/2.png"}]}
    assert normalize_images(payload, ResponseShape.OPENAI_DATA) == [
        "https://x/1.png",
        "https://x/2.png",
    ]


def test_task_result_shape_prefers_nested_images():
    payload = {
        "code": 200,
        "data": {
            "state": "succeeded",
            "data": {"images": [{"url": "https://d/1.png"}]},
            "image_url": "https://d/other.png",
        },
    }
    assert normalize_images(payload, ResponseShape.TASK_RESULT) == ["https://d/1.png"]


def test_task_result_shape_flat_variants():
    assert normalize_images(
        {"data": {"state": "done", "image_urls": ["u1", "u2"]}}, ResponseShape.TASK_RESULT
    ) == ["u1", "u2"]
    assert normalize_images(
        {"data": {"state": "done", "url": "u1"}}, ResponseShape.TASK_RESULT
    ) == ["u1"]


def test_chat_content_shape_keeps_image_parts_only():
    payload = {
        "output": {
            "choices": [
                {
                    "message": {
                        "role": "assistant",
                        "content": [
                            {"image": "https://z/1.png"},
                            {"text": "a caption"},
                            {"type": "image_url", "image_url": {"url": "https://z/2.png"}},
                        ],
                    }
                }
            ]
        }
    }
    assert normalize_images(payload, ResponseShape.CHAT_CONTENT) == [
        "https://z/1.png",
        "https://z/2.png",
    ]


def test_replicate_output_shape():
    class FileOutput:
        def __str__(self):
            return "https://r/file.png"

    assert normalize_images("https://r/1.png", ResponseShape.REPLICATE_OUTPUT) == [
        "https://r/1.png"
    ]
    assert normalize_images(
        ["https://r/1.png", FileOutput()], ResponseShape.REPLICATE_OUTPUT
    ) == ["https://r/1.png", "https://r/file.png"]


def test_every_shape_ends_with_shared_fallbacks():
    for shape in ResponseShape:
        strategies = strategies_for(shape)
        assert strategies[-len(FALLBACK_STRATEGIES):] == FALLBACK_STRATEGIES
        assert len(strategies) > len(FALLBACK_STRATEGIES)
