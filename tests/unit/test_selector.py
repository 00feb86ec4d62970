"""Tests for model catalogue parsing and size-based selection."""
import pytest

from lexrag.generation.selector import (
    ModelCapacity,
    ModelDescriptor,
    ModelSelector,
    parse_models,
)

SMALL_A = ModelDescriptor("small-a", ModelCapacity.SMALL)
LARGE_A = ModelDescriptor("large-a", ModelCapacity.LARGE)
LARGE_B = ModelDescriptor("large-b", ModelCapacity.LARGE)
SMALL_B = ModelDescriptor("small-b", ModelCapacity.SMALL)


@pytest.fixture
def selector():
    return ModelSelector([SMALL_A, LARGE_A, LARGE_B, SMALL_B], large_context_threshold=5000)


def test_parse_models_keeps_order_and_capacity():
    models = parse_models("llama3.1-8b:small, llama-3.3-70b:LARGE ,plain")

    assert models == [
        ModelDescriptor("llama3.1-8b", ModelCapacity.SMALL),
        ModelDescriptor("llama-3.3-70b", ModelCapacity.LARGE),
        ModelDescriptor("plain", ModelCapacity.SMALL),
    ]


def test_parse_models_drops_duplicates():
    assert [m.identifier for m in parse_models("a:small,b:large,a:large")] == ["a", "b"]


@pytest.mark.parametrize("spec", ["", " , ", None])
def test_parse_models_requires_a_model(spec):
    with pytest.raises(ValueError):
        parse_models(spec)


def test_parse_models_rejects_unknown_capacity():
    with pytest.raises(ValueError):
        parse_models("a:huge")


def test_small_prompt_prefers_small_model(selector):
    assert selector.select(100) == SMALL_A


def test_threshold_is_exclusive(selector):
    assert selector.select(5000) == SMALL_A
    assert selector.select(5001) == LARGE_A


def test_select_skips_failed_models(selector):
    assert selector.select(6000, failed={"large-a"}) == LARGE_B
    assert selector.select(100, failed={"small-a", "small-b"}) == LARGE_A


def test_select_returns_none_when_everything_failed(selector):
    assert selector.select(100, failed={"small-a", "small-b", "large-a", "large-b"}) is None


def test_candidates_cover_every_model_once(selector):
    small = selector.candidates(100)
    large = selector.candidates(9000)

    assert small == [SMALL_A, SMALL_B, LARGE_A, LARGE_B]
    assert large == [LARGE_A, LARGE_B, SMALL_A, SMALL_B]


def test_priority_order_is_configured_order(selector):
    assert selector.priority_order() == [SMALL_A, LARGE_A, LARGE_B, SMALL_B]


def test_default_catalogue_comes_from_config():
    selector = ModelSelector()

    assert selector.models
    assert selector.select(0) is not None
