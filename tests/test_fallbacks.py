import pytest

from toolcall_engine.engine_core import GeoPoint
from toolcall_engine.engine_core.config import CoordinatePolicy, EmptyResultRetry
from toolcall_engine.engine_core.tools import ToolResult
from toolcall_engine.engine_core.tools.fallbacks import (
    empty_result_hint,
    is_not_found,
    is_suspiciously_empty,
    not_found_message,
    plan_retry,
)


@pytest.mark.parametrize("text", ["", "   ", "[]", "{}", '{"items": []}', '{"data": [], "page": 1}', '{"length": 0}', "ok"])
def test_suspiciously_empty(text):
    assert is_suspiciously_empty(ToolResult.from_text(text))


def test_substantial_results_are_not_empty():
    text = '[{"id": 1, "name": "A place with a reasonably long name", "city": "Recife"}]'
    assert not is_suspiciously_empty(ToolResult.from_text(text))
    assert not is_suspiciously_empty(ToolResult.from_text("[]", is_error=True))


def test_is_not_found():
    assert is_not_found(ToolResult.from_text("Tool 'x' not found in registry.", is_error=True), ["x"])
    assert is_not_found(ToolResult.from_text("Unknown tool: x", is_error=True))
    assert not is_not_found(ToolResult.from_text("not found", is_error=False), ["x"])
    assert not is_not_found(ToolResult.from_text("timeout", is_error=True), ["x"])


def test_missing_record_is_not_a_missing_tool():
    result = ToolResult.from_text("Error: record 42 not found", is_error=True)
    assert not is_not_found(result, ["api__get_item", "get_item"])


def test_not_found_message_lists_available_tools():
    message = not_found_message("serch", ["search_items", "get_item"])
    assert message == (
        "[SYSTEM ERROR]: Tool 'serch' does not exist. You MUST use one of the following available "
        "tools: [search_items, get_item]. Retry now using the correct tool name."
    )


def test_empty_result_hint():
    hint = empty_result_hint({"query": "São Paulo", "limit": 10})
    assert hint.startswith('[SYSTEM HINT]: The search returned NO results for "São Paulo".')
    assert empty_result_hint({"limit": 10, "query": " "}) is None


def test_plan_retry_drops_and_broadens():
    rules = [
        EmptyResultRetry(tools=["get_*"], overrides={"x": 1}),
        EmptyResultRetry(tools=["search_*"], drop=["city"], broaden="query"),
    ]
    args = {"query": "red running shoes", "city": "Recife"}
    assert plan_retry(rules, "api__search_items", args) == {"query": "red"}
    assert args == {"query": "red running shoes", "city": "Recife"}


def test_plan_retry_without_effect_returns_none():
    rules = [EmptyResultRetry(broaden="query")]
    assert plan_retry(rules, "search", {"query": "single"}) is None
    assert plan_retry([], "search", {"query": "a b"}) is None


def test_plan_retry_swaps_in_fallback_location():
    coordinates = CoordinatePolicy(fallback=GeoPoint(latitude=1.0, longitude=2.0))
    rules = [EmptyResultRetry(use_fallback_location=True)]
    retry = plan_retry(rules, "nearby", {"lat": 9.0, "lng": 9.0, "q": "x"}, coordinates)
    assert retry == {"lat": 1.0, "lng": 2.0, "q": "x"}
