import json

import pytest

from conftest import RecordingBackend, ScriptedProvider
from toolcall_engine.engine_core import (
    Completion,
    EngineConfig,
    ExecutionLoop,
    ModelMessage,
    ProviderRateLimitedError,
    SessionContext,
    ToolCall,
    ToolDefinition,
    ToolNotFoundError,
    ToolResult,
    UserMessage,
)
from toolcall_engine.engine_core.config import EmptyResultRetry
from toolcall_engine.engine_core.tools.tool_loop import build_system_instruction, is_rate_limited

SEARCH = "api_7f3a__search_items"
DETAIL = "api_7f3a__get_item"


def _places(count=20):
    return [{"id": i, "name": f"Pizza place number {i}"} for i in range(count)]


@pytest.fixture
def backend(search_tool, detail_tool):
    return RecordingBackend(
        [search_tool, detail_tool],
        {
            SEARCH: lambda **kwargs: _places(),
            DETAIL: lambda item_id: {"id": item_id, "name": "Pizza place", "address": "Rua das Flores, 123"},
        },
    )


def _loop(provider, backend, config=None):
    return ExecutionLoop(provider=provider, backend=backend, config=config)


@pytest.mark.asyncio
async def test_native_call_then_answer(backend):
    provider = ScriptedProvider(
        [
            Completion(function_calls=[ToolCall("search_items", {"query": "pizza"})], used_model="model-a"),
            Completion(text="Here are some places."),
        ]
    )
    outcome = await _loop(provider, backend).run(user_message="pizza please", tools=await backend.list_tools())

    assert outcome.text == "Here are some places."
    assert outcome.turns == 2
    assert outcome.used_model == "model-a"
    assert not outcome.degraded

    name, args = backend.calls[0]
    assert name == SEARCH
    assert args == {"query": "pizza", "limit": 10, "page": 1, "isRecommended": True}

    first = provider.requests[0]
    assert [t.name for t in first["tools"]] == ["search_items", "get_item"]
    assert "search_items, get_item" in first["system_instruction"]
    assert provider.requests[1]["model"] == "model-a"

    assert [m.role for m in outcome.messages] == ["user", "model", "tool", "model"]
    tool_message = outcome.messages[2]
    assert tool_message.name == "search_items"
    assert json.loads(tool_message.content)["_totalItems"] == 20
    assert len(json.loads(tool_message.content)["items"]) == 5

    [item] = outcome.gathered_data
    assert item.tool == SEARCH
    assert item.args == args
    assert len(json.loads(item.result.text)["items"]) == 15


@pytest.mark.asyncio
async def test_call_written_as_text_is_recovered(backend):
    provider = ScriptedProvider([Completion(text='Searching. search_items(query="pizza")'), Completion(text="ok")])
    outcome = await _loop(provider, backend).run(user_message="pizza", tools=await backend.list_tools())

    assert backend.calls[0][1]["query"] == "pizza"
    model_turn = outcome.messages[1]
    assert model_turn.content == "Searching."
    assert model_turn.tool_calls == [ToolCall("search_items", {"query": "pizza"})]
    assert outcome.text == "ok"


@pytest.mark.asyncio
async def test_unknown_tool_gets_corrective_message(backend):
    provider = ScriptedProvider([Completion(function_calls=[ToolCall("serch", {"q": "x"})]), Completion(text="sorry")])
    outcome = await _loop(provider, backend).run(user_message="x", tools=await backend.list_tools())

    assert backend.calls == []
    tool_message = outcome.messages[2]
    assert tool_message.is_error
    assert tool_message.content.startswith("[SYSTEM ERROR]: Tool 'serch' does not exist.")
    assert "[search_items, get_item]" in tool_message.content
    assert outcome.gathered_data[0].tool == "serch"


@pytest.mark.asyncio
async def test_missing_required_arguments_are_not_executed(backend):
    provider = ScriptedProvider([Completion(function_calls=[ToolCall("search_items", {"query": ""})])])
    outcome = await _loop(provider, backend).run(user_message="find stuff", tools=await backend.list_tools())

    assert backend.calls == []
    payload = json.loads(outcome.messages[2].content)
    assert payload["error"] == "MISSING_REQUIRED_PARAMS"
    assert payload["missing"] == ["query"]
    assert payload["tool"] == "search_items"


@pytest.mark.asyncio
async def test_backend_exception_becomes_error_result(search_tool):
    def explode(**kwargs):
        raise RuntimeError("boom")

    backend = RecordingBackend([search_tool], {SEARCH: explode})
    provider = ScriptedProvider([Completion(function_calls=[ToolCall("search_items", {"query": "x"})])])
    outcome = await _loop(provider, backend).run(user_message="x", tools=[search_tool])

    tool_message = outcome.messages[2]
    assert tool_message.is_error
    assert tool_message.content == "Error: boom"
    assert outcome.gathered_data[0].result.is_error
    assert outcome.text == "done"


@pytest.mark.asyncio
async def test_backend_not_found_error_is_rewritten(search_tool):
    backend = RecordingBackend(
        [search_tool], {SEARCH: lambda **kwargs: ToolResult.from_text(f"Tool '{SEARCH}' not found", is_error=True)}
    )
    provider = ScriptedProvider([Completion(function_calls=[ToolCall("search_items", {"query": "x"})])])
    outcome = await _loop(provider, backend).run(user_message="x", tools=[search_tool])
    assert outcome.messages[2].content.startswith("[SYSTEM ERROR]: Tool 'search_items' does not exist.")


@pytest.mark.asyncio
async def test_raised_tool_not_found_is_rewritten(search_tool):
    def missing(**kwargs):
        raise ToolNotFoundError("gone")

    backend = RecordingBackend([search_tool], {SEARCH: missing})
    provider = ScriptedProvider([Completion(function_calls=[ToolCall("search_items", {"query": "x"})])])
    outcome = await _loop(provider, backend).run(user_message="x", tools=[search_tool])
    assert outcome.messages[2].content.startswith("[SYSTEM ERROR]: Tool 'search_items' does not exist.")


@pytest.mark.asyncio
async def test_missing_record_error_is_passed_through(detail_tool):
    backend = RecordingBackend(
        [detail_tool], {DETAIL: lambda item_id: ToolResult.from_text(f"record {item_id} not found", is_error=True)}
    )
    provider = ScriptedProvider([Completion(function_calls=[ToolCall("get_item", {"item_id": 42})])])
    outcome = await _loop(provider, backend).run(user_message="x", tools=[detail_tool])

    assert outcome.messages[2].content == "record 42 not found"
    assert outcome.messages[2].is_error


@pytest.mark.asyncio
async def test_string_typed_pagination_does_not_block_the_call():
    tool = ToolDefinition(
        name="list_items",
        parameters={
            "type": "object",
            "properties": {"q": {"type": "string"}, "limit": {"type": "string"}},
            "required": ["q"],
        },
    )
    backend = RecordingBackend([tool], {"list_items": lambda **kwargs: _places(3)})
    provider = ScriptedProvider([Completion(function_calls=[ToolCall("list_items", {"q": "pizza"})])])
    await _loop(provider, backend).run(user_message="x", tools=[tool])

    assert backend.calls == [("list_items", {"q": "pizza", "limit": "10"})]


@pytest.mark.asyncio
async def test_empty_result_gets_normalization_hint(search_tool):
    backend = RecordingBackend([search_tool], {SEARCH: lambda **kwargs: []})
    provider = ScriptedProvider([Completion(function_calls=[ToolCall("search_items", {"query": "São Paulo"})])])
    outcome = await _loop(provider, backend).run(user_message="x", tools=[search_tool])

    content = outcome.messages[2].content
    assert content.startswith("[]\n[SYSTEM HINT]: The search returned NO results for \"São Paulo\".")
    assert not outcome.messages[2].is_error
    assert len(backend.calls) == 1


@pytest.mark.asyncio
async def test_empty_result_retries_once_with_broadened_arguments(search_tool):
    def search(query, **kwargs):
        return [] if " " in query else _places(3)

    backend = RecordingBackend([search_tool], {SEARCH: search})
    config = EngineConfig(empty_result_retries=[EmptyResultRetry(tools=["search_*"], broaden="query")])
    provider = ScriptedProvider([Completion(function_calls=[ToolCall("search_items", {"query": "pizza margherita"})])])
    outcome = await _loop(provider, backend, config).run(user_message="x", tools=[search_tool])

    assert [args["query"] for _, args in backend.calls] == ["pizza margherita", "pizza"]
    assert outcome.gathered_data[0].args["query"] == "pizza"
    assert "SYSTEM HINT" not in outcome.messages[2].content


@pytest.mark.asyncio
async def test_identifiers_flow_between_calls(backend):
    provider = ScriptedProvider(
        [
            Completion(function_calls=[ToolCall("search_items", {"query": "pizza"})]),
            Completion(function_calls=[ToolCall("get_item", {})]),
            Completion(text="The first place is on Rua das Flores."),
        ]
    )
    session = SessionContext()
    outcome = await _loop(provider, backend).run(user_message="x", tools=await backend.list_tools(), session=session)

    assert backend.calls[1] == (DETAIL, {"item_id": 0})
    assert session.accumulator.get("item_id") == 0
    assert outcome.turns == 3


@pytest.mark.asyncio
async def test_multiple_calls_in_one_turn_run_in_order(backend):
    provider = ScriptedProvider(
        [
            Completion(
                function_calls=[ToolCall("get_item", {"item_id": 3}), ToolCall("search_items", {"query": "a"})]
            )
        ]
    )
    outcome = await _loop(provider, backend).run(user_message="x", tools=await backend.list_tools())
    assert [name for name, _ in backend.calls] == [DETAIL, SEARCH]
    assert [m.name for m in outcome.messages if m.role == "tool"] == ["get_item", "search_items"]


@pytest.mark.asyncio
async def test_turn_limit_stops_the_loop(backend):
    calling = Completion(text="still working", function_calls=[ToolCall("get_item", {"item_id": 1})])
    provider = ScriptedProvider([calling, calling, calling])
    config = EngineConfig(max_turns=2)
    outcome = await _loop(provider, backend, config).run(user_message="x", tools=await backend.list_tools())

    assert outcome.turns == 2
    assert len(provider.requests) == 2
    assert outcome.text == "still working"
    assert len(outcome.gathered_data) == 2


@pytest.mark.asyncio
async def test_history_and_plan_thought_are_sent(backend):
    provider = ScriptedProvider([Completion(text="hi")])
    history = [UserMessage(content="earlier"), ModelMessage(content="answer")]
    await _loop(provider, backend).run(
        user_message="now", tools=await backend.list_tools(), history=history, plan_thought="search first"
    )

    messages = provider.requests[0]["messages"]
    assert [m.content for m in messages] == ["earlier", "answer", "now\n\n[EXECUTION PLAN]: search first"]


@pytest.mark.asyncio
async def test_colliding_names_expose_only_the_first_tool():
    first = ToolDefinition(name="svc_a__lookup", description="A")
    second = ToolDefinition(name="svc_b__lookup", description="B")
    backend = RecordingBackend([first, second], {"svc_a__lookup": lambda: "a" * 60, "svc_b__lookup": lambda: "b"})
    provider = ScriptedProvider([Completion(function_calls=[ToolCall("lookup", {})])])
    outcome = await _loop(provider, backend).run(user_message="x", tools=[first, second])

    assert [t.name for t in provider.requests[0]["tools"]] == ["lookup"]
    assert backend.calls == [("svc_a__lookup", {})]
    assert outcome.gathered_data[0].tool == "svc_a__lookup"


@pytest.mark.asyncio
async def test_rate_limit_degrades_gracefully(backend):
    config = EngineConfig()
    provider = ScriptedProvider([ProviderRateLimitedError("slow down")])
    outcome = await _loop(provider, backend, config).run(user_message="x", tools=await backend.list_tools())

    assert outcome.degraded
    assert outcome.text == config.rate_limit_message
    assert outcome.gathered_data == []


@pytest.mark.asyncio
async def test_rate_limit_after_tool_calls_keeps_gathered_data(backend):
    provider = ScriptedProvider(
        [Completion(function_calls=[ToolCall("get_item", {"item_id": 2})]), RuntimeError("429 RESOURCE_EXHAUSTED")]
    )
    outcome = await _loop(provider, backend).run(user_message="x", tools=await backend.list_tools())
    assert outcome.degraded
    assert outcome.text.startswith("System Limit Reached")
    assert len(outcome.gathered_data) == 1


@pytest.mark.asyncio
async def test_other_provider_errors_use_error_template(backend):
    provider = ScriptedProvider([RuntimeError("kaput")])
    outcome = await _loop(provider, backend).run(user_message="x", tools=await backend.list_tools())
    assert outcome.text == "I encountered an error processing your request: kaput"
    assert outcome.degraded


@pytest.mark.parametrize(
    "error, expected",
    [
        (ProviderRateLimitedError("x"), True),
        (RuntimeError("Quota exceeded for model"), True),
        (RuntimeError("Too Many Requests"), True),
        (RuntimeError("connection reset"), False),
    ],
)
def test_is_rate_limited(error, expected):
    assert is_rate_limited(error) is expected


def test_system_instruction_lists_tools():
    assert "Available tools: (none)." in build_system_instruction([])
    assert "Available tools: a, b." in build_system_instruction(["a", "b"])
