import pytest
from unittest.mock import AsyncMock, MagicMock
from typing import Any
from google.genai import errors as genai_errors
from google.genai import types

from toolcall_engine.engine_core import (
    ModelMessage,
    ProviderRateLimitedError,
    ToolCall,
    ToolDefinition,
    ToolMessage,
    UserMessage,
)
from toolcall_engine.engine_impl import GeminiProvider
from toolcall_engine.engine_impl.gemini import schema_sanitizer


def _response(*parts: types.Part, model_version: Any = "gemini-test-001") -> types.GenerateContentResponse:
    return types.GenerateContentResponse(
        candidates=[types.Candidate(content=types.Content(role="model", parts=list(parts)))],
        model_version=model_version,
    )


@pytest.fixture
def aclient() -> Any:
    client = MagicMock()
    client.models.generate_content = AsyncMock()
    return client


@pytest.fixture
def tools() -> list:
    return [
        ToolDefinition(
            name="search_items",
            description="Search.",
            parameters={
                "type": "object",
                "properties": {"query": {"type": "string", "const": "x"}},
                "required": ["query"],
                "additionalProperties": False,
            },
        ),
        ToolDefinition(name="ping", description="Ping."),
    ]


@pytest.mark.asyncio
async def test_generate_returns_text_and_calls(aclient: Any, tools: list) -> None:
    aclient.models.generate_content.return_value = _response(
        types.Part(text="thinking...", thought=True),
        types.Part(text="Let me search."),
        types.Part(function_call=types.FunctionCall(name="search_items", args={"query": "pizza"})),
    )
    provider = GeminiProvider(aclient, "gemini-default", temp=0.2, max_tokens=100)

    completion = await provider.generate([UserMessage(content="hi")], tools, "be helpful")

    assert completion.text == "Let me search."
    assert completion.function_calls == [ToolCall("search_items", {"query": "pizza"})]
    assert completion.used_model == "gemini-test-001"

    kwargs = aclient.models.generate_content.call_args.kwargs
    assert kwargs["model"] == "gemini-default"
    config = kwargs["config"]
    assert config.system_instruction == "be helpful"
    assert config.temperature == 0.2
    assert config.max_output_tokens == 100
    assert config.automatic_function_calling.disable is True
    declarations = config.tools[0].function_declarations
    assert [d.name for d in declarations] == ["search_items", "ping"]
    assert declarations[1].parameters is None


@pytest.mark.asyncio
async def test_model_override_and_fallback_model_name(aclient: Any) -> None:
    aclient.models.generate_content.return_value = _response(types.Part(text="ok"), model_version=None)
    provider = GeminiProvider(aclient, "gemini-default")

    completion = await provider.generate([UserMessage(content="hi")], [], "", model="gemini-other")

    assert aclient.models.generate_content.call_args.kwargs["model"] == "gemini-other"
    assert aclient.models.generate_content.call_args.kwargs["config"].tools is None
    assert completion.used_model == "gemini-other"


@pytest.mark.asyncio
async def test_rate_limit_is_not_retried(aclient: Any) -> None:
    aclient.models.generate_content.side_effect = genai_errors.ClientError(
        429, {"error": {"code": 429, "message": "Resource exhausted", "status": "RESOURCE_EXHAUSTED"}}
    )
    provider = GeminiProvider(aclient, "gemini-default", max_retries=3, base_retry_delay=0.0)

    with pytest.raises(ProviderRateLimitedError):
        await provider.generate([UserMessage(content="hi")], [], "")
    assert aclient.models.generate_content.await_count == 1


def test_convert_messages_groups_function_responses() -> None:
    messages = [
        UserMessage(content="find pizza"),
        ModelMessage(content="", tool_calls=[ToolCall("a", {"x": 1}), ToolCall("b", {})]),
        ToolMessage(name="a", content="[1]"),
        ToolMessage(name="b", content="Error: boom", is_error=True),
        ModelMessage(content="Done."),
    ]
    contents = GeminiProvider._convert_messages(messages)

    assert [c.role for c in contents] == ["user", "model", "user", "model"]
    assert [p.function_call.name for p in contents[1].parts] == ["a", "b"]
    responses = [p.function_response for p in contents[2].parts]
    assert responses[0].name == "a" and responses[0].response == {"result": "[1]"}
    assert responses[1].response == {"error": "Error: boom"}
    assert contents[3].parts[0].text == "Done."


def test_sanitizer_strips_gemini_unsupported_keywords() -> None:
    schema = {
        "type": "object",
        "properties": {
            "const": {"type": "string", "const": "x", "examples": ["x"]},
            "nested": {"type": "object", "properties": {"a": {"type": "string"}}, "additionalProperties": False},
        },
        "required": ["const", "ghost"],
        "additionalProperties": False,
    }
    sanitized = schema_sanitizer.sanitize(schema)

    assert "additionalProperties" not in sanitized
    assert sanitized["properties"]["const"] == {"type": "string"}
    assert "additionalProperties" not in sanitized["properties"]["nested"]
    assert sanitized["required"] == ["const"]
    assert schema["additionalProperties"] is False


def test_sanitizer_drops_empty_required() -> None:
    sanitized = schema_sanitizer.sanitize({"type": "object", "properties": {}, "required": ["x"]})
    assert "required" not in sanitized
