"""Model provider backed by the OpenAI SDK (and OpenAI-compatible endpoints)."""

import json
from typing import Any, Dict, Iterable, List, Optional, Sequence, cast

from openai import AsyncOpenAI, RateLimitError
from openai.types.chat import ChatCompletion, ChatCompletionToolParam

from toolcall_engine.engine_core import (
    BaseMessage,
    Completion,
    ModelMessage,
    ModelProvider,
    ProviderRateLimitedError,
    ToolCall,
    ToolDefinition,
    ToolMessage,
    UserMessage,
    get_logger,
)

logger = get_logger(__name__)

MAX_DESCRIPTION_LENGTH = 1024


class OpenAIProvider(ModelProvider):
    """
    ``ModelProvider`` implementation for OpenAI chat completion models.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model_name: str,
        temp: float = 1.0,
        max_tokens: int = 3000,
        max_retries: int = 3,
        base_retry_delay: float = 1.0,
    ):
        """
        Initializes the OpenAI provider.

        Args:
            client: The initialized AsyncOpenAI client.
            model_name: Default model identifier (e.g. 'gpt-4o-mini').
            temp: Sampling temperature.
            max_tokens: Maximum number of tokens to generate per call.
            max_retries: Retries for transient API errors.
            base_retry_delay: Initial backoff delay in seconds.
        """
        super().__init__(max_retries=max_retries, base_retry_delay=base_retry_delay)
        self.client: AsyncOpenAI = client
        self.model: str = model_name
        self.temperature = temp
        self.max_tokens = max_tokens

    async def _generate_impl(
        self,
        messages: Sequence[BaseMessage],
        tools: Sequence[ToolDefinition],
        system_instruction: str,
        model: Optional[str],
    ) -> Completion:
        model_name = model or self.model
        openai_messages = self._convert_messages(messages, system_instruction)
        tool_params = self._build_tools(tools)

        kwargs: Dict[str, Any] = {
            "model": model_name,
            "messages": cast(Iterable[Any], openai_messages),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if tool_params:
            kwargs["tools"] = tool_params

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except RateLimitError as e:
            raise ProviderRateLimitedError(str(e)) from e

        return self._build_completion(response, model_name)

    @staticmethod
    def _build_tools(tools: Sequence[ToolDefinition]) -> List[ChatCompletionToolParam]:
        """Convert tool definitions into OpenAI function tools."""
        return [
            cast(
                ChatCompletionToolParam,
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description[:MAX_DESCRIPTION_LENGTH],
                        "parameters": tool.parameters,
                    },
                },
            )
            for tool in tools
        ]

    @staticmethod
    def _convert_messages(messages: Sequence[BaseMessage], system_instruction: str) -> List[Dict[str, Any]]:
        """
        Converts the generic conversation into OpenAI message dictionaries.

        The generic conversation carries no call ids, so ids are synthesized
        for every model tool call and handed to the following tool messages
        in order.

        Args:
            messages: The running conversation.
            system_instruction: System prompt placed first.

        Returns:
            List of OpenAI message dictionaries.
        """
        openai_messages: List[Dict[str, Any]] = []
        if system_instruction:
            openai_messages.append({"role": "system", "content": system_instruction})

        pending_ids: List[str] = []
        for index, msg in enumerate(messages):
            if isinstance(msg, UserMessage):
                openai_messages.append({"role": "user", "content": msg.content})
            elif isinstance(msg, ModelMessage):
                entry: Dict[str, Any] = {"role": "assistant", "content": msg.content or None}
                if msg.tool_calls:
                    pending_ids = [f"call_{index}_{i}" for i in range(len(msg.tool_calls))]
                    entry["tool_calls"] = [
                        {
                            "id": call_id,
                            "type": "function",
                            "function": {"name": call.name, "arguments": json.dumps(call.args, ensure_ascii=False)},
                        }
                        for call_id, call in zip(pending_ids, msg.tool_calls)
                    ]
                openai_messages.append(entry)
            elif isinstance(msg, ToolMessage):
                call_id = pending_ids.pop(0) if pending_ids else f"call_{index}_orphan"
                openai_messages.append({"role": "tool", "tool_call_id": call_id, "content": msg.content})
        return openai_messages

    @staticmethod
    def _build_completion(response: ChatCompletion, model_name: str) -> Completion:
        """Extract text and native tool calls from a chat completion."""
        if not response.choices:
            logger.warning("OpenAI response has no choices.")
            return Completion(text="", used_model=response.model or model_name)

        message = response.choices[0].message
        calls = []
        for tool_call in message.tool_calls or []:
            if tool_call.type != "function":
                continue
            try:
                args = json.loads(tool_call.function.arguments or "{}")
            except json.JSONDecodeError:
                logger.warning(f"Could not decode arguments for '{tool_call.function.name}', using empty arguments.")
                args = {}
            calls.append(ToolCall(name=tool_call.function.name, args=args if isinstance(args, dict) else {}))

        return Completion(text=message.content or "", function_calls=calls, used_model=response.model or model_name)
