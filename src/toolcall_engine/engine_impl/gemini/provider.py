"""Model provider backed by the Google GenAI SDK."""

from typing import Any, Dict, List, Optional, Sequence

from google.genai import errors as genai_errors
from google.genai import types
from google.genai.client import AsyncClient
from google.genai.types import GenerateContentResponse

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

from .schema_sanitizer import sanitize

logger = get_logger(__name__)


class GeminiProvider(ModelProvider):
    """
    ``ModelProvider`` implementation for Google's Gemini models.

    Automatic function calling of the SDK is disabled: the engine's execution
    loop decides what runs.
    """

    def __init__(
        self,
        aclient: AsyncClient,
        model_name: str,
        temp: float = 1.0,
        max_tokens: int = 3000,
        max_retries: int = 3,
        base_retry_delay: float = 1.0,
    ):
        """
        Initializes the Gemini provider.

        Args:
            aclient: The initialized async Google GenAI client.
            model_name: Default Gemini model (e.g. 'gemini-flash-latest').
            temp: Sampling temperature.
            max_tokens: Maximum number of output tokens per call.
            max_retries: Retries for transient API errors.
            base_retry_delay: Initial backoff delay in seconds.
        """
        super().__init__(max_retries=max_retries, base_retry_delay=base_retry_delay)
        self.client: AsyncClient = aclient
        self.model: str = model_name
        self.temperature = temp
        self.max_tokens = max_tokens
        logger.info(f"Initialized GeminiProvider with model='{model_name}', temp={temp}, max_tokens={max_tokens}")

    async def _generate_impl(
        self,
        messages: Sequence[BaseMessage],
        tools: Sequence[ToolDefinition],
        system_instruction: str,
        model: Optional[str],
    ) -> Completion:
        model_name = model or self.model
        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=self.temperature,
            max_output_tokens=self.max_tokens,
            tools=self._build_tools(tools),
            automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
        )

        logger.debug(f"Calling Gemini (model={model_name}) with {len(messages)} message(s) and {len(tools)} tool(s)")
        try:
            response = await self.client.models.generate_content(
                model=model_name,
                contents=self._convert_messages(messages),  # type: ignore[arg-type]
                config=config,
            )
        except genai_errors.APIError as e:
            if e.code == 429:
                raise ProviderRateLimitedError(str(e)) from e
            logger.error(f"Error calling Gemini: {e}", exc_info=True)
            raise

        return self._build_completion(response, model_name)

    @staticmethod
    def _build_tools(tools: Sequence[ToolDefinition]) -> Optional[List[types.Tool]]:
        """Wrap the tool definitions into a single Gemini ``Tool``."""
        if not tools:
            return None
        declarations = [
            types.FunctionDeclaration(
                name=tool.name,
                description=tool.description,
                parameters=sanitize(tool.parameters) if tool.properties else None,  # type: ignore[arg-type]
            )
            for tool in tools
        ]
        return [types.Tool(function_declarations=declarations)]

    @staticmethod
    def _convert_messages(messages: Sequence[BaseMessage]) -> List[types.Content]:
        """
        Converts the generic conversation into Gemini ``Content`` objects.

        Consecutive tool messages are merged into one user turn holding all
        function responses, as Gemini expects.

        Args:
            messages: The running conversation.

        Returns:
            List of Gemini Content objects.
        """
        contents: List[types.Content] = []
        for msg in messages:
            if isinstance(msg, UserMessage):
                contents.append(types.Content(role="user", parts=[types.Part(text=msg.content)]))
            elif isinstance(msg, ModelMessage):
                parts = [types.Part(text=msg.content)] if msg.content else []
                parts.extend(
                    types.Part(function_call=types.FunctionCall(name=call.name, args=dict(call.args)))
                    for call in msg.tool_calls
                )
                if parts:
                    contents.append(types.Content(role="model", parts=parts))
            elif isinstance(msg, ToolMessage):
                key = "error" if msg.is_error else "result"
                part = types.Part(
                    function_response=types.FunctionResponse(name=msg.name, response={key: msg.content})
                )
                last = contents[-1] if contents else None
                if last is not None and last.parts and all(p.function_response for p in last.parts):
                    last.parts.append(part)
                else:
                    contents.append(types.Content(role="user", parts=[part]))
        return contents

    @staticmethod
    def _build_completion(response: GenerateContentResponse, model_name: str) -> Completion:
        """Extract text and native function calls from a Gemini response."""
        parts: List[Any] = []
        if response.candidates and response.candidates[0].content and response.candidates[0].content.parts:
            parts = list(response.candidates[0].content.parts)

        text = "".join(p.text for p in parts if p.text and not getattr(p, "thought", False))
        calls = []
        for part in parts:
            function_call = part.function_call
            if function_call and function_call.name:
                args: Dict[str, Any] = dict(function_call.args or {})
                calls.append(ToolCall(name=function_call.name, args=args))

        return Completion(
            text=text,
            function_calls=calls,
            used_model=getattr(response, "model_version", None) or model_name,
        )
