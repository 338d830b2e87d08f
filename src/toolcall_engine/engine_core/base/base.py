"""Core abstraction for model-completion providers."""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable, Coroutine, List, Optional, Sequence

from pydantic import BaseModel, Field

from ..exceptions import ProviderRateLimitedError
from ..logger import get_logger
from ..messages import BaseMessage
from ..tools.call_protocol import ToolCall
from ..tools.models import ToolDefinition

logger = get_logger(__name__)


class Completion(BaseModel):
    """Normalized output of one model call.

    Attributes:
        text: Text content returned by the model.
        function_calls: Native tool calls, using the sanitized tool names.
        used_model: Model that actually produced the answer, if the provider reports it.
    """

    text: str = ""
    function_calls: List[ToolCall] = Field(default_factory=list)
    used_model: Optional[str] = None


class ModelProvider(ABC):
    """Abstract base class for model providers.

    Implementations translate the provider-agnostic conversation into their
    SDK's format in ``_generate_impl``. Transient failures are retried with
    exponential backoff, rate-limit errors are raised immediately.
    """

    def __init__(self, max_retries: int = 3, base_retry_delay: float = 1.0):
        self.max_retries = max_retries
        self.base_retry_delay = base_retry_delay

    async def _execute_with_retry(
        self, func: Callable[..., Coroutine[Any, Any, Completion]], *args: Any, **kwargs: Any
    ) -> Completion:
        """
        Executes a function with retry logic.

        Args:
            func: The asynchronous function to execute.
            *args: Positional arguments for the function.
            **kwargs: Keyword arguments for the function.

        Returns:
            The result of the function call.

        Raises:
            ProviderRateLimitedError: Immediately, without retrying.
            Exception: The last encountered exception if all retries fail.
        """
        delay = self.base_retry_delay
        for attempt in range(self.max_retries + 1):
            try:
                return await func(*args, **kwargs)
            except ProviderRateLimitedError:
                raise
            except Exception as e:
                if attempt == self.max_retries:
                    raise e

                logger.warning(f"API Error (Retry: {attempt + 1}/{self.max_retries}): {e}. Waiting {delay}s...")
                await asyncio.sleep(delay)
                delay *= 2

        msg = f"Failed to get response after {self.max_retries} retries."
        logger.error(msg)
        raise TimeoutError(msg)

    async def generate(
        self,
        messages: Sequence[BaseMessage],
        tools: Sequence[ToolDefinition],
        system_instruction: str,
        model: Optional[str] = None,
    ) -> Completion:
        """
        Produce the model's next turn.

        Args:
            messages: The running conversation.
            tools: Provider-safe tool definitions offered to the model.
            system_instruction: System prompt for this call.
            model: Optional model override; the provider default is used otherwise.

        Returns:
            The completion.
        """
        return await self._execute_with_retry(self._generate_impl, messages, tools, system_instruction, model)

    @abstractmethod
    async def _generate_impl(
        self,
        messages: Sequence[BaseMessage],
        tools: Sequence[ToolDefinition],
        system_instruction: str,
        model: Optional[str],
    ) -> Completion:
        pass
