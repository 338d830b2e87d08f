"""Provider implementations of ``ModelProvider``."""

from .gemini import GeminiProvider
from .openai_api import OpenAIProvider

__all__ = ["GeminiProvider", "OpenAIProvider"]
