"""OpenAI model provider."""

from .provider import OpenAIProvider

__all__ = ["OpenAIProvider"]
