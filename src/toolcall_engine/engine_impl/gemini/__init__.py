"""Gemini model provider."""

from .provider import GeminiProvider

__all__ = ["GeminiProvider"]
