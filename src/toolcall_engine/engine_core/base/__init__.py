"""Model provider abstraction."""

from .base import ModelProvider, Completion

__all__ = ["ModelProvider", "Completion"]
