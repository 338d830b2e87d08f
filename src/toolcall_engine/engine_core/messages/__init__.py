"""Conversation message models."""

from .models import BaseMessage, UserMessage, ModelMessage, ToolMessage, Role
from .history import prepare_history

__all__ = ["BaseMessage", "UserMessage", "ModelMessage", "ToolMessage", "Role", "prepare_history"]
