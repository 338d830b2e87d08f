"""Conversion of prior chat turns into the conversation the loop starts from."""

from typing import Any, Iterable, List, Mapping, Union

from .models import BaseMessage, ModelMessage, UserMessage

_MODEL_ROLES = {"model", "assistant", "ai", "bot"}


def prepare_history(turns: Iterable[Union[BaseMessage, Mapping[str, Any]]], window: int = 10) -> List[BaseMessage]:
    """
    Turn prior chat turns into conversation messages.

    Only user and model text turns are kept (``assistant`` maps to ``model``),
    the last ``window`` of them are used, and leading model turns are dropped
    so the conversation always opens with the user.

    Args:
        turns: Messages or ``{"role": ..., "text"|"content": ...}`` mappings, oldest first.
        window: Maximum number of turns to keep.

    Returns:
        The prepared messages.
    """
    prepared: List[BaseMessage] = []
    for turn in turns:
        if isinstance(turn, BaseMessage):
            role, text = turn.role, turn.content
        else:
            role = str(turn.get("role", "")).lower()
            text = turn.get("text") if turn.get("text") is not None else turn.get("content", "")
        text = "" if text is None else str(text)
        if not text.strip():
            continue
        if role == "user":
            prepared.append(UserMessage(content=text))
        elif role in _MODEL_ROLES:
            prepared.append(ModelMessage(content=text))

    prepared = prepared[-window:] if window > 0 else []
    while prepared and prepared[0].role != "user":
        prepared.pop(0)
    return prepared
