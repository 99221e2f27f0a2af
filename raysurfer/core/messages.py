"""Parse raw agent stream messages into tagged event variants.

Two input shapes are understood:

* wire dicts, e.g. ``{"type": "assistant", "message": {"content": [...]}}``
  (content may also sit at the top level);
* ``claude-agent-sdk`` message objects (``AssistantMessage``, ``UserMessage``,
  ``ResultMessage``, ``SystemMessage``), recognised by class name so the SDK
  stays an optional dependency.

Parsing never mutates or copies the original message.
"""

from __future__ import annotations

from typing import Any

from ..types import (
    AgentEvent,
    AssistantEvent,
    ContentBlock,
    OtherEvent,
    ResultEvent,
    TextBlock,
    ToolResultBlock,
    ToolResultEvent,
    ToolUseBlock,
)

_SDK_MESSAGE_TYPES = {
    "AssistantMessage": "assistant",
    "UserMessage": "user",
    "ResultMessage": "result",
    "SystemMessage": "system",
    "StreamEvent": "stream_event",
}

_SDK_BLOCK_TYPES = {
    "TextBlock": "text",
    "ToolUseBlock": "tool_use",
    "ToolResultBlock": "tool_result",
    "ThinkingBlock": "thinking",
}


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _message_type(message: Any) -> str:
    if isinstance(message, dict):
        return str(message.get("type") or "")
    return _SDK_MESSAGE_TYPES.get(type(message).__name__, str(getattr(message, "type", "") or ""))


def _block_type(block: Any) -> str:
    if isinstance(block, dict):
        return str(block.get("type") or "")
    return _SDK_BLOCK_TYPES.get(type(block).__name__, str(getattr(block, "type", "") or ""))


def parse_block(raw: Any) -> ContentBlock | None:
    """One content block, or None for kinds that carry no side effects (thinking)."""
    kind = _block_type(raw)
    if kind == "text":
        return TextBlock(text=str(_field(raw, "text", "") or ""))
    if kind == "tool_use":
        tool_input = _field(raw, "input", None)
        return ToolUseBlock(
            name=str(_field(raw, "name", "") or ""),
            input=tool_input if isinstance(tool_input, dict) else {},
            id=str(_field(raw, "id", "") or ""),
        )
    if kind == "tool_result":
        return ToolResultBlock(
            tool_use_id=str(_field(raw, "tool_use_id", "") or ""),
            content=_field(raw, "content"),
        )
    return None


def _raw_content(message: Any) -> Any:
    if isinstance(message, dict):
        inner = message.get("message")
        if isinstance(inner, dict) and "content" in inner:
            return inner["content"]
        return message.get("content")
    inner = getattr(message, "message", None)
    if inner is not None and _field(inner, "content") is not None:
        return _field(inner, "content")
    return getattr(message, "content", None)


def parse_blocks(message: Any) -> list[ContentBlock]:
    content = _raw_content(message)
    if isinstance(content, str):
        return [TextBlock(text=content)]
    if not isinstance(content, (list, tuple)):
        return []
    blocks: list[ContentBlock] = []
    for raw in content:
        block = parse_block(raw)
        if block is not None:
            blocks.append(block)
    return blocks


def parse_event(message: Any) -> AgentEvent:
    """Classify one stream message into its tagged variant."""
    kind = _message_type(message)

    if kind == "assistant":
        return AssistantEvent(blocks=parse_blocks(message))

    if kind == "user":
        blocks = parse_blocks(message)
        if any(isinstance(b, ToolResultBlock) for b in blocks):
            return ToolResultEvent(blocks=blocks)
        return OtherEvent(type=kind)

    if kind == "result":
        return ResultEvent(
            subtype=str(_field(message, "subtype", "") or ""),
            is_error=bool(_field(message, "is_error", False)),
        )

    return OtherEvent(type=kind)
