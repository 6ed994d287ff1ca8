"""Record shapes of the Claude CLI stream-json protocol.

With ``--print --output-format stream-json --verbose`` the CLI writes one
JSON record per line:

    {"type": "system", "subtype": "init", "session_id": ..., "model": ...}
    {"type": "stream_event", "event": {"type": "content_block_delta", ...}}
    {"type": "assistant", "message": {"content": [{"type": "text", ...}]}}
    {"type": "user", "message": {"content": [{"type": "tool_result", ...}]}}
    {"type": "result", "subtype": "success", "usage": {...}, ...}

stream_event records only appear with --include-partial-messages.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class MessageType(str, Enum):
    """Top-level record types."""
    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"
    RESULT = "result"
    STREAM_EVENT = "stream_event"


class ContentBlockType(str, Enum):
    """Content block types inside assistant and user records."""
    TEXT = "text"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"
    THINKING = "thinking"


def deserialize_tool_input(input_data: Dict[str, Any]) -> Dict[str, Any]:
    """Decode tool input values that the CLI has stringified.

    The CLI reports some non-string tool arguments as strings: '["a", "b"]'
    for a list, '{"k": 1}' for an object, '50' for a number, 'true' for a
    boolean. They are converted back; anything else stays a string.
    """
    if not input_data:
        return {}

    result: Dict[str, Any] = {}
    for key, value in input_data.items():
        result[key] = _decode_value(value) if isinstance(value, str) else value
    return result


def _decode_value(value: str) -> Any:
    stripped = value.strip()
    if (stripped.startswith("[") and stripped.endswith("]")) or \
       (stripped.startswith("{") and stripped.endswith("}")):
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            return value

    lowered = stripped.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False

    for number in (int, float):
        try:
            return number(stripped)
        except ValueError:
            continue
    return value


# ==================== Content Blocks ====================


@dataclass(frozen=True)
class TextBlock:
    text: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TextBlock":
        return cls(text=data.get("text") or "")


@dataclass(frozen=True)
class ToolUseBlock:
    id: str
    name: str
    input: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolUseBlock":
        raw_input = data.get("input") or {}
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            input=deserialize_tool_input(raw_input) if isinstance(raw_input, dict) else {},
        )


@dataclass(frozen=True)
class ToolResultBlock:
    tool_use_id: str
    content: Any = None
    is_error: bool = False

    @property
    def text(self) -> str:
        """Result content flattened to text (lists of text parts are joined)."""
        if isinstance(self.content, str):
            return self.content
        if isinstance(self.content, list):
            return "".join(
                part.get("text", "") for part in self.content
                if isinstance(part, dict) and part.get("type") == "text"
            )
        return "" if self.content is None else json.dumps(self.content)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolResultBlock":
        return cls(
            tool_use_id=data.get("tool_use_id", ""),
            content=data.get("content"),
            is_error=bool(data.get("is_error", False)),
        )


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock]


def parse_content_block(data: Dict[str, Any]) -> Optional[ContentBlock]:
    """Parse one content block. Thinking and unknown blocks return None."""
    block_type = data.get("type", "")
    if block_type == ContentBlockType.TEXT.value:
        return TextBlock.from_dict(data)
    if block_type == ContentBlockType.TOOL_USE.value:
        return ToolUseBlock.from_dict(data)
    if block_type == ContentBlockType.TOOL_RESULT.value:
        return ToolResultBlock.from_dict(data)
    return None


def content_blocks(record: Dict[str, Any]) -> List[ContentBlock]:
    """Content blocks of an assistant or user record, in order.

    Accepts both the nested form ({"message": {"content": [...]}}) written
    with --verbose and the flat form ({"content": [...]}). A plain string
    content becomes a single text block.
    """
    content = record.get("content")
    if content is None and isinstance(record.get("message"), dict):
        content = record["message"].get("content")
    if isinstance(content, str):
        return [TextBlock(text=content)]
    if not isinstance(content, list):
        return []

    blocks = []
    for item in content:
        if isinstance(item, dict):
            block = parse_content_block(item)
            if block is not None:
                blocks.append(block)
    return blocks


# ==================== Usage and result ====================


@dataclass(frozen=True)
class Usage:
    """Token usage reported in the result record."""
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "cache_read_tokens": self.cache_read_tokens,
            "cache_creation_tokens": self.cache_creation_tokens,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Usage":
        return cls(
            input_tokens=int(data.get("input_tokens") or 0),
            output_tokens=int(data.get("output_tokens") or 0),
            cache_read_tokens=int(
                data.get("cache_read_input_tokens") or data.get("cache_read_tokens") or 0
            ),
            cache_creation_tokens=int(
                data.get("cache_creation_input_tokens") or data.get("cache_creation_tokens") or 0
            ),
        )


def result_summary(record: Dict[str, Any]) -> Dict[str, Any]:
    """Completion data extracted from a result record."""
    summary: Dict[str, Any] = {
        "subtype": record.get("subtype", ""),
        "is_error": bool(record.get("is_error", False)),
        "num_turns": record.get("num_turns", 0),
        "duration_ms": record.get("duration_ms", 0),
    }
    if record.get("session_id"):
        summary["session_id"] = record["session_id"]
    if record.get("total_cost_usd") is not None:
        summary["total_cost_usd"] = record["total_cost_usd"]
    if isinstance(record.get("usage"), dict):
        summary["usage"] = Usage.from_dict(record["usage"]).to_dict()
    if record.get("result") is not None:
        summary["result"] = record["result"]
    return summary
