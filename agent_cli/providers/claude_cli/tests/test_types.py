"""Tests for Claude CLI record parsing."""

from ..types import (
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    content_blocks,
    deserialize_tool_input,
    parse_content_block,
    result_summary,
)


class TestDeserializeToolInput:
    """Tests for decoding stringified tool arguments."""

    def test_json_values(self):
        result = deserialize_tool_input({
            "paths": '["a.py", "b.py"]',
            "options": '{"recursive": true}',
        })
        assert result == {"paths": ["a.py", "b.py"], "options": {"recursive": True}}

    def test_scalars(self):
        result = deserialize_tool_input({"limit": "50", "ratio": "0.5", "flag": "TRUE", "off": "false"})
        assert result == {"limit": 50, "ratio": 0.5, "flag": True, "off": False}

    def test_plain_strings_kept(self):
        result = deserialize_tool_input({"command": "ls -la", "broken": "[not json"})
        assert result == {"command": "ls -la", "broken": "[not json"}

    def test_non_strings_untouched(self):
        assert deserialize_tool_input({"n": 3, "l": [1]}) == {"n": 3, "l": [1]}

    def test_empty(self):
        assert deserialize_tool_input({}) == {}


class TestContentBlocks:
    """Tests for content block parsing."""

    def test_nested_message_content(self):
        record = {
            "type": "assistant",
            "message": {"content": [
                {"type": "thinking", "thinking": "hmm"},
                {"type": "text", "text": "Looking"},
                {"type": "tool_use", "id": "toolu_1", "name": "Read", "input": {"limit": "10"}},
            ]},
        }
        blocks = content_blocks(record)
        assert blocks == [
            TextBlock(text="Looking"),
            ToolUseBlock(id="toolu_1", name="Read", input={"limit": 10}),
        ]

    def test_flat_content(self):
        assert content_blocks({"content": [{"type": "text", "text": "hi"}]}) == [TextBlock("hi")]

    def test_string_content(self):
        assert content_blocks({"message": {"content": "plain"}}) == [TextBlock("plain")]

    def test_missing_content(self):
        assert content_blocks({"type": "assistant"}) == []

    def test_unknown_block(self):
        assert parse_content_block({"type": "image"}) is None


class TestToolResultBlock:
    """Tests for tool result flattening."""

    def test_string_content(self):
        block = ToolResultBlock.from_dict({"tool_use_id": "t", "content": "done"})
        assert block.text == "done"
        assert not block.is_error

    def test_list_content(self):
        block = ToolResultBlock.from_dict({
            "tool_use_id": "t",
            "content": [{"type": "text", "text": "a"}, {"type": "image"}, {"type": "text", "text": "b"}],
            "is_error": True,
        })
        assert block.text == "ab"
        assert block.is_error

    def test_none_content(self):
        assert ToolResultBlock(tool_use_id="t").text == ""


class TestResultSummary:
    """Tests for result record extraction."""

    def test_success(self):
        summary = result_summary({
            "type": "result",
            "subtype": "success",
            "is_error": False,
            "num_turns": 2,
            "duration_ms": 1500,
            "session_id": "sess-1",
            "total_cost_usd": 0.012,
            "result": "Hello",
            "usage": {"input_tokens": 10, "output_tokens": 5, "cache_read_input_tokens": 100},
        })
        assert summary["session_id"] == "sess-1"
        assert summary["total_cost_usd"] == 0.012
        assert summary["result"] == "Hello"
        assert summary["usage"] == {
            "input_tokens": 10,
            "output_tokens": 5,
            "cache_read_tokens": 100,
            "cache_creation_tokens": 0,
        }

    def test_minimal(self):
        summary = result_summary({"type": "result"})
        assert summary == {"subtype": "", "is_error": False, "num_turns": 0, "duration_ms": 0}
