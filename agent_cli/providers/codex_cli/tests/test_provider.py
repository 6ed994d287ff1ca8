"""Tests for the Codex CLI backend and normalizer."""

from unittest.mock import patch

import pytest

from ...errors import InvalidQueryError
from ...locator import CLILocation
from ...spawn import Platform, SpawnStrategy, resolve_spawn_strategy
from ...types import MessageKind, Query
from .. import create_plugin
from ..provider import CodexCLIBackend, CodexNormalizer, default_descriptor

LOCATION = CLILocation(strategy=SpawnStrategy.DIRECT, command="/usr/bin/codex")


def texts(messages):
    return [m.text for m in messages if m.kind is MessageKind.TEXT_DELTA]


def run(normalizer, records):
    messages = []
    for record in records:
        messages.extend(normalizer.normalize(record))
    return messages


class TestBuildArgs:
    """Tests for command line construction."""

    def setup_method(self):
        with patch.dict('os.environ', {}, clear=True):
            self.backend = CodexCLIBackend(default_descriptor())

    def build(self, query):
        with patch.dict('os.environ', {}, clear=True):
            return self.backend.build_args(query, LOCATION)

    def test_minimal(self):
        assert self.build(Query(prompt="hello")) == ["exec", "--json", "--", "hello"]

    def test_options(self):
        args = self.build(Query(
            prompt="fix the tests",
            model="gpt-5-codex",
            options={
                "sandbox": "workspace-write",
                "full_auto": True,
                "skip_git_repo_check": True,
                "profile": "ci",
                "config": {"model_reasoning_effort": "high", "hide_agent_reasoning": True},
            },
        ))
        assert args[:2] == ["exec", "--json"]
        assert args[args.index("--model") + 1] == "gpt-5-codex"
        assert args[args.index("--sandbox") + 1] == "workspace-write"
        assert "--full-auto" in args
        assert "--skip-git-repo-check" in args
        assert args[args.index("--profile") + 1] == "ci"
        assert "model_reasoning_effort=high" in args
        assert "hide_agent_reasoning=true" in args
        assert args[-2:] == ["--", "fix the tests"]

    def test_resume(self):
        args = self.build(Query(prompt="continue", options={"resume": "thread-9"}))
        assert args[-4:] == ["resume", "thread-9", "--", "continue"]

    @pytest.mark.parametrize("query", [
        Query(prompt=""),
        Query(prompt="hi", options={"sandbox": "everything"}),
        Query(prompt="hi", options={"config": ["a=b"]}),
        Query(prompt="hi", options={"extra_args": [1]}),
    ])
    def test_invalid_queries(self, query):
        with pytest.raises(InvalidQueryError):
            self.build(query)

    def test_env_disables_color(self):
        assert self.backend.build_env({})["NO_COLOR"] == "1"
        assert self.backend.build_env({"NO_COLOR": "0"})["NO_COLOR"] == "0"


class TestDescriptor:
    """Tests for the default descriptor and plugin factory."""

    def test_serves_openai_models(self):
        descriptor = default_descriptor()
        for model in ("gpt-5-codex", "o3", "o4-mini", "codex-mini-latest"):
            assert descriptor.serves_model(model)
        assert not descriptor.serves_model("sonnet")

    def test_windows_uses_wsl(self):
        declared = default_descriptor().spawn_strategies
        assert resolve_spawn_strategy(Platform.WINDOWS, declared) == SpawnStrategy.COMPAT_SHELL
        assert resolve_spawn_strategy(Platform.MACOS, declared) == SpawnStrategy.DIRECT

    def test_wsl_distribution_from_env(self):
        with patch.dict('os.environ', {'AGENT_CLI_WSL_DISTRIBUTION': 'Ubuntu-24.04'}):
            assert default_descriptor().wsl_distribution == 'Ubuntu-24.04'

    def test_create_plugin(self):
        provider = create_plugin({"spawn_strategies": {"*": "wrapper"}})
        assert provider.name == "codex_cli"
        assert provider.descriptor.spawn_strategies == {"*": "wrapper"}


class TestNormalizer:
    """Tests for exec --json normalization."""

    def test_thread_started(self):
        normalizer = CodexNormalizer()
        messages = normalizer.normalize({"type": "thread.started", "thread_id": "th_1"})
        assert messages[0].kind is MessageKind.STATUS
        assert messages[0].data == {"event": "thread_started", "thread_id": "th_1"}
        assert normalizer.completion_data["thread_id"] == "th_1"

    def test_agent_message_snapshots(self):
        normalizer = CodexNormalizer()
        messages = run(normalizer, [
            {"type": "item.updated", "item": {"id": "item_1", "type": "agent_message", "text": "Hel"}},
            {"type": "item.updated", "item": {"id": "item_1", "type": "agent_message", "text": "Hello"}},
            {"type": "item.completed", "item": {"id": "item_1", "type": "agent_message", "text": "Hello"}},
            {"type": "item.completed", "item": {"id": "item_3", "type": "agent_message", "text": "Hello"}},
        ])
        assert texts(messages) == ["Hel", "lo", "Hello"]

    def test_command_execution(self):
        normalizer = CodexNormalizer()
        item = {"id": "item_2", "type": "command_execution", "command": "pytest -q"}
        messages = run(normalizer, [
            {"type": "item.started", "item": dict(item, status="in_progress")},
            {"type": "item.completed", "item": dict(
                item, status="completed", aggregated_output="3 passed", exit_code=0)},
        ])
        assert [m.kind for m in messages] == [MessageKind.TOOL_INVOCATION, MessageKind.TOOL_RESULT]
        assert messages[0].tool_call.args == {"command": "pytest -q"}
        assert messages[1].tool_output.content == "3 passed"
        assert not messages[1].tool_output.is_error

    def test_failed_command(self):
        normalizer = CodexNormalizer()
        messages = normalizer.normalize({"type": "item.completed", "item": {
            "id": "item_2", "type": "command_execution", "command": "false",
            "exit_code": 1, "status": "failed",
        }})
        assert [m.kind for m in messages] == [MessageKind.TOOL_INVOCATION, MessageKind.TOOL_RESULT]
        assert messages[1].tool_output.is_error

    def test_mcp_tool_call(self):
        normalizer = CodexNormalizer()
        messages = normalizer.normalize({"type": "item.completed", "item": {
            "id": "item_4", "type": "mcp_tool_call", "server": "docs", "tool": "search",
            "arguments": {"q": "asyncio"}, "result": {"hits": 2}, "status": "completed",
        }})
        assert messages[0].tool_call.name == "docs.search"
        assert messages[0].tool_call.args == {"q": "asyncio"}
        assert messages[1].tool_output.content == {"hits": 2}

    def test_file_change_only_on_completion(self):
        normalizer = CodexNormalizer()
        item = {"id": "item_5", "type": "file_change", "changes": [
            {"path": "src/app.py", "kind": "update"},
            {"path": "README.md", "kind": "add"},
        ]}
        assert normalizer.normalize({"type": "item.started", "item": item}) == []
        messages = normalizer.normalize({"type": "item.completed", "item": dict(item, status="completed")})
        assert messages[1].tool_output.content == "update src/app.py\nadd README.md"

    def test_usage_accumulates(self):
        normalizer = CodexNormalizer()
        run(normalizer, [
            {"type": "turn.completed", "usage": {"input_tokens": 10, "cached_input_tokens": 4, "output_tokens": 3}},
            {"type": "turn.completed", "usage": {"input_tokens": 5, "output_tokens": 2}},
        ])
        assert normalizer.completion_data["usage"] == {
            "input_tokens": 15,
            "cached_input_tokens": 4,
            "output_tokens": 5,
        }

    def test_failures_become_diagnostics(self):
        normalizer = CodexNormalizer()
        messages = run(normalizer, [
            {"type": "error", "message": "stream disconnected before completion"},
            {"type": "turn.failed", "error": {"message": "You've hit your usage limit."}},
            {"type": "item.completed", "item": {"id": "item_6", "type": "error", "message": "bad patch"}},
        ])
        assert messages == []
        assert normalizer.diagnostics == [
            "stream disconnected before completion",
            "You've hit your usage limit.",
            "bad patch",
        ]

    def test_reasoning_ignored(self):
        normalizer = CodexNormalizer()
        assert normalizer.normalize({"type": "item.completed", "item": {
            "id": "item_0", "type": "reasoning", "text": "thinking"}}) == []
