"""Claude Code CLI backend.

Runs ``claude --print --output-format stream-json --verbose`` and maps its
records onto canonical messages. Tool execution stays inside the CLI; the
tool_use / tool_result blocks it reports are surfaced as TOOL_INVOCATION and
TOOL_RESULT messages for display.
"""

import logging
from typing import Any, Dict, List, Optional, Set

from ..base import ProviderDescriptor
from ..env import resolve_wsl_distribution
from ..errors import InvalidQueryError
from ..locator import CLILocation
from ..normalizer import EventNormalizer
from ..types import CanonicalMessage, Query, ToolCall, ToolOutput
from .env import resolve_cli_path, resolve_max_turns, resolve_permission_mode
from .types import (
    MessageType,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    content_blocks,
    result_summary,
)

logger = logging.getLogger(__name__)

PROVIDER_NAME = "claude_cli"

MODEL_PATTERNS = ("sonnet*", "opus*", "haiku*", "claude-*")

KNOWN_OPTIONS = frozenset({
    "include_partial_messages",
    "max_turns",
    "permission_mode",
    "resume",
    "system_prompt",
    "append_system_prompt",
    "allowed_tools",
    "disallowed_tools",
    "extra_args",
})


def default_descriptor() -> ProviderDescriptor:
    """Descriptor for the claude CLI with the usual install locations."""
    return ProviderDescriptor(
        name=PROVIDER_NAME,
        command="claude",
        spawn_strategies={"*": "native"},
        install_paths={
            "linux": (
                "~/.claude/local/claude",
                "~/.local/bin/claude",
                "~/.npm-global/bin/claude",
                "/usr/local/bin/claude",
            ),
            "darwin": (
                "~/.claude/local/claude",
                "~/.local/bin/claude",
                "/opt/homebrew/bin/claude",
                "/usr/local/bin/claude",
            ),
            "win32": (
                "%USERPROFILE%\\.local\\bin\\claude.exe",
                "%APPDATA%\\npm\\claude.cmd",
            ),
        },
        wrapper_command="npx",
        wrapper_package="@anthropic-ai/claude-code",
        wrapper_args=("--yes",),
        wsl_distribution=resolve_wsl_distribution(),
        cli_path=resolve_cli_path(),
        model_patterns=MODEL_PATTERNS,
        install_hint=(
            "Install it with: npm install -g @anthropic-ai/claude-code, "
            "or set AGENT_CLI_CLAUDE_PATH to the full path"
        ),
    )


class ClaudeCLIBackend:
    """Argument building and normalization for the claude CLI.

    Query options (all optional):
        include_partial_messages: Stream token deltas (default True).
        max_turns: Maximum agentic turns.
        permission_mode: "default", "acceptEdits", "plan", "bypassPermissions".
        resume: CLI session id to continue.
        system_prompt: Replace the CLI's system prompt.
        append_system_prompt: Append to the CLI's system prompt.
        allowed_tools / disallowed_tools: Tool names (list or comma string).
        extra_args: Additional CLI flags, inserted before the prompt.
    """

    def __init__(
        self,
        descriptor: Optional[ProviderDescriptor] = None,
        permission_mode: Optional[str] = None,
        max_turns: Optional[int] = None,
    ):
        self._descriptor = descriptor or default_descriptor()
        self._permission_mode = permission_mode
        self._max_turns = max_turns

    @property
    def descriptor(self) -> ProviderDescriptor:
        return self._descriptor

    def build_args(self, query: Query, location: CLILocation) -> List[str]:
        if not query.prompt or not query.prompt.strip():
            raise InvalidQueryError("prompt is empty")

        options = query.options
        unknown = set(options) - KNOWN_OPTIONS
        if unknown:
            logger.debug(f"Ignoring unknown claude_cli options: {sorted(unknown)}")

        args = [
            "--print",  # Non-interactive mode
            "--output-format", "stream-json",  # NDJSON output
            "--verbose",  # Required for stream-json
        ]
        if options.get("include_partial_messages", True):
            args.append("--include-partial-messages")

        model = query.model or self._descriptor.default_model
        if model:
            args.extend(["--model", model])

        max_turns = resolve_max_turns(options.get("max_turns", self._max_turns))
        if max_turns is not None:
            args.extend(["--max-turns", str(max_turns)])

        permission_mode = resolve_permission_mode(
            options.get("permission_mode") or self._permission_mode
        )
        if permission_mode:
            args.extend(["--permission-mode", permission_mode])

        if options.get("resume"):
            args.extend(["--resume", str(options["resume"])])

        if options.get("system_prompt"):
            args.extend(["--system-prompt", str(options["system_prompt"])])
        if options.get("append_system_prompt"):
            args.extend(["--append-system-prompt", str(options["append_system_prompt"])])

        allowed = _tool_list("allowed_tools", options.get("allowed_tools"))
        if allowed:
            args.extend(["--allowed-tools", allowed])
        disallowed = _tool_list("disallowed_tools", options.get("disallowed_tools"))
        if disallowed:
            args.extend(["--disallowed-tools", disallowed])

        extra = options.get("extra_args") or []
        if not isinstance(extra, (list, tuple)) or not all(isinstance(a, str) for a in extra):
            raise InvalidQueryError("extra_args must be a list of strings")
        args.extend(extra)

        # Use -- to separate options from the prompt
        args.append("--")
        args.append(query.prompt)
        return args

    def build_env(self, base: Dict[str, str]) -> Dict[str, str]:
        env = dict(base)
        # The CLI refuses to start when it believes it is nested in itself.
        env.pop("CLAUDECODE", None)
        return env

    def create_normalizer(self) -> "ClaudeNormalizer":
        return ClaudeNormalizer(self._descriptor.name)

    def list_models(self) -> List[str]:
        return [
            "sonnet",
            "opus",
            "haiku",
            "claude-sonnet-4-5",
            "claude-opus-4-1",
            "claude-haiku-4-5",
        ]


def _tool_list(option: str, value: Any) -> Optional[str]:
    if not value:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return ",".join(value)
    raise InvalidQueryError(f"{option} must be a list of tool names")


class ClaudeNormalizer(EventNormalizer):
    """Maps claude stream-json records to canonical messages.

    Text arrives twice when partial messages are on: as content_block_delta
    stream events, then again in the assistant record. Deltas are emitted as
    they come; the assistant record's text is compared against what the
    current message already delivered and only unseen text is emitted.
    """

    def __init__(self, provider: str = PROVIDER_NAME):
        super().__init__(provider)
        self._message_id: Optional[str] = None
        self._streamed_ids: Set[str] = set()
        self._tool_names: Dict[str, str] = {}

    def _normalize_record(self, record: Dict[str, Any]) -> List[CanonicalMessage]:
        record_type = record.get("type")
        if record_type == MessageType.SYSTEM.value:
            return self._on_system(record)
        if record_type == MessageType.STREAM_EVENT.value:
            return self._on_stream_event(record.get("event") or {})
        if record_type == MessageType.ASSISTANT.value:
            return self._on_assistant(record)
        if record_type == MessageType.USER.value:
            return self._on_user(record)
        if record_type == MessageType.RESULT.value:
            return self._on_result(record)
        return []

    def _on_system(self, record: Dict[str, Any]) -> List[CanonicalMessage]:
        if record.get("subtype") != "init":
            return []
        session_id = record.get("session_id")
        if session_id:
            self.completion_data["session_id"] = session_id
        return [self._status(
            event="init",
            session_id=session_id,
            model=record.get("model"),
            cwd=record.get("cwd"),
            tools=list(record.get("tools") or []),
            permission_mode=record.get("permissionMode"),
        )]

    def _on_stream_event(self, event: Dict[str, Any]) -> List[CanonicalMessage]:
        event_type = event.get("type")
        if event_type == "message_start":
            self._reset_text()
            self._message_id = (event.get("message") or {}).get("id")
            return []
        if event_type == "content_block_delta":
            delta = event.get("delta") or {}
            if delta.get("type") == "text_delta":
                if self._message_id:
                    self._streamed_ids.add(self._message_id)
                return self._text_delta(delta.get("text") or "")
        return []

    def _on_assistant(self, record: Dict[str, Any]) -> List[CanonicalMessage]:
        message = record.get("message")
        message_id = message.get("id") if isinstance(message, dict) else None
        if message_id and message_id != self._message_id:
            self._message_id = message_id
            self._reset_text()
        streamed = message_id in self._streamed_ids if message_id else False

        messages: List[CanonicalMessage] = []
        record_text = ""
        for block in content_blocks(record):
            if isinstance(block, TextBlock):
                if streamed:
                    continue
                record_text += block.text
                messages.extend(self._text_snapshot(record_text))
            elif isinstance(block, ToolUseBlock):
                self._tool_names[block.id] = block.name
                messages.extend(self._tool_invocation(
                    ToolCall(id=block.id, name=block.name, args=block.input)
                ))
        return messages

    def _on_user(self, record: Dict[str, Any]) -> List[CanonicalMessage]:
        messages: List[CanonicalMessage] = []
        for block in content_blocks(record):
            if isinstance(block, ToolResultBlock):
                messages.extend(self._tool_result(ToolOutput(
                    call_id=block.tool_use_id,
                    content=block.text,
                    is_error=block.is_error,
                    name=self._tool_names.get(block.tool_use_id),
                )))
        return messages

    def _on_result(self, record: Dict[str, Any]) -> List[CanonicalMessage]:
        summary = result_summary(record)
        self.completion_data.update(summary)
        if summary["is_error"]:
            detail = record.get("result") or record.get("error") or summary["subtype"]
            self._diagnostic(str(detail))
        return []
