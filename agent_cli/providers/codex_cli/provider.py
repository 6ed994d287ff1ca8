"""Codex CLI backend.

Runs ``codex exec --json`` and maps its JSONL events onto canonical
messages. Events look like:

    {"type": "thread.started", "thread_id": "..."}
    {"type": "item.started", "item": {"id": "item_1", "type": "command_execution", ...}}
    {"type": "item.updated", "item": {"id": "item_2", "type": "agent_message", "text": "Hel"}}
    {"type": "item.completed", "item": {"id": "item_2", "type": "agent_message", "text": "Hello"}}
    {"type": "turn.completed", "usage": {"input_tokens": 10, "output_tokens": 5, ...}}
    {"type": "turn.failed", "error": {"message": "..."}}

agent_message items carry the full text so far, never a delta, so they go
through snapshot de-duplication.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from ..base import ProviderDescriptor
from ..env import resolve_wsl_distribution
from ..errors import InvalidQueryError
from ..locator import CLILocation
from ..normalizer import EventNormalizer
from ..types import CanonicalMessage, Query, ToolCall, ToolOutput
from .env import resolve_cli_path, resolve_sandbox

logger = logging.getLogger(__name__)

PROVIDER_NAME = "codex_cli"

MODEL_PATTERNS = ("gpt-*", "o3*", "o4*", "codex-*")

KNOWN_OPTIONS = frozenset({
    "sandbox",
    "full_auto",
    "skip_git_repo_check",
    "resume",
    "profile",
    "config",
    "extra_args",
})

# Item types reported as tool activity.
_COMMAND = "command_execution"
_MCP_CALL = "mcp_tool_call"
_FILE_CHANGE = "file_change"
_WEB_SEARCH = "web_search"

_USAGE_KEYS = ("input_tokens", "cached_input_tokens", "output_tokens")


def default_descriptor() -> ProviderDescriptor:
    """Descriptor for the codex CLI with the usual install locations.

    Windows hosts run codex inside WSL unless a native install is on PATH.
    """
    return ProviderDescriptor(
        name=PROVIDER_NAME,
        command="codex",
        spawn_strategies={"*": "native", "win32": "wsl"},
        install_paths={
            "linux": (
                "~/.local/bin/codex",
                "~/.npm-global/bin/codex",
                "/usr/local/bin/codex",
            ),
            "darwin": (
                "~/.local/bin/codex",
                "/opt/homebrew/bin/codex",
                "/usr/local/bin/codex",
            ),
            "win32": (
                "%APPDATA%\\npm\\codex.cmd",
            ),
        },
        wrapper_command="npx",
        wrapper_package="@openai/codex",
        wrapper_args=("--yes",),
        wsl_distribution=resolve_wsl_distribution(),
        cli_path=resolve_cli_path(),
        model_patterns=MODEL_PATTERNS,
        install_hint=(
            "Install it with: npm install -g @openai/codex, "
            "or set AGENT_CLI_CODEX_PATH to the full path"
        ),
    )


class CodexCLIBackend:
    """Argument building and normalization for the codex CLI.

    Query options (all optional):
        sandbox: "read-only", "workspace-write" or "danger-full-access".
        full_auto: Run without approval prompts (bool).
        skip_git_repo_check: Allow running outside a git repository (bool).
        resume: Thread id of a previous session to continue.
        profile: Configuration profile from codex's config.toml.
        config: Mapping of ``-c key=value`` configuration overrides.
        extra_args: Additional CLI flags, inserted before the prompt.
    """

    def __init__(
        self,
        descriptor: Optional[ProviderDescriptor] = None,
        sandbox: Optional[str] = None,
    ):
        self._descriptor = descriptor or default_descriptor()
        self._sandbox = sandbox

    @property
    def descriptor(self) -> ProviderDescriptor:
        return self._descriptor

    def build_args(self, query: Query, location: CLILocation) -> List[str]:
        if not query.prompt or not query.prompt.strip():
            raise InvalidQueryError("prompt is empty")

        options = query.options
        unknown = set(options) - KNOWN_OPTIONS
        if unknown:
            logger.debug(f"Ignoring unknown codex_cli options: {sorted(unknown)}")

        args = ["exec", "--json"]

        model = query.model or self._descriptor.default_model
        if model:
            args.extend(["--model", model])

        sandbox = resolve_sandbox(options.get("sandbox") or self._sandbox)
        if sandbox:
            args.extend(["--sandbox", sandbox])
        if options.get("full_auto"):
            args.append("--full-auto")
        if options.get("skip_git_repo_check"):
            args.append("--skip-git-repo-check")
        if options.get("profile"):
            args.extend(["--profile", str(options["profile"])])

        config = options.get("config") or {}
        if not isinstance(config, dict):
            raise InvalidQueryError("config must be a mapping of key to value")
        for key, value in config.items():
            args.extend(["-c", f"{key}={_config_value(value)}"])

        extra = options.get("extra_args") or []
        if not isinstance(extra, (list, tuple)) or not all(isinstance(a, str) for a in extra):
            raise InvalidQueryError("extra_args must be a list of strings")
        args.extend(extra)

        if options.get("resume"):
            args.extend(["resume", str(options["resume"])])

        args.append("--")
        args.append(query.prompt)
        return args

    def build_env(self, base: Dict[str, str]) -> Dict[str, str]:
        env = dict(base)
        # Plain output: no ANSI colour in stderr excerpts.
        env.setdefault("NO_COLOR", "1")
        return env

    def create_normalizer(self) -> "CodexNormalizer":
        return CodexNormalizer(self._descriptor.name)

    def list_models(self) -> List[str]:
        return ["gpt-5-codex", "gpt-5", "o3", "o4-mini", "codex-mini-latest"]


def _config_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    # TOML and JSON agree on booleans, numbers, and string arrays.
    return json.dumps(value)


class CodexNormalizer(EventNormalizer):
    """Maps codex exec JSONL events to canonical messages."""

    def __init__(self, provider: str = PROVIDER_NAME):
        super().__init__(provider)
        self._message_item: Optional[str] = None

    def _normalize_record(self, record: Dict[str, Any]) -> List[CanonicalMessage]:
        event_type = record.get("type", "")

        if event_type == "thread.started":
            thread_id = record.get("thread_id")
            if thread_id:
                self.completion_data["thread_id"] = thread_id
            return [self._status(event="thread_started", thread_id=thread_id)]

        if event_type in ("item.started", "item.updated", "item.completed"):
            item = record.get("item") or {}
            return self._on_item(event_type.split(".", 1)[1], item)

        if event_type == "turn.completed":
            self._add_usage(record.get("usage") or {})
            return []

        if event_type == "turn.failed":
            error = record.get("error") or {}
            return self._diagnostic(str(error.get("message") or error or "turn failed"))

        if event_type == "error":
            return self._diagnostic(str(record.get("message") or "error"))

        return []

    def _on_item(self, phase: str, item: Dict[str, Any]) -> List[CanonicalMessage]:
        item_type = item.get("type") or item.get("item_type")
        item_id = str(item.get("id", ""))

        if item_type == "agent_message":
            if item_id != self._message_item:
                self._message_item = item_id
                self._reset_text()
            return self._text_snapshot(item.get("text") or "")

        if item_type in (_COMMAND, _MCP_CALL, _WEB_SEARCH):
            messages = self._tool_invocation(self._tool_call(item_type, item_id, item))
            if phase == "completed":
                messages.extend(self._tool_result(self._tool_output(item_type, item_id, item)))
            return messages

        if item_type == _FILE_CHANGE:
            if phase != "completed":
                return []
            changes = item.get("changes") or []
            messages = self._tool_invocation(
                ToolCall(id=item_id, name=_FILE_CHANGE, args={"changes": changes})
            )
            summary = "\n".join(
                f"{c.get('kind', 'update')} {c.get('path', '')}"
                for c in changes if isinstance(c, dict)
            )
            messages.extend(self._tool_result(ToolOutput(
                call_id=item_id,
                content=summary,
                is_error=item.get("status") == "failed",
                name=_FILE_CHANGE,
            )))
            return messages

        if item_type == "error":
            return self._diagnostic(str(item.get("message") or ""))

        # reasoning, todo_list and unknown items
        return []

    @staticmethod
    def _tool_call(item_type: str, item_id: str, item: Dict[str, Any]) -> ToolCall:
        if item_type == _COMMAND:
            return ToolCall(id=item_id, name=_COMMAND, args={"command": item.get("command", "")})
        if item_type == _WEB_SEARCH:
            return ToolCall(id=item_id, name=_WEB_SEARCH, args={"query": item.get("query", "")})
        server, tool = item.get("server"), item.get("tool", "")
        arguments = item.get("arguments")
        return ToolCall(
            id=item_id,
            name=f"{server}.{tool}" if server else tool,
            args=arguments if isinstance(arguments, dict) else {},
        )

    @staticmethod
    def _tool_output(item_type: str, item_id: str, item: Dict[str, Any]) -> ToolOutput:
        status = item.get("status")
        if item_type == _COMMAND:
            exit_code = item.get("exit_code")
            return ToolOutput(
                call_id=item_id,
                content=item.get("aggregated_output", ""),
                is_error=status == "failed" or (exit_code is not None and exit_code != 0),
                name=_COMMAND,
            )
        if item_type == _WEB_SEARCH:
            return ToolOutput(call_id=item_id, content=item.get("query", ""), name=_WEB_SEARCH)
        error = item.get("error")
        return ToolOutput(
            call_id=item_id,
            content=error if error else item.get("result"),
            is_error=status == "failed" or bool(error),
            name=item.get("tool"),
        )

    def _add_usage(self, usage: Dict[str, Any]) -> None:
        totals = self.completion_data.setdefault("usage", {key: 0 for key in _USAGE_KEYS})
        for key in _USAGE_KEYS:
            totals[key] += int(usage.get(key) or 0)
