"""Environment variable resolution for the Claude CLI provider."""

import os
from typing import Any, Optional

from ..errors import InvalidQueryError

PERMISSION_MODES = ("default", "acceptEdits", "plan", "bypassPermissions")


def resolve_cli_path(config_path: Optional[str] = None) -> Optional[str]:
    """Resolve an explicit path to the claude executable.

    Resolution order:
    1. Explicit config_path parameter
    2. AGENT_CLI_CLAUDE_PATH environment variable
    3. None (the locator searches PATH and the usual install locations)

    Existence is checked by the locator, which reports a missing
    configured path as an unavailable provider.
    """
    if config_path:
        return config_path
    return os.environ.get("AGENT_CLI_CLAUDE_PATH") or None


def resolve_permission_mode(config_mode: Optional[str] = None) -> Optional[str]:
    """Resolve the CLI permission mode.

    Resolution order:
    1. Explicit config_mode parameter
    2. AGENT_CLI_CLAUDE_PERMISSION_MODE environment variable
    3. Default: None (use CLI default)

    Valid modes (from Claude Code docs):
    - "default": Standard permission behavior
    - "acceptEdits": Auto-accept file edits
    - "plan": Planning mode - no execution
    - "bypassPermissions": Bypass all permission checks

    Raises:
        InvalidQueryError: If the mode is not one of the valid modes.
    """
    mode = config_mode or os.environ.get("AGENT_CLI_CLAUDE_PERMISSION_MODE")
    if not mode:
        return None
    if mode not in PERMISSION_MODES:
        raise InvalidQueryError(
            f"Invalid permission mode: {mode!r}. Valid modes: {', '.join(PERMISSION_MODES)}"
        )
    return mode


def resolve_max_turns(config_max_turns: Optional[Any] = None) -> Optional[int]:
    """Resolve the maximum number of agentic turns.

    Resolution order:
    1. Explicit config_max_turns parameter
    2. AGENT_CLI_CLAUDE_MAX_TURNS environment variable (ignored if not an int)
    3. Default: None (unlimited)

    Raises:
        InvalidQueryError: If the explicit value is not a positive integer.
    """
    if config_max_turns is not None:
        if isinstance(config_max_turns, bool) or not isinstance(config_max_turns, int) \
                or config_max_turns < 1:
            raise InvalidQueryError(
                f"max_turns must be a positive integer, got {config_max_turns!r}"
            )
        return config_max_turns

    env_max_turns = os.environ.get("AGENT_CLI_CLAUDE_MAX_TURNS")
    if env_max_turns:
        try:
            value = int(env_max_turns)
        except ValueError:
            return None
        return value if value > 0 else None

    return None
