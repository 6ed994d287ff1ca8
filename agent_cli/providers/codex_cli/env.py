"""Environment variable resolution for the Codex CLI provider."""

import os
from typing import Optional

from ..errors import InvalidQueryError

SANDBOX_MODES = ("read-only", "workspace-write", "danger-full-access")


def resolve_cli_path(config_path: Optional[str] = None) -> Optional[str]:
    """Resolve an explicit path to the codex executable.

    Resolution order:
    1. Explicit config_path parameter
    2. AGENT_CLI_CODEX_PATH environment variable
    3. None (the locator searches PATH, install locations and npx)
    """
    if config_path:
        return config_path
    return os.environ.get("AGENT_CLI_CODEX_PATH") or None


def resolve_sandbox(config_sandbox: Optional[str] = None) -> Optional[str]:
    """Resolve the sandbox policy for model-generated commands.

    Resolution order:
    1. Explicit config_sandbox parameter
    2. AGENT_CLI_CODEX_SANDBOX environment variable
    3. Default: None (use CLI default)

    Raises:
        InvalidQueryError: If the value is not a known sandbox mode.
    """
    sandbox = config_sandbox or os.environ.get("AGENT_CLI_CODEX_SANDBOX")
    if not sandbox:
        return None
    if sandbox not in SANDBOX_MODES:
        raise InvalidQueryError(
            f"Invalid sandbox mode: {sandbox!r}. Valid modes: {', '.join(SANDBOX_MODES)}"
        )
    return sandbox
