"""Claude Code CLI provider plugin.

Drives the ``claude`` CLI in print mode with stream-json output.

Configuration:
    Environment variables:
        AGENT_CLI_CLAUDE_PATH: Explicit path to the claude executable
        AGENT_CLI_CLAUDE_PERMISSION_MODE: Default permission mode
        AGENT_CLI_CLAUDE_MAX_TURNS: Default maximum agentic turns

    Providers config (see providers/config.py):
        cli_path, install_paths, spawn_strategies, wsl_distribution, ...

Example:
    from agent_cli.providers.claude_cli import create_plugin
    from agent_cli.providers import Query

    provider = create_plugin()
    async for message in provider.execute(Query(prompt="Hello!", model="sonnet")):
        print(message)
"""

from typing import Any, Dict, Optional

from ..base import ProviderSettings
from ..config import apply_overrides
from ..provider import CLIProvider
from .env import resolve_cli_path, resolve_max_turns, resolve_permission_mode
from .provider import (
    MODEL_PATTERNS,
    PROVIDER_NAME,
    ClaudeCLIBackend,
    ClaudeNormalizer,
    default_descriptor,
)

__all__ = [
    "ClaudeCLIBackend",
    "ClaudeNormalizer",
    "MODEL_PATTERNS",
    "PROVIDER_NAME",
    "create_plugin",
    "default_descriptor",
    "resolve_cli_path",
    "resolve_max_turns",
    "resolve_permission_mode",
]


def create_plugin(
    config: Optional[Dict[str, Any]] = None,
    settings: Optional[ProviderSettings] = None,
) -> CLIProvider:
    """Factory function for plugin discovery.

    Args:
        config: Descriptor overrides for this provider.
        settings: Execution settings. Defaults come from the environment.
    """
    descriptor = apply_overrides(default_descriptor(), config)
    return CLIProvider(ClaudeCLIBackend(descriptor), settings=settings)
