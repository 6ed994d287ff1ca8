"""OpenAI Codex CLI provider plugin.

Drives ``codex exec --json``. On Windows the CLI runs inside WSL unless a
native install is found on PATH.

Configuration:
    Environment variables:
        AGENT_CLI_CODEX_PATH: Explicit path to the codex executable
        AGENT_CLI_CODEX_SANDBOX: Default sandbox mode
        AGENT_CLI_WSL_DISTRIBUTION: Distribution used on Windows hosts
"""

from typing import Any, Dict, Optional

from ..base import ProviderSettings
from ..config import apply_overrides
from ..provider import CLIProvider
from .env import resolve_cli_path, resolve_sandbox
from .provider import (
    MODEL_PATTERNS,
    PROVIDER_NAME,
    CodexCLIBackend,
    CodexNormalizer,
    default_descriptor,
)

__all__ = [
    "CodexCLIBackend",
    "CodexNormalizer",
    "MODEL_PATTERNS",
    "PROVIDER_NAME",
    "create_plugin",
    "default_descriptor",
    "resolve_cli_path",
    "resolve_sandbox",
]


def create_plugin(
    config: Optional[Dict[str, Any]] = None,
    settings: Optional[ProviderSettings] = None,
) -> CLIProvider:
    """Factory function for plugin discovery."""
    descriptor = apply_overrides(default_descriptor(), config)
    return CLIProvider(CodexCLIBackend(descriptor), settings=settings)
