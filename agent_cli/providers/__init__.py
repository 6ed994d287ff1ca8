"""CLI agent providers.

One execution contract over several third-party AI agent CLIs. Each
provider locates its CLI, spawns it the right way for the host platform,
frames its JSON-lines output and normalizes it into CanonicalMessage values.

Usage:
    from agent_cli.providers import Query, create_default_registry

    registry = create_default_registry()
    provider = registry.get_for_model("sonnet")

    async with provider.execute(Query(prompt="Explain this repo", cwd=".")) as run:
        async for message in run:
            ...
"""

from typing import Optional

from .base import CLIBackend, ProviderDescriptor, ProviderSettings
from .config import apply_overrides, load_providers_config
from .errors import (
    ConfigurationError,
    ErrorKind,
    ErrorMapper,
    ErrorRule,
    InvalidQueryError,
    ModelNotServedError,
    ProviderError,
    ProviderNotFoundError,
    TypedError,
    UnsupportedPlatformError,
)
from .locator import CLILocation, CLILocator, LocationState, ResolutionStatus
from .normalizer import EventNormalizer
from .provider import CLIProvider, Execution
from .registry import ProviderRegistry, RegistryEntry
from .spawn import (
    Platform,
    SpawnPlan,
    SpawnStrategy,
    build_spawn_plan,
    from_wsl_path,
    resolve_spawn_strategy,
    to_wsl_path,
)
from .stream import LineFramer, read_records
from .types import (
    CancelToken,
    CanonicalMessage,
    MessageKind,
    Query,
    ToolCall,
    ToolOutput,
)

__all__ = [
    # Providers
    "CLIBackend",
    "CLIProvider",
    "Execution",
    "ProviderDescriptor",
    "ProviderSettings",
    "ProviderRegistry",
    "RegistryEntry",
    "create_default_registry",
    # Messages
    "CancelToken",
    "CanonicalMessage",
    "MessageKind",
    "Query",
    "ToolCall",
    "ToolOutput",
    # Errors
    "ConfigurationError",
    "ErrorKind",
    "ErrorMapper",
    "ErrorRule",
    "InvalidQueryError",
    "ModelNotServedError",
    "ProviderError",
    "ProviderNotFoundError",
    "TypedError",
    "UnsupportedPlatformError",
    # Discovery and spawning
    "CLILocation",
    "CLILocator",
    "LocationState",
    "ResolutionStatus",
    "Platform",
    "SpawnPlan",
    "SpawnStrategy",
    "build_spawn_plan",
    "resolve_spawn_strategy",
    "to_wsl_path",
    "from_wsl_path",
    # Streams
    "EventNormalizer",
    "LineFramer",
    "read_records",
    # Configuration
    "apply_overrides",
    "load_providers_config",
]


def create_default_registry(
    config_path: Optional[str] = None,
    settings: Optional[ProviderSettings] = None,
) -> ProviderRegistry:
    """Create a registry holding every bundled provider.

    Args:
        config_path: Descriptor overrides file (JSON or YAML). Defaults to
            AGENT_CLI_PROVIDERS_CONFIG.
        settings: Execution settings shared by all providers.

    Raises:
        ConfigurationError: If the overrides file is invalid.
    """
    registry = ProviderRegistry()
    registry.discover(config=load_providers_config(config_path), settings=settings)
    return registry
