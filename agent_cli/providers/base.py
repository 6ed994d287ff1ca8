"""Base protocol and descriptors for CLI provider backends.

A backend is the small, CLI-specific part of a provider: it declares where
the executable lives, how a Query becomes a command line, and how the CLI's
output records become canonical messages. CLIProvider (provider.py) supplies
everything else: location caching, spawning, stream framing, error mapping,
cancellation.
"""

import fnmatch
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Protocol, Tuple, runtime_checkable

from .env import (
    DEFAULT_STDERR_TAIL_CHARS,
    resolve_discovery_timeout,
    resolve_execution_timeout,
    resolve_max_line_bytes,
    resolve_queue_size,
    resolve_terminate_grace,
)
from .spawn import Platform
from .types import Query

if TYPE_CHECKING:
    from .locator import CLILocation
    from .normalizer import EventNormalizer


@dataclass(frozen=True)
class ProviderDescriptor:
    """Static description of a backing CLI.

    Attributes:
        name: Unique provider name (registry key).
        command: Bare executable name searched on PATH (e.g. "claude").
        spawn_strategies: Declared strategy per platform value ("linux",
            "darwin", "win32", or "*" for any). Values: "direct", "wrapper",
            "wsl", "batch", "native".
        install_paths: Candidate executable paths per platform value, probed
            in order. "~" and environment variables are expanded.
        wrapper_command: Package runner used by the wrapper strategy ("npx").
        wrapper_package: Package passed to the runner ("@openai/codex").
        wrapper_args: Runner flags placed before the package.
        wsl_distribution: Distribution for the compatibility shell. None uses
            the WSL default.
        cli_path: Explicit executable path. When set, no search happens.
        model_patterns: Glob patterns of model ids this CLI serves.
        default_model: Model used when a query names none. None leaves the
            choice to the CLI.
        install_hint: Shown when the CLI cannot be found.
    """
    name: str
    command: str
    spawn_strategies: Mapping[str, str] = field(default_factory=lambda: {"*": "native"})
    install_paths: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    wrapper_command: Optional[str] = None
    wrapper_package: Optional[str] = None
    wrapper_args: Tuple[str, ...] = ()
    wsl_distribution: Optional[str] = None
    cli_path: Optional[str] = None
    model_patterns: Tuple[str, ...] = ()
    default_model: Optional[str] = None
    install_hint: str = ""

    def paths_for(self, platform: Platform) -> Tuple[str, ...]:
        """Candidate install paths for a platform."""
        return tuple(self.install_paths.get(platform.value, ()))

    def serves_model(self, model_id: str) -> bool:
        """Check whether a model id matches one of the declared patterns."""
        lowered = model_id.lower().strip()
        return any(
            fnmatch.fnmatchcase(lowered, pattern.lower())
            for pattern in self.model_patterns
        )


@dataclass
class ProviderSettings:
    """Execution settings shared by every provider.

    Defaults come from the AGENT_CLI_* environment variables (see env.py).

    Attributes:
        queue_size: Bound of the queue between the stdout reader and the
            consumer. A full queue stops reads from the subprocess pipe.
        discovery_timeout: Seconds allowed for discovery subprocesses.
        execution_timeout: Default per-execution timeout; None disables it.
        terminate_grace: Seconds between SIGTERM and SIGKILL on cancellation.
        max_line_bytes: Longest accepted stdout line.
        read_chunk_size: Bytes requested per stdout read.
        stderr_tail_chars: Stderr characters kept for error mapping.
        stderr_excerpt_chars: Stderr characters carried in a TypedError.
    """
    queue_size: int = field(default_factory=resolve_queue_size)
    discovery_timeout: float = field(default_factory=resolve_discovery_timeout)
    execution_timeout: Optional[float] = field(default_factory=resolve_execution_timeout)
    terminate_grace: float = field(default_factory=resolve_terminate_grace)
    max_line_bytes: int = field(default_factory=resolve_max_line_bytes)
    read_chunk_size: int = 64 * 1024
    stderr_tail_chars: int = DEFAULT_STDERR_TAIL_CHARS
    stderr_excerpt_chars: int = 500


@runtime_checkable
class CLIBackend(Protocol):
    """Protocol for the CLI-specific half of a provider.

    Example implementation:
        class EchoBackend:
            descriptor = ProviderDescriptor(name="echo", command="echo")

            def build_args(self, query, location):
                return [query.prompt]

            def build_env(self, base):
                return base

            def create_normalizer(self):
                return EchoNormalizer(self.descriptor.name)

            def list_models(self):
                return []
    """

    @property
    def descriptor(self) -> ProviderDescriptor:
        """Static description of the backing CLI."""
        ...

    def build_args(self, query: Query, location: "CLILocation") -> List[str]:
        """Build CLI arguments (without the executable) for a query.

        Raises:
            InvalidQueryError: If the query cannot be expressed as arguments.
        """
        ...

    def build_env(self, base: Dict[str, str]) -> Dict[str, str]:
        """Return the child process environment derived from base."""
        ...

    def create_normalizer(self) -> "EventNormalizer":
        """Create a fresh normalizer for one execution."""
        ...

    def list_models(self) -> List[str]:
        """Commonly available model ids or aliases for this CLI."""
        ...
