"""Environment variable resolution for layer-wide provider settings.

Each resolver follows the same order:
1. Explicit value passed by the caller
2. Environment variable
3. Built-in default
"""

import logging
import os
import sys
from typing import Callable, Optional, TypeVar

from .spawn import Platform

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_QUEUE_SIZE = 64
DEFAULT_DISCOVERY_TIMEOUT = 10.0
DEFAULT_TERMINATE_GRACE = 5.0
DEFAULT_MAX_LINE_BYTES = 10 * 1024 * 1024
DEFAULT_STDERR_TAIL_CHARS = 64 * 1024


def _env_value(name: str, parse: Callable[[str], T]) -> Optional[T]:
    raw = os.environ.get(name)
    if not raw:
        return None
    try:
        return parse(raw.strip())
    except ValueError:
        logger.warning(f"Ignoring invalid value for {name}: {raw!r}")
        return None


def resolve_queue_size(config_value: Optional[int] = None) -> int:
    """Resolve the bound of the per-execution message queue.

    Resolution order:
    1. Explicit config_value
    2. AGENT_CLI_QUEUE_SIZE environment variable
    3. Default: 64

    Values below 1 are clamped to 1.
    """
    if config_value is None:
        config_value = _env_value("AGENT_CLI_QUEUE_SIZE", int)
    if config_value is None:
        return DEFAULT_QUEUE_SIZE
    return max(1, config_value)


def resolve_discovery_timeout(config_value: Optional[float] = None) -> float:
    """Resolve the timeout for CLI discovery subprocesses (seconds).

    Resolution order:
    1. Explicit config_value
    2. AGENT_CLI_DISCOVERY_TIMEOUT environment variable
    3. Default: 10 seconds
    """
    if config_value is not None:
        return config_value
    env_value = _env_value("AGENT_CLI_DISCOVERY_TIMEOUT", float)
    return env_value if env_value is not None else DEFAULT_DISCOVERY_TIMEOUT


def resolve_execution_timeout(config_value: Optional[float] = None) -> Optional[float]:
    """Resolve the default execution timeout (seconds).

    Resolution order:
    1. Explicit config_value
    2. AGENT_CLI_EXECUTION_TIMEOUT environment variable
    3. Default: None (no timeout)

    Zero or negative values mean no timeout.
    """
    if config_value is None:
        config_value = _env_value("AGENT_CLI_EXECUTION_TIMEOUT", float)
    if config_value is None or config_value <= 0:
        return None
    return config_value


def resolve_terminate_grace(config_value: Optional[float] = None) -> float:
    """Resolve how long a terminated CLI gets before it is killed (seconds).

    Resolution order:
    1. Explicit config_value
    2. AGENT_CLI_TERMINATE_GRACE environment variable
    3. Default: 5 seconds
    """
    if config_value is not None:
        return config_value
    env_value = _env_value("AGENT_CLI_TERMINATE_GRACE", float)
    return env_value if env_value is not None else DEFAULT_TERMINATE_GRACE


def resolve_max_line_bytes(config_value: Optional[int] = None) -> int:
    """Resolve the longest stdout line accepted before it is dropped.

    Resolution order:
    1. Explicit config_value
    2. AGENT_CLI_MAX_LINE_BYTES environment variable
    3. Default: 10 MiB
    """
    if config_value is not None:
        return config_value
    env_value = _env_value("AGENT_CLI_MAX_LINE_BYTES", int)
    return env_value if env_value is not None else DEFAULT_MAX_LINE_BYTES


def resolve_wsl_distribution(config_value: Optional[str] = None) -> Optional[str]:
    """Resolve the WSL distribution used by the compatibility shell.

    Resolution order:
    1. Explicit config_value
    2. AGENT_CLI_WSL_DISTRIBUTION environment variable
    3. Default: None (wsl.exe picks the default distribution)
    """
    if config_value:
        return config_value
    return os.environ.get("AGENT_CLI_WSL_DISTRIBUTION") or None


def resolve_platform(config_value: Optional[str] = None) -> Platform:
    """Resolve the host platform.

    Resolution order:
    1. Explicit config_value
    2. AGENT_CLI_PLATFORM environment variable
    3. sys.platform

    Raises:
        ValueError: If an explicit or environment value is not a known platform.
    """
    if config_value:
        return Platform.from_string(config_value)
    env_platform = os.environ.get("AGENT_CLI_PLATFORM")
    if env_platform:
        return Platform.from_string(env_platform)
    try:
        return Platform.from_string(sys.platform)
    except ValueError:
        # BSDs and other POSIX hosts behave like Linux for spawning purposes.
        return Platform.LINUX


def resolve_providers_config_path(config_value: Optional[str] = None) -> Optional[str]:
    """Resolve the path of the descriptor overrides file (JSON or YAML).

    Resolution order:
    1. Explicit config_value
    2. AGENT_CLI_PROVIDERS_CONFIG environment variable
    3. Default: None (no overrides)
    """
    if config_value:
        return config_value
    return os.environ.get("AGENT_CLI_PROVIDERS_CONFIG") or None
