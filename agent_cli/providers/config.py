"""Descriptor overrides loaded from a JSON or YAML file.

Built-in descriptors cover the usual install locations. Hosts with unusual
layouts override them per provider instead of patching code:

    # providers.yaml
    providers:
      claude_cli:
        cli_path: /opt/tools/claude
      codex_cli:
        spawn_strategies: {win32: wsl}
        wsl_distribution: Ubuntu-24.04
        install_paths:
          linux: [~/.local/bin/codex]

The file is named by AGENT_CLI_PROVIDERS_CONFIG or passed explicitly.
"""

import dataclasses
import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .base import ProviderDescriptor
from .env import resolve_providers_config_path
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# Descriptor fields a configuration file may override.
OVERRIDABLE_FIELDS = (
    "cli_path",
    "install_paths",
    "spawn_strategies",
    "wsl_distribution",
    "wrapper_command",
    "wrapper_package",
    "wrapper_args",
    "model_patterns",
    "default_model",
)


def load_providers_config(path: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
    """Load per-provider overrides.

    Args:
        path: File to read. Defaults to AGENT_CLI_PROVIDERS_CONFIG; with
            neither set, there are no overrides.

    Returns:
        Mapping of provider name to its override dict.

    Raises:
        ConfigurationError: If the file is missing, unparsable, or not shaped
            as ``{"providers": {name: {...}}}``.
    """
    path = resolve_providers_config_path(path)
    if not path:
        return {}

    file_path = Path(path).expanduser()
    try:
        content = file_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read providers config {file_path}: {e}") from e

    try:
        if file_path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(content)
        else:
            data = json.loads(content)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Invalid providers config {file_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict) or not isinstance(data.get("providers", {}), dict):
        raise ConfigurationError(
            f"Invalid providers config {file_path}: expected a 'providers' mapping"
        )

    providers = data.get("providers") or {}
    for name, overrides in providers.items():
        if not isinstance(overrides, dict):
            raise ConfigurationError(
                f"Invalid providers config {file_path}: entry '{name}' must be a mapping"
            )
    logger.info(f"Loaded provider overrides from {file_path} ({', '.join(providers) or 'empty'})")
    return providers


def apply_overrides(
    descriptor: ProviderDescriptor,
    overrides: Optional[Mapping[str, Any]],
) -> ProviderDescriptor:
    """Return a copy of a descriptor with configuration overrides applied.

    Raises:
        ConfigurationError: On unknown keys or values of the wrong shape.
    """
    if not overrides:
        return descriptor

    unknown = set(overrides) - set(OVERRIDABLE_FIELDS)
    if unknown:
        raise ConfigurationError(
            f"Unknown override(s) for provider '{descriptor.name}': "
            f"{', '.join(sorted(unknown))}. Allowed: {', '.join(OVERRIDABLE_FIELDS)}"
        )

    changes: Dict[str, Any] = {}
    for key, value in overrides.items():
        if key == "install_paths":
            changes[key] = {
                platform: _as_tuple(descriptor.name, key, paths)
                for platform, paths in _as_mapping(descriptor.name, key, value).items()
            }
        elif key == "spawn_strategies":
            changes[key] = {
                platform: str(strategy)
                for platform, strategy in _as_mapping(descriptor.name, key, value).items()
            }
        elif key in ("wrapper_args", "model_patterns"):
            changes[key] = _as_tuple(descriptor.name, key, value)
        else:
            changes[key] = str(value) if value is not None else None

    logger.debug(f"Overriding {descriptor.name} descriptor fields: {', '.join(sorted(changes))}")
    return dataclasses.replace(descriptor, **changes)


def _as_mapping(provider: str, key: str, value: Any) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"Override '{key}' for provider '{provider}' must be a mapping")
    return value


def _as_tuple(provider: str, key: str, value: Any) -> tuple:
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple)):
        raise ConfigurationError(f"Override '{key}' for provider '{provider}' must be a list")
    return tuple(str(v) for v in value)
