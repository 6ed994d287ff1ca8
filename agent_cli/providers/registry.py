"""Provider registry.

The registry maps provider names to live CLIProvider instances and resolves
model ids to the provider that serves them.

Readers never take a lock: every lookup reads the current snapshot, an
immutable tuple of entries. Writers build a new snapshot under a lock and
swap it in with a single assignment, so registering a provider at runtime
never blocks or disturbs executions already in flight.
"""

import importlib
import logging
import pkgutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from .base import ProviderSettings
from .errors import ModelNotServedError, ProviderNotFoundError
from .provider import CLIProvider

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[], CLIProvider]


@dataclass(frozen=True)
class RegistryEntry:
    """One registered provider."""
    name: str
    factory: ProviderFactory
    provider: CLIProvider

    @property
    def model_patterns(self) -> Tuple[str, ...]:
        return tuple(self.provider.descriptor.model_patterns)


class ProviderRegistry:
    """Process-scoped catalog of CLI providers.

    Usage:
        registry = ProviderRegistry()
        registry.discover()                      # claude_cli, codex_cli

        provider = registry.get_for_model("sonnet")
        async for message in provider.execute(Query(prompt="hi")):
            ...

    Registration order is significant: list_all() iterates in that order and
    get_for_model() picks the first provider whose patterns match.
    """

    def __init__(self):
        self._entries: Tuple[RegistryEntry, ...] = ()
        self._write_lock = threading.Lock()

    def register(self, name: str, factory: ProviderFactory) -> CLIProvider:
        """Register (or replace) a provider.

        The factory is called immediately. Re-registering a name replaces
        the previous provider in place, keeping its position.

        Returns:
            The provider instance created by the factory.

        Raises:
            ValueError: If the factory's provider reports a different name.
        """
        provider = factory()
        if provider.name != name:
            raise ValueError(
                f"Factory for '{name}' created a provider named '{provider.name}'"
            )
        entry = RegistryEntry(name=name, factory=factory, provider=provider)

        with self._write_lock:
            entries = list(self._entries)
            for i, existing in enumerate(entries):
                if existing.name == name:
                    entries[i] = entry
                    logger.info(f"Replaced provider '{name}'")
                    break
            else:
                entries.append(entry)
                logger.debug(f"Registered provider '{name}'")
            self._entries = tuple(entries)
        return provider

    def unregister(self, name: str) -> bool:
        """Remove a provider. Returns True if it was registered."""
        with self._write_lock:
            entries = tuple(e for e in self._entries if e.name != name)
            removed = len(entries) != len(self._entries)
            self._entries = entries
        if removed:
            logger.debug(f"Unregistered provider '{name}'")
        return removed

    def get_by_name(self, name: str) -> CLIProvider:
        """Look up a provider by name.

        Raises:
            ProviderNotFoundError: If no provider has that name.
        """
        for entry in self._entries:
            if entry.name == name:
                return entry.provider
        raise ProviderNotFoundError(name, self.names())

    def get_for_model(self, model_id: str) -> CLIProvider:
        """Find the first provider, in registration order, serving a model.

        Raises:
            ModelNotServedError: If no registered provider claims the model.
        """
        for entry in self._entries:
            if entry.provider.serves_model(model_id):
                return entry.provider
        raise ModelNotServedError(model_id, self.names())

    def list_all(self) -> List[CLIProvider]:
        """All providers in registration order."""
        return [entry.provider for entry in self._entries]

    def names(self) -> List[str]:
        return [entry.name for entry in self._entries]

    def entries(self) -> Tuple[RegistryEntry, ...]:
        return self._entries

    def discover(
        self,
        config: Optional[Dict[str, Dict[str, Any]]] = None,
        plugin_dir: Optional[Path] = None,
        settings: Optional[ProviderSettings] = None,
    ) -> List[str]:
        """Register every provider subpackage that exports create_plugin().

        Args:
            config: Per-provider override dicts keyed by package name, passed
                to each create_plugin().
            plugin_dir: Directory to scan. Defaults to this package.
            settings: Execution settings shared by the created providers.

        Returns:
            Names of the providers registered.
        """
        config = config or {}
        if plugin_dir is None:
            plugin_dir = Path(__file__).parent

        discovered = []
        for _, name, ispkg in pkgutil.iter_modules([str(plugin_dir)]):
            if not ispkg or name.startswith("_") or name == "tests":
                continue
            module = importlib.import_module(f".{name}", package=__package__)
            create_plugin = getattr(module, "create_plugin", None)
            if create_plugin is None:
                logger.debug(f"Skipping '{name}': no create_plugin() function")
                continue

            overrides = config.get(name)

            def factory(create_plugin=create_plugin, overrides=overrides) -> CLIProvider:
                return create_plugin(overrides, settings)

            provider = self.register(name, factory)
            discovered.append(provider.name)
        logger.info(f"Discovered providers: {', '.join(discovered) or 'none'}")
        return discovered

    def __contains__(self, name: object) -> bool:
        return any(entry.name == name for entry in self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"ProviderRegistry({self.names()})"
