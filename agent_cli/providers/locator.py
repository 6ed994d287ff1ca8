"""CLI discovery.

The locator answers one question for a provider: how can its CLI be started
on this host? Not finding the CLI is a normal answer (UNAVAILABLE), not an
exception.
"""

import logging
import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, List, Optional, Tuple

from .env import resolve_discovery_timeout
from .spawn import Platform, SpawnStrategy, from_wsl_path, resolve_spawn_strategy

if TYPE_CHECKING:
    from .base import ProviderDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CLILocation:
    """Where a CLI was found and how it must be invoked.

    Attributes:
        strategy: Spawn strategy for this location.
        command: Executable path, batch script path, wrapper path, or, for
            the wsl strategy, the path inside the distribution.
        package: Package argument for the wrapper strategy.
        wrapper_args: Runner flags placed before the package.
        distribution: WSL distribution for the wsl strategy.
    """
    strategy: SpawnStrategy
    command: str
    package: Optional[str] = None
    wrapper_args: Tuple[str, ...] = ()
    distribution: Optional[str] = None

    @property
    def display(self) -> str:
        """Human-readable location, as a host path where one exists."""
        if self.strategy == SpawnStrategy.WRAPPER:
            return " ".join([self.command, *self.wrapper_args, self.package or ""]).strip()
        if self.strategy == SpawnStrategy.COMPAT_SHELL:
            return f"{from_wsl_path(self.command, self.distribution)} (wsl)"
        return self.command


class ResolutionStatus(str, Enum):
    """Lifecycle of a provider's CLI location."""
    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class LocationState:
    """Cached outcome of CLI discovery for one provider instance."""
    status: ResolutionStatus
    location: Optional[CLILocation] = None
    reason: str = ""

    @classmethod
    def unresolved(cls) -> 'LocationState':
        return cls(status=ResolutionStatus.UNRESOLVED)

    @classmethod
    def resolved(cls, location: CLILocation) -> 'LocationState':
        return cls(status=ResolutionStatus.RESOLVED, location=location)

    @classmethod
    def unavailable(cls, reason: str) -> 'LocationState':
        return cls(status=ResolutionStatus.UNAVAILABLE, reason=reason)

    @property
    def is_resolved(self) -> bool:
        return self.status == ResolutionStatus.RESOLVED

    @property
    def is_unavailable(self) -> bool:
        return self.status == ResolutionStatus.UNAVAILABLE


def _default_is_executable(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


class CLILocator:
    """Finds a provider's CLI on the host.

    Search order, first match wins:
    1. The descriptor's explicit cli_path (no further search if set)
    2. The platform's command search (shutil.which)
    3. For the wsl strategy: ``command -v`` inside the WSL distribution
    4. The descriptor's install paths for the platform
    5. A package-runner wrapper, when the descriptor declares one

    All host interaction goes through injectable callables so the search can
    be exercised without touching the real filesystem.
    """

    def __init__(
        self,
        which: Callable[[str], Optional[str]] = shutil.which,
        is_executable: Callable[[str], bool] = _default_is_executable,
        run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        discovery_timeout: Optional[float] = None,
        wsl_executable: str = "wsl.exe",
    ):
        self._which = which
        self._is_executable = is_executable
        self._run = run
        self._discovery_timeout = resolve_discovery_timeout(discovery_timeout)
        self._wsl_executable = wsl_executable

    def locate(self, descriptor: "ProviderDescriptor", platform: Platform) -> LocationState:
        """Locate a CLI.

        Returns:
            A RESOLVED or UNAVAILABLE state. Never UNRESOLVED.

        Raises:
            UnsupportedPlatformError: If the descriptor declares no strategy
                for the platform.
        """
        strategy = resolve_spawn_strategy(
            platform, descriptor.spawn_strategies, descriptor.name
        )
        checked: List[str] = []

        if descriptor.cli_path:
            path = _expand(descriptor.cli_path)
            if self._is_executable(path):
                return self._found(descriptor, self._native_location(path, platform))
            return self._not_found(descriptor, f"configured path does not exist: {path}")

        path = self._which(descriptor.command)
        checked.append(f"PATH ({descriptor.command})")
        if path:
            return self._found(descriptor, self._native_location(path, platform))

        if strategy == SpawnStrategy.COMPAT_SHELL:
            location = self._locate_in_wsl(descriptor)
            checked.append(f"WSL ({descriptor.wsl_distribution or 'default distribution'})")
            if location:
                return self._found(descriptor, location)

        for candidate in descriptor.paths_for(platform):
            path = _expand(candidate)
            checked.append(path)
            if self._is_executable(path):
                return self._found(descriptor, self._native_location(path, platform))

        if descriptor.wrapper_command and descriptor.wrapper_package:
            wrapper = self._which(descriptor.wrapper_command)
            checked.append(f"wrapper ({descriptor.wrapper_command})")
            if wrapper:
                location = CLILocation(
                    strategy=SpawnStrategy.WRAPPER,
                    command=wrapper,
                    package=descriptor.wrapper_package,
                    wrapper_args=tuple(descriptor.wrapper_args),
                )
                return self._found(descriptor, location)

        return self._not_found(descriptor, "checked " + ", ".join(checked))

    # ==================== Internal Methods ====================

    @staticmethod
    def _native_location(path: str, platform: Platform) -> CLILocation:
        if platform == Platform.WINDOWS and path.lower().endswith((".cmd", ".bat")):
            return CLILocation(strategy=SpawnStrategy.BATCH_SCRIPT, command=path)
        return CLILocation(strategy=SpawnStrategy.DIRECT, command=path)

    def _locate_in_wsl(self, descriptor: "ProviderDescriptor") -> Optional[CLILocation]:
        """Search for the command inside a WSL distribution."""
        wsl = self._which(self._wsl_executable) or self._which("wsl")
        if not wsl:
            logger.debug("WSL is not installed, skipping compatibility shell search")
            return None

        argv = [wsl]
        if descriptor.wsl_distribution:
            argv.extend(["-d", descriptor.wsl_distribution])
        argv.extend(["--", "sh", "-lc", f"command -v {shlex.quote(descriptor.command)}"])

        try:
            result = self._run(
                argv,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self._discovery_timeout,
            )
        except subprocess.TimeoutExpired:
            logger.warning(
                f"WSL lookup for '{descriptor.command}' timed out after "
                f"{self._discovery_timeout:g}s"
            )
            return None
        except OSError as e:
            logger.warning(f"WSL lookup for '{descriptor.command}' failed: {e}")
            return None

        if result.returncode != 0:
            return None
        lines = [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]
        if not lines:
            return None

        # `command -v` may print an alias or function name; only paths can be spawned.
        inner_path = lines[-1]
        if not inner_path.startswith("/"):
            return None
        return CLILocation(
            strategy=SpawnStrategy.COMPAT_SHELL,
            command=inner_path,
            distribution=descriptor.wsl_distribution,
        )

    @staticmethod
    def _found(descriptor: "ProviderDescriptor", location: CLILocation) -> LocationState:
        logger.info(
            f"Located {descriptor.name} CLI: {location.display} "
            f"(strategy={location.strategy.value})"
        )
        return LocationState.resolved(location)

    @staticmethod
    def _not_found(descriptor: "ProviderDescriptor", reason: str) -> LocationState:
        logger.info(f"{descriptor.name} CLI not found: {reason}")
        if descriptor.install_hint:
            reason = f"{reason}. {descriptor.install_hint}"
        return LocationState.unavailable(reason)


def _expand(path: str) -> str:
    return os.path.expandvars(os.path.expanduser(path))
