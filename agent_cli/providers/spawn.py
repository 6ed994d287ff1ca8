"""Spawn strategy selection and spawn plan building.

Turning a logical CLI name into a process invocation differs by platform:

- direct:       the executable is on PATH or at a known location.
- wrapper:      run through a package runner (``npx --yes @scope/cli ...``).
- wsl:          run inside a WSL distribution from a Windows host; the
                working directory is translated into the /mnt/<drive> form.
- batch:        Windows .cmd/.bat shims (what npm installs) have to go
                through cmd.exe, with every argument quoted and escaped.

Everything here is pure: no filesystem access, no processes. Process
creation lives in provider.py.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence

from .errors import InvalidQueryError, UnsupportedPlatformError


class Platform(str, Enum):
    """Host platforms, keyed by their sys.platform prefix."""
    LINUX = "linux"
    MACOS = "darwin"
    WINDOWS = "win32"

    @classmethod
    def from_string(cls, value: str) -> 'Platform':
        """Parse a sys.platform value or a friendly alias."""
        lowered = value.lower().strip()
        aliases = {
            "linux": cls.LINUX,
            "darwin": cls.MACOS,
            "macos": cls.MACOS,
            "mac": cls.MACOS,
            "osx": cls.MACOS,
            "win32": cls.WINDOWS,
            "windows": cls.WINDOWS,
            "win": cls.WINDOWS,
            "cygwin": cls.WINDOWS,
        }
        for prefix, platform in aliases.items():
            if lowered == prefix or lowered.startswith(prefix):
                return platform
        raise ValueError(f"Unknown platform: {value!r}")


class SpawnStrategy(str, Enum):
    """How a located CLI is invoked."""
    DIRECT = "direct"
    WRAPPER = "wrapper"
    COMPAT_SHELL = "wsl"
    BATCH_SCRIPT = "batch"


# Declared value that resolves per platform instead of naming a strategy.
NATIVE = "native"

_DECLARABLE = {s.value for s in SpawnStrategy} | {NATIVE}


def resolve_spawn_strategy(
    platform: Platform,
    declared: Mapping[str, str],
    provider: str = "",
) -> SpawnStrategy:
    """Resolve a provider's declared strategy for the given platform.

    Args:
        platform: Host platform.
        declared: Mapping of platform value ("linux", "darwin", "win32") to a
            declared strategy. The "*" key applies to platforms not listed.
        provider: Provider name, for error messages.

    Returns:
        The concrete strategy.

    Raises:
        UnsupportedPlatformError: If nothing is declared for the platform,
            the declared value is unknown, or the compatibility shell is
            requested on a host that is not Windows.
    """
    value = declared.get(platform.value, declared.get("*"))
    if value is None:
        raise UnsupportedPlatformError(provider, platform.value)

    value = value.lower().strip()
    if value not in _DECLARABLE:
        raise UnsupportedPlatformError(
            provider, platform.value, f"Unknown spawn strategy {value!r}."
        )

    if value == NATIVE:
        if platform == Platform.WINDOWS:
            return SpawnStrategy.BATCH_SCRIPT
        return SpawnStrategy.DIRECT

    strategy = SpawnStrategy(value)
    if strategy == SpawnStrategy.COMPAT_SHELL and platform != Platform.WINDOWS:
        raise UnsupportedPlatformError(
            provider, platform.value, "The WSL compatibility shell needs a Windows host."
        )
    if strategy == SpawnStrategy.BATCH_SCRIPT and platform != Platform.WINDOWS:
        raise UnsupportedPlatformError(
            provider, platform.value, "Batch scripts need a Windows host."
        )
    return strategy


# ==================== Path translation ====================

_DRIVE_RE = re.compile(r"^([A-Za-z]):(?:[\\/]|$)")
_MNT_RE = re.compile(r"^/mnt/([a-z])(?:/|$)")


def to_wsl_path(path: str) -> str:
    r"""Translate a Windows host path into its WSL form.

    ``C:\Users\me\proj`` becomes ``/mnt/c/Users/me/proj``. UNC paths into a
    distribution (``\\wsl$\Ubuntu\home\me``) become ``/home/me``. Anything
    else is returned with separators normalised.
    """
    match = _DRIVE_RE.match(path)
    if match:
        drive = match.group(1).lower()
        rest = path[2:].replace("\\", "/").lstrip("/")
        return f"/mnt/{drive}/{rest}" if rest else f"/mnt/{drive}"

    normalized = path.replace("\\", "/")
    for prefix in ("//wsl$/", "//wsl.localhost/"):
        if normalized.lower().startswith(prefix):
            remainder = normalized[len(prefix):]
            _, _, inner = remainder.partition("/")
            return "/" + inner
    return normalized


def from_wsl_path(path: str, distribution: Optional[str] = None) -> str:
    r"""Translate a WSL path into a form the Windows host can open.

    ``/mnt/c/tools/x`` becomes ``C:\tools\x``. Other absolute paths become
    ``\\wsl$\<distribution>\...``.
    """
    match = _MNT_RE.match(path)
    if match:
        drive = match.group(1).upper()
        rest = path[len("/mnt/") + 1:].lstrip("/").replace("/", "\\")
        return f"{drive}:\\{rest}"
    distro = distribution or "Ubuntu"
    return f"\\\\wsl$\\{distro}" + path.replace("/", "\\")


# ==================== Plans ====================


@dataclass(frozen=True)
class SpawnPlan:
    """Everything needed to start one CLI process.

    Attributes:
        argv: Program and arguments. For the batch strategy this is the
            logical invocation (script and arguments) and is not run as is.
        shell_command: Escaped cmd.exe command line, set only for the batch
            strategy. The process is started through the system shell.
    """
    argv: List[str]
    cwd: Optional[str] = None
    env: Optional[Dict[str, str]] = None
    strategy: SpawnStrategy = SpawnStrategy.DIRECT
    shell_command: Optional[str] = None

    @property
    def program(self) -> str:
        return self.argv[0]


@dataclass(frozen=True)
class ShellSettings:
    """Host programs used by the wsl strategy."""
    wsl_executable: str = "wsl.exe"


# ==================== cmd.exe quoting ====================

# Characters cmd.exe interprets on a command line, including separators.
_CMD_META_RE = re.compile(r'([()\][%!^"`<>&|;, *?])')
_CMD_UNSAFE = ("\r", "\n", "\x00")


def escape_cmd_command(command: str) -> str:
    """Caret-escape a script path for a cmd.exe command line."""
    return _CMD_META_RE.sub(r"^\1", command)


def quote_cmd_argument(arg: str) -> str:
    """Quote one argument for a batch script started via cmd.exe.

    The argument is first quoted the way the C runtime parses it (quotes
    escaped, backslashes before a quote doubled), then every cmd.exe
    metacharacter, the surrounding quotes included, is caret-escaped so
    that cmd.exe passes it through as literal text.

    Raises:
        InvalidQueryError: If the argument holds a line break or NUL, which
            a cmd.exe command line cannot carry.
    """
    for char in _CMD_UNSAFE:
        if char in arg:
            raise InvalidQueryError(
                f"Argument contains {char!r}, which cannot be passed to a batch "
                "script through cmd.exe. Use a native executable or the wrapper "
                "strategy."
            )
    arg = re.sub(r'(\\*)"', r'\1\1\\"', arg)
    arg = re.sub(r'(\\*)$', r'\1\1', arg)
    return _CMD_META_RE.sub(r"^\1", f'"{arg}"')


def build_spawn_plan(
    location,
    args: Sequence[str],
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    shell: Optional[ShellSettings] = None,
) -> SpawnPlan:
    """Build the argv and working directory for a located CLI.

    Args:
        location: A CLILocation from the locator.
        args: CLI arguments, as built by the provider backend.
        cwd: Working directory as a host path.
        env: Environment for the child process.
        shell: Host shell programs. Defaults to wsl.exe.

    Returns:
        The SpawnPlan. For the wsl strategy the host cwd is None and the
        translated directory is passed with ``--cd``. For the batch strategy
        ``shell_command`` holds the escaped command line.

    Raises:
        InvalidQueryError: If an argument cannot be passed safely to a
            batch script.
    """
    shell = shell or ShellSettings()
    strategy = location.strategy
    args = list(args)

    if strategy == SpawnStrategy.DIRECT:
        argv = [location.command, *args]
        return SpawnPlan(argv=argv, cwd=cwd, env=env, strategy=strategy)

    if strategy == SpawnStrategy.WRAPPER:
        argv = [location.command, *location.wrapper_args]
        if location.package:
            argv.append(location.package)
        argv.extend(args)
        return SpawnPlan(argv=argv, cwd=cwd, env=env, strategy=strategy)

    if strategy == SpawnStrategy.COMPAT_SHELL:
        argv = [shell.wsl_executable]
        if location.distribution:
            argv.extend(["-d", location.distribution])
        if cwd:
            argv.extend(["--cd", to_wsl_path(cwd)])
        argv.append("--")
        argv.extend([location.command, *args])
        return SpawnPlan(argv=argv, cwd=None, env=env, strategy=strategy)

    if strategy == SpawnStrategy.BATCH_SCRIPT:
        command = " ".join(
            [escape_cmd_command(location.command), *(quote_cmd_argument(a) for a in args)]
        )
        return SpawnPlan(
            argv=[location.command, *args],
            cwd=cwd,
            env=env,
            strategy=strategy,
            shell_command=command,
        )

    raise ValueError(f"Unhandled spawn strategy: {strategy!r}")
