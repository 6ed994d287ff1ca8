"""Provider trace channel.

Raw protocol traffic is too noisy for the regular log, so providers write it
to a dedicated trace file instead. Tracing is off unless
AGENT_CLI_PROVIDER_TRACE names a file.

Usage:
    from agent_cli.trace import provider_trace

    provider_trace("claude_cli", f"stdout: {line[:200]}")
"""

import os
import traceback as _traceback_module
from datetime import datetime
from typing import Optional, Set


# Directories already created, so each write skips os.makedirs.
_ensured_dirs: Set[str] = set()


def _ensure_parent_dirs(file_path: str) -> None:
    """Create parent directories for a file path if they don't exist."""
    parent = os.path.dirname(os.path.abspath(file_path))
    if parent not in _ensured_dirs:
        os.makedirs(parent, exist_ok=True)
        _ensured_dirs.add(parent)


def resolve_trace_path(*env_vars: str) -> Optional[str]:
    """Return the first non-empty path among the given environment variables."""
    for var in env_vars:
        value = os.environ.get(var)
        if value:
            return value
    return None


def trace_write(
    component: str,
    msg: str,
    trace_path: Optional[str],
    *,
    include_traceback: bool = False,
) -> None:
    """Append a trace line to the given path.

    Never raises: a broken trace file must not break an execution.

    Args:
        component: Component name for the line prefix (e.g. "claude_cli").
        msg: Message to write.
        trace_path: File path to write to. If None, does nothing.
        include_traceback: If True, append the current exception traceback.
    """
    if not trace_path:
        return
    try:
        _ensure_parent_dirs(trace_path)
        with open(trace_path, "a", encoding="utf-8") as f:
            ts = datetime.now().strftime("%H:%M:%S.%f")[:-3]
            f.write(f"[{ts}] [{component}] {msg}\n")
            if include_traceback:
                tb = _traceback_module.format_exc()
                if tb and tb.strip() != "NoneType: None":
                    f.write(f"[{ts}] [{component}] Traceback:\n{tb}\n")
    except OSError:
        pass


def provider_trace(
    component: str,
    msg: str,
    *,
    include_traceback: bool = False,
) -> None:
    """Write a trace line to the file named by AGENT_CLI_PROVIDER_TRACE."""
    path = resolve_trace_path("AGENT_CLI_PROVIDER_TRACE")
    trace_write(component, msg, path, include_traceback=include_traceback)
