"""Provider-agnostic types for CLI agent executions.

These types abstract away each vendor CLI's wire format. Everything an
execution yields is a CanonicalMessage; callers never see raw records.
"""

import copy
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .errors import TypedError

logger = logging.getLogger(__name__)


class MessageKind(str, Enum):
    """Kind of a canonical message."""
    TEXT_DELTA = "text_delta"            # Incremental assistant text
    TOOL_INVOCATION = "tool_invocation"  # The agent called a tool
    TOOL_RESULT = "tool_result"          # A tool call finished
    STATUS = "status"                    # Session bookkeeping (init, thread id)
    COMPLETION = "completion"            # Terminal: subprocess exited 0
    ERROR = "error"                      # Terminal: typed error


TERMINAL_KINDS = frozenset({MessageKind.COMPLETION, MessageKind.ERROR})


@dataclass
class Query:
    """Input to one execution.

    Attributes:
        prompt: Prompt or payload sent to the CLI.
        cwd: Working directory for the CLI process (host path).
        model: Model id or alias. None uses the CLI's own default.
        options: Provider-specific options, opaque to this layer.
        timeout: Seconds before the execution ends with a Timeout error.
            None falls back to the provider settings.
    """
    prompt: str
    cwd: Optional[str] = None
    model: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)
    timeout: Optional[float] = None

    def copy(self) -> 'Query':
        """Return an independent copy, options included."""
        return Query(
            prompt=self.prompt,
            cwd=self.cwd,
            model=self.model,
            options=copy.deepcopy(self.options),
            timeout=self.timeout,
        )


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation reported by the agent."""
    id: str
    name: str
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolOutput:
    """The outcome of a tool invocation."""
    call_id: str
    content: Any = None
    is_error: bool = False
    name: Optional[str] = None


@dataclass(frozen=True)
class CanonicalMessage:
    """One normalized event emitted by an execution.

    Attributes:
        kind: What this message carries.
        index: Position within its execution. Strictly increasing in
            emission order.
        provider: Name of the provider that produced the message.
        text: Text for TEXT_DELTA messages.
        tool_call: Invocation for TOOL_INVOCATION messages.
        tool_output: Outcome for TOOL_RESULT messages.
        data: Free-form payload for STATUS and COMPLETION messages.
        error: The typed error for ERROR messages.
    """
    kind: MessageKind
    index: int
    provider: str
    text: Optional[str] = None
    tool_call: Optional[ToolCall] = None
    tool_output: Optional[ToolOutput] = None
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[TypedError] = None

    @property
    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_KINDS


class CancelToken:
    """Thread-safe cancellation token for stopping executions.

    Example:
        token = CancelToken()
        execution = provider.execute(query, cancel_token=token)

        # From any thread
        token.cancel()

    Thread Safety:
        All methods are thread-safe and can be called from any thread.
    """

    def __init__(self):
        self._cancelled = False
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    def cancel(self) -> None:
        """Request cancellation.

        Idempotent. Registered callbacks run once, outside the lock. A
        callback that raises is logged and does not stop the others.
        """
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks = list(self._callbacks)

        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("CancelToken callback failed")

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Register a callback to run on cancellation.

        If already cancelled, the callback runs immediately.
        """
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> None:
        """Unregister a callback added with on_cancel()."""
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)
