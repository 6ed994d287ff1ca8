"""Base class for turning CLI records into canonical messages.

One normalizer serves exactly one execution. It owns the execution's
sequence counter, so every message it creates (including the terminal
completion or error) carries a strictly increasing index.

Text de-duplication:
    Some CLIs stream text deltas and later repeat the whole text in a
    summary record; others only ever send "full text so far" snapshots.
    Subclasses feed deltas through _text_delta() and snapshots through
    _text_snapshot(); the base class tracks what has already been emitted
    for the current segment and only emits text the caller has not seen.
"""

import logging
from typing import Any, Dict, List, Optional, Set

from .errors import TypedError
from .types import CanonicalMessage, MessageKind, ToolCall, ToolOutput

logger = logging.getLogger(__name__)


class EventNormalizer:
    """Maps raw records of one execution to canonical messages.

    Subclasses implement _normalize_record(). normalize() never raises for
    malformed records: an unexpected record shape is logged and yields no
    messages.

    Attributes:
        provider: Provider name stamped on every message.
        diagnostics: In-band error texts reported by the CLI on stdout. The
            provider folds them into error mapping when the process fails.
        completion_data: Payload accumulated for the completion message
            (usage, session ids, cost).
    """

    def __init__(self, provider: str):
        self.provider = provider
        self.diagnostics: List[str] = []
        self.completion_data: Dict[str, Any] = {}
        self._next_index = 0
        self._segment_text = ""
        self._seen_tool_calls: Set[str] = set()
        self._seen_tool_results: Set[str] = set()

    @property
    def emitted_count(self) -> int:
        """Number of messages created so far."""
        return self._next_index

    def normalize(self, record: Any) -> List[CanonicalMessage]:
        """Map one raw record to zero or more canonical messages.

        An empty list means the record is bookkeeping with no visible
        effect. Several messages come back, in block order, when one record
        carries several content blocks.
        """
        if not isinstance(record, dict):
            logger.warning(
                f"[{self.provider}] Ignoring non-object record: {str(record)[:100]}"
            )
            return []
        try:
            return self._normalize_record(record)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(
                f"[{self.provider}] Ignoring malformed {record.get('type', '?')!r} record: {e}"
            )
            return []

    def _normalize_record(self, record: Dict[str, Any]) -> List[CanonicalMessage]:
        raise NotImplementedError

    # ==================== Terminal messages ====================

    def completion(self, data: Optional[Dict[str, Any]] = None) -> CanonicalMessage:
        """Create the completion message for this execution."""
        payload = dict(self.completion_data)
        if data:
            payload.update(data)
        return self._message(MessageKind.COMPLETION, data=payload)

    def error(self, error: TypedError) -> CanonicalMessage:
        """Create the terminal error message for this execution."""
        return self._message(MessageKind.ERROR, error=error)

    # ==================== Helpers for subclasses ====================

    def _message(self, kind: MessageKind, **fields: Any) -> CanonicalMessage:
        index = self._next_index
        self._next_index += 1
        return CanonicalMessage(kind=kind, index=index, provider=self.provider, **fields)

    def _status(self, **data: Any) -> CanonicalMessage:
        return self._message(MessageKind.STATUS, data=data)

    def _reset_text(self) -> None:
        """Start a new text segment (a new assistant message)."""
        self._segment_text = ""

    def _text_delta(self, delta: str) -> List[CanonicalMessage]:
        """Emit an incremental text fragment."""
        if not delta:
            return []
        self._segment_text += delta
        return [self._message(MessageKind.TEXT_DELTA, text=delta)]

    def _text_snapshot(self, full_text: str) -> List[CanonicalMessage]:
        """Emit only the part of a "full text so far" snapshot not yet sent.

        - A snapshot extending the current segment emits the new suffix.
        - A snapshot equal to, or a prefix of, the current segment emits
          nothing.
        - A snapshot that diverges starts a new segment and is emitted whole.
        """
        if not full_text:
            return []
        current = self._segment_text
        if full_text.startswith(current):
            delta = full_text[len(current):]
        elif current.startswith(full_text):
            return []
        else:
            delta = full_text
        self._segment_text = full_text
        if not delta:
            return []
        return [self._message(MessageKind.TEXT_DELTA, text=delta)]

    def _tool_invocation(self, call: ToolCall) -> List[CanonicalMessage]:
        """Emit a tool invocation once per call id."""
        if call.id and call.id in self._seen_tool_calls:
            return []
        if call.id:
            self._seen_tool_calls.add(call.id)
        return [self._message(MessageKind.TOOL_INVOCATION, tool_call=call)]

    def _tool_result(self, output: ToolOutput) -> List[CanonicalMessage]:
        """Emit a tool result once per call id."""
        if output.call_id and output.call_id in self._seen_tool_results:
            return []
        if output.call_id:
            self._seen_tool_results.add(output.call_id)
        return [self._message(MessageKind.TOOL_RESULT, tool_output=output)]

    def _diagnostic(self, text: str) -> List[CanonicalMessage]:
        """Record an in-band error report; it produces no message."""
        if text:
            logger.debug(f"[{self.provider}] CLI reported: {text[:200]}")
            self.diagnostics.append(text)
        return []
