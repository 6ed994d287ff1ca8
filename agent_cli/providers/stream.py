"""Line-framed reading of subprocess output.

CLI agents write one JSON record per line on stdout. Reads from a pipe do
not respect line boundaries, so LineFramer buffers partial lines until their
newline arrives. read_records() layers JSON decoding on top and drops lines
that are not valid JSON instead of failing the whole stream.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Callable, List, Optional

logger = logging.getLogger(__name__)

ViolationCallback = Callable[[str, bytes], None]

_SKIP = object()


class LineFramer:
    """Splits an unbounded byte stream into complete lines.

    Example:
        framer = LineFramer()
        framer.feed(b'{"a": 1')          # -> []
        framer.feed(b'}\\n{"b": 2}\\n')   # -> [b'{"a": 1}', b'{"b": 2}']

    Attributes:
        dropped_lines: Lines discarded for exceeding max_line_bytes.
    """

    def __init__(self, max_line_bytes: int = 10 * 1024 * 1024):
        self._buffer = bytearray()
        self._max_line_bytes = max_line_bytes
        self._discarding = False
        self.dropped_lines = 0

    @property
    def pending(self) -> int:
        """Number of buffered bytes without a terminating newline."""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> List[bytes]:
        """Add a chunk and return every line it completes.

        Returned lines have their trailing ``\\n`` / ``\\r\\n`` removed.
        """
        lines: List[bytes] = []
        start = 0
        while True:
            newline = chunk.find(b"\n", start)
            if newline < 0:
                break
            piece = chunk[start:newline]
            start = newline + 1
            if self._discarding:
                # Tail of an oversized line; resynchronise on this newline.
                self._discarding = False
                self._buffer.clear()
                continue
            if self._buffer:
                self._buffer.extend(piece)
                line = bytes(self._buffer)
                self._buffer.clear()
            else:
                line = piece
            if len(line) > self._max_line_bytes:
                self._drop(len(line))
                continue
            lines.append(line.rstrip(b"\r"))

        rest = chunk[start:]
        if rest and not self._discarding:
            self._buffer.extend(rest)
            if len(self._buffer) > self._max_line_bytes:
                self._drop(len(self._buffer))
                self._buffer.clear()
                self._discarding = True
        return lines

    def flush(self) -> Optional[bytes]:
        """Return buffered bytes left at end of stream, if any."""
        if self._discarding or not self._buffer:
            self._buffer.clear()
            self._discarding = False
            return None
        line = bytes(self._buffer).rstrip(b"\r")
        self._buffer.clear()
        return line

    def _drop(self, size: int) -> None:
        self.dropped_lines += 1
        logger.warning(
            f"Protocol violation: dropping stdout line of {size} bytes "
            f"(limit {self._max_line_bytes})"
        )


def decode_record(line: bytes) -> Any:
    """Decode one line as JSON.

    Raises:
        ValueError: If the line is not valid UTF-8 JSON.
    """
    return json.loads(line.decode("utf-8"))


async def read_records(
    stream: asyncio.StreamReader,
    *,
    chunk_size: int = 64 * 1024,
    max_line_bytes: int = 10 * 1024 * 1024,
    on_violation: Optional[ViolationCallback] = None,
    on_line: Optional[Callable[[bytes], None]] = None,
) -> AsyncIterator[Any]:
    """Yield one decoded JSON value per complete line of a stream.

    The generator only reads more data when the consumer asks for the next
    record, so a slow consumer holds the subprocess back through the pipe.
    It ends when the stream reaches EOF.

    Args:
        stream: Subprocess stdout.
        chunk_size: Bytes requested per read.
        max_line_bytes: Longest accepted line; longer lines are dropped.
        on_violation: Called with (reason, raw_line) for each dropped line.
        on_line: Called with each raw non-blank line before decoding.
    """
    framer = LineFramer(max_line_bytes=max_line_bytes)

    def _decode(line: bytes) -> Any:
        try:
            return decode_record(line)
        except ValueError as e:
            logger.warning(f"Protocol violation: undecodable stdout line: {line[:100]!r}")
            if on_violation:
                on_violation(str(e), line)
            return _SKIP

    while True:
        chunk = await stream.read(chunk_size)
        if not chunk:
            break
        dropped_before = framer.dropped_lines
        for line in framer.feed(chunk):
            if not line.strip():
                continue
            if on_line:
                on_line(line)
            record = _decode(line)
            if record is not _SKIP:
                yield record
        if on_violation and framer.dropped_lines > dropped_before:
            for _ in range(framer.dropped_lines - dropped_before):
                on_violation("line exceeds maximum length", b"")

    tail = framer.flush()
    if tail and tail.strip():
        if on_line:
            on_line(tail)
        record = _decode(tail)
        if record is not _SKIP:
            yield record

