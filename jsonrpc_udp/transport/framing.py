"""Datagram framing: packing encoded lines into datagrams and back.

A datagram is one or more encoded lines joined by a single \\n. Lines are
never split across datagrams, so every datagram can be decoded on its own
regardless of loss or reordering of its siblings.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from jsonrpc_udp.errors import MalformedLineError, OversizedMessageError
from jsonrpc_udp.transport.protocol import DELIMITER, JSONRPCMessage, parse_message

DEFAULT_MAX_DATAGRAM_SIZE = 1200

# Largest payload a single IPv4 UDP datagram can carry
MAX_UDP_PAYLOAD = 65507


class DatagramPacker:
    """Greedy first-fit packer for encoded lines.

    Lines are appended in order to the current buffer until the next one
    would push it past ``max_size``; at that point the buffer is returned
    as a completed datagram and a new one is started.

    Args:
        max_size: Maximum datagram payload in bytes.
    """

    def __init__(self, max_size: int = DEFAULT_MAX_DATAGRAM_SIZE) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self._max_size = max_size
        self._buffer = bytearray()
        self._line_count = 0

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def pending_bytes(self) -> int:
        """Length of the buffer not yet emitted."""
        return len(self._buffer)

    @property
    def pending_lines(self) -> int:
        return self._line_count

    def append(self, line: bytes) -> bytes | None:
        """Add one encoded line to the buffer.

        Args:
            line: A single encoded line without delimiter.

        Returns:
            The completed datagram if adding ``line`` forced a flush,
            otherwise None.

        Raises:
            OversizedMessageError: If ``line`` alone exceeds ``max_size``.
                The buffer is left untouched.
        """
        if len(line) > self._max_size:
            raise OversizedMessageError(len(line), self._max_size)

        if not self._buffer:
            self._buffer += line
            self._line_count = 1
            return None

        if len(self._buffer) + len(DELIMITER) + len(line) <= self._max_size:
            self._buffer += DELIMITER
            self._buffer += line
            self._line_count += 1
            return None

        completed = self.flush()
        self._buffer += line
        self._line_count = 1
        return completed

    def flush(self) -> bytes | None:
        """Emit the current buffer if it holds anything, and reset it."""
        if not self._buffer:
            return None
        completed = bytes(self._buffer)
        self._buffer.clear()
        self._line_count = 0
        return completed


def pack_lines(lines: Iterable[bytes], max_size: int = DEFAULT_MAX_DATAGRAM_SIZE) -> list[bytes]:
    """Pack a sequence of encoded lines into datagrams, preserving order.

    Raises:
        OversizedMessageError: If any single line exceeds ``max_size``.
    """
    packer = DatagramPacker(max_size)
    datagrams: list[bytes] = []
    for line in lines:
        completed = packer.append(line)
        if completed is not None:
            datagrams.append(completed)
    tail = packer.flush()
    if tail is not None:
        datagrams.append(tail)
    return datagrams


def split_datagram(data: bytes) -> list[bytes]:
    """Split a datagram into candidate lines.

    Trailing empty candidates left by a terminal delimiter are dropped.
    Empty candidates in the middle of the datagram are kept so the codec
    can report them.
    """
    candidates = data.split(DELIMITER)
    while candidates and not candidates[-1].strip():
        candidates.pop()
    return candidates


@dataclass(frozen=True)
class DecodedLine:
    """One successfully decoded line of a datagram."""

    index: int
    line: bytes
    message: JSONRPCMessage


@dataclass
class UnpackedDatagram:
    """Result of decoding every line of one datagram.

    Attributes:
        lines: Successfully decoded lines, in datagram order.
        failures: One MalformedLineError per line that failed to decode,
                  with ``index`` set to the line position.
    """

    lines: list[DecodedLine] = field(default_factory=list)
    failures: list[MalformedLineError] = field(default_factory=list)

    @property
    def messages(self) -> list[JSONRPCMessage]:
        return [decoded.message for decoded in self.lines]


def unpack_datagram(data: bytes) -> UnpackedDatagram:
    """Decode every candidate line of a datagram independently.

    A malformed line is recorded in ``failures`` and never prevents its
    siblings from being decoded.
    """
    result = UnpackedDatagram()
    for index, candidate in enumerate(split_datagram(data)):
        try:
            message = parse_message(candidate)
        except MalformedLineError as e:
            e.index = index
            result.failures.append(e)
            continue
        result.lines.append(DecodedLine(index=index, line=candidate.strip(), message=message))
    return result
