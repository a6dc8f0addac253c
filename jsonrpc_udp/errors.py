"""Exception types shared by the codec, framing and transport layers.

Line-local errors (MalformedLineError) are recovered per line. Everything
else aborts the current operation and is reported with a non-zero exit.
"""

from __future__ import annotations

from typing import Any


class RpcTransportError(Exception):
    """Base class for all jsonrpc-udp errors."""


class MalformedLineError(RpcTransportError):
    """Raised when a candidate line is not a valid JSON-RPC 2.0 message.

    Attributes:
        code: JSON-RPC error code describing the failure (parse error or
              invalid request).
        index: Position of the line within its datagram, when known.
    """

    def __init__(self, message: str, code: int, index: int | None = None) -> None:
        self.code = code
        self.index = index
        super().__init__(message)


class OversizedMessageError(RpcTransportError):
    """Raised when a single encoded line cannot fit in one datagram.

    Attributes:
        size: Encoded line length in bytes.
        limit: The configured maximum datagram size.
    """

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(
            f"Encoded message is {size} bytes, which exceeds the maximum "
            f"datagram size of {limit} bytes (see --send-buf-size)"
        )


class DatagramSocketError(RpcTransportError):
    """Raised when the underlying UDP socket fails."""


class DuplicateRequestIdError(RpcTransportError):
    """Raised when two requests in one call batch share an id."""

    def __init__(self, request_id: Any) -> None:
        self.request_id = request_id
        super().__init__(f"Duplicate request id {request_id!r} in one call batch")


class LineInvariantError(RpcTransportError):
    """Raised when an encoded line contains the line delimiter.

    Well-formed JSON serialization never emits a raw newline, so this
    signals a bug in the encoder rather than bad input.
    """
