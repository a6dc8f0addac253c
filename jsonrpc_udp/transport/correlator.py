"""Request/response correlation for the calling side.

One Correlator lives for one call batch. It records every outbound request
in a pending set keyed by id and matches inbound responses against it,
whichever datagram they arrive in and in whatever order.

State machine:
  IDLE → SENDING → AWAITING_RESPONSES → COMPLETE

Responses are emitted in arrival order, not request order.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import Any

from jsonrpc_udp.audit.logger import TrafficLogger
from jsonrpc_udp.errors import DuplicateRequestIdError, MalformedLineError
from jsonrpc_udp.transport.framing import DecodedLine, unpack_datagram
from jsonrpc_udp.transport.protocol import (
    INVALID_REQUEST,
    JSONRPCError,
    JSONRPCMessage,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    RequestId,
)


class CallState(str, Enum):
    """Lifecycle of one call batch."""

    IDLE = "idle"
    SENDING = "sending"
    AWAITING_RESPONSES = "awaiting_responses"
    COMPLETE = "complete"


class Correlator:
    """Tracks the pending call set of one batch of requests.

    Args:
        assign_ids: Give id-less messages integer ids (0, 1, 2, ...) instead
                    of sending them as notifications.
        logger: Optional logger for unmatched-response and malformed-line
                diagnostics.
    """

    def __init__(self, assign_ids: bool = False, logger: TrafficLogger | None = None) -> None:
        self._assign_ids = assign_ids
        self._logger = logger
        self._state = CallState.IDLE
        self._pending: dict[RequestId, JSONRPCRequest] = {}
        self._matched = 0

    @property
    def state(self) -> CallState:
        return self._state

    @property
    def pending(self) -> dict[RequestId, JSONRPCRequest]:
        """Requests still waiting for a response, in request order."""
        return dict(self._pending)

    @property
    def matched_count(self) -> int:
        return self._matched

    @property
    def is_complete(self) -> bool:
        return self._state == CallState.COMPLETE

    def prepare(self, messages: Iterable[JSONRPCMessage]) -> list[JSONRPCMessage]:
        """Register a batch of outbound messages (IDLE → SENDING).

        Args:
            messages: Requests and notifications, in input order.

        Returns:
            The messages to send, in input order, with ids assigned where
            ``assign_ids`` is enabled.

        Raises:
            MalformedLineError: If a message is response-shaped or a
                request carries a null id.
            DuplicateRequestIdError: If two requests share an id.
        """
        self._require(CallState.IDLE)
        batch = list(messages)

        used_ids: set[RequestId] = set()
        for msg in batch:
            if isinstance(msg, (JSONRPCResponse, JSONRPCError)):
                raise MalformedLineError(
                    "Only requests and notifications can be sent, got a response",
                    INVALID_REQUEST,
                )
            if isinstance(msg, JSONRPCRequest):
                if msg.id is None:
                    raise MalformedLineError("Request id must not be null", INVALID_REQUEST)
                if msg.id in used_ids:
                    raise DuplicateRequestIdError(msg.id)
                used_ids.add(msg.id)

        next_id = 0
        outbound: list[JSONRPCMessage] = []
        for msg in batch:
            if isinstance(msg, JSONRPCNotification) and self._assign_ids:
                while next_id in used_ids:
                    next_id += 1
                raw = {**msg.raw, "id": next_id} if msg.raw is not None else None
                msg = JSONRPCRequest(id=next_id, method=msg.method, params=msg.params, raw=raw)
                used_ids.add(next_id)
            if isinstance(msg, JSONRPCRequest):
                self._pending[msg.id] = msg
            outbound.append(msg)

        self._state = CallState.SENDING
        return outbound

    def mark_sent(self) -> None:
        """Record that every outbound datagram has been sent."""
        self._require(CallState.SENDING)
        self._state = CallState.AWAITING_RESPONSES if self._pending else CallState.COMPLETE

    def accept(self, datagram: bytes, peer: str | None = None) -> list[DecodedLine]:
        """Match the responses carried by one inbound datagram.

        Args:
            datagram: The raw received payload.
            peer: Sender address, for diagnostics.

        Returns:
            The decoded lines whose ids matched a pending request, in the
            order they appear in the datagram.
        """
        if self._state == CallState.COMPLETE:
            return []
        self._require(CallState.AWAITING_RESPONSES)

        unpacked = unpack_datagram(datagram)
        if self._logger is not None:
            for failure in unpacked.failures:
                self._logger.log_malformed_line(peer, failure)

        matched: list[DecodedLine] = []
        for decoded in unpacked.lines:
            response_id = _response_id(decoded.message)
            if response_id is None or response_id not in self._pending:
                if self._logger is not None:
                    self._logger.log_unmatched_response(response_id, peer)
                continue
            del self._pending[response_id]
            self._matched += 1
            matched.append(decoded)

        if not self._pending:
            self._state = CallState.COMPLETE
        return matched

    def abandon(self) -> list[RequestId]:
        """Give up on every pending request and complete the batch.

        Returns:
            The abandoned ids, in request order.
        """
        abandoned = list(self._pending)
        self._pending.clear()
        self._state = CallState.COMPLETE
        return abandoned

    def _require(self, state: CallState) -> None:
        if self._state != state:
            raise RuntimeError(
                f"Correlator is {self._state.value}, expected {state.value}"
            )


def _response_id(msg: JSONRPCMessage) -> Any:
    if isinstance(msg, (JSONRPCResponse, JSONRPCError)):
        return msg.id
    return None
