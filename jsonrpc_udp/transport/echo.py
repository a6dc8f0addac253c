"""Echo responder for the serving side.

Every request is answered with a response whose ``result`` is the request
object itself, exactly as it was received. Notifications get no response.
"""

from __future__ import annotations

from jsonrpc_udp.audit.logger import TrafficLogger
from jsonrpc_udp.errors import OversizedMessageError
from jsonrpc_udp.transport.framing import (
    DEFAULT_MAX_DATAGRAM_SIZE,
    DatagramPacker,
    unpack_datagram,
)
from jsonrpc_udp.transport.protocol import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    JSONRPCMessage,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    encode_message,
    make_error_response,
    message_id,
    message_to_dict,
)


class EchoResponder:
    """Builds echo responses for each datagram received by the server.

    Args:
        max_size: Maximum size of each response datagram in bytes.
        logger: Optional logger for malformed-line and oversize diagnostics.
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_DATAGRAM_SIZE,
        logger: TrafficLogger | None = None,
    ) -> None:
        self._max_size = max_size
        self._logger = logger

    def respond(self, msg: JSONRPCMessage) -> JSONRPCMessage | None:
        """Build the response for one decoded message.

        Returns:
            An echo response for a request, None for a notification, and an
            invalid-request error for anything that is not a request.
        """
        if isinstance(msg, JSONRPCRequest):
            echoed = msg.raw if msg.raw is not None else message_to_dict(msg)
            return JSONRPCResponse(id=msg.id, result=echoed)
        if isinstance(msg, JSONRPCNotification):
            return None
        return make_error_response(None, INVALID_REQUEST, "Expected a request, got a response")

    def handle_datagram(self, data: bytes, peer: str | None = None) -> list[bytes]:
        """Answer every line of one inbound datagram.

        Responses keep the order of the lines they answer and are packed
        into as few datagrams as ``max_size`` allows. Each malformed line is
        answered with an error response carrying a null id.

        Args:
            data: The received payload.
            peer: Sender address, for diagnostics.

        Returns:
            The response datagrams to send back to ``peer``, in order.
        """
        unpacked = unpack_datagram(data)

        responses: list[tuple[int, JSONRPCMessage]] = []
        for failure in unpacked.failures:
            if self._logger is not None:
                self._logger.log_malformed_line(peer, failure)
            responses.append((failure.index or 0, make_error_response(None, failure.code, str(failure))))
        for decoded in unpacked.lines:
            response = self.respond(decoded.message)
            if response is not None:
                responses.append((decoded.index, response))
        responses.sort(key=lambda pair: pair[0])

        packer = DatagramPacker(self._max_size)
        datagrams: list[bytes] = []
        for _, response in responses:
            line = self._encode_within_limit(response)
            if line is None:
                continue
            completed = packer.append(line)
            if completed is not None:
                datagrams.append(completed)
        tail = packer.flush()
        if tail is not None:
            datagrams.append(tail)
        return datagrams

    def _encode_within_limit(self, response: JSONRPCMessage) -> bytes | None:
        """Encode a response, substituting an internal error if it cannot fit."""
        line = encode_message(response)
        if len(line) <= self._max_size:
            return line

        response_id = message_id(response)
        if self._logger is not None:
            self._logger.log_oversized_message(response_id, OversizedMessageError(len(line), self._max_size))
        fallback = encode_message(
            make_error_response(
                response_id,
                INTERNAL_ERROR,
                "response size exceeds maximum UDP packet size",
            )
        )
        if len(fallback) <= self._max_size:
            return fallback
        return None
