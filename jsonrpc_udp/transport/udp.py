"""UDP endpoints for the echo server and the calling side.

Both endpoints run on a single asyncio event loop. Each received datagram
is handled to completion inside ``datagram_received`` before the next one
is delivered, so no state needs locking.

Architecture:
  call:         stdin lines → Correlator → DatagramPacker → socket
                socket → Correlator.accept → stdout (arrival order)
  echo-server:  socket → EchoResponder.handle_datagram → socket (same peer)
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from sys import platform as _platform
from typing import Any

from jsonrpc_udp.audit.logger import TrafficLogger
from jsonrpc_udp.config.schema import Endpoint
from jsonrpc_udp.errors import DatagramSocketError, OversizedMessageError
from jsonrpc_udp.transport.correlator import Correlator
from jsonrpc_udp.transport.echo import EchoResponder
from jsonrpc_udp.transport.framing import DEFAULT_MAX_DATAGRAM_SIZE, DatagramPacker, DecodedLine
from jsonrpc_udp.transport.protocol import (
    JSONRPCMessage,
    RequestId,
    encode_message,
    message_id,
)


def format_peer(addr: Any) -> str:
    """Render a socket address tuple as host:port."""
    if isinstance(addr, tuple) and len(addr) >= 2:
        host, port = addr[0], addr[1]
        if ":" in str(host):
            return f"[{host}]:{port}"
        return f"{host}:{port}"
    return str(addr)


class _EchoProtocol(asyncio.DatagramProtocol):
    """asyncio protocol that answers each datagram through an EchoResponder."""

    def __init__(self, responder: EchoResponder, logger: TrafficLogger, on_error: Callable[[Exception], None]) -> None:
        self._responder = responder
        self._logger = logger
        self._on_error = on_error
        self._transport: asyncio.DatagramTransport | None = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._transport = transport  # type: ignore[assignment]

    def datagram_received(self, data: bytes, addr: Any) -> None:
        if not data:
            return
        peer = format_peer(addr)
        self._logger.log_datagram_received(peer, len(data))
        assert self._transport is not None
        for datagram in self._responder.handle_datagram(data, peer):
            self._transport.sendto(datagram, addr)
            self._logger.log_datagram_sent(peer, len(datagram), datagram.count(b"\n") + 1)

    def error_received(self, exc: Exception) -> None:
        self._on_error(exc)


class EchoServer:
    """UDP JSON-RPC echo server.

    Args:
        bind: Address to listen on.
        logger: Traffic logger.
        send_buf_size: Maximum size of each response datagram.
    """

    def __init__(
        self,
        bind: Endpoint,
        logger: TrafficLogger,
        send_buf_size: int = DEFAULT_MAX_DATAGRAM_SIZE,
    ) -> None:
        self._bind = bind
        self._logger = logger
        self._send_buf_size = send_buf_size
        self._responder = EchoResponder(max_size=send_buf_size, logger=logger)
        self._transport: asyncio.DatagramTransport | None = None
        self._stopped: asyncio.Event | None = None

    @property
    def local_address(self) -> Endpoint:
        """The address actually bound (resolves port 0)."""
        if self._transport is None:
            raise RuntimeError("Echo server is not started")
        sockname = self._transport.get_extra_info("sockname")
        return Endpoint(host=sockname[0], port=sockname[1])

    async def start(self) -> None:
        """Bind the socket and start answering datagrams.

        Raises:
            DatagramSocketError: If the address cannot be bound.
        """
        loop = asyncio.get_running_loop()
        self._stopped = asyncio.Event()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _EchoProtocol(self._responder, self._logger, self._report_error),
                local_addr=self._bind.as_tuple(),
            )
        except OSError as e:
            raise DatagramSocketError(f"Cannot bind UDP socket to {self._bind}: {e}") from e
        self._transport = transport
        self._logger.log_startup("echo-server", str(self.local_address), self._send_buf_size)

    async def serve_forever(self) -> None:
        """Wait until ``close()`` is called."""
        assert self._stopped is not None
        await self._stopped.wait()

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        if self._stopped is not None:
            self._stopped.set()

    async def run(self) -> None:
        """Start the server and serve until SIGINT/SIGTERM.

        This is the main entry point used by the CLI.
        """
        await self.start()

        # add_signal_handler is not supported on Windows
        loop = asyncio.get_running_loop()
        if _platform != "win32":
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, self.close)

        try:
            await self.serve_forever()
        finally:
            self.close()
            self._logger.log_shutdown("Echo server stopped")

    def _report_error(self, exc: Exception) -> None:
        self._logger.log_socket_error(exc)


@dataclass
class CallResult:
    """Outcome of one call batch.

    Attributes:
        responses: Matched responses in arrival order.
        timed_out: Request ids abandoned when the timeout expired.
        sent_datagrams: Number of datagrams sent.
    """

    responses: list[DecodedLine] = field(default_factory=list)
    timed_out: list[RequestId] = field(default_factory=list)
    sent_datagrams: int = 0

    @property
    def complete(self) -> bool:
        return not self.timed_out


class _CallProtocol(asyncio.DatagramProtocol):
    """asyncio protocol feeding received datagrams into a Correlator."""

    def __init__(
        self,
        correlator: Correlator,
        logger: TrafficLogger,
        on_response: Callable[[DecodedLine], None],
    ) -> None:
        self._correlator = correlator
        self._logger = logger
        self._on_response = on_response
        self.done: asyncio.Future[None] = asyncio.get_running_loop().create_future()

    def datagram_received(self, data: bytes, addr: Any) -> None:
        if self.done.done():
            return
        peer = format_peer(addr)
        self._logger.log_datagram_received(peer, len(data))
        for decoded in self._correlator.accept(data, peer):
            self._on_response(decoded)
        if self._correlator.is_complete and not self.done.done():
            self.done.set_result(None)

    def error_received(self, exc: Exception) -> None:
        if not self.done.done():
            self.done.set_exception(DatagramSocketError(f"UDP socket error: {exc}"))

    def connection_lost(self, exc: Exception | None) -> None:
        if exc is not None and not self.done.done():
            self.done.set_exception(DatagramSocketError(f"UDP socket closed: {exc}"))


class RpcCaller:
    """Sends a batch of JSON-RPC requests and collects their responses.

    Args:
        server: Address of the JSON-RPC server.
        logger: Traffic logger.
        send_buf_size: Maximum size of each request datagram.
        timeout: Seconds to wait for outstanding responses after the last
                 datagram is sent, or None to wait indefinitely.
        assign_ids: Give id-less input messages integer ids.
    """

    def __init__(
        self,
        server: Endpoint,
        logger: TrafficLogger,
        send_buf_size: int = DEFAULT_MAX_DATAGRAM_SIZE,
        timeout: float | None = 5.0,
        assign_ids: bool = False,
    ) -> None:
        self._server = server
        self._logger = logger
        self._send_buf_size = send_buf_size
        self._timeout = timeout
        self._assign_ids = assign_ids

    async def call(
        self,
        messages: Sequence[JSONRPCMessage],
        on_response: Callable[[DecodedLine], None] | None = None,
    ) -> CallResult:
        """Send ``messages`` and wait for every request's response.

        Args:
            messages: Requests and notifications in input order.
            on_response: Invoked for each matched response as it arrives.

        Returns:
            The CallResult; ``timed_out`` lists ids still pending when the
            timeout expired.

        Raises:
            OversizedMessageError: If a message alone exceeds ``send_buf_size``.
                Raised before anything is sent.
            DatagramSocketError: If the socket cannot be created or reports
                an error (e.g. the server port is unreachable).
        """
        result = CallResult()
        correlator = Correlator(assign_ids=self._assign_ids, logger=self._logger)
        outbound = correlator.prepare(messages)

        # Encode and pack up front so an oversized message aborts before any
        # datagram leaves the socket.
        packer = DatagramPacker(self._send_buf_size)
        datagrams: list[tuple[bytes, int]] = []
        for msg in outbound:
            line = encode_message(msg)
            lines_before = packer.pending_lines
            try:
                completed = packer.append(line)
            except OversizedMessageError as e:
                self._logger.log_oversized_message(message_id(msg), e)
                raise
            if completed is not None:
                datagrams.append((completed, lines_before))
        lines_before = packer.pending_lines
        tail = packer.flush()
        if tail is not None:
            datagrams.append((tail, lines_before))

        def _deliver(decoded: DecodedLine) -> None:
            result.responses.append(decoded)
            if on_response is not None:
                on_response(decoded)

        loop = asyncio.get_running_loop()
        try:
            transport, protocol = await loop.create_datagram_endpoint(
                lambda: _CallProtocol(correlator, self._logger, _deliver),
                remote_addr=self._server.as_tuple(),
            )
        except OSError as e:
            raise DatagramSocketError(f"Cannot open UDP socket to {self._server}: {e}") from e

        peer = str(self._server)
        self._logger.log_startup(
            "call",
            peer,
            self._send_buf_size,
            timeout=self._timeout,
            requests=len(correlator.pending),
        )
        try:
            for datagram, line_count in datagrams:
                transport.sendto(datagram)
                result.sent_datagrams += 1
                self._logger.log_datagram_sent(peer, len(datagram), line_count)
            correlator.mark_sent()
            if correlator.is_complete:
                return result

            try:
                await asyncio.wait_for(protocol.done, timeout=self._timeout)
            except asyncio.TimeoutError:
                result.timed_out = correlator.abandon()
                self._logger.log_timeout(result.timed_out, self._timeout)
            return result
        finally:
            transport.close()
            self._logger.log_shutdown(
                f"Call finished: {correlator.matched_count} response(s), "
                f"{len(result.timed_out)} timed out"
            )
