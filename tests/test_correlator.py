"""Tests for request/response correlation on the calling side."""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest
from rich.console import Console

from jsonrpc_udp.audit.logger import TrafficLogger
from jsonrpc_udp.errors import DuplicateRequestIdError, MalformedLineError
from jsonrpc_udp.transport.correlator import CallState, Correlator
from jsonrpc_udp.transport.protocol import (
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    encode_message,
    parse_message,
)
from tests.fixtures.jsonrpc_lines import (
    HELLO_NOTIFICATION,
    HELLO_REQUEST,
    NOT_JSON,
    NULL_ID_ERROR,
    response_line,
)


def _requests(*ids: int) -> list[JSONRPCRequest]:
    return [JSONRPCRequest(id=i, method="hello", params=["world"]) for i in ids]


def _awaiting(*ids: int, logger: TrafficLogger | None = None) -> Correlator:
    correlator = Correlator(logger=logger)
    correlator.prepare(_requests(*ids))
    correlator.mark_sent()
    return correlator


def _read_events(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text().splitlines()]


class TestPrepare:
    """Tests for registering an outbound batch."""

    def test_requests_become_pending_in_order(self) -> None:
        correlator = Correlator()
        outbound = correlator.prepare(_requests(0, 1, 2))
        assert correlator.state == CallState.SENDING
        assert [m.id for m in outbound] == [0, 1, 2]  # type: ignore[union-attr]
        assert list(correlator.pending) == [0, 1, 2]

    def test_notifications_sent_untracked(self) -> None:
        correlator = Correlator()
        notification = JSONRPCNotification(method="tick")
        outbound = correlator.prepare([notification, *_requests(5)])
        assert outbound[0] == notification
        assert list(correlator.pending) == [5]

    def test_assign_ids_starts_at_zero(self) -> None:
        correlator = Correlator(assign_ids=True)
        outbound = correlator.prepare([JSONRPCNotification(method="a") for _ in range(3)])
        assert all(isinstance(m, JSONRPCRequest) for m in outbound)
        assert [m.id for m in outbound] == [0, 1, 2]  # type: ignore[union-attr]
        assert list(correlator.pending) == [0, 1, 2]

    def test_assign_ids_skips_explicit_ids(self) -> None:
        correlator = Correlator(assign_ids=True)
        outbound = correlator.prepare(
            [
                JSONRPCNotification(method="a"),
                JSONRPCRequest(id=0, method="b"),
                JSONRPCNotification(method="c"),
            ]
        )
        assert [m.id for m in outbound] == [1, 0, 2]  # type: ignore[union-attr]

    def test_assign_ids_keeps_params(self) -> None:
        correlator = Correlator(assign_ids=True)
        outbound = correlator.prepare([parse_message(HELLO_NOTIFICATION)])
        assert outbound == [JSONRPCRequest(id=0, method="hello", params=["world"])]

    def test_assign_ids_keeps_received_members(self) -> None:
        correlator = Correlator(assign_ids=True)
        line = b'{"jsonrpc":"2.0","method":"a","params":null,"x-trace":"t-1"}'
        (outbound,) = correlator.prepare([parse_message(line)])
        assert json.loads(encode_message(outbound)) == {
            "jsonrpc": "2.0",
            "method": "a",
            "params": None,
            "x-trace": "t-1",
            "id": 0,
        }

    def test_duplicate_ids_rejected(self) -> None:
        with pytest.raises(DuplicateRequestIdError):
            Correlator().prepare(_requests(1, 1))

    def test_string_and_integer_ids_are_distinct(self) -> None:
        correlator = Correlator()
        correlator.prepare([JSONRPCRequest(id=1, method="a"), JSONRPCRequest(id="1", method="b")])
        assert len(correlator.pending) == 2

    def test_response_input_rejected(self) -> None:
        with pytest.raises(MalformedLineError, match="got a response"):
            Correlator().prepare([JSONRPCResponse(id=1, result=None)])

    def test_null_id_request_rejected(self) -> None:
        with pytest.raises(MalformedLineError, match="must not be null"):
            Correlator().prepare([JSONRPCRequest(id=None, method="a")])

    def test_prepare_twice_rejected(self) -> None:
        correlator = Correlator()
        correlator.prepare(_requests(0))
        with pytest.raises(RuntimeError):
            correlator.prepare(_requests(1))


class TestStateMachine:
    """Tests for state transitions."""

    def test_starts_idle(self) -> None:
        assert Correlator().state == CallState.IDLE

    def test_mark_sent_awaits_responses(self) -> None:
        assert _awaiting(0).state == CallState.AWAITING_RESPONSES

    def test_notifications_only_complete_immediately(self) -> None:
        correlator = Correlator()
        correlator.prepare([JSONRPCNotification(method="tick")])
        correlator.mark_sent()
        assert correlator.is_complete

    def test_accept_before_sent_rejected(self) -> None:
        correlator = Correlator()
        correlator.prepare(_requests(0))
        with pytest.raises(RuntimeError):
            correlator.accept(response_line(0))

    def test_complete_when_all_matched(self) -> None:
        correlator = _awaiting(0, 1)
        correlator.accept(response_line(0) + b"\n" + response_line(1))
        assert correlator.is_complete
        assert correlator.matched_count == 2

    def test_accept_after_complete_is_ignored(self) -> None:
        correlator = _awaiting(0)
        correlator.accept(response_line(0))
        assert correlator.accept(response_line(0)) == []


class TestAccept:
    """Tests for matching inbound responses."""

    def test_partial_arrival_out_of_order(self) -> None:
        correlator = _awaiting(0, 1, 2)
        first = correlator.accept(response_line(2))
        second = correlator.accept(response_line(0))

        output = [d.message.id for d in first + second]  # type: ignore[union-attr]
        assert output == [2, 0]
        assert list(correlator.pending) == [1]
        assert correlator.state == CallState.AWAITING_RESPONSES

    def test_batched_responses_in_datagram_order(self) -> None:
        correlator = _awaiting(0, 1, 2)
        matched = correlator.accept(b"\n".join([response_line(1), response_line(2), response_line(0)]))
        assert [d.message.id for d in matched] == [1, 2, 0]  # type: ignore[union-attr]

    def test_returns_received_line_bytes(self) -> None:
        correlator = _awaiting(0)
        matched = correlator.accept(response_line(0, "hi") + b"\n")
        assert matched[0].line == response_line(0, "hi")

    def test_error_responses_match(self) -> None:
        correlator = _awaiting(5)
        matched = correlator.accept(b'{"jsonrpc":"2.0","id":5,"error":{"code":-1,"message":"x"}}')
        assert len(matched) == 1
        assert correlator.is_complete

    def test_unmatched_id_discarded(self) -> None:
        correlator = _awaiting(0)
        assert correlator.accept(response_line(42)) == []
        assert list(correlator.pending) == [0]

    def test_duplicate_response_discarded(self) -> None:
        correlator = _awaiting(0, 1)
        correlator.accept(response_line(0))
        assert correlator.accept(response_line(0)) == []
        assert list(correlator.pending) == [1]

    def test_null_id_error_discarded(self) -> None:
        correlator = _awaiting(0)
        assert correlator.accept(NULL_ID_ERROR) == []

    def test_requests_in_datagram_discarded(self) -> None:
        correlator = _awaiting(0)
        assert correlator.accept(HELLO_REQUEST) == []
        assert list(correlator.pending) == [0]

    def test_malformed_line_does_not_hide_siblings(self) -> None:
        correlator = _awaiting(0, 1)
        matched = correlator.accept(b"\n".join([response_line(0), NOT_JSON, response_line(1)]))
        assert len(matched) == 2
        assert correlator.is_complete


class TestAbandon:
    """Tests for the timeout path."""

    def test_abandon_returns_pending_in_request_order(self) -> None:
        correlator = _awaiting(0, 1, 2)
        correlator.accept(response_line(1))
        assert correlator.abandon() == [0, 2]
        assert correlator.is_complete
        assert correlator.pending == {}


class TestDiagnostics:
    """Tests for diagnostic logging."""

    def test_unmatched_and_malformed_logged(self, tmp_path: Path) -> None:
        log_path = tmp_path / "traffic.jsonl"
        logger = TrafficLogger(log_path=log_path, console=Console(file=io.StringIO()))
        correlator = _awaiting(0, logger=logger)
        correlator.accept(b"\n".join([response_line(9), NOT_JSON]), peer="127.0.0.1:9000")
        logger.close()

        events = _read_events(log_path)
        assert [e["event"] for e in events] == ["malformed_line", "unmatched_response"]
        assert events[0]["index"] == 1
        assert events[1]["id"] == 9
        assert events[1]["peer"] == "127.0.0.1:9000"
