"""Tests for the structured traffic logger."""

from __future__ import annotations

import io
import json
from pathlib import Path

from rich.console import Console

from jsonrpc_udp.audit.logger import TrafficLogger
from jsonrpc_udp.errors import MalformedLineError, OversizedMessageError
from jsonrpc_udp.transport.protocol import PARSE_ERROR


def _logger(tmp_path: Path, verbose: bool = False) -> tuple[TrafficLogger, io.StringIO, Path]:
    out = io.StringIO()
    log_path = tmp_path / "logs" / "traffic.jsonl"
    logger = TrafficLogger(log_path=log_path, verbose=verbose, console=Console(file=out, width=200))
    return logger, out, log_path


def _events(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text().splitlines()]


class TestTrafficLogger:
    """Tests for TrafficLogger output."""

    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        logger, _, log_path = _logger(tmp_path)
        logger.log_shutdown("done")
        logger.close()
        assert log_path.exists()

    def test_every_entry_has_timestamp_and_event(self, tmp_path: Path) -> None:
        logger, _, log_path = _logger(tmp_path)
        logger.log_startup("echo-server", "127.0.0.1:9000", 1200)
        logger.log_datagram_received("127.0.0.1:5000", 42)
        logger.log_datagram_sent("127.0.0.1:5000", 80, 2)
        logger.log_shutdown("Echo server stopped")
        logger.close()

        events = _events(log_path)
        assert [e["event"] for e in events] == [
            "startup",
            "datagram_received",
            "datagram_sent",
            "shutdown",
        ]
        assert all("timestamp" in e for e in events)
        assert events[2]["lines"] == 2

    def test_startup_extra_fields(self, tmp_path: Path) -> None:
        logger, _, log_path = _logger(tmp_path)
        logger.log_startup("call", "127.0.0.1:9000", 512, timeout=5.0, requests=3)
        logger.close()
        (event,) = _events(log_path)
        assert event["timeout"] == 5.0
        assert event["requests"] == 3

    def test_datagrams_quiet_unless_verbose(self, tmp_path: Path) -> None:
        logger, out, _ = _logger(tmp_path)
        logger.log_datagram_sent("127.0.0.1:9000", 100, 1)
        assert out.getvalue() == ""

        verbose_logger, verbose_out, _ = _logger(tmp_path / "v", verbose=True)
        verbose_logger.log_datagram_sent("127.0.0.1:9000", 100, 1)
        assert "127.0.0.1:9000" in verbose_out.getvalue()
        logger.close()
        verbose_logger.close()

    def test_server_startup_always_printed(self, tmp_path: Path) -> None:
        logger, out, _ = _logger(tmp_path)
        logger.log_startup("echo-server", "127.0.0.1:9000", 1200)
        logger.log_shutdown("Echo server stopped")
        logger.close()
        assert "echo server started" in out.getvalue()
        assert "Echo server stopped" in out.getvalue()

    def test_malformed_line(self, tmp_path: Path) -> None:
        logger, out, log_path = _logger(tmp_path)
        logger.log_malformed_line("10.0.0.1:4000", MalformedLineError("Invalid JSON: x", PARSE_ERROR, index=3))
        logger.close()
        (event,) = _events(log_path)
        assert event["index"] == 3
        assert event["code"] == PARSE_ERROR
        assert "MALFORMED" in out.getvalue()
        assert "line 3" in out.getvalue()

    def test_oversized_message(self, tmp_path: Path) -> None:
        logger, _, log_path = _logger(tmp_path)
        logger.log_oversized_message(7, OversizedMessageError(2000, 1200))
        logger.close()
        (event,) = _events(log_path)
        assert event == {**event, "id": 7, "size": 2000, "limit": 1200}

    def test_timeout_lists_pending_ids(self, tmp_path: Path) -> None:
        logger, out, log_path = _logger(tmp_path)
        logger.log_timeout([1, "b"], 0.5)
        logger.close()
        (event,) = _events(log_path)
        assert event["pending_ids"] == [1, "b"]
        assert "TIMEOUT" in out.getvalue()

    def test_console_only_without_path(self) -> None:
        out = io.StringIO()
        logger = TrafficLogger(console=Console(file=out))
        logger.log_unmatched_response(3)
        logger.close()
        assert "unmatched id 3" in out.getvalue()

    def test_write_failure_closes_file(self, tmp_path: Path) -> None:
        logger, out, _ = _logger(tmp_path)
        assert logger._log_file is not None
        logger._log_file.close()
        logger.log_shutdown("x")
        assert logger._log_file is None
        assert "Log write failed" in out.getvalue()
        # Further events go to the console only
        logger.log_shutdown("y")
