"""Structured traffic logging for jsonrpc-udp.

Logs endpoint lifecycle, datagram traffic and per-line diagnostics as
structured JSON. Writes to stderr (via rich) for human-readable output, and
optionally to a JSON Lines file for later inspection.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any

from rich.console import Console

from jsonrpc_udp.errors import MalformedLineError, OversizedMessageError

# All log output goes to stderr; stdout is reserved for JSON-RPC responses
_console = Console(stderr=True)


class TrafficLogger:
    """Logs datagram traffic and framing/correlation diagnostics.

    Per-datagram events are always written to the log file but only echoed
    to stderr in verbose mode, so that diagnostics stay readable under load.
    """

    def __init__(
        self,
        log_path: Path | None = None,
        verbose: bool = False,
        console: Console | None = None,
    ) -> None:
        """Initialize the traffic logger.

        Args:
            log_path: Optional path to write a structured JSON Lines log.
                      If None, only logs to stderr via rich console.
            verbose: Whether to print per-datagram events to stderr.
            console: Console to print to; defaults to a stderr console.
        """
        self._log_file: IO[str] | None = None
        self._log_path = log_path
        self._verbose = verbose
        self._console = console if console is not None else _console
        self._role: str | None = None
        if log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            self._log_file = open(log_path, "a", encoding="utf-8")  # noqa: SIM115

    def close(self) -> None:
        """Flush and close the log file if open."""
        if self._log_file is not None:
            self._log_file.flush()
            self._log_file.close()
            self._log_file = None

    def log_startup(self, role: str, address: str, send_buf_size: int, **extra: Any) -> None:
        """Log endpoint startup.

        Args:
            role: "echo-server" or "call".
            address: The bound (server) or target (call) address.
            send_buf_size: Maximum outbound datagram size in bytes.
            **extra: Additional role-specific settings to record.
        """
        entry = {
            "timestamp": _now_iso(),
            "event": "startup",
            "role": role,
            "address": address,
            "send_buf_size": send_buf_size,
            **extra,
        }
        self._write_entry(entry)
        self._role = role

        if role == "echo-server":
            self._console.print("[bold #00ff88]jsonrpc-udp echo server started[/bold #00ff88]")
            self._console.print(f"  Listening: {address}", highlight=False)
            self._console.print(f"  Send buffer: {send_buf_size} bytes", highlight=False)
        elif self._verbose:
            self._console.print(
                f"[dim]call → {address} (send buffer {send_buf_size} bytes)[/dim]",
                highlight=False,
            )

    def log_datagram_sent(self, peer: str, size: int, lines: int) -> None:
        """Log one outbound datagram.

        Args:
            peer: Destination address.
            size: Payload size in bytes.
            lines: Number of encoded lines packed into the datagram.
        """
        entry = {
            "timestamp": _now_iso(),
            "event": "datagram_sent",
            "peer": peer,
            "size": size,
            "lines": lines,
        }
        self._write_entry(entry)
        if self._verbose:
            self._console.print(
                f"  [dim]→ {peer}  {size:5d} bytes  {lines} line(s)[/dim]",
                highlight=False,
            )

    def log_datagram_received(self, peer: str, size: int) -> None:
        """Log one inbound datagram."""
        entry = {
            "timestamp": _now_iso(),
            "event": "datagram_received",
            "peer": peer,
            "size": size,
        }
        self._write_entry(entry)
        if self._verbose:
            self._console.print(
                f"  [dim]← {peer}  {size:5d} bytes[/dim]",
                highlight=False,
            )

    def log_malformed_line(self, peer: str | None, error: MalformedLineError) -> None:
        """Log a line that failed to decode.

        Args:
            peer: Address the datagram came from, if known.
            error: The decode failure, carrying the line index and error code.
        """
        entry = {
            "timestamp": _now_iso(),
            "event": "malformed_line",
            "peer": peer,
            "index": error.index,
            "code": error.code,
            "reason": str(error),
        }
        self._write_entry(entry)
        location = f"line {error.index}" if error.index is not None else "line"
        source = f" from {peer}" if peer else ""
        self._console.print(
            f"  [#ffcc00]⚠ MALFORMED[/#ffcc00] {location}{source}",
            highlight=False,
        )
        self._console.print(f"    [dim]{error}[/dim]", highlight=False)

    def log_unmatched_response(self, response_id: Any, peer: str | None = None) -> None:
        """Log a response whose id matches no pending request.

        Stray and duplicate datagrams are a normal part of UDP, so this is
        a dim diagnostic rather than a warning.
        """
        entry = {
            "timestamp": _now_iso(),
            "event": "unmatched_response",
            "peer": peer,
            "id": response_id,
        }
        self._write_entry(entry)
        self._console.print(
            f"  [dim]discarded response with unmatched id {response_id!r}[/dim]",
            highlight=False,
        )

    def log_oversized_message(self, request_id: Any, error: OversizedMessageError) -> None:
        """Log a message that could not be packed into any datagram."""
        entry = {
            "timestamp": _now_iso(),
            "event": "oversized_message",
            "id": request_id,
            "size": error.size,
            "limit": error.limit,
        }
        self._write_entry(entry)
        self._console.print(
            f"  [bold red]✗ OVERSIZED[/bold red] id {request_id!r}",
            highlight=False,
        )
        self._console.print(f"    [dim]{error}[/dim]", highlight=False)

    def log_timeout(self, pending_ids: list[Any], timeout: float | None) -> None:
        """Log requests abandoned because no response arrived in time."""
        entry = {
            "timestamp": _now_iso(),
            "event": "timeout",
            "timeout": timeout,
            "pending_ids": pending_ids,
        }
        self._write_entry(entry)
        self._console.print(
            f"[bold red]Timeout:[/bold red] no response after {timeout}s for "
            f"{len(pending_ids)} request(s)",
            highlight=False,
        )
        for request_id in pending_ids:
            self._console.print(f"  [red]✗ TIMEOUT[/red] id {request_id!r}", highlight=False)

    def log_socket_error(self, error: Exception) -> None:
        """Log a non-fatal socket error (e.g. ICMP unreachable for a reply)."""
        entry = {
            "timestamp": _now_iso(),
            "event": "socket_error",
            "reason": str(error),
        }
        self._write_entry(entry)
        self._console.print(f"  [red]socket error:[/red] {error}", highlight=False)

    def log_shutdown(self, reason: str) -> None:
        """Log endpoint shutdown.

        Args:
            reason: Why the endpoint is shutting down.
        """
        entry = {
            "timestamp": _now_iso(),
            "event": "shutdown",
            "reason": reason,
        }
        self._write_entry(entry)
        if self._verbose or self._role == "echo-server":
            self._console.print(f"[bold]jsonrpc-udp stopped:[/bold] {reason}", highlight=False)

    def _write_entry(self, entry: dict[str, Any]) -> None:
        """Write a structured JSON entry to the log file.

        If the write fails (disk full, permission error, etc.), reports the
        failure to stderr and closes the file; traffic handling continues.
        """
        if self._log_file is not None:
            try:
                self._log_file.write(json.dumps(entry, default=str) + "\n")
                self._log_file.flush()
            except (OSError, ValueError) as e:
                # ValueError: I/O operation on closed file
                self._console.print(
                    f"[bold red]Log write failed:[/bold red] {e}",
                    highlight=False,
                )
                try:
                    self._log_file.close()
                except (OSError, ValueError):
                    pass
                self._log_file = None


def _now_iso() -> str:
    """Return the current UTC timestamp in ISO 8601 format."""
    return datetime.now(timezone.utc).isoformat()
