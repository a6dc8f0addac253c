"""jsonrpc-udp CLI entry point.

Provides the `jsonrpc-udp` command with subcommands:
  - req: Generate JSON-RPC request objects as JSON Lines
  - call: Read requests from stdin, send them over UDP, print responses
  - echo-server: Run a UDP server that echoes every request back as the result
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any, Optional

import typer
from rich.console import Console

from jsonrpc_udp import __version__
from jsonrpc_udp.errors import RpcTransportError

if TYPE_CHECKING:
    from pydantic import BaseModel

    from jsonrpc_udp.config.schema import TransportConfig
    from jsonrpc_udp.transport.framing import DecodedLine

app = typer.Typer(
    name="jsonrpc-udp",
    help="JSON-RPC 2.0 over UDP, with requests and responses batched as JSON Lines per datagram.",
    no_args_is_help=True,
)

_console = Console(stderr=True)

_CONFIG_HELP = "Path to a YAML config file. Command-line options override its values."


def _version_callback(value: bool) -> None:
    if value:
        _console.print(f"jsonrpc-udp {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """jsonrpc-udp: JSON-RPC 2.0 over UDP datagrams."""


@app.command()
def req(
    method: Annotated[str, typer.Argument(help="Method name (e.g. GetFoo).")],
    params: Annotated[
        Optional[str],
        typer.Option("--params", "-p", help="Request parameters (JSON array or JSON object)."),
    ] = None,
    count: Annotated[
        int,
        typer.Option("--count", "-c", min=1, help="Count of requests to generate."),
    ] = 1,
    notification: Annotated[
        bool,
        typer.Option("--notification", "-n", help='Exclude the "id" field from the generated objects.'),
    ] = False,
) -> None:
    """Generate JSON-RPC request objects, one per line, with ids 0..COUNT-1."""
    from jsonrpc_udp.transport.protocol import (
        JSONRPCNotification,
        JSONRPCRequest,
        encode_message,
    )

    parsed_params = None
    if params is not None:
        try:
            parsed_params = json.loads(params)
        except json.JSONDecodeError as e:
            _console.print(f"[bold red]Error:[/bold red] --params is not valid JSON: {e}", highlight=False)
            raise typer.Exit(1) from None
        if not isinstance(parsed_params, (list, dict)):
            _console.print(
                "[bold red]Error:[/bold red] --params must be a JSON array or JSON object",
                highlight=False,
            )
            raise typer.Exit(1)

    for request_id in range(count):
        if notification:
            msg = JSONRPCNotification(method=method, params=parsed_params)
        else:
            msg = JSONRPCRequest(id=request_id, method=method, params=parsed_params)
        _write_line(encode_message(msg))


@app.command()
def call(
    server: Annotated[
        Optional[str],
        typer.Argument(
            help="JSON-RPC server address (HOST:PORT, or :PORT for 127.0.0.1). "
            "May be omitted when the config file sets call.server.",
        ),
    ] = None,
    pretty: Annotated[
        Optional[bool],
        typer.Option("--pretty", "-p", help="Pretty-print JSON responses to stdout."),
    ] = None,
    send_buf_size: Annotated[
        Optional[int],
        typer.Option(
            "--send-buf-size",
            "-b",
            metavar="BYTES",
            help="Max UDP payload per outgoing packet; requests are joined with '\\n' up to this size. [default: 1200]",
        ),
    ] = None,
    timeout: Annotated[
        Optional[float],
        typer.Option(
            "--timeout",
            metavar="SECONDS",
            help="How long to wait for outstanding responses; 0 waits forever. [default: 5]",
        ),
    ] = None,
    assign_ids: Annotated[
        Optional[bool],
        typer.Option(
            "--assign-ids",
            help="Give input objects without an id sequential ids (0, 1, 2, ...). "
            "Without this flag they are sent as notifications and get no response.",
        ),
    ] = None,
    log: Annotated[
        Optional[Path],
        typer.Option("--log", "-l", help="Path to write a structured JSON Lines traffic log."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Print every datagram sent and received to stderr."),
    ] = False,
    config: Annotated[
        Optional[Path],
        typer.Option("--config", help=_CONFIG_HELP),
    ] = None,
) -> None:
    """Read JSON-RPC requests from standard input and execute the RPC calls.

    Responses are printed in the order they arrive, which may differ from
    the order of the requests:

      jsonrpc-udp req hello -p '["world"]' -c 3 | jsonrpc-udp call :9000
    """
    from jsonrpc_udp.audit.logger import TrafficLogger
    from jsonrpc_udp.config.schema import CallSettings
    from jsonrpc_udp.transport.protocol import parse_message
    from jsonrpc_udp.transport.udp import RpcCaller

    file_config = _load_config_or_exit(config)
    settings = _override_or_exit(
        file_config.call,
        server=server,
        pretty=pretty,
        send_buf_size=send_buf_size,
        timeout=timeout if timeout else None,
        assign_ids=assign_ids,
    )
    assert isinstance(settings, CallSettings)
    if timeout == 0:
        settings = settings.model_copy(update={"timeout": None})

    if settings.server is None:
        _console.print(
            "[bold red]Error:[/bold red] No server address provided.\n\n"
            "Usage:\n"
            "  jsonrpc-udp call [OPTIONS] HOST:PORT < requests.jsonl",
            highlight=False,
        )
        raise typer.Exit(1)

    messages = []
    for number, line in enumerate(sys.stdin.buffer, start=1):
        if not line.strip():
            continue
        try:
            messages.append(parse_message(line))
        except RpcTransportError as e:
            _console.print(f"[bold red]Error:[/bold red] input line {number}: {e}", highlight=False)
            raise typer.Exit(1) from None

    logger = TrafficLogger(log_path=log, verbose=verbose)
    caller = RpcCaller(
        server=settings.server,
        logger=logger,
        send_buf_size=settings.send_buf_size,
        timeout=settings.timeout,
        assign_ids=settings.assign_ids,
    )

    def _print_response(decoded: DecodedLine) -> None:
        if settings.pretty:
            _stdout_console().print_json(decoded.line.decode("utf-8"), indent=2)
        else:
            _write_line(decoded.line)

    try:
        result = asyncio.run(caller.call(messages, on_response=_print_response))
    except RpcTransportError as e:
        _console.print(f"[bold red]Error:[/bold red] {e}", highlight=False)
        raise typer.Exit(1) from None
    finally:
        logger.close()

    if not result.complete:
        raise typer.Exit(1)


@app.command(name="echo-server")
def echo_server(
    addr: Annotated[
        Optional[str],
        typer.Argument(
            help="UDP bind address ([IP_ADDR]:PORT, e.g. :9000). "
            "May be omitted when the config file sets echo_server.bind.",
        ),
    ] = None,
    send_buf_size: Annotated[
        Optional[int],
        typer.Option(
            "--send-buf-size",
            "-b",
            metavar="BYTES",
            help="Max UDP payload per response packet; responses are joined with '\\n' up to this size. [default: 1200]",
        ),
    ] = None,
    log: Annotated[
        Optional[Path],
        typer.Option("--log", "-l", help="Path to write a structured JSON Lines traffic log."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Print every datagram sent and received to stderr."),
    ] = False,
    config: Annotated[
        Optional[Path],
        typer.Option("--config", help=_CONFIG_HELP),
    ] = None,
) -> None:
    """Run a JSON-RPC echo server.

    This server will respond to every request with a response containing
    the same request object as the result value.
    """
    from jsonrpc_udp.audit.logger import TrafficLogger
    from jsonrpc_udp.config.schema import EchoServerSettings
    from jsonrpc_udp.transport.udp import EchoServer

    file_config = _load_config_or_exit(config)
    settings = _override_or_exit(file_config.echo_server, bind=addr, send_buf_size=send_buf_size)
    assert isinstance(settings, EchoServerSettings)

    if settings.bind is None:
        _console.print(
            "[bold red]Error:[/bold red] No bind address provided.\n\n"
            "Usage:\n"
            "  jsonrpc-udp echo-server [OPTIONS] :9000",
            highlight=False,
        )
        raise typer.Exit(1)

    logger = TrafficLogger(log_path=log, verbose=verbose)
    server = EchoServer(bind=settings.bind, logger=logger, send_buf_size=settings.send_buf_size)
    try:
        asyncio.run(server.run())
    except KeyboardInterrupt:
        pass  # Handled by signal handler in the server
    except RpcTransportError as e:
        _console.print(f"[bold red]Error:[/bold red] {e}", highlight=False)
        raise typer.Exit(1) from None
    finally:
        logger.close()


def _load_config_or_exit(path: Path | None) -> TransportConfig:
    from jsonrpc_udp.config.loader import ConfigValidationError, load_config

    try:
        return load_config(path)
    except FileNotFoundError as e:
        _console.print(f"[bold red]Error:[/bold red] {e}", highlight=False)
        raise typer.Exit(1) from None
    except ConfigValidationError as e:
        _console.print(f"[bold red]Config error:[/bold red] {e}", highlight=False)
        raise typer.Exit(1) from None


def _override_or_exit(settings: BaseModel, **overrides: Any) -> BaseModel:
    from jsonrpc_udp.config.loader import ConfigValidationError, apply_overrides

    try:
        return apply_overrides(settings, **overrides)
    except ConfigValidationError as e:
        _console.print(f"[bold red]Config error:[/bold red] {e}", highlight=False)
        raise typer.Exit(1) from None


def _stdout_console() -> Console:
    # Created per call so it binds to the current sys.stdout
    return Console(soft_wrap=True)


def _write_line(data: bytes) -> None:
    """Write one line to stdout and flush immediately.

    Args:
        data: An encoded line without its trailing newline.
    """
    sys.stdout.buffer.write(data + b"\n")
    sys.stdout.buffer.flush()
