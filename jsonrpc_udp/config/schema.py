"""Pydantic v2 models for jsonrpc-udp settings.

Settings can come from command-line flags, a YAML config file, or both
(flags win). Endpoint strings are resolved once, here, so the transport
layer only ever sees a concrete host and port.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from jsonrpc_udp.transport.framing import DEFAULT_MAX_DATAGRAM_SIZE, MAX_UDP_PAYLOAD

LOOPBACK_HOST = "127.0.0.1"
DEFAULT_TIMEOUT_SECONDS = 5.0


class Endpoint(BaseModel):
    """A UDP host:port pair."""

    model_config = ConfigDict(frozen=True)

    host: str
    port: int = Field(ge=0, le=65535)

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"

    def as_tuple(self) -> tuple[str, int]:
        return (self.host, self.port)


def parse_endpoint(text: str) -> Endpoint:
    """Parse ``HOST:PORT`` into an Endpoint.

    Accepted forms:
      - ``127.0.0.1:9000`` / ``example.com:9000``
      - ``[::1]:9000`` for IPv6 literals
      - ``:9000`` as shorthand for the loopback address

    Raises:
        ValueError: If the text has no port or the port is not a valid
            integer in 0-65535.
    """
    value = text.strip()
    host, sep, port_text = value.rpartition(":")
    if not sep:
        raise ValueError(f"Address {text!r} must have the form HOST:PORT or :PORT")

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        raise ValueError(f"IPv6 address in {text!r} must be enclosed in brackets, e.g. [::1]:9000")

    if not host:
        host = LOOPBACK_HOST

    try:
        port = int(port_text)
    except ValueError:
        raise ValueError(f"Invalid port {port_text!r} in address {text!r}") from None
    if not 0 <= port <= 65535:
        raise ValueError(f"Port {port} in address {text!r} is out of range (0-65535)")

    return Endpoint(host=host, port=port)


def _coerce_endpoint(value: Any) -> Any:
    if isinstance(value, str):
        return parse_endpoint(value)
    return value


class CallSettings(BaseModel):
    """Settings for the calling side (``jsonrpc-udp call``)."""

    server: Endpoint | None = None
    send_buf_size: int = Field(default=DEFAULT_MAX_DATAGRAM_SIZE, ge=1, le=MAX_UDP_PAYLOAD)
    timeout: float | None = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    pretty: bool = False
    assign_ids: bool = False

    @field_validator("server", mode="before")
    @classmethod
    def parse_server(cls, value: Any) -> Any:
        return _coerce_endpoint(value)


class EchoServerSettings(BaseModel):
    """Settings for the serving side (``jsonrpc-udp echo-server``)."""

    bind: Endpoint | None = None
    send_buf_size: int = Field(default=DEFAULT_MAX_DATAGRAM_SIZE, ge=1, le=MAX_UDP_PAYLOAD)

    @field_validator("bind", mode="before")
    @classmethod
    def parse_bind(cls, value: Any) -> Any:
        return _coerce_endpoint(value)


class TransportConfig(BaseModel):
    """Top-level config file model.

    Example YAML::

        call:
          server: ":9000"
          send_buf_size: 1200
          timeout: 5
        echo_server:
          bind: ":9000"
    """

    model_config = ConfigDict(extra="forbid")

    call: CallSettings = Field(default_factory=CallSettings)
    echo_server: EchoServerSettings = Field(default_factory=EchoServerSettings)
