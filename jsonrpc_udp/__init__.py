"""jsonrpc-udp: JSON-RPC 2.0 over UDP, one JSON Lines batch per datagram."""

__version__ = "0.1.0"
