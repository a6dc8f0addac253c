"""JSON-RPC 2.0 line codec.

Every message travels as a single line of compact JSON. Lines are joined
with \\n inside a datagram, so an encoded line must never contain a raw
newline byte.

Message types are distinguished by field presence:
  - Request:      has "method" AND "id"
  - Notification: has "method" but NO "id"
  - Response:     has "result" (and no "method")
  - Error:        has "error" (and no "method")
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from jsonrpc_udp.errors import LineInvariantError, MalformedLineError

JSONRPC_VERSION = "2.0"
DELIMITER = b"\n"

# Standard JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

RequestId = int | str | None
Params = list[Any] | dict[str, Any]


@dataclass(frozen=True)
class ErrorData:
    """JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any | None = None


@dataclass(frozen=True)
class JSONRPCRequest:
    """A JSON-RPC 2.0 request (expects a response).

    ``raw`` keeps the decoded JSON object exactly as received, including
    members this codec does not model, so it can be mirrored back unchanged.
    """

    id: RequestId
    method: str
    params: Params | None = None
    raw: dict[str, Any] | None = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class JSONRPCNotification:
    """A JSON-RPC 2.0 notification (no response expected)."""

    method: str
    params: Params | None = None
    raw: dict[str, Any] | None = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class JSONRPCResponse:
    """A JSON-RPC 2.0 successful response."""

    id: RequestId
    result: Any = None


@dataclass(frozen=True)
class JSONRPCError:
    """A JSON-RPC 2.0 error response."""

    id: RequestId
    error: ErrorData = field(default_factory=lambda: ErrorData(code=INTERNAL_ERROR, message="Internal error"))


JSONRPCMessage = JSONRPCRequest | JSONRPCNotification | JSONRPCResponse | JSONRPCError


def parse_message(line: bytes) -> JSONRPCMessage:
    """Decode a single line into a typed JSON-RPC message.

    Args:
        line: Raw bytes of one candidate line (surrounding whitespace,
              including a trailing \\r or \\n, is ignored).

    Returns:
        The parsed message as the appropriate variant.

    Raises:
        MalformedLineError: If the line is not valid JSON or not a valid
            JSON-RPC 2.0 message shape.
    """
    stripped = line.strip()
    if not stripped:
        raise MalformedLineError("Empty message line", PARSE_ERROR)

    try:
        data = json.loads(stripped)
    except UnicodeDecodeError as e:
        raise MalformedLineError(f"Invalid UTF-8: {e}", PARSE_ERROR) from e
    except json.JSONDecodeError as e:
        raise MalformedLineError(f"Invalid JSON: {e}", PARSE_ERROR) from e
    except RecursionError as e:
        raise MalformedLineError(f"JSON nesting too deep: {e}", PARSE_ERROR) from e

    if not isinstance(data, dict):
        raise MalformedLineError(
            f"JSON-RPC message must be an object, got {type(data).__name__}",
            INVALID_REQUEST,
        )

    if data.get("jsonrpc") != JSONRPC_VERSION:
        raise MalformedLineError(
            f"Expected jsonrpc version '2.0', got {data.get('jsonrpc')!r}",
            INVALID_REQUEST,
        )

    has_id = "id" in data
    has_method = "method" in data
    has_result = "result" in data
    has_error = "error" in data

    if has_id:
        _check_id(data["id"])

    if has_method:
        if has_result or has_error:
            raise MalformedLineError(
                "A message with 'method' must not carry 'result' or 'error'",
                INVALID_REQUEST,
            )
        method = data["method"]
        if not isinstance(method, str):
            raise MalformedLineError(
                f"'method' must be a string, got {type(method).__name__}",
                INVALID_REQUEST,
            )
        params = data.get("params")
        if params is not None and not isinstance(params, (list, dict)):
            raise MalformedLineError(
                f"'params' must be an array, an object or null, got {type(params).__name__}",
                INVALID_REQUEST,
            )
        if has_id:
            return JSONRPCRequest(id=data["id"], method=method, params=params, raw=data)
        return JSONRPCNotification(method=method, params=params, raw=data)

    if has_result and has_error:
        raise MalformedLineError(
            "Response must carry exactly one of 'result' or 'error'",
            INVALID_REQUEST,
        )

    if has_error:
        error_obj = data["error"]
        if not isinstance(error_obj, dict):
            raise MalformedLineError("'error' field must be an object", INVALID_REQUEST)
        code = error_obj.get("code", INTERNAL_ERROR)
        if not isinstance(code, int) or isinstance(code, bool):
            raise MalformedLineError(
                f"'error.code' must be an integer, got {type(code).__name__}",
                INVALID_REQUEST,
            )
        return JSONRPCError(
            id=data.get("id"),
            error=ErrorData(
                code=code,
                message=str(error_obj.get("message", "Unknown error")),
                data=error_obj.get("data"),
            ),
        )

    if has_result:
        if not has_id:
            raise MalformedLineError(
                "Response with 'result' must have an 'id' field", INVALID_REQUEST
            )
        return JSONRPCResponse(id=data["id"], result=data["result"])

    raise MalformedLineError(
        "Cannot determine message type: must have 'method' (request/notification), "
        "'result' (response), or 'error' (error response)",
        INVALID_REQUEST,
    )


def message_to_dict(msg: JSONRPCMessage) -> dict[str, Any]:
    """Build the canonical JSON object for a message.

    Member order is ``jsonrpc, id, method, params`` for requests and
    ``jsonrpc, id, result|error`` for responses.
    """
    data: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION}

    if isinstance(msg, JSONRPCRequest):
        data["id"] = msg.id
        data["method"] = msg.method
        if msg.params is not None:
            data["params"] = msg.params
    elif isinstance(msg, JSONRPCNotification):
        data["method"] = msg.method
        if msg.params is not None:
            data["params"] = msg.params
    elif isinstance(msg, JSONRPCResponse):
        data["id"] = msg.id
        data["result"] = msg.result
    elif isinstance(msg, JSONRPCError):
        data["id"] = msg.id
        data["error"] = {
            "code": msg.error.code,
            "message": msg.error.message,
        }
        if msg.error.data is not None:
            data["error"]["data"] = msg.error.data

    return data


def encode_message(msg: JSONRPCMessage) -> bytes:
    """Serialize a message to one line of compact UTF-8 JSON.

    The returned bytes carry no trailing delimiter; the framing layer adds
    delimiters between lines.

    Requests and notifications decoded from a line are written from their
    received object, so unknown members, member order and explicit nulls
    survive forwarding.

    Raises:
        LineInvariantError: If the serialized form contains a raw newline.
    """
    data = getattr(msg, "raw", None)
    if data is None:
        data = message_to_dict(msg)
    line = json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    if DELIMITER in line:
        raise LineInvariantError(f"Encoded line contains a raw delimiter: {line[:80]!r}")
    return line


def make_error_response(request_id: RequestId, code: int, message: str) -> JSONRPCError:
    """Create a JSON-RPC error response.

    Args:
        request_id: The id from the original request (None when unknown).
        code: JSON-RPC error code (e.g., -32700 for a parse error).
        message: Human-readable error message.
    """
    return JSONRPCError(
        id=request_id,
        error=ErrorData(code=code, message=message),
    )


def message_id(msg: JSONRPCMessage) -> RequestId:
    """Return the id of a message, or None for notifications."""
    if isinstance(msg, JSONRPCNotification):
        return None
    return msg.id


def _check_id(value: Any) -> None:
    # bool is an int subclass but not a valid JSON-RPC id
    if value is None or isinstance(value, str):
        return
    if isinstance(value, int) and not isinstance(value, bool):
        return
    raise MalformedLineError(
        f"'id' must be a string, an integer or null, got {type(value).__name__}",
        INVALID_REQUEST,
    )
