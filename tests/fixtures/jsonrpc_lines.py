"""JSON-RPC 2.0 line samples for testing.

Each constant is one encoded line without its trailing delimiter, unless
the name says otherwise.
"""

# --- Requests ---

HELLO_REQUEST = b'{"jsonrpc":"2.0","id":0,"method":"hello","params":["world"]}'

HELLO_RESPONSE = (
    b'{"jsonrpc":"2.0","id":0,"result":'
    b'{"jsonrpc":"2.0","id":0,"method":"hello","params":["world"]}}'
)

NAMED_PARAMS_REQUEST = b'{"jsonrpc":"2.0","id":"abc","method":"GetFoo","params":{"bar":1,"baz":[true,null]}}'

# Member order and extra members must survive an echo unchanged
REORDERED_REQUEST = b'{"method":"sum","params":[1,2],"id":7,"jsonrpc":"2.0","x-trace":"t-1"}'

MINIMAL_REQUEST = b'{"jsonrpc":"2.0","id":99,"method":"ping"}'

NULL_PARAMS_REQUEST = b'{"jsonrpc":"2.0","id":100,"method":"test","params":null}'

# --- Notifications ---

HELLO_NOTIFICATION = b'{"jsonrpc":"2.0","method":"hello","params":["world"]}'

# --- Responses ---

SCALAR_RESULT_RESPONSE = b'{"jsonrpc":"2.0","id":101,"result":"ok"}'

NULL_RESULT_RESPONSE = b'{"jsonrpc":"2.0","id":102,"result":null}'

METHOD_NOT_FOUND_ERROR = b'{"jsonrpc":"2.0","id":5,"error":{"code":-32601,"message":"Method not found"}}'

NULL_ID_ERROR = b'{"jsonrpc":"2.0","id":null,"error":{"code":-32700,"message":"Parse error"}}'

# --- Invalid lines ---

EMPTY_LINE = b""
BLANK_LINE = b"   \r"
NOT_JSON = b"this is not json"
NOT_UTF8 = b'{"jsonrpc":"2.0","id":1,"method":"\xff\xfe"}'
NOT_OBJECT = b"[1, 2, 3]"
MISSING_JSONRPC = b'{"id":1,"method":"test"}'
WRONG_JSONRPC = b'{"jsonrpc":"1.0","id":1,"method":"test"}'
NO_TYPE_FIELDS = b'{"jsonrpc":"2.0","id":1}'
BOOLEAN_ID = b'{"jsonrpc":"2.0","id":true,"method":"test"}'
FLOAT_ID = b'{"jsonrpc":"2.0","id":1.5,"method":"test"}'
NUMERIC_METHOD = b'{"jsonrpc":"2.0","id":1,"method":42}'
SCALAR_PARAMS = b'{"jsonrpc":"2.0","id":1,"method":"test","params":"nope"}'
RESULT_AND_ERROR = b'{"jsonrpc":"2.0","id":1,"result":1,"error":{"code":1,"message":"x"}}'
METHOD_AND_RESULT = b'{"jsonrpc":"2.0","id":1,"method":"test","result":1}'
RESULT_WITHOUT_ID = b'{"jsonrpc":"2.0","result":1}'
ERROR_NOT_OBJECT = b'{"jsonrpc":"2.0","id":1,"error":"boom"}'


def request_line(request_id: int, method: str = "hello", padding: int = 0) -> bytes:
    """Build an encoded request line, optionally padded to grow its size."""
    params = '["' + "x" * padding + '"]'
    return (
        f'{{"jsonrpc":"2.0","id":{request_id},"method":"{method}","params":{params}}}'
    ).encode("utf-8")


def response_line(request_id: int, result: str = "ok") -> bytes:
    return f'{{"jsonrpc":"2.0","id":{request_id},"result":"{result}"}}'.encode("utf-8")


# Nested past the interpreter's recursion limit; still small enough for one datagram
DEEP_NESTING = b'{"jsonrpc":"2.0","id":1,"method":"m","params":' + b"[" * 5000 + b"]" * 5000 + b"}"

# Members the codec does not model, an explicit null and non-canonical order
EXTRA_MEMBERS_REQUEST = b'{"jsonrpc":"2.0","method":"sum","params":null,"id":7,"x-trace":"t-1"}'
