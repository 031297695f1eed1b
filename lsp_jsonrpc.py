"""
JSON-RPC 2.0 Protocol Implementation for LSP

This module leverages the python-lsp-jsonrpc package for Content-Length
framing on both directions of a server's stdio, and keeps thin message
wrappers so the client can track the requests it has in flight.
"""

import itertools
import logging
from collections.abc import Callable
from typing import Any, BinaryIO

from pylsp_jsonrpc.streams import JsonRpcStreamReader, JsonRpcStreamWriter

from lsp_constants import JsonRPCMessage, LSPErrorCode


class JSONRPCError(Exception):
    """Exception for JSON-RPC protocol errors."""

    def __init__(self, code: LSPErrorCode, message: str, data: Any | None = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"JSON-RPC Error {code.value}: {message}")


class JSONRPCMessage:
    """Base class for JSON-RPC messages - minimal wrapper around dict."""

    def __init__(self, data: dict[str, Any]):
        self._data = data

    def to_dict(self) -> dict[str, Any]:
        """Convert message to dictionary."""
        return self._data.copy()


class JSONRPCRequest(JSONRPCMessage):
    """JSON-RPC request message."""

    def __init__(
        self,
        method: str,
        message_id: int,
        params: dict[str, Any] | None = None,
    ):
        data: dict[str, Any] = {"jsonrpc": "2.0", "id": message_id, "method": method}
        if params is not None:
            data["params"] = params
        super().__init__(data)

    @property
    def method(self) -> str:
        return self._data["method"]

    @property
    def params(self) -> dict[str, Any]:
        return self._data.get("params", {})

    @property
    def id(self) -> int:
        return self._data["id"]


class JSONRPCNotification(JSONRPCMessage):
    """JSON-RPC notification message."""

    def __init__(self, method: str, params: dict[str, Any] | None = None):
        data: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            data["params"] = params
        super().__init__(data)

    @property
    def method(self) -> str:
        return self._data["method"]


class JSONRPCResponse(JSONRPCMessage):
    """JSON-RPC response message."""

    def __init__(
        self,
        message_id: str | int,
        result: Any | None = None,
        error: dict[str, Any] | None = None,
    ):
        data: dict[str, Any] = {"jsonrpc": "2.0", "id": message_id}
        if error is not None:
            data["error"] = error
        else:
            data["result"] = result
        super().__init__(data)

    @property
    def id(self) -> str | int:
        return self._data["id"]

    @property
    def error(self) -> dict[str, Any] | None:
        return self._data.get("error")

    @classmethod
    def create_error(
        cls, message_id: str | int, code: LSPErrorCode, message: str
    ) -> "JSONRPCResponse":
        """Create an error response."""
        return cls(message_id=message_id, error={"code": code.value, "message": message})


class JSONRPCProtocol:
    """JSON-RPC 2.0 protocol handler leveraging python-lsp-jsonrpc."""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(__name__)
        self._ids = itertools.count(1)
        self._pending_requests: dict[int, JSONRPCRequest] = {}

    def create_request(
        self, method: str, params: dict[str, Any] | None = None
    ) -> JSONRPCRequest:
        """Create a new JSON-RPC request and track it as pending."""
        request = JSONRPCRequest(method=method, message_id=next(self._ids), params=params)
        self._pending_requests[request.id] = request
        return request

    def create_notification(
        self, method: str, params: dict[str, Any] | None = None
    ) -> JSONRPCNotification:
        """Create a new JSON-RPC notification."""
        return JSONRPCNotification(method=method, params=params)

    def create_response(self, message_id: str | int, result: Any) -> JSONRPCResponse:
        """Create a successful JSON-RPC response to a server request."""
        return JSONRPCResponse(message_id=message_id, result=result)

    def create_error_response(
        self, message_id: str | int, code: LSPErrorCode, message: str
    ) -> JSONRPCResponse:
        """Create an error JSON-RPC response to a server request."""
        return JSONRPCResponse.create_error(message_id, code, message)

    def complete_request(self, message_id: int) -> JSONRPCRequest | None:
        """Forget a pending request once its response arrived or it timed out."""
        return self._pending_requests.pop(message_id, None)

    def clear_pending_requests(self) -> None:
        """Clear all pending requests."""
        self._pending_requests.clear()

    def is_request(self, message: JsonRPCMessage) -> bool:
        """Check if message is a request."""
        return "id" in message and "method" in message

    def is_response(self, message: JsonRPCMessage) -> bool:
        """Check if message is a response."""
        return (
            "id" in message
            and "method" not in message
            and ("result" in message or "error" in message)
        )

    def is_notification(self, message: JsonRPCMessage) -> bool:
        """Check if message is a notification."""
        return "method" in message and "id" not in message

    def validate_message(self, message: Any) -> None:
        """Raise JSONRPCError unless message is a well-formed JSON-RPC 2.0 object."""
        if not isinstance(message, dict):
            raise JSONRPCError(LSPErrorCode.INVALID_REQUEST, "Message is not an object")

        if message.get("jsonrpc") != "2.0":
            raise JSONRPCError(LSPErrorCode.INVALID_REQUEST, "Invalid JSON-RPC version")

        if "method" in message and not isinstance(message["method"], str):
            raise JSONRPCError(LSPErrorCode.INVALID_REQUEST, "Method must be a string")

        if "result" in message and "error" in message:
            raise JSONRPCError(
                LSPErrorCode.INVALID_REQUEST, "Response has both result and error"
            )

        if not (
            self.is_request(message)
            or self.is_response(message)
            or self.is_notification(message)
        ):
            raise JSONRPCError(LSPErrorCode.INVALID_REQUEST, "Unknown message type")


class LSPStreamChannel:
    """Bidirectional framed channel over a server process's stdio."""

    def __init__(self, rfile: BinaryIO, wfile: BinaryIO):
        self._reader = JsonRpcStreamReader(rfile)
        self._writer = JsonRpcStreamWriter(wfile, separators=(",", ":"))

    def send(self, message: JSONRPCMessage) -> None:
        """Write one framed message."""
        self._writer.write(message.to_dict())

    def listen(self, consumer: Callable[[JsonRPCMessage], None]) -> None:
        """Block reading framed messages until the stream closes."""
        self._reader.listen(consumer)

    def close(self) -> None:
        self._writer.close()
        self._reader.close()
