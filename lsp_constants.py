"""
LSP Protocol Constants and Message Types

This module defines the constants and message shapes the qute-lsp host
integration needs for Language Server Protocol communication, following the
LSP 3.17 specification.
"""

from enum import Enum
from typing import Any


class LSPErrorCode(Enum):
    """LSP Error Codes as defined in the specification."""

    # JSON-RPC Error Codes
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # LSP-specific Error Codes
    SERVER_NOT_INITIALIZED = -32002
    UNKNOWN_ERROR_CODE = -32001
    REQUEST_FAILED = -32803
    REQUEST_CANCELLED = -32800


class LSPMessageType(Enum):
    """LSP Message Types for window/logMessage and window/showMessage."""

    ERROR = 1
    WARNING = 2
    INFO = 3
    LOG = 4


class LSPMethod:
    """LSP Method Names used by the client."""

    # General
    INITIALIZE = "initialize"
    INITIALIZED = "initialized"
    SHUTDOWN = "shutdown"
    EXIT = "exit"
    CANCEL_REQUEST = "$/cancelRequest"

    # Text Document Sync
    DID_OPEN = "textDocument/didOpen"
    DID_CHANGE = "textDocument/didChange"
    DID_CLOSE = "textDocument/didClose"

    # Language Features
    DEFINITION = "textDocument/definition"
    PUBLISH_DIAGNOSTICS = "textDocument/publishDiagnostics"

    # Server-to-client requests
    WORKSPACE_CONFIGURATION = "workspace/configuration"
    SHOW_MESSAGE_REQUEST = "window/showMessageRequest"
    REGISTER_CAPABILITY = "client/registerCapability"

    # Window Features
    SHOW_MESSAGE = "window/showMessage"
    LOG_MESSAGE = "window/logMessage"


class LSPCapabilities:
    """LSP Capabilities structure templates."""

    @staticmethod
    def client_capabilities() -> dict[str, Any]:
        """Client capabilities advertised on initialize.

        qute-lsp only synchronizes full documents and answers definition
        requests, so the client keeps its advertisement to those features.
        """
        return {
            "textDocument": {
                "synchronization": {
                    "dynamicRegistration": False,
                    "didSave": False,
                },
                "definition": {"dynamicRegistration": False, "linkSupport": True},
                "publishDiagnostics": {"relatedInformation": False},
            },
            "workspace": {
                "configuration": True,
                "workspaceFolders": False,
            },
            "window": {
                "showMessage": {
                    "messageActionItem": {"additionalPropertiesSupport": False}
                },
            },
        }


# Server capability every bound server must advertise
REQUIRED_SERVER_CAPABILITIES = ("definitionProvider",)

# JSON-RPC 2.0 Message Types
JsonRPCRequest = dict[str, Any]
JsonRPCResponse = dict[str, Any]
JsonRPCNotification = dict[str, Any]
JsonRPCMessage = JsonRPCRequest | JsonRPCResponse | JsonRPCNotification

# LSP-specific types
Position = dict[str, int]  # {"line": int, "character": int}
Range = dict[str, Position]  # {"start": Position, "end": Position}
Location = dict[str, str | Range]  # {"uri": str, "range": Range}

# textDocument/definition result: Location | Location[] | LocationLink[] | null
DefinitionResult = Location | list[dict[str, Any]] | None


def make_position(line: int, character: int) -> Position:
    """Build a zero-based LSP position."""
    return {"line": line, "character": character}
