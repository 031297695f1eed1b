#!/usr/bin/env python3

"""
Shared constants for the qute-lsp host integration.
"""

from pathlib import Path

# Default binding registered at host startup
DEFAULT_LANGUAGE_ID = "html"
DEFAULT_LAUNCH_COMMAND = ("qute-lsp",)

# Environment variables
BINDINGS_CONFIG_ENV = "QUTE_LSP_BINDINGS"
LAUNCH_COMMAND_ENV = "QUTE_LSP_COMMAND"
ACTIVATION_TIMEOUT_ENV = "QUTE_LSP_ACTIVATION_TIMEOUT"
REQUEST_TIMEOUT_ENV = "QUTE_LSP_REQUEST_TIMEOUT"

# Bounded waits, in seconds
DEFAULT_ACTIVATION_TIMEOUT = 10.0
DEFAULT_REQUEST_TIMEOUT = 5.0

# Default bindings file location
DATA_DIR = Path.home() / ".local" / "share" / "qute-lsp"
DEFAULT_BINDINGS_PATH = DATA_DIR / "bindings.json"

# File extension -> language id, used when a host opens a document without
# an explicit language
EXTENSION_LANGUAGE_IDS = {
    ".html": "html",
    ".htm": "html",
    ".qute": "html",
}

# Editor command routed to textDocument/definition
GO_TO_DEFINITION_COMMAND = "editor.action.goToDefinition"
