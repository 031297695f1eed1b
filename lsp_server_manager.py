"""
LSP Server Manager Interface

This module provides the abstract interface describing how a language server
is launched, and the raw-command implementation used for every registered
server binding.
"""

import logging
import os
import shutil
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from lsp_constants import REQUIRED_SERVER_CAPABILITIES
from server_binding_registry import ServerBinding


class LSPCommunicationMode(Enum):
    """Communication modes for LSP servers."""

    STDIO = "stdio"


class LSPServerManager(ABC):
    """Abstract interface for LSP server management."""

    @abstractmethod
    def get_server_command(self) -> list[str]:
        """Get the command to start the LSP server."""
        pass

    @abstractmethod
    def get_server_args(self) -> list[str]:
        """Get additional arguments for the LSP server."""
        pass

    @abstractmethod
    def get_communication_mode(self) -> LSPCommunicationMode:
        """Get the communication mode for the server."""
        pass

    @abstractmethod
    def get_initialization_options(self) -> dict[str, Any] | None:
        """Get initialization options for the server."""
        pass

    @abstractmethod
    def validate_server_response(self, response: dict[str, Any]) -> bool:
        """Validate server initialization response."""
        pass

    def resolve_executable(self) -> str | None:
        """Resolve the executable on PATH, or return it if it is an absolute path."""
        executable = self.get_server_command()[0]
        if os.path.isabs(executable):
            return executable if os.access(executable, os.X_OK) else None
        return shutil.which(executable)


class RawCommandServerManager(LSPServerManager):
    """Server manager that launches a binding's command verbatim over stdio."""

    def __init__(self, binding: ServerBinding, logger: logging.Logger | None = None):
        """
        Initialize the manager for one binding.

        Args:
            binding: Registered language id and launch command
            logger: Logger instance (optional)
        """
        self.binding = binding
        self.logger = logger or logging.getLogger(__name__)

    @property
    def language_id(self) -> str:
        return self.binding.language_id

    def get_server_command(self) -> list[str]:
        """Get the executable used to start the server."""
        return [self.binding.executable]

    def get_server_args(self) -> list[str]:
        """Get the arguments that follow the executable."""
        return self.binding.arguments

    def get_communication_mode(self) -> LSPCommunicationMode:
        return LSPCommunicationMode.STDIO

    def get_initialization_options(self) -> dict[str, Any] | None:
        return None

    def validate_server_response(self, response: dict[str, Any]) -> bool:
        """Check the initialize result advertises what the editor relies on."""
        capabilities = response.get("capabilities")
        if not isinstance(capabilities, dict):
            self.logger.error(
                f"Server for '{self.language_id}' returned no capabilities"
            )
            return False

        missing_capabilities = [
            cap for cap in REQUIRED_SERVER_CAPABILITIES if not capabilities.get(cap)
        ]
        if missing_capabilities:
            self.logger.error(
                f"Server for '{self.language_id}' missing required capabilities: "
                f"{', '.join(missing_capabilities)}"
            )
            return False

        return True
