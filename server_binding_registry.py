#!/usr/bin/env python3

"""
Server Binding Registry

This module holds the mapping from a document language identifier to the
command that launches its language server. The registry is an explicit
object constructed by the host bootstrap and handed to whatever needs to
read it; there is no module-level instance.
"""

import logging
from dataclasses import dataclass
from typing import Any


class RegistrationError(ValueError):
    """Raised when a binding is malformed and cannot be registered."""

    def __init__(self, message: str, language_id: Any = None):
        self.language_id = language_id
        super().__init__(message)


@dataclass(frozen=True)
class ServerBinding:
    """A language id bound to the command that starts its server."""

    language_id: str
    launch_command: tuple[str, ...]

    @property
    def executable(self) -> str:
        return self.launch_command[0]

    @property
    def arguments(self) -> list[str]:
        return list(self.launch_command[1:])

    def to_dict(self) -> dict[str, Any]:
        return {
            "language_id": self.language_id,
            "launch_command": list(self.launch_command),
        }


def normalize_language_id(language_id: Any) -> Any:
    """Strip surrounding whitespace so " html" and "html" name one binding."""
    return language_id.strip() if isinstance(language_id, str) else language_id


def create_server_binding(language_id: Any, launch_command: Any) -> ServerBinding:
    """Validate raw registration input and build a ServerBinding.

    Raises:
        RegistrationError: If the language id or the launch command is empty
            or not made of strings
    """
    if not isinstance(language_id, str) or not language_id.strip():
        raise RegistrationError(
            f"Language id must be a non-empty string, got {language_id!r}",
            language_id=language_id,
        )

    if isinstance(launch_command, str) or launch_command is None:
        raise RegistrationError(
            f"Launch command for '{language_id}' must be a sequence of strings",
            language_id=language_id,
        )

    try:
        command = tuple(launch_command)
    except TypeError as e:
        raise RegistrationError(
            f"Launch command for '{language_id}' is not iterable: {launch_command!r}",
            language_id=language_id,
        ) from e

    if not command:
        raise RegistrationError(
            f"Launch command for '{language_id}' is empty", language_id=language_id
        )

    for part in command:
        if not isinstance(part, str) or not part:
            raise RegistrationError(
                f"Launch command for '{language_id}' contains an invalid element: {part!r}",
                language_id=language_id,
            )

    return ServerBinding(
        language_id=normalize_language_id(language_id), launch_command=command
    )


class ServerBindingRegistry:
    """Registry of language server bindings, one per language id."""

    def __init__(self, logger: logging.Logger | None = None):
        """Initialize an empty registry.

        Args:
            logger: Logger instance for registration diagnostics
        """
        self.logger = logger or logging.getLogger(__name__)
        self._bindings: dict[str, ServerBinding] = {}

    def register(self, language_id: str, launch_command: list[str]) -> ServerBinding:
        """Bind language_id to launch_command, replacing any existing binding.

        Raises:
            RegistrationError: If the input is malformed; the registry is left
                unchanged in that case
        """
        binding = create_server_binding(language_id, launch_command)

        previous = self._bindings.get(binding.language_id)
        self._bindings[binding.language_id] = binding

        if previous is None:
            self.logger.info(
                f"Registered language server for '{binding.language_id}': "
                f"{' '.join(binding.launch_command)}"
            )
        elif previous != binding:
            self.logger.info(
                f"Replaced language server for '{binding.language_id}': "
                f"{' '.join(previous.launch_command)} -> {' '.join(binding.launch_command)}"
            )
        else:
            self.logger.debug(
                f"Language server for '{binding.language_id}' already registered"
            )

        return binding

    def add_server_definition(
        self, language_id: str, launch_command: list[str]
    ) -> ServerBinding:
        """Register a raw command server definition (alias of register)."""
        return self.register(language_id, launch_command)

    def lookup(self, language_id: str) -> ServerBinding | None:
        """Get the binding for language_id, or None if it is unregistered."""
        return self._bindings.get(normalize_language_id(language_id))

    def unregister(self, language_id: str) -> ServerBinding | None:
        """Remove and return the binding for language_id."""
        binding = self._bindings.pop(normalize_language_id(language_id), None)
        if binding is not None:
            self.logger.info(
                f"Unregistered language server for '{binding.language_id}'"
            )
        return binding

    def get_registered_languages(self) -> list[str]:
        """Get list of language ids with a binding."""
        return list(self._bindings.keys())

    def clear(self) -> None:
        """Remove all bindings. Primarily for testing."""
        self._bindings.clear()

    def get_status(self) -> dict[str, Any]:
        """
        Get the current status of the registry.

        Returns:
            Dictionary describing every registered binding
        """
        return {
            "languages": self.get_registered_languages(),
            "bindings": [binding.to_dict() for binding in self._bindings.values()],
            "total_bindings": len(self._bindings),
        }

    def __len__(self) -> int:
        return len(self._bindings)

    def __contains__(self, language_id: object) -> bool:
        return normalize_language_id(language_id) in self._bindings
