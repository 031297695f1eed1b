#!/usr/bin/env python3

"""
Host Adapters

Both editor hosts, the desktop IDE and the web editor, expose the same
contract: run activation once at startup, turn document opens into server
notifications, and route go-to-definition to the bound server. Each adapter
only translates its host's lifecycle and events into calls on the shared
registry, activation trigger and process adapter.
"""

import fnmatch
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from activation_trigger import ActivationResult, ActivationTrigger
from binding_config import HostSettings
from constants import EXTENSION_LANGUAGE_IDS, GO_TO_DEFINITION_COMMAND
from lsp_constants import DefinitionResult
from server_binding_registry import ServerBindingRegistry
from server_process_adapter import ServerProcessAdapter


class HostNotStartedError(RuntimeError):
    """Raised when a document is opened before the startup hook ran."""


class HostAdapter(ABC):
    """Shared host integration contract."""

    def __init__(
        self,
        settings: HostSettings,
        registry: ServerBindingRegistry | None = None,
        process_adapter: ServerProcessAdapter | None = None,
        logger: logging.Logger | None = None,
    ):
        self.settings = settings
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.registry = registry or ServerBindingRegistry(self.logger)
        self.trigger = ActivationTrigger(self.registry, settings.bindings, self.logger)
        self.process_adapter = process_adapter or ServerProcessAdapter(
            self.registry,
            logger=self.logger,
            request_timeout=settings.request_timeout,
        )
        self.activation_result: ActivationResult | None = None

    @property
    def started(self) -> bool:
        return self.activation_result is not None

    @property
    @abstractmethod
    def host_name(self) -> str:
        """Human-readable name of the host."""
        pass

    @abstractmethod
    def language_for(self, path: Path) -> str | None:
        """Language id the host assigns to a file, if any."""
        pass

    async def startup(self) -> ActivationResult:
        """Run the activation trigger; later calls return the first result."""
        if self.activation_result is not None:
            self.logger.debug(f"{self.host_name} startup hook already ran")
            return self.activation_result

        self.logger.info(f"{self.host_name} starting language server integration")
        self.activation_result = await self.trigger.activate()
        return self.activation_result

    async def open_document(self, path: str | Path, language_id: str | None = None) -> str:
        """Open a file in the host and hand it to the bound server.

        Returns:
            The document URI

        Raises:
            HostNotStartedError: If startup() has not completed
        """
        if not self.started:
            raise HostNotStartedError(
                f"{self.host_name} cannot open documents before startup"
            )

        document_path = Path(path).resolve()
        uri = document_path.as_uri()
        language_id = language_id or self.language_for(document_path)
        if language_id is None:
            self.logger.debug(f"No language for {document_path}, opened as plain text")
            return uri

        text = document_path.read_text(encoding="utf-8")
        self.logger.info(f"Opened {uri} as '{language_id}'")
        await self.process_adapter.open_document(uri, language_id, text)
        return uri

    async def close_document(self, uri: str) -> None:
        await self.process_adapter.close_document(uri)

    async def go_to_definition(
        self, uri: str, line: int, character: int
    ) -> DefinitionResult:
        return await self.process_adapter.definition(uri, line, character)

    async def request_definition(
        self, uri: str, line: int, character: int, timeout: float | None = None
    ) -> DefinitionResult:
        """Go-to-definition that raises TimeoutError or ConnectionError when unanswered."""
        return await self.process_adapter.request_definition(
            uri, line, character, timeout=timeout
        )

    async def wait_until_ready(self, language_id: str) -> None:
        await self.process_adapter.wait_until_ready(language_id)

    async def shutdown(self) -> None:
        await self.process_adapter.shutdown()


class DesktopIDEHostAdapter(HostAdapter):
    """Desktop IDE integration, activated by a preloading activity."""

    def __init__(
        self,
        settings: HostSettings,
        file_types: dict[str, str] | None = None,
        **kwargs: Any,
    ):
        super().__init__(settings, **kwargs)
        self.file_types = dict(file_types or EXTENSION_LANGUAGE_IDS)

    @property
    def host_name(self) -> str:
        return "Desktop IDE"

    def language_for(self, path: Path) -> str | None:
        return self.file_types.get(path.suffix.lower())

    async def preload(self) -> None:
        """Preloading activity entry point, run before any project opens."""
        await self.startup()


Disposable = Callable[[], Awaitable[None]]


@dataclass
class ExtensionContext:
    """The web editor's per-extension context."""

    extension_path: str = "."
    subscriptions: list[Disposable] = field(default_factory=list)


class WebEditorHostAdapter(HostAdapter):
    """Web editor integration, activated through an extension entry point."""

    def __init__(
        self,
        settings: HostSettings,
        file_associations: dict[str, str] | None = None,
        **kwargs: Any,
    ):
        super().__init__(settings, **kwargs)
        if file_associations is None:
            file_associations = {
                f"*{extension}": language_id
                for extension, language_id in EXTENSION_LANGUAGE_IDS.items()
            }
        self.file_associations = file_associations
        self.context: ExtensionContext | None = None

    @property
    def host_name(self) -> str:
        return "Web editor"

    def language_for(self, path: Path) -> str | None:
        for pattern, language_id in self.file_associations.items():
            if fnmatch.fnmatch(path.name, pattern):
                return language_id
        return None

    async def activate(self, context: ExtensionContext) -> ActivationResult:
        """Extension activation entry point."""
        self.context = context
        result = await self.startup()
        context.subscriptions.append(self.shutdown)
        return result

    async def deactivate(self) -> None:
        """Dispose everything registered on the extension context."""
        if self.context is None:
            return
        while self.context.subscriptions:
            dispose = self.context.subscriptions.pop()
            try:
                await dispose()
            except Exception as e:
                self.logger.error(f"Error disposing extension resource: {e}")
        self.context = None

    async def execute_command(self, command: str, *args: Any) -> Any:
        """Execute an editor command that needs the language server.

        Only go-to-definition is routed; other commands belong to the host.
        """
        if command != GO_TO_DEFINITION_COMMAND:
            self.logger.warning(f"Command not handled by language integration: {command}")
            return None

        uri, position = args
        if isinstance(position, dict):
            line, character = position["line"], position["character"]
        else:
            line, character = position
        return await self.go_to_definition(uri, line, character)
