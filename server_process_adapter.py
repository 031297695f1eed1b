#!/usr/bin/env python3

"""
Server Process Adapter

This module spawns and owns the language server processes behind registered
bindings. A server is started the first time a document of its language is
opened, reused for every later document of that language, and respawned on
the next open after it exits. Editor-facing requests degrade spawn and
transport failures to "no result"; request_definition() raises them for
callers that must tell a timeout from an empty answer.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from lsp_client import DEFAULT_REQUEST_TIMEOUT, LSPClient
from lsp_constants import DefinitionResult
from lsp_server_manager import RawCommandServerManager
from server_binding_registry import ServerBinding, ServerBindingRegistry
from system_utils import get_process_info


class ServerProcessState(Enum):
    """Liveness of the server process behind a language id."""

    NOT_STARTED = "not-started"
    RUNNING = "running"
    EXITED = "exited"


@dataclass
class OpenDocument:
    """A document the host has open, replayed to a respawned server."""

    uri: str
    language_id: str
    text: str


ClientFactory = Callable[[ServerBinding], LSPClient]


class ServerProcessAdapter:
    """Maintains at most one live server process per language id."""

    def __init__(
        self,
        registry: ServerBindingRegistry,
        logger: logging.Logger | None = None,
        client_factory: ClientFactory | None = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        workspace_root: str | None = None,
    ):
        """Initialize the adapter.

        Args:
            registry: Registry the bindings are read from
            logger: Logger instance for process lifecycle diagnostics
            client_factory: Builds the client for a binding (for testing)
            request_timeout: Upper bound for any single request to a server
            workspace_root: Workspace reported to servers as rootUri
        """
        self.registry = registry
        self.logger = logger or logging.getLogger(__name__)
        self.request_timeout = request_timeout
        self.workspace_root = workspace_root
        self._client_factory = client_factory or self._create_client

        self._sessions: dict[str, LSPClient] = {}
        self._spawn_counts: dict[str, int] = {}
        self._session_locks: dict[str, asyncio.Lock] = {}
        self._ready_events: dict[str, asyncio.Event] = {}
        self._documents: dict[str, OpenDocument] = {}

    def _create_client(self, binding: ServerBinding) -> LSPClient:
        return LSPClient(
            server_manager=RawCommandServerManager(binding, logger=self.logger),
            logger=logging.getLogger(f"lsp-{binding.language_id}"),
            workspace_root=self.workspace_root,
            request_timeout=self.request_timeout,
        )

    def _lock_for(self, language_id: str) -> asyncio.Lock:
        return self._session_locks.setdefault(language_id, asyncio.Lock())

    def _ready_event_for(self, language_id: str) -> asyncio.Event:
        return self._ready_events.setdefault(language_id, asyncio.Event())

    @staticmethod
    def _is_usable(client: LSPClient | None) -> bool:
        return client is not None and client.is_initialized() and client.is_running()

    async def _ensure_session(
        self, binding: ServerBinding, opening_uri: str | None = None
    ) -> LSPClient | None:
        """Return a ready client for binding, spawning or respawning as needed."""
        language_id = binding.language_id

        async with self._lock_for(language_id):
            client = self._sessions.get(language_id)
            if self._is_usable(client) and client.server_manager.binding == binding:
                return client

            if client is not None:
                if client.server_manager.binding != binding:
                    self.logger.info(
                        f"Binding for '{language_id}' changed, restarting its server"
                    )
                else:
                    self.logger.warning(
                        f"Server for '{language_id}' is not running "
                        f"(state: {client.state.value}), respawning"
                    )
                await client.stop()

            client = self._client_factory(binding)
            self._sessions[language_id] = client
            self._spawn_counts[language_id] = self._spawn_counts.get(language_id, 0) + 1

            self.logger.info(
                f"Spawning server for '{language_id}' "
                f"(attempt {self._spawn_counts[language_id]})"
            )
            if not await client.start():
                self.logger.error(
                    f"Server for '{language_id}' failed to start; "
                    f"language features for '{language_id}' are unavailable"
                )
                return None

            await self._replay_documents(client, language_id, skip_uri=opening_uri)
            self._ready_event_for(language_id).set()
            return client

    async def _replay_documents(
        self, client: LSPClient, language_id: str, skip_uri: str | None = None
    ) -> None:
        """Reopen documents that were open on a previous server process."""
        for document in self._documents.values():
            if document.language_id == language_id and document.uri != skip_uri:
                await client.did_open(document.uri, document.language_id, document.text)

    async def open_document(self, uri: str, language_id: str, text: str) -> bool:
        """Notify the bound server that a document was opened.

        Returns:
            True if a ready server received the document, False if the
            language has no binding or its server could not be started
        """
        binding = self.registry.lookup(language_id)
        if binding is None:
            self.logger.debug(f"No language server registered for '{language_id}'")
            return False

        self._documents[uri] = OpenDocument(uri, language_id, text)

        try:
            client = await self._ensure_session(binding, opening_uri=uri)
            if client is None:
                return False
            await client.did_open(uri, language_id, text)
            return True
        except Exception as e:
            self.logger.error(f"Failed to open {uri} on '{language_id}' server: {e}")
            return False

    async def change_document(self, uri: str, text: str) -> None:
        """Send the new full text of an open document."""
        document = self._documents.get(uri)
        if document is None:
            self.logger.warning(f"Change for document that is not open: {uri}")
            return
        document.text = text

        client = self._sessions.get(document.language_id)
        if self._is_usable(client):
            await client.did_change(uri, text)

    async def close_document(self, uri: str) -> None:
        document = self._documents.pop(uri, None)
        if document is None:
            return
        client = self._sessions.get(document.language_id)
        if self._is_usable(client):
            await client.did_close(uri)

    async def definition(
        self, uri: str, line: int, character: int
    ) -> DefinitionResult:
        """Resolve go-to-definition for a position in an open document.

        Returns None when the document is not open, its language has no
        ready server, or the request fails.
        """
        try:
            return await self.request_definition(uri, line, character)
        except ConnectionError as e:
            self.logger.debug(f"No definition result for {uri}: {e}")
            return None
        except Exception as e:
            self.logger.error(f"Definition request for {uri} failed: {e}")
            return None

    async def request_definition(
        self, uri: str, line: int, character: int, timeout: float | None = None
    ) -> DefinitionResult:
        """Like definition(), but a missing answer raises instead of reading as None.

        Raises:
            TimeoutError: If the server did not answer within timeout
            ConnectionError: If the document is not open or its language has
                no running server
        """
        document = self._documents.get(uri)
        if document is None:
            raise ConnectionError(f"Document is not open: {uri}")

        client = self._sessions.get(document.language_id)
        if not self._is_usable(client):
            raise ConnectionError(f"No running server for '{document.language_id}'")

        return await client.get_definition(uri, line, character, timeout=timeout)

    async def wait_until_ready(self, language_id: str) -> None:
        """Suspend until a server for language_id is initialized.

        Cancel the awaiting task (or wrap it in asyncio.wait_for) to bound the
        wait; cancelling leaves the registry and any session untouched.
        """
        while True:
            if self._is_usable(self._sessions.get(language_id)):
                return
            event = self._ready_event_for(language_id)
            event.clear()
            await event.wait()

    def process_state(self, language_id: str) -> ServerProcessState:
        client = self._sessions.get(language_id)
        if client is None or client.server_process is None:
            return ServerProcessState.NOT_STARTED
        if client.is_running():
            return ServerProcessState.RUNNING
        return ServerProcessState.EXITED

    def spawn_count(self, language_id: str) -> int:
        """Number of times a server was spawned for language_id."""
        return self._spawn_counts.get(language_id, 0)

    def get_session(self, language_id: str) -> LSPClient | None:
        return self._sessions.get(language_id)

    def get_status(self) -> dict[str, Any]:
        """
        Get the state of every server the adapter has spawned.

        Returns:
            Dictionary keyed by language id
        """
        status: dict[str, Any] = {}
        for language_id, client in self._sessions.items():
            status[language_id] = {
                "state": self.process_state(language_id).value,
                "client_state": client.state.value,
                "spawn_count": self.spawn_count(language_id),
                "process": get_process_info(client.pid),
                "open_documents": sorted(
                    doc.uri
                    for doc in self._documents.values()
                    if doc.language_id == language_id
                ),
            }
        return status

    async def shutdown(self) -> None:
        """Stop every server process."""
        for language_id, client in list(self._sessions.items()):
            self.logger.info(f"Stopping server for '{language_id}'")
            try:
                await client.stop()
            except Exception as e:
                self.logger.error(f"Error stopping server for '{language_id}': {e}")
        self._documents.clear()
