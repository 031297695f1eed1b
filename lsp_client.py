"""
LSP Client Infrastructure

This module provides the client side of the Language Server Protocol for a
server spawned from a registered binding: process startup, framed message
exchange over stdio, capability negotiation, document synchronization and
definition requests.
"""

import asyncio
import logging
import os
import subprocess
import threading
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Any

from lsp_constants import (
    DefinitionResult,
    JsonRPCMessage,
    LSPCapabilities,
    LSPErrorCode,
    LSPMessageType,
    LSPMethod,
    make_position,
)
from lsp_jsonrpc import (
    JSONRPCError,
    JSONRPCNotification,
    JSONRPCProtocol,
    JSONRPCRequest,
    JSONRPCResponse,
    LSPStreamChannel,
)
from lsp_server_manager import LSPServerManager

DEFAULT_REQUEST_TIMEOUT = 30.0


class LSPClientState(Enum):
    """States of the LSP client connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"
    SHUTTING_DOWN = "shutting_down"
    ERROR = "error"


class LSPClient:
    """LSP client speaking to one server process over stdio."""

    def __init__(
        self,
        server_manager: LSPServerManager,
        logger: logging.Logger,
        workspace_root: str | None = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        self.server_manager = server_manager
        self.workspace_root = workspace_root
        self.logger = logger
        self.request_timeout = request_timeout

        # Connection state
        self.state = LSPClientState.DISCONNECTED
        self.server_process: subprocess.Popen | None = None
        self.server_capabilities: dict[str, Any] = {}
        self.server_info: dict[str, Any] = {}

        # Communication
        self.protocol = JSONRPCProtocol(logger=self.logger)
        self.communication_mode = server_manager.get_communication_mode()
        self._channel: LSPStreamChannel | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

        # Message handling
        self._message_handlers: dict[str, Callable] = {}
        self._notification_handlers: dict[str, Callable] = {}
        self._response_futures: dict[int, asyncio.Future] = {}

        # Threading
        self._reader_thread: threading.Thread | None = None
        self._stderr_thread: threading.Thread | None = None
        self._stop_event = threading.Event()

        # Documents opened on this server, uri -> version
        self._open_documents: dict[str, int] = {}

        self._setup_builtin_handlers()

    def _setup_builtin_handlers(self) -> None:
        """Setup built-in message handlers."""
        # Server-to-client notifications
        self._notification_handlers[LSPMethod.PUBLISH_DIAGNOSTICS] = (
            self._handle_publish_diagnostics
        )
        self._notification_handlers[LSPMethod.SHOW_MESSAGE] = self._handle_show_message
        self._notification_handlers[LSPMethod.LOG_MESSAGE] = self._handle_log_message

        # Server-to-client requests
        self._message_handlers[LSPMethod.WORKSPACE_CONFIGURATION] = (
            self._handle_workspace_configuration
        )
        self._message_handlers[LSPMethod.SHOW_MESSAGE_REQUEST] = (
            self._handle_null_result_request
        )
        self._message_handlers[LSPMethod.REGISTER_CAPABILITY] = (
            self._handle_null_result_request
        )

    def _set_state(self, state: LSPClientState, context: str | None = None) -> None:
        """Record a state transition and log it."""
        if state == LSPClientState.ERROR:
            self.logger.error(f"LSP client error: {context}")
        elif state == LSPClientState.INITIALIZING:
            self.logger.debug("LSP client initializing connection")
        else:
            self.logger.info(f"LSP client {state.value}")
        self.state = state

    async def start(self) -> bool:
        """Start the LSP server and initialize the connection."""
        try:
            self._set_state(LSPClientState.CONNECTING)
            self._loop = asyncio.get_running_loop()

            if not await self._start_server():
                self._set_state(LSPClientState.ERROR, "Failed to start LSP server process")
                return False

            self._start_reader_threads()

            if not await self._initialize_connection():
                self._set_state(LSPClientState.ERROR, "Failed to initialize LSP connection")
                await self.stop()
                return False

            self._set_state(LSPClientState.INITIALIZED)
            return True

        except Exception as e:
            self._set_state(LSPClientState.ERROR, f"Exception during startup: {e}")
            await self.stop()
            return False

    async def stop(self) -> None:
        """Stop the LSP server and clean up resources."""
        if self.state == LSPClientState.DISCONNECTED:
            return

        previous_state = self.state
        try:
            self._set_state(LSPClientState.SHUTTING_DOWN)

            if previous_state == LSPClientState.INITIALIZED and self.is_running():
                await self._send_shutdown()

            if self.server_process:
                try:
                    if self.server_process.poll() is None:
                        await self._send_message(
                            self.protocol.create_notification(LSPMethod.EXIT)
                        )

                    try:
                        self.server_process.wait(timeout=5.0)
                    except subprocess.TimeoutExpired:
                        self.logger.warning(
                            "Server didn't shut down gracefully, terminating"
                        )
                        self.server_process.terminate()
                        try:
                            self.server_process.wait(timeout=2.0)
                        except subprocess.TimeoutExpired:
                            self.logger.error("Server didn't terminate, killing")
                            self.server_process.kill()

                except Exception as e:
                    self.logger.error(f"Error during server shutdown: {e}")

            self._stop_event.set()
            if self._channel:
                self._channel.close()
            if self._reader_thread and self._reader_thread.is_alive():
                self._reader_thread.join(timeout=5.0)

            self._fail_pending_requests("Client stopped")
            self._open_documents.clear()
            self._set_state(LSPClientState.DISCONNECTED)

        except Exception as e:
            self._set_state(LSPClientState.ERROR, f"Error during shutdown: {e}")

    async def _start_server(self) -> bool:
        """Start the LSP server process."""
        try:
            executable = self.server_manager.resolve_executable()
            if executable is None:
                self.logger.error(
                    "LSP server executable not found on PATH: "
                    f"{self.server_manager.get_server_command()[0]}"
                )
                return False

            full_command = [executable] + self.server_manager.get_server_args()
            self.logger.info(f"Starting LSP server: {' '.join(full_command)}")
            self.logger.debug(f"Communication mode: {self.communication_mode.value}")

            self.server_process = subprocess.Popen(
                full_command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=os.environ.copy(),
            )

            # Give the process a moment to start up
            await asyncio.sleep(0.1)

            if self.server_process.poll() is not None:
                if self.server_process.stderr:
                    stderr = self.server_process.stderr.read().decode(
                        "utf-8", errors="replace"
                    )
                    self.logger.error(f"Server failed to start: {stderr}")
                else:
                    self.logger.error("Server failed to start: no stderr available")
                return False

            self._channel = LSPStreamChannel(
                self.server_process.stdout, self.server_process.stdin
            )

            self.logger.info("LSP server process started successfully")
            self.logger.debug(f"Server process PID: {self.server_process.pid}")
            return True

        except FileNotFoundError as e:
            self.logger.error(f"LSP server executable not found: {e}")
            return False
        except Exception as e:
            self.logger.error(f"Failed to start LSP server: {e}")
            return False

    def _start_reader_threads(self) -> None:
        """Start the stdout message reader and the stderr logger threads."""
        self._stop_event.clear()
        self._reader_thread = threading.Thread(
            target=self._message_reader_loop, daemon=True
        )
        self._reader_thread.start()

        if self.server_process and self.server_process.stderr:
            self._stderr_thread = threading.Thread(
                target=self._stderr_reader_loop, daemon=True
            )
            self._stderr_thread.start()

    def _message_reader_loop(self) -> None:
        """Main message reading loop, runs until the server closes stdout."""
        try:
            if self._channel:
                self._channel.listen(self._dispatch_to_loop)
        except Exception as e:
            if not self._stop_event.is_set():
                self.logger.error(f"Error in message reader loop: {e}")

        if not self._stop_event.is_set():
            self.logger.warning("Server process terminated")
            self._call_in_loop(self._handle_server_exit())

    def _stderr_reader_loop(self) -> None:
        """Forward server stderr output to the debug log."""
        stderr = self.server_process.stderr if self.server_process else None
        if stderr is None:
            return
        try:
            for line in iter(stderr.readline, b""):
                self.logger.debug(
                    f"Server stderr: {line.decode('utf-8', errors='replace').rstrip()}"
                )
        except (OSError, ValueError):
            # Pipe closed during shutdown
            return

    def _dispatch_to_loop(self, message: JsonRPCMessage) -> None:
        self._call_in_loop(self._process_message(message))

    def _call_in_loop(self, coroutine) -> None:
        """Schedule coroutine on the client's event loop from the reader thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            coroutine.close()
            return
        try:
            asyncio.run_coroutine_threadsafe(coroutine, loop)
        except RuntimeError:
            coroutine.close()
            self.logger.warning("Event loop closed, skipping message processing")

    async def _process_message(self, message: JsonRPCMessage) -> None:
        """Process a received message."""
        try:
            self.protocol.validate_message(message)

            if self.protocol.is_response(message):
                await self._handle_response(message)
            elif self.protocol.is_request(message):
                await self._handle_request(message)
            else:
                await self._handle_notification(message)

        except JSONRPCError as e:
            self.logger.error(f"JSON-RPC error: {e}")
        except Exception as e:
            self.logger.error(f"Error processing message: {e}")

    async def _handle_response(self, message: JsonRPCMessage) -> None:
        """Handle a response message."""
        message_id = message.get("id")
        future = self._response_futures.pop(message_id, None)
        self.protocol.complete_request(message_id)
        if future is None:
            self.logger.warning(f"No handler for response ID: {message_id}")
        elif not future.done():
            future.set_result(message)

    async def _handle_request(self, message: JsonRPCMessage) -> None:
        """Handle a request sent by the server."""
        method = message.get("method")
        message_id = message.get("id")
        handler = self._message_handlers.get(method)

        if handler is None:
            self.logger.warning(f"No handler for request method: {method}")
            await self._send_message(
                self.protocol.create_error_response(
                    message_id,
                    LSPErrorCode.METHOD_NOT_FOUND,
                    f"Method not found: {method}",
                )
            )
            return

        try:
            response = await handler(message)
        except Exception as e:
            self.logger.error(f"Error in request handler for {method}: {e}")
            response = self.protocol.create_error_response(
                message_id, LSPErrorCode.INTERNAL_ERROR, f"Handler error: {e}"
            )
        await self._send_message(response)

    async def _handle_notification(self, message: JsonRPCMessage) -> None:
        """Handle a notification message."""
        method = message.get("method")
        handler = self._notification_handlers.get(method)
        if handler is None:
            self.logger.debug(f"No handler for notification method: {method}")
            return
        try:
            await handler(message)
        except Exception as e:
            self.logger.error(f"Error in notification handler for {method}: {e}")

    async def _handle_server_exit(self) -> None:
        """React to the server closing its output unexpectedly."""
        if self.state in (LSPClientState.SHUTTING_DOWN, LSPClientState.DISCONNECTED):
            return
        self._fail_pending_requests("Server process exited")
        self._set_state(LSPClientState.ERROR, "Server process exited unexpectedly")

    def _fail_pending_requests(self, reason: str) -> None:
        for future in self._response_futures.values():
            if not future.done():
                future.set_exception(ConnectionError(reason))
        self._response_futures.clear()
        self.protocol.clear_pending_requests()

    async def _send_message(
        self, message: JSONRPCRequest | JSONRPCResponse | JSONRPCNotification
    ) -> bool:
        """Send a message to the server."""
        if self._channel is None or not self.is_running():
            self.logger.error("Cannot send message: no server connection")
            return False
        self._channel.send(message)
        self.logger.debug(f"Sent message: {message.to_dict()}")
        return True

    async def _send_request(
        self, request: JSONRPCRequest, timeout: float | None = None
    ) -> JsonRPCMessage:
        """Send a request and wait for its response.

        Raises:
            TimeoutError: If no response arrived within timeout
            ConnectionError: If the request could not be sent or the server exited
        """
        if self._loop is None:
            raise ConnectionError(f"Cannot send {request.method}: client not started")

        response_future: asyncio.Future = self._loop.create_future()
        self._response_futures[request.id] = response_future

        try:
            if not await self._send_message(request):
                raise ConnectionError(f"Cannot send {request.method}: no server connection")
            return await asyncio.wait_for(
                response_future, timeout=timeout or self.request_timeout
            )

        except TimeoutError:
            self.logger.error(f"Request timeout: {request.method}")
            raise
        finally:
            self._response_futures.pop(request.id, None)
            self.protocol.complete_request(request.id)

    async def _initialize_connection(self) -> bool:
        """Initialize the LSP connection."""
        self._set_state(LSPClientState.INITIALIZING)

        init_params: dict[str, Any] = {
            "processId": os.getpid(),
            "clientInfo": {"name": "qute-lsp-host", "version": "0.1.0"},
            "rootUri": Path(self.workspace_root).resolve().as_uri()
            if self.workspace_root
            else None,
            "capabilities": LSPCapabilities.client_capabilities(),
        }
        init_options = self.server_manager.get_initialization_options()
        if init_options:
            init_params["initializationOptions"] = init_options
            self.logger.debug(f"Initialization options: {init_options}")

        try:
            init_response = await self._send_request(
                self.protocol.create_request(LSPMethod.INITIALIZE, init_params)
            )
        except (TimeoutError, ConnectionError) as e:
            self.logger.error(f"Initialize request failed: {e}")
            return False

        if "error" in init_response:
            self.logger.error(f"Initialize request failed: {init_response}")
            return False

        result = init_response.get("result") or {}
        self.server_capabilities = result.get("capabilities", {})
        self.server_info = result.get("serverInfo") or {}

        if not self.server_manager.validate_server_response(result):
            self.logger.error("Server initialization response validation failed")
            return False

        await self._send_message(
            self.protocol.create_notification(LSPMethod.INITIALIZED, {})
        )

        self.logger.info("LSP connection initialized successfully")
        return True

    async def _send_shutdown(self) -> None:
        """Send shutdown request."""
        try:
            await self._send_request(
                self.protocol.create_request(LSPMethod.SHUTDOWN), timeout=5.0
            )
        except (TimeoutError, ConnectionError) as e:
            self.logger.warning(f"Shutdown request failed: {e}")

    # Built-in message handlers
    async def _handle_publish_diagnostics(self, message: JsonRPCMessage) -> None:
        params = message.get("params", {})
        diagnostics = params.get("diagnostics", [])
        self.logger.debug(
            f"Received diagnostics for {params.get('uri')}: {len(diagnostics)} items"
        )

    async def _handle_show_message(self, message: JsonRPCMessage) -> None:
        params = message.get("params", {})
        level = {
            LSPMessageType.ERROR.value: logging.ERROR,
            LSPMessageType.WARNING.value: logging.WARNING,
        }.get(params.get("type"), logging.INFO)
        self.logger.log(level, f"Server message: {params.get('message', '')}")

    async def _handle_log_message(self, message: JsonRPCMessage) -> None:
        params = message.get("params", {})
        self.logger.debug(f"Server log: {params.get('message', '')}")

    async def _handle_workspace_configuration(
        self, message: JsonRPCMessage
    ) -> JSONRPCResponse:
        """Answer workspace/configuration with no settings for every item."""
        items = message.get("params", {}).get("items", [])
        return self.protocol.create_response(message["id"], [None for _ in items])

    async def _handle_null_result_request(
        self, message: JsonRPCMessage
    ) -> JSONRPCResponse:
        return self.protocol.create_response(message["id"], None)

    # Public API methods
    def is_initialized(self) -> bool:
        """Check if the client is initialized."""
        return self.state == LSPClientState.INITIALIZED

    def is_running(self) -> bool:
        """Check if the server process is alive."""
        return self.server_process is not None and self.server_process.poll() is None

    @property
    def pid(self) -> int | None:
        return self.server_process.pid if self.server_process else None

    def is_document_open(self, uri: str) -> bool:
        return uri in self._open_documents

    async def did_open(self, uri: str, language_id: str, text: str) -> None:
        """Send textDocument/didOpen, or a full didChange if already open."""
        if uri in self._open_documents:
            await self.did_change(uri, text)
            return

        self._open_documents[uri] = 1
        await self._send_message(
            self.protocol.create_notification(
                LSPMethod.DID_OPEN,
                {
                    "textDocument": {
                        "uri": uri,
                        "languageId": language_id,
                        "version": 1,
                        "text": text,
                    }
                },
            )
        )

    async def did_change(self, uri: str, text: str) -> None:
        """Send the whole document text as a textDocument/didChange."""
        if uri not in self._open_documents:
            self.logger.warning(f"didChange for document that is not open: {uri}")
            return

        self._open_documents[uri] += 1
        await self._send_message(
            self.protocol.create_notification(
                LSPMethod.DID_CHANGE,
                {
                    "textDocument": {"uri": uri, "version": self._open_documents[uri]},
                    "contentChanges": [{"text": text}],
                },
            )
        )

    async def did_close(self, uri: str) -> None:
        """Send textDocument/didClose."""
        if self._open_documents.pop(uri, None) is None:
            return
        await self._send_message(
            self.protocol.create_notification(
                LSPMethod.DID_CLOSE, {"textDocument": {"uri": uri}}
            )
        )

    async def get_definition(
        self, uri: str, line: int, character: int, timeout: float | None = None
    ) -> DefinitionResult:
        """Get the definition of the symbol at a zero-based position.

        Raises:
            TimeoutError: If the server did not answer within timeout
                (the client request_timeout by default)
            ConnectionError: If the server is not initialized or exited
        """
        if not self.is_initialized():
            raise ConnectionError(
                f"Server not initialized (state: {self.state.value})"
            )

        response = await self._send_request(
            self.protocol.create_request(
                LSPMethod.DEFINITION,
                {
                    "textDocument": {"uri": uri},
                    "position": make_position(line, character),
                },
            ),
            timeout=timeout,
        )

        if "error" in response:
            self.logger.error(f"Definition request failed: {response['error']}")
            return None
        return response.get("result")
