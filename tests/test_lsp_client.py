"""
Unit and integration tests for the LSP client.
"""

import asyncio
import logging
from pathlib import Path
from unittest.mock import AsyncMock, Mock, patch

import pytest

from lsp_client import LSPClient, LSPClientState
from lsp_constants import LSPMethod
from lsp_server_manager import LSPCommunicationMode, RawCommandServerManager
from server_binding_registry import create_server_binding


def make_client(command, logger, **kwargs) -> LSPClient:
    binding = create_server_binding("html", command)
    return LSPClient(RawCommandServerManager(binding), logger, **kwargs)


class TestLSPClientState:
    """Test LSP client state management."""

    def test_client_state_enum(self):
        assert LSPClientState.DISCONNECTED.value == "disconnected"
        assert LSPClientState.CONNECTING.value == "connecting"
        assert LSPClientState.INITIALIZING.value == "initializing"
        assert LSPClientState.INITIALIZED.value == "initialized"
        assert LSPClientState.SHUTTING_DOWN.value == "shutting_down"
        assert LSPClientState.ERROR.value == "error"


class TestLSPClient:
    """Test client behaviour without a real server."""

    def setup_method(self):
        self.logger = Mock()
        self.client = make_client(["qute-lsp"], self.logger)

    def test_client_initialization(self):
        assert self.client.state == LSPClientState.DISCONNECTED
        assert self.client.server_process is None
        assert self.client.pid is None
        assert self.client.server_capabilities == {}
        assert self.client.communication_mode == LSPCommunicationMode.STDIO
        assert not self.client.is_running()

    def test_builtin_handlers_setup(self):
        assert LSPMethod.PUBLISH_DIAGNOSTICS in self.client._notification_handlers
        assert LSPMethod.SHOW_MESSAGE in self.client._notification_handlers
        assert LSPMethod.LOG_MESSAGE in self.client._notification_handlers
        assert LSPMethod.WORKSPACE_CONFIGURATION in self.client._message_handlers
        assert LSPMethod.SHOW_MESSAGE_REQUEST in self.client._message_handlers

    @pytest.mark.asyncio
    @patch("subprocess.Popen")
    async def test_start_server_success(self, mock_popen):
        mock_process = Mock()
        mock_process.poll.return_value = None
        mock_popen.return_value = mock_process

        with patch.object(
            self.client.server_manager,
            "resolve_executable",
            return_value="/usr/bin/qute-lsp",
        ):
            result = await self.client._start_server()

        assert result is True
        assert self.client.server_process == mock_process
        assert mock_popen.call_args.args[0] == ["/usr/bin/qute-lsp"]

    @pytest.mark.asyncio
    @patch("subprocess.Popen")
    async def test_start_server_early_exit(self, mock_popen):
        mock_process = Mock()
        mock_process.poll.return_value = 1
        mock_process.stderr.read.return_value = b"bad arguments"
        mock_popen.return_value = mock_process

        with patch.object(
            self.client.server_manager,
            "resolve_executable",
            return_value="/usr/bin/qute-lsp",
        ):
            result = await self.client._start_server()

        assert result is False
        self.logger.error.assert_called()

    @pytest.mark.asyncio
    @patch("subprocess.Popen")
    async def test_start_server_missing_executable(self, mock_popen):
        with patch.object(
            self.client.server_manager, "resolve_executable", return_value=None
        ):
            result = await self.client._start_server()

        assert result is False
        mock_popen.assert_not_called()
        assert "not found on PATH" in self.logger.error.call_args.args[0]

    @pytest.mark.asyncio
    async def test_start_failure_sets_error_state(self):
        with patch.object(self.client, "_start_server", AsyncMock(return_value=False)):
            assert await self.client.start() is False
        assert self.client.state == LSPClientState.ERROR

    @pytest.mark.asyncio
    async def test_definition_before_initialized_raises(self):
        with pytest.raises(ConnectionError):
            await self.client.get_definition("file:///x.html", 0, 0)

    @pytest.mark.asyncio
    async def test_workspace_configuration_answers_each_item(self):
        response = await self.client._handle_workspace_configuration(
            {
                "jsonrpc": "2.0",
                "id": 4,
                "method": "workspace/configuration",
                "params": {"items": [{"section": "qute"}, {"section": "html"}]},
            }
        )
        assert response.to_dict() == {"jsonrpc": "2.0", "id": 4, "result": [None, None]}

    @pytest.mark.asyncio
    async def test_unknown_server_request_gets_method_not_found(self):
        with patch.object(self.client, "_send_message", AsyncMock()) as send:
            await self.client._handle_request(
                {"jsonrpc": "2.0", "id": 9, "method": "qute/unknown"}
            )

        sent = send.call_args.args[0].to_dict()
        assert sent["id"] == 9
        assert sent["error"]["code"] == -32601

    @pytest.mark.asyncio
    async def test_response_resolves_pending_future(self):
        future = asyncio.get_running_loop().create_future()
        self.client._response_futures[1] = future

        await self.client._process_message({"jsonrpc": "2.0", "id": 1, "result": None})

        assert future.result() == {"jsonrpc": "2.0", "id": 1, "result": None}
        assert 1 not in self.client._response_futures

    @pytest.mark.asyncio
    async def test_show_message_uses_message_type_level(self):
        await self.client._handle_show_message(
            {
                "jsonrpc": "2.0",
                "method": "window/showMessage",
                "params": {"type": 1, "message": "boom"},
            }
        )
        self.logger.log.assert_called_once_with(logging.ERROR, "Server message: boom")

    @pytest.mark.asyncio
    async def test_invalid_message_is_logged_not_raised(self):
        await self.client._process_message({"jsonrpc": "1.0", "id": 1})
        self.logger.error.assert_called()


class TestLSPClientWithServer:
    """Integration tests against the stand-in qute-lsp server."""

    @pytest.mark.asyncio
    async def test_full_session(self, fake_server_command, logger, diagnostics_document):
        client = make_client(fake_server_command(), logger)
        uri = Path(diagnostics_document).resolve().as_uri()

        try:
            assert await client.start() is True
            assert client.is_initialized()
            assert client.is_running()
            assert client.server_capabilities["definitionProvider"] is True

            await client.did_open(uri, "html", diagnostics_document.read_text())
            assert client.is_document_open(uri)

            definition = await client.get_definition(uri, 0, 0)
            assert definition["uri"] == uri
            assert definition["range"]["start"] == {"line": 1, "character": 1}

            await client.did_close(uri)
            assert await client.get_definition(uri, 0, 0) is None
        finally:
            await client.stop()

        assert client.state == LSPClientState.DISCONNECTED
        assert not client.is_running()

    @pytest.mark.asyncio
    async def test_missing_definition_provider_fails_initialization(
        self, fake_server_command, logger
    ):
        client = make_client(fake_server_command("--no-definition-provider"), logger)

        assert await client.start() is False
        assert client.state == LSPClientState.DISCONNECTED
        assert not client.is_running()

    @pytest.mark.asyncio
    async def test_server_exit_fails_pending_state(self, fake_server_command, logger):
        client = make_client(fake_server_command(), logger)
        try:
            assert await client.start() is True

            client.server_process.kill()
            client.server_process.wait(timeout=5)
            for _ in range(50):
                if client.state == LSPClientState.ERROR:
                    break
                await asyncio.sleep(0.05)

            assert client.state == LSPClientState.ERROR
            with pytest.raises(ConnectionError):
                await client.get_definition("file:///x.html", 0, 0)
        finally:
            await client.stop()

    @pytest.mark.asyncio
    async def test_definition_timeout_raises_and_per_call_timeout_wins(
        self, fake_server_command, logger, diagnostics_document
    ):
        client = make_client(fake_server_command("--definition-delay", "1"), logger)
        uri = Path(diagnostics_document).resolve().as_uri()

        try:
            assert await client.start() is True
            client.request_timeout = 0.3
            await client.did_open(uri, "html", diagnostics_document.read_text())

            with pytest.raises(TimeoutError):
                await client.get_definition(uri, 0, 0)

            definition = await client.get_definition(uri, 0, 0, timeout=5)
            assert definition["uri"] == uri
        finally:
            await client.stop()
