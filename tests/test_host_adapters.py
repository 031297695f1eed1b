"""
Tests for the desktop IDE and web editor host adapters.
"""

from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from binding_config import BindingDefinition, HostSettings
from constants import GO_TO_DEFINITION_COMMAND
from host_adapters import (
    DesktopIDEHostAdapter,
    ExtensionContext,
    HostNotStartedError,
    WebEditorHostAdapter,
)


@pytest.fixture
def settings():
    return HostSettings(
        bindings=[BindingDefinition("html", ["qute-lsp"])],
        activation_timeout=1.0,
        request_timeout=1.0,
    )


@pytest.fixture
def process_adapter():
    adapter = Mock()
    adapter.open_document = AsyncMock(return_value=True)
    adapter.close_document = AsyncMock()
    adapter.definition = AsyncMock(return_value=None)
    adapter.request_definition = AsyncMock(side_effect=TimeoutError)
    adapter.wait_until_ready = AsyncMock()
    adapter.shutdown = AsyncMock()
    return adapter


class TestDesktopIDEHostAdapter:
    """Test the preloading activity and document routing."""

    @pytest.mark.asyncio
    async def test_preload_registers_bindings_once(self, settings, registry, process_adapter):
        host = DesktopIDEHostAdapter(
            settings, registry=registry, process_adapter=process_adapter
        )
        assert not host.started

        await host.preload()
        first_result = host.activation_result
        await host.preload()

        assert host.started
        assert host.trigger.activation_count == 1
        assert host.activation_result is first_result
        assert "html" in registry

    @pytest.mark.asyncio
    async def test_open_before_startup_raises(
        self, settings, process_adapter, diagnostics_document
    ):
        host = DesktopIDEHostAdapter(settings, process_adapter=process_adapter)

        with pytest.raises(HostNotStartedError):
            await host.open_document(diagnostics_document, "html")
        process_adapter.open_document.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_open_document_uses_file_type(
        self, settings, process_adapter, second_document
    ):
        host = DesktopIDEHostAdapter(settings, process_adapter=process_adapter)
        await host.preload()

        uri = await host.open_document(second_document)

        assert uri == second_document.resolve().as_uri()
        process_adapter.open_document.assert_awaited_once_with(
            uri, "html", second_document.read_text()
        )

    @pytest.mark.asyncio
    async def test_unmapped_document_not_sent(
        self, settings, process_adapter, diagnostics_document
    ):
        host = DesktopIDEHostAdapter(settings, process_adapter=process_adapter)
        await host.preload()

        await host.open_document(diagnostics_document)

        process_adapter.open_document.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_request_definition_passes_timeout_and_raises(
        self, settings, process_adapter
    ):
        host = DesktopIDEHostAdapter(settings, process_adapter=process_adapter)

        with pytest.raises(TimeoutError):
            await host.request_definition("file:///a.html", 1, 2, timeout=4)
        process_adapter.request_definition.assert_awaited_once_with(
            "file:///a.html", 1, 2, timeout=4
        )

    def test_language_for(self, settings, process_adapter):
        host = DesktopIDEHostAdapter(
            settings, file_types={".qute": "qute"}, process_adapter=process_adapter
        )

        assert host.language_for(Path("index.QUTE")) == "qute"
        assert host.language_for(Path("index.html")) is None

    @pytest.mark.asyncio
    async def test_failed_registration_does_not_block_startup(self, process_adapter):
        settings = HostSettings(
            bindings=[
                BindingDefinition("html", []),
                BindingDefinition("qute", ["qute-lsp"]),
            ]
        )
        host = DesktopIDEHostAdapter(settings, process_adapter=process_adapter)

        await host.preload()

        assert host.started
        assert "html" in host.activation_result.failures
        assert host.registry.get_registered_languages() == ["qute"]


class TestWebEditorHostAdapter:
    """Test the extension entry point and command routing."""

    @pytest.mark.asyncio
    async def test_activate_and_deactivate(self, settings, process_adapter):
        host = WebEditorHostAdapter(settings, process_adapter=process_adapter)
        context = ExtensionContext()

        result = await host.activate(context)

        assert result.succeeded
        assert host.started
        assert len(context.subscriptions) == 1

        await host.deactivate()

        assert context.subscriptions == []
        assert host.context is None
        process_adapter.shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_deactivate_continues_after_failing_disposable(
        self, settings, process_adapter
    ):
        host = WebEditorHostAdapter(settings, process_adapter=process_adapter)
        context = ExtensionContext()
        await host.activate(context)
        context.subscriptions.append(AsyncMock(side_effect=RuntimeError("boom")))

        await host.deactivate()

        process_adapter.shutdown.assert_awaited_once()

    def test_file_associations(self, settings, process_adapter):
        host = WebEditorHostAdapter(settings, process_adapter=process_adapter)

        assert host.language_for(Path("templates/page.html")) == "html"
        assert host.language_for(Path("diagnostics.txt")) is None

        host = WebEditorHostAdapter(
            settings,
            file_associations={"diagnostics.*": "html"},
            process_adapter=process_adapter,
        )
        assert host.language_for(Path("diagnostics.txt")) == "html"

    @pytest.mark.asyncio
    async def test_execute_go_to_definition(self, settings, process_adapter):
        host = WebEditorHostAdapter(settings, process_adapter=process_adapter)
        process_adapter.definition.return_value = {"uri": "file:///a.html"}

        result = await host.execute_command(
            GO_TO_DEFINITION_COMMAND, "file:///a.html", {"line": 2, "character": 5}
        )
        assert result == {"uri": "file:///a.html"}
        process_adapter.definition.assert_awaited_with("file:///a.html", 2, 5)

        await host.execute_command(GO_TO_DEFINITION_COMMAND, "file:///a.html", (0, 0))
        process_adapter.definition.assert_awaited_with("file:///a.html", 0, 0)

    @pytest.mark.asyncio
    async def test_unknown_command_not_routed(self, settings, process_adapter):
        host = WebEditorHostAdapter(settings, process_adapter=process_adapter)

        assert await host.execute_command("editor.action.formatDocument") is None
        process_adapter.definition.assert_not_awaited()


class TestHostWithServer:
    """Both hosts drive the same server contract."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("host_class", [DesktopIDEHostAdapter, WebEditorHostAdapter])
    async def test_definition_through_host(
        self,
        host_class,
        make_settings,
        fake_server_command,
        second_document,
        expected_definition,
    ):
        host = host_class(make_settings(fake_server_command()))
        await host.startup()

        try:
            uri = await host.open_document(second_document)
            await host.wait_until_ready("html")

            assert await host.go_to_definition(uri, 0, 0) == expected_definition(
                second_document
            )
        finally:
            await host.shutdown()
