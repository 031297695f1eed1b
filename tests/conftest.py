"""
Pytest configuration and shared fixtures for the host integration tests.
"""

import logging
import sys
from pathlib import Path

import pytest

from binding_config import BindingDefinition, HostSettings
from server_binding_registry import ServerBindingRegistry

FAKE_SERVER_SCRIPT = Path(__file__).parent / "fake_qute_lsp.py"

DIAGNOSTICS_TEXT = '{#include base.html}\n<p>{item.name}</p>\n'


@pytest.fixture
def logger():
    """Logger shared by the objects under test."""
    test_logger = logging.getLogger("qute-lsp-tests")
    test_logger.setLevel(logging.DEBUG)
    return test_logger


@pytest.fixture
def registry(logger):
    """Create a fresh registry for each test."""
    return ServerBindingRegistry(logger)


@pytest.fixture
def fake_server_command():
    """Build the launch command of the stand-in qute-lsp server."""

    def build(*options: str) -> list[str]:
        return [sys.executable, str(FAKE_SERVER_SCRIPT), *options]

    return build


@pytest.fixture
def make_settings():
    """Build HostSettings binding html to the given command."""

    def build(
        command: list[str],
        activation_timeout: float = 10.0,
        request_timeout: float = 5.0,
    ) -> HostSettings:
        return HostSettings(
            bindings=[BindingDefinition("html", command)],
            activation_timeout=activation_timeout,
            request_timeout=request_timeout,
        )

    return build


@pytest.fixture
def diagnostics_document(tmp_path):
    """The fixed verification document."""
    document = tmp_path / "diagnostics.txt"
    document.write_text(DIAGNOSTICS_TEXT, encoding="utf-8")
    return document


@pytest.fixture
def second_document(tmp_path):
    document = tmp_path / "page.html"
    document.write_text("<html>{#insert body}{/insert}</html>\n", encoding="utf-8")
    return document


@pytest.fixture
def expected_definition():
    """Definition the stand-in server answers for any open document."""

    def build(document: Path) -> dict:
        position = {"line": 1, "character": 1}
        return {
            "uri": document.resolve().as_uri(),
            "range": {"start": position, "end": position},
        }

    return build
