#!/usr/bin/env python3

"""
Tests for the Server Binding Registry
"""

import logging
import unittest

import pytest

from server_binding_registry import (
    RegistrationError,
    ServerBinding,
    ServerBindingRegistry,
    create_server_binding,
)


class TestServerBindingRegistry(unittest.TestCase):
    """Test cases for ServerBindingRegistry instance methods."""

    def setUp(self):
        """Set up test environment."""
        self.logger = logging.getLogger(__name__)
        self.logger.setLevel(logging.DEBUG)
        self.registry = ServerBindingRegistry(self.logger)

    def test_register_and_lookup(self):
        """Lookup returns exactly the registered command."""
        binding = self.registry.register("html", ["qute-lsp"])

        self.assertEqual(binding, ServerBinding("html", ("qute-lsp",)))
        self.assertEqual(self.registry.lookup("html"), binding)
        self.assertEqual(self.registry.lookup("html").launch_command, ("qute-lsp",))

    def test_lookup_unregistered_returns_none(self):
        self.assertIsNone(self.registry.lookup("html"))

    def test_reregistration_replaces(self):
        """Last registration wins, no stacked bindings."""
        self.registry.register("html", ["qute-lsp"])
        self.registry.register("html", ["/opt/qute/bin/qute-lsp", "--stdio"])

        self.assertEqual(len(self.registry), 1)
        self.assertEqual(
            self.registry.lookup("html").launch_command,
            ("/opt/qute/bin/qute-lsp", "--stdio"),
        )

    def test_add_server_definition_is_register(self):
        self.registry.add_server_definition("html", ["qute-lsp"])
        self.registry.add_server_definition("html", ["qute-lsp", "--verbose"])

        self.assertEqual(self.registry.get_registered_languages(), ["html"])
        self.assertEqual(
            self.registry.lookup("html").launch_command, ("qute-lsp", "--verbose")
        )

    def test_empty_language_id_rejected_without_change(self):
        self.registry.register("html", ["qute-lsp"])

        for bad_language_id in ["", "   ", None, 42]:
            with self.assertRaises(RegistrationError):
                self.registry.register(bad_language_id, ["other-lsp"])

        self.assertEqual(self.registry.get_registered_languages(), ["html"])
        self.assertEqual(self.registry.lookup("html").launch_command, ("qute-lsp",))

    def test_empty_launch_command_rejected_without_change(self):
        self.registry.register("html", ["qute-lsp"])

        for bad_command in [[], (), None, "qute-lsp", ["qute-lsp", ""], [None]]:
            with self.assertRaises(RegistrationError):
                self.registry.register("html", bad_command)

        self.assertEqual(self.registry.lookup("html").launch_command, ("qute-lsp",))

    def test_unregister(self):
        self.registry.register("html", ["qute-lsp"])

        removed = self.registry.unregister("html")

        self.assertEqual(removed.language_id, "html")
        self.assertNotIn("html", self.registry)
        self.assertIsNone(self.registry.unregister("html"))

    def test_get_status(self):
        self.registry.register("html", ["qute-lsp"])
        self.registry.register("qute", ["qute-lsp", "--templates"])

        status = self.registry.get_status()

        self.assertEqual(status["total_bindings"], 2)
        self.assertEqual(status["languages"], ["html", "qute"])
        self.assertIn(
            {"language_id": "qute", "launch_command": ["qute-lsp", "--templates"]},
            status["bindings"],
        )

    def test_padded_language_id_names_same_binding(self):
        """Registration and lookup agree on surrounding whitespace."""
        self.registry.register(" html", ["qute-lsp"])

        self.assertEqual(self.registry.lookup(" html"), self.registry.lookup("html"))
        self.assertIsNotNone(self.registry.lookup("html "))
        self.assertIn(" html ", self.registry)

        self.assertIsNotNone(self.registry.unregister("html\t"))
        self.assertEqual(len(self.registry), 0)

    def test_clear(self):
        self.registry.register("html", ["qute-lsp"])
        self.registry.clear()
        self.assertEqual(len(self.registry), 0)


class TestServerBinding:
    """Test the binding value type."""

    def test_executable_and_arguments(self):
        binding = create_server_binding("html", ["qute-lsp", "--log", "debug"])

        assert binding.executable == "qute-lsp"
        assert binding.arguments == ["--log", "debug"]

    def test_language_id_is_stripped(self):
        assert create_server_binding(" html ", ["qute-lsp"]).language_id == "html"

    def test_error_carries_language_id(self):
        with pytest.raises(RegistrationError) as exc_info:
            create_server_binding("html", [])
        assert exc_info.value.language_id == "html"

    def test_binding_is_immutable(self):
        binding = create_server_binding("html", ["qute-lsp"])
        with pytest.raises(AttributeError):
            binding.language_id = "xml"
