#!/usr/bin/env python3

"""
Binding Configuration

Loads the language server bindings to register at host startup from, in
order of precedence: an explicit JSON file, the QUTE_LSP_BINDINGS
environment variable, the default bindings file, and finally the built-in
html -> qute-lsp binding. QUTE_LSP_COMMAND overrides the launch command of the
default binding. A .env file is honoured when present.
"""

import json
import logging
import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from constants import (
    ACTIVATION_TIMEOUT_ENV,
    BINDINGS_CONFIG_ENV,
    DEFAULT_ACTIVATION_TIMEOUT,
    DEFAULT_BINDINGS_PATH,
    DEFAULT_LANGUAGE_ID,
    DEFAULT_LAUNCH_COMMAND,
    DEFAULT_REQUEST_TIMEOUT,
    LAUNCH_COMMAND_ENV,
    REQUEST_TIMEOUT_ENV,
)


class BindingConfigError(ValueError):
    """Raised when the bindings configuration cannot be parsed."""


@dataclass
class BindingDefinition:
    """A binding as written in configuration, not yet validated by the registry."""

    language_id: Any
    launch_command: Any


@dataclass
class HostSettings:
    """Everything the host bootstrap reads from configuration."""

    bindings: list[BindingDefinition]
    activation_timeout: float = DEFAULT_ACTIVATION_TIMEOUT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    source: str = "defaults"


class BindingConfigLoader:
    """Loads host settings from file, environment and defaults"""

    def __init__(
        self,
        config_path: str | None = None,
        environ: dict[str, str] | None = None,
        dotenv_path: str | None = None,
    ):
        """
        Initialize the loader

        Args:
            config_path: Path to a bindings JSON file. Falls back to the
                QUTE_LSP_BINDINGS environment variable, then the default path
            environ: Environment mapping (defaults to os.environ)
            dotenv_path: .env file to load before reading the environment
        """
        self.logger = logging.getLogger(__name__)
        self.dotenv_path = dotenv_path
        self._explicit_environ = environ
        self._config_path = config_path

    @property
    def environ(self) -> dict[str, str]:
        if self._explicit_environ is not None:
            return self._explicit_environ
        return dict(os.environ)

    def _resolve_config_path(self) -> Path | None:
        if self._config_path:
            return Path(self._config_path)
        env_config = self.environ.get(BINDINGS_CONFIG_ENV)
        if env_config:
            return Path(env_config)
        if DEFAULT_BINDINGS_PATH.exists():
            return DEFAULT_BINDINGS_PATH
        return None

    def _load_dotenv(self) -> None:
        # Only touch the process environment when reading it
        if self._explicit_environ is not None:
            return
        if self.dotenv_path and Path(self.dotenv_path).exists():
            self.logger.info(f"Loading .env from {self.dotenv_path}")
            load_dotenv(self.dotenv_path)
        elif os.path.exists(".env"):
            self.logger.info("Loading .env from current directory")
            load_dotenv()

    def load(self) -> HostSettings:
        """
        Load host settings.

        Returns:
            HostSettings with the bindings to register and the timeouts

        Raises:
            BindingConfigError: If a configuration file exists but is malformed
        """
        self._load_dotenv()
        environ = self.environ

        config_path = self._resolve_config_path()
        if config_path is not None:
            settings = self._load_file(config_path)
        else:
            self.logger.debug("No bindings file configured, using built-in default")
            settings = HostSettings(bindings=[self._default_binding(environ)])

        settings.activation_timeout = self._read_timeout(
            environ, ACTIVATION_TIMEOUT_ENV, settings.activation_timeout
        )
        settings.request_timeout = self._read_timeout(
            environ, REQUEST_TIMEOUT_ENV, settings.request_timeout
        )
        return settings

    def _default_binding(self, environ: dict[str, str]) -> BindingDefinition:
        command_override = environ.get(LAUNCH_COMMAND_ENV)
        if command_override:
            command = shlex.split(command_override)
            self.logger.info(
                f"Using {LAUNCH_COMMAND_ENV} for '{DEFAULT_LANGUAGE_ID}': {command}"
            )
        else:
            command = list(DEFAULT_LAUNCH_COMMAND)
        return BindingDefinition(DEFAULT_LANGUAGE_ID, command)

    def _load_file(self, config_path: Path) -> HostSettings:
        if not config_path.exists():
            raise BindingConfigError(f"Bindings file not found: {config_path}")

        self.logger.info(f"Loading language server bindings from {config_path}")
        try:
            with open(config_path) as f:
                config_data = json.load(f)
        except json.JSONDecodeError as e:
            raise BindingConfigError(f"Invalid JSON in {config_path}: {e}") from e

        settings = parse_bindings_config(config_data)
        settings.source = str(config_path)
        return settings

    def _read_timeout(
        self, environ: dict[str, str], name: str, default: float
    ) -> float:
        raw = environ.get(name)
        if raw is None:
            return default
        try:
            value = float(raw)
        except ValueError as e:
            raise BindingConfigError(f"{name} must be a number, got {raw!r}") from e
        if value <= 0:
            raise BindingConfigError(f"{name} must be positive, got {value}")
        return value


def parse_bindings_config(config_data: Any) -> HostSettings:
    """Parse a bindings document of the form
    {"servers": {"html": {"command": ["qute-lsp"]}}, "activation_timeout": 10}

    Individual bindings are not validated here; malformed ones are rejected by
    the registry at activation so that the remaining bindings still register.
    """
    if not isinstance(config_data, dict):
        raise BindingConfigError("Bindings configuration must be an object")

    if "servers" not in config_data:
        raise BindingConfigError("Bindings configuration must contain 'servers' key")

    servers = config_data["servers"]
    if not isinstance(servers, dict):
        raise BindingConfigError("'servers' must be a dictionary")

    bindings = []
    for language_id, server_data in servers.items():
        if not isinstance(server_data, dict) or "command" not in server_data:
            raise BindingConfigError(
                f"Server '{language_id}' must be an object with a 'command' field"
            )
        bindings.append(BindingDefinition(language_id, server_data["command"]))

    settings = HostSettings(bindings=bindings)
    for key in ("activation_timeout", "request_timeout"):
        if key in config_data:
            value = config_data[key]
            if not isinstance(value, int | float) or value <= 0:
                raise BindingConfigError(f"'{key}' must be a positive number")
            setattr(settings, key, float(value))
    return settings
