#!/usr/bin/env python3

"""
Activation Trigger

This module registers the configured language server bindings during host
startup. The host awaits activate() before it lets any document open, so a
binding is always in place before a matching document can spawn a server.
Registration replaces existing bindings, which makes repeated activation
produce the same registry state. A failed registration is recorded and
logged but never aborts startup.
"""

import logging
import time
from dataclasses import dataclass, field

from binding_config import BindingDefinition
from server_binding_registry import (
    RegistrationError,
    ServerBinding,
    ServerBindingRegistry,
)


@dataclass
class ActivationResult:
    """Result of one activation run."""

    registered: list[ServerBinding] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    duration: float = 0.0

    @property
    def success_rate(self) -> float:
        """Fraction of attempted bindings that registered."""
        attempted = len(self.registered) + len(self.failures)
        if attempted == 0:
            return 1.0
        return len(self.registered) / attempted

    @property
    def succeeded(self) -> bool:
        return not self.failures


class ActivationTrigger:
    """Startup hook that populates the server binding registry."""

    def __init__(
        self,
        registry: ServerBindingRegistry,
        bindings: list[BindingDefinition],
        logger: logging.Logger | None = None,
    ):
        """Initialize the trigger.

        Args:
            registry: Registry receiving the bindings
            bindings: Bindings to register, in order
            logger: Logger receiving startup diagnostics
        """
        self.registry = registry
        self.bindings = list(bindings)
        self.logger = logger or logging.getLogger(__name__)
        self.activation_count = 0
        self.last_result: ActivationResult | None = None

    async def activate(self) -> ActivationResult:
        """Register every configured binding.

        Returns:
            ActivationResult listing the registered bindings and the
            language ids that failed, with the reason
        """
        start_time = time.time()
        self.activation_count += 1
        result = ActivationResult()

        self.logger.info(
            f"Activating {len(self.bindings)} language server binding(s) "
            f"(run {self.activation_count})"
        )

        for definition in self.bindings:
            try:
                binding = self.registry.add_server_definition(
                    definition.language_id, definition.launch_command
                )
                result.registered.append(binding)
            except RegistrationError as e:
                self.logger.error(
                    f"Skipping language server binding for {definition.language_id!r}: {e}"
                )
                result.failures[str(definition.language_id)] = str(e)
            except Exception as e:
                self.logger.error(
                    f"Unexpected error registering {definition.language_id!r}: {e}"
                )
                result.failures[str(definition.language_id)] = str(e)

        result.duration = time.time() - start_time
        self.last_result = result

        self.logger.info(
            f"Activation completed in {result.duration:.3f}s: "
            f"{len(result.registered)} registered, {len(result.failures)} failed"
        )
        if result.failures:
            self.logger.warning(
                "Language features are unavailable for: "
                f"{', '.join(sorted(result.failures))}"
            )

        return result
