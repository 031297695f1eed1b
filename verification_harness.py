#!/usr/bin/env python3

"""
Activation Verification Harness

Drives one scripted editor interaction against a host adapter: open a known
document, wait for its language server session to become ready, issue a
single go-to-definition request and compare the answer with the expected
value. Waiting for activation and waiting for the answer are both bounded,
and each has its own failure kind so that "never activated" is never
confused with "activated but answered wrong".
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from constants import (
    DEFAULT_ACTIVATION_TIMEOUT,
    DEFAULT_LANGUAGE_ID,
    DEFAULT_REQUEST_TIMEOUT,
)
from host_adapters import HostAdapter


class HarnessState(Enum):
    """States of a verification run."""

    IDLE = "idle"
    ACTIVATING = "activating"
    PROBING = "probing"
    COMPLETED = "completed"
    FAILED = "failed"


class VerificationFailureKind(Enum):
    """Why a verification run failed."""

    ACTIVATION_TIMEOUT = "activation_timeout"
    REQUEST_TIMEOUT = "request_timeout"
    ASSERTION_MISMATCH = "assertion_mismatch"
    DOCUMENT_UNREADABLE = "document_unreadable"


@dataclass
class ProbeResult:
    """Outcome of a verification run."""

    requested_position: tuple[int, int]
    expected_result: Any
    observed_result: Any = None
    state: HarnessState = HarnessState.IDLE
    failure_kind: VerificationFailureKind | None = None
    document_uri: str | None = None
    error_message: str | None = None
    activation_duration: float | None = None
    probe_duration: float | None = None

    @property
    def passed(self) -> bool:
        return self.state == HarnessState.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "failure_kind": self.failure_kind.value if self.failure_kind else None,
            "document_uri": self.document_uri,
            "requested_position": {
                "line": self.requested_position[0],
                "character": self.requested_position[1],
            },
            "expected_result": self.expected_result,
            "observed_result": self.observed_result,
            "error_message": self.error_message,
            "activation_duration": self.activation_duration,
            "probe_duration": self.probe_duration,
        }


class VerificationHarness:
    """Single-use end-to-end probe of a registered binding."""

    def __init__(
        self,
        host: HostAdapter,
        activation_timeout: float = DEFAULT_ACTIVATION_TIMEOUT,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        logger: logging.Logger | None = None,
    ):
        self.host = host
        self.activation_timeout = activation_timeout
        self.request_timeout = request_timeout
        self.logger = logger or logging.getLogger(__name__)
        self.state = HarnessState.IDLE
        self.transitions: list[HarnessState] = [HarnessState.IDLE]

    def _transition(self, state: HarnessState) -> None:
        self.logger.debug(f"Verification {self.state.value} -> {state.value}")
        self.state = state
        self.transitions.append(state)

    def _fail(
        self,
        result: ProbeResult,
        kind: VerificationFailureKind,
        message: str,
    ) -> ProbeResult:
        self._transition(HarnessState.FAILED)
        result.state = HarnessState.FAILED
        result.failure_kind = kind
        result.error_message = message
        self.logger.error(f"Verification failed ({kind.value}): {message}")
        return result

    async def _activate(self, document_path: Path, language_id: str) -> str:
        if not self.host.started:
            await self.host.startup()
        uri = await self.host.open_document(document_path, language_id)
        await self.host.wait_until_ready(language_id)
        return uri

    async def run(
        self,
        document_path: str | Path,
        expected_result: Any,
        language_id: str = DEFAULT_LANGUAGE_ID,
        line: int = 0,
        character: int = 0,
    ) -> ProbeResult:
        """Open document_path, probe definition at (line, character), compare.

        Returns:
            ProbeResult in state COMPLETED or FAILED

        Raises:
            RuntimeError: If this harness already ran
        """
        if self.state != HarnessState.IDLE:
            raise RuntimeError(f"Verification harness already used (state: {self.state.value})")

        result = ProbeResult(
            requested_position=(line, character), expected_result=expected_result
        )

        self._transition(HarnessState.ACTIVATING)
        start_time = time.time()
        try:
            result.document_uri = await asyncio.wait_for(
                self._activate(Path(document_path), language_id),
                timeout=self.activation_timeout,
            )
        except TimeoutError:
            result.activation_duration = time.time() - start_time
            return self._fail(
                result,
                VerificationFailureKind.ACTIVATION_TIMEOUT,
                f"Language server for '{language_id}' was not ready within "
                f"{self.activation_timeout}s",
            )
        except (
            FileNotFoundError,
            IsADirectoryError,
            PermissionError,
            UnicodeDecodeError,
        ) as e:
            result.activation_duration = time.time() - start_time
            return self._fail(
                result,
                VerificationFailureKind.DOCUMENT_UNREADABLE,
                f"Cannot read {document_path}: {e}",
            )
        result.activation_duration = time.time() - start_time

        self._transition(HarnessState.PROBING)
        start_time = time.time()
        try:
            result.observed_result = await asyncio.wait_for(
                self.host.request_definition(
                    result.document_uri, line, character, timeout=self.request_timeout
                ),
                timeout=self.request_timeout,
            )
        except TimeoutError:
            result.probe_duration = time.time() - start_time
            return self._fail(
                result,
                VerificationFailureKind.REQUEST_TIMEOUT,
                f"No definition answer within {self.request_timeout}s",
            )
        except ConnectionError as e:
            # The server went away before answering
            result.probe_duration = time.time() - start_time
            return self._fail(
                result,
                VerificationFailureKind.REQUEST_TIMEOUT,
                f"No definition answer: {e}",
            )
        result.probe_duration = time.time() - start_time

        if result.observed_result != expected_result:
            return self._fail(
                result,
                VerificationFailureKind.ASSERTION_MISMATCH,
                f"Expected {expected_result!r}, got {result.observed_result!r}",
            )

        self._transition(HarnessState.COMPLETED)
        result.state = HarnessState.COMPLETED
        self.logger.info(
            f"Verification completed for {result.document_uri} at ({line}, {character})"
        )
        return result
