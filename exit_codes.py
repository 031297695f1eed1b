"""
Exit code definitions for the qute-lsp CLI.

Distinct codes let CI tell an activation problem from a wrong answer.
"""

import enum

from verification_harness import ProbeResult, VerificationFailureKind


class VerificationExitCode(enum.IntEnum):
    """Exit codes for CLI runs."""

    SUCCESS = 0
    ASSERTION_MISMATCH = 1

    # Timeouts (10-19)
    ACTIVATION_TIMEOUT = 10  # Server never became ready
    REQUEST_TIMEOUT = 11  # Server ready but did not answer

    # Configuration/setup errors (50-59)
    INVALID_CONFIGURATION = 50
    REGISTRATION_FAILED = 51
    DOCUMENT_NOT_FOUND = 52

    UNEXPECTED_ERROR = 60


_FAILURE_EXIT_CODES = {
    VerificationFailureKind.ACTIVATION_TIMEOUT: VerificationExitCode.ACTIVATION_TIMEOUT,
    VerificationFailureKind.REQUEST_TIMEOUT: VerificationExitCode.REQUEST_TIMEOUT,
    VerificationFailureKind.ASSERTION_MISMATCH: VerificationExitCode.ASSERTION_MISMATCH,
    VerificationFailureKind.DOCUMENT_UNREADABLE: VerificationExitCode.DOCUMENT_NOT_FOUND,
}


def exit_code_for(result: ProbeResult) -> VerificationExitCode:
    """Map a verification outcome to a process exit code."""
    if result.passed:
        return VerificationExitCode.SUCCESS
    if result.failure_kind is None:
        return VerificationExitCode.UNEXPECTED_ERROR
    return _FAILURE_EXIT_CODES[result.failure_kind]
