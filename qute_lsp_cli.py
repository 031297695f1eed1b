#!/usr/bin/env python3

"""
qute-lsp Host Integration CLI

Runs the startup activation and the end-to-end verification probe outside an
editor, for smoke testing a local qute-lsp installation.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from binding_config import BindingConfigError, BindingConfigLoader, HostSettings
from constants import DEFAULT_LANGUAGE_ID
from exit_codes import VerificationExitCode, exit_code_for
from host_adapters import DesktopIDEHostAdapter, HostAdapter, WebEditorHostAdapter
from system_utils import setup_logging
from verification_harness import VerificationHarness

logger = logging.getLogger(__name__)

HOSTS = {
    "desktop": DesktopIDEHostAdapter,
    "web": WebEditorHostAdapter,
}


class OutputFormatter:
    """Handles different output formats for CLI results."""

    @staticmethod
    def format_json(data: dict[str, Any]) -> str:
        """Format output as pretty JSON."""
        return json.dumps(data, indent=2, default=str)

    @staticmethod
    def format_simple(data: dict[str, Any]) -> str:
        """Format output as simple text."""
        lines = []

        # Registry status
        if "bindings" in data:
            lines.append(f"Registered bindings: {data.get('total_bindings', 0)}")
            for binding in data["bindings"]:
                lines.append(
                    f"  {binding['language_id']}: {' '.join(binding['launch_command'])}"
                )
            for language_id, reason in data.get("failures", {}).items():
                lines.append(f"  ✗ {language_id}: {reason}")

        # Verification result
        elif "state" in data:
            status = "✓" if data["state"] == "completed" else "✗"
            position = data["requested_position"]
            lines.append(
                f"{status} {data['state']} at ({position['line']}, {position['character']})"
            )
            lines.append(f"Document: {data.get('document_uri')}")
            if data.get("failure_kind"):
                lines.append(f"Failure: {data['failure_kind']}")
                lines.append(f"Reason: {data.get('error_message')}")
            lines.append(f"Observed: {json.dumps(data.get('observed_result'))}")

        elif "error" in data:
            lines.append(f"Error: {data['error']}")

        else:
            for key, value in data.items():
                lines.append(f"{key}: {value}")

        return "\n".join(lines)

    def format(self, data: dict[str, Any], output_format: str) -> str:
        if output_format == "json":
            return self.format_json(data)
        return self.format_simple(data)


def create_host(name: str, settings: HostSettings) -> HostAdapter:
    return HOSTS[name](settings)


async def run_bindings(host: HostAdapter) -> tuple[dict[str, Any], VerificationExitCode]:
    """Activate and report the resulting registry."""
    result = await host.startup()
    status = host.registry.get_status()
    status["failures"] = result.failures
    exit_code = (
        VerificationExitCode.SUCCESS
        if result.succeeded
        else VerificationExitCode.REGISTRATION_FAILED
    )
    return status, exit_code


async def run_verify(
    host: HostAdapter, args: argparse.Namespace
) -> tuple[dict[str, Any], VerificationExitCode]:
    """Run the verification probe against args.document."""
    if not Path(args.document).is_file():
        return (
            {"error": f"Document not found: {args.document}"},
            VerificationExitCode.DOCUMENT_NOT_FOUND,
        )

    try:
        expected = json.loads(args.expected)
    except json.JSONDecodeError as e:
        return (
            {"error": f"--expected is not valid JSON: {e}"},
            VerificationExitCode.INVALID_CONFIGURATION,
        )

    harness = VerificationHarness(
        host,
        activation_timeout=args.activation_timeout or host.settings.activation_timeout,
        request_timeout=args.request_timeout or host.settings.request_timeout,
    )
    try:
        result = await harness.run(
            args.document,
            expected,
            language_id=args.language,
            line=args.line,
            character=args.character,
        )
    finally:
        await host.shutdown()

    return result.to_dict(), exit_code_for(result)


async def execute_cli(
    args: argparse.Namespace,
    loader: BindingConfigLoader,
    formatter: OutputFormatter,
) -> int:
    """Execute CLI functionality with dependency injection.

    Returns:
        Process exit code
    """
    try:
        settings = loader.load()
    except BindingConfigError as e:
        print(f"Error loading bindings configuration: {e}", file=sys.stderr)
        return VerificationExitCode.INVALID_CONFIGURATION

    host = create_host(args.host, settings)

    try:
        if args.command == "bindings":
            data, exit_code = await run_bindings(host)
        else:
            data, exit_code = await run_verify(host, args)
    except Exception as e:
        logger.exception("Unexpected error")
        data, exit_code = {"error": str(e)}, VerificationExitCode.UNEXPECTED_ERROR

    print(formatter.format(data, args.format))
    return exit_code


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="qute-lsp host integration tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s bindings --config bindings.json
  %(prog)s verify tests/fixtures/diagnostics.txt --expected null
  %(prog)s verify page.html --line 3 --character 10 --host web --format json
        """,
    )
    parser.add_argument("--config", help="Path to a bindings JSON file")
    parser.add_argument(
        "--host", choices=sorted(HOSTS), default="desktop", help="Host front-end to emulate"
    )
    parser.add_argument(
        "--format", choices=["json", "simple"], default="simple", help="Output format"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    parser.add_argument("--log-file", help="Also write logs to this file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("bindings", help="Run activation and list registered bindings")

    verify = subparsers.add_parser(
        "verify", help="Open a document and probe go-to-definition"
    )
    verify.add_argument("document", help="Document to open")
    verify.add_argument(
        "--language", default=DEFAULT_LANGUAGE_ID, help="Language id to open it as"
    )
    verify.add_argument("--line", type=int, default=0, help="Zero-based line")
    verify.add_argument("--character", type=int, default=0, help="Zero-based character")
    verify.add_argument(
        "--expected", default="null", help="Expected definition result as JSON"
    )
    verify.add_argument(
        "--activation-timeout", type=float, help="Seconds to wait for the server"
    )
    verify.add_argument(
        "--request-timeout", type=float, help="Seconds to wait for the answer"
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point - handles argument parsing and object creation."""
    args = build_parser().parse_args(argv)

    setup_logging(verbose=args.verbose, log_file=args.log_file)

    if args.command == "verify" and (args.line < 0 or args.character < 0):
        print("Error: --line and --character must be zero or greater", file=sys.stderr)
        sys.exit(VerificationExitCode.INVALID_CONFIGURATION)

    loader = BindingConfigLoader(config_path=args.config)
    formatter = OutputFormatter()

    sys.exit(asyncio.run(execute_cli(args, loader, formatter)))


if __name__ == "__main__":
    main()
