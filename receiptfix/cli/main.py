#!/usr/bin/env python3

import argparse
import logging
from collections.abc import Callable, Sequence

from receiptfix.runtime import CORRECTION_MODES, set_log_level


def _coerce_exit_code(code: object) -> int:
    if code is None:
        return 0
    if isinstance(code, int):
        return code
    return 1


def _run_legacy_command(command: Callable[[argparse.Namespace], None], args: argparse.Namespace) -> int:
    """
    Normalize command handlers that call sys.exit().

    This keeps process termination centralized in this module's entrypoint.
    """
    try:
        command(args)
    except SystemExit as exc:
        return _coerce_exit_code(exc.code)
    return 0


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--hints", default=None, help="JSON file with historical price hints")
    parser.add_argument("--province", choices=("ON", "QC"), default=None, help="Province hint (manual)")
    parser.add_argument(
        "--mode",
        choices=CORRECTION_MODES,
        default=None,
        help="Override the configured correction mode",
    )
    parser.add_argument("--summary", action="store_true", help="Print the correction summary instead of the result")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log trust-gate decisions at DEBUG level")


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Post-scan receipt correction CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  correct <file> [--source input|tabscanner|text]
                             Correct scanned receipt lines and print JSON
  scan <image>               Scan a receipt image with Tabscanner, then correct

Environment:
  RECEIPTFIX_CONFIG          TOML config file ([correction], [tabscanner])
  RECEIPTFIX_LOG_LEVEL       DEBUG, INFO, WARNING or ERROR
  TABSCANNER_API_KEY         Tabscanner API key
""",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    correct_parser = subparsers.add_parser("correct", help="Correct scanned receipt lines")
    correct_parser.add_argument("input", help="Input file ('-' for stdin)")
    correct_parser.add_argument(
        "--source",
        choices=("input", "tabscanner", "text"),
        default="input",
        help="Input shape: correction JSON, raw Tabscanner JSON, or plain OCR text (default: input)",
    )
    _add_common_options(correct_parser)

    scan_parser = subparsers.add_parser("scan", help="Scan a receipt image with Tabscanner")
    scan_parser.add_argument("image", help="Path to receipt image")
    _add_common_options(scan_parser)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    if args.verbose:
        set_log_level(logging.DEBUG)

    if args.command == "correct":
        from receiptfix.cli.receipt import cmd_correct

        return _run_legacy_command(cmd_correct, args)
    elif args.command == "scan":
        from receiptfix.cli.receipt import cmd_scan

        return _run_legacy_command(cmd_scan, args)

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
