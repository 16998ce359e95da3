"""Receipt command handlers used by the unified CLI."""

import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any

from receiptfix.domain.correction import (
    CorrectionInput,
    HistoricalPriceHint,
    ReceiptInputError,
    TotalsInput,
    parse_historical_price_hints,
)
from receiptfix.receipt.tabscanner import build_tabscanner_correction_input, normalize_tabscanner_result
from receiptfix.receipt.text_parser import extract_printed_totals, parse_receipt_text
from receiptfix.runtime import get_logger

logger = get_logger(__name__)


def _read_text(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _read_json(path: str) -> Any:
    return json.loads(_read_text(path))


def _load_hints(path: str | None) -> tuple[HistoricalPriceHint, ...] | None:
    if path is None:
        return None
    data = _read_json(path)
    if not isinstance(data, list):
        raise ReceiptInputError("Historical price hints file must hold a JSON array")
    return parse_historical_price_hints(data)


def _with_manual_province(correction_input: CorrectionInput, province: str | None) -> CorrectionInput:
    if province is None:
        return correction_input
    totals = correction_input.totals or TotalsInput()
    return replace(
        correction_input,
        totals=replace(totals, province_hint=province, province_hint_source="manual"),
    )


def build_correction_input(
    source: str,
    path: str,
    hints_path: str | None = None,
    province: str | None = None,
) -> CorrectionInput:
    """
    Load correction input from a file in one of three shapes.

    ``input`` is correction-input JSON, ``tabscanner`` is a raw Tabscanner
    response (or its ``result`` object), ``text`` is plain OCR text.
    """
    hints = _load_hints(hints_path)

    if source == "text":
        raw_text = _read_text(path)
        correction_input = CorrectionInput(
            source="parsed_text",
            lines=tuple(parse_receipt_text(raw_text)),
            totals=extract_printed_totals(raw_text),
            historical_price_hints=hints,
        )
    elif source == "tabscanner":
        data = _read_json(path)
        if not isinstance(data, dict):
            raise ReceiptInputError("Tabscanner JSON must be an object")
        raw_result = data.get("result") if isinstance(data.get("result"), dict) else data
        correction_input = build_tabscanner_correction_input(
            normalize_tabscanner_result(raw_result),
            historical_price_hints=hints,
        )
    else:
        data = _read_json(path)
        if not isinstance(data, dict):
            raise ReceiptInputError("Correction input JSON must be an object")
        correction_input = CorrectionInput.from_dict(data)
        if hints is not None:
            correction_input = replace(correction_input, historical_price_hints=hints)

    return _with_manual_province(correction_input, province)


def _print_json(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def cmd_correct(args: argparse.Namespace) -> None:
    """Correct a scanned receipt and print the result JSON."""
    from receiptfix.application.correction import PostOcrCorrectionRequest, run_post_ocr_correction

    try:
        correction_input = build_correction_input(args.source, args.input, args.hints, args.province)
    except (OSError, ValueError) as exc:
        # ValueError covers ReceiptInputError and json.JSONDecodeError
        logger.error("%s", exc)
        print(f"Error: could not load correction input: {exc}")
        sys.exit(1)

    try:
        result = run_post_ocr_correction(
            PostOcrCorrectionRequest(correction_input=correction_input, mode_override=args.mode)
        )
    except ValueError as exc:
        # Invalid config file values surface here
        logger.error("%s", exc)
        print(f"Error: {exc}")
        sys.exit(1)

    if args.summary:
        _print_json(result.summary.to_dict())
    else:
        _print_json(result.core.to_dict())


def cmd_scan(args: argparse.Namespace) -> None:
    """Scan a receipt image with Tabscanner, correct it, and print the result JSON."""
    from receiptfix.application.scan import ReceiptScanRequest, run_receipt_scan

    try:
        hints = _load_hints(args.hints)
    except (OSError, ValueError) as exc:
        print(f"Error: could not load historical price hints: {exc}")
        sys.exit(1)

    result = run_receipt_scan(
        ReceiptScanRequest(
            image_path=Path(args.image),
            province_hint=args.province,
            historical_price_hints=hints,
            mode_override=args.mode,
        )
    )

    if result.status == "file_not_found":
        logger.error("%s", result.error)
        print(f"Error: {result.error}")
        sys.exit(1)

    if result.status == "ocr_unavailable":
        logger.error("%s", result.error)
        print(f"Tabscanner unavailable: {result.error}")
        print("Set TABSCANNER_API_KEY (or [tabscanner].api_key in the config file) before scanning.")
        sys.exit(1)

    correction = result.correction
    if correction is None:
        print("Scan failed: missing correction output.")
        sys.exit(1)

    if args.summary:
        _print_json(correction.summary.to_dict())
    else:
        _print_json(correction.core.to_dict())
