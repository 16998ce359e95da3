from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import httpx
from receiptfix.application import (
    PARSER_VERSION,
    PostOcrCorrectionRequest,
    ReceiptScanRequest,
    run_post_ocr_correction,
    run_receipt_scan,
)
from receiptfix.domain.correction import CorrectionInput, HistoricalPriceHint, ParsedLine, TotalsInput
from receiptfix.runtime import CorrectionSettings


def _line(line_number: int, raw_text: str, line_cost: str, parsed_name: str | None = None) -> ParsedLine:
    return ParsedLine(
        line_number=line_number,
        raw_text=raw_text,
        parsed_name=parsed_name or raw_text,
        quantity=Decimal(1),
        unit="each",
        line_cost=Decimal(line_cost),
        unit_cost=Decimal(line_cost),
    )


def _milk_input(total: str) -> CorrectionInput:
    return CorrectionInput(
        source="parsed_text",
        lines=(_line(1, "MILK 5.00", "5.00", parsed_name="MILK"),),
        totals=TotalsInput(tax=Decimal("0"), total=Decimal(total)),
    )


def _dates_input(hints: tuple[HistoricalPriceHint, ...] | None = None) -> CorrectionInput:
    return CorrectionInput(
        source="parsed_text",
        lines=(
            _line(1, "5523795 TERRA DATES", "949", parsed_name="TERRA DATES"),
            _line(2, "BANANAS", "14.97"),
        ),
        totals=TotalsInput(subtotal=Decimal("24.46"), tax=Decimal("1.22"), total=Decimal("25.68")),
        historical_price_hints=hints,
    )


def test_enforce_falls_back_to_shadow_when_totals_do_not_pass() -> None:
    correction_input = _milk_input("20")

    result = run_post_ocr_correction(
        PostOcrCorrectionRequest(correction_input=correction_input),
        settings=CorrectionSettings(mode="enforce"),
    )

    assert result.mode == "shadow"
    assert result.lines == correction_input.lines
    assert result.summary.requested_mode == "enforce"
    assert result.summary.rollout_guard_status == "fallback_to_shadow"
    assert result.summary.rollout_guard_reason_counts == {"totals_not_pass": 1}


def test_enforce_passes_guard_when_receipt_is_consistent() -> None:
    result = run_post_ocr_correction(
        PostOcrCorrectionRequest(correction_input=_milk_input("5")),
        settings=CorrectionSettings(
            mode="enforce",
            enforce_allow_tax_warn=True,
            enforce_max_low_confidence_lines=1,
        ),
    )

    assert result.mode == "enforce"
    assert result.summary.rollout_guard_status == "pass"
    assert result.summary.rollout_guard_reason_counts == {}


def test_enforce_returns_corrected_lines() -> None:
    result = run_post_ocr_correction(
        PostOcrCorrectionRequest(correction_input=_dates_input()),
        settings=CorrectionSettings(mode="enforce"),
    )

    assert result.mode == "enforce"
    assert result.lines[0].line_cost == Decimal("9.49")
    assert result.lines == tuple(corrected.line for corrected in result.core.lines)


def test_low_confidence_lines_trip_the_guard() -> None:
    correction_input = CorrectionInput(
        source="parsed_text",
        lines=(_line(1, "TERRA DATES", "14900"), _line(2, "SUBTOTAL 1249", "1249", parsed_name="SUBTOTAL")),
    )

    result = run_post_ocr_correction(
        PostOcrCorrectionRequest(correction_input=correction_input),
        settings=CorrectionSettings(mode="enforce", enforce_require_totals_pass=False),
    )

    assert result.mode == "shadow"
    assert result.summary.rollout_guard_reason_counts == {"low_confidence_lines_exceeded": 1}
    assert result.summary.parse_confidence_band_counts["low"] == 1


def test_shadow_mode_keeps_caller_lines_but_reports_corrections() -> None:
    correction_input = _dates_input()

    result = run_post_ocr_correction(
        PostOcrCorrectionRequest(correction_input=correction_input),
        settings=CorrectionSettings(mode="shadow"),
    )

    assert result.mode == "shadow"
    assert result.lines == correction_input.lines
    assert result.core.lines[0].line.line_cost == Decimal("9.49")
    assert result.summary.rollout_guard_status == "not_applicable"
    assert result.summary.changed_line_count == 1


def test_mode_override_beats_settings() -> None:
    result = run_post_ocr_correction(
        PostOcrCorrectionRequest(correction_input=_dates_input(), mode_override="off"),
        settings=CorrectionSettings(mode="enforce"),
    )

    assert result.mode == "off"
    assert result.summary.requested_mode == "off"
    assert result.lines == _dates_input().lines


def test_mode_defaults_to_loaded_settings(monkeypatch) -> None:
    monkeypatch.setenv("RECEIPT_POST_OCR_CORRECTION_MODE", "enforce")

    result = run_post_ocr_correction(PostOcrCorrectionRequest(correction_input=_dates_input()))

    assert result.summary.requested_mode == "enforce"
    assert result.mode == "enforce"


def test_summary_counts() -> None:
    hints = (
        HistoricalPriceHint(line_number=1, reference_line_cost=Decimal("9.49"), sample_size=3),
        HistoricalPriceHint(line_number=2, reference_line_cost=Decimal("14.97"), sample_size=4),
        HistoricalPriceHint(line_number=9, reference_line_cost=Decimal("1.00"), sample_size=2),
    )

    summary = run_post_ocr_correction(
        PostOcrCorrectionRequest(correction_input=_dates_input(hints)),
        settings=CorrectionSettings(mode="shadow"),
    ).summary

    assert summary.parser_version == PARSER_VERSION
    assert summary.source == "parsed_text"
    assert summary.line_count == 2
    assert summary.totals_check_status == "pass"
    assert summary.totals_delta_to_total == Decimal("0.00")
    assert summary.parse_confidence_band_counts == {"high": 2, "medium": 0, "low": 0, "none": 0}
    assert summary.correction_action_type_counts == {"decimal_inferred": 1}
    assert summary.parse_flag_counts["historical_price_signal_available"] == 2
    assert summary.lines_with_correction_actions_count == 1
    assert summary.historical_hint_lines_count == 3
    assert summary.historical_hint_sample_size_total == 9
    assert summary.historical_hint_max_sample_size == 4
    assert summary.historical_hint_lines_applied_count == 2

    payload = summary.to_dict()
    assert payload["totals_delta_to_total"] == "0.00"
    assert payload["tax_structure"] == "generic_tax"


def _image(tmp_path: Path) -> Path:
    path = tmp_path / "receipt.jpg"
    path.write_bytes(b"\xff\xd8fake-jpeg")
    return path


def test_scan_reports_missing_image(tmp_path: Path) -> None:
    result = run_receipt_scan(ReceiptScanRequest(image_path=tmp_path / "missing.jpg"), settings=CorrectionSettings())

    assert result.status == "file_not_found"
    assert result.correction is None


def test_scan_reports_unconfigured_tabscanner(tmp_path: Path) -> None:
    result = run_receipt_scan(ReceiptScanRequest(image_path=_image(tmp_path)), settings=CorrectionSettings())

    assert result.status == "ocr_unavailable"
    assert "TABSCANNER_API_KEY" in (result.error or "")


def test_scan_runs_correction_on_tabscanner_result(tmp_path: Path) -> None:
    raw_result = {
        "establishment": "FreshCo",
        "subTotal": 24.46,
        "tax": 1.22,
        "total": 25.68,
        "lineItems": [
            {"desc": "5523795 TERRA DATES", "descClean": "TERRA DATES", "qty": 1, "lineTotal": 949},
            {"desc": "BANANAS", "qty": 3, "lineTotal": 14.97},
        ],
    }

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(200, json={"token": "tok"})
        return httpx.Response(200, json={"status": "done", "result": raw_result})

    result = run_receipt_scan(
        ReceiptScanRequest(
            image_path=_image(tmp_path),
            province_hint="ON",
            mode_override="shadow",
            http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        ),
        settings=CorrectionSettings(
            tabscanner_api_key="secret",
            tabscanner_initial_delay=0.0,
            tabscanner_poll_interval=0.0,
        ),
    )

    assert result.status == "corrected"
    assert result.ocr_result is not None
    assert result.correction is not None
    assert result.correction.summary.source == "tabscanner"
    assert result.correction.core.lines[0].line.line_cost == Decimal("9.49")
    assert result.correction.core.tax_interpretation.province == "ON"
    assert result.correction.lines[0].line_cost == Decimal("949")
