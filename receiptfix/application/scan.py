"""Receipt scan workflow: Tabscanner OCR followed by post-OCR correction."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import httpx

from receiptfix.application.correction import (
    PostOcrCorrectionRequest,
    PostOcrCorrectionResult,
    run_post_ocr_correction,
)
from receiptfix.domain.correction import HistoricalPriceHint, ProvinceCode
from receiptfix.receipt.tabscanner import TabscannerResult, build_tabscanner_correction_input
from receiptfix.runtime import CorrectionMode, CorrectionSettings, TabscannerUnavailable, load_settings, scan_receipt

ScanStatus = Literal[
    "file_not_found",
    "ocr_unavailable",
    "corrected",
]


@dataclass(frozen=True)
class ReceiptScanRequest:
    """Inputs for running the receipt scan workflow."""

    image_path: Path
    province_hint: ProvinceCode | None = None
    historical_price_hints: tuple[HistoricalPriceHint, ...] | None = None
    mode_override: CorrectionMode | None = None
    http_client: httpx.Client | None = None


@dataclass(frozen=True)
class ReceiptScanResult:
    """Outcome from the receipt scan workflow."""

    status: ScanStatus
    ocr_result: TabscannerResult | None = None
    correction: PostOcrCorrectionResult | None = None
    error: str | None = None


def run_receipt_scan(
    request: ReceiptScanRequest,
    settings: CorrectionSettings | None = None,
) -> ReceiptScanResult:
    """Run scan flow: Tabscanner OCR -> correction input -> post-OCR correction."""
    if not request.image_path.exists():
        return ReceiptScanResult(
            status="file_not_found",
            error=f"Receipt file not found: {request.image_path}",
        )

    settings = settings or load_settings()
    try:
        ocr_result = scan_receipt(request.image_path, settings, client=request.http_client)
    except TabscannerUnavailable as exc:
        return ReceiptScanResult(status="ocr_unavailable", error=str(exc))

    correction_input = build_tabscanner_correction_input(
        ocr_result,
        historical_price_hints=request.historical_price_hints,
        province_hint=request.province_hint,
        province_hint_source="manual" if request.province_hint else None,
    )
    correction = run_post_ocr_correction(
        PostOcrCorrectionRequest(correction_input=correction_input, mode_override=request.mode_override),
        settings=settings,
    )
    return ReceiptScanResult(status="corrected", ocr_result=ocr_result, correction=correction)
