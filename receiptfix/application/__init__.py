"""Receipt correction workflows."""

from receiptfix.application.correction import (
    PARSER_VERSION,
    CorrectionSummary,
    PostOcrCorrectionRequest,
    PostOcrCorrectionResult,
    run_post_ocr_correction,
)
from receiptfix.application.scan import ReceiptScanRequest, ReceiptScanResult, run_receipt_scan

__all__ = [
    "PARSER_VERSION",
    "CorrectionSummary",
    "PostOcrCorrectionRequest",
    "PostOcrCorrectionResult",
    "run_post_ocr_correction",
    "ReceiptScanRequest",
    "ReceiptScanResult",
    "run_receipt_scan",
]
