"""Post-scan receipt correction.

Usage:
    from receiptfix import CorrectionInput, run_receipt_correction

    result = run_receipt_correction(CorrectionInput.from_dict(payload))
"""

from receiptfix.domain.correction import CorrectionInput, CorrectionResult
from receiptfix.receipt.corrector import run_receipt_correction

__all__ = ["CorrectionInput", "CorrectionResult", "run_receipt_correction"]
