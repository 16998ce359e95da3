"""Core domain models for receipt correction.

This module provides the data models used throughout the project:
- ParsedLine, TotalsInput, HistoricalPriceHint, CorrectionInput: correction inputs
- CorrectedLine, TotalsCheck, TaxInterpretation, CorrectionResult: correction outputs

Usage:
    from receiptfix.domain import CorrectionInput, ParsedLine
"""

from receiptfix.domain.correction import (
    CorrectedLine,
    CorrectionAction,
    CorrectionInput,
    CorrectionResult,
    CorrectionStats,
    HistoricalPriceHint,
    ParsedLine,
    ProduceMatch,
    ReceiptInputError,
    TaxAmounts,
    TaxComponents,
    TaxInterpretation,
    TaxLineInput,
    TotalsCheck,
    TotalsInput,
)

__all__ = [
    "CorrectedLine",
    "CorrectionAction",
    "CorrectionInput",
    "CorrectionResult",
    "CorrectionStats",
    "HistoricalPriceHint",
    "ParsedLine",
    "ProduceMatch",
    "ReceiptInputError",
    "TaxAmounts",
    "TaxComponents",
    "TaxInterpretation",
    "TaxLineInput",
    "TotalsCheck",
    "TotalsInput",
]
