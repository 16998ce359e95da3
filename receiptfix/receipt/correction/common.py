"""Shared constants and helpers for post-scan receipt correction."""

import re
from decimal import Decimal

from receiptfix.domain.correction import ConfidenceBand, ParsedLine

# Totals / tax tolerance in dollars
TOTAL_TOLERANCE = Decimal("0.05")
TAX_TOLERANCE = Decimal("0.05")

# Confidence thresholds (0.0 to 1.0)
HIGH_CONFIDENCE_THRESHOLD = 0.92
MEDIUM_CONFIDENCE_THRESHOLD = 0.75

# Replacing an existing value needs this margin over the baseline score.
# Aggressive (3-4 place) shifts need LOCAL_SELECTION_MARGIN + AGGRESSIVE_EXTRA_MARGIN
# and a historical boost of at least AGGRESSIVE_MIN_HISTORICAL_BOOST.
LOCAL_SELECTION_MARGIN = 0.12
AGGRESSIVE_EXTRA_MARGIN = 0.06
AGGRESSIVE_MIN_HISTORICAL_BOOST = 0.10

# Filling a missing value is held to a lower bar.
MISSING_VALUE_INFERENCE_THRESHOLD = 0.82
MISSING_VALUE_MIN_MARGIN = 0.05

# Totals-outlier recheck
TOTALS_RECHECK_MIN_SCORE = 0.6
TOTALS_RECHECK_MIN_IMPROVEMENT = Decimal("0.10")
TOTALS_RECHECK_SCORE_BOOST = 0.03
MAX_TOTALS_RECHECK_PASSES = 2

# Tax rates
ON_HST_RATE = Decimal("0.13")
QC_GST_RATE = Decimal("0.05")
QC_QST_RATE = Decimal("0.09975")

# Summary/payment lines that should never be read as purchases
NON_PURCHASE_LINE_PATTERN = re.compile(
    r"\b(sub\s*total|subtotal|total|tax|hst|gst|pst|qst|change|tender|cash|visa|"
    r"mastercard|amex|debit|credit|balance|coupon|discount|savings|payment)\b",
    re.IGNORECASE,
)


def clamp01(value: float) -> float:
    """Clamp a score to [0, 1] and round to three places."""
    if value <= 0:
        return 0.0
    if value >= 1:
        return 1.0
    return round(value, 3)


def to_confidence_band(score: float | None) -> ConfidenceBand:
    if score is None:
        return "none"
    if score >= HIGH_CONFIDENCE_THRESHOLD:
        return "high"
    if score >= MEDIUM_CONFIDENCE_THRESHOLD:
        return "medium"
    return "low"


def _is_likely_non_purchase_line(line: ParsedLine) -> bool:
    """Return True if raw text or name reads like a subtotal/tax/payment line."""
    text = f"{line.raw_text} {line.parsed_name or ''}"
    return NON_PURCHASE_LINE_PATTERN.search(text) is not None


def _unique(values: list[str]) -> tuple[str, ...]:
    """Drop duplicates while keeping first-seen order."""
    return tuple(dict.fromkeys(values))
