"""Numeric correction stages used by ``receiptfix.receipt.corrector``."""

from .candidates import NumericCandidateProposal, build_numeric_candidate_proposals
from .common import to_confidence_band
from .scoring import (
    build_historical_price_hint_map,
    historical_plausibility_adjustment,
    score_baseline_line,
    score_numeric_candidate,
)
from .tax import build_tax_interpretation, normalize_tax_label_key
from .totals import TotalsRecheckDecision, build_totals_check, run_totals_outlier_recheck
from .variants import LineVariant, LineVariantSet, build_line_variant_set

__all__ = [
    "LineVariant",
    "LineVariantSet",
    "NumericCandidateProposal",
    "TotalsRecheckDecision",
    "build_historical_price_hint_map",
    "build_line_variant_set",
    "build_numeric_candidate_proposals",
    "build_tax_interpretation",
    "build_totals_check",
    "historical_plausibility_adjustment",
    "normalize_tax_label_key",
    "run_totals_outlier_recheck",
    "score_baseline_line",
    "score_numeric_candidate",
    "to_confidence_band",
]
