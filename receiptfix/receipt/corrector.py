"""Post-scan receipt correction entry point.

Sequence per receipt:
1. Build a variant set per line (candidates, scoring, local trust gates).
2. Run the bounded totals-outlier recheck across all lines.
3. Canonicalize produce on the selected variants.
4. Compute the totals check and tax interpretation over the final lines.

This module is pure: no I/O and no state kept between calls.
"""

import logging

from receiptfix.domain.correction import (
    CorrectedLine,
    CorrectionAction,
    CorrectionInput,
    CorrectionResult,
    CorrectionStats,
    ParsedLine,
)
from receiptfix.domain.money import same_money
from receiptfix.receipt.correction.common import TOTALS_RECHECK_SCORE_BOOST, _unique, clamp01, to_confidence_band
from receiptfix.receipt.correction.scoring import build_historical_price_hint_map
from receiptfix.receipt.correction.tax import build_tax_interpretation
from receiptfix.receipt.correction.totals import build_totals_check, run_totals_outlier_recheck
from receiptfix.receipt.correction.variants import LineVariantSet, build_line_variant_set
from receiptfix.receipt.produce import normalize_receipt_produce_line

logger = logging.getLogger(__name__)

PRODUCE_CORRECTION_CONFIDENCE = 0.99


def _line_changed(original: ParsedLine, current: ParsedLine) -> bool:
    return (
        original.parsed_name != current.parsed_name
        or original.quantity != current.quantity
        or original.unit != current.unit
        or not same_money(original.line_cost, current.line_cost)
        or not same_money(original.unit_cost, current.unit_cost)
        or original.plu_code != current.plu_code
        or original.organic_flag != current.organic_flag
        or original.produce_match != current.produce_match
    )


def _build_corrected_line(variant_set: LineVariantSet, selected_index: int, totals_selected: bool) -> CorrectedLine:
    selected = variant_set.variants[selected_index]
    produce = normalize_receipt_produce_line(selected.line)
    changed = _line_changed(variant_set.original, selected.line)

    score = selected.local_score
    if totals_selected and score is not None:
        score = clamp01(score + TOTALS_RECHECK_SCORE_BOOST)

    flags = [*selected.parse_flags, *produce.parse_flags]
    if totals_selected:
        flags.append("totals_outlier_recheck_selected")

    actions = list(selected.correction_actions)
    for correction in produce.corrections:
        actions.append(
            CorrectionAction(
                type=correction.type,
                before=correction.before,
                after=correction.after,
                confidence=PRODUCE_CORRECTION_CONFIDENCE,
                reason=correction.reason,
            )
        )
    if totals_selected and changed:
        actions.append(
            CorrectionAction(
                type="totals_outlier_recheck",
                before=variant_set.original.line_cost,
                after=selected.line.line_cost,
                confidence=score if score is not None else 0.0,
                reason="Selected alternate line-cost candidate because it improved receipt total consistency.",
            )
        )

    return CorrectedLine(
        line=produce.line,
        parse_confidence_score=score,
        parse_confidence_band=to_confidence_band(score),
        parse_flags=_unique(flags),
        correction_actions=tuple(actions),
    )


def run_receipt_correction(correction_input: CorrectionInput) -> CorrectionResult:
    """
    Correct one receipt's scanned lines and validate them against its totals.

    Args:
        correction_input: Lines plus optional totals and historical price hints.

    Returns:
        CorrectionResult with one CorrectedLine per input line (same order),
        the totals check, the tax interpretation and change statistics.

    Raises:
        ValueError: If the input has no lines sequence.
    """
    if correction_input.lines is None:
        raise ValueError("Receipt correction requires a lines sequence")

    hint_map = build_historical_price_hint_map(correction_input.historical_price_hints)
    variant_sets = [
        build_line_variant_set(line, hint_map.get(line.line_number)) for line in correction_input.lines
    ]
    decision = run_totals_outlier_recheck(variant_sets, correction_input.totals)
    totals_selected = set(decision.totals_selected_line_numbers)

    corrected_lines = tuple(
        _build_corrected_line(
            variant_set,
            decision.selected_indices[index],
            variant_set.original.line_number in totals_selected,
        )
        for index, variant_set in enumerate(variant_sets)
    )
    final_lines = [corrected.line for corrected in corrected_lines]

    totals_check = build_totals_check(final_lines, correction_input.totals, decision.outlier_line_numbers)
    tax_interpretation = build_tax_interpretation(final_lines, correction_input.totals)

    changed_line_count = sum(
        1
        for original, corrected in zip(correction_input.lines, final_lines)
        if _line_changed(original, corrected)
    )
    stats = CorrectionStats(
        line_count=len(corrected_lines),
        changed_line_count=changed_line_count,
        correction_actions_applied=sum(len(corrected.correction_actions) for corrected in corrected_lines),
    )
    logger.debug(
        "Corrected %d lines (%d changed, totals %s, tax %s)",
        stats.line_count,
        stats.changed_line_count,
        totals_check.status,
        tax_interpretation.status,
    )

    return CorrectionResult(
        lines=corrected_lines,
        totals_check=totals_check,
        tax_interpretation=tax_interpretation,
        stats=stats,
    )
