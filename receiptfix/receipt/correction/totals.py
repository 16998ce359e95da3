"""Sum-of-lines versus printed total, and the bounded outlier recheck.

The recheck works on indices into each line's variant tuple. Every pass
recomputes the totals check from the current selections rather than patching
the previous delta.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from receiptfix.domain.correction import ParsedLine, TotalsCheck, TotalsInput
from receiptfix.domain.money import round_currency, sum_money

from .common import (
    MAX_TOTALS_RECHECK_PASSES,
    MEDIUM_CONFIDENCE_THRESHOLD,
    TOTAL_TOLERANCE,
    TOTALS_RECHECK_MIN_IMPROVEMENT,
    TOTALS_RECHECK_MIN_SCORE,
)
from .variants import LineVariantSet

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class TotalsRecheckDecision:
    """Final variant index per line plus the lines the recheck touched."""

    selected_indices: tuple[int, ...]
    outlier_line_numbers: tuple[int, ...]
    totals_selected_line_numbers: tuple[int, ...]


@dataclass(frozen=True)
class _Swap:
    set_index: int
    variant_index: int
    improvement: Decimal
    next_delta: Decimal
    score: float


def build_totals_check(
    lines: Sequence[ParsedLine],
    totals: TotalsInput | None,
    outlier_line_numbers: Sequence[int] = (),
) -> TotalsCheck:
    """
    Compare the sum of line costs (plus printed tax) against the printed total.

    The check is ``not_evaluated`` when there is no printed total or no line
    carries a cost. Otherwise ``delta = lines_sum + tax - total`` and the status
    is ``pass`` when ``|delta| <= 0.05``.
    """
    subtotal = totals.subtotal if totals else None
    tax = totals.tax if totals else None
    total = totals.total if totals else None
    lines_sum = sum_money(line.line_cost for line in lines)

    delta: Decimal | None = None
    status = "not_evaluated"
    if total is not None and lines_sum is not None:
        expected_total = round_currency(lines_sum + (tax if tax is not None else ZERO))
        delta = round_currency(expected_total - total)
        status = "pass" if abs(delta) <= TOTAL_TOLERANCE else "warn"

    return TotalsCheck(
        subtotal_printed=subtotal,
        tax_printed=tax,
        total_printed=total,
        lines_sum=lines_sum,
        delta_to_total=delta,
        status=status,
        tolerance=TOTAL_TOLERANCE,
        outlier_line_numbers=tuple(outlier_line_numbers),
    )


def _is_better_swap(candidate: _Swap, best: _Swap | None) -> bool:
    if best is None or candidate.improvement > best.improvement:
        return True
    if candidate.improvement != best.improvement:
        return False
    if abs(candidate.next_delta) != abs(best.next_delta):
        return abs(candidate.next_delta) < abs(best.next_delta)
    return candidate.score > best.score


def _find_best_swap(
    variant_sets: Sequence[LineVariantSet],
    selected_indices: list[int],
    current_delta: Decimal,
) -> _Swap | None:
    """Scan every non-selected eligible variant for the swap that most reduces |delta|."""
    best: _Swap | None = None
    for set_index, variant_set in enumerate(variant_sets):
        current_value = variant_set.variants[selected_indices[set_index]].line.line_cost or ZERO

        for variant_index, candidate in enumerate(variant_set.variants):
            if variant_index == selected_indices[set_index]:
                continue

            score = candidate.local_score or 0.0
            if score < TOTALS_RECHECK_MIN_SCORE:
                continue
            if candidate.aggressive and score < MEDIUM_CONFIDENCE_THRESHOLD:
                continue
            if not candidate.changed and candidate.line.line_cost is None:
                continue

            next_value = candidate.line.line_cost or ZERO
            next_delta = round_currency(current_delta + (next_value - current_value))
            improvement = round_currency(abs(current_delta) - abs(next_delta))
            if improvement <= 0:
                continue

            swap = _Swap(set_index, variant_index, improvement, next_delta, score)
            if _is_better_swap(swap, best):
                best = swap
    return best


def run_totals_outlier_recheck(
    variant_sets: Sequence[LineVariantSet],
    totals: TotalsInput | None,
) -> TotalsRecheckDecision:
    """
    Re-select line variants to bring the line sum closer to the printed total.

    At most ``MAX_TOTALS_RECHECK_PASSES`` passes; each applies exactly one swap
    or stops. A swap is applied when it improves |delta| by at least 0.10 or
    lands within tolerance. A best swap that does neither only marks its line
    as an outlier.
    """
    selected_indices = [variant_set.selected_index for variant_set in variant_sets]
    outliers: dict[int, None] = {}
    totals_selected: dict[int, None] = {}

    if totals is None or totals.total is None:
        return TotalsRecheckDecision(tuple(selected_indices), (), ())

    for pass_number in range(MAX_TOTALS_RECHECK_PASSES):
        current_lines = [
            variant_set.variants[selected_indices[index]].line for index, variant_set in enumerate(variant_sets)
        ]
        check = build_totals_check(current_lines, totals)
        if check.status != "warn" or check.delta_to_total is None:
            break

        best = _find_best_swap(variant_sets, selected_indices, check.delta_to_total)
        if best is None:
            break

        line_number = variant_sets[best.set_index].original.line_number
        outliers[line_number] = None
        if best.improvement < TOTALS_RECHECK_MIN_IMPROVEMENT and abs(best.next_delta) > TOTAL_TOLERANCE:
            logger.debug(
                "Totals recheck pass %d: line %d flagged as outlier (improvement %s too small)",
                pass_number + 1,
                line_number,
                best.improvement,
            )
            break

        logger.debug(
            "Totals recheck pass %d: line %d swapped to variant %d (delta %s -> %s)",
            pass_number + 1,
            line_number,
            best.variant_index,
            check.delta_to_total,
            best.next_delta,
        )
        selected_indices[best.set_index] = best.variant_index
        totals_selected[line_number] = None

    return TotalsRecheckDecision(
        selected_indices=tuple(selected_indices),
        outlier_line_numbers=tuple(outliers),
        totals_selected_line_numbers=tuple(totals_selected),
    )
