"""Plausibility scoring for baseline line costs and numeric candidates.

Scores are heuristic floats in [0, 1]. Magnitude bands encode what a grocery
line usually costs; the historical adjustment nudges scores toward prices this
line has had before when the caller supplies a price prior.
"""

from collections.abc import Iterable
from decimal import Decimal

from receiptfix.domain.correction import HistoricalPriceHint, ParsedLine
from receiptfix.domain.money import is_whole, round_currency

from .candidates import NumericCandidateProposal
from .common import _is_likely_non_purchase_line, clamp01

# Hints below this sample size have no effect at all.
MIN_HISTORICAL_SAMPLE_SIZE = 2

# (max relative deviation, adjustment); checked in order, first hit wins
HISTORICAL_LINE_BONUSES = (
    (Decimal("0.12"), 0.13),
    (Decimal("0.25"), 0.08),
    (Decimal("0.45"), 0.03),
)
# (min relative deviation, adjustment)
HISTORICAL_LINE_PENALTIES = (
    (Decimal("2.0"), -0.28),
    (Decimal("1.0"), -0.18),
    (Decimal("0.75"), -0.10),
)
HISTORICAL_UNIT_BONUSES = (
    (Decimal("0.15"), 0.06),
    (Decimal("0.30"), 0.03),
)
HISTORICAL_UNIT_PENALTIES = (
    (Decimal("1.5"), -0.08),
    (Decimal("0.9"), -0.05),
)
HISTORICAL_ADJUSTMENT_MIN = -0.35
HISTORICAL_ADJUSTMENT_MAX = 0.22

CANDIDATE_ORIGIN_BASE_SCORES = {
    "raw_decimal": 0.88,
    "raw_split_decimal": 0.91,
    "raw_integer": 0.40,
    "inferred_decimal_shift_2": 0.68,
    "inferred_decimal_shift_1": 0.56,
    "inferred_decimal_shift_3": 0.49,
    "inferred_decimal_shift_4": 0.42,
}

MIN_PLAUSIBLE_UNIT_PRICE = Decimal("0.05")
MAX_PLAUSIBLE_UNIT_PRICE = Decimal("200")
IMPLAUSIBLE_UNIT_PRICE = Decimal("500")
MIN_REFERENCE = Decimal("0.01")


def _normalize_historical_price_hint(hint: HistoricalPriceHint) -> HistoricalPriceHint | None:
    """Validate a caller-supplied hint; None means the hint is dropped."""
    if hint.line_number <= 0 or hint.reference_line_cost <= 0 or hint.sample_size < 1:
        return None

    unit_reference = hint.reference_unit_cost
    return HistoricalPriceHint(
        line_number=hint.line_number,
        reference_line_cost=round_currency(hint.reference_line_cost),
        reference_unit_cost=(
            None if unit_reference is None or unit_reference <= 0 else round_currency(unit_reference)
        ),
        sample_size=max(1, hint.sample_size),
        source=hint.source,
    )


def build_historical_price_hint_map(
    hints: Iterable[HistoricalPriceHint] | None,
) -> dict[int, HistoricalPriceHint]:
    """Index hints by line number, keeping the one with the largest sample size."""
    hint_map: dict[int, HistoricalPriceHint] = {}
    for raw_hint in hints or ():
        hint = _normalize_historical_price_hint(raw_hint)
        if hint is None:
            continue
        existing = hint_map.get(hint.line_number)
        if existing is None or hint.sample_size > existing.sample_size:
            hint_map[hint.line_number] = hint
    return hint_map


def _banded_adjustment(
    deviation: Decimal,
    bonuses: tuple[tuple[Decimal, float], ...],
    penalties: tuple[tuple[Decimal, float], ...],
) -> float:
    for limit, bonus in bonuses:
        if deviation <= limit:
            return bonus
    for limit, penalty in penalties:
        if deviation >= limit:
            return penalty
    return 0.0


def historical_plausibility_adjustment(
    line: ParsedLine,
    candidate_line_cost: Decimal,
    hint: HistoricalPriceHint | None,
) -> float:
    """
    Score adjustment for how close ``candidate_line_cost`` is to the line's price history.

    Returns 0 when there is no hint or the hint rests on a single sample.
    The result is weighted by sample size and clamped to [-0.35, 0.22].
    """
    if hint is None or hint.sample_size < MIN_HISTORICAL_SAMPLE_SIZE:
        return 0.0

    reference = hint.reference_line_cost
    line_deviation = abs(candidate_line_cost - reference) / max(reference, MIN_REFERENCE)
    adjustment = _banded_adjustment(line_deviation, HISTORICAL_LINE_BONUSES, HISTORICAL_LINE_PENALTIES)

    quantity = line.quantity
    if hint.reference_unit_cost is not None and quantity is not None and quantity > 0:
        unit_reference = hint.reference_unit_cost
        unit_deviation = abs(candidate_line_cost / quantity - unit_reference) / max(unit_reference, MIN_REFERENCE)
        adjustment += _banded_adjustment(unit_deviation, HISTORICAL_UNIT_BONUSES, HISTORICAL_UNIT_PENALTIES)

    sample_weight = min(1.15, 0.65 + hint.sample_size * 0.06)
    weighted = adjustment * sample_weight
    return max(HISTORICAL_ADJUSTMENT_MIN, min(HISTORICAL_ADJUSTMENT_MAX, weighted))


def _unit_price_adjustment(line: ParsedLine, value: Decimal) -> float:
    quantity = line.quantity
    if quantity is None or quantity <= 0:
        return 0.0
    unit_price = value / quantity
    if MIN_PLAUSIBLE_UNIT_PRICE <= unit_price <= MAX_PLAUSIBLE_UNIT_PRICE:
        return 0.05
    if unit_price > IMPLAUSIBLE_UNIT_PRICE:
        return -0.15
    return 0.0


def score_baseline_line(line: ParsedLine, hint: HistoricalPriceHint | None = None) -> float | None:
    """Score the line's existing cost; None when it has no cost."""
    value = line.line_cost
    if value is None:
        return None

    score = 0.88
    # Whole-dollar prices are suspicious: OCR often drops the decimal point.
    if is_whole(value):
        if value > 2000:
            score = 0.08
        elif value > 500:
            score = 0.28
        elif value > 200:
            score = 0.55
        else:
            score = 0.82

    if value > 1000:
        score -= 0.2
    elif value > 500:
        score -= 0.1
    elif Decimal("0.5") <= value <= 200:
        score += 0.05

    score += _unit_price_adjustment(line, value)

    if line.parsed_name:
        score += 0.02
    if _is_likely_non_purchase_line(line):
        score = max(score - 0.2, 0.05)

    score += historical_plausibility_adjustment(line, value, hint)
    return clamp01(score)


def _candidate_value_adjustment(value: Decimal) -> float:
    if value <= 0:
        return -0.3
    if value < Decimal("0.25"):
        return -0.08
    if value <= 50:
        return 0.12
    if value <= 200:
        return 0.06
    if value <= 500:
        return -0.06
    if value <= 1000:
        return -0.2
    return -0.45


def score_numeric_candidate(
    line: ParsedLine,
    proposal: NumericCandidateProposal,
    hint: HistoricalPriceHint | None = None,
) -> float:
    """Score one alternate reading of the line cost."""
    value = proposal.value
    score = CANDIDATE_ORIGIN_BASE_SCORES.get(proposal.origin, 0.4)
    score += _candidate_value_adjustment(value)
    score += _unit_price_adjustment(line, value)

    original = line.line_cost
    if original is not None:
        original_whole = is_whole(original)
        # A large whole-number original next to a small candidate is the classic dropped decimal.
        if original_whole and original > 500 and value <= 200:
            score += 0.18
        if original_whole and original > 2000 and value <= 300:
            score += 0.12
        if proposal.origin == "inferred_decimal_shift_2" and original_whole and original > 500:
            score += 0.08
    elif proposal.origin == "raw_split_decimal":
        score += 0.04

    if "ocr_o_to_zero_normalized" in proposal.flags:
        score += 0.03
    if line.parsed_name:
        score += 0.02

    if _is_likely_non_purchase_line(line):
        score -= 0.1 if proposal.origin == "raw_decimal" else 0.35

    score += historical_plausibility_adjustment(line, value, hint)
    return clamp01(score)
