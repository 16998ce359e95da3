"""Per-line variant construction and local selection.

Each line becomes a finite tuple of variants: the untouched baseline at index
0, then one variant per distinct candidate reading. Selection picks an index
into that tuple; nothing downstream mutates the tuple itself.
"""

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Literal

from receiptfix.domain.correction import CorrectionAction, HistoricalPriceHint, ParsedLine
from receiptfix.domain.money import round_currency, same_money

from .candidates import NumericCandidateOrigin, NumericCandidateProposal, build_numeric_candidate_proposals
from .common import (
    AGGRESSIVE_EXTRA_MARGIN,
    AGGRESSIVE_MIN_HISTORICAL_BOOST,
    HIGH_CONFIDENCE_THRESHOLD,
    LOCAL_SELECTION_MARGIN,
    MISSING_VALUE_INFERENCE_THRESHOLD,
    MISSING_VALUE_MIN_MARGIN,
    _unique,
)
from .scoring import historical_plausibility_adjustment, score_baseline_line, score_numeric_candidate

logger = logging.getLogger(__name__)

BASELINE_INDEX = 0


@dataclass(frozen=True)
class LineVariant:
    """One possible final state of a line."""

    line: ParsedLine
    local_score: float | None
    parse_flags: tuple[str, ...]
    correction_actions: tuple[CorrectionAction, ...]
    changed: bool
    line_cost_origin: NumericCandidateOrigin | Literal["baseline"]
    aggressive: bool = False


@dataclass(frozen=True)
class LineVariantSet:
    """All variants of one line and the locally selected index."""

    original: ParsedLine
    variants: tuple[LineVariant, ...]
    selected_index: int
    had_multiple_numeric_candidates: bool

    @property
    def selected(self) -> LineVariant:
        return self.variants[self.selected_index]


def _recalculate_unit_cost(line: ParsedLine, line_cost: Decimal) -> Decimal | None:
    quantity = line.quantity
    if quantity is None or quantity <= 0:
        return line.unit_cost
    return round_currency(line_cost / quantity)


def _build_correction_action(line: ParsedLine, proposal: NumericCandidateProposal, score: float) -> CorrectionAction:
    """Describe the change a candidate would make, for the audit trail."""
    action_type = "line_cost_correction"
    reason = "Selected alternate numeric interpretation for line cost."

    if proposal.origin == "raw_split_decimal":
        action_type = "split_numeric_joined"
        reason = "Joined split trailing numeric token into a decimal currency value."
    elif proposal.origin == "raw_decimal" and line.line_cost is None:
        action_type = "line_cost_inferred_from_raw_text"
        reason = "Recovered line cost from trailing decimal token in raw OCR text."
    elif proposal.origin == "raw_integer" and line.line_cost is None:
        action_type = "line_cost_inferred_from_raw_text"
        reason = "Recovered trailing integer token as a candidate line cost from raw OCR text."
    elif proposal.origin.startswith("inferred_decimal_shift_"):
        action_type = "decimal_inferred"
        reason = "Inferred decimal placement from integer-like OCR price token."

    before = line.line_cost if line.line_cost is not None else proposal.raw_token
    return CorrectionAction(
        type=action_type,
        before=before,
        after=proposal.value,
        confidence=score,
        reason=reason,
    )


def _pick_highest_scoring(variants: list[LineVariant]) -> int:
    """Index of the best-scoring variant; ties go to the unchanged baseline."""
    selected_index = BASELINE_INDEX
    for index in range(1, len(variants)):
        current = variants[index]
        selected = variants[selected_index]
        current_score = -1.0 if current.local_score is None else current.local_score
        selected_score = -1.0 if selected.local_score is None else selected.local_score

        if current_score > selected_score:
            selected_index = index
        elif current_score == selected_score and selected.changed and not current.changed:
            selected_index = index
    return selected_index


def _passes_acceptance_gate(
    line: ParsedLine,
    top: LineVariant,
    baseline: LineVariant,
    hint: HistoricalPriceHint | None,
) -> bool:
    """
    Decide whether a changed top pick may replace the baseline.

    Filling a missing cost is easier than overwriting an existing one, and an
    aggressive (3-4 place) decimal shift may only overwrite with history backing it.
    """
    top_score = top.local_score or 0.0
    margin = round(top_score - (baseline.local_score or 0.0), 3)

    if line.line_cost is None:
        return top_score >= MISSING_VALUE_INFERENCE_THRESHOLD and margin >= MISSING_VALUE_MIN_MARGIN

    if top_score < HIGH_CONFIDENCE_THRESHOLD:
        return False

    if not top.aggressive:
        return margin >= LOCAL_SELECTION_MARGIN

    if hint is None or top.line.line_cost is None:
        return False
    historical_boost = historical_plausibility_adjustment(line, top.line.line_cost, hint)
    return (
        margin >= round(LOCAL_SELECTION_MARGIN + AGGRESSIVE_EXTRA_MARGIN, 3)
        and historical_boost >= AGGRESSIVE_MIN_HISTORICAL_BOOST
    )


def build_line_variant_set(line: ParsedLine, hint: HistoricalPriceHint | None = None) -> LineVariantSet:
    """Build every variant for ``line`` and select one under the trust gates."""
    history_flags = ["historical_price_signal_available"] if hint is not None else []
    variants: list[LineVariant] = [
        LineVariant(
            line=line,
            local_score=score_baseline_line(line, hint),
            parse_flags=_unique(history_flags),
            correction_actions=(),
            changed=False,
            line_cost_origin="baseline",
        )
    ]

    proposals: list[NumericCandidateProposal] = []
    for proposal in build_numeric_candidate_proposals(line):
        if not any(same_money(previous.value, proposal.value) for previous in proposals):
            proposals.append(proposal)
    had_multiple_numeric_candidates = len(proposals) > 1

    for proposal in proposals:
        if same_money(line.line_cost, proposal.value):
            continue

        score = score_numeric_candidate(line, proposal, hint)
        next_line_cost = round_currency(proposal.value)
        flags = list(proposal.flags)
        if line.line_cost is None:
            flags.append("line_cost_inferred")
        if had_multiple_numeric_candidates:
            flags.append("dual_numeric_interpretation_considered")
        flags.extend(history_flags)

        variants.append(
            LineVariant(
                line=replace(
                    line,
                    line_cost=next_line_cost,
                    unit_cost=_recalculate_unit_cost(line, next_line_cost),
                ),
                local_score=score,
                parse_flags=_unique(flags),
                correction_actions=(_build_correction_action(line, proposal, score),),
                changed=True,
                line_cost_origin=proposal.origin,
                aggressive=proposal.aggressive,
            )
        )

    selected_index = _pick_highest_scoring(variants)
    if selected_index != BASELINE_INDEX and not _passes_acceptance_gate(
        line, variants[selected_index], variants[BASELINE_INDEX], hint
    ):
        logger.debug(
            "Line %d: %s candidate %s rejected by trust gate (score=%s)",
            line.line_number,
            variants[selected_index].line_cost_origin,
            variants[selected_index].line.line_cost,
            variants[selected_index].local_score,
        )
        selected_index = BASELINE_INDEX

    return LineVariantSet(
        original=line,
        variants=tuple(variants),
        selected_index=selected_index,
        had_multiple_numeric_candidates=had_multiple_numeric_candidates,
    )
