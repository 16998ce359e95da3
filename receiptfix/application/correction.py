"""Post-OCR correction workflow: mode handling, rollout guard and summary.

``shadow`` mode runs the correction for observability but hands back the
caller's lines unchanged. ``enforce`` returns corrected lines unless the
rollout guard finds the result untrustworthy, in which case it falls back to
shadow for this receipt.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Literal

from receiptfix.domain.correction import (
    CheckStatus,
    CorrectionInput,
    CorrectionResult,
    CorrectionSource,
    HistoricalPriceHint,
    ParsedLine,
    ProvinceCode,
    ProvinceSource,
    TaxStructure,
)
from receiptfix.domain.money import format_money
from receiptfix.receipt.corrector import run_receipt_correction
from receiptfix.runtime import CorrectionMode, CorrectionSettings, get_logger, load_settings

logger = get_logger(__name__)

PARSER_VERSION = "v1.4-numeric-tax-produce-history-gated"

RolloutGuardStatus = Literal["not_applicable", "pass", "fallback_to_shadow"]


@dataclass(frozen=True)
class PostOcrCorrectionRequest:
    """Inputs for one receipt's post-OCR correction."""

    correction_input: CorrectionInput
    mode_override: CorrectionMode | None = None


@dataclass(frozen=True)
class CorrectionSummary:
    """Flat, JSON-friendly observability record for one correction run."""

    parser_version: str
    requested_mode: CorrectionMode
    mode: CorrectionMode
    rollout_guard_status: RolloutGuardStatus
    rollout_guard_reason_counts: dict[str, int]
    source: CorrectionSource
    line_count: int
    changed_line_count: int
    correction_actions_applied: int
    totals_check_status: CheckStatus
    totals_delta_to_total: Decimal | None
    totals_line_sum: Decimal | None
    tax_validation_status: CheckStatus
    tax_structure: TaxStructure
    tax_province: ProvinceCode | None
    tax_province_source: ProvinceSource
    tax_zero_grocery_candidate: bool
    tax_flag_counts: dict[str, int] = field(default_factory=dict)
    tax_label_counts: dict[str, int] = field(default_factory=dict)
    parse_confidence_band_counts: dict[str, int] = field(default_factory=dict)
    lines_with_parse_flags_count: int = 0
    lines_with_correction_actions_count: int = 0
    historical_hint_lines_count: int = 0
    historical_hint_sample_size_total: int = 0
    historical_hint_max_sample_size: int = 0
    historical_hint_lines_applied_count: int = 0
    parse_flag_counts: dict[str, int] = field(default_factory=dict)
    correction_action_type_counts: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "parser_version": self.parser_version,
            "requested_mode": self.requested_mode,
            "mode": self.mode,
            "rollout_guard_status": self.rollout_guard_status,
            "rollout_guard_reason_counts": dict(self.rollout_guard_reason_counts),
            "source": self.source,
            "line_count": self.line_count,
            "changed_line_count": self.changed_line_count,
            "correction_actions_applied": self.correction_actions_applied,
            "totals_check_status": self.totals_check_status,
            "totals_delta_to_total": format_money(self.totals_delta_to_total),
            "totals_line_sum": format_money(self.totals_line_sum),
            "tax_validation_status": self.tax_validation_status,
            "tax_structure": self.tax_structure,
            "tax_province": self.tax_province,
            "tax_province_source": self.tax_province_source,
            "tax_zero_grocery_candidate": self.tax_zero_grocery_candidate,
            "tax_flag_counts": dict(self.tax_flag_counts),
            "tax_label_counts": dict(self.tax_label_counts),
            "parse_confidence_band_counts": dict(self.parse_confidence_band_counts),
            "lines_with_parse_flags_count": self.lines_with_parse_flags_count,
            "lines_with_correction_actions_count": self.lines_with_correction_actions_count,
            "historical_hint_lines_count": self.historical_hint_lines_count,
            "historical_hint_sample_size_total": self.historical_hint_sample_size_total,
            "historical_hint_max_sample_size": self.historical_hint_max_sample_size,
            "historical_hint_lines_applied_count": self.historical_hint_lines_applied_count,
            "parse_flag_counts": dict(self.parse_flag_counts),
            "correction_action_type_counts": dict(self.correction_action_type_counts),
        }


@dataclass(frozen=True)
class PostOcrCorrectionResult:
    """Outcome of the workflow; ``lines`` are what the caller should persist."""

    mode: CorrectionMode
    lines: tuple[ParsedLine, ...]
    core: CorrectionResult
    summary: CorrectionSummary


def _rollout_guard_reasons(core: CorrectionResult, settings: CorrectionSettings) -> Counter[str]:
    """Reasons an enforce run must fall back to shadow; empty means enforce is safe."""
    reasons: Counter[str] = Counter()
    if settings.enforce_require_totals_pass and core.totals_check.status != "pass":
        reasons["totals_not_pass"] += 1
    if not settings.enforce_allow_tax_warn and core.tax_interpretation.status == "warn":
        reasons["tax_warn"] += 1
    low_confidence_lines = sum(1 for line in core.lines if line.parse_confidence_band == "low")
    if low_confidence_lines > settings.enforce_max_low_confidence_lines:
        reasons["low_confidence_lines_exceeded"] += 1
    return reasons


def _summarize_historical_hints(
    hints: tuple[HistoricalPriceHint, ...] | None,
    core: CorrectionResult,
) -> dict[str, int]:
    hint_lines: set[int] = set()
    sample_total = 0
    max_sample = 0
    for hint in hints or ():
        if hint.line_number <= 0 or hint.sample_size <= 0:
            continue
        hint_lines.add(hint.line_number)
        sample_total += hint.sample_size
        max_sample = max(max_sample, hint.sample_size)

    applied = sum(
        1
        for corrected in core.lines
        if corrected.line.line_number in hint_lines and "historical_price_signal_available" in corrected.parse_flags
    )
    return {
        "historical_hint_lines_count": len(hint_lines),
        "historical_hint_sample_size_total": sample_total,
        "historical_hint_max_sample_size": max_sample,
        "historical_hint_lines_applied_count": applied,
    }


def _build_summary(
    correction_input: CorrectionInput,
    core: CorrectionResult,
    requested_mode: CorrectionMode,
    mode: CorrectionMode,
    guard_status: RolloutGuardStatus,
    guard_reasons: Counter[str],
) -> CorrectionSummary:
    band_counts = {"high": 0, "medium": 0, "low": 0, "none": 0}
    parse_flag_counts: Counter[str] = Counter()
    action_type_counts: Counter[str] = Counter()
    lines_with_flags = 0
    lines_with_actions = 0
    for corrected in core.lines:
        band_counts[corrected.parse_confidence_band] += 1
        if corrected.parse_flags:
            lines_with_flags += 1
            parse_flag_counts.update(corrected.parse_flags)
        if corrected.correction_actions:
            lines_with_actions += 1
            action_type_counts.update(action.type for action in corrected.correction_actions)

    tax = core.tax_interpretation
    return CorrectionSummary(
        parser_version=PARSER_VERSION,
        requested_mode=requested_mode,
        mode=mode,
        rollout_guard_status=guard_status,
        rollout_guard_reason_counts=dict(guard_reasons),
        source=correction_input.source,
        line_count=core.stats.line_count,
        changed_line_count=core.stats.changed_line_count,
        correction_actions_applied=core.stats.correction_actions_applied,
        totals_check_status=core.totals_check.status,
        totals_delta_to_total=core.totals_check.delta_to_total,
        totals_line_sum=core.totals_check.lines_sum,
        tax_validation_status=tax.status,
        tax_structure=tax.structure,
        tax_province=tax.province,
        tax_province_source=tax.province_source,
        tax_zero_grocery_candidate=tax.zero_tax_grocery_candidate,
        tax_flag_counts=dict(Counter(tax.flags)),
        tax_label_counts=dict(tax.detected_tax_label_counts),
        parse_confidence_band_counts=band_counts,
        lines_with_parse_flags_count=lines_with_flags,
        lines_with_correction_actions_count=lines_with_actions,
        parse_flag_counts=dict(parse_flag_counts),
        correction_action_type_counts=dict(action_type_counts),
        **_summarize_historical_hints(correction_input.historical_price_hints, core),
    )


def run_post_ocr_correction(
    request: PostOcrCorrectionRequest,
    settings: CorrectionSettings | None = None,
) -> PostOcrCorrectionResult:
    """Run correction for one receipt and decide which lines the caller keeps."""
    settings = settings or load_settings()
    requested_mode = request.mode_override or settings.mode
    correction_input = request.correction_input

    core = run_receipt_correction(correction_input)

    mode = requested_mode
    guard_status: RolloutGuardStatus = "not_applicable"
    guard_reasons: Counter[str] = Counter()
    if requested_mode == "enforce":
        guard_reasons = _rollout_guard_reasons(core, settings)
        if guard_reasons:
            guard_status = "fallback_to_shadow"
            mode = "shadow"
            logger.warning(
                "Correction enforce fell back to shadow: %s",
                ", ".join(sorted(guard_reasons)),
            )
        else:
            guard_status = "pass"

    summary = _build_summary(correction_input, core, requested_mode, mode, guard_status, guard_reasons)
    logger.info(
        "Correction %s (requested %s): %d/%d lines changed, totals %s, tax %s",
        mode,
        requested_mode,
        summary.changed_line_count,
        summary.line_count,
        summary.totals_check_status,
        summary.tax_validation_status,
    )

    lines = (
        tuple(corrected.line for corrected in core.lines) if mode == "enforce" else correction_input.lines
    )
    return PostOcrCorrectionResult(mode=mode, lines=lines, core=core, summary=summary)
