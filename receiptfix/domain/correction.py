"""Data models for post-scan receipt correction.

Input models (ParsedLine, TotalsInput, HistoricalPriceHint, CorrectionInput) are
frozen: the correction core never mutates what the caller hands in, it builds
corrected copies with ``dataclasses.replace``. Result models carry ``to_dict()``
so callers can emit stable JSON.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Literal

from receiptfix.domain.money import format_money, is_whole, to_decimal

logger = logging.getLogger(__name__)

CorrectionSource = Literal["parsed_text", "tabscanner"]
ConfidenceBand = Literal["high", "medium", "low", "none"]
ProvinceCode = Literal["ON", "QC"]
ProvinceSource = Literal["google_places", "tax_labels", "address_fallback", "none"]
TaxStructure = Literal[
    "on_hst",
    "qc_gst_qst",
    "gst_only",
    "qst_only",
    "generic_tax",
    "no_tax_line",
    "unknown",
]
CheckStatus = Literal["not_evaluated", "pass", "warn"]

ActionValue = str | Decimal | int | None

_SOURCES = ("parsed_text", "tabscanner")
_PROVINCES = ("ON", "QC")


class ReceiptInputError(ValueError):
    """Raised when correction input cannot be built from caller-supplied data."""


@dataclass(frozen=True)
class ProduceMatch:
    """Catalog produce match attached upstream; the core passes it through."""

    display_name: str
    commodity: str
    variety: str | None
    language_code: str
    match_method: Literal["plu", "name_fuzzy"]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProduceMatch:
        return cls(
            display_name=str(data.get("display_name", "")),
            commodity=str(data.get("commodity", "")),
            variety=None if data.get("variety") is None else str(data["variety"]),
            language_code=str(data.get("language_code", "")),
            match_method="plu" if data.get("match_method") == "plu" else "name_fuzzy",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "display_name": self.display_name,
            "commodity": self.commodity,
            "variety": self.variety,
            "language_code": self.language_code,
            "match_method": self.match_method,
        }


@dataclass(frozen=True)
class ParsedLine:
    """A single scanned receipt line, as produced by the scan provider."""

    line_number: int
    raw_text: str
    parsed_name: str | None = None
    quantity: Decimal | None = None
    unit: str | None = None
    line_cost: Decimal | None = None
    unit_cost: Decimal | None = None
    plu_code: int | None = None
    organic_flag: bool | None = None
    produce_match: ProduceMatch | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ParsedLine:
        line_number = data.get("line_number")
        if isinstance(line_number, bool) or not isinstance(line_number, int) or line_number <= 0:
            raise ReceiptInputError(f"line_number must be a positive integer, got {line_number!r}")

        plu_raw = data.get("plu_code")
        plu_code: int | None = None
        if plu_raw is not None:
            plu_decimal = to_decimal(plu_raw)
            plu_code = int(plu_decimal) if plu_decimal is not None else None

        organic_raw = data.get("organic_flag")
        produce_raw = data.get("produce_match")
        name = data.get("parsed_name")
        return cls(
            line_number=line_number,
            raw_text=str(data.get("raw_text") or ""),
            parsed_name=None if name is None else str(name),
            quantity=to_decimal(data.get("quantity")),
            unit=None if data.get("unit") is None else str(data["unit"]),
            line_cost=to_decimal(data.get("line_cost")),
            unit_cost=to_decimal(data.get("unit_cost")),
            plu_code=plu_code,
            organic_flag=None if organic_raw is None else bool(organic_raw),
            produce_match=ProduceMatch.from_dict(produce_raw) if isinstance(produce_raw, Mapping) else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "line_number": self.line_number,
            "raw_text": self.raw_text,
            "parsed_name": self.parsed_name,
            "quantity": None if self.quantity is None else str(self.quantity),
            "unit": self.unit,
            "line_cost": format_money(self.line_cost),
            "unit_cost": format_money(self.unit_cost),
            "plu_code": self.plu_code,
            "organic_flag": self.organic_flag,
            "produce_match": None if self.produce_match is None else self.produce_match.to_dict(),
        }


@dataclass(frozen=True)
class TaxLineInput:
    """One printed tax line, e.g. ``H.S.T. 13% 1.30``."""

    label: str
    amount: Decimal | None = None
    rate_percent: Decimal | None = None


@dataclass(frozen=True)
class TotalsInput:
    """Printed receipt totals plus jurisdiction hints."""

    subtotal: Decimal | None = None
    tax: Decimal | None = None
    total: Decimal | None = None
    currency: str | None = None
    tax_lines: tuple[TaxLineInput, ...] = ()
    province_hint: ProvinceCode | None = None
    province_hint_source: Literal["google_places", "manual"] | None = None
    address_text: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TotalsInput:
        tax_lines: list[TaxLineInput] = []
        for raw_line in data.get("tax_lines") or ():
            # Tax lines without a string label carry nothing we can classify.
            if not isinstance(raw_line, Mapping) or not isinstance(raw_line.get("label"), str):
                continue
            tax_lines.append(
                TaxLineInput(
                    label=raw_line["label"],
                    amount=to_decimal(raw_line.get("amount")),
                    rate_percent=to_decimal(raw_line.get("rate_percent")),
                )
            )

        province_hint = data.get("province_hint")
        hint_source = data.get("province_hint_source")
        currency = data.get("currency")
        address = data.get("address_text")
        return cls(
            subtotal=to_decimal(data.get("subtotal")),
            tax=to_decimal(data.get("tax")),
            total=to_decimal(data.get("total")),
            currency=None if currency is None else str(currency),
            tax_lines=tuple(tax_lines),
            province_hint=province_hint if province_hint in _PROVINCES else None,
            province_hint_source=hint_source if hint_source in ("google_places", "manual") else None,
            address_text=None if address is None else str(address),
        )


@dataclass(frozen=True)
class HistoricalPriceHint:
    """Price prior for one line, supplied by the caller's history lookup."""

    line_number: int
    reference_line_cost: Decimal
    reference_unit_cost: Decimal | None = None
    sample_size: int = 1
    source: Literal["receipt_line_history", "item_price_history", "manual"] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HistoricalPriceHint | None:
        """None when the line number, reference cost or sample size is missing or unreadable."""
        line_number = to_decimal(data.get("line_number"))
        reference = to_decimal(data.get("reference_line_cost"))
        sample_size = to_decimal(data.get("sample_size"))
        if line_number is None or reference is None or sample_size is None:
            return None
        source = data.get("source")
        return cls(
            # Fractional line numbers can never match a line; 0 gets the hint dropped downstream.
            line_number=int(line_number) if is_whole(line_number) else 0,
            reference_line_cost=reference,
            reference_unit_cost=to_decimal(data.get("reference_unit_cost")),
            sample_size=int(sample_size.to_integral_value(rounding=ROUND_HALF_UP)),
            source=source if source in ("receipt_line_history", "item_price_history", "manual") else None,
        )


def parse_historical_price_hints(raw_hints: Iterable[Any]) -> tuple[HistoricalPriceHint, ...]:
    """Build hints from a JSON array, dropping entries that cannot be used."""
    hints: list[HistoricalPriceHint] = []
    for raw_hint in raw_hints:
        hint = HistoricalPriceHint.from_dict(raw_hint) if isinstance(raw_hint, Mapping) else None
        if hint is None:
            logger.debug("Dropping unusable historical price hint: %r", raw_hint)
            continue
        hints.append(hint)
    return tuple(hints)


@dataclass(frozen=True)
class CorrectionInput:
    """Everything one correction run needs for a single receipt."""

    source: CorrectionSource
    lines: tuple[ParsedLine, ...]
    totals: TotalsInput | None = None
    historical_price_hints: tuple[HistoricalPriceHint, ...] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CorrectionInput:
        source = data.get("source", "parsed_text")
        if source not in _SOURCES:
            raise ReceiptInputError(f"Unsupported correction source: {source!r}")
        raw_lines = data.get("lines")
        if not isinstance(raw_lines, Sequence) or isinstance(raw_lines, str):
            raise ReceiptInputError("Correction input requires a 'lines' array")

        totals_raw = data.get("totals")
        hints_raw = data.get("historical_price_hints")
        return cls(
            source=source,
            lines=tuple(ParsedLine.from_dict(line) for line in raw_lines),
            totals=TotalsInput.from_dict(totals_raw) if isinstance(totals_raw, Mapping) else None,
            historical_price_hints=(
                parse_historical_price_hints(hints_raw)
                if isinstance(hints_raw, Sequence) and not isinstance(hints_raw, str)
                else None
            ),
        )


@dataclass(frozen=True)
class CorrectionAction:
    """Audit entry for one applied change."""

    type: str
    before: ActionValue
    after: ActionValue
    confidence: float
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "before": _action_value(self.before),
            "after": _action_value(self.after),
            "confidence": self.confidence,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class CorrectedLine:
    """Final state of one line together with its confidence and audit trail."""

    line: ParsedLine
    parse_confidence_score: float | None
    parse_confidence_band: ConfidenceBand
    parse_flags: tuple[str, ...] = ()
    correction_actions: tuple[CorrectionAction, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "line": self.line.to_dict(),
            "parse_confidence_score": self.parse_confidence_score,
            "parse_confidence_band": self.parse_confidence_band,
            "parse_flags": list(self.parse_flags),
            "correction_actions": [action.to_dict() for action in self.correction_actions],
        }


@dataclass(frozen=True)
class TotalsCheck:
    """Sum-of-lines versus printed total."""

    subtotal_printed: Decimal | None
    tax_printed: Decimal | None
    total_printed: Decimal | None
    lines_sum: Decimal | None
    delta_to_total: Decimal | None
    status: CheckStatus
    tolerance: Decimal
    outlier_line_numbers: tuple[int, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "subtotal_printed": format_money(self.subtotal_printed),
            "tax_printed": format_money(self.tax_printed),
            "total_printed": format_money(self.total_printed),
            "lines_sum": format_money(self.lines_sum),
            "delta_to_total": format_money(self.delta_to_total),
            "status": self.status,
            "tolerance": format_money(self.tolerance),
            "outlier_line_numbers": list(self.outlier_line_numbers),
        }


@dataclass(frozen=True)
class TaxAmounts:
    tax_total_printed: Decimal | None = None
    tax_total_from_lines: Decimal | None = None
    hst: Decimal | None = None
    gst: Decimal | None = None
    qst: Decimal | None = None
    tps: Decimal | None = None
    tvq: Decimal | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "tax_total_printed": format_money(self.tax_total_printed),
            "tax_total_from_lines": format_money(self.tax_total_from_lines),
            "hst": format_money(self.hst),
            "gst": format_money(self.gst),
            "qst": format_money(self.qst),
            "tps": format_money(self.tps),
            "tvq": format_money(self.tvq),
        }


@dataclass(frozen=True)
class TaxComponents:
    """Per-component tax amounts; used for both expected values and deltas."""

    on_hst: Decimal | None = None
    qc_gst: Decimal | None = None
    qc_qst: Decimal | None = None
    qc_total: Decimal | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "on_hst": format_money(self.on_hst),
            "qc_gst": format_money(self.qc_gst),
            "qc_qst": format_money(self.qc_qst),
            "qc_total": format_money(self.qc_total),
        }


@dataclass(frozen=True)
class TaxInterpretation:
    """Jurisdiction, tax-line structure and validation outcome for a receipt."""

    province: ProvinceCode | None
    province_source: ProvinceSource
    structure: TaxStructure
    status: CheckStatus
    zero_tax_grocery_candidate: bool
    detected_tax_labels: tuple[str, ...] = ()
    detected_tax_label_counts: Mapping[str, int] = field(default_factory=dict)
    flags: tuple[str, ...] = ()
    amounts: TaxAmounts = field(default_factory=TaxAmounts)
    expected: TaxComponents = field(default_factory=TaxComponents)
    deltas: TaxComponents = field(default_factory=TaxComponents)

    def to_dict(self) -> dict[str, Any]:
        return {
            "province": self.province,
            "province_source": self.province_source,
            "structure": self.structure,
            "status": self.status,
            "zero_tax_grocery_candidate": self.zero_tax_grocery_candidate,
            "detected_tax_labels": list(self.detected_tax_labels),
            "detected_tax_label_counts": dict(self.detected_tax_label_counts),
            "flags": list(self.flags),
            "amounts": self.amounts.to_dict(),
            "expected": self.expected.to_dict(),
            "deltas": self.deltas.to_dict(),
        }


@dataclass(frozen=True)
class CorrectionStats:
    line_count: int
    changed_line_count: int
    correction_actions_applied: int

    def to_dict(self) -> dict[str, int]:
        return {
            "line_count": self.line_count,
            "changed_line_count": self.changed_line_count,
            "correction_actions_applied": self.correction_actions_applied,
        }


@dataclass(frozen=True)
class CorrectionResult:
    """Output of one correction run."""

    lines: tuple[CorrectedLine, ...]
    totals_check: TotalsCheck
    tax_interpretation: TaxInterpretation
    stats: CorrectionStats

    def to_dict(self) -> dict[str, Any]:
        return {
            "lines": [line.to_dict() for line in self.lines],
            "totals_check": self.totals_check.to_dict(),
            "tax_interpretation": self.tax_interpretation.to_dict(),
            "stats": self.stats.to_dict(),
        }


def _action_value(value: ActionValue) -> str | int | None:
    if isinstance(value, Decimal):
        return format_money(value)
    return value
