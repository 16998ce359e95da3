"""Tax jurisdiction interpretation and validation for Ontario and Quebec receipts.

Ontario charges a single 13% HST. Quebec charges 5% GST (TPS) plus 9.975% QST
(TVQ), usually printed as two separate lines. Most basic groceries are
zero-rated, so a receipt with subtotal == total and no tax line is normal.
"""

import re
import unicodedata
from collections.abc import Mapping, Sequence
from decimal import Decimal

from receiptfix.domain.correction import (
    CheckStatus,
    ParsedLine,
    ProvinceCode,
    ProvinceSource,
    TaxAmounts,
    TaxComponents,
    TaxInterpretation,
    TaxStructure,
    TotalsInput,
)
from receiptfix.domain.money import round_currency, same_money, sum_money

from .common import ON_HST_RATE, QC_GST_RATE, QC_QST_RATE, TAX_TOLERANCE, _unique

NON_ALPHANUMERIC_PATTERN = re.compile(r"[^a-zA-Z0-9]")
ONTARIO_ADDRESS_PATTERN = re.compile(r"\b(ON|ONTARIO)\b")
QUEBEC_ADDRESS_PATTERN = re.compile(r"\b(QC|QUEBEC)\b")

# Checked in order; "H.S.T." compacts to "hst", "TPS/GST" matches "gst" first.
TAX_LABEL_KEYS = ("hst", "gst", "qst", "tps", "tvq", "tax")

ZERO = Decimal("0")


def normalize_tax_label_key(label: str) -> str:
    """Map a printed tax label to one of hst/gst/qst/tps/tvq/tax/other."""
    compact = NON_ALPHANUMERIC_PATTERN.sub("", label).lower()
    for key in TAX_LABEL_KEYS:
        if key in compact:
            return key
    return "other"


def _fold_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def derive_province_from_address_text(address_text: str | None) -> ProvinceCode | None:
    if not address_text:
        return None
    normalized = _fold_accents(address_text).upper()
    if ONTARIO_ADDRESS_PATTERN.search(normalized):
        return "ON"
    if QUEBEC_ADDRESS_PATTERN.search(normalized):
        return "QC"
    return None


def derive_province_from_tax_labels(label_counts: Mapping[str, int]) -> ProvinceCode | None:
    """QST/TVQ means Quebec; HST without QST means Ontario; GST alone says nothing."""
    qst_like = label_counts.get("qst", 0) + label_counts.get("tvq", 0)
    if qst_like > 0:
        return "QC"
    if label_counts.get("hst", 0) > 0:
        return "ON"
    return None


def classify_tax_structure(
    label_counts: Mapping[str, int],
    tax_total_printed: Decimal | None,
    tax_lines_count: int,
) -> TaxStructure:
    hst = label_counts.get("hst", 0)
    gst_like = label_counts.get("gst", 0) + label_counts.get("tps", 0)
    qst_like = label_counts.get("qst", 0) + label_counts.get("tvq", 0)

    if hst > 0:
        return "on_hst"
    if gst_like > 0 and qst_like > 0:
        return "qc_gst_qst"
    if qst_like > 0:
        return "qst_only"
    if gst_like > 0:
        return "gst_only"
    if label_counts.get("tax", 0) > 0:
        return "generic_tax"

    if tax_lines_count == 0:
        if tax_total_printed is None or same_money(tax_total_printed, ZERO):
            return "no_tax_line"
        return "generic_tax"
    return "unknown"


def _delta(actual: Decimal | None, expected: Decimal | None) -> Decimal | None:
    if actual is None or expected is None:
        return None
    return round_currency(actual - expected)


def _within_tolerance(delta: Decimal | None) -> bool:
    return delta is not None and abs(delta) <= TAX_TOLERANCE


def build_tax_interpretation(
    lines: Sequence[ParsedLine],
    totals: TotalsInput | None,
) -> TaxInterpretation:
    """
    Work out the receipt's province and tax structure, then validate the printed tax.

    Province precedence: caller hint, then tax labels, then address text.
    Conflicting lower-priority signals raise a flag but never override.
    Validation runs only for ON and QC; anything else stays ``not_evaluated``
    unless the receipt is a zero-tax grocery candidate.
    """
    subtotal = totals.subtotal if totals else None
    tax_total_printed = totals.tax if totals else None
    total = totals.total if totals else None
    tax_lines = totals.tax_lines if totals else ()

    label_counts: dict[str, int] = {}
    detected_labels: list[str] = []
    amounts_by_key: dict[str, list[Decimal]] = {}
    for tax_line in tax_lines:
        key = normalize_tax_label_key(tax_line.label)
        detected_labels.append(key)
        label_counts[key] = label_counts.get(key, 0) + 1
        if tax_line.amount is not None:
            amounts_by_key.setdefault(key, []).append(round_currency(tax_line.amount))

    hst_amount = sum_money(amounts_by_key.get("hst", ()))
    gst_amount = sum_money(amounts_by_key.get("gst", ()))
    qst_amount = sum_money(amounts_by_key.get("qst", ()))
    tps_amount = sum_money(amounts_by_key.get("tps", ()))
    tvq_amount = sum_money(amounts_by_key.get("tvq", ()))
    tax_total_from_lines = sum_money(tax_line.amount for tax_line in tax_lines)

    province: ProvinceCode | None = totals.province_hint if totals else None
    province_source: ProvinceSource = (
        "google_places"
        if province is not None and totals is not None and totals.province_hint_source == "google_places"
        else "none"
    )
    label_province = derive_province_from_tax_labels(label_counts)
    address_province = derive_province_from_address_text(totals.address_text if totals else None)

    flags: list[str] = []
    if province is None and label_province is not None:
        province, province_source = label_province, "tax_labels"
    if province is None and address_province is not None:
        province, province_source = address_province, "address_fallback"

    if province is not None and label_province is not None and province != label_province:
        flags.append("province_signal_conflict_tax_labels")
    if province is not None and address_province is not None and province != address_province:
        flags.append("province_signal_conflict_address_fallback")

    structure = classify_tax_structure(label_counts, tax_total_printed, len(tax_lines))

    qst_combined = sum_money([qst_amount, tvq_amount])
    gst_combined = sum_money([gst_amount, tps_amount])
    on_expected = None if subtotal is None else round_currency(subtotal * ON_HST_RATE)
    qc_gst_expected = None if subtotal is None else round_currency(subtotal * QC_GST_RATE)
    qc_qst_expected = None if subtotal is None else round_currency(subtotal * QC_QST_RATE)
    qc_total_expected = (
        None
        if qc_gst_expected is None or qc_qst_expected is None
        else round_currency(qc_gst_expected + qc_qst_expected)
    )

    effective_tax_total = tax_total_printed if tax_total_printed is not None else tax_total_from_lines

    zero_tax_grocery_candidate = (
        subtotal is not None
        and total is not None
        and same_money(subtotal, total)
        and (effective_tax_total is None or same_money(effective_tax_total, ZERO))
        and len(tax_lines) == 0
        and len(lines) > 0
    )
    if zero_tax_grocery_candidate:
        flags.append("zero_tax_subtotal_equals_total_candidate")

    on_delta = _delta(effective_tax_total, on_expected)
    qc_gst_delta = _delta(gst_combined, qc_gst_expected)
    qc_qst_delta = _delta(qst_combined, qc_qst_expected)
    qc_total_delta = _delta(effective_tax_total, qc_total_expected)

    hst_count = label_counts.get("hst", 0)
    gst_like = label_counts.get("gst", 0) + label_counts.get("tps", 0)
    qst_like = label_counts.get("qst", 0) + label_counts.get("tvq", 0)

    status: CheckStatus = "not_evaluated"
    if province == "ON":
        if qst_like > 0:
            flags.append("tax_structure_unexpected_for_on")
        if gst_like > 0 and hst_count == 0:
            flags.append("gst_only_unexpected_for_on")
        if len(tax_lines) > 1 and qst_like == 0 and gst_like == 0 and hst_count > 0:
            flags.append("multiple_tax_lines_unexpected_for_on")

        if zero_tax_grocery_candidate:
            status = "pass"
        elif subtotal is not None and effective_tax_total is not None:
            structure_ok = (
                "tax_structure_unexpected_for_on" not in flags and "gst_only_unexpected_for_on" not in flags
            )
            status = "pass" if _within_tolerance(on_delta) and structure_ok else "warn"
        elif subtotal is not None and total is not None:
            status = "warn"
            flags.append("tax_missing_for_on")
    elif province == "QC":
        has_gst = gst_combined is not None
        has_qst = qst_combined is not None
        if hst_count > 0:
            flags.append("hst_unexpected_for_qc")
        if not (has_gst and has_qst) and not zero_tax_grocery_candidate:
            flags.append("missing_qc_tax_components")

        if zero_tax_grocery_candidate:
            status = "pass"
        elif subtotal is not None and has_gst and has_qst:
            components_ok = _within_tolerance(qc_gst_delta) and _within_tolerance(qc_qst_delta)
            status = "pass" if components_ok and "hst_unexpected_for_qc" not in flags else "warn"
        elif subtotal is not None and effective_tax_total is not None:
            status = "warn"
    elif zero_tax_grocery_candidate:
        status = "pass"

    if province is None and tax_lines:
        flags.append("province_undetermined")

    return TaxInterpretation(
        province=province,
        province_source=province_source,
        structure=structure,
        status=status,
        zero_tax_grocery_candidate=zero_tax_grocery_candidate,
        detected_tax_labels=tuple(detected_labels),
        detected_tax_label_counts=label_counts,
        flags=_unique(flags),
        amounts=TaxAmounts(
            tax_total_printed=tax_total_printed,
            tax_total_from_lines=tax_total_from_lines,
            hst=hst_amount,
            gst=gst_amount,
            qst=qst_amount,
            tps=tps_amount,
            tvq=tvq_amount,
        ),
        expected=TaxComponents(
            on_hst=on_expected,
            qc_gst=qc_gst_expected,
            qc_qst=qc_qst_expected,
            qc_total=qc_total_expected,
        ),
        deltas=TaxComponents(
            on_hst=on_delta,
            qc_gst=qc_gst_delta,
            qc_qst=qc_qst_delta,
            qc_total=qc_total_delta,
        ),
    )
