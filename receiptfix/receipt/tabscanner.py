"""Tabscanner result normalization and conversion into correction input.

Tabscanner returns loosely typed JSON (numbers as strings, missing keys,
``descClean`` sometimes empty). ``normalize_tabscanner_result`` coerces it into
frozen dataclasses; ``build_tabscanner_correction_input`` turns those into the
lines and totals the corrector expects.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Literal

from receiptfix.domain.correction import (
    CorrectionInput,
    HistoricalPriceHint,
    ParsedLine,
    ProvinceCode,
    TotalsInput,
)
from receiptfix.domain.money import round_currency, to_decimal


@dataclass(frozen=True)
class TabscannerLineItem:
    desc: str
    desc_clean: str
    qty: Decimal
    price: Decimal
    line_total: Decimal
    unit: str | None = None
    product_code: str | None = None


@dataclass(frozen=True)
class TabscannerResult:
    establishment: str | None
    date: str | None
    total: Decimal | None
    sub_total: Decimal | None
    tax: Decimal | None
    line_items: tuple[TabscannerLineItem, ...]
    currency: str | None
    address: str | None
    payment_method: str | None


def _optional_text(value: Any) -> str | None:
    return str(value) if value else None


def _number_or(value: Any, default: Decimal) -> Decimal:
    """Provider numbers that are missing, zero or garbage fall back to ``default``."""
    number = to_decimal(value)
    return number if number else default


def _normalize_line_item(item: Mapping[str, Any]) -> TabscannerLineItem:
    desc = str(item.get("desc") or "")
    return TabscannerLineItem(
        desc=desc,
        desc_clean=str(item.get("descClean") or desc),
        qty=_number_or(item.get("qty"), Decimal(1)),
        price=_number_or(item.get("price"), Decimal(0)),
        line_total=_number_or(item.get("lineTotal"), Decimal(0)),
        unit=_optional_text(item.get("unit")),
        product_code=_optional_text(item.get("productCode")),
    )


def normalize_tabscanner_result(raw: Mapping[str, Any]) -> TabscannerResult:
    """Coerce a raw Tabscanner ``result`` object."""
    raw_items = raw.get("lineItems")
    line_items = (
        tuple(_normalize_line_item(item) for item in raw_items if isinstance(item, Mapping))
        if isinstance(raw_items, list)
        else ()
    )
    return TabscannerResult(
        establishment=_optional_text(raw.get("establishment")),
        date=_optional_text(raw.get("date")),
        total=to_decimal(raw.get("total")),
        sub_total=to_decimal(raw.get("subTotal")),
        tax=to_decimal(raw.get("tax")),
        line_items=line_items,
        currency=_optional_text(raw.get("currency")),
        address=_optional_text(raw.get("address")),
        payment_method=_optional_text(raw.get("paymentMethod")),
    )


def _to_parsed_line(item: TabscannerLineItem, line_number: int) -> ParsedLine:
    unit_cost = round_currency(item.line_total / item.qty) if item.qty > 0 else item.price
    return ParsedLine(
        line_number=line_number,
        raw_text=item.desc,
        parsed_name=item.desc_clean or item.desc or None,
        quantity=item.qty,
        unit="each",
        line_cost=item.line_total,
        unit_cost=unit_cost,
    )


def build_tabscanner_correction_input(
    result: TabscannerResult,
    historical_price_hints: Iterable[HistoricalPriceHint] | None = None,
    province_hint: ProvinceCode | None = None,
    province_hint_source: Literal["google_places", "manual"] | None = None,
) -> CorrectionInput:
    """
    Build correction input from a normalized Tabscanner result.

    Line numbers follow the provider's item order starting at 1. The store
    address is passed through as ``address_text`` for province fallback.
    """
    lines = tuple(_to_parsed_line(item, index + 1) for index, item in enumerate(result.line_items))
    totals = TotalsInput(
        subtotal=result.sub_total,
        tax=result.tax,
        total=result.total,
        currency=result.currency,
        province_hint=province_hint,
        province_hint_source=province_hint_source if province_hint is not None else None,
        address_text=result.address,
    )
    return CorrectionInput(
        source="tabscanner",
        lines=lines,
        totals=totals,
        historical_price_hints=None if historical_price_hints is None else tuple(historical_price_hints),
    )
