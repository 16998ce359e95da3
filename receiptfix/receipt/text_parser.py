"""Plain-text receipt parsing into correction input.

Used when all we have is OCR text (no provider line items). Each surviving
line becomes one ParsedLine; summary lines feed ``extract_printed_totals``.
"""

import re
from decimal import Decimal

from receiptfix.domain.correction import ParsedLine, TaxLineInput, TotalsInput
from receiptfix.domain.money import round_currency, sum_money

# Header/footer/summary noise, never items
SKIP_PATTERNS = [
    re.compile(r"^(?:sub\s*total|subtotal|grand\s*total|total)\b", re.IGNORECASE),
    re.compile(r"^(?:sales\s+)?tax\b", re.IGNORECASE),
    re.compile(
        r"^(?:g\.?\s*s\.?\s*t|h\.?\s*s\.?\s*t|p\.?\s*s\.?\s*t|q\.?\s*s\.?\s*t|t\.?\s*p\.?\s*s|t\.?\s*v\.?\s*q)\b",
        re.IGNORECASE,
    ),
    re.compile(r"^change\b", re.IGNORECASE),
    re.compile(r"^cash", re.IGNORECASE),
    re.compile(r"^(?:credit|debit|visa|master)", re.IGNORECASE),
    re.compile(r"^thank\s*you", re.IGNORECASE),
    re.compile(r"^\d{2}[/-]\d{2}[/-]\d{2,4}"),  # dates
    re.compile(r"^\d{1,2}:\d{2}"),  # times
    re.compile(r"^(?:tel|phone|fax)", re.IGNORECASE),
    re.compile(r"^www\.|\.com\b|\.ca\b", re.IGNORECASE),
    re.compile(r"^#\d+"),  # transaction numbers
    re.compile(r"^[*=-]+$"),  # separators
    re.compile(r"^(?:store|branch|location)", re.IGNORECASE),
    re.compile(r"^coupon\b", re.IGNORECASE),
    re.compile(r"^discount\b", re.IGNORECASE),
    re.compile(r"^savings", re.IGNORECASE),
    re.compile(r"^member", re.IGNORECASE),
    re.compile(r"^balance", re.IGNORECASE),
]

# (pattern, unit); first match wins
UNIT_PATTERNS = [
    (re.compile(r"\b(\d+(?:\.\d+)?)\s*kg\b", re.IGNORECASE), "kg"),
    (re.compile(r"\b(\d+(?:\.\d+)?)\s*g\b", re.IGNORECASE), "g"),
    (re.compile(r"\b(\d+(?:\.\d+)?)\s*lbs?\b", re.IGNORECASE), "lb"),
    (re.compile(r"\b(\d+(?:\.\d+)?)\s*oz\b", re.IGNORECASE), "oz"),
    (re.compile(r"\b(\d+(?:\.\d+)?)\s*[lL]\b"), "l"),
    (re.compile(r"\b(\d+(?:\.\d+)?)\s*ml\b", re.IGNORECASE), "ml"),
    (re.compile(r"\b(\d+(?:\.\d+)?)\s*gal\b", re.IGNORECASE), "gal"),
    (re.compile(r"\b(\d+(?:\.\d+)?)\s*(?:pk|pack)s?\b", re.IGNORECASE), "pack"),
    (re.compile(r"\b(\d+(?:\.\d+)?)\s*(?:bx|box)\b", re.IGNORECASE), "box"),
    (re.compile(r"\b(\d+(?:\.\d+)?)\s*(?:cs|case)s?\b", re.IGNORECASE), "case_unit"),
    (re.compile(r"\b(\d+(?:\.\d+)?)\s*(?:dz|dozen)\b", re.IGNORECASE), "dozen"),
    (re.compile(r"\b(\d+(?:\.\d+)?)\s*bags?\b", re.IGNORECASE), "bag"),
]

PRICE_PATTERN = re.compile(r"\$?\s*(\d+\.\d{2})\s*$")
QTY_PREFIX_PATTERN = re.compile(r"^(\d+)\s*[xX@]\s*")
QTY_LEADING_PATTERN = re.compile(r"^(\d+)\s+")
NAME_CLEANUP_PATTERN = re.compile(r"[^a-zA-Z0-9\s\-/]")
DIGITS_ONLY_PATTERN = re.compile(r"^\d+$")

# Summary lines for printed totals
SUBTOTAL_LINE_PATTERN = re.compile(r"^sub\s*total", re.IGNORECASE)
TOTAL_LINE_PATTERN = re.compile(r"^(?:grand\s*)?total\b(?!.*sub)", re.IGNORECASE)
TRAILING_AMOUNT_PATTERN = re.compile(r"(-?\d+\.\d{2})\s*$")
RATE_PERCENT_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*%")

# (pattern, canonical label) for printed tax lines
TAX_LINE_LABELS = [
    (re.compile(r"^h\.?\s*s\.?\s*t\b", re.IGNORECASE), "HST"),
    (re.compile(r"^q\.?\s*s\.?\s*t\b", re.IGNORECASE), "QST"),
    (re.compile(r"^t\.?\s*v\.?\s*q\b", re.IGNORECASE), "TVQ"),
    (re.compile(r"^g\.?\s*s\.?\s*t\b", re.IGNORECASE), "GST"),
    (re.compile(r"^t\.?\s*p\.?\s*s\b", re.IGNORECASE), "TPS"),
    (re.compile(r"^(?:sales\s+)?tax\b", re.IGNORECASE), "Tax"),
]

MAX_LEADING_QUANTITY = 999


def _should_skip_line(line: str) -> bool:
    if any(pattern.search(line) for pattern in SKIP_PATTERNS):
        return True
    return len(line) < 3 or DIGITS_ONLY_PATTERN.match(line) is not None


def _parse_receipt_line(raw_text: str, line_number: int) -> ParsedLine:
    """Parse one item line, e.g. ``2 x CHICKEN BREAST 12.98`` or ``MILK 2L 5.49``."""
    text = raw_text.strip()
    quantity: Decimal | None = None
    unit: str | None = None
    line_cost: Decimal | None = None
    unit_cost: Decimal | None = None

    price_match = PRICE_PATTERN.search(text)
    if price_match:
        line_cost = Decimal(price_match.group(1))
        text = text[: price_match.start()].strip()

    qty_prefix_match = QTY_PREFIX_PATTERN.match(text)
    if qty_prefix_match:
        quantity = Decimal(qty_prefix_match.group(1))
        text = text[qty_prefix_match.end() :].strip()

    for pattern, pattern_unit in UNIT_PATTERNS:
        unit_match = pattern.search(text)
        if unit_match:
            quantity = Decimal(unit_match.group(1))
            unit = pattern_unit
            text = (text[: unit_match.start()] + text[unit_match.end() :]).strip()
            break

    if quantity is None:
        leading_match = QTY_LEADING_PATTERN.match(text)
        if leading_match and 1 <= int(leading_match.group(1)) <= MAX_LEADING_QUANTITY:
            quantity = Decimal(leading_match.group(1))
            unit = "each"
            text = text[leading_match.end() :].strip()

    if line_cost is not None and quantity is not None and quantity > 0:
        unit_cost = round_currency(line_cost / quantity)

    name = re.sub(r"\s+", " ", NAME_CLEANUP_PATTERN.sub("", text)).strip()
    return ParsedLine(
        line_number=line_number,
        raw_text=raw_text.strip(),
        parsed_name=name or None,
        quantity=quantity if quantity is not None else Decimal(1),
        unit=unit or "each",
        line_cost=line_cost,
        unit_cost=unit_cost,
    )


def parse_receipt_text(raw_text: str) -> list[ParsedLine]:
    """
    Parse raw OCR text into item lines.

    Header, footer, payment and summary lines are dropped. Line numbers are
    assigned 1..n over the lines that survive.
    """
    items: list[ParsedLine] = []
    for line in (line.strip() for line in raw_text.splitlines()):
        if not line or _should_skip_line(line):
            continue
        items.append(_parse_receipt_line(line, len(items) + 1))
    return items


def _trailing_amount(line: str) -> Decimal | None:
    match = TRAILING_AMOUNT_PATTERN.search(line)
    return Decimal(match.group(1)) if match else None


def _tax_line_label(line: str) -> str | None:
    for pattern, label in TAX_LINE_LABELS:
        if pattern.match(line):
            return label
    return None


def extract_printed_totals(raw_text: str) -> TotalsInput | None:
    """
    Pull printed subtotal, tax lines and total from receipt text.

    The first subtotal and total lines win. Every tax line is kept; the printed
    tax is their sum. Returns None when the text carries no summary at all.
    """
    subtotal: Decimal | None = None
    total: Decimal | None = None
    tax_lines: list[TaxLineInput] = []

    for line in (line.strip() for line in raw_text.splitlines()):
        if not line:
            continue
        if SUBTOTAL_LINE_PATTERN.match(line):
            if subtotal is None:
                subtotal = _trailing_amount(line)
            continue
        if TOTAL_LINE_PATTERN.match(line):
            if total is None:
                total = _trailing_amount(line)
            continue

        label = _tax_line_label(line)
        if label is None:
            continue
        rate_match = RATE_PERCENT_PATTERN.search(line)
        tax_lines.append(
            TaxLineInput(
                label=label,
                amount=_trailing_amount(line),
                rate_percent=Decimal(rate_match.group(1)) if rate_match else None,
            )
        )

    if subtotal is None and total is None and not tax_lines:
        return None

    return TotalsInput(
        subtotal=subtotal,
        tax=sum_money(tax_line.amount for tax_line in tax_lines),
        total=total,
        tax_lines=tuple(tax_lines),
    )
