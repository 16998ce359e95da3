"""Alternate numeric readings of a line's trailing cost token.

OCR regularly drops the decimal point ("949" for 9.49), reads a zero as the
letter O ("4.O9"), or splits one price across two tokens ("9 49"). For each
line we propose every plausible reading and leave the choice to the scorer.
"""

import re
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Literal

from receiptfix.domain.correction import ParsedLine
from receiptfix.domain.money import is_whole, round_currency

from .common import _unique

NumericCandidateOrigin = Literal[
    "raw_decimal",
    "raw_split_decimal",
    "raw_integer",
    "inferred_decimal_shift_1",
    "inferred_decimal_shift_2",
    "inferred_decimal_shift_3",
    "inferred_decimal_shift_4",
]

# O/o anywhere in the trailing numeric-looking run, e.g. "4.O9" or "1O 49"
OCR_TRAILING_O_PATTERN = re.compile(r"[Oo](?=[0-9Oo.$%/\-\s]*$)")

SPLIT_DECIMAL_PATTERN = re.compile(r"(?:^|[^\d])(\d{1,3})\s+(\d{2})\s*$", re.ASCII)
DECIMAL_PATTERN = re.compile(r"(?:^|[^\d])(\d+\.\d{1,2})\s*$", re.ASCII)
INTEGER_PATTERN = re.compile(r"(?:^|[^\d])(\d{2,6})\s*$", re.ASCII)

# (places, origin, aggressive); order matters for first-seen dedupe.
DECIMAL_SHIFTS: tuple[tuple[int, NumericCandidateOrigin, bool], ...] = (
    (2, "inferred_decimal_shift_2", False),
    (1, "inferred_decimal_shift_1", False),
    (3, "inferred_decimal_shift_3", True),
    (4, "inferred_decimal_shift_4", True),
)

# Higher rank wins when two readings land on the same cent value.
ORIGIN_RANK: dict[str, int] = {
    "raw_split_decimal": 7,
    "raw_decimal": 6,
    "inferred_decimal_shift_2": 5,
    "raw_integer": 4,
    "inferred_decimal_shift_1": 3,
    "inferred_decimal_shift_3": 2,
}


@dataclass(frozen=True)
class RawNumericHint:
    """A numeric token found at the end of the raw OCR text."""

    kind: Literal["decimal", "split_decimal", "integer"]
    raw_token: str
    value: Decimal
    flags: tuple[str, ...]
    concatenated_integer_value: int | None = None


@dataclass(frozen=True)
class NumericCandidateProposal:
    """One alternate reading of a line cost."""

    value: Decimal
    origin: NumericCandidateOrigin
    raw_token: str | None
    flags: tuple[str, ...]
    aggressive: bool


def _normalize_trailing_numeric_text(raw_text: str) -> tuple[str, bool]:
    """Replace O/o with 0 inside the trailing numeric run."""
    normalized = OCR_TRAILING_O_PATTERN.sub("0", raw_text)
    return normalized, normalized != raw_text


def _extract_raw_numeric_hints(raw_text: str) -> list[RawNumericHint]:
    """
    Find trailing numeric tokens in raw OCR text.

    Extraction order: split decimal ("9 49"), decimal ("9.49"), integer ("949").
    One text can yield several hints, e.g. "MILK 9 49" gives a split decimal and
    the integer 49.
    """
    text, normalized_ocr_chars = _normalize_trailing_numeric_text(raw_text.strip())
    shared_flags: tuple[str, ...] = ("ocr_o_to_zero_normalized",) if normalized_ocr_chars else ()
    hints: list[RawNumericHint] = []

    split_match = SPLIT_DECIMAL_PATTERN.search(text)
    if split_match:
        left, right = split_match.group(1), split_match.group(2)
        hints.append(
            RawNumericHint(
                kind="split_decimal",
                raw_token=f"{left} {right}",
                value=round_currency(Decimal(f"{left}.{right}")),
                flags=("split_numeric_token_detected", *shared_flags),
                concatenated_integer_value=int(f"{left}{right}"),
            )
        )

    decimal_match = DECIMAL_PATTERN.search(text)
    if decimal_match:
        token = decimal_match.group(1)
        hints.append(
            RawNumericHint(
                kind="decimal",
                raw_token=token,
                value=round_currency(Decimal(token)),
                flags=shared_flags,
            )
        )

    integer_match = INTEGER_PATTERN.search(text)
    if integer_match:
        token = integer_match.group(1)
        hints.append(
            RawNumericHint(
                kind="integer",
                raw_token=token,
                value=Decimal(int(token)),
                flags=shared_flags,
            )
        )

    return hints


def _push_unique_proposal(proposals: list[NumericCandidateProposal], proposal: NumericCandidateProposal) -> None:
    """Append a proposal, merging it into an existing one with the same cent value."""
    key = round_currency(proposal.value)
    for index, existing in enumerate(proposals):
        if round_currency(existing.value) != key:
            continue
        merged_flags = _unique([*existing.flags, *proposal.flags])
        if ORIGIN_RANK.get(proposal.origin, 1) > ORIGIN_RANK.get(existing.origin, 1):
            proposals[index] = replace(proposal, flags=merged_flags)
        else:
            proposals[index] = replace(existing, flags=merged_flags)
        return
    proposals.append(proposal)


def _build_integer_shift_proposals(
    integer_value: int,
    raw_token: str | None,
    inherited_flags: tuple[str, ...],
) -> list[NumericCandidateProposal]:
    """Decimal-shift readings of an all-digit price (949 -> 9.49, 94.9, ...)."""
    if integer_value <= 0:
        return []

    digits = str(integer_value)
    if len(digits) < 2:
        return []

    proposals: list[NumericCandidateProposal] = []
    for places, origin, aggressive in DECIMAL_SHIFTS:
        # The seed must keep at least one digit left of the inferred point.
        if len(digits) <= places:
            continue
        flags = ["decimal_inferred", "dual_numeric_candidate"]
        if aggressive:
            flags.append("aggressive_decimal_inference")
        flags.extend(inherited_flags)
        proposals.append(
            NumericCandidateProposal(
                value=round_currency(Decimal(integer_value).scaleb(-places)),
                origin=origin,
                raw_token=raw_token,
                flags=_unique(flags),
                aggressive=aggressive,
            )
        )
    return proposals


def build_numeric_candidate_proposals(line: ParsedLine) -> list[NumericCandidateProposal]:
    """Return the deduplicated alternate readings of ``line``'s cost."""
    proposals: list[NumericCandidateProposal] = []

    for hint in _extract_raw_numeric_hints(line.raw_text):
        if hint.kind == "decimal":
            _push_unique_proposal(
                proposals,
                NumericCandidateProposal(
                    value=hint.value,
                    origin="raw_decimal",
                    raw_token=hint.raw_token,
                    flags=_unique(["raw_numeric_token_detected", *hint.flags]),
                    aggressive=False,
                ),
            )
        elif hint.kind == "split_decimal":
            _push_unique_proposal(
                proposals,
                NumericCandidateProposal(
                    value=hint.value,
                    origin="raw_split_decimal",
                    raw_token=hint.raw_token,
                    flags=_unique(["raw_numeric_token_detected", *hint.flags]),
                    aggressive=False,
                ),
            )
            if hint.concatenated_integer_value is not None:
                for proposal in _build_integer_shift_proposals(
                    hint.concatenated_integer_value, hint.raw_token, hint.flags
                ):
                    _push_unique_proposal(proposals, proposal)
        else:
            _push_unique_proposal(
                proposals,
                NumericCandidateProposal(
                    value=round_currency(hint.value),
                    origin="raw_integer",
                    raw_token=hint.raw_token,
                    flags=_unique(["raw_numeric_token_detected", "dual_numeric_candidate", *hint.flags]),
                    aggressive=False,
                ),
            )
            for proposal in _build_integer_shift_proposals(int(hint.value), hint.raw_token, hint.flags):
                _push_unique_proposal(proposals, proposal)

    existing = line.line_cost
    if existing is not None and existing > 0 and is_whole(existing):
        for proposal in _build_integer_shift_proposals(int(existing), None, ()):
            _push_unique_proposal(proposals, proposal)

    return [proposal for proposal in proposals if proposal.value >= 0]
