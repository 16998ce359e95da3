"""Produce-line canonicalization: organic PLU prefixes and organic adjectives.

Loose produce carries a 4-digit PLU; organic produce prints the same PLU with a
leading 9 (94131 is organic 4131). Names often carry "ORGANIC"/"BIO" in front
of the commodity, which gets in the way of catalog matching.
"""

import re
import unicodedata
from dataclasses import dataclass, replace

from receiptfix.domain.correction import ParsedLine

ORGANIC_KEYWORDS = frozenset(
    {
        "organic",
        "org",
        "bio",
        "biologique",
        "organique",
        "organico",
        "ecologico",
    }
)

# English, French and Spanish commodity words
# fmt: off
PRODUCE_HINT_TOKENS = frozenset(
    {
        # English
        "apple", "apples", "banana", "bananas", "orange", "oranges", "grape", "grapes",
        "pear", "pears", "lemon", "lemons", "lime", "limes", "lettuce", "tomato", "tomatoes",
        "potato", "potatoes", "onion", "onions", "pepper", "peppers", "broccoli", "carrot",
        "carrots", "avocado", "avocados", "cucumber", "cucumbers", "celery", "mushroom",
        "mushrooms", "spinach", "kale", "fruit", "fruits", "vegetable", "vegetables",
        # French
        "pomme", "pommes", "banane", "bananes", "raisin", "raisins", "poire", "poires",
        "citron", "citrons", "laitue", "tomate", "tomates", "oignon", "oignons", "avocat",
        "avocats", "concombre", "concombres", "legume", "legumes",
        # Spanish
        "manzana", "manzanas", "platano", "platanos", "naranja", "naranjas", "uva", "uvas",
        "pera", "peras", "limon", "limones", "lechuga", "papa", "papas", "cebolla", "cebollas",
        "aguacate", "aguacates", "pepino", "pepinos", "fruta", "frutas", "verdura", "verduras",
    }
)
# fmt: on

DIGIT_TOKEN_PATTERN = re.compile(r"\b\d{4,5}\b", re.ASCII)
PACKAGED_SKU_PATTERN = re.compile(r"\b\d{6,}\b", re.ASCII)
PLU_TOKEN_PATTERN = re.compile(r"^\d{4,5}$", re.ASCII)
NAME_PUNCTUATION_PATTERN = re.compile(r"[^\w\s-]|_")
TOKEN_JUNK_PATTERN = re.compile(r"[^a-z0-9]")


@dataclass(frozen=True)
class ProduceCorrection:
    type: str
    before: str | int | None
    after: str | int | None
    reason: str


@dataclass(frozen=True)
class ProduceNormalizationResult:
    line: ParsedLine
    produce_candidate: bool
    parse_flags: tuple[str, ...] = ()
    corrections: tuple[ProduceCorrection, ...] = ()


@dataclass(frozen=True)
class _CanonicalPlu:
    plu_code: int | None = None
    normalized_from_9prefix: bool = False
    original: int | None = None


def _normalize_token(token: str) -> str:
    """Fold accents, lowercase, and drop anything that is not a-z/0-9."""
    decomposed = unicodedata.normalize("NFD", token)
    folded = "".join(char for char in decomposed if not unicodedata.combining(char))
    return TOKEN_JUNK_PATTERN.sub("", folded.lower())


def _tokenize(text: str | None) -> list[str]:
    if not text:
        return []
    return [token for token in (_normalize_token(part) for part in text.split()) if token]


def _strip_organic_keywords(name: str | None) -> tuple[str | None, tuple[str, ...]]:
    """Return the name without organic adjectives, plus the distinct removed keywords."""
    if not name:
        return None, ()

    kept: list[str] = []
    removed: list[str] = []
    for token in NAME_PUNCTUATION_PATTERN.sub(" ", name).split():
        normalized = _normalize_token(token)
        if normalized and normalized in ORGANIC_KEYWORDS:
            removed.append(normalized)
        else:
            kept.append(token)

    cleaned = " ".join(kept) if kept else None
    return cleaned, tuple(dict.fromkeys(removed))


def _normalize_plu_token(token: str) -> _CanonicalPlu:
    if not PLU_TOKEN_PATTERN.match(token):
        return _CanonicalPlu()
    if len(token) == 5:
        # Only the 9 prefix means organic; 8 (GMO) and others are not canonicalized.
        if not token.startswith("9"):
            return _CanonicalPlu(original=int(token))
        return _CanonicalPlu(plu_code=int(token[1:]), normalized_from_9prefix=True, original=int(token))
    return _CanonicalPlu(plu_code=int(token), original=int(token))


def _extract_canonical_plu(line: ParsedLine) -> _CanonicalPlu:
    """Prefer an explicit PLU; else a 9-prefixed 5-digit token, else a bare 4-digit token."""
    if line.plu_code is not None:
        return _normalize_plu_token(str(line.plu_code))

    tokens = DIGIT_TOKEN_PATTERN.findall(line.raw_text)
    for token in tokens:
        if len(token) == 5 and token.startswith("9"):
            return _normalize_plu_token(token)
    for token in tokens:
        if len(token) == 4:
            return _normalize_plu_token(token)
    return _CanonicalPlu()


def _is_produce_candidate(
    line: ParsedLine,
    plu: _CanonicalPlu,
    cleaned_name: str | None,
    stripped_count: int,
) -> bool:
    if PACKAGED_SKU_PATTERN.search(line.raw_text):
        return False
    if plu.normalized_from_9prefix:
        return True

    has_produce_hint = any(token in PRODUCE_HINT_TOKENS for token in _tokenize(cleaned_name))
    if plu.plu_code is not None:
        return has_produce_hint or stripped_count > 0
    return has_produce_hint


def normalize_receipt_produce_line(line: ParsedLine) -> ProduceNormalizationResult:
    """
    Canonicalize a selected line if it looks like loose produce.

    Example:
        "ORGANIC BANANAS 94131 4.99" with parsed_name "ORGANIC BANANAS 94131"
        -> plu_code 4131, organic_flag True, parsed_name "BANANAS 94131"

    Non-produce lines come back unchanged.
    """
    plu = _extract_canonical_plu(line)
    cleaned_name, removed_tokens = _strip_organic_keywords(line.parsed_name)

    if not _is_produce_candidate(line, plu, cleaned_name, len(removed_tokens)):
        return ProduceNormalizationResult(line=line, produce_candidate=False)

    flags: list[str] = []
    corrections: list[ProduceCorrection] = []
    if plu.normalized_from_9prefix and plu.original is not None and plu.plu_code is not None:
        flags.append("plu_9prefix_normalized")
        corrections.append(
            ProduceCorrection(
                type="plu_9prefix_normalized",
                before=plu.original,
                after=plu.plu_code,
                reason="Normalized 5-digit organic PLU by stripping the leading 9 prefix.",
            )
        )
    elif line.plu_code is None and plu.plu_code is not None:
        flags.append("plu_extracted_from_raw_text")
        corrections.append(
            ProduceCorrection(
                type="plu_extracted_from_raw_text",
                before=None,
                after=plu.plu_code,
                reason="Read the 4-digit produce PLU from the raw OCR text.",
            )
        )

    if removed_tokens:
        flags.append("organic_keyword_stripped")
        corrections.append(
            ProduceCorrection(
                type="organic_keyword_stripped",
                before=line.parsed_name,
                after=cleaned_name,
                reason="Removed organic adjective tokens from produce text for canonical matching.",
            )
        )

    organic_detected = bool(line.organic_flag) or plu.normalized_from_9prefix or bool(removed_tokens)
    normalized_line = replace(
        line,
        parsed_name=cleaned_name if cleaned_name and cleaned_name != line.parsed_name else line.parsed_name,
        # An explicit code that is not a valid PLU is kept as the caller sent it.
        plu_code=plu.plu_code if plu.plu_code is not None else line.plu_code,
        organic_flag=True if organic_detected else line.organic_flag,
    )
    return ProduceNormalizationResult(
        line=normalized_line,
        produce_candidate=True,
        parse_flags=tuple(flags),
        corrections=tuple(corrections),
    )
