"""
Price vocabulary and text helpers.

Every price kind owns a labelled regex family: a literal label, optional
separators, an optional currency prefix and an amount. Families are scanned
from the most specific label to the least specific one, and a match whose
amount overlaps an amount already claimed on the same text is ignored. The
unlabelled currency-amount pattern is the fallback bucket.
"""
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from pricelist_engine.models.domain import PriceCandidate, PriceKind

CURRENCY_CODES = {"R": "ZAR", "$": "USD", "€": "EUR", "£": "GBP"}

CURRENCY = r"(?:(?<![A-Za-z])R|\$|€|£)"
AMOUNT = (
    r"\d{1,3}(?:\.\d{3})+,\d{2}(?!\d)"  # 1.234,56
    r"|\d{1,3}(?:[,\u00a0\u202f']\d{3})+(?:\.\d{1,2})?(?!\d)"  # 1,234.56
    r"|\d+,\d{2}(?!\d)"  # 1234,56
    r"|\d+(?:\.\d{1,2})?(?!\d)"  # 1234.56
)
_SEPARATOR = r"[\s:=\-]*"

# (kind, label, base confidence) in scan order
PRICE_FAMILIES: list[tuple[PriceKind, str, float]] = [
    (
        PriceKind.NEW_RRP,
        r"new\s+(?:rrp|recommended\s+retail(?:\s+price)?|retail(?:\s+price)?|price)|new_?rrp",
        0.95,
    ),
    (
        PriceKind.OLD_RRP,
        r"old\s+(?:rrp|recommended\s+retail(?:\s+price)?|retail(?:\s+price)?|price)|old_?rrp"
        r"|previous\s+(?:rrp|price)|was",
        0.85,
    ),
    (
        PriceKind.CURRENT_PRICE,
        r"current\s+(?:rrp|retail(?:\s+price)?|price)|now",
        0.9,
    ),
    (PriceKind.COST_PRICE, r"(?:cost|wholesale|dealer|trade)(?:\s+price)?", 0.7),
    (PriceKind.RRP, r"msrp|srp|rrp|recommended\s+retail(?:\s+price)?", 0.8),
    (PriceKind.RETAIL_PRICE, r"retail(?:\s+price)?|selling(?:\s+price)?", 0.75),
    (PriceKind.GENERIC_PRICE, r"(?:unit\s+)?price|amount", 0.6),
]
GENERIC_CONFIDENCE = 0.6

_FAMILY_PATTERNS = [
    (
        kind,
        re.compile(
            rf"(?<![A-Za-z])(?i:{label}){_SEPARATOR}"
            rf"(?:(?P<currency>{CURRENCY})\s?)?(?P<amount>{AMOUNT})"
        ),
        confidence,
    )
    for kind, label, confidence in PRICE_FAMILIES
]
CURRENCY_AMOUNT = re.compile(rf"(?P<currency>{CURRENCY})\s?(?P<amount>{AMOUNT})")

SPEC_PATTERNS = [
    re.compile(r"\b\d+(?:\.\d+)?\s*W\b", re.IGNORECASE),
    re.compile(r"\b\d+(?:\.\d+)?\s*k?Hz\b", re.IGNORECASE),
    re.compile(r"\b\d+(?:\.\d+)?\s*Ohms?\b", re.IGNORECASE),
    re.compile(r"\b\d+(?:\.\d+)?\s*dB\b", re.IGNORECASE),
    re.compile(r"\b\d+(?:\.\d+)?\s*mm\b", re.IGNORECASE),
    re.compile(r"\b\d+(?:\.\d+)?\s*(?:inch|in\.|\")", re.IGNORECASE),
    re.compile(r"\b\d+\s*x\s*\d+(?:\s*x\s*\d+)?\b", re.IGNORECASE),
]

PRODUCT_START = re.compile(r"^[A-Z0-9-]{3,}\s|^\d+\.\s")
LIST_NUMBERING = re.compile(r"^\d+[.)]\s+")
# Words left over around a labelled price that do not name a product
PRICE_LABEL_WORDS = re.compile(
    r"\b(?:our|special|sale|promo(?:tional)?|only|from|each|incl\.?|excl\.?|vat)\b", re.IGNORECASE
)


def parse_price(value: Any) -> Optional[Decimal]:
    """Parse a cell or matched amount into a Decimal, None if not a number."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))

    text = re.sub(r"[^\d.,]", "", str(value))
    if not any(char.isdigit() for char in text):
        return None

    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        parts = text.split(",")
        if len(parts) == 2 and len(parts[1]) <= 2:
            text = text.replace(",", ".")
        else:
            text = text.replace(",", "")
    elif text.count(".") > 1:
        text = text.replace(".", "")

    try:
        return Decimal(text)
    except InvalidOperation:
        return None


def currency_code(symbol: Optional[str], default: str = "ZAR") -> str:
    if not symbol:
        return default
    return CURRENCY_CODES.get(symbol, default)


def _overlaps(span: tuple[int, int], claimed: list[tuple[int, int]]) -> bool:
    return any(span[0] < end and start < span[1] for start, end in claimed)


def find_price_candidates(
    text: str, default_currency: str = "ZAR", offset: int = 0
) -> list[PriceCandidate]:
    """
    All price occurrences in a piece of text, in family scan order.

    ``position`` is the offset of the whole match (label included), shifted
    by ``offset`` for callers scanning a concatenation of lines.
    """
    candidates: list[PriceCandidate] = []
    claimed: list[tuple[int, int]] = []

    def collect(pattern: re.Pattern, kind: PriceKind, confidence: float) -> None:
        for match in pattern.finditer(text):
            span = match.span("amount")
            if _overlaps(span, claimed):
                continue
            value = parse_price(match.group("amount"))
            if value is None or value <= 0:
                continue
            claimed.append(span)
            candidates.append(
                PriceCandidate(
                    raw_text=match.group(0).strip(),
                    numeric_value=value,
                    currency=currency_code(match.group("currency"), default_currency),
                    price_kind=kind,
                    position=match.start() + offset,
                    confidence=confidence,
                )
            )

    for kind, pattern, confidence in _FAMILY_PATTERNS:
        collect(pattern, kind, confidence)
    collect(CURRENCY_AMOUNT, PriceKind.GENERIC_PRICE, GENERIC_CONFIDENCE)

    return candidates


def currency_amounts(text: str) -> list[re.Match]:
    """Currency-prefixed amounts in order of appearance."""
    return list(CURRENCY_AMOUNT.finditer(text))


def has_currency_amount(text: str) -> bool:
    return CURRENCY_AMOUNT.search(text) is not None


def extract_specifications(text: str) -> list[str]:
    specs: list[str] = []
    for pattern in SPEC_PATTERNS:
        for match in pattern.findall(text):
            value = match.strip()
            if value not in specs:
                specs.append(value)
    return specs


def is_price_line(line: str, default_currency: str = "ZAR") -> bool:
    """A line holding prices and their labels only, such as ``RRP R1,499.00``."""
    candidates = find_price_candidates(line, default_currency)
    if not candidates:
        return False
    remainder = line
    for candidate in candidates:
        remainder = remainder.replace(candidate.raw_text, " ")
    return not clean_product_name(PRICE_LABEL_WORDS.sub(" ", remainder))


def looks_like_product_start(line: str) -> bool:
    return PRODUCT_START.search(line) is not None and not is_price_line(line)


def is_usable_name(name: Optional[str], min_length: int) -> bool:
    return name is not None and len(name) >= min_length


def clean_product_name(text: str) -> str:
    """Drop list numbering and trailing separators, normalise whitespace."""
    cleaned = LIST_NUMBERING.sub("", text.strip())
    cleaned = " ".join(cleaned.split())
    return cleaned.strip(" -:|,;")
