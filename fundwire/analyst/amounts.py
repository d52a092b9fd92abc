"""
Monetary amount normalization.

Canonical amounts are "<number>[.<decimals>]M", "<number>[.<decimals>]B" or
the literal "Undisclosed". Currency symbols are never kept.
"""

import re
from typing import Optional

UNDISCLOSED = "Undisclosed"

CANONICAL_AMOUNT_PATTERN = re.compile(r'^[0-9]+(\.[0-9]+)?[MB]$')

CURRENCY_SYMBOLS_PATTERN = re.compile(r'[$€£¥]')

# "10", "1,500,000", "2.5" followed by an optional unit
AMOUNT_VALUE_PATTERN = re.compile(
    r'^(\d[\d,]*(?:\.\d+)?)\s*(k|thousand|m|mm|mn|million|b|bn|billion)?$',
    re.IGNORECASE,
)

BILLION_UNITS = {"b", "bn", "billion"}
MILLION_UNITS = {"m", "mm", "mn", "million"}
THOUSAND_UNITS = {"k", "thousand"}

# Values the generation service uses when no amount is known
UNDISCLOSED_VALUES = {
    "undisclosed", "not disclosed", "unknown", "n/a", "na", "none", "null", "tbd", "-",
}


def strip_currency(value: str) -> str:
    """Remove currency symbols and surrounding whitespace."""
    return CURRENCY_SYMBOLS_PATTERN.sub("", value).strip()


def unit_suffix(unit: Optional[str]) -> str:
    """Map a unit mention to the canonical suffix (B for billions, else M)."""
    if unit and unit.lower() in BILLION_UNITS:
        return "B"
    return "M"


def thousands_to_millions(number: str) -> str:
    """Convert a K amount to millions, rounded to 2 decimals ("750" -> "0.75M")."""
    return f"{float(number.replace(',', '')) / 1000:.2f}M"


def format_amount(number: str, unit: Optional[str]) -> str:
    """Join a number and unit mention into a canonical amount."""
    number = number.replace(",", "").rstrip(".")
    if unit and unit.lower() in THOUSAND_UNITS:
        return thousands_to_millions(number)
    return number + unit_suffix(unit)


def _compact(value: float) -> str:
    return f"{value:.2f}".rstrip("0").rstrip(".")


def canonical_amount(value) -> Optional[str]:
    """
    Coerce a free-form amount into canonical form.

    Returns None when the value cannot be interpreted.

    Examples:
        >>> canonical_amount("$10.5M")
        '10.5M'
        >>> canonical_amount("2 billion")
        '2B'
        >>> canonical_amount("$750K")
        '0.75M'
        >>> canonical_amount("1,500,000")
        '1.5M'
    """
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        return None

    text = strip_currency(value)
    if not text:
        return None
    if text.lower() in UNDISCLOSED_VALUES:
        return UNDISCLOSED
    if CANONICAL_AMOUNT_PATTERN.match(text):
        return text

    match = AMOUNT_VALUE_PATTERN.match(text)
    if not match:
        return None

    number, unit = match.group(1), match.group(2)
    if unit:
        return format_amount(number, unit)

    # No unit: large figures are raw dollars, small ones are already millions
    amount = float(number.replace(",", ""))
    if amount >= 1_000_000_000:
        return _compact(amount / 1_000_000_000) + "B"
    if amount >= 100_000:
        return _compact(amount / 1_000_000) + "M"
    if amount < 1_000:
        return number.replace(",", "") + "M"
    return None


def is_canonical_amount(value: Optional[str]) -> bool:
    return value == UNDISCLOSED or bool(value and CANONICAL_AMOUNT_PATTERN.match(value))
