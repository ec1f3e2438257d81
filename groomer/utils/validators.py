"""
Input validation utilities.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional


# Thousands separators, currency symbols and whitespace stripped before numeric parsing
_AMOUNT_NOISE = re.compile(r"[,\s$€£¥₹_]")


def validate_email(email: Optional[str]) -> bool:
    """
    Validate email address format.

    Args:
        email: Email address to validate

    Returns:
        True if valid, False otherwise

    Example:
        validate_email("user@example.com") -> True
        validate_email("invalid.email") -> False
    """
    if not email:
        return False

    # RFC 5322 compliant regex (simplified)
    pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    return bool(re.match(pattern, email))


def is_blank(value: Any) -> bool:
    """True for None and for strings that are empty after stripping."""
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Parse a numeric amount, tolerating thousands separators and currency symbols.

    Args:
        value: Number or string such as "$1,500,000" or "2 500"

    Returns:
        Decimal value, or None if the value cannot be parsed

    Example:
        parse_amount("$1,000,000") -> Decimal("1000000")
        parse_amount("n/a") -> None
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))

    cleaned = _AMOUNT_NOISE.sub("", str(value))
    if not cleaned:
        return None
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return amount
