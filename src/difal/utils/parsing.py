from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation

ZERO = Decimal("0")


def parse_decimal(value: str, default: Decimal = ZERO) -> Decimal:
    """Parse a SPED numeric field (``1.234,56`` or ``1234,56``) into a Decimal.

    Blank or unparseable values yield *default*.
    """
    text = value.strip()
    if not text:
        return default
    if "," in text:
        text = text.replace(".", "").replace(",", ".")
    try:
        d = Decimal(text)
    except InvalidOperation:
        return default
    if not d.is_finite():
        return default
    return d


def parse_date(value: str) -> date | None:
    """Parse a DDMMYYYY field; returns None when blank or invalid."""
    text = value.strip()
    if len(text) != 8 or not text.isdigit():
        return None
    try:
        return datetime.strptime(text, "%d%m%Y").date()
    except ValueError:
        return None
