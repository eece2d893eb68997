from __future__ import annotations

from decimal import Decimal


def format_brl(value: Decimal | str) -> str:
    """Format a monetary value as R$ X.XXX,XX."""
    d = Decimal(value)
    formatted = f"{d:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    return f"R$ {formatted}"


def format_rate(value: Decimal | str) -> str:
    """Format a rate with 2 to 4 decimals (``12,00%``, ``4,1234%``)."""
    text = f"{Decimal(value):.4f}"
    while text.endswith("0") and len(text.split(".")[1]) > 2:
        text = text[:-1]
    return text.replace(".", ",") + "%"
