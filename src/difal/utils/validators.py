from __future__ import annotations

from decimal import Decimal, InvalidOperation

VALID_UFS = frozenset({
    "AC", "AL", "AP", "AM", "BA", "CE", "DF", "ES", "GO",
    "MA", "MT", "MS", "MG", "PA", "PB", "PR", "PE", "PI",
    "RJ", "RN", "RS", "RO", "RR", "SC", "SP", "SE", "TO",
})


def validate_uf(value: str) -> str:
    """Validate a UF abbreviation; returns it upper-cased."""
    uf = value.strip().upper()
    if uf not in VALID_UFS:
        raise ValueError(f"UF invalida: '{value}'")
    return uf


def validate_percent(value: str) -> Decimal:
    """Validate a percentage (0-100). Accepts comma or dot decimals."""
    try:
        d = Decimal(value.strip().replace(",", "."))
        if not d.is_finite():
            raise InvalidOperation
    except InvalidOperation:
        raise ValueError(f"Percentual invalido: '{value}'") from None
    if d < 0 or d > 100:
        raise ValueError("Percentual deve estar entre 0 e 100")
    return d


def validate_item_code(value: str) -> str:
    """Validate an item code (COD_ITEM): non-empty, no pipe characters."""
    code = value.strip()
    if not code:
        raise ValueError("Codigo do item nao pode ser vazio")
    if "|" in code:
        raise ValueError(f"Codigo do item invalido: '{value}'")
    return code
