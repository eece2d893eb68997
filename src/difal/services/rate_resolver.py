"""Effective origin ICMS rate from the item's tax-situation code.

Normal-regime codes (CST) are two digits, optionally preceded by the
goods-origin digit as SPED records them (``000``, ``020``, ``260``).
Simplified-regime codes (CSOSN) are three digits, optionally preceded by
the origin digit (``0101``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from difal.models.invoice import TaxSituation

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
RATE_PLACES = Decimal("0.0001")

IMPORTED_RATE = Decimal("4")
DEFAULT_NATIONAL_RATE = Decimal("7")

_CST_KINDS = {
    "00": TaxSituation.TAXED,
    "90": TaxSituation.TAXED,
    "10": TaxSituation.SUBSTITUTION,
    "30": TaxSituation.SUBSTITUTION,
    "60": TaxSituation.SUBSTITUTION,
    "20": TaxSituation.REDUCED_BASE,
    "70": TaxSituation.REDUCED_BASE,
    "40": TaxSituation.EXEMPT,
    "41": TaxSituation.EXEMPT,
    "50": TaxSituation.EXEMPT,
    "51": TaxSituation.EXEMPT,
}

_CSOSN_KINDS = {
    "101": TaxSituation.SIMPLIFIED_TAXED,
    "102": TaxSituation.SIMPLIFIED_TAXED,
    "103": TaxSituation.SIMPLIFIED_TAXED,
    "201": TaxSituation.SIMPLIFIED_TAXED,
    "202": TaxSituation.SIMPLIFIED_TAXED,
    "203": TaxSituation.SIMPLIFIED_TAXED,
    "900": TaxSituation.SIMPLIFIED_TAXED,
    "300": TaxSituation.SIMPLIFIED_ZERO,
    "400": TaxSituation.SIMPLIFIED_ZERO,
    "500": TaxSituation.SIMPLIFIED_ZERO,
}

# Origin digits for imported goods (Resolução do Senado 13/2012).
_IMPORTED_ORIGINS = frozenset({"1", "2", "6", "7"})
_ORIGIN_DIGITS = frozenset("012345678")


@dataclass(frozen=True)
class TaxCode:
    """A classified CST/CSOSN."""

    raw: str
    situation: str  # 2-digit CST or 3-digit CSOSN, origin stripped
    origin: str | None
    kind: TaxSituation

    @property
    def simplified(self) -> bool:
        return self.kind in (TaxSituation.SIMPLIFIED_TAXED, TaxSituation.SIMPLIFIED_ZERO)

    @property
    def imported(self) -> bool:
        return self.origin in _IMPORTED_ORIGINS


def classify(code: str) -> TaxCode:
    """Split *code* into origin digit and situation and classify it."""
    raw = (code or "").strip()
    if not raw:
        return TaxCode(raw, "", None, TaxSituation.MISSING)
    if len(raw) == 2:
        return TaxCode(raw, raw, None, _CST_KINDS.get(raw, TaxSituation.UNMAPPED))
    if len(raw) == 3:
        # 300/400/500 would also split as origin + CST 00; CSOSN takes precedence
        if raw in _CSOSN_KINDS:
            return TaxCode(raw, raw, None, _CSOSN_KINDS[raw])
        suffix = raw[1:]
        if suffix in _CST_KINDS and raw[0] in _ORIGIN_DIGITS:
            return TaxCode(raw, suffix, raw[0], _CST_KINDS[suffix])
        return TaxCode(raw, raw, None, TaxSituation.UNMAPPED)
    if len(raw) == 4 and raw[1:] in _CSOSN_KINDS:
        return TaxCode(raw, raw[1:], raw[0], _CSOSN_KINDS[raw[1:]])
    return TaxCode(raw, raw, None, TaxSituation.UNMAPPED)


def _round_rate(value: Decimal) -> Decimal:
    return value.quantize(RATE_PLACES, rounding=ROUND_HALF_UP)


def effective_rate(
    code: str,
    gross_value: Decimal,
    icms_value: Decimal,
    nominal_rate: Decimal,
    national_rate: Decimal = DEFAULT_NATIONAL_RATE,
) -> Decimal:
    """Effective origin ICMS rate (%) actually borne by the item.

    *national_rate* is the interstate rate applied to simplified-regime
    national goods; callers pass the regional 7%/12% rate for the route.
    Returns 0 when the code is missing or *gross_value* is not positive.
    """
    tax = classify(code)
    if tax.kind is TaxSituation.MISSING or gross_value <= 0:
        return _round_rate(ZERO)

    if tax.kind is TaxSituation.TAXED:
        return _round_rate(nominal_rate)
    if tax.kind is TaxSituation.REDUCED_BASE:
        if icms_value <= 0:
            return _round_rate(ZERO)
        return _round_rate(icms_value / gross_value * HUNDRED)
    if tax.kind in (TaxSituation.SUBSTITUTION, TaxSituation.EXEMPT, TaxSituation.SIMPLIFIED_ZERO):
        return _round_rate(ZERO)
    if tax.kind is TaxSituation.SIMPLIFIED_TAXED:
        return _round_rate(IMPORTED_RATE if tax.imported else national_rate)

    logger.warning("CST/CSOSN não mapeado '%s': usando alíquota nominal %s", tax.raw, nominal_rate)
    return _round_rate(nominal_rate)
