from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import ClassVar


def _to_decimal(value: object) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        d = Decimal(str(value).replace(",", "."))
    except InvalidOperation:
        raise ValueError(f"Valor numerico invalido: '{value}'") from None
    if not d.is_finite():
        raise ValueError(f"Valor numerico invalido: '{value}'")
    return d


@dataclass(frozen=True)
class BaseReduction:
    """Reduce the destination base so the item bears *target_burden* percent."""

    target_burden: Decimal | None
    tag: ClassVar[str] = "reducao-base"

    def describe(self) -> str:
        return f"Redução de base (carga efetiva {self.target_burden}%)"


@dataclass(frozen=True)
class OriginRateReduction:
    """Replace the effective origin rate with *rate*."""

    rate: Decimal | None
    tag: ClassVar[str] = "reducao-aliquota-origem"

    def describe(self) -> str:
        return f"Redução da alíquota de origem para {self.rate}%"


@dataclass(frozen=True)
class DestinationRateReduction:
    """Replace the destination internal rate with *rate*."""

    rate: Decimal | None
    tag: ClassVar[str] = "reducao-aliquota-destino"

    def describe(self) -> str:
        return f"Redução da alíquota de destino para {self.rate}%"


@dataclass(frozen=True)
class Exemption:
    tag: ClassVar[str] = "isencao"

    def describe(self) -> str:
        return "Isenção"


Benefit = BaseReduction | OriginRateReduction | DestinationRateReduction | Exemption

BENEFIT_TAGS = (
    BaseReduction.tag,
    OriginRateReduction.tag,
    DestinationRateReduction.tag,
    Exemption.tag,
)


def benefit_from_dict(d: dict) -> Benefit:
    """Build a benefit from ``{"tipo": ..., "valor": ...}``.

    Raises ValueError for an unknown ``tipo``. A missing ``valor`` is kept
    as None; the engine rejects it at calculation time.
    """
    tag = d.get("tipo")
    value = _to_decimal(d.get("valor"))
    if tag == BaseReduction.tag:
        return BaseReduction(value)
    if tag == OriginRateReduction.tag:
        return OriginRateReduction(value)
    if tag == DestinationRateReduction.tag:
        return DestinationRateReduction(value)
    if tag == Exemption.tag:
        return Exemption()
    raise ValueError(f"Tipo de benefício desconhecido: '{tag}'")


def benefit_to_dict(benefit: Benefit) -> dict:
    if isinstance(benefit, BaseReduction):
        value = benefit.target_burden
    elif isinstance(benefit, (OriginRateReduction, DestinationRateReduction)):
        value = benefit.rate
    else:
        return {"tipo": benefit.tag}
    return {"tipo": benefit.tag, "valor": None if value is None else str(value)}


@dataclass(frozen=True)
class ItemSettings:
    """Per-item configuration: at most one benefit and an optional manual FCP rate."""

    benefit: Benefit | None = None
    fcp_override: Decimal | None = None

    @property
    def is_empty(self) -> bool:
        return self.benefit is None and self.fcp_override is None

    @classmethod
    def from_dict(cls, d: dict) -> ItemSettings:
        beneficio = d.get("beneficio")
        fcp = _to_decimal(d.get("fcp"))
        if fcp is not None and fcp < 0:
            raise ValueError(f"FCP manual não pode ser negativo: {fcp}")
        return cls(
            benefit=benefit_from_dict(beneficio) if beneficio else None,
            fcp_override=fcp,
        )

    def to_dict(self) -> dict:
        d: dict = {}
        if self.benefit is not None:
            d["beneficio"] = benefit_to_dict(self.benefit)
        if self.fcp_override is not None:
            d["fcp"] = str(self.fcp_override)
        return d
