from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from difal.models.benefit import Benefit, benefit_to_dict
from difal.models.invoice import LineItem
from difal.models.jurisdiction import Methodology

ZERO = Decimal("0")


@dataclass(frozen=True)
class CalculationResult:
    """DIFAL outcome for one line item, with its calculation trail."""

    item: LineItem
    origin_uf: str
    destination_uf: str
    methodology: Methodology | None
    base: Decimal
    origin_rate: Decimal
    destination_rate: Decimal
    fcp_rate: Decimal
    difal: Decimal
    fcp: Decimal
    baseline_difal: Decimal = ZERO
    baseline_fcp: Decimal = ZERO
    benefit: Benefit | None = None
    benefit_rejection: str | None = None
    fcp_overridden: bool = False
    trail: tuple[str, ...] = field(default_factory=tuple)
    error: str | None = None

    @property
    def total(self) -> Decimal:
        return self.difal + self.fcp

    @property
    def savings(self) -> Decimal:
        """Reduction in DIFAL+FCP relative to the calculation without benefit or manual FCP."""
        return (self.baseline_difal + self.baseline_fcp) - self.total

    @property
    def has_difal(self) -> bool:
        return self.difal > 0

    def to_dict(self) -> dict:
        item = self.item
        return {
            "linha": item.line_number,
            "nota": f"{item.invoice_key[0]}-{item.invoice_key[1]}",
            "num_item": item.num_item,
            "cod_item": item.cod_item,
            "descricao": item.description,
            "ncm": item.ncm,
            "cfop": item.cfop,
            "destinacao": item.destination,
            "cst": item.cst_icms,
            "uf_origem": self.origin_uf,
            "uf_destino": self.destination_uf,
            "metodologia": self.methodology.value if self.methodology else None,
            "base": str(self.base),
            "aliquota_origem": str(self.origin_rate),
            "aliquota_destino": str(self.destination_rate),
            "aliquota_fcp": str(self.fcp_rate),
            "difal": str(self.difal),
            "fcp": str(self.fcp),
            "total": str(self.total),
            "beneficio": benefit_to_dict(self.benefit) if self.benefit else None,
            "beneficio_rejeitado": self.benefit_rejection,
            "fcp_manual": self.fcp_overridden,
            "economia": str(self.savings),
            "memoria": list(self.trail),
            "erro": self.error,
        }


@dataclass(frozen=True)
class Totals:
    total_items: int = 0
    base: Decimal = ZERO
    difal: Decimal = ZERO
    fcp: Decimal = ZERO
    total_to_collect: Decimal = ZERO
    items_with_difal: int = 0
    items_with_error: int = 0
    items_with_benefit: int = 0
    items_with_fcp_override: int = 0
    total_savings: Decimal = ZERO
    percent_with_difal: Decimal = ZERO

    @classmethod
    def from_results(cls, results: Iterable[CalculationResult]) -> Totals:
        results = list(results)
        if not results:
            return cls()
        with_difal = sum(1 for r in results if r.has_difal)
        difal = sum((r.difal for r in results), ZERO)
        fcp = sum((r.fcp for r in results), ZERO)
        percent = (Decimal(with_difal) * 100 / len(results)).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )
        return cls(
            total_items=len(results),
            base=sum((r.base for r in results), ZERO),
            difal=difal,
            fcp=fcp,
            total_to_collect=difal + fcp,
            items_with_difal=with_difal,
            items_with_error=sum(1 for r in results if r.error),
            items_with_benefit=sum(1 for r in results if r.benefit is not None),
            items_with_fcp_override=sum(1 for r in results if r.fcp_overridden),
            total_savings=sum((r.savings for r in results), ZERO),
            percent_with_difal=percent,
        )

    def to_dict(self) -> dict:
        return {
            "total_itens": self.total_items,
            "base": str(self.base),
            "difal": str(self.difal),
            "fcp": str(self.fcp),
            "total_recolher": str(self.total_to_collect),
            "itens_com_difal": self.items_with_difal,
            "itens_com_erro": self.items_with_error,
            "itens_com_beneficio": self.items_with_benefit,
            "itens_com_fcp_manual": self.items_with_fcp_override,
            "economia_total": str(self.total_savings),
            "percentual_com_difal": str(self.percent_with_difal),
        }
