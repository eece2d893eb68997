"""DIFAL calculation for extracted line items.

Two methodologies, chosen by destination UF:

* base única: ``DIFAL = base x destino - base x origem``
* base dupla: the interstate ICMS is removed from the value, the remainder is
  re-grossed by the destination rate ("por dentro") and the internal ICMS on
  that base is compared with the interstate ICMS.

Every result carries a Portuguese calculation trail whose figures are the
same rounded values stored in the result fields.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from difal.models.benefit import (
    BaseReduction,
    Benefit,
    DestinationRateReduction,
    Exemption,
    ItemSettings,
    OriginRateReduction,
)
from difal.models.invoice import LineItem
from difal.models.jurisdiction import JurisdictionTable, Methodology
from difal.models.result import CalculationResult, Totals
from difal.services.exceptions import ConfigurationError, DifalError, ItemCalculationError
from difal.services.rate_resolver import effective_rate
from difal.utils.formatters import format_brl, format_rate

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")

_METHODOLOGY_LABELS = {
    Methodology.SINGLE_BASE: "Base única",
    Methodology.DOUBLE_BASE: "Base dupla",
}


@dataclass(frozen=True)
class EngineConfig:
    """Run configuration. ``methodology`` forces one methodology for every item."""

    origin_uf: str
    destination_uf: str
    destination_share: Decimal = HUNDRED
    methodology: Methodology | None = None
    item_settings: Mapping[str, ItemSettings] = field(default_factory=dict)
    fcp_override: Decimal | None = None
    precision: int = 2


@dataclass(frozen=True)
class _Outcome:
    origin_rate: Decimal
    destination_rate: Decimal
    difal: Decimal
    fcp: Decimal
    trail: tuple[str, ...]


def _reduction_percent(dest_rate: Decimal, target: Decimal) -> Decimal:
    return (dest_rate - target) / dest_rate * HUNDRED


class DifalEngine:
    """Computes DIFAL and FCP per item for one origin/destination configuration.

    The engine holds no per-run state: the same item and configuration always
    produce the same result.
    """

    def __init__(self, table: JurisdictionTable, config: EngineConfig) -> None:
        if not config.origin_uf:
            raise ConfigurationError("UF de origem não informada")
        if not config.destination_uf:
            raise ConfigurationError("UF de destino não informada")
        table.get(config.origin_uf)
        self._destination = table.get(config.destination_uf)
        if not ZERO <= config.destination_share <= HUNDRED:
            raise ConfigurationError(
                f"Percentual do destinatário deve estar entre 0 e 100: {config.destination_share}"
            )
        if config.precision < 0:
            raise ConfigurationError(f"Precisão inválida: {config.precision}")
        self._table = table
        self._config = config
        self._quantum = Decimal(1).scaleb(-config.precision)

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def methodology(self) -> Methodology:
        return self._config.methodology or self._destination.methodology

    def _money(self, value: Decimal) -> Decimal:
        return value.quantize(self._quantum, rounding=ROUND_HALF_UP)

    # --- public API ---

    def calculate_item(self, item: LineItem) -> CalculationResult:
        """Calculate one item. Failures become a zeroed result carrying the error."""
        origin_uf = item.origin_uf or self._config.origin_uf
        try:
            return self._calculate(item, origin_uf)
        except ConfigurationError:
            raise
        except (DifalError, ArithmeticError, ValueError) as e:
            logger.warning("Erro no cálculo do item %s (linha %d): %s", item.cod_item, item.line_number, e)
            return self._failed(item, origin_uf, str(e))

    def calculate_all(self, items: Iterable[LineItem]) -> list[CalculationResult]:
        results = [self.calculate_item(item) for item in items]
        errors = sum(1 for r in results if r.error)
        logger.info("DIFAL calculado para %d itens (%d com erro)", len(results), errors)
        return results

    # --- internals ---

    def _settings_for(self, item: LineItem) -> ItemSettings:
        return self._config.item_settings.get(item.cod_item) or ItemSettings()

    def _failed(self, item: LineItem, origin_uf: str, message: str) -> CalculationResult:
        return CalculationResult(
            item=item,
            origin_uf=origin_uf,
            destination_uf=self._destination.uf,
            methodology=None,
            base=ZERO,
            origin_rate=ZERO,
            destination_rate=ZERO,
            fcp_rate=ZERO,
            difal=ZERO,
            fcp=ZERO,
            trail=(self._item_header(item), f"ERRO: {message}"),
            error=message,
        )

    def _item_header(self, item: LineItem) -> str:
        serie, num_doc = item.invoice_key
        return (
            f"Item {item.cod_item} - {item.description} "
            f"(linha {item.line_number}, nota {serie}-{num_doc}, CFOP {item.cfop})"
        )

    def _check_benefit(self, benefit: Benefit | None, dest_rate: Decimal) -> str | None:
        """Return the rejection reason for *benefit*, or None when it applies."""
        if benefit is None or isinstance(benefit, Exemption):
            return None
        if isinstance(benefit, BaseReduction):
            target = benefit.target_burden
            if target is None or target <= 0:
                return "carga efetiva alvo ausente ou não positiva"
            if dest_rate <= 0 or target >= dest_rate:
                return (
                    f"carga efetiva alvo {format_rate(target)} não é menor que a "
                    f"alíquota de destino {format_rate(dest_rate)}"
                )
            return None
        if benefit.rate is None or benefit.rate < 0:
            return "alíquota do benefício ausente ou negativa"
        return None

    def _calculate(self, item: LineItem, origin_uf: str) -> CalculationResult:
        dest = self._destination
        settings = self._settings_for(item)
        header = self._item_header(item)

        if origin_uf == dest.uf:
            return CalculationResult(
                item=item,
                origin_uf=origin_uf,
                destination_uf=dest.uf,
                methodology=None,
                base=self._money(item.base_difal),
                origin_rate=ZERO,
                destination_rate=dest.internal_rate,
                fcp_rate=ZERO,
                difal=ZERO,
                fcp=ZERO,
                benefit=settings.benefit,
                trail=(header, f"Operação interna (origem = destino = {dest.uf}): DIFAL não se aplica"),
            )

        methodology = self.methodology
        base = self._money(item.base_difal)
        national_rate = self._table.interstate_rate(origin_uf, dest.uf)
        origin_rate = effective_rate(
            item.cst_icms, item.vl_item, item.vl_icms, item.aliq_icms, national_rate
        )

        if settings.fcp_override is not None:
            fcp_rate, fcp_source = settings.fcp_override, "manual do item"
        elif self._config.fcp_override is not None:
            fcp_rate, fcp_source = self._config.fcp_override, "manual"
        else:
            fcp_rate, fcp_source = dest.fcp_rate, f"padrão {dest.uf}"
        fcp_overridden = settings.fcp_override is not None or self._config.fcp_override is not None

        benefit = settings.benefit
        rejection = self._check_benefit(benefit, dest.internal_rate)
        if rejection is not None:
            logger.warning("Benefício rejeitado para o item %s: %s", item.cod_item, rejection)
            benefit = None

        trail = [
            header,
            f"Metodologia: {_METHODOLOGY_LABELS[methodology]} ({origin_uf} -> {dest.uf})",
            f"Base de cálculo DIFAL: {format_brl(base)} "
            f"(item {format_brl(item.vl_item)} + IPI {format_brl(item.vl_ipi)} "
            f"+ frete {format_brl(item.frete_rateado)} + seguro {format_brl(item.seguro_rateado)} "
            f"+ outras {format_brl(item.outras_rateado)} - desconto {format_brl(item.vl_desc)})",
            f"CST {item.cst_icms or '(ausente)'}: alíquota efetiva de origem {format_rate(origin_rate)} "
            f"(nominal {format_rate(item.aliq_icms)})",
            f"Alíquota interna {dest.uf}: {format_rate(dest.internal_rate)}",
            f"Alíquota FCP ({fcp_source}): {format_rate(fcp_rate)}",
        ]
        if settings.benefit is not None:
            if rejection is not None:
                trail.append(f"Benefício rejeitado: {settings.benefit.describe()} ({rejection})")
            else:
                trail.append(f"Benefício aplicado: {settings.benefit.describe()}")

        outcome = self._compute(methodology, base, origin_rate, dest.internal_rate, fcp_rate, benefit)
        trail.extend(outcome.trail)
        trail.append(f"Total a recolher: {format_brl(outcome.difal + outcome.fcp)}")

        baseline = outcome
        if benefit is not None or fcp_overridden:
            baseline = self._compute(methodology, base, origin_rate, dest.internal_rate, dest.fcp_rate, None)
            savings = (baseline.difal + baseline.fcp) - (outcome.difal + outcome.fcp)
            trail.append(
                f"Sem benefício/FCP manual: DIFAL {format_brl(baseline.difal)}, "
                f"FCP {format_brl(baseline.fcp)}; economia {format_brl(savings)}"
            )

        return CalculationResult(
            item=item,
            origin_uf=origin_uf,
            destination_uf=dest.uf,
            methodology=methodology,
            base=base,
            origin_rate=outcome.origin_rate,
            destination_rate=outcome.destination_rate,
            fcp_rate=fcp_rate,
            difal=outcome.difal,
            fcp=outcome.fcp,
            baseline_difal=baseline.difal,
            baseline_fcp=baseline.fcp,
            benefit=benefit,
            benefit_rejection=rejection,
            fcp_overridden=fcp_overridden,
            trail=tuple(trail),
        )

    def _compute(
        self,
        methodology: Methodology,
        base: Decimal,
        origin_rate: Decimal,
        dest_rate: Decimal,
        fcp_rate: Decimal,
        benefit: Benefit | None,
    ) -> _Outcome:
        if isinstance(benefit, Exemption):
            return _Outcome(
                origin_rate, dest_rate, ZERO, ZERO,
                ("Isenção: DIFAL = R$ 0,00 e FCP = R$ 0,00",),
            )
        if isinstance(benefit, OriginRateReduction):
            origin_rate = benefit.rate
        if isinstance(benefit, DestinationRateReduction):
            dest_rate = benefit.rate
        if methodology is Methodology.SINGLE_BASE:
            return self._single_base(base, origin_rate, dest_rate, fcp_rate, benefit)
        return self._double_base(base, origin_rate, dest_rate, fcp_rate, benefit)

    def _single_base(
        self,
        base: Decimal,
        origin_rate: Decimal,
        dest_rate: Decimal,
        fcp_rate: Decimal,
        benefit: Benefit | None,
    ) -> _Outcome:
        trail: list[str] = []
        if isinstance(benefit, BaseReduction):
            # base x (1 - reduction) x destination rate == base x target burden
            reduction = _reduction_percent(dest_rate, benefit.target_burden)
            dest_icms = self._money(base * benefit.target_burden / HUNDRED)
            trail += [
                f"Redução de base: ({format_rate(dest_rate)} - {format_rate(benefit.target_burden)}) "
                f"/ {format_rate(dest_rate)} = {format_rate(reduction)}",
                f"ICMS destino = {format_brl(base)} x (1 - {format_rate(reduction)}) x {format_rate(dest_rate)} "
                f"= {format_brl(base)} x {format_rate(benefit.target_burden)} = {format_brl(dest_icms)}",
            ]
        else:
            dest_icms = self._money(base * dest_rate / HUNDRED)
            trail.append(f"ICMS destino = {format_brl(base)} x {format_rate(dest_rate)} = {format_brl(dest_icms)}")
        origin_icms = self._money(base * origin_rate / HUNDRED)
        difal = max(ZERO, dest_icms - origin_icms)
        fcp = max(ZERO, self._money(base * fcp_rate / HUNDRED))
        trail += [
            f"ICMS origem = {format_brl(base)} x {format_rate(origin_rate)} = {format_brl(origin_icms)}",
            f"DIFAL = max(0, {format_brl(dest_icms)} - {format_brl(origin_icms)}) = {format_brl(difal)}",
            f"FCP = max(0, {format_brl(base)} x {format_rate(fcp_rate)}) = {format_brl(fcp)}",
        ]
        return _Outcome(origin_rate, dest_rate, difal, fcp, tuple(trail))

    def _double_base(
        self,
        base: Decimal,
        origin_rate: Decimal,
        dest_rate: Decimal,
        fcp_rate: Decimal,
        benefit: Benefit | None,
    ) -> _Outcome:
        if dest_rate >= HUNDRED:
            raise ItemCalculationError(f"Alíquota de destino inválida para base dupla: {dest_rate}")
        share = self._config.destination_share

        value = base
        interstate = self._money(value * origin_rate / HUNDRED)
        base1 = value - interstate
        new_base = self._money(base1 / (1 - dest_rate / HUNDRED))
        base2 = new_base
        trail = [
            f"1. Valor da operação: {format_brl(value)}",
            f"2. ICMS interestadual = {format_brl(value)} x {format_rate(origin_rate)} = {format_brl(interstate)}",
            f"3. Base sem ICMS = {format_brl(value)} - {format_brl(interstate)} = {format_brl(base1)}",
            f"4. Alíquota de destino: {format_rate(dest_rate)}",
            f"5. Nova base = {format_brl(base1)} / (1 - {format_rate(dest_rate)}) "
            f"= {format_brl(new_base)}",
        ]
        if isinstance(benefit, BaseReduction):
            reduction = _reduction_percent(dest_rate, benefit.target_burden)
            base2 = self._money(new_base * (1 - reduction / HUNDRED))
            trail.append(
                f"6. Redução de base de {format_rate(reduction)}: "
                f"base final = {format_brl(base2)}"
            )
        else:
            trail.append(f"6. Base final = {format_brl(base2)}")
        internal = self._money(base2 * dest_rate / HUNDRED)
        difal = max(ZERO, internal - interstate)
        fcp = max(ZERO, self._money(base * fcp_rate * share / Decimal("10000")))
        trail += [
            f"7. ICMS interno = {format_brl(base2)} x {format_rate(dest_rate)} = {format_brl(internal)}",
            f"8. DIFAL = max(0, {format_brl(internal)} - {format_brl(interstate)}) = {format_brl(difal)}",
            f"FCP = max(0, {format_brl(base)} x {format_rate(fcp_rate)} x {format_rate(share)}) = {format_brl(fcp)}",
        ]
        return _Outcome(origin_rate, dest_rate, difal, fcp, tuple(trail))


def calculate_totals(results: Iterable[CalculationResult]) -> Totals:
    return Totals.from_results(results)


def filter_results(
    results: Iterable[CalculationResult],
    destination: str | None = None,
    cfop: str | None = None,
    only_with_difal: bool = False,
    min_base: Decimal | None = None,
) -> list[CalculationResult]:
    """Select results by destination category, CFOP, non-zero DIFAL and minimum base."""
    selected = []
    for r in results:
        if destination is not None and r.item.destination != destination:
            continue
        if cfop is not None and r.item.cfop != cfop:
            continue
        if only_with_difal and not r.has_difal:
            continue
        if min_base is not None and r.base < min_base:
            continue
        selected.append(r)
    return selected
