"""One analysis run: bytes in, DIFAL results and totals out.

Every call builds its own registry, catalog, invoice index and item list;
nothing is shared between runs.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path

from difal.models.benefit import ItemSettings
from difal.models.catalog import MISSING_IN_SOURCE, NCM_NOT_FOUND
from difal.models.company import CompanyHeader
from difal.models.invoice import CatalogStatus
from difal.models.jurisdiction import JurisdictionTable, Methodology
from difal.models.record import LineDiagnostic
from difal.models.result import CalculationResult, Totals
from difal.services import catalog_builder, invoice_indexer, item_extractor, record_reader
from difal.services.difal_engine import DifalEngine, EngineConfig, calculate_totals
from difal.services.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisOptions:
    """``destination_uf`` defaults to the UF of the company in record 0000."""

    origin_uf: str
    destination_uf: str | None = None
    destination_share: Decimal = Decimal("100")
    methodology: Methodology | None = None
    item_settings: Mapping[str, ItemSettings] = field(default_factory=dict)
    fcp_override: Decimal | None = None
    precision: int = 2
    cfops: Mapping[str, str] = field(default_factory=lambda: dict(item_extractor.DIFAL_CFOPS))


@dataclass(frozen=True)
class AnalysisReport:
    encoding: str
    company: CompanyHeader | None
    lines_total: int
    lines_processed: int
    lines_ignored: int
    record_counts: dict[str, int]
    catalog_size: int
    participant_count: int
    invoice_count: int
    items_found_in_catalog: int
    items_not_in_catalog: int
    discarded_by_cfop: int
    by_destination: dict[str, int]
    diagnostics: tuple[LineDiagnostic, ...]
    warnings: tuple[str, ...]
    results: tuple[CalculationResult, ...]
    totals: Totals

    def to_dict(self) -> dict:
        company = self.company
        return {
            "codificacao": self.encoding,
            "empresa": None if company is None else {
                "cnpj": company.cnpj,
                "razao_social": company.razao_social,
                "uf": company.uf,
                "ie": company.ie,
                "periodo": company.period_label,
            },
            "linhas": {
                "total": self.lines_total,
                "processadas": self.lines_processed,
                "ignoradas": self.lines_ignored,
            },
            "registros": self.record_counts,
            "catalogo": self.catalog_size,
            "participantes": self.participant_count,
            "notas": self.invoice_count,
            "itens_no_catalogo": self.items_found_in_catalog,
            "itens_fora_do_catalogo": self.items_not_in_catalog,
            "descartados_por_cfop": self.discarded_by_cfop,
            "por_destinacao": self.by_destination,
            "diagnosticos": [{"linha": d.line_number, "mensagem": d.message} for d in self.diagnostics],
            "avisos": list(self.warnings),
            "resultados": [r.to_dict() for r in self.results],
            "totais": self.totals.to_dict(),
        }


def read_file(path: Path) -> bytes:
    return Path(path).read_bytes()


def _validation_warnings(company: CompanyHeader | None, results: tuple[CalculationResult, ...]) -> list[str]:
    warnings = []
    if company is None:
        warnings.append("Dados da empresa não encontrados (registro 0000)")
    if not results:
        warnings.append("Nenhum item válido para cálculo DIFAL encontrado")
    without_ncm = sum(1 for r in results if r.item.ncm in (NCM_NOT_FOUND, MISSING_IN_SOURCE))
    if without_ncm:
        warnings.append(f"{without_ncm} itens sem NCM definido")
    return warnings


def analyze(
    data: bytes,
    options: AnalysisOptions,
    table: JurisdictionTable | None = None,
) -> AnalysisReport:
    """Parse a SPED file and calculate DIFAL for every relevant item.

    Raises ConfigurationError when origin/destination cannot be resolved.
    """
    if table is None:
        from difal.config import load_jurisdictions

        table = load_jurisdictions()

    registry = record_reader.read(data)
    company = registry.company

    destination_uf = options.destination_uf or (company.uf if company else None)
    if not destination_uf:
        raise ConfigurationError("UF de destino não informada e ausente no registro 0000")

    engine = DifalEngine(table, EngineConfig(
        origin_uf=options.origin_uf,
        destination_uf=destination_uf,
        destination_share=options.destination_share,
        methodology=options.methodology,
        item_settings=options.item_settings,
        fcp_override=options.fcp_override,
        precision=options.precision,
    ))

    catalog = catalog_builder.build(registry.records(catalog_builder.CATALOG_RECORD))
    participants = invoice_indexer.index_participants(
        registry.records(invoice_indexer.PARTICIPANT_RECORD)
    )
    invoices = invoice_indexer.index(registry.records(invoice_indexer.INVOICE_RECORD), participants)
    extraction = item_extractor.extract_items(registry, catalog, invoices, options.cfops)

    results = tuple(engine.calculate_all(extraction.items))
    found = sum(1 for i in extraction.items if i.catalog_status is CatalogStatus.FOUND)
    warnings = _validation_warnings(company, results)
    for w in warnings:
        logger.warning(w)

    return AnalysisReport(
        encoding=registry.encoding,
        company=company,
        lines_total=registry.lines_total,
        lines_processed=registry.lines_processed,
        lines_ignored=registry.lines_ignored,
        record_counts=registry.counts(),
        catalog_size=len(catalog),
        participant_count=len(participants),
        invoice_count=len(invoices),
        items_found_in_catalog=found,
        items_not_in_catalog=len(extraction.items) - found,
        discarded_by_cfop=extraction.discarded_by_cfop,
        by_destination=dict(Counter(i.destination for i in extraction.items)),
        diagnostics=registry.diagnostics + extraction.diagnostics,
        warnings=tuple(warnings),
        results=results,
        totals=calculate_totals(results),
    )
