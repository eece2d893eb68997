"""Link C170 line items to their C100 invoice and compute the DIFAL base.

A C170 has no foreign key to its invoice: it belongs to the nearest C100
above it in the file. Both record lists are therefore merged back into
file order before walking them.
"""

from __future__ import annotations

import heapq
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from difal.models.catalog import (
    NCM_NOT_FOUND,
    PRODUCT_NOT_CATALOGUED,
    TYPE_UNKNOWN,
    ProductCatalogEntry,
)
from difal.models.invoice import CatalogStatus, InvoiceHeader, LineItem
from difal.models.record import FiscalRecord, LineDiagnostic, Registry
from difal.services.invoice_indexer import INVOICE_RECORD, InvoiceIndex
from difal.services.rate_resolver import classify
from difal.utils.parsing import parse_decimal

logger = logging.getLogger(__name__)

ITEM_RECORD = "C170"
_ITEM_MIN_FIELDS = 15

USE_CONSUMPTION = "uso-consumo"
FIXED_ASSET = "ativo-imobilizado"

# Entry CFOPs subject to DIFAL: intrastate (1xxx) and interstate (2xxx).
DIFAL_CFOPS: Mapping[str, str] = {
    "1556": USE_CONSUMPTION,
    "2556": USE_CONSUMPTION,
    "1551": FIXED_ASSET,
    "2551": FIXED_ASSET,
}

ZERO = Decimal("0")
CENTS = Decimal("0.01")


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Apportionment:
    ratio: Decimal
    frete: Decimal
    seguro: Decimal
    outras: Decimal


@dataclass(frozen=True)
class ExtractionResult:
    items: tuple[LineItem, ...]
    diagnostics: tuple[LineDiagnostic, ...] = field(default_factory=tuple)
    discarded_by_cfop: int = 0


def apportion(item_value: Decimal, header: InvoiceHeader) -> Apportionment:
    """Share the invoice's freight, insurance and other expenses by item value.

    The ratio is zero when the invoice has no merchandise value.
    """
    if header.vl_merc <= 0:
        return Apportionment(ZERO, ZERO, ZERO, ZERO)
    ratio = item_value / header.vl_merc
    return Apportionment(
        ratio=ratio,
        frete=_money(header.vl_frt * ratio),
        seguro=_money(header.vl_seg * ratio),
        outras=_money(header.vl_out_da * ratio),
    )


def build_item(
    record: FiscalRecord,
    header: InvoiceHeader,
    destination: str,
    catalog: Mapping[str, ProductCatalogEntry],
) -> LineItem:
    vl_item = parse_decimal(record.get(6))
    vl_desc = parse_decimal(record.get(7))
    vl_ipi = parse_decimal(record.get(23))
    shares = apportion(vl_item, header)
    base = _money(vl_item + vl_ipi + shares.frete + shares.seguro + shares.outras - vl_desc)

    cod_item = record.get(2)
    entry = catalog.get(cod_item)
    if entry is not None:
        ncm, descricao, tipo = entry.ncm, entry.descricao, entry.tipo_item_label
        status = CatalogStatus.FOUND
    else:
        ncm, descricao, tipo = NCM_NOT_FOUND, PRODUCT_NOT_CATALOGUED, TYPE_UNKNOWN
        status = CatalogStatus.NOT_FOUND

    cst = record.get(9)
    return LineItem(
        line_number=record.line_number,
        invoice_key=header.key,
        num_item=record.get(1),
        cod_item=cod_item,
        descr_compl=record.get(3),
        cfop=record.get(10),
        destination=destination,
        quantity=parse_decimal(record.get(4)),
        unit=record.get(5),
        vl_item=vl_item,
        vl_desc=vl_desc,
        cst_icms=cst,
        tax_situation=classify(cst).kind,
        vl_bc_icms=parse_decimal(record.get(12)),
        aliq_icms=parse_decimal(record.get(13)),
        vl_icms=parse_decimal(record.get(14)),
        vl_ipi=vl_ipi,
        apportionment_ratio=shares.ratio,
        frete_rateado=shares.frete,
        seguro_rateado=shares.seguro,
        outras_rateado=shares.outras,
        base_difal=base,
        ncm=ncm,
        descricao_cadastral=descricao,
        tipo_item=tipo,
        catalog_status=status,
        origin_uf=header.participant_uf,
    )


def extract_items(
    registry: Registry,
    catalog: Mapping[str, ProductCatalogEntry],
    invoices: InvoiceIndex,
    cfops: Mapping[str, str] = DIFAL_CFOPS,
) -> ExtractionResult:
    """Walk C100/C170 in file order and build the DIFAL-relevant line items."""
    items: list[LineItem] = []
    diagnostics: list[LineDiagnostic] = []
    discarded = 0
    current: InvoiceHeader | None = None

    ordered = heapq.merge(
        registry.records(INVOICE_RECORD),
        registry.records(ITEM_RECORD),
        key=lambda r: r.line_number,
    )
    for record in ordered:
        if record.record_type == INVOICE_RECORD:
            current = invoices.at_line(record.line_number)
            continue

        if current is None:
            diagnostics.append(LineDiagnostic(record.line_number, "C170 sem C100 válido anterior"))
            logger.warning("C170 na linha %d sem nota (C100) anterior, ignorado", record.line_number)
            continue
        if len(record) < _ITEM_MIN_FIELDS:
            diagnostics.append(LineDiagnostic(
                record.line_number,
                f"C170 com {len(record)} campos (mínimo {_ITEM_MIN_FIELDS})",
            ))
            logger.warning("C170 na linha %d com campos insuficientes, ignorado", record.line_number)
            continue

        destination = cfops.get(record.get(10))
        if destination is None:
            discarded += 1
            continue
        items.append(build_item(record, current, destination, catalog))

    logger.info("Itens DIFAL extraídos: %d (%d descartados por CFOP)", len(items), discarded)
    return ExtractionResult(items=tuple(items), diagnostics=tuple(diagnostics), discarded_by_cfop=discarded)


def extract(
    registry: Registry,
    catalog: Mapping[str, ProductCatalogEntry],
    invoices: InvoiceIndex,
    cfops: Mapping[str, str] = DIFAL_CFOPS,
) -> list[LineItem]:
    return list(extract_items(registry, catalog, invoices, cfops).items)
