from __future__ import annotations

import logging
from collections.abc import Iterable

from difal.models.catalog import MISSING_IN_SOURCE, ProductCatalogEntry
from difal.models.record import FiscalRecord

logger = logging.getLogger(__name__)

CATALOG_RECORD = "0200"
_MIN_FIELDS = 8


def build_entry(record: FiscalRecord) -> ProductCatalogEntry:
    """Map a 0200 record onto a catalog entry, marking blank fields explicitly."""
    return ProductCatalogEntry(
        cod_item=record.get(1),
        descricao=record.get(2, MISSING_IN_SOURCE),
        cod_barra=record.get(3),
        unidade=record.get(5),
        tipo_item=record.get(6, MISSING_IN_SOURCE),
        ncm=record.get(7, MISSING_IN_SOURCE),
    )


def build(records: Iterable[FiscalRecord]) -> dict[str, ProductCatalogEntry]:
    """Build the item-code lookup from 0200 records.

    Records that are too short or lack an item code are skipped with a warning.
    A repeated item code replaces the earlier entry.
    """
    catalog: dict[str, ProductCatalogEntry] = {}
    skipped = 0
    for record in records:
        if len(record) < _MIN_FIELDS:
            logger.warning(
                "Registro 0200 na linha %d com %d campos (mínimo %d), ignorado",
                record.line_number, len(record), _MIN_FIELDS,
            )
            skipped += 1
            continue
        entry = build_entry(record)
        if not entry.cod_item:
            logger.warning("Registro 0200 na linha %d sem código do item, ignorado", record.line_number)
            skipped += 1
            continue
        if entry.cod_item in catalog:
            logger.debug("Item %s redefinido na linha %d", entry.cod_item, record.line_number)
        catalog[entry.cod_item] = entry
    logger.info("Catálogo de produtos: %d itens (%d registros ignorados)", len(catalog), skipped)
    return catalog
