from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from difal.models.invoice import InvoiceHeader, InvoiceKey, Participant
from difal.models.record import FiscalRecord
from difal.utils.ibge import uf_from_municipio
from difal.utils.parsing import parse_date, parse_decimal

logger = logging.getLogger(__name__)

PARTICIPANT_RECORD = "0150"
INVOICE_RECORD = "C100"
_INVOICE_MIN_FIELDS = 8


@dataclass(frozen=True)
class InvoiceIndex:
    """C100 headers by (series, number) and by source line.

    ``by_line`` keeps every header, including those whose key repeats, so
    positional linkage of line items never loses an invoice.
    """

    by_key: Mapping[InvoiceKey, InvoiceHeader]
    by_line: Mapping[int, InvoiceHeader]

    def __post_init__(self) -> None:
        object.__setattr__(self, "by_key", MappingProxyType(dict(self.by_key)))
        object.__setattr__(self, "by_line", MappingProxyType(dict(self.by_line)))

    def get(self, key: InvoiceKey) -> InvoiceHeader | None:
        return self.by_key.get(key)

    def at_line(self, line_number: int) -> InvoiceHeader | None:
        return self.by_line.get(line_number)

    def __len__(self) -> int:
        return len(self.by_line)


def index_participants(records: Iterable[FiscalRecord]) -> dict[str, Participant]:
    """Participant code -> Participant from 0150 records."""
    participants: dict[str, Participant] = {}
    for record in records:
        cod_part = record.get(1)
        if not cod_part:
            logger.warning("Registro 0150 na linha %d sem código do participante", record.line_number)
            continue
        cod_mun = record.get(7)
        participants[cod_part] = Participant(
            cod_part=cod_part,
            nome=record.get(2),
            cnpj=record.get(4) or record.get(5),
            cod_municipio=cod_mun,
            uf=uf_from_municipio(cod_mun),
        )
    return participants


def build_header(record: FiscalRecord, participant: Participant | None = None) -> InvoiceHeader:
    """Map a C100 record onto an InvoiceHeader."""
    return InvoiceHeader(
        serie=record.get(6),
        num_doc=record.get(7),
        line_number=record.line_number,
        ind_oper=record.get(1),
        ind_emit=record.get(2),
        cod_part=record.get(3),
        cod_mod=record.get(4),
        cod_sit=record.get(5),
        chv_nfe=record.get(8),
        dt_doc=parse_date(record.get(9)),
        vl_doc=parse_decimal(record.get(11)),
        vl_desc=parse_decimal(record.get(13)),
        vl_merc=parse_decimal(record.get(15)),
        vl_frt=parse_decimal(record.get(17)),
        vl_seg=parse_decimal(record.get(18)),
        vl_out_da=parse_decimal(record.get(19)),
        vl_bc_icms=parse_decimal(record.get(20)),
        vl_icms=parse_decimal(record.get(21)),
        vl_ipi=parse_decimal(record.get(24)),
        participant_name=participant.nome if participant else "",
        participant_uf=participant.uf if participant else None,
    )


def index(
    records: Iterable[FiscalRecord],
    participants: Mapping[str, Participant] | None = None,
) -> InvoiceIndex:
    """Index C100 records. Short records are skipped with a warning."""
    participants = participants or {}
    by_key: dict[InvoiceKey, InvoiceHeader] = {}
    by_line: dict[int, InvoiceHeader] = {}
    for record in records:
        if len(record) < _INVOICE_MIN_FIELDS:
            logger.warning(
                "Registro C100 na linha %d com %d campos (mínimo %d), ignorado",
                record.line_number, len(record), _INVOICE_MIN_FIELDS,
            )
            continue
        header = build_header(record, participants.get(record.get(3)))
        if header.key in by_key:
            logger.warning(
                "Nota %s repetida na linha %d (primeira na linha %d)",
                header.label, record.line_number, by_key[header.key].line_number,
            )
        else:
            by_key[header.key] = header
        by_line[record.line_number] = header
    logger.info("Índice de notas: %d cabeçalhos C100", len(by_line))
    return InvoiceIndex(by_key=by_key, by_line=by_line)
