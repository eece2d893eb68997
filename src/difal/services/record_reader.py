"""Decode a SPED EFD export and split it into typed records."""

from __future__ import annotations

import logging
import re
from collections import defaultdict

from difal.models.company import CompanyHeader
from difal.models.record import FiscalRecord, LineDiagnostic, Registry
from difal.services.exceptions import DecodeError, RecordFormatError
from difal.utils.parsing import parse_date

logger = logging.getLogger(__name__)

_RECORD_TYPE = re.compile(r"[0-9A-Za-z]{3,4}")

HEADER_RECORD = "0000"
_HEADER_MIN_FIELDS = 9


def decode_with_encoding(data: bytes) -> tuple[str, str]:
    """Decode *data*, returning ``(text, encoding_label)``.

    Tries strict UTF-8, then ISO-8859-1, then UTF-8 with replacement characters.
    """
    for encoding in ("utf-8", "iso-8859-1"):
        try:
            return data.decode(encoding), encoding
        except UnicodeDecodeError:
            logger.debug("Arquivo não é %s, tentando próxima codificação", encoding)
    try:
        return data.decode("utf-8", errors="replace"), "utf-8 (com substituições)"
    except (UnicodeError, LookupError) as e:
        raise DecodeError(f"Não foi possível decodificar o arquivo: {e}") from e


def decode(data: bytes) -> str:
    return decode_with_encoding(data)[0]


def parse_line(line: str, line_number: int) -> FiscalRecord:
    """Split one ``|REG|F1|...|`` line into a FiscalRecord.

    Raises RecordFormatError when delimiters, field count or record type are invalid.
    """
    text = line.strip()
    if not (text.startswith("|") and text.endswith("|")) or len(text) < 2:
        raise RecordFormatError("linha sem delimitadores '|' no início e no fim", line_number)
    fields = text.split("|")[1:-1]
    if len(fields) < 2:
        raise RecordFormatError("linha com menos de 2 campos", line_number)
    record_type = fields[0].strip()
    if not _RECORD_TYPE.fullmatch(record_type):
        raise RecordFormatError(f"tipo de registro inválido: '{record_type}'", line_number)
    return FiscalRecord(record_type=record_type.upper(), fields=tuple(fields), line_number=line_number)


def parse_company(record: FiscalRecord) -> CompanyHeader:
    """Build the CompanyHeader from a 0000 record (fixed government positions)."""
    if len(record) < _HEADER_MIN_FIELDS:
        raise RecordFormatError(
            f"registro 0000 com {len(record)} campos (mínimo {_HEADER_MIN_FIELDS})",
            record.line_number,
        )
    return CompanyHeader(
        layout_version=record.get(1),
        purpose=record.get(2),
        period_start=parse_date(record.get(3)),
        period_end=parse_date(record.get(4)),
        razao_social=record.get(5),
        cnpj=record.get(6),
        uf=record.get(8).upper(),
        ie=record.get(9),
        cod_municipio=record.get(10),
    )


def parse(text: str, encoding: str = "") -> Registry:
    """Parse decoded SPED text into a Registry.

    Blank lines are skipped silently; malformed lines are counted as ignored
    and reported as diagnostics.
    """
    by_type: dict[str, list[FiscalRecord]] = defaultdict(list)
    diagnostics: list[LineDiagnostic] = []
    company: CompanyHeader | None = None
    total = processed = ignored = 0

    for line_number, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        total += 1
        try:
            record = parse_line(line, line_number)
        except RecordFormatError as e:
            ignored += 1
            diagnostics.append(LineDiagnostic(e.line_number, str(e)))
            logger.debug("Linha %d ignorada: %s", line_number, e)
            continue
        processed += 1
        by_type[record.record_type].append(record)

        if record.record_type == HEADER_RECORD and company is None:
            try:
                company = parse_company(record)
            except RecordFormatError as e:
                diagnostics.append(LineDiagnostic(e.line_number, str(e)))
                logger.warning("Cabeçalho 0000 inválido na linha %d: %s", line_number, e)

    if company is None:
        logger.warning("Registro 0000 (dados da empresa) não encontrado")
    logger.info(
        "Leitura concluída: %d linhas, %d processadas, %d ignoradas",
        total, processed, ignored,
    )
    return Registry(
        encoding=encoding,
        by_type={rt: tuple(recs) for rt, recs in by_type.items()},
        company=company,
        lines_total=total,
        lines_processed=processed,
        lines_ignored=ignored,
        diagnostics=tuple(diagnostics),
    )


def read(data: bytes) -> Registry:
    """Decode and parse raw file bytes."""
    text, encoding = decode_with_encoding(data)
    return parse(text, encoding)
