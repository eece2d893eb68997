from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from difal.models.catalog import MISSING_IN_SOURCE

InvoiceKey = tuple[str, str]  # (series, document number)

ZERO = Decimal("0")


class TaxSituation(str, Enum):
    """Broad class of an ICMS tax-situation code (CST or CSOSN)."""

    TAXED = "tributada"
    SUBSTITUTION = "substituicao-tributaria"
    REDUCED_BASE = "reducao-base"
    EXEMPT = "isenta-suspensa-diferida"
    SIMPLIFIED_TAXED = "simples-tributada"
    SIMPLIFIED_ZERO = "simples-sem-icms"
    UNMAPPED = "nao-mapeada"
    MISSING = "ausente"


class CatalogStatus(str, Enum):
    FOUND = "ENCONTRADO"
    NOT_FOUND = "NÃO ENCONTRADO"


@dataclass(frozen=True)
class Participant:
    """Counterparty declared in record 0150."""

    cod_part: str
    nome: str
    cnpj: str = ""
    cod_municipio: str = ""
    uf: str | None = None


@dataclass(frozen=True)
class InvoiceHeader:
    """Invoice-level totals from record C100, used to apportion expenses."""

    serie: str
    num_doc: str
    line_number: int
    ind_oper: str = ""  # 0 = entrada, 1 = saída
    ind_emit: str = ""
    cod_part: str = ""
    cod_mod: str = ""
    cod_sit: str = ""
    chv_nfe: str = ""
    dt_doc: date | None = None
    vl_doc: Decimal = ZERO
    vl_desc: Decimal = ZERO
    vl_merc: Decimal = ZERO
    vl_frt: Decimal = ZERO
    vl_seg: Decimal = ZERO
    vl_out_da: Decimal = ZERO
    vl_bc_icms: Decimal = ZERO
    vl_icms: Decimal = ZERO
    vl_ipi: Decimal = ZERO
    participant_name: str = ""
    participant_uf: str | None = None

    @property
    def key(self) -> InvoiceKey:
        return (self.serie, self.num_doc)

    @property
    def label(self) -> str:
        return f"{self.serie}-{self.num_doc}"


@dataclass(frozen=True)
class LineItem:
    """A tax-relevant invoice line (C170), apportioned and enriched."""

    line_number: int
    invoice_key: InvoiceKey
    num_item: str
    cod_item: str
    descr_compl: str
    cfop: str
    destination: str  # uso-consumo | ativo-imobilizado
    quantity: Decimal
    unit: str
    vl_item: Decimal
    vl_desc: Decimal
    cst_icms: str
    tax_situation: TaxSituation
    vl_bc_icms: Decimal
    aliq_icms: Decimal
    vl_icms: Decimal
    vl_ipi: Decimal
    apportionment_ratio: Decimal
    frete_rateado: Decimal
    seguro_rateado: Decimal
    outras_rateado: Decimal
    base_difal: Decimal
    ncm: str
    descricao_cadastral: str
    tipo_item: str
    catalog_status: CatalogStatus
    origin_uf: str | None = None

    @property
    def description(self) -> str:
        """Catalogue description when available, else the invoice's own text."""
        if self.catalog_status is CatalogStatus.FOUND and self.descricao_cadastral not in (
            "",
            MISSING_IN_SOURCE,
        ):
            return self.descricao_cadastral
        return self.descr_compl or self.descricao_cadastral or "SEM DESCRIÇÃO"
