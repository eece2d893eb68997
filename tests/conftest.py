from __future__ import annotations

from decimal import Decimal

import pytest

from difal.config import bundled_jurisdictions
from difal.models.invoice import CatalogStatus, LineItem
from difal.models.jurisdiction import JurisdictionTable
from difal.services.rate_resolver import classify


def sped_line(*fields: str) -> str:
    """Join fields into a pipe-delimited SPED line."""
    return "|" + "|".join(fields) + "|"


def c100_line(
    serie: str,
    num_doc: str,
    vl_merc: str = "1000,00",
    vl_frt: str = "0,00",
    vl_seg: str = "0,00",
    vl_out_da: str = "0,00",
    cod_part: str = "FORN1",
) -> str:
    return sped_line(
        "C100", "0", "1", cod_part, "55", "00", serie, num_doc,
        "41240111222333000144550010000010011000010010", "05012024", "06012024",
        vl_merc, "0", "0,00", "0,00", vl_merc, "0", vl_frt, vl_seg, vl_out_da,
        vl_merc, "0,00", "0,00", "0,00", "0,00", "0,00", "0,00", "0,00", "0,00",
    )


def c170_line(
    num_item: str,
    cod_item: str,
    vl_item: str,
    cfop: str = "2556",
    cst: str = "000",
    aliq: str = "12,00",
    vl_icms: str = "0,00",
    vl_ipi: str = "0,00",
    vl_desc: str = "0,00",
) -> str:
    return sped_line(
        "C170", num_item, cod_item, "", "1", "UN", vl_item, vl_desc, "0", cst, cfop,
        "", vl_item, aliq, vl_icms, "0,00", "0,00", "0,00", "0", "", "", "0,00", "0,00",
        vl_ipi, "", "0,00", "0,00",
    )


HEADER = sped_line(
    "0000", "017", "0", "01012024", "31012024", "EMPRESA TESTE LTDA", "12345678000199",
    "", "SP", "123456789110", "3550308", "", "", "A", "1",
)
PARTICIPANT = sped_line(
    "0150", "FORN1", "FORNECEDOR PARANA LTDA", "01058", "11222333000144", "",
    "9012345678", "4106902", "", "RUA A", "10", "", "CENTRO",
)


@pytest.fixture
def sped_text() -> str:
    """A small file: one PR supplier, two DIFAL items and one resale item."""
    lines = [
        HEADER,
        sped_line("0001", "0"),
        PARTICIPANT,
        sped_line("0200", "PROD001", "CADEIRA DE ESCRITORIO", "", "", "UN", "07", "94013000", "", "94"),
        sped_line("0200", "PROD002", "NOTEBOOK", "", "", "UN", "08", "84713012", "", "84"),
        "LINHA SEM DELIMITADORES",
        sped_line("C001", "0"),
        c100_line("1", "1001", vl_frt="60,00", vl_seg="20,00", vl_out_da="20,00"),
        c170_line("1", "PROD001", "600,00", cfop="2556", vl_icms="72,00", vl_ipi="30,00"),
        c170_line("2", "PROD002", "400,00", cfop="2551", vl_icms="48,00", vl_ipi="20,00"),
        c100_line("1", "1002", vl_merc="500,00"),
        c170_line("1", "PROD003", "500,00", cfop="2102"),
        sped_line("C990", "8"),
        sped_line("9999", "13"),
        "",
    ]
    return "\n".join(lines)


@pytest.fixture
def sped_bytes(sped_text: str) -> bytes:
    return sped_text.encode("iso-8859-1")


@pytest.fixture(scope="session")
def table() -> JurisdictionTable:
    return JurisdictionTable.from_dict(bundled_jurisdictions())


@pytest.fixture
def make_item():
    """Factory for LineItems whose DIFAL base equals the item value."""

    def _make(
        vl_item: str = "1000.00",
        cst: str = "00",
        aliq: str = "12",
        vl_icms: str = "120.00",
        cod_item: str = "PROD001",
        origin_uf: str | None = None,
        base: str | None = None,
        cfop: str = "2556",
    ) -> LineItem:
        value = Decimal(vl_item)
        return LineItem(
            line_number=10,
            invoice_key=("1", "1001"),
            num_item="1",
            cod_item=cod_item,
            descr_compl="",
            cfop=cfop,
            destination="uso-consumo" if cfop.endswith("556") else "ativo-imobilizado",
            quantity=Decimal("1"),
            unit="UN",
            vl_item=value,
            vl_desc=Decimal("0"),
            cst_icms=cst,
            tax_situation=classify(cst).kind,
            vl_bc_icms=value,
            aliq_icms=Decimal(aliq),
            vl_icms=Decimal(vl_icms),
            vl_ipi=Decimal("0"),
            apportionment_ratio=Decimal("1"),
            frete_rateado=Decimal("0"),
            seguro_rateado=Decimal("0"),
            outras_rateado=Decimal("0"),
            base_difal=Decimal(base) if base is not None else value,
            ncm="94013000",
            descricao_cadastral="CADEIRA DE ESCRITORIO",
            tipo_item="Material de Uso e Consumo",
            catalog_status=CatalogStatus.FOUND,
            origin_uf=origin_uf,
        )

    return _make


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    cfg = tmp_path / "config"
    cfg.mkdir()
    monkeypatch.setattr("difal.config.get_config_dir", lambda: cfg)
    return cfg
