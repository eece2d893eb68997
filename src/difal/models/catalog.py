from __future__ import annotations

from dataclasses import dataclass

# Placeholders for fields the declarant left blank in 0200.
MISSING_IN_SOURCE = "SEM DADOS NA ORIGEM"

# Placeholders for line items whose code has no 0200 record at all.
NCM_NOT_FOUND = "NCM NÃO ENCONTRADO"
PRODUCT_NOT_CATALOGUED = "PRODUTO NÃO CADASTRADO"
TYPE_UNKNOWN = "TIPO DESCONHECIDO"

ITEM_TYPES = {
    "00": "Mercadoria para Revenda",
    "01": "Matéria-prima",
    "02": "Embalagem",
    "03": "Produto em Processo",
    "04": "Produto Acabado",
    "05": "Subproduto",
    "06": "Produto Intermediário",
    "07": "Material de Uso e Consumo",
    "08": "Ativo Imobilizado",
    "09": "Serviços",
    "10": "Outros insumos",
    "99": "Outras",
}


@dataclass(frozen=True)
class ProductCatalogEntry:
    cod_item: str
    descricao: str
    ncm: str
    tipo_item: str
    unidade: str = ""
    cod_barra: str = ""

    @property
    def tipo_item_label(self) -> str:
        return ITEM_TYPES.get(self.tipo_item, self.tipo_item)

    @property
    def has_ncm(self) -> bool:
        return self.ncm != MISSING_IN_SOURCE
