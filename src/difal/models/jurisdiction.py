from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from types import MappingProxyType

from difal.services.exceptions import ConfigurationError
from difal.utils.validators import VALID_UFS


class Methodology(str, Enum):
    SINGLE_BASE = "base-unica"
    DOUBLE_BASE = "base-dupla"


# EC 87/2015: share of the differential owed to the destination state.
DESTINATION_SHARE_BY_YEAR = {
    2016: Decimal("40"),
    2017: Decimal("60"),
    2018: Decimal("80"),
    2019: Decimal("100"),
}


def destination_share_for_year(year: int) -> Decimal:
    """Destination share (%) for *year*; 100 from 2019 onwards."""
    if year < 2016:
        raise ValueError(f"Partilha do DIFAL não se aplica antes de 2016: {year}")
    return DESTINATION_SHARE_BY_YEAR.get(year, Decimal("100"))


SOUTH_SOUTHEAST = frozenset({"Sul", "Sudeste"})
NORTH_NORTHEAST_CENTER_WEST = frozenset({"Norte", "Nordeste", "Centro-Oeste"})
INTERSTATE_LOW = Decimal("7")
INTERSTATE_HIGH = Decimal("12")


@dataclass(frozen=True)
class Jurisdiction:
    uf: str
    nome: str
    regiao: str
    internal_rate: Decimal
    fcp_rate: Decimal
    methodology: Methodology


class JurisdictionTable:
    """Read-only per-UF reference table: rates, FCP and DIFAL methodology.

    Construction checks that the table covers exactly the 27 UFs, so the
    two methodology sets always partition them.
    """

    def __init__(self, jurisdictions: Iterable[Jurisdiction]) -> None:
        by_uf: dict[str, Jurisdiction] = {}
        for j in jurisdictions:
            if j.uf not in VALID_UFS:
                raise ConfigurationError(f"UF desconhecida na tabela: '{j.uf}'")
            if j.uf in by_uf:
                raise ConfigurationError(f"UF repetida na tabela: '{j.uf}'")
            by_uf[j.uf] = j
        missing = VALID_UFS - by_uf.keys()
        if missing:
            raise ConfigurationError(f"UFs ausentes na tabela: {', '.join(sorted(missing))}")
        self._by_uf: Mapping[str, Jurisdiction] = MappingProxyType(by_uf)

    @classmethod
    def from_dict(cls, d: dict) -> JurisdictionTable:
        """Build the table from the ``jurisdictions.yaml`` layout.

        ``metodologias`` maps each methodology to its UF list; ``estados``
        maps each UF to its name, region, internal rate and FCP rate.
        """
        try:
            metodologias = d["metodologias"]
            estados = d["estados"]
        except (KeyError, TypeError):
            raise ConfigurationError("Tabela de UFs deve conter 'metodologias' e 'estados'") from None

        methodology_of: dict[str, Methodology] = {}
        for key, ufs in metodologias.items():
            try:
                methodology = Methodology(key)
            except ValueError:
                raise ConfigurationError(f"Metodologia desconhecida: '{key}'") from None
            for uf in ufs or []:
                if uf in methodology_of:
                    raise ConfigurationError(f"UF '{uf}' aparece em mais de uma metodologia")
                methodology_of[uf] = methodology

        unknown = methodology_of.keys() - VALID_UFS
        if unknown:
            raise ConfigurationError(f"UFs desconhecidas nas metodologias: {', '.join(sorted(unknown))}")
        uncovered = VALID_UFS - methodology_of.keys()
        if uncovered:
            raise ConfigurationError(f"UFs sem metodologia: {', '.join(sorted(uncovered))}")

        jurisdictions = []
        for uf, info in estados.items():
            if uf not in methodology_of:
                raise ConfigurationError(f"UF desconhecida na tabela: '{uf}'")
            try:
                jurisdictions.append(Jurisdiction(
                    uf=uf,
                    nome=info["nome"],
                    regiao=info["regiao"],
                    internal_rate=Decimal(str(info["aliquota_interna"])),
                    fcp_rate=Decimal(str(info.get("fcp", "0"))),
                    methodology=methodology_of[uf],
                ))
            except (KeyError, TypeError, ArithmeticError) as e:
                raise ConfigurationError(f"Dados inválidos para a UF '{uf}': {e}") from None
        return cls(jurisdictions)

    def __contains__(self, uf: object) -> bool:
        return uf in self._by_uf

    def __len__(self) -> int:
        return len(self._by_uf)

    def get(self, uf: str) -> Jurisdiction:
        try:
            return self._by_uf[uf]
        except KeyError:
            raise ConfigurationError(f"UF não configurada: '{uf}'") from None

    def resolve_methodology(self, uf: str) -> Methodology:
        return self.get(uf).methodology

    def ufs_with(self, methodology: Methodology) -> frozenset[str]:
        return frozenset(uf for uf, j in self._by_uf.items() if j.methodology is methodology)

    def interstate_rate(self, origin: str, destination: str) -> Decimal:
        """Interstate ICMS rate: 7% from South/Southeast (except ES) to N/NE/CO or ES, else 12%."""
        o = self.get(origin)
        dest = self.get(destination)
        if (
            o.regiao in SOUTH_SOUTHEAST
            and o.uf != "ES"
            and (dest.regiao in NORTH_NORTHEAST_CENTER_WEST or dest.uf == "ES")
        ):
            return INTERSTATE_LOW
        return INTERSTATE_HIGH
