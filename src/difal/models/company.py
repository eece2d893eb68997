from __future__ import annotations

from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class CompanyHeader:
    """Declaring company, taken from the file's opening record (0000)."""

    cnpj: str
    razao_social: str
    uf: str
    ie: str
    period_start: date | None
    period_end: date | None
    layout_version: str = ""
    purpose: str = ""  # COD_FIN: 0 = original, 1 = retificadora
    cod_municipio: str = ""

    @property
    def period_label(self) -> str:
        """Period as MM/YYYY, or an empty string when the start date is unknown."""
        if self.period_start is None:
            return ""
        return self.period_start.strftime("%m/%Y")
