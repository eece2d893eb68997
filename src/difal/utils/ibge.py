from __future__ import annotations

# First two digits of an IBGE municipality code identify the state.
IBGE_STATE_CODES = {
    "11": "RO", "12": "AC", "13": "AM", "14": "RR", "15": "PA", "16": "AP",
    "17": "TO", "21": "MA", "22": "PI", "23": "CE", "24": "RN", "25": "PB",
    "26": "PE", "27": "AL", "28": "SE", "29": "BA", "31": "MG", "32": "ES",
    "33": "RJ", "35": "SP", "41": "PR", "42": "SC", "43": "RS", "50": "MS",
    "51": "MT", "52": "GO", "53": "DF",
}


def uf_from_municipio(cod_municipio: str) -> str | None:
    """Return the UF for a 7-digit IBGE municipality code, or None."""
    code = cod_municipio.strip()
    if len(code) < 2 or not code[:2].isdigit():
        return None
    return IBGE_STATE_CODES.get(code[:2])
