from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from difal.models.company import CompanyHeader


@dataclass(frozen=True)
class FiscalRecord:
    """One pipe-delimited SPED line, split into fields.

    ``fields[0]`` is the record type itself (REG), so positions match the
    official layout tables.
    """

    record_type: str
    fields: tuple[str, ...]
    line_number: int

    def get(self, index: int, default: str = "") -> str:
        """Return the stripped field at *index*, or *default* when absent/empty."""
        if index >= len(self.fields):
            return default
        value = self.fields[index].strip()
        return value or default

    def __len__(self) -> int:
        return len(self.fields)


@dataclass(frozen=True)
class LineDiagnostic:
    line_number: int
    message: str


@dataclass(frozen=True)
class Registry:
    """All valid records of one file, grouped by type in file order."""

    encoding: str
    by_type: Mapping[str, tuple[FiscalRecord, ...]]
    company: CompanyHeader | None = None
    lines_total: int = 0
    lines_processed: int = 0
    lines_ignored: int = 0
    diagnostics: tuple[LineDiagnostic, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "by_type", MappingProxyType(dict(self.by_type)))

    def records(self, record_type: str) -> tuple[FiscalRecord, ...]:
        return self.by_type.get(record_type, ())

    def counts(self) -> dict[str, int]:
        """Number of records per type, sorted by type code."""
        return {rt: len(recs) for rt, recs in sorted(self.by_type.items())}

    def __iter__(self) -> Iterator[FiscalRecord]:
        for recs in self.by_type.values():
            yield from recs
