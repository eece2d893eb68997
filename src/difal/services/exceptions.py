from __future__ import annotations


class DifalError(Exception):
    """Base class for errors raised while reading or calculating a SPED file."""


class DecodeError(DifalError):
    """No supported text encoding could read the file."""


class ConfigurationError(DifalError):
    """Missing, unknown or inconsistent UF/jurisdiction configuration. Aborts the run."""


class RecordFormatError(DifalError):
    """A malformed SPED line: missing delimiters, too few fields or a bad record type."""

    def __init__(self, message: str, line_number: int) -> None:
        super().__init__(message)
        self.line_number = line_number


class ItemCalculationError(DifalError):
    """Failure while computing DIFAL for one line item."""

    def __init__(self, message: str, item_code: str = "") -> None:
        super().__init__(message)
        self.item_code = item_code
