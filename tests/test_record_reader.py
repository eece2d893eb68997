from __future__ import annotations

from datetime import date

import pytest

from difal.services import record_reader
from difal.services.exceptions import RecordFormatError
from tests.conftest import HEADER, sped_line


class TestDecode:
    def test_utf8(self):
        text, encoding = record_reader.decode_with_encoding("|0000|SÃO PAULO|".encode())
        assert text == "|0000|SÃO PAULO|"
        assert encoding == "utf-8"

    def test_latin1_fallback(self):
        data = "|0200|CAFÉ|".encode("iso-8859-1")
        text, encoding = record_reader.decode_with_encoding(data)
        assert text == "|0200|CAFÉ|"
        assert encoding == "iso-8859-1"

    def test_decode_returns_text(self):
        assert record_reader.decode(b"|C001|0|") == "|C001|0|"


class TestParseLine:
    def test_valid(self):
        record = record_reader.parse_line("|C100|0|1|FORN1|", 7)
        assert record.record_type == "C100"
        assert record.fields == ("C100", "0", "1", "FORN1")
        assert record.line_number == 7

    def test_surrounding_whitespace(self):
        record = record_reader.parse_line("  |0001|0|\r", 2)
        assert record.record_type == "0001"

    def test_missing_leading_pipe(self):
        with pytest.raises(RecordFormatError, match="delimitadores") as exc:
            record_reader.parse_line("C100|0|", 3)
        assert exc.value.line_number == 3

    def test_missing_trailing_pipe(self):
        with pytest.raises(RecordFormatError):
            record_reader.parse_line("|C100|0", 3)

    def test_too_few_fields(self):
        with pytest.raises(RecordFormatError, match="2 campos"):
            record_reader.parse_line("|9999|", 1)

    @pytest.mark.parametrize("reg", ["C1", "C10000", "C-10", ""])
    def test_bad_record_type(self, reg):
        with pytest.raises(RecordFormatError):
            record_reader.parse_line(f"|{reg}|X|", 1)

    def test_record_get_strips_and_defaults(self):
        record = record_reader.parse_line("|0200| ABC ||", 1)
        assert record.get(1) == "ABC"
        assert record.get(2, "N/A") == "N/A"
        assert record.get(50, "N/A") == "N/A"


class TestParse:
    def test_counts(self, sped_text):
        registry = record_reader.parse(sped_text, "utf-8")
        assert registry.lines_total == 14
        assert registry.lines_processed == 13
        assert registry.lines_ignored == 1
        assert registry.encoding == "utf-8"

    def test_diagnostic_keeps_line_number(self, sped_text):
        registry = record_reader.parse(sped_text)
        assert [d.line_number for d in registry.diagnostics] == [6]

    def test_grouped_in_file_order(self, sped_text):
        registry = record_reader.parse(sped_text)
        assert [r.line_number for r in registry.records("C170")] == [9, 10, 12]
        assert registry.counts()["C100"] == 2
        assert registry.counts()["0200"] == 2
        assert registry.records("D100") == ()

    def test_blank_lines_not_counted(self):
        registry = record_reader.parse("\n\n|C001|0|\n   \n")
        assert registry.lines_total == 1
        assert registry.lines_ignored == 0

    def test_iterates_all_records(self, sped_text):
        registry = record_reader.parse(sped_text)
        assert len(list(registry)) == 13

    def test_registry_is_read_only(self, sped_text):
        registry = record_reader.parse(sped_text)
        with pytest.raises(TypeError):
            registry.by_type["X"] = ()


class TestCompanyHeader:
    def test_fields_by_position(self, sped_text):
        company = record_reader.parse(sped_text).company
        assert company is not None
        assert company.layout_version == "017"
        assert company.purpose == "0"
        assert company.period_start == date(2024, 1, 1)
        assert company.period_end == date(2024, 1, 31)
        assert company.razao_social == "EMPRESA TESTE LTDA"
        assert company.cnpj == "12345678000199"
        assert company.uf == "SP"
        assert company.ie == "123456789110"
        assert company.period_label == "01/2024"

    def test_first_header_wins(self):
        other = sped_line("0000", "017", "0", "01022024", "29022024", "OUTRA", "999", "", "RJ", "1")
        company = record_reader.parse(f"{HEADER}\n{other}\n").company
        assert company.uf == "SP"

    def test_missing_header(self):
        assert record_reader.parse("|C001|0|\n").company is None

    def test_short_header_is_diagnostic(self):
        registry = record_reader.parse("|0000|017|0|01012024|\n")
        assert registry.company is None
        assert registry.lines_processed == 1
        assert "0000" in registry.diagnostics[0].message

    def test_invalid_date(self):
        line = sped_line("0000", "017", "0", "99999999", "", "X", "1", "", "MG", "1")
        company = record_reader.parse(line).company
        assert company.period_start is None
        assert company.period_label == ""


def test_read_bytes(sped_bytes):
    registry = record_reader.read(sped_bytes)
    assert registry.company.razao_social == "EMPRESA TESTE LTDA"
    assert registry.encoding == "utf-8"
