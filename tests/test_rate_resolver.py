from __future__ import annotations

import logging
from decimal import Decimal

import pytest

from difal.models.invoice import TaxSituation
from difal.services.rate_resolver import classify, effective_rate

D = Decimal


class TestClassify:
    @pytest.mark.parametrize("code,situation,origin,kind", [
        ("00", "00", None, TaxSituation.TAXED),
        ("000", "00", "0", TaxSituation.TAXED),
        ("220", "20", "2", TaxSituation.REDUCED_BASE),
        ("060", "60", "0", TaxSituation.SUBSTITUTION),
        ("141", "41", "1", TaxSituation.EXEMPT),
        ("101", "101", None, TaxSituation.SIMPLIFIED_TAXED),
        ("900", "900", None, TaxSituation.SIMPLIFIED_TAXED),
        ("300", "300", None, TaxSituation.SIMPLIFIED_ZERO),
        ("500", "500", None, TaxSituation.SIMPLIFIED_ZERO),
        ("0102", "102", "0", TaxSituation.SIMPLIFIED_TAXED),
        ("2500", "500", "2", TaxSituation.SIMPLIFIED_ZERO),
        ("99", "99", None, TaxSituation.UNMAPPED),
        ("", "", None, TaxSituation.MISSING),
    ])
    def test_shapes(self, code, situation, origin, kind):
        tax = classify(code)
        assert tax.situation == situation
        assert tax.origin == origin
        assert tax.kind is kind

    def test_simplified_flags(self):
        assert classify("0101").simplified
        assert not classify("000").simplified
        assert classify("1101").imported
        assert not classify("0101").imported


class TestEffectiveRate:
    @pytest.mark.parametrize("gross", ["0.01", "1", "1000", "987654.32"])
    @pytest.mark.parametrize("icms", ["0", "50", "999"])
    def test_fully_taxed_is_nominal(self, gross, icms):
        assert effective_rate("00", D(gross), D(icms), D("12")) == D("12")
        assert effective_rate("090", D(gross), D(icms), D("7")) == D("7")

    def test_reduced_base_back_derived(self):
        assert effective_rate("20", D("1000"), D("90"), D("18")) == D("9.0")
        assert effective_rate("020", D("1000"), D("40"), D("12")) == D("4")

    def test_reduced_base_rounded_to_four_places(self):
        assert effective_rate("70", D("300"), D("10"), D("12")) == D("3.3333")

    def test_reduced_base_without_icms(self):
        assert effective_rate("20", D("1000"), D("0"), D("12")) == 0

    @pytest.mark.parametrize("code", [
        "10", "30", "60", "40", "41", "50", "51", "040", "251", "300", "400", "500",
    ])
    def test_zero_rate_codes(self, code):
        assert effective_rate(code, D("1000"), D("120"), D("12")) == 0

    @pytest.mark.parametrize("code", ["0300", "0400", "0500"])
    def test_simplified_without_icms(self, code):
        assert effective_rate(code, D("1000"), D("0"), D("12")) == 0

    @pytest.mark.parametrize("origin", ["1", "2", "6", "7"])
    def test_simplified_imported(self, origin):
        assert effective_rate(f"{origin}101", D("1000"), D("0"), D("0")) == D("4")

    def test_simplified_national_uses_route_rate(self):
        assert effective_rate("0101", D("1000"), D("0"), D("0")) == D("7")
        assert effective_rate("102", D("1000"), D("0"), D("0"), national_rate=D("12")) == D("12")

    def test_unmapped_falls_back_to_nominal_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="difal.services.rate_resolver"):
            assert effective_rate("99", D("1000"), D("0"), D("17")) == D("17")
        assert "não mapeado" in caplog.text

    def test_missing_code(self):
        assert effective_rate("", D("1000"), D("120"), D("12")) == 0

    @pytest.mark.parametrize("gross", ["0", "-10"])
    def test_non_positive_gross(self, gross):
        assert effective_rate("00", D(gross), D("120"), D("12")) == 0
