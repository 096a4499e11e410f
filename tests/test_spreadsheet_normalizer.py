"""
Test Suite per lo Spreadsheet Normalizer
========================================
"""
from dataclasses import fields

import pytest

from conto.exceptions import FileProcessingError
from conto.services.spreadsheet_normalizer import (
    is_empty_row,
    normalize_grid,
    normalize_header,
    parse_month,
    parse_number,
    parse_year,
    read_grid,
    resolve_header_indexes
)
from conftest import HEADERS, make_xlsx


class TestParseNumber:

    @pytest.mark.parametrize("raw, expected", [
        ("1.234,56", 1234.56),
        ("€ 1.000", 1000.0),
        ("12,5", 12.5),
        (12.5, 12.5),
        (7, 7.0),
        ("-3,40", -3.4),
    ])
    def test_italian_format(self, raw, expected):
        assert parse_number(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", ["abc", "", "   ", None, float("nan"), float("inf"), True])
    def test_unparsable_gives_none(self, raw):
        assert parse_number(raw) is None


class TestParseMonth:

    @pytest.mark.parametrize("raw, expected", [
        ("Gennaio", 1),
        ("gen", 1),
        ("SETT", 9),
        ("dicembre", 12),
        (3, 3),
        ("4", 4),
        (0, 1),
        (15, 12),
    ])
    def test_names_and_numbers(self, raw, expected):
        assert parse_month(raw) == expected

    def test_unknown_month(self):
        assert parse_month("foo") is None
        assert parse_month(None) is None

    def test_year(self):
        assert parse_year("2025") == 2025
        assert parse_year(2024.0) == 2024
        assert parse_year("25") is None


class TestHeaders:

    def test_normalize_header(self):
        assert normalize_header("  Matricola   INPS ") == "matricola inps"
        assert normalize_header("Quota F.I.A.C.O.M.") == "quota fiacom"
        assert normalize_header(None) == ""

    def test_aliases_case_insensitive(self):
        indexes = resolve_header_indexes(["ANNO", "mese", "Azienda", "Quota Fiacom", "Matricola"])
        assert indexes["anno"] == 0
        assert indexes["mese"] == 1
        assert indexes["ragione_sociale"] == 2
        assert indexes["quota_fiacom"] == 3
        assert indexes["matricola_inps"] == 4
        assert indexes["fondo_sanitario"] == -1


class TestNormalizeGrid:

    def test_skips_empty_rows_and_keeps_row_numbers(self):
        grid = [
            HEADERS,
            ["Gennaio", 2025, "123", "Alfa", None, None, None, "1.000,00"],
            [None, "", "  ", None, None, None, None, None],
            ["Febbraio", 2025, "", "Beta", "50", None, None, None],
        ]
        rows = normalize_grid(grid)

        assert [r.row_number for r in rows] == [2, 4]
        assert rows[0].base_amount == 1000.0
        assert rows[0].month == 1 and rows[0].year == 2025
        assert rows[0].data.matricola_inps == "123"
        assert rows[1].base_amount is None
        assert rows[1].non_riconciliata == 50.0

    def test_empty_row_detection(self):
        assert is_empty_row([None, "", "   ", float("nan")])
        assert not is_empty_row([None, 0])

    def test_header_only(self):
        assert normalize_grid([HEADERS]) == []
        assert normalize_grid([]) == []

    def test_rows_carry_only_parsed_values(self):
        row = normalize_grid([HEADERS, ["Gennaio", 2025, "123", "Alfa", None, None, None, "10"]])[0]

        # row-level problems are reported by the import pipeline
        assert {f.name for f in fields(row)} == {
            "row_number", "data", "base_amount", "non_riconciliata", "month", "year"
        }


class TestReadGrid:

    def test_reads_first_sheet(self):
        content = make_xlsx([["Marzo", 2025, 1234567890, "Alfa", None, None, None, 250.5]])
        grid = read_grid(content, "competenze.xlsx")

        assert grid[0][0] == "Mese"
        rows = normalize_grid(grid)
        assert len(rows) == 1
        # numeric registration codes come back without the trailing .0
        assert rows[0].data.matricola_inps == "1234567890"
        assert rows[0].data.anno == "2025"
        assert rows[0].base_amount == 250.5

    def test_rejects_non_excel(self):
        with pytest.raises(FileProcessingError):
            read_grid(b"a,b,c", "dati.csv")

    def test_rejects_corrupted_workbook(self):
        with pytest.raises(FileProcessingError):
            read_grid(b"not really a workbook", "rotto.xlsx")
