"""
Test per il parser degli estratti conto CSV.
"""

from datetime import date

import pytest

from app.services.csv_parser import (
    generate_csv_row_hash,
    is_valid_csv_filename,
    parse_amount,
    parse_bank_csv,
    parse_date,
)


class TestParseDate:

    @pytest.mark.parametrize(
        "value",
        ["15.03.2026", "2026-03-15", "15/03/2026", "15-03-2026", "  15.03.2026 "],
    )
    def test_supported_formats(self, value):
        assert parse_date(value) == date(2026, 3, 15)

    @pytest.mark.parametrize("value", ["", None, "03/15/26", "31.02.2026", "gestern"])
    def test_invalid(self, value):
        assert parse_date(value) is None


class TestParseAmount:

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("-89,99", -89.99),
            ("-89.99", -89.99),
            ("1.234,56", 1234.56),
            ("1,234.56", 1234.56),
            ("123,45", 123.45),
            ("(100.00)", -100.0),
            ("€ 12,50", 12.50),
            ("+2500", 2500.0),
        ],
    )
    def test_formats(self, value, expected):
        assert parse_amount(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", ["", None, "abc", "12,34,56x"])
    def test_invalid(self, value):
        assert parse_amount(value) is None


class TestRowHash:

    def test_same_transaction_in_different_formats(self):
        """Export tedesco e ISO della stessa operazione: stesso hash."""
        german = generate_csv_row_hash("15.03.2026", "-89,99", "Office Supplies")
        iso = generate_csv_row_hash("2026-03-15", "-89.99", "Office Supplies")

        assert german == iso
        assert len(german) == 16

    def test_description_whitespace_is_ignored(self):
        assert generate_csv_row_hash("15.03.2026", "-89,99", "Office Supplies ") == generate_csv_row_hash(
            "15.03.2026", "-89,99", "Office Supplies"
        )

    def test_different_amount_changes_hash(self):
        assert generate_csv_row_hash("15.03.2026", "-89,99", "Office Supplies") != generate_csv_row_hash(
            "15.03.2026", "-89,90", "Office Supplies"
        )


class TestParseBankCsv:

    def test_booking_date_layout(self):
        content = (
            "Booking Date,Value Date,Description,Counterparty,Amount,Currency\n"
            "2026-03-15,2026-03-15,Office Supplies,Bürobedarf GmbH,-89.99,EUR\n"
            "2026-03-16,2026-03-16,Invoice BM-2026-001,Mustermann GmbH,238.00,EUR\n"
        )

        result = parse_bank_csv(content)

        assert result.total_rows == 2
        assert result.errors == []
        row_number, candidate = result.rows[0]
        assert row_number == 2
        assert candidate.date == date(2026, 3, 15)
        assert candidate.amount == pytest.approx(-89.99)
        assert candidate.description == "Office Supplies"
        assert candidate.counterparty == "Bürobedarf GmbH"
        assert candidate.currency == "EUR"
        assert candidate.csv_row_hash == generate_csv_row_hash("2026-03-15", "-89.99", "Office Supplies")

    def test_completed_date_layout_with_semicolons(self):
        content = (
            "\ufeffCompleted date;Counterparty name;Reference;Payment amount;Payment currency\n"
            "15.03.2026;Bürobedarf GmbH;Office Supplies;-89,99;EUR\n"
        )

        result = parse_bank_csv(content)

        assert len(result.rows) == 1
        _, candidate = result.rows[0]
        assert candidate.date == date(2026, 3, 15)
        assert candidate.amount == pytest.approx(-89.99)
        assert candidate.description == "Office Supplies"
        assert candidate.counterparty == "Bürobedarf GmbH"

    def test_quoted_german_export(self):
        content = (
            '"Booking Date","Description","Amount"\n'
            '"15.03.2026","Office Supplies","-89,99"\n'
        )

        result = parse_bank_csv(content)

        _, candidate = result.rows[0]
        assert candidate.amount == pytest.approx(-89.99)
        assert candidate.csv_row_hash == generate_csv_row_hash("2026-03-15", "-89.99", "Office Supplies")

    def test_row_errors_do_not_stop_parsing(self):
        content = (
            "Booking Date,Description,Amount\n"
            "2026-03-15,Office Supplies,-89.99\n"
            "kein Datum,Miete,-1200.00\n"
            "2026-03-17,Strom,viel\n"
            ",Ohne Datum,-10.00\n"
        )

        result = parse_bank_csv(content)

        assert len(result.rows) == 1
        assert [e.row for e in result.errors] == [3, 4, 5]
        assert "data" in result.errors[0].error
        assert "importo" in result.errors[1].error

    def test_empty_rows_are_skipped(self):
        content = (
            "Booking Date,Description,Amount\n"
            "2026-03-15,Office Supplies,-89.99\n"
            ",,\n"
            "2026-03-16,Software,-19.99\n"
        )

        result = parse_bank_csv(content)

        assert result.total_rows == 2
        assert [row for row, _ in result.rows] == [2, 4]

    def test_empty_content(self):
        result = parse_bank_csv("")
        assert result.rows == []
        assert result.total_rows == 0


class TestFilename:

    @pytest.mark.parametrize("name, expected", [
        ("umsaetze.csv", True),
        ("UMSAETZE.CSV", True),
        ("umsaetze.xlsx", False),
        ("", False),
        (None, False),
    ])
    def test_extension(self, name, expected):
        assert is_valid_csv_filename(name) is expected
