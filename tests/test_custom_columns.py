"""
Unit Tests for the agreement-sheet custom column format.
"""

import pytest

from erc_intake.batch_input_parser import parse_batch_input
from erc_intake.custom_columns import (
    CUSTOM_HEADERS,
    SOURCE_COLUMN,
    generate_custom_template,
    is_custom_format,
    map_to_internal_format,
    parse_contact_name,
    parse_dollar_amount,
    parse_excel_date,
    parse_full_address,
)


class TestValueParsers:
    """Test the agreement-sheet cell parsers."""

    @pytest.mark.parametrize("raw,expected", [
        ("$49,882.53", 49882.53),
        ("1 000", 1000.0),
        (250, 250.0),
        ("n/a", 0.0),
        (None, 0.0),
        ("", 0.0),
    ])
    def test_parse_dollar_amount(self, raw, expected):
        assert parse_dollar_amount(raw) == pytest.approx(expected)

    def test_parse_excel_date(self):
        assert parse_excel_date(45000) == "03/15/2023"
        assert parse_excel_date("45000") == "03/15/2023"
        assert parse_excel_date("07/03/2025") == "07/03/2025"
        assert parse_excel_date("2025-07-03") == "2025-07-03"
        assert parse_excel_date("soon") == "soon"
        assert parse_excel_date(None) == ""

    def test_parse_contact_name(self):
        assert parse_contact_name("Wilburt Dudley") == ("Wilburt", "Dudley")
        assert parse_contact_name("Mary Ann van Dyke") == ("Mary", "Ann van Dyke")
        assert parse_contact_name("Cher") == ("Cher", "")
        assert parse_contact_name("") == ("", "")


class TestParseFullAddress:
    """Test one-line address splitting."""

    def test_street_before_comma(self):
        parts = parse_full_address("507 Watercrest Circle, Elizabeth City NC 27909")

        assert parts["street"] == "507 Watercrest Circle"
        assert parts["city"] == "Elizabeth City"
        assert parts["state"] == "NC"
        assert parts["zip"] == "27909"
        assert parts["city_state_zip"] == "Elizabeth City, NC, 27909"

    def test_city_and_state_only(self):
        parts = parse_full_address("9 Elm St, Boise id")

        assert parts["city"] == "Boise"
        assert parts["state"] == "ID"
        assert parts["zip"] == ""

    def test_without_commas(self):
        parts = parse_full_address("12 Oak St Austin TX 73301-1234")

        assert parts["street"] == "12 Oak St"
        assert parts["city"] == "Austin"
        assert parts["state"] == "TX"
        assert parts["zip"] == "73301-1234"

    def test_unparseable_kept_as_street(self):
        parts = parse_full_address("Somewhere over the rainbow")

        assert parts["street"] == "Somewhere over the rainbow"
        assert parts["city"] == parts["state"] == parts["zip"] == ""

    def test_empty(self):
        assert parse_full_address(None)["street"] == ""


class TestRowMapping:
    """Test custom-format detection and row translation."""

    def test_is_custom_format(self):
        assert is_custom_format([" Customer EIN/TIN ", "Notes"])
        assert not is_custom_format(["google_sheets_url", "ein"])

    def test_map_to_internal_format(self):
        mapped = map_to_internal_format({
            "Customer Name/Business Name": "Box Logistics Inc",
            "Customer EIN/TIN": "27-3760432",
            "Customer Address (Full)": "507 Watercrest Circle, Elizabeth City NC 27909",
            "Customer Contact Name": "Wilburt Dudley",
            "Customer Phone": "252.555.0100",
            "Agreement Date": "45000",
            "Signatory Title (Customer)": "Owner",
            "2Q20 Amount": "$49,882.53",
            "2Q20 Qualification": "Shutdown order",
            "3Q20 Amount": "0",
            "19Q1": "$1,000",
            "941x Link": "https://drive.google.com/x",
            "Proper Format Module": "https://docs.google.com/spreadsheets/d/abc/edit",
            "Status": "success",
            "Payment Timeline": "",
        })

        assert mapped["business_legal_name"] == "Box Logistics Inc"
        assert mapped["ein"] == "27-3760432"
        assert mapped["business_city"] == "Elizabeth City"
        assert mapped["Address"] == "507 Watercrest Circle"
        assert mapped["contact_first_name"] == "Wilburt"
        assert mapped["main_phone"] == "(252) 555-0100"
        assert mapped["agreement_date"] == "03/15/2023"
        assert mapped["job_title"] == "Owner"
        assert mapped["2Q20 Amount"] == pytest.approx(49882.53)
        assert mapped["2Q20 Qualification"] == "Yes"
        assert mapped["2Q20_qualification_reason"] == "Shutdown order"
        assert mapped["3Q20 Qualification"] == "No"
        assert "3Q20_qualification_reason" not in mapped
        assert mapped["19Q1"] == 1000.0
        assert mapped["form941x_files"] == "https://drive.google.com/x"
        assert mapped["Status"] == "success"
        assert SOURCE_COLUMN not in mapped
        assert "Payment Timeline" not in mapped

    def test_contact_phone_number_wins(self):
        mapped = map_to_internal_format({
            "Customer Phone": "5550001111",
            "Contact Phone number": "5552223333",
        })
        assert mapped["main_phone"] == "(555) 222-3333"

    def test_ein_column_fallback(self):
        assert map_to_internal_format({"EIN": "11-1111111"})["ein"] == "11-1111111"


class TestCustomTemplate:
    """Test the agreement-sheet template."""

    def test_template_layout(self):
        lines = generate_custom_template().splitlines()

        assert lines[0].startswith("#")
        assert lines[5].startswith("Customer Name/Business Name,Filename,File Path")
        assert len(CUSTOM_HEADERS) == 69

    def test_template_parses_as_custom_format(self):
        content = generate_custom_template().encode("utf-8")
        result = parse_batch_input(content, "agreements.csv")

        assert result.success
        assert result.custom_format
        assert len(result.rows) == 1
        row = result.rows[0]
        assert row.source_reference == (
            "https://docs.google.com/spreadsheets/d/YOUR_SHEET_ID/edit"
        )
        assert row.metadata["business_legal_name"] == "It's In The Box Logistics Inc"
        assert row.metadata["business_state"] == "NC"
        assert row.metadata["2Q20 Qualification"] == "Yes"
        assert row.metadata["4Q21 Qualification"] == "No"
        assert row.metadata["Claim Total"] == pytest.approx(302633.41)
