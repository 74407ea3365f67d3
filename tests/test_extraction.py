"""
Unit Tests for Extraction

Tests for value coercion, the strict cell-address extractor, the heuristic
label-anchored extractor, and strategy selection.
"""

import pytest

from erc_intake.extraction import BaseExtractor, ExtractionEngine
from erc_intake.heuristic_extractor import (
    HeuristicExtractor,
    parse_boolean_safe,
    parse_number_safe,
    parse_percentage_safe,
)
from erc_intake.models import ExtractedValues, ExtractionStrategy
from erc_intake.strict_extractor import (
    StrictExtractor,
    parse_boolean,
    parse_number,
    parse_percentage,
    parse_text,
)
from erc_intake.workbook import load_workbook


class TestCoercion:
    """Test primitive cell coercion."""

    @pytest.mark.parametrize("raw,expected", [
        (True, True), (False, False),
        ("true", True), ("FALSE", False),
        ("Yes", True), ("no", False),
        ("1", True), ("0", False),
        ("y", True), ("N", False),
        ("", False),
        (1, True), (0, False), (2.5, True),
        ("3", True), ("0.0", False),
    ])
    def test_parse_boolean(self, raw, expected):
        assert parse_boolean(raw) is expected

    def test_parse_boolean_rejects_text(self):
        with pytest.raises(ValueError):
            parse_boolean("maybe")

    def test_parse_number_strips_currency(self):
        assert parse_number("$1,234.50") == 1234.5
        assert parse_number(7) == 7.0

    def test_parse_number_rejects_text(self):
        with pytest.raises(ValueError):
            parse_number("n/a")

    @pytest.mark.parametrize("raw,expected", [
        (0.5, 50.0), (1, 100.0), (75, 75.0), ("50%", 50.0), ("0.25", 25.0), ("80", 80.0),
    ])
    def test_parse_percentage(self, raw, expected):
        assert parse_percentage(raw) == pytest.approx(expected)

    def test_parse_percentage_passes_booleans(self):
        assert parse_percentage(True) is True

    def test_parse_text(self):
        assert parse_text(123456789.0) == "123456789"
        assert parse_text("  Acme  ") == "Acme"

    def test_safe_variants_never_raise(self):
        assert parse_number_safe("abc") == 0.0
        assert parse_number_safe("$2,000") == 2000.0
        assert parse_boolean_safe("maybe") is False
        assert parse_boolean_safe(None) is False
        assert parse_percentage_safe("60%") == 60.0
        assert parse_percentage_safe(False) == 0.0


class TestStrictExtractor:
    """Test cell-address extraction against the template layout."""

    @pytest.fixture
    def extractor(self):
        return StrictExtractor()

    def test_extracts_template_values(self, extractor, strict_workbook):
        result = extractor.extract(load_workbook(strict_workbook))
        values = result.values

        assert result.success
        assert result.strategy == ExtractionStrategy.STRICT
        assert values["company_name"] == "Sample Company"
        assert values["company_ein"] == "12-3456789"
        assert values["address_zip"] == "62701"
        assert values["shutdown_q2_2020"] is True
        assert values["shutdown_q1_2020"] is False
        assert values["supply_q3_2020"] is True
        assert values["vendor_q1_2021"] is True
        assert values["reduction_50_2020"] is True
        assert values["gross_receipts_2019_q2"] == 120000
        assert values["full_time_w2_count_2020"] == 8
        assert values["ppp1_forgiveness_amount"] == 150000
        assert values["owner_percentage"] == 100
        assert values["employee_count_q4_2021"] == 10
        assert values["taxable_ss_wages_q3_2021"] == 50000
        assert values["shutdown_other_comments"] == "Closed the lobby"

    def test_missing_primary_sheet_fails(self, extractor, heuristic_workbook):
        result = extractor.extract(load_workbook(heuristic_workbook))

        assert not result.success
        assert result.errors[0].startswith(
            "Required sheets not found: Understandable Data-final"
        )

    def test_missing_auxiliary_sheets_warn(self, extractor, make_strict_workbook):
        result = extractor.extract(
            load_workbook(make_strict_workbook(include_auxiliary=False))
        )

        assert result.success
        assert 'Optional sheet "Data Dump" not found' in result.warnings
        assert "company_name" not in result.values

    def test_empty_cell_defaults_with_warning(self, extractor, make_strict_workbook):
        result = extractor.extract(load_workbook(make_strict_workbook(overrides={"B54": None})))

        assert result.values["ppp1_forgiveness_amount"] == 0
        assert "Cell B54 (ppp1_forgiveness_amount) is empty" in result.warnings

    def test_text_in_number_cell_warns(self, extractor, make_strict_workbook):
        result = extractor.extract(
            load_workbook(make_strict_workbook(overrides={"B38": "unknown"}))
        )

        assert result.success
        assert result.values["gross_receipts_2019_q1"] == 0
        assert any("expects a number" in w for w in result.warnings)

    def test_unparseable_boolean_fails(self, extractor, make_strict_workbook):
        result = extractor.extract(
            load_workbook(make_strict_workbook(overrides={"B9": "maybe"}))
        )

        assert not result.success
        assert any("B9" in e and "shutdown_q1_2020" in e for e in result.errors)

    def test_extract_sections_limits_fields(self, extractor, strict_workbook):
        result = extractor.extract_sections(
            load_workbook(strict_workbook), ["company_basic_info"],
        )

        assert set(result.values) == {
            "company_ein", "company_name", "trade_name", "address_line1",
            "address_city", "address_state", "address_zip",
        }

    def test_summarize_groups_by_section(self, extractor, strict_workbook):
        result = extractor.extract(load_workbook(strict_workbook))
        summary = StrictExtractor.summarize(result.values)

        assert summary["company_basic_info"]["company_name"] == "Sample Company"
        assert "ppp1_forgiveness_amount" in summary["ppp_information"]

    def test_validate_values_flags_types(self):
        report = StrictExtractor.validate_values({"company_ein": "1", "owner_percentage": "x"})

        assert not report["is_valid"]
        assert any(f.startswith("owner_percentage") for f in report["invalid_fields"])


class TestHeuristicExtractor:
    """Test label-anchored extraction on a drifted layout."""

    @pytest.fixture
    def result(self, heuristic_workbook):
        return HeuristicExtractor().extract(load_workbook(heuristic_workbook))

    def test_always_succeeds_with_warning(self, result):
        assert result.success
        assert result.strategy == ExtractionStrategy.HEURISTIC
        assert "Used heuristic extractor" in result.warnings
        assert any("scanning \"Client Answers\"" in w for w in result.warnings)

    def test_w2_counts_below_label(self, result):
        assert result.values["full_time_w2_count_2020"] == 12
        assert result.values["full_time_w2_count_2021"] == 15

    def test_company_info_from_data_dump(self, result):
        assert result.values["company_name"] == "Drift Holdings Inc"
        assert result.values["company_ein"] == "98-7654321"
        assert "trade_name" not in result.values

    def test_qualifying_questions(self, result):
        assert result.values["shutdown_q2_2020"] is True
        assert result.values["shutdown_q1_2020"] is False
        assert result.values["supply_q1_2021"] is True

    def test_gross_receipts_by_context(self, result):
        assert result.values["gross_receipts_2019_q1"] == 50000

    def test_ownership_table(self, result):
        assert [(o.name, o.percentage) for o in result.owners] == [
            ("Jane Doe", 60.0), ("John Doe", 40.0),
        ]
        assert result.values["owner_name"] == "Jane Doe"
        assert result.values["owner_percentage"] == 60.0


class _FailingExtractor(BaseExtractor):
    strategy = ExtractionStrategy.HEURISTIC

    def extract(self, workbook):
        return ExtractedValues(
            success=False, strategy=self.strategy, errors=["nothing recognisable"],
        )


class TestExtractionEngine:
    """Test strict-then-heuristic selection."""

    def test_strict_preferred(self, strict_workbook):
        engine = ExtractionEngine()
        result = engine.extract(load_workbook(strict_workbook))

        assert result.strategy == ExtractionStrategy.STRICT
        assert engine.get_statistics()["strict_used"] == 1

    def test_heuristic_fallback(self, heuristic_workbook):
        engine = ExtractionEngine()
        result = engine.extract(load_workbook(heuristic_workbook))

        assert result.success
        assert result.strategy == ExtractionStrategy.HEURISTIC
        assert engine.get_statistics()["heuristic_used"] == 1

    def test_both_failing_merges_errors(self, heuristic_workbook):
        engine = ExtractionEngine(heuristic=_FailingExtractor())
        result = engine.extract(load_workbook(heuristic_workbook))

        assert not result.success
        assert result.errors[0].startswith("Required sheets not found")
        assert result.errors[-1] == "nothing recognisable"
        assert engine.get_statistics()["both_failed"] == 1
