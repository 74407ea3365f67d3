"""
Unit Tests for the Canonicalizer

Tests record totality, defaults for malformed input, completeness signals,
empty records, and claim metrics.
"""

import pytest

from erc_intake.canonicalizer import (
    EMPTY_RECORD_REASON,
    Canonicalizer,
    canonicalize,
    check_missing_fields,
    compute_claim_metrics,
    gross_receipts_decline,
    normalize_owner_percentage,
)
from erc_intake.models import (
    ExtractedValues,
    ExtractionStrategy,
    ValidationStatus,
)


class TestTotality:
    """Every year and quarter subtree exists regardless of input."""

    def test_empty_map_builds_full_record(self):
        record = canonicalize({})

        assert sorted(record.gross_receipts) == [2019, 2020, 2021]
        assert all(sorted(q) == ["Q1", "Q2", "Q3", "Q4"] for q in record.gross_receipts.values())
        assert sorted(record.qualifying_questions[2020]) == ["Q1", "Q2", "Q3", "Q4"]
        assert sorted(record.qualifying_questions[2021]) == ["Q1", "Q2", "Q3"]
        assert sorted(record.form941) == [2020, 2021]
        assert record.company_info.legal_name == ""
        assert record.ownership.owner_percentage == 100.0

    def test_malformed_values_fall_back(self):
        record = canonicalize({
            "gross_receipts_2019_q1": "not money",
            "shutdown_q2_2020": "perhaps",
            "company_ein": 123456789.0,
            "full_time_w2_count_2019": None,
        })

        assert record.gross_receipts[2019]["Q1"] == 0.0
        assert record.qualifying_questions[2020]["Q2"].government_shutdown is False
        assert record.company_info.ein == "123456789"
        assert record.company_info.full_time_w2_count_2019 == 0

    def test_taxable_wages_2021_q4_is_zero(self):
        record = canonicalize({"taxable_ss_wages_q4_2021": 999})
        assert record.quarterly_taxable_wages[2021]["Q4"] == 0.0


class TestMapping:
    """Test field mapping into the record."""

    def test_sample_values(self, sample_record):
        info = sample_record.company_info

        assert info.legal_name == "Sample Company"
        assert info.address.zip_code == "62701"
        assert info.full_time_employees == 9
        assert sample_record.answers(2020, "Q2").government_shutdown is True
        assert sample_record.answers(2020, "Q3").supply_disruptions is True
        assert sample_record.revenue_reduction.reduction_50_2020 is True
        assert sample_record.shutdown_standards.full_shutdowns is True
        assert sample_record.credit_wages(2020, "Q2").retention_credit_wages == 25000
        assert sample_record.loan_forgiveness.ppp1_forgiveness_amount == 150000

    def test_strategy_taken_from_extraction(self):
        extracted = ExtractedValues(
            values={"company_name": "Acme"},
            success=True,
            strategy=ExtractionStrategy.HEURISTIC,
        )
        record = Canonicalizer().canonicalize(extracted)
        assert record.metadata.extraction_strategy == ExtractionStrategy.HEURISTIC

    @pytest.mark.parametrize("raw,expected", [
        (None, 100.0), (True, 100.0), (False, 0.0), (60, 60.0), ("45%", 45.0), ("lots", 100.0),
    ])
    def test_normalize_owner_percentage(self, raw, expected):
        assert normalize_owner_percentage(raw) == expected


class TestCompleteness:
    """Test partial-record signalling."""

    def test_missing_quarters_mark_partial(self, sample_record):
        metadata = sample_record.metadata

        assert metadata.validation_status == ValidationStatus.PARTIAL
        assert "Gross receipts 2019 Q3" in metadata.missing_fields
        assert "Gross receipts 2019 Q1" not in metadata.missing_fields
        assert "Form 941 data 2020 Q2" not in metadata.missing_fields
        assert "Form 941 data 2021 Q4" in metadata.missing_fields

    def test_complete_record_is_valid(self):
        values = {}
        for year in (2019, 2020, 2021):
            for q in ("q1", "q2", "q3", "q4"):
                values[f"gross_receipts_{year}_{q}"] = 1000
        for year in (2020, 2021):
            for q in ("q1", "q2", "q3", "q4"):
                values[f"form941_{year}_{q}_employees"] = 5
        record = canonicalize(values)

        assert record.metadata.validation_status == ValidationStatus.VALID
        assert check_missing_fields(record) == []

    def test_empty_record(self):
        engine = Canonicalizer()
        record = engine.create_empty_record()

        assert record.metadata.validation_status == ValidationStatus.PARTIAL
        assert record.metadata.missing_fields == [EMPTY_RECORD_REASON]
        assert record.ownership.owner_percentage == 0.0
        assert record.ownership.owner_name == ""
        assert engine.get_statistics()["empty_records"] == 1


class TestClaimMetrics:
    """Test derived claim indicators."""

    def test_gross_receipts_decline(self, sample_record):
        decline = gross_receipts_decline(sample_record)

        # Q2 2019 120000 -> Q2 2020 50000
        assert decline["2020Q2"] == pytest.approx(58.333, rel=1e-3)
        # no 2019 Q3 baseline
        assert "2020Q3" not in decline

    def test_eligible_quarters(self, sample_record):
        claim = compute_claim_metrics(sample_record)

        assert "2020Q2" in claim.eligible_quarters
        assert "2020Q3" in claim.eligible_quarters
        # 2020 Q1 falls 100% against its 2019 baseline
        assert "2020Q1" in claim.eligible_quarters
        assert "2020Q4" not in claim.eligible_quarters
        assert claim.total_retention_credit_wages == 25000
        assert claim.average_employee_count == 10.0
