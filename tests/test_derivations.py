"""
Unit Tests for derived output fields.
"""

from datetime import datetime, timezone

import pytest

from erc_intake.canonicalizer import canonicalize
from erc_intake.derivations import (
    bulk_case_id,
    claim_amounts,
    claimed_quarters,
    company_initials,
    format_currency,
    format_number,
    format_phone,
    operational_triggers,
    portal_case_id,
    portal_hardship_description,
    portal_operational_triggers,
    received_checks,
    revenue_decline,
    revenue_periods,
    round_half_up,
    short_quarter_label,
)


class TestFormatting:
    """Test number, currency and phone rendering."""

    @pytest.mark.parametrize("value,expected", [
        (2.5, 3), (3.5, 4), (2.4, 2), (-0.5, 0),
    ])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_format_number(self):
        assert format_number(150000.0) == "150000"
        assert format_number(12.5) == "12.5"
        assert format_number(None) == "0"
        assert format_number(7) == "7"

    def test_format_currency(self):
        assert format_currency(0) == "0.00"
        assert format_currency(1234.5) == "1234.50"

    @pytest.mark.parametrize("raw,expected", [
        ("5551234567", "(555) 123-4567"),
        ("555.123.4567", "(555) 123-4567"),
        ("555-0100", "555-0100"),
        ("", ""),
        (None, ""),
    ])
    def test_format_phone(self, raw, expected):
        assert format_phone(raw) == expected

    def test_revenue_decline(self):
        assert revenue_decline(0, 100) == "0.00"
        assert revenue_decline(200, 150) == "25.00"


class TestIdentifiers:
    """Test initials and case ids."""

    @pytest.mark.parametrize("name,expected", [
        ("Microsoft", "MIC"),
        ("Sample Company", "SC"),
        ("GOM Holdings Inc", "GOM"),
        ("Great Ocean Marine Inc", "GOM"),
        ("Big Blue Ocean Shipping", "BBO"),
        ("Q", "QX"),
        ("", "UNK"),
        (None, "UNK"),
    ])
    def test_company_initials(self, name, expected):
        assert company_initials(name) == expected

    def test_bulk_case_id(self, sample_record):
        assert bulk_case_id(sample_record) == "SC_12-3456789_001"

    def test_portal_case_id_uses_extraction_date(self, sample_record):
        sample_record.metadata.extracted_at = datetime(2024, 3, 5, tzinfo=timezone.utc)
        assert portal_case_id(sample_record) == "ERC-123456789-20240305"

    def test_short_quarter_label(self):
        assert short_quarter_label(2020, "Q2") == "2Q20"
        assert short_quarter_label(2021, "Q4") == "4Q21"


class TestClaims:
    """Test quarter eligibility and compound claim strings."""

    def test_claimed_quarters(self, sample_record):
        assert claimed_quarters(sample_record) == ["2020Q2", "2020Q3"]

    def test_claim_amounts_skip_zero_wages(self, sample_record):
        # 2020 Q3 is claimed but carries no retention wages
        assert claim_amounts(sample_record) == "2020Q2:25000.00"

    def test_received_checks(self, sample_record):
        assert received_checks(sample_record) == "2020Q2:No,2020Q3:No"

    def test_revenue_periods(self, sample_record):
        assert revenue_periods(sample_record) == "2020Q2,2020Q3,2020Q4"

    def test_unclaimed_record_is_empty(self):
        record = canonicalize({})
        assert claimed_quarters(record) == []
        assert claim_amounts(record) == ""


class TestNarratives:
    """Test trigger and hardship text."""

    def test_operational_triggers(self, sample_record):
        assert operational_triggers(sample_record) == (
            "supplies_delayed|2020Q2,2020Q3|Supply chain interruptions impacted operations"
        )

    def test_portal_triggers_default(self):
        assert portal_operational_triggers(canonicalize({})) == (
            "No specific operational triggers reported"
        )

    def test_portal_triggers_with_comments(self):
        record = canonicalize({"full_shutdowns": True, "shutdown_other_comments": "Lobby closed"})
        assert portal_operational_triggers(record) == (
            "Full business shutdowns; Other: Lobby closed"
        )

    def test_portal_hardship(self, sample_record):
        text = portal_hardship_description(sample_record)
        assert text.startswith("Experienced 50% or greater revenue reduction in 2020")
        assert "Received PPP1 loan (forgiven: $150000.00)" in text

    def test_portal_hardship_default(self):
        assert portal_hardship_description(canonicalize({})) == (
            "Business experienced COVID-19 related hardships"
        )
