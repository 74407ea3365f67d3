# -*- coding: utf-8 -*-
"""
Portal Field Table - ERC Intake

The 51-field tab-delimited ERC portal format, declared as an ordered tuple
of ``OutputFieldSpec`` entries, plus ``validate_portal_values`` which checks
required fields and maximum lengths on rendered values.

Date-derived fields (CASE_ID, SUBMISSION_DATE) are taken from the record's
extraction timestamp so re-exporting a record yields identical bytes.

Example:
    >>> from erc_intake.portal_fields import PORTAL_FIELDS, validate_portal_values
    >>> len(PORTAL_FIELDS)
    51

Author: ERC Intake Team
Status: Production Ready
"""

from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

from erc_intake.bulk_upload_fields import (
    OutputFieldSpec,
    field_names,
    validate_field_table,
)
from erc_intake.derivations import (
    any_recovery_startup,
    digits_only_ein,
    format_currency,
    format_number,
    format_phone,
    is_claimed_quarter,
    portal_case_id,
    portal_hardship_description,
    portal_operational_triggers,
    revenue_decline,
    tax_year_claimed,
    y_n,
)
from erc_intake.models import CanonicalRecord, OutputDataType

logger = logging.getLogger(__name__)


def _contact_name(record: CanonicalRecord) -> str:
    info = record.company_info
    return " ".join(p for p in (info.contact_first_name, info.contact_last_name) if p)


def _submission_date(record: CanonicalRecord) -> str:
    return record.metadata.extracted_at.strftime("%Y-%m-%d")


def _owner_percentage(record: CanonicalRecord) -> str:
    pct = record.ownership.owner_percentage
    if isinstance(pct, bool):
        return "100.00" if pct else "0.00"
    return format_currency(pct)


def _claim(year: int, quarter: str):
    return lambda r: y_n(is_claimed_quarter(r.answers(year, quarter)))


def _receipts(year: int, quarter: str):
    return lambda r: format_currency(r.gross_receipts[year][quarter])


def _decline(year: int, quarter: str):
    return lambda r: revenue_decline(
        r.gross_receipts[2019][quarter], r.gross_receipts[year][quarter],
    )


def _const(value: str):
    return lambda record: value


_T = OutputDataType

_HEAD: Tuple[OutputFieldSpec, ...] = (
    OutputFieldSpec(1, "CASE_ID", "Unique case identifier", _T.TEXT, True,
                    portal_case_id, max_length=50, source="ein, extracted_at"),
    OutputFieldSpec(2, "EIN", "Employer Identification Number", _T.TEXT, True,
                    lambda r: digits_only_ein(r.company_info.ein), max_length=10,
                    source="company_info.ein"),
    OutputFieldSpec(3, "LEGAL_NAME", "Company legal name", _T.TEXT, True,
                    lambda r: r.company_info.legal_name, max_length=100,
                    source="company_info.legal_name"),
    OutputFieldSpec(4, "TRADE_NAME", "Company trade name/DBA", _T.TEXT, False,
                    lambda r: r.company_info.trade_name, max_length=100,
                    source="company_info.trade_name"),
    OutputFieldSpec(5, "ADDRESS_LINE1", "Street address", _T.TEXT, True,
                    lambda r: r.company_info.address.line1, max_length=100,
                    source="company_info.address.line1"),
    OutputFieldSpec(6, "CITY", "City", _T.TEXT, True,
                    lambda r: r.company_info.address.city, max_length=50,
                    source="company_info.address.city"),
    OutputFieldSpec(7, "STATE", "State code", _T.TEXT, True,
                    lambda r: r.company_info.address.state.upper(), max_length=2,
                    source="company_info.address.state"),
    OutputFieldSpec(8, "ZIP", "ZIP code", _T.TEXT, True,
                    lambda r: r.company_info.address.zip_code, max_length=10,
                    source="company_info.address.zip_code"),
    OutputFieldSpec(9, "PHONE", "Company phone number", _T.TEXT, False,
                    lambda r: format_phone(r.company_info.main_phone), max_length=20,
                    source="company_info.main_phone"),
    OutputFieldSpec(10, "CONTACT_NAME", "Primary contact name", _T.TEXT, False,
                    _contact_name, max_length=100, source="company_info.contact_*"),
    OutputFieldSpec(11, "CONTACT_EMAIL", "Primary contact email", _T.TEXT, False,
                    lambda r: r.company_info.email, max_length=100,
                    source="company_info.email"),
    OutputFieldSpec(12, "SUBMISSION_DATE", "Date of submission", _T.DATE, True,
                    _submission_date, source="metadata.extracted_at"),
    OutputFieldSpec(13, "TAX_YEAR_2020", "Claiming for 2020", _T.BOOLEAN, True,
                    lambda r: y_n(tax_year_claimed(r, 2020)),
                    source="qualifying_questions[2020]"),
    OutputFieldSpec(14, "TAX_YEAR_2021", "Claiming for 2021", _T.BOOLEAN, True,
                    lambda r: y_n(tax_year_claimed(r, 2021)),
                    source="qualifying_questions[2021]"),
)

_CLAIMS = tuple(
    OutputFieldSpec(15 + i, f"{q}_{year}_CLAIM", f"Claiming {q} {year}", _T.BOOLEAN,
                    True, _claim(year, q), source=f"qualifying_questions[{year}][{q}]")
    for i, (year, q) in enumerate(
        ((2020, "Q2"), (2020, "Q3"), (2020, "Q4"),
         (2021, "Q1"), (2021, "Q2"), (2021, "Q3"))
    )
)

_COMPANY = (
    OutputFieldSpec(21, "INDUSTRY_CODE", "NAICS industry code", _T.TEXT, False,
                    _const(""), max_length=10, source="static"),
    OutputFieldSpec(22, "BUSINESS_START_DATE", "Date business started", _T.DATE,
                    False, _const(""), source="static"),
) + tuple(
    OutputFieldSpec(23 + i, f"EMPLOYEE_COUNT_{year}",
                    f"Average employee count {year}", _T.NUMBER, True,
                    (lambda y: lambda r: format_number(
                        getattr(r.company_info, f"full_time_w2_count_{y}")
                    ))(year),
                    source=f"company_info.full_time_w2_count_{year}")
    for i, year in enumerate((2019, 2020, 2021))
)

_RECEIPTS = tuple(
    OutputFieldSpec(26 + i, f"GROSS_RECEIPTS_{year}_{q}", f"{year} {q} gross receipts",
                    _T.NUMBER, not (year == 2021 and q == "Q4"), _receipts(year, q),
                    source=f"gross_receipts[{year}][{q}]")
    for i, (year, q) in enumerate(
        (y, q) for y in (2019, 2020, 2021) for q in ("Q1", "Q2", "Q3", "Q4")
    )
)

_TAIL: Tuple[OutputFieldSpec, ...] = (
    OutputFieldSpec(38, "PPP1_LOAN_AMOUNT", "PPP1 loan amount", _T.NUMBER, False,
                    lambda r: format_currency(r.loan_forgiveness.ppp1_forgiveness_amount),
                    source="loan_forgiveness.ppp1_forgiveness_amount"),
    OutputFieldSpec(39, "PPP1_FORGIVENESS_AMOUNT", "PPP1 forgiveness amount",
                    _T.NUMBER, False,
                    lambda r: format_currency(r.loan_forgiveness.ppp1_forgiveness_amount),
                    source="loan_forgiveness.ppp1_forgiveness_amount"),
    OutputFieldSpec(40, "PPP2_LOAN_AMOUNT", "PPP2 loan amount", _T.NUMBER, False,
                    lambda r: format_currency(r.loan_forgiveness.ppp2_forgiveness_amount),
                    source="loan_forgiveness.ppp2_forgiveness_amount"),
    OutputFieldSpec(41, "PPP2_FORGIVENESS_AMOUNT", "PPP2 forgiveness amount",
                    _T.NUMBER, False,
                    lambda r: format_currency(r.loan_forgiveness.ppp2_forgiveness_amount),
                    source="loan_forgiveness.ppp2_forgiveness_amount"),
    OutputFieldSpec(42, "OWNER_NAME_1", "Primary owner name", _T.TEXT, False,
                    lambda r: r.ownership.owner_name, max_length=100,
                    source="ownership.owner_name"),
    OutputFieldSpec(43, "OWNER_PERCENTAGE_1", "Primary owner percentage",
                    _T.PERCENTAGE, False, _owner_percentage,
                    source="ownership.owner_percentage"),
    OutputFieldSpec(44, "OPERATIONAL_TRIGGERS", "Description of operational triggers",
                    _T.TEXT, True, portal_operational_triggers, max_length=1000,
                    source="shutdown_standards"),
    OutputFieldSpec(45, "HARDSHIP_DESCRIPTION", "Description of COVID-19 hardships",
                    _T.TEXT, True, portal_hardship_description, max_length=1000,
                    source="narrative"),
    OutputFieldSpec(46, "REVENUE_DECLINE_Q2_2020",
                    "Revenue decline percentage Q2 2020 vs Q2 2019", _T.PERCENTAGE,
                    False, _decline(2020, "Q2"), source="gross_receipts"),
    OutputFieldSpec(47, "REVENUE_DECLINE_Q3_2020",
                    "Revenue decline percentage Q3 2020 vs Q3 2019", _T.PERCENTAGE,
                    False, _decline(2020, "Q3"), source="gross_receipts"),
    OutputFieldSpec(48, "REVENUE_DECLINE_Q4_2020",
                    "Revenue decline percentage Q4 2020 vs Q4 2019", _T.PERCENTAGE,
                    False, _decline(2020, "Q4"), source="gross_receipts"),
    OutputFieldSpec(49, "REVENUE_DECLINE_Q1_2021",
                    "Revenue decline percentage Q1 2021 vs Q1 2019", _T.PERCENTAGE,
                    False, _decline(2021, "Q1"), source="gross_receipts"),
    OutputFieldSpec(50, "RECOVERY_STARTUP_BUSINESS", "Is recovery startup business",
                    _T.BOOLEAN, False, lambda r: y_n(any_recovery_startup(r)),
                    source="qualifying_questions"),
    OutputFieldSpec(51, "PROCESSING_STATUS", "Current processing status", _T.TEXT,
                    True, _const("PENDING"), default_value="PENDING", max_length=50,
                    source="static"),
)

PORTAL_FIELDS: Tuple[OutputFieldSpec, ...] = _HEAD + _CLAIMS + _COMPANY + _RECEIPTS + _TAIL

validate_field_table(PORTAL_FIELDS)

PORTAL_HEADER: Tuple[str, ...] = tuple(field_names(PORTAL_FIELDS))


def validate_portal_values(
    values: Sequence[str],
    table: Sequence[OutputFieldSpec] = PORTAL_FIELDS,
) -> List[str]:
    """Check rendered portal values against the field constraints.

    Args:
        values: Rendered values in ordinal order.
        table: Field table the values were rendered from.

    Returns:
        Error messages; empty when the row is valid.
    """
    errors: List[str] = []
    ordered = sorted(table, key=lambda s: s.ordinal)
    for spec, value in zip(ordered, values):
        if spec.required and not str(value).strip():
            errors.append(f"Field {spec.ordinal} ({spec.name}) is required but empty")
        if spec.max_length is not None and len(value) > spec.max_length:
            errors.append(
                f"Field {spec.ordinal} ({spec.name}) exceeds max length of "
                f"{spec.max_length}"
            )
    if len(values) != len(ordered):
        errors.append(f"Expected {len(ordered)} values, got {len(values)}")
    if errors:
        logger.debug("Portal validation found %d errors", len(errors))
    return errors


__all__ = [
    "PORTAL_FIELDS",
    "PORTAL_HEADER",
    "validate_portal_values",
]
