# -*- coding: utf-8 -*-
"""
Bulk Upload Field Table - ERC Intake

Declares the 52-field customer bulk-upload CSV format as an ordered tuple of
``OutputFieldSpec`` entries. Each entry carries a pure generator that
renders one field from a ``CanonicalRecord``; ``render_fields`` runs a whole
table and substitutes the field default when a generator raises, so one bad
field never aborts an export.

The table is validated at import time: ordinals must be unique and
contiguous from 1.

Example:
    >>> from erc_intake.bulk_upload_fields import BULK_UPLOAD_FIELDS, render_fields
    >>> len(BULK_UPLOAD_FIELDS)
    52
    >>> values, notes = render_fields(BULK_UPLOAD_FIELDS, record, "bulk_upload")

Author: ERC Intake Team
Status: Production Ready
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple

from erc_intake import metrics
from erc_intake.config import get_config
from erc_intake.derivations import (
    bulk_case_id,
    bulk_hardship_description,
    claim_amounts,
    claimed_quarters,
    format_number,
    format_phone,
    operational_triggers,
    received_checks,
    revenue_periods,
    yes_no,
)
from erc_intake.models import CanonicalRecord, OutputDataType

logger = logging.getLogger(__name__)

FieldGenerator = Callable[[CanonicalRecord], str]


# ---------------------------------------------------------------------------
# Field spec
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OutputFieldSpec:
    """One column of an export format.

    Attributes:
        ordinal: 1-based position in the output row.
        name: Column header.
        description: Human description for documentation.
        data_type: Declared output type.
        required: Whether downstream systems require a non-empty value.
        default_value: Substituted when the generator fails.
        generator: Pure ``CanonicalRecord -> str`` function.
        max_length: Maximum rendered length, when constrained.
        source: Where the value comes from, for mapping documentation.
    """

    ordinal: int
    name: str
    description: str
    data_type: OutputDataType
    required: bool
    generator: FieldGenerator
    default_value: str = ""
    max_length: Optional[int] = None
    source: str = ""


def validate_field_table(table: Sequence[OutputFieldSpec]) -> None:
    """Check that ordinals are unique and contiguous from 1.

    Raises:
        ValueError: If the table is malformed.
    """
    ordinals = [spec.ordinal for spec in table]
    if len(set(ordinals)) != len(ordinals):
        raise ValueError(f"Duplicate field ordinals: {sorted(ordinals)}")
    if sorted(ordinals) != list(range(1, len(ordinals) + 1)):
        raise ValueError(
            f"Field ordinals must be contiguous from 1, got {sorted(ordinals)}"
        )
    names = [spec.name for spec in table]
    if len(set(names)) != len(names):
        raise ValueError("Duplicate field names in field table")


def render_fields(
    table: Sequence[OutputFieldSpec],
    record: CanonicalRecord,
    export_format: str = "",
) -> Tuple[List[str], List[str]]:
    """Run every generator of a table in ordinal order.

    Returns:
        ``(values, notes)`` where notes name each field that fell back to
        its default value.
    """
    values: List[str] = []
    notes: List[str] = []
    for spec in sorted(table, key=lambda s: s.ordinal):
        try:
            value = spec.generator(record)
            values.append("" if value is None else str(value))
        except Exception as exc:
            values.append(spec.default_value or "")
            notes.append(f"Field {spec.ordinal} ({spec.name}): used default value")
            metrics.record_generator_fallback(export_format or "unknown")
            logger.debug(
                "Generator for field %d (%s) failed: %s", spec.ordinal, spec.name, exc,
            )
    return values, notes


def field_names(table: Sequence[OutputFieldSpec]) -> List[str]:
    return [spec.name for spec in sorted(table, key=lambda s: s.ordinal)]


def get_field_by_ordinal(
    table: Sequence[OutputFieldSpec],
    ordinal: int,
) -> Optional[OutputFieldSpec]:
    for spec in table:
        if spec.ordinal == ordinal:
            return spec
    return None


def get_field_by_name(
    table: Sequence[OutputFieldSpec],
    name: str,
) -> Optional[OutputFieldSpec]:
    for spec in table:
        if spec.name == name:
            return spec
    return None


def get_required_fields(table: Sequence[OutputFieldSpec]) -> List[OutputFieldSpec]:
    return [spec for spec in table if spec.required]


# ---------------------------------------------------------------------------
# Bulk-upload generators
# ---------------------------------------------------------------------------


def _case_id(record: CanonicalRecord) -> str:
    return bulk_case_id(record, get_config().case_id_sequence)


def _pays_health_insurance(record: CanonicalRecord) -> str:
    quarters = (
        (2020, "Q2"), (2020, "Q3"), (2020, "Q4"),
        (2021, "Q1"), (2021, "Q2"), (2021, "Q3"),
    )
    return yes_no(any(
        record.credit_wages(year, q).qualified_health_plan_expenses > 0
        for year, q in quarters
    ))


def _employee_count_2019(record: CanonicalRecord) -> str:
    count = record.company_info.full_time_w2_count_2019 or 0
    if count < 100:
        return "less-100"
    if count <= 500:
        return "100-500"
    return "more-500"


def _owner_percentages(record: CanonicalRecord) -> str:
    name = record.ownership.owner_name or "Owner"
    return f"{name}||{format_number(record.ownership.owner_percentage)}"


def _ppp_received(record: CanonicalRecord) -> bool:
    loans = record.loan_forgiveness
    return loans.ppp1_forgiveness_amount > 0 or loans.ppp2_forgiveness_amount > 0


def _selected_credits(record: CanonicalRecord) -> str:
    loans = record.loan_forgiveness
    return ";".join(
        f"PPP||{format_number(amount)}"
        for amount in (loans.ppp1_forgiveness_amount, loans.ppp2_forgiveness_amount)
        if amount > 0
    )


def _upload_date_time(record: CanonicalRecord) -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _const(value: str) -> FieldGenerator:
    return lambda record: value


_T = OutputDataType

BULK_UPLOAD_FIELDS: Tuple[OutputFieldSpec, ...] = (
    OutputFieldSpec(1, "case_id", "Unique case identifier", _T.TEXT, True, _case_id,
                    source="initials_ein_sequence"),
    OutputFieldSpec(2, "contact_first_name", "Contact first name", _T.TEXT, True,
                    lambda r: r.company_info.contact_first_name,
                    source="company_info.contact_first_name"),
    OutputFieldSpec(3, "contact_last_name", "Contact last name", _T.TEXT, True,
                    lambda r: r.company_info.contact_last_name,
                    source="company_info.contact_last_name"),
    OutputFieldSpec(4, "job_title", "Contact job title", _T.TEXT, True,
                    lambda r: r.company_info.contact_job_title,
                    source="company_info.contact_job_title"),
    OutputFieldSpec(5, "main_phone", "Main phone number", _T.TEXT, True,
                    lambda r: format_phone(r.company_info.main_phone),
                    source="company_info.main_phone"),
    OutputFieldSpec(6, "email", "Email address", _T.TEXT, True,
                    lambda r: r.company_info.email, source="company_info.email"),
    OutputFieldSpec(7, "business_legal_name", "Legal business name", _T.TEXT, True,
                    lambda r: r.company_info.legal_name,
                    source="company_info.legal_name"),
    OutputFieldSpec(8, "industry", "Industry type", _T.TEXT, True,
                    lambda r: r.company_info.industry, source="company_info.industry"),
    OutputFieldSpec(9, "website", "Company website", _T.TEXT, False,
                    lambda r: r.company_info.website, source="company_info.website"),
    OutputFieldSpec(10, "business_address", "Business street address", _T.TEXT, True,
                    lambda r: r.company_info.address.line1,
                    source="company_info.address.line1"),
    OutputFieldSpec(11, "suite_unit", "Suite or unit number", _T.TEXT, False,
                    lambda r: r.company_info.address.line2,
                    source="company_info.address.line2"),
    OutputFieldSpec(12, "business_city", "Business city", _T.TEXT, True,
                    lambda r: r.company_info.address.city,
                    source="company_info.address.city"),
    OutputFieldSpec(13, "business_state", "Business state", _T.TEXT, True,
                    lambda r: r.company_info.address.state,
                    source="company_info.address.state"),
    OutputFieldSpec(14, "business_zip", "Business ZIP code", _T.TEXT, True,
                    lambda r: r.company_info.address.zip_code,
                    source="company_info.address.zip_code"),
    OutputFieldSpec(15, "pays_health_insurance", "Pays health insurance", _T.BOOLEAN,
                    True, _pays_health_insurance,
                    source="form941.qualified_health_plan_expenses"),
    OutputFieldSpec(16, "uses_peo", "Uses PEO", _T.BOOLEAN, True, _const("no"),
                    default_value="no", source="static"),
    OutputFieldSpec(17, "peo_provider", "PEO provider name", _T.TEXT, False,
                    _const(""), source="static"),
    OutputFieldSpec(18, "start_date", "Business start date", _T.TEXT, True,
                    _const("before"), default_value="before", source="static"),
    OutputFieldSpec(19, "current_employee_count", "Current employee count", _T.NUMBER,
                    True, lambda r: format_number(r.company_info.full_time_w2_count_2021),
                    source="company_info.full_time_w2_count_2021"),
    OutputFieldSpec(20, "employee_count_2019", "2019 employee count category",
                    _T.TEXT, True, _employee_count_2019,
                    source="company_info.full_time_w2_count_2019"),
    OutputFieldSpec(21, "filed_other_entities", "Filed for other entities",
                    _T.BOOLEAN, True,
                    lambda r: yes_no(r.revenue_reduction.own_other_business),
                    source="revenue_reduction.own_other_business"),
    OutputFieldSpec(22, "other_entities", "Other entities list", _T.TEXT, False,
                    _const(""), source="static"),
    OutputFieldSpec(23, "is_government_entity", "Is government entity", _T.BOOLEAN,
                    True, _const("no"), default_value="no", source="static"),
    OutputFieldSpec(24, "entity_type", "Entity type", _T.TEXT, True,
                    _const("corporation"), default_value="corporation", source="static"),
    OutputFieldSpec(25, "ein", "Employer Identification Number", _T.TEXT, True,
                    lambda r: r.company_info.ein, source="company_info.ein"),
    OutputFieldSpec(26, "primary_ssn", "Primary owner SSN", _T.TEXT, False,
                    _const(""), source="static"),
    OutputFieldSpec(27, "number_of_owners", "Number of owners", _T.NUMBER, True,
                    _const("1"), default_value="1", source="static"),
    OutputFieldSpec(28, "owner_percentages", "Owner names and percentages", _T.TEXT,
                    True, _owner_percentages, source="ownership"),
    OutputFieldSpec(29, "family_members_count", "Family members count", _T.NUMBER,
                    True, _const("0"), default_value="0", source="static"),
    OutputFieldSpec(30, "family_members", "Family members list", _T.TEXT, False,
                    _const(""), source="static"),
    OutputFieldSpec(31, "revenue_drop_qualified", "Revenue drop qualified",
                    _T.BOOLEAN, True,
                    lambda r: yes_no(
                        r.revenue_reduction.reduction_50_2020
                        or r.revenue_reduction.reduction_20_2021
                    ),
                    source="revenue_reduction"),
    OutputFieldSpec(32, "revenue_periods", "Revenue reduction periods", _T.TEXT,
                    False, revenue_periods, source="revenue_reduction"),
    OutputFieldSpec(33, "operational_triggers", "Operational triggers", _T.COMPLEX,
                    False, operational_triggers,
                    source="shutdown_standards, qualifying_questions"),
    OutputFieldSpec(34, "claimed_quarters", "Claimed quarters", _T.TEXT, True,
                    lambda r: ",".join(claimed_quarters(r)),
                    source="qualifying_questions"),
    OutputFieldSpec(35, "claim_amounts", "Claim amounts by quarter", _T.TEXT, False,
                    claim_amounts, source="form941.retention_credit_wages"),
    OutputFieldSpec(36, "received_checks", "Received checks status", _T.TEXT, False,
                    received_checks, source="qualifying_questions"),
    OutputFieldSpec(37, "selected_credits", "Selected credits", _T.TEXT, False,
                    _selected_credits, source="loan_forgiveness"),
    OutputFieldSpec(38, "ppp_received", "PPP received", _T.BOOLEAN, True,
                    lambda r: yes_no(_ppp_received(r)), source="loan_forgiveness"),
    OutputFieldSpec(39, "ppp_forgiven", "PPP forgiven", _T.BOOLEAN, True,
                    lambda r: yes_no(_ppp_received(r)), source="loan_forgiveness"),
    OutputFieldSpec(40, "ppp1_amount", "PPP1 amount", _T.NUMBER, False,
                    lambda r: format_number(r.loan_forgiveness.ppp1_forgiveness_amount),
                    source="loan_forgiveness.ppp1_forgiveness_amount"),
    OutputFieldSpec(41, "ppp2_amount", "PPP2 amount", _T.NUMBER, False,
                    lambda r: format_number(r.loan_forgiveness.ppp2_forgiveness_amount),
                    source="loan_forgiveness.ppp2_forgiveness_amount"),
    OutputFieldSpec(42, "hardship_description", "Hardship description", _T.TEXT,
                    True, bulk_hardship_description, source="narrative"),
    OutputFieldSpec(43, "original_preparer", "Original preparer", _T.TEXT, False,
                    lambda r: get_config().original_preparer,
                    default_value="ERC Portal", source="config.original_preparer"),
    OutputFieldSpec(44, "form941x_files", "Form 941-X files", _T.TEXT, False,
                    _const(""), source="static"),
    OutputFieldSpec(45, "substantiation_files", "Substantiation files", _T.TEXT,
                    False, _const(""), source="static"),
    OutputFieldSpec(46, "health_insurance_files", "Health insurance files", _T.TEXT,
                    False, _const(""), source="static"),
    OutputFieldSpec(47, "skip_document_generation", "Skip document generation",
                    _T.BOOLEAN, True, _const("no"), default_value="no", source="static"),
    OutputFieldSpec(48, "skip_esignature", "Skip e-signature", _T.BOOLEAN, True,
                    _const("no"), default_value="no", source="static"),
    OutputFieldSpec(49, "skip_gdrive_sync", "Skip Google Drive sync", _T.BOOLEAN,
                    True, _const("no"), default_value="no", source="static"),
    OutputFieldSpec(50, "process_priority", "Process priority", _T.TEXT, True,
                    _const("normal"), default_value="normal", source="static"),
    OutputFieldSpec(51, "upload_date_time", "Upload date and time", _T.DATE, True,
                    _upload_date_time, source="current time"),
    OutputFieldSpec(52, "filed_date", "Filed date", _T.DATE, False, _const(""),
                    source="static"),
)

validate_field_table(BULK_UPLOAD_FIELDS)

BULK_UPLOAD_HEADER: Tuple[str, ...] = tuple(field_names(BULK_UPLOAD_FIELDS))


__all__ = [
    "FieldGenerator",
    "OutputFieldSpec",
    "validate_field_table",
    "render_fields",
    "field_names",
    "get_field_by_ordinal",
    "get_field_by_name",
    "get_required_fields",
    "BULK_UPLOAD_FIELDS",
    "BULK_UPLOAD_HEADER",
]
