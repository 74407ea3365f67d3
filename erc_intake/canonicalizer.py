# -*- coding: utf-8 -*-
"""
Canonicalizer - ERC Intake

Converts the flat field map produced by an extractor into the fully typed,
total ``CanonicalRecord``. Canonicalization never raises: every missing or
malformed key falls back to its default individually, and every year and
quarter subtree exists in the output.

Completeness is signalled rather than enforced. Each zero gross-receipts
quarter and each Form 941 quarter with neither employees nor wages is listed
in ``metadata.missing_fields`` and downgrades the record to ``partial``.

Example:
    >>> from erc_intake.canonicalizer import canonicalize
    >>> record = canonicalize({"company_name": "Sample Company"})
    >>> record.company_info.legal_name, record.metadata.validation_status.value
    ('Sample Company', 'partial')

Author: ERC Intake Team
Status: Production Ready
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from erc_intake import metrics
from erc_intake.config import ErcIntakeConfig, get_config
from erc_intake.derivations import round_half_up
from erc_intake.heuristic_extractor import parse_boolean_safe, parse_number_safe
from erc_intake.models import (
    FORM941_YEARS,
    QUALIFYING_QUARTERS,
    QUARTERS,
    REVENUE_YEARS,
    Address,
    CanonicalRecord,
    ClaimMetrics,
    CompanyInfo,
    ExtractedValues,
    ExtractionStrategy,
    Form941Quarter,
    LoanForgiveness,
    Ownership,
    QuarterAnswers,
    RecordMetadata,
    RevenueReductionAnswers,
    ShutdownStandards,
    ValidationStatus,
)

logger = logging.getLogger(__name__)

#: Flat key prefix -> QuarterAnswers attribute.
QUESTION_PREFIXES = (
    ("shutdown", "government_shutdown"),
    ("meetings", "inability_to_meet"),
    ("supply", "supply_disruptions"),
    ("vendor", "vendor_disruptions"),
    ("reduction10", "revenue_reduction_10_percent"),
    ("reduction20", "revenue_reduction_20_percent"),
    ("recovery", "recovery_startup_business"),
    ("distressed", "severely_distressed_employer"),
)

#: Flat key suffix -> Form941Quarter attribute, keyed ``form941_<year>_q<n>_<suffix>``.
FORM941_SUFFIXES = (
    ("employees", "employee_count"),
    ("wages", "total_wages"),
    ("federal_tax", "federal_tax_withheld"),
    ("sick_wages", "qualified_sick_wages"),
    ("family_leave_wages", "qualified_family_leave_wages"),
    ("retention_wages", "retention_credit_wages"),
    ("health_expenses", "qualified_health_plan_expenses"),
    ("form5884_credit", "form5884_credit"),
)

_SHUTDOWN_FLAGS = (
    "full_shutdowns",
    "partial_shutdowns",
    "interrupted_operations",
    "supply_chain_interruptions",
    "inability_access_equipment",
    "limited_capacity",
    "inability_work_vendors",
    "reduction_services",
    "cut_down_hours",
    "shifting_hours_sanitation",
    "challenges_finding_employees",
)

EMPTY_RECORD_REASON = "No source spreadsheet provided - using metadata only"


def _utcnow() -> datetime:
    """Return current UTC datetime with microseconds zeroed."""
    return datetime.now(timezone.utc).replace(microsecond=0)


# ---------------------------------------------------------------------------
# Field readers
# ---------------------------------------------------------------------------


def _text(values: Mapping[str, Any], key: str) -> str:
    value = values.get(key)
    if value is None or value is False:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _number(values: Mapping[str, Any], key: str) -> float:
    return parse_number_safe(values.get(key))


def _flag(values: Mapping[str, Any], key: str) -> bool:
    return parse_boolean_safe(values.get(key))


def normalize_owner_percentage(value: Any) -> float:
    """Normalize an ownership percentage onto 0-100.

    Booleans map to 100/0, numbers are kept, strings have ``%`` stripped and
    are parsed. Absent or unparseable input means sole ownership (100).
    """
    if value is None:
        return 100.0
    if isinstance(value, bool):
        return 100.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).replace("%", "").strip())
    except ValueError:
        return 100.0


# ---------------------------------------------------------------------------
# Canonicalizer
# ---------------------------------------------------------------------------


class Canonicalizer:
    """Builds canonical records from extracted value maps.

    Example:
        >>> engine = Canonicalizer()
        >>> record = engine.canonicalize(extracted)
        >>> engine.get_statistics()["records_built"]
        1
    """

    def __init__(self, config: Optional[ErcIntakeConfig] = None) -> None:
        self._config = config or get_config()
        self._lock = threading.Lock()
        self._stats: Dict[str, int] = {
            "records_built": 0,
            "valid": 0,
            "partial": 0,
            "empty_records": 0,
        }
        logger.info(
            "Canonicalizer initialized: template_version=%s",
            self._config.template_version,
        )

    def canonicalize(
        self,
        values: Union[ExtractedValues, Mapping[str, Any]],
        strategy: Optional[ExtractionStrategy] = None,
    ) -> CanonicalRecord:
        """Build a canonical record. Never raises for bad input."""
        start = time.monotonic()
        if isinstance(values, ExtractedValues):
            strategy = strategy or values.strategy
            values = values.values
        values = values or {}

        record = CanonicalRecord(
            company_info=self._company_info(values),
            qualifying_questions=self._qualifying_questions(values),
            revenue_reduction=RevenueReductionAnswers(
                reduction_50_2020=_flag(values, "reduction_50_2020"),
                reduction_20_2021=_flag(values, "reduction_20_2021"),
                own_other_business=_flag(values, "own_other_business"),
            ),
            shutdown_standards=self._shutdown_standards(values),
            gross_receipts={
                year: {
                    q: _number(values, f"gross_receipts_{year}_{q.lower()}")
                    for q in QUARTERS
                }
                for year in REVENUE_YEARS
            },
            form941=self._form941(values),
            quarterly_employee_counts={
                year: {
                    q: _number(values, f"employee_count_{q.lower()}_{year}")
                    for q in QUARTERS
                }
                for year in FORM941_YEARS
            },
            quarterly_taxable_wages=self._taxable_wages(values),
            loan_forgiveness=LoanForgiveness(
                ppp1_forgiveness_amount=_number(values, "ppp1_forgiveness_amount"),
                ppp2_forgiveness_amount=_number(values, "ppp2_forgiveness_amount"),
            ),
            ownership=Ownership(
                owner_name=_text(values, "owner_name"),
                owner_percentage=normalize_owner_percentage(values.get("owner_percentage")),
            ),
            metadata=RecordMetadata(
                extracted_at=_utcnow(),
                template_version=self._config.template_version,
                extraction_strategy=strategy or ExtractionStrategy.NONE,
            ),
        )

        missing = check_missing_fields(record)
        if missing:
            record.metadata.validation_status = ValidationStatus.PARTIAL
            record.metadata.missing_fields = missing

        status = record.metadata.validation_status.value
        with self._lock:
            self._stats["records_built"] += 1
            self._stats[status] = self._stats.get(status, 0) + 1
        metrics.record_canonicalized(status)
        logger.info(
            "Canonicalized %s: status=%s, %d missing fields (%.1f ms)",
            record.company_info.legal_name or "<unnamed>",
            status, len(missing), (time.monotonic() - start) * 1000,
        )
        return record

    def create_empty_record(self, reason: str = EMPTY_RECORD_REASON) -> CanonicalRecord:
        """Return a zeroed ``partial`` record for rows without a workbook."""
        record = CanonicalRecord(
            ownership=Ownership(owner_name="", owner_percentage=0.0),
            metadata=RecordMetadata(
                extracted_at=_utcnow(),
                template_version=self._config.template_version,
                validation_status=ValidationStatus.PARTIAL,
                missing_fields=[reason],
            ),
        )
        with self._lock:
            self._stats["empty_records"] += 1
        metrics.record_canonicalized(ValidationStatus.PARTIAL.value)
        return record

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            stats: Dict[str, Any] = dict(self._stats)
        stats["timestamp"] = _utcnow().isoformat()
        return stats

    # ------------------------------------------------------------------
    # Subtree builders
    # ------------------------------------------------------------------

    def _company_info(self, values: Mapping[str, Any]) -> CompanyInfo:
        counts = [_number(values, f"full_time_w2_count_{year}") for year in REVENUE_YEARS]
        return CompanyInfo(
            ein=_text(values, "company_ein"),
            legal_name=_text(values, "company_name"),
            trade_name=_text(values, "trade_name"),
            address=Address(
                line1=_text(values, "address_line1"),
                line2=_text(values, "address_line2"),
                city=_text(values, "address_city"),
                state=_text(values, "address_state"),
                zip_code=_text(values, "address_zip"),
            ),
            contact_first_name=_text(values, "contact_first_name"),
            contact_last_name=_text(values, "contact_last_name"),
            contact_job_title=_text(values, "contact_job_title"),
            main_phone=_text(values, "main_phone"),
            email=_text(values, "email"),
            industry=_text(values, "industry"),
            website=_text(values, "website"),
            filer_remarks=_text(values, "filer_remarks"),
            full_time_w2_count_2019=counts[0],
            full_time_w2_count_2020=counts[1],
            full_time_w2_count_2021=counts[2],
            full_time_employees=round_half_up(sum(counts) / 3),
        )

    def _qualifying_questions(
        self,
        values: Mapping[str, Any],
    ) -> Dict[int, Dict[str, QuarterAnswers]]:
        grid: Dict[int, Dict[str, QuarterAnswers]] = {}
        for year, quarters in QUALIFYING_QUARTERS.items():
            grid[year] = {}
            for quarter in quarters:
                suffix = f"{quarter.lower()}_{year}"
                grid[year][quarter] = QuarterAnswers(**{
                    attr: _flag(values, f"{prefix}_{suffix}")
                    for prefix, attr in QUESTION_PREFIXES
                })
        return grid

    def _shutdown_standards(self, values: Mapping[str, Any]) -> ShutdownStandards:
        flags = {name: _flag(values, name) for name in _SHUTDOWN_FLAGS}
        return ShutdownStandards(
            other_comments=_text(values, "shutdown_other_comments"),
            **flags,
        )

    def _form941(self, values: Mapping[str, Any]) -> Dict[int, Dict[str, Form941Quarter]]:
        return {
            year: {
                q: Form941Quarter(**{
                    attr: _number(values, f"form941_{year}_{q.lower()}_{suffix}")
                    for suffix, attr in FORM941_SUFFIXES
                })
                for q in QUARTERS
            }
            for year in FORM941_YEARS
        }

    def _taxable_wages(self, values: Mapping[str, Any]) -> Dict[int, Dict[str, float]]:
        wages = {
            year: {
                q: _number(values, f"taxable_ss_wages_{q.lower()}_{year}")
                for q in QUARTERS
            }
            for year in FORM941_YEARS
        }
        # The 941 sheet has no 2021 Q4 wage column
        wages[2021]["Q4"] = 0.0
        return wages


# ---------------------------------------------------------------------------
# Completeness and claim metrics
# ---------------------------------------------------------------------------


def check_missing_fields(record: CanonicalRecord) -> List[str]:
    """List critical quarters that carry no data."""
    missing: List[str] = []
    for year in REVENUE_YEARS:
        for quarter in QUARTERS:
            if record.gross_receipts[year][quarter] == 0:
                missing.append(f"Gross receipts {year} {quarter}")
    for year in FORM941_YEARS:
        for quarter in QUARTERS:
            data = record.form941[year][quarter]
            if data.employee_count == 0 and data.total_wages == 0:
                missing.append(f"Form 941 data {year} {quarter}")
    return missing


def gross_receipts_decline(record: CanonicalRecord) -> Dict[str, float]:
    """Percent decline of each 2020/2021 quarter against the same 2019 quarter.

    Quarters with no 2019 baseline are omitted.
    """
    decline: Dict[str, float] = {}
    for quarter in QUARTERS:
        baseline = record.gross_receipts[2019][quarter]
        if baseline <= 0:
            continue
        for year in (2020, 2021):
            current = record.gross_receipts[year][quarter]
            decline[f"{year}{quarter}"] = (baseline - current) / baseline * 100
    return decline


def compute_claim_metrics(record: CanonicalRecord) -> ClaimMetrics:
    """Derive decline, retention wages, average head count and eligibility."""
    decline = gross_receipts_decline(record)

    total_wages = 0.0
    counts: List[float] = []
    for year in FORM941_YEARS:
        for quarter in QUARTERS:
            data = record.form941[year][quarter]
            total_wages += data.retention_credit_wages
            if data.employee_count > 0:
                counts.append(data.employee_count)
    average = float(round_half_up(sum(counts) / len(counts))) if counts else 0.0

    eligible: List[str] = []
    for year, quarters in QUALIFYING_QUARTERS.items():
        for quarter in quarters:
            answers = record.answers(year, quarter)
            label = f"{year}{quarter}"
            quarter_decline = decline.get(label)
            by_decline = quarter_decline is not None and (
                quarter_decline >= 20 or (year == 2021 and quarter_decline >= 10)
            )
            if (
                answers.government_shutdown
                or answers.supply_disruptions
                or answers.recovery_startup_business
                or by_decline
            ):
                eligible.append(label)

    return ClaimMetrics(
        gross_receipts_decline=decline,
        total_retention_credit_wages=total_wages,
        average_employee_count=average,
        eligible_quarters=eligible,
    )


# ---------------------------------------------------------------------------
# Module-level conveniences
# ---------------------------------------------------------------------------


def canonicalize(
    values: Union[ExtractedValues, Mapping[str, Any]],
    config: Optional[ErcIntakeConfig] = None,
) -> CanonicalRecord:
    return Canonicalizer(config).canonicalize(values)


def create_empty_record(
    reason: str = EMPTY_RECORD_REASON,
    config: Optional[ErcIntakeConfig] = None,
) -> CanonicalRecord:
    return Canonicalizer(config).create_empty_record(reason)


__all__ = [
    "QUESTION_PREFIXES",
    "FORM941_SUFFIXES",
    "EMPTY_RECORD_REASON",
    "normalize_owner_percentage",
    "Canonicalizer",
    "check_missing_fields",
    "gross_receipts_decline",
    "compute_claim_metrics",
    "canonicalize",
    "create_empty_record",
]
