# -*- coding: utf-8 -*-
"""
Derived Fields - ERC Intake

Pure helpers shared by the bulk-upload, portal and hybrid field tables:
company initials and case identifiers, phone and number formatting, the
operational-trigger and hardship narratives, and quarter eligibility.

Example:
    >>> from erc_intake.derivations import company_initials
    >>> company_initials("GOM Holdings Inc")
    'GOM'

Author: ERC Intake Team
Status: Production Ready
"""

from __future__ import annotations

import math
import re
from typing import Any, List, Optional, Tuple

from erc_intake.models import (
    CLAIM_QUARTERS,
    QUALIFYING_QUARTERS,
    CanonicalRecord,
    QuarterAnswers,
)

_NON_DIGIT = re.compile(r"\D")


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounding up."""
    return int(math.floor(value + 0.5))


def format_number(value: Any) -> str:
    """Render a number the way a spreadsheet user typed it.

    Whole floats drop their fractional part (``150000.0`` -> ``"150000"``);
    other floats use the shortest round-trip representation.
    """
    if value is None or value == "":
        return "0"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def format_currency(value: Any) -> str:
    """Two-decimal amount; falsy input renders as ``0.00``."""
    if not value:
        return "0.00"
    return f"{float(value):.2f}"


def yes_no(flag: bool) -> str:
    return "yes" if flag else "no"


def y_n(flag: bool) -> str:
    return "Y" if flag else "N"


def format_phone(phone: Optional[str]) -> str:
    """Format a 10-digit phone as ``(XXX) XXX-XXXX``; keep anything else."""
    if not phone:
        return ""
    digits = _NON_DIGIT.sub("", str(phone))
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return str(phone)


def digits_only_ein(ein: str) -> str:
    return (ein or "").replace("-", "")


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------


def company_initials(name: Optional[str]) -> str:
    """Derive up to three initials from a company name.

    1 word: its first three letters; 2 words: the first letter of each;
    3+ words: the first letters of the first three. A leading all-caps word
    of two or three letters is already an acronym and is used as is. A
    single-letter result is padded with ``X``. Empty names give ``UNK``.

    >>> [company_initials(n) for n in ("Microsoft", "Sample Company", "Q")]
    ['MIC', 'SC', 'QX']
    """
    words = (name or "").split()
    if not words:
        return "UNK"
    lead = words[0]
    if len(words) > 1 and lead.isalpha() and lead.isupper() and 2 <= len(lead) <= 3:
        initials = lead
    elif len(words) == 1:
        initials = words[0][:3].upper()
    else:
        initials = "".join(w[0].upper() for w in words[:3])
    if len(initials) == 1:
        initials += "X"
    return initials[:3] or "UNK"


def bulk_case_id(record: CanonicalRecord, sequence: str = "001") -> str:
    """``<initials>_<ein>_<sequence>``."""
    info = record.company_info
    return f"{company_initials(info.legal_name)}_{info.ein or ''}_{sequence}"


def portal_case_id(record: CanonicalRecord) -> str:
    """``ERC-<ein digits>-<YYYYMMDD>`` dated from the record's extraction time."""
    stamp = record.metadata.extracted_at.strftime("%Y%m%d")
    return f"ERC-{digits_only_ein(record.company_info.ein)}-{stamp}"


def quarter_label(year: int, quarter: str) -> str:
    """``2020Q2`` style label."""
    return f"{year}{quarter}"


def short_quarter_label(year: int, quarter: str) -> str:
    """``2Q20`` style label used by the hybrid quarterly columns."""
    return f"{quarter[1]}Q{str(year)[2:]}"


# ---------------------------------------------------------------------------
# Quarter eligibility
# ---------------------------------------------------------------------------


def _iter_questionnaire(record: CanonicalRecord) -> List[Tuple[int, str, QuarterAnswers]]:
    return [
        (year, quarter, record.answers(year, quarter))
        for year, quarters in QUALIFYING_QUARTERS.items()
        for quarter in quarters
    ]


def is_claimed_quarter(answers: QuarterAnswers) -> bool:
    return (
        answers.government_shutdown
        or answers.revenue_reduction_20_percent
        or answers.supply_disruptions
    )


def claimed_quarters(record: CanonicalRecord) -> List[str]:
    """Claim-eligible quarters with shutdown, 20% reduction or supply triggers."""
    return [
        quarter_label(year, quarter)
        for year, quarter in CLAIM_QUARTERS
        if is_claimed_quarter(record.answers(year, quarter))
    ]


def claim_amounts(record: CanonicalRecord) -> str:
    """``YYYYQn:<retention wages>`` for claimed quarters with wages > 0."""
    amounts: List[str] = []
    for year, quarter in CLAIM_QUARTERS:
        if not is_claimed_quarter(record.answers(year, quarter)):
            continue
        wages = record.credit_wages(year, quarter).retention_credit_wages
        if wages and wages > 0:
            amounts.append(f"{quarter_label(year, quarter)}:{wages:.2f}")
    return ",".join(amounts)


def received_checks(record: CanonicalRecord) -> str:
    return ",".join(f"{q}:No" for q in claimed_quarters(record))


def revenue_periods(record: CanonicalRecord) -> str:
    periods: List[str] = []
    if record.revenue_reduction.reduction_50_2020:
        periods.extend(["2020Q2", "2020Q3", "2020Q4"])
    if record.revenue_reduction.reduction_20_2021:
        periods.extend(["2021Q1", "2021Q2", "2021Q3"])
    return ",".join(periods)


def trigger_quarters(record: CanonicalRecord) -> List[str]:
    """Questionnaire quarters with a supply, vendor or shutdown trigger."""
    return [
        quarter_label(year, quarter)
        for year, quarter, answers in _iter_questionnaire(record)
        if answers.supply_disruptions
        or answers.vendor_disruptions
        or answers.government_shutdown
    ]


#: Shutdown-standard flag -> (code, sentence) for the bulk trigger list.
OPERATIONAL_TRIGGER_CODES = (
    ("supply_chain_interruptions", "supplies_delayed",
     "Supply chain interruptions impacted operations"),
    ("inability_work_vendors", "vendor_disruptions",
     "Critical vendors unable to deliver"),
    ("limited_capacity", "limited_capacity",
     "Operated under capacity restrictions"),
    ("inability_access_equipment", "equipment_access",
     "Unable to access equipment"),
)


def operational_triggers(record: CanonicalRecord) -> str:
    """``code|quarters|sentence`` entries joined with ``;``."""
    quarter_list = ",".join(trigger_quarters(record))
    standards = record.shutdown_standards
    return ";".join(
        f"{code}|{quarter_list}|{sentence}"
        for flag, code, sentence in OPERATIONAL_TRIGGER_CODES
        if getattr(standards, flag)
    )


#: Shutdown-standard flag -> phrase for the portal trigger description.
PORTAL_TRIGGER_PHRASES = (
    ("full_shutdowns", "Full business shutdowns"),
    ("partial_shutdowns", "Partial business shutdowns"),
    ("interrupted_operations", "Interrupted operations"),
    ("supply_chain_interruptions", "Supply chain disruptions"),
    ("inability_access_equipment", "Unable to access equipment"),
    ("limited_capacity", "Limited operational capacity"),
    ("inability_work_vendors", "Unable to work with vendors"),
    ("reduction_services", "Reduction in services offered"),
    ("cut_down_hours", "Reduced business hours"),
    ("shifting_hours_sanitation", "Shifted hours for sanitation"),
    ("challenges_finding_employees", "Challenges finding employees"),
)


def portal_operational_triggers(record: CanonicalRecord) -> str:
    standards = record.shutdown_standards
    phrases = [p for flag, p in PORTAL_TRIGGER_PHRASES if getattr(standards, flag)]
    if standards.other_comments:
        phrases.append(f"Other: {standards.other_comments}")
    return "; ".join(phrases) or "No specific operational triggers reported"


def any_government_shutdown(record: CanonicalRecord) -> bool:
    return any(a.government_shutdown for _, _, a in _iter_questionnaire(record))


def any_recovery_startup(record: CanonicalRecord) -> bool:
    return any(a.recovery_startup_business for _, _, a in _iter_questionnaire(record))


def tax_year_claimed(record: CanonicalRecord, year: int) -> bool:
    """Whether any questionnaire quarter of a year carries a trigger."""
    for quarter in QUALIFYING_QUARTERS.get(year, ()):
        a = record.answers(year, quarter)
        if (
            a.government_shutdown
            or a.supply_disruptions
            or a.vendor_disruptions
            or a.revenue_reduction_20_percent
            or a.recovery_startup_business
        ):
            return True
    return False


def revenue_decline(baseline: float, current: float) -> str:
    """Percent decline against a baseline, ``0.00`` for a zero baseline."""
    if baseline == 0:
        return "0.00"
    return f"{(baseline - current) / baseline * 100:.2f}"


# ---------------------------------------------------------------------------
# Narratives
# ---------------------------------------------------------------------------


def bulk_hardship_description(record: CanonicalRecord) -> str:
    """One-paragraph hardship narrative for the bulk-upload format."""
    info = record.company_info
    standards = record.shutdown_standards
    reduction = record.revenue_reduction
    parts = [
        f"{info.legal_name or 'The company'} experienced significant "
        "hardships during the COVID-19 pandemic. "
    ]
    if standards.full_shutdowns:
        parts.append("The business faced full shutdowns due to government orders. ")
    if standards.partial_shutdowns:
        parts.append("Operations were partially suspended during mandatory restrictions. ")
    if standards.supply_chain_interruptions:
        parts.append("Supply chain disruptions severely impacted our ability to operate. ")
    if standards.limited_capacity:
        parts.append("We operated under limited capacity restrictions. ")
    if reduction.reduction_50_2020:
        parts.append("Revenue declined by more than 50% in 2020 compared to 2019. ")
    if reduction.reduction_20_2021:
        parts.append("Revenue declined by more than 20% in 2021 compared to 2019. ")

    emp_2019 = info.full_time_w2_count_2019 or 0
    emp_2020 = info.full_time_w2_count_2020 or 0
    if emp_2020 < emp_2019:
        parts.append(
            f"Employee count dropped from {format_number(emp_2019)} in 2019 "
            f"to {format_number(emp_2020)} in 2020. "
        )
    if record.loan_forgiveness.ppp1_forgiveness_amount > 0:
        parts.append("We received PPP assistance to maintain payroll. ")
    parts.append("These factors qualify us for the Employee Retention Credit.")
    return "".join(parts)


def portal_hardship_description(record: CanonicalRecord) -> str:
    """Sentence list joined with ``. `` for the portal format."""
    hardships: List[str] = []
    if record.revenue_reduction.reduction_50_2020:
        hardships.append("Experienced 50% or greater revenue reduction in 2020")
    if record.revenue_reduction.reduction_20_2021:
        hardships.append("Experienced 20% or greater revenue reduction in 2021")
    if any_government_shutdown(record):
        hardships.append("Subject to government shutdown orders")
    loans = record.loan_forgiveness
    if loans.ppp1_forgiveness_amount > 0:
        hardships.append(
            f"Received PPP1 loan (forgiven: ${loans.ppp1_forgiveness_amount:.2f})"
        )
    if loans.ppp2_forgiveness_amount > 0:
        hardships.append(
            f"Received PPP2 loan (forgiven: ${loans.ppp2_forgiveness_amount:.2f})"
        )
    return ". ".join(hardships) or "Business experienced COVID-19 related hardships"


__all__ = [
    "round_half_up",
    "format_number",
    "format_currency",
    "yes_no",
    "y_n",
    "format_phone",
    "digits_only_ein",
    "company_initials",
    "bulk_case_id",
    "portal_case_id",
    "quarter_label",
    "short_quarter_label",
    "is_claimed_quarter",
    "claimed_quarters",
    "claim_amounts",
    "received_checks",
    "revenue_periods",
    "trigger_quarters",
    "OPERATIONAL_TRIGGER_CODES",
    "operational_triggers",
    "PORTAL_TRIGGER_PHRASES",
    "portal_operational_triggers",
    "any_government_shutdown",
    "any_recovery_startup",
    "tax_year_claimed",
    "revenue_decline",
    "bulk_hardship_description",
    "portal_hardship_description",
]
