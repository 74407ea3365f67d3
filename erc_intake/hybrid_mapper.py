# -*- coding: utf-8 -*-
"""
Hybrid Mapper - ERC Intake

Builds one hybrid output row per batch job: the 52 bulk-upload fields,
followed by 29 quarterly columns, followed by any caller-supplied custom
columns. Per field the value is chosen by precedence:

    1. compound value built from per-quarter override columns
    2. non-empty metadata override (``main_phone`` is phone-formatted)
    3. generated value from the canonical record
    4. the field's static default when the generator fails

Quarterly columns accept metadata overrides as well. ``remove_links`` blanks
link-bearing columns and any URL-looking value except protected identity
columns.

Example:
    >>> from erc_intake.hybrid_mapper import build_hybrid_row
    >>> row = build_hybrid_row(record, {"2Q20 Amount": "500.00"})
    >>> row["claim_amounts"]
    '2020Q2:500.00'

Author: ERC Intake Team
Status: Production Ready
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from erc_intake import metrics
from erc_intake.bulk_upload_fields import BULK_UPLOAD_FIELDS, BULK_UPLOAD_HEADER
from erc_intake.derivations import format_number, format_phone, short_quarter_label
from erc_intake.models import QUARTERS, CanonicalRecord, QuarterAnswers

logger = logging.getLogger(__name__)

#: Quarters carried by the ``nQyy Qualification``/``nQyy Amount`` columns.
HYBRID_QUARTERS: Tuple[Tuple[int, str], ...] = (
    (2020, "Q2"), (2020, "Q3"), (2020, "Q4"),
    (2021, "Q1"), (2021, "Q2"), (2021, "Q3"), (2021, "Q4"),
)

#: Quarters whose override columns feed the compound claim fields.
COMPOUND_QUARTERS: Tuple[Tuple[int, str], ...] = HYBRID_QUARTERS[:-1]

WAGE_COLUMNS: Tuple[Tuple[int, str], ...] = tuple(
    (year, q) for year in (2019, 2020, 2021) for q in QUARTERS
)


def _wage_column(year: int, quarter: str) -> str:
    return f"{str(year)[2:]}{quarter}"


def _build_quarterly_header() -> Tuple[str, ...]:
    header: List[str] = ["Claim Total"]
    for year, q in HYBRID_QUARTERS:
        label = short_quarter_label(year, q)
        header.extend([f"{label} Qualification", f"{label} Amount"])
    header.extend(["Refunded by IRS", "Disallowed by IRS"])
    header.extend(_wage_column(year, q) for year, q in WAGE_COLUMNS)
    return tuple(header)


QUARTERLY_HEADER: Tuple[str, ...] = _build_quarterly_header()

STANDARD_HEADER: Tuple[str, ...] = BULK_UPLOAD_HEADER + QUARTERLY_HEADER

LINK_FIELDS = frozenset({
    "form941x_files",
    "substantiation_files",
    "health_insurance_files",
    "941x Link",
    "Proper Format Module",
    "File Invite Link",
    "Link",
    "Filename",
    "File Path",
})

PROTECTED_FIELDS = frozenset({
    "email",
    "ein",
    "Customer Email",
    "Customer EIN/TIN",
    "EIN",
})

URL_MARKERS = (
    "http://",
    "https://",
    "drive.google.com",
    "docs.google.com",
    "www.",
    ".com",
    ".org",
    ".net",
)

_QUALIFIED_TOKENS = frozenset({"yes", "true", "1"})


def _utcnow() -> datetime:
    """Return current UTC datetime with microseconds zeroed."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def _is_set(value: Any) -> bool:
    return value is not None and value != ""


def _render(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return format_number(value)
    return str(value)


def _parse_amount(value: Any) -> Optional[float]:
    """Leading-number parse of an override amount; None when not numeric."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", "").lstrip("$")
    digits = ""
    for ch in text:
        if ch.isdigit() or ch == "." or (ch in "+-" and not digits):
            digits += ch
        else:
            break
    try:
        return float(digits)
    except ValueError:
        return None


def is_quarter_qualified(year: int, answers: QuarterAnswers) -> bool:
    """2020 uses the 10% reduction trigger, 2021 the 20% one."""
    reduction = (
        answers.revenue_reduction_10_percent
        if year == 2020
        else answers.revenue_reduction_20_percent
    )
    return (
        answers.government_shutdown
        or reduction
        or answers.supply_disruptions
        or answers.vendor_disruptions
    )


# ---------------------------------------------------------------------------
# Row building blocks
# ---------------------------------------------------------------------------


def build_compound_fields(metadata: Mapping[str, Any]) -> Dict[str, str]:
    """Build ``claim_amounts``/``claimed_quarters`` from per-quarter overrides."""
    compound: Dict[str, str] = {}
    amounts: List[str] = []
    claimed: List[str] = []
    for year, q in COMPOUND_QUARTERS:
        label = short_quarter_label(year, q)
        raw_amount = metadata.get(f"{label} Amount")
        if _is_set(raw_amount):
            amount = _parse_amount(raw_amount)
            if amount is not None and amount > 0:
                amounts.append(f"{year}{q}:{amount:.2f}")
        raw_flag = metadata.get(f"{label} Qualification")
        if _is_set(raw_flag) and str(raw_flag).strip().lower() in _QUALIFIED_TOKENS:
            claimed.append(f"{year}{q}")
    if amounts:
        compound["claim_amounts"] = ",".join(amounts)
    if claimed:
        compound["claimed_quarters"] = ",".join(claimed)
    return compound


def _override_claim_total(metadata: Mapping[str, Any]) -> float:
    total = 0.0
    for year, q in COMPOUND_QUARTERS:
        amount = _parse_amount(metadata.get(f"{short_quarter_label(year, q)} Amount", ""))
        if amount is not None and amount > 0:
            total += amount
    return total


def generate_quarterly_columns(record: CanonicalRecord) -> Dict[str, str]:
    """Quarterly qualification, amount and wage columns from the record."""
    columns: Dict[str, Any] = {name: 0 for name in QUARTERLY_HEADER}
    claim_total = 0.0
    for year, q in HYBRID_QUARTERS:
        label = short_quarter_label(year, q)
        if (year, q) == (2021, "Q4"):
            columns[f"{label} Qualification"] = "No"
            columns[f"{label} Amount"] = 0
            continue
        qualified = is_quarter_qualified(year, record.answers(year, q))
        amount = record.credit_wages(year, q).retention_credit_wages or 0
        columns[f"{label} Qualification"] = "Yes" if qualified else "No"
        columns[f"{label} Amount"] = amount
        if qualified:
            claim_total += amount
    columns["Claim Total"] = claim_total
    for year, q in WAGE_COLUMNS:
        columns[_wage_column(year, q)] = (
            0 if year == 2019 else record.credit_wages(year, q).total_wages or 0
        )
    return {name: _render(value) for name, value in columns.items()}


def remove_links(row: Mapping[str, str]) -> Dict[str, str]:
    """Blank link columns and URL-looking values, sparing protected fields."""
    cleaned = dict(row)
    for key, value in cleaned.items():
        if key in PROTECTED_FIELDS:
            continue
        if key in LINK_FIELDS:
            cleaned[key] = ""
        elif isinstance(value, str) and any(m in value for m in URL_MARKERS):
            cleaned[key] = ""
    return cleaned


def hybrid_headers(rows: Iterable[Mapping[str, Any]]) -> List[str]:
    """Standard columns, then custom columns in first-seen order across rows."""
    header = list(STANDARD_HEADER)
    seen = set(header)
    for row in rows:
        for key in row:
            if key not in seen:
                seen.add(key)
                header.append(key)
    return header


# ---------------------------------------------------------------------------
# HybridMapper
# ---------------------------------------------------------------------------


class HybridMapper:
    """Builds hybrid rows and tracks override usage."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stats: Dict[str, int] = {
            "rows_built": 0,
            "overrides_applied": 0,
            "compound_fields_built": 0,
            "custom_columns": 0,
            "generator_fallbacks": 0,
        }

    def map(
        self,
        record: CanonicalRecord,
        metadata: Optional[Mapping[str, Any]] = None,
        remove_links_flag: bool = False,
    ) -> Tuple[Dict[str, str], List[str]]:
        """Build one hybrid row.

        Returns:
            ``(row, notes)`` where notes name fields that fell back to their
            default value.
        """
        metadata = dict(metadata or {})
        compound = build_compound_fields(metadata)
        row: Dict[str, str] = {}
        notes: List[str] = []
        overrides = 0

        for spec in BULK_UPLOAD_FIELDS:
            name = spec.name
            if name in compound:
                row[name] = compound[name]
            elif _is_set(metadata.get(name)):
                overrides += 1
                raw = _render(metadata[name])
                row[name] = format_phone(raw) if name == "main_phone" else raw
            else:
                try:
                    row[name] = spec.generator(record)
                except Exception as exc:
                    row[name] = spec.default_value or ""
                    notes.append(f"Field {spec.ordinal} ({name}): used default value")
                    metrics.record_generator_fallback("hybrid")
                    logger.debug("Hybrid field %s fell back to default: %s", name, exc)

        quarterly = generate_quarterly_columns(record)
        if "claim_amounts" in compound and not _is_set(metadata.get("Claim Total")):
            quarterly["Claim Total"] = format_number(_override_claim_total(metadata))
        for name in QUARTERLY_HEADER:
            if _is_set(metadata.get(name)):
                overrides += 1
                quarterly[name] = _render(metadata[name])
        row.update(quarterly)

        custom = 0
        for key, value in metadata.items():
            if key not in row:
                row[key] = _render(value)
                custom += 1

        if remove_links_flag:
            row = remove_links(row)

        with self._lock:
            self._stats["rows_built"] += 1
            self._stats["overrides_applied"] += overrides
            self._stats["compound_fields_built"] += len(compound)
            self._stats["custom_columns"] += custom
            self._stats["generator_fallbacks"] += len(notes)
        return row, notes

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            stats: Dict[str, Any] = dict(self._stats)
        stats["timestamp"] = _utcnow().isoformat()
        return stats


def build_hybrid_row(
    record: CanonicalRecord,
    metadata: Optional[Mapping[str, Any]] = None,
    remove_links_flag: bool = False,
) -> Dict[str, str]:
    row, _ = HybridMapper().map(record, metadata, remove_links_flag)
    return row


__all__ = [
    "HYBRID_QUARTERS",
    "QUARTERLY_HEADER",
    "STANDARD_HEADER",
    "LINK_FIELDS",
    "PROTECTED_FIELDS",
    "URL_MARKERS",
    "is_quarter_qualified",
    "build_compound_fields",
    "generate_quarterly_columns",
    "remove_links",
    "hybrid_headers",
    "HybridMapper",
    "build_hybrid_row",
]
