# -*- coding: utf-8 -*-
"""
Exporters - ERC Intake

Renders canonical records into the three output formats:

    - bulk upload: comma-separated, minimally quoted, header + one row
    - portal: tab-delimited, tabs inside values replaced by spaces
    - hybrid: comma-separated, one row per batch job with custom columns

Bulk-upload and portal exports pre-validate the canonical identity and
address fields first and refuse to render when any is missing. The portal
export additionally validates rendered values against the portal field
constraints.

Example:
    >>> from erc_intake.exporters import export_bulk_upload
    >>> result = export_bulk_upload(record)
    >>> result.success, result.field_count
    (True, 52)

Author: ERC Intake Team
Status: Production Ready
"""

from __future__ import annotations

import csv
import io
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from erc_intake import metrics
from erc_intake.bulk_upload_fields import (
    BULK_UPLOAD_FIELDS,
    OutputFieldSpec,
    field_names,
    render_fields,
)
from erc_intake.hybrid_mapper import HybridMapper, hybrid_headers
from erc_intake.models import (
    QUARTERS,
    REVENUE_YEARS,
    CanonicalRecord,
    ExportFormat,
    ExportResult,
)
from erc_intake.portal_fields import PORTAL_FIELDS, validate_portal_values

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Return current UTC datetime with microseconds zeroed."""
    return datetime.now(timezone.utc).replace(microsecond=0)


# ---------------------------------------------------------------------------
# Rendering primitives
# ---------------------------------------------------------------------------


def csv_line(values: Sequence[Any]) -> str:
    """Render one minimally quoted CSV line without a terminator.

    Values containing a comma, quote, CR or LF are quoted with internal
    quotes doubled.
    """
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")
    writer.writerow(["" if v is None else str(v) for v in values])
    return output.getvalue()[:-2]


def tsv_clean(value: Any) -> str:
    return ("" if value is None else str(value)).replace("\t", " ").strip()


def tsv_line(values: Sequence[Any]) -> str:
    return "\t".join(tsv_clean(v) for v in values)


def prevalidate(record: CanonicalRecord) -> List[str]:
    """List canonical fields an export needs but the record lacks."""
    missing: List[str] = []
    info = record.company_info
    address = info.address
    for label, value in (
        ("Company EIN", info.ein),
        ("Company Legal Name", info.legal_name),
        ("Address Line 1", address.line1),
        ("City", address.city),
        ("State", address.state),
        ("ZIP Code", address.zip_code),
    ):
        if not value:
            missing.append(label)
    for year in REVENUE_YEARS:
        if getattr(info, f"full_time_w2_count_{year}", None) is None:
            missing.append(f"{year} Employee Count")
    for year in REVENUE_YEARS:
        quarters = record.gross_receipts.get(year) or {}
        for quarter in QUARTERS:
            if quarters.get(quarter) is None:
                missing.append(f"{year} {quarter} Gross Receipts")
    return missing


# ---------------------------------------------------------------------------
# Exporter
# ---------------------------------------------------------------------------


class Exporter:
    """Renders canonical records into export files.

    Example:
        >>> exporter = Exporter()
        >>> portal = exporter.export_portal(record)
        >>> portal.content.splitlines()[0].split("\\t")[0]
        'CASE_ID'
    """

    def __init__(self, hybrid_mapper: Optional[HybridMapper] = None) -> None:
        self.hybrid_mapper = hybrid_mapper if hybrid_mapper is not None else HybridMapper()
        self._lock = threading.Lock()
        self._stats: Dict[str, int] = {
            "bulk_upload": 0,
            "portal": 0,
            "hybrid": 0,
            "rejected": 0,
        }

    def _count(self, export_format: ExportFormat, success: bool) -> None:
        with self._lock:
            self._stats[export_format.value] += 1
            if not success:
                self._stats["rejected"] += 1
        metrics.record_export(export_format.value, success)

    def export_bulk_upload(self, record: CanonicalRecord) -> ExportResult:
        """Render the 52-field bulk-upload CSV."""
        start = time.monotonic()
        header = field_names(BULK_UPLOAD_FIELDS)
        missing = prevalidate(record)
        if missing:
            self._count(ExportFormat.BULK_UPLOAD, False)
            logger.warning("Bulk upload export rejected: missing %s", ", ".join(missing))
            return ExportResult(
                success=False,
                export_format=ExportFormat.BULK_UPLOAD,
                header=header,
                field_count=len(header),
                missing_fields=missing,
            )

        values, notes = render_fields(
            BULK_UPLOAD_FIELDS, record, ExportFormat.BULK_UPLOAD.value,
        )
        content = f"{csv_line(header)}\n{csv_line(values)}"
        self._count(ExportFormat.BULK_UPLOAD, True)
        logger.info(
            "Bulk upload export generated: %d fields, %d fallbacks (%.1f ms)",
            len(values), len(notes), (time.monotonic() - start) * 1000,
        )
        return ExportResult(
            success=True,
            export_format=ExportFormat.BULK_UPLOAD,
            header=header,
            values=values,
            content=content,
            field_count=len(header),
            notes=notes,
        )

    def export_portal(self, record: CanonicalRecord) -> ExportResult:
        """Render the 51-field tab-delimited portal file."""
        start = time.monotonic()
        header = field_names(PORTAL_FIELDS)
        missing = prevalidate(record)
        if missing:
            self._count(ExportFormat.PORTAL, False)
            logger.warning("Portal export rejected: missing %s", ", ".join(missing))
            return ExportResult(
                success=False,
                export_format=ExportFormat.PORTAL,
                header=header,
                field_count=len(header),
                missing_fields=missing,
            )

        raw_values, notes = render_fields(PORTAL_FIELDS, record, ExportFormat.PORTAL.value)
        values = [tsv_clean(v) for v in raw_values]
        errors = validate_portal_values(values)
        if errors:
            self._count(ExportFormat.PORTAL, False)
            logger.warning("Portal export failed validation: %d errors", len(errors))
            return ExportResult(
                success=False,
                export_format=ExportFormat.PORTAL,
                header=header,
                values=values,
                field_count=len(header),
                errors=errors,
                notes=notes,
            )

        content = f"{tsv_line(header)}\n{tsv_line(values)}"
        self._count(ExportFormat.PORTAL, True)
        logger.info(
            "Portal export generated: %d fields (%.1f ms)",
            len(values), (time.monotonic() - start) * 1000,
        )
        return ExportResult(
            success=True,
            export_format=ExportFormat.PORTAL,
            header=header,
            values=values,
            content=content,
            field_count=len(header),
            notes=notes,
        )

    def export_hybrid(
        self,
        record: CanonicalRecord,
        metadata: Optional[Mapping[str, Any]] = None,
        remove_links: bool = False,
    ) -> ExportResult:
        """Render a single-record hybrid CSV."""
        row, notes = self.hybrid_mapper.map(record, metadata, remove_links)
        result = self.export_hybrid_rows([row])
        result.notes = notes
        return result

    def export_hybrid_rows(self, rows: Sequence[Mapping[str, Any]]) -> ExportResult:
        """Render the combined hybrid CSV for already-built rows.

        An empty row list produces a header-only file.
        """
        header = hybrid_headers(rows)
        lines = [csv_line(header)]
        for row in rows:
            lines.append(csv_line([row.get(name, "") for name in header]))
        self._count(ExportFormat.HYBRID, True)
        logger.info("Hybrid export generated: %d rows, %d columns", len(rows), len(header))
        return ExportResult(
            success=True,
            export_format=ExportFormat.HYBRID,
            header=header,
            values=[str(rows[0].get(name, "")) for name in header] if len(rows) == 1 else [],
            content="\n".join(lines),
            field_count=len(header),
        )

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            stats: Dict[str, Any] = dict(self._stats)
        stats["timestamp"] = _utcnow().isoformat()
        return stats


# ---------------------------------------------------------------------------
# Previews and documentation
# ---------------------------------------------------------------------------


def preview(
    table: Sequence[OutputFieldSpec],
    record: CanonicalRecord,
    field_count: int = 10,
) -> str:
    """Render the first ``field_count`` fields of a table.

    Portal tables render tab-delimited, others as CSV.
    """
    ordered = sorted(table, key=lambda s: s.ordinal)
    subset = ordered[:field_count]
    values, _ = render_fields(subset, record)
    names = [spec.name for spec in subset]
    if table is PORTAL_FIELDS:
        body = f"{tsv_line(names)}\n{tsv_line(values)}"
    else:
        body = f"{csv_line(names)}\n{csv_line(values)}"
    remaining = len(ordered) - len(subset)
    if remaining > 0:
        body += f"\n... ({remaining} more fields)"
    return body


def field_summary(table: Sequence[OutputFieldSpec]) -> List[Dict[str, Any]]:
    return [
        {
            "number": spec.ordinal,
            "name": spec.name,
            "description": spec.description,
            "data_type": spec.data_type.value,
            "required": spec.required,
            "max_length": spec.max_length,
        }
        for spec in sorted(table, key=lambda s: s.ordinal)
    ]


def mapping_documentation(
    table: Sequence[OutputFieldSpec],
    title: str = "Field Mapping Documentation",
) -> str:
    """Markdown table describing every field of a format."""
    lines = [
        f"# {title}",
        "",
        f"Total Fields: {len(table)}",
        "",
        "| Field # | Field Name | Description | Type | Required | Source |",
        "|---------|------------|-------------|------|----------|--------|",
    ]
    for spec in sorted(table, key=lambda s: s.ordinal):
        lines.append(
            f"| {spec.ordinal} | {spec.name} | {spec.description} | "
            f"{spec.data_type.value.upper()} | {'Yes' if spec.required else 'No'} | "
            f"{spec.source or 'Custom Logic'} |"
        )
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Module-level conveniences
# ---------------------------------------------------------------------------


def export_bulk_upload(record: CanonicalRecord) -> ExportResult:
    return Exporter().export_bulk_upload(record)


def export_portal(record: CanonicalRecord) -> ExportResult:
    return Exporter().export_portal(record)


def export_hybrid(
    record: CanonicalRecord,
    metadata: Optional[Mapping[str, Any]] = None,
    remove_links: bool = False,
) -> ExportResult:
    return Exporter().export_hybrid(record, metadata, remove_links)


def export_hybrid_rows(rows: Sequence[Mapping[str, Any]]) -> ExportResult:
    return Exporter().export_hybrid_rows(rows)


__all__ = [
    "csv_line",
    "tsv_clean",
    "tsv_line",
    "prevalidate",
    "Exporter",
    "preview",
    "field_summary",
    "mapping_documentation",
    "export_bulk_upload",
    "export_portal",
    "export_hybrid",
    "export_hybrid_rows",
]
