# -*- coding: utf-8 -*-
"""
Batch Input Parser - ERC Intake

Parses a batch input file (CSV, .xlsx/.xlsm or .xls) into ordered
``BatchInputRow`` entries. Each row carries an optional workbook reference
and the override metadata taken from every other non-empty column.

Row rules:
    - completely empty rows are skipped with a warning
    - an invalid reference is cleared with a warning; the row is kept
    - a row with data but no reference is kept as metadata-only
    - ``row_index`` is the file row number (the header is row 1)

Files using the agreement-sheet layout are detected from their headers and
routed through ``custom_columns.map_to_internal_format``.

Example:
    >>> from erc_intake.batch_input_parser import parse_batch_input
    >>> result = parse_batch_input(b"google_sheets_url,email\\nabc123,a@b.com\\n", "in.csv")
    >>> result.rows[0].row_index, result.rows[0].metadata
    (2, {'email': 'a@b.com'})

Author: ERC Intake Team
Status: Production Ready
"""

from __future__ import annotations

import csv
import io
import logging
import os
import threading
import time
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import chardet

from erc_intake.bulk_upload_fields import BULK_UPLOAD_HEADER
from erc_intake.config import ErcIntakeConfig, get_config
from erc_intake.custom_columns import (
    SOURCE_COLUMN,
    is_custom_format,
    map_to_internal_format,
)
from erc_intake.exceptions import WorkbookLoadError
from erc_intake.models import BatchInputParseResult, BatchInputRow
from erc_intake.sources import is_valid_source_reference
from erc_intake.workbook import load_workbook

logger = logging.getLogger(__name__)

CSV_EXTENSIONS = (".csv",)
EXCEL_EXTENSIONS = (".xlsx", ".xlsm", ".xls")

#: Substrings that identify the source-reference column (after normalising).
SOURCE_COLUMN_MARKERS = ("google_sheets_url", "sheets_url", "source_reference", "url")

UNSUPPORTED_FORMAT_ERROR = "Unsupported file format. Please upload a CSV or Excel file."

_BOM_MAP: Dict[bytes, str] = {
    b"\xef\xbb\xbf": "utf-8-sig",
    b"\xff\xfe": "utf-16",
    b"\xfe\xff": "utf-16",
}

# (file row number, cells)
RawRow = Tuple[int, List[str]]


def _utcnow() -> datetime:
    """Return current UTC datetime with microseconds zeroed."""
    return datetime.now(timezone.utc).replace(microsecond=0)


# ---------------------------------------------------------------------------
# Decoding and cell helpers
# ---------------------------------------------------------------------------


def _decode(content: bytes, encoding: str) -> Tuple[str, str]:
    try:
        return content.decode(encoding), encoding
    except UnicodeDecodeError as exc:
        logger.warning(
            "Decode with %s failed: %s, replacing undecodable bytes", encoding, exc,
        )
        return content.decode(encoding, errors="replace"), encoding
    except LookupError as exc:
        logger.warning(
            "Decode with %s failed: %s, falling back to latin-1", encoding, exc,
        )
        return content.decode("latin-1", errors="replace"), "latin-1"


def decode_text(content: bytes) -> Tuple[str, str]:
    """Decode CSV bytes: BOM first, then UTF-8, then chardet's guess.

    Never raises; undecodable bytes become U+FFFD and an unknown codec
    name falls back to latin-1.

    Returns:
        ``(text, encoding)``.
    """
    for bom, encoding in _BOM_MAP.items():
        if content.startswith(bom):
            return _decode(content, encoding)
    try:
        return content.decode("utf-8"), "utf-8"
    except UnicodeDecodeError:
        detected = chardet.detect(content)
        encoding = (detected.get("encoding") or "latin-1").lower()
        logger.debug(
            "chardet detected encoding: %s (confidence %.2f)",
            encoding, detected.get("confidence") or 0.0,
        )
        return _decode(content, encoding)


def stringify_cell(value: Any) -> str:
    """Render a spreadsheet cell the way it would display as text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (datetime, date)):
        return value.strftime("%m/%d/%Y")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def normalize_header(header: str) -> str:
    return "_".join(header.strip().lower().split())


def find_source_column(headers: Sequence[str], custom: bool = False) -> Optional[str]:
    """Return the header holding workbook references, if any."""
    if custom:
        return SOURCE_COLUMN
    for header in headers:
        normalized = normalize_header(header)
        if any(marker in normalized for marker in SOURCE_COLUMN_MARKERS):
            return header
    return None


def _is_comment(cells: Sequence[str]) -> bool:
    return bool(cells) and cells[0].lstrip().startswith("#")


def _is_blank(cells: Sequence[str]) -> bool:
    return all(not c.strip() for c in cells)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class BatchInputParser:
    """Turns a batch input file into ordered ``BatchInputRow`` entries.

    Example:
        >>> parser = BatchInputParser()
        >>> result = parser.parse(content, "batch.xlsx")
        >>> result.success, len(result.rows)
        (True, 10)
    """

    def __init__(self, config: Optional[ErcIntakeConfig] = None) -> None:
        self._config = config or get_config()
        self._lock = threading.Lock()
        self._stats: Dict[str, int] = {
            "files_parsed": 0,
            "files_rejected": 0,
            "rows_accepted": 0,
            "rows_skipped": 0,
            "custom_format_files": 0,
        }
        logger.info("BatchInputParser initialised: max_rows=%d", self._config.batch_max_rows)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse(self, content: bytes, file_name: str) -> BatchInputParseResult:
        """Parse a batch input file.

        Args:
            content: Raw file bytes.
            file_name: Original file name; its extension selects the reader.

        Returns:
            BatchInputParseResult. Failures are reported in ``error``,
            never raised.
        """
        start = time.monotonic()
        ext = os.path.splitext(file_name or "")[1].lower()
        if ext in CSV_EXTENSIONS:
            try:
                raw_rows = self._read_csv(content)
            except csv.Error as exc:
                return self._reject(f"CSV parsing error: {exc}")
        elif ext in EXCEL_EXTENSIONS:
            try:
                raw_rows = self._read_excel(content, file_name)
            except WorkbookLoadError as exc:
                return self._reject(f"Excel parsing error: {exc.message}")
        else:
            return self._reject(UNSUPPORTED_FORMAT_ERROR)

        result = self._process(raw_rows)
        with self._lock:
            if result.success:
                self._stats["files_parsed"] += 1
                self._stats["rows_accepted"] += len(result.rows)
            else:
                self._stats["files_rejected"] += 1
            if result.custom_format:
                self._stats["custom_format_files"] += 1
        logger.info(
            "Parsed batch input '%s': %d rows, %d warnings, custom=%s (%.1f ms)",
            file_name, len(result.rows), len(result.warnings), result.custom_format,
            (time.monotonic() - start) * 1000,
        )
        return result

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            stats: Dict[str, Any] = dict(self._stats)
        stats["timestamp"] = _utcnow().isoformat()
        return stats

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    def _read_csv(self, content: bytes) -> List[RawRow]:
        text, encoding = decode_text(content)
        logger.debug("Batch input decoded as %s", encoding)
        reader = csv.reader(io.StringIO(text))
        return [(number, [c.strip() for c in cells]) for number, cells in enumerate(reader, 1)]

    def _read_excel(self, content: bytes, file_name: str) -> List[RawRow]:
        workbook = load_workbook(
            content, file_name=file_name, max_size_mb=self._config.max_workbook_size_mb,
        )
        if not workbook.sheet_names:
            raise WorkbookLoadError("Excel file has no sheets", file_name=file_name)
        rows = workbook.rows(workbook.sheet_names[0])
        return [
            (number, [stringify_cell(v) for v in cells])
            for number, cells in enumerate(rows, 1)
        ]

    # ------------------------------------------------------------------
    # Row processing
    # ------------------------------------------------------------------

    def _reject(self, error: str, warnings: Optional[List[str]] = None) -> BatchInputParseResult:
        with self._lock:
            self._stats["files_rejected"] += 1
        logger.warning("Batch input rejected: %s", error)
        return BatchInputParseResult(success=False, error=error, warnings=warnings or [])

    def _process(self, raw_rows: List[RawRow]) -> BatchInputParseResult:
        # Leading comment and blank lines precede the header
        body = list(raw_rows)
        while body and (_is_blank(body[0][1]) or _is_comment(body[0][1])):
            body.pop(0)
        if len(body) < 2:
            return BatchInputParseResult(
                success=False,
                error="File must have headers and at least one data row",
            )

        header_number, headers = body[0]
        data_rows = body[1:]
        if len(data_rows) > self._config.batch_max_rows:
            return BatchInputParseResult(
                success=False,
                error=(
                    f"Batch input has {len(data_rows)} rows, exceeding the maximum "
                    f"of {self._config.batch_max_rows}"
                ),
            )

        custom = is_custom_format(headers)
        source_column = find_source_column(headers, custom)
        if source_column is None:
            return BatchInputParseResult(
                success=False,
                error="Missing required column: google_sheets_url (or similar URL column)",
            )

        warnings: List[str] = []
        rows: List[BatchInputRow] = []
        skipped = 0
        for number, cells in data_rows:
            if _is_comment(cells):
                logger.debug("Row %d: skipping comment line", number)
                skipped += 1
                continue
            if _is_blank(cells):
                warnings.append(f"Row {number}: Skipping completely empty row")
                skipped += 1
                continue

            record = self._record(headers, cells)
            reference = record.get(source_column, "")
            if reference and not is_valid_source_reference(reference):
                warnings.append(f"Row {number}: Invalid source reference format: {reference}")
                reference = ""
            elif not reference:
                warnings.append(
                    f"Row {number}: No source reference provided, using metadata only"
                )

            if custom:
                metadata = map_to_internal_format(record)
            else:
                metadata = {
                    key: value for key, value in record.items()
                    if key != source_column and value
                }
            rows.append(BatchInputRow(row_index=number, source_reference=reference, metadata=metadata))

        with self._lock:
            self._stats["rows_skipped"] += skipped
        if not rows:
            skipped_info = (
                f". {len(warnings)} rows were skipped (check warnings for details)"
                if warnings else ""
            )
            return BatchInputParseResult(
                success=False,
                error=(
                    f"No processable data found in the file. "
                    f"Processed {len(data_rows)} rows{skipped_info}"
                ),
                warnings=warnings,
                custom_format=custom,
            )
        return BatchInputParseResult(
            success=True, rows=rows, warnings=warnings, custom_format=custom,
        )

    @staticmethod
    def _record(headers: Sequence[str], cells: Sequence[str]) -> Dict[str, str]:
        """Map cells onto headers; duplicated headers keep the first non-empty value."""
        record: Dict[str, str] = {}
        for index, header in enumerate(headers):
            header = header.strip()
            if not header:
                continue
            value = cells[index].strip() if index < len(cells) else ""
            if not record.get(header):
                record[header] = value
        return record


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


_SAMPLE_ROWS: Tuple[Dict[str, str], ...] = (
    {
        "google_sheets_url": "https://docs.google.com/spreadsheets/d/YOUR_SHEET_ID_HERE/edit",
        "contact_first_name": "John",
        "contact_last_name": "Smith",
        "job_title": "CEO",
        "main_phone": "555-0100",
        "email": "john.smith@company.com",
        "business_legal_name": "ABC Company Inc",
        "industry": "Manufacturing",
        "website": "www.abccompany.com",
        "business_address": "123 Main Street",
        "suite_unit": "Suite 100",
        "business_city": "New York",
        "business_state": "NY",
        "business_zip": "10001",
        "ein": "12-3456789",
        "owner_percentages": "John Smith:60,Jane Smith:40",
        "revenue_periods": "2020Q2,2020Q3,2020Q4",
        "ppp1_amount": "150000",
        "ppp2_amount": "150000",
        "hardship_description": "Significant COVID-19 impact on operations",
        "original_preparer": "Tax Professionals LLC",
    },
    {
        "google_sheets_url": "https://docs.google.com/spreadsheets/d/ANOTHER_SHEET_ID/edit",
        "contact_first_name": "Jane",
        "contact_last_name": "Doe",
        "job_title": "CFO",
        "main_phone": "555-0200",
        "email": "jane.doe@business.com",
        "business_legal_name": "XYZ Corporation",
        "industry": "Technology",
        "business_address": "456 Oak Avenue",
        "business_city": "Los Angeles",
        "business_state": "CA",
        "business_zip": "90001",
    },
)


def generate_sample_template() -> str:
    """CSV template: ``google_sheets_url`` plus every bulk-upload field."""
    headers = ["google_sheets_url", *BULK_UPLOAD_HEADER]
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    output.write("# Batch Input Template - one workbook reference per row\n")
    output.write("# The google_sheets_url column is required; a local .xlsx path also works.\n")
    output.write("# All other columns are optional and override the extracted values.\n")
    output.write("# Delete these comment lines and the sample data before uploading.\n")
    output.write("\n")
    writer.writerow(headers)
    for sample in _SAMPLE_ROWS:
        writer.writerow([sample.get(h, "") for h in headers])
    return output.getvalue()


def parse_batch_input(
    content: bytes,
    file_name: str,
    config: Optional[ErcIntakeConfig] = None,
) -> BatchInputParseResult:
    return BatchInputParser(config).parse(content, file_name)


__all__ = [
    "SOURCE_COLUMN_MARKERS",
    "UNSUPPORTED_FORMAT_ERROR",
    "decode_text",
    "stringify_cell",
    "normalize_header",
    "find_source_column",
    "BatchInputParser",
    "generate_sample_template",
    "parse_batch_input",
]
