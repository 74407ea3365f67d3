# -*- coding: utf-8 -*-
"""
Heuristic Extractor - ERC Intake

Best-effort fallback used when the strict extractor's structural
precondition fails (the primary sheet is missing or renamed). Cells are
located by scanning for known label text and reading answers at fixed
offsets from each match, which tolerates rows drifting between template
revisions.

Every coercion on this path is exception-safe: unparseable numbers become 0
and unparseable booleans become False.

Example:
    >>> from erc_intake.heuristic_extractor import HeuristicExtractor
    >>> result = HeuristicExtractor().extract(handle)
    >>> result.warnings[-1]
    'Used heuristic extractor'

Author: ERC Intake Team
Status: Production Ready
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Any, List, Optional

from openpyxl.utils.cell import get_column_letter

from erc_intake import metrics
from erc_intake.config import ErcIntakeConfig
from erc_intake.cell_map import QUARTER_COLUMNS, get_mappings_by_section
from erc_intake.extraction import BaseExtractor
from erc_intake.models import (
    ExtractedValues,
    ExtractionStrategy,
    MappingType,
    OwnerEntry,
)
from erc_intake.strict_extractor import parse_boolean, parse_percentage, parse_text
from erc_intake.workbook import WorkbookHandle

logger = logging.getLogger(__name__)

#: Question phrase -> field prefix, matched case-insensitively.
QUESTION_PATTERNS = (
    ("partial or full government shutdown", "shutdown"),
    ("supply chain", "supply"),
    ("10% reduction", "reduction10"),
    ("20% reduction", "reduction20"),
    ("Recovery Startup", "recovery"),
    ("severely distressed", "distressed"),
)

#: Both spellings occur in circulated copies of the template.
QUESTION_HEADERS = ("Qualifiying questions", "Qualifying questions")

_RECOVERY_ROW = 13
_YEARS = ("2019", "2020", "2021")
_NON_NUMERIC = re.compile(r"[^\d.-]")


@dataclass(frozen=True)
class CellLocation:
    """1-based position of a matched cell."""

    row: int
    column: int

    @property
    def address(self) -> str:
        return f"{get_column_letter(self.column)}{self.row}"


# ---------------------------------------------------------------------------
# Safe coercion
# ---------------------------------------------------------------------------


def parse_number_safe(value: Any) -> float:
    """Parse a number, returning 0 on any failure."""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if value is None or value == "":
        return 0.0
    cleaned = _NON_NUMERIC.sub("", str(value).replace("$", "").replace(",", ""))
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def parse_boolean_safe(value: Any) -> bool:
    """Parse a boolean, returning False on any failure."""
    if value is None:
        return False
    try:
        return parse_boolean(value)
    except ValueError:
        return False


def parse_percentage_safe(value: Any) -> float:
    try:
        parsed = parse_percentage(value)
    except ValueError:
        return parse_number_safe(value)
    if isinstance(parsed, bool):
        return 100.0 if parsed else 0.0
    return parsed


def _truthy(value: Any) -> bool:
    return value is not None and value != "" and value is not False and value != 0


# ---------------------------------------------------------------------------
# HeuristicExtractor
# ---------------------------------------------------------------------------


class HeuristicExtractor(BaseExtractor):
    """Label-anchored extractor tolerant of row drift."""

    strategy = ExtractionStrategy.HEURISTIC

    def __init__(self, config: Optional[ErcIntakeConfig] = None) -> None:
        super().__init__(config)
        self._workbook: Optional[WorkbookHandle] = None
        self._sheet: str = ""

    # ------------------------------------------------------------------
    # Lookup primitives
    # ------------------------------------------------------------------

    def find_cell_by_text(
        self,
        text: str,
        partial: bool = True,
    ) -> Optional[CellLocation]:
        """Return the first cell (row-major) whose text matches.

        Args:
            text: Phrase to look for, compared case-insensitively.
            partial: Substring match when True, exact match otherwise.
        """
        if self._workbook is None:
            return None
        needle = text.lower()
        for row, column, value in self._workbook.iter_cells(self._sheet):
            haystack = str(value).lower()
            if (needle in haystack) if partial else (haystack == needle):
                return CellLocation(row, column)
        return None

    def relative_value(
        self,
        location: CellLocation,
        row_offset: int,
        col_offset: int,
    ) -> Any:
        """Return the value at an offset from a matched cell."""
        if self._workbook is None:
            return None
        return self._workbook.cell_at(
            self._sheet, location.row + row_offset, location.column + col_offset,
        )

    def _value(self, row: int, column: int) -> Any:
        return self._workbook.cell_at(self._sheet, row, column)

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def extract(self, workbook: WorkbookHandle) -> ExtractedValues:
        start = time.monotonic()
        result = ExtractedValues(
            strategy=self.strategy,
            sheets_found=workbook.sheet_names,
            source_hash=workbook.source_hash,
        )

        sheet = self._config.primary_sheet_name
        if not workbook.has_sheet(sheet):
            if not workbook.sheet_names:
                result.errors.append("Workbook contains no sheets")
                result.success = False
                self._finish(result, start)
                return result
            sheet = workbook.sheet_names[0]
            result.warnings.append(
                f'Primary sheet "{self._config.primary_sheet_name}" not found; '
                f'scanning "{sheet}"'
            )

        self._workbook = workbook
        self._sheet = sheet
        try:
            self._extract_remarks_and_counts(result)
            self._extract_company_info(workbook, result)
            self._extract_qualifying_questions(result)
            self._extract_gross_receipts(result)
            self._extract_ownership(result)
        finally:
            self._workbook = None
            self._sheet = ""

        result.warnings.append("Used heuristic extractor")
        result.success = True
        self._finish(result, start)
        return result

    def _extract_remarks_and_counts(self, result: ExtractedValues) -> None:
        remarks = self._value(2, 1)
        if remarks is not None:
            result.values["filer_remarks"] = str(remarks)

        label = self.find_cell_by_text("Number of full-time W-2")
        if label:
            result.values["full_time_w2_count_2020"] = parse_number_safe(
                self.relative_value(label, 1, 0)
            )
            result.values["full_time_w2_count_2021"] = parse_number_safe(
                self.relative_value(label, 1, 1)
            )

    def _extract_company_info(
        self,
        workbook: WorkbookHandle,
        result: ExtractedValues,
    ) -> None:
        sheet = self._config.data_dump_sheet_name
        if not workbook.has_sheet(sheet):
            return
        for mapping in get_mappings_by_section("company_basic_info"):
            if mapping.mapping_type != MappingType.DATA_VALUE:
                continue
            raw = workbook.cell(sheet, mapping.cell_address)
            if raw is not None and raw != "":
                result.values[mapping.field_name] = parse_text(raw)

    def _extract_qualifying_questions(self, result: ExtractedValues) -> None:
        header = None
        for text in QUESTION_HEADERS:
            header = self.find_cell_by_text(text)
            if header:
                break
        if not header:
            return

        for pattern, prefix in QUESTION_PATTERNS:
            question = self.find_cell_by_text(pattern)
            if not question:
                continue
            for col, quarter, year in QUARTER_COLUMNS:
                value = self._workbook.cell(self._sheet, f"{col}{question.row}")
                result.values[f"{prefix}_{quarter}_{year}"] = parse_boolean_safe(value)

        # Row 13 carries the recovery startup answers in the standard layout
        for col, quarter, year in QUARTER_COLUMNS:
            key = f"recovery_{quarter}_{year}"
            value = self._workbook.cell(self._sheet, f"{col}{_RECOVERY_ROW}")
            if value is not None and not result.values.get(key):
                result.values[key] = parse_boolean_safe(value)

    def _extract_gross_receipts(self, result: ExtractedValues) -> None:
        max_row, _ = self._workbook.dimensions(self._sheet)
        for row in range(1, max_row + 1):
            label = self._value(row, 1)
            value = self._value(row, 2)
            if not _truthy(label) or "Business Gross Sales" not in str(label):
                continue
            if not _truthy(value):
                continue
            for check_row in range(row - 5, row + 6):
                context = self._value(check_row, 2)
                if not _truthy(context):
                    continue
                text = str(context)
                for year in _YEARS:
                    if year in text:
                        self._assign_gross_receipts(result, row, year, value)
                        break

    def _assign_gross_receipts(
        self,
        result: ExtractedValues,
        row: int,
        year: str,
        value: Any,
    ) -> None:
        for check_row in range(row - 3, row + 4):
            context = self._value(check_row, 2)
            if not _truthy(context):
                continue
            text = str(context).lower()
            for n in range(1, 5):
                if f"quarter {n}" in text or f"q{n}" in text:
                    result.values[f"gross_receipts_{year}_q{n}"] = parse_number_safe(value)
                    break

    def _extract_ownership(self, result: ExtractedValues) -> None:
        header = self.find_cell_by_text("Ownership Structure")
        if not header:
            return
        owners: List[OwnerEntry] = []
        for row_offset in range(2, 11):
            name = self.relative_value(header, row_offset, 0)
            percentage = self.relative_value(header, row_offset, 1)
            if not _truthy(name) or not _truthy(percentage):
                break
            owners.append(
                OwnerEntry(
                    name=str(name).strip(),
                    percentage=parse_percentage_safe(percentage),
                )
            )
        result.owners = owners
        if owners:
            result.values["owner_name"] = owners[0].name
            result.values["owner_percentage"] = owners[0].percentage

    def _finish(self, result: ExtractedValues, start: float) -> None:
        elapsed = time.monotonic() - start
        self._record(result)
        metrics.record_extraction(
            self.strategy.value, result.success, elapsed, len(result.warnings),
        )
        logger.info(
            "Heuristic extraction %s: %d values, %d owners (%.1f ms)",
            "succeeded" if result.success else "failed",
            len(result.values), len(result.owners), elapsed * 1000,
        )


__all__ = [
    "CellLocation",
    "QUESTION_PATTERNS",
    "QUESTION_HEADERS",
    "parse_number_safe",
    "parse_boolean_safe",
    "parse_percentage_safe",
    "HeuristicExtractor",
]
