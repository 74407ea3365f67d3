# -*- coding: utf-8 -*-
"""
Strict Extractor - ERC Intake

Walks every DATA_VALUE mapping of the cell map against a loaded workbook and
coerces each raw cell into its declared type:

    - Empty cells produce a warning and the type default ("", 0, False)
    - NUMBER strips currency and thousands formatting before parsing
    - BOOLEAN accepts literals, numbers and yes/no style tokens
    - PERCENTAGE scales fractions (<= 1) to the 0-100 range
    - TEXT is stringified and stripped

The primary sheet is required; the auxiliary sheets are optional and their
absence only produces warnings. A NUMBER cell holding text degrades to a
warning and 0; every other coercion failure is recorded as an error.

Example:
    >>> from erc_intake.strict_extractor import StrictExtractor
    >>> result = StrictExtractor().extract(handle)
    >>> result.values["company_ein"]
    '12-3456789'

Author: ERC Intake Team
Status: Production Ready
"""

from __future__ import annotations

import logging
import math
import re
import time
from typing import Any, Dict, List, Optional, Union

from erc_intake import metrics
from erc_intake.cell_map import (
    DATA_DUMP_SHEET,
    FORM941_SHEET,
    PRIMARY_SHEET,
    SECTIONS,
    get_data_value_mappings,
)
from erc_intake.extraction import BaseExtractor
from erc_intake.models import (
    CellMapping,
    CellType,
    CellValue,
    ExtractedValues,
    ExtractionStrategy,
    MappingType,
)
from erc_intake.workbook import WorkbookHandle

logger = logging.getLogger(__name__)

_TRUE_TOKENS = frozenset({"true", "yes", "1", "y"})
_FALSE_TOKENS = frozenset({"false", "no", "0", "n", ""})
_PERCENT_PATTERN = re.compile(r"^([\d.]+)%?$")
_NUMBER_NOISE = re.compile(r"[$,\s]")


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------


def _finite(value: float, raw: Any) -> float:
    if math.isnan(value):
        raise ValueError(f'Cannot parse "{raw}" as number')
    return value


def parse_number(value: Any) -> float:
    """Parse a numeric cell, stripping ``$``, ``,`` and whitespace.

    Raises:
        ValueError: If non-numeric residue remains.
    """
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return _finite(float(value), value)
    if not isinstance(value, str):
        raise TypeError(f'Cannot parse "{value}" as number')
    cleaned = _NUMBER_NOISE.sub("", value)
    try:
        return _finite(float(cleaned), value)
    except ValueError:
        raise ValueError(f'Cannot parse "{value}" as number') from None


def parse_boolean(value: Any) -> bool:
    """Parse a boolean cell.

    Literal booleans pass through, numbers are ``value != 0`` and the tokens
    ``true/yes/1/y`` and ``false/no/0/n/""`` are recognised case-insensitively.
    Any other numeric-looking text resolves by numeric truthiness ("3" is
    True).

    Raises:
        ValueError: If the value is none of the above.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_TOKENS:
        return True
    if text in _FALSE_TOKENS:
        return False
    try:
        number = float(text)
    except ValueError:
        raise ValueError(f'Cannot parse "{value}" as boolean') from None
    if math.isnan(number):
        raise ValueError(f'Cannot parse "{value}" as boolean')
    return number != 0


def parse_percentage(value: Any) -> Union[float, bool]:
    """Parse a percentage onto the 0-100 scale.

    Numbers <= 1 are fractions and are multiplied by 100; larger numbers are
    already scaled. Strings like ``"50%"`` are already scaled; bare numeric
    strings follow the fraction rule. Booleans pass through unchanged for
    the canonicalizer to interpret.

    Raises:
        ValueError: If the value is not a recognisable percentage.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        number = float(value)
        return number * 100 if number <= 1 else number
    text = str(value).strip()
    match = _PERCENT_PATTERN.match(text)
    if match:
        try:
            number = float(match.group(1))
        except ValueError:
            raise ValueError(f'Cannot parse "{value}" as percentage') from None
        if text.endswith("%"):
            return number
        return number * 100 if number <= 1 else number
    raise ValueError(f'Cannot parse "{value}" as percentage')


def parse_text(value: Any) -> str:
    # xls stores every number as float; 123456789.0 reads back as 123456789
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


_COERCERS = {
    CellType.NUMBER: parse_number,
    CellType.BOOLEAN: parse_boolean,
    CellType.PERCENTAGE: parse_percentage,
    CellType.TEXT: parse_text,
}

_TYPE_DEFAULTS: Dict[CellType, CellValue] = {
    CellType.TEXT: "",
    CellType.NUMBER: 0,
    CellType.BOOLEAN: False,
    CellType.PERCENTAGE: 0,
}


def coerce_value(value: Any, cell_type: CellType) -> CellValue:
    """Coerce a non-empty raw cell value into the declared type."""
    return _COERCERS[cell_type](value)


def is_empty_cell(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


# ---------------------------------------------------------------------------
# StrictExtractor
# ---------------------------------------------------------------------------


class StrictExtractor(BaseExtractor):
    """Cell-address extractor over the declarative cell map.

    Example:
        >>> extractor = StrictExtractor()
        >>> result = extractor.extract_sections(handle, ["company_basic_info"])
        >>> sorted(result.values)[:2]
        ['address_city', 'address_line1']
    """

    strategy = ExtractionStrategy.STRICT

    def _sheet_alias(self) -> Dict[str, str]:
        return {
            PRIMARY_SHEET: self._config.primary_sheet_name,
            DATA_DUMP_SHEET: self._config.data_dump_sheet_name,
            FORM941_SHEET: self._config.form941_sheet_name,
        }

    def extract(self, workbook: WorkbookHandle) -> ExtractedValues:
        return self._extract(workbook, None)

    def extract_sections(
        self,
        workbook: WorkbookHandle,
        section_names: List[str],
    ) -> ExtractedValues:
        """Extract only the named sections."""
        return self._extract(workbook, list(section_names))

    def _extract(
        self,
        workbook: WorkbookHandle,
        section_names: Optional[List[str]],
    ) -> ExtractedValues:
        start = time.monotonic()
        result = ExtractedValues(
            strategy=self.strategy,
            sheets_found=workbook.sheet_names,
            source_hash=workbook.source_hash,
        )
        alias = self._sheet_alias()
        primary = alias[PRIMARY_SHEET]

        if not workbook.has_sheet(primary):
            result.errors.append(
                f"Required sheets not found: {primary}. "
                f"Available sheets: {', '.join(workbook.sheet_names)}"
            )
            result.success = False
            self._finish(result, start)
            return result

        for optional in (alias[DATA_DUMP_SHEET], alias[FORM941_SHEET]):
            if not workbook.has_sheet(optional):
                result.warnings.append(f'Optional sheet "{optional}" not found')

        for mapping in get_data_value_mappings(section_names):
            sheet = alias.get(mapping.sheet_name, mapping.sheet_name)
            if not workbook.has_sheet(sheet):
                result.warnings.append(
                    f'Sheet "{sheet}" not loaded for cell '
                    f"{mapping.cell_address} ({mapping.field_name})"
                )
                continue
            value = self._extract_cell(workbook, sheet, mapping, result)
            if value is not None:
                result.values[mapping.field_name] = value

        result.success = not result.errors
        self._finish(result, start)
        return result

    def _extract_cell(
        self,
        workbook: WorkbookHandle,
        sheet: str,
        mapping: CellMapping,
        result: ExtractedValues,
    ) -> Optional[CellValue]:
        raw = workbook.cell(sheet, mapping.cell_address)
        if is_empty_cell(raw):
            result.warnings.append(
                f"Cell {mapping.cell_address} ({mapping.field_name}) is empty"
            )
            return _TYPE_DEFAULTS[mapping.expected_type]

        try:
            return coerce_value(raw, mapping.expected_type)
        except (ValueError, TypeError) as exc:
            if mapping.expected_type == CellType.NUMBER and isinstance(raw, str):
                result.warnings.append(
                    f"Cell {mapping.cell_address} ({mapping.field_name}) contains "
                    f'text "{raw}" but expects a number. Using 0.'
                )
                return 0
            result.errors.append(
                f"Error parsing cell {mapping.cell_address} "
                f"({mapping.field_name}): {exc}"
            )
            return None

    def _finish(self, result: ExtractedValues, start: float) -> None:
        elapsed = time.monotonic() - start
        self._record(result)
        metrics.record_extraction(
            self.strategy.value, result.success, elapsed, len(result.warnings),
        )
        logger.info(
            "Strict extraction %s: %d values, %d warnings, %d errors (%.1f ms)",
            "succeeded" if result.success else "failed",
            len(result.values), len(result.warnings), len(result.errors),
            elapsed * 1000,
        )

    # ------------------------------------------------------------------
    # Reporting helpers
    # ------------------------------------------------------------------

    @staticmethod
    def summarize(values: Dict[str, CellValue]) -> Dict[str, Dict[str, CellValue]]:
        """Group extracted values by cell map section, dropping empty sections."""
        summary: Dict[str, Dict[str, CellValue]] = {}
        for section in SECTIONS:
            group = {
                m.field_name: values[m.field_name]
                for m in section.mappings
                if m.mapping_type == MappingType.DATA_VALUE and m.field_name in values
            }
            if group:
                summary[section.name] = group
        return summary

    @staticmethod
    def validate_values(values: Dict[str, Any]) -> Dict[str, Any]:
        """Check values against the declared types of the cell map.

        Returns:
            Dict with ``is_valid``, ``missing_fields`` and ``invalid_fields``.
        """
        missing: List[str] = []
        invalid: List[str] = []
        for mapping in get_data_value_mappings():
            value = values.get(mapping.field_name)
            label = f"{mapping.field_name} ({mapping.cell_address})"
            if value is None or value == "":
                missing.append(label)
                continue
            if mapping.expected_type in (CellType.NUMBER, CellType.PERCENTAGE):
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    invalid.append(
                        f"{label} - expected number, got {type(value).__name__}"
                    )
            elif mapping.expected_type == CellType.BOOLEAN:
                if not isinstance(value, bool):
                    invalid.append(
                        f"{label} - expected boolean, got {type(value).__name__}"
                    )
        return {
            "is_valid": not missing and not invalid,
            "missing_fields": missing,
            "invalid_fields": invalid,
        }


__all__ = [
    "parse_number",
    "parse_boolean",
    "parse_percentage",
    "parse_text",
    "coerce_value",
    "is_empty_cell",
    "StrictExtractor",
]
