# -*- coding: utf-8 -*-
"""
Workbook Loader - ERC Intake

Opens raw workbook bytes into an in-memory ``WorkbookHandle`` offering
A1-style cell access across every sheet:

    - .xlsx / .xlsm via openpyxl (read-only, cached formula values)
    - .xls via xlrd (boolean, date and error cells normalised)
    - Format detection by magic bytes (ZIP vs OLE2 compound document)
    - Size limit enforcement and SHA-256 source hashing

Example:
    >>> from erc_intake.workbook import load_workbook
    >>> handle = load_workbook(open("client.xlsx", "rb").read())
    >>> handle.sheet_names
    ['Understandable Data-final', 'Data Dump', '941 form']
    >>> handle.cell("Data Dump", "B25")
    '12-3456789'

Author: ERC Intake Team
Status: Production Ready
"""

from __future__ import annotations

import hashlib
import io
import logging
import time
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

import openpyxl
import xlrd
from openpyxl.utils.cell import column_index_from_string, coordinate_from_string

from erc_intake.exceptions import WorkbookLoadError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Format detection
# ---------------------------------------------------------------------------


class WorkbookFormat(str, Enum):
    """Binary workbook container formats."""

    XLSX = "xlsx"
    XLS = "xls"
    UNKNOWN = "unknown"


_MAGIC_BYTES: Dict[bytes, WorkbookFormat] = {
    b"PK\x03\x04": WorkbookFormat.XLSX,  # ZIP archive (OOXML)
    b"\xd0\xcf\x11\xe0": WorkbookFormat.XLS,  # OLE2 Compound Document
}


def detect_format(content: bytes) -> WorkbookFormat:
    """Detect the workbook container from its magic bytes."""
    if content and len(content) >= 4:
        for magic, fmt in _MAGIC_BYTES.items():
            if content[:len(magic)] == magic:
                return fmt
    return WorkbookFormat.UNKNOWN


def split_address(address: str) -> Tuple[int, int]:
    """Split an A1-style address into 1-based (row, column).

    Raises:
        ValueError: If the address is malformed.
    """
    letters, row = coordinate_from_string(address.strip().upper())
    return row, column_index_from_string(letters)


# ---------------------------------------------------------------------------
# WorkbookHandle
# ---------------------------------------------------------------------------


class WorkbookHandle:
    """In-memory, read-only view over every sheet of a workbook.

    Cell values are the cached values of the source file: ``str``, ``float``
    or ``int``, ``bool``, ``datetime`` or ``None`` for empty cells.
    """

    def __init__(
        self,
        sheets: Dict[str, List[List[Any]]],
        file_format: WorkbookFormat = WorkbookFormat.UNKNOWN,
        source_hash: str = "",
        file_name: Optional[str] = None,
    ) -> None:
        self._sheets = sheets
        self.file_format = file_format
        self.source_hash = source_hash
        self.file_name = file_name

    @property
    def sheet_names(self) -> List[str]:
        return list(self._sheets.keys())

    def has_sheet(self, name: str) -> bool:
        return name in self._sheets

    def rows(self, sheet: str) -> List[List[Any]]:
        """Return all rows of a sheet (row 1 first)."""
        return self._sheets.get(sheet, [])

    def dimensions(self, sheet: str) -> Tuple[int, int]:
        """Return (max_row, max_column) of a sheet, 1-based."""
        rows = self._sheets.get(sheet, [])
        return len(rows), max((len(r) for r in rows), default=0)

    def cell_at(self, sheet: str, row: int, column: int) -> Any:
        """Return the value at a 1-based (row, column), or None."""
        if row < 1 or column < 1:
            return None
        rows = self._sheets.get(sheet)
        if rows is None or row > len(rows):
            return None
        values = rows[row - 1]
        if column > len(values):
            return None
        return values[column - 1]

    def cell(self, sheet: str, address: str) -> Any:
        """Return the value at an A1-style address, or None."""
        row, column = split_address(address)
        return self.cell_at(sheet, row, column)

    def iter_cells(self, sheet: str) -> Iterator[Tuple[int, int, Any]]:
        """Yield (row, column, value) for every non-empty cell, row-major."""
        for r, values in enumerate(self._sheets.get(sheet, []), start=1):
            for c, value in enumerate(values, start=1):
                if value is not None and value != "":
                    yield r, c, value

    def __repr__(self) -> str:
        return (
            f"WorkbookHandle(format={self.file_format.value}, "
            f"sheets={self.sheet_names})"
        )


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------


def _read_xlsx(content: bytes) -> Dict[str, List[List[Any]]]:
    wb = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    try:
        sheets: Dict[str, List[List[Any]]] = {}
        for name in wb.sheetnames:
            ws = wb[name]
            sheets[name] = [list(row) for row in ws.iter_rows(values_only=True)]
        return sheets
    finally:
        wb.close()


def _xls_value(book: Any, cell: Any) -> Any:
    ctype = cell.ctype
    if ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK, xlrd.XL_CELL_ERROR):
        return None
    if ctype == xlrd.XL_CELL_BOOLEAN:
        return bool(cell.value)
    if ctype == xlrd.XL_CELL_DATE:
        return xlrd.xldate_as_datetime(cell.value, book.datemode)
    return cell.value


def _read_xls(content: bytes) -> Dict[str, List[List[Any]]]:
    book = xlrd.open_workbook(file_contents=content)
    sheets: Dict[str, List[List[Any]]] = {}
    for idx in range(book.nsheets):
        ws = book.sheet_by_index(idx)
        sheets[ws.name] = [
            [_xls_value(book, c) for c in ws.row(r)] for r in range(ws.nrows)
        ]
    return sheets


def compute_source_hash(content: bytes) -> str:
    """Return the SHA-256 hex digest of raw workbook bytes."""
    return hashlib.sha256(content).hexdigest()


def load_workbook(
    content: bytes,
    file_name: Optional[str] = None,
    max_size_mb: Optional[int] = None,
) -> WorkbookHandle:
    """Open raw workbook bytes.

    Args:
        content: Raw .xlsx/.xlsm/.xls bytes.
        file_name: Optional name used in log lines and errors.
        max_size_mb: Reject content larger than this many megabytes.

    Returns:
        WorkbookHandle over every sheet.

    Raises:
        WorkbookLoadError: If the bytes are empty, too large, of an unknown
            format, or cannot be parsed.
    """
    start = time.monotonic()
    if not content:
        raise WorkbookLoadError("Workbook content is empty", file_name=file_name)

    if max_size_mb is not None and len(content) > max_size_mb * 1024 * 1024:
        raise WorkbookLoadError(
            f"Workbook exceeds maximum size of {max_size_mb} MB",
            file_name=file_name,
            context={"size_bytes": len(content)},
        )

    fmt = detect_format(content)
    if fmt == WorkbookFormat.UNKNOWN:
        raise WorkbookLoadError(
            "Unsupported workbook format (expected .xlsx or .xls)",
            file_name=file_name,
        )

    try:
        if fmt == WorkbookFormat.XLSX:
            sheets = _read_xlsx(content)
        else:
            sheets = _read_xls(content)
    except Exception as exc:
        logger.warning("Workbook %s failed to load: %s", file_name or "<bytes>", exc)
        raise WorkbookLoadError(
            f"Failed to load Excel file: {exc}",
            file_name=file_name,
            context={"format": fmt.value},
        ) from exc

    handle = WorkbookHandle(
        sheets,
        file_format=fmt,
        source_hash=compute_source_hash(content),
        file_name=file_name,
    )
    elapsed_ms = (time.monotonic() - start) * 1000
    logger.info(
        "Loaded %s workbook %s: %d sheets (%.1f ms)",
        fmt.value, file_name or "<bytes>", len(sheets), elapsed_ms,
    )
    return handle


__all__ = [
    "WorkbookFormat",
    "WorkbookHandle",
    "detect_format",
    "split_address",
    "compute_source_hash",
    "load_workbook",
]
