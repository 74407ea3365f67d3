# -*- coding: utf-8 -*-
"""
Workbook Sources - ERC Intake

A ``WorkbookSource`` turns a batch row's source reference (a Google Sheets
URL, a bare spreadsheet id, or a local path) into raw workbook bytes. The
remote export itself lives outside this package; ``LocalWorkbookSource``
resolves references against a directory of previously exported workbooks
so batches can run end to end offline.

Example:
    >>> import asyncio
    >>> from erc_intake.sources import LocalWorkbookSource
    >>> source = LocalWorkbookSource("/data/exports")
    >>> content = asyncio.run(source.fetch("1AbCdEfGhIj"))

Author: ERC Intake Team
Status: Production Ready
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from erc_intake.exceptions import (
    SourceAccessDeniedError,
    SourceError,
    SourceNotFoundError,
)

logger = logging.getLogger(__name__)

WORKBOOK_EXTENSIONS = (".xlsx", ".xlsm", ".xls")

_SHEETS_URL_ID = re.compile(r"/spreadsheets/d/([a-zA-Z0-9-_]+)")
_BARE_ID = re.compile(r"^[a-zA-Z0-9-_]+$")


# ---------------------------------------------------------------------------
# Reference helpers
# ---------------------------------------------------------------------------


def extract_spreadsheet_id(reference: str) -> Optional[str]:
    """Return the spreadsheet id from a Sheets URL or bare id, else None."""
    reference = (reference or "").strip()
    match = _SHEETS_URL_ID.search(reference)
    if match:
        return match.group(1)
    if _BARE_ID.match(reference):
        return reference
    return None


def is_local_workbook_path(reference: str) -> bool:
    return (reference or "").strip().lower().endswith(WORKBOOK_EXTENSIONS)


def is_valid_source_reference(reference: str) -> bool:
    """Accept a Google Sheets URL, a bare sheet id, or a local workbook path."""
    reference = (reference or "").strip()
    if not reference:
        return False
    return (
        "docs.google.com/spreadsheets" in reference
        or bool(_BARE_ID.match(reference))
        or is_local_workbook_path(reference)
    )


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class WorkbookSource(ABC):
    """Asynchronous provider of workbook bytes for a source reference."""

    @abstractmethod
    async def fetch(self, source_reference: str) -> bytes:
        """Return the raw workbook bytes for a reference.

        Raises:
            SourceNotFoundError: The workbook does not exist.
            SourceAccessDeniedError: The workbook cannot be read.
            SourceTimeoutError: The fetch exceeded its time budget.
        """


# ---------------------------------------------------------------------------
# Local directory implementation
# ---------------------------------------------------------------------------


class LocalWorkbookSource(WorkbookSource):
    """Resolve references against a directory of exported workbooks.

    Resolution order: the reference as a direct path (absolute, or relative
    to ``base_dir``), then the spreadsheet id taken from a Sheets URL or bare
    id looked up as ``<base_dir>/<id>.xlsx``, ``.xlsm`` or ``.xls``.
    """

    def __init__(self, base_dir: str = "", max_size_mb: Optional[int] = None) -> None:
        self.base_dir = base_dir or os.getcwd()
        self.max_size_mb = max_size_mb
        logger.info("LocalWorkbookSource initialised: base_dir=%s", self.base_dir)

    def candidate_paths(self, source_reference: str) -> List[str]:
        reference = source_reference.strip()
        candidates: List[str] = []
        if is_local_workbook_path(reference):
            if os.path.isabs(reference):
                candidates.append(reference)
            else:
                candidates.append(os.path.join(self.base_dir, reference))
        sheet_id = extract_spreadsheet_id(reference)
        if sheet_id:
            for ext in WORKBOOK_EXTENSIONS:
                candidates.append(os.path.join(self.base_dir, f"{sheet_id}{ext}"))
        return candidates

    def resolve(self, source_reference: str) -> str:
        """Return the first existing path for a reference.

        Raises:
            SourceNotFoundError: No candidate path exists.
        """
        for path in self.candidate_paths(source_reference):
            if os.path.isfile(path):
                return path
        raise SourceNotFoundError(
            f"Workbook not found for reference: {source_reference}",
            source_reference=source_reference,
            context={"base_dir": self.base_dir},
        )

    def _read(self, path: str, source_reference: str) -> bytes:
        if self.max_size_mb is not None:
            size = os.path.getsize(path)
            if size > self.max_size_mb * 1024 * 1024:
                raise SourceError(
                    f"Workbook exceeds maximum size of {self.max_size_mb} MB",
                    source_reference=source_reference,
                    context={"size_bytes": size},
                )
        try:
            with open(path, "rb") as fh:
                return fh.read()
        except PermissionError as exc:
            raise SourceAccessDeniedError(
                f"Access denied reading workbook: {path}",
                source_reference=source_reference,
            ) from exc

    async def fetch(self, source_reference: str) -> bytes:
        path = self.resolve(source_reference)
        content = await asyncio.to_thread(self._read, path, source_reference)
        logger.debug("Fetched %d bytes for %s from %s", len(content), source_reference, path)
        return content


class InMemoryWorkbookSource(WorkbookSource):
    """Serve workbook bytes from a dict keyed by source reference."""

    def __init__(self, workbooks: Optional[Dict[str, bytes]] = None) -> None:
        self.workbooks: Dict[str, bytes] = dict(workbooks or {})

    def add(self, source_reference: str, content: bytes) -> None:
        self.workbooks[source_reference] = content

    async def fetch(self, source_reference: str) -> bytes:
        try:
            return self.workbooks[source_reference]
        except KeyError:
            raise SourceNotFoundError(
                f"Workbook not found for reference: {source_reference}",
                source_reference=source_reference,
            ) from None


__all__ = [
    "WORKBOOK_EXTENSIONS",
    "extract_spreadsheet_id",
    "is_local_workbook_path",
    "is_valid_source_reference",
    "WorkbookSource",
    "LocalWorkbookSource",
    "InMemoryWorkbookSource",
]
