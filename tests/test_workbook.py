"""
Unit Tests for workbook loading and workbook sources.
"""

import asyncio

import pytest

from erc_intake.exceptions import SourceNotFoundError, WorkbookLoadError
from erc_intake.sources import (
    InMemoryWorkbookSource,
    LocalWorkbookSource,
    extract_spreadsheet_id,
    is_valid_source_reference,
)
from erc_intake.workbook import (
    WorkbookFormat,
    compute_source_hash,
    detect_format,
    load_workbook,
    split_address,
)


class TestLoadWorkbook:
    """Test loading .xlsx bytes into a WorkbookHandle."""

    def test_loads_all_sheets(self, strict_workbook):
        handle = load_workbook(strict_workbook, file_name="client.xlsx")

        assert handle.sheet_names == ["Understandable Data-final", "Data Dump", "941 form"]
        assert handle.file_format == WorkbookFormat.XLSX
        assert handle.source_hash == compute_source_hash(strict_workbook)

    def test_cell_lookup(self, strict_workbook):
        handle = load_workbook(strict_workbook)

        assert handle.cell("Data Dump", "B26") == "Sample Company"
        assert handle.cell("Understandable Data-final", "c9") == "Yes"
        assert handle.cell("Understandable Data-final", "Z999") is None
        assert handle.cell("No Such Sheet", "A1") is None

    def test_empty_content_rejected(self):
        with pytest.raises(WorkbookLoadError, match="empty"):
            load_workbook(b"")

    def test_unknown_format_rejected(self):
        with pytest.raises(WorkbookLoadError, match="Unsupported workbook format"):
            load_workbook(b"not a workbook at all")

    def test_corrupt_zip_rejected(self):
        with pytest.raises(WorkbookLoadError, match="Failed to load Excel file"):
            load_workbook(b"PK\x03\x04garbage")

    def test_size_limit(self, strict_workbook):
        with pytest.raises(WorkbookLoadError, match="maximum size"):
            load_workbook(strict_workbook * 200, max_size_mb=0)

    def test_detect_format(self):
        assert detect_format(b"PK\x03\x04rest") == WorkbookFormat.XLSX
        assert detect_format(b"\xd0\xcf\x11\xe0rest") == WorkbookFormat.XLS
        assert detect_format(b"ab") == WorkbookFormat.UNKNOWN

    def test_split_address(self):
        assert split_address("B25") == (25, 2)
        assert split_address("aa3") == (3, 27)


class TestSourceReferences:
    """Test reference validation and id extraction."""

    @pytest.mark.parametrize("reference", [
        "https://docs.google.com/spreadsheets/d/1AbC_d-E/edit#gid=0",
        "1AbCdEfGh",
        "clients/acme.xlsx",
        "/tmp/book.XLS",
    ])
    def test_valid_references(self, reference):
        assert is_valid_source_reference(reference)

    @pytest.mark.parametrize("reference", ["", "   ", "not a url!", "https://example.com/x"])
    def test_invalid_references(self, reference):
        assert not is_valid_source_reference(reference)

    def test_extract_spreadsheet_id(self):
        url = "https://docs.google.com/spreadsheets/d/1AbC_d-E/edit"
        assert extract_spreadsheet_id(url) == "1AbC_d-E"
        assert extract_spreadsheet_id("plainid") == "plainid"
        assert extract_spreadsheet_id("has space") is None


class TestSources:
    """Test the local and in-memory workbook sources."""

    def test_local_source_resolves_sheet_id(self, tmp_path, strict_workbook):
        (tmp_path / "1AbCdEf.xlsx").write_bytes(strict_workbook)
        source = LocalWorkbookSource(str(tmp_path))

        url = "https://docs.google.com/spreadsheets/d/1AbCdEf/edit"
        content = asyncio.run(source.fetch(url))
        assert content == strict_workbook

    def test_local_source_resolves_relative_path(self, tmp_path, strict_workbook):
        (tmp_path / "acme.xlsx").write_bytes(strict_workbook)
        source = LocalWorkbookSource(str(tmp_path))
        assert asyncio.run(source.fetch("acme.xlsx")) == strict_workbook

    def test_local_source_missing(self, tmp_path):
        source = LocalWorkbookSource(str(tmp_path))
        with pytest.raises(SourceNotFoundError) as exc_info:
            asyncio.run(source.fetch("nothing-here"))
        assert exc_info.value.source_reference == "nothing-here"

    def test_in_memory_source(self):
        source = InMemoryWorkbookSource({"a": b"one"})
        source.add("b", b"two")

        assert asyncio.run(source.fetch("b")) == b"two"
        with pytest.raises(SourceNotFoundError):
            asyncio.run(source.fetch("c"))
