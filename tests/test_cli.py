"""
Tests for the erc-intake command line interface.
"""

import csv
import io
import json
import logging

import pytest
from typer.testing import CliRunner

from erc_intake.cli import app
from erc_intake.config import ErcIntakeConfig, set_config


runner = CliRunner()


@pytest.fixture
def workbook_path(tmp_path, strict_workbook):
    path = tmp_path / "client.xlsx"
    path.write_bytes(strict_workbook)
    return path


class TestExtractCommand:
    def test_json_output(self, workbook_path):
        result = runner.invoke(app, ["extract", str(workbook_path), "--json"])

        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["success"] is True
        assert payload["strategy"] == "strict"
        assert payload["values"]["company_name"] == "Sample Company"

    def test_sections(self, workbook_path):
        result = runner.invoke(
            app, ["extract", str(workbook_path), "--json", "--sections", "ppp_information"],
        )

        payload = json.loads(result.stdout)
        assert "ppp1_forgiveness_amount" in payload["values"]
        assert "company_name" not in payload["values"]

    def test_unreadable_workbook(self, tmp_path):
        path = tmp_path / "notes.xlsx"
        path.write_bytes(b"plain text")

        result = runner.invoke(app, ["extract", str(path)])

        assert result.exit_code == 1
        assert "Extraction failed" in result.stdout


class TestExportCommand:
    def test_portal_to_stdout(self, workbook_path):
        result = runner.invoke(app, ["export", str(workbook_path), "-f", "portal"])

        assert result.exit_code == 0
        assert result.stdout.startswith("CASE_ID\tEIN\tLEGAL_NAME")

    def test_bulk_to_file(self, workbook_path, tmp_path):
        output = tmp_path / "bulk.csv"
        result = runner.invoke(app, ["export", str(workbook_path), "-o", str(output)])

        assert result.exit_code == 0
        header, row = list(csv.reader(io.StringIO(output.read_text(encoding="utf-8"))))
        assert len(header) == len(row) == 52
        assert row[header.index("ein")] == "12-3456789"

    def test_incomplete_record_fails(self, tmp_path, make_strict_workbook):
        path = tmp_path / "partial.xlsx"
        path.write_bytes(make_strict_workbook(include_auxiliary=False))

        result = runner.invoke(app, ["export", str(path), "-f", "bulk"])

        assert result.exit_code == 1
        assert "missing: Company EIN" in result.stdout


class TestBatchCommand:
    def test_batch_run(self, tmp_path, strict_workbook):
        sources = tmp_path / "sources"
        sources.mkdir()
        (sources / "abc123.xlsx").write_bytes(strict_workbook)
        batch_file = tmp_path / "batch.csv"
        batch_file.write_text(
            "google_sheets_url,industry\n"
            "https://docs.google.com/spreadsheets/d/abc123/edit,Retail\n",
            encoding="utf-8",
        )
        output = tmp_path / "out.csv"
        report = tmp_path / "report.json"

        result = runner.invoke(app, [
            "batch", str(batch_file),
            "--source-dir", str(sources),
            "--delay-ms", "0",
            "-o", str(output),
            "--report", str(report),
        ])

        assert result.exit_code == 0
        rows = list(csv.reader(io.StringIO(output.read_text(encoding="utf-8"))))
        assert len(rows) == 2
        assert rows[1][rows[0].index("industry")] == "Retail"
        assert json.loads(report.read_text(encoding="utf-8"))["successful_rows"] == 1

    def test_failed_row_exits_nonzero(self, tmp_path):
        sources = tmp_path / "sources"
        sources.mkdir()
        batch_file = tmp_path / "batch.csv"
        batch_file.write_text("google_sheets_url\nmissing123\n", encoding="utf-8")
        output = tmp_path / "out.csv"

        result = runner.invoke(app, [
            "batch", str(batch_file), "--source-dir", str(sources), "-o", str(output),
        ])

        assert result.exit_code == 1
        assert output.exists()

    def test_unparseable_input(self, tmp_path):
        sources = tmp_path / "sources"
        sources.mkdir()
        batch_file = tmp_path / "batch.csv"
        batch_file.write_text("name\nAcme\n", encoding="utf-8")

        result = runner.invoke(app, ["batch", str(batch_file), "--source-dir", str(sources)])

        assert result.exit_code == 1
        assert "Missing required column" in result.stdout


class TestTemplateAndFields:
    def test_standard_template(self):
        result = runner.invoke(app, ["template"])

        assert result.exit_code == 0
        assert "google_sheets_url,case_id," in result.stdout

    def test_custom_template_to_file(self, tmp_path):
        output = tmp_path / "custom.csv"
        result = runner.invoke(app, ["template", "--custom", "-o", str(output)])

        assert result.exit_code == 0
        assert "Proper Format Module" in output.read_text(encoding="utf-8")

    @pytest.mark.parametrize("table,count", [("bulk", 52), ("portal", 51)])
    def test_fields(self, table, count):
        result = runner.invoke(app, ["fields", "-f", table])

        assert result.exit_code == 0
        assert f"{table} fields ({count})" in result.stdout


class TestLogging:
    @pytest.fixture
    def package_logger(self):
        logger = logging.getLogger("erc_intake")
        previous = logger.level
        yield logger
        logger.setLevel(previous)

    def test_configured_level_is_applied(self, package_logger):
        set_config(ErcIntakeConfig(log_level="warning"))

        result = runner.invoke(app, ["fields", "-f", "portal"])

        assert result.exit_code == 0
        assert package_logger.level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self, package_logger):
        set_config(ErcIntakeConfig(log_level="chatty"))

        runner.invoke(app, ["fields"])

        assert package_logger.level == logging.INFO
