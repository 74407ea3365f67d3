"""
Pytest configuration and shared fixtures for the ERC intake test suite.

Workbooks are built in memory with openpyxl so every test runs against
real .xlsx bytes without fixture files on disk.
"""

import io
from typing import Any, Dict, Optional

import openpyxl
import pytest

from erc_intake.canonicalizer import Canonicalizer
from erc_intake.config import ErcIntakeConfig, reset_config, set_config
from erc_intake.models import CanonicalRecord
from erc_intake.setup import reset_service


# =============================================================================
# Workbook builders
# =============================================================================


def workbook_bytes(wb: openpyxl.Workbook) -> bytes:
    """Serialise an openpyxl workbook to .xlsx bytes."""
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def build_strict_workbook(
    company_name: str = "Sample Company",
    ein: str = "12-3456789",
    overrides: Optional[Dict[str, Any]] = None,
    include_auxiliary: bool = True,
) -> bytes:
    """Build a workbook laid out exactly like the questionnaire template.

    Args:
        company_name: Value for Data Dump!B26.
        ein: Value for Data Dump!B25.
        overrides: Extra ``{address: value}`` cells on the primary sheet.
        include_auxiliary: Whether to add the Data Dump and 941 form tabs.
    """
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Understandable Data-final"

    ws["A2"] = "Prepared by client"
    ws["A8"] = "Qualifying questions"
    for col, label in zip("BCDEFGH", ("Q1 2020", "Q2 2020", "Q3 2020", "Q4 2020",
                                      "Q1 2021", "Q2 2021", "Q3 2021")):
        ws[f"{col}8"] = label
    ws["A9"] = "Partial or full government shutdown"
    ws["A10"] = "Inability to meet face to face"
    ws["A11"] = "Supply chain disruptions"
    ws["A12"] = "Vendor disruptions"
    ws["A13"] = "Recovery Startup business"
    for row in range(9, 14):
        for col in "BCDEFGH":
            ws[f"{col}{row}"] = "No"
    ws["C9"] = "Yes"       # shutdown 2020 Q2
    ws["D11"] = True       # supply 2020 Q3
    ws["F12"] = "y"        # vendor 2021 Q1

    ws["B15"] = "yes"
    ws["B16"] = "no"
    ws["B17"] = False

    for row in range(21, 32):
        ws[f"B{row}"] = "no"
    ws["B21"] = True       # full_shutdowns
    ws["B24"] = "Y"        # supply_chain_interruptions
    ws["B32"] = "Closed the lobby"

    receipts = {
        38: (100000, 120000, 110000, 130000),
        44: (90000, 50000, 60000, 70000),
        49: (80000, 85000, 90000, 95000),
    }
    for row, values in receipts.items():
        for col, value in zip("BCDE", values):
            ws[f"{col}{row}"] = value
        ws[f"F{row}"] = sum(values)
    ws["F39"] = 10
    ws["F45"] = 8
    ws["F50"] = 9

    ws["B54"] = "$150,000.00"
    ws["B58"] = 0
    ws["A64"] = "Jane Owner"
    ws["B64"] = 1

    for address, value in (overrides or {}).items():
        ws[address] = value

    if include_auxiliary:
        dump = wb.create_sheet("Data Dump")
        dump["B25"] = ein
        dump["B26"] = company_name
        dump["B27"] = "Sample Co"
        dump["B28"] = "100 Main St"
        dump["B29"] = "Springfield"
        dump["C29"] = "IL"
        dump["D29"] = 62701

        form = wb.create_sheet("941 form")
        for col in "DEFGHIJK":
            form[f"{col}11"] = 10
        for col in "DEFGHIJ":
            form[f"{col}12"] = 50000

    return workbook_bytes(wb)


def build_heuristic_workbook() -> bytes:
    """Build a workbook whose primary tab is renamed and rows have drifted."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Client Answers"

    ws["A2"] = "Drifted layout"
    ws["D4"] = "Number of full-time W-2 employees"
    ws["D5"] = 12
    ws["E5"] = 15

    ws["A8"] = "Qualifiying questions"
    ws["A9"] = "Partial or full government shutdown"
    ws["C9"] = "yes"
    ws["A11"] = "Supply chain disruptions"
    ws["F11"] = 1

    ws["B20"] = "2019"
    ws["B21"] = "Quarter 1"
    ws["A22"] = "Business Gross Sales"
    ws["B22"] = 50000

    ws["A40"] = "Ownership Structure"
    ws["A42"] = "Jane Doe"
    ws["B42"] = "60%"
    ws["A43"] = "John Doe"
    ws["B43"] = 0.4

    dump = wb.create_sheet("Data Dump")
    dump["B25"] = "98-7654321"
    dump["B26"] = "Drift Holdings Inc"
    dump["B28"] = "1 Side Rd"
    dump["B29"] = "Austin"
    dump["C29"] = "TX"
    dump["D29"] = "73301"
    return workbook_bytes(wb)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_config():
    """Install a fast, deterministic config for every test."""
    config = ErcIntakeConfig(batch_inter_job_delay_ms=0, fetch_timeout_seconds=5.0)
    set_config(config)
    yield config
    reset_service()
    reset_config()


@pytest.fixture
def strict_workbook() -> bytes:
    return build_strict_workbook()


@pytest.fixture
def heuristic_workbook() -> bytes:
    return build_heuristic_workbook()


@pytest.fixture
def sample_values() -> Dict[str, Any]:
    """Flat value map as a strict extraction would produce it."""
    return {
        "company_ein": "12-3456789",
        "company_name": "Sample Company",
        "trade_name": "Sample Co",
        "address_line1": "100 Main St",
        "address_city": "Springfield",
        "address_state": "IL",
        "address_zip": "62701",
        "contact_first_name": "Pat",
        "contact_last_name": "Jones",
        "email": "pat@sample.com",
        "main_phone": "5551234567",
        "shutdown_q2_2020": True,
        "supply_q3_2020": True,
        "reduction_50_2020": True,
        "full_shutdowns": True,
        "supply_chain_interruptions": True,
        "gross_receipts_2019_q1": 100000,
        "gross_receipts_2019_q2": 120000,
        "gross_receipts_2020_q2": 50000,
        "full_time_w2_count_2019": 10,
        "full_time_w2_count_2020": 8,
        "full_time_w2_count_2021": 9,
        "ppp1_forgiveness_amount": 150000,
        "owner_name": "Jane Owner",
        "owner_percentage": 100,
        "form941_2020_q2_retention_wages": 25000,
        "form941_2020_q3_retention_wages": 0,
        "form941_2020_q2_employees": 10,
    }


@pytest.fixture
def sample_record(sample_values) -> CanonicalRecord:
    return Canonicalizer().canonicalize(sample_values)


@pytest.fixture
def make_strict_workbook():
    """Factory for strict-layout workbooks with custom cells."""
    return build_strict_workbook
