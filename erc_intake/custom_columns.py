# -*- coding: utf-8 -*-
"""
Custom Column Format - ERC Intake

Some batch input files arrive as an "agreement sheet" export rather than the
standard ``google_sheets_url`` + bulk-field layout. Those files carry
headers such as ``Customer Name/Business Name`` and ``2Q20 Amount`` and
keep the workbook reference in ``Proper Format Module``. This module
detects that layout and maps each row onto the internal override keys used
by the hybrid mapper.

Example:
    >>> from erc_intake.custom_columns import is_custom_format, map_to_internal_format
    >>> is_custom_format(["Customer EIN/TIN", "2Q20 Amount"])
    True
    >>> map_to_internal_format({"2Q20 Amount": "$49,882.53"})["2Q20 Qualification"]
    'Yes'

Author: ERC Intake Team
Status: Production Ready
"""

from __future__ import annotations

import csv
import io
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, Mapping, Tuple

from erc_intake.derivations import format_phone, short_quarter_label
from erc_intake.hybrid_mapper import HYBRID_QUARTERS, WAGE_COLUMNS

logger = logging.getLogger(__name__)

#: Column that carries the workbook reference in custom-format files.
SOURCE_COLUMN = "Proper Format Module"

#: Headers of the agreement-sheet export, in file order (duplicates included).
CUSTOM_HEADERS: Tuple[str, ...] = (
    "Customer Name/Business Name",
    "Filename",
    "File Path",
    "Processing Time",
    "Status",
    "Customer Name/Business Name",
    "Customer EIN/TIN",
    "Customer Address (Full)",
    "Customer Contact Name",
    "Customer Phone",
    "Customer Email",
    "Agreement Date",
    "Effective Date",
    "Termination Date",
    "Service Description",
    "Payment Percentage",
    "Payment Timeline",
    "Agreement Type",
    "Document Description",
    "Signatory Name (Customer)",
    "Signatory Title (Customer)",
    "Additional Notes",
    "941x Link",
    "Proper Format Module",
    "File Invite Link",
    "941x 2020 Q2",
    "941x 2020 Q3",
    "941x 2020 Q4",
    "941x 2021 Q1",
    "941x 2021 Q2",
    "941x 2021 Q3",
    "941x",
    "941x",
    "Claim Total",
    "2Q20 Qualification",
    "2Q20 Amount",
    "3Q20 Qualification",
    "3Q20 Amount",
    "4Q20 Qualification",
    "4Q20 Amount",
    "1Q21 Qualification",
    "1Q21 Amount",
    "2Q21 Qualification",
    "2Q21 Amount",
    "3Q21 Qualification",
    "3Q21 Amount",
    "4Q21 Qualification",
    "4Q21 Amount",
    "Refunded by IRS",
    "Disallowed by IRS",
    "EIN",
    "19Q1",
    "19Q2",
    "19Q3",
    "19Q4",
    "20Q1",
    "20Q2",
    "20Q3",
    "20Q4",
    "21Q1",
    "21Q2",
    "21Q3",
    "21Q4",
    "Link",
    "Link",
    "Address",
    "City, State, Zip",
    "file date",
    "Contact Phone number",
)

CUSTOM_INDICATORS: Tuple[str, ...] = (
    "Customer Name/Business Name",
    "Customer EIN/TIN",
    "Customer Address (Full)",
    "2Q20 Amount",
    "941x Link",
)

_EXCEL_EPOCH = datetime(1899, 12, 30)
_ZIP = re.compile(r"^\d{5}(-\d{4})?$")
_STATE = re.compile(r"^[A-Za-z]{2}$")
_DOLLAR_JUNK = re.compile(r"[$,\s]")


def _present(value: Any) -> bool:
    return value is not None and str(value).strip() != ""


# ---------------------------------------------------------------------------
# Value parsers
# ---------------------------------------------------------------------------


def parse_dollar_amount(value: Any) -> float:
    """Parse ``"$49,882.53"``-style amounts; anything unparseable is 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = _DOLLAR_JUNK.sub("", str(value))
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def parse_excel_date(value: Any) -> str:
    """Render an Excel serial date as ``mm/dd/yyyy``.

    Strings that already look like dates (contain ``/`` or ``-``) and
    non-numeric strings are returned unchanged.
    """
    if not _present(value):
        return ""
    if isinstance(value, datetime):
        return value.strftime("%m/%d/%Y")
    if isinstance(value, str):
        text = value.strip()
        if "/" in text or "-" in text:
            return text
        try:
            serial = float(text)
        except ValueError:
            return text
    else:
        serial = float(value)
    return (_EXCEL_EPOCH + timedelta(days=serial)).strftime("%m/%d/%Y")


def parse_contact_name(full_name: Any) -> Tuple[str, str]:
    """Split a contact name into (first, last); the first word is the first name."""
    parts = str(full_name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def _join_city_state_zip(city: str, state: str, zip_code: str) -> str:
    separator = ", " if state and zip_code else " "
    return separator.join(p for p in (city, state, zip_code) if p).strip()


def parse_full_address(full_address: Any) -> Dict[str, str]:
    """Split a one-line address into street, city, state and zip.

    Handles ``"507 Watercrest Circle, Elizabeth City NC 27909"`` (street
    before the first comma) and, less reliably, comma-free addresses that
    end in a zip code. Unparseable input is returned whole as the street.

    Returns:
        Dict with ``street``, ``city``, ``state``, ``zip`` and
        ``city_state_zip`` keys.
    """
    empty = {"street": "", "city": "", "state": "", "zip": "", "city_state_zip": ""}
    address = str(full_address or "").strip()
    if not address:
        return empty

    parts = [p.strip() for p in address.split(",")]
    if len(parts) >= 2:
        street = parts[0]
        remainder = ", ".join(parts[1:]).strip()
        words = remainder.replace(",", " ").split()
        city = state = zip_code = ""
        if len(words) >= 3:
            if _ZIP.match(words[-1]):
                zip_code = words[-1]
                if _STATE.match(words[-2]):
                    state = words[-2].upper()
                    city = " ".join(words[:-2])
                else:
                    city = " ".join(words[:-1])
            elif _STATE.match(words[-1]):
                state = words[-1].upper()
                city = " ".join(words[:-1])
            else:
                city = remainder
        elif len(words) == 2 and _STATE.match(words[1]):
            city, state = words[0], words[1].upper()
        else:
            city = remainder
        combined = _join_city_state_zip(city, state, zip_code)
        return {
            "street": street,
            "city": city,
            "state": state,
            "zip": zip_code,
            "city_state_zip": combined or remainder,
        }

    words = address.split()
    zip_index = -1
    for i in range(len(words) - 1, -1, -1):
        if _ZIP.match(words[i]):
            zip_index = i
            break
    if zip_index > 0:
        zip_code = words[zip_index]
        state = ""
        state_index = zip_index
        if _STATE.match(words[zip_index - 1]):
            state = words[zip_index - 1].upper()
            state_index = zip_index - 1
        street = " ".join(words[: max(1, state_index - 1)])
        city = words[state_index - 1] if state_index > 1 else ""
        return {
            "street": street,
            "city": city,
            "state": state,
            "zip": zip_code,
            "city_state_zip": _join_city_state_zip(city, state, zip_code),
        }

    empty["street"] = address
    return empty


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def is_custom_format(headers) -> bool:
    """True when any distinctive agreement-sheet header is present."""
    stripped = {str(h).strip() for h in headers}
    return any(indicator in stripped for indicator in CUSTOM_INDICATORS)


def map_to_internal_format(row: Mapping[str, Any]) -> Dict[str, Any]:
    """Translate one custom-format row into override metadata.

    Derived keys are written first; every other non-empty column is then
    carried through under its original header unless already set.
    """
    mapped: Dict[str, Any] = {}

    if _present(row.get("Customer Name/Business Name")):
        mapped["business_legal_name"] = row["Customer Name/Business Name"]
    if _present(row.get("Customer EIN/TIN")):
        mapped["ein"] = row["Customer EIN/TIN"]
    elif _present(row.get("EIN")):
        mapped["ein"] = row["EIN"]

    if _present(row.get("Customer Address (Full)")):
        parts = parse_full_address(row["Customer Address (Full)"])
        mapped["business_address"] = parts["street"]
        mapped["business_city"] = parts["city"]
        mapped["business_state"] = parts["state"]
        mapped["business_zip"] = parts["zip"]
        mapped["Address"] = parts["street"]
        mapped["City, State, Zip"] = parts["city_state_zip"]

    if _present(row.get("Customer Contact Name")):
        first, last = parse_contact_name(row["Customer Contact Name"])
        mapped["contact_first_name"] = first
        mapped["contact_last_name"] = last

    # Contact Phone number wins over Customer Phone
    for column in ("Customer Phone", "Contact Phone number"):
        if _present(row.get(column)):
            mapped["main_phone"] = format_phone(str(row[column]).strip())

    if _present(row.get("Customer Email")):
        mapped["email"] = row["Customer Email"]
    for column, key in (
        ("Agreement Date", "agreement_date"),
        ("Effective Date", "effective_date"),
        ("Termination Date", "termination_date"),
    ):
        if _present(row.get(column)):
            mapped[key] = parse_excel_date(row[column])
    if _present(row.get("Signatory Title (Customer)")):
        mapped["job_title"] = row["Signatory Title (Customer)"]
    if _present(row.get("Additional Notes")):
        mapped["notes"] = row["Additional Notes"]

    for year, quarter in HYBRID_QUARTERS:
        label = short_quarter_label(year, quarter)
        raw_amount = row.get(f"{label} Amount")
        if not _present(raw_amount):
            continue
        amount = parse_dollar_amount(raw_amount)
        mapped[f"{label} Amount"] = amount
        mapped[f"{label} Qualification"] = "Yes" if amount > 0 else "No"
        reason = row.get(f"{label} Qualification")
        if amount > 0 and _present(reason):
            mapped[f"{label}_qualification_reason"] = reason

    for column in ("Claim Total", "Refunded by IRS", "Disallowed by IRS"):
        if _present(row.get(column)):
            mapped[column] = parse_dollar_amount(row[column])
    for year, quarter in WAGE_COLUMNS:
        column = f"{str(year)[2:]}{quarter}"
        if _present(row.get(column)):
            mapped[column] = parse_dollar_amount(row[column])

    if _present(row.get("941x Link")):
        mapped["form941x_files"] = row["941x Link"]
    if _present(row.get("Service Description")):
        mapped["original_preparer"] = row["Service Description"]
    if _present(row.get("file date")):
        mapped["file date"] = parse_excel_date(row["file date"])
        mapped["filed_date"] = mapped["file date"]

    # Explicit columns override the parsed address parts
    for column in ("Address", "City, State, Zip"):
        if _present(row.get(column)):
            mapped[column] = row[column]

    for key, value in row.items():
        if key == SOURCE_COLUMN or key in mapped:
            continue
        if _present(value):
            mapped[key] = value
    return mapped


# ---------------------------------------------------------------------------
# Template
# ---------------------------------------------------------------------------


def _sample_row() -> Dict[str, str]:
    sample = {
        "Customer Name/Business Name": "It's In The Box Logistics Inc",
        "Status": "success",
        "Customer EIN/TIN": "27-3760432",
        "Customer Address (Full)": "507 Watercrest Circle, Elizabeth City NC 27909",
        "Customer Contact Name": "Wilburt Dudley",
        "Customer Phone": "555-0100",
        "Customer Email": "dudley882@gmail.com",
        "Agreement Date": "07/03/2025",
        "Effective Date": "07/03/2025",
        "Service Description": "Consulting services related to tax credit benefits",
        "Payment Timeline": "upon receipt of Tax Benefit",
        "Agreement Type": "Consulting Fee Agreement",
        "Document Description": "Consulting Fee Agreement",
        "Signatory Name (Customer)": "Wilburt Dudley",
        "Signatory Title (Customer)": "Owner",
        "Additional Notes": "Sample data for testing",
        "941x Link": "https://drive.google.com/drive/folders/example",
        "Proper Format Module": "https://docs.google.com/spreadsheets/d/YOUR_SHEET_ID/edit",
        "Claim Total": "302633.41",
        "EIN": "27-3760432",
    }
    amounts = ("49882.53", "10824.37", "10805.61", "77040.30", "77040.30", "77040.30", "0.00")
    for (year, quarter), amount in zip(HYBRID_QUARTERS, amounts):
        label = short_quarter_label(year, quarter)
        sample[f"{label} Amount"] = amount
        if float(amount) > 0:
            sample[f"{label} Qualification"] = "Shutdown order/Supply Chain Disruption"
    return sample


def generate_custom_template() -> str:
    """CSV template for the agreement-sheet layout, with a sample row."""
    sample = _sample_row()
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    output.write("# Custom Batch Input Template - agreement sheet layout\n")
    output.write(f"# The workbook reference goes in the '{SOURCE_COLUMN}' column.\n")
    output.write("# Quarter qualifications are derived from the amounts (amount > 0 = Yes).\n")
    output.write("# Delete these comment lines and the sample data before uploading.\n")
    output.write("\n")
    writer.writerow(CUSTOM_HEADERS)
    writer.writerow([sample.get(header, "") for header in CUSTOM_HEADERS])
    return output.getvalue()


__all__ = [
    "SOURCE_COLUMN",
    "CUSTOM_HEADERS",
    "CUSTOM_INDICATORS",
    "parse_dollar_amount",
    "parse_excel_date",
    "parse_contact_name",
    "parse_full_address",
    "is_custom_format",
    "map_to_internal_format",
    "generate_custom_template",
]
