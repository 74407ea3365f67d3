# -*- coding: utf-8 -*-
"""
Cell Map - ERC questionnaire workbook layout

Declarative source table binding (sheet, cell) pairs of the ERC eligibility
questionnaire workbook to semantic field names and expected primitive types.
Mappings are grouped into named sections and declared once at import time.

Only DATA_VALUE mappings are read by the strict extractor. TEMPLATE_LABEL and
HEADER mappings document the template layout and give the heuristic locator
the label text it anchors on.

Example:
    >>> from erc_intake.cell_map import get_mapping_by_field_name
    >>> m = get_mapping_by_field_name("company_ein")
    >>> print(m.sheet_name, m.cell_address)
    Data Dump B25

Author: ERC Intake Team
Status: Production Ready
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from erc_intake.models import (
    CellMapping,
    CellMapSection,
    CellType,
    MappingType,
)

# ---------------------------------------------------------------------------
# Sheet names
# ---------------------------------------------------------------------------

PRIMARY_SHEET = "Understandable Data-final"
DATA_DUMP_SHEET = "Data Dump"
FORM941_SHEET = "941 form"

#: Columns B-H of the questionnaire grid, in quarter order.
QUARTER_COLUMNS: Tuple[Tuple[str, str, int], ...] = (
    ("B", "q1", 2020),
    ("C", "q2", 2020),
    ("D", "q3", 2020),
    ("E", "q4", 2020),
    ("F", "q1", 2021),
    ("G", "q2", 2021),
    ("H", "q3", 2021),
)

#: Questionnaire rows: (row, field prefix, label field, description).
QUALIFYING_ROWS: Tuple[Tuple[int, str, str, str], ...] = (
    (9, "shutdown", "government_shutdown_question",
     "Partial or full government shutdown"),
    (10, "meetings", "inability_to_meet_question",
     "Inability to conduct meetings face to face"),
    (11, "supply", "supply_chain_disruption_question",
     "Supply chain disruptions"),
    (12, "vendor", "vendor_disruption_question",
     "Vendor or supplier disruptions"),
    (13, "recovery", "recovery_startup_question",
     "Recovery startup business"),
)

#: Shutdown-standard rows 21-31 on the primary sheet.
SHUTDOWN_STANDARD_FIELDS: Tuple[str, ...] = (
    "full_shutdowns",
    "partial_shutdowns",
    "interrupted_operations",
    "supply_chain_interruptions",
    "inability_access_equipment",
    "limited_capacity",
    "inability_work_vendors",
    "reduction_services",
    "cut_down_hours",
    "shifting_hours_sanitation",
    "challenges_finding_employees",
)

#: Gross receipts rows and W-2 count cells per year.
SALES_ROWS: Tuple[Tuple[int, int, str], ...] = (
    (2019, 38, "F39"),
    (2020, 44, "F45"),
    (2021, 49, "F50"),
)

_FORM941_COLUMNS = ("D", "E", "F", "G", "H", "I", "J", "K")


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def _data(
    cell: str,
    field: str,
    cell_type: CellType = CellType.TEXT,
    sheet: str = PRIMARY_SHEET,
    description: str = "",
) -> CellMapping:
    return CellMapping(
        sheet_name=sheet,
        cell_address=cell,
        field_name=field,
        expected_type=cell_type,
        mapping_type=MappingType.DATA_VALUE,
        description=description,
    )


def _label(
    cell: str,
    field: str,
    sheet: str = PRIMARY_SHEET,
    mapping_type: MappingType = MappingType.TEMPLATE_LABEL,
    description: str = "",
) -> CellMapping:
    return CellMapping(
        sheet_name=sheet,
        cell_address=cell,
        field_name=field,
        expected_type=CellType.TEXT,
        mapping_type=mapping_type,
        description=description,
    )


def _qualifying_mappings() -> List[CellMapping]:
    mappings = [
        _label("A8", "qualifying_questions_header"),
    ]
    for col, quarter, year in QUARTER_COLUMNS:
        mappings.append(
            _label(f"{col}8", f"{quarter}_{year}", mapping_type=MappingType.HEADER)
        )
    for row, prefix, label_field, description in QUALIFYING_ROWS:
        mappings.append(_label(f"A{row}", label_field, description=description))
        for col, quarter, year in QUARTER_COLUMNS:
            mappings.append(
                _data(
                    f"{col}{row}",
                    f"{prefix}_{quarter}_{year}",
                    CellType.BOOLEAN,
                    description=f"{description} ({quarter.upper()} {year})",
                )
            )
    return mappings


def _shutdown_standard_mappings() -> List[CellMapping]:
    mappings = [
        _label("A20", "shutdown_standards_question"),
        _label("B20", "shutdown_standards_answer_header",
               mapping_type=MappingType.HEADER),
    ]
    for offset, field in enumerate(SHUTDOWN_STANDARD_FIELDS):
        row = 21 + offset
        mappings.append(_label(f"A{row}", f"{field}_label"))
        mappings.append(_data(f"B{row}", field, CellType.BOOLEAN))
    mappings.append(_label("A32", "shutdown_other_label"))
    mappings.append(_data("B32", "shutdown_other_comments"))
    return mappings


def _sales_mappings() -> List[CellMapping]:
    mappings: List[CellMapping] = []
    for year, row, w2_cell in SALES_ROWS:
        for col, quarter in zip("BCDE", ("q1", "q2", "q3", "q4")):
            mappings.append(
                _data(
                    f"{col}{row}",
                    f"gross_receipts_{year}_{quarter}",
                    CellType.NUMBER,
                    description=f"{year} {quarter.upper()} Business Gross Sales",
                )
            )
        mappings.append(
            _data(
                f"F{row}",
                f"gross_receipts_{year}_total",
                CellType.NUMBER,
                description=f"{year} Total Business Gross Sales",
            )
        )
        mappings.append(
            _data(
                w2_cell,
                f"full_time_w2_count_{year}",
                CellType.NUMBER,
                description=f"{year} Full-time W-2 employees",
            )
        )
    return mappings


def _form941_mappings() -> List[CellMapping]:
    quarters = [(q, y) for y in (2020, 2021) for q in ("q1", "q2", "q3", "q4")]
    mappings: List[CellMapping] = []
    for col, (quarter, year) in zip(_FORM941_COLUMNS, quarters):
        mappings.append(
            _data(
                f"{col}11",
                f"employee_count_{quarter}_{year}",
                CellType.NUMBER,
                sheet=FORM941_SHEET,
                description=f"{quarter.upper()} {year} Employee Count",
            )
        )
    # 2021 Q4 taxable wages are not part of the form
    for col, (quarter, year) in zip(_FORM941_COLUMNS[:7], quarters[:7]):
        mappings.append(
            _data(
                f"{col}12",
                f"taxable_ss_wages_{quarter}_{year}",
                CellType.NUMBER,
                sheet=FORM941_SHEET,
                description=f"{quarter.upper()} {year} Taxable Social Security Wages",
            )
        )
    mappings.extend([
        _label("A13", "nonrefundable_retention_credit_label", sheet=FORM941_SHEET),
        _label("A14", "refundable_retention_credit_label", sheet=FORM941_SHEET),
        _label("A15", "qualified_wages_label", sheet=FORM941_SHEET),
    ])
    return mappings


# ---------------------------------------------------------------------------
# Source table
# ---------------------------------------------------------------------------

SECTIONS: Tuple[CellMapSection, ...] = (
    CellMapSection(
        name="filer_remarks",
        description="Company remarks and notes",
        mappings=(_data("A2", "filer_remarks", description="Company remarks"),),
    ),
    CellMapSection(
        name="company_basic_info",
        description="Identity and address from the Data Dump tab",
        mappings=(
            _data("B25", "company_ein", sheet=DATA_DUMP_SHEET,
                  description="Employer Identification Number"),
            _data("B26", "company_name", sheet=DATA_DUMP_SHEET,
                  description="Company legal name"),
            _data("B27", "trade_name", sheet=DATA_DUMP_SHEET,
                  description="Company trade name"),
            _data("B28", "address_line1", sheet=DATA_DUMP_SHEET,
                  description="Company address line 1"),
            _data("B29", "address_city", sheet=DATA_DUMP_SHEET,
                  description="Company city"),
            _data("C29", "address_state", sheet=DATA_DUMP_SHEET,
                  description="Company state"),
            _data("D29", "address_zip", sheet=DATA_DUMP_SHEET,
                  description="Company ZIP code"),
        ),
    ),
    CellMapSection(
        name="qualifying_questions",
        description="Quarterly qualifying question grid",
        mappings=tuple(_qualifying_mappings()),
    ),
    CellMapSection(
        name="revenue_reduction_questions",
        description="Yearly revenue reduction questions",
        mappings=(
            _label("A15", "reduction_50_2020_question"),
            _data("B15", "reduction_50_2020", CellType.BOOLEAN),
            _label("A16", "reduction_20_2021_question"),
            _data("B16", "reduction_20_2021", CellType.BOOLEAN),
            _label("A17", "own_other_business_question"),
            _data("B17", "own_other_business", CellType.BOOLEAN),
        ),
    ),
    CellMapSection(
        name="shutdown_standards",
        description="Operational shutdown standards",
        mappings=tuple(_shutdown_standard_mappings()),
    ),
    CellMapSection(
        name="sales_and_employee_data",
        description="Quarterly gross receipts and full-time W-2 counts",
        mappings=tuple(_sales_mappings()),
    ),
    CellMapSection(
        name="ppp_information",
        description="Paycheck Protection Program forgiveness",
        mappings=(
            _label("A53", "ppp1_obtained_label"),
            _label("A54", "ppp1_forgiveness_label"),
            _data("B54", "ppp1_forgiveness_amount", CellType.NUMBER,
                  description="PPP 1 forgiveness amount"),
            _label("A57", "ppp2_obtained_label"),
            _label("A58", "ppp2_forgiveness_label"),
            _data("B58", "ppp2_forgiveness_amount", CellType.NUMBER,
                  description="PPP 2 forgiveness amount"),
            _label("D56", "ppp_loan_date_label"),
            _label("D58", "naics_code_label"),
        ),
    ),
    CellMapSection(
        name="ownership_structure",
        description="Primary owner",
        mappings=(
            _label("A63", "owner_name_header", mapping_type=MappingType.HEADER),
            _label("B63", "owner_percentage_header", mapping_type=MappingType.HEADER),
            _data("A64", "owner_name", description="Owner name"),
            _data("B64", "owner_percentage", CellType.PERCENTAGE,
                  description="Ownership percentage"),
        ),
    ),
    CellMapSection(
        name="form941_quarterly_data",
        description="Quarterly employee counts and taxable wages from the 941 tab",
        mappings=tuple(_form941_mappings()),
    ),
)

_SECTIONS_BY_NAME: Dict[str, CellMapSection] = {s.name: s for s in SECTIONS}

_MAPPINGS_BY_FIELD: Dict[str, CellMapping] = {}
for _section in SECTIONS:
    for _mapping in _section.mappings:
        _MAPPINGS_BY_FIELD.setdefault(_mapping.field_name, _mapping)


# ---------------------------------------------------------------------------
# Lookup helpers
# ---------------------------------------------------------------------------


def get_configured_sheet_names() -> Tuple[str, str, str]:
    """Return (primary, data dump, form 941) sheet names."""
    return (PRIMARY_SHEET, DATA_DUMP_SHEET, FORM941_SHEET)


def get_data_value_mappings(
    section_names: Optional[List[str]] = None,
) -> List[CellMapping]:
    """Return every DATA_VALUE mapping in declaration order.

    Args:
        section_names: Restrict to these sections when given.
    """
    result: List[CellMapping] = []
    for section in SECTIONS:
        if section_names is not None and section.name not in section_names:
            continue
        result.extend(
            m for m in section.mappings
            if m.mapping_type == MappingType.DATA_VALUE
        )
    return result


def get_mappings_by_section(name: str) -> List[CellMapping]:
    """Return the mappings of a section, or an empty list if unknown."""
    section = _SECTIONS_BY_NAME.get(name)
    return list(section.mappings) if section else []


def get_mapping_by_field_name(name: str) -> Optional[CellMapping]:
    """Return the mapping bound to a field name, if any."""
    return _MAPPINGS_BY_FIELD.get(name)


def get_section_names() -> List[str]:
    return [s.name for s in SECTIONS]


__all__ = [
    "PRIMARY_SHEET",
    "DATA_DUMP_SHEET",
    "FORM941_SHEET",
    "QUARTER_COLUMNS",
    "QUALIFYING_ROWS",
    "SHUTDOWN_STANDARD_FIELDS",
    "SALES_ROWS",
    "SECTIONS",
    "get_configured_sheet_names",
    "get_data_value_mappings",
    "get_mappings_by_section",
    "get_mapping_by_field_name",
    "get_section_names",
]
