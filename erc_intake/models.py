# -*- coding: utf-8 -*-
"""
ERC Intake Data Models

Pydantic v2 data models for the ERC workbook intake pipeline: cell map
entries, extraction results, the canonical record, batch jobs and sessions,
progress events, reports, and export results.

Enumerations:
    - CellType: Expected primitive type of a mapped cell
    - MappingType: Role of a mapped cell in the template
    - ExtractionStrategy: Extractor that produced a result
    - ValidationStatus: Completeness signal on a canonical record
    - OutputDataType: Declared type of an output field
    - ExportFormat: Supported export formats
    - JobStatus: Batch job lifecycle statuses
    - SessionStatus: Batch session lifecycle statuses

Models:
    - CellMapping, CellMapSection, ExtractedValues, OwnerEntry
    - CompanyInfo, Address, QuarterAnswers, RevenueReductionAnswers,
      ShutdownStandards, Form941Quarter, LoanForgiveness, Ownership,
      RecordMetadata, CanonicalRecord, ClaimMetrics
    - ExportResult
    - BatchInputRow, BatchInputParseResult, BatchJob, BatchSession,
      BatchProgress, BatchJobResult, BatchRowError, BatchReport, BatchResult

Author: ERC Intake Team
Status: Production Ready
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    """Return current UTC datetime with microseconds zeroed."""
    return datetime.now(timezone.utc).replace(microsecond=0)


CellValue = Union[bool, int, float, str]

QUARTERS: Tuple[str, ...] = ("Q1", "Q2", "Q3", "Q4")

#: Quarters covered by the qualifying questionnaire, per year.
QUALIFYING_QUARTERS: Dict[int, Tuple[str, ...]] = {
    2020: ("Q1", "Q2", "Q3", "Q4"),
    2021: ("Q1", "Q2", "Q3"),
}

REVENUE_YEARS: Tuple[int, ...] = (2019, 2020, 2021)
FORM941_YEARS: Tuple[int, ...] = (2020, 2021)

#: Quarters eligible for a claim (2020 Q2-Q4, 2021 Q1-Q3).
CLAIM_QUARTERS: Tuple[Tuple[int, str], ...] = (
    (2020, "Q2"), (2020, "Q3"), (2020, "Q4"),
    (2021, "Q1"), (2021, "Q2"), (2021, "Q3"),
)


# =============================================================================
# Enumerations
# =============================================================================


class CellType(str, Enum):
    """Expected primitive type of a mapped source cell."""

    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    PERCENTAGE = "percentage"


class MappingType(str, Enum):
    """Role a mapped cell plays in the questionnaire template."""

    TEMPLATE_LABEL = "template_label"
    DATA_VALUE = "data_value"
    HEADER = "header"


class ExtractionStrategy(str, Enum):
    """Extractor that produced an ExtractedValues result."""

    STRICT = "strict"
    HEURISTIC = "heuristic"
    NONE = "none"


class ValidationStatus(str, Enum):
    """Completeness signal carried on a canonical record."""

    VALID = "valid"
    PARTIAL = "partial"
    INVALID = "invalid"


class OutputDataType(str, Enum):
    """Declared data type of an output field."""

    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    PERCENTAGE = "percentage"
    COMPLEX = "complex"


class ExportFormat(str, Enum):
    """Supported export formats."""

    BULK_UPLOAD = "bulk_upload"
    PORTAL = "portal"
    HYBRID = "hybrid"


class JobStatus(str, Enum):
    """Batch job lifecycle statuses."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class SessionStatus(str, Enum):
    """Batch session lifecycle statuses."""

    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# =============================================================================
# Cell map and extraction
# =============================================================================


class CellMapping(BaseModel):
    """Binding of a (sheet, cell) pair to a semantic field name."""

    sheet_name: str = Field(..., description="Worksheet tab name")
    cell_address: str = Field(..., description="A1-style cell address, e.g. B25")
    field_name: str = Field(..., description="Semantic field name")
    expected_type: CellType = Field(
        default=CellType.TEXT, description="Expected primitive type",
    )
    mapping_type: MappingType = Field(
        default=MappingType.DATA_VALUE, description="Role of the cell",
    )
    description: str = Field(default="", description="Human description")

    model_config = {"extra": "forbid", "frozen": True}

    @field_validator("cell_address")
    @classmethod
    def validate_cell_address(cls, v: str) -> str:
        """Validate cell_address is column letters followed by a row number."""
        v = v.strip().upper()
        letters = v.rstrip("0123456789")
        digits = v[len(letters):]
        if not letters or not digits or not letters.isalpha():
            raise ValueError(f"Invalid cell address: {v!r}")
        return v


class CellMapSection(BaseModel):
    """Named group of cell mappings (e.g. qualifying questions)."""

    name: str = Field(..., description="Section name")
    description: str = Field(default="", description="Section description")
    mappings: Tuple[CellMapping, ...] = Field(
        default_factory=tuple, description="Mappings in declaration order",
    )

    model_config = {"extra": "forbid", "frozen": True}


class OwnerEntry(BaseModel):
    """Owner name and percentage pair found in an ownership table."""

    name: str = Field(default="")
    percentage: float = Field(default=0.0)


class ExtractedValues(BaseModel):
    """Flat field map produced by one extraction attempt.

    Attributes:
        values: Field name to primitive value.
        warnings: Non-fatal issues (defaulted or skipped cells).
        errors: Fatal issues (missing primary sheet, unparseable values).
        success: Whether the extraction is usable.
        strategy: Extractor that produced this result.
        sheets_found: Sheet names present in the workbook.
        owners: Ownership pairs found by the heuristic table scan.
        source_hash: SHA-256 of the workbook bytes, when known.
    """

    values: Dict[str, CellValue] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    success: bool = Field(default=False)
    strategy: ExtractionStrategy = Field(default=ExtractionStrategy.NONE)
    sheets_found: List[str] = Field(default_factory=list)
    owners: List[OwnerEntry] = Field(default_factory=list)
    source_hash: str = Field(default="")

    model_config = {"extra": "forbid"}


# =============================================================================
# Canonical record
# =============================================================================


class Address(BaseModel):
    """Business mailing address."""

    line1: str = ""
    line2: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""


class CompanyInfo(BaseModel):
    """Company identity, contact details and head counts."""

    ein: str = ""
    legal_name: str = ""
    trade_name: str = ""
    address: Address = Field(default_factory=Address)
    contact_first_name: str = ""
    contact_last_name: str = ""
    contact_job_title: str = ""
    main_phone: str = ""
    email: str = ""
    industry: str = ""
    website: str = ""
    filer_remarks: str = ""
    full_time_w2_count_2019: float = 0
    full_time_w2_count_2020: float = 0
    full_time_w2_count_2021: float = 0
    full_time_employees: int = 0


class QuarterAnswers(BaseModel):
    """The eight qualifying-question triggers for one quarter."""

    government_shutdown: bool = False
    inability_to_meet: bool = False
    supply_disruptions: bool = False
    vendor_disruptions: bool = False
    revenue_reduction_10_percent: bool = False
    revenue_reduction_20_percent: bool = False
    recovery_startup_business: bool = False
    severely_distressed_employer: bool = False


class RevenueReductionAnswers(BaseModel):
    """Yearly revenue-reduction questions."""

    reduction_50_2020: bool = False
    reduction_20_2021: bool = False
    own_other_business: bool = False


class ShutdownStandards(BaseModel):
    """Operational shutdown standards reported by the filer."""

    full_shutdowns: bool = False
    partial_shutdowns: bool = False
    interrupted_operations: bool = False
    supply_chain_interruptions: bool = False
    inability_access_equipment: bool = False
    limited_capacity: bool = False
    inability_work_vendors: bool = False
    reduction_services: bool = False
    cut_down_hours: bool = False
    shifting_hours_sanitation: bool = False
    challenges_finding_employees: bool = False
    other_comments: str = ""


class Form941Quarter(BaseModel):
    """Payroll-credit breakdown for one quarter."""

    employee_count: float = 0
    total_wages: float = 0
    federal_tax_withheld: float = 0
    qualified_sick_wages: float = 0
    qualified_family_leave_wages: float = 0
    retention_credit_wages: float = 0
    qualified_health_plan_expenses: float = 0
    form5884_credit: float = 0


class LoanForgiveness(BaseModel):
    """Paycheck Protection Program forgiveness amounts."""

    ppp1_forgiveness_amount: float = 0
    ppp2_forgiveness_amount: float = 0


class Ownership(BaseModel):
    """Primary owner; percentage is on a 0-100 scale."""

    owner_name: str = ""
    owner_percentage: float = 100.0


class RecordMetadata(BaseModel):
    """Extraction metadata and completeness signal."""

    extracted_at: datetime = Field(default_factory=_utcnow)
    template_version: str = "1.0"
    validation_status: ValidationStatus = ValidationStatus.VALID
    missing_fields: List[str] = Field(default_factory=list)
    extraction_strategy: ExtractionStrategy = ExtractionStrategy.NONE


def _qualifying_grid() -> Dict[int, Dict[str, QuarterAnswers]]:
    return {
        year: {q: QuarterAnswers() for q in quarters}
        for year, quarters in QUALIFYING_QUARTERS.items()
    }


def _number_grid(years: Tuple[int, ...]) -> Dict[int, Dict[str, float]]:
    return {year: {q: 0.0 for q in QUARTERS} for year in years}


def _form941_grid() -> Dict[int, Dict[str, Form941Quarter]]:
    return {year: {q: Form941Quarter() for q in QUARTERS} for year in FORM941_YEARS}


class CanonicalRecord(BaseModel):
    """Fully typed, total representation of one questionnaire workbook.

    Every year and quarter subtree exists even when the source had no data
    for it; absent values are zero-filled.
    """

    company_info: CompanyInfo = Field(default_factory=CompanyInfo)
    qualifying_questions: Dict[int, Dict[str, QuarterAnswers]] = Field(
        default_factory=_qualifying_grid,
    )
    revenue_reduction: RevenueReductionAnswers = Field(
        default_factory=RevenueReductionAnswers,
    )
    shutdown_standards: ShutdownStandards = Field(default_factory=ShutdownStandards)
    gross_receipts: Dict[int, Dict[str, float]] = Field(
        default_factory=lambda: _number_grid(REVENUE_YEARS),
    )
    form941: Dict[int, Dict[str, Form941Quarter]] = Field(
        default_factory=_form941_grid,
    )
    quarterly_employee_counts: Dict[int, Dict[str, float]] = Field(
        default_factory=lambda: _number_grid(FORM941_YEARS),
    )
    quarterly_taxable_wages: Dict[int, Dict[str, float]] = Field(
        default_factory=lambda: _number_grid(FORM941_YEARS),
    )
    loan_forgiveness: LoanForgiveness = Field(default_factory=LoanForgiveness)
    ownership: Ownership = Field(default_factory=Ownership)
    metadata: RecordMetadata = Field(default_factory=RecordMetadata)

    model_config = {"extra": "forbid"}

    def answers(self, year: int, quarter: str) -> QuarterAnswers:
        """Return the qualifying answers for a quarter (blank if uncovered)."""
        return self.qualifying_questions.get(year, {}).get(quarter, QuarterAnswers())

    def credit_wages(self, year: int, quarter: str) -> Form941Quarter:
        """Return the Form 941 breakdown for a quarter (zeroed if uncovered)."""
        return self.form941.get(year, {}).get(quarter, Form941Quarter())


class ClaimMetrics(BaseModel):
    """Derived claim indicators computed from a canonical record."""

    gross_receipts_decline: Dict[str, float] = Field(default_factory=dict)
    total_retention_credit_wages: float = 0.0
    average_employee_count: float = 0.0
    eligible_quarters: List[str] = Field(default_factory=list)


# =============================================================================
# Export results
# =============================================================================


class ExportResult(BaseModel):
    """Outcome of rendering a canonical record in one export format.

    Attributes:
        success: Whether content was generated.
        export_format: Format rendered.
        header: Ordered field names.
        values: Ordered field values (same order as header).
        content: Rendered file text (empty when not generated).
        field_count: Number of fields in the format.
        missing_fields: Canonical fields missing at pre-validation.
        errors: Format-level validation errors.
        notes: Generator fallbacks (kept for documentation only).
    """

    success: bool = Field(default=False)
    export_format: ExportFormat = Field(default=ExportFormat.BULK_UPLOAD)
    header: List[str] = Field(default_factory=list)
    values: List[str] = Field(default_factory=list)
    content: str = Field(default="")
    field_count: int = Field(default=0, ge=0)
    missing_fields: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)

    model_config = {"extra": "forbid"}

    def to_bytes(self) -> bytes:
        """Return the rendered content encoded as UTF-8."""
        return self.content.encode("utf-8")


# =============================================================================
# Batch
# =============================================================================


class BatchInputRow(BaseModel):
    """One row of a batch input file."""

    row_index: int = Field(..., ge=1, description="1-based file row number")
    source_reference: str = Field(default="", description="Workbook reference")
    metadata: Dict[str, Any] = Field(
        default_factory=dict, description="Override metadata by column name",
    )


class BatchInputParseResult(BaseModel):
    """Outcome of parsing a batch input file."""

    success: bool = Field(default=False)
    rows: List[BatchInputRow] = Field(default_factory=list)
    error: Optional[str] = Field(default=None)
    warnings: List[str] = Field(default_factory=list)
    custom_format: bool = Field(default=False)


class BatchJob(BaseModel):
    """State of one batch row; mutated in place by the orchestrator.

    Attributes:
        job_id: Unique job identifier.
        row_index: Row number in the input file.
        source_reference: Workbook reference (may be empty).
        override_metadata: Caller-supplied override values.
        status: Lifecycle status; terminal states are never reverted.
        extracted_values: Extraction result when a workbook was read.
        canonical_record: Canonical record used for the output row.
        output_row: Hybrid output row keyed by column name.
        error: Failure message for failed jobs.
        started_at: When processing began.
        finished_at: When the job reached a terminal state.
        duration_ms: Processing time in milliseconds.
    """

    job_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    row_index: int = Field(..., ge=1)
    source_reference: str = Field(default="")
    override_metadata: Dict[str, Any] = Field(default_factory=dict)
    status: JobStatus = Field(default=JobStatus.PENDING)
    extracted_values: Optional[ExtractedValues] = Field(default=None)
    canonical_record: Optional[CanonicalRecord] = Field(default=None)
    output_row: Optional[Dict[str, str]] = Field(default=None)
    error: Optional[str] = Field(default=None)
    started_at: Optional[datetime] = Field(default=None)
    finished_at: Optional[datetime] = Field(default=None)
    duration_ms: float = Field(default=0.0, ge=0.0)

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)


class BatchSession(BaseModel):
    """Ordered set of batch jobs with aggregate counters."""

    session_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = Field(default_factory=_utcnow)
    input_file_name: Optional[str] = Field(default=None)
    jobs: List[BatchJob] = Field(default_factory=list)
    completed_jobs: int = Field(default=0, ge=0)
    failed_jobs: int = Field(default=0, ge=0)
    status: SessionStatus = Field(default=SessionStatus.IDLE)
    started_at: Optional[datetime] = Field(default=None)
    finished_at: Optional[datetime] = Field(default=None)

    @property
    def total_jobs(self) -> int:
        return len(self.jobs)


class BatchProgress(BaseModel):
    """Progress event emitted around each batch job."""

    session_id: str
    index: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
    source_reference: str = ""
    status: JobStatus
    percent_complete: int = Field(default=0, ge=0, le=100)
    message: str = ""


class BatchJobResult(BaseModel):
    """Per-job outcome included in a batch result."""

    row_index: int
    source_reference: str = ""
    success: bool = False
    error: Optional[str] = None
    output_row: Optional[Dict[str, str]] = None
    processing_time_ms: float = 0.0


class BatchRowError(BaseModel):
    """Error line in a batch report."""

    row_index: int
    source_reference: str = ""
    error: str


class BatchReport(BaseModel):
    """Summary of a batch run."""

    session_id: str
    status: SessionStatus
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    duration_ms: float = 0.0
    total_rows: int = 0
    processed_rows: int = 0
    successful_rows: int = 0
    failed_rows: int = 0
    success_rate: float = 0.0
    average_processing_time_ms: float = 0.0
    errors: List[BatchRowError] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class BatchResult(BaseModel):
    """Everything a finished (or cancelled) batch run produced."""

    session_id: str
    status: SessionStatus
    total_processed: int = 0
    success_count: int = 0
    failure_count: int = 0
    results: List[BatchJobResult] = Field(default_factory=list)
    header: List[str] = Field(default_factory=list)
    csv_content: str = ""
    report: BatchReport


__all__ = [
    "CellValue",
    "QUARTERS",
    "QUALIFYING_QUARTERS",
    "REVENUE_YEARS",
    "FORM941_YEARS",
    "CLAIM_QUARTERS",
    "CellType",
    "MappingType",
    "ExtractionStrategy",
    "ValidationStatus",
    "OutputDataType",
    "ExportFormat",
    "JobStatus",
    "SessionStatus",
    "CellMapping",
    "CellMapSection",
    "OwnerEntry",
    "ExtractedValues",
    "Address",
    "CompanyInfo",
    "QuarterAnswers",
    "RevenueReductionAnswers",
    "ShutdownStandards",
    "Form941Quarter",
    "LoanForgiveness",
    "Ownership",
    "RecordMetadata",
    "CanonicalRecord",
    "ClaimMetrics",
    "ExportResult",
    "BatchInputRow",
    "BatchInputParseResult",
    "BatchJob",
    "BatchSession",
    "BatchProgress",
    "BatchJobResult",
    "BatchRowError",
    "BatchReport",
    "BatchResult",
]
