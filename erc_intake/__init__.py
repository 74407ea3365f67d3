# -*- coding: utf-8 -*-
"""
ERC Intake: Employee Retention Credit workbook intake pipeline
================================================================

This package reads client ERC intake workbooks and turns them into the
files the downstream filing systems ingest. It supports:

- Strict cell-address extraction with a label-anchored heuristic fallback
- A total canonical record (every year and quarter present, zero-filled)
- 52-field bulk-upload CSV and 51-field tab-delimited portal exports
- Hybrid batch CSV with per-row override metadata and custom columns
- Batch input files (CSV/Excel, standard or agreement-sheet layout)
- Sequential asyncio batch runs with progress events and cancellation
- Prometheus metrics for observability
- Thread-safe configuration with ERC_INTAKE_ env prefix

Key Components:
    - config: ErcIntakeConfig with ERC_INTAKE_ env prefix
    - models: Pydantic v2 models for all data structures
    - cell_map: workbook cell map (sheets, sections, addresses)
    - workbook: openpyxl/xlrd workbook loading
    - strict_extractor / heuristic_extractor: extraction strategies
    - canonicalizer: canonical record builder
    - bulk_upload_fields / portal_fields: export field tables
    - hybrid_mapper / exporters: export rendering
    - batch_input_parser / custom_columns: batch input parsing
    - session_store / batch_orchestrator: batch execution
    - metrics: Prometheus metrics
    - setup: ErcIntakeService facade

Example:
    >>> from erc_intake import ErcIntakeService
    >>> service = ErcIntakeService()
    >>> outcome = service.process_workbook(content, "client.xlsx")
    >>> service.export_portal(outcome.record).success
    True
"""

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
from erc_intake.config import (
    ErcIntakeConfig,
    get_config,
    set_config,
    reset_config,
)

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------
from erc_intake.exceptions import (
    ErcIntakeException,
    ExtractionError,
    WorkbookLoadError,
    SourceError,
    SourceNotFoundError,
    SourceAccessDeniedError,
    SourceTimeoutError,
    ExportValidationError,
    BatchInputError,
    BatchError,
    SessionNotFoundError,
    BatchAlreadyRunningError,
)

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------
from erc_intake.models import (
    # Enumerations
    CellType,
    MappingType,
    ExtractionStrategy,
    ValidationStatus,
    OutputDataType,
    ExportFormat,
    JobStatus,
    SessionStatus,
    # Extraction
    CellMapping,
    ExtractedValues,
    # Canonical record
    CanonicalRecord,
    ClaimMetrics,
    # Exports
    ExportResult,
    # Batch
    BatchInputRow,
    BatchInputParseResult,
    BatchJob,
    BatchSession,
    BatchProgress,
    BatchReport,
    BatchResult,
)

# ---------------------------------------------------------------------------
# Engines
# ---------------------------------------------------------------------------
from erc_intake.workbook import WorkbookHandle, load_workbook
from erc_intake.sources import (
    WorkbookSource,
    LocalWorkbookSource,
    InMemoryWorkbookSource,
)
from erc_intake.extraction import BaseExtractor, ExtractionEngine, extract_workbook
from erc_intake.strict_extractor import StrictExtractor
from erc_intake.heuristic_extractor import HeuristicExtractor
from erc_intake.canonicalizer import (
    Canonicalizer,
    canonicalize,
    create_empty_record,
    compute_claim_metrics,
)
from erc_intake.bulk_upload_fields import OutputFieldSpec, BULK_UPLOAD_FIELDS
from erc_intake.portal_fields import PORTAL_FIELDS, validate_portal_values
from erc_intake.hybrid_mapper import HybridMapper, build_hybrid_row
from erc_intake.exporters import (
    Exporter,
    export_bulk_upload,
    export_portal,
    export_hybrid,
    export_hybrid_rows,
)
from erc_intake.batch_input_parser import (
    BatchInputParser,
    parse_batch_input,
    generate_sample_template,
)
from erc_intake.custom_columns import generate_custom_template
from erc_intake.session_store import SessionStore
from erc_intake.batch_orchestrator import BatchOrchestrator

# ---------------------------------------------------------------------------
# Service facade
# ---------------------------------------------------------------------------
from erc_intake.setup import ErcIntakeService, get_service, reset_service

__all__ = [
    "__version__",
    # Configuration
    "ErcIntakeConfig",
    "get_config",
    "set_config",
    "reset_config",
    # Exceptions
    "ErcIntakeException",
    "ExtractionError",
    "WorkbookLoadError",
    "SourceError",
    "SourceNotFoundError",
    "SourceAccessDeniedError",
    "SourceTimeoutError",
    "ExportValidationError",
    "BatchInputError",
    "BatchError",
    "SessionNotFoundError",
    "BatchAlreadyRunningError",
    # Models
    "CellType",
    "MappingType",
    "ExtractionStrategy",
    "ValidationStatus",
    "OutputDataType",
    "ExportFormat",
    "JobStatus",
    "SessionStatus",
    "CellMapping",
    "ExtractedValues",
    "CanonicalRecord",
    "ClaimMetrics",
    "ExportResult",
    "BatchInputRow",
    "BatchInputParseResult",
    "BatchJob",
    "BatchSession",
    "BatchProgress",
    "BatchReport",
    "BatchResult",
    # Engines
    "WorkbookHandle",
    "load_workbook",
    "WorkbookSource",
    "LocalWorkbookSource",
    "InMemoryWorkbookSource",
    "BaseExtractor",
    "ExtractionEngine",
    "extract_workbook",
    "StrictExtractor",
    "HeuristicExtractor",
    "Canonicalizer",
    "canonicalize",
    "create_empty_record",
    "compute_claim_metrics",
    "OutputFieldSpec",
    "BULK_UPLOAD_FIELDS",
    "PORTAL_FIELDS",
    "validate_portal_values",
    "HybridMapper",
    "build_hybrid_row",
    "Exporter",
    "export_bulk_upload",
    "export_portal",
    "export_hybrid",
    "export_hybrid_rows",
    "BatchInputParser",
    "parse_batch_input",
    "generate_sample_template",
    "generate_custom_template",
    "SessionStore",
    "BatchOrchestrator",
    # Facade
    "ErcIntakeService",
    "get_service",
    "reset_service",
]
