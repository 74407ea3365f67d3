# -*- coding: utf-8 -*-
"""
ERC Intake Service Setup

Provides the ``ErcIntakeService`` facade that wires up the intake engines
(extraction, canonicalization, exporters, batch input parser, session store
and batch orchestrator) behind a single entry point, plus the thread-safe
``get_service()`` / ``reset_service()`` accessors.

Usage:
    >>> from erc_intake.setup import get_service
    >>> service = get_service()
    >>> outcome = service.process_workbook(content, "client.xlsx")
    >>> service.export_bulk_upload(outcome.record).content.splitlines()[0][:7]
    'case_id'

Author: ERC Intake Team
Status: Production Ready
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, Field

from erc_intake import metrics
from erc_intake.batch_input_parser import BatchInputParser
from erc_intake.batch_orchestrator import BatchOrchestrator, ProgressCallback
from erc_intake.canonicalizer import Canonicalizer, compute_claim_metrics
from erc_intake.config import ErcIntakeConfig, get_config
from erc_intake.exporters import Exporter
from erc_intake.extraction import ExtractionEngine
from erc_intake.models import (
    BatchInputParseResult,
    BatchInputRow,
    BatchResult,
    BatchSession,
    CanonicalRecord,
    ClaimMetrics,
    ExportResult,
    ExtractedValues,
)
from erc_intake.session_store import SessionStore
from erc_intake.sources import LocalWorkbookSource, WorkbookSource
from erc_intake.workbook import load_workbook

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Return current UTC datetime with microseconds zeroed."""
    return datetime.now(timezone.utc).replace(microsecond=0)


# ===================================================================
# Lightweight Pydantic models used by the facade
# ===================================================================


class WorkbookProcessingResult(BaseModel):
    """Outcome of extracting and canonicalizing one workbook.

    Attributes:
        success: True when extraction produced a usable record.
        file_name: Name the workbook was submitted under.
        extracted: Raw extraction result.
        record: Canonical record; None when extraction failed.
        claim_metrics: Derived claim figures for the record.
        processing_time_ms: Wall time for the whole pipeline.
    """

    success: bool = Field(default=False)
    file_name: Optional[str] = Field(default=None)
    extracted: ExtractedValues
    record: Optional[CanonicalRecord] = Field(default=None)
    claim_metrics: Optional[ClaimMetrics] = Field(default=None)
    processing_time_ms: float = Field(default=0.0, ge=0.0)


class ServiceStatistics(BaseModel):
    """Aggregated service counters."""

    workbooks_processed: int = Field(default=0)
    workbooks_failed: int = Field(default=0)
    exports_generated: int = Field(default=0)
    batch_inputs_parsed: int = Field(default=0)
    batch_sessions_created: int = Field(default=0)
    batch_runs: int = Field(default=0)


# ===================================================================
# Facade
# ===================================================================


class ErcIntakeService:
    """Unified facade over the ERC intake engines.

    Attributes:
        config: ErcIntakeConfig instance.
        extraction: Strict/heuristic extraction engine.
        canonicalizer: Canonical record builder.
        exporter: Bulk-upload, portal and hybrid renderer.
        batch_parser: Batch input file parser.
        store: Batch session registry.
        orchestrator: Batch runner.

    Example:
        >>> service = ErcIntakeService()
        >>> parsed = service.parse_batch_input(content, "batch.csv")
        >>> session = service.create_batch_session(parsed.rows, "batch.csv")
        >>> result = asyncio.run(service.run_batch(session.session_id))
    """

    def __init__(
        self,
        config: Optional[ErcIntakeConfig] = None,
        source: Optional[WorkbookSource] = None,
    ) -> None:
        self.config = config or get_config()
        self.source = source if source is not None else LocalWorkbookSource(
            self.config.source_dir, self.config.max_workbook_size_mb,
        )
        self.extraction = ExtractionEngine(self.config)
        self.canonicalizer = Canonicalizer(self.config)
        self.exporter = Exporter()
        self.batch_parser = BatchInputParser(self.config)
        self.store = SessionStore()
        self.orchestrator = BatchOrchestrator(
            store=self.store,
            source=self.source,
            config=self.config,
            extraction=self.extraction,
            canonicalizer=self.canonicalizer,
            exporter=self.exporter,
        )
        self._lock = threading.Lock()
        self._stats = ServiceStatistics()
        self._started = False
        logger.info("ErcIntakeService facade created")

    # ------------------------------------------------------------------
    # Single workbook pipeline
    # ------------------------------------------------------------------

    def extract_workbook(
        self,
        content: bytes,
        file_name: Optional[str] = None,
    ) -> ExtractedValues:
        """Load workbook bytes and extract values (strict, then heuristic).

        Raises:
            WorkbookLoadError: The bytes are not a readable workbook.
        """
        workbook = load_workbook(
            content, file_name=file_name, max_size_mb=self.config.max_workbook_size_mb,
        )
        return self.extraction.extract(workbook)

    def canonicalize(
        self,
        values: Union[ExtractedValues, Mapping[str, Any]],
    ) -> CanonicalRecord:
        return self.canonicalizer.canonicalize(values)

    def process_workbook(
        self,
        content: bytes,
        file_name: Optional[str] = None,
    ) -> WorkbookProcessingResult:
        """Extract and canonicalize a workbook in one call.

        Raises:
            WorkbookLoadError: The bytes are not a readable workbook.
        """
        start = time.monotonic()
        extracted = self.extract_workbook(content, file_name)
        outcome = WorkbookProcessingResult(
            success=extracted.success, file_name=file_name, extracted=extracted,
        )
        if extracted.success:
            record = self.canonicalizer.canonicalize(extracted)
            outcome.record = record
            outcome.claim_metrics = compute_claim_metrics(record)
        outcome.processing_time_ms = (time.monotonic() - start) * 1000

        with self._lock:
            if outcome.success:
                self._stats.workbooks_processed += 1
            else:
                self._stats.workbooks_failed += 1
        logger.info(
            "Processed workbook %s: success=%s, strategy=%s (%.1f ms)",
            file_name or "<bytes>", outcome.success, extracted.strategy.value,
            outcome.processing_time_ms,
        )
        return outcome

    # ------------------------------------------------------------------
    # Exports
    # ------------------------------------------------------------------

    def _count_export(self, result: ExportResult) -> ExportResult:
        if result.success:
            with self._lock:
                self._stats.exports_generated += 1
        return result

    def export_bulk_upload(self, record: CanonicalRecord) -> ExportResult:
        return self._count_export(self.exporter.export_bulk_upload(record))

    def export_portal(self, record: CanonicalRecord) -> ExportResult:
        return self._count_export(self.exporter.export_portal(record))

    def export_hybrid(
        self,
        record: CanonicalRecord,
        metadata: Optional[Mapping[str, Any]] = None,
        remove_links: Optional[bool] = None,
    ) -> ExportResult:
        if remove_links is None:
            remove_links = self.config.remove_links_default
        return self._count_export(self.exporter.export_hybrid(record, metadata, remove_links))

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def parse_batch_input(self, content: bytes, file_name: str) -> BatchInputParseResult:
        result = self.batch_parser.parse(content, file_name)
        if result.success:
            with self._lock:
                self._stats.batch_inputs_parsed += 1
        return result

    def create_batch_session(
        self,
        rows: Sequence[BatchInputRow],
        input_file_name: Optional[str] = None,
    ) -> BatchSession:
        session = self.store.create(rows, input_file_name)
        with self._lock:
            self._stats.batch_sessions_created += 1
        return session

    async def run_batch(
        self,
        session_id: str,
        remove_links: Optional[bool] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BatchResult:
        """Run a batch session; see ``BatchOrchestrator.run``."""
        result = await self.orchestrator.run(session_id, remove_links, on_progress)
        with self._lock:
            self._stats.batch_runs += 1
        return result

    def cancel_batch(self) -> bool:
        return self.orchestrator.cancel()

    def get_session(self, session_id: str) -> BatchSession:
        return self.store.get(session_id)

    def list_sessions(self) -> List[BatchSession]:
        return self.store.list_sessions()

    # ------------------------------------------------------------------
    # Statistics and metrics
    # ------------------------------------------------------------------

    def get_statistics(self) -> Dict[str, Any]:
        """Service counters plus each engine's own statistics."""
        with self._lock:
            stats: Dict[str, Any] = self._stats.model_dump()
        stats["engines"] = {
            "extraction": self.extraction.get_statistics(),
            "canonicalizer": self.canonicalizer.get_statistics(),
            "exporter": self.exporter.get_statistics(),
            "hybrid_mapper": self.exporter.hybrid_mapper.get_statistics(),
            "batch_parser": self.batch_parser.get_statistics(),
            "orchestrator": self.orchestrator.get_statistics(),
            "sessions": self.store.get_statistics(),
        }
        stats["timestamp"] = _utcnow().isoformat()
        return stats

    def get_metrics(self) -> Dict[str, Any]:
        summary = metrics.get_metrics_summary()
        summary["started"] = self._started
        return summary

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def startup(self) -> None:
        """Start the service. Safe to call multiple times."""
        if self._started:
            logger.debug("ErcIntakeService already started; skipping")
            return
        logger.info("ErcIntakeService starting up...")
        self._started = True
        logger.info("ErcIntakeService startup complete")

    def shutdown(self) -> None:
        """Cancel any active batch and stop the service."""
        if not self._started:
            return
        if self.orchestrator.is_running:
            self.orchestrator.cancel()
        self._started = False
        logger.info("ErcIntakeService shut down")


# ===================================================================
# Thread-safe singleton access
# ===================================================================

_service_instance: Optional[ErcIntakeService] = None
_service_lock = threading.Lock()


def get_service() -> ErcIntakeService:
    """Get or create the singleton ErcIntakeService instance."""
    global _service_instance
    if _service_instance is None:
        with _service_lock:
            if _service_instance is None:
                _service_instance = ErcIntakeService()
    return _service_instance


def reset_service() -> None:
    """Discard the singleton; the next ``get_service()`` builds a fresh one."""
    global _service_instance
    with _service_lock:
        if _service_instance is not None:
            _service_instance.shutdown()
        _service_instance = None


__all__ = [
    "WorkbookProcessingResult",
    "ServiceStatistics",
    "ErcIntakeService",
    "get_service",
    "reset_service",
]
