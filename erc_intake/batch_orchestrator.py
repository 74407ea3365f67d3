# -*- coding: utf-8 -*-
"""
Batch Orchestrator - ERC Intake

Runs a batch session: one job per input row, processed strictly in input
order on the asyncio event loop. For each job the workbook is fetched,
loaded, extracted (strict, then heuristic) and canonicalized; rows with no
source reference start from an empty record. The hybrid row is then built
with the row's override metadata.

A failed job never aborts the batch. ``cancel()`` takes effect at the next
loop boundary: the in-flight job always finishes. The combined hybrid CSV
covers the successful jobs in input order.

Example:
    >>> orchestrator = BatchOrchestrator(store, LocalWorkbookSource("/data"))
    >>> session = store.create(parse_result.rows, "batch.csv")
    >>> result = asyncio.run(orchestrator.run(session.session_id))
    >>> result.report.success_rate
    100.0

Author: ERC Intake Team
Status: Production Ready
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from erc_intake import metrics
from erc_intake.canonicalizer import EMPTY_RECORD_REASON, Canonicalizer
from erc_intake.config import ErcIntakeConfig, get_config
from erc_intake.exceptions import (
    BatchAlreadyRunningError,
    BatchError,
    ErcIntakeException,
    ExtractionError,
    SourceTimeoutError,
)
from erc_intake.exporters import Exporter
from erc_intake.extraction import ExtractionEngine
from erc_intake.models import (
    BatchJob,
    BatchJobResult,
    BatchProgress,
    BatchReport,
    BatchResult,
    BatchRowError,
    BatchSession,
    CanonicalRecord,
    ExtractedValues,
    JobStatus,
    SessionStatus,
)
from erc_intake.session_store import SessionStore
from erc_intake.sources import LocalWorkbookSource, WorkbookSource
from erc_intake.workbook import compute_source_hash, load_workbook

logger = logging.getLogger(__name__)

EXTRACTION_FAILED_ERROR = "Failed to extract data from template"

ProgressCallback = Callable[[BatchProgress], Any]


def _utcnow() -> datetime:
    """Return current UTC datetime with microseconds zeroed."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def _percent(done: int, total: int) -> int:
    if total <= 0:
        return 100
    return min(100, done * 100 // total)


class BatchOrchestrator:
    """Sequential batch runner with progress events and cancellation.

    Only one run may be active per orchestrator at a time.

    Attributes:
        store: Session registry.
        source: Provider of workbook bytes.
        extraction: Strict/heuristic extraction engine.
        canonicalizer: Canonical record builder.
        exporter: Hybrid row and CSV renderer.
    """

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        source: Optional[WorkbookSource] = None,
        config: Optional[ErcIntakeConfig] = None,
        extraction: Optional[ExtractionEngine] = None,
        canonicalizer: Optional[Canonicalizer] = None,
        exporter: Optional[Exporter] = None,
    ) -> None:
        self._config = config or get_config()
        self.store = store if store is not None else SessionStore()
        self.source = source if source is not None else LocalWorkbookSource(
            self._config.source_dir, self._config.max_workbook_size_mb,
        )
        self.extraction = (
            extraction if extraction is not None else ExtractionEngine(self._config)
        )
        self.canonicalizer = (
            canonicalizer if canonicalizer is not None else Canonicalizer(self._config)
        )
        self.exporter = exporter if exporter is not None else Exporter()
        self._active_session_id: Optional[str] = None
        self._cancel_requested = False
        self._lock = threading.Lock()
        self._stats: Dict[str, int] = {
            "runs_completed": 0,
            "runs_cancelled": 0,
            "jobs_completed": 0,
            "jobs_failed": 0,
        }
        logger.info(
            "BatchOrchestrator initialised: delay=%dms, fetch_timeout=%.1fs",
            self._config.batch_inter_job_delay_ms, self._config.fetch_timeout_seconds,
        )

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._active_session_id is not None

    @property
    def active_session_id(self) -> Optional[str]:
        return self._active_session_id

    def cancel(self) -> bool:
        """Request cancellation of the active run.

        Returns:
            True when a run was active to receive the request.
        """
        self._cancel_requested = True
        if self._active_session_id:
            logger.info("Cancellation requested for session %s", self._active_session_id)
            return True
        return False

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(
        self,
        session_id: str,
        remove_links: Optional[bool] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BatchResult:
        """Process every job of an idle session in input order.

        Args:
            session_id: Session to run.
            remove_links: Blank link columns in output rows; defaults to
                ``config.remove_links_default``.
            on_progress: Called with a ``BatchProgress`` before and after
                each job. May be a coroutine function.

        Raises:
            BatchAlreadyRunningError: Another run is active.
            SessionNotFoundError: Unknown session id.
            BatchError: The session is not idle.
        """
        if self._active_session_id is not None:
            raise BatchAlreadyRunningError(self._active_session_id)
        session = self.store.get(session_id)
        if session.status != SessionStatus.IDLE:
            raise BatchError(
                f"Session {session_id} is {session.status.value}; only idle sessions can run",
                context={"session_id": session_id, "status": session.status.value},
            )
        if remove_links is None:
            remove_links = self._config.remove_links_default

        self._active_session_id = session_id
        self._cancel_requested = False
        metrics.update_active_runs(1)
        try:
            return await self._run(session, remove_links, on_progress)
        except asyncio.CancelledError:
            # The interrupted job never produced a result.
            for job in session.jobs:
                if job.status == JobStatus.PROCESSING:
                    job.status = JobStatus.PENDING
            session.status = SessionStatus.CANCELLED
            session.finished_at = _utcnow()
            self.store.update(session)
            with self._lock:
                self._stats["runs_cancelled"] += 1
            metrics.record_batch_session(session.status.value)
            logger.warning("Batch session %s task cancelled", session.session_id)
            raise
        except Exception:
            if session.status == SessionStatus.PROCESSING:
                session.status = SessionStatus.COMPLETED
                session.finished_at = _utcnow()
                self.store.update(session)
            raise
        finally:
            self._active_session_id = None
            metrics.update_active_runs(-1)
            metrics.update_queue_size(0)

    async def _run(
        self,
        session: BatchSession,
        remove_links: bool,
        on_progress: Optional[ProgressCallback],
    ) -> BatchResult:
        total = session.total_jobs
        session.status = SessionStatus.PROCESSING
        session.started_at = _utcnow()
        self.store.update(session)
        start = time.monotonic()
        logger.info("Batch session %s started: %d jobs", session.session_id, total)

        processed: List[BatchJob] = []
        warnings: List[str] = []
        delay = self._config.batch_inter_job_delay_ms / 1000

        for index, job in enumerate(session.jobs):
            if self._cancel_requested:
                break
            metrics.update_queue_size(total - index)
            await self._emit(on_progress, BatchProgress(
                session_id=session.session_id,
                index=index,
                total=total,
                source_reference=job.source_reference,
                status=JobStatus.PROCESSING,
                percent_complete=_percent(index, total),
                message=f"Processing row {job.row_index} ({index + 1} of {total})",
            ))

            job_warnings = await self._process_job(job, remove_links)
            warnings.extend(f"Row {job.row_index}: {w}" for w in job_warnings)
            processed.append(job)
            if job.status == JobStatus.COMPLETED:
                session.completed_jobs += 1
            else:
                session.failed_jobs += 1
            self.store.update(session)

            await self._emit(on_progress, BatchProgress(
                session_id=session.session_id,
                index=index,
                total=total,
                source_reference=job.source_reference,
                status=job.status,
                percent_complete=_percent(index + 1, total),
                message=(
                    f"Completed row {job.row_index}"
                    if job.status == JobStatus.COMPLETED
                    else f"Failed row {job.row_index}: {job.error}"
                ),
            ))

            if index < total - 1 and not self._cancel_requested:
                await asyncio.sleep(delay)

        cancelled = self._cancel_requested
        if cancelled and len(processed) < total:
            warnings.append(
                f"Batch cancelled after {len(processed)} of {total} jobs"
            )
        session.status = SessionStatus.CANCELLED if cancelled else SessionStatus.COMPLETED
        session.finished_at = _utcnow()
        self.store.update(session)

        result = self._build_result(session, processed, warnings)
        with self._lock:
            self._stats["runs_cancelled" if cancelled else "runs_completed"] += 1
        metrics.record_batch_session(session.status.value)
        logger.info(
            "Batch session %s %s: %d processed, %d succeeded, %d failed (%.1f ms)",
            session.session_id, session.status.value, len(processed),
            result.success_count, result.failure_count,
            (time.monotonic() - start) * 1000,
        )
        return result

    async def _emit(self, on_progress: Optional[ProgressCallback], event: BatchProgress) -> None:
        if on_progress is None:
            return
        outcome = on_progress(event)
        if inspect.isawaitable(outcome):
            await outcome

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def _process_job(self, job: BatchJob, remove_links: bool) -> List[str]:
        """Drive one job to a terminal state; returns its warnings."""
        job.status = JobStatus.PROCESSING
        job.started_at = _utcnow()
        start = time.monotonic()
        warnings: List[str] = []
        try:
            record, extracted = await self._build_record(job)
            if extracted is not None:
                warnings.extend(extracted.warnings)
            row, notes = self.exporter.hybrid_mapper.map(
                record, job.override_metadata, remove_links,
            )
            job.canonical_record = record
            job.output_row = row
            job.status = JobStatus.COMPLETED
            warnings.extend(notes)
        except ErcIntakeException as exc:
            job.status = JobStatus.FAILED
            job.error = exc.message
            logger.warning("Batch row %d failed: %s", job.row_index, exc.message)
        except Exception as exc:
            job.status = JobStatus.FAILED
            job.error = str(exc) or "Processing failed"
            logger.error("Batch row %d failed unexpectedly: %s", job.row_index, exc, exc_info=True)
        finally:
            elapsed = time.monotonic() - start
            job.finished_at = _utcnow()
            job.duration_ms = elapsed * 1000

        with self._lock:
            key = "jobs_completed" if job.status == JobStatus.COMPLETED else "jobs_failed"
            self._stats[key] += 1
        metrics.record_batch_job(job.status.value, elapsed)
        return warnings

    async def _build_record(
        self, job: BatchJob,
    ) -> Tuple[CanonicalRecord, Optional[ExtractedValues]]:
        reference = job.source_reference.strip()
        if not reference:
            return self.canonicalizer.create_empty_record(EMPTY_RECORD_REASON), None

        timeout = self._config.fetch_timeout_seconds
        try:
            content = await asyncio.wait_for(self.source.fetch(reference), timeout=timeout)
        except asyncio.TimeoutError:
            raise SourceTimeoutError(
                f"Timed out fetching workbook after {timeout:g} seconds",
                source_reference=reference,
                timeout_seconds=timeout,
            ) from None

        workbook = await asyncio.to_thread(
            load_workbook,
            content,
            file_name=reference,
            max_size_mb=self._config.max_workbook_size_mb,
        )
        extracted = await asyncio.to_thread(self.extraction.extract, workbook)
        if not extracted.source_hash:
            extracted.source_hash = compute_source_hash(content)
        job.extracted_values = extracted
        if not extracted.success:
            raise ExtractionError(
                EXTRACTION_FAILED_ERROR,
                context={"errors": list(extracted.errors)},
            )
        return self.canonicalizer.canonicalize(extracted), extracted

    # ------------------------------------------------------------------
    # Result and report
    # ------------------------------------------------------------------

    def _build_result(
        self,
        session: BatchSession,
        processed: List[BatchJob],
        warnings: List[str],
    ) -> BatchResult:
        results = [
            BatchJobResult(
                row_index=job.row_index,
                source_reference=job.source_reference,
                success=job.status == JobStatus.COMPLETED,
                error=job.error,
                output_row=job.output_row,
                processing_time_ms=job.duration_ms,
            )
            for job in processed
        ]
        rows = [
            job.output_row for job in processed
            if job.status == JobStatus.COMPLETED and job.output_row is not None
        ]
        export = self.exporter.export_hybrid_rows(rows)
        report = self.create_report(session, processed, warnings)
        return BatchResult(
            session_id=session.session_id,
            status=session.status,
            total_processed=len(processed),
            success_count=report.successful_rows,
            failure_count=report.failed_rows,
            results=results,
            header=export.header,
            csv_content=export.content,
            report=report,
        )

    @staticmethod
    def create_report(
        session: BatchSession,
        processed: List[BatchJob],
        warnings: Optional[List[str]] = None,
    ) -> BatchReport:
        """Summarise a run: counts, success rate, timings and row errors."""
        successful = sum(1 for job in processed if job.status == JobStatus.COMPLETED)
        failed = sum(1 for job in processed if job.status == JobStatus.FAILED)
        duration_ms = 0.0
        if session.started_at and session.finished_at:
            duration_ms = (session.finished_at - session.started_at).total_seconds() * 1000
        average = (
            sum(job.duration_ms for job in processed) / len(processed) if processed else 0.0
        )
        total = session.total_jobs
        return BatchReport(
            session_id=session.session_id,
            status=session.status,
            started_at=session.started_at,
            finished_at=session.finished_at,
            duration_ms=duration_ms,
            total_rows=total,
            processed_rows=len(processed),
            successful_rows=successful,
            failed_rows=failed,
            success_rate=(successful / total * 100) if total else 0.0,
            average_processing_time_ms=average,
            errors=[
                BatchRowError(
                    row_index=job.row_index,
                    source_reference=job.source_reference,
                    error=job.error or "",
                )
                for job in processed
                if job.status == JobStatus.FAILED
            ],
            warnings=list(warnings or []),
        )

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            stats: Dict[str, Any] = dict(self._stats)
        stats["active_session_id"] = self._active_session_id
        stats["timestamp"] = _utcnow().isoformat()
        return stats


__all__ = [
    "EXTRACTION_FAILED_ERROR",
    "ProgressCallback",
    "BatchOrchestrator",
]
