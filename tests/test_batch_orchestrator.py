"""
Unit Tests for the Batch Orchestrator

Tests sequential processing, per-row failure isolation, progress events,
cancellation, and the combined hybrid CSV.
"""

import asyncio
import csv
import io
import threading

import pytest

from erc_intake.batch_orchestrator import EXTRACTION_FAILED_ERROR, BatchOrchestrator
from erc_intake.canonicalizer import Canonicalizer
from erc_intake.config import ErcIntakeConfig
from erc_intake.exceptions import (
    BatchAlreadyRunningError,
    BatchError,
    SessionNotFoundError,
)
from erc_intake.exporters import Exporter
from erc_intake.extraction import BaseExtractor, ExtractionEngine
from erc_intake.models import (
    BatchInputRow,
    ExtractedValues,
    ExtractionStrategy,
    JobStatus,
    SessionStatus,
)
from erc_intake.session_store import SessionStore
from erc_intake.sources import InMemoryWorkbookSource, WorkbookSource
from erc_intake.strict_extractor import StrictExtractor


def _rows(*references, metadata=None):
    return [
        BatchInputRow(row_index=i + 2, source_reference=ref, metadata=dict(metadata or {}))
        for i, ref in enumerate(references)
    ]


def _csv_rows(content):
    return list(csv.reader(io.StringIO(content)))


class _RejectingExtractor(BaseExtractor):
    strategy = ExtractionStrategy.HEURISTIC

    def extract(self, workbook):
        return ExtractedValues(success=False, strategy=self.strategy, errors=["unreadable"])


class _BlockingSource(WorkbookSource):
    """Holds every fetch until released."""

    def __init__(self, content):
        self.content = content
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def fetch(self, source_reference):
        self.started.set()
        await self.release.wait()
        return self.content


class _SlowSource(WorkbookSource):
    async def fetch(self, source_reference):
        await asyncio.sleep(5)
        return b""


class _ThreadRecordingExtractor(BaseExtractor):
    strategy = ExtractionStrategy.STRICT

    def __init__(self):
        super().__init__()
        self.delegate = StrictExtractor()
        self.threads = []

    def extract(self, workbook):
        self.threads.append(threading.get_ident())
        return self.delegate.extract(workbook)


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def source(strict_workbook):
    return InMemoryWorkbookSource({"sheet-1": strict_workbook})


@pytest.fixture
def orchestrator(store, source):
    return BatchOrchestrator(store, source)


class TestConstruction:
    """Test collaborator wiring."""

    def test_empty_store_is_kept(self, source):
        store = SessionStore()
        assert len(store) == 0

        orchestrator = BatchOrchestrator(store=store, source=source)

        assert orchestrator.store is store

    def test_injected_collaborators_are_kept(self, store, source):
        extraction = ExtractionEngine()
        canonicalizer = Canonicalizer()
        exporter = Exporter()

        orchestrator = BatchOrchestrator(
            store, source,
            extraction=extraction,
            canonicalizer=canonicalizer,
            exporter=exporter,
        )

        assert orchestrator.source is source
        assert orchestrator.extraction is extraction
        assert orchestrator.canonicalizer is canonicalizer
        assert orchestrator.exporter is exporter

    @pytest.mark.asyncio
    async def test_sessions_created_after_construction_run(self, source):
        store = SessionStore()
        orchestrator = BatchOrchestrator(store, source)
        session = store.create(_rows("sheet-1"))

        result = await orchestrator.run(session.session_id)

        assert result.success_count == 1


class TestRun:
    """Test end-to-end batch runs."""

    @pytest.mark.asyncio
    async def test_all_rows_succeed(self, store, orchestrator):
        session = store.create(_rows("sheet-1", "sheet-1"), "batch.csv")
        result = await orchestrator.run(session.session_id)

        assert result.status == SessionStatus.COMPLETED
        assert result.total_processed == 2
        assert result.success_count == 2
        assert result.report.success_rate == 100.0
        assert session.completed_jobs == 2
        assert all(job.status == JobStatus.COMPLETED for job in session.jobs)
        assert session.jobs[0].canonical_record.company_info.legal_name == "Sample Company"
        assert session.jobs[0].extracted_values.source_hash

        rows = _csv_rows(result.csv_content)
        assert len(rows) == 3
        assert rows[1][rows[0].index("business_legal_name")] == "Sample Company"

    @pytest.mark.asyncio
    async def test_overrides_reach_output_rows(self, store, orchestrator):
        session = store.create(
            _rows("sheet-1", metadata={"industry": "Retail", "Batch Tag": "A"}),
        )
        result = await orchestrator.run(session.session_id)
        row = result.results[0].output_row

        assert row["industry"] == "Retail"
        assert row["Batch Tag"] == "A"
        assert result.header[-1] == "Batch Tag"

    @pytest.mark.asyncio
    async def test_empty_reference_uses_empty_record(self, store, orchestrator):
        session = store.create(_rows("", metadata={"business_legal_name": "Meta Only LLC"}))
        result = await orchestrator.run(session.session_id)
        job = session.jobs[0]

        assert job.status == JobStatus.COMPLETED
        assert job.extracted_values is None
        assert job.canonical_record.ownership.owner_percentage == 0.0
        assert job.output_row["business_legal_name"] == "Meta Only LLC"
        assert result.success_count == 1

    @pytest.mark.asyncio
    async def test_failed_row_does_not_abort(self, store, orchestrator):
        session = store.create(_rows("missing-sheet", "sheet-1"))
        result = await orchestrator.run(session.session_id)

        assert result.status == SessionStatus.COMPLETED
        assert [r.success for r in result.results] == [False, True]
        assert result.results[0].error == "Workbook not found for reference: missing-sheet"
        assert result.report.failed_rows == 1
        assert result.report.errors[0].row_index == 2
        assert result.report.success_rate == 50.0
        assert len(_csv_rows(result.csv_content)) == 2

    @pytest.mark.asyncio
    async def test_extraction_failure(self, store, heuristic_workbook):
        source = InMemoryWorkbookSource({"drift": heuristic_workbook})
        engine = ExtractionEngine(heuristic=_RejectingExtractor())
        orchestrator = BatchOrchestrator(store, source, extraction=engine)
        session = store.create(_rows("drift"))

        result = await orchestrator.run(session.session_id)

        assert result.results[0].error == EXTRACTION_FAILED_ERROR
        assert session.jobs[0].extracted_values.errors[-1] == "unreadable"

    @pytest.mark.asyncio
    async def test_unloadable_workbook(self, store):
        orchestrator = BatchOrchestrator(store, InMemoryWorkbookSource({"bad": b"plain text"}))
        session = store.create(_rows("bad"))

        result = await orchestrator.run(session.session_id)

        assert result.results[0].error == "Unsupported workbook format (expected .xlsx or .xls)"

    @pytest.mark.asyncio
    async def test_fetch_timeout(self, store):
        config = ErcIntakeConfig(batch_inter_job_delay_ms=0, fetch_timeout_seconds=0.05)
        orchestrator = BatchOrchestrator(store, _SlowSource(), config=config)
        session = store.create(_rows("slow"))

        result = await orchestrator.run(session.session_id)

        assert result.results[0].error == "Timed out fetching workbook after 0.05 seconds"

    @pytest.mark.asyncio
    async def test_extraction_runs_off_the_event_loop(self, store, source):
        strict = _ThreadRecordingExtractor()
        orchestrator = BatchOrchestrator(
            store, source, extraction=ExtractionEngine(strict=strict),
        )
        session = store.create(_rows("sheet-1"))

        result = await orchestrator.run(session.session_id)

        assert result.success_count == 1
        assert strict.threads
        assert threading.get_ident() not in strict.threads

    @pytest.mark.asyncio
    async def test_empty_session(self, store, orchestrator):
        session = store.create([])
        result = await orchestrator.run(session.session_id)

        assert result.status == SessionStatus.COMPLETED
        assert result.total_processed == 0
        assert len(_csv_rows(result.csv_content)) == 1


class TestProgress:
    """Test progress events."""

    @pytest.mark.asyncio
    async def test_two_events_per_job(self, store, orchestrator):
        events = []
        session = store.create(_rows("sheet-1", "missing", "sheet-1", "sheet-1"))

        await orchestrator.run(session.session_id, on_progress=events.append)

        assert len(events) == 8
        assert [e.status for e in events[:4]] == [
            JobStatus.PROCESSING, JobStatus.COMPLETED,
            JobStatus.PROCESSING, JobStatus.FAILED,
        ]
        assert [e.percent_complete for e in events[1::2]] == [25, 50, 75, 100]
        assert events[0].percent_complete == 0
        assert events[0].message == "Processing row 2 (1 of 4)"
        assert events[3].message.startswith("Failed row 3: ")

    @pytest.mark.asyncio
    async def test_async_callback(self, store, orchestrator):
        seen = []

        async def callback(event):
            await asyncio.sleep(0)
            seen.append(event.index)

        session = store.create(_rows("sheet-1", "sheet-1"))
        await orchestrator.run(session.session_id, on_progress=callback)

        assert seen == [0, 0, 1, 1]


class TestCancellation:
    """Test cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_after_third_job(self, store, orchestrator):
        session = store.create(_rows(*["sheet-1"] * 10))

        def callback(event):
            if event.index == 2 and event.status == JobStatus.COMPLETED:
                orchestrator.cancel()

        result = await orchestrator.run(session.session_id, on_progress=callback)

        assert result.status == SessionStatus.CANCELLED
        assert session.status == SessionStatus.CANCELLED
        assert result.total_processed == 3
        assert [job.status for job in session.jobs[:3]] == [JobStatus.COMPLETED] * 3
        assert all(job.status == JobStatus.PENDING for job in session.jobs[3:])
        assert "Batch cancelled after 3 of 10 jobs" in result.report.warnings
        assert result.report.total_rows == 10
        assert result.report.success_rate == 30.0
        assert len(_csv_rows(result.csv_content)) == 4

    def test_cancel_without_run(self, orchestrator):
        assert orchestrator.cancel() is False

    @pytest.mark.asyncio
    async def test_cancel_then_new_run(self, store, orchestrator):
        orchestrator.cancel()
        session = store.create(_rows("sheet-1"))
        result = await orchestrator.run(session.session_id)

        assert result.status == SessionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_cancelled_task_marks_session_cancelled(self, store, strict_workbook):
        source = _BlockingSource(strict_workbook)
        orchestrator = BatchOrchestrator(store, source)
        session = store.create(_rows("a", "b"))

        task = asyncio.create_task(orchestrator.run(session.session_id))
        await source.started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert session.status == SessionStatus.CANCELLED
        assert session.finished_at is not None
        assert [job.status for job in session.jobs] == [JobStatus.PENDING] * 2
        assert not orchestrator.is_running
        assert orchestrator.get_statistics()["runs_cancelled"] == 1

        follow_up = store.create(_rows("a"))
        source.release.set()
        result = await orchestrator.run(follow_up.session_id)
        assert result.status == SessionStatus.COMPLETED


class TestGuards:
    """Test run preconditions."""

    @pytest.mark.asyncio
    async def test_unknown_session(self, orchestrator):
        with pytest.raises(SessionNotFoundError):
            await orchestrator.run("missing")

    @pytest.mark.asyncio
    async def test_session_must_be_idle(self, store, orchestrator):
        session = store.create(_rows("sheet-1"))
        await orchestrator.run(session.session_id)

        with pytest.raises(BatchError, match="only idle sessions can run"):
            await orchestrator.run(session.session_id)

    @pytest.mark.asyncio
    async def test_one_run_at_a_time(self, store, strict_workbook):
        source = _BlockingSource(strict_workbook)
        orchestrator = BatchOrchestrator(store, source)
        first = store.create(_rows("a"))
        second = store.create(_rows("b"))

        task = asyncio.create_task(orchestrator.run(first.session_id))
        await source.started.wait()

        assert orchestrator.is_running
        assert orchestrator.active_session_id == first.session_id
        with pytest.raises(BatchAlreadyRunningError):
            await orchestrator.run(second.session_id)

        source.release.set()
        result = await task
        assert result.success_count == 1
        assert not orchestrator.is_running

    @pytest.mark.asyncio
    async def test_statistics(self, store, orchestrator):
        session = store.create(_rows("sheet-1", "missing"))
        await orchestrator.run(session.session_id)
        stats = orchestrator.get_statistics()

        assert stats["runs_completed"] == 1
        assert stats["jobs_completed"] == 1
        assert stats["jobs_failed"] == 1
        assert stats["active_session_id"] is None
