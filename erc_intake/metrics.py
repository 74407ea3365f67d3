# -*- coding: utf-8 -*-
"""
Prometheus Metrics - ERC Intake Pipeline

11 Prometheus metrics for workbook extraction, canonicalization, export and
batch orchestration.

Metrics:
    1.  erc_workbooks_extracted_total (Counter, labels: strategy, outcome)
    2.  erc_extraction_duration_seconds (Histogram, 10 buckets)
    3.  erc_extraction_warnings_total (Counter, labels: strategy)
    4.  erc_records_canonicalized_total (Counter, labels: validation_status)
    5.  erc_exports_total (Counter, labels: format, outcome)
    6.  erc_generator_fallbacks_total (Counter, labels: format)
    7.  erc_batch_jobs_total (Counter, labels: status)
    8.  erc_batch_job_duration_seconds (Histogram, 10 buckets)
    9.  erc_batch_sessions_total (Counter, labels: status)
    10. erc_active_batch_runs (Gauge)
    11. erc_batch_queue_size (Gauge)

Author: ERC Intake Team
Status: Production Ready
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from prometheus_client import Counter, Gauge, Histogram

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Metric definitions
# ---------------------------------------------------------------------------

# 1. Workbooks extracted by strategy and outcome
erc_workbooks_extracted_total = Counter(
    "erc_workbooks_extracted_total",
    "Total workbooks run through an extractor",
    labelnames=["strategy", "outcome"],
)

# 2. Extraction duration (sub-second reads up to large legacy workbooks)
erc_extraction_duration_seconds = Histogram(
    "erc_extraction_duration_seconds",
    "Workbook extraction duration in seconds",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# 3. Extraction warnings by strategy
erc_extraction_warnings_total = Counter(
    "erc_extraction_warnings_total",
    "Total non-fatal extraction warnings",
    labelnames=["strategy"],
)

# 4. Canonical records by validation status
erc_records_canonicalized_total = Counter(
    "erc_records_canonicalized_total",
    "Total canonical records built",
    labelnames=["validation_status"],
)

# 5. Exports by format and outcome
erc_exports_total = Counter(
    "erc_exports_total",
    "Total export renderings",
    labelnames=["format", "outcome"],
)

# 6. Field generators that fell back to their default value
erc_generator_fallbacks_total = Counter(
    "erc_generator_fallbacks_total",
    "Total field generator failures replaced by a default value",
    labelnames=["format"],
)

# 7. Batch jobs by terminal status
erc_batch_jobs_total = Counter(
    "erc_batch_jobs_total",
    "Total batch jobs reaching a terminal status",
    labelnames=["status"],
)

# 8. Per-job duration
erc_batch_job_duration_seconds = Histogram(
    "erc_batch_job_duration_seconds",
    "Batch job processing duration in seconds",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

# 9. Batch sessions by final status
erc_batch_sessions_total = Counter(
    "erc_batch_sessions_total",
    "Total batch sessions finished",
    labelnames=["status"],
)

# 10. Currently active batch runs
erc_active_batch_runs = Gauge(
    "erc_active_batch_runs",
    "Number of batch runs currently processing",
)

# 11. Jobs waiting in the active run
erc_batch_queue_size = Gauge(
    "erc_batch_queue_size",
    "Number of jobs waiting in the active batch run",
)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------


def record_extraction(
    strategy: str,
    success: bool,
    duration_seconds: float,
    warning_count: int = 0,
) -> None:
    """Record one extraction attempt.

    Args:
        strategy: Extractor used (strict, heuristic).
        success: Whether the attempt produced usable values.
        duration_seconds: Extraction duration in seconds.
        warning_count: Number of warnings produced.
    """
    outcome = "success" if success else "failure"
    erc_workbooks_extracted_total.labels(strategy=strategy, outcome=outcome).inc()
    erc_extraction_duration_seconds.observe(duration_seconds)
    if warning_count:
        erc_extraction_warnings_total.labels(strategy=strategy).inc(warning_count)


def record_canonicalized(validation_status: str) -> None:
    """Record a canonical record by its validation status."""
    erc_records_canonicalized_total.labels(
        validation_status=validation_status,
    ).inc()


def record_export(export_format: str, success: bool) -> None:
    """Record an export rendering.

    Args:
        export_format: Format rendered (bulk_upload, portal, hybrid).
        success: Whether content was generated.
    """
    outcome = "success" if success else "failure"
    erc_exports_total.labels(format=export_format, outcome=outcome).inc()


def record_generator_fallback(export_format: str) -> None:
    """Record a field generator that fell back to its default value."""
    erc_generator_fallbacks_total.labels(format=export_format).inc()


def record_batch_job(status: str, duration_seconds: float) -> None:
    """Record a batch job reaching a terminal status.

    Args:
        status: Terminal job status (completed, failed).
        duration_seconds: Job processing duration in seconds.
    """
    erc_batch_jobs_total.labels(status=status).inc()
    erc_batch_job_duration_seconds.observe(duration_seconds)


def record_batch_session(status: str) -> None:
    """Record a finished batch session by final status."""
    erc_batch_sessions_total.labels(status=status).inc()


def update_active_runs(delta: int) -> None:
    """Increment or decrement the active batch run gauge.

    Args:
        delta: +1 when a run starts, -1 when it finishes.
    """
    if delta > 0:
        erc_active_batch_runs.inc(delta)
    elif delta < 0:
        erc_active_batch_runs.dec(abs(delta))


def update_queue_size(size: int) -> None:
    """Set the number of jobs waiting in the active run."""
    erc_batch_queue_size.set(size)


def _counter_total(counter: Counter) -> float:
    total = 0.0
    for metric in counter.collect():
        for sample in metric.samples:
            if sample.name.endswith("_total"):
                total += sample.value
    return total


def get_metrics_summary() -> Dict[str, Any]:
    """Return a flat summary of the pipeline counters and gauges."""
    return {
        "workbooks_extracted": _counter_total(erc_workbooks_extracted_total),
        "extraction_warnings": _counter_total(erc_extraction_warnings_total),
        "records_canonicalized": _counter_total(erc_records_canonicalized_total),
        "exports": _counter_total(erc_exports_total),
        "generator_fallbacks": _counter_total(erc_generator_fallbacks_total),
        "batch_jobs": _counter_total(erc_batch_jobs_total),
        "batch_sessions": _counter_total(erc_batch_sessions_total),
        "active_batch_runs": erc_active_batch_runs._value.get(),
        "batch_queue_size": erc_batch_queue_size._value.get(),
    }


__all__ = [
    "erc_workbooks_extracted_total",
    "erc_extraction_duration_seconds",
    "erc_extraction_warnings_total",
    "erc_records_canonicalized_total",
    "erc_exports_total",
    "erc_generator_fallbacks_total",
    "erc_batch_jobs_total",
    "erc_batch_job_duration_seconds",
    "erc_batch_sessions_total",
    "erc_active_batch_runs",
    "erc_batch_queue_size",
    "record_extraction",
    "record_canonicalized",
    "record_export",
    "record_generator_fallback",
    "record_batch_job",
    "record_batch_session",
    "update_active_runs",
    "update_queue_size",
    "get_metrics_summary",
]
