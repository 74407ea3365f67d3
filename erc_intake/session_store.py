# -*- coding: utf-8 -*-
"""
Batch Session Store - ERC Intake

In-memory registry of batch sessions. The orchestrator receives a store
explicitly; sessions live until the store itself is discarded or
``clear()`` is called.

Example:
    >>> from erc_intake.session_store import SessionStore
    >>> store = SessionStore()
    >>> session = store.create(rows, input_file_name="batch.csv")
    >>> store.get(session.session_id) is session
    True

Author: ERC Intake Team
Status: Production Ready
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Sequence

from erc_intake.exceptions import SessionNotFoundError
from erc_intake.models import BatchInputRow, BatchJob, BatchSession, JobStatus

logger = logging.getLogger(__name__)


class SessionStore:
    """Thread-safe, insertion-ordered map of ``BatchSession`` objects."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: "OrderedDict[str, BatchSession]" = OrderedDict()

    def create(
        self,
        rows: Sequence[BatchInputRow],
        input_file_name: Optional[str] = None,
    ) -> BatchSession:
        """Create an idle session with one pending job per input row."""
        jobs = [
            BatchJob(
                row_index=row.row_index,
                source_reference=row.source_reference,
                override_metadata=dict(row.metadata),
            )
            for row in rows
        ]
        session = BatchSession(input_file_name=input_file_name, jobs=jobs)
        with self._lock:
            self._sessions[session.session_id] = session
        logger.info(
            "Batch session created: %s (%d jobs, input=%s)",
            session.session_id, len(jobs), input_file_name or "<none>",
        )
        return session

    def get(self, session_id: str) -> BatchSession:
        """Return a session.

        Raises:
            SessionNotFoundError: No session has this id.
        """
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def update(self, session: BatchSession) -> None:
        """Save a session in place; unknown sessions are added."""
        with self._lock:
            self._sessions[session.session_id] = session

    def list_sessions(self) -> List[BatchSession]:
        with self._lock:
            return list(self._sessions.values())

    def latest(self) -> Optional[BatchSession]:
        """Most recently created session, or None."""
        with self._lock:
            if not self._sessions:
                return None
            return next(reversed(self._sessions.values()))

    def pending_jobs(self) -> int:
        with self._lock:
            return sum(
                1
                for session in self._sessions.values()
                for job in session.jobs
                if job.status == JobStatus.PENDING
            )

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def get_statistics(self) -> Dict[str, Any]:
        sessions = self.list_sessions()
        by_status: Dict[str, int] = {}
        for session in sessions:
            by_status[session.status.value] = by_status.get(session.status.value, 0) + 1
        return {
            "sessions": len(sessions),
            "sessions_by_status": by_status,
            "pending_jobs": self.pending_jobs(),
        }


__all__ = ["SessionStore"]
