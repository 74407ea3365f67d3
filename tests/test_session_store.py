"""
Unit Tests for the batch session store.
"""

import pytest

from erc_intake.exceptions import SessionNotFoundError
from erc_intake.models import BatchInputRow, JobStatus, SessionStatus
from erc_intake.session_store import SessionStore


@pytest.fixture
def rows():
    return [
        BatchInputRow(row_index=2, source_reference="abc123", metadata={"email": "a@b.com"}),
        BatchInputRow(row_index=3, source_reference="", metadata={"industry": "Retail"}),
    ]


class TestSessionStore:
    """Test session creation and lookup."""

    def test_create(self, rows):
        store = SessionStore()
        session = store.create(rows, input_file_name="batch.csv")

        assert session.status == SessionStatus.IDLE
        assert session.input_file_name == "batch.csv"
        assert session.total_jobs == 2
        assert [job.row_index for job in session.jobs] == [2, 3]
        assert all(job.status == JobStatus.PENDING for job in session.jobs)
        assert session.jobs[0].override_metadata == {"email": "a@b.com"}
        assert len(store) == 1

    def test_jobs_do_not_share_row_metadata(self, rows):
        session = SessionStore().create(rows)
        session.jobs[0].override_metadata["email"] = "changed"
        assert rows[0].metadata["email"] == "a@b.com"

    def test_get(self, rows):
        store = SessionStore()
        session = store.create(rows)
        assert store.get(session.session_id) is session

    def test_get_unknown(self):
        with pytest.raises(SessionNotFoundError, match="Session nope not found"):
            SessionStore().get("nope")

    def test_latest_and_listing(self, rows):
        store = SessionStore()
        assert store.latest() is None

        first = store.create(rows)
        second = store.create(rows[:1])

        assert store.latest() is second
        assert store.list_sessions() == [first, second]

    def test_statistics(self, rows):
        store = SessionStore()
        store.create(rows)
        done = store.create(rows[:1])
        done.status = SessionStatus.COMPLETED
        done.jobs[0].status = JobStatus.COMPLETED
        store.update(done)

        stats = store.get_statistics()
        assert stats["sessions"] == 2
        assert stats["sessions_by_status"] == {"idle": 1, "completed": 1}
        assert stats["pending_jobs"] == 2

    def test_clear(self, rows):
        store = SessionStore()
        session = store.create(rows)
        store.clear()

        assert len(store) == 0
        with pytest.raises(SessionNotFoundError):
            store.get(session.session_id)
