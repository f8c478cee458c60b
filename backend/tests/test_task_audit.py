# tests/test_task_audit.py — History derivation and post-commit recording
import dataclasses
import logging

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from auth import Identity
from models import TaskHistory
from task_audit import TaskAuditRecorder, TaskSnapshot
from tests.conftest import get_auth_headers

ACTOR = Identity(id="u1", name="Ada", email="Ada@Example.dev", role="user")


def _snap(status="pending", approved=False) -> TaskSnapshot:
    return TaskSnapshot(id="t1", title="Draft brief", status=status, completed_approval=approved)


class TestDerive:
    def setup_method(self):
        self.recorder = TaskAuditRecorder()

    def test_no_change(self):
        assert self.recorder.derive(_snap(), _snap(), ACTOR) == []

    def test_status_change(self):
        [entry] = self.recorder.derive(_snap("pending"), _snap("in-progress"), ACTOR, note=" started ")
        assert entry.action == "status_changed"
        assert entry.old_status == "pending"
        assert entry.new_status == "in-progress"
        assert entry.note == "started"
        assert entry.user_email == "ada@example.dev"
        assert entry.extra_data == {}

    def test_status_entry_precedes_approval_entry(self):
        entries = self.recorder.derive(_snap("in-progress", False), _snap("completed", True), ACTOR)
        assert [e.action for e in entries] == ["status_changed", "approval_granted"]
        assert entries[1].extra_data == {"old_approval": False, "new_approval": True}

    def test_approval_revoked(self):
        [entry] = self.recorder.derive(_snap("completed", True), _snap("completed", False), ACTOR)
        assert entry.action == "approval_revoked"

    def test_recheck_only_flagged_on_completion(self):
        [done] = self.recorder.derive(_snap("pending"), _snap("completed"), ACTOR, request_recheck=True)
        assert done.extra_data == {"request_recheck": True}

        [started] = self.recorder.derive(_snap("pending"), _snap("in-progress"), ACTOR, request_recheck=True)
        assert started.extra_data == {}

    def test_snapshot_is_frozen(self):
        snap = _snap()
        with pytest.raises(dataclasses.FrozenInstanceError):
            snap.status = "completed"


@pytest.mark.asyncio
class TestRecord:
    async def test_persists_through_given_session_factory(self, db_engine, db_session, test_user):
        factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
        recorder = TaskAuditRecorder(session_factory=factory)
        actor = Identity(id=test_user.id, name=test_user.name, email=test_user.email)

        written = await recorder.record(_snap("pending"), _snap("completed"), actor, db_session)
        assert len(written) == 1

        rows = (await db_session.execute(select(TaskHistory))).scalars().all()
        assert [r.action for r in rows] == ["status_changed"]

    async def test_nothing_to_record(self, db_session):
        recorder = TaskAuditRecorder()
        assert await recorder.record(_snap(), _snap(), ACTOR, db_session) == []

    async def test_failure_never_fails_the_update(self, client: AsyncClient, test_user, monkeypatch, caplog):
        async def failing(self, entries, db):
            raise RuntimeError("history store unavailable")

        monkeypatch.setattr(TaskAuditRecorder, "_persist", failing)
        headers = get_auth_headers(test_user)
        res = await client.post("/api/v1/tasks", json={
            "title": "Draft brief",
            "assigned_to": test_user.email,
            "due_date": "2099-01-01T00:00:00Z",
        }, headers=headers)
        task_id = res.json()["data"]["id"]

        with caplog.at_level(logging.ERROR, logger="brand-tasks.audit"):
            res = await client.put(f"/api/v1/tasks/{task_id}", json={"status": "completed"}, headers=headers)

        assert res.status_code == 200
        assert res.json()["data"]["status"] == "completed"
        assert any("Failed to record history" in r.getMessage() for r in caplog.records)

        res = await client.get(f"/api/v1/tasks/{task_id}/history", headers=headers)
        assert [h["action"] for h in res.json()["data"]] == ["task_created"]
