# task_audit.py — Task history recorder
# Derives history entries from a before/after pair of task snapshots and
# appends them in a separate transaction, after the task update has been
# committed. A failure here is logged and never reaches the caller.

import logging
from dataclasses import dataclass
from typing import Optional, List, Dict, Any, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from auth import Identity, normalize_email
from models import Task, TaskHistory, TaskHistoryAction, TaskStatus, utcnow

logger = logging.getLogger("brand-tasks.audit")


def _status_value(status) -> Optional[str]:
    if status is None:
        return None
    return status.value if isinstance(status, TaskStatus) else str(status)


@dataclass(frozen=True)
class TaskSnapshot:
    """Immutable view of the task fields the recorder compares"""
    id: str
    title: str
    status: Optional[str]
    completed_approval: bool

    @staticmethod
    def of(task: Task) -> "TaskSnapshot":
        return TaskSnapshot(
            id=task.id,
            title=task.title,
            status=_status_value(task.status),
            completed_approval=bool(task.completed_approval),
        )


def history_entry(task_id: str, action: TaskHistoryAction, description: str, identity: Identity,
                  old_status: Optional[str] = None, new_status: Optional[str] = None,
                  note: str = "", metadata: Dict[str, Any] = None) -> TaskHistory:
    return TaskHistory(
        task_id=task_id,
        action=action.value,
        description=description,
        old_status=old_status,
        new_status=new_status,
        note=(note or "").strip(),
        user_id=identity.id,
        user_name=identity.name or "Unknown",
        user_email=normalize_email(identity.email),
        user_role=identity.role,
        extra_data=metadata or {},
        timestamp=utcnow(),
    )


class TaskAuditRecorder:
    """Appends status and approval history for task updates"""

    def __init__(self, session_factory: Optional[Callable[[], AsyncSession]] = None):
        self._session_factory = session_factory

    def derive(self, previous: TaskSnapshot, updated: TaskSnapshot, identity: Identity,
               note: str = "", request_recheck: bool = False) -> List[TaskHistory]:
        """Status entry first, then approval entry; either may be absent."""
        entries: List[TaskHistory] = []

        if previous.status != updated.status:
            metadata: Dict[str, Any] = {}
            description = f"Status changed from {previous.status} to {updated.status}"
            if request_recheck and updated.status == TaskStatus.COMPLETED.value:
                metadata["request_recheck"] = True
                description += " (assigner recheck requested)"
            entries.append(history_entry(
                updated.id, TaskHistoryAction.STATUS_CHANGED, description, identity,
                old_status=previous.status, new_status=updated.status,
                note=note, metadata=metadata,
            ))

        if previous.completed_approval != updated.completed_approval:
            if updated.completed_approval:
                action, description = TaskHistoryAction.APPROVAL_GRANTED, "Completion approved"
            else:
                action, description = TaskHistoryAction.APPROVAL_REVOKED, "Completion approval revoked"
            entries.append(history_entry(
                updated.id, action, description, identity,
                note=note,
                metadata={
                    "old_approval": previous.completed_approval,
                    "new_approval": updated.completed_approval,
                },
            ))

        return entries

    def _sessions(self, db: AsyncSession) -> Callable[[], AsyncSession]:
        if self._session_factory is not None:
            return self._session_factory
        return async_sessionmaker(db.bind, class_=AsyncSession, expire_on_commit=False)

    async def _persist(self, entries: List[TaskHistory], db: AsyncSession) -> None:
        async with self._sessions(db)() as session:
            session.add_all(entries)
            await session.commit()

    async def record(self, previous: TaskSnapshot, updated: TaskSnapshot, identity: Identity,
                     db: AsyncSession, note: str = "", request_recheck: bool = False) -> List[TaskHistory]:
        entries = self.derive(previous, updated, identity, note, request_recheck)
        if not entries:
            return []
        try:
            await self._persist(entries, db)
        except Exception:
            logger.exception("Failed to record history for task %s", updated.id)
            return []
        return entries


audit_recorder = TaskAuditRecorder()
