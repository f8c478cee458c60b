# tasks.py — Task manager
# - Tasks are assigned by email; the assignee need not be registered
# - Status: pending -> in-progress -> completed, plus a one-way
#   completed-approval gate
# - Comments and history cascade with their task

import logging
from datetime import datetime
from typing import Optional, List, Dict, Any

from pydantic import BaseModel
from sqlalchemy import select, delete, or_
from sqlalchemy.ext.asyncio import AsyncSession

from access import can_access_brand, can_access_task
from auth import Identity, normalize_email
from errors import ValidationError, Unauthorized, Forbidden, NotFound, Conflict, store_errors
from models import (
    Task, TaskComment, TaskHistory, Brand, User, AuditLog, AuditEventType,
    TaskStatus, TaskPriority, TaskHistoryAction, as_utc,
)
from task_audit import TaskSnapshot, audit_recorder, history_entry

logger = logging.getLogger("brand-tasks.tasks")

IMMUTABLE_FIELDS = {"id", "created_at"}
UPDATABLE_FIELDS = {
    "title", "description", "status", "priority", "task_type", "due_date",
    "assigned_to", "assigned_by", "brand_id", "brand", "company_name", "completed_approval",
}


# ============================================================
# PYDANTIC SCHEMAS
# ============================================================

class TaskCreate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    assigned_to: Optional[str] = None
    assigned_by: Optional[str] = None
    due_date: Optional[datetime] = None
    priority: str = TaskPriority.MEDIUM.value
    task_type: str = "regular"
    status: str = TaskStatus.PENDING.value
    brand_id: Optional[str] = None
    brand: str = ""
    company_name: str = ""


class TaskUpdate(BaseModel):
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    task_type: Optional[str] = None
    due_date: Optional[datetime] = None
    assigned_to: Optional[str] = None
    assigned_by: Optional[str] = None
    brand_id: Optional[str] = None
    brand: Optional[str] = None
    company_name: Optional[str] = None
    completed_approval: Optional[bool] = None
    note: str = ""
    request_recheck: bool = False


class ApproveRequest(BaseModel):
    completed_approval: bool


class CommentCreate(BaseModel):
    content: Optional[str] = None


# ============================================================
# SERIALISATION
# ============================================================

def _iso(dt: Optional[datetime]) -> Optional[str]:
    return as_utc(dt).isoformat() if dt else None


def task_to_dict(task: Task) -> Dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description or "",
        "status": task.status.value if isinstance(task.status, TaskStatus) else task.status,
        "completed_approval": bool(task.completed_approval),
        "priority": task.priority.value if isinstance(task.priority, TaskPriority) else task.priority,
        "task_type": task.task_type,
        "due_date": _iso(task.due_date),
        "assigned_to": task.assigned_to,
        "assigned_by": task.assigned_by,
        "brand_id": task.brand_id,
        "brand": task.brand or "",
        "company_name": task.company_name or "",
        "overdue": task.overdue,
        "created_at": _iso(task.created_at),
        "updated_at": _iso(task.updated_at),
    }


def comment_to_dict(comment: TaskComment) -> Dict[str, Any]:
    return {
        "id": comment.id,
        "task_id": comment.task_id,
        "content": comment.content,
        "user": {
            "user_id": comment.user_id,
            "user_name": comment.user_name,
            "user_email": comment.user_email,
            "user_role": comment.user_role,
        },
        "created_at": _iso(comment.created_at),
        "updated_at": _iso(comment.updated_at),
    }


def history_to_dict(entry: TaskHistory) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "task_id": entry.task_id,
        "action": entry.action,
        "description": entry.description,
        "old_status": entry.old_status,
        "new_status": entry.new_status,
        "note": entry.note or "",
        "user": {
            "user_id": entry.user_id,
            "user_name": entry.user_name,
            "user_email": entry.user_email,
            "user_role": entry.user_role,
        },
        "metadata": entry.extra_data or {},
        "timestamp": _iso(entry.timestamp),
    }


def _parse_enum(enum_cls, value: Any, label: str):
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValidationError(f"Invalid {label}: {value}. Allowed: {allowed}")


async def delete_task_rows(task_ids: List[str], db: AsyncSession) -> None:
    """Delete tasks together with their comments and history (no commit)."""
    if not task_ids:
        return
    await db.execute(delete(TaskComment).where(TaskComment.task_id.in_(task_ids)))
    await db.execute(delete(TaskHistory).where(TaskHistory.task_id.in_(task_ids)))
    await db.execute(delete(Task).where(Task.id.in_(task_ids)))


# ============================================================
# TASK SERVICE
# ============================================================

class TaskService:
    """Task lifecycle, comments and history"""

    @staticmethod
    async def _get_task(task_id: str, db: AsyncSession) -> Task:
        task = await db.get(Task, task_id)
        if not task:
            raise NotFound("Task not found")
        return task

    @staticmethod
    async def _get_accessible_task(task_id: str, identity: Identity, db: AsyncSession, verb: str) -> Task:
        task = await TaskService._get_task(task_id, db)
        if not can_access_task(task, identity):
            raise Forbidden(f"You are not authorized to {verb} this task")
        return task

    @staticmethod
    async def _check_brand(brand_id: str, identity: Identity, db: AsyncSession) -> Brand:
        brand = await db.get(Brand, brand_id)
        if not brand:
            raise NotFound("Brand not found")
        if not can_access_brand(brand, identity):
            raise Forbidden("Not authorized to access this brand")
        return brand

    @staticmethod
    async def with_users(tasks: List[Task], db: AsyncSession) -> List[Dict[str, Any]]:
        """Serialise tasks with registered-user summaries for both emails"""
        emails = {t.assigned_to for t in tasks} | {t.assigned_by for t in tasks}
        users: Dict[str, User] = {}
        if emails:
            result = await db.execute(select(User).where(User.email.in_(emails)))
            users = {u.email: u for u in result.scalars().all()}

        def summary(email: str) -> Dict[str, Any]:
            user = users.get(email)
            if not user:
                return {"email": email}
            return {"id": user.id, "name": user.name, "email": user.email}

        items = []
        for task in tasks:
            item = task_to_dict(task)
            item["assigned_to_user"] = summary(task.assigned_to)
            item["assigned_by_user"] = summary(task.assigned_by)
            items.append(item)
        return items

    @staticmethod
    async def create_task(data: TaskCreate, identity: Optional[Identity], db: AsyncSession) -> Task:
        if identity is None:
            raise Unauthorized("Authentication required to create tasks")

        title = (data.title or "").strip()
        assigned_to = normalize_email(data.assigned_to)
        if not title or not assigned_to or data.due_date is None:
            raise ValidationError("Title, assignee email, and due date are required")

        status = _parse_enum(TaskStatus, data.status or TaskStatus.PENDING.value, "status")
        priority = _parse_enum(TaskPriority, data.priority or TaskPriority.MEDIUM.value, "priority")

        async with store_errors(db, "create task"):
            brand_label = (data.brand or "").strip()
            company_name = (data.company_name or "").strip()
            if data.brand_id:
                brand = await TaskService._check_brand(data.brand_id, identity, db)
                brand_label = brand_label or brand.name
                company_name = company_name or brand.company

            assignee = (await db.execute(select(User).where(User.email == assigned_to))).scalar_one_or_none()
            if not assignee:
                logger.warning("Task assignee %s is not a registered user", assigned_to)

            task = Task(
                title=title,
                description=(data.description or "").strip(),
                status=status,
                priority=priority,
                task_type=(data.task_type or "regular").strip() or "regular",
                due_date=as_utc(data.due_date),
                assigned_to=assigned_to,
                assigned_by=normalize_email(data.assigned_by) or normalize_email(identity.email),
                brand_id=data.brand_id,
                brand=brand_label,
                company_name=company_name,
            )
            db.add(task)
            await db.flush()
            db.add(history_entry(
                task.id, TaskHistoryAction.TASK_CREATED, f"Task created: {title}", identity,
                new_status=status.value,
                metadata={"assigned_to": assigned_to, "priority": priority.value},
            ))
            await db.commit()
            await db.refresh(task)

        logger.info("Task %s created by %s for %s", task.id, identity.id, assigned_to)
        return task

    @staticmethod
    async def list_tasks(identity: Identity, db: AsyncSession) -> List[Task]:
        stmt = select(Task).order_by(Task.created_at.desc())
        if not identity.is_admin:
            email = normalize_email(identity.email)
            stmt = stmt.where(or_(Task.assigned_to == email, Task.assigned_by == email))
        async with store_errors(db, "fetch tasks"):
            return list((await db.execute(stmt)).scalars().all())

    @staticmethod
    async def get_task(task_id: str, identity: Identity, db: AsyncSession) -> Task:
        async with store_errors(db, "fetch task"):
            return await TaskService._get_accessible_task(task_id, identity, db, "view")

    @staticmethod
    async def _validate_changes(task: Task, changes: Dict[str, Any], identity: Identity,
                                db: AsyncSession) -> Dict[str, Any]:
        """Validate every requested change before any of them is applied"""
        values: Dict[str, Any] = {}
        for attr in ("description", "brand", "company_name"):
            if attr in changes:
                values[attr] = (changes[attr] or "").strip()
        if "title" in changes:
            values["title"] = (changes["title"] or "").strip()
            if not values["title"]:
                raise ValidationError("Title cannot be empty")
        if "status" in changes:
            values["status"] = _parse_enum(TaskStatus, changes["status"], "status")
        if "priority" in changes:
            values["priority"] = _parse_enum(TaskPriority, changes["priority"], "priority")
        if "task_type" in changes:
            values["task_type"] = (changes["task_type"] or "").strip() or "regular"
        if "due_date" in changes:
            if changes["due_date"] is None:
                raise ValidationError("Due date is required")
            values["due_date"] = as_utc(changes["due_date"])
        if "assigned_to" in changes:
            values["assigned_to"] = normalize_email(changes["assigned_to"])
            if not values["assigned_to"]:
                raise ValidationError("Assignee email is required")
        if normalize_email(changes.get("assigned_by")):
            values["assigned_by"] = normalize_email(changes["assigned_by"])
        if "brand_id" in changes:
            if changes["brand_id"]:
                await TaskService._check_brand(changes["brand_id"], identity, db)
            values["brand_id"] = changes["brand_id"] or None
        if changes.get("completed_approval") is not None:
            approved = bool(changes["completed_approval"])
            if task.completed_approval and not approved:
                raise Conflict("Completed approval is permanent and cannot be cleared")
            values["completed_approval"] = approved
        return values

    @staticmethod
    async def update_task(task_id: str, updates: Dict[str, Any], identity: Identity, db: AsyncSession,
                          note: str = "", request_recheck: bool = False) -> Task:
        """Apply updates, commit, then hand the before/after pair to the history recorder.

        History failures are logged by the recorder and never undo the update.
        """
        ignored = IMMUTABLE_FIELDS & set(updates)
        if ignored:
            logger.debug("Ignoring immutable task fields %s", sorted(ignored))
        changes = {k: v for k, v in updates.items() if k in UPDATABLE_FIELDS}

        async with store_errors(db, "update task"):
            task = await TaskService._get_accessible_task(task_id, identity, db, "update")
            previous = TaskSnapshot.of(task)
            values = await TaskService._validate_changes(task, changes, identity, db)
            for attr, value in values.items():
                setattr(task, attr, value)
            await db.commit()
            await db.refresh(task)

        await audit_recorder.record(
            previous, TaskSnapshot.of(task), identity, db,
            note=note, request_recheck=request_recheck,
        )
        return task

    @staticmethod
    async def approve(task_id: str, completed_approval: bool, identity: Identity, db: AsyncSession) -> Task:
        """One-way gate: approving also completes the task; clearing is refused."""
        async with store_errors(db, "approve task"):
            task = await TaskService._get_accessible_task(task_id, identity, db, "approve")

            if not completed_approval:
                if task.completed_approval:
                    raise Conflict("Completed approval is permanent and cannot be cleared")
                return task
            if task.completed_approval:
                return task

            old_status = task.status.value if isinstance(task.status, TaskStatus) else task.status
            task.completed_approval = True
            task.status = TaskStatus.COMPLETED
            db.add(history_entry(
                task.id, TaskHistoryAction.PERMANENT_APPROVED, "Task PERMANENTLY approved by Assigner", identity,
                old_status=old_status, new_status=TaskStatus.COMPLETED.value,
                metadata={"completed_approval": True},
            ))
            await db.commit()
            await db.refresh(task)

        logger.info("Task %s approved by %s", task.id, identity.id)
        return task

    @staticmethod
    async def delete_task(task_id: str, identity: Identity, db: AsyncSession) -> Dict[str, Any]:
        async with store_errors(db, "delete task"):
            task = await TaskService._get_accessible_task(task_id, identity, db, "delete")
            snapshot = task_to_dict(task)
            db.add(AuditLog(
                event_type=AuditEventType.TASK_DELETED,
                user_id=identity.id,
                resource_type="task",
                resource_id=task.id,
                details={"task": snapshot},
            ))
            await db.flush()
            db.expunge(task)
            await delete_task_rows([task_id], db)
            await db.commit()

        logger.info("Task %s deleted by %s", task_id, identity.id)
        return snapshot

    # ----------------------------------------------------------
    # Comments
    # ----------------------------------------------------------

    @staticmethod
    async def add_comment(task_id: str, content: Optional[str], identity: Identity, db: AsyncSession) -> TaskComment:
        content = (content or "").strip()
        if not content:
            raise ValidationError("Comment content is required")

        async with store_errors(db, "add comment"):
            await TaskService._get_accessible_task(task_id, identity, db, "comment on")
            comment = TaskComment(
                task_id=task_id,
                content=content,
                user_id=identity.id,
                user_name=identity.name or "Unknown",
                user_email=normalize_email(identity.email),
                user_role=identity.role,
            )
            db.add(comment)
            await db.commit()
            await db.refresh(comment)
        return comment

    @staticmethod
    async def get_comments(task_id: str, identity: Identity, db: AsyncSession) -> List[TaskComment]:
        async with store_errors(db, "fetch comments"):
            await TaskService._get_accessible_task(task_id, identity, db, "view comments of")
            stmt = (
                select(TaskComment)
                .where(TaskComment.task_id == task_id)
                .order_by(TaskComment.created_at.desc())
            )
            return list((await db.execute(stmt)).scalars().all())

    @staticmethod
    async def delete_comment(task_id: str, comment_id: str, identity: Identity, db: AsyncSession) -> None:
        async with store_errors(db, "delete comment"):
            await TaskService._get_accessible_task(task_id, identity, db, "delete comments of")
            comment = await db.get(TaskComment, comment_id)
            if not comment or comment.task_id != task_id:
                raise NotFound("Comment not found")
            if comment.user_id != identity.id and not identity.is_admin:
                raise Forbidden("You can only delete your own comments")
            await db.delete(comment)
            await db.commit()

    # ----------------------------------------------------------
    # History
    # ----------------------------------------------------------

    @staticmethod
    async def get_history(task_id: str, identity: Identity, db: AsyncSession) -> List[TaskHistory]:
        async with store_errors(db, "fetch task history"):
            await TaskService._get_accessible_task(task_id, identity, db, "view history of")
            stmt = (
                select(TaskHistory)
                .where(TaskHistory.task_id == task_id)
                .order_by(TaskHistory.timestamp.desc())
            )
            return list((await db.execute(stmt)).scalars().all())
