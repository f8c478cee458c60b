# routers/tasks.py — Tasks, approval, comments and history
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auth import Identity, get_current_user
from database import get_db_session
from routers import envelope
from tasks import (
    TaskService, TaskCreate, TaskUpdate, ApproveRequest, CommentCreate,
    comment_to_dict, history_to_dict,
)

router = APIRouter(prefix="/api/v1/tasks", tags=["Tasks"])


@router.get("")
async def list_tasks(
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Admins see every task; others see tasks assigned to or by them"""
    tasks = await TaskService.list_tasks(user, db)
    return envelope(await TaskService.with_users(tasks, db), "Tasks fetched successfully")


@router.post("", status_code=201)
async def create_task(
    data: TaskCreate,
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    task = await TaskService.create_task(data, user, db)
    items = await TaskService.with_users([task], db)
    return envelope(items[0], "Task created successfully")


@router.get("/{task_id}")
async def get_task(
    task_id: str,
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    task = await TaskService.get_task(task_id, user, db)
    items = await TaskService.with_users([task], db)
    return envelope(items[0], "Task fetched successfully")


@router.put("/{task_id}")
async def update_task(
    task_id: str,
    data: TaskUpdate,
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    updates = data.model_dump(exclude_unset=True, exclude={"note", "request_recheck"})
    task = await TaskService.update_task(
        task_id, updates, user, db,
        note=data.note, request_recheck=data.request_recheck,
    )
    items = await TaskService.with_users([task], db)
    return envelope(items[0], "Task updated successfully")


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    deleted = await TaskService.delete_task(task_id, user, db)
    return envelope(deleted, "Task deleted successfully")


@router.put("/{task_id}/approve")
async def approve_task(
    task_id: str,
    data: ApproveRequest,
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Permanent approval; also marks the task completed"""
    task = await TaskService.approve(task_id, data.completed_approval, user, db)
    items = await TaskService.with_users([task], db)
    return envelope(items[0], "Task approval updated")


@router.get("/{task_id}/comments")
async def get_comments(
    task_id: str,
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    comments = await TaskService.get_comments(task_id, user, db)
    return envelope([comment_to_dict(c) for c in comments], "Comments fetched successfully")


@router.post("/{task_id}/comments", status_code=201)
async def add_comment(
    task_id: str,
    data: CommentCreate,
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    comment = await TaskService.add_comment(task_id, data.content, user, db)
    return envelope(comment_to_dict(comment), "Comment added successfully")


@router.delete("/{task_id}/comments/{comment_id}")
async def delete_comment(
    task_id: str,
    comment_id: str,
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await TaskService.delete_comment(task_id, comment_id, user, db)
    return envelope({"id": comment_id}, "Comment deleted successfully")


@router.get("/{task_id}/history")
async def get_history(
    task_id: str,
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Status and approval history, newest first"""
    entries = await TaskService.get_history(task_id, user, db)
    return envelope([history_to_dict(e) for e in entries], "Task history fetched successfully")
