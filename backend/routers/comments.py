# routers/comments.py — Legacy comment endpoints
# Older clients address comments through /api/v1/comments with flat
# author fields; both surfaces share TaskService.
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auth import Identity, get_current_user
from database import get_db_session
from models import TaskComment
from routers import envelope
from tasks import TaskService, CommentCreate

router = APIRouter(prefix="/api/v1/comments", tags=["Comments (legacy)"])


def _legacy_comment(comment: TaskComment) -> Dict[str, Any]:
    return {
        "id": str(comment.id),
        "task_id": str(comment.task_id),
        "content": comment.content,
        "user_id": comment.user_id,
        "user_name": comment.user_name,
        "user_email": comment.user_email,
        "user_role": comment.user_role,
        "created_at": comment.created_at.isoformat() if comment.created_at else None,
    }


@router.post("/addComment/{task_id}", status_code=201)
async def add_comment(
    task_id: str,
    data: CommentCreate,
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    comment = await TaskService.add_comment(task_id, data.content, user, db)
    return envelope(_legacy_comment(comment), "Comment added successfully")


@router.get("/getComments/{task_id}")
async def get_comments(
    task_id: str,
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    comments = await TaskService.get_comments(task_id, user, db)
    return envelope([_legacy_comment(c) for c in comments], "Comments fetched successfully")


@router.delete("/deleteComment/{task_id}/{comment_id}")
async def delete_comment(
    task_id: str,
    comment_id: str,
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await TaskService.delete_comment(task_id, comment_id, user, db)
    return envelope(None, "Comment deleted successfully")
