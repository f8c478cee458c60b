# errors.py — Service error taxonomy
# Services raise these; main.py turns them into the
# {"success": false, "message": ..., "error": ...} envelope.
import logging
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger("brand-tasks.errors")


class ServiceError(Exception):
    """Base class for failures surfaced to API callers"""
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, error: Optional[str] = None):
        self.message = message or self.default_message
        self.error = error
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"success": False, "message": self.message}
        if self.error:
            body["error"] = self.error
        return body


class ValidationError(ServiceError):
    """Missing/invalid field or bad id"""
    status_code = 400
    default_message = "Invalid request"


class Unauthorized(ServiceError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(ServiceError):
    status_code = 403
    default_message = "Not authorized to perform this action"


class NotFound(ServiceError):
    status_code = 404
    default_message = "Not found"


class Conflict(ServiceError):
    """Duplicate invite, invalid state transition, blocked delete"""
    status_code = 409
    default_message = "Conflict"

    def __init__(self, message: Optional[str] = None, error: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, error)
        if status_code is not None:
            self.status_code = status_code


class RateLimited(ServiceError):
    status_code = 429
    default_message = "Too many requests"


class Internal(ServiceError):
    """Store failure; carries the underlying message for operators"""
    status_code = 500
    default_message = "Internal server error"


@asynccontextmanager
async def store_errors(db: AsyncSession, action: str):
    """Translate store-layer failures into Internal, keeping the underlying message"""
    try:
        yield
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Failed to %s: %s", action, exc)
        raise Internal(f"Failed to {action}", error=str(exc)) from exc
