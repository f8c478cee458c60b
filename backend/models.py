# models.py — Database models for Brand Tasks
# - UUID string primary keys everywhere
# - Two-tier role system (admin, user)
# - Brand collaborators and brand history embedded as JSON lists
# - Task history as its own append-only table keyed by task id
# - Platform audit log (append-only, never updated or deleted)

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, JSON, Boolean, Integer,
    Enum as SQLEnum, ForeignKey, Text, Index, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


def as_utc(dt: datetime) -> datetime:
    """SQLite drops tzinfo on the way back; treat naive values as UTC."""
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


# ============================================================
# ENUMS
# ============================================================

class UserRole(str, PyEnum):
    ADMIN = "admin"
    USER = "user"


class BrandStatus(str, PyEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"


class CollaboratorRole(str, PyEnum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class CollaboratorStatus(str, PyEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class BrandHistoryAction(str, PyEnum):
    BRAND_CREATED = "brand_created"
    BRAND_UPDATED = "brand_updated"
    BRAND_DELETED = "brand_deleted"
    COLLABORATOR_INVITED = "collaborator_invited"
    COLLABORATOR_ACCEPTED = "collaborator_accepted"
    COLLABORATOR_DECLINED = "collaborator_declined"
    COLLABORATOR_REMOVED = "collaborator_removed"
    COLLABORATOR_ROLE_CHANGED = "collaborator_role_changed"


class TaskStatus(str, PyEnum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class TaskPriority(str, PyEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TaskHistoryAction(str, PyEnum):
    TASK_CREATED = "task_created"
    STATUS_CHANGED = "status_changed"
    APPROVAL_GRANTED = "approval_granted"
    APPROVAL_REVOKED = "approval_revoked"
    PERMANENT_APPROVED = "assigner_permanent_approved"


class AuditEventType(str, PyEnum):
    # Auth events
    USER_REGISTER = "auth.user.register"
    USER_LOGIN = "auth.user.login"
    OTP_ISSUED = "auth.otp.issued"
    OTP_VERIFIED = "auth.otp.verified"
    PASSWORD_CHANGED = "auth.password.changed"
    # User management
    USER_CREATED = "users.created"
    USER_UPDATED = "users.updated"
    USER_DELETED = "users.deleted"
    # Deletions that outlive their owning rows
    BRAND_DELETED = "brand.deleted"
    TASK_DELETED = "task.deleted"


# ============================================================
# USERS
# ============================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_uuid)
    name = Column(String, nullable=False, default="")
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    role = Column(SQLEnum(UserRole), default=UserRole.USER, nullable=False, index=True)

    # One-shot password reset OTP
    reset_otp = Column(Integer, nullable=True)
    otp_expiry = Column(DateTime(timezone=True), nullable=True)
    # Fixed-window rate limit for OTP requests
    otp_attempts = Column(Integer, nullable=False, default=0)
    otp_attempts_expiry = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    owned_brands = relationship("Brand", back_populates="owner", passive_deletes=True)


# ============================================================
# BRANDS (workspaces)
# ============================================================

class Brand(Base):
    """Workspace owned by one user, shared with invited collaborators"""
    __tablename__ = "brands"

    id = Column(String, primary_key=True, default=new_uuid)
    name = Column(String, nullable=False)
    company = Column(String, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    category = Column(String, nullable=False, default="Other")
    website = Column(String, nullable=False, default="")
    logo = Column(String, nullable=False, default="")
    status = Column(SQLEnum(BrandStatus), nullable=False, default=BrandStatus.ACTIVE, index=True)
    owner_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)

    # Embedded documents; always reassigned, never mutated in place
    collaborators = Column(JSON, nullable=False, default=list)
    history = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    owner = relationship("User", back_populates="owned_brands")
    tasks = relationship("Task", back_populates="brand_ref", passive_deletes=True)

    __table_args__ = (
        UniqueConstraint("owner_id", "name", "company", name="uq_brand_owner_name_company"),
        Index("idx_brand_owner_created", "owner_id", "created_at"),
    )


# ============================================================
# TASKS
# ============================================================

class Task(Base):
    """Task assigned by email from one user to another"""
    __tablename__ = "tasks"

    id = Column(String, primary_key=True, default=new_uuid)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(SQLEnum(TaskStatus), nullable=False, default=TaskStatus.PENDING, index=True)
    completed_approval = Column(Boolean, nullable=False, default=False, index=True)
    priority = Column(SQLEnum(TaskPriority), nullable=False, default=TaskPriority.MEDIUM)
    task_type = Column(String, nullable=False, default="regular")
    due_date = Column(DateTime(timezone=True), nullable=False, index=True)

    # Assignment is by email; neither side has to be a registered user
    assigned_to = Column(String, nullable=False, index=True)
    assigned_by = Column(String, nullable=False, index=True)

    brand_id = Column(String, ForeignKey("brands.id"), nullable=True, index=True)
    brand = Column(String, nullable=False, default="")  # Free-text label
    company_name = Column(String, nullable=False, default="")

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    brand_ref = relationship("Brand", back_populates="tasks")
    comments = relationship(
        "TaskComment", back_populates="task",
        order_by="TaskComment.created_at", cascade="all, delete-orphan", passive_deletes=True,
    )
    history = relationship(
        "TaskHistory", back_populates="task",
        order_by="TaskHistory.timestamp", cascade="all, delete-orphan", passive_deletes=True,
    )

    @property
    def overdue(self) -> bool:
        if self.due_date is None or self.status == TaskStatus.COMPLETED:
            return False
        return as_utc(self.due_date) < utcnow()


class TaskComment(Base):
    """Comment on a task, with the author's identity denormalised"""
    __tablename__ = "task_comments"

    id = Column(String, primary_key=True, default=new_uuid)
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    user_id = Column(String, nullable=False)
    user_name = Column(String, nullable=False, default="")
    user_email = Column(String, nullable=False, default="")
    user_role = Column(String, nullable=False, default="user")
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    task = relationship("Task", back_populates="comments")


class TaskHistory(Base):
    """Audit trail for a task (insert-only)"""
    __tablename__ = "task_history"

    id = Column(String, primary_key=True, default=new_uuid)
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    old_status = Column(String, nullable=True)
    new_status = Column(String, nullable=True)
    note = Column(Text, nullable=False, default="")
    user_id = Column(String, nullable=False, index=True)
    user_name = Column(String, nullable=False, default="")
    user_email = Column(String, nullable=False, default="")
    user_role = Column(String, nullable=False, default="user")
    extra_data = Column("metadata", JSON, nullable=False, default=dict)
    timestamp = Column(DateTime(timezone=True), default=utcnow)

    task = relationship("Task", back_populates="history")

    __table_args__ = (
        Index("idx_history_task_time", "task_id", "timestamp"),
    )


# ============================================================
# AUDIT LOGS (append-only)
# ============================================================

class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String, primary_key=True, default=new_uuid)
    timestamp = Column(DateTime(timezone=True), default=utcnow, index=True)
    event_type = Column(SQLEnum(AuditEventType), nullable=False, index=True)
    user_id = Column(String, nullable=True, index=True)
    resource_type = Column(String, nullable=True)
    resource_id = Column(String, nullable=True)
    details = Column(JSON, nullable=True)
    request_id = Column(String, index=True, unique=True, default=new_uuid)

    __table_args__ = (
        Index("idx_audit_event_timestamp", "event_type", "timestamp"),
        Index("idx_audit_resource", "resource_type", "resource_id"),
    )
