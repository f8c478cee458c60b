"""Brand tasks initial schema (users, brands, tasks, comments, history, audit)

Revision ID: a1f3c5e7b9d2
Revises:
Create Date: 2026-10-19T09:12:44.518203
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = 'a1f3c5e7b9d2'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# SQLAlchemy Enum columns persist member names
USER_ROLE = sa.Enum('ADMIN', 'USER', name='userrole')
BRAND_STATUS = sa.Enum('ACTIVE', 'INACTIVE', 'ARCHIVED', name='brandstatus')
TASK_STATUS = sa.Enum('PENDING', 'IN_PROGRESS', 'COMPLETED', name='taskstatus')
TASK_PRIORITY = sa.Enum('HIGH', 'MEDIUM', 'LOW', name='taskpriority')
AUDIT_EVENT = sa.Enum(
    'USER_REGISTER', 'USER_LOGIN', 'OTP_ISSUED', 'OTP_VERIFIED', 'PASSWORD_CHANGED',
    'USER_CREATED', 'USER_UPDATED', 'USER_DELETED', 'BRAND_DELETED', 'TASK_DELETED',
    name='auditeventtype',
)


def upgrade() -> None:
    # --- users ---
    op.create_table(
        'users',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False, server_default=''),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('password_hash', sa.String(), nullable=False),
        sa.Column('role', USER_ROLE, nullable=False, server_default='USER'),
        sa.Column('reset_otp', sa.Integer(), nullable=True),
        sa.Column('otp_expiry', sa.DateTime(timezone=True), nullable=True),
        sa.Column('otp_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('otp_attempts_expiry', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_created_at', 'users', ['created_at'])

    # --- brands ---
    op.create_table(
        'brands',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('company', sa.String(), nullable=False, server_default=''),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('category', sa.String(), nullable=False, server_default='Other'),
        sa.Column('website', sa.String(), nullable=False, server_default=''),
        sa.Column('logo', sa.String(), nullable=False, server_default=''),
        sa.Column('status', BRAND_STATUS, nullable=False, server_default='ACTIVE'),
        sa.Column('owner_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('collaborators', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('history', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('owner_id', 'name', 'company', name='uq_brand_owner_name_company'),
    )
    op.create_index('ix_brands_owner_id', 'brands', ['owner_id'])
    op.create_index('ix_brands_status', 'brands', ['status'])
    op.create_index('ix_brands_created_at', 'brands', ['created_at'])
    op.create_index('idx_brand_owner_created', 'brands', ['owner_id', 'created_at'])

    # --- tasks ---
    op.create_table(
        'tasks',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', TASK_STATUS, nullable=False, server_default='PENDING'),
        sa.Column('completed_approval', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('priority', TASK_PRIORITY, nullable=False, server_default='MEDIUM'),
        sa.Column('task_type', sa.String(), nullable=False, server_default='regular'),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('assigned_to', sa.String(), nullable=False),
        sa.Column('assigned_by', sa.String(), nullable=False),
        sa.Column('brand_id', sa.String(), sa.ForeignKey('brands.id'), nullable=True),
        sa.Column('brand', sa.String(), nullable=False, server_default=''),
        sa.Column('company_name', sa.String(), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tasks_status', 'tasks', ['status'])
    op.create_index('ix_tasks_completed_approval', 'tasks', ['completed_approval'])
    op.create_index('ix_tasks_due_date', 'tasks', ['due_date'])
    op.create_index('ix_tasks_assigned_to', 'tasks', ['assigned_to'])
    op.create_index('ix_tasks_assigned_by', 'tasks', ['assigned_by'])
    op.create_index('ix_tasks_brand_id', 'tasks', ['brand_id'])
    op.create_index('ix_tasks_created_at', 'tasks', ['created_at'])

    # --- task_comments ---
    op.create_table(
        'task_comments',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('task_id', sa.String(), sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('user_name', sa.String(), nullable=False, server_default=''),
        sa.Column('user_email', sa.String(), nullable=False, server_default=''),
        sa.Column('user_role', sa.String(), nullable=False, server_default='user'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_task_comments_task_id', 'task_comments', ['task_id'])

    # --- task_history (insert-only) ---
    op.create_table(
        'task_history',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('task_id', sa.String(), sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('old_status', sa.String(), nullable=True),
        sa.Column('new_status', sa.String(), nullable=True),
        sa.Column('note', sa.Text(), nullable=False, server_default=''),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('user_name', sa.String(), nullable=False, server_default=''),
        sa.Column('user_email', sa.String(), nullable=False, server_default=''),
        sa.Column('user_role', sa.String(), nullable=False, server_default='user'),
        sa.Column('metadata', sa.JSON(), nullable=False, server_default='{}'),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_task_history_task_id', 'task_history', ['task_id'])
    op.create_index('ix_task_history_user_id', 'task_history', ['user_id'])
    op.create_index('idx_history_task_time', 'task_history', ['task_id', 'timestamp'])

    # --- audit_logs (append-only) ---
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=True),
        sa.Column('event_type', AUDIT_EVENT, nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('resource_type', sa.String(), nullable=True),
        sa.Column('resource_id', sa.String(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('request_id', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_logs_timestamp', 'audit_logs', ['timestamp'])
    op.create_index('ix_audit_logs_event_type', 'audit_logs', ['event_type'])
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_request_id', 'audit_logs', ['request_id'], unique=True)
    op.create_index('idx_audit_event_timestamp', 'audit_logs', ['event_type', 'timestamp'])
    op.create_index('idx_audit_resource', 'audit_logs', ['resource_type', 'resource_id'])


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('task_history')
    op.drop_table('task_comments')
    op.drop_table('tasks')
    op.drop_table('brands')
    op.drop_table('users')
    for enum in (AUDIT_EVENT, TASK_PRIORITY, TASK_STATUS, BRAND_STATUS, USER_ROLE):
        enum.drop(op.get_bind(), checkfirst=True)
