# routers/users.py — Admin user management
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from auth import AuthService, Identity, normalize_email, public_user, require_admin
from database import get_db_session
from errors import ValidationError, NotFound, Conflict, store_errors
from models import User, Brand, AuditLog, AuditEventType, UserRole
from routers import envelope

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


# --- Schemas ---

class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: str = UserRole.USER.value


class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    role: Optional[str] = None
    password: Optional[str] = Field(default=None, min_length=6)


# --- Helpers ---

def _parse_role(role: str) -> UserRole:
    try:
        return UserRole(role)
    except ValueError:
        raise ValidationError(f"Invalid role: {role}. Allowed: admin, user")


async def _email_taken(email: str, db: AsyncSession, exclude_id: Optional[str] = None) -> bool:
    stmt = select(User).where(User.email == email)
    if exclude_id:
        stmt = stmt.where(User.id != exclude_id)
    return (await db.execute(stmt)).scalar_one_or_none() is not None


def _audit(db: AsyncSession, event_type: AuditEventType, admin: Identity, target_id: str, **details) -> None:
    db.add(AuditLog(
        event_type=event_type,
        user_id=admin.id,
        resource_type="user",
        resource_id=target_id,
        details=details or None,
    ))


# --- Endpoints ---

@router.get("")
async def list_users(
    admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    async with store_errors(db, "fetch users"):
        result = await db.execute(select(User).order_by(User.created_at.desc()))
        users = result.scalars().all()
    return envelope([public_user(u) for u in users], "Users fetched successfully")


@router.post("", status_code=201)
async def create_user(
    data: UserCreate,
    admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    email = normalize_email(data.email)
    role = _parse_role(data.role)
    async with store_errors(db, "create user"):
        if await _email_taken(email, db):
            raise Conflict("User already exists")
        user = User(
            name=data.name.strip(),
            email=email,
            password_hash=AuthService.hash_password(data.password),
            role=role,
        )
        db.add(user)
        await db.flush()
        _audit(db, AuditEventType.USER_CREATED, admin, user.id, role=role.value)
        await db.commit()
        await db.refresh(user)
    return envelope(public_user(user), "User created successfully")


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    data: UserUpdate,
    admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    async with store_errors(db, "update user"):
        user = await db.get(User, user_id)
        if not user:
            raise NotFound("User not found")

        changed = []
        role = _parse_role(data.role) if data.role is not None else None
        email = normalize_email(data.email) if data.email is not None else None
        if email and email != user.email and await _email_taken(email, db, exclude_id=user.id):
            raise Conflict("Email already in use")

        if data.name is not None and data.name.strip():
            user.name = data.name.strip()
            changed.append("name")
        if email:
            user.email = email
            changed.append("email")
        if role is not None:
            user.role = role
            changed.append("role")
        if data.password:
            user.password_hash = AuthService.hash_password(data.password)
            changed.append("password")

        _audit(db, AuditEventType.USER_UPDATED, admin, user.id, fields=changed)
        await db.commit()
        await db.refresh(user)
    return envelope(public_user(user), "User updated successfully")


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    if user_id == admin.id:
        raise ValidationError("You cannot delete your own account")

    async with store_errors(db, "delete user"):
        user = await db.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        owned = (await db.execute(
            select(func.count(Brand.id)).where(Brand.owner_id == user.id)
        )).scalar_one()
        if owned:
            raise Conflict(f"User still owns {owned} brands; delete them first")
        _audit(db, AuditEventType.USER_DELETED, admin, user.id, email=user.email)
        await db.delete(user)
        await db.commit()
    return envelope({"id": user_id}, "User deleted successfully")
