# brands.py — Brand (workspace) manager
# - Typed input + pure normalisation into a validated payload
# - Upsert keyed on (owner, name, company)
# - Collaborator invitation state machine: pending -> accepted | declined
# - Embedded, append-only brand history

import uuid
import logging
from dataclasses import dataclass, field, asdict
from typing import Optional, List, Dict, Any, Tuple

from pydantic import AliasChoices, BaseModel, EmailStr, Field
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from access import can_access_brand, can_manage_brand
from auth import Identity, normalize_email
from errors import (
    ServiceError, ValidationError, Unauthorized, Forbidden, NotFound, Conflict, store_errors,
)
from models import (
    Brand, Task, User, AuditLog, AuditEventType,
    BrandStatus, BrandHistoryAction, CollaboratorRole, CollaboratorStatus, TaskStatus,
    utcnow,
)
from tasks import delete_task_rows, task_to_dict

logger = logging.getLogger("brand-tasks.brands")


# ============================================================
# INPUT / PAYLOAD
# ============================================================

class BrandInput(BaseModel):
    """Raw brand fields as a caller sends them"""
    client_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("client_id", "clientId", "id"),
    )
    name: Optional[str] = None
    company: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    website: Optional[str] = None
    logo: Optional[str] = None
    status: Optional[str] = None


class BulkBrandRequest(BaseModel):
    brands: List[BrandInput] = Field(default_factory=list)


class InviteRequest(BaseModel):
    email: EmailStr
    role: str = CollaboratorRole.MEMBER.value
    message: str = ""


class RespondRequest(BaseModel):
    action: str


class CollaboratorRoleRequest(BaseModel):
    role: str


@dataclass(frozen=True)
class BrandPayload:
    """Validated brand fields"""
    name: str
    company: str = ""
    description: str = ""
    category: str = "Other"
    website: str = ""
    logo: str = ""
    status: BrandStatus = BrandStatus.ACTIVE


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def normalize_brand_payload(data: BrandInput) -> BrandPayload:
    name = _clean(data.name)
    if not name:
        raise ValidationError("Brand name is required")

    raw_status = _clean(data.status).lower() or BrandStatus.ACTIVE.value
    try:
        status = BrandStatus(raw_status)
    except ValueError:
        raise ValidationError(f"Invalid brand status: {raw_status}")

    return BrandPayload(
        name=name,
        company=_clean(data.company),
        description=_clean(data.description),
        category=_clean(data.category) or "Other",
        website=_clean(data.website),
        logo=data.logo or "",
        status=status,
    )


# ============================================================
# EMBEDDED DOCUMENTS
# ============================================================

@dataclass(frozen=True)
class BrandHistoryEntry:
    """One immutable entry in a brand's embedded history"""
    action: str
    description: str
    user_id: str
    user_name: str
    user_email: str
    user_role: str
    timestamp: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @staticmethod
    def create(action: BrandHistoryAction, description: str, identity: Identity,
               metadata: Dict[str, Any] = None) -> "BrandHistoryEntry":
        return BrandHistoryEntry(
            action=action.value,
            description=description,
            user_id=identity.id,
            user_name=identity.name or "Unknown",
            user_email=normalize_email(identity.email),
            user_role=identity.role,
            timestamp=utcnow().isoformat(),
            metadata=metadata or {},
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def append_history(brand: Brand, entry: BrandHistoryEntry) -> None:
    # JSON columns only persist on reassignment
    brand.history = [*(brand.history or []), entry.to_dict()]


def _replace_collaborator(brand: Brand, email: str, **changes) -> Dict[str, Any]:
    updated = None
    collaborators = []
    for c in brand.collaborators or []:
        if normalize_email(c.get("email")) == email:
            c = {**c, **changes}
            updated = c
        collaborators.append(c)
    brand.collaborators = collaborators
    return updated


def _find_collaborator(brand: Brand, email: str) -> Optional[Dict[str, Any]]:
    email = normalize_email(email)
    for c in brand.collaborators or []:
        if normalize_email(c.get("email")) == email:
            return c
    return None


# ============================================================
# SERIALISATION
# ============================================================

def brand_to_dict(brand: Brand) -> Dict[str, Any]:
    return {
        "id": brand.id,
        "name": brand.name,
        "company": brand.company or "",
        "description": brand.description or "",
        "category": brand.category or "Other",
        "website": brand.website or "",
        "logo": brand.logo or "",
        "status": brand.status.value if isinstance(brand.status, BrandStatus) else brand.status,
        "owner_id": brand.owner_id,
        "collaborators": list(brand.collaborators or []),
        "history": list(brand.history or []),
        "created_at": brand.created_at.isoformat() if brand.created_at else None,
        "updated_at": brand.updated_at.isoformat() if brand.updated_at else None,
    }


def compute_task_stats(tasks: List[Task]) -> Dict[str, int]:
    return {
        "total_tasks": len(tasks),
        "completed_tasks": sum(1 for t in tasks if t.status == TaskStatus.COMPLETED),
        "pending_tasks": sum(1 for t in tasks if t.status == TaskStatus.PENDING),
        "in_progress_tasks": sum(1 for t in tasks if t.status == TaskStatus.IN_PROGRESS),
        "overdue_tasks": sum(1 for t in tasks if t.overdue),
    }


def locked_brand_stmt(brand_id: str):
    # FOR UPDATE is a no-op on SQLite
    return (
        select(Brand)
        .where(Brand.id == brand_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


# ============================================================
# BRAND SERVICE
# ============================================================

class BrandService:
    """Brand lifecycle, collaborators and history"""

    @staticmethod
    async def _require_identity(identity: Optional[Identity], db: AsyncSession) -> Identity:
        if identity is None or not identity.id:
            raise Unauthorized("Unauthorized")
        if await db.get(User, identity.id) is None:
            raise Unauthorized("Unauthorized")
        return identity

    @staticmethod
    async def _get_brand(brand_id: str, db: AsyncSession, lock: bool = False) -> Brand:
        """Load a brand; with lock, hold its row until commit so collaborator
        list rewrites are serialised."""
        if lock:
            brand = (await db.execute(locked_brand_stmt(brand_id))).scalar_one_or_none()
        else:
            brand = await db.get(Brand, brand_id)
        if not brand:
            raise NotFound("Brand not found")
        return brand

    @staticmethod
    async def _upsert(payload: BrandPayload, identity: Identity, db: AsyncSession,
                      update_description: str, metadata: Dict[str, Any]) -> Tuple[Brand, bool]:
        """Returns the brand and whether it was created."""
        stmt = select(Brand).where(
            Brand.owner_id == identity.id,
            Brand.name == payload.name,
            Brand.company == payload.company,
        )
        existing = (await db.execute(stmt)).scalar_one_or_none()

        if existing:
            existing.description = payload.description
            existing.status = payload.status
            append_history(existing, BrandHistoryEntry.create(
                BrandHistoryAction.BRAND_UPDATED, update_description, identity, metadata,
            ))
            await db.commit()
            await db.refresh(existing)
            return existing, False

        brand = Brand(
            name=payload.name,
            company=payload.company,
            description=payload.description,
            category=payload.category,
            website=payload.website,
            logo=payload.logo,
            status=payload.status,
            owner_id=identity.id,
            collaborators=[],
            history=[BrandHistoryEntry.create(
                BrandHistoryAction.BRAND_CREATED, f"Brand created: {payload.name}", identity, metadata,
            ).to_dict()],
        )
        db.add(brand)
        await db.commit()
        await db.refresh(brand)
        logger.info("Brand %s created by %s", brand.id, identity.id)
        return brand, True

    @staticmethod
    async def create_or_update_brand(data: BrandInput, identity: Optional[Identity],
                                     db: AsyncSession) -> Tuple[Brand, bool]:
        async with store_errors(db, "create brand"):
            identity = await BrandService._require_identity(identity, db)
            payload = normalize_brand_payload(data)
            return await BrandService._upsert(
                payload, identity, db,
                update_description=f"Brand updated: {payload.name}",
                metadata={"name": payload.name, "company": payload.company},
            )

    @staticmethod
    async def bulk_upsert(items: List[BrandInput], identity: Optional[Identity], db: AsyncSession) -> List[Dict[str, Any]]:
        """Upsert each item on its own; one bad item never fails the batch.

        Items without a name are skipped and get no result entry.
        """
        if not items:
            raise ValidationError("brands array is required")

        async with store_errors(db, "bulk upsert brands"):
            identity = await BrandService._require_identity(identity, db)

        results: List[Dict[str, Any]] = []
        for item in items:
            client_id = item.client_id or ""
            if not _clean(item.name):
                logger.info("Bulk upsert skipped unnamed item %r", client_id)
                continue
            try:
                payload = normalize_brand_payload(item)
                async with store_errors(db, "upsert brand"):
                    brand, _ = await BrandService._upsert(
                        payload, identity, db,
                        update_description=f"Brand upserted: {payload.name}",
                        metadata={"name": payload.name, "company": payload.company, "client_id": client_id},
                    )
            except ServiceError as exc:
                logger.warning("Bulk upsert item %r failed: %s", client_id, exc.message)
                results.append({"client_id": client_id, "success": False, "error": exc.message})
                continue
            results.append({"client_id": client_id, "success": True, "data": brand_to_dict(brand)})
        return results

    @staticmethod
    async def list_brands(identity: Identity, db: AsyncSession, search: Optional[str] = None,
                          status: Optional[str] = None, company: Optional[str] = None) -> List[Brand]:
        stmt = select(Brand)
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(or_(
                Brand.name.ilike(pattern),
                Brand.company.ilike(pattern),
                Brand.description.ilike(pattern),
            ))
        if status and status != "all":
            try:
                stmt = stmt.where(Brand.status == BrandStatus(status))
            except ValueError:
                raise ValidationError(f"Invalid brand status: {status}")
        if company and company != "all":
            stmt = stmt.where(Brand.company == company)
        stmt = stmt.order_by(Brand.created_at.desc())

        async with store_errors(db, "fetch brands"):
            brands = (await db.execute(stmt)).scalars().all()
        if identity.is_admin:
            return list(brands)
        return [b for b in brands if can_access_brand(b, identity)]

    @staticmethod
    async def get_brand(brand_id: str, identity: Identity, db: AsyncSession) -> Dict[str, Any]:
        async with store_errors(db, "fetch brand"):
            brand = await BrandService._get_brand(brand_id, db)
            if not can_access_brand(brand, identity):
                raise Forbidden("Not authorized to access this brand")

            stmt = select(Task).where(Task.brand_id == brand.id).order_by(Task.created_at.desc())
            tasks = (await db.execute(stmt)).scalars().all()

        collaborators = brand.collaborators or []
        stats = compute_task_stats(tasks)
        stats.update({
            "collaborators_count": len(collaborators),
            "active_collaborators": sum(1 for c in collaborators if c.get("status") == CollaboratorStatus.ACCEPTED.value),
            "pending_invites": sum(1 for c in collaborators if c.get("status") == CollaboratorStatus.PENDING.value),
        })
        return {
            "brand": brand_to_dict(brand),
            "tasks": [task_to_dict(t) for t in tasks],
            "stats": stats,
        }

    @staticmethod
    async def update_brand(brand_id: str, data: BrandInput, identity: Identity, db: AsyncSession) -> Brand:
        """Non-empty fields overwrite; owner and collaborators are untouched."""
        async with store_errors(db, "update brand"):
            brand = await BrandService._get_brand(brand_id, db)
            if not can_manage_brand(brand, identity):
                raise Forbidden("Only owner or admin can update brand")

            status = brand.status
            if data.status is not None and _clean(data.status):
                try:
                    status = BrandStatus(_clean(data.status).lower())
                except ValueError:
                    raise ValidationError(f"Invalid brand status: {data.status}")

            name = _clean(data.name) or brand.name
            company = _clean(data.company) or brand.company
            if (name, company) != (brand.name, brand.company):
                clash = (await db.execute(select(Brand.id).where(
                    Brand.owner_id == brand.owner_id,
                    Brand.name == name,
                    Brand.company == company,
                    Brand.id != brand.id,
                ))).first()
                if clash:
                    raise Conflict("A brand with this name and company already exists")

            brand.status = status
            for attr in ("name", "company", "category"):
                value = _clean(getattr(data, attr))
                if value:
                    setattr(brand, attr, value)
            for attr in ("description", "website"):
                value = getattr(data, attr)
                if value is not None:
                    setattr(brand, attr, value.strip())
            if data.logo is not None:
                brand.logo = data.logo

            append_history(brand, BrandHistoryEntry.create(
                BrandHistoryAction.BRAND_UPDATED, "Brand details updated", identity,
                {"name": brand.name, "company": brand.company, "status": brand.status.value},
            ))
            await db.commit()
            await db.refresh(brand)
        return brand

    @staticmethod
    async def invite_collaborator(brand_id: str, data: InviteRequest, identity: Identity, db: AsyncSession) -> Brand:
        email = normalize_email(data.email)
        try:
            role = CollaboratorRole(data.role or CollaboratorRole.MEMBER.value)
        except ValueError:
            raise ValidationError(f"Invalid collaborator role: {data.role}")
        if role == CollaboratorRole.OWNER:
            raise ValidationError("Cannot invite a collaborator as owner")

        async with store_errors(db, "invite collaborator"):
            brand = await BrandService._get_brand(brand_id, db, lock=True)
            if not can_manage_brand(brand, identity):
                raise Forbidden("Only owner/admin can invite collaborators")
            if _find_collaborator(brand, email):
                raise Conflict("User already invited/exists in collaborators")

            invitee = (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()
            brand.collaborators = [*(brand.collaborators or []), {
                "id": str(uuid.uuid4()),
                "user_id": invitee.id if invitee else None,
                "email": email,
                "name": (invitee.name if invitee else "") or email.split("@")[0],
                "role": role.value,
                "status": CollaboratorStatus.PENDING.value,
                "invited_at": utcnow().isoformat(),
                "joined_at": None,
                "invited_by": normalize_email(identity.email),
            }]
            append_history(brand, BrandHistoryEntry.create(
                BrandHistoryAction.COLLABORATOR_INVITED,
                f"Invitation sent to {email} for {role.value} role", identity,
                {"email": email, "role": role.value, "message": data.message or ""},
            ))
            await db.commit()
            await db.refresh(brand)

        logger.info("Brand %s: %s invited %s", brand.id, identity.id, email)
        return brand

    @staticmethod
    async def respond_to_invite(brand_id: str, action: str, identity: Identity, db: AsyncSession) -> Brand:
        """pending -> accepted | declined; both are terminal."""
        if action not in ("accept", "decline"):
            raise ValidationError("Action must be accept or decline")
        email = normalize_email(identity.email)

        async with store_errors(db, "respond to invite"):
            brand = await BrandService._get_brand(brand_id, db, lock=True)
            collaborator = _find_collaborator(brand, email)
            if collaborator is None:
                raise NotFound("Invite not found for this user")
            if collaborator.get("status") != CollaboratorStatus.PENDING.value:
                raise Conflict(f"Invite already {collaborator.get('status')}")

            if action == "accept":
                _replace_collaborator(
                    brand, email,
                    status=CollaboratorStatus.ACCEPTED.value,
                    joined_at=utcnow().isoformat(),
                    user_id=identity.id,
                )
                history_action = BrandHistoryAction.COLLABORATOR_ACCEPTED
                description = f"{email} accepted the invite"
            else:
                _replace_collaborator(brand, email, status=CollaboratorStatus.DECLINED.value)
                history_action = BrandHistoryAction.COLLABORATOR_DECLINED
                description = f"{email} declined the invite"

            append_history(brand, BrandHistoryEntry.create(history_action, description, identity, {"email": email}))
            await db.commit()
            await db.refresh(brand)
        return brand

    @staticmethod
    async def remove_collaborator(brand_id: str, email: str, identity: Identity, db: AsyncSession) -> Brand:
        email = normalize_email(email)
        async with store_errors(db, "remove collaborator"):
            brand = await BrandService._get_brand(brand_id, db, lock=True)
            if not can_manage_brand(brand, identity):
                raise Forbidden("Only owner or admin can remove collaborators")
            removed = _find_collaborator(brand, email)
            if removed is None:
                raise NotFound("Collaborator not found")

            brand.collaborators = [
                c for c in brand.collaborators or [] if normalize_email(c.get("email")) != email
            ]
            append_history(brand, BrandHistoryEntry.create(
                BrandHistoryAction.COLLABORATOR_REMOVED, f"Collaborator {email} removed", identity,
                {"email": email, "role": removed.get("role"), "status": removed.get("status")},
            ))
            await db.commit()
            await db.refresh(brand)
        return brand

    @staticmethod
    async def change_collaborator_role(brand_id: str, email: str, role: str,
                                       identity: Identity, db: AsyncSession) -> Brand:
        email = normalize_email(email)
        try:
            new_role = CollaboratorRole(role)
        except ValueError:
            raise ValidationError(f"Invalid collaborator role: {role}")
        if new_role == CollaboratorRole.OWNER:
            raise ValidationError("Ownership cannot be transferred")

        async with store_errors(db, "change collaborator role"):
            brand = await BrandService._get_brand(brand_id, db, lock=True)
            if not can_manage_brand(brand, identity):
                raise Forbidden("Only owner or admin can change collaborator roles")
            current = _find_collaborator(brand, email)
            if current is None:
                raise NotFound("Collaborator not found")

            old_role = current.get("role")
            _replace_collaborator(brand, email, role=new_role.value)
            append_history(brand, BrandHistoryEntry.create(
                BrandHistoryAction.COLLABORATOR_ROLE_CHANGED,
                f"{email} role changed from {old_role} to {new_role.value}", identity,
                {"email": email, "old_role": old_role, "new_role": new_role.value},
            ))
            await db.commit()
            await db.refresh(brand)
        return brand

    @staticmethod
    async def delete_brand(brand_id: str, identity: Identity, db: AsyncSession, force: bool = False) -> Dict[str, Any]:
        """Dependent tasks block deletion unless force is set, in which case they go first."""
        async with store_errors(db, "delete brand"):
            brand = await BrandService._get_brand(brand_id, db)
            if not can_manage_brand(brand, identity):
                raise Forbidden("Only owner or admin can delete brand")

            task_ids = (await db.execute(
                select(Task.id).where(Task.brand_id == brand.id)
            )).scalars().all()
            if task_ids and not force:
                raise Conflict(
                    f"Cannot delete brand with {len(task_ids)} associated tasks. "
                    "Use force=true to delete anyway.",
                    status_code=400,
                )

            append_history(brand, BrandHistoryEntry.create(
                BrandHistoryAction.BRAND_DELETED, f"Brand deleted: {brand.name}", identity,
                {"name": brand.name, "company": brand.company, "deleted_tasks": len(task_ids)},
            ))
            # The brand row goes away; its history survives in the audit log
            db.add(AuditLog(
                event_type=AuditEventType.BRAND_DELETED,
                user_id=identity.id,
                resource_type="brand",
                resource_id=brand.id,
                details={
                    "name": brand.name,
                    "company": brand.company,
                    "task_ids": list(task_ids),
                    "history": list(brand.history),
                },
            ))
            await db.flush()

            if task_ids:
                await delete_task_rows(list(task_ids), db)
            await db.delete(brand)
            await db.commit()

        logger.info("Brand %s deleted by %s (force=%s, tasks=%d)", brand_id, identity.id, force, len(task_ids))
        return {"id": brand_id, "name": brand.name, "deleted_tasks": len(task_ids)}

