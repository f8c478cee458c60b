# access.py — Authorization predicates shared by the brand and task managers
from typing import Optional

from auth import Identity, normalize_email
from models import Brand, Task, CollaboratorStatus


def can_access_brand(brand: Optional[Brand], identity: Optional[Identity]) -> bool:
    """Admin, owner, or an accepted collaborator whose email matches"""
    if brand is None or identity is None:
        return False
    if identity.is_admin:
        return True
    if brand.owner_id == identity.id:
        return True
    email = normalize_email(identity.email)
    return any(
        normalize_email(c.get("email")) == email
        and c.get("status") == CollaboratorStatus.ACCEPTED.value
        for c in (brand.collaborators or [])
    )


def can_manage_brand(brand: Brand, identity: Identity) -> bool:
    """Owner or platform admin; gates update, invite, delete"""
    return identity.is_admin or brand.owner_id == identity.id


def can_access_task(task: Optional[Task], identity: Optional[Identity]) -> bool:
    if task is None or identity is None:
        return False
    if identity.is_admin:
        return True
    email = normalize_email(identity.email)
    return email in (normalize_email(task.assigned_to), normalize_email(task.assigned_by))
