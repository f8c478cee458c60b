# routers/brands.py — Brands (workspaces) and their collaborators
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from auth import Identity, get_current_user
from brands import (
    BrandService, BrandInput, BulkBrandRequest, InviteRequest, RespondRequest,
    CollaboratorRoleRequest, brand_to_dict,
)
from database import get_db_session
from routers import envelope

router = APIRouter(prefix="/api/v1/brands", tags=["Brands"])


@router.get("")
async def list_brands(
    search: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
    company: Optional[str] = Query(default=None),
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    brands = await BrandService.list_brands(user, db, search=search, status=status, company=company)
    data = [brand_to_dict(b) for b in brands]
    return {"success": True, "message": "Brands fetched successfully", "data": data, "total": len(data)}


@router.post("")
async def create_brand(
    data: BrandInput,
    response: Response,
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Create a brand, or update the caller's brand with the same name and company"""
    brand, created = await BrandService.create_or_update_brand(data, user, db)
    if created:
        response.status_code = 201
        return envelope(brand_to_dict(brand), "Brand created successfully")
    return envelope(brand_to_dict(brand), "Brand updated successfully")


@router.post("/bulk")
async def bulk_upsert_brands(
    data: BulkBrandRequest,
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    results = await BrandService.bulk_upsert(data.brands, user, db)
    return envelope(results, "Brands upserted")


@router.get("/{brand_id}")
async def get_brand(
    brand_id: str,
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Brand with its tasks and task/collaborator stats"""
    details = await BrandService.get_brand(brand_id, user, db)
    return envelope(details, "Brand fetched successfully")


@router.put("/{brand_id}")
async def update_brand(
    brand_id: str,
    data: BrandInput,
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    brand = await BrandService.update_brand(brand_id, data, user, db)
    return envelope(brand_to_dict(brand), "Brand updated successfully")


@router.delete("/{brand_id}")
async def delete_brand(
    brand_id: str,
    force: bool = Query(default=False),
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    result = await BrandService.delete_brand(brand_id, user, db, force=force)
    return envelope(result, "Brand deleted successfully")


@router.post("/{brand_id}/invite")
async def invite_collaborator(
    brand_id: str,
    data: InviteRequest,
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    brand = await BrandService.invite_collaborator(brand_id, data, user, db)
    return envelope(brand_to_dict(brand), "Invitation created successfully")


@router.post("/{brand_id}/respond")
async def respond_to_invite(
    brand_id: str,
    data: RespondRequest,
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    brand = await BrandService.respond_to_invite(brand_id, data.action, user, db)
    message = "Invite accepted" if data.action == "accept" else "Invite declined"
    return envelope(brand_to_dict(brand), message)


@router.delete("/{brand_id}/collaborators/{email}")
async def remove_collaborator(
    brand_id: str,
    email: str,
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    brand = await BrandService.remove_collaborator(brand_id, email, user, db)
    return envelope(brand_to_dict(brand), "Collaborator removed")


@router.patch("/{brand_id}/collaborators/{email}")
async def change_collaborator_role(
    brand_id: str,
    email: str,
    data: CollaboratorRoleRequest,
    user: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    brand = await BrandService.change_collaborator_role(brand_id, email, data.role, user, db)
    return envelope(brand_to_dict(brand), "Collaborator role updated")
