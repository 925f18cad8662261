"""
SifaPass Billing - Plan Administration Router

Superuser endpoints for curating the plan catalog.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from sifapass.database import get_db
from sifapass.dependencies import require_superuser
from sifapass.models.admin import Admin
from sifapass.schemas.billing import PlanCreate, PlanUpdate
from sifapass.services.plan_catalog import PlanCatalog


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/plans", tags=["Plans"])


@router.get("", summary="List plans")
async def list_plans(
    include_inactive: bool = Query(False, alias="includeInactive"),
    db: AsyncSession = Depends(get_db),
):
    plans = await PlanCatalog(db).list_plans(active_only=not include_inactive)
    return {"success": True, "data": [plan.to_dict() for plan in plans]}


@router.get("/{plan_id}", summary="Get plan")
async def get_plan(
    plan_id: UUID = Path(...),
    db: AsyncSession = Depends(get_db),
):
    plan = await PlanCatalog(db).get_plan(plan_id)
    return {"success": True, "data": plan.to_dict()}


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create plan")
async def create_plan(
    request: PlanCreate,
    current_admin: Admin = Depends(require_superuser),
    db: AsyncSession = Depends(get_db),
):
    plan = await PlanCatalog(db).create_plan(request)
    logger.info(f"Plan {plan.name} created by {current_admin.email}")
    return {"success": True, "message": "Plan created successfully", "data": plan.to_dict()}


@router.put("/{plan_id}", summary="Update plan")
async def update_plan(
    request: PlanUpdate,
    plan_id: UUID = Path(...),
    current_admin: Admin = Depends(require_superuser),
    db: AsyncSession = Depends(get_db),
):
    plan = await PlanCatalog(db).update_plan(plan_id, request)
    return {"success": True, "message": "Plan updated successfully", "data": plan.to_dict()}


@router.delete("/{plan_id}", summary="Delete plan")
async def delete_plan(
    plan_id: UUID = Path(...),
    current_admin: Admin = Depends(require_superuser),
    db: AsyncSession = Depends(get_db),
):
    """Deletes an unused plan; a plan still in use is deactivated instead."""
    deleted = await PlanCatalog(db).delete_plan(plan_id)
    message = "Plan deleted successfully" if deleted else "Plan is in use and was deactivated"
    return {"success": True, "message": message, "data": {"id": str(plan_id), "deleted": deleted}}
