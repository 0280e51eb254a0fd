# app/api/v1/endpoints/campaign.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_db
from core.dependencies import get_current_user_optional
from core.exceptions import ValidationError
from core.permissions import require_admin, require_campaign_manager
from core.rate_limiter import rate_limit
from models.campaign import CampaignCategory, CampaignStatus
from models.user import User
from schemas.campaign import (
    CampaignCreate, CampaignSort, CampaignStatusChange, CampaignUpdate, CampaignUpdateCreate,
    ImpactReportCreate, ReasonRequest
)
from services.campaign_service import PUBLIC_STATUSES, CampaignService

router = APIRouter()


# ========== public listings ==========
@router.get("")
async def list_campaigns(
        category: Optional[CampaignCategory] = None,
        status: CampaignStatus = CampaignStatus.ACTIVE,
        sort: CampaignSort = CampaignSort.NEWEST,
        page: int = Query(1, ge=1),
        limit: int = Query(12, ge=1, le=100),
        db: AsyncSession = Depends(get_db),
):
    if status not in PUBLIC_STATUSES:
        raise ValidationError("Only active or completed campaigns can be listed")
    return await CampaignService(db).list_campaigns(category, status, sort, page, limit)


@router.get("/search")
async def search_campaigns(
        q: str = Query(..., min_length=1, max_length=100),
        category: Optional[CampaignCategory] = None,
        min_amount: Optional[float] = Query(None, ge=0),
        max_amount: Optional[float] = Query(None, ge=0),
        page: int = Query(1, ge=1),
        limit: int = Query(12, ge=1, le=100),
        db: AsyncSession = Depends(get_db),
):
    return await CampaignService(db).search(q, category, min_amount, max_amount, page, limit)


@router.get("/trending")
async def trending(limit: int = Query(10, ge=1, le=50), db: AsyncSession = Depends(get_db)):
    return {"campaigns": await CampaignService(db).trending(limit)}


@router.get("/urgent")
async def urgent(limit: int = Query(10, ge=1, le=50), db: AsyncSession = Depends(get_db)):
    return {"campaigns": await CampaignService(db).urgent(limit)}


@router.get("/featured")
async def featured(limit: int = Query(6, ge=1, le=50), db: AsyncSession = Depends(get_db)):
    return {"campaigns": await CampaignService(db).featured(limit)}


@router.get("/categories")
async def categories(db: AsyncSession = Depends(get_db)):
    return {"categories": await CampaignService(db).categories()}


@router.get("/my-campaigns")
@router.get("/user/my-campaigns")
async def my_campaigns(
        page: int = Query(1, ge=1),
        limit: int = Query(12, ge=1, le=100),
        user: User = Depends(require_campaign_manager),
        db: AsyncSession = Depends(get_db),
):
    return await CampaignService(db).my_campaigns(user, page, limit)


# ========== management ==========
@router.post("", status_code=201, dependencies=[Depends(rate_limit("campaign"))])
async def create_campaign(
        data: CampaignCreate,
        request: Request,
        user: User = Depends(require_campaign_manager),
        db: AsyncSession = Depends(get_db),
):
    campaign = await CampaignService(db, request).create_campaign(data, user)
    return {"message": "Campaign created successfully", "campaign": campaign}


@router.get("/{campaign_id}")
async def get_campaign(
        campaign_id: int,
        viewer: Optional[User] = Depends(get_current_user_optional),
        db: AsyncSession = Depends(get_db),
):
    return {"campaign": await CampaignService(db).get_campaign(campaign_id, viewer)}


@router.put("/{campaign_id}")
async def update_campaign(
        campaign_id: int,
        data: CampaignUpdate,
        request: Request,
        user: User = Depends(require_campaign_manager),
        db: AsyncSession = Depends(get_db),
):
    campaign = await CampaignService(db, request).update_campaign(campaign_id, data, user)
    return {"message": "Campaign updated successfully", "campaign": campaign}


@router.delete("/{campaign_id}")
async def delete_campaign(
        campaign_id: int,
        request: Request,
        user: User = Depends(require_campaign_manager),
        db: AsyncSession = Depends(get_db),
):
    return await CampaignService(db, request).delete_campaign(campaign_id, user)


@router.put("/{campaign_id}/status")
@router.patch("/{campaign_id}/status")
async def change_status(
        campaign_id: int,
        data: CampaignStatusChange,
        request: Request,
        user: User = Depends(require_campaign_manager),
        db: AsyncSession = Depends(get_db),
):
    campaign = await CampaignService(db, request).change_status(campaign_id, data, user)
    return {"message": "Campaign status updated", "campaign": campaign}


@router.put("/{campaign_id}/approve")
@router.post("/{campaign_id}/approve")
async def approve_campaign(
        campaign_id: int,
        request: Request,
        admin: User = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
):
    return await CampaignService(db, request).approve(campaign_id, admin)


@router.put("/{campaign_id}/reject")
@router.post("/{campaign_id}/reject")
async def reject_campaign(
        campaign_id: int,
        data: ReasonRequest,
        request: Request,
        admin: User = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
):
    return await CampaignService(db, request).reject(campaign_id, data.reason, admin)


# ========== embedded content ==========
@router.get("/{campaign_id}/donations")
async def campaign_donations(
        campaign_id: int,
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=100),
        viewer: Optional[User] = Depends(get_current_user_optional),
        db: AsyncSession = Depends(get_db),
):
    return await CampaignService(db).campaign_donations(campaign_id, page, limit, viewer)


@router.get("/{campaign_id}/updates")
async def list_updates(campaign_id: int, db: AsyncSession = Depends(get_db)):
    return {"updates": await CampaignService(db).updates(campaign_id)}


@router.post("/{campaign_id}/updates", status_code=201)
async def add_update(
        campaign_id: int,
        data: CampaignUpdateCreate,
        user: User = Depends(require_campaign_manager),
        db: AsyncSession = Depends(get_db),
):
    update = await CampaignService(db).add_update(campaign_id, data, user)
    return {"message": "Update posted", "update": update}


@router.get("/{campaign_id}/impact-reports")
async def list_impact_reports(campaign_id: int, db: AsyncSession = Depends(get_db)):
    return {"impact_reports": await CampaignService(db).impact_reports(campaign_id)}


@router.post("/{campaign_id}/impact-reports", status_code=201)
async def add_impact_report(
        campaign_id: int,
        data: ImpactReportCreate,
        user: User = Depends(require_campaign_manager),
        db: AsyncSession = Depends(get_db),
):
    report = await CampaignService(db).add_impact_report(campaign_id, data, user)
    return {"message": "Impact report added", "impact_report": report}


@router.post("/{campaign_id}/share")
async def share_campaign(campaign_id: int, db: AsyncSession = Depends(get_db)):
    return await CampaignService(db).share(campaign_id)
