# app/api/v1/endpoints/analytics.py
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from core.capabilities import Capability, add_unimplemented_route
from core.database import get_db
from core.permissions import get_current_user, require_admin, require_campaign_manager, require_roles
from models.user import User, UserRole
from services.campaign_service import CampaignService
from services.dashboard_service import DashboardService
from services.statistics_service import StatisticsService

router = APIRouter(dependencies=[Depends(get_current_user)])

require_donation_viewer = require_roles(UserRole.DONOR, UserRole.CAMPAIGN_LEADER, UserRole.ADMIN)


@router.get("/dashboard")
async def dashboard(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await DashboardService(db).get_dashboard(user)


@router.get("/user")
async def user_stats(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return {"overview": await StatisticsService(db).user_stats(user)}


@router.get("/trends")
async def trends(
        period: Optional[str] = None,
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    return await StatisticsService(db).trends(period, user)


@router.get("/categories")
async def categories(db: AsyncSession = Depends(get_db)):
    return {"categories": await CampaignService(db).category_breakdown()}


# ========== campaigns ==========
@router.get("/campaigns/overview")
async def campaign_overview(user: User = Depends(require_campaign_manager), db: AsyncSession = Depends(get_db)):
    return await StatisticsService(db).campaign_overview(user)


@router.get("/campaigns/{campaign_id}/performance")
async def campaign_performance(
        campaign_id: int,
        user: User = Depends(require_campaign_manager),
        db: AsyncSession = Depends(get_db),
):
    return await StatisticsService(db).campaign_performance(campaign_id, user)


# ========== donations ==========
@router.get("/donations/summary")
async def donation_summary(
        period: Optional[str] = None,
        user: User = Depends(require_donation_viewer),
        db: AsyncSession = Depends(get_db),
):
    return await StatisticsService(db).donation_summary(user, period)


@router.get("/donations/trends")
async def donation_trends(
        period: Optional[str] = None,
        user: User = Depends(require_campaign_manager),
        db: AsyncSession = Depends(get_db),
):
    return await StatisticsService(db).donation_trends(user, period)


# ========== admin ==========
@router.get("/admin/platform-stats", dependencies=[Depends(require_admin)])
async def platform_stats(db: AsyncSession = Depends(get_db)):
    return await StatisticsService(db).platform_stats()


@router.get("/admin/user-analytics", dependencies=[Depends(require_admin)])
async def user_analytics(period: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    return await StatisticsService(db).user_analytics(period)


@router.get("/admin/financial-report", dependencies=[Depends(require_admin)])
async def financial_report(period: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    return await StatisticsService(db).financial_report(period)


add_unimplemented_route(router, "GET", "/admin/export", Capability.DATA_EXPORT, dependencies=[Depends(require_admin)])
