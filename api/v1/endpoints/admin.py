# app/api/v1/endpoints/admin.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from core.capabilities import Capability, add_unimplemented_route
from core.database import get_db
from core.permissions import require_admin
from models.audit_log import AuditAction, AuditResource
from models.campaign import ApprovalStatus, CampaignCategory, CampaignStatus
from models.user import User, UserRole, UserStatus
from schemas.admin import SystemSettingsUpdate
from schemas.campaign import ReasonRequest
from schemas.notification import NotificationBroadcast
from schemas.user import UserRoleUpdate, UserStatusUpdate
from services.admin_service import AdminService
from services.campaign_service import CampaignService
from services.notification_service import NotificationService
from services.statistics_service import StatisticsService

router = APIRouter(dependencies=[Depends(require_admin)])


# ========== users ==========
@router.get("/users")
async def list_users(
        role: Optional[UserRole] = None,
        status: Optional[UserStatus] = None,
        search: Optional[str] = Query(None, max_length=100),
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=100),
        db: AsyncSession = Depends(get_db),
):
    return await AdminService(db).list_users(role, status, search, page, limit)


@router.get("/users/{user_id}")
async def get_user(user_id: int, db: AsyncSession = Depends(get_db)):
    return await AdminService(db).get_user(user_id)


@router.put("/users/{user_id}/status")
async def update_user_status(
        user_id: int,
        data: UserStatusUpdate,
        request: Request,
        admin: User = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
):
    return await AdminService(db, request).update_user_status(user_id, data, admin)


@router.put("/users/{user_id}/role")
async def update_user_role(
        user_id: int,
        data: UserRoleUpdate,
        request: Request,
        admin: User = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
):
    return await AdminService(db, request).update_user_role(user_id, data, admin)


@router.delete("/users/{user_id}")
async def delete_user(
        user_id: int,
        request: Request,
        admin: User = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
):
    return await AdminService(db, request).delete_user(user_id, admin)


# ========== campaigns ==========
@router.get("/campaigns")
async def list_campaigns(
        status: Optional[CampaignStatus] = None,
        approval_status: Optional[ApprovalStatus] = None,
        category: Optional[CampaignCategory] = None,
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=100),
        db: AsyncSession = Depends(get_db),
):
    return await CampaignService(db).admin_list(status, approval_status, category, page, limit)


@router.get("/campaigns/pending")
async def pending_campaigns(
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=100),
        db: AsyncSession = Depends(get_db),
):
    return await CampaignService(db).pending_campaigns(page, limit)


@router.put("/campaigns/{campaign_id}/approve")
async def approve_campaign(
        campaign_id: int,
        request: Request,
        admin: User = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
):
    return await CampaignService(db, request).approve(campaign_id, admin)


@router.put("/campaigns/{campaign_id}/reject")
async def reject_campaign(
        campaign_id: int,
        data: ReasonRequest,
        request: Request,
        admin: User = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
):
    return await CampaignService(db, request).reject(campaign_id, data.reason, admin)


@router.put("/campaigns/{campaign_id}/suspend")
async def suspend_campaign(
        campaign_id: int,
        data: ReasonRequest,
        request: Request,
        admin: User = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
):
    return await CampaignService(db, request).suspend(campaign_id, data.reason, admin)


# ========== platform ==========
@router.get("/stats")
async def platform_stats(db: AsyncSession = Depends(get_db)):
    return await StatisticsService(db).platform_stats()


@router.get("/logs/audit")
async def audit_logs(
        action: Optional[AuditAction] = None,
        resource: Optional[AuditResource] = None,
        user_id: Optional[int] = None,
        page: int = Query(1, ge=1),
        limit: int = Query(50, ge=1, le=200),
        db: AsyncSession = Depends(get_db),
):
    return await AdminService(db).audit_logs(page, limit, action=action, resource=resource, user_id=user_id)


@router.post("/notifications/broadcast")
async def broadcast(
        payload: NotificationBroadcast,
        admin: User = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
):
    return await NotificationService(db).broadcast(payload, admin)


@router.get("/settings")
async def get_settings():
    return {"settings": AdminService.get_settings()}


@router.put("/settings")
async def update_settings(
        data: SystemSettingsUpdate,
        request: Request,
        admin: User = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
):
    return await AdminService(db, request).update_settings(data, admin)


# ========== not built yet ==========
add_unimplemented_route(router, "GET", "/donations", Capability.ADMIN_DONATIONS)
add_unimplemented_route(router, "GET", "/donations/flagged", Capability.FLAGGED_DONATIONS)
add_unimplemented_route(router, "PUT", "/donations/{donation_id}/verify", Capability.DONATION_VERIFICATION)
add_unimplemented_route(router, "POST", "/donations/{donation_id}/refund", Capability.ADMIN_REFUNDS)
add_unimplemented_route(router, "GET", "/reports/financial", Capability.FINANCIAL_REPORTS)
add_unimplemented_route(router, "GET", "/reports/tax", Capability.TAX_REPORTS)
add_unimplemented_route(router, "GET", "/reports/audit", Capability.AUDIT_REPORTS)
add_unimplemented_route(router, "GET", "/stats/overview", Capability.PLATFORM_OVERVIEW)
add_unimplemented_route(router, "GET", "/stats/growth", Capability.GROWTH_STATS)
add_unimplemented_route(router, "GET", "/stats/performance", Capability.PERFORMANCE_STATS)
add_unimplemented_route(router, "GET", "/logs/errors", Capability.ERROR_LOGS)
for resource in ("users", "campaigns", "donations"):
    add_unimplemented_route(router, "GET", f"/export/{resource}", Capability.DATA_EXPORT)
