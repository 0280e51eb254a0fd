# app/services/campaign_service.py
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import Request
from sqlalchemy import select, func, or_, desc, asc, update, case
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import defer

from core.config import settings
from core.constants import CATEGORIES, TRENDING_WEIGHTS, TRENDING_WINDOW_DAYS, URGENT_WINDOW_DAYS
from core.exceptions import Forbidden, InvalidState, NotFound, ValidationError
from models.audit_log import AuditAction, AuditResource
from models.campaign import ApprovalStatus, Campaign, CampaignCategory, CampaignStatus
from models.donation import Donation, DonationStatus
from models.user import User, UserRole
from schemas.campaign import (
    CampaignCreate, CampaignDetail, CampaignSort, CampaignStatusChange, CampaignSummary,
    CampaignUpdate, CampaignUpdateCreate, ImpactReportCreate
)
from schemas.donation import PublicDonationRead
from services.audit_service import AuditService
from services.notification_service import NotificationService
from utils.pagination import page_info, paginate

logger = logging.getLogger(__name__)

PUBLIC_STATUSES = {CampaignStatus.ACTIVE, CampaignStatus.COMPLETED}

SORTS = {
    CampaignSort.NEWEST: [desc(Campaign.created_at), desc(Campaign.id)],
    CampaignSort.PROGRESS: [desc(Campaign.raised), desc(Campaign.id)],
    CampaignSort.TARGET: [desc(Campaign.goal), desc(Campaign.id)],
    CampaignSort.ENDING_SOON: [asc(Campaign.end_date), asc(Campaign.id)],
}

# status changes a campaign leader may make on their own campaign
LEADER_TRANSITIONS = {
    CampaignStatus.DRAFT: {CampaignStatus.PENDING, CampaignStatus.CANCELLED},
    CampaignStatus.PENDING: {CampaignStatus.DRAFT, CampaignStatus.CANCELLED},
    CampaignStatus.ACTIVE: {CampaignStatus.CANCELLED},
}

ADMIN_TRANSITIONS = {
    CampaignStatus.DRAFT: {CampaignStatus.PENDING, CampaignStatus.ACTIVE, CampaignStatus.CANCELLED},
    CampaignStatus.PENDING: {CampaignStatus.DRAFT, CampaignStatus.ACTIVE, CampaignStatus.CANCELLED},
    CampaignStatus.ACTIVE: {CampaignStatus.SUSPENDED, CampaignStatus.COMPLETED, CampaignStatus.CANCELLED},
    CampaignStatus.SUSPENDED: {CampaignStatus.ACTIVE, CampaignStatus.CANCELLED},
}

LIST_OPTIONS = (defer(Campaign.updates), defer(Campaign.impact_reports))


def summary(campaign: Campaign) -> Dict[str, Any]:
    return CampaignSummary.model_validate(campaign).model_dump()


def detail(campaign: Campaign) -> Dict[str, Any]:
    return CampaignDetail.model_validate(campaign).model_dump()


class CampaignService:
    def __init__(self, db: AsyncSession, request: Optional[Request] = None):
        self.db = db
        self.audit = AuditService(db, request)
        self.notifications = NotificationService(db)

    # ---------- listing ----------
    async def list_campaigns(
            self,
            category: Optional[CampaignCategory] = None,
            status: CampaignStatus = CampaignStatus.ACTIVE,
            sort: CampaignSort = CampaignSort.NEWEST,
            page: int = 1,
            limit: int = 12,
    ) -> Dict[str, Any]:
        query = select(Campaign).options(*LIST_OPTIONS).where(Campaign.status == status)
        if category:
            query = query.where(Campaign.category == category)

        total = await self._count(query)
        result = await self.db.execute(
            query.order_by(*SORTS[sort]).offset((page - 1) * limit).limit(limit)
        )

        return {
            "campaigns": [summary(c) for c in result.scalars().all()],
            "pagination": page_info(total, page, limit, total_key="total_campaigns"),
        }

    async def search(
            self,
            q: str,
            category: Optional[CampaignCategory] = None,
            min_amount: Optional[float] = None,
            max_amount: Optional[float] = None,
            page: int = 1,
            limit: int = 12,
    ) -> Dict[str, Any]:
        if min_amount is not None and max_amount is not None and min_amount > max_amount:
            raise ValidationError("min_amount cannot exceed max_amount")

        pattern = f"%{q.strip()}%"
        query = select(Campaign).options(*LIST_OPTIONS).where(
            Campaign.status == CampaignStatus.ACTIVE,
            or_(
                Campaign.title.ilike(pattern),
                Campaign.description.ilike(pattern),
                Campaign.organization_name.ilike(pattern),
            )
        )
        if category:
            query = query.where(Campaign.category == category)
        if min_amount is not None:
            query = query.where(Campaign.goal >= min_amount)
        if max_amount is not None:
            query = query.where(Campaign.goal <= max_amount)

        total = await self._count(query)
        result = await self.db.execute(
            query.order_by(desc(Campaign.created_at), desc(Campaign.id)).offset((page - 1) * limit).limit(limit)
        )

        return {
            "campaigns": [summary(c) for c in result.scalars().all()],
            "total": total,
            "query": q,
            "filters": {
                "category": category.value if category else None,
                "min_amount": min_amount,
                "max_amount": max_amount,
            },
            "pagination": page_info(total, page, limit, total_key="total_campaigns"),
        }

    async def trending(self, limit: int = 10, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        now = now or datetime.utcnow()
        score = (
            Campaign.views * TRENDING_WEIGHTS["views"]
            + Campaign.donor_count * TRENDING_WEIGHTS["donor_count"]
            + Campaign.shares * TRENDING_WEIGHTS["shares"]
        )
        result = await self.db.execute(
            select(Campaign).options(*LIST_OPTIONS)
            .where(
                Campaign.status == CampaignStatus.ACTIVE,
                Campaign.created_at >= now - timedelta(days=TRENDING_WINDOW_DAYS),
            )
            .order_by(desc(score), desc(Campaign.created_at))
            .limit(limit)
        )
        return [summary(c) for c in result.scalars().all()]

    async def urgent(self, limit: int = 10, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        now = now or datetime.utcnow()
        result = await self.db.execute(
            select(Campaign).options(*LIST_OPTIONS)
            .where(
                Campaign.status == CampaignStatus.ACTIVE,
                Campaign.end_date > now,
                Campaign.end_date <= now + timedelta(days=URGENT_WINDOW_DAYS),
            )
            .order_by(asc(Campaign.end_date))
            .limit(limit)
        )
        return [summary(c) for c in result.scalars().all()]

    async def featured(self, limit: int = 6) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(Campaign).options(*LIST_OPTIONS)
            .where(Campaign.status == CampaignStatus.ACTIVE)
            .order_by(desc(Campaign.donor_count), desc(Campaign.raised), desc(Campaign.id))
            .limit(limit)
        )
        return [summary(c) for c in result.scalars().all()]

    async def my_campaigns(self, user: User, page: int = 1, limit: int = 12) -> Dict[str, Any]:
        query = select(Campaign).options(*LIST_OPTIONS).where(Campaign.creator_id == user.id)
        total = await self._count(query)
        result = await self.db.execute(
            query.order_by(desc(Campaign.created_at), desc(Campaign.id)).offset((page - 1) * limit).limit(limit)
        )
        return {
            "campaigns": [summary(c) for c in result.scalars().all()],
            "pagination": page_info(total, page, limit, total_key="total_campaigns"),
        }

    # ---------- rollups ----------
    async def categories(self) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(Campaign.category, func.count(Campaign.id))
            .where(Campaign.status == CampaignStatus.ACTIVE)
            .group_by(Campaign.category)
        )
        counts = {row[0].value: row[1] for row in result.all()}
        return [{**cat, "count": counts.get(cat["value"], 0)} for cat in CATEGORIES]

    async def category_breakdown(self) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(
                Campaign.category,
                func.count(Campaign.id),
                func.coalesce(func.sum(Campaign.raised), 0),
                func.coalesce(func.sum(Campaign.goal), 0),
            )
            .where(Campaign.status == CampaignStatus.ACTIVE)
            .group_by(Campaign.category)
        )
        breakdown = []
        for category, count, total_raised, total_goal in result.all():
            breakdown.append({
                "category": category.value,
                "count": count,
                "total_raised": float(total_raised),
                "total_goal": float(total_goal),
                "progress_percentage": round(total_raised / total_goal * 100, 2) if total_goal > 0 else 0,
            })
        breakdown.sort(key=lambda row: row["total_raised"], reverse=True)
        return breakdown

    # ---------- single campaign ----------
    async def get_campaign(self, campaign_id: int, viewer: Optional[User] = None) -> Dict[str, Any]:
        campaign = await self._get_campaign(campaign_id)
        if campaign.status not in PUBLIC_STATUSES and not self._can_manage(campaign, viewer):
            raise NotFound("Campaign not found")

        await self.db.execute(
            update(Campaign)
            .where(Campaign.id == campaign_id)
            .values(
                views=Campaign.views + 1,
                conversion_rate=Campaign.donor_count * 100.0 / (Campaign.views + 1),
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(campaign)
        return detail(campaign)

    async def campaign_donations(self, campaign_id: int, page: int = 1, limit: int = 20,
                                 viewer: Optional[User] = None) -> Dict[str, Any]:
        campaign = await self._get_campaign(campaign_id)
        if campaign.status not in PUBLIC_STATUSES and not self._can_manage(campaign, viewer):
            raise NotFound("Campaign not found")
        query = select(Donation).where(
            Donation.campaign_id == campaign_id,
            Donation.status == DonationStatus.COMPLETED,
        )
        total = await self._count(query)
        result = await self.db.execute(
            query.order_by(desc(Donation.completed_at), desc(Donation.id)).offset((page - 1) * limit).limit(limit)
        )
        return {
            "donations": [PublicDonationRead.model_validate(d).model_dump() for d in result.scalars().all()],
            **paginate(total, page, limit),
        }

    async def impact_reports(self, campaign_id: int) -> List[Dict[str, Any]]:
        campaign = await self._get_campaign(campaign_id)
        return sorted(campaign.impact_reports or [], key=lambda r: r.get("report_date") or "", reverse=True)

    async def updates(self, campaign_id: int) -> List[Dict[str, Any]]:
        campaign = await self._get_campaign(campaign_id)
        return sorted(campaign.updates or [], key=lambda u: u.get("created_at") or "", reverse=True)

    async def share(self, campaign_id: int) -> Dict[str, Any]:
        await self._get_campaign(campaign_id)
        await self.db.execute(
            update(Campaign)
            .where(Campaign.id == campaign_id)
            .values(shares=Campaign.shares + 1)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        shares = (await self.db.execute(select(Campaign.shares).where(Campaign.id == campaign_id))).scalar_one()
        return {"message": "Share count updated", "shares": shares}

    # ---------- management ----------
    async def create_campaign(self, data: CampaignCreate, creator: User) -> Dict[str, Any]:
        now = datetime.utcnow()
        start_date = data.start_date or now
        end_date = data.end_date
        if end_date:
            if end_date <= now:
                raise ValidationError("end_date must be in the future")
            if end_date > start_date + timedelta(days=settings.CAMPAIGN_MAX_DURATION_DAYS):
                raise ValidationError(
                    f"Campaigns may run at most {settings.CAMPAIGN_MAX_DURATION_DAYS} days"
                )

        auto_approve = creator.role == UserRole.ADMIN or not settings.CAMPAIGN_REQUIRE_APPROVAL

        campaign = Campaign(
            creator=creator,
            title=data.title,
            description=data.description,
            short_description=data.short_description,
            goal=data.goal,
            currency=data.currency,
            category=data.category,
            organization_name=data.organization_name,
            organization_email=data.organization_email,
            image_url=data.image_url,
            start_date=start_date,
            end_date=end_date,
            status=CampaignStatus.ACTIVE if auto_approve else CampaignStatus.PENDING,
            approval_status=ApprovalStatus.APPROVED if auto_approve else ApprovalStatus.PENDING,
            approved_by=creator.id if auto_approve else None,
            approved_at=now if auto_approve else None,
            updates=[],
            impact_reports=[],
        )
        self.db.add(campaign)
        await self.db.flush()

        self.audit.log(AuditAction.CAMPAIGN_CREATED, AuditResource.CAMPAIGN, campaign.id, creator,
                       {"title": campaign.title, "goal": campaign.goal})
        await self.db.commit()
        await self.db.refresh(campaign)
        logger.info(f"Campaign {campaign.id} created by user {creator.id}")
        return detail(campaign)

    async def update_campaign(self, campaign_id: int, data: CampaignUpdate, user: User) -> Dict[str, Any]:
        campaign = await self._get_campaign_with_permission(campaign_id, user)
        if campaign.status in (CampaignStatus.COMPLETED, CampaignStatus.CANCELLED):
            raise InvalidState(f"Cannot edit a {campaign.status.value} campaign")

        changes = data.model_dump(exclude_unset=True)
        if "goal" in changes and changes["goal"] is not None and changes["goal"] < campaign.raised:
            raise ValidationError("Goal cannot be lower than the amount already raised")
        if changes.get("end_date") and changes["end_date"] <= datetime.utcnow():
            raise ValidationError("end_date must be in the future")

        for key, value in changes.items():
            if value is not None:
                setattr(campaign, key, value)

        self.audit.log(AuditAction.CAMPAIGN_UPDATED, AuditResource.CAMPAIGN, campaign.id, user,
                       {"fields": sorted(changes)})
        await self.db.commit()
        await self.db.refresh(campaign)
        return detail(campaign)

    async def delete_campaign(self, campaign_id: int, user: User) -> Dict[str, Any]:
        campaign = await self._get_campaign_with_permission(campaign_id, user)

        donations = (await self.db.execute(
            select(func.count(Donation.id)).where(Donation.campaign_id == campaign_id)
        )).scalar_one()

        if donations:
            campaign.status = CampaignStatus.CANCELLED
            self.audit.log(AuditAction.CAMPAIGN_DELETED, AuditResource.CAMPAIGN, campaign.id, user,
                           {"soft": True, "donations": donations})
            await self.db.commit()
            return {"message": "Campaign has donations and was cancelled instead of deleted"}

        self.audit.log(AuditAction.CAMPAIGN_DELETED, AuditResource.CAMPAIGN, campaign.id, user,
                       {"title": campaign.title})
        await self.db.delete(campaign)
        await self.db.commit()
        return {"message": "Campaign deleted successfully"}

    async def change_status(self, campaign_id: int, data: CampaignStatusChange, user: User) -> Dict[str, Any]:
        campaign = await self._get_campaign_with_permission(campaign_id, user)
        transitions = ADMIN_TRANSITIONS if user.role == UserRole.ADMIN else LEADER_TRANSITIONS

        if data.status not in transitions.get(campaign.status, set()):
            raise InvalidState(
                f"Cannot change status from {campaign.status.value} to {data.status.value}"
            )

        old_status = campaign.status
        campaign.status = data.status
        now = datetime.utcnow()

        if data.status == CampaignStatus.PENDING:
            campaign.approval_status = ApprovalStatus.PENDING
            campaign.rejection_reason = None
            if not settings.CAMPAIGN_REQUIRE_APPROVAL:
                campaign.status = CampaignStatus.ACTIVE
                campaign.approval_status = ApprovalStatus.APPROVED
                campaign.approved_at = now
        elif data.status == CampaignStatus.ACTIVE:
            campaign.approval_status = ApprovalStatus.APPROVED
            campaign.approved_by = campaign.approved_by or user.id
            campaign.approved_at = campaign.approved_at or now
            campaign.suspension_reason = None
        elif data.status == CampaignStatus.SUSPENDED:
            campaign.suspension_reason = data.reason
        elif data.status == CampaignStatus.COMPLETED:
            campaign.completed_at = now

        self.audit.log(AuditAction.CAMPAIGN_UPDATED, AuditResource.CAMPAIGN, campaign.id, user,
                       {"from": old_status.value, "to": campaign.status.value, "reason": data.reason})
        await self.db.commit()
        await self.db.refresh(campaign)
        return detail(campaign)

    async def add_update(self, campaign_id: int, data: CampaignUpdateCreate, user: User) -> Dict[str, Any]:
        campaign = await self._get_campaign_with_permission(campaign_id, user)
        entry = {
            "id": str(uuid.uuid4()),
            "title": data.title,
            "content": data.content,
            "author_id": user.id,
            "created_at": datetime.utcnow().isoformat(),
        }
        campaign.updates = [*(campaign.updates or []), entry]
        await self.db.commit()
        return entry

    async def add_impact_report(self, campaign_id: int, data: ImpactReportCreate, user: User) -> Dict[str, Any]:
        campaign = await self._get_campaign_with_permission(campaign_id, user)
        entry = {
            "id": str(uuid.uuid4()),
            "title": data.title,
            "description": data.description,
            "report_date": (data.report_date or datetime.utcnow()).isoformat(),
            "attachment_url": data.attachment_url,
        }
        campaign.impact_reports = [*(campaign.impact_reports or []), entry]
        await self.db.commit()
        return entry

    # ---------- moderation (admin) ----------
    async def pending_campaigns(self, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        query = select(Campaign).options(*LIST_OPTIONS).where(
            Campaign.status == CampaignStatus.PENDING,
            Campaign.approval_status == ApprovalStatus.PENDING,
        )
        total = await self._count(query)
        result = await self.db.execute(
            query.order_by(asc(Campaign.created_at)).offset((page - 1) * limit).limit(limit)
        )
        return {"campaigns": [summary(c) for c in result.scalars().all()], **paginate(total, page, limit)}

    async def admin_list(
            self,
            status: Optional[CampaignStatus] = None,
            approval_status: Optional[ApprovalStatus] = None,
            category: Optional[CampaignCategory] = None,
            page: int = 1,
            limit: int = 20,
    ) -> Dict[str, Any]:
        query = select(Campaign).options(*LIST_OPTIONS)
        if status:
            query = query.where(Campaign.status == status)
        if approval_status:
            query = query.where(Campaign.approval_status == approval_status)
        if category:
            query = query.where(Campaign.category == category)

        total = await self._count(query)
        result = await self.db.execute(
            query.order_by(desc(Campaign.created_at), desc(Campaign.id)).offset((page - 1) * limit).limit(limit)
        )
        return {"campaigns": [summary(c) for c in result.scalars().all()], **paginate(total, page, limit)}

    async def approve(self, campaign_id: int, admin: User) -> Dict[str, Any]:
        campaign = await self._get_campaign(campaign_id)
        if campaign.status not in (CampaignStatus.PENDING, CampaignStatus.DRAFT):
            raise InvalidState(f"Cannot approve a {campaign.status.value} campaign")

        campaign.status = CampaignStatus.ACTIVE
        campaign.approval_status = ApprovalStatus.APPROVED
        campaign.approved_by = admin.id
        campaign.approved_at = datetime.utcnow()
        campaign.rejection_reason = None

        self.audit.log(AuditAction.CAMPAIGN_APPROVED, AuditResource.CAMPAIGN, campaign.id, admin)
        self.notifications.campaign_reviewed(campaign.creator_id, campaign.title, campaign.id, "approved",
                                             sender_id=admin.id)
        await self.db.commit()
        await self.db.refresh(campaign)
        return {"message": "Campaign approved successfully", "campaign": detail(campaign)}

    async def reject(self, campaign_id: int, reason: str, admin: User) -> Dict[str, Any]:
        campaign = await self._get_campaign(campaign_id)
        if campaign.status not in (CampaignStatus.PENDING, CampaignStatus.DRAFT):
            raise InvalidState(f"Cannot reject a {campaign.status.value} campaign")

        # back to draft so the creator can revise and resubmit
        campaign.status = CampaignStatus.DRAFT
        campaign.approval_status = ApprovalStatus.REJECTED
        campaign.rejection_reason = reason

        self.audit.log(AuditAction.CAMPAIGN_REJECTED, AuditResource.CAMPAIGN, campaign.id, admin, {"reason": reason})
        self.notifications.campaign_reviewed(campaign.creator_id, campaign.title, campaign.id, "rejected",
                                             reason=reason, sender_id=admin.id)
        await self.db.commit()
        await self.db.refresh(campaign)
        return {"message": "Campaign rejected", "campaign": detail(campaign)}

    async def suspend(self, campaign_id: int, reason: str, admin: User) -> Dict[str, Any]:
        campaign = await self._get_campaign(campaign_id)
        if campaign.status != CampaignStatus.ACTIVE:
            raise InvalidState(f"Cannot suspend a {campaign.status.value} campaign")

        campaign.status = CampaignStatus.SUSPENDED
        campaign.suspension_reason = reason

        self.audit.log(AuditAction.CAMPAIGN_SUSPENDED, AuditResource.CAMPAIGN, campaign.id, admin, {"reason": reason})
        self.notifications.campaign_reviewed(campaign.creator_id, campaign.title, campaign.id, "suspended",
                                             reason=reason, sender_id=admin.id)
        await self.db.commit()
        await self.db.refresh(campaign)
        return {"message": "Campaign suspended", "campaign": detail(campaign)}

    # ---------- helpers ----------
    async def _count(self, query) -> int:
        return (await self.db.execute(
            select(func.count()).select_from(query.order_by(None).subquery())
        )).scalar_one()

    async def _get_campaign(self, campaign_id: int) -> Campaign:
        result = await self.db.execute(select(Campaign).where(Campaign.id == campaign_id))
        campaign = result.scalar_one_or_none()
        if not campaign:
            raise NotFound("Campaign not found")
        return campaign

    @staticmethod
    def _can_manage(campaign: Campaign, user: Optional[User]) -> bool:
        if not user:
            return False
        return user.role == UserRole.ADMIN or campaign.creator_id == user.id

    async def _get_campaign_with_permission(self, campaign_id: int, user: User) -> Campaign:
        campaign = await self._get_campaign(campaign_id)
        if not self._can_manage(campaign, user):
            raise Forbidden("You can only manage your own campaigns")
        return campaign
