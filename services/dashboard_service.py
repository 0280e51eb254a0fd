# app/services/dashboard_service.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from typing import Dict, Any

from models.campaign import Campaign, CampaignStatus
from models.donation import Donation, DonationStatus
from models.user import User, UserRole
from services.statistics_service import StatisticsService


class DashboardService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.stats = StatisticsService(db)

    async def get_dashboard(self, user: User) -> Dict[str, Any]:
        if user.role == UserRole.ADMIN:
            return await self.get_admin_dashboard(user)
        if user.role == UserRole.CAMPAIGN_LEADER:
            return await self.get_campaign_leader_dashboard(user)
        return await self.get_donor_dashboard(user)

    # ---------- admin ----------
    async def get_admin_dashboard(self, user: User) -> Dict[str, Any]:
        """Platform-wide totals plus the newest users and donations."""
        platform = await self.stats.platform_stats()

        recent_users = await self.db.execute(
            select(User).order_by(User.created_at.desc()).limit(5)
        )
        recent_donations = await self.db.execute(
            select(Donation)
            .where(Donation.status == DonationStatus.COMPLETED)
            .order_by(Donation.completed_at.desc())
            .limit(10)
        )

        return {
            "role": user.role.value,
            "summary": platform,
            "recent_users": [
                {
                    "id": u.id,
                    "name": u.name,
                    "email": u.email,
                    "role": u.role.value,
                    "created_at": u.created_at,
                }
                for u in recent_users.scalars().all()
            ],
            "recent_donations": [
                {
                    "id": d.id,
                    "amount": d.amount,
                    "currency": d.currency.value,
                    "donor_name": d.donor_display_name,
                    "campaign_id": d.campaign_id,
                    "completed_at": d.completed_at,
                }
                for d in recent_donations.scalars().all()
            ],
        }

    # ---------- campaign leader ----------
    async def get_campaign_leader_dashboard(self, user: User) -> Dict[str, Any]:
        result = await self.db.execute(
            select(Campaign)
            .where(Campaign.creator_id == user.id)
            .order_by(Campaign.created_at.desc())
        )
        campaigns = result.scalars().all()

        total_raised = sum(c.raised or 0 for c in campaigns)
        active = [c for c in campaigns if c.status == CampaignStatus.ACTIVE]

        return {
            "role": user.role.value,
            "summary": {
                "total_campaigns": len(campaigns),
                "active_campaigns": len(active),
                "completed_campaigns": len([c for c in campaigns if c.status == CampaignStatus.COMPLETED]),
                "total_raised": total_raised,
                "total_donors": sum(c.donor_count or 0 for c in campaigns),
                "total_views": sum(c.views or 0 for c in campaigns),
            },
            "campaigns": [
                {
                    "id": c.id,
                    "title": c.title,
                    "status": c.status.value,
                    "raised": c.raised,
                    "goal": c.goal,
                    "progress_percentage": c.progress_percentage,
                    "days_remaining": c.days_remaining,
                }
                for c in campaigns
            ],
            "recent_donations": await self.stats.recent_campaign_donations([c.id for c in campaigns]),
        }

    # ---------- donor ----------
    async def get_donor_dashboard(self, user: User) -> Dict[str, Any]:
        recent = await self.db.execute(
            select(Donation, Campaign.title)
            .join(Campaign, Campaign.id == Donation.campaign_id)
            .where(Donation.donor_email == user.email)
            .order_by(Donation.created_at.desc())
            .limit(10)
        )
        pending = await self.db.scalar(
            select(func.count(Donation.id)).where(
                Donation.donor_email == user.email,
                Donation.status == DonationStatus.PENDING,
            )
        )

        return {
            "role": user.role.value,
            "summary": {**user.donation_stats, "pending_donations": pending or 0},
            "recent_donations": [
                {
                    "id": d.id,
                    "amount": d.amount,
                    "currency": d.currency.value,
                    "status": d.status.value,
                    "campaign_id": d.campaign_id,
                    "campaign_title": title,
                    "receipt_number": d.receipt_number,
                    "created_at": d.created_at,
                }
                for d, title in recent.all()
            ],
        }
