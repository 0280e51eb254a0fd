# app/services/statistics_service.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_, case, desc
from datetime import datetime
from typing import Dict, Any, List, Optional

from core.config import settings
from core.constants import LEADER_IMPACT_POINT_UNIT
from core.exceptions import Forbidden, NotFound
from models.campaign import Campaign, CampaignStatus, ApprovalStatus
from models.donation import Donation, DonationStatus
from models.user import User, UserRole, UserStatus
from utils.helpers import calculate_progress_percentage, period_cutoff


def _day(value) -> str:
    # sqlite returns the date as text, postgres as a date
    return value if isinstance(value, str) else value.isoformat()


class StatisticsService:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ---------- platform ----------
    async def platform_stats(self) -> Dict[str, Any]:
        total_users = await self.db.scalar(select(func.count(User.id)))
        active_users = await self.db.scalar(
            select(func.count(User.id)).where(User.is_active.is_(True), User.status == UserStatus.ACTIVE)
        )
        users_by_role = await self.db.execute(
            select(User.role, func.count(User.id)).group_by(User.role)
        )

        campaigns_by_status = await self.db.execute(
            select(Campaign.status, func.count(Campaign.id)).group_by(Campaign.status)
        )
        by_status = {row[0].value: row[1] for row in campaigns_by_status.all()}
        pending_approval = await self.db.scalar(
            select(func.count(Campaign.id)).where(Campaign.approval_status == ApprovalStatus.PENDING)
        )

        donations = await self.db.execute(
            select(
                func.count(Donation.id),
                func.coalesce(func.sum(Donation.amount), 0),
                func.coalesce(func.avg(Donation.amount), 0),
            ).where(Donation.status == DonationStatus.COMPLETED)
        )
        count, total, average = donations.one()

        return {
            "users": {
                "total": total_users or 0,
                "active": active_users or 0,
                "by_role": {row[0].value: row[1] for row in users_by_role.all()},
            },
            "campaigns": {
                "total": sum(by_status.values()),
                "active": by_status.get(CampaignStatus.ACTIVE.value, 0),
                "completed": by_status.get(CampaignStatus.COMPLETED.value, 0),
                "pending_approval": pending_approval or 0,
                "by_status": by_status,
            },
            "donations": {
                "total_count": count,
                "total_amount": float(total),
                "average_amount": round(float(average), 2),
            },
        }

    # ---------- per user ----------
    async def user_stats(self, user: User) -> Dict[str, Any]:
        overview = {
            "id": user.id,
            "name": user.name,
            "role": user.role.value,
            "member_since": user.created_at,
            **user.donation_stats,
        }

        if user.role == UserRole.CAMPAIGN_LEADER:
            created, raised, active = (await self.db.execute(
                select(
                    func.count(Campaign.id),
                    func.coalesce(func.sum(Campaign.raised), 0),
                    func.coalesce(func.sum(case((Campaign.status == CampaignStatus.ACTIVE, 1), else_=0)), 0),
                ).where(Campaign.creator_id == user.id)
            )).one()
            overview.update({
                "campaigns_created": created,
                "active_campaigns": int(active),
                "total_raised": float(raised),
                "impact_points": int(float(raised) // LEADER_IMPACT_POINT_UNIT),
            })

        return overview

    async def trends(self, period: Optional[str] = None, user: Optional[User] = None) -> Dict[str, Any]:
        period, cutoff = period_cutoff(period)

        day = func.date(Donation.completed_at)
        donation_query = select(
            day, func.count(Donation.id), func.coalesce(func.sum(Donation.amount), 0)
        ).where(
            Donation.status == DonationStatus.COMPLETED,
            Donation.completed_at >= cutoff,
        )
        campaign_day = func.date(Campaign.created_at)
        campaign_query = select(campaign_day, func.count(Campaign.id)).where(Campaign.created_at >= cutoff)

        if user and user.role == UserRole.CAMPAIGN_LEADER:
            donation_query = donation_query.join(Campaign, Campaign.id == Donation.campaign_id).where(
                Campaign.creator_id == user.id
            )
            campaign_query = campaign_query.where(Campaign.creator_id == user.id)
        elif user and user.role != UserRole.ADMIN:
            donation_query = donation_query.where(Donation.donor_email == user.email)

        donations = await self.db.execute(donation_query.group_by(day).order_by(day))
        campaigns = await self.db.execute(campaign_query.group_by(campaign_day).order_by(campaign_day))

        return {
            "period": period,
            "start_date": cutoff,
            "donations": [
                {"date": _day(d), "count": c, "amount": float(a)} for d, c, a in donations.all()
            ],
            "campaigns": [{"date": _day(d), "count": c} for d, c in campaigns.all()],
        }

    # ---------- campaigns ----------
    async def campaign_overview(self, user: User) -> Dict[str, Any]:
        query = select(
            Campaign.status,
            func.count(Campaign.id),
            func.coalesce(func.sum(Campaign.raised), 0),
            func.coalesce(func.sum(Campaign.goal), 0),
            func.coalesce(func.sum(Campaign.views), 0),
            func.coalesce(func.sum(Campaign.donor_count), 0),
        ).group_by(Campaign.status)
        if user.role != UserRole.ADMIN:
            query = query.where(Campaign.creator_id == user.id)

        by_status = {}
        totals = {"count": 0, "raised": 0.0, "goal": 0.0, "views": 0, "donors": 0}
        for status, count, raised, goal, views, donors in (await self.db.execute(query)).all():
            by_status[status.value] = count
            totals["count"] += count
            totals["raised"] += float(raised)
            totals["goal"] += float(goal)
            totals["views"] += int(views)
            totals["donors"] += int(donors)

        top = await self.db.execute(
            self._scoped(select(Campaign), user)
            .order_by(desc(Campaign.raised))
            .limit(5)
        )

        return {
            "total_campaigns": totals["count"],
            "by_status": by_status,
            "total_raised": totals["raised"],
            "total_goal": totals["goal"],
            "overall_progress": calculate_progress_percentage(totals["raised"], totals["goal"]),
            "total_views": totals["views"],
            "total_donors": totals["donors"],
            "top_campaigns": [
                {
                    "id": c.id,
                    "title": c.title,
                    "raised": c.raised,
                    "goal": c.goal,
                    "progress_percentage": c.progress_percentage,
                    "status": c.status.value,
                }
                for c in top.scalars().all()
            ],
        }

    async def campaign_performance(self, campaign_id: int, user: User) -> Dict[str, Any]:
        campaign = await self.db.get(Campaign, campaign_id)
        if not campaign:
            raise NotFound("Campaign not found")
        if user.role != UserRole.ADMIN and campaign.creator_id != user.id:
            raise Forbidden("You can only view analytics for your own campaigns")

        day = func.date(Donation.completed_at)
        daily = await self.db.execute(
            select(day, func.count(Donation.id), func.coalesce(func.sum(Donation.amount), 0))
            .where(Donation.campaign_id == campaign_id, Donation.status == DonationStatus.COMPLETED)
            .group_by(day)
            .order_by(day)
        )
        by_status = await self.db.execute(
            select(Donation.status, func.count(Donation.id))
            .where(Donation.campaign_id == campaign_id)
            .group_by(Donation.status)
        )

        return {
            "campaign": {
                "id": campaign.id,
                "title": campaign.title,
                "status": campaign.status.value,
                "goal": campaign.goal,
                "raised": campaign.raised,
                "progress_percentage": campaign.progress_percentage,
                "days_remaining": campaign.days_remaining,
            },
            "analytics": campaign.analytics,
            "donations_by_status": {row[0].value: row[1] for row in by_status.all()},
            "daily_donations": [
                {"date": _day(d), "count": c, "amount": float(a)} for d, c, a in daily.all()
            ],
        }

    # ---------- donations ----------
    async def donation_summary(self, user: User, period: Optional[str] = None) -> Dict[str, Any]:
        period, cutoff = period_cutoff(period)
        query = select(
            func.count(Donation.id),
            func.coalesce(func.sum(Donation.amount), 0),
            func.coalesce(func.avg(Donation.amount), 0),
            func.coalesce(func.max(Donation.amount), 0),
            func.count(func.distinct(Donation.donor_email)),
        ).where(Donation.status == DonationStatus.COMPLETED, Donation.completed_at >= cutoff)
        query = self._donation_scope(query, user)

        count, total, average, largest, donors = (await self.db.execute(query)).one()
        return {
            "period": period,
            "total_donations": count,
            "total_amount": float(total),
            "average_donation": round(float(average), 2),
            "largest_donation": float(largest),
            "unique_donors": donors,
        }

    async def donation_trends(self, user: User, period: Optional[str] = None) -> Dict[str, Any]:
        period, cutoff = period_cutoff(period)
        day = func.date(Donation.completed_at)
        query = select(
            day, func.count(Donation.id), func.coalesce(func.sum(Donation.amount), 0)
        ).where(Donation.status == DonationStatus.COMPLETED, Donation.completed_at >= cutoff)
        query = self._donation_scope(query, user)

        result = await self.db.execute(query.group_by(day).order_by(day))
        return {
            "period": period,
            "trends": [{"date": _day(d), "count": c, "amount": float(a)} for d, c, a in result.all()],
        }

    # ---------- admin ----------
    async def user_analytics(self, period: Optional[str] = None) -> Dict[str, Any]:
        period, cutoff = period_cutoff(period)
        day = func.date(User.created_at)

        registrations = await self.db.execute(
            select(day, func.count(User.id)).where(User.created_at >= cutoff).group_by(day).order_by(day)
        )
        by_role = await self.db.execute(
            select(User.role, func.count(User.id)).where(User.created_at >= cutoff).group_by(User.role)
        )
        active = await self.db.scalar(
            select(func.count(User.id)).where(User.last_login >= cutoff)
        )
        donors = await self.db.scalar(
            select(func.count(func.distinct(Donation.donor_email))).where(
                Donation.status == DonationStatus.COMPLETED, Donation.completed_at >= cutoff
            )
        )

        new_users = registrations.all()
        return {
            "period": period,
            "new_users": sum(c for _, c in new_users),
            "new_users_by_role": {row[0].value: row[1] for row in by_role.all()},
            "active_users": active or 0,
            "donating_users": donors or 0,
            "registrations": [{"date": _day(d), "count": c} for d, c in new_users],
        }

    async def financial_report(self, period: Optional[str] = None) -> Dict[str, Any]:
        period, cutoff = period_cutoff(period)
        completed = and_(Donation.status == DonationStatus.COMPLETED, Donation.completed_at >= cutoff)

        total, fees, net, count = (await self.db.execute(
            select(
                func.coalesce(func.sum(Donation.amount), 0),
                func.coalesce(func.sum(Donation.processing_fee), 0),
                func.coalesce(func.sum(Donation.net_amount), 0),
                func.count(Donation.id),
            ).where(completed)
        )).one()

        day = func.date(Donation.completed_at)
        by_day = await self.db.execute(
            select(day, func.coalesce(func.sum(Donation.amount), 0), func.count(Donation.id))
            .where(completed).group_by(day).order_by(day)
        )
        by_category = await self.db.execute(
            select(Campaign.category, func.coalesce(func.sum(Donation.amount), 0), func.count(Donation.id))
            .join(Campaign, Campaign.id == Donation.campaign_id)
            .where(completed)
            .group_by(Campaign.category)
            .order_by(desc(func.sum(Donation.amount)))
        )
        by_currency = await self.db.execute(
            select(Donation.currency, func.coalesce(func.sum(Donation.amount), 0))
            .where(completed).group_by(Donation.currency)
        )

        return {
            "period": period,
            "start_date": cutoff,
            "end_date": datetime.utcnow(),
            "total_revenue": float(total),
            "processing_fees": float(fees),
            "platform_fee_percent": settings.PLATFORM_FEE_PERCENT,
            "platform_fees": round(float(total) * settings.PLATFORM_FEE_PERCENT / 100, 2),
            "net_revenue": float(net),
            "donation_count": count,
            "revenue_by_day": [{"date": _day(d), "amount": float(a), "count": c} for d, a, c in by_day.all()],
            "revenue_by_category": [
                {"category": cat.value, "amount": float(a), "count": c} for cat, a, c in by_category.all()
            ],
            "revenue_by_currency": {cur.value: float(a) for cur, a in by_currency.all()},
        }

    # ---------- helpers ----------
    @staticmethod
    def _scoped(query, user: User):
        if user.role != UserRole.ADMIN:
            query = query.where(Campaign.creator_id == user.id)
        return query

    @staticmethod
    def _donation_scope(query, user: User):
        """Admins see everything, leaders their campaigns' donations, donors their own."""
        if user.role == UserRole.ADMIN:
            return query
        if user.role == UserRole.CAMPAIGN_LEADER:
            return query.join(Campaign, Campaign.id == Donation.campaign_id).where(Campaign.creator_id == user.id)
        return query.where(Donation.donor_email == user.email)

    async def recent_campaign_donations(self, campaign_ids: List[int], limit: int = 10) -> List[Dict[str, Any]]:
        if not campaign_ids:
            return []
        result = await self.db.execute(
            select(Donation)
            .where(Donation.campaign_id.in_(campaign_ids), Donation.status == DonationStatus.COMPLETED)
            .order_by(desc(Donation.completed_at))
            .limit(limit)
        )
        return [
            {
                "id": d.id,
                "amount": d.amount,
                "currency": d.currency.value,
                "donor_name": d.donor_display_name,
                "campaign_id": d.campaign_id,
                "completed_at": d.completed_at,
            }
            for d in result.scalars().all()
        ]
