"""
Integration Tests for campaigns
Public query layer, management, moderation
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from core.config import settings
from models.campaign import ApprovalStatus, Campaign, CampaignCategory, CampaignStatus
from models.notification import Notification
from models.user import UserRole


def new_campaign_payload(**overrides):
    payload = {
        "title": "Solar Lamps for Students",
        "description": "Give solar study lamps to children without electricity at home.",
        "goal": 10000,
        "category": "education",
        "end_date": (datetime.utcnow() + timedelta(days=30)).isoformat(),
    }
    payload.update(overrides)
    return payload


# ============================================================================
# LISTING & SEARCH
# ============================================================================

class TestListing:
    """Public campaign listings"""

    @pytest.mark.asyncio
    async def test_list_only_active_by_default(self, client, make_campaign):
        """Drafts and pending campaigns are hidden"""
        await make_campaign("Active One")
        await make_campaign("Draft One", status=CampaignStatus.DRAFT)
        await make_campaign("Pending One", status=CampaignStatus.PENDING, approval_status=ApprovalStatus.PENDING)

        response = await client.get("/api/campaigns")

        assert response.status_code == 200
        data = response.json()
        assert [c["title"] for c in data["campaigns"]] == ["Active One"]
        assert data["pagination"] == {
            "current_page": 1,
            "total_pages": 1,
            "total_campaigns": 1,
            "has_next": False,
            "has_prev": False,
        }
        assert "updates" not in data["campaigns"][0]

    @pytest.mark.asyncio
    async def test_list_rejects_private_status(self, client):
        """Drafts cannot be listed publicly"""
        response = await client.get("/api/campaigns", params={"status": "draft"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_list_filter_and_sort(self, client, make_campaign):
        """Category filter and target sort"""
        await make_campaign("Small", goal=1000, category=CampaignCategory.EDUCATION)
        await make_campaign("Large", goal=90000, category=CampaignCategory.EDUCATION)
        await make_campaign("Other", goal=50000, category=CampaignCategory.HEALTH)

        response = await client.get("/api/campaigns", params={"category": "education", "sort": "target"})

        assert [c["title"] for c in response.json()["campaigns"]] == ["Large", "Small"]

    @pytest.mark.asyncio
    async def test_pagination(self, client, make_campaign):
        """Pages are sized by limit"""
        for i in range(5):
            await make_campaign(f"Campaign {i}")

        response = await client.get("/api/campaigns", params={"page": 2, "limit": 2})

        pagination = response.json()["pagination"]
        assert len(response.json()["campaigns"]) == 2
        assert pagination["total_pages"] == 3
        assert pagination["has_next"] is True
        assert pagination["has_prev"] is True

    @pytest.mark.asyncio
    async def test_search(self, client, make_campaign):
        """Search matches title and description case-insensitively"""
        await make_campaign("Clean Water Wells")
        await make_campaign("Tree Planting", description="Plant trees along the river banks.")

        response = await client.get("/api/campaigns/search", params={"q": "WATER"})

        data = response.json()
        assert data["total"] == 1
        assert data["query"] == "WATER"
        assert data["campaigns"][0]["title"] == "Clean Water Wells"

    @pytest.mark.asyncio
    async def test_search_goal_range(self, client, make_campaign):
        """min_amount and max_amount bound the goal"""
        await make_campaign("Water A", goal=1000)
        await make_campaign("Water B", goal=20000)

        response = await client.get("/api/campaigns/search", params={"q": "water", "min_amount": 5000})

        assert [c["title"] for c in response.json()["campaigns"]] == ["Water B"]

    @pytest.mark.asyncio
    async def test_urgent(self, client, make_campaign):
        """Only campaigns ending within three days"""
        now = datetime.utcnow()
        await make_campaign("Ending Soon", end_date=now + timedelta(days=2))
        await make_campaign("Plenty Of Time", end_date=now + timedelta(days=20))
        await make_campaign("Already Over", end_date=now - timedelta(days=1))

        response = await client.get("/api/campaigns/urgent")

        assert [c["title"] for c in response.json()["campaigns"]] == ["Ending Soon"]

    @pytest.mark.asyncio
    async def test_trending_ignores_old_campaigns(self, client, make_campaign):
        """Trending only considers the last seven days, ranked by score"""
        await make_campaign("Old Hit", views=1000, created_at=datetime.utcnow() - timedelta(days=10))
        await make_campaign("Quiet", views=1)
        await make_campaign("Hot", views=50, donor_count=10)

        response = await client.get("/api/campaigns/trending")

        assert [c["title"] for c in response.json()["campaigns"]] == ["Hot", "Quiet"]

    @pytest.mark.asyncio
    async def test_featured(self, client, make_campaign):
        """Featured favours campaigns with more donors"""
        await make_campaign("Few Donors", donor_count=1)
        await make_campaign("Many Donors", donor_count=40)

        response = await client.get("/api/campaigns/featured")

        assert response.json()["campaigns"][0]["title"] == "Many Donors"

    @pytest.mark.asyncio
    async def test_categories_include_counts(self, client, make_campaign):
        """Every category is returned, with active counts"""
        await make_campaign("Edu", category=CampaignCategory.EDUCATION)

        response = await client.get("/api/campaigns/categories")

        categories = {c["value"]: c for c in response.json()["categories"]}
        assert len(categories) == 6
        assert categories["education"]["count"] == 1
        assert categories["health"]["count"] == 0


# ============================================================================
# SINGLE CAMPAIGN
# ============================================================================

class TestCampaignDetail:
    """GET /api/campaigns/{id} and embedded content"""

    @pytest.mark.asyncio
    async def test_view_increments_views(self, client, campaign):
        """Each view is counted"""
        await client.get(f"/api/campaigns/{campaign.id}")
        response = await client.get(f"/api/campaigns/{campaign.id}")

        assert response.status_code == 200
        data = response.json()["campaign"]
        assert data["analytics"]["views"] == 2
        assert data["creator"]["name"] == "Lee Leader"

    @pytest.mark.asyncio
    async def test_unknown_campaign(self, client):
        """Missing campaigns are 404"""
        response = await client.get("/api/campaigns/9999")

        assert response.status_code == 404
        assert response.json()["error"] == "Campaign not found"

    @pytest.mark.asyncio
    async def test_draft_hidden_from_public(self, client, make_campaign, leader, auth_headers):
        """Drafts are visible to their creator only"""
        draft = await make_campaign("Secret Draft", status=CampaignStatus.DRAFT)

        public = await client.get(f"/api/campaigns/{draft.id}")
        owner = await client.get(f"/api/campaigns/{draft.id}", headers=auth_headers(leader))

        assert public.status_code == 404
        assert owner.status_code == 200

    @pytest.mark.asyncio
    async def test_donor_wall_hidden_with_campaign(self, client, make_campaign, leader, admin, auth_headers):
        """A hidden campaign's donations are hidden too"""
        suspended = await make_campaign("Paused Appeal", status=CampaignStatus.SUSPENDED)

        public = await client.get(f"/api/campaigns/{suspended.id}/donations")
        owner = await client.get(f"/api/campaigns/{suspended.id}/donations", headers=auth_headers(leader))
        staff = await client.get(f"/api/campaigns/{suspended.id}/donations", headers=auth_headers(admin))

        assert public.status_code == 404
        assert owner.status_code == 200
        assert staff.status_code == 200

    @pytest.mark.asyncio
    async def test_share(self, client, campaign):
        """Share counter increments"""
        response = await client.post(f"/api/campaigns/{campaign.id}/share")

        assert response.json()["shares"] == 1

    @pytest.mark.asyncio
    async def test_updates_newest_first(self, client, campaign, leader, auth_headers):
        """Posted updates are listed newest first"""
        for title in ("First", "Second"):
            response = await client.post(
                f"/api/campaigns/{campaign.id}/updates",
                headers=auth_headers(leader),
                json={"title": title, "content": f"{title} update"},
            )
            assert response.status_code == 201

        response = await client.get(f"/api/campaigns/{campaign.id}/updates")

        assert [u["title"] for u in response.json()["updates"]] == ["Second", "First"]

    @pytest.mark.asyncio
    async def test_impact_reports(self, client, campaign, leader, auth_headers):
        """Impact reports sort by report date"""
        for title, day in (("Q1", "2026-03-31T00:00:00"), ("Q2", "2026-06-30T00:00:00")):
            await client.post(
                f"/api/campaigns/{campaign.id}/impact-reports",
                headers=auth_headers(leader),
                json={"title": title, "description": "Wells drilled", "report_date": day},
            )

        response = await client.get(f"/api/campaigns/{campaign.id}/impact-reports")

        assert [r["title"] for r in response.json()["impact_reports"]] == ["Q2", "Q1"]


# ============================================================================
# MANAGEMENT
# ============================================================================

class TestManagement:
    """Creating and editing campaigns"""

    @pytest.mark.asyncio
    async def test_create_requires_approval(self, client, leader, auth_headers):
        """New campaigns wait for review"""
        response = await client.post("/api/campaigns", headers=auth_headers(leader), json=new_campaign_payload())

        assert response.status_code == 201
        data = response.json()["campaign"]
        assert data["status"] == "pending"
        assert data["approval_status"] == "pending"
        assert data["creator"]["id"] == leader.id

    @pytest.mark.asyncio
    async def test_create_auto_approved_when_review_disabled(self, client, leader, auth_headers, monkeypatch):
        """Without required approval campaigns go live immediately"""
        monkeypatch.setattr(settings, "CAMPAIGN_REQUIRE_APPROVAL", False)

        response = await client.post("/api/campaigns", headers=auth_headers(leader), json=new_campaign_payload())

        assert response.json()["campaign"]["status"] == "active"

    @pytest.mark.asyncio
    async def test_donor_cannot_create(self, client, donor, auth_headers):
        """Donors lack the campaign-leader role"""
        response = await client.post("/api/campaigns", headers=auth_headers(donor), json=new_campaign_payload())

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_create_validates_duration(self, client, leader, auth_headers):
        """End date must respect the maximum duration"""
        too_long = (datetime.utcnow() + timedelta(days=settings.CAMPAIGN_MAX_DURATION_DAYS + 5)).isoformat()

        response = await client.post(
            "/api/campaigns", headers=auth_headers(leader), json=new_campaign_payload(end_date=too_long)
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_create_validates_goal(self, client, leader, auth_headers):
        """Goal must be positive"""
        response = await client.post(
            "/api/campaigns", headers=auth_headers(leader), json=new_campaign_payload(goal=0)
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_update_own_campaign(self, client, campaign, leader, auth_headers):
        """Creators can edit their campaigns"""
        response = await client.put(
            f"/api/campaigns/{campaign.id}", headers=auth_headers(leader), json={"title": "Wells For All"}
        )

        assert response.status_code == 200
        assert response.json()["campaign"]["title"] == "Wells For All"

    @pytest.mark.asyncio
    async def test_update_other_leaders_campaign(self, client, campaign, make_user, auth_headers):
        """Leaders cannot edit someone else's campaign"""
        other = await make_user("other@impacthub.org", role=UserRole.CAMPAIGN_LEADER)

        response = await client.put(
            f"/api/campaigns/{campaign.id}", headers=auth_headers(other), json={"title": "Hijacked"}
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_goal_cannot_drop_below_raised(self, client, make_campaign, leader, auth_headers):
        """Goal stays at or above the raised amount"""
        funded = await make_campaign("Half Funded", goal=10000, raised=6000)

        response = await client.put(
            f"/api/campaigns/{funded.id}", headers=auth_headers(leader), json={"goal": 5000}
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_delete_without_donations(self, client, campaign, leader, auth_headers, db_session):
        """Campaigns without donations are removed"""
        response = await client.delete(f"/api/campaigns/{campaign.id}", headers=auth_headers(leader))

        assert response.status_code == 200
        remaining = (await db_session.execute(select(Campaign.id).where(Campaign.id == campaign.id))).all()
        assert remaining == []

    @pytest.mark.asyncio
    async def test_leader_status_transitions(self, client, make_campaign, leader, auth_headers):
        """Leaders may submit drafts but not activate them"""
        draft = await make_campaign("Draft", status=CampaignStatus.DRAFT, approval_status=ApprovalStatus.PENDING)

        activate = await client.patch(
            f"/api/campaigns/{draft.id}/status", headers=auth_headers(leader), json={"status": "active"}
        )
        submit = await client.patch(
            f"/api/campaigns/{draft.id}/status", headers=auth_headers(leader), json={"status": "pending"}
        )

        assert activate.status_code == 400
        assert submit.status_code == 200
        assert submit.json()["campaign"]["status"] == "pending"


# ============================================================================
# MODERATION
# ============================================================================

class TestModeration:
    """Admin approval workflow"""

    @pytest.mark.asyncio
    async def test_approve(self, client, make_campaign, admin, leader, auth_headers, db_session):
        """Approval activates and notifies the creator"""
        pending = await make_campaign("Needs Review", status=CampaignStatus.PENDING,
                                      approval_status=ApprovalStatus.PENDING)

        response = await client.put(f"/api/admin/campaigns/{pending.id}/approve", headers=auth_headers(admin))

        assert response.status_code == 200
        data = response.json()["campaign"]
        assert data["status"] == "active"
        assert data["approval_status"] == "approved"

        notes = (await db_session.execute(
            select(Notification).where(Notification.recipient_id == leader.id)
        )).scalars().all()
        assert [n.title for n in notes] == ["Campaign approved"]

    @pytest.mark.asyncio
    async def test_reject_returns_to_draft(self, client, make_campaign, admin, auth_headers):
        """Rejection keeps the reason and sends the campaign back to draft"""
        pending = await make_campaign("Needs Review", status=CampaignStatus.PENDING,
                                      approval_status=ApprovalStatus.PENDING)

        response = await client.post(
            f"/api/campaigns/{pending.id}/reject", headers=auth_headers(admin), json={"reason": "Missing documents"}
        )

        data = response.json()["campaign"]
        assert data["status"] == "draft"
        assert data["approval_status"] == "rejected"
        assert data["rejection_reason"] == "Missing documents"

    @pytest.mark.asyncio
    async def test_reject_requires_reason(self, client, make_campaign, admin, auth_headers):
        """A blank reason is refused"""
        pending = await make_campaign("Needs Review", status=CampaignStatus.PENDING)

        response = await client.put(
            f"/api/admin/campaigns/{pending.id}/reject", headers=auth_headers(admin), json={"reason": "  "}
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_leader_cannot_approve(self, client, make_campaign, leader, auth_headers):
        """Only admins approve"""
        pending = await make_campaign("Needs Review", status=CampaignStatus.PENDING)

        response = await client.post(f"/api/campaigns/{pending.id}/approve", headers=auth_headers(leader))

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_suspend_active(self, client, campaign, admin, auth_headers):
        """Suspended campaigns stop accepting donations"""
        response = await client.put(
            f"/api/admin/campaigns/{campaign.id}/suspend", headers=auth_headers(admin), json={"reason": "Under review"}
        )

        assert response.json()["campaign"]["status"] == "suspended"

        donate = await client.post("/api/donations/create-payment-intent", json={
            "campaign_id": campaign.id, "amount": 10, "donor_email": "a@impacthub.org", "donor_name": "A",
        })
        assert donate.status_code == 400
        assert donate.json()["error"] == "Campaign is not accepting donations"


# ============================================================================
# LEGACY ROUTES
# ============================================================================

class TestLegacyRoutes:
    """Verb and path spellings used by the web client"""

    @pytest.mark.asyncio
    async def test_put_status(self, client, make_campaign, leader, auth_headers):
        """PUT /{id}/status behaves like PATCH"""
        draft = await make_campaign("Draft", status=CampaignStatus.DRAFT, approval_status=ApprovalStatus.PENDING)

        response = await client.put(
            f"/api/campaigns/{draft.id}/status", headers=auth_headers(leader), json={"status": "pending"}
        )

        assert response.status_code == 200
        assert response.json()["campaign"]["status"] == "pending"

    @pytest.mark.asyncio
    async def test_put_approve_and_reject(self, client, make_campaign, admin, auth_headers):
        """PUT works for approve and reject"""
        first = await make_campaign("First Review", status=CampaignStatus.PENDING,
                                    approval_status=ApprovalStatus.PENDING)
        second = await make_campaign("Second Review", status=CampaignStatus.PENDING,
                                     approval_status=ApprovalStatus.PENDING)

        approved = await client.put(f"/api/campaigns/{first.id}/approve", headers=auth_headers(admin))
        rejected = await client.put(
            f"/api/campaigns/{second.id}/reject", headers=auth_headers(admin), json={"reason": "Duplicate"}
        )

        assert approved.json()["campaign"]["status"] == "active"
        assert rejected.json()["campaign"]["approval_status"] == "rejected"

    @pytest.mark.asyncio
    async def test_user_my_campaigns(self, client, campaign, leader, auth_headers):
        """/user/my-campaigns lists the leader's own campaigns"""
        response = await client.get("/api/campaigns/user/my-campaigns", headers=auth_headers(leader))

        assert response.status_code == 200
        assert [c["title"] for c in response.json()["campaigns"]] == [campaign.title]
