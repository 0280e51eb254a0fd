"""
Integration Tests for the admin surface
User moderation, campaign review queue, audit logs and settings
"""

import pytest
from sqlalchemy import select

from core.config import settings
from models.audit_log import AuditAction, AuditLog
from models.campaign import ApprovalStatus, CampaignStatus, Currency
from models.donation import Donation
from models.notification import Notification
from models.user import User, UserRole, UserStatus
from services import admin_service


@pytest.fixture
def restore_settings(monkeypatch):
    """Undo in-process settings overrides after the test"""
    for name in ("APP_NAME", "MIN_DONATION_AMOUNT", "MAX_DONATION_AMOUNT", "PROCESSING_FEE_PERCENT",
                 "PLATFORM_FEE_PERCENT", "DEFAULT_CURRENCY", "CAMPAIGN_REQUIRE_APPROVAL",
                 "CAMPAIGN_MAX_DURATION_DAYS"):
        monkeypatch.setattr(settings, name, getattr(settings, name))
    for flag, value in list(admin_service._system_flags.items()):
        monkeypatch.setitem(admin_service._system_flags, flag, value)


# ============================================================================
# USERS
# ============================================================================

class TestUserManagement:
    """/api/admin/users"""

    @pytest.mark.asyncio
    async def test_list_users_filters(self, client, admin, donor, leader, auth_headers):
        """Role filter and pagination block"""
        response = await client.get("/api/admin/users?role=donor", headers=auth_headers(admin))

        assert response.status_code == 200
        data = response.json()
        assert [u["email"] for u in data["users"]] == [donor.email]
        assert data["pagination"] == {"current": 1, "pages": 1, "total": 1}

    @pytest.mark.asyncio
    async def test_search_users(self, client, admin, donor, leader, auth_headers):
        """Search matches name or email"""
        response = await client.get("/api/admin/users?search=lee", headers=auth_headers(admin))

        assert [u["email"] for u in response.json()["users"]] == [leader.email]

    @pytest.mark.asyncio
    async def test_get_user(self, client, admin, donor, auth_headers):
        """Single user with recent donations"""
        response = await client.get(f"/api/admin/users/{donor.id}", headers=auth_headers(admin))

        assert response.status_code == 200
        assert response.json()["user"]["email"] == donor.email
        assert response.json()["recent_donations"] == []

    @pytest.mark.asyncio
    async def test_get_missing_user(self, client, admin, auth_headers):
        """Unknown ids are 404"""
        response = await client.get("/api/admin/users/999", headers=auth_headers(admin))

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_suspend_user(self, client, admin, donor, auth_headers, db_session):
        """Suspension is audited, notified and blocks the account"""
        response = await client.put(f"/api/admin/users/{donor.id}/status", headers=auth_headers(admin), json={
            "status": "suspended", "reason": "Chargeback investigation",
        })

        assert response.status_code == 200
        assert response.json()["user"]["status"] == "suspended"

        audit = (await db_session.execute(
            select(AuditLog).where(AuditLog.action == AuditAction.USER_STATUS_UPDATED)
        )).scalar_one()
        assert audit.details["to"] == "suspended"
        note = (await db_session.execute(
            select(Notification).where(Notification.recipient_id == donor.id)
        )).scalar_one()
        assert note.title == "Account status updated"

        me = await client.get("/api/auth/me", headers=auth_headers(donor))
        assert me.status_code == 401

        login = await client.post("/api/auth/login", json={"email": donor.email, "password": "Password123"})
        assert login.status_code == 401
        assert login.json()["error"] == "Account is suspended."

    @pytest.mark.asyncio
    async def test_ban_sets_flags(self, client, admin, donor, auth_headers, db_session):
        """Banning mirrors the status into is_banned"""
        await client.put(f"/api/admin/users/{donor.id}/status", headers=auth_headers(admin), json={
            "status": "banned", "reason": "Fraud",
        })

        user = (await db_session.execute(
            select(User).where(User.id == donor.id).execution_options(populate_existing=True)
        )).scalar_one()
        assert user.status == UserStatus.BANNED
        assert user.is_banned is True
        assert user.ban_reason == "Fraud"

    @pytest.mark.asyncio
    async def test_status_change_needs_reason(self, client, admin, donor, auth_headers):
        """Suspending without a reason is refused"""
        response = await client.put(f"/api/admin/users/{donor.id}/status", headers=auth_headers(admin), json={
            "status": "suspended",
        })

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_admin_cannot_change_own_status(self, client, admin, auth_headers):
        """Admins cannot lock themselves out"""
        response = await client.put(f"/api/admin/users/{admin.id}/status", headers=auth_headers(admin), json={
            "status": "banned", "reason": "oops",
        })

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_change_role(self, client, admin, donor, auth_headers):
        """Promote a donor to campaign leader"""
        response = await client.put(f"/api/admin/users/{donor.id}/role", headers=auth_headers(admin), json={
            "role": "campaign-leader",
        })

        assert response.status_code == 200
        assert response.json()["user"]["role"] == UserRole.CAMPAIGN_LEADER.value

    @pytest.mark.asyncio
    async def test_cannot_demote_self(self, client, admin, auth_headers):
        """The last word on admin rights stays with another admin"""
        response = await client.put(f"/api/admin/users/{admin.id}/role", headers=auth_headers(admin), json={
            "role": "donor",
        })

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_delete_user_is_soft(self, client, admin, donor, auth_headers, db_session):
        """Deleting deactivates the account"""
        response = await client.delete(f"/api/admin/users/{donor.id}", headers=auth_headers(admin))

        assert response.status_code == 200
        user = (await db_session.execute(
            select(User).where(User.id == donor.id).execution_options(populate_existing=True)
        )).scalar_one()
        assert user.is_active is False


# ============================================================================
# CAMPAIGN REVIEW
# ============================================================================

class TestCampaignReview:
    """/api/admin/campaigns"""

    @pytest.mark.asyncio
    async def test_pending_queue_and_approve(self, client, admin, make_campaign, auth_headers):
        """Pending campaigns are listed and can be approved"""
        pending = await make_campaign("Awaiting Review", status=CampaignStatus.PENDING,
                                     approval_status=ApprovalStatus.PENDING)
        await make_campaign("Already Live")

        queue = await client.get("/api/admin/campaigns/pending", headers=auth_headers(admin))
        assert [c["title"] for c in queue.json()["campaigns"]] == ["Awaiting Review"]

        response = await client.put(f"/api/admin/campaigns/{pending.id}/approve", headers=auth_headers(admin))
        assert response.status_code == 200
        assert response.json()["campaign"]["status"] == "active"

    @pytest.mark.asyncio
    async def test_suspend_requires_active(self, client, admin, make_campaign, auth_headers):
        """Only active campaigns can be suspended"""
        draft = await make_campaign("Draft Idea", status=CampaignStatus.DRAFT)

        response = await client.put(f"/api/admin/campaigns/{draft.id}/suspend", headers=auth_headers(admin),
                                    json={"reason": "Misleading"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_admin_list_filters(self, client, admin, make_campaign, auth_headers):
        """Admins see every status"""
        await make_campaign("Hidden Draft", status=CampaignStatus.DRAFT)
        await make_campaign("Public One")

        response = await client.get("/api/admin/campaigns?status=draft", headers=auth_headers(admin))

        assert [c["title"] for c in response.json()["campaigns"]] == ["Hidden Draft"]


# ============================================================================
# PLATFORM
# ============================================================================

class TestPlatform:
    """Stats, audit logs, broadcasts and settings"""

    @pytest.mark.asyncio
    async def test_platform_stats(self, client, admin, donor, campaign, auth_headers):
        """Headline counters"""
        response = await client.get("/api/admin/stats", headers=auth_headers(admin))

        assert response.status_code == 200
        data = response.json()
        assert data["users"]["total"] == 3
        assert data["campaigns"]["total"] == 1

    @pytest.mark.asyncio
    async def test_audit_logs_filter(self, client, admin, donor, auth_headers):
        """Logs filter by action"""
        await client.post("/api/auth/logout", headers=auth_headers(donor))
        await client.delete(f"/api/admin/users/{donor.id}", headers=auth_headers(admin))

        response = await client.get("/api/admin/logs/audit?action=user_deleted", headers=auth_headers(admin))

        logs = response.json()["logs"]
        assert len(logs) == 1
        assert logs[0]["resource_id"] == str(donor.id)
        assert logs[0]["user_id"] == admin.id

    @pytest.mark.asyncio
    async def test_broadcast_by_role(self, client, admin, donor, leader, auth_headers):
        """Broadcasts can target a single role"""
        response = await client.post("/api/admin/notifications/broadcast", headers=auth_headers(admin), json={
            "title": "New feature", "message": "Impact reports are live", "role": "campaign-leader",
        })

        assert response.json()["recipients"] == 1

    @pytest.mark.asyncio
    async def test_get_settings(self, client, admin, auth_headers):
        """Current effective settings"""
        response = await client.get("/api/admin/settings", headers=auth_headers(admin))

        data = response.json()["settings"]
        assert data["registration_enabled"] is True
        assert data["donations"]["min_amount"] == settings.MIN_DONATION_AMOUNT

    @pytest.mark.asyncio
    async def test_update_settings(self, client, admin, campaign, auth_headers, db_session, restore_settings):
        """Overrides apply immediately and are audited"""
        response = await client.put("/api/admin/settings", headers=auth_headers(admin), json={
            "donations": {
                "min_amount": 5, "max_amount": 1000, "processing_fee_percent": 2.9, "platform_fee_percent": 5,
            },
        })

        assert response.status_code == 200
        assert response.json()["settings"]["donations"]["min_amount"] == 5

        small = await client.post("/api/donations/create-payment-intent", json={
            "campaign_id": campaign.id, "amount": 3, "donor_email": "a@impacthub.org", "donor_name": "A",
        })
        assert small.status_code == 400

        audit = (await db_session.execute(
            select(AuditLog).where(AuditLog.action == AuditAction.SETTINGS_CHANGED)
        )).scalar_one()
        assert audit.resource_id.startswith("SET-")

    @pytest.mark.asyncio
    async def test_default_currency(self, client, admin, campaign, auth_headers, db_session, restore_settings):
        """New donations without a currency use the configured default"""
        await client.put("/api/admin/settings", headers=auth_headers(admin), json={
            "donations": {
                "min_amount": 1, "max_amount": 1000, "processing_fee_percent": 3, "platform_fee_percent": 5,
                "default_currency": "EUR",
            },
        })

        response = await client.post("/api/donations/create-payment-intent", json={
            "campaign_id": campaign.id, "amount": 20, "donor_email": "eu@impacthub.org", "donor_name": "Eu",
        })

        assert response.status_code == 200
        assert settings.DEFAULT_CURRENCY == "EUR"
        donation = await db_session.get(Donation, response.json()["donation_id"])
        assert donation.currency == Currency.EUR

    @pytest.mark.asyncio
    async def test_disable_registration(self, client, admin, auth_headers, restore_settings):
        """Turning registration off blocks sign-ups"""
        await client.put("/api/admin/settings", headers=auth_headers(admin), json={"registration_enabled": False})

        response = await client.post("/api/auth/register", json={
            "name": "Late Comer", "email": "late@impacthub.org", "password": "StrongPass123",
        })

        assert response.status_code == 403
        assert response.json()["error"] == "Registration is currently disabled"

    @pytest.mark.asyncio
    async def test_invalid_amount_range(self, client, admin, auth_headers, restore_settings):
        """min above max is refused"""
        response = await client.put("/api/admin/settings", headers=auth_headers(admin), json={
            "donations": {
                "min_amount": 500, "max_amount": 10, "processing_fee_percent": 0, "platform_fee_percent": 0,
            },
        })

        assert response.status_code == 400

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path,code", [
        ("/api/admin/donations", "admin_donations"),
        ("/api/admin/reports/tax", "tax_reports"),
        ("/api/admin/stats/growth", "growth_stats"),
        ("/api/admin/export/users", "data_export"),
    ])
    async def test_stubs(self, client, admin, auth_headers, path, code):
        """Declared admin features answer 501"""
        response = await client.get(path, headers=auth_headers(admin))

        assert response.status_code == 501
        assert response.json()["code"] == code


# ============================================================================
# MAINTENANCE MODE
# ============================================================================

class TestMaintenanceMode:
    """Writes are refused for everyone but admins while maintenance is on"""

    @pytest.mark.asyncio
    async def test_blocks_writes(self, client, admin, donor, campaign, auth_headers, restore_settings):
        """Donors get 503 on writes but can still browse"""
        await client.put("/api/admin/settings", headers=auth_headers(admin), json={"maintenance_mode": True})

        blocked = await client.post("/api/donations/create-payment-intent", headers=auth_headers(donor), json={
            "campaign_id": campaign.id, "amount": 20, "donor_email": donor.email, "donor_name": donor.name,
        })
        browse = await client.get(f"/api/campaigns/{campaign.id}")

        assert blocked.status_code == 503
        assert blocked.json()["error"] == "Platform is under maintenance, please try again later."
        assert browse.status_code == 200

    @pytest.mark.asyncio
    async def test_admin_can_sign_in_and_switch_off(self, client, admin, donor, auth_headers, restore_settings):
        """Login stays open and the admin lifts maintenance"""
        admin_service._system_flags["maintenance_mode"] = True

        login = await client.post("/api/auth/login", json={"email": admin.email, "password": "Password123"})
        assert login.status_code == 200

        response = await client.put("/api/admin/settings", headers=auth_headers(admin),
                                    json={"maintenance_mode": False})
        assert response.status_code == 200

        marked = await client.put("/api/notifications/mark-all-read", headers=auth_headers(donor))
        assert marked.status_code == 200
