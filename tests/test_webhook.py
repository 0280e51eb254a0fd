"""
Integration Tests for payment gateway webhooks
Event verification, completion, failure and replay handling
"""

import hashlib
import hmac
import json
import time

import pytest
import stripe
from sqlalchemy import select

from core.constants import RATE_LIMITS
from core.rate_limiter import rate_limiter
from main import app
from models.audit_log import AuditAction, AuditLog
from models.campaign import Campaign
from models.donation import Donation, DonationStatus
from services.payment_gateway import StripeGateway, WebhookSignatureError, get_payment_gateway

WEBHOOK_SECRET = "whsec_test_impacthub"


def event_body(intent_id, event_type="payment_intent.succeeded", status="succeeded", error=None):
    intent = {"id": intent_id, "object": "payment_intent", "status": status}
    if error:
        intent["last_payment_error"] = {"message": error}
    return json.dumps({"id": f"evt_{intent_id}", "type": event_type, "data": {"object": intent}})


def stripe_signature(payload, secret=WEBHOOK_SECRET, timestamp=None):
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


async def pending_donation(client, campaign_id, amount=75):
    response = await client.post("/api/donations/create-payment-intent", json={
        "campaign_id": campaign_id,
        "amount": amount,
        "donor_email": "hook@impacthub.org",
        "donor_name": "Hook Donor",
    })
    return response.json()


async def load_donation(db_session, donation_id):
    return (await db_session.execute(
        select(Donation).where(Donation.id == donation_id).execution_options(populate_existing=True)
    )).scalar_one()


# ============================================================================
# EVENT HANDLING
# ============================================================================

class TestWebhookEvents:
    """POST /api/donations/webhook"""

    @pytest.mark.asyncio
    async def test_succeeded_completes_donation(self, client, campaign, db_session):
        """payment_intent.succeeded completes the donation"""
        intent = await pending_donation(client, campaign.id)

        response = await client.post(
            "/api/donations/webhook",
            content=event_body(intent["payment_intent_id"]),
            headers={"stripe-signature": "valid"},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}
        donation = await load_donation(db_session, intent["donation_id"])
        assert donation.status == DonationStatus.COMPLETED
        assert donation.receipt_number.startswith("RCP-")

    @pytest.mark.asyncio
    async def test_replay_applies_once(self, client, campaign, db_session):
        """Redelivered events do not double count"""
        intent = await pending_donation(client, campaign.id, amount=75)
        body = event_body(intent["payment_intent_id"])

        for _ in range(3):
            response = await client.post("/api/donations/webhook/stripe", content=body,
                                         headers={"stripe-signature": "valid"})
            assert response.status_code == 200

        fresh = (await db_session.execute(
            select(Campaign).where(Campaign.id == campaign.id).execution_options(populate_existing=True)
        )).scalar_one()
        assert fresh.raised == 75
        assert fresh.donation_count == 1

        logs = (await db_session.execute(
            select(AuditLog).where(AuditLog.action == AuditAction.DONATION_MADE)
        )).scalars().all()
        assert len(logs) == 1

    @pytest.mark.asyncio
    async def test_webhook_then_confirm(self, client, gateway, campaign, db_session):
        """Confirm after the webhook reports the donation as already confirmed"""
        intent = await pending_donation(client, campaign.id, amount=40)
        gateway.succeed(intent["payment_intent_id"])
        await client.post("/api/donations/webhook", content=event_body(intent["payment_intent_id"]),
                          headers={"stripe-signature": "valid"})

        response = await client.post("/api/donations/confirm",
                                     json={"payment_intent_id": intent["payment_intent_id"]})

        assert response.json()["message"] == "Donation already confirmed"
        fresh = (await db_session.execute(
            select(Campaign).where(Campaign.id == campaign.id).execution_options(populate_existing=True)
        )).scalar_one()
        assert fresh.raised == 40

    @pytest.mark.asyncio
    async def test_payment_failed(self, client, campaign, db_session):
        """payment_intent.payment_failed marks the donation failed"""
        intent = await pending_donation(client, campaign.id)

        response = await client.post(
            "/api/donations/webhook",
            content=event_body(intent["payment_intent_id"], "payment_intent.payment_failed",
                               "requires_payment_method", error="Your card was declined."),
            headers={"stripe-signature": "valid"},
        )

        assert response.status_code == 200
        donation = await load_donation(db_session, intent["donation_id"])
        assert donation.status == DonationStatus.FAILED
        assert donation.failure_reason == "Your card was declined."

    @pytest.mark.asyncio
    async def test_success_after_failure_ignored(self, client, campaign, db_session):
        """A failed donation is never completed by a late success event"""
        intent = await pending_donation(client, campaign.id)
        await client.post(
            "/api/donations/webhook",
            content=event_body(intent["payment_intent_id"], "payment_intent.payment_failed", "canceled"),
            headers={"stripe-signature": "valid"},
        )

        response = await client.post("/api/donations/webhook", content=event_body(intent["payment_intent_id"]),
                                     headers={"stripe-signature": "valid"})

        assert response.status_code == 200
        donation = await load_donation(db_session, intent["donation_id"])
        assert donation.status == DonationStatus.FAILED

    @pytest.mark.asyncio
    async def test_unknown_intent_acknowledged(self, client):
        """Events for intents we never created are acknowledged"""
        response = await client.post("/api/donations/webhook", content=event_body("pi_elsewhere"),
                                     headers={"stripe-signature": "valid"})

        assert response.status_code == 200
        assert response.json() == {"received": True}

    @pytest.mark.asyncio
    async def test_unhandled_event_type(self, client):
        """Other event types are acknowledged without side effects"""
        response = await client.post(
            "/api/donations/webhook",
            content=event_body("pi_x", "charge.refunded", "succeeded"),
            headers={"stripe-signature": "valid"},
        )

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_bad_signature(self, client, campaign, db_session):
        """Unverifiable payloads are rejected and change nothing"""
        intent = await pending_donation(client, campaign.id)

        response = await client.post("/api/donations/webhook", content=event_body(intent["payment_intent_id"]),
                                     headers={"stripe-signature": "forged"})

        assert response.status_code == 400
        assert response.json()["error"].startswith("Webhook Error: ")
        donation = await load_donation(db_session, intent["donation_id"])
        assert donation.status == DonationStatus.PENDING

    @pytest.mark.asyncio
    async def test_not_subject_to_general_limit(self, client, monkeypatch):
        """Gateway deliveries bypass the per-IP general budget that other routes share"""
        monkeypatch.setattr(rate_limiter, "enabled", True)
        monkeypatch.setattr(rate_limiter, "redis_url", None)
        monkeypatch.setitem(RATE_LIMITS, "general", (2, 15 * 60))
        await rate_limiter.reset()

        try:
            deliveries = []
            for i in range(5):
                response = await client.post("/api/donations/webhook", content=event_body(f"pi_burst_{i}"),
                                             headers={"stripe-signature": "valid"})
                deliveries.append(response.status_code)
            reads = []
            for _ in range(3):
                reads.append((await client.get("/api/donations/recent")).status_code)
        finally:
            await rate_limiter.reset()

        assert deliveries == [200] * 5
        assert reads == [200, 200, 429]

    @pytest.mark.asyncio
    async def test_payhere_not_implemented(self, client):
        """The PayHere webhook is declared but not built"""
        response = await client.post("/api/donations/webhook/payhere")

        assert response.status_code == 501
        assert response.json()["code"] == "payhere_webhook"


# ============================================================================
# STRIPE SIGNATURE VERIFICATION
# ============================================================================

class TestStripeGateway:
    """StripeGateway.construct_event with real Stripe signature checks"""

    def test_valid_signature(self):
        """A correctly signed payload is normalized"""
        gateway = StripeGateway("sk_test_impacthub", WEBHOOK_SECRET)
        payload = event_body("pi_signed", "payment_intent.payment_failed", "requires_payment_method",
                             error="Insufficient funds")

        event = gateway.construct_event(payload.encode(), stripe_signature(payload))

        assert event["type"] == "payment_intent.payment_failed"
        assert event["object"]["id"] == "pi_signed"
        assert event["object"]["last_payment_error"] == "Insufficient funds"

    def test_wrong_secret(self):
        """Signatures made with another secret are rejected"""
        gateway = StripeGateway("sk_test_impacthub", WEBHOOK_SECRET)
        payload = event_body("pi_signed")

        with pytest.raises(WebhookSignatureError):
            gateway.construct_event(payload.encode(), stripe_signature(payload, secret="whsec_other"))

    def test_missing_header(self):
        """No signature header at all"""
        gateway = StripeGateway("sk_test_impacthub", WEBHOOK_SECRET)

        with pytest.raises(WebhookSignatureError, match="Missing"):
            gateway.construct_event(b"{}", None)


# ============================================================================
# STRIPE SDK OBJECTS END TO END
# ============================================================================

class TestStripeObjects:
    """Real StripeGateway behind the API, reading genuine StripeObjects"""

    @pytest.mark.asyncio
    async def test_signed_webhook_completes_donation(self, client, campaign, db_session):
        """A Stripe-signed succeeded event completes the donation"""
        intent = await pending_donation(client, campaign.id, amount=60)
        app.dependency_overrides[get_payment_gateway] = lambda: StripeGateway("sk_test_impacthub", WEBHOOK_SECRET)
        payload = event_body(intent["payment_intent_id"])

        response = await client.post("/api/donations/webhook", content=payload,
                                     headers={"stripe-signature": stripe_signature(payload)})

        assert response.status_code == 200
        assert response.json() == {"received": True}
        donation = await load_donation(db_session, intent["donation_id"])
        assert donation.status == DonationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_signed_failure_records_reason(self, client, campaign, db_session):
        """Nested last_payment_error objects are read from the SDK event"""
        intent = await pending_donation(client, campaign.id)
        app.dependency_overrides[get_payment_gateway] = lambda: StripeGateway("sk_test_impacthub", WEBHOOK_SECRET)
        payload = event_body(intent["payment_intent_id"], "payment_intent.payment_failed",
                             "requires_payment_method", error="Your card has expired.")

        response = await client.post("/api/donations/webhook/stripe", content=payload,
                                     headers={"stripe-signature": stripe_signature(payload)})

        assert response.status_code == 200
        donation = await load_donation(db_session, intent["donation_id"])
        assert donation.status == DonationStatus.FAILED
        assert donation.failure_reason == "Your card has expired."

    @pytest.mark.asyncio
    async def test_confirm_reads_retrieved_intent(self, client, campaign, db_session, monkeypatch):
        """/confirm works on the PaymentIntent object the SDK returns"""
        intent = await pending_donation(client, campaign.id, amount=45)
        intent_id = intent["payment_intent_id"]

        def retrieve(requested_id, **kwargs):
            return stripe.PaymentIntent.construct_from({
                "id": requested_id,
                "object": "payment_intent",
                "status": "succeeded",
                "amount": 4500,
                "currency": "usd",
                "last_payment_error": None,
            }, "sk_test_impacthub")

        monkeypatch.setattr(stripe.PaymentIntent, "retrieve", retrieve)
        app.dependency_overrides[get_payment_gateway] = lambda: StripeGateway("sk_test_impacthub", WEBHOOK_SECRET)

        response = await client.post("/api/donations/confirm", json={"payment_intent_id": intent_id})

        assert response.status_code == 200
        assert response.json()["message"] == "Donation confirmed successfully"
        donation = await load_donation(db_session, intent["donation_id"])
        assert donation.status == DonationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_retrieve_intent_error_message(self, monkeypatch):
        """retrieve_intent flattens last_payment_error to its message"""
        def retrieve(requested_id, **kwargs):
            return stripe.PaymentIntent.construct_from({
                "id": requested_id,
                "object": "payment_intent",
                "status": "requires_payment_method",
                "amount": 1000,
                "currency": "usd",
                "last_payment_error": {"message": "Card declined", "type": "card_error"},
            }, "sk_test_impacthub")

        monkeypatch.setattr(stripe.PaymentIntent, "retrieve", retrieve)

        result = await StripeGateway("sk_test_impacthub", WEBHOOK_SECRET).retrieve_intent("pi_declined")

        assert result["status"] == "requires_payment_method"
        assert result["last_payment_error"] == "Card declined"
