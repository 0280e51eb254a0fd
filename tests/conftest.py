"""
Shared fixtures for the ImpactHub API tests
In-memory SQLite per test, fake payment gateway, token helpers
"""

import os

# Settings are read at import time, so the environment must be ready first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-access-secret-0123456789abcdef"
os.environ["JWT_REFRESH_SECRET"] = "test-refresh-secret-0123456789abcdef"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_impacthub"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_impacthub"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["DEBUG"] = "false"

import json
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from main import app
from core.database import get_db, init_models
from core.security import create_access_token, hash_password
from models.campaign import ApprovalStatus, Campaign, CampaignCategory, CampaignStatus
from models.user import User, UserRole, UserStatus
from services.payment_gateway import WebhookSignatureError, get_payment_gateway

TEST_PASSWORD = "Password123"


class FakeGateway:
    """In-process stand-in for StripeGateway with controllable intent states."""

    name = "stripe"

    def __init__(self):
        self.intents = {}
        self._counter = 0

    async def create_intent(self, amount_minor, currency, metadata):
        self._counter += 1
        intent_id = f"pi_test_{self._counter}"
        self.intents[intent_id] = {
            "id": intent_id,
            "status": "requires_payment_method",
            "amount": amount_minor,
            "currency": currency.lower(),
            "metadata": metadata,
            "last_payment_error": None,
        }
        return {"id": intent_id, "client_secret": f"{intent_id}_secret", "status": "requires_payment_method"}

    async def retrieve_intent(self, intent_id):
        intent = self.intents.get(intent_id)
        if not intent:
            return {"id": intent_id, "status": "not_found"}
        return {key: intent[key] for key in ("id", "status", "amount", "currency", "last_payment_error")}

    def succeed(self, intent_id):
        self.intents[intent_id]["status"] = "succeeded"

    def construct_event(self, payload, signature):
        if signature != "valid":
            raise WebhookSignatureError("No signatures found matching the expected signature for payload")
        event = json.loads(payload)
        obj = event["data"]["object"]
        return {
            "id": event["id"],
            "type": event["type"],
            "object": {
                "id": obj.get("id"),
                "status": obj.get("status"),
                "last_payment_error": (obj.get("last_payment_error") or {}).get("message"),
            },
        }


# ============================================================================
# DATABASE
# ============================================================================

@pytest_asyncio.fixture(scope="function")
async def engine():
    """Fresh in-memory database with all tables"""
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_models(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(engine):
    """Session factory bound to the test engine"""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory):
    """Session for arranging and inspecting test data"""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def gateway():
    """Fake payment gateway"""
    return FakeGateway()


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, gateway):
    """Test client with a new session per request and the fake gateway"""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ============================================================================
# USERS & TOKENS
# ============================================================================

@pytest_asyncio.fixture
async def make_user(db_session):
    """Factory creating users directly in the database"""
    async def _make_user(email, role=UserRole.DONOR, name="Test User", **fields):
        user = User(
            name=name,
            email=email,
            hashed_password=hash_password(fields.pop("password", TEST_PASSWORD)),
            role=role,
            status=fields.pop("status", UserStatus.ACTIVE),
            preferences={},
            address={},
            **fields,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make_user


def bearer(user):
    token = create_access_token(user.uuid, extra_data={"role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    """Build an Authorization header for a user"""
    return bearer


@pytest_asyncio.fixture
async def donor(make_user):
    """Registered donor account"""
    return await make_user("donor@impacthub.org", UserRole.DONOR, name="Dana Donor")


@pytest_asyncio.fixture
async def leader(make_user):
    """Campaign leader account"""
    return await make_user("leader@impacthub.org", UserRole.CAMPAIGN_LEADER, name="Lee Leader")


@pytest_asyncio.fixture
async def admin(make_user):
    """Administrator account"""
    return await make_user("admin@impacthub.org", UserRole.ADMIN, name="Ada Admin")


# ============================================================================
# CAMPAIGNS
# ============================================================================

@pytest_asyncio.fixture
async def make_campaign(db_session, leader):
    """Factory creating campaigns owned by the leader"""
    async def _make_campaign(title="Clean Water Wells", **fields):
        now = datetime.utcnow()
        campaign = Campaign(
            creator_id=fields.pop("creator_id", leader.id),
            title=title,
            description=fields.pop("description", "Drill wells that bring clean water to villages."),
            category=fields.pop("category", CampaignCategory.HEALTH),
            goal=fields.pop("goal", 50000),
            raised=fields.pop("raised", 0),
            status=fields.pop("status", CampaignStatus.ACTIVE),
            approval_status=fields.pop("approval_status", ApprovalStatus.APPROVED),
            start_date=fields.pop("start_date", now),
            end_date=fields.pop("end_date", now + timedelta(days=30)),
            updates=fields.pop("updates", []),
            impact_reports=fields.pop("impact_reports", []),
            **fields,
        )
        db_session.add(campaign)
        await db_session.commit()
        await db_session.refresh(campaign)
        return campaign

    return _make_campaign


@pytest_asyncio.fixture
async def campaign(make_campaign):
    """Active campaign with a 50000 goal"""
    return await make_campaign()
