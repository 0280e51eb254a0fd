# scripts/seed_data.py
import asyncio
import os
import sys
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import AsyncSessionLocal, init_models
from core.security import hash_password
from models.campaign import ApprovalStatus, Campaign, CampaignCategory, CampaignStatus, Currency
from models.user import User, UserRole, UserStatus

# ========== accounts ==========
SEED_USERS = [
    {"name": "Platform Admin", "email": "admin@impacthub.org", "role": UserRole.ADMIN},
    {"name": "Nimal Perera", "email": "leader@impacthub.org", "role": UserRole.CAMPAIGN_LEADER},
    {"name": "Sara Fernando", "email": "donor@impacthub.org", "role": UserRole.DONOR},
]

# ========== campaigns (owned by the campaign leader) ==========
SEED_CAMPAIGNS = [
    {
        "title": "School Supplies for Rural Children",
        "description": "Provide books, uniforms and stationery for 500 students in rural villages.",
        "category": CampaignCategory.EDUCATION,
        "goal": 50000,
        "days": 60,
    },
    {
        "title": "Mobile Health Clinic",
        "description": "Fund a mobile clinic that brings basic healthcare to remote communities every week.",
        "category": CampaignCategory.HEALTH,
        "goal": 120000,
        "days": 90,
    },
    {
        "title": "Mangrove Restoration Project",
        "description": "Replant 10,000 mangrove saplings along the coast to protect against erosion.",
        "category": CampaignCategory.ENVIRONMENT,
        "goal": 30000,
        "days": 45,
    },
    {
        "title": "Community Kitchen Meals",
        "description": "Serve daily hot meals to families affected by food insecurity in the city.",
        "category": CampaignCategory.POVERTY,
        "goal": 25000,
        "days": 30,
    },
    {
        "title": "Flood Relief Packs",
        "description": "Deliver emergency kits with water, food and hygiene supplies to flood-hit districts.",
        "category": CampaignCategory.DISASTER_RELIEF,
        "goal": 75000,
        "days": 2,
    },
]


async def seed_users(db: AsyncSession, password: str) -> dict:
    """Create the demo accounts; existing emails are left untouched."""
    users = {}
    for data in SEED_USERS:
        result = await db.execute(select(User).where(User.email == data["email"]))
        user = result.scalar_one_or_none()
        if not user:
            user = User(
                name=data["name"],
                email=data["email"],
                hashed_password=hash_password(password),
                role=data["role"],
                status=UserStatus.ACTIVE,
                is_email_verified=True,
                preferences={},
                address={},
            )
            db.add(user)
            await db.flush()
            print(f"✅ User created: {user.email} ({user.role.value})")
        users[data["role"]] = user
    return users


async def seed_campaigns(db: AsyncSession, leader: User, admin: User):
    now = datetime.utcnow()
    for data in SEED_CAMPAIGNS:
        result = await db.execute(select(Campaign.id).where(Campaign.title == data["title"]))
        if result.scalar_one_or_none():
            continue

        db.add(Campaign(
            creator=leader,
            title=data["title"],
            description=data["description"],
            short_description=data["description"][:200],
            category=data["category"],
            goal=data["goal"],
            currency=Currency.USD,
            status=CampaignStatus.ACTIVE,
            approval_status=ApprovalStatus.APPROVED,
            approved_by=admin.id,
            approved_at=now,
            start_date=now,
            end_date=now + timedelta(days=data["days"]),
            updates=[],
            impact_reports=[],
        ))
        print(f"✅ Campaign created: {data['title']}")


async def init_db():
    password = os.environ.get("SEED_PASSWORD")
    if not password:
        sys.exit("SEED_PASSWORD must be set to seed demo accounts")

    await init_models()
    async with AsyncSessionLocal() as db:
        users = await seed_users(db, password)
        await seed_campaigns(db, users[UserRole.CAMPAIGN_LEADER], users[UserRole.ADMIN])
        await db.commit()
    print("✅ Seed data ready")


if __name__ == "__main__":
    asyncio.run(init_db())
