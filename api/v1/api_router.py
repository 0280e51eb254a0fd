# app/api/v1/api_router.py
from fastapi import APIRouter, Depends

from core.dependencies import maintenance_guard
from core.rate_limiter import rate_limit
from api.v1.endpoints import (
    # Authentication
    auth,

    # Campaigns & Donations
    campaign,
    donation,

    # Administration & Reporting
    admin,
    analytics,

    # Notifications
    notification,
)

router_guards = [Depends(rate_limit("general")), Depends(maintenance_guard)]

api_router = APIRouter()

# ========== 1️⃣ Authentication ==========
api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"], dependencies=router_guards)

# ========== 2️⃣ Campaigns & Donations ==========
api_router.include_router(campaign.router, prefix="/campaigns", tags=["Campaigns"], dependencies=router_guards)
api_router.include_router(donation.router, prefix="/donations", tags=["Donations & Payments"],
                          dependencies=router_guards)
api_router.include_router(donation.webhook_router, prefix="/donations", tags=["Donations & Payments"])

# ========== 3️⃣ Administration & Reporting ==========
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"], dependencies=router_guards)
api_router.include_router(analytics.router, prefix="/analytics", tags=["Analytics"], dependencies=router_guards)

# ========== 4️⃣ Notifications ==========
api_router.include_router(notification.router, prefix="/notifications", tags=["Notifications"],
                          dependencies=router_guards)
