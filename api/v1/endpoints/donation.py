# app/api/v1/endpoints/donation.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from core.capabilities import Capability, add_unimplemented_route
from core.database import get_db
from core.dependencies import get_current_user_optional
from core.exceptions import ValidationError
from core.permissions import get_current_user
from core.rate_limiter import rate_limit
from models.user import User
from schemas.donation import DonationConfirm, PaymentIntentCreate, PaymentIntentResponse
from services.donation_service import DonationService
from services.payment_gateway import StripeGateway, WebhookSignatureError, get_payment_gateway

logger = logging.getLogger(__name__)

router = APIRouter()
# gateway callbacks; mounted without the per-IP general limit
webhook_router = APIRouter()

authenticated = [Depends(get_current_user)]


# ========== payment flow ==========
@router.post("", include_in_schema=False)
async def create_donation_directly():
    raise ValidationError("Direct donation creation is not supported. Use the payment intent flow.")


@router.post(
    "/create-payment-intent",
    response_model=PaymentIntentResponse,
    dependencies=[Depends(rate_limit("donation")), Depends(rate_limit("payment"))],
)
async def create_payment_intent(
        data: PaymentIntentCreate,
        request: Request,
        requester: Optional[User] = Depends(get_current_user_optional),
        gateway: StripeGateway = Depends(get_payment_gateway),
        db: AsyncSession = Depends(get_db),
):
    return await DonationService(db, gateway, request).create_payment_intent(data, requester)


@router.post("/confirm", dependencies=[Depends(rate_limit("payment"))])
async def confirm_donation(
        data: DonationConfirm,
        request: Request,
        gateway: StripeGateway = Depends(get_payment_gateway),
        db: AsyncSession = Depends(get_db),
):
    return await DonationService(db, gateway, request).confirm_donation(data.payment_intent_id)


@webhook_router.post("/webhook")
@webhook_router.post("/webhook/stripe")
async def stripe_webhook(
        request: Request,
        gateway: StripeGateway = Depends(get_payment_gateway),
        db: AsyncSession = Depends(get_db),
):
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    service = DonationService(db, gateway, request)

    try:
        return await service.handle_webhook(payload, signature)
    except WebhookSignatureError as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        return JSONResponse(status_code=400, content={"error": f"Webhook Error: {e}"})
    except Exception:
        await db.rollback()
        logger.exception("Webhook handling failed")
        return JSONResponse(status_code=500, content={"error": "Webhook handling failed"})


add_unimplemented_route(webhook_router, "POST", "/webhook/payhere", Capability.PAYHERE_WEBHOOK)


# ========== public read side ==========
@router.get("/recent")
async def recent_donations(limit: int = Query(10, ge=1, le=50), db: AsyncSession = Depends(get_db)):
    return {"donations": await DonationService(db).recent_donations(limit)}


@router.get("/top")
async def top_donations(limit: int = Query(10, ge=1, le=50), db: AsyncSession = Depends(get_db)):
    return {"donations": await DonationService(db).top_donations(limit)}


@router.get("/stats")
async def donation_stats(db: AsyncSession = Depends(get_db)):
    return await DonationService(db).donation_stats()


# ========== donor ==========
@router.get("/my-donations")
async def my_donations(
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=100),
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    return await DonationService(db).my_donations(user, page, limit)


@router.get("/history/{email}")
async def donation_history(
        email: str,
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=100),
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    return await DonationService(db).donation_history(email, user, page, limit)


add_unimplemented_route(router, "POST", "/recurring", Capability.RECURRING_DONATIONS, dependencies=authenticated)
add_unimplemented_route(router, "GET", "/recurring", Capability.RECURRING_DONATIONS, dependencies=authenticated)
for action in ("cancel", "pause", "resume"):
    add_unimplemented_route(router, "PUT", f"/recurring/{{donation_id}}/{action}", Capability.RECURRING_DONATIONS,
                            dependencies=authenticated)
add_unimplemented_route(router, "GET", "/tax-summary", Capability.TAX_SUMMARY, dependencies=authenticated)
add_unimplemented_route(router, "GET", "/analytics", Capability.DONATION_ANALYTICS, dependencies=authenticated)
add_unimplemented_route(router, "PUT", "/{donation_id}/cancel", Capability.DONATION_CANCEL, dependencies=authenticated)
add_unimplemented_route(router, "POST", "/{donation_id}/refund", Capability.DONATION_REFUND, dependencies=authenticated)
add_unimplemented_route(router, "GET", "/{donation_id}/receipt", Capability.DONATION_RECEIPT, dependencies=authenticated)


@router.get("/{donation_id}")
async def get_donation(
        donation_id: int,
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    return {"donation": await DonationService(db).get_donation(donation_id, user)}
