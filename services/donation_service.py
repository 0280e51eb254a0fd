# app/services/donation_service.py
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy import select, func, desc, update, case
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import Forbidden, InvalidState, NotFound, PaymentIncomplete, ValidationError
from core.rate_limiter import client_ip
from models.audit_log import AuditAction, AuditOutcome, AuditResource
from models.campaign import Campaign, CampaignStatus
from models.donation import Donation, DonationStatus, PaymentMethod
from models.user import User, UserRole
from schemas.donation import DonationDetail, DonationRead, PaymentIntentCreate, PublicDonationRead
from services.audit_service import AuditService
from services.notification_service import NotificationService
from services.payment_gateway import StripeGateway
from utils.helpers import generate_receipt_number, to_minor_units
from utils.pagination import paginate

logger = logging.getLogger(__name__)

SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"


class DonationService:
    def __init__(self, db: AsyncSession, gateway: Optional[StripeGateway] = None,
                 request: Optional[Request] = None):
        self.db = db
        self.gateway = gateway
        self.request = request
        self.audit = AuditService(db, request)
        self.notifications = NotificationService(db)

    # ---------- payment intent ----------
    async def create_payment_intent(self, data: PaymentIntentCreate, requester: Optional[User] = None) -> Dict[str, Any]:
        if data.amount < settings.MIN_DONATION_AMOUNT:
            raise ValidationError(f"Minimum donation amount is {settings.MIN_DONATION_AMOUNT}")
        if data.amount > settings.MAX_DONATION_AMOUNT:
            raise ValidationError(f"Maximum donation amount is {settings.MAX_DONATION_AMOUNT}")

        campaign = await self.db.get(Campaign, data.campaign_id)
        if not campaign:
            raise NotFound("Campaign not found")
        if not campaign.is_accepting_donations:
            raise InvalidState("Campaign is not accepting donations")

        donor_id = requester.id if requester else await self._user_id_for_email(data.donor_email)

        intent = await self.gateway.create_intent(
            to_minor_units(data.amount),
            data.currency.value,
            {
                "campaign_id": campaign.id,
                "campaign_title": campaign.title,
                "donor_email": data.donor_email,
                "donor_name": data.donor_name,
                "donor_id": donor_id,
            },
        )

        processing_fee = round(data.amount * settings.PROCESSING_FEE_PERCENT / 100, 2)
        donation = Donation(
            amount=data.amount,
            currency=data.currency,
            campaign_id=campaign.id,
            donor_id=donor_id,
            donor_email=data.donor_email,
            donor_name=data.donor_name,
            is_anonymous=data.is_anonymous,
            message=data.message,
            dedicated_to=data.dedicated_to,
            payment_id=intent["id"],
            payment_method=PaymentMethod.STRIPE,
            payment_gateway=self.gateway.name,
            processing_fee=processing_fee,
            net_amount=round(data.amount - processing_fee, 2),
            status=DonationStatus.PENDING,
            source=data.source,
            **self._provenance(),
        )
        self.db.add(donation)
        await self.db.commit()
        await self.db.refresh(donation)

        logger.info(f"Payment intent {intent['id']} created for donation {donation.id} "
                    f"({data.amount} {data.currency.value} to campaign {campaign.id})")
        return {
            "client_secret": intent["client_secret"],
            "donation_id": donation.id,
            "payment_intent_id": intent["id"],
        }

    def _provenance(self) -> Dict[str, Optional[str]]:
        if not self.request:
            return {"ip_address": None, "user_agent": None, "referrer": None}
        headers = self.request.headers
        return {
            "ip_address": client_ip(self.request),
            "user_agent": headers.get("user-agent"),
            "referrer": (headers.get("referer") or "")[:500] or None,
        }

    # ---------- confirmation ----------
    async def confirm_donation(self, payment_intent_id: str) -> Dict[str, Any]:
        intent = await self.gateway.retrieve_intent(payment_intent_id)
        if intent["status"] != "succeeded":
            raise PaymentIncomplete("Payment not completed", details={"status": intent["status"]})

        donation = await self._get_by_payment_id(payment_intent_id)
        if donation.status == DonationStatus.COMPLETED:
            return {"message": "Donation already confirmed", "donation": self._detail(donation)}

        donation, completed_now = await self._complete_donation(payment_intent_id)
        message = "Donation confirmed successfully" if completed_now else "Donation already confirmed"
        return {"message": message, "donation": self._detail(donation)}

    async def handle_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify and apply a gateway event; signature errors propagate to the caller."""
        event = self.gateway.construct_event(payload, signature)
        intent = event["object"]
        logger.info(f"Webhook {event['id']} received: {event['type']} for {intent['id']}")

        if event["type"] == SUCCEEDED:
            try:
                await self._complete_donation(intent["id"], user=None)
            except NotFound:
                logger.warning(f"Webhook for unknown payment intent {intent['id']} ignored")
            except InvalidState as e:
                logger.warning(f"Webhook completion skipped for {intent['id']}: {e.detail}")
        elif event["type"] == PAYMENT_FAILED:
            await self._fail_donation(intent["id"], intent.get("last_payment_error") or "Payment failed")
        else:
            logger.info(f"Unhandled webhook event type {event['type']}")

        return {"received": True}

    async def _complete_donation(self, payment_id: str, user: Optional[User] = None):
        """
        Move a pending donation to completed and roll its amount into the campaign and
        donor totals, all in one transaction. Every write is conditional or
        relative, so replays and concurrent confirm/webhook calls apply at most once.
        Returns (donation, completed_now).
        """
        donation = await self._get_by_payment_id(payment_id)
        now = datetime.utcnow()
        amount = donation.amount

        try:
            claimed = await self.db.execute(
                update(Donation)
                .where(Donation.payment_id == payment_id, Donation.status == DonationStatus.PENDING)
                .values(
                    status=DonationStatus.COMPLETED,
                    completed_at=now,
                    receipt_number=generate_receipt_number(),
                    tax_year=now.year,
                    transaction_id=payment_id,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                await self.db.rollback()
                await self.db.refresh(donation)
                if donation.status == DonationStatus.COMPLETED:
                    return donation, False
                raise InvalidState(f"Donation is {donation.status.value}")

            prior = (await self.db.execute(
                select(func.count(Donation.id)).where(
                    Donation.campaign_id == donation.campaign_id,
                    Donation.donor_email == donation.donor_email,
                    Donation.status == DonationStatus.COMPLETED,
                    Donation.id != donation.id,
                )
            )).scalar_one()
            first = 0 if prior else 1

            await self.db.execute(
                update(Campaign)
                .where(Campaign.id == donation.campaign_id)
                .values(
                    raised=Campaign.raised + amount,
                    donation_count=Campaign.donation_count + 1,
                    donor_count=Campaign.donor_count + first,
                    average_donation=(Campaign.raised + amount) / (Campaign.donation_count + 1),
                    top_donation=case((Campaign.top_donation < amount, amount), else_=Campaign.top_donation),
                    conversion_rate=case(
                        (Campaign.views > 0, (Campaign.donor_count + first) * 100.0 / Campaign.views),
                        else_=0.0,
                    ),
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )

            goal_reached = await self.db.execute(
                update(Campaign)
                .where(
                    Campaign.id == donation.campaign_id,
                    Campaign.status == CampaignStatus.ACTIVE,
                    Campaign.raised >= Campaign.goal,
                )
                .values(status=CampaignStatus.COMPLETED, completed_at=now)
                .execution_options(synchronize_session=False)
            )

            await self.db.execute(
                update(User)
                .where(User.email == donation.donor_email)
                .values(
                    total_donated=User.total_donated + amount,
                    donation_count=User.donation_count + 1,
                    campaigns_supported=User.campaigns_supported + first,
                )
                .execution_options(synchronize_session=False)
            )

            await self.db.refresh(donation)
            campaign = await self.db.get(Campaign, donation.campaign_id, populate_existing=True)

            self.notifications.donation_received(
                campaign.creator_id, campaign.title, campaign.id, amount,
                donation.currency.value, donation.donor_display_name,
            )
            if donation.donor_id:
                self.notifications.donation_confirmed(
                    donation.donor_id, campaign.title, campaign.id, amount,
                    donation.currency.value, donation.receipt_number,
                )
            if goal_reached.rowcount == 1:
                self.notifications.goal_reached(campaign.creator_id, campaign.title, campaign.id)
                logger.info(f"Campaign {campaign.id} reached its goal of {campaign.goal}")

            self.audit.log(
                AuditAction.DONATION_MADE, AuditResource.DONATION, donation.id, user,
                {"amount": amount, "campaign_id": campaign.id, "payment_id": payment_id},
            )
            await self.db.commit()
        except (InvalidState, NotFound):
            raise
        except Exception:
            await self.db.rollback()
            logger.exception(f"Completing donation for {payment_id} failed")
            raise

        await self.db.refresh(donation)
        logger.info(f"Donation {donation.id} completed ({amount} {donation.currency.value})")
        return donation, True

    async def _fail_donation(self, payment_id: str, reason: str) -> bool:
        result = await self.db.execute(
            update(Donation)
            .where(Donation.payment_id == payment_id, Donation.status == DonationStatus.PENDING)
            .values(status=DonationStatus.FAILED, failure_reason=reason[:500], updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            logger.info(f"Failure event for {payment_id} ignored; donation not pending")
            return False

        donation_id = (await self.db.execute(
            select(Donation.id).where(Donation.payment_id == payment_id)
        )).scalar_one()
        self.audit.log(
            AuditAction.DONATION_FAILED, AuditResource.DONATION, donation_id,
            details={"payment_id": payment_id}, outcome=AuditOutcome.FAILURE, error_message=reason,
        )
        await self.db.commit()
        logger.info(f"Donation {donation_id} marked failed: {reason}")
        return True

    # ---------- read side ----------
    async def recent_donations(self, limit: int = 10) -> list:
        result = await self.db.execute(
            select(Donation)
            .where(Donation.status == DonationStatus.COMPLETED, Donation.is_anonymous.is_(False))
            .order_by(desc(Donation.completed_at), desc(Donation.id))
            .limit(limit)
        )
        return [PublicDonationRead.model_validate(d).model_dump() for d in result.scalars().all()]

    async def top_donations(self, limit: int = 10) -> list:
        result = await self.db.execute(
            select(Donation)
            .where(Donation.status == DonationStatus.COMPLETED)
            .order_by(desc(Donation.amount), desc(Donation.completed_at))
            .limit(limit)
        )
        return [PublicDonationRead.model_validate(d).model_dump() for d in result.scalars().all()]

    async def donation_stats(self) -> Dict[str, Any]:
        count, total, average = (await self.db.execute(
            select(
                func.count(Donation.id),
                func.coalesce(func.sum(Donation.amount), 0),
                func.coalesce(func.avg(Donation.amount), 0),
            ).where(Donation.status == DonationStatus.COMPLETED)
        )).one()
        donors = (await self.db.execute(
            select(func.count(func.distinct(Donation.donor_email)))
            .where(Donation.status == DonationStatus.COMPLETED)
        )).scalar_one()
        return {
            "total_donations": count,
            "total_amount": float(total),
            "average_donation": round(float(average), 2),
            "unique_donors": donors,
        }

    async def my_donations(self, user: User, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        query = select(Donation).where(
            (Donation.donor_id == user.id) | (Donation.donor_email == user.email)
        )
        total = (await self.db.execute(
            select(func.count()).select_from(query.subquery())
        )).scalar_one()
        result = await self.db.execute(
            query.order_by(desc(Donation.created_at), desc(Donation.id)).offset((page - 1) * limit).limit(limit)
        )

        return {
            "donations": [DonationRead.model_validate(d).model_dump() for d in result.scalars().all()],
            "stats": {
                "total_donated": user.total_donated or 0,
                "donation_count": user.donation_count or 0,
                "campaigns_supported": user.campaigns_supported or 0,
                "donor_level": user.donor_level,
                "impact_points": user.impact_points,
            },
            **paginate(total, page, limit),
        }

    async def donation_history(self, email: str, user: User, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        """Completed donations made under an email address; the owner or an admin only."""
        if email.lower() != user.email.lower() and user.role != UserRole.ADMIN:
            raise Forbidden("You can only view your own donation history")

        completed = (Donation.donor_email == email, Donation.status == DonationStatus.COMPLETED)
        total, total_donated, average = (await self.db.execute(
            select(
                func.count(Donation.id),
                func.coalesce(func.sum(Donation.amount), 0),
                func.coalesce(func.avg(Donation.amount), 0),
            ).where(*completed)
        )).one()
        result = await self.db.execute(
            select(Donation).where(*completed)
            .order_by(desc(Donation.created_at), desc(Donation.id))
            .offset((page - 1) * limit).limit(limit)
        )

        return {
            "donations": [DonationRead.model_validate(d).model_dump() for d in result.scalars().all()],
            "stats": {
                "total_donated": float(total_donated),
                "donation_count": total,
                "avg_donation": round(float(average), 2),
            },
            **paginate(total, page, limit),
        }

    async def get_donation(self, donation_id: int, user: User) -> Dict[str, Any]:
        donation = await self.db.get(Donation, donation_id)
        if not donation:
            raise NotFound("Donation not found")
        is_owner = donation.donor_id == user.id or donation.donor_email == user.email
        if not is_owner and user.role != UserRole.ADMIN:
            raise Forbidden("You can only view your own donations")
        return self._detail(donation)

    # ---------- helpers ----------
    @staticmethod
    def _detail(donation: Donation) -> Dict[str, Any]:
        return DonationDetail.model_validate(donation).model_dump()

    async def _get_by_payment_id(self, payment_id: str) -> Donation:
        result = await self.db.execute(select(Donation).where(Donation.payment_id == payment_id))
        donation = result.scalar_one_or_none()
        if not donation:
            raise NotFound("Donation not found")
        return donation

    async def _user_id_for_email(self, email: str) -> Optional[int]:
        result = await self.db.execute(select(User.id).where(User.email == email))
        return result.scalar_one_or_none()
