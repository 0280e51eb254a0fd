# services/notification_service.py
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, func, desc, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import DEFAULT_NOTIFICATION_PREFERENCES
from core.exceptions import NotFound, ValidationError
from models.notification import Notification, NotificationType
from models.user import User, UserRole
from schemas.notification import NotificationBroadcast, NotificationPreferences, NotificationRead, NotificationSend
from utils.pagination import paginate

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ---------- creation ----------
    def notify(
            self,
            recipient_id: int,
            title: str,
            message: str,
            type: NotificationType = NotificationType.INFO,
            sender_id: Optional[int] = None,
            data: Optional[Dict[str, Any]] = None,
            action_url: Optional[str] = None,
            action_text: Optional[str] = None,
    ) -> Notification:
        """Stage a notification in the current transaction."""
        notification = Notification(
            recipient_id=recipient_id,
            sender_id=sender_id,
            type=type,
            title=title,
            message=message,
            data=data or {},
            action_url=action_url,
            action_text=action_text,
        )
        self.db.add(notification)
        return notification

    def notify_many(self, recipient_ids: Iterable[int], **kwargs) -> int:
        count = 0
        for recipient_id in recipient_ids:
            self.notify(recipient_id, **kwargs)
            count += 1
        return count

    async def send(self, payload: NotificationSend, sender: User) -> Dict[str, Any]:
        if payload.recipients == "all":
            recipient_ids = await self._active_user_ids()
        else:
            result = await self.db.execute(
                select(User.id).where(User.id.in_(payload.recipients), User.is_active.is_(True))
            )
            recipient_ids = list(result.scalars().all())
            missing = sorted(set(payload.recipients) - set(recipient_ids))
            if not recipient_ids:
                raise ValidationError("No valid recipients", details={"missing": missing})
            if missing:
                logger.info(f"Skipping unknown or inactive recipients {missing}")

        sent = self.notify_many(
            recipient_ids,
            title=payload.title,
            message=payload.message,
            type=payload.type,
            sender_id=sender.id,
            action_url=payload.action_url,
            action_text=payload.action_text,
        )
        await self.db.commit()
        logger.info(f"Admin {sender.id} sent notification '{payload.title}' to {sent} users")
        return {"message": "Notification sent successfully", "recipients": sent}

    async def broadcast(self, payload: NotificationBroadcast, sender: User) -> Dict[str, Any]:
        recipient_ids = await self._active_user_ids(payload.role)
        sent = self.notify_many(
            recipient_ids,
            title=payload.title,
            message=payload.message,
            type=payload.type,
            sender_id=sender.id,
            action_url=payload.action_url,
            action_text=payload.action_text,
        )
        await self.db.commit()
        logger.info(f"Admin {sender.id} broadcast '{payload.title}' to {sent} users")
        return {"message": "Broadcast sent successfully", "recipients": sent}

    async def _active_user_ids(self, role: Optional[UserRole] = None) -> List[int]:
        query = select(User.id).where(User.is_active.is_(True), User.is_banned.is_(False))
        if role:
            query = query.where(User.role == role)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ---------- recipient side ----------
    async def list_notifications(
            self,
            user: User,
            unread_only: bool = False,
            type: Optional[NotificationType] = None,
            page: int = 1,
            limit: int = 20,
    ) -> Dict[str, Any]:
        query = select(Notification).where(Notification.recipient_id == user.id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        if type:
            query = query.where(Notification.type == type)

        total = (await self.db.execute(
            select(func.count()).select_from(query.subquery())
        )).scalar_one()

        result = await self.db.execute(
            query.order_by(desc(Notification.created_at), desc(Notification.id))
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = [NotificationRead.model_validate(n).model_dump() for n in result.scalars().all()]

        return {
            "notifications": items,
            "unread_count": await self.unread_count(user),
            **paginate(total, page, limit),
        }

    async def unread_count(self, user: User) -> int:
        result = await self.db.execute(
            select(func.count(Notification.id)).where(
                Notification.recipient_id == user.id,
                Notification.is_read.is_(False),
            )
        )
        return result.scalar_one()

    async def mark_as_read(self, notification_id: int, user: User) -> Dict[str, Any]:
        notification = await self._get_own(notification_id, user)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.utcnow()
            await self.db.commit()
            await self.db.refresh(notification)
        return NotificationRead.model_validate(notification).model_dump()

    async def mark_all_as_read(self, user: User) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.recipient_id == user.id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount

    async def delete_notification(self, notification_id: int, user: User):
        notification = await self._get_own(notification_id, user)
        await self.db.delete(notification)
        await self.db.commit()

    async def clear_all(self, user: User) -> int:
        result = await self.db.execute(
            delete(Notification)
            .where(Notification.recipient_id == user.id)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount

    async def _get_own(self, notification_id: int, user: User) -> Notification:
        result = await self.db.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.recipient_id == user.id,
            )
        )
        notification = result.scalar_one_or_none()
        if not notification:
            raise NotFound("Notification not found")
        return notification

    # ---------- preferences ----------
    @staticmethod
    def get_preferences(user: User) -> Dict[str, bool]:
        stored = (user.preferences or {}).get("notifications") or {}
        return {**DEFAULT_NOTIFICATION_PREFERENCES, **stored}

    async def update_preferences(self, user: User, payload: NotificationPreferences) -> Dict[str, bool]:
        merged = {**self.get_preferences(user), **payload.model_dump(exclude_none=True)}
        # reassign so the JSON column is flagged dirty
        user.preferences = {**(user.preferences or {}), "notifications": merged}
        await self.db.commit()
        return merged

    # ---------- business events (staged, caller commits) ----------
    def donation_received(self, creator_id: int, campaign_title: str, campaign_id: int, amount: float,
                          currency: str, donor_name: str):
        return self.notify(
            creator_id,
            title="New donation received",
            message=f"{donor_name} donated {amount:,.2f} {currency} to \"{campaign_title}\".",
            type=NotificationType.DONATION,
            data={"campaign_id": campaign_id, "amount": amount, "currency": currency},
            action_url=f"/campaigns/{campaign_id}",
            action_text="View campaign",
        )

    def donation_confirmed(self, donor_id: int, campaign_title: str, campaign_id: int, amount: float,
                           currency: str, receipt_number: str):
        return self.notify(
            donor_id,
            title="Thank you for your donation",
            message=f"Your donation of {amount:,.2f} {currency} to \"{campaign_title}\" was received. "
                    f"Receipt {receipt_number}.",
            type=NotificationType.SUCCESS,
            data={"campaign_id": campaign_id, "receipt_number": receipt_number},
        )

    def goal_reached(self, creator_id: int, campaign_title: str, campaign_id: int):
        return self.notify(
            creator_id,
            title="Campaign goal reached",
            message=f"\"{campaign_title}\" has reached its funding goal.",
            type=NotificationType.CAMPAIGN,
            data={"campaign_id": campaign_id},
            action_url=f"/campaigns/{campaign_id}",
            action_text="View campaign",
        )

    def campaign_reviewed(self, creator_id: int, campaign_title: str, campaign_id: int, outcome: str,
                          reason: Optional[str] = None, sender_id: Optional[int] = None):
        message = f"Your campaign \"{campaign_title}\" was {outcome}."
        if reason:
            message += f" Reason: {reason}"
        return self.notify(
            creator_id,
            title=f"Campaign {outcome}",
            message=message,
            type=NotificationType.CAMPAIGN,
            sender_id=sender_id,
            data={"campaign_id": campaign_id, "outcome": outcome},
        )

    def account_status_changed(self, user_id: int, status: str, reason: Optional[str] = None,
                               sender_id: Optional[int] = None):
        message = f"Your account status is now {status}."
        if reason:
            message += f" Reason: {reason}"
        return self.notify(
            user_id,
            title="Account status updated",
            message=message,
            type=NotificationType.WARNING if status != "active" else NotificationType.INFO,
            sender_id=sender_id,
        )
