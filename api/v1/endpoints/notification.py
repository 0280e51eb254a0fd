# app/api/v1/endpoints/notification.py
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_db
from core.permissions import get_current_user, require_admin
from models.notification import NotificationType
from models.user import User
from schemas.notification import NotificationBroadcast, NotificationPreferences, NotificationSend
from services.notification_service import NotificationService

router = APIRouter(dependencies=[Depends(get_current_user)])


@router.get("")
async def list_notifications(
        unread_only: bool = False,
        type: Optional[NotificationType] = None,
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=100),
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    return await NotificationService(db).list_notifications(user, unread_only, type, page, limit)


@router.get("/unread-count")
async def unread_count(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return {"unread_count": await NotificationService(db).unread_count(user)}


@router.put("/mark-all-read")
async def mark_all_read(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    modified = await NotificationService(db).mark_all_as_read(user)
    return {"message": "All notifications marked as read", "modified": modified}


@router.delete("/clear-all")
async def clear_all(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    deleted = await NotificationService(db).clear_all(user)
    return {"message": "All notifications cleared", "deleted": deleted}


@router.get("/preferences")
async def get_preferences(user: User = Depends(get_current_user)):
    return {"preferences": NotificationService.get_preferences(user)}


@router.put("/preferences")
async def update_preferences(
        payload: NotificationPreferences,
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    preferences = await NotificationService(db).update_preferences(user, payload)
    return {"message": "Preferences updated", "preferences": preferences}


# ========== admin ==========
@router.post("/send")
async def send_notification(
        payload: NotificationSend,
        admin: User = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
):
    return await NotificationService(db).send(payload, admin)


@router.post("/broadcast")
async def broadcast(
        payload: NotificationBroadcast,
        admin: User = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
):
    return await NotificationService(db).broadcast(payload, admin)


# ========== single notification ==========
@router.put("/{notification_id}/read")
async def mark_as_read(
        notification_id: int,
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    notification = await NotificationService(db).mark_as_read(notification_id, user)
    return {"message": "Notification marked as read", "notification": notification}


@router.delete("/{notification_id}")
async def delete_notification(
        notification_id: int,
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    await NotificationService(db).delete_notification(notification_id, user)
    return {"message": "Notification deleted"}
