"""
Notification delivery endpoints - polled by both roles
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops.config import get_settings
from fieldops.database import get_db
from fieldops.schemas import MarkReadRequest, NotificationFeed, NotificationResponse
from fieldops.services import notification_service
from fieldops.services.workflow import orchestrator

router = APIRouter()
settings = get_settings()


@router.get("/", response_model=List[NotificationResponse])
async def list_notifications(
    role: Optional[str] = None,
    limit: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
):
    """Most recent notifications for a role (chef_section | chef_brigade), newest first"""
    target_role = notification_service.parse_role(role)
    return await notification_service.list_for_role(db, target_role, limit)


@router.get("/since", response_model=List[NotificationResponse])
async def list_notifications_since(
    role: Optional[str] = None,
    cursor: Optional[str] = None,
    limit: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
):
    """Notifications created after `cursor` (a notification id), oldest first"""
    target_role = notification_service.parse_role(role)
    return await notification_service.list_since(db, target_role, cursor, limit)


@router.get("/feed", response_model=NotificationFeed)
async def notification_feed(
    role: Optional[str] = None,
    limit: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
):
    """Window plus unread count and the suggested poll interval"""
    target_role = notification_service.parse_role(role)
    notifications = await notification_service.list_for_role(db, target_role, limit)
    return NotificationFeed(
        role=target_role,
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        unread_count=notification_service.unread_count(notifications),
        latest_id=notifications[0].id if notifications else None,
        poll_interval_seconds=settings.NOTIFICATION_POLL_INTERVAL_SECONDS,
    )


@router.patch("/")
async def mark_notification_read(data: MarkReadRequest, db: AsyncSession = Depends(get_db)):
    """Mark a notification as read; repeating the call is harmless"""
    if not data.id:
        raise HTTPException(status_code=400, detail="Notification id is required")
    found = await orchestrator.mark_notification_read(db, data.id)
    if not found:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True}
