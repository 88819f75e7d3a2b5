"""
Notification store and delivery channel operations.

Notifications are written only by the workflow orchestrator and mutated
only by mark_read(). Clients discover them by polling list_for_role() or,
with a cursor, list_since().
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops.config import get_settings
from fieldops.models.enums import TargetRole
from fieldops.models.notification import Notification
from fieldops.services.errors import ValidationError
from fieldops.services.identifiers import add_with_identifier, NOTIFICATION_PREFIX
from fieldops.utils.logger import get_logger

settings = get_settings()
logger = get_logger(__name__)


def parse_role(role: Optional[str]) -> TargetRole:
    if not role:
        raise ValidationError("Missing notification role")
    return TargetRole.from_code(role)


def _clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return settings.NOTIFICATION_LIST_LIMIT
    if limit < 1:
        raise ValidationError("limit must be a positive integer")
    return min(limit, settings.NOTIFICATION_MAX_LIMIT)


async def create_for_role(
    session: AsyncSession,
    title: str,
    message: str,
    target_role: TargetRole,
    payload: Optional[Dict[str, Any]] = None,
    target_user_id: Optional[str] = None,
) -> Notification:
    notification = await add_with_identifier(
        session,
        Notification,
        NOTIFICATION_PREFIX,
        lambda identifier: Notification(
            id=identifier,
            title=title,
            message=message,
            target_role=target_role,
            target_user_id=target_user_id,
            payload=payload,
            is_read=False,
        ),
    )
    logger.info(f"Notification {notification.id} queued for {target_role.value}: {title}")
    return notification


async def list_for_role(
    session: AsyncSession,
    role: TargetRole,
    limit: Optional[int] = None,
) -> List[Notification]:
    """The `limit` most recent notifications for a role, newest first, read or not"""
    result = await session.execute(
        select(Notification)
        .where(Notification.target_role == role)
        .order_by(
            Notification.created_at.desc(),
            func.length(Notification.id).desc(),
            Notification.id.desc(),
        )
        .limit(_clamp_limit(limit))
    )
    return list(result.scalars().all())


async def list_since(
    session: AsyncSession,
    role: TargetRole,
    cursor: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[Notification]:
    """Notifications for a role allocated after `cursor`, oldest first"""
    query = select(Notification).where(Notification.target_role == role)
    if cursor:
        cursor_length = len(cursor)
        query = query.where(
            or_(
                func.length(Notification.id) > cursor_length,
                and_(func.length(Notification.id) == cursor_length, Notification.id > cursor),
            )
        )
    result = await session.execute(
        query
        .order_by(func.length(Notification.id), Notification.id)
        .limit(_clamp_limit(limit))
    )
    return list(result.scalars().all())


async def mark_read(session: AsyncSession, notification_id: str) -> bool:
    """Idempotent: True whenever the notification exists"""
    notification = await session.get(Notification, notification_id)
    if notification is None:
        return False
    if not notification.is_read:
        notification.is_read = True
        await session.flush()
    return True


def unread_count(notifications: List[Notification]) -> int:
    """Unread count over a fetched window (older unread ones are not counted)"""
    return sum(1 for n in notifications if not n.is_read)
