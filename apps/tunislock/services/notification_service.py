"""
Notification service for managing user notifications.

Handles creation, retrieval, and status updates for in-app notifications.
Creation from business events goes through `dispatch`, which never lets a
notification failure abort the operation that triggered it.
"""

from typing import List, Dict, Optional, Iterable
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, and_
from tunislock.database.models import Notification, NotificationType
from tunislock.services.errors import NotFoundError
from tunislock.utils.datetime_utils import utcnow, isoformat_or_none
import json
import logging

logger = logging.getLogger(__name__)


def _notification_to_dict(notification: Notification) -> Dict:
    return {
        "id": notification.id,
        "user_id": notification.user_id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "data": json.loads(notification.data) if notification.data else None,
        "from_user_id": notification.from_user_id,
        "match_id": notification.match_id,
        "is_read": notification.is_read,
        "read_at": isoformat_or_none(notification.read_at),
        "link_url": notification.link_url,
        "created_at": isoformat_or_none(notification.created_at),
    }


async def create_notification(
    session: AsyncSession,
    user_id: int,
    type: str,
    title: str,
    message: str,
    data: Optional[Dict] = None,
    link_url: Optional[str] = None,
    from_user_id: Optional[int] = None,
    match_id: Optional[int] = None,
) -> Dict:
    """
    Create a single notification for a user.

    Args:
        session: Database session
        user_id: ID of the user to notify
        type: Notification type (NotificationType enum value)
        title: Notification title
        message: Notification message text
        data: Optional JSON metadata (dict will be serialized to JSON string)
        link_url: Optional URL for navigation when notification is clicked
        from_user_id: Optional user who triggered the notification
        match_id: Optional related match

    Returns:
        Dict containing the created notification data

    Raises:
        ValueError: If required fields are missing or invalid
    """
    if not user_id:
        raise ValueError("user_id is required")
    if not type:
        raise ValueError("type is required")
    if not title:
        raise ValueError("title is required")
    if not message:
        raise ValueError("message is required")

    # Serialize data dict to JSON string if provided
    data_json = None
    if data is not None:
        data_json = json.dumps(data)

    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        data=data_json,
        from_user_id=from_user_id,
        match_id=match_id,
        link_url=link_url,
        is_read=False
    )

    session.add(notification)
    await session.flush()
    await session.refresh(notification)

    return _notification_to_dict(notification)


async def dispatch(
    session: AsyncSession,
    user_id: int,
    type: str,
    title: str,
    message: str,
    **kwargs,
) -> Optional[Dict]:
    """
    Best-effort notification.

    Same arguments as `create_notification`. The insert runs in a savepoint:
    a failure, including one raised by the database, only rolls back the
    notification and is logged and swallowed, so the caller's transaction
    stays usable.

    Returns:
        The created notification dict, or None if it could not be created
    """
    # Pending changes of the caller must not be undone with the savepoint
    await session.flush()
    try:
        async with session.begin_nested():
            return await create_notification(
                session=session, user_id=user_id, type=type, title=title, message=message, **kwargs
            )
    except Exception as e:
        logger.warning(f"Failed to dispatch {type} notification to user {user_id}: {e}")
        return None


async def dispatch_many(
    session: AsyncSession,
    user_ids: Iterable[int],
    type: str,
    title: str,
    message: str,
    **kwargs,
) -> List[Dict]:
    """Best-effort notification of several users with the same content."""
    created = []
    for user_id in user_ids:
        notification = await dispatch(session, user_id, type, title, message, **kwargs)
        if notification is not None:
            created.append(notification)
    return created


async def get_user_notifications(
    session: AsyncSession,
    user_id: int,
    limit: int = 50,
    offset: int = 0,
    unread_only: bool = False
) -> Dict:
    """
    Fetch user notifications with pagination.

    Args:
        session: Database session
        user_id: ID of the user
        limit: Maximum number of notifications to return (default: 50)
        offset: Number of notifications to skip (default: 0)
        unread_only: If True, only return unread notifications (default: False)

    Returns:
        Dict containing:
            - notifications: List of notification dicts (newest first)
            - total_count: Total number of notifications matching the criteria
            - has_more: Boolean indicating if there are more notifications
    """
    query = select(Notification).where(Notification.user_id == user_id)

    if unread_only:
        query = query.where(Notification.is_read == False)  # noqa: E712

    # Get total count
    count_query = select(func.count()).select_from(query.subquery())
    total_result = await session.execute(count_query)
    total_count = total_result.scalar_one() or 0

    # Get paginated notifications
    query = (
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .offset(offset)
    )
    result = await session.execute(query)
    notification_dicts = [_notification_to_dict(n) for n in result.scalars().all()]

    has_more = (offset + len(notification_dicts)) < total_count

    return {
        "notifications": notification_dicts,
        "total_count": total_count,
        "has_more": has_more,
    }


async def get_unread_count(session: AsyncSession, user_id: int) -> int:
    """
    Get count of unread notifications for a user.

    Args:
        session: Database session
        user_id: ID of the user

    Returns:
        Integer count of unread notifications
    """
    result = await session.execute(
        select(func.count())
        .select_from(Notification)
        .where(
            and_(
                Notification.user_id == user_id,
                Notification.is_read == False  # noqa: E712
            )
        )
    )
    return result.scalar_one() or 0


async def mark_as_read(
    session: AsyncSession,
    notification_id: int,
    user_id: int
) -> Dict:
    """
    Mark a single notification as read.

    Args:
        session: Database session
        notification_id: ID of the notification
        user_id: ID of the user (ensures user owns the notification)

    Returns:
        Updated notification dict

    Raises:
        NotFoundError: If notification not found or doesn't belong to user
    """
    result = await session.execute(
        select(Notification).where(
            and_(
                Notification.id == notification_id,
                Notification.user_id == user_id
            )
        )
    )
    notification = result.scalar_one_or_none()

    if not notification:
        raise NotFoundError("Notification not found or access denied")

    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        await session.flush()
        await session.refresh(notification)

    return _notification_to_dict(notification)


async def mark_all_as_read(session: AsyncSession, user_id: int) -> int:
    """
    Mark all user notifications as read.

    Args:
        session: Database session
        user_id: ID of the user

    Returns:
        Count of notifications marked as read
    """
    result = await session.execute(
        update(Notification)
        .where(
            and_(
                Notification.user_id == user_id,
                Notification.is_read == False  # noqa: E712
            )
        )
        .values(is_read=True, read_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await session.flush()
    return result.rowcount or 0


#
# Business event helpers
#

async def notify_match_status_change(
    session: AsyncSession,
    match: Dict,
    participant_user_ids: Iterable[int],
    actor_user_id: int,
    new_status: str,
) -> None:
    """
    Tell every participant except the actor that a match was cancelled or completed.

    Args:
        session: Database session
        match: Match dict (needs id and party_name)
        participant_user_ids: Current participants
        actor_user_id: User who made the change
        new_status: "cancelled" or "completed"
    """
    if new_status == "cancelled":
        type_ = NotificationType.MATCH_CANCELLED.value
        title = "Match Cancelled"
        message = f'"{match["party_name"]}" has been cancelled'
    else:
        type_ = NotificationType.MATCH_COMPLETED.value
        title = "Match Completed"
        message = f'"{match["party_name"]}" is complete. Rate your teammates and opponents!'

    recipients = [uid for uid in participant_user_ids if uid != actor_user_id]
    await dispatch_many(
        session,
        recipients,
        type_,
        title,
        message,
        from_user_id=actor_user_id,
        match_id=match["id"],
        link_url=f"/matches/{match['id']}",
    )
