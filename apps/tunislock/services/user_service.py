"""
User service layer for local user records and display-name resolution.
"""

from typing import Optional, Dict, Iterable
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from tunislock.database.models import User, UserProfile
from tunislock.utils.datetime_utils import isoformat_or_none
import logging

logger = logging.getLogger(__name__)

UNKNOWN_USER_NAME = "Unknown User"


def _user_to_dict(user: User) -> Dict:
    return {
        "id": user.id,
        "auth_subject": user.auth_subject,
        "name": user.name,
        "email": user.email,
        "created_at": isoformat_or_none(user.created_at),
    }


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[Dict]:
    """
    Get a user by ID.

    Args:
        session: Database session
        user_id: User ID

    Returns:
        User dict or None if not found
    """
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    return _user_to_dict(user) if user else None


async def get_user_by_subject(session: AsyncSession, auth_subject: str) -> Optional[Dict]:
    """Get a user by identity provider subject."""
    result = await session.execute(select(User).where(User.auth_subject == auth_subject))
    user = result.scalar_one_or_none()
    return _user_to_dict(user) if user else None


async def get_or_create_user(
    session: AsyncSession,
    auth_subject: str,
    name: Optional[str] = None,
    email: Optional[str] = None,
) -> Dict:
    """
    Resolve the local user for a provider subject, provisioning it on first sight.

    Name and email from the token refresh the stored values when present.

    Args:
        session: Database session
        auth_subject: `sub` claim of a verified token
        name: Optional display name claim
        email: Optional email claim

    Returns:
        User dict
    """
    result = await session.execute(select(User).where(User.auth_subject == auth_subject))
    user = result.scalar_one_or_none()

    if user is None:
        user = User(auth_subject=auth_subject, name=name, email=email)
        session.add(user)
        await session.flush()
        await session.refresh(user)
        logger.info(f"Provisioned user {user.id} for subject {auth_subject}")
        return _user_to_dict(user)

    changed = False
    if name and user.name != name:
        user.name = name
        changed = True
    if email and user.email != email:
        user.email = email
        changed = True
    if changed:
        await session.flush()
    return _user_to_dict(user)


async def get_display_names(session: AsyncSession, user_ids: Iterable[int]) -> Dict[int, str]:
    """
    Batch-resolve display names.

    Order of preference: profile display name, user name, user email,
    then "Unknown User".

    Args:
        session: Database session
        user_ids: User IDs to resolve

    Returns:
        Dict mapping every requested user_id to a name
    """
    ids = set(user_ids)
    if not ids:
        return {}

    result = await session.execute(
        select(User.id, User.name, User.email, UserProfile.display_name)
        .outerjoin(UserProfile, UserProfile.user_id == User.id)
        .where(User.id.in_(ids))
    )
    names = {}
    for row in result.all():
        names[row.id] = row.display_name or row.name or row.email or UNKNOWN_USER_NAME
    for user_id in ids:
        names.setdefault(user_id, UNKNOWN_USER_NAME)
    return names


async def get_display_name(session: AsyncSession, user_id: int) -> str:
    """Resolve a single display name."""
    names = await get_display_names(session, [user_id])
    return names[user_id]
