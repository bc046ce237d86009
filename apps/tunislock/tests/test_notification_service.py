"""Tests for in-app notifications."""
import pytest
from tunislock.database.models import NotificationType
from tunislock.services import notification_service
from tunislock.services.errors import NotFoundError

# db_session and make_user fixtures are provided by conftest.py


async def _notify(session, user_id, title="Hello", **kwargs):
    return await notification_service.create_notification(
        session,
        user_id=user_id,
        type=NotificationType.MATCH_PLAYER_JOINED.value,
        title=title,
        message=f"{title} message",
        **kwargs,
    )


@pytest.mark.asyncio
async def test_create_notification_serializes_data(db_session, make_user):
    user = await make_user()
    notification = await _notify(db_session, user.id, data={"invitation_id": 7}, link_url="/matches/1")

    assert notification["data"] == {"invitation_id": 7}
    assert notification["is_read"] is False
    assert notification["link_url"] == "/matches/1"


@pytest.mark.asyncio
async def test_create_notification_requires_fields(db_session, make_user):
    user = await make_user()
    with pytest.raises(ValueError):
        await _notify(db_session, user.id, title="")


@pytest.mark.asyncio
async def test_dispatch_swallows_failures(db_session, make_user):
    user = await make_user()
    assert await notification_service.dispatch(db_session, user.id, "", "Title", "Message") is None

    created = await notification_service.dispatch_many(
        db_session, [user.id, None], NotificationType.MATCH_FULL.value, "Full", "Match is full"
    )
    assert [n["user_id"] for n in created] == [user.id]


@pytest.mark.asyncio
async def test_pagination_and_unread(db_session, make_user):
    user, other = await make_user(), await make_user()
    for i in range(3):
        await _notify(db_session, user.id, title=f"n{i}")
    await _notify(db_session, other.id)

    page = await notification_service.get_user_notifications(db_session, user.id, limit=2)
    assert page["total_count"] == 3
    assert page["has_more"] is True
    assert [n["title"] for n in page["notifications"]] == ["n2", "n1"]

    assert await notification_service.get_unread_count(db_session, user.id) == 3


@pytest.mark.asyncio
async def test_mark_as_read(db_session, make_user):
    user, other = await make_user(), await make_user()
    first = await _notify(db_session, user.id)
    await _notify(db_session, user.id)

    read = await notification_service.mark_as_read(db_session, first["id"], user.id)
    assert read["is_read"] is True
    assert read["read_at"] is not None

    with pytest.raises(NotFoundError):
        await notification_service.mark_as_read(db_session, first["id"], other.id)

    assert await notification_service.mark_all_as_read(db_session, user.id) == 1
    assert await notification_service.get_unread_count(db_session, user.id) == 0
