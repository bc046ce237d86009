"""
Tests for party invitations: sending, accepting through the roster
allocator, declining and the inbox/outbox views.
"""
import pytest
from datetime import timedelta
from tunislock.database.models import InvitationStatus, MatchStatus, NotificationType
from tunislock.services import invitation_service, match_service, notification_service, roster_service
from tunislock.services.errors import (
    AuthorizationError,
    CapacityError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from tunislock.utils.datetime_utils import utcnow

# db_session and make_user fixtures are provided by conftest.py


async def _create_match(session, creator_id, players_needed=10, location="Gammarth"):
    return await match_service.create_match(
        session,
        creator_id=creator_id,
        location=location,
        date_time=utcnow() + timedelta(days=2),
        players_needed=players_needed,
        location_available=True,
    )


async def _notification_types(session, user_id):
    result = await notification_service.get_user_notifications(session, user_id)
    return [n["type"] for n in result["notifications"]]


# ─────────────────────────────────────────────────────────────────────────────
# send_party_invitation
# ─────────────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_creator_invites_and_invitee_is_notified(db_session, make_user):
    creator, friend = await make_user(name="Host"), await make_user()
    match = await _create_match(db_session, creator.id)

    invitation = await invitation_service.send_party_invitation(
        db_session, creator.id, match["id"], friend.id, message="Join us"
    )
    assert invitation["status"] == InvitationStatus.PENDING.value
    assert invitation["message"] == "Join us"

    assert await _notification_types(db_session, friend.id) == [
        NotificationType.PARTY_INVITATION_RECEIVED.value
    ]


@pytest.mark.asyncio
async def test_participant_can_invite_but_stranger_cannot(db_session, make_user):
    creator, player, stranger, friend = [await make_user() for _ in range(4)]
    match = await _create_match(db_session, creator.id)
    await roster_service.join_match(db_session, match["id"], player.id, "A", "forward")

    invitation = await invitation_service.send_party_invitation(db_session, player.id, match["id"], friend.id)
    assert invitation["inviter_id"] == player.id

    with pytest.raises(AuthorizationError):
        await invitation_service.send_party_invitation(db_session, stranger.id, match["id"], creator.id)


@pytest.mark.asyncio
async def test_invitation_rejections(db_session, make_user):
    creator, player, friend = await make_user(), await make_user(), await make_user()
    match = await _create_match(db_session, creator.id)
    await roster_service.join_match(db_session, match["id"], player.id, "B", "defender")

    with pytest.raises(ValidationError):
        await invitation_service.send_party_invitation(db_session, creator.id, match["id"], creator.id)
    with pytest.raises(NotFoundError):
        await invitation_service.send_party_invitation(db_session, creator.id, 8080, friend.id)
    with pytest.raises(NotFoundError):
        await invitation_service.send_party_invitation(db_session, creator.id, match["id"], 8080)
    with pytest.raises(ConflictError):
        await invitation_service.send_party_invitation(db_session, creator.id, match["id"], player.id)

    await invitation_service.send_party_invitation(db_session, creator.id, match["id"], friend.id)
    with pytest.raises(ConflictError):
        await invitation_service.send_party_invitation(db_session, player.id, match["id"], friend.id)


@pytest.mark.asyncio
async def test_cannot_invite_to_closed_match(db_session, make_user):
    creator, friend = await make_user(), await make_user()
    match = await _create_match(db_session, creator.id)
    await match_service.cancel_match(db_session, match["id"], creator.id)

    with pytest.raises(InvalidStateError):
        await invitation_service.send_party_invitation(db_session, creator.id, match["id"], friend.id)


@pytest.mark.asyncio
async def test_cannot_invite_to_full_match(db_session, make_user):
    creator, *players = [await make_user() for _ in range(8)]
    match = await _create_match(db_session, creator.id, players_needed=6)
    lineup = [
        ("A", "goalkeeper"), ("A", "defender"), ("A", "forward"),
        ("B", "goalkeeper"), ("B", "midfielder"), ("B", "forward"),
    ]
    for player, (team, position) in zip(players, lineup):
        await roster_service.join_match(db_session, match["id"], player.id, team, position)

    with pytest.raises(CapacityError):
        await invitation_service.send_party_invitation(db_session, players[0].id, match["id"], players[6].id)


# ─────────────────────────────────────────────────────────────────────────────
# Accept / decline
# ─────────────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_accept_joins_match_and_notifies_inviter(db_session, make_user):
    creator, friend = await make_user(), await make_user()
    match = await _create_match(db_session, creator.id)
    invitation = await invitation_service.send_party_invitation(db_session, creator.id, match["id"], friend.id)

    result = await invitation_service.accept_party_invitation(
        db_session, friend.id, invitation["id"], "B", "midfielder"
    )
    assert result["invitation"]["status"] == InvitationStatus.ACCEPTED.value
    assert result["invitation"]["responded_at"] is not None
    assert result["participant"]["user_id"] == friend.id
    assert result["match_status"] == MatchStatus.OPEN.value

    assert NotificationType.PARTY_INVITATION_ACCEPTED.value in await _notification_types(db_session, creator.id)


@pytest.mark.asyncio
async def test_accept_applies_slot_rules(db_session, make_user):
    creator, keeper, friend = await make_user(), await make_user(), await make_user()
    match = await _create_match(db_session, creator.id)
    await roster_service.join_match(db_session, match["id"], keeper.id, "A", "goalkeeper")
    invitation = await invitation_service.send_party_invitation(db_session, creator.id, match["id"], friend.id)

    with pytest.raises(CapacityError):
        await invitation_service.accept_party_invitation(db_session, friend.id, invitation["id"], "A", "goalkeeper")


@pytest.mark.asyncio
async def test_only_invitee_can_respond_once(db_session, make_user):
    creator, friend, other = await make_user(), await make_user(), await make_user()
    match = await _create_match(db_session, creator.id)
    invitation = await invitation_service.send_party_invitation(db_session, creator.id, match["id"], friend.id)

    with pytest.raises(AuthorizationError):
        await invitation_service.accept_party_invitation(db_session, other.id, invitation["id"], "A", "forward")
    with pytest.raises(AuthorizationError):
        await invitation_service.decline_party_invitation(db_session, other.id, invitation["id"])

    declined = await invitation_service.decline_party_invitation(db_session, friend.id, invitation["id"])
    assert declined["status"] == InvitationStatus.DECLINED.value
    assert NotificationType.PARTY_INVITATION_DECLINED.value in await _notification_types(db_session, creator.id)

    with pytest.raises(InvalidStateError):
        await invitation_service.accept_party_invitation(db_session, friend.id, invitation["id"], "A", "forward")


@pytest.mark.asyncio
async def test_respond_to_missing_invitation(db_session, make_user):
    user = await make_user()
    with pytest.raises(NotFoundError):
        await invitation_service.decline_party_invitation(db_session, user.id, 999)


@pytest.mark.asyncio
async def test_accept_after_match_cancelled(db_session, make_user):
    creator, friend = await make_user(), await make_user()
    match = await _create_match(db_session, creator.id)
    invitation = await invitation_service.send_party_invitation(db_session, creator.id, match["id"], friend.id)
    await match_service.cancel_match(db_session, match["id"], creator.id)

    with pytest.raises(InvalidStateError):
        await invitation_service.accept_party_invitation(db_session, friend.id, invitation["id"], "A", "forward")


# ─────────────────────────────────────────────────────────────────────────────
# Views
# ─────────────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_pending_and_sent_views(db_session, make_user):
    creator, friend = await make_user(name="Inviter"), await make_user(name="Invitee")
    first = await _create_match(db_session, creator.id, location="Djerba")
    second = await _create_match(db_session, creator.id, location="Tozeur")
    inv_first = await invitation_service.send_party_invitation(db_session, creator.id, first["id"], friend.id)
    inv_second = await invitation_service.send_party_invitation(db_session, creator.id, second["id"], friend.id)
    await invitation_service.decline_party_invitation(db_session, friend.id, inv_first["id"])

    pending = await invitation_service.get_my_pending_invitations(db_session, friend.id)
    assert [i["id"] for i in pending] == [inv_second["id"]]
    assert pending[0]["inviter_name"] == "Inviter"
    assert pending[0]["match"]["location"] == "Tozeur"

    sent = await invitation_service.get_my_sent_invitations(db_session, creator.id)
    assert {i["id"] for i in sent} == {inv_first["id"], inv_second["id"]}
    assert all(i["invitee_name"] == "Invitee" for i in sent)

    sent_for_first = await invitation_service.get_my_sent_invitations(db_session, creator.id, match_id=first["id"])
    assert [i["id"] for i in sent_for_first] == [inv_first["id"]]
