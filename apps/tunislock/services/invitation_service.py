"""
Party invitation service.

Invitations bring a user into a match's party. Accepting one joins the match
through the roster allocator, so every slot rule applies.
"""

from typing import List, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from tunislock.database.models import (
    InvitationStatus,
    NotificationType,
    PartyInvitation,
    TERMINAL_MATCH_STATUSES,
)
from tunislock.services import match_service, notification_service, roster_service, user_service
from tunislock.services.errors import (
    AuthorizationError,
    CapacityError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from tunislock.utils.datetime_utils import utcnow, isoformat_or_none
import logging

logger = logging.getLogger(__name__)


def _invitation_to_dict(invitation: PartyInvitation) -> Dict:
    return {
        "id": invitation.id,
        "match_id": invitation.match_id,
        "inviter_id": invitation.inviter_id,
        "invitee_id": invitation.invitee_id,
        "status": invitation.status,
        "message": invitation.message,
        "created_at": isoformat_or_none(invitation.created_at),
        "responded_at": isoformat_or_none(invitation.responded_at),
    }


async def send_party_invitation(
    session: AsyncSession,
    inviter_id: int,
    match_id: int,
    invitee_id: int,
    message: Optional[str] = None,
) -> Dict:
    """
    Invite a user into a match's party.

    Args:
        session: Database session
        inviter_id: Caller, must be the creator or a participant
        match_id: Match to invite into
        invitee_id: User being invited
        message: Optional personal note

    Returns:
        Created invitation dict

    Raises:
        ValidationError: Self-invite
        NotFoundError: Match or invitee does not exist
        InvalidStateError: Match is cancelled or completed
        AuthorizationError: Caller is not part of the party
        ConflictError: Invitee already in the party or already invited
        CapacityError: Match is full
    """
    if inviter_id == invitee_id:
        raise ValidationError("You cannot invite yourself to a party")

    match = await match_service.get_match_or_raise(session, match_id)
    if match.status in TERMINAL_MATCH_STATUSES:
        raise InvalidStateError("Cannot send invitations for this match")

    invitee = await user_service.get_user_by_id(session, invitee_id)
    if not invitee:
        raise NotFoundError("Invited user not found")

    participants = await match_service.get_participants(session, match_id)
    if match.creator_id != inviter_id and not roster_service.find_participant(participants, inviter_id):
        raise AuthorizationError("You must be part of the party to send invitations")

    if match.creator_id == invitee_id or roster_service.find_participant(participants, invitee_id):
        raise ConflictError("This user is already part of the party")

    existing = await session.execute(
        select(PartyInvitation.id).where(
            and_(
                PartyInvitation.match_id == match_id,
                PartyInvitation.invitee_id == invitee_id,
                PartyInvitation.status == InvitationStatus.PENDING.value,
            )
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("There is already a pending invitation for this user")

    if len(participants) >= match.players_needed:
        raise CapacityError("The party is already full")

    invitation = PartyInvitation(
        match_id=match_id,
        inviter_id=inviter_id,
        invitee_id=invitee_id,
        status=InvitationStatus.PENDING.value,
        message=message,
    )
    session.add(invitation)
    await session.flush()
    await session.refresh(invitation)

    inviter_name = await user_service.get_display_name(session, inviter_id)
    await notification_service.dispatch(
        session,
        invitee_id,
        NotificationType.PARTY_INVITATION_RECEIVED.value,
        "Party Invitation",
        f'{inviter_name} invited you to join "{match.party_name}"',
        data={"invitation_id": invitation.id},
        from_user_id=inviter_id,
        match_id=match_id,
        link_url=f"/matches/{match_id}",
    )

    logger.info(f"User {inviter_id} invited user {invitee_id} to match {match_id}")
    return _invitation_to_dict(invitation)


async def _get_pending_invitation_for(
    session: AsyncSession, invitation_id: int, user_id: int, action: str
) -> PartyInvitation:
    result = await session.execute(
        select(PartyInvitation).where(PartyInvitation.id == invitation_id).with_for_update()
    )
    invitation = result.scalar_one_or_none()
    if not invitation:
        raise NotFoundError("Invitation not found")
    if invitation.invitee_id != user_id:
        raise AuthorizationError(f"You can only {action} invitations sent to you")
    if invitation.status != InvitationStatus.PENDING.value:
        raise InvalidStateError("This invitation is no longer pending")
    return invitation


async def accept_party_invitation(
    session: AsyncSession, user_id: int, invitation_id: int, team: str, position: str
) -> Dict:
    """
    Accept an invitation and join the match on the chosen team and position.

    Returns:
        Dict with invitation and the roster join result

    Raises:
        NotFoundError: Invitation or match does not exist
        AuthorizationError: Caller is not the invitee
        InvalidStateError: Invitation not pending, or match not open
        ConflictError: Caller already in the party
        CapacityError: Slot rules reject the team/position
    """
    invitation = await _get_pending_invitation_for(session, invitation_id, user_id, "accept")

    match = await match_service.get_match_or_raise(session, invitation.match_id)
    if match.creator_id == user_id:
        raise ConflictError("You are already part of this party")

    joined = await roster_service.allocate_slot(session, invitation.match_id, user_id, team, position)

    invitation.status = InvitationStatus.ACCEPTED.value
    invitation.responded_at = utcnow()
    await session.flush()

    name = await user_service.get_display_name(session, user_id)
    await notification_service.dispatch(
        session,
        invitation.inviter_id,
        NotificationType.PARTY_INVITATION_ACCEPTED.value,
        "Invitation Accepted",
        f"{name} accepted your party invitation",
        data={"invitation_id": invitation.id},
        from_user_id=user_id,
        match_id=invitation.match_id,
        link_url=f"/matches/{invitation.match_id}",
    )

    return {"invitation": _invitation_to_dict(invitation), **joined}


async def decline_party_invitation(session: AsyncSession, user_id: int, invitation_id: int) -> Dict:
    """
    Decline an invitation.

    Raises:
        NotFoundError: Invitation does not exist
        AuthorizationError: Caller is not the invitee
        InvalidStateError: Invitation not pending
    """
    invitation = await _get_pending_invitation_for(session, invitation_id, user_id, "decline")

    invitation.status = InvitationStatus.DECLINED.value
    invitation.responded_at = utcnow()
    await session.flush()

    name = await user_service.get_display_name(session, user_id)
    await notification_service.dispatch(
        session,
        invitation.inviter_id,
        NotificationType.PARTY_INVITATION_DECLINED.value,
        "Invitation Declined",
        f"{name} declined your party invitation",
        data={"invitation_id": invitation.id},
        from_user_id=user_id,
        match_id=invitation.match_id,
    )

    return _invitation_to_dict(invitation)


async def _enrich(session: AsyncSession, invitations: List[PartyInvitation], name_key: str, user_key: str) -> List[Dict]:
    names = await user_service.get_display_names(
        session, [getattr(i, user_key) for i in invitations]
    )
    enriched = []
    for invitation in invitations:
        match = await match_service.get_match(session, invitation.match_id)
        data = _invitation_to_dict(invitation)
        data["match"] = match_service.match_to_dict(match) if match else None
        data[name_key] = names[getattr(invitation, user_key)]
        enriched.append(data)
    return enriched


async def get_my_pending_invitations(session: AsyncSession, user_id: int) -> List[Dict]:
    """Pending invitations addressed to the user, newest first, with inviter_name."""
    result = await session.execute(
        select(PartyInvitation)
        .where(
            and_(
                PartyInvitation.invitee_id == user_id,
                PartyInvitation.status == InvitationStatus.PENDING.value,
            )
        )
        .order_by(PartyInvitation.created_at.desc(), PartyInvitation.id.desc())
    )
    return await _enrich(session, list(result.scalars().all()), "inviter_name", "inviter_id")


async def get_my_sent_invitations(
    session: AsyncSession, user_id: int, match_id: Optional[int] = None
) -> List[Dict]:
    """Invitations the user sent, optionally for one match, with invitee_name."""
    query = select(PartyInvitation).where(PartyInvitation.inviter_id == user_id)
    if match_id is not None:
        query = query.where(PartyInvitation.match_id == match_id)
    result = await session.execute(
        query.order_by(PartyInvitation.created_at.desc(), PartyInvitation.id.desc())
    )
    return await _enrich(session, list(result.scalars().all()), "invitee_name", "invitee_id")
