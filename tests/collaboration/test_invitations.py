import pytest

from app.core.exceptions import (
    AlreadyMemberException,
    DuplicatePendingInvitationException,
    InvalidTransitionException,
    OwnershipRequiredException,
    ResourceNotFoundException,
    RosterFullException,
    ValidationException,
)
from app.modules.collaboration.models import COLLABORATIONS, INVITATIONS
from app.services.collaboration import InvitationWorkflow
from tests.helpers import make_user

ANN = make_user("ann")
BOB = make_user("bob")


def _invite(invitations, collaboration_id, to_user_id, **kwargs):
    return invitations.invite(
        collaboration_id, from_user_id="creator", to_user_id=to_user_id, **kwargs
    )


def test_invite_records_pending_invitation(
    invitations, new_collaboration, store, sent_notifications
):
    collab = new_collaboration()
    invitation = _invite(invitations, collab.id, "ann", role="drummer", instrument="drums")

    assert invitation.status == "pending"
    assert invitation.collaboration_title == collab.title
    stored = store.get(INVITATIONS, invitation.id)
    assert stored.get("toUserId") == "ann"
    assert stored.get("role") == "drummer"
    assert store.get(COLLABORATIONS, collab.id).get("invitedUids") == ["ann"]
    assert sent_notifications[-1][0] == "ann"
    assert sent_notifications[-1][1]["type"] == "collaboration_invitation"
    assert sent_notifications[-1][1]["invitationId"] == invitation.id


def test_duplicate_pending_invitation_is_rejected(invitations, new_collaboration):
    collab = new_collaboration()
    _invite(invitations, collab.id, "ann")
    with pytest.raises(DuplicatePendingInvitationException):
        _invite(invitations, collab.id, "ann")
    assert len(invitations.list_for_collaboration(collab.id)) == 1


def test_invite_guards(invitations, collaborations, new_collaboration, creator):
    collab = new_collaboration()
    with pytest.raises(OwnershipRequiredException):
        invitations.invite(collab.id, from_user_id="ann", to_user_id="bob")
    with pytest.raises(ValidationException):
        _invite(invitations, collab.id, "")
    with pytest.raises(ResourceNotFoundException):
        _invite(invitations, "missing", "ann")
    with pytest.raises(AlreadyMemberException):
        _invite(invitations, collab.id, creator.uid)

    collaborations.set_status(collab.id, "cancelled", actor_id=creator.uid)
    with pytest.raises(InvalidTransitionException):
        _invite(invitations, collab.id, "ann")


def test_accepted_invitee_cannot_be_invited_again(invitations, new_collaboration):
    collab = new_collaboration()
    invitation = _invite(invitations, collab.id, "ann")
    invitations.respond(invitation.id, "accepted", invitee=ANN)
    with pytest.raises(AlreadyMemberException):
        _invite(invitations, collab.id, "ann")


def test_accepted_invitation_blocks_reinvite_after_removal(
    invitations, roster, new_collaboration, creator
):
    collab = new_collaboration()
    invitation = _invite(invitations, collab.id, "ann")
    invitations.respond(invitation.id, "accepted", invitee=ANN)
    roster.remove_participant(collab.id, "ann", actor_id=creator.uid)

    with pytest.raises(AlreadyMemberException):
        _invite(invitations, collab.id, "ann")
    assert invitations.list_pending_for_user("ann") == []


def test_declined_invitee_can_be_invited_again(invitations, new_collaboration):
    collab = new_collaboration()
    invitation = _invite(invitations, collab.id, "ann")
    invitations.respond(invitation.id, "declined", invitee=ANN)
    assert _invite(invitations, collab.id, "ann").status == "pending"


def test_batch_reports_each_recipient(invitations, new_collaboration):
    collab = new_collaboration()
    _invite(invitations, collab.id, "ann")

    result = invitations.invite_many(
        collab.id, from_user_id="creator", to_user_ids=["ann", "bob"], message="Join us"
    )

    assert [r.to_user_id for r in result.results] == ["ann", "bob"]
    assert [r.to_user_id for r in result.failed] == ["ann"]
    assert result.failed[0].error_code == "duplicate_pending_invitation"
    assert result.succeeded[0].invitation_id is not None
    pending = invitations.list_pending_for_user("bob")
    assert [i.id for i in pending] == [result.succeeded[0].invitation_id]


def test_batch_limits(invitations, new_collaboration, store):
    collab = new_collaboration()
    with pytest.raises(ValidationException):
        invitations.invite_many(collab.id, from_user_id="creator", to_user_ids=[])
    too_many = [f"user{i}" for i in range(invitations.settings.MAX_BATCH_INVITATIONS + 1)]
    with pytest.raises(ValidationException):
        invitations.invite_many(collab.id, from_user_id="creator", to_user_ids=too_many)
    with pytest.raises(OwnershipRequiredException):
        invitations.invite_many(collab.id, from_user_id="ann", to_user_ids=["bob"])
    assert store.query(INVITATIONS) == []


def test_accept_joins_roster(invitations, new_collaboration, store, sent_notifications):
    collab = new_collaboration()
    invitation = _invite(invitations, collab.id, "ann", role="bassist", instrument="bass")
    accepted = invitations.respond(invitation.id, "accepted", invitee=ANN, message="In!")

    assert accepted.status == "accepted"
    assert accepted.response_message == "In!"
    data = store.get(COLLABORATIONS, collab.id).data
    assert data["participantIds"] == ["creator", "ann"]
    assert data["currentParticipants"] == 2
    assert data["participants"][1]["role"] == "bassist"
    assert sent_notifications[-1][0] == "creator"
    assert sent_notifications[-1][1]["type"] == "invitation_accepted"


def test_decline_leaves_roster_alone(invitations, new_collaboration, store):
    collab = new_collaboration()
    invitation = _invite(invitations, collab.id, "ann")
    assert invitations.respond(invitation.id, "declined", invitee=ANN).status == "declined"
    assert store.get(COLLABORATIONS, collab.id).get("currentParticipants") == 1


def test_only_invitee_may_respond(invitations, new_collaboration):
    collab = new_collaboration()
    invitation = _invite(invitations, collab.id, "ann")
    with pytest.raises(OwnershipRequiredException):
        invitations.respond(invitation.id, "accepted", invitee=BOB)
    with pytest.raises(ValidationException):
        invitations.respond(invitation.id, "cancelled", invitee=ANN)
    assert invitations.get(invitation.id).status == "pending"


def test_accept_into_full_roster_changes_nothing(invitations, new_collaboration, store):
    collab = new_collaboration(max_participants=1)
    invitation = _invite(invitations, collab.id, "ann")
    with pytest.raises(RosterFullException):
        invitations.respond(invitation.id, "accepted", invitee=ANN)
    assert invitations.get(invitation.id).status == "pending"
    assert store.get(COLLABORATIONS, collab.id).get("participantIds") == ["creator"]


def test_terminal_invitations_are_immutable(invitations, new_collaboration):
    collab = new_collaboration()
    invitation = _invite(invitations, collab.id, "ann")
    invitations.respond(invitation.id, "declined", invitee=ANN)
    with pytest.raises(InvalidTransitionException):
        invitations.respond(invitation.id, "accepted", invitee=ANN)
    with pytest.raises(InvalidTransitionException):
        invitations.cancel(invitation.id, actor_id="creator")


def test_cancel_persists_status(invitations, new_collaboration, sent_notifications):
    collab = new_collaboration()
    invitation = _invite(invitations, collab.id, "ann")
    with pytest.raises(OwnershipRequiredException):
        invitations.cancel(invitation.id, actor_id="ann")

    cancelled = invitations.cancel(invitation.id, actor_id="creator")
    assert cancelled.status == "cancelled"
    assert invitations.list_pending_for_user("ann") == []
    assert sent_notifications[-1][1]["type"] == "invitation_cancelled"


def test_cancel_can_delete_the_record(store, dispatcher, new_collaboration, retraction_deletes):
    workflow = InvitationWorkflow(store, dispatcher, cfg=retraction_deletes)
    collab = new_collaboration()
    invitation = _invite(workflow, collab.id, "ann")
    assert workflow.cancel(invitation.id, actor_id="creator") is None
    with pytest.raises(ResourceNotFoundException):
        workflow.get(invitation.id)


def test_watch_pending_for_user(invitations, new_collaboration):
    first = new_collaboration()
    second = new_collaboration(title="Second")
    seen = []
    subscription = invitations.watch_pending_for_user("ann", seen.append)

    invitation = _invite(invitations, first.id, "ann")
    _invite(invitations, second.id, "ann")
    invitations.respond(invitation.id, "declined", invitee=ANN)
    subscription.unsubscribe()
    _invite(invitations, first.id, "ann")

    assert [len(batch) for batch in seen] == [0, 1, 2, 1]
    assert seen[-1][0].collaboration_id == second.id
