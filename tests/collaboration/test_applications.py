import pytest

from app.core.exceptions import (
    AlreadyMemberException,
    DuplicateApplicationException,
    InvalidTransitionException,
    OwnershipRequiredException,
    PermissionDeniedException,
    ResourceNotFoundException,
    RosterFullException,
    ValidationException,
)
from app.modules.collaboration.models import APPLICATIONS, COLLABORATIONS
from app.modules.collaboration.schemas import ApplicationCreate
from app.services.collaboration import ApplicationWorkflow
from tests.helpers import make_user

ANN = make_user("ann")
BOB = make_user("bob")


def test_apply_creates_pending_application_and_counts_it(
    applications, new_collaboration, store, sent_notifications
):
    collab = new_collaboration()
    application = applications.apply(
        collab.id,
        ANN,
        ApplicationCreate(instrument="bass", experience="10 years", motivation="groove"),
    )

    assert application.status == "pending"
    assert application.applicant_name == "Ann"
    stored = store.get(APPLICATIONS, application.id)
    assert stored.get("collaborationId") == collab.id
    assert stored.get("applicantId") == "ann"
    assert store.get(COLLABORATIONS, collab.id).get("applications") == 1
    assert sent_notifications[0][0] == "creator"
    assert sent_notifications[0][1]["type"] == "collaboration_application"
    assert sent_notifications[0][1]["applicationId"] == application.id


def test_second_pending_application_is_rejected(applications, new_collaboration):
    collab = new_collaboration()
    applications.apply(collab.id, ANN)
    with pytest.raises(DuplicateApplicationException):
        applications.apply(collab.id, ANN)
    assert len(applications.list_for_collaboration(collab.id)) == 1


def test_can_reapply_after_rejection(applications, new_collaboration):
    collab = new_collaboration()
    first = applications.apply(collab.id, ANN)
    applications.review(first.id, "rejected", actor_id="creator")
    second = applications.apply(collab.id, ANN)
    assert second.id != first.id


def test_apply_guards(applications, collaborations, new_collaboration, creator):
    collab = new_collaboration()
    with pytest.raises(ValidationException):
        applications.apply(collab.id, creator)
    with pytest.raises(ResourceNotFoundException):
        applications.apply("missing", ANN)

    private = new_collaboration(privacy="invite_only")
    with pytest.raises(PermissionDeniedException):
        applications.apply(private.id, ANN)

    collaborations.set_status(collab.id, "cancelled", actor_id=creator.uid)
    with pytest.raises(InvalidTransitionException):
        applications.apply(collab.id, ANN)


def test_invited_user_may_apply_to_private_collaboration(
    applications, invitations, new_collaboration, creator
):
    private = new_collaboration(privacy="private")
    invitations.invite(private.id, from_user_id=creator.uid, to_user_id="ann")
    assert applications.apply(private.id, ANN).status == "pending"


def test_member_cannot_apply(applications, new_collaboration):
    collab = new_collaboration()
    application = applications.apply(collab.id, ANN)
    applications.review(application.id, "accepted", actor_id="creator")
    with pytest.raises(AlreadyMemberException):
        applications.apply(collab.id, ANN)


def test_accept_adds_applicant_to_roster_atomically(
    applications, new_collaboration, store, sent_notifications
):
    collab = new_collaboration()
    application = applications.apply(collab.id, ANN, ApplicationCreate(instrument="bass"))
    reviewed = applications.review(
        application.id, "accepted", actor_id="creator", message="Welcome", role="bassist"
    )

    assert reviewed.status == "accepted"
    assert reviewed.response_message == "Welcome"
    assert reviewed.responded_at is not None
    data = store.get(COLLABORATIONS, collab.id).data
    assert data["currentParticipants"] == 2
    assert data["participantIds"] == ["creator", "ann"]
    joined = data["participants"][1]
    assert joined["role"] == "bassist"
    assert joined["instrument"] == "bass"
    assert sent_notifications[-1][0] == "ann"
    assert sent_notifications[-1][1]["type"] == "application_accepted"


def test_reject_leaves_roster_alone(applications, new_collaboration, store):
    collab = new_collaboration()
    application = applications.apply(collab.id, ANN)
    assert applications.review(application.id, "rejected", actor_id="creator").status == (
        "rejected"
    )
    assert store.get(COLLABORATIONS, collab.id).get("currentParticipants") == 1


def test_full_roster_rejects_accept_and_keeps_application_pending(
    applications, new_collaboration, store
):
    collab = new_collaboration(max_participants=2)
    first = applications.apply(collab.id, ANN)
    applications.review(first.id, "accepted", actor_id="creator")
    second = applications.apply(collab.id, BOB)

    with pytest.raises(RosterFullException):
        applications.review(second.id, "accepted", actor_id="creator")

    data = store.get(COLLABORATIONS, collab.id).data
    assert data["participantIds"] == ["creator", "ann"]
    assert data["currentParticipants"] == 2
    assert applications.get(second.id).status == "pending"


def test_terminal_applications_are_immutable(applications, new_collaboration):
    collab = new_collaboration()
    application = applications.apply(collab.id, ANN)
    applications.review(application.id, "rejected", actor_id="creator")

    with pytest.raises(InvalidTransitionException):
        applications.review(application.id, "accepted", actor_id="creator")
    with pytest.raises(InvalidTransitionException):
        applications.withdraw(application.id, actor_id="ann")
    assert applications.get(application.id).status == "rejected"


def test_review_guards(applications, new_collaboration):
    collab = new_collaboration()
    application = applications.apply(collab.id, ANN)
    with pytest.raises(OwnershipRequiredException):
        applications.review(application.id, "accepted", actor_id="ann")
    with pytest.raises(ValidationException):
        applications.review(application.id, "withdrawn", actor_id="creator")


def test_withdraw_persists_status(applications, new_collaboration, sent_notifications):
    collab = new_collaboration()
    application = applications.apply(collab.id, ANN)
    with pytest.raises(OwnershipRequiredException):
        applications.withdraw(application.id, actor_id="bob")

    withdrawn = applications.withdraw(application.id, actor_id="ann")
    assert withdrawn.status == "withdrawn"
    assert applications.get(application.id).status == "withdrawn"
    assert sent_notifications[-1][0] == "creator"
    assert sent_notifications[-1][1]["type"] == "application_withdrawn"


def test_withdraw_can_delete_the_record(
    store, dispatcher, new_collaboration, retraction_deletes
):
    workflow = ApplicationWorkflow(store, dispatcher, cfg=retraction_deletes)
    collab = new_collaboration()
    application = workflow.apply(collab.id, ANN)

    assert workflow.withdraw(application.id, actor_id="ann") is None
    with pytest.raises(ResourceNotFoundException):
        workflow.get(application.id)


def test_listing_and_watching(applications, new_collaboration):
    collab = new_collaboration()
    seen = []
    subscription = applications.watch_for_collaboration(collab.id, seen.append)
    first = applications.apply(collab.id, ANN)
    applications.apply(collab.id, BOB)
    subscription.unsubscribe()
    applications.review(first.id, "rejected", actor_id="creator")

    assert [len(batch) for batch in seen] == [0, 1, 2]
    pending = applications.list_for_collaboration(collab.id, status="pending")
    assert [a.applicant_id for a in pending] == ["bob"]
    assert [a.id for a in applications.list_for_applicant("ann")] == [first.id]
    with pytest.raises(OwnershipRequiredException):
        applications.list_for_collaboration(collab.id, actor_id="ann")
