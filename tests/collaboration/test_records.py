import pytest

from app.core.config import settings
from app.core.exceptions import (
    InvalidTransitionException,
    OwnershipRequiredException,
    ResourceNotFoundException,
    StoreUnavailableException,
    ValidationException,
)
from app.core.store import where
from app.modules.collaboration.models import (
    APPLICATIONS,
    COLLABORATIONS,
    INVITATIONS,
    DetailedRequirements,
    SkillLevel,
)
from app.modules.collaboration.schemas import (
    ApplicationCreate,
    CollaborationCreate,
    CollaborationFilter,
    CollaborationUpdate,
    ParticipantCreate,
)
from app.services.collaboration import CollaborationService
from tests.helpers import make_user


def test_create_applies_defaults_and_seeds_creator(new_collaboration, store, creator):
    collab = new_collaboration(max_participants=4, instruments=["bass", "bass", "keys"])

    assert collab.id
    assert collab.status == "open"
    assert collab.privacy == "public"
    assert collab.current_participants == 1
    assert collab.instruments == ["bass", "keys"]
    assert [p.user_id for p in collab.participants] == [creator.uid]
    assert collab.participants[0].role == "creator"

    stored = store.get(COLLABORATIONS, collab.id)
    assert stored.get("creatorId") == creator.uid
    assert stored.get("currentParticipants") == 1
    assert stored.get("participantIds") == [creator.uid]
    assert stored.get("maxParticipants") == 4
    assert "id" not in stored.data


@pytest.mark.parametrize("missing", ["title", "description", "genre"])
def test_create_requires_text_fields(collaborations, creator, missing):
    fields = {"title": "T", "description": "D", "genre": "G"}
    fields[missing] = "   "
    with pytest.raises(ValidationException) as exc:
        collaborations.create(CollaborationCreate(**fields), creator)
    assert exc.value.details["field"] == missing


def test_create_with_budget_uses_default_currency(new_collaboration):
    collab = new_collaboration(budget_total=500)
    assert collab.budget.total == 500
    assert collab.budget.currency == "USD"
    assert collab.budget.spent == 0


def test_get_missing_collaboration(collaborations):
    with pytest.raises(ResourceNotFoundException):
        collaborations.get("nope")


def test_update_merges_fields_and_stamps_updated_at(collaborations, new_collaboration, creator):
    collab = new_collaboration()
    updated = collaborations.update(
        collab.id,
        {"title": "New Title", "tags": ["lofi", "lofi", "ep"]},
        actor_id=creator.uid,
    )
    assert updated.title == "New Title"
    assert updated.tags == ["lofi", "ep"]
    assert updated.description == collab.description
    assert updated.updated_at >= collab.updated_at


@pytest.mark.parametrize(
    "field",
    ["currentParticipants", "current_participants", "participants", "budget", "status", "views"],
)
def test_update_rejects_managed_fields(collaborations, new_collaboration, creator, field):
    collab = new_collaboration()
    with pytest.raises(ValidationException) as exc:
        collaborations.update(collab.id, {field: 9}, actor_id=creator.uid)
    assert exc.value.details["field"] == field
    assert collaborations.get(collab.id).current_participants == 1


def test_update_rejects_unknown_fields(collaborations, new_collaboration, creator):
    collab = new_collaboration()
    with pytest.raises(ValidationException):
        collaborations.update(collab.id, {"mood": "sad"}, actor_id=creator.uid)


def test_update_accepts_camel_case_names(collaborations, new_collaboration, creator):
    collab = new_collaboration()
    updated = collaborations.update(
        collab.id,
        {"maxParticipants": 6, "referenceLinks": ["https://example.com/demo"]},
        actor_id=creator.uid,
    )
    assert updated.max_participants == 6
    assert updated.reference_links == ["https://example.com/demo"]


def test_update_cannot_shrink_below_current_roster(
    collaborations, new_collaboration, roster, creator
):
    collab = new_collaboration(max_participants=3)
    roster.add_participant(collab.id, ParticipantCreate(user_id="a"))
    with pytest.raises(ValidationException):
        collaborations.update(
            collab.id, CollaborationUpdate(max_participants=1), actor_id=creator.uid
        )
    updated = collaborations.update(
        collab.id, CollaborationUpdate(max_participants=2), actor_id=creator.uid
    )
    assert updated.max_participants == 2


def test_only_creator_may_mutate(collaborations, new_collaboration):
    collab = new_collaboration()
    with pytest.raises(OwnershipRequiredException):
        collaborations.update(collab.id, {"title": "Hijack"}, actor_id="intruder")
    with pytest.raises(OwnershipRequiredException):
        collaborations.set_status(collab.id, "cancelled", actor_id="intruder")
    with pytest.raises(OwnershipRequiredException):
        collaborations.delete(collab.id, actor_id="intruder")


def test_update_detailed_requirements(collaborations, new_collaboration, creator, store):
    collab = new_collaboration()
    updated = collaborations.update_detailed_requirements(
        collab.id,
        DetailedRequirements(skill_level=SkillLevel.ADVANCED, equipment=["DAW"]),
        actor_id=creator.uid,
    )
    assert updated.detailed_requirements.skill_level == "advanced"
    assert store.get(COLLABORATIONS, collab.id).get("detailedRequirements.equipment") == ["DAW"]


@pytest.mark.parametrize(
    "path",
    [
        ["in_progress", "completed"],
        ["cancelled"],
        ["in_progress", "cancelled"],
    ],
)
def test_allowed_status_paths(collaborations, new_collaboration, creator, path):
    collab = new_collaboration()
    for target in path:
        collab = collaborations.set_status(collab.id, target, actor_id=creator.uid)
    assert collab.status == path[-1]


@pytest.mark.parametrize(
    "path, bad",
    [
        ([], "completed"),
        (["cancelled"], "open"),
        (["in_progress", "completed"], "cancelled"),
        (["in_progress"], "open"),
    ],
)
def test_forbidden_status_transitions(collaborations, new_collaboration, creator, path, bad):
    collab = new_collaboration()
    for target in path:
        collaborations.set_status(collab.id, target, actor_id=creator.uid)
    with pytest.raises(InvalidTransitionException):
        collaborations.set_status(collab.id, bad, actor_id=creator.uid)


def test_delete_cascades_to_applications_and_invitations(
    collaborations, new_collaboration, applications, invitations, creator, store
):
    collab = new_collaboration()
    applications.apply(collab.id, make_user("ann"), ApplicationCreate(instrument="bass"))
    invitations.invite(collab.id, from_user_id=creator.uid, to_user_id="bob")

    collaborations.delete(collab.id, actor_id=creator.uid)

    assert store.get(COLLABORATIONS, collab.id) is None
    assert store.query(APPLICATIONS, [where("collaborationId", "==", collab.id)]) == []
    assert store.query(INVITATIONS, [where("collaborationId", "==", collab.id)]) == []


def test_delete_without_cascade_keeps_dependents(store, new_collaboration, applications, creator):
    collab = new_collaboration()
    applications.apply(collab.id, make_user("ann"))
    service = CollaborationService(store, settings.model_copy(update={"cascade_delete": False}))
    service.delete(collab.id, actor_id=creator.uid)
    assert len(store.query(APPLICATIONS)) == 1


def test_search_filters_and_orders_newest_first(collaborations, creator):
    first = collaborations.create(
        CollaborationCreate(title="A", description="d", genre="jazz", instruments=["sax"]),
        creator,
    )
    second = collaborations.create(
        CollaborationCreate(title="B", description="d", genre="jazz", instruments=["bass"]),
        creator,
    )
    collaborations.create(
        CollaborationCreate(title="C", description="d", genre="rock"), creator
    )
    collaborations.create(
        CollaborationCreate(title="D", description="d", genre="jazz", privacy="private"),
        creator,
    )

    jazz = collaborations.search(CollaborationFilter(genre="jazz"))
    assert [c.id for c in jazz] == [second.id, first.id]

    sax = collaborations.search(CollaborationFilter(instrument="sax"))
    assert [c.id for c in sax] == [first.id]

    assert len(collaborations.search(limit=2)) == 2


def test_lists_by_creator_and_participant(collaborations, new_collaboration, roster, creator):
    mine = new_collaboration()
    other = collaborations.create(
        CollaborationCreate(title="Other", description="d", genre="pop"), make_user("zoe")
    )
    roster.add_participant(other.id, ParticipantCreate(user_id=creator.uid))

    assert [c.id for c in collaborations.list_created_by(creator.uid)] == [mine.id]
    assert {c.id for c in collaborations.list_participating(creator.uid)} == {
        mine.id,
        other.id,
    }


def test_stats_counts_and_top_lists(collaborations, new_collaboration, applications, creator):
    first = new_collaboration(genre="jazz", instruments=["bass", "drums"])
    new_collaboration(genre="jazz", instruments=["bass"])
    third = new_collaboration(genre="rock", instruments=["guitar"])
    collaborations.set_status(third.id, "in_progress", actor_id=creator.uid)
    collaborations.set_status(third.id, "completed", actor_id=creator.uid)

    application = applications.apply(first.id, make_user("ann"))
    applications.apply(first.id, make_user("bob"))
    applications.review(application.id, "accepted", actor_id=creator.uid)

    stats = collaborations.stats(creator.uid)
    assert stats.total_collaborations == 3
    assert stats.active_collaborations == 2
    assert stats.completed_collaborations == 1
    assert stats.total_applications == 2
    assert stats.accepted_applications == 1
    assert stats.top_genres[0] == "jazz"
    assert stats.top_instruments[0] == "bass"


def test_watch_streams_document_changes(collaborations, new_collaboration, creator):
    collab = new_collaboration()
    seen = []
    subscription = collaborations.watch(collab.id, seen.append)
    collaborations.update(collab.id, {"title": "Renamed"}, actor_id=creator.uid)
    subscription.unsubscribe()

    assert seen[0].title == collab.title
    assert seen[-1].title == "Renamed"


def test_watch_created_by(collaborations, new_collaboration, creator):
    seen = []
    collaborations.watch_created_by(creator.uid, seen.append)
    new_collaboration()
    assert [len(batch) for batch in seen] == [0, 1]


def _flaky(method, failures):
    def call(*args, **kwargs):
        if failures:
            failures.pop()
            raise StoreUnavailableException("store briefly unreachable")
        return method(*args, **kwargs)

    return call


def test_reads_retry_transient_store_outages(
    collaborations, new_collaboration, store, monkeypatch
):
    collab = new_collaboration()
    get_failures = [1, 1]
    query_failures = [1, 1]
    monkeypatch.setattr(store, "get", _flaky(store.get, get_failures))
    monkeypatch.setattr(store, "query", _flaky(store.query, query_failures))

    assert collaborations.get(collab.id).id == collab.id
    assert [c.id for c in collaborations.search()] == [collab.id]
    assert get_failures == [] and query_failures == []


def test_reads_give_up_after_max_attempts(collaborations, new_collaboration, store, monkeypatch):
    collab = new_collaboration()
    monkeypatch.setattr(store, "get", _flaky(store.get, [1] * store.max_attempts))

    with pytest.raises(StoreUnavailableException):
        collaborations.get(collab.id)
