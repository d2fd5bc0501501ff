from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, Response, status

from app.core.store import DocumentStore, get_store
from app.modules.collaboration.models import (
    ApplicationStatus,
    Collaboration,
    CollaborationApplication,
    CollaborationInvitation,
    CollaborationParticipant,
    CollaborationStatus,
    CollaborationTemplate,
    CollaborationType,
    CompensationType,
    CostItem,
    DetailedRequirements,
    InvitationStatus,
    LocationType,
    MixingCosts,
    StudioCosts,
)
from app.modules.collaboration.schemas import (
    ApplicationCreate,
    ApplicationReview,
    BatchInvitationCreate,
    BatchInvitationResult,
    BudgetSummary,
    BudgetUpdate,
    CollaborationCreate,
    CollaborationFilter,
    CollaborationStats,
    CostItemCreate,
    CostStatusUpdate,
    InvitationCreate,
    InvitationResponse,
    ParticipantCreate,
    ParticipantStatusUpdate,
    RosterChange,
    StatusUpdate,
)
from app.modules.users import UserIdentity
from app.oauth2 import get_current_user
from app.services.collaboration import (
    ApplicationWorkflow,
    BudgetLedger,
    CollaborationService,
    EngagementCounters,
    InvitationWorkflow,
    ParticipantRoster,
)

router = APIRouter(prefix="/collaborations", tags=["Collaboration"])


# ------------------------------------------------------------ dependencies


def get_collaboration_service(store: DocumentStore = Depends(get_store)):
    return CollaborationService(store)


def get_roster(store: DocumentStore = Depends(get_store)):
    return ParticipantRoster(store)


def get_application_workflow(store: DocumentStore = Depends(get_store)):
    return ApplicationWorkflow(store)


def get_invitation_workflow(store: DocumentStore = Depends(get_store)):
    return InvitationWorkflow(store)


def get_budget_ledger(store: DocumentStore = Depends(get_store)):
    return BudgetLedger(store)


def get_engagement(store: DocumentStore = Depends(get_store)):
    return EngagementCounters(store)


# ----------------------------------------------------------------- records


@router.post("", response_model=Collaboration, status_code=status.HTTP_201_CREATED)
def create_collaboration(
    payload: CollaborationCreate,
    service: CollaborationService = Depends(get_collaboration_service),
    current_user: UserIdentity = Depends(get_current_user),
):
    return service.create(payload, current_user)


@router.get("", response_model=List[Collaboration])
def search_collaborations(
    genre: Optional[str] = None,
    instrument: Optional[str] = None,
    status_filter: Optional[CollaborationStatus] = Query(None, alias="status"),
    collaboration_type: Optional[CollaborationType] = None,
    location: Optional[LocationType] = None,
    compensation: Optional[CompensationType] = None,
    limit: int = 20,
    service: CollaborationService = Depends(get_collaboration_service),
    current_user: UserIdentity = Depends(get_current_user),
):
    filters = CollaborationFilter(
        genre=genre,
        instrument=instrument,
        status=status_filter,
        collaboration_type=collaboration_type,
        location=location,
        compensation=compensation,
    )
    return service.search(filters, limit=limit)


@router.get("/mine", response_model=List[Collaboration])
def list_my_collaborations(
    service: CollaborationService = Depends(get_collaboration_service),
    current_user: UserIdentity = Depends(get_current_user),
):
    return service.list_created_by(current_user.uid)


@router.get("/participating", response_model=List[Collaboration])
def list_participating(
    service: CollaborationService = Depends(get_collaboration_service),
    current_user: UserIdentity = Depends(get_current_user),
):
    return service.list_participating(current_user.uid)


@router.get("/stats", response_model=CollaborationStats)
def collaboration_stats(
    mine: bool = False,
    service: CollaborationService = Depends(get_collaboration_service),
    current_user: UserIdentity = Depends(get_current_user),
):
    return service.stats(current_user.uid if mine else None)


@router.get("/templates", response_model=List[CollaborationTemplate])
def list_templates(
    service: CollaborationService = Depends(get_collaboration_service),
    current_user: UserIdentity = Depends(get_current_user),
):
    return service.list_templates()


@router.get("/templates/{template_id}", response_model=CollaborationTemplate)
def get_template(
    template_id: str,
    service: CollaborationService = Depends(get_collaboration_service),
    current_user: UserIdentity = Depends(get_current_user),
):
    return service.get_template(template_id)


# ------------------------------------------- applications and invitations by id


@router.get("/applications/mine", response_model=List[CollaborationApplication])
def list_my_applications(
    workflow: ApplicationWorkflow = Depends(get_application_workflow),
    current_user: UserIdentity = Depends(get_current_user),
):
    return workflow.list_for_applicant(current_user.uid)


@router.get("/applications/{application_id}", response_model=CollaborationApplication)
def get_application(
    application_id: str,
    workflow: ApplicationWorkflow = Depends(get_application_workflow),
    current_user: UserIdentity = Depends(get_current_user),
):
    return workflow.get(application_id)


@router.post(
    "/applications/{application_id}/review", response_model=CollaborationApplication
)
def review_application(
    application_id: str,
    payload: ApplicationReview,
    workflow: ApplicationWorkflow = Depends(get_application_workflow),
    current_user: UserIdentity = Depends(get_current_user),
):
    return workflow.review(
        application_id,
        payload.decision,
        actor_id=current_user.uid,
        message=payload.message,
        role=payload.role,
    )


@router.post("/applications/{application_id}/withdraw")
def withdraw_application(
    application_id: str,
    workflow: ApplicationWorkflow = Depends(get_application_workflow),
    current_user: UserIdentity = Depends(get_current_user),
):
    application = workflow.withdraw(application_id, actor_id=current_user.uid)
    if application is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return application


@router.get("/invitations/mine", response_model=List[CollaborationInvitation])
def list_my_invitations(
    workflow: InvitationWorkflow = Depends(get_invitation_workflow),
    current_user: UserIdentity = Depends(get_current_user),
):
    return workflow.list_pending_for_user(current_user.uid)


@router.get("/invitations/{invitation_id}", response_model=CollaborationInvitation)
def get_invitation(
    invitation_id: str,
    workflow: InvitationWorkflow = Depends(get_invitation_workflow),
    current_user: UserIdentity = Depends(get_current_user),
):
    return workflow.get(invitation_id)


@router.post(
    "/invitations/{invitation_id}/respond", response_model=CollaborationInvitation
)
def respond_to_invitation(
    invitation_id: str,
    payload: InvitationResponse,
    workflow: InvitationWorkflow = Depends(get_invitation_workflow),
    current_user: UserIdentity = Depends(get_current_user),
):
    return workflow.respond(
        invitation_id, payload.decision, invitee=current_user, message=payload.message
    )


@router.post("/invitations/{invitation_id}/cancel")
def cancel_invitation(
    invitation_id: str,
    workflow: InvitationWorkflow = Depends(get_invitation_workflow),
    current_user: UserIdentity = Depends(get_current_user),
):
    invitation = workflow.cancel(invitation_id, actor_id=current_user.uid)
    if invitation is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return invitation


# ------------------------------------------------------ single collaboration


@router.get("/{collaboration_id}", response_model=Collaboration)
def get_collaboration(
    collaboration_id: str,
    service: CollaborationService = Depends(get_collaboration_service),
    current_user: UserIdentity = Depends(get_current_user),
):
    return service.get(collaboration_id)


@router.patch("/{collaboration_id}", response_model=Collaboration)
def update_collaboration(
    collaboration_id: str,
    fields: Dict[str, Any] = Body(...),
    service: CollaborationService = Depends(get_collaboration_service),
    current_user: UserIdentity = Depends(get_current_user),
):
    return service.update(collaboration_id, fields, actor_id=current_user.uid)


@router.put("/{collaboration_id}/requirements", response_model=Collaboration)
def update_detailed_requirements(
    collaboration_id: str,
    payload: DetailedRequirements,
    service: CollaborationService = Depends(get_collaboration_service),
    current_user: UserIdentity = Depends(get_current_user),
):
    return service.update_detailed_requirements(
        collaboration_id, payload, actor_id=current_user.uid
    )


@router.post("/{collaboration_id}/status", response_model=Collaboration)
def set_collaboration_status(
    collaboration_id: str,
    payload: StatusUpdate,
    service: CollaborationService = Depends(get_collaboration_service),
    current_user: UserIdentity = Depends(get_current_user),
):
    return service.set_status(collaboration_id, payload.status, actor_id=current_user.uid)


@router.delete("/{collaboration_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_collaboration(
    collaboration_id: str,
    service: CollaborationService = Depends(get_collaboration_service),
    current_user: UserIdentity = Depends(get_current_user),
):
    service.delete(collaboration_id, actor_id=current_user.uid)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{collaboration_id}/views")
def record_view(
    collaboration_id: str,
    counters: EngagementCounters = Depends(get_engagement),
):
    return {"recorded": counters.increment_views(collaboration_id)}


# ------------------------------------------------------------------ roster


@router.get(
    "/{collaboration_id}/participants", response_model=List[CollaborationParticipant]
)
def list_participants(
    collaboration_id: str,
    include_inactive: bool = False,
    roster: ParticipantRoster = Depends(get_roster),
    current_user: UserIdentity = Depends(get_current_user),
):
    return roster.list_participants(collaboration_id, include_inactive=include_inactive)


@router.post("/{collaboration_id}/participants", response_model=RosterChange)
def add_participant(
    collaboration_id: str,
    payload: ParticipantCreate,
    roster: ParticipantRoster = Depends(get_roster),
    current_user: UserIdentity = Depends(get_current_user),
):
    return roster.add_participant(collaboration_id, payload, actor_id=current_user.uid)


@router.delete(
    "/{collaboration_id}/participants/{user_id}", response_model=RosterChange
)
def remove_participant(
    collaboration_id: str,
    user_id: str,
    roster: ParticipantRoster = Depends(get_roster),
    current_user: UserIdentity = Depends(get_current_user),
):
    return roster.remove_participant(collaboration_id, user_id, actor_id=current_user.uid)


@router.post(
    "/{collaboration_id}/participants/{user_id}/status", response_model=RosterChange
)
def set_participant_status(
    collaboration_id: str,
    user_id: str,
    payload: ParticipantStatusUpdate,
    roster: ParticipantRoster = Depends(get_roster),
    current_user: UserIdentity = Depends(get_current_user),
):
    return roster.set_participant_status(
        collaboration_id, user_id, payload.status, actor_id=current_user.uid
    )


@router.post("/{collaboration_id}/leave", response_model=RosterChange)
def leave_collaboration(
    collaboration_id: str,
    roster: ParticipantRoster = Depends(get_roster),
    current_user: UserIdentity = Depends(get_current_user),
):
    return roster.leave(collaboration_id, current_user.uid)


# ------------------------------------------------------------ applications


@router.post(
    "/{collaboration_id}/applications",
    response_model=CollaborationApplication,
    status_code=status.HTTP_201_CREATED,
)
def apply_to_collaboration(
    collaboration_id: str,
    payload: ApplicationCreate,
    workflow: ApplicationWorkflow = Depends(get_application_workflow),
    current_user: UserIdentity = Depends(get_current_user),
):
    return workflow.apply(collaboration_id, current_user, payload)


@router.get(
    "/{collaboration_id}/applications", response_model=List[CollaborationApplication]
)
def list_applications(
    collaboration_id: str,
    status_filter: Optional[ApplicationStatus] = Query(None, alias="status"),
    workflow: ApplicationWorkflow = Depends(get_application_workflow),
    current_user: UserIdentity = Depends(get_current_user),
):
    return workflow.list_for_collaboration(
        collaboration_id, status=status_filter, actor_id=current_user.uid
    )


# ------------------------------------------------------------- invitations


@router.post(
    "/{collaboration_id}/invitations",
    response_model=CollaborationInvitation,
    status_code=status.HTTP_201_CREATED,
)
def send_invitation(
    collaboration_id: str,
    payload: InvitationCreate,
    workflow: InvitationWorkflow = Depends(get_invitation_workflow),
    current_user: UserIdentity = Depends(get_current_user),
):
    return workflow.invite(
        collaboration_id,
        from_user_id=current_user.uid,
        to_user_id=payload.to_user_id,
        message=payload.message,
        role=payload.role,
        instrument=payload.instrument,
    )


@router.post(
    "/{collaboration_id}/invitations/batch", response_model=BatchInvitationResult
)
def send_invitations(
    collaboration_id: str,
    payload: BatchInvitationCreate,
    workflow: InvitationWorkflow = Depends(get_invitation_workflow),
    current_user: UserIdentity = Depends(get_current_user),
):
    return workflow.invite_many(
        collaboration_id,
        from_user_id=current_user.uid,
        to_user_ids=payload.to_user_ids,
        message=payload.message,
        role=payload.role,
        instrument=payload.instrument,
    )


@router.get(
    "/{collaboration_id}/invitations", response_model=List[CollaborationInvitation]
)
def list_invitations(
    collaboration_id: str,
    status_filter: Optional[InvitationStatus] = Query(None, alias="status"),
    workflow: InvitationWorkflow = Depends(get_invitation_workflow),
    current_user: UserIdentity = Depends(get_current_user),
):
    return workflow.list_for_collaboration(collaboration_id, status=status_filter)


# ------------------------------------------------------------------ budget


@router.get("/{collaboration_id}/budget", response_model=BudgetSummary)
def get_budget(
    collaboration_id: str,
    ledger: BudgetLedger = Depends(get_budget_ledger),
    current_user: UserIdentity = Depends(get_current_user),
):
    return ledger.summary(collaboration_id)


@router.put("/{collaboration_id}/budget", response_model=BudgetSummary)
def set_budget_total(
    collaboration_id: str,
    payload: BudgetUpdate,
    ledger: BudgetLedger = Depends(get_budget_ledger),
    current_user: UserIdentity = Depends(get_current_user),
):
    return ledger.set_budget_total(
        collaboration_id, payload.total, payload.currency, actor_id=current_user.uid
    )


@router.post(
    "/{collaboration_id}/budget/items",
    response_model=CostItem,
    status_code=status.HTTP_201_CREATED,
)
def add_cost(
    collaboration_id: str,
    payload: CostItemCreate,
    ledger: BudgetLedger = Depends(get_budget_ledger),
    current_user: UserIdentity = Depends(get_current_user),
):
    return ledger.add_cost(collaboration_id, payload, actor_id=current_user.uid)


@router.patch("/{collaboration_id}/budget/items/{item_id}", response_model=CostItem)
def set_cost_status(
    collaboration_id: str,
    item_id: str,
    payload: CostStatusUpdate,
    ledger: BudgetLedger = Depends(get_budget_ledger),
    current_user: UserIdentity = Depends(get_current_user),
):
    return ledger.set_cost_status(
        collaboration_id, item_id, payload.status, actor_id=current_user.uid
    )


@router.delete("/{collaboration_id}/budget/items/{item_id}")
def remove_cost(
    collaboration_id: str,
    item_id: str,
    ledger: BudgetLedger = Depends(get_budget_ledger),
    current_user: UserIdentity = Depends(get_current_user),
):
    return {"removed": ledger.remove_cost(collaboration_id, item_id, actor_id=current_user.uid)}


@router.put("/{collaboration_id}/budget/studio", response_model=StudioCosts)
def update_studio_costs(
    collaboration_id: str,
    payload: StudioCosts,
    ledger: BudgetLedger = Depends(get_budget_ledger),
    current_user: UserIdentity = Depends(get_current_user),
):
    return ledger.update_studio_costs(collaboration_id, payload, actor_id=current_user.uid)


@router.put("/{collaboration_id}/budget/mixing", response_model=MixingCosts)
def update_mixing_costs(
    collaboration_id: str,
    payload: MixingCosts,
    ledger: BudgetLedger = Depends(get_budget_ledger),
    current_user: UserIdentity = Depends(get_current_user),
):
    return ledger.update_mixing_costs(collaboration_id, payload, actor_id=current_user.uid)
