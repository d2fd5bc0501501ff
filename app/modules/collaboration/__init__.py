from .models import (
    APPLICATIONS,
    COLLABORATIONS,
    INVITATIONS,
    ApplicationStatus,
    Budget,
    Collaboration,
    CollaborationApplication,
    CollaborationInvitation,
    CollaborationParticipant,
    CollaborationStatus,
    CollaborationType,
    CostItem,
    CostStatus,
    InvitationStatus,
    ParticipantStatus,
    PrivacyLevel,
)
from .schemas import (
    ApplicationCreate,
    ApplicationReview,
    BatchInvitationCreate,
    BatchInvitationResult,
    BudgetSummary,
    BudgetUpdate,
    CollaborationCreate,
    CollaborationFilter,
    CollaborationStats,
    CollaborationUpdate,
    CostItemCreate,
    InvitationCreate,
    InvitationOutcome,
    InvitationResponse,
    ParticipantCreate,
    RosterOutcome,
)

__all__ = [
    "APPLICATIONS",
    "COLLABORATIONS",
    "INVITATIONS",
    "ApplicationStatus",
    "Budget",
    "Collaboration",
    "CollaborationApplication",
    "CollaborationInvitation",
    "CollaborationParticipant",
    "CollaborationStatus",
    "CollaborationType",
    "CostItem",
    "CostStatus",
    "InvitationStatus",
    "ParticipantStatus",
    "PrivacyLevel",
    "ApplicationCreate",
    "ApplicationReview",
    "BatchInvitationCreate",
    "BatchInvitationResult",
    "BudgetSummary",
    "BudgetUpdate",
    "CollaborationCreate",
    "CollaborationFilter",
    "CollaborationStats",
    "CollaborationUpdate",
    "CostItemCreate",
    "InvitationCreate",
    "InvitationOutcome",
    "InvitationResponse",
    "ParticipantCreate",
    "RosterOutcome",
]
