from __future__ import annotations

import enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import (
    ApplicationStatus,
    Attachment,
    CollaborationStatus,
    CollaborationType,
    CompensationType,
    CostCategory,
    CostStatus,
    DetailedRequirements,
    InvitationStatus,
    LocationType,
    ParticipantStatus,
    PrivacyLevel,
    Timeline,
)


class CollaborationCreate(BaseModel):
    title: str
    description: str
    genre: str
    instruments: List[str] = []
    collaboration_type: CollaborationType = CollaborationType.OTHER
    privacy: PrivacyLevel = PrivacyLevel.PUBLIC
    max_participants: Optional[int] = Field(default=None, ge=1)
    requirements: List[str] = []
    timeline: Optional[Timeline] = None
    attachments: List[Attachment] = []
    tags: List[str] = []
    reference_links: List[str] = []
    location: LocationType = LocationType.ONLINE
    location_details: Optional[str] = None
    compensation: CompensationType = CompensationType.FREE
    compensation_details: Optional[str] = None
    detailed_requirements: Optional[DetailedRequirements] = None
    budget_total: Optional[float] = Field(default=None, ge=0)
    budget_currency: Optional[str] = None


class CollaborationUpdate(BaseModel):
    """Fields a creator may edit directly; counters, roster and budget are managed elsewhere.

    Accepts the snake_case names and the camelCase names used in responses.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )

    title: Optional[str] = None
    description: Optional[str] = None
    genre: Optional[str] = None
    instruments: Optional[List[str]] = None
    collaboration_type: Optional[CollaborationType] = None
    privacy: Optional[PrivacyLevel] = None
    max_participants: Optional[int] = Field(default=None, ge=1)
    requirements: Optional[List[str]] = None
    timeline: Optional[Timeline] = None
    attachments: Optional[List[Attachment]] = None
    tags: Optional[List[str]] = None
    reference_links: Optional[List[str]] = None
    location: Optional[LocationType] = None
    location_details: Optional[str] = None
    compensation: Optional[CompensationType] = None
    compensation_details: Optional[str] = None
    detailed_requirements: Optional[DetailedRequirements] = None


class StatusUpdate(BaseModel):
    status: CollaborationStatus


class CollaborationFilter(BaseModel):
    genre: Optional[str] = None
    instrument: Optional[str] = None
    status: Optional[CollaborationStatus] = None
    collaboration_type: Optional[CollaborationType] = None
    location: Optional[LocationType] = None
    compensation: Optional[CompensationType] = None
    privacy: Optional[PrivacyLevel] = None


class CollaborationStats(BaseModel):
    total_collaborations: int = 0
    active_collaborations: int = 0
    completed_collaborations: int = 0
    total_applications: int = 0
    accepted_applications: int = 0
    top_genres: List[str] = []
    top_instruments: List[str] = []


# ------------------------------------------------------------------ roster


class ParticipantCreate(BaseModel):
    user_id: str
    user_name: str = ""
    user_avatar: Optional[str] = None
    role: str = "member"
    instrument: str = ""


class ParticipantStatusUpdate(BaseModel):
    status: Literal[ParticipantStatus.ACTIVE, ParticipantStatus.INACTIVE]


class RosterOutcome(str, enum.Enum):
    ADDED = "added"
    REACTIVATED = "reactivated"
    ALREADY_MEMBER = "already_member"
    REMOVED = "removed"
    NOT_MEMBER = "not_member"
    UPDATED = "updated"


class RosterChange(BaseModel):
    collaboration_id: str
    user_id: str
    outcome: RosterOutcome
    current_participants: int


# ------------------------------------------------------------- applications


class ApplicationCreate(BaseModel):
    instrument: str = ""
    experience: str = ""
    motivation: str = ""
    portfolio: List[str] = []


class ApplicationReview(BaseModel):
    decision: Literal[ApplicationStatus.ACCEPTED, ApplicationStatus.REJECTED]
    message: Optional[str] = None
    role: str = "member"


# -------------------------------------------------------------- invitations


class InvitationCreate(BaseModel):
    to_user_id: str
    message: str = ""
    role: str = "member"
    instrument: str = ""


class BatchInvitationCreate(BaseModel):
    to_user_ids: List[str] = Field(min_length=1)
    message: str = ""
    role: str = "member"
    instrument: str = ""


class InvitationResponse(BaseModel):
    decision: Literal[InvitationStatus.ACCEPTED, InvitationStatus.DECLINED]
    message: Optional[str] = None


class InvitationOutcome(BaseModel):
    to_user_id: str
    success: bool
    invitation_id: Optional[str] = None
    error_code: Optional[str] = None
    message: Optional[str] = None


class BatchInvitationResult(BaseModel):
    collaboration_id: str
    results: List[InvitationOutcome] = []

    @property
    def succeeded(self) -> List[InvitationOutcome]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> List[InvitationOutcome]:
        return [r for r in self.results if not r.success]


# ------------------------------------------------------------------- budget


class CostItemCreate(BaseModel):
    name: str = Field(min_length=1)
    amount: float
    currency: Optional[str] = None
    category: CostCategory = CostCategory.OTHER
    description: Optional[str] = None
    status: CostStatus = CostStatus.PENDING


class CostStatusUpdate(BaseModel):
    status: CostStatus


class BudgetUpdate(BaseModel):
    total: float
    currency: Optional[str] = None


class BudgetSummary(BaseModel):
    collaboration_id: str
    total: float = 0
    spent: float = 0
    remaining: float = 0
    currency: str
    progress_percent: int = 0
    item_count: int = 0
    over_budget: bool = False
