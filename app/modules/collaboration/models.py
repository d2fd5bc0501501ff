"""Collaboration domain documents.

Documents are pydantic models whose aliases are the camelCase field names stored in the
document store (``creatorId``, ``currentParticipants``...). Use ``to_document()`` to get the
stored shape and ``from_snapshot()`` to load one back.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

COLLABORATIONS = "collaborations"
APPLICATIONS = "collaborationApplications"
INVITATIONS = "collaborationInvitations"
TEMPLATES = "collaborationTemplates"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CollaborationStatus(str, enum.Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PrivacyLevel(str, enum.Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    INVITE_ONLY = "invite_only"


class CollaborationType(str, enum.Enum):
    COVER = "cover"
    ORIGINAL = "original"
    REMIX = "remix"
    JAM = "jam"
    COMPOSITION = "composition"
    OTHER = "other"


class LocationType(str, enum.Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    HYBRID = "hybrid"


class CompensationType(str, enum.Enum):
    FREE = "free"
    PAID = "paid"
    REVENUE_SHARE = "revenue_share"
    EXPOSURE = "exposure"


class ParticipantStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    LEFT = "left"


class ApplicationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class CostCategory(str, enum.Enum):
    STUDIO = "studio"
    MIXING = "mixing"
    EQUIPMENT = "equipment"
    OTHER = "other"


class CostStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


class MilestoneStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    OVERDUE = "overdue"


class AttachmentType(str, enum.Enum):
    AUDIO = "audio"
    VIDEO = "video"
    IMAGE = "image"
    DOCUMENT = "document"
    SHEET_MUSIC = "sheet_music"


class SkillLevel(str, enum.Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    PROFESSIONAL = "professional"


class DocumentModel(BaseModel):
    """Base for stored documents: camelCase aliases, enum values stored as plain strings."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        validate_default=True,
    )

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"id"})

    @classmethod
    def from_snapshot(cls, snapshot):
        return cls.model_validate({**snapshot.data, "id": snapshot.id})


class Milestone(DocumentModel):
    id: str
    title: str
    description: str = ""
    due_date: str
    status: MilestoneStatus = MilestoneStatus.PENDING
    assigned_to: List[str] = []
    completed_at: Optional[datetime] = None


class Timeline(DocumentModel):
    start_date: str = Field(default_factory=lambda: utcnow().isoformat())
    end_date: Optional[str] = None
    milestones: List[Milestone] = []


class Attachment(DocumentModel):
    id: str
    name: str
    type: AttachmentType
    url: str
    size: int = 0
    uploaded_at: datetime = Field(default_factory=utcnow)
    uploaded_by: str
    description: Optional[str] = None


class DetailedRequirements(DocumentModel):
    skill_level: SkillLevel = SkillLevel.INTERMEDIATE
    experience: str = ""
    equipment: List[str] = []
    availability: str = ""
    commitment: str = ""
    additional_notes: str = ""


class CostItem(DocumentModel):
    id: str
    name: str
    amount: float = Field(gt=0)
    currency: str
    category: CostCategory = CostCategory.OTHER
    description: Optional[str] = None
    date: datetime = Field(default_factory=utcnow)
    status: CostStatus = CostStatus.PENDING


class Budget(DocumentModel):
    total: float = Field(default=0, ge=0)
    spent: float = Field(default=0, ge=0)
    currency: str = "USD"
    items: List[CostItem] = []

    @property
    def remaining(self) -> float:
        return max(0.0, round(self.total - self.spent, 2))

    @property
    def progress_percent(self) -> int:
        if self.total <= 0:
            return 0
        return round(self.spent / self.total * 100)


class StudioCosts(DocumentModel):
    """Studio quote breakdown; informational, separate from the budget ledger."""

    studio_time: float = Field(default=0, ge=0)
    equipment_rental: float = Field(default=0, ge=0)
    engineer: float = Field(default=0, ge=0)
    additional_services: List[CostItem] = []

    @property
    def total(self) -> float:
        return (
            self.studio_time
            + self.equipment_rental
            + self.engineer
            + sum(item.amount for item in self.additional_services)
        )


class MixingCosts(DocumentModel):
    mixing: float = Field(default=0, ge=0)
    mastering: float = Field(default=0, ge=0)
    additional_edits: float = Field(default=0, ge=0)
    revisions: float = Field(default=0, ge=0)

    @property
    def total(self) -> float:
        return self.mixing + self.mastering + self.additional_edits + self.revisions


class CollaborationParticipant(DocumentModel):
    user_id: str
    user_name: str = ""
    user_avatar: Optional[str] = None
    role: str = "member"
    instrument: str = ""
    joined_at: datetime = Field(default_factory=utcnow)
    status: ParticipantStatus = ParticipantStatus.ACTIVE
    contribution: Optional[str] = None


class Collaboration(DocumentModel):
    """A musical project posted by a creator; the aggregate root for roster and budget."""

    id: Optional[str] = None
    title: str
    description: str
    creator_id: str
    creator_name: str = ""
    creator_avatar: Optional[str] = None
    genre: str
    instruments: List[str] = []
    collaboration_type: CollaborationType = CollaborationType.OTHER
    status: CollaborationStatus = CollaborationStatus.OPEN
    privacy: PrivacyLevel = PrivacyLevel.PUBLIC
    max_participants: Optional[int] = Field(default=None, ge=1)
    current_participants: int = 0
    participants: List[CollaborationParticipant] = []
    participant_ids: List[str] = []
    requirements: List[str] = []
    timeline: Timeline = Field(default_factory=Timeline)
    attachments: List[Attachment] = []
    tags: List[str] = []
    reference_links: List[str] = []
    location: LocationType = LocationType.ONLINE
    location_details: Optional[str] = None
    compensation: CompensationType = CompensationType.FREE
    compensation_details: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    views: int = 0
    applications: int = 0
    is_verified: bool = False
    invited_uids: List[str] = []
    budget: Optional[Budget] = None
    detailed_requirements: Optional[DetailedRequirements] = None
    studio_costs: Optional[StudioCosts] = None
    mixing_costs: Optional[MixingCosts] = None

    @field_validator("instruments", "tags")
    @classmethod
    def _dedupe(cls, values: List[str]) -> List[str]:
        seen: List[str] = []
        for value in values:
            if value not in seen:
                seen.append(value)
        return seen

    @property
    def is_terminal(self) -> bool:
        return self.status in (
            CollaborationStatus.COMPLETED.value,
            CollaborationStatus.CANCELLED.value,
        )

    @property
    def is_full(self) -> bool:
        return (
            self.max_participants is not None
            and self.current_participants >= self.max_participants
        )

    def find_participant(self, user_id: str) -> Optional[CollaborationParticipant]:
        return next((p for p in self.participants if p.user_id == user_id), None)

    def active_participants(self) -> List[CollaborationParticipant]:
        return [
            p for p in self.participants if p.status == ParticipantStatus.ACTIVE.value
        ]


class CollaborationApplication(DocumentModel):
    id: Optional[str] = None
    collaboration_id: str
    applicant_id: str
    applicant_name: str = ""
    applicant_avatar: Optional[str] = None
    instrument: str = ""
    experience: str = ""
    motivation: str = ""
    portfolio: List[str] = []
    status: ApplicationStatus = ApplicationStatus.PENDING
    applied_at: datetime = Field(default_factory=utcnow)
    responded_at: Optional[datetime] = None
    response_message: Optional[str] = None


class CollaborationInvitation(DocumentModel):
    id: Optional[str] = None
    collaboration_id: str
    collaboration_title: str = ""
    from_user_id: str
    to_user_id: str
    role: str = "member"
    instrument: str = ""
    status: InvitationStatus = InvitationStatus.PENDING
    message: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    responded_at: Optional[datetime] = None
    response_message: Optional[str] = None


class TemplateFieldType(str, enum.Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    SELECT = "select"
    MULTISELECT = "multiselect"
    FILE = "file"
    DATE = "date"
    NUMBER = "number"
    CHECKBOX = "checkbox"


class FieldValidation(DocumentModel):
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None
    min: Optional[float] = None
    max: Optional[float] = None


class TemplateField(DocumentModel):
    id: str
    label: str
    type: TemplateFieldType
    required: bool = False
    placeholder: Optional[str] = None
    options: Optional[List[str]] = None
    validation: Optional[FieldValidation] = None


class TemplateStep(DocumentModel):
    id: str
    title: str
    description: str = ""
    order: int
    is_required: bool = True
    is_completed: bool = False
    fields: List[TemplateField] = []


class CollaborationTemplate(DocumentModel):
    """A guided set of creation steps, e.g. cover song or jam session."""

    id: Optional[str] = None
    name: str
    description: str = ""
    category: str
    steps: List[TemplateStep] = []
    is_popular: bool = False
    usage_count: int = 0


__all__ = [
    "APPLICATIONS",
    "COLLABORATIONS",
    "INVITATIONS",
    "TEMPLATES",
    "ApplicationStatus",
    "Attachment",
    "AttachmentType",
    "Budget",
    "Collaboration",
    "CollaborationApplication",
    "CollaborationInvitation",
    "CollaborationParticipant",
    "CollaborationStatus",
    "CollaborationTemplate",
    "CollaborationType",
    "CompensationType",
    "CostCategory",
    "CostItem",
    "CostStatus",
    "DetailedRequirements",
    "DocumentModel",
    "FieldValidation",
    "InvitationStatus",
    "LocationType",
    "Milestone",
    "MilestoneStatus",
    "MixingCosts",
    "ParticipantStatus",
    "PrivacyLevel",
    "SkillLevel",
    "StudioCosts",
    "TemplateField",
    "TemplateFieldType",
    "TemplateStep",
    "Timeline",
    "utcnow",
]
