"""Collaboration record manager: create, read, update, delete and status changes."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from app.core.config import settings as default_settings
from app.core.exceptions import (
    ResourceNotFoundException,
    StoreUnavailableException,
    ValidationException,
)
from app.core.store import DocumentStore, OrderBy, Subscription, Transaction, where
from app.modules.collaboration.models import (
    APPLICATIONS,
    COLLABORATIONS,
    INVITATIONS,
    TEMPLATES,
    ApplicationStatus,
    Budget,
    Collaboration,
    CollaborationParticipant,
    CollaborationStatus,
    CollaborationTemplate,
    DetailedRequirements,
    PrivacyLevel,
    utcnow,
)
from app.modules.collaboration.schemas import (
    CollaborationCreate,
    CollaborationFilter,
    CollaborationStats,
    CollaborationUpdate,
)
from app.modules.collaboration.state import ensure_collaboration_transition
from app.modules.collaboration.templates import default_templates
from app.modules.users import UserIdentity

from .common import document_value, load_collaboration, require_creator, snapshot_listener

logger = logging.getLogger(__name__)

CREATOR_ROLE = "creator"

# Fields owned by the roster, budget, counters and workflows.
PROTECTED_FIELDS = frozenset(
    {
        "id",
        "creatorId",
        "status",
        "currentParticipants",
        "participants",
        "participantIds",
        "invitedUids",
        "budget",
        "studioCosts",
        "mixingCosts",
        "views",
        "applications",
        "createdAt",
        "updatedAt",
    }
)
_PROTECTED_SNAKE = frozenset(
    {
        "creator_id",
        "current_participants",
        "participant_ids",
        "invited_uids",
        "studio_costs",
        "mixing_costs",
        "created_at",
        "updated_at",
    }
)

NEWEST_FIRST = (OrderBy("createdAt", descending=True),)


def _require_text(value: Optional[str], field: str) -> str:
    if value is None or not value.strip():
        raise ValidationException(f"{field} is required", field=field)
    return value.strip()


def _unique(values: List[str]) -> List[str]:
    return list(dict.fromkeys(values))


class CollaborationService:
    def __init__(self, store: DocumentStore, cfg=None):
        self.store = store
        self.settings = cfg or default_settings

    # ------------------------------------------------------------------ create
    def create(self, payload: CollaborationCreate, creator: UserIdentity) -> Collaboration:
        """Create an open collaboration with the creator seeded as its first participant."""
        title = _require_text(payload.title, "title")
        description = _require_text(payload.description, "description")
        genre = _require_text(payload.genre, "genre")

        budget = None
        if payload.budget_total is not None:
            budget = Budget(
                total=payload.budget_total,
                currency=payload.budget_currency or self.settings.DEFAULT_CURRENCY,
            )
        fields = payload.model_dump(
            exclude={"title", "description", "genre", "budget_total", "budget_currency"},
            exclude_none=True,
        )
        collaboration = Collaboration(
            **fields,
            title=title,
            description=description,
            genre=genre,
            creator_id=creator.uid,
            creator_name=creator.display_name,
            creator_avatar=creator.photo_url,
            status=CollaborationStatus.OPEN,
            participants=[
                CollaborationParticipant(
                    user_id=creator.uid,
                    user_name=creator.display_name,
                    user_avatar=creator.photo_url,
                    role=CREATOR_ROLE,
                )
            ],
            participant_ids=[creator.uid],
            current_participants=1,
            budget=budget,
        )
        collaboration.id = self.store.with_retries(
            self.store.create, COLLABORATIONS, collaboration.to_document()
        )
        logger.info(f"Collaboration {collaboration.id} created by {creator.uid}")
        return collaboration

    # -------------------------------------------------------------------- read
    def get(self, collaboration_id: str) -> Collaboration:
        return load_collaboration(self.store, collaboration_id)

    def search(
        self, filters: Optional[CollaborationFilter] = None, limit: int = 20
    ) -> List[Collaboration]:
        """Equality filters over open listings, newest first. Public only unless asked."""
        filters = filters or CollaborationFilter()
        predicates = [
            where("privacy", "==", document_value(filters.privacy or PrivacyLevel.PUBLIC))
        ]
        for name in ("genre", "status", "collaboration_type", "location", "compensation"):
            value = getattr(filters, name)
            if value is not None:
                predicates.append(where(to_camel(name), "==", document_value(value)))
        if filters.instrument:
            predicates.append(where("instruments", "array_contains", filters.instrument))
        snapshots = self.store.with_retries(
            self.store.query, COLLABORATIONS, predicates, NEWEST_FIRST, limit
        )
        return [Collaboration.from_snapshot(s) for s in snapshots]

    def list_created_by(self, user_id: str) -> List[Collaboration]:
        snapshots = self.store.with_retries(
            self.store.query,
            COLLABORATIONS,
            [where("creatorId", "==", user_id)],
            NEWEST_FIRST,
        )
        return [Collaboration.from_snapshot(s) for s in snapshots]

    def list_participating(self, user_id: str) -> List[Collaboration]:
        """Collaborations where ``user_id`` is an active participant, including their own."""
        snapshots = self.store.with_retries(
            self.store.query,
            COLLABORATIONS,
            [where("participantIds", "array_contains", user_id)],
            NEWEST_FIRST,
        )
        return [Collaboration.from_snapshot(s) for s in snapshots]

    def stats(self, user_id: Optional[str] = None) -> CollaborationStats:
        predicates = [where("creatorId", "==", user_id)] if user_id else []
        collaborations = [
            Collaboration.from_snapshot(s)
            for s in self.store.with_retries(self.store.query, COLLABORATIONS, predicates)
        ]
        ids = {c.id for c in collaborations}
        applications = [
            s
            for s in self.store.with_retries(self.store.query, APPLICATIONS)
            if s.get("collaborationId") in ids
        ]
        genres = Counter(c.genre for c in collaborations)
        instruments = Counter(i for c in collaborations for i in c.instruments)
        return CollaborationStats(
            total_collaborations=len(collaborations),
            active_collaborations=sum(
                1
                for c in collaborations
                if c.status
                in (CollaborationStatus.OPEN.value, CollaborationStatus.IN_PROGRESS.value)
            ),
            completed_collaborations=sum(
                1 for c in collaborations if c.status == CollaborationStatus.COMPLETED.value
            ),
            total_applications=len(applications),
            accepted_applications=sum(
                1
                for s in applications
                if s.get("status") == ApplicationStatus.ACCEPTED.value
            ),
            top_genres=[g for g, _ in genres.most_common(5)],
            top_instruments=[i for i, _ in instruments.most_common(5)],
        )

    # --------------------------------------------------------------- templates
    def list_templates(self) -> List[CollaborationTemplate]:
        """Stored templates, most used first; the built-in set when none are stored."""
        try:
            snapshots = self.store.with_retries(self.store.query, TEMPLATES)
        except StoreUnavailableException as exc:
            logger.warning(f"Falling back to built-in templates: {exc}")
            return default_templates()
        if not snapshots:
            return default_templates()
        templates = [CollaborationTemplate.from_snapshot(s) for s in snapshots]
        templates.sort(key=lambda t: (not t.is_popular, -t.usage_count, t.name))
        return templates

    def get_template(self, template_id: str) -> CollaborationTemplate:
        for template in self.list_templates():
            if template.id == template_id:
                return template
        raise ResourceNotFoundException("Template", template_id)

    # ------------------------------------------------------------------ update
    def _parse_update(
        self, fields: Union[CollaborationUpdate, Mapping[str, Any]]
    ) -> CollaborationUpdate:
        if isinstance(fields, CollaborationUpdate):
            return fields
        for key in fields:
            if key in PROTECTED_FIELDS or key in _PROTECTED_SNAKE:
                raise ValidationException(f"{key} cannot be updated directly", field=key)
        try:
            return CollaborationUpdate.model_validate(dict(fields))
        except ValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(p) for p in first.get("loc", ()))
            raise ValidationException(first.get("msg", "Invalid update"), field=field or None)

    def update(
        self,
        collaboration_id: str,
        fields: Union[CollaborationUpdate, Mapping[str, Any]],
        *,
        actor_id: Optional[str] = None,
    ) -> Collaboration:
        """Merge editable fields and stamp ``updatedAt``."""
        payload = self._parse_update(fields)
        changes: Dict[str, Any] = {}
        for name in payload.model_fields_set:
            value = getattr(payload, name)
            if name in ("title", "description", "genre"):
                value = _require_text(value, name)
            elif name in ("instruments", "tags") and value is not None:
                value = _unique(value)
            changes[to_camel(name)] = document_value(value)

        def _txn(txn: Transaction) -> None:
            collaboration = load_collaboration(txn, collaboration_id)
            require_creator(collaboration, actor_id)
            limit = changes.get("maxParticipants")
            if limit is not None and limit < collaboration.current_participants:
                raise ValidationException(
                    "maxParticipants cannot be lower than the current participant count",
                    field="maxParticipants",
                )
            changes["updatedAt"] = utcnow()
            txn.update(COLLABORATIONS, collaboration_id, changes)

        self.store.run_transaction(_txn)
        logger.info(f"Collaboration {collaboration_id} updated: {sorted(changes)}")
        return self.get(collaboration_id)

    def update_detailed_requirements(
        self,
        collaboration_id: str,
        requirements: DetailedRequirements,
        *,
        actor_id: Optional[str] = None,
    ) -> Collaboration:
        return self.update(
            collaboration_id,
            CollaborationUpdate(detailed_requirements=requirements),
            actor_id=actor_id,
        )

    def set_status(
        self,
        collaboration_id: str,
        status: CollaborationStatus,
        *,
        actor_id: Optional[str] = None,
    ) -> Collaboration:
        target = CollaborationStatus(status).value

        def _txn(txn: Transaction) -> str:
            collaboration = load_collaboration(txn, collaboration_id)
            require_creator(collaboration, actor_id)
            ensure_collaboration_transition(collaboration.status, target)
            txn.update(
                COLLABORATIONS, collaboration_id, {"status": target, "updatedAt": utcnow()}
            )
            return collaboration.status

        previous = self.store.run_transaction(_txn)
        logger.info(f"Collaboration {collaboration_id} moved {previous} -> {target}")
        return self.get(collaboration_id)

    # ------------------------------------------------------------------ delete
    def delete(self, collaboration_id: str, *, actor_id: Optional[str] = None) -> None:
        def _txn(txn: Transaction) -> None:
            collaboration = load_collaboration(txn, collaboration_id)
            require_creator(collaboration, actor_id)
            txn.delete(COLLABORATIONS, collaboration_id)

        self.store.run_transaction(_txn)
        logger.info(f"Collaboration {collaboration_id} deleted")
        if self.settings.cascade_delete:
            self._delete_dependents(collaboration_id)

    def _delete_dependents(self, collaboration_id: str) -> int:
        """Best-effort cleanup of applications and invitations of a deleted collaboration."""
        removed = 0
        for collection in (APPLICATIONS, INVITATIONS):
            try:
                snapshots = self.store.with_retries(
                    self.store.query,
                    collection,
                    [where("collaborationId", "==", collaboration_id)],
                )
                for snapshot in snapshots:
                    self.store.with_retries(self.store.delete, collection, snapshot.id)
                    removed += 1
            except Exception as exc:
                logger.error(
                    f"Cascade cleanup of {collection} for {collaboration_id} failed: {exc}",
                    exc_info=True,
                )
        logger.debug(f"Removed {removed} dependent records of {collaboration_id}")
        return removed

    # ------------------------------------------------------------------ watch
    def watch(
        self, collaboration_id: str, callback: Callable[[Optional[Collaboration]], None]
    ) -> Subscription:
        def _listener(snapshot) -> None:
            callback(Collaboration.from_snapshot(snapshot) if snapshot else None)

        return self.store.subscribe_document(COLLABORATIONS, collaboration_id, _listener)

    def watch_created_by(
        self, user_id: str, callback: Callable[[List[Collaboration]], None]
    ) -> Subscription:
        return self.store.subscribe(
            COLLABORATIONS,
            snapshot_listener(Collaboration, callback),
            [where("creatorId", "==", user_id)],
            NEWEST_FIRST,
        )


__all__ = ["CollaborationService", "PROTECTED_FIELDS"]
