"""Participant roster for one collaboration.

Every mutation runs inside a store transaction that reads the collaboration, edits the
participant list in memory, and writes back the list together with the recomputed
``currentParticipants`` and ``participantIds``. The count therefore always equals the
number of active entries, and a racing writer forces a retry instead of a lost update.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from app.core.exceptions import (
    InvalidTransitionException,
    RosterFullException,
    ValidationException,
)
from app.core.store import DocumentStore, Transaction
from app.modules.collaboration.models import (
    COLLABORATIONS,
    Collaboration,
    CollaborationParticipant,
    ParticipantStatus,
)
from app.modules.collaboration.schemas import (
    ParticipantCreate,
    RosterChange,
    RosterOutcome,
)
from app.modules.notifications import NotificationDispatcher, NotificationType

from .common import load_collaboration, require_creator, roster_fields

logger = logging.getLogger(__name__)

ACTIVE = ParticipantStatus.ACTIVE.value


def _ensure_mutable(collaboration: Collaboration) -> None:
    if collaboration.is_terminal:
        raise InvalidTransitionException("collaboration", collaboration.status)


def _ensure_capacity(collaboration: Collaboration) -> None:
    active = len(collaboration.active_participants())
    limit = collaboration.max_participants
    if limit is not None and active >= limit:
        raise RosterFullException(collaboration.id, limit)


def admit(
    collaboration: Collaboration, participant: CollaborationParticipant
) -> RosterOutcome:
    """Add or reactivate ``participant`` in the in-memory collaboration.

    Raises RosterFullException when the roster is at ``maxParticipants`` and
    InvalidTransitionException when the collaboration is completed or cancelled.
    """
    _ensure_mutable(collaboration)
    existing = collaboration.find_participant(participant.user_id)
    if existing is not None and existing.status == ACTIVE:
        return RosterOutcome.ALREADY_MEMBER
    _ensure_capacity(collaboration)
    if existing is not None:
        existing.status = ACTIVE
        existing.role = participant.role or existing.role
        existing.instrument = participant.instrument or existing.instrument
        existing.joined_at = participant.joined_at
        return RosterOutcome.REACTIVATED
    collaboration.participants.append(participant)
    return RosterOutcome.ADDED


def evict(collaboration: Collaboration, user_id: str) -> RosterOutcome:
    """Remove the entry for ``user_id`` from the in-memory collaboration."""
    _ensure_mutable(collaboration)
    if user_id == collaboration.creator_id:
        raise ValidationException(
            "The creator cannot be removed from the roster", field="userId"
        )
    remaining = [p for p in collaboration.participants if p.user_id != user_id]
    if len(remaining) == len(collaboration.participants):
        return RosterOutcome.NOT_MEMBER
    collaboration.participants = remaining
    return RosterOutcome.REMOVED


def write_roster(txn: Transaction, collaboration: Collaboration) -> None:
    txn.update(COLLABORATIONS, collaboration.id, roster_fields(collaboration))


class ParticipantRoster:
    def __init__(
        self,
        store: DocumentStore,
        notifications: Optional[NotificationDispatcher] = None,
    ):
        self.store = store
        self.notifications = notifications or NotificationDispatcher()

    def _change(
        self, collaboration: Collaboration, user_id: str, outcome: RosterOutcome
    ) -> RosterChange:
        return RosterChange(
            collaboration_id=collaboration.id,
            user_id=user_id,
            outcome=outcome,
            current_participants=len(collaboration.active_participants()),
        )

    def list_participants(
        self, collaboration_id: str, *, include_inactive: bool = False
    ) -> List[CollaborationParticipant]:
        collaboration = load_collaboration(self.store, collaboration_id)
        if include_inactive:
            return collaboration.participants
        return collaboration.active_participants()

    def add_participant(
        self,
        collaboration_id: str,
        participant: ParticipantCreate,
        *,
        actor_id: Optional[str] = None,
    ) -> RosterChange:
        """Add a participant; re-adding an active member is a no-op."""
        entry = CollaborationParticipant(**participant.model_dump())

        def _txn(txn: Transaction) -> RosterChange:
            collaboration = load_collaboration(txn, collaboration_id)
            require_creator(collaboration, actor_id)
            outcome = admit(collaboration, entry)
            if outcome != RosterOutcome.ALREADY_MEMBER:
                write_roster(txn, collaboration)
            return self._change(collaboration, entry.user_id, outcome)

        change = self.store.run_transaction(_txn)
        logger.info(
            f"Roster add {entry.user_id} -> {collaboration_id}: {change.outcome.value} "
            f"({change.current_participants} active)"
        )
        return change

    def remove_participant(
        self, collaboration_id: str, user_id: str, *, actor_id: Optional[str] = None
    ) -> RosterChange:
        """Remove a participant; removing an absent user is a no-op."""

        def _txn(txn: Transaction):
            collaboration = load_collaboration(txn, collaboration_id)
            require_creator(collaboration, actor_id)
            outcome = evict(collaboration, user_id)
            if outcome == RosterOutcome.REMOVED:
                write_roster(txn, collaboration)
            return collaboration, self._change(collaboration, user_id, outcome)

        collaboration, change = self.store.run_transaction(_txn)
        logger.info(
            f"Roster remove {user_id} <- {collaboration_id}: {change.outcome.value}"
        )
        if change.outcome == RosterOutcome.REMOVED:
            self.notifications.notify(
                user_id,
                NotificationType.PARTICIPANT_REMOVED,
                collaboration_id=collaboration_id,
                from_user_id=collaboration.creator_id,
                message=f"You were removed from {collaboration.title}",
            )
        return change

    def leave(self, collaboration_id: str, user_id: str) -> RosterChange:
        """Mark the caller's own entry as ``left``."""

        def _txn(txn: Transaction) -> RosterChange:
            collaboration = load_collaboration(txn, collaboration_id)
            _ensure_mutable(collaboration)
            if user_id == collaboration.creator_id:
                raise ValidationException(
                    "The creator cannot leave their own collaboration", field="userId"
                )
            entry = collaboration.find_participant(user_id)
            if entry is None or entry.status != ACTIVE:
                return self._change(collaboration, user_id, RosterOutcome.NOT_MEMBER)
            entry.status = ParticipantStatus.LEFT.value
            write_roster(txn, collaboration)
            return self._change(collaboration, user_id, RosterOutcome.UPDATED)

        change = self.store.run_transaction(_txn)
        logger.info(f"{user_id} left collaboration {collaboration_id}")
        return change

    def set_participant_status(
        self,
        collaboration_id: str,
        user_id: str,
        status: ParticipantStatus,
        *,
        actor_id: Optional[str] = None,
    ) -> RosterChange:
        """Toggle a participant between active and inactive.

        Reactivation counts against ``maxParticipants`` like a new join.
        """
        target = ParticipantStatus(status).value
        if target == ParticipantStatus.LEFT.value:
            raise ValidationException(
                "Only the participant can mark themselves as left", field="status"
            )

        def _txn(txn: Transaction) -> RosterChange:
            collaboration = load_collaboration(txn, collaboration_id)
            require_creator(collaboration, actor_id)
            _ensure_mutable(collaboration)
            entry = collaboration.find_participant(user_id)
            if entry is None:
                return self._change(collaboration, user_id, RosterOutcome.NOT_MEMBER)
            if entry.status == target:
                return self._change(collaboration, user_id, RosterOutcome.UPDATED)
            if user_id == collaboration.creator_id:
                raise ValidationException(
                    "The creator must stay active", field="userId"
                )
            if target == ACTIVE:
                _ensure_capacity(collaboration)
            entry.status = target
            write_roster(txn, collaboration)
            return self._change(collaboration, user_id, RosterOutcome.UPDATED)

        return self.store.run_transaction(_txn)
