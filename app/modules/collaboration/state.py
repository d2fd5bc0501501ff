"""State machines for collaborations, applications and invitations."""

from __future__ import annotations

from typing import Dict, FrozenSet, Mapping

from app.core.exceptions import InvalidTransitionException

from .models import ApplicationStatus, CollaborationStatus, InvitationStatus

Transitions = Mapping[str, FrozenSet[str]]

COLLABORATION_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    CollaborationStatus.OPEN.value: frozenset(
        {CollaborationStatus.IN_PROGRESS.value, CollaborationStatus.CANCELLED.value}
    ),
    CollaborationStatus.IN_PROGRESS.value: frozenset(
        {CollaborationStatus.COMPLETED.value, CollaborationStatus.CANCELLED.value}
    ),
    CollaborationStatus.COMPLETED.value: frozenset(),
    CollaborationStatus.CANCELLED.value: frozenset(),
}

# Pending is the only non-terminal state; every decision is write-once.
APPLICATION_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    ApplicationStatus.PENDING.value: frozenset(
        {
            ApplicationStatus.ACCEPTED.value,
            ApplicationStatus.REJECTED.value,
            ApplicationStatus.WITHDRAWN.value,
        }
    ),
}

INVITATION_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    InvitationStatus.PENDING.value: frozenset(
        {
            InvitationStatus.ACCEPTED.value,
            InvitationStatus.DECLINED.value,
            InvitationStatus.CANCELLED.value,
        }
    ),
}


def _value(status) -> str:
    return getattr(status, "value", status)


def can_transition(table: Transitions, current, target) -> bool:
    return _value(target) in table.get(_value(current), frozenset())


def is_terminal(table: Transitions, status) -> bool:
    return not table.get(_value(status))


def ensure_transition(table: Transitions, resource: str, current, target) -> None:
    """Raise InvalidTransitionException unless ``current -> target`` is allowed."""
    if not can_transition(table, current, target):
        raise InvalidTransitionException(resource, _value(current), _value(target))


def ensure_collaboration_transition(current, target) -> None:
    ensure_transition(COLLABORATION_TRANSITIONS, "collaboration", current, target)


def ensure_application_transition(current, target) -> None:
    ensure_transition(APPLICATION_TRANSITIONS, "application", current, target)


def ensure_invitation_transition(current, target) -> None:
    ensure_transition(INVITATION_TRANSITIONS, "invitation", current, target)
