"""Collaboration lifecycle services."""

from .applications import ApplicationWorkflow
from .budget import BudgetLedger
from .engagement import EngagementCounters
from .invitations import InvitationWorkflow
from .records import CollaborationService
from .roster import ParticipantRoster, admit, evict

__all__ = [
    "ApplicationWorkflow",
    "BudgetLedger",
    "CollaborationService",
    "EngagementCounters",
    "InvitationWorkflow",
    "ParticipantRoster",
    "admit",
    "evict",
]
