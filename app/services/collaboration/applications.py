"""Open-call applications.

``review`` with an accept decision writes the application status and the roster change in
one transaction, so an accepted application always has its participant entry and a full
roster leaves the application pending. Notifications go out after the commit.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from app.core.config import settings as default_settings
from app.core.exceptions import (
    AlreadyMemberException,
    DuplicateApplicationException,
    InvalidTransitionException,
    OwnershipRequiredException,
    PermissionDeniedException,
    ResourceNotFoundException,
    ValidationException,
)
from app.core.store import DocumentStore, OrderBy, Subscription, Transaction, where
from app.modules.collaboration.models import (
    APPLICATIONS,
    COLLABORATIONS,
    ApplicationStatus,
    Collaboration,
    CollaborationApplication,
    CollaborationParticipant,
    PrivacyLevel,
    utcnow,
)
from app.modules.collaboration.schemas import ApplicationCreate, RosterOutcome
from app.modules.collaboration.state import ensure_application_transition
from app.modules.notifications import NotificationDispatcher, NotificationType
from app.modules.users import UserIdentity

from .common import fetch, load_collaboration, require_creator, snapshot_listener
from .engagement import EngagementCounters
from .roster import admit, write_roster

logger = logging.getLogger(__name__)

PENDING = ApplicationStatus.PENDING.value
NEWEST_FIRST = (OrderBy("appliedAt", descending=True),)

_DECISION_NOTICES = {
    ApplicationStatus.ACCEPTED.value: NotificationType.APPLICATION_ACCEPTED,
    ApplicationStatus.REJECTED.value: NotificationType.APPLICATION_REJECTED,
}


def _load_application(reader, application_id: str) -> CollaborationApplication:
    snapshot = fetch(reader, APPLICATIONS, application_id)
    if snapshot is None:
        raise ResourceNotFoundException("Application", application_id)
    return CollaborationApplication.from_snapshot(snapshot)


def _check_can_apply(collaboration: Collaboration, applicant_id: str) -> None:
    if collaboration.is_terminal:
        raise InvalidTransitionException("collaboration", collaboration.status)
    if applicant_id == collaboration.creator_id:
        raise ValidationException(
            "Creators cannot apply to their own collaboration", field="applicantId"
        )
    if applicant_id in collaboration.participant_ids:
        raise AlreadyMemberException(collaboration.id, applicant_id)
    if (
        collaboration.privacy != PrivacyLevel.PUBLIC.value
        and applicant_id not in collaboration.invited_uids
    ):
        raise PermissionDeniedException("This collaboration only accepts invited musicians")


class ApplicationWorkflow:
    def __init__(
        self,
        store: DocumentStore,
        notifications: Optional[NotificationDispatcher] = None,
        engagement: Optional[EngagementCounters] = None,
        cfg=None,
    ):
        self.store = store
        self.notifications = notifications or NotificationDispatcher()
        self.engagement = engagement or EngagementCounters(store)
        self.settings = cfg or default_settings

    # ------------------------------------------------------------------- reads
    def get(self, application_id: str) -> CollaborationApplication:
        return _load_application(self.store, application_id)

    def list_for_collaboration(
        self,
        collaboration_id: str,
        *,
        status: Optional[ApplicationStatus] = None,
        actor_id: Optional[str] = None,
    ) -> List[CollaborationApplication]:
        if actor_id is not None:
            require_creator(load_collaboration(self.store, collaboration_id), actor_id)
        predicates = [where("collaborationId", "==", collaboration_id)]
        if status is not None:
            predicates.append(where("status", "==", ApplicationStatus(status).value))
        snapshots = self.store.with_retries(
            self.store.query, APPLICATIONS, predicates, NEWEST_FIRST
        )
        return [CollaborationApplication.from_snapshot(s) for s in snapshots]

    def list_for_applicant(self, applicant_id: str) -> List[CollaborationApplication]:
        snapshots = self.store.with_retries(
            self.store.query,
            APPLICATIONS,
            [where("applicantId", "==", applicant_id)],
            NEWEST_FIRST,
        )
        return [CollaborationApplication.from_snapshot(s) for s in snapshots]

    def watch_for_collaboration(
        self,
        collaboration_id: str,
        callback: Callable[[List[CollaborationApplication]], None],
    ) -> Subscription:
        return self.store.subscribe(
            APPLICATIONS,
            snapshot_listener(CollaborationApplication, callback),
            [where("collaborationId", "==", collaboration_id)],
            NEWEST_FIRST,
        )

    # ----------------------------------------------------------------- actions
    def apply(
        self,
        collaboration_id: str,
        applicant: UserIdentity,
        fields: Optional[ApplicationCreate] = None,
    ) -> CollaborationApplication:
        """File a pending application; one pending application per applicant."""
        fields = fields or ApplicationCreate()
        application = CollaborationApplication(
            collaboration_id=collaboration_id,
            applicant_id=applicant.uid,
            applicant_name=applicant.display_name,
            applicant_avatar=applicant.photo_url,
            **fields.model_dump(),
        )

        def _txn(txn: Transaction):
            collaboration = load_collaboration(txn, collaboration_id)
            _check_can_apply(collaboration, applicant.uid)
            pending = txn.query(
                APPLICATIONS,
                [
                    where("collaborationId", "==", collaboration_id),
                    where("applicantId", "==", applicant.uid),
                    where("status", "==", PENDING),
                ],
                limit=1,
            )
            if pending:
                raise DuplicateApplicationException(collaboration_id, applicant.uid)
            application_id = txn.create(APPLICATIONS, application.to_document())
            return collaboration, application_id

        collaboration, application.id = self.store.run_transaction(_txn)
        logger.info(
            f"Application {application.id} filed by {applicant.uid} for {collaboration_id}"
        )
        self.engagement.increment_applications(collaboration_id)
        self.notifications.notify(
            collaboration.creator_id,
            NotificationType.COLLABORATION_APPLICATION,
            collaboration_id=collaboration_id,
            from_user_id=applicant.uid,
            message=f"{applicant.display_name or applicant.uid} applied to {collaboration.title}",
            applicationId=application.id,
        )
        return application

    def review(
        self,
        application_id: str,
        decision: ApplicationStatus,
        *,
        actor_id: Optional[str] = None,
        message: Optional[str] = None,
        role: str = "member",
    ) -> CollaborationApplication:
        """Accept or reject a pending application.

        Accepting adds the applicant to the roster in the same transaction and fails with
        RosterFullException, leaving everything unchanged, when no slot is left.
        """
        target = ApplicationStatus(decision).value
        if target not in _DECISION_NOTICES:
            raise ValidationException("Decision must be accepted or rejected", field="decision")

        def _txn(txn: Transaction):
            application = _load_application(txn, application_id)
            collaboration = load_collaboration(txn, application.collaboration_id)
            require_creator(collaboration, actor_id)
            ensure_application_transition(application.status, target)
            outcome = None
            if target == ApplicationStatus.ACCEPTED.value:
                outcome = admit(
                    collaboration,
                    CollaborationParticipant(
                        user_id=application.applicant_id,
                        user_name=application.applicant_name,
                        user_avatar=application.applicant_avatar,
                        role=role,
                        instrument=application.instrument,
                    ),
                )
                if outcome != RosterOutcome.ALREADY_MEMBER:
                    write_roster(txn, collaboration)
            responded_at = utcnow()
            txn.update(
                APPLICATIONS,
                application_id,
                {
                    "status": target,
                    "respondedAt": responded_at,
                    "responseMessage": message,
                },
            )
            application.status = target
            application.responded_at = responded_at
            application.response_message = message
            return application, collaboration, outcome

        application, collaboration, outcome = self.store.run_transaction(_txn)
        logger.info(
            f"Application {application_id} {target}"
            + (f" (roster: {outcome.value})" if outcome else "")
        )
        self.notifications.notify(
            application.applicant_id,
            _DECISION_NOTICES[target],
            collaboration_id=collaboration.id,
            from_user_id=collaboration.creator_id,
            message=message or f"Your application to {collaboration.title} was {target}",
            applicationId=application_id,
        )
        return application

    def withdraw(
        self, application_id: str, *, actor_id: str
    ) -> Optional[CollaborationApplication]:
        """Retract a pending application; returns None when retractions delete the record."""
        target = ApplicationStatus.WITHDRAWN.value
        delete = self.settings.deletes_retracted_records

        def _txn(txn: Transaction):
            application = _load_application(txn, application_id)
            if application.applicant_id != actor_id:
                raise OwnershipRequiredException("application")
            ensure_application_transition(application.status, target)
            snapshot = txn.get(COLLABORATIONS, application.collaboration_id)
            creator_id = snapshot.get("creatorId") if snapshot else None
            if delete:
                txn.delete(APPLICATIONS, application_id)
            else:
                application.status = target
                application.responded_at = utcnow()
                txn.update(
                    APPLICATIONS,
                    application_id,
                    {"status": target, "respondedAt": application.responded_at},
                )
            return application, creator_id

        application, creator_id = self.store.run_transaction(_txn)
        logger.info(f"Application {application_id} withdrawn by {actor_id}")
        self.notifications.notify(
            creator_id,
            NotificationType.APPLICATION_WITHDRAWN,
            collaboration_id=application.collaboration_id,
            from_user_id=actor_id,
            message=f"{application.applicant_name or actor_id} withdrew their application",
            applicationId=application_id,
        )
        return None if delete else application
