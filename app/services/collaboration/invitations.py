"""Creator-initiated invitations.

At most one pending invitation exists per (collaboration, invitee): the duplicate check
reads the invitation collection inside the same transaction that creates the new record,
so two racing invites cannot both commit. Accepting joins the roster atomically with the
status change.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

from app.core.config import settings as default_settings
from app.core.exceptions import (
    AlreadyMemberException,
    AppException,
    DuplicatePendingInvitationException,
    InvalidTransitionException,
    OwnershipRequiredException,
    ResourceNotFoundException,
    ValidationException,
)
from app.core.store import DocumentStore, OrderBy, Subscription, Transaction, where
from app.modules.collaboration.models import (
    COLLABORATIONS,
    INVITATIONS,
    Collaboration,
    CollaborationInvitation,
    CollaborationParticipant,
    InvitationStatus,
    utcnow,
)
from app.modules.collaboration.schemas import (
    BatchInvitationResult,
    InvitationOutcome,
    RosterOutcome,
)
from app.modules.collaboration.state import ensure_invitation_transition
from app.modules.notifications import NotificationDispatcher, NotificationType
from app.modules.users import UserIdentity

from .common import fetch, load_collaboration, require_creator, snapshot_listener
from .roster import admit, write_roster

logger = logging.getLogger(__name__)

PENDING = InvitationStatus.PENDING.value
ACCEPTED = InvitationStatus.ACCEPTED.value
NEWEST_FIRST = (OrderBy("createdAt", descending=True),)

_RESPONSE_NOTICES = {
    InvitationStatus.ACCEPTED.value: NotificationType.INVITATION_ACCEPTED,
    InvitationStatus.DECLINED.value: NotificationType.INVITATION_DECLINED,
}


def _load_invitation(reader, invitation_id: str) -> CollaborationInvitation:
    snapshot = fetch(reader, INVITATIONS, invitation_id)
    if snapshot is None:
        raise ResourceNotFoundException("Invitation", invitation_id)
    return CollaborationInvitation.from_snapshot(snapshot)


def _check_not_member(
    collaboration: Collaboration,
    to_user_id: str,
    existing: Sequence[CollaborationInvitation],
) -> None:
    if to_user_id in collaboration.participant_ids:
        raise AlreadyMemberException(collaboration.id, to_user_id)
    for invitation in existing:
        if invitation.status == PENDING:
            raise DuplicatePendingInvitationException(collaboration.id, to_user_id)
        if invitation.status == ACCEPTED:
            raise AlreadyMemberException(collaboration.id, to_user_id)


class InvitationWorkflow:
    def __init__(
        self,
        store: DocumentStore,
        notifications: Optional[NotificationDispatcher] = None,
        cfg=None,
    ):
        self.store = store
        self.notifications = notifications or NotificationDispatcher()
        self.settings = cfg or default_settings

    # ------------------------------------------------------------------- reads
    def get(self, invitation_id: str) -> CollaborationInvitation:
        return _load_invitation(self.store, invitation_id)

    def list_for_collaboration(
        self, collaboration_id: str, *, status: Optional[InvitationStatus] = None
    ) -> List[CollaborationInvitation]:
        predicates = [where("collaborationId", "==", collaboration_id)]
        if status is not None:
            predicates.append(where("status", "==", InvitationStatus(status).value))
        snapshots = self.store.with_retries(
            self.store.query, INVITATIONS, predicates, NEWEST_FIRST
        )
        return [CollaborationInvitation.from_snapshot(s) for s in snapshots]

    def list_pending_for_user(self, user_id: str) -> List[CollaborationInvitation]:
        snapshots = self.store.with_retries(
            self.store.query,
            INVITATIONS,
            [where("toUserId", "==", user_id), where("status", "==", PENDING)],
            NEWEST_FIRST,
        )
        return [CollaborationInvitation.from_snapshot(s) for s in snapshots]

    def watch_pending_for_user(
        self, user_id: str, callback: Callable[[List[CollaborationInvitation]], None]
    ) -> Subscription:
        return self.store.subscribe(
            INVITATIONS,
            snapshot_listener(CollaborationInvitation, callback),
            [where("toUserId", "==", user_id), where("status", "==", PENDING)],
            NEWEST_FIRST,
        )

    # ----------------------------------------------------------------- actions
    def invite(
        self,
        collaboration_id: str,
        *,
        from_user_id: str,
        to_user_id: str,
        message: str = "",
        role: str = "member",
        instrument: str = "",
    ) -> CollaborationInvitation:
        if not to_user_id:
            raise ValidationException("Invitee is required", field="toUserId")

        def _txn(txn: Transaction):
            collaboration = load_collaboration(txn, collaboration_id)
            require_creator(collaboration, from_user_id)
            if collaboration.is_terminal:
                raise InvalidTransitionException("collaboration", collaboration.status)
            existing = [
                CollaborationInvitation.from_snapshot(s)
                for s in txn.query(
                    INVITATIONS,
                    [
                        where("collaborationId", "==", collaboration_id),
                        where("toUserId", "==", to_user_id),
                    ],
                )
            ]
            _check_not_member(collaboration, to_user_id, existing)
            invitation = CollaborationInvitation(
                collaboration_id=collaboration_id,
                collaboration_title=collaboration.title,
                from_user_id=from_user_id,
                to_user_id=to_user_id,
                role=role,
                instrument=instrument,
                message=message,
            )
            invitation.id = txn.create(INVITATIONS, invitation.to_document())
            if to_user_id not in collaboration.invited_uids:
                txn.update(
                    COLLABORATIONS,
                    collaboration_id,
                    {
                        "invitedUids": [*collaboration.invited_uids, to_user_id],
                        "updatedAt": utcnow(),
                    },
                )
            return invitation

        invitation = self.store.run_transaction(_txn)
        logger.info(
            f"Invitation {invitation.id} sent to {to_user_id} for {collaboration_id}"
        )
        self.notifications.notify(
            to_user_id,
            NotificationType.COLLABORATION_INVITATION,
            collaboration_id=collaboration_id,
            from_user_id=from_user_id,
            message=message or f"You were invited to join {invitation.collaboration_title}",
            invitationId=invitation.id,
        )
        return invitation

    def invite_many(
        self,
        collaboration_id: str,
        *,
        from_user_id: str,
        to_user_ids: Sequence[str],
        message: str = "",
        role: str = "member",
        instrument: str = "",
    ) -> BatchInvitationResult:
        """Send one invitation per recipient and report each outcome separately."""
        if not to_user_ids:
            raise ValidationException("At least one invitee is required", field="toUserIds")
        limit = self.settings.MAX_BATCH_INVITATIONS
        if len(to_user_ids) > limit:
            raise ValidationException(
                f"A batch may invite at most {limit} musicians", field="toUserIds"
            )
        require_creator(load_collaboration(self.store, collaboration_id), from_user_id)

        result = BatchInvitationResult(collaboration_id=collaboration_id)
        for to_user_id in to_user_ids:
            try:
                invitation = self.invite(
                    collaboration_id,
                    from_user_id=from_user_id,
                    to_user_id=to_user_id,
                    message=message,
                    role=role,
                    instrument=instrument,
                )
            except AppException as exc:
                logger.info(f"Invitation to {to_user_id} not sent: {exc.error_code}")
                result.results.append(
                    InvitationOutcome(
                        to_user_id=to_user_id,
                        success=False,
                        error_code=exc.error_code,
                        message=exc.message,
                    )
                )
            else:
                result.results.append(
                    InvitationOutcome(
                        to_user_id=to_user_id, success=True, invitation_id=invitation.id
                    )
                )
        logger.info(
            f"Batch invite for {collaboration_id}: {len(result.succeeded)} sent, "
            f"{len(result.failed)} failed"
        )
        return result

    def respond(
        self,
        invitation_id: str,
        decision: InvitationStatus,
        *,
        invitee: UserIdentity,
        message: Optional[str] = None,
    ) -> CollaborationInvitation:
        """Accept or decline as the invitee; accepting joins the roster atomically."""
        target = InvitationStatus(decision).value
        if target not in _RESPONSE_NOTICES:
            raise ValidationException("Decision must be accepted or declined", field="decision")

        def _txn(txn: Transaction):
            invitation = _load_invitation(txn, invitation_id)
            if invitation.to_user_id != invitee.uid:
                raise OwnershipRequiredException("invitation")
            ensure_invitation_transition(invitation.status, target)
            outcome = None
            if target == ACCEPTED:
                collaboration = load_collaboration(txn, invitation.collaboration_id)
                outcome = admit(
                    collaboration,
                    CollaborationParticipant(
                        user_id=invitee.uid,
                        user_name=invitee.display_name,
                        user_avatar=invitee.photo_url,
                        role=invitation.role,
                        instrument=invitation.instrument,
                    ),
                )
                if outcome != RosterOutcome.ALREADY_MEMBER:
                    write_roster(txn, collaboration)
            invitation.status = target
            invitation.responded_at = utcnow()
            invitation.response_message = message
            txn.update(
                INVITATIONS,
                invitation_id,
                {
                    "status": target,
                    "respondedAt": invitation.responded_at,
                    "responseMessage": message,
                },
            )
            return invitation, outcome

        invitation, outcome = self.store.run_transaction(_txn)
        logger.info(
            f"Invitation {invitation_id} {target} by {invitee.uid}"
            + (f" (roster: {outcome.value})" if outcome else "")
        )
        self.notifications.notify(
            invitation.from_user_id,
            _RESPONSE_NOTICES[target],
            collaboration_id=invitation.collaboration_id,
            from_user_id=invitee.uid,
            message=message
            or f"{invitee.display_name or invitee.uid} {target} your invitation",
            invitationId=invitation_id,
        )
        return invitation

    def cancel(
        self, invitation_id: str, *, actor_id: str
    ) -> Optional[CollaborationInvitation]:
        """Retract a pending invitation; returns None when retractions delete the record."""
        target = InvitationStatus.CANCELLED.value
        delete = self.settings.deletes_retracted_records

        def _txn(txn: Transaction) -> CollaborationInvitation:
            invitation = _load_invitation(txn, invitation_id)
            if invitation.from_user_id != actor_id:
                raise OwnershipRequiredException("invitation")
            ensure_invitation_transition(invitation.status, target)
            if delete:
                txn.delete(INVITATIONS, invitation_id)
            else:
                invitation.status = target
                invitation.responded_at = utcnow()
                txn.update(
                    INVITATIONS,
                    invitation_id,
                    {"status": target, "respondedAt": invitation.responded_at},
                )
            return invitation

        invitation = self.store.run_transaction(_txn)
        logger.info(f"Invitation {invitation_id} cancelled by {actor_id}")
        self.notifications.notify(
            invitation.to_user_id,
            NotificationType.INVITATION_CANCELLED,
            collaboration_id=invitation.collaboration_id,
            from_user_id=actor_id,
            message=f"Your invitation to {invitation.collaboration_title} was withdrawn",
            invitationId=invitation_id,
        )
        return None if delete else invitation
