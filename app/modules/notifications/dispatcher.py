"""Outbox-style notification dispatch.

Workflows call the dispatcher only after their primary transaction has committed. The
dispatcher assigns the notification id up front, so a redelivered task overwrites the
same document instead of creating a duplicate.
"""

from __future__ import annotations

import enum
import logging
import uuid
from typing import Any, Callable, Dict, Optional

from app.modules.collaboration.models import utcnow

logger = logging.getLogger(__name__)

Enqueue = Callable[[str, str, Dict[str, Any]], None]


class NotificationType(str, enum.Enum):
    COLLABORATION_APPLICATION = "collaboration_application"
    APPLICATION_ACCEPTED = "application_accepted"
    APPLICATION_REJECTED = "application_rejected"
    APPLICATION_WITHDRAWN = "application_withdrawn"
    COLLABORATION_INVITATION = "collaboration_invitation"
    INVITATION_ACCEPTED = "invitation_accepted"
    INVITATION_DECLINED = "invitation_declined"
    INVITATION_CANCELLED = "invitation_cancelled"
    PARTICIPANT_REMOVED = "participant_removed"


def _celery_enqueue(recipient_id: str, notification_id: str, payload: Dict[str, Any]) -> None:
    from app.celery_worker import deliver_collaboration_notification

    deliver_collaboration_notification.delay(recipient_id, notification_id, payload)


def build_notification(
    notification_type: NotificationType,
    *,
    collaboration_id: str,
    from_user_id: str,
    message: str,
    **extra: Any,
) -> Dict[str, Any]:
    payload = {
        "type": NotificationType(notification_type).value,
        "collaborationId": collaboration_id,
        "fromUserId": from_user_id,
        "message": message,
        "createdAt": utcnow().isoformat(),
        "read": False,
    }
    payload.update({k: v for k, v in extra.items() if v is not None})
    return payload


class NotificationDispatcher:
    def __init__(self, enqueue: Optional[Enqueue] = None):
        self._enqueue = enqueue or _celery_enqueue

    def notify(
        self,
        recipient_id: Optional[str],
        notification_type: NotificationType,
        *,
        collaboration_id: str,
        from_user_id: str,
        message: str = "",
        **extra: Any,
    ) -> Optional[str]:
        """Queue one notification; returns its id, or None when nothing was queued."""
        if not recipient_id:
            return None
        payload = build_notification(
            notification_type,
            collaboration_id=collaboration_id,
            from_user_id=from_user_id,
            message=message,
            **extra,
        )
        notification_id = uuid.uuid4().hex
        try:
            self._enqueue(recipient_id, notification_id, payload)
        except Exception as exc:
            logger.error(
                f"Failed to queue {payload['type']} notification for {recipient_id}: {exc}",
                exc_info=True,
            )
            return None
        logger.debug(f"Queued {payload['type']} notification {notification_id}")
        return notification_id
