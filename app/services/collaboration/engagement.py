"""Best-effort engagement counters.

Counters use the store's atomic per-document increment rather than a transaction; a failed
increment is logged and reported as ``False`` but never raised to the caller.
"""

import logging

from app.core.store import DocumentStore
from app.modules.collaboration.models import COLLABORATIONS

logger = logging.getLogger(__name__)


class EngagementCounters:
    def __init__(self, store: DocumentStore):
        self.store = store

    def _increment(self, collaboration_id: str, field_path: str) -> bool:
        try:
            self.store.with_retries(
                self.store.increment, COLLABORATIONS, collaboration_id, field_path, 1
            )
        except Exception as exc:
            logger.warning(
                f"Could not increment {field_path} for collaboration {collaboration_id}: {exc}"
            )
            return False
        return True

    def increment_views(self, collaboration_id: str) -> bool:
        return self._increment(collaboration_id, "views")

    def increment_applications(self, collaboration_id: str) -> bool:
        return self._increment(collaboration_id, "applications")
