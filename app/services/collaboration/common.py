"""Helpers shared by the collaboration services."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel

from app.core.exceptions import OwnershipRequiredException, ResourceNotFoundException
from app.core.store import DocumentSnapshot, DocumentStore, Transaction
from app.modules.collaboration.models import COLLABORATIONS, Collaboration, utcnow

Reader = Union[DocumentStore, Transaction]


def fetch(reader: Reader, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
    """Read one document; plain store reads get the store retry policy."""
    if isinstance(reader, DocumentStore):
        return reader.with_retries(reader.get, collection, doc_id)
    return reader.get(collection, doc_id)


def load_collaboration(reader: Reader, collaboration_id: str) -> Collaboration:
    snapshot = fetch(reader, COLLABORATIONS, collaboration_id)
    if snapshot is None:
        raise ResourceNotFoundException("Collaboration", collaboration_id)
    return Collaboration.from_snapshot(snapshot)


def require_creator(collaboration: Collaboration, actor_id: Optional[str]) -> None:
    """Reject callers other than the creator; ``None`` marks an internal call."""
    if actor_id is not None and actor_id != collaboration.creator_id:
        raise OwnershipRequiredException("collaboration")


def roster_fields(collaboration: Collaboration) -> Dict[str, Any]:
    """The fields a roster mutation writes, recomputed from the participant list."""
    active = collaboration.active_participants()
    collaboration.current_participants = len(active)
    collaboration.participant_ids = [p.user_id for p in active]
    return {
        "participants": [p.model_dump(by_alias=True) for p in collaboration.participants],
        "participantIds": collaboration.participant_ids,
        "currentParticipants": collaboration.current_participants,
        "updatedAt": utcnow(),
    }


def document_value(value: Any) -> Any:
    """Convert a pydantic value into its stored form."""
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    if isinstance(value, list):
        return [document_value(item) for item in value]
    return getattr(value, "value", value)


def snapshot_listener(model, callback: Callable[[List[Any]], None]):
    """Adapt a query subscription callback to receive parsed models."""

    def _listener(snapshots: List[DocumentSnapshot]) -> None:
        callback([model.from_snapshot(s) for s in snapshots])

    return _listener
