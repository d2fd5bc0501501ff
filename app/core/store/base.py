"""Document store contract shared by the in-memory and Firestore backends.

Collections are addressed by slash paths (``collaborations``,
``users/{uid}/notifications``) and documents by opaque string ids. Field paths may be
dotted (``budget.spent``) to address nested maps, as Firestore does.

Transactions follow Firestore rules: every read happens before the first write, and the
callable may be invoked more than once, so it must not carry side effects outside the
transaction object. ``run_transaction`` retries conflicts and transient failures up to
``max_attempts`` with exponential backoff.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from app.core.exceptions import RETRYABLE_EXCEPTIONS, ValidationException

logger = logging.getLogger(__name__)

T = TypeVar("T")

SUPPORTED_OPERATORS = ("==", "!=", "<", "<=", ">", ">=", "in", "array_contains")

_MISSING = object()


def get_field(data: Dict[str, Any], path: str, default: Any = None) -> Any:
    """Read a dotted field path from a nested mapping."""
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def set_field(data: Dict[str, Any], path: str, value: Any) -> None:
    """Write a dotted field path, creating intermediate maps as needed."""
    parts = path.split(".")
    current = data
    for part in parts[:-1]:
        nxt = current.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            current[part] = nxt
        current = nxt
    current[parts[-1]] = value


@dataclass(frozen=True)
class Predicate:
    """A single ``field op value`` filter."""

    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in SUPPORTED_OPERATORS:
            raise ValidationException(f"Unsupported query operator '{self.op}'", "op")

    def matches(self, data: Dict[str, Any]) -> bool:
        actual = get_field(data, self.field, _MISSING)
        if actual is _MISSING:
            return False
        try:
            if self.op == "==":
                return actual == self.value
            if self.op == "!=":
                return actual != self.value
            if self.op == "in":
                return actual in self.value
            if self.op == "array_contains":
                return isinstance(actual, list) and self.value in actual
            if actual is None:
                return False
            if self.op == "<":
                return actual < self.value
            if self.op == "<=":
                return actual <= self.value
            if self.op == ">":
                return actual > self.value
            return actual >= self.value
        except TypeError:
            return False


def where(field_path: str, op: str, value: Any) -> Predicate:
    return Predicate(field_path, op, value)


@dataclass(frozen=True)
class OrderBy:
    field: str
    descending: bool = False


@dataclass
class DocumentSnapshot:
    """Point-in-time copy of a stored document."""

    collection: str
    id: str
    data: Dict[str, Any] = field(default_factory=dict)
    version: Any = None

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.id}"

    def get(self, path: str, default: Any = None) -> Any:
        return get_field(self.data, path, default)


class Subscription(ABC):
    """Handle for a live query; call ``unsubscribe`` to stop deliveries."""

    @abstractmethod
    def unsubscribe(self) -> None:
        ...


QueryCallback = Callable[[List[DocumentSnapshot]], None]
DocumentCallback = Callable[[Optional[DocumentSnapshot]], None]


def apply_query(
    snapshots: Iterable[DocumentSnapshot],
    predicates: Sequence[Predicate] = (),
    order_by: Sequence[OrderBy] = (),
    limit: Optional[int] = None,
) -> List[DocumentSnapshot]:
    """Filter, sort and cap snapshots the way the store query API promises."""
    rows = [snap for snap in snapshots if all(p.matches(snap.data) for p in predicates)]
    for order in reversed(list(order_by)):
        present = [s for s in rows if s.get(order.field) is not None]
        absent = [s for s in rows if s.get(order.field) is None]
        present.sort(key=lambda s: s.get(order.field), reverse=order.descending)
        rows = present + absent
    if limit is not None:
        rows = rows[: max(0, limit)]
    return rows


class Transaction(ABC):
    """Unit of work handed to ``DocumentStore.run_transaction`` callables."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        ...

    @abstractmethod
    def query(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        order_by: Sequence[OrderBy] = (),
        limit: Optional[int] = None,
    ) -> List[DocumentSnapshot]:
        ...

    @abstractmethod
    def create(
        self, collection: str, data: Dict[str, Any], doc_id: Optional[str] = None
    ) -> str:
        ...

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        ...


class DocumentStore(ABC):
    """Generic document store with per-document atomic primitives and transactions."""

    backend_name = "abstract"

    def __init__(
        self,
        *,
        max_attempts: int = 3,
        backoff_seconds: float = 0.05,
        timeout_seconds: Optional[float] = None,
    ):
        self.max_attempts = max(1, int(max_attempts))
        self.backoff_seconds = max(0.0, float(backoff_seconds))
        self.timeout_seconds = timeout_seconds

    # ------------------------------------------------------------------ reads
    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        ...

    @abstractmethod
    def query(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        order_by: Sequence[OrderBy] = (),
        limit: Optional[int] = None,
    ) -> List[DocumentSnapshot]:
        ...

    # ----------------------------------------------------------------- writes
    @abstractmethod
    def create(
        self, collection: str, data: Dict[str, Any], doc_id: Optional[str] = None
    ) -> str:
        ...

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        ...

    @abstractmethod
    def increment(
        self, collection: str, doc_id: str, field_path: str, delta: float = 1
    ) -> None:
        """Atomically add ``delta`` to a numeric field of one document."""

    @abstractmethod
    def union_append(
        self, collection: str, doc_id: str, field_path: str, value: Any
    ) -> None:
        """Atomically append ``value`` to an array field unless an equal value is present."""

    # ---------------------------------------------------------- subscriptions
    @abstractmethod
    def subscribe(
        self,
        collection: str,
        callback: QueryCallback,
        predicates: Sequence[Predicate] = (),
        order_by: Sequence[OrderBy] = (),
        limit: Optional[int] = None,
    ) -> Subscription:
        ...

    @abstractmethod
    def subscribe_document(
        self, collection: str, doc_id: str, callback: DocumentCallback
    ) -> Subscription:
        ...

    # ----------------------------------------------------------- transactions
    @abstractmethod
    def _run_once(self, fn: Callable[[Transaction], T]) -> T:
        """Execute ``fn`` inside a single transaction attempt."""

    def run_transaction(self, fn: Callable[[Transaction], T]) -> T:
        """Run ``fn`` atomically, retrying lost races and transient failures."""
        return self._retry(lambda: self._run_once(fn), label="transaction")

    def with_retries(self, fn: Callable[..., T], *args, **kwargs) -> T:
        """Apply the store retry policy to a single non-transactional call."""
        return self._retry(lambda: fn(*args, **kwargs), label=getattr(fn, "__name__", "call"))

    def _retry(self, call: Callable[[], T], *, label: str) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return call()
            except RETRYABLE_EXCEPTIONS as exc:
                if attempt >= self.max_attempts:
                    logger.warning(
                        f"Store {label} failed after {attempt} attempts: {exc}",
                        extra={"error_code": exc.error_code},
                    )
                    raise
                delay = self.backoff_seconds * (2 ** (attempt - 1))
                logger.debug(
                    f"Retrying store {label} (attempt {attempt + 1}/{self.max_attempts}) "
                    f"after {exc.error_code}"
                )
                if delay:
                    time.sleep(delay)
