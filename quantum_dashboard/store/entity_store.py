"""
In-memory Entity Store for the Quantum Job Dashboard.

The store owns the three entity collections (jobs, backends, sessions) and
offers plain keyed CRUD over them. Updates are re-validated against the
entity model so a partial write cannot break field constraints; lifecycle
rules belong to the JobLifecycleEngine.

Callers never receive aliases into the store: every read returns a deep copy
and every write goes through ``insert``/``update``/``delete``. Each
collection is guarded by its own re-entrant lock so a mutation issued from a
threadpool route cannot interleave with one from the event loop.

Nothing persists across process restarts.

Example Usage:
--------------
```python
from quantum_dashboard.store.entity_store import EntityStore

store = EntityStore()
store.seed_defaults()

cairo = store.backends.get("ibm_cairo")
store.backends.update("ibm_cairo", queue_length=3)
print(len(store.jobs))
```
"""

from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar
from datetime import datetime, timedelta
import logging
import threading

from pydantic import BaseModel, ValidationError

from quantum_dashboard.store.models import (
    Backend,
    BackendStatus,
    Job,
    Session,
    SessionStatus,
)


logger = logging.getLogger(__name__)

EntityT = TypeVar("EntityT", bound=BaseModel)


class StoreError(Exception):
    """Base exception for store errors."""
    pass


class DuplicateKeyError(StoreError):
    """Raised when inserting an entity whose key already exists."""
    pass


class InvalidEntityError(StoreError):
    """Raised when an update would leave an entity violating its model."""
    pass


class Collection(Generic[EntityT]):
    """
    Keyed collection of one entity kind.

    Attributes:
        kind (str): Human readable entity kind, used in log messages
    """

    def __init__(self, kind: str):
        self.kind = kind
        self._items: Dict[str, EntityT] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[EntityT]:
        """Return a copy of the entity stored under ``key``, or None."""
        with self._lock:
            item = self._items.get(key)
            return item.model_copy(deep=True) if item is not None else None

    def get_all(self) -> List[EntityT]:
        """Return copies of every entity. Order is unspecified; callers sort."""
        with self._lock:
            return [item.model_copy(deep=True) for item in self._items.values()]

    def filter(self, predicate: Callable[[EntityT], bool]) -> List[EntityT]:
        """Return copies of the entities matching ``predicate``."""
        with self._lock:
            return [
                item.model_copy(deep=True)
                for item in self._items.values()
                if predicate(item)
            ]

    def count(self, predicate: Optional[Callable[[EntityT], bool]] = None) -> int:
        """Count entities, optionally only those matching ``predicate``."""
        with self._lock:
            if predicate is None:
                return len(self._items)
            return sum(1 for item in self._items.values() if predicate(item))

    def insert(self, entity: EntityT) -> EntityT:
        """
        Store a new entity under its ``id``.

        Raises:
            DuplicateKeyError: If the id is already present
        """
        key = entity.id
        with self._lock:
            if key in self._items:
                raise DuplicateKeyError(f"{self.kind} '{key}' already exists")
            self._items[key] = entity.model_copy(deep=True)
            return entity.model_copy(deep=True)

    def update(self, key: str, **fields: Any) -> Optional[EntityT]:
        """
        Merge ``fields`` into the stored entity.

        The merged record is validated against the entity's model before it
        replaces the stored one; on failure the stored entity is unchanged.

        Returns:
            The updated entity, or None if ``key`` is absent

        Raises:
            InvalidEntityError: If the merged record fails validation
        """
        with self._lock:
            current = self._items.get(key)
            if current is None:
                return None
            try:
                updated = type(current).model_validate({**current.model_dump(), **fields})
            except ValidationError as e:
                raise InvalidEntityError(f"Invalid update for {self.kind} '{key}': {e}") from e
            self._items[key] = updated.model_copy(deep=True)
            return updated

    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True only if it existed."""
        with self._lock:
            return self._items.pop(key, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._items

    def __repr__(self) -> str:
        return f"Collection(kind={self.kind!r}, size={len(self)})"


class EntityStore:
    """
    Owner of the job, backend and session collections.

    Create one instance per application (or per test) and pass it to the
    lifecycle engine and scheduler; there is no module-level store.
    """

    def __init__(self):
        self.jobs: Collection[Job] = Collection("Job")
        self.backends: Collection[Backend] = Collection("Backend")
        self.sessions: Collection[Session] = Collection("Session")

    def seed_defaults(self, now: Optional[datetime] = None) -> None:
        """
        Install the reference backend fleet and two active sessions.

        Args:
            now: Reference time for timestamps (default: datetime.now())
        """
        now = now or datetime.now()

        fleet = [
            Backend(
                id="ibm_cairo",
                name="ibm_cairo",
                status=BackendStatus.AVAILABLE,
                qubits=127,
                queue_length=0,
                average_wait_time=30,
                uptime="99.8%",
                last_update=now,
            ),
            Backend(
                id="ibm_osaka",
                name="ibm_osaka",
                status=BackendStatus.BUSY,
                qubits=127,
                queue_length=0,
                average_wait_time=180,
                uptime="99.2%",
                last_update=now,
            ),
            Backend(
                id="ibm_kyoto",
                name="ibm_kyoto",
                status=BackendStatus.MAINTENANCE,
                qubits=127,
                queue_length=0,
                average_wait_time=0,
                uptime="0%",
                last_update=now,
            ),
        ]
        for backend in fleet:
            if backend.name not in self.backends:
                self.backends.insert(backend)

        for index in range(2):
            session_id = f"session_{index + 1}"
            if session_id in self.sessions:
                continue
            self.sessions.insert(
                Session(
                    id=session_id,
                    name=f"Session #{index + 1}",
                    status=SessionStatus.ACTIVE,
                    created_at=now - timedelta(hours=index + 1),
                    last_activity=now - timedelta(minutes=10 * (index + 1)),
                    job_count=0,
                ),
            )

        logger.info(
            f"Store seeded with {len(self.backends)} backends and "
            f"{len(self.sessions)} sessions"
        )

    def __repr__(self) -> str:
        return (f"EntityStore(jobs={len(self.jobs)}, backends={len(self.backends)}, "
                f"sessions={len(self.sessions)})")
