"""
Entity store contract.

The lifecycle service only talks to these interfaces, so the in-memory
repositories can be replaced by a durable store without touching it.
Uniqueness checks (one tester per email, one device per UDID) live behind
`get_or_create` so a durable implementation can make them atomic.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


class EntityNotFoundError(Exception):
    """Raised when an update targets an id the store does not know."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class EntityRepository(ABC, Generic[T]):
    """Key-value collection of one entity type."""

    entity_name: str = "Entity"

    @abstractmethod
    def find_by_id(self, entity_id: str) -> T | None: ...

    @abstractmethod
    def find_all(self) -> list[T]: ...

    @abstractmethod
    def update(self, entity_id: str, **changes: Any) -> T:
        """Shallow-merge `changes` into the record. Raises EntityNotFoundError."""

    @abstractmethod
    def delete(self, entity_id: str) -> bool: ...

    @abstractmethod
    def clear(self) -> None: ...

    @abstractmethod
    def get_or_create(self, match: Callable[[T], bool], factory: Callable[[], T]) -> tuple[T, bool]:
        """Return the first record satisfying `match`, or insert `factory()`."""


class InMemoryRepository(EntityRepository[T]):
    """
    Dict-backed repository for a single process.

    get_or_create is check-then-insert. Coroutines only interleave at await
    points and nothing here awaits, so the window is closed within one event
    loop; it is NOT safe across threads or processes.
    """

    def __init__(self):
        self._records: dict[str, T] = {}

    def _insert(self, record: T) -> T:
        self._records[record.id] = record
        return record

    def _touch(self, changes: dict[str, Any]) -> dict[str, Any]:
        """Hook for entities that track a last-modified timestamp."""
        return changes

    def find_by_id(self, entity_id: str) -> T | None:
        return self._records.get(entity_id)

    def find_first(self, match: Callable[[T], bool]) -> T | None:
        return next((record for record in self._records.values() if match(record)), None)

    def find_all(self) -> list[T]:
        return list(self._records.values())

    def update(self, entity_id: str, **changes: Any) -> T:
        current = self._records.get(entity_id)
        if current is None:
            raise EntityNotFoundError(self.entity_name, entity_id)

        updated = current.model_copy(update=self._touch(changes))
        self._records[entity_id] = updated
        return updated

    def delete(self, entity_id: str) -> bool:
        return self._records.pop(entity_id, None) is not None

    def clear(self) -> None:
        self._records.clear()

    def get_or_create(self, match: Callable[[T], bool], factory: Callable[[], T]) -> tuple[T, bool]:
        existing = self.find_first(match)
        if existing is not None:
            return existing, False
        return self._insert(factory()), True
