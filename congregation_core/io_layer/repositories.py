# congregation_core/io_layer/repositories.py
"""
Repository interfaces and their in-memory implementations.

The engines only talk to these protocols, so any document store can sit behind
them. Writes are guarded by a lock; the schedule repository additionally treats
(group_id, month, scheduled_date) as a unique key.
"""
from __future__ import annotations

import dataclasses
import threading
from datetime import date
from typing import Callable, Dict, Generic, Iterable, List, Mapping, Optional, Protocol, Tuple, TypeVar

from congregation_core.domain.models import (
    FieldServiceReport,
    Group,
    Member,
    ScheduleRecord,
    Territory,
    VisitReport,
)
from congregation_core.errors import ConflictError

T = TypeVar("T")
E = TypeVar("E", Member, Territory)

ScheduleKey = Tuple[str, str, Optional[date]]


class Repository(Protocol[T]):
    def find_by_id(self, doc_id: str) -> Optional[T]: ...
    def find_many(self, **filters) -> List[T]: ...
    def upsert(self, doc: T) -> T: ...
    def delete_by_id(self, doc_id: str) -> bool: ...
    def count(self, **filters) -> int: ...


class EntityRepository(Repository[E], Protocol[E]):
    def set_group(self, entity_id: str, group_id: Optional[str]) -> bool: ...


class InMemoryRepository(Generic[T]):
    """Documents keyed by ``id``, kept in insertion order."""

    def __init__(self, docs: Iterable[T] = ()):
        self._lock = threading.RLock()
        self._docs: Dict[str, T] = {}
        for d in docs:
            self._docs[d.id] = d

    def find_by_id(self, doc_id: str) -> Optional[T]:
        return self._docs.get(doc_id)

    def find_many(self, **filters) -> List[T]:
        with self._lock:
            docs = list(self._docs.values())
        if not filters:
            return docs
        return [d for d in docs if all(getattr(d, k) == v for k, v in filters.items())]

    def all(self) -> List[T]:
        return self.find_many()

    def count(self, **filters) -> int:
        return len(self.find_many(**filters))

    def upsert(self, doc: T) -> T:
        with self._lock:
            self._docs[doc.id] = doc
        return doc

    def delete_by_id(self, doc_id: str) -> bool:
        with self._lock:
            return self._docs.pop(doc_id, None) is not None


class InMemoryEntityRepository(InMemoryRepository[E]):
    """Members or territories; both carry a nullable ``group_id``."""

    def set_group(self, entity_id: str, group_id: Optional[str]) -> bool:
        """Idempotent single write. Returns False when the id is unknown."""
        with self._lock:
            doc = self._docs.get(entity_id)
            if doc is None:
                return False
            if doc.group_id != group_id:
                self._docs[entity_id] = dataclasses.replace(doc, group_id=group_id)
            return True

    def bulk_set_group(self, assignments: Mapping[str, Optional[str]]) -> int:
        """Applies every assignment under one lock; unknown ids are skipped."""
        with self._lock:
            written = 0
            for entity_id, group_id in assignments.items():
                if self.set_group(entity_id, group_id):
                    written += 1
            return written


class InMemoryGroupRepository(InMemoryRepository[Group]):
    pass


class InMemoryScheduleRepository(InMemoryRepository[ScheduleRecord]):

    def find_by_key(self, group_id: str, month: str, scheduled_date: Optional[date]) -> Optional[ScheduleRecord]:
        key = (group_id, month, scheduled_date)
        with self._lock:
            for doc in self._docs.values():
                if doc.key == key:
                    return doc
        return None

    def find_or_create(self, key: ScheduleKey, factory: Callable[[], ScheduleRecord]) -> Tuple[ScheduleRecord, bool]:
        """Conditional write on the natural key. Returns (record, created)."""
        with self._lock:
            existing = self.find_by_key(*key)
            if existing is not None:
                return existing, False
            doc = factory()
            self._docs[doc.id] = doc
            return doc, True

    def upsert(self, doc: ScheduleRecord) -> ScheduleRecord:
        with self._lock:
            clash = self.find_by_key(*doc.key)
            if clash is not None and clash.id != doc.id:
                raise ConflictError(
                    f"A schedule already exists for group {doc.group_id} on {doc.scheduled_date} ({doc.month})"
                )
            self._docs[doc.id] = doc
        return doc


class InMemoryReportRepository(InMemoryRepository[VisitReport]):
    pass


class InMemoryFieldServiceRepository:
    """Field-service reports keyed by (member_id, month)."""

    def __init__(self, reports: Iterable[FieldServiceReport] = ()):
        self._lock = threading.RLock()
        self._reports: Dict[Tuple[str, str], FieldServiceReport] = {}
        for r in reports:
            self._reports[(r.member_id, r.month)] = r

    def find(self, member_id: str, month: str) -> Optional[FieldServiceReport]:
        return self._reports.get((member_id, month))

    def upsert(self, report: FieldServiceReport) -> FieldServiceReport:
        with self._lock:
            self._reports[(report.member_id, report.month)] = report
        return report

    def all(self) -> List[FieldServiceReport]:
        with self._lock:
            return list(self._reports.values())


@dataclasses.dataclass
class Repositories:
    """Everything one application instance reads and writes."""
    groups: InMemoryGroupRepository = dataclasses.field(default_factory=InMemoryGroupRepository)
    members: InMemoryEntityRepository = dataclasses.field(default_factory=InMemoryEntityRepository)
    territories: InMemoryEntityRepository = dataclasses.field(default_factory=InMemoryEntityRepository)
    schedules: InMemoryScheduleRepository = dataclasses.field(default_factory=InMemoryScheduleRepository)
    reports: InMemoryReportRepository = dataclasses.field(default_factory=InMemoryReportRepository)
    field_service: InMemoryFieldServiceRepository = dataclasses.field(default_factory=InMemoryFieldServiceRepository)
