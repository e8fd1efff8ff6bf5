# congregation_core/app.py
from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Optional, Sequence, Union

from congregation_core.assignment.engine import DistributionEngine
from congregation_core.audit.activity import InMemoryAuditLog
from congregation_core.config import AppConfig, DEFAULT_CONFIG
from congregation_core.domain.calendar import DateLike
from congregation_core.domain.models import (
    Actor,
    BucketCount,
    EntityKind,
    GridRow,
    GroupWarning,
    ReportPayload,
    Strategy,
)
from congregation_core.io_layer.json_store import JsonStore
from congregation_core.io_layer.repositories import Repositories
from congregation_core.visits.service import VisitService


class CongregationApp:
    """
    Entry point used by request handlers and the CLI.

    ``actor_id`` is trusted as already authenticated; its display name is taken
    from the member roster when the actor is a member.
    """

    def __init__(
        self,
        repos: Repositories,
        audit: Optional[InMemoryAuditLog] = None,
        config: AppConfig = DEFAULT_CONFIG,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repos = repos
        self.audit = audit if audit is not None else InMemoryAuditLog()
        self.config = config
        self.engine = DistributionEngine(
            groups=repos.groups,
            members=repos.members,
            territories=repos.territories,
            audit=self.audit,
            config=config,
            clock=clock,
        )
        self.visits = VisitService(
            groups=repos.groups,
            members=repos.members,
            schedules=repos.schedules,
            reports=repos.reports,
            field_service=repos.field_service,
            audit=self.audit,
            config=config,
            clock=clock,
        )

    @classmethod
    def in_memory(cls, config: AppConfig = DEFAULT_CONFIG,
                  clock: Optional[Callable[[], datetime]] = None) -> "CongregationApp":
        return cls(Repositories(), config=config, clock=clock)

    @classmethod
    def from_store(cls, store: JsonStore, config: AppConfig = DEFAULT_CONFIG) -> "CongregationApp":
        repos, audit = store.load()
        return cls(repos, audit=audit, config=config)

    def save(self, store: JsonStore) -> None:
        store.save(self.repos, self.audit)

    def actor(self, actor_id: str) -> Actor:
        member = self.repos.members.find_by_id(actor_id)
        return Actor(id=actor_id, name=member.full_name if member else actor_id)

    # --- distribution ---

    def assign_entities(self, actor_id: str, entity_ids: Sequence[str], bucket_id: str,
                        kind: EntityKind = EntityKind.MEMBER) -> int:
        return self.engine.assign_entities(self.actor(actor_id), entity_ids, bucket_id, kind=kind)

    def distribute(self, actor_id: str, strategy: Union[Strategy, str],
                   kind: EntityKind = EntityKind.MEMBER) -> int:
        return self.engine.distribute(self.actor(actor_id), strategy, kind=kind).count

    def remove_from_bucket(self, actor_id: str, entity_ids: Sequence[str],
                           kind: EntityKind = EntityKind.MEMBER) -> int:
        return self.engine.remove_from_bucket(self.actor(actor_id), entity_ids, kind=kind)

    def swap_entities(self, actor_id: str, id_a: str, id_b: str,
                      kind: EntityKind = EntityKind.MEMBER) -> bool:
        return self.engine.swap_entities(self.actor(actor_id), id_a, id_b, kind=kind)

    def list_buckets_with_counts(self, actor_id: str,
                                 kind: EntityKind = EntityKind.MEMBER) -> List[BucketCount]:
        return self.engine.list_buckets_with_counts(kind)

    def validate_buckets(self, actor_id: str) -> List[GroupWarning]:
        return self.engine.validate_buckets()

    # --- visits ---

    def upsert_visit_schedule(self, actor_id: str, group_id: str, month: str, date: DateLike) -> bool:
        self.visits.upsert_schedule(self.actor(actor_id), group_id, month, date)
        return True

    def submit_visit_report(self, actor_id: str, payload: ReportPayload) -> str:
        return self.visits.submit_report(self.actor(actor_id), payload).id

    def delete_visit_report(self, actor_id: str, report_id: str) -> bool:
        self.visits.delete_report(self.actor(actor_id), report_id)
        return True

    def list_schedule_grid(self, actor_id: str, month: Optional[str] = None) -> List[GridRow]:
        return self.visits.list_for_grid(self.actor(actor_id), month)
