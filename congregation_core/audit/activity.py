# congregation_core/audit/activity.py
"""
Activity log.

Mutating service methods are wrapped with :func:`audited`, which appends a
success record before the method returns, or a failure record carrying the
error message before the exception propagates. The sink is append-only and a
broken sink never changes the outcome of the wrapped operation.
"""
from __future__ import annotations

import functools
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Tuple

from congregation_core.domain.models import Actor

logger = logging.getLogger(__name__)

# (action text, metadata)
Description = Tuple[str, Dict[str, Any]]


@dataclass(frozen=True)
class AuditRecord:
    id: str
    actor_id: str
    actor_name: str
    type: str
    action: str
    success: bool
    created_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None


class AuditSink(Protocol):
    def append(self, record: AuditRecord) -> None: ...


class InMemoryAuditLog:

    def __init__(self, records: Iterable[AuditRecord] = ()):
        self._lock = threading.Lock()
        self._records: List[AuditRecord] = list(records)

    def append(self, record: AuditRecord) -> None:
        with self._lock:
            self._records.append(record)

    def records(self) -> List[AuditRecord]:
        with self._lock:
            return list(self._records)

    def history(self, types: Optional[Iterable[str]] = None, limit: Optional[int] = None) -> List[AuditRecord]:
        """Newest first."""
        wanted = set(types) if types is not None else None
        out = [r for r in reversed(self.records()) if wanted is None or r.type in wanted]
        return out[:limit] if limit is not None else out


def _emit(sink: AuditSink, record: AuditRecord) -> None:
    try:
        sink.append(record)
    except Exception:
        logger.exception("Audit sink rejected %s record for %s", record.type, record.actor_id)


def audited(operation: str, describe: Callable[..., Description], failed: str):
    """
    Decorates ``method(self, actor, *args, **kwargs)`` on a service exposing
    ``self.audit`` (an AuditSink) and ``self.clock`` (a zero-arg datetime factory).

    ``describe(actor, result, *args, **kwargs)`` builds the success record text;
    ``failed`` is the verb phrase of the failure text, e.g. "submit overseer report".
    """
    def decorator(method):
        @functools.wraps(method)
        def wrapper(self, actor: Actor, *args, **kwargs):
            try:
                result = method(self, actor, *args, **kwargs)
            except Exception as exc:
                logger.warning("%s by %s failed: %s", operation, actor.id, exc)
                _emit(self.audit, AuditRecord(
                    id=uuid.uuid4().hex,
                    actor_id=actor.id,
                    actor_name=actor.name,
                    type=operation,
                    action=f"Failed to {failed}: {exc}",
                    success=False,
                    created_at=self.clock(),
                    metadata={"error_kind": getattr(exc, "kind", type(exc).__name__)},
                    error_message=str(exc),
                ))
                raise
            action, metadata = describe(actor, result, *args, **kwargs)
            _emit(self.audit, AuditRecord(
                id=uuid.uuid4().hex,
                actor_id=actor.id,
                actor_name=actor.name,
                type=operation,
                action=action,
                success=True,
                created_at=self.clock(),
                metadata=metadata,
            ))
            logger.info(action)
            return result
        return wrapper
    return decorator
