# congregation_core/errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar


@dataclass(frozen=True)
class CoreError(Exception):
    message: str

    kind: ClassVar[str] = "error"

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class NotFoundError(CoreError):
    """A group, entity, report or schedule id did not resolve."""
    kind: ClassVar[str] = "not_found"


@dataclass(frozen=True)
class UnauthorizedError(CoreError):
    """The actor does not own the report or schedule being changed."""
    kind: ClassVar[str] = "unauthorized"


@dataclass(frozen=True)
class ValidationError(CoreError):
    """Missing field, empty group list, malformed strategy or month."""
    kind: ClassVar[str] = "validation"


@dataclass(frozen=True)
class ConflictError(CoreError):
    """A second record was written under an existing natural key."""
    kind: ClassVar[str] = "conflict"
