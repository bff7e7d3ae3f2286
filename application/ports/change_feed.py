"""
Store change feed port.

The reconciliation watcher only needs "observe eventually, possibly more
than once": implementations may poll, use OS notifications or pub/sub.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Protocol


class ChangeKind(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass(frozen=True)
class StoreChange:
    external_reference: str
    kind: ChangeKind
    observed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class StoreChangeFeed(Protocol):
    location: str

    async def prime(self) -> None:
        """Record the current state without emitting changes."""
        ...

    async def poll(self) -> List[StoreChange]:
        """Changes observed since the previous poll (or prime)."""
        ...


__all__ = ["ChangeKind", "StoreChange", "StoreChangeFeed"]
