"""Child-level change events derived from full-collection snapshots.

The store's watch primitive delivers the whole child map on every change.
``SnapshotDiffer`` keeps the last map it saw and turns each new snapshot into
Removed, Added and Changed events, in that order, so a list view can delete,
insert and then update without ever holding two entries for one key.

A differ belongs to exactly one subscription. Two subscriptions sharing a
differ would advance each other's baseline and miss or duplicate events.
"""

from __future__ import annotations

import copy
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ChildEventType(str, Enum):
    ADDED = "ADDED"
    CHANGED = "CHANGED"
    REMOVED = "REMOVED"


@dataclass(frozen=True, slots=True)
class ChildEvent:
    type: ChildEventType
    key: str
    # Removed events carry the last known value, or None for a key-only stub.
    value: Any = None

    @property
    def is_stub(self) -> bool:
        return self.type is ChildEventType.REMOVED and self.value is None


class SnapshotDiffer:
    def __init__(self) -> None:
        self._previous: dict[str, Any] = {}

    @property
    def previous(self) -> Mapping[str, Any]:
        return self._previous

    def diff(self, snapshot: Mapping[str, Any]) -> list[ChildEvent]:
        previous = self._previous

        removed = [
            ChildEvent(ChildEventType.REMOVED, key, previous.get(key))
            for key in previous
            if key not in snapshot
        ]
        added: list[ChildEvent] = []
        changed: list[ChildEvent] = []
        for key, value in snapshot.items():
            if key not in previous:
                added.append(ChildEvent(ChildEventType.ADDED, key, value))
            elif previous[key] != value:
                changed.append(ChildEvent(ChildEventType.CHANGED, key, value))

        self._previous = copy.deepcopy(dict(snapshot))
        return removed + added + changed

    def reset(self) -> None:
        self._previous = {}


async def diff_stream(
    snapshots: AsyncIterator[Mapping[str, Any]],
) -> AsyncIterator[ChildEvent]:
    """Yield child events for a snapshot stream, with a differ private to this call."""
    differ = SnapshotDiffer()
    async for snapshot in snapshots:
        for event in differ.diff(snapshot):
            yield event
