from __future__ import annotations

import copy
from typing import Any
from uuid import uuid4

from services.api.app.services.order_store_base import (
    SnapshotPublisher,
    compact,
    join_path,
    split_path,
)


class InMemoryOrderStore(SnapshotPublisher):
    """Process-local tree store. Values are deep-copied on the way in and out."""

    backend = "memory"

    def __init__(self) -> None:
        super().__init__()
        self._root: dict[str, Any] = {}

    async def read(self, path: str) -> Any | None:
        node: Any = self._root
        for segment in split_path(path):
            if not isinstance(node, dict) or segment not in node:
                return None
            node = node[segment]
        return copy.deepcopy(node)

    async def read_children(self, path: str) -> dict[str, Any]:
        node = await self.read(path)
        return node if isinstance(node, dict) else {}

    async def write(self, path: str, value: Any) -> None:
        value = compact(value)
        if value is None:
            await self.delete(path)
            return

        parts = split_path(path)
        parent = self._root
        for segment in parts[:-1]:
            child = parent.get(segment)
            if not isinstance(child, dict):
                child = {}
                parent[segment] = child
            parent = child
        parent[parts[-1]] = copy.deepcopy(value)

        await self._publish(join_path(*parts))

    async def delete(self, path: str) -> None:
        parts = split_path(path)
        trail: list[tuple[dict[str, Any], str]] = []
        node: Any = self._root
        for segment in parts:
            if not isinstance(node, dict) or segment not in node:
                return
            trail.append((node, segment))
            node = node[segment]

        parent, key = trail.pop()
        del parent[key]
        # Drop ancestors left empty so reads see them as missing.
        while trail and not parent:
            parent, key = trail.pop()
            del parent[key]

        await self._publish(join_path(*parts))

    async def allocate_key(self, path: str) -> str:
        del path
        return uuid4().hex
