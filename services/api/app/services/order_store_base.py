from __future__ import annotations

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class OrderStore(Protocol):
    """Tree-shaped document store addressed by ``/``-separated paths.

    Values are JSON-compatible. Writing ``None`` behaves like ``delete``.
    ``watch_children`` yields the full child map of a path, first immediately
    and then after every change below (or above) that path; it never yields
    per-child events.
    """

    backend: str

    async def read(self, path: str) -> Any | None: ...

    async def read_children(self, path: str) -> dict[str, Any]: ...

    async def write(self, path: str, value: Any) -> None: ...

    async def delete(self, path: str) -> None: ...

    async def allocate_key(self, path: str) -> str: ...

    def watch_children(self, path: str) -> AsyncIterator[dict[str, Any]]: ...


def split_path(path: str) -> list[str]:
    parts = [p for p in path.strip("/").split("/") if p]
    if not parts:
        raise ValueError("Store path must name at least one segment")
    return parts


def join_path(*segments: str) -> str:
    return "/".join(s.strip("/") for s in segments if s.strip("/"))


def paths_overlap(watched: str, changed: str) -> bool:
    """True when a change at ``changed`` can alter the children of ``watched``."""
    return (
        watched == changed
        or changed.startswith(watched + "/")
        or watched.startswith(changed + "/")
    )


def compact(value: Any) -> Any | None:
    """Drop ``None`` leaves and empty maps; the store never holds either."""
    if not isinstance(value, dict):
        return value
    out: dict[str, Any] = {}
    for key, child in value.items():
        child = compact(child)
        if child is not None:
            out[str(key)] = child
    return out or None


class SnapshotPublisher(ABC):
    """Per-path watcher registry shared by the store implementations.

    Each ``watch_children`` call gets its own queue; closing the generator
    unregisters it.
    """

    def __init__(self) -> None:
        self._watchers: dict[str, set[asyncio.Queue[dict[str, Any]]]] = {}

    @abstractmethod
    async def read_children(self, path: str) -> dict[str, Any]: ...

    async def watch_children(self, path: str) -> AsyncIterator[dict[str, Any]]:
        path = join_path(*split_path(path))
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._watchers.setdefault(path, set()).add(queue)
        logger.debug("watch opened path=%s watchers=%d", path, len(self._watchers[path]))
        try:
            # Registered before the first read, so no change can slip in between.
            yield await self.read_children(path)
            while True:
                yield await queue.get()
        finally:
            queues = self._watchers.get(path)
            if queues is not None:
                queues.discard(queue)
                if not queues:
                    del self._watchers[path]
            logger.debug("watch closed path=%s", path)

    async def _publish(self, changed: str) -> None:
        for watched, queues in list(self._watchers.items()):
            if not queues or not paths_overlap(watched, changed):
                continue
            snapshot = await self.read_children(watched)
            for queue in list(queues):
                queue.put_nowait(copy.deepcopy(snapshot))

    def watcher_count(self, path: str) -> int:
        return len(self._watchers.get(join_path(*split_path(path)), ()))
