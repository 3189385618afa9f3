from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Iterator
from typing import Any, TypeVar
from uuid import uuid4

from services.api.app.db.database import db_session
from services.api.app.db.models import StoreNode
from services.api.app.services.lifecycle_errors import StoreUnavailableError
from services.api.app.services.order_store_base import (
    SnapshotPublisher,
    compact,
    join_path,
    split_path,
)
from sqlalchemy import delete, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SqlOrderStore(SnapshotPublisher):
    """Tree store persisted as one ``store_nodes`` row per leaf value.

    Lists are leaves. Blocking session work runs in a worker thread so the
    event loop stays free for watchers; writes are serialized per process.
    """

    backend = "sql"

    def __init__(self, session_factory: Callable[[], Session] = db_session) -> None:
        super().__init__()
        self._session_factory = session_factory
        self._write_lock = threading.Lock()

    async def read(self, path: str) -> Any | None:
        path = join_path(*split_path(path))
        return await self._run("read", path, lambda db: _read_node(db, path))

    async def read_children(self, path: str) -> dict[str, Any]:
        node = await self.read(path)
        return node if isinstance(node, dict) else {}

    async def write(self, path: str, value: Any) -> None:
        path = join_path(*split_path(path))
        value = compact(value)

        def _write(db: Session) -> None:
            with self._write_lock:
                _delete_subtree(db, path)
                # A leaf stored at an ancestor would shadow the new subtree.
                ancestors = _ancestors(path)
                if ancestors:
                    db.execute(
                        delete(StoreNode)
                        .where(StoreNode.path.in_(ancestors))
                        .execution_options(synchronize_session=False)
                    )
                if value is not None:
                    db.add_all(
                        StoreNode(path=leaf_path, parent_path=_parent(leaf_path), value_json=leaf)
                        for leaf_path, leaf in _flatten(path, value)
                    )
                db.commit()

        await self._run("write", path, _write)
        await self._publish(path)

    async def delete(self, path: str) -> None:
        path = join_path(*split_path(path))

        def _delete(db: Session) -> None:
            with self._write_lock:
                _delete_subtree(db, path)
                db.commit()

        await self._run("delete", path, _delete)
        await self._publish(path)

    async def allocate_key(self, path: str) -> str:
        del path
        return uuid4().hex

    async def _run(self, operation: str, path: str, work: Callable[[Session], T]) -> T:
        def _in_session() -> T:
            db = self._session_factory()
            try:
                return work(db)
            except SQLAlchemyError:
                db.rollback()
                raise
            finally:
                db.close()

        try:
            return await asyncio.to_thread(_in_session)
        except SQLAlchemyError as e:
            logger.warning("store %s failed path=%s error=%s", operation, path, e)
            raise StoreUnavailableError(operation, path, e) from e


def _read_node(db: Session, path: str) -> Any | None:
    rows = db.execute(
        select(StoreNode.path, StoreNode.value_json).where(
            or_(
                StoreNode.path == path,
                StoreNode.path.startswith(path + "/", autoescape=True),
            )
        )
    ).all()
    if not rows:
        return None

    tree: dict[str, Any] = {}
    for row_path, value in rows:
        if row_path == path:
            return value
        node = tree
        *parents, leaf = row_path[len(path) + 1 :].split("/")
        for segment in parents:
            node = node.setdefault(segment, {})
        node[leaf] = value
    return tree


def _delete_subtree(db: Session, path: str) -> None:
    db.execute(
        delete(StoreNode).where(
            or_(
                StoreNode.path == path,
                StoreNode.path.startswith(path + "/", autoescape=True),
            )
        )
        .execution_options(synchronize_session=False)
    )


def _flatten(path: str, value: Any) -> Iterator[tuple[str, Any]]:
    if isinstance(value, dict):
        for key, child in value.items():
            yield from _flatten(f"{path}/{key}", child)
    else:
        yield path, value


def _parent(path: str) -> str:
    return path.rpartition("/")[0]


def _ancestors(path: str) -> list[str]:
    parts = path.split("/")
    return ["/".join(parts[:i]) for i in range(1, len(parts))]
