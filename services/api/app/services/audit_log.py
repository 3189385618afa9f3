from __future__ import annotations

import logging
import os
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Protocol
from uuid import uuid4

from packages.shared.schemas.events import EntityTypeV1, EventTypeV1, EventV1
from services.api.app.db.database import db_session
from services.api.app.db.models import EventLog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class AuditLog(Protocol):
    """Append-only log of lifecycle events.

    ``record`` is best-effort: a failure is logged and swallowed so that the
    order flow which triggered it still completes.
    """

    def record(
        self,
        *,
        user_id: str | None,
        entity_type: EntityTypeV1,
        entity_id: str,
        event_type: EventTypeV1,
        payload: dict[str, Any] | None = None,
    ) -> None: ...

    def list_events(self, user_id: str, *, limit: int = 200) -> list[EventV1]: ...


class MemoryAuditLog:
    def __init__(self) -> None:
        self._events: list[EventV1] = []

    def record(
        self,
        *,
        user_id: str | None,
        entity_type: EntityTypeV1,
        entity_id: str,
        event_type: EventTypeV1,
        payload: dict[str, Any] | None = None,
    ) -> None:
        self._events.append(
            EventV1(
                id=uuid4().hex,
                user_id=user_id,
                entity_type=entity_type,
                entity_id=entity_id,
                event_type=event_type,
                payload=dict(payload or {}),
                created_at=datetime.now(timezone.utc).isoformat(),
            )
        )

    def list_events(self, user_id: str, *, limit: int = 200) -> list[EventV1]:
        matching = [e for e in self._events if e.user_id == user_id]
        return list(reversed(matching))[:limit]


class SqlAuditLog:
    def __init__(self, session_factory: Callable[[], Session] = db_session) -> None:
        self._session_factory = session_factory

    def record(
        self,
        *,
        user_id: str | None,
        entity_type: EntityTypeV1,
        entity_id: str,
        event_type: EventTypeV1,
        payload: dict[str, Any] | None = None,
    ) -> None:
        db = self._session_factory()
        try:
            db.add(
                EventLog(
                    id=uuid4().hex,
                    user_id=user_id,
                    entity_type=entity_type.value,
                    entity_id=entity_id,
                    event_type=event_type.value,
                    event_payload_json=dict(payload or {}),
                )
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(
                "audit event dropped type=%s entity=%s error=%s", event_type.value, entity_id, e
            )
        finally:
            db.close()

    def list_events(self, user_id: str, *, limit: int = 200) -> list[EventV1]:
        db = self._session_factory()
        try:
            rows = (
                db.query(EventLog)
                .filter(EventLog.user_id == user_id)
                .order_by(EventLog.created_at.desc())
                .limit(limit)
                .all()
            )
            return [
                EventV1(
                    id=row.id,
                    user_id=row.user_id,
                    entity_type=EntityTypeV1(row.entity_type),
                    entity_id=row.entity_id,
                    event_type=EventTypeV1(row.event_type),
                    payload=row.event_payload_json or {},
                    created_at=row.created_at.isoformat(),
                )
                for row in rows
            ]
        finally:
            db.close()


_AUDIT_LOGS: dict[tuple[str, str], AuditLog] = {}


def get_audit_log() -> AuditLog:
    """Audit log matching MARKET_STORE_BACKEND, so sql deployments keep history on disk."""

    mode = os.getenv("MARKET_STORE_BACKEND", "memory").strip().lower()

    if mode == "memory":
        key = (mode, "")
        if key not in _AUDIT_LOGS:
            _AUDIT_LOGS[key] = MemoryAuditLog()
        return _AUDIT_LOGS[key]

    if mode == "sql":
        from services.api.app.db.database import get_engine
        from services.api.app.db.init_db import init_db

        key = (mode, str(get_engine().url))
        if key not in _AUDIT_LOGS:
            init_db()
            _AUDIT_LOGS[key] = SqlAuditLog()
        return _AUDIT_LOGS[key]

    raise ValueError(f"Unknown MARKET_STORE_BACKEND={mode!r}. Expected memory or sql.")


def reset_audit_logs() -> None:
    _AUDIT_LOGS.clear()
