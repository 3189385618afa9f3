from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query
from packages.shared.schemas.events import EventV1
from services.api.app.services.audit_log import get_audit_log

router = APIRouter()


@router.get("/v1/events", response_model=list[EventV1])
def list_events(
    user_id: str,
    limit: int = Query(default=200, ge=1, le=1000),
) -> list[EventV1]:
    try:
        audit = get_audit_log()
    except ValueError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e

    return audit.list_events(user_id, limit=limit)
