from __future__ import annotations

from fastapi import Header, HTTPException
from services.api.app.config import (
    load_schedule_config,
    pickup_date_count,
    seller_id,
    strict_merge_enabled,
)
from services.api.app.services.audit_log import get_audit_log
from services.api.app.services.basket_store import basket_store
from services.api.app.services.edit_window import EditWindowPolicy
from services.api.app.services.order_lifecycle import OrderLifecycleController
from services.api.app.services.order_store_factory import get_order_store


def current_user_id(x_user_id: str | None = Header(default=None)) -> str | None:
    """Signed-in buyer, as forwarded by the auth proxy. None means no session."""
    if x_user_id is None:
        return None
    return x_user_id.strip() or None


def get_controller() -> OrderLifecycleController:
    try:
        policy = EditWindowPolicy(load_schedule_config(), offer_count=pickup_date_count())
        store = get_order_store()
        audit = get_audit_log()
    except ValueError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e

    return OrderLifecycleController(
        store,
        basket_store,
        policy,
        audit,
        seller_id=seller_id(),
        strict_merge=strict_merge_enabled(),
    )
