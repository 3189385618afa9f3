"""Shared event schema (v1).

The backend keeps an append-only log of order lifecycle events. Clients can
consume these events to render an order history.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EntityTypeV1(str, Enum):
    ORDER = "Order"
    BUYER_PROFILE = "BuyerProfile"
    BASKET = "Basket"


class EventTypeV1(str, Enum):
    ORDER_PLACED = "ORDER_PLACED"
    ORDER_UPDATED = "ORDER_UPDATED"
    ORDER_MERGED = "ORDER_MERGED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    ORDER_HIDDEN = "ORDER_HIDDEN"
    BUYER_INDEX_RETRIED = "BUYER_INDEX_RETRIED"
    BUYER_INDEX_FAILED = "BUYER_INDEX_FAILED"
    BUYER_CLEANED_UP = "BUYER_CLEANED_UP"
    BASKET_REORDERED = "BASKET_REORDERED"


class EventV1(BaseModel):
    id: str
    user_id: str | None = None

    entity_type: EntityTypeV1
    entity_id: str

    event_type: EventTypeV1
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: str
