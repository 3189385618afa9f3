"""Shared child-event payload schema (v1).

The seller order feed sends one of these per changed order. Clients apply them
in arrival order: delete, then insert, then update.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel


class ChildEventTypeV1(str, Enum):
    ADDED = "ADDED"
    CHANGED = "CHANGED"
    REMOVED = "REMOVED"


class ChildEventV1(BaseModel):
    version: str = "1"
    type: ChildEventTypeV1

    # "{date_key}/{order_id}"
    key: str
    date_key: str
    order_id: str

    # Order record; null for a key-only removal.
    value: dict[str, Any] | None = None
