from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from typing import Any

from packages.shared.schemas.child_event_v1 import ChildEventTypeV1, ChildEventV1
from services.api.app.services.order_store_base import OrderStore
from services.api.app.services.snapshot_differ import ChildEvent, SnapshotDiffer

logger = logging.getLogger(__name__)


def flatten_seller_orders(snapshot: Mapping[str, Any]) -> dict[str, Any]:
    """Map ``{date_key: {order_id: record}}`` to ``{"date_key/order_id": record}``.

    Orders hidden by the seller are left out.
    """
    out: dict[str, Any] = {}
    for date_key, by_id in snapshot.items():
        if not isinstance(by_id, dict):
            continue
        for order_id, record in by_id.items():
            if not isinstance(record, dict) or record.get("hidden_by_seller"):
                continue
            out[f"{date_key}/{order_id}"] = record
    return out


def to_wire(event: ChildEvent) -> ChildEventV1:
    date_key, _, order_id = event.key.partition("/")
    return ChildEventV1(
        type=ChildEventTypeV1(event.type.value),
        key=event.key,
        date_key=date_key,
        order_id=order_id,
        value=event.value,
    )


async def watch_seller_order_events(
    store: OrderStore, seller_id: str
) -> AsyncIterator[ChildEvent]:
    """Child events for one seller's orders across all pickup days.

    The first snapshot yields an ADDED event per visible order. Hiding an
    order for the seller surfaces as REMOVED. Every call owns its differ.
    """
    differ = SnapshotDiffer()
    snapshots = store.watch_children(f"orders/{seller_id}")
    try:
        async for snapshot in snapshots:
            events = differ.diff(flatten_seller_orders(snapshot))
            if events:
                logger.debug("seller feed seller=%s events=%d", seller_id, len(events))
            for event in events:
                yield event
    finally:
        await snapshots.aclose()
