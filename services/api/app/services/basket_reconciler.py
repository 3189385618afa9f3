"""Reconcile a local basket with an order already placed for the same pickup day.

Everything here is pure: no I/O and no exceptions. Line items are matched by
``product_id``; the store-assigned ``id`` only travels along so that merged
items keep the key they already had in the persisted order.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from services.api.app.models.merge import MergeConflict, MergeResolution
from services.api.app.models.order import OrderedLineItem


def detect_conflicts(
    local_items: list[OrderedLineItem],
    existing_items: list[OrderedLineItem],
) -> list[MergeConflict]:
    """One UNDECIDED conflict per local product whose quantity differs from the order's."""
    existing_by_product = _index_by_product(existing_items)

    conflicts: list[MergeConflict] = []
    seen: set[str] = set()
    for local in local_items:
        if local.product_id in seen:
            continue
        seen.add(local.product_id)

        existing = existing_by_product.get(local.product_id)
        if existing is None or existing.quantity == local.quantity:
            continue

        conflicts.append(
            MergeConflict(
                product_id=local.product_id,
                product_name=local.product_name or existing.product_name,
                unit=local.unit or existing.unit,
                existing_quantity=existing.quantity,
                new_quantity=local.quantity,
                existing_price=existing.unit_price,
                new_price=local.unit_price,
            )
        )
    return conflicts


def apply_resolutions(
    conflicts: list[MergeConflict],
    resolutions: Mapping[str, MergeResolution],
) -> list[MergeConflict]:
    return [
        c.model_copy(update={"resolution": resolutions[c.product_id]})
        if c.product_id in resolutions
        else c
        for c in conflicts
    ]


def unresolved_product_ids(conflicts: Iterable[MergeConflict]) -> list[str]:
    return [c.product_id for c in conflicts if c.resolution is MergeResolution.UNDECIDED]


def resolve(
    existing_items: list[OrderedLineItem],
    local_items: list[OrderedLineItem],
    conflicts: list[MergeConflict],
) -> list[OrderedLineItem]:
    """Merge ``local_items`` into ``existing_items`` under the chosen resolutions.

    Existing order comes first, then local-only items in basket order. An
    UNDECIDED resolution keeps the existing line.
    """
    conflict_by_product = {c.product_id: c for c in conflicts}
    local_by_product = _index_by_product(local_items)

    merged: list[OrderedLineItem] = []
    placed: set[str] = set()

    for existing in existing_items:
        product_id = existing.product_id
        if product_id in placed:
            continue
        placed.add(product_id)

        local = local_by_product.get(product_id)
        conflict = conflict_by_product.get(product_id)

        if local is None:
            merged.append(existing)
        elif conflict is None:
            # Same quantity on both sides: the local copy carries the fresher price.
            merged.append(_replace_keeping_id(existing, local))
        else:
            merged.append(_apply(conflict.resolution, existing, local))

    for local in local_items:
        if local.product_id in placed:
            continue
        placed.add(local.product_id)
        merged.append(local)

    return merged


def has_changes(
    current_items: list[OrderedLineItem],
    baseline_items: list[OrderedLineItem],
) -> bool:
    """True when the basket no longer matches the persisted order it was loaded from."""
    if not current_items and not baseline_items:
        return False
    if not baseline_items or len(current_items) != len(baseline_items):
        return True

    baseline_by_product = _index_by_product(baseline_items)
    current_by_product = _index_by_product(current_items)
    if baseline_by_product.keys() != current_by_product.keys():
        return True

    return any(
        baseline_by_product[pid].quantity != item.quantity
        for pid, item in current_by_product.items()
    )


def _apply(
    resolution: MergeResolution,
    existing: OrderedLineItem,
    local: OrderedLineItem,
) -> OrderedLineItem:
    if resolution is MergeResolution.ADD:
        pieces = (
            existing.piece_count + local.piece_count
            if existing.piece_count >= 0 and local.piece_count >= 0
            else -1
        )
        return existing.model_copy(
            update={
                "quantity": existing.quantity + local.quantity,
                "unit_price": local.unit_price,
                "piece_count": pieces,
            }
        )
    if resolution is MergeResolution.USE_NEW:
        return _replace_keeping_id(existing, local)
    # KEEP_EXISTING and UNDECIDED
    return existing


def _replace_keeping_id(existing: OrderedLineItem, local: OrderedLineItem) -> OrderedLineItem:
    if local.id:
        return local
    return local.model_copy(update={"id": existing.id})


def _index_by_product(items: Iterable[OrderedLineItem]) -> dict[str, OrderedLineItem]:
    out: dict[str, OrderedLineItem] = {}
    for item in items:
        out.setdefault(item.product_id, item)
    return out
