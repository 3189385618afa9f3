import pytest
from services.api.app.models.merge import MergeResolution
from services.api.app.models.order import OrderedLineItem
from services.api.app.services.basket_reconciler import (
    apply_resolutions,
    detect_conflicts,
    has_changes,
    resolve,
    unresolved_product_ids,
)


def _item(product_id: str, quantity: float, price: float = 2.0, **kw) -> OrderedLineItem:
    return OrderedLineItem(
        product_id=product_id,
        product_name=f"Product {product_id}",
        unit="kg",
        unit_price=price,
        quantity=quantity,
        **kw,
    )


def test_detect_conflicts_only_for_differing_quantities() -> None:
    local = [_item("P1", 3, price=2.5), _item("P2", 1), _item("P3", 4)]
    existing = [_item("P1", 1, id="i1"), _item("P2", 1, id="i2"), _item("P4", 2, id="i4")]

    conflicts = detect_conflicts(local, existing)

    assert len(conflicts) == 1
    conflict = conflicts[0]
    assert conflict.product_id == "P1"
    assert (conflict.existing_quantity, conflict.new_quantity) == (1, 3)
    assert (conflict.existing_price, conflict.new_price) == (2.0, 2.5)
    assert conflict.resolution is MergeResolution.UNDECIDED


@pytest.mark.parametrize(
    ("resolution", "quantity"),
    [
        (MergeResolution.ADD, 4),
        (MergeResolution.KEEP_EXISTING, 1),
        (MergeResolution.USE_NEW, 3),
        (MergeResolution.UNDECIDED, 1),
    ],
)
def test_resolution_outcomes(resolution: MergeResolution, quantity: float) -> None:
    local = [_item("P1", 3)]
    existing = [_item("P1", 1, id="i1")]
    conflicts = apply_resolutions(detect_conflicts(local, existing), {"P1": resolution})

    merged = resolve(existing, local, conflicts)

    assert len(merged) == 1
    assert merged[0].quantity == quantity
    assert merged[0].id == "i1"


def test_add_takes_local_price_and_sums_pieces() -> None:
    local = [_item("P1", 3, price=3.0, piece_count=6)]
    existing = [_item("P1", 1, price=2.0, id="i1", piece_count=2)]
    conflicts = apply_resolutions(detect_conflicts(local, existing), {"P1": MergeResolution.ADD})

    merged = resolve(existing, local, conflicts)[0]

    assert merged.unit_price == 3.0
    assert merged.piece_count == 8


def test_equal_quantity_refreshes_price_from_local() -> None:
    local = [_item("P1", 2, price=9.0)]
    existing = [_item("P1", 2, price=2.0, id="i1")]

    merged = resolve(existing, local, detect_conflicts(local, existing))

    assert [(m.id, m.unit_price) for m in merged] == [("i1", 9.0)]


def test_resolve_keeps_existing_order_then_appends_local_only() -> None:
    existing = [_item("E1", 1, id="a"), _item("P1", 1, id="b"), _item("E2", 1, id="c")]
    local = [_item("L1", 1), _item("P1", 5), _item("L2", 1)]
    conflicts = apply_resolutions(detect_conflicts(local, existing), {"P1": MergeResolution.ADD})

    merged = resolve(existing, local, conflicts)

    assert [m.product_id for m in merged] == ["E1", "P1", "E2", "L1", "L2"]
    assert merged[1].quantity == 6


def test_resolve_never_drops_or_duplicates_products() -> None:
    existing = [_item("P1", 1, id="a"), _item("P2", 2, id="b"), _item("P1", 7, id="dup")]
    local = [_item("P2", 3), _item("P3", 1), _item("P3", 2), _item("P1", 1)]
    conflicts = detect_conflicts(local, existing)

    merged = resolve(existing, local, conflicts)
    product_ids = [m.product_id for m in merged]

    assert sorted(product_ids) == ["P1", "P2", "P3"]
    assert len(product_ids) == len(set(product_ids))
    assert len(merged) <= len(existing) + len(local)


def test_unresolved_product_ids_lists_undecided_only() -> None:
    local = [_item("P1", 3), _item("P2", 5)]
    existing = [_item("P1", 1), _item("P2", 1)]
    conflicts = apply_resolutions(detect_conflicts(local, existing), {"P2": MergeResolution.ADD})

    assert unresolved_product_ids(conflicts) == ["P1"]


def test_has_changes() -> None:
    baseline = [_item("P1", 1, id="a"), _item("P2", 2, id="b")]

    assert has_changes([], []) is False
    assert has_changes(list(baseline), baseline) is False
    assert has_changes([_item("P1", 1), _item("P2", 3)], baseline) is True
    assert has_changes([_item("P1", 1)], baseline) is True
    assert has_changes([_item("P1", 1), _item("P9", 2)], baseline) is True
    assert has_changes([_item("P1", 1)], []) is True
