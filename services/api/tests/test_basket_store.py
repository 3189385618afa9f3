from datetime import datetime, timezone

from services.api.app.models.order import BuyerProfile, Order, OrderedLineItem
from services.api.app.services.basket_store import InMemoryBasketStore


def _item(product_id: str, quantity: float, **kw) -> OrderedLineItem:
    return OrderedLineItem(product_id=product_id, quantity=quantity, unit_price=2.0, **kw)


def test_add_item_merges_same_product() -> None:
    baskets = InMemoryBasketStore()
    baskets.add_item("u-1", _item("P1", 1, piece_count=2))
    basket = baskets.add_item("u-1", _item("P1", 2, piece_count=4))

    assert len(basket.items) == 1
    assert basket.items[0].quantity == 3
    assert basket.items[0].piece_count == 6
    assert basket.total == 6.0


def test_baskets_are_per_user_and_copied() -> None:
    baskets = InMemoryBasketStore()
    baskets.add_item("u-1", _item("P1", 1))

    outside = baskets.get("u-1")
    outside.items.clear()

    assert len(baskets.get("u-1").items) == 1
    assert baskets.get("u-2").is_empty()


def test_update_quantity_scales_pieces_and_zero_removes() -> None:
    baskets = InMemoryBasketStore()
    baskets.add_item("u-1", _item("P1", 2, piece_count=4))

    basket = baskets.update_quantity("u-1", "P1", 3)
    assert basket is not None
    assert basket.items[0].quantity == 3
    assert basket.items[0].piece_count == 6

    basket = baskets.update_quantity("u-1", "P1", 0)
    assert basket is not None and basket.is_empty()
    assert baskets.update_quantity("u-1", "P1", 1) is None
    assert baskets.remove_item("u-1", "P404") is None


def test_load_order_tags_basket() -> None:
    baskets = InMemoryBasketStore()
    pickup = datetime(2025, 1, 16, tzinfo=timezone.utc)
    order = Order(
        id="o1",
        seller_id="seller-1",
        buyer_profile=BuyerProfile(id="u-1"),
        created_at=pickup,
        pickup_date=pickup,
        items=[_item("P1", 1, id="i1")],
    )

    basket = baskets.load_order("u-1", order, "20250116")

    assert basket.loaded_order_info() == ("o1", "20250116")
    assert basket.selected_pickup_date == pickup
    assert basket.items[0].id == "i1"

    assert baskets.clear("u-1").loaded_order_info() is None
    assert baskets.get("u-1").is_empty()
