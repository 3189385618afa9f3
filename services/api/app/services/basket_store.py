from __future__ import annotations

from services.api.app.models.basket import Basket
from services.api.app.models.order import Order, OrderedLineItem


class InMemoryBasketStore:
    """Per-buyer baskets. Baskets are local state; they never reach the order store."""

    def __init__(self) -> None:
        self._baskets: dict[str, Basket] = {}

    def get(self, user_id: str) -> Basket:
        return self._baskets.get(user_id, Basket()).model_copy(deep=True)

    def set(self, user_id: str, basket: Basket) -> Basket:
        self._baskets[user_id] = basket.model_copy(deep=True)
        return self.get(user_id)

    def add_item(self, user_id: str, item: OrderedLineItem) -> Basket:
        basket = self.get(user_id)
        for i, current in enumerate(basket.items):
            if current.product_id != item.product_id:
                continue
            pieces = (
                current.piece_count + item.piece_count
                if current.piece_count >= 0 and item.piece_count >= 0
                else -1
            )
            basket.items[i] = current.model_copy(
                update={
                    "quantity": current.quantity + item.quantity,
                    "unit_price": item.unit_price,
                    "piece_count": pieces,
                }
            )
            break
        else:
            basket.items.append(item)
        return self.set(user_id, basket)

    def update_quantity(self, user_id: str, product_id: str, quantity: float) -> Basket | None:
        """Set a line's quantity; zero removes it. None when the product is not in the basket."""
        basket = self.get(user_id)
        for i, current in enumerate(basket.items):
            if current.product_id != product_id:
                continue
            if quantity <= 0:
                del basket.items[i]
            else:
                basket.items[i] = current.model_copy(
                    update={
                        "quantity": quantity,
                        "piece_count": _scaled_pieces(current, quantity),
                    }
                )
            return self.set(user_id, basket)
        return None

    def remove_item(self, user_id: str, product_id: str) -> Basket | None:
        return self.update_quantity(user_id, product_id, 0)

    def clear(self, user_id: str) -> Basket:
        self._baskets.pop(user_id, None)
        return Basket()

    def reset(self) -> None:
        self._baskets.clear()

    def load_order(self, user_id: str, order: Order, date_key: str) -> Basket:
        """Replace the basket with ``order``'s items, tagged so edits can be diffed against it."""
        return self.set(
            user_id,
            Basket(
                items=[item.model_copy() for item in order.items],
                loaded_order_id=order.id,
                loaded_order_date=date_key,
                selected_pickup_date=order.pickup_date,
            ),
        )


def _scaled_pieces(item: OrderedLineItem, quantity: float) -> int:
    if item.piece_count < 0 or item.quantity <= 0:
        return -1
    return max(1, round(item.piece_count * quantity / item.quantity))


basket_store = InMemoryBasketStore()
