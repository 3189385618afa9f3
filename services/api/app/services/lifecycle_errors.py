from __future__ import annotations

from services.api.app.models.order import Order


class OrderLifecycleError(Exception):
    """Base class for order lifecycle errors."""


class NotAuthenticatedError(OrderLifecycleError):
    def __init__(self) -> None:
        super().__init__("Sign in to place or change orders.")


class AlreadyPlacedOrderError(OrderLifecycleError):
    def __init__(self, date_key: str, existing_order_id: str) -> None:
        super().__init__(
            f"An order already exists for {date_key} (order {existing_order_id}). "
            "Merge the basket into it instead."
        )
        self.date_key = date_key
        self.existing_order_id = existing_order_id


class EditWindowClosedError(OrderLifecycleError):
    def __init__(self, date_key: str, deadline_iso: str) -> None:
        super().__init__(
            f"The order for {date_key} can no longer be changed (deadline was {deadline_iso})."
        )
        self.date_key = date_key
        self.deadline_iso = deadline_iso


class PickupDateExpiredError(OrderLifecycleError):
    def __init__(self, date_key: str) -> None:
        super().__init__(f"Pickup date {date_key} is no longer available. Select another date.")
        self.date_key = date_key


class OrderNotFoundError(OrderLifecycleError):
    def __init__(self, seller_id: str, date_key: str, order_id: str) -> None:
        super().__init__(f"Order not found: orders/{seller_id}/{date_key}/{order_id}")
        self.seller_id = seller_id
        self.date_key = date_key
        self.order_id = order_id


class StoreUnavailableError(OrderLifecycleError):
    def __init__(self, operation: str, path: str, cause: Exception | None = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Store unavailable during {operation} {path}{detail}")
        self.operation = operation
        self.path = path


class BuyerIndexUpdateFailedError(OrderLifecycleError):
    """The order was written but the buyer's date index could not be updated."""

    def __init__(self, order: Order, date_key: str) -> None:
        super().__init__(
            f"Order {order.id} for {date_key} was saved, but linking it to the buyer "
            "profile failed. Placing the order again links it."
        )
        self.order = order
        self.date_key = date_key


class EmptyBasketError(OrderLifecycleError):
    def __init__(self) -> None:
        super().__init__("The basket is empty.")


class MergeUnresolvedError(OrderLifecycleError):
    def __init__(self, product_ids: list[str]) -> None:
        super().__init__(
            "Every merge conflict needs a resolution. Undecided: " + ", ".join(product_ids)
        )
        self.product_ids = product_ids
