from __future__ import annotations

from datetime import datetime

from pydantic import AwareDatetime, BaseModel, Field
from services.api.app.models.order import OrderedLineItem


class Basket(BaseModel):
    items: list[OrderedLineItem] = Field(default_factory=list)

    # Set when the basket was hydrated from a persisted order.
    loaded_order_id: str | None = None
    loaded_order_date: str | None = None

    selected_pickup_date: datetime | None = None
    # Products a reorder could not re-price because they left the catalog.
    unavailable_product_ids: list[str] = Field(default_factory=list)

    @property
    def total(self) -> float:
        return sum(item.line_total for item in self.items)

    def is_empty(self) -> bool:
        return not self.items

    def loaded_order_info(self) -> tuple[str, str] | None:
        if self.loaded_order_id is None or self.loaded_order_date is None:
            return None
        return self.loaded_order_id, self.loaded_order_date


class BasketOut(BaseModel):
    basket: Basket
    total: float
    has_changes: bool


class AddBasketItemRequest(BaseModel):
    product_id: str = Field(..., min_length=1)
    product_name: str = ""
    unit: str = ""
    unit_price: float = Field(0.0, ge=0)
    quantity: float = Field(..., gt=0)
    piece_count: int = -1


class UpdateQuantityRequest(BaseModel):
    quantity: float = Field(..., ge=0)


class ReorderRequest(BaseModel):
    pickup_date: AwareDatetime
    # Reorder a placed order; without these the current basket is re-priced.
    source_date_key: str | None = None
    source_order_id: str | None = None
