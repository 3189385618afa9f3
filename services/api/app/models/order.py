from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import AwareDatetime, BaseModel, Field


class OrderStatus(str, Enum):
    PLACED = "PLACED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class OrderLookupMode(str, Enum):
    EDITABLE = "editable"
    UPCOMING = "upcoming"


class OrderedLineItem(BaseModel):
    # Store-assigned key; empty until the item has been persisted in an order.
    id: str = ""
    product_id: str = Field(..., min_length=1)
    product_name: str = ""
    unit: str = ""
    unit_price: float = Field(0.0, ge=0)
    quantity: float = Field(..., ge=0)
    # View-derived approximation of quantity, -1 when unknown.
    piece_count: int = -1

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity


class BuyerProfile(BaseModel):
    id: str = ""
    display_name: str = ""
    email_address: str = ""
    anonymous: bool = True
    placed_order_ids: dict[str, str] = Field(default_factory=dict)


class Order(BaseModel):
    id: str = ""
    seller_id: str = Field(..., min_length=1)
    buyer_profile: BuyerProfile = Field(default_factory=BuyerProfile)
    created_at: datetime
    pickup_date: datetime
    message: str = ""
    items: list[OrderedLineItem] = Field(default_factory=list)
    status: OrderStatus = OrderStatus.PLACED
    hidden_by_seller: bool = False
    hidden_by_buyer: bool = False

    @property
    def total(self) -> float:
        return sum(item.line_total for item in self.items)

    def to_record(self) -> dict:
        # The store key is the order id; the record itself does not repeat it.
        return self.model_dump(mode="json", exclude={"id"})

    @classmethod
    def from_record(cls, order_id: str, record: dict) -> Order:
        return cls.model_validate({**record, "id": order_id})


class Article(BaseModel):
    id: str = ""
    product_id: str = Field(..., min_length=1)
    product_name: str = ""
    unit: str = ""
    price: float = Field(0.0, ge=0)
    available: bool = False


class PlaceOrderRequest(BaseModel):
    pickup_date: AwareDatetime
    message: str = ""


class UpdateOrderRequest(BaseModel):
    items: list[OrderedLineItem] = Field(..., min_length=1)


class OrderOut(BaseModel):
    order: Order
    date_key: str
    can_edit: bool
    window_status: str
    deadline: datetime
    deadline_warning_level: str
    total: float


class CancelOrderResponse(BaseModel):
    order_id: str
    date_key: str
    status: str
    already_missing: bool = False


class PickupDateOut(BaseModel):
    pickup_date: datetime
    date_key: str
    deadline: datetime
    orderable: bool


class CleanUpResult(BaseModel):
    future_order_ids: list[str] = Field(default_factory=list)
    cancelled_orders: list[str] = Field(default_factory=list)
    skipped_orders: list[str] = Field(default_factory=list)
    profile_deleted: bool = False
    errors: list[str] = Field(default_factory=list)

    @property
    def all_orders_cancelled(self) -> bool:
        return len(self.future_order_ids) == len(self.cancelled_orders)
