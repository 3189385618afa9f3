from __future__ import annotations

from enum import Enum

from pydantic import AwareDatetime, BaseModel, Field
from services.api.app.models.order import Order


class MergeResolution(str, Enum):
    UNDECIDED = "UNDECIDED"
    ADD = "ADD"
    KEEP_EXISTING = "KEEP_EXISTING"
    USE_NEW = "USE_NEW"


class MergeConflict(BaseModel):
    product_id: str
    product_name: str = ""
    unit: str = ""
    existing_quantity: float
    new_quantity: float
    existing_price: float
    new_price: float
    resolution: MergeResolution = MergeResolution.UNDECIDED


class MergePreviewRequest(BaseModel):
    pickup_date: AwareDatetime


class MergePreviewResponse(BaseModel):
    existing_order: Order
    date_key: str
    conflicts: list[MergeConflict]


class MergeConfirmRequest(BaseModel):
    # product_id -> resolution; products left out stay UNDECIDED.
    resolutions: dict[str, MergeResolution] = Field(default_factory=dict)


class MergeConfirmResponse(BaseModel):
    order: Order
    date_key: str
    defaulted_product_ids: list[str] = Field(default_factory=list)
