from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from services.api.app.deps import get_controller
from services.api.app.models.order import PickupDateOut
from services.api.app.services.order_lifecycle import OrderLifecycleController

router = APIRouter()


@router.get("/v1/pickup-dates", response_model=list[PickupDateOut])
def list_pickup_dates(
    count: int | None = Query(default=None, ge=1, le=52),
    controller: OrderLifecycleController = Depends(get_controller),
) -> list[PickupDateOut]:
    options = controller.policy.available_pickup_dates(controller.now(), count)
    return [
        PickupDateOut(
            pickup_date=o.pickup_date,
            date_key=o.date_key,
            deadline=o.deadline,
            orderable=o.orderable,
        )
        for o in options
    ]
