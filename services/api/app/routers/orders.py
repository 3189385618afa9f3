from __future__ import annotations

from fastapi import APIRouter, Depends
from services.api.app.deps import current_user_id, get_controller
from services.api.app.models.merge import (
    MergeConfirmRequest,
    MergeConfirmResponse,
    MergePreviewRequest,
    MergePreviewResponse,
)
from services.api.app.models.order import (
    CancelOrderResponse,
    CleanUpResult,
    OrderLookupMode,
    OrderOut,
    PlaceOrderRequest,
    UpdateOrderRequest,
)
from services.api.app.routers.errors import raise_lifecycle_http_error
from services.api.app.services.basket_store import basket_store
from services.api.app.services.lifecycle_errors import OrderLifecycleError
from services.api.app.services.order_lifecycle import OrderLifecycleController

router = APIRouter()


@router.post("/v1/orders", response_model=OrderOut)
async def place_order(
    payload: PlaceOrderRequest,
    user_id: str | None = Depends(current_user_id),
    controller: OrderLifecycleController = Depends(get_controller),
) -> OrderOut:
    basket = basket_store.get(user_id or "")
    try:
        order = await controller.place_order(
            user_id,
            basket,
            payload.pickup_date,
            message=payload.message,
        )
    except OrderLifecycleError as e:
        raise_lifecycle_http_error(e)

    return controller.describe(order)


@router.post("/v1/orders/merge/preview", response_model=MergePreviewResponse)
async def preview_merge(
    payload: MergePreviewRequest,
    user_id: str | None = Depends(current_user_id),
    controller: OrderLifecycleController = Depends(get_controller),
) -> MergePreviewResponse:
    try:
        basket = basket_store.get(user_id or "")
        return await controller.preview_merge(user_id, basket, payload.pickup_date)
    except OrderLifecycleError as e:
        raise_lifecycle_http_error(e)


@router.post("/v1/orders/{date_key}/{order_id}/merge", response_model=MergeConfirmResponse)
async def confirm_merge(
    date_key: str,
    order_id: str,
    payload: MergeConfirmRequest,
    user_id: str | None = Depends(current_user_id),
    controller: OrderLifecycleController = Depends(get_controller),
) -> MergeConfirmResponse:
    try:
        existing = await controller.load_buyer_order(user_id, date_key, order_id)
        return await controller.merge_into_existing(
            user_id, existing, basket_store.get(existing.buyer_profile.id), payload.resolutions
        )
    except OrderLifecycleError as e:
        raise_lifecycle_http_error(e)


@router.get("/v1/orders", response_model=list[OrderOut])
async def list_orders(
    user_id: str | None = Depends(current_user_id),
    controller: OrderLifecycleController = Depends(get_controller),
) -> list[OrderOut]:
    try:
        orders = await controller.load_buyer_orders(user_id)
    except OrderLifecycleError as e:
        raise_lifecycle_http_error(e)

    return [controller.describe(o) for o in orders]


@router.get("/v1/orders/current", response_model=OrderOut | None)
async def current_order(
    mode: OrderLookupMode = OrderLookupMode.EDITABLE,
    user_id: str | None = Depends(current_user_id),
    controller: OrderLifecycleController = Depends(get_controller),
) -> OrderOut | None:
    try:
        order = await controller.get_editable_or_upcoming_order(user_id, mode=mode)
    except OrderLifecycleError as e:
        raise_lifecycle_http_error(e)

    return controller.describe(order) if order is not None else None


@router.get("/v1/orders/{date_key}/{order_id}", response_model=OrderOut)
async def get_order(
    date_key: str,
    order_id: str,
    user_id: str | None = Depends(current_user_id),
    controller: OrderLifecycleController = Depends(get_controller),
) -> OrderOut:
    try:
        order = await controller.load_buyer_order(user_id, date_key, order_id)
    except OrderLifecycleError as e:
        raise_lifecycle_http_error(e)

    return controller.describe(order)


@router.put("/v1/orders/{date_key}/{order_id}", response_model=OrderOut)
async def update_order(
    date_key: str,
    order_id: str,
    payload: UpdateOrderRequest,
    user_id: str | None = Depends(current_user_id),
    controller: OrderLifecycleController = Depends(get_controller),
) -> OrderOut:
    try:
        order = await controller.load_buyer_order(user_id, date_key, order_id)
        updated = await controller.update_order(user_id, order, payload.items)
    except OrderLifecycleError as e:
        raise_lifecycle_http_error(e)

    return controller.describe(updated)


@router.delete("/v1/orders/{date_key}/{order_id}", response_model=CancelOrderResponse)
async def cancel_order(
    date_key: str,
    order_id: str,
    user_id: str | None = Depends(current_user_id),
    controller: OrderLifecycleController = Depends(get_controller),
) -> CancelOrderResponse:
    try:
        return await controller.cancel_order(user_id, controller.seller_id, date_key, order_id)
    except OrderLifecycleError as e:
        raise_lifecycle_http_error(e)


@router.post("/v1/orders/{date_key}/{order_id}/hide", response_model=OrderOut)
async def hide_order(
    date_key: str,
    order_id: str,
    user_id: str | None = Depends(current_user_id),
    controller: OrderLifecycleController = Depends(get_controller),
) -> OrderOut:
    try:
        order = await controller.hide_order_for_buyer(user_id, date_key, order_id)
    except OrderLifecycleError as e:
        raise_lifecycle_http_error(e)

    return controller.describe(order)


@router.delete("/v1/buyers/me", response_model=CleanUpResult)
async def delete_buyer(
    user_id: str | None = Depends(current_user_id),
    controller: OrderLifecycleController = Depends(get_controller),
) -> CleanUpResult:
    try:
        return await controller.cleanup_buyer(user_id)
    except OrderLifecycleError as e:
        raise_lifecycle_http_error(e)
