from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from services.api.app.deps import current_user_id, get_controller
from services.api.app.models.basket import (
    AddBasketItemRequest,
    Basket,
    BasketOut,
    ReorderRequest,
    UpdateQuantityRequest,
)
from services.api.app.models.order import OrderedLineItem
from services.api.app.routers.errors import raise_lifecycle_http_error
from services.api.app.services.basket_reconciler import has_changes
from services.api.app.services.basket_store import basket_store
from services.api.app.services.lifecycle_errors import (
    NotAuthenticatedError,
    OrderLifecycleError,
    OrderNotFoundError,
)
from services.api.app.services.order_lifecycle import OrderLifecycleController

router = APIRouter()


def _require_user(user_id: str | None) -> str:
    if not user_id:
        raise_lifecycle_http_error(NotAuthenticatedError())
    return user_id


async def _basket_out(
    controller: OrderLifecycleController, user_id: str, basket: Basket
) -> BasketOut:
    loaded = basket.loaded_order_info()
    if loaded is None:
        changed = not basket.is_empty()
    else:
        order_id, date_key = loaded
        try:
            baseline = await controller.load_order(controller.seller_id, date_key, order_id)
            changed = has_changes(basket.items, baseline.items)
        except OrderNotFoundError:
            changed = True
        except OrderLifecycleError as e:
            raise_lifecycle_http_error(e)
    return BasketOut(basket=basket, total=basket.total, has_changes=changed)


@router.get("/v1/basket", response_model=BasketOut)
async def get_basket(
    user_id: str | None = Depends(current_user_id),
    controller: OrderLifecycleController = Depends(get_controller),
) -> BasketOut:
    user_id = _require_user(user_id)
    return await _basket_out(controller, user_id, basket_store.get(user_id))


@router.post("/v1/basket/items", response_model=BasketOut)
async def add_basket_item(
    payload: AddBasketItemRequest,
    user_id: str | None = Depends(current_user_id),
    controller: OrderLifecycleController = Depends(get_controller),
) -> BasketOut:
    user_id = _require_user(user_id)
    basket = basket_store.add_item(user_id, OrderedLineItem(**payload.model_dump()))
    return await _basket_out(controller, user_id, basket)


@router.patch("/v1/basket/items/{product_id}", response_model=BasketOut)
async def update_basket_item(
    product_id: str,
    payload: UpdateQuantityRequest,
    user_id: str | None = Depends(current_user_id),
    controller: OrderLifecycleController = Depends(get_controller),
) -> BasketOut:
    user_id = _require_user(user_id)
    basket = basket_store.update_quantity(user_id, product_id, payload.quantity)
    if basket is None:
        raise HTTPException(status_code=404, detail="Item not in basket")
    return await _basket_out(controller, user_id, basket)


@router.delete("/v1/basket/items/{product_id}", response_model=BasketOut)
async def remove_basket_item(
    product_id: str,
    user_id: str | None = Depends(current_user_id),
    controller: OrderLifecycleController = Depends(get_controller),
) -> BasketOut:
    user_id = _require_user(user_id)
    basket = basket_store.remove_item(user_id, product_id)
    if basket is None:
        raise HTTPException(status_code=404, detail="Item not in basket")
    return await _basket_out(controller, user_id, basket)


@router.delete("/v1/basket", response_model=BasketOut)
def clear_basket(user_id: str | None = Depends(current_user_id)) -> BasketOut:
    user_id = _require_user(user_id)
    basket = basket_store.clear(user_id)
    return BasketOut(basket=basket, total=0.0, has_changes=False)


@router.post("/v1/basket/load/{date_key}/{order_id}", response_model=BasketOut)
async def load_order_into_basket(
    date_key: str,
    order_id: str,
    user_id: str | None = Depends(current_user_id),
    controller: OrderLifecycleController = Depends(get_controller),
) -> BasketOut:
    try:
        order = await controller.load_buyer_order(user_id, date_key, order_id)
    except OrderLifecycleError as e:
        raise_lifecycle_http_error(e)

    user_id = _require_user(user_id)
    basket = basket_store.load_order(user_id, order, date_key)
    return BasketOut(basket=basket, total=basket.total, has_changes=False)


@router.post("/v1/basket/reorder", response_model=BasketOut)
async def reorder_basket(
    payload: ReorderRequest,
    user_id: str | None = Depends(current_user_id),
    controller: OrderLifecycleController = Depends(get_controller),
) -> BasketOut:
    try:
        if payload.source_date_key and payload.source_order_id:
            source = await controller.load_buyer_order(
                user_id, payload.source_date_key, payload.source_order_id
            )
            items = source.items
        else:
            items = basket_store.get(_require_user(user_id)).items
        basket = await controller.reorder_with_new_date(user_id, items, payload.pickup_date)
    except OrderLifecycleError as e:
        raise_lifecycle_http_error(e)

    return BasketOut(basket=basket, total=basket.total, has_changes=not basket.is_empty())
