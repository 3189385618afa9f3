from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing, suppress

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from services.api.app.deps import current_user_id, get_controller
from services.api.app.models.order import OrderOut
from services.api.app.routers.errors import raise_lifecycle_http_error
from services.api.app.services.lifecycle_errors import OrderLifecycleError
from services.api.app.services.order_feed import to_wire, watch_seller_order_events
from services.api.app.services.order_lifecycle import OrderLifecycleController
from services.api.app.services.order_store_factory import get_order_store

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/v1/sellers/{seller_id}/orders", response_model=list[OrderOut])
async def list_seller_orders(
    seller_id: str,
    date_key: str | None = None,
    include_hidden: bool = False,
    controller: OrderLifecycleController = Depends(get_controller),
) -> list[OrderOut]:
    try:
        orders = await controller.list_seller_orders(
            seller_id, date_key, include_hidden=include_hidden
        )
    except OrderLifecycleError as e:
        raise_lifecycle_http_error(e)

    return [controller.describe(o) for o in orders]


@router.post("/v1/sellers/{seller_id}/orders/{date_key}/{order_id}/hide", response_model=OrderOut)
async def hide_seller_order(
    seller_id: str,
    date_key: str,
    order_id: str,
    user_id: str | None = Depends(current_user_id),
    controller: OrderLifecycleController = Depends(get_controller),
) -> OrderOut:
    try:
        order = await controller.hide_order_for_seller(user_id, seller_id, date_key, order_id)
    except OrderLifecycleError as e:
        raise_lifecycle_http_error(e)

    return controller.describe(order)


@router.websocket("/v1/sellers/{seller_id}/orders/feed")
async def seller_order_feed(websocket: WebSocket, seller_id: str) -> None:
    """Push one JSON child event per order change until the client goes away."""
    try:
        store = get_order_store()
    except ValueError:
        logger.exception("seller feed has no order store")
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    await websocket.accept()

    async def _pump() -> None:
        async with aclosing(watch_seller_order_events(store, seller_id)) as events:
            async for event in events:
                await websocket.send_json(to_wire(event).model_dump(mode="json"))

    async def _wait_for_disconnect() -> None:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

    pump = asyncio.create_task(_pump())
    watcher = asyncio.create_task(_wait_for_disconnect())
    done, pending = await asyncio.wait({pump, watcher}, return_when=asyncio.FIRST_COMPLETED)
    for task in pending:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    try:
        for task in done:
            task.result()
    except WebSocketDisconnect:
        logger.debug("seller feed client left seller=%s", seller_id)
    except OrderLifecycleError as e:
        logger.warning("seller feed stopped seller=%s: %s", seller_id, e)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
