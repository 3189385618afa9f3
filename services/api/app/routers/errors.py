from __future__ import annotations

from typing import NoReturn

from fastapi import HTTPException
from services.api.app.services.lifecycle_errors import (
    AlreadyPlacedOrderError,
    BuyerIndexUpdateFailedError,
    EditWindowClosedError,
    EmptyBasketError,
    MergeUnresolvedError,
    NotAuthenticatedError,
    OrderLifecycleError,
    OrderNotFoundError,
    PickupDateExpiredError,
    StoreUnavailableError,
)


def raise_lifecycle_http_error(e: OrderLifecycleError) -> NoReturn:
    if isinstance(e, NotAuthenticatedError):
        raise HTTPException(status_code=401, detail=str(e)) from e

    if isinstance(e, AlreadyPlacedOrderError):
        # The client routes into the merge flow with these.
        raise HTTPException(
            status_code=409,
            detail={
                "message": str(e),
                "date_key": e.date_key,
                "existing_order_id": e.existing_order_id,
            },
        ) from e

    if isinstance(e, MergeUnresolvedError):
        raise HTTPException(
            status_code=409, detail={"message": str(e), "product_ids": e.product_ids}
        ) from e

    if isinstance(e, EditWindowClosedError):
        raise HTTPException(status_code=403, detail=str(e)) from e

    if isinstance(e, OrderNotFoundError):
        raise HTTPException(status_code=404, detail=str(e)) from e

    if isinstance(e, PickupDateExpiredError):
        raise HTTPException(status_code=410, detail=str(e)) from e

    if isinstance(e, EmptyBasketError):
        raise HTTPException(status_code=422, detail=str(e)) from e

    if isinstance(e, BuyerIndexUpdateFailedError):
        raise HTTPException(
            status_code=502,
            detail={"message": str(e), "order_id": e.order.id, "date_key": e.date_key},
        ) from e

    if isinstance(e, StoreUnavailableError):
        raise HTTPException(status_code=503, detail=str(e)) from e

    raise HTTPException(status_code=500, detail="Internal Server Error") from e
