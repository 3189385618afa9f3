"""Market Orders API service entrypoint."""

import logging

from fastapi import FastAPI
from services.api.app.config import log_level
from services.api.app.db.init_db import init_db
from services.api.app.routers.audit import router as audit_router
from services.api.app.routers.basket import router as basket_router
from services.api.app.routers.orders import router as orders_router
from services.api.app.routers.pickup_dates import router as pickup_dates_router
from services.api.app.routers.seller import router as seller_router

app = FastAPI(title="Market Orders API")

app.include_router(pickup_dates_router)
app.include_router(basket_router)
app.include_router(orders_router)
app.include_router(seller_router)
app.include_router(audit_router)


@app.on_event("startup")
def _startup() -> None:
    logging.basicConfig(
        level=log_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db()


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}
