from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

BUYER = {"X-User-Id": "buyer-1"}


@pytest.fixture()
def client() -> Iterator[TestClient]:
    from services.api.app.main import app

    with TestClient(app) as c:
        yield c


def _place(client: TestClient, pickup: dict, product_id: str = "P1") -> dict:
    client.delete("/v1/basket", headers=BUYER)
    client.post(
        "/v1/basket/items",
        headers=BUYER,
        json={"product_id": product_id, "unit_price": 1.0, "quantity": 1},
    )
    r = client.post("/v1/orders", headers=BUYER, json={"pickup_date": pickup["pickup_date"]})
    assert r.status_code == 200, r.text
    return r.json()


def test_feed_replays_existing_orders_then_streams_changes(client: TestClient) -> None:
    dates = [d for d in client.get("/v1/pickup-dates").json() if d["orderable"]]
    first = _place(client, dates[0])

    with client.websocket_connect("/v1/sellers/seller-1/orders/feed") as ws:
        added = ws.receive_json()
        assert added["version"] == "1"
        assert added["type"] == "ADDED"
        assert added["date_key"] == first["date_key"]
        assert added["order_id"] == first["order"]["id"]
        assert added["value"]["status"] == "PLACED"

        second = _place(client, dates[1], product_id="P2")
        event = ws.receive_json()
        assert (event["type"], event["order_id"]) == ("ADDED", second["order"]["id"])

        client.delete(f"/v1/orders/{first['date_key']}/{first['order']['id']}", headers=BUYER)
        event = ws.receive_json()
        assert (event["type"], event["order_id"]) == ("CHANGED", first["order"]["id"])
        assert event["value"]["status"] == "CANCELLED"

        hide_url = f"/v1/sellers/seller-1/orders/{second['date_key']}/{second['order']['id']}/hide"
        client.post(hide_url, headers={"X-User-Id": "seller-1"})
        event = ws.receive_json()
        assert event["type"] == "REMOVED"
        assert event["key"] == f"{second['date_key']}/{second['order']['id']}"
        assert event["value"]["status"] == "PLACED"


def test_feed_closes_when_backend_is_misconfigured(client: TestClient, monkeypatch) -> None:
    from starlette.websockets import WebSocketDisconnect

    monkeypatch.setenv("MARKET_STORE_BACKEND", "nosuch")
    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect("/v1/sellers/seller-1/orders/feed") as ws:
            ws.receive_json()
    assert excinfo.value.code == 1011


def test_feed_closes_when_store_read_fails(client: TestClient, monkeypatch) -> None:
    from services.api.app.routers import seller
    from services.api.app.services.lifecycle_errors import StoreUnavailableError
    from services.api.app.services.order_store_memory import InMemoryOrderStore
    from starlette.websockets import WebSocketDisconnect

    class _Down(InMemoryOrderStore):
        async def read_children(self, path: str) -> dict:
            raise StoreUnavailableError("read", path)

    monkeypatch.setattr(seller, "get_order_store", lambda: _Down())
    with client.websocket_connect("/v1/sellers/seller-1/orders/feed") as ws:
        with pytest.raises(WebSocketDisconnect) as excinfo:
            ws.receive_json()
    assert excinfo.value.code == 1011
