import asyncio

from scripts.seed_data import DEFAULT_ARTICLES, _seed
from services.api.app.services.order_store_factory import get_order_store


def test_seed_writes_catalog_once() -> None:
    assert asyncio.run(_seed("seller-1", replace=False)) == len(DEFAULT_ARTICLES)
    assert asyncio.run(_seed("seller-1", replace=False)) == 0

    catalog = asyncio.run(get_order_store().read_children("articles/seller-1"))
    assert catalog["apples"]["price"] == 3.2
    assert catalog["asparagus"]["available"] is False


def test_seed_replace_drops_stale_articles() -> None:
    store = get_order_store()
    asyncio.run(store.write("articles/seller-1/old", {"product_id": "old", "price": 1.0}))

    assert asyncio.run(_seed("seller-1", replace=True)) == len(DEFAULT_ARTICLES)
    catalog = asyncio.run(store.read_children("articles/seller-1"))
    assert "old" not in catalog
