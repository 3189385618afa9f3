from __future__ import annotations

import argparse
import asyncio
import os

from services.api.app.config import seller_id
from services.api.app.services.order_lifecycle import catalog_path
from services.api.app.services.order_store_factory import get_order_store

DEFAULT_ARTICLES = (
    # product_id, name, unit, price, available
    ("apples", "Apples", "kg", 3.2, True),
    ("carrots", "Carrots", "kg", 1.8, True),
    ("eggs", "Free-range eggs", "piece", 0.45, True),
    ("honey", "Forest honey", "jar", 7.5, True),
    ("asparagus", "White asparagus", "kg", 12.0, False),
)


async def _seed(seller: str, replace: bool) -> int:
    store = get_order_store()
    base = catalog_path(seller)

    existing = await store.read_children(base)
    if existing and not replace:
        print(f"Catalog for seller={seller} already has {len(existing)} articles; use --replace")
        return 0

    await store.delete(base)
    for product_id, name, unit, price, available in DEFAULT_ARTICLES:
        await store.write(
            f"{base}/{product_id}",
            {
                "product_id": product_id,
                "product_name": name,
                "unit": unit,
                "price": price,
                "available": available,
            },
        )
    return len(DEFAULT_ARTICLES)


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed a seller catalog for Market Orders")
    parser.add_argument("--seller-id", default=None)
    parser.add_argument("--replace", action="store_true", help="overwrite an existing catalog")
    args = parser.parse_args()

    # Seeding the in-process memory store would be lost on exit.
    os.environ.setdefault("MARKET_STORE_BACKEND", "sql")
    os.environ.setdefault("MARKET_DB_AUTO_CREATE", "true")

    seller = args.seller_id or seller_id()
    count = asyncio.run(_seed(seller, args.replace))
    print(f"Seeded seller={seller} articles={count}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
