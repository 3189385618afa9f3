"""Order lifecycle: turning a basket into a dated order and keeping it consistent.

Store layout::

    orders/{seller_id}/{date_key}/{order_id}        order record (no id field)
    buyer_profile/{user_id}/placed_order_ids/{dk}   order id, one per pickup day
    articles/{seller_id}/{article_id}               catalog entry

The order record and the buyer index live at two paths and are written one
after the other. An order whose index write fails twice is reported with
``BuyerIndexUpdateFailedError``; the order itself stays written, and the
next placement for that buyer and day finds it and links it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from packages.shared.schemas.events import EntityTypeV1, EventTypeV1
from services.api.app.models.basket import Basket
from services.api.app.models.merge import (
    MergeConfirmResponse,
    MergePreviewResponse,
    MergeResolution,
)
from services.api.app.models.order import (
    Article,
    BuyerProfile,
    CancelOrderResponse,
    CleanUpResult,
    Order,
    OrderedLineItem,
    OrderLookupMode,
    OrderOut,
    OrderStatus,
)
from services.api.app.services.audit_log import AuditLog
from services.api.app.services.basket_reconciler import (
    apply_resolutions,
    detect_conflicts,
    resolve,
    unresolved_product_ids,
)
from services.api.app.services.basket_store import InMemoryBasketStore
from services.api.app.services.edit_window import EditWindowPolicy
from services.api.app.services.lifecycle_errors import (
    AlreadyPlacedOrderError,
    BuyerIndexUpdateFailedError,
    EditWindowClosedError,
    EmptyBasketError,
    MergeUnresolvedError,
    NotAuthenticatedError,
    OrderNotFoundError,
    PickupDateExpiredError,
    StoreUnavailableError,
)
from services.api.app.services.order_store_base import OrderStore

logger = logging.getLogger(__name__)


def order_path(seller_id: str, date_key: str, order_id: str) -> str:
    return f"orders/{seller_id}/{date_key}/{order_id}"


def profile_path(user_id: str) -> str:
    return f"buyer_profile/{user_id}"


def index_path(user_id: str, date_key: str) -> str:
    return f"buyer_profile/{user_id}/placed_order_ids/{date_key}"


def catalog_path(seller_id: str) -> str:
    return f"articles/{seller_id}"


@dataclass
class _Flight:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class SingleFlight:
    """Keyed async locks, dropped again once nobody holds or waits for them."""

    def __init__(self) -> None:
        self._flights: dict[tuple[str, str], _Flight] = {}

    @asynccontextmanager
    async def hold(self, key: tuple[str, str]) -> AsyncIterator[None]:
        flight = self._flights.get(key)
        if flight is None:
            flight = self._flights[key] = _Flight()
        flight.holders += 1
        try:
            async with flight.lock:
                yield
        finally:
            flight.holders -= 1
            if flight.holders == 0:
                del self._flights[key]

    def __len__(self) -> int:
        return len(self._flights)


# Shared by every controller in the process, so concurrent requests for the
# same buyer and pickup day queue behind each other.
placement_locks = SingleFlight()


class OrderLifecycleController:
    def __init__(
        self,
        store: OrderStore,
        baskets: InMemoryBasketStore,
        policy: EditWindowPolicy,
        audit: AuditLog,
        *,
        seller_id: str,
        strict_merge: bool = False,
        clock: Callable[[], datetime] | None = None,
        locks: SingleFlight | None = None,
    ) -> None:
        self._store = store
        self._baskets = baskets
        self._policy = policy
        self._audit = audit
        self._seller_id = seller_id
        self._strict_merge = strict_merge
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._locks = locks if locks is not None else placement_locks

    @property
    def seller_id(self) -> str:
        return self._seller_id

    @property
    def policy(self) -> EditWindowPolicy:
        return self._policy

    def now(self) -> datetime:
        return self._clock()

    def describe(self, order: Order) -> OrderOut:
        now = self.now()
        return OrderOut(
            order=order,
            date_key=self._policy.date_key(order.pickup_date),
            can_edit=self._policy.can_edit(order.pickup_date, now),
            window_status=self._policy.window_status(order.pickup_date, now).value,
            deadline=self._policy.deadline_for(order.pickup_date),
            deadline_warning_level=self._policy.deadline_warning_level(
                order.pickup_date, now
            ).value,
            total=order.total,
        )

    async def load_order(self, seller_id: str, date_key: str, order_id: str) -> Order:
        record = await self._store.read(order_path(seller_id, date_key, order_id))
        if not isinstance(record, dict):
            raise OrderNotFoundError(seller_id, date_key, order_id)
        return Order.from_record(order_id, record)

    async def load_buyer_order(self, user_id: str | None, date_key: str, order_id: str) -> Order:
        """One of the buyer's own orders, cancelled ones included."""
        user_id = _require_user(user_id)
        order = await self.load_order(self._seller_id, date_key, order_id)
        _require_owner(order, user_id, date_key)
        return order

    async def load_buyer_profile(self, user_id: str | None) -> BuyerProfile:
        user_id = _require_user(user_id)
        record = await self._store.read(profile_path(user_id))
        return BuyerProfile.model_validate({**(record or {}), "id": user_id})

    async def load_buyer_orders(self, user_id: str | None) -> list[Order]:
        """Orders in the buyer's index, newest pickup first, without buyer-hidden ones."""
        profile = await self.load_buyer_profile(user_id)
        orders = [
            order
            for order in await self._load_indexed(profile.placed_order_ids)
            if not order.hidden_by_buyer
        ]
        return sorted(orders, key=lambda o: o.pickup_date, reverse=True)

    async def get_editable_or_upcoming_order(
        self,
        user_id: str | None,
        placed_order_ids: Mapping[str, str] | None = None,
        mode: OrderLookupMode = OrderLookupMode.EDITABLE,
    ) -> Order | None:
        """Latest-pickup order that is still editable (or still ahead, for UPCOMING)."""
        if placed_order_ids is None:
            placed_order_ids = (await self.load_buyer_profile(user_id)).placed_order_ids

        now = self.now()
        best: Order | None = None
        for order in await self._load_indexed(placed_order_ids):
            if order.status is OrderStatus.CANCELLED:
                continue
            if mode is OrderLookupMode.EDITABLE:
                eligible = self._policy.can_edit(order.pickup_date, now)
            else:
                eligible = order.pickup_date > now
            if eligible and (best is None or order.pickup_date > best.pickup_date):
                best = order
        return best

    async def list_seller_orders(
        self,
        seller_id: str,
        date_key: str | None = None,
        *,
        include_hidden: bool = False,
    ) -> list[Order]:
        if date_key is not None:
            records = await self._store.read_children(f"orders/{seller_id}/{date_key}")
        else:
            records = {}
            for by_day in (await self._store.read_children(f"orders/{seller_id}")).values():
                if isinstance(by_day, dict):
                    records.update(by_day)

        orders = [
            Order.from_record(order_id, record)
            for order_id, record in records.items()
            if isinstance(record, dict)
        ]
        if not include_hidden:
            orders = [o for o in orders if not o.hidden_by_seller]
        return sorted(orders, key=lambda o: (o.pickup_date, o.created_at))

    async def place_order(
        self,
        user_id: str | None,
        basket: Basket,
        pickup_date: datetime,
        buyer_profile: BuyerProfile | None = None,
        *,
        message: str = "",
    ) -> Order:
        user_id = _require_user(user_id)
        if basket.is_empty():
            raise EmptyBasketError()

        date_key = self._policy.date_key(pickup_date)
        async with self._locks.hold((user_id, date_key)):
            profile = await self.load_buyer_profile(user_id)
            existing_id = profile.placed_order_ids.get(date_key)
            if existing_id:
                raise AlreadyPlacedOrderError(date_key, existing_id)

            unlinked = await self._find_unlinked_order(user_id, date_key)
            if unlinked is not None:
                # An earlier placement wrote the order but not the index entry.
                logger.info(
                    "relinking order order_id=%s date_key=%s user=%s",
                    unlinked.id,
                    date_key,
                    user_id,
                )
                await self._link_buyer_index(user_id, unlinked, date_key)
                raise AlreadyPlacedOrderError(date_key, unlinked.id)

            now = self.now()
            if not self._policy.is_pickup_date_still_offerable(pickup_date, now):
                raise PickupDateExpiredError(date_key)

            buyer = (buyer_profile or profile).model_copy(
                update={"id": user_id, "placed_order_ids": {}}
            )
            order_id = await self._store.allocate_key(f"orders/{self._seller_id}/{date_key}")
            path = order_path(self._seller_id, date_key, order_id)
            order = Order(
                id=order_id,
                seller_id=self._seller_id,
                buyer_profile=buyer,
                created_at=now,
                pickup_date=pickup_date,
                message=message,
                items=await self._assign_item_ids(path, basket.items),
            )
            await self._store.write(path, order.to_record())
            logger.info(
                "order placed order_id=%s date_key=%s user=%s", order_id, date_key, user_id
            )

            await self._link_buyer_index(user_id, order, date_key)

        self._record(
            user_id,
            EntityTypeV1.ORDER,
            order.id,
            EventTypeV1.ORDER_PLACED,
            {"date_key": date_key, "items": len(order.items), "total": order.total},
        )
        self._baskets.load_order(user_id, order, date_key)
        return order

    async def preview_merge(
        self,
        user_id: str | None,
        basket: Basket,
        pickup_date: datetime,
    ) -> MergePreviewResponse:
        """Existing order for ``pickup_date`` plus the conflicts a merge would raise."""
        profile = await self.load_buyer_profile(user_id)
        date_key = self._policy.date_key(pickup_date)
        order_id = profile.placed_order_ids.get(date_key)
        if not order_id:
            raise OrderNotFoundError(self._seller_id, date_key, "")

        existing = await self.load_order(self._seller_id, date_key, order_id)
        return MergePreviewResponse(
            existing_order=existing,
            date_key=date_key,
            conflicts=detect_conflicts(basket.items, existing.items),
        )

    async def merge_into_existing(
        self,
        user_id: str | None,
        existing_order: Order,
        basket: Basket,
        resolutions: Mapping[str, MergeResolution],
    ) -> MergeConfirmResponse:
        user_id = _require_user(user_id)
        date_key = self._policy.date_key(existing_order.pickup_date)
        current = await self._load_owned(
            user_id, existing_order.seller_id, date_key, existing_order.id
        )
        self._require_editable(current, date_key)

        conflicts = apply_resolutions(detect_conflicts(basket.items, current.items), resolutions)
        undecided = unresolved_product_ids(conflicts)
        if undecided and self._strict_merge:
            raise MergeUnresolvedError(undecided)
        if undecided:
            logger.info(
                "merge kept existing quantities order_id=%s products=%s", current.id, undecided
            )

        path = order_path(current.seller_id, date_key, current.id)
        merged = await self._assign_item_ids(path, resolve(current.items, basket.items, conflicts))
        await self._write_items(path, merged)
        updated = current.model_copy(update={"items": merged})

        self._record(
            user_id,
            EntityTypeV1.ORDER,
            updated.id,
            EventTypeV1.ORDER_MERGED,
            {
                "date_key": date_key,
                "conflicts": len(conflicts),
                "defaulted_product_ids": undecided,
            },
        )
        self._baskets.load_order(user_id, updated, date_key)
        return MergeConfirmResponse(
            order=updated, date_key=date_key, defaulted_product_ids=undecided
        )

    async def update_order(
        self,
        user_id: str | None,
        order: Order,
        new_items: list[OrderedLineItem],
    ) -> Order:
        """Replace the order's items; status and id stay as they are."""
        user_id = _require_user(user_id)
        date_key = self._policy.date_key(order.pickup_date)
        current = await self._load_owned(user_id, order.seller_id, date_key, order.id)
        self._require_editable(current, date_key)

        path = order_path(current.seller_id, date_key, current.id)
        items = await self._assign_item_ids(path, new_items)
        await self._write_items(path, items)
        updated = current.model_copy(update={"items": items})
        logger.info(
            "order updated order_id=%s date_key=%s items=%d", updated.id, date_key, len(items)
        )

        self._record(
            user_id,
            EntityTypeV1.ORDER,
            updated.id,
            EventTypeV1.ORDER_UPDATED,
            {"date_key": date_key, "items": len(items), "total": updated.total},
        )
        if self._baskets.get(user_id).loaded_order_info() == (updated.id, date_key):
            self._baskets.load_order(user_id, updated, date_key)
        return updated

    async def cancel_order(
        self,
        user_id: str | None,
        seller_id: str,
        date_key: str,
        order_id: str,
    ) -> CancelOrderResponse:
        """Mark the order CANCELLED and drop it from the buyer index.

        The record is kept for the seller's history. A record that is already
        gone counts as cancelled; the index entry is still removed.
        """
        user_id = _require_user(user_id)
        path = order_path(seller_id, date_key, order_id)

        record = await self._store.read(path)
        if not isinstance(record, dict):
            logger.info("cancel of missing order treated as done order_id=%s", order_id)
            await self._unlink_buyer_index(user_id, date_key, order_id)
            return CancelOrderResponse(
                order_id=order_id,
                date_key=date_key,
                status=OrderStatus.CANCELLED.value,
                already_missing=True,
            )

        order = Order.from_record(order_id, record)
        _require_owner(order, user_id, date_key)
        self._require_editable(order, date_key)

        if order.status is not OrderStatus.CANCELLED:
            await self._store.write(f"{path}/status", OrderStatus.CANCELLED.value)
        await self._unlink_buyer_index(user_id, date_key, order_id)

        if self._baskets.get(user_id).loaded_order_info() == (order_id, date_key):
            self._baskets.clear(user_id)

        self._record(
            user_id,
            EntityTypeV1.ORDER,
            order_id,
            EventTypeV1.ORDER_CANCELLED,
            {"date_key": date_key},
        )
        return CancelOrderResponse(
            order_id=order_id, date_key=date_key, status=OrderStatus.CANCELLED.value
        )

    async def reorder_with_new_date(
        self,
        user_id: str | None,
        items: list[OrderedLineItem],
        new_pickup_date: datetime,
    ) -> Basket:
        """Fresh basket with current catalog prices for ``new_pickup_date``; nothing is saved.

        Items no longer available keep their old price and are listed in
        ``unavailable_product_ids``.
        """
        user_id = _require_user(user_id)
        date_key = self._policy.date_key(new_pickup_date)
        if not self._policy.is_pickup_date_still_offerable(new_pickup_date, self.now()):
            raise PickupDateExpiredError(date_key)

        catalog = await self._load_catalog(self._seller_id)

        repriced: list[OrderedLineItem] = []
        unavailable: list[str] = []
        for item in items:
            article = catalog.get(item.product_id)
            if article is None or not article.available:
                unavailable.append(item.product_id)
                repriced.append(item.model_copy(update={"id": ""}))
                continue
            repriced.append(
                item.model_copy(
                    update={
                        "id": "",
                        "unit_price": article.price,
                        "product_name": article.product_name or item.product_name,
                        "unit": article.unit or item.unit,
                    }
                )
            )

        basket = self._baskets.set(
            user_id,
            Basket(
                items=repriced,
                selected_pickup_date=new_pickup_date,
                unavailable_product_ids=unavailable,
            ),
        )
        self._record(
            user_id,
            EntityTypeV1.BASKET,
            user_id,
            EventTypeV1.BASKET_REORDERED,
            {"date_key": date_key, "items": len(repriced), "unavailable": unavailable},
        )
        return basket

    async def hide_order_for_buyer(
        self, user_id: str | None, date_key: str, order_id: str
    ) -> Order:
        user_id = _require_user(user_id)
        order = await self._load_owned(user_id, self._seller_id, date_key, order_id)
        return await self._hide(order, date_key, "hidden_by_buyer", user_id)

    async def hide_order_for_seller(
        self, user_id: str | None, seller_id: str, date_key: str, order_id: str
    ) -> Order:
        user_id = _require_user(user_id)
        order = await self.load_order(seller_id, date_key, order_id)
        return await self._hide(order, date_key, "hidden_by_seller", user_id)

    async def cleanup_buyer(self, user_id: str | None) -> CleanUpResult:
        """Cancel the buyer's future orders, keep past ones, then delete the profile.

        Future orders whose edit window already closed are left for the
        seller and reported as skipped.
        """
        profile = await self.load_buyer_profile(user_id)
        user_id = profile.id
        now = self.now()
        result = CleanUpResult()

        for date_key, order_id in sorted(profile.placed_order_ids.items()):
            path = order_path(self._seller_id, date_key, order_id)
            try:
                record = await self._store.read(path)
                if not isinstance(record, dict):
                    continue
                order = Order.from_record(order_id, record)
                if order.pickup_date <= now or order.status is OrderStatus.CANCELLED:
                    continue

                result.future_order_ids.append(order_id)
                if not self._policy.can_edit(order.pickup_date, now):
                    result.skipped_orders.append(order_id)
                    continue
                await self._store.write(f"{path}/status", OrderStatus.CANCELLED.value)
                result.cancelled_orders.append(order_id)
            except StoreUnavailableError as e:
                logger.warning("cleanup could not cancel order_id=%s: %s", order_id, e)
                result.errors.append(str(e))

        try:
            await self._store.delete(profile_path(user_id))
            result.profile_deleted = True
        except StoreUnavailableError as e:
            logger.warning("cleanup could not delete profile user=%s: %s", user_id, e)
            result.errors.append(str(e))

        self._baskets.clear(user_id)
        self._record(
            user_id,
            EntityTypeV1.BUYER_PROFILE,
            user_id,
            EventTypeV1.BUYER_CLEANED_UP,
            result.model_dump(mode="json"),
        )
        return result

    async def _load_owned(
        self, user_id: str, seller_id: str, date_key: str, order_id: str
    ) -> Order:
        order = await self.load_order(seller_id, date_key, order_id)
        _require_owner(order, user_id, date_key)
        if order.status is OrderStatus.CANCELLED:
            raise OrderNotFoundError(seller_id, date_key, order_id)
        return order

    async def _load_indexed(self, placed_order_ids: Mapping[str, str]) -> list[Order]:
        orders: list[Order] = []
        for date_key, order_id in placed_order_ids.items():
            try:
                orders.append(await self.load_order(self._seller_id, date_key, order_id))
            except OrderNotFoundError:
                logger.debug("index points at missing order %s/%s", date_key, order_id)
        return orders

    async def _find_unlinked_order(self, user_id: str, date_key: str) -> Order | None:
        records = await self._store.read_children(f"orders/{self._seller_id}/{date_key}")
        for order_id, record in records.items():
            if not isinstance(record, dict):
                continue
            order = Order.from_record(order_id, record)
            if order.buyer_profile.id == user_id and order.status is OrderStatus.PLACED:
                return order
        return None

    async def _load_catalog(self, seller_id: str) -> dict[str, Article]:
        catalog: dict[str, Article] = {}
        records = await self._store.read_children(catalog_path(seller_id))
        for article_id, record in records.items():
            if not isinstance(record, dict):
                continue
            article = Article.model_validate({**record, "id": article_id})
            catalog.setdefault(article.product_id, article)
        return catalog

    def _require_editable(self, order: Order, date_key: str) -> None:
        if not self._policy.can_edit(order.pickup_date, self.now()):
            raise EditWindowClosedError(
                date_key, self._policy.deadline_for(order.pickup_date).isoformat()
            )

    async def _assign_item_ids(
        self, path: str, items: list[OrderedLineItem]
    ) -> list[OrderedLineItem]:
        out: list[OrderedLineItem] = []
        for item in items:
            if not item.id:
                item_id = await self._store.allocate_key(f"{path}/items")
                item = item.model_copy(update={"id": item_id})
            out.append(item)
        return out

    async def _write_items(self, path: str, items: list[OrderedLineItem]) -> None:
        await self._store.write(f"{path}/items", [item.model_dump(mode="json") for item in items])

    async def _link_buyer_index(self, user_id: str, order: Order, date_key: str) -> None:
        path = index_path(user_id, date_key)
        try:
            await self._store.write(path, order.id)
            return
        except StoreUnavailableError as e:
            logger.warning("buyer index write failed, retrying order_id=%s: %s", order.id, e)
            self._record(
                user_id,
                EntityTypeV1.BUYER_PROFILE,
                user_id,
                EventTypeV1.BUYER_INDEX_RETRIED,
                {"order_id": order.id, "date_key": date_key},
            )

        try:
            await self._store.write(path, order.id)
        except StoreUnavailableError as e:
            logger.error("buyer index write failed twice order_id=%s: %s", order.id, e)
            self._record(
                user_id,
                EntityTypeV1.BUYER_PROFILE,
                user_id,
                EventTypeV1.BUYER_INDEX_FAILED,
                {"order_id": order.id, "date_key": date_key},
            )
            raise BuyerIndexUpdateFailedError(order, date_key) from e

    async def _unlink_buyer_index(self, user_id: str, date_key: str, order_id: str) -> None:
        path = index_path(user_id, date_key)
        # Only drop the entry if it still points at this order.
        if await self._store.read(path) == order_id:
            await self._store.delete(path)

    async def _hide(
        self, order: Order, date_key: str, flag: str, user_id: str | None
    ) -> Order:
        path = order_path(order.seller_id, date_key, order.id)
        await self._store.write(f"{path}/{flag}", True)
        self._record(
            user_id,
            EntityTypeV1.ORDER,
            order.id,
            EventTypeV1.ORDER_HIDDEN,
            {"date_key": date_key, "flag": flag},
        )
        return order.model_copy(update={flag: True})

    def _record(
        self,
        user_id: str | None,
        entity_type: EntityTypeV1,
        entity_id: str,
        event_type: EventTypeV1,
        payload: dict[str, Any],
    ) -> None:
        self._audit.record(
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            event_type=event_type,
            payload=payload,
        )


def _require_user(user_id: str | None) -> str:
    if not user_id:
        raise NotAuthenticatedError()
    return user_id


def _require_owner(order: Order, user_id: str, date_key: str) -> None:
    # Someone else's order is reported as missing rather than forbidden.
    if order.buyer_profile.id != user_id:
        raise OrderNotFoundError(order.seller_id, date_key, order.id)
