import logging
from datetime import date, datetime, time, timedelta
from typing import List, Optional
from uuid import UUID

from tortoise import timezone
from tortoise.expressions import Q
from tortoise.query_utils import Prefetch
from tortoise.transactions import in_transaction

from app.core.exceptions import (
    OrderCreationFailedError,
    OrderNotFoundError,
    OrderNotModifiableError,
    OrderUpdateFailedError,
)
from app.models.order import Order, OrderItem, OrderStatus
from app.schemas.order import OrderItemRequest, OrderRecord, OrderUpdateRequest, PaginatedResult
from app.schemas.search import OrderSearchFilters
from app.services.order_helpers import (
    build_order_item_values,
    calculate_order_total,
    is_modifiable,
    order_record_from_model,
)
from app.services.pagination import create_paginated_result, get_pagination_params

log = logging.getLogger(__name__)


def _items_prefetch() -> Prefetch:
    # Items come back in insertion order
    return Prefetch("items", queryset=OrderItem.all().order_by("id"))


def _parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except ValueError:
        return None


class OrderRepository:
    """
    Transactional store (system of record) for the order aggregate.
    Every write runs inside a single transaction; a failure rolls back everything.
    """

    async def create(self, customer_id: str, items: List[OrderItemRequest]) -> OrderRecord:
        log.info(f"Creating new order for customer: {customer_id}")
        try:
            async with in_transaction() as conn:
                total = calculate_order_total(items)
                log.info(f"Calculated order total: {total}")

                # 1. Order header
                order = await Order.create(
                    customer_id=customer_id,
                    status=OrderStatus.PENDING,
                    total=total,
                    using_db=conn,
                )

                # 2. Item lines referencing the new order
                item_values = build_order_item_values(items)
                for values in item_values:
                    await OrderItem.create(order=order, using_db=conn, **values)
                log.info(f"Saved {len(item_values)} order items for order {order.uuid}")
        except Exception as e:
            log.error(f"Order creation transaction rolled back: {e}")
            raise OrderCreationFailedError(e) from e

        return await self.find_one_by_uuid(str(order.uuid))

    async def find_all(self, page: Optional[int] = None, limit: Optional[int] = None) -> PaginatedResult:
        params = get_pagination_params(page, limit)
        log.info(f"Finding all orders with pagination: page={params.page}, limit={params.limit}")
        return await self._paginate(Order.all(), params)

    async def find_by_customer(
        self, customer_id: str, page: Optional[int] = None, limit: Optional[int] = None
    ) -> PaginatedResult:
        params = get_pagination_params(page, limit)
        log.info(f"Finding orders for customer: {customer_id} (page={params.page}, limit={params.limit})")
        return await self._paginate(Order.filter(customer_id=customer_id), params)

    async def find_one(self, order_id: int) -> OrderRecord:
        order = await Order.get_or_none(id=order_id).prefetch_related(_items_prefetch())
        if not order:
            log.info(f"Order not found with ID: {order_id}")
            raise OrderNotFoundError(order_id)
        return order_record_from_model(order)

    async def find_one_by_uuid(self, uuid: str) -> OrderRecord:
        order = await self._get_by_uuid(uuid)
        record = order_record_from_model(order)
        log.info(f"Found order {uuid}, status: {record.status.value}, {len(record.items)} items")
        return record

    async def update(self, uuid: str, patch: OrderUpdateRequest) -> OrderRecord:
        log.info(f"Updating order with UUID: {uuid}")
        order = await self._get_by_uuid(uuid, with_items=False)

        # --- CRITICAL STATE MACHINE VALIDATION (before any transaction) ---
        if not is_modifiable(order.status):
            raise OrderNotModifiableError(order.status)

        try:
            async with in_transaction() as conn:
                # Each sub-update is its own statement, all inside one transaction
                if patch.items is not None:
                    await self._replace_items(conn, order, patch.items)
                if patch.status is not None:
                    log.info(f"Updating status for order {uuid} to {patch.status.value}")
                    await Order.filter(id=order.id).using_db(conn).update(
                        status=patch.status, updated_at=timezone.now()
                    )
                if patch.customer_id is not None:
                    log.info(f"Updating customer for order {uuid} to {patch.customer_id}")
                    await Order.filter(id=order.id).using_db(conn).update(
                        customer_id=patch.customer_id, updated_at=timezone.now()
                    )
        except Exception as e:
            log.error(f"Order update transaction rolled back: {e}")
            raise OrderUpdateFailedError(e) from e

        return await self.find_one_by_uuid(uuid)

    async def cancel(self, uuid: str) -> OrderRecord:
        log.info(f"Cancelling order with UUID: {uuid}")
        order = await self._get_by_uuid(uuid, with_items=False)

        if not is_modifiable(order.status):
            log.info(f"Cannot cancel order with status: {order.status.value}")
            raise OrderNotModifiableError(order.status)

        try:
            async with in_transaction() as conn:
                await Order.filter(id=order.id).using_db(conn).update(
                    status=OrderStatus.CANCELED, updated_at=timezone.now()
                )
        except Exception as e:
            log.error(f"Order cancel transaction rolled back: {e}")
            raise OrderUpdateFailedError(e) from e

        log.info(f"Order {uuid} status updated to CANCELED")
        return await self.find_one_by_uuid(uuid)

    async def search(
        self, filters: OrderSearchFilters, page: Optional[int] = None, limit: Optional[int] = None
    ) -> PaginatedResult:
        """
        Database rendition of the search filters. Only used when the index store is down,
        so it favours simplicity over speed.
        """
        params = get_pagination_params(page, limit)
        query = Order.all()

        if filters.uuid:
            parsed = _parse_uuid(filters.uuid)
            if parsed is None:
                return create_paginated_result([], 0, params.page, params.limit)
            query = query.filter(uuid=parsed)
        if filters.status:
            query = query.filter(status=filters.status)
        if filters.customer_id:
            query = query.filter(customer_id=filters.customer_id)
        if filters.date_from:
            query = query.filter(created_at__gte=self._day_start(filters.date_from))
        if filters.date_to:
            # Inclusive upper bound: the whole 'to' day
            query = query.filter(created_at__lt=self._day_start(filters.date_to) + timedelta(days=1))

        joins_items = bool(filters.product_id or filters.product_name or filters.item_terms)
        if not joins_items:
            return await self._paginate(query, params)

        if filters.product_id:
            query = query.filter(items__product_id=filters.product_id)
        if filters.product_name:
            query = query.filter(items__product_name__icontains=filters.product_name)
        if filters.item_terms:
            term_filter = Q(*[Q(items__product_name__icontains=term) for term in filters.item_terms], join_type="OR")
            query = query.filter(term_filter)

        # The join repeats an order once per matching item: dedupe before paging
        rows = await query.distinct().values_list("id", "created_at")
        unique_rows = {row[0]: row[1] for row in rows}
        ordered_ids = sorted(unique_rows, key=lambda oid: (unique_rows[oid], oid), reverse=True)
        page_ids = ordered_ids[params.skip:params.skip + params.limit]

        orders = await Order.filter(id__in=page_ids).prefetch_related(_items_prefetch())
        by_id = {order.id: order for order in orders}
        data = [order_record_from_model(by_id[oid]) for oid in page_ids if oid in by_id]
        return create_paginated_result(data, len(ordered_ids), params.page, params.limit)

    # ----------- Internals -----------

    async def _get_by_uuid(self, uuid: str, with_items: bool = True) -> Order:
        parsed = _parse_uuid(uuid)
        if parsed is None:
            log.warning(f"Invalid UUID format {uuid}, treating as not found")
            raise OrderNotFoundError(uuid)

        query = Order.get_or_none(uuid=parsed)
        if with_items:
            query = query.prefetch_related(_items_prefetch())
        order = await query
        if not order:
            log.info(f"Order not found with UUID: {uuid}")
            raise OrderNotFoundError(uuid)
        return order

    async def _replace_items(self, conn, order: Order, items: List[OrderItemRequest]) -> None:
        """Items are replaced wholesale: delete all, insert the new list, recompute the total."""
        log.info(f"Deleting existing items for order {order.uuid}")
        await OrderItem.filter(order_id=order.id).using_db(conn).delete()

        total = calculate_order_total(items)
        for values in build_order_item_values(items):
            await OrderItem.create(order_id=order.id, using_db=conn, **values)

        log.info(f"Updating order {order.uuid} total to {total}")
        await Order.filter(id=order.id).using_db(conn).update(total=total, updated_at=timezone.now())

    async def _paginate(self, query, params) -> PaginatedResult:
        total = await query.count()
        orders = await (
            query.order_by("-created_at", "-id")
            .offset(params.skip)
            .limit(params.limit)
            .prefetch_related(_items_prefetch())
        )
        log.info(f"Found {len(orders)} orders (total: {total})")
        data = [order_record_from_model(order) for order in orders]
        return create_paginated_result(data, total, params.page, params.limit)

    @staticmethod
    def _day_start(value: str) -> datetime:
        start = datetime.combine(date.fromisoformat(value), time.min)
        if timezone.get_use_tz():
            start = start.replace(tzinfo=timezone.get_default_timezone())
        return start
