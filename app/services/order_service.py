import asyncio
import logging
from typing import Iterable, List, Optional, Set

from app.core.exceptions import (
    OrderOperationFailedError,
    TransactionFailedError,
    ValidationFailedError,
)
from app.events.order_events import OrderEvent, OrderEventType
from app.schemas.order import OrderCreateRequest, OrderRecord, OrderUpdateRequest, PaginatedResult
from app.services.order_helpers import validate_order_create, validate_order_update
from app.services.order_repository import OrderRepository

log = logging.getLogger(__name__)


class OrderService:
    """
    Sequences the repository, the index projector and the event listeners.

    WRITE PATH: the repository commit completes first, then an OrderEvent is handed
    to every listener as a background task (write-then-notify).
    READ PATH: the index is a read optimization only; every read falls back to the
    repository when the index fails or has nothing.
    """

    def __init__(self, repository: OrderRepository, projector=None, listeners: Optional[Iterable] = None):
        self.repository = repository
        self.projector = projector
        self.listeners: List = list(listeners or [])
        self._pending: Set[asyncio.Task] = set()

    # ----------- Writes -----------

    async def create(self, payload: OrderCreateRequest) -> OrderRecord:
        errors = validate_order_create(payload)
        if errors:
            raise ValidationFailedError(errors)

        try:
            order = await self.repository.create(payload.customer_id, payload.items)
        except TransactionFailedError as e:
            log.error(f"Order creation failed: {e.cause}")
            raise OrderOperationFailedError("Failed to create order") from e

        log.info(f"Order {order.uuid} created with total {order.total}")
        self._notify(OrderEvent(type=OrderEventType.CREATED, order_uuid=order.uuid, order=order))
        return order

    async def update(self, uuid: str, patch: OrderUpdateRequest) -> OrderRecord:
        errors = validate_order_update(patch)
        if errors:
            raise ValidationFailedError(errors)

        # Not found propagates unchanged
        current = await self.repository.find_one_by_uuid(uuid)

        try:
            order = await self.repository.update(uuid, patch)
        except TransactionFailedError as e:
            log.error(f"Order update failed for {uuid}: {e.cause}")
            raise OrderOperationFailedError("Failed to update order") from e

        self._notify(
            OrderEvent(
                type=OrderEventType.UPDATED,
                order_uuid=order.uuid,
                order=order,
                previous_status=current.status.value,
            )
        )
        return order

    async def cancel(self, uuid: str) -> OrderRecord:
        current = await self.repository.find_one_by_uuid(uuid)

        try:
            order = await self.repository.cancel(uuid)
        except TransactionFailedError as e:
            log.error(f"Order cancellation failed for {uuid}: {e.cause}")
            raise OrderOperationFailedError("Failed to update order") from e

        self._notify(
            OrderEvent(
                type=OrderEventType.CANCELED,
                order_uuid=order.uuid,
                order=order,
                previous_status=current.status.value,
            )
        )
        return order

    # ----------- Reads -----------

    async def find_one(self, order_id: int) -> OrderRecord:
        order = await self.repository.find_one(order_id)
        if self.projector is None:
            return order
        try:
            return await self.projector.find_one_by_uuid(order.uuid)
        except Exception as e:
            log.debug(f"Index lookup for order {order.uuid} failed, keeping database result: {e}")
            return order

    async def find_one_by_uuid(self, uuid: str) -> OrderRecord:
        if self.projector is not None:
            try:
                return await self.projector.find_one_by_uuid(uuid)
            except Exception as e:
                log.warning(f"Index lookup for order {uuid} failed, falling back to database: {e}")
        return await self.repository.find_one_by_uuid(uuid)

    async def find_all(self, page: Optional[int] = None, limit: Optional[int] = None) -> PaginatedResult:
        if self.projector is not None:
            try:
                return await self.projector.find_all(page, limit)
            except Exception as e:
                log.warning(f"Index listing failed, falling back to database: {e}")
        return await self.repository.find_all(page, limit)

    async def find_by_customer(
        self, customer_id: str, page: Optional[int] = None, limit: Optional[int] = None
    ) -> PaginatedResult:
        if self.projector is not None:
            try:
                return await self.projector.find_by_customer(customer_id, page, limit)
            except Exception as e:
                log.warning(f"Index lookup for customer {customer_id} failed, falling back to database: {e}")
        return await self.repository.find_by_customer(customer_id, page, limit)

    # ----------- Notifications -----------

    def _notify(self, event: OrderEvent) -> None:
        for listener in self.listeners:
            task = asyncio.create_task(self._run_listener(listener, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _run_listener(self, listener, event: OrderEvent) -> None:
        try:
            await listener.handle(event)
        except Exception:
            log.exception(f"Listener {type(listener).__name__} failed for {event.type.value} on order {event.order_uuid}")

    async def drain(self) -> None:
        """Waits for every notification dispatched so far."""
        while True:
            pending = [task for task in self._pending if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)
