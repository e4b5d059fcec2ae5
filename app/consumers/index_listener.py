import logging

from app.events.order_events import OrderEvent, OrderEventType

log = logging.getLogger(__name__)


class IndexProjectionListener:
    """
    Keeps the index store in line with committed order writes.
    Any propagation failure becomes a reconciliation record; nothing is raised.
    """

    def __init__(self, projector, recorder):
        self.projector = projector
        self.recorder = recorder

    async def handle(self, event: OrderEvent) -> None:
        log.info(f"Processing {event.type.value} event for order {event.order_uuid}")

        if event.type == OrderEventType.CREATED:
            operation = "index"
        elif event.type in (OrderEventType.UPDATED, OrderEventType.CANCELED):
            # Canceled orders stay searchable with their new status
            operation = "update"
        elif event.type == OrderEventType.DELETED:
            operation = "delete"
        else:
            log.warning(f"No index handler for event type: {event.type}")
            return

        try:
            if operation == "index":
                await self.projector.index_order(event.order)
            elif operation == "update":
                await self.projector.update_order(event.order)
            else:
                await self.projector.delete_order(event.order_uuid)
        except Exception as e:
            log.error(f"Index {operation} failed for order {event.order_uuid}, recording for reconciliation: {e}")
            await self.recorder.record_failed_operation(operation, event.order_uuid, str(e))
