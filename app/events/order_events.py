import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from app.core.config import ORDER_EVENTS_TOPIC, SERVICE_SOURCE
from app.schemas.order import OrderRecord

log = logging.getLogger(__name__)

EVENT_ORDER_CREATED = "order_created"
EVENT_ORDER_STATUS_UPDATED = "order_status_updated"
EVENT_VERSION = "1.0"


class OrderEventType(str, Enum):
    CREATED = "order.created"
    UPDATED = "order.updated"
    CANCELED = "order.canceled"
    DELETED = "order.deleted"


@dataclass
class OrderEvent:
    """In-process notification emitted after a committed write."""
    type: OrderEventType
    order_uuid: str
    order: Optional[OrderRecord] = None
    previous_status: Optional[str] = None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _metadata() -> Dict[str, str]:
    return {"source": SERVICE_SOURCE, "version": EVENT_VERSION, "timestamp": _now_iso()}


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def build_order_created_payload(order: OrderRecord) -> Dict[str, Any]:
    return {
        "event_type": EVENT_ORDER_CREATED,
        "order_id": order.uuid,
        "customer_id": order.customer_id,
        "status": order.status.value,
        "total": order.total,
        "items_count": len(order.items),
        "created_at": _isoformat(order.created_at),
        "metadata": _metadata(),
    }


def build_order_status_updated_payload(order: OrderRecord, previous_status: Optional[str]) -> Dict[str, Any]:
    return {
        "event_type": EVENT_ORDER_STATUS_UPDATED,
        "order_id": order.uuid,
        "customer_id": order.customer_id,
        "previous_status": previous_status,
        "new_status": order.status.value,
        "updated_at": _isoformat(order.updated_at) or _now_iso(),
        "metadata": _metadata(),
    }


class OrderEventsPublisher:
    """Listener that announces order lifecycle events on the message bus."""

    def __init__(self, publisher, topic: str = ORDER_EVENTS_TOPIC):
        self.publisher = publisher
        self.topic = topic

    async def handle(self, event: OrderEvent) -> None:
        if event.order is None:
            return

        if event.type == OrderEventType.CREATED:
            payload = build_order_created_payload(event.order)
        elif event.type in (OrderEventType.UPDATED, OrderEventType.CANCELED):
            payload = build_order_status_updated_payload(event.order, event.previous_status)
        else:
            return

        log.info(f"Publishing event {payload['event_type']} for order {event.order_uuid}")
        try:
            await self.publisher.publish(
                self.topic,
                payload,
                key=f"order-{event.order_uuid}",
                headers={
                    "timestamp": payload["metadata"]["timestamp"],
                    "source": SERVICE_SOURCE,
                    "event_type": payload["event_type"],
                },
            )
        except Exception as e:
            log.error(f"Error publishing {payload['event_type']} event for order {event.order_uuid}: {e}")
