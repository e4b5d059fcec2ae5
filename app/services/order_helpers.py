from typing import Iterable, List, Optional, Sequence

from app.models.order import FINAL_STATUSES, Order, OrderStatus
from app.schemas.order import (
    OrderCreateRequest,
    OrderItemRecord,
    OrderItemRequest,
    OrderRecord,
    OrderUpdateRequest,
)


def is_modifiable(status: Optional[OrderStatus]) -> bool:
    """DELIVERED and CANCELED are terminal: no field updates, no cancellation."""
    if not status:
        return False
    return OrderStatus(status) not in FINAL_STATUSES


def calculate_order_total(items: Optional[Iterable[OrderItemRequest]]) -> int:
    """Total in minor currency units. Empty or missing items yield 0."""
    if not items:
        return 0
    return sum(item.price * item.quantity for item in items)


def build_order_item_values(items: Optional[Sequence[OrderItemRequest]]) -> List[dict]:
    """Column values for new OrderItem rows, subtotal derived from price * quantity."""
    if not items:
        return []
    return [
        {
            "product_id": item.product_id,
            "product_name": item.product_name,
            "price": item.price,
            "quantity": item.quantity,
            "subtotal": item.price * item.quantity,
        }
        for item in items
    ]


def validate_order_items(items: Optional[Sequence[OrderItemRequest]]) -> List[str]:
    """Returns the list of violations, empty when the items are valid."""
    if not items:
        return ["Order must have at least one item"]

    errors = []
    for index, item in enumerate(items, start=1):
        if not item.product_id:
            errors.append(f"Item #{index} must have a product ID")
        if not item.product_name:
            errors.append(f"Item #{index} must have a product name")
        if item.price <= 0:
            errors.append(f"Item #{index} must have a positive price")
        if item.quantity <= 0:
            errors.append(f"Item #{index} must have a positive integer quantity")
    return errors


def validate_order_create(payload: OrderCreateRequest) -> List[str]:
    errors = []
    if not payload.customer_id or not payload.customer_id.strip():
        errors.append("Customer ID must not be empty")
    errors.extend(validate_order_items(payload.items))
    return errors


def validate_order_update(patch: OrderUpdateRequest) -> List[str]:
    errors = []
    if patch.customer_id is not None and not patch.customer_id.strip():
        errors.append("Customer ID must not be empty")
    if patch.items is not None:
        errors.extend(validate_order_items(patch.items))
    return errors


def order_record_from_model(order: Order) -> OrderRecord:
    """Converts an ORM row (with prefetched items) into the read model."""
    order_uuid = str(order.uuid)
    return OrderRecord(
        id=order.id,
        uuid=order_uuid,
        customer_id=order.customer_id,
        status=order.status,
        total=order.total,
        created_at=order.created_at,
        updated_at=order.updated_at,
        items=[
            OrderItemRecord(
                id=item.id,
                uuid=str(item.uuid),
                order_uuid=order_uuid,
                product_id=item.product_id,
                product_name=item.product_name,
                price=item.price,
                quantity=item.quantity,
                subtotal=item.subtotal,
            )
            for item in order.items
        ],
    )
