from datetime import datetime
from pydantic import BaseModel, Field
from typing import Generic, List, Optional, TypeVar
from app.models.order import OrderStatus

T = TypeVar("T")


# ----------- Requests -----------

class OrderItemRequest(BaseModel):
    """Schema for a single item in the order request."""
    product_id: str = ""
    product_name: str = ""
    price: int  # Minor currency units
    quantity: int


class OrderCreateRequest(BaseModel):
    """Schema for the order placement request body. Status is always PENDING at creation."""
    customer_id: str
    items: List[OrderItemRequest] = Field(default_factory=list)


class OrderUpdateRequest(BaseModel):
    """Partial update. Only the fields that are present are applied."""
    customer_id: Optional[str] = None
    status: Optional[OrderStatus] = None
    items: Optional[List[OrderItemRequest]] = None


# ----------- Read model -----------

class OrderItemRecord(BaseModel):
    """An item as read back from either store. Points at its order by uuid only."""
    id: Optional[int] = None
    uuid: str
    order_uuid: str
    product_id: str
    product_name: str
    price: int
    quantity: int
    subtotal: int


class OrderRecord(BaseModel):
    """The order aggregate as returned by the repository and the index projector."""
    id: Optional[int] = None  # Internal id, absent when read from the index
    uuid: str
    customer_id: str
    status: OrderStatus
    total: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[OrderItemRecord] = Field(default_factory=list)


class PaginatedResult(BaseModel, Generic[T]):
    data: List[T]
    total: int
    page: int
    limit: int
    pages: int


# ----------- Responses -----------

class OrderItemResponse(BaseModel):
    """Schema for an item inside the detailed order response."""
    uuid: str
    product_id: str
    product_name: str
    price: int
    quantity: int
    subtotal: int


class OrderResponse(BaseModel):
    """Schema for order details. Internal ids never leave the service."""
    uuid: str
    customer_id: str
    status: OrderStatus
    total: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[OrderItemResponse]


def transform_order_to_response(order: OrderRecord) -> OrderResponse:
    return OrderResponse(
        uuid=order.uuid,
        customer_id=order.customer_id,
        status=order.status,
        total=order.total,
        created_at=order.created_at,
        updated_at=order.updated_at,
        items=[
            OrderItemResponse(
                uuid=item.uuid,
                product_id=item.product_id,
                product_name=item.product_name,
                price=item.price,
                quantity=item.quantity,
                subtotal=item.subtotal,
            )
            for item in order.items
        ],
    )


def transform_paginated_orders(result: PaginatedResult) -> PaginatedResult[OrderResponse]:
    """Keeps the pagination envelope, converts each order."""
    return PaginatedResult[OrderResponse](
        data=[transform_order_to_response(order) for order in result.data],
        total=result.total,
        page=result.page,
        limit=result.limit,
        pages=result.pages,
    )
