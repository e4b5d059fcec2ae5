import logging
from fastapi import APIRouter, Depends, Query, status
from typing import Optional

from app.api.deps import get_order_service
from app.core.config import MAX_LIMIT
from app.schemas.order import (
    OrderCreateRequest,
    OrderUpdateRequest,
    transform_order_to_response,
    transform_paginated_orders,
)
from app.schemas.response import SuccessResponse
from app.services.order_service import OrderService

router = APIRouter()
log = logging.getLogger(__name__)


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_order_endpoint(
    payload: OrderCreateRequest, service: OrderService = Depends(get_order_service)
):
    """
    Creates an order with status PENDING. Indexing and the order_created event happen
    in the background once the database commit is done.
    """
    order = await service.create(payload)
    log.info(f"Order {order.uuid} created for customer {order.customer_id}.")
    return SuccessResponse(data=transform_order_to_response(order).model_dump(mode="json"))


@router.get("/", response_model=SuccessResponse)
async def list_orders_endpoint(
    page: Optional[int] = Query(None, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=MAX_LIMIT),
    service: OrderService = Depends(get_order_service),
):
    result = await service.find_all(page, limit)
    return SuccessResponse(data=transform_paginated_orders(result).model_dump(mode="json"))


@router.get("/customer/{customer_id}", response_model=SuccessResponse)
async def list_customer_orders_endpoint(
    customer_id: str,
    page: Optional[int] = Query(None, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=MAX_LIMIT),
    service: OrderService = Depends(get_order_service),
):
    result = await service.find_by_customer(customer_id, page, limit)
    return SuccessResponse(data=transform_paginated_orders(result).model_dump(mode="json"))


@router.get("/id/{order_id}", response_model=SuccessResponse)
async def get_order_by_id_endpoint(order_id: int, service: OrderService = Depends(get_order_service)):
    """Lookup by internal id (back-office use). The id itself is never returned."""
    order = await service.find_one(order_id)
    return SuccessResponse(data=transform_order_to_response(order).model_dump(mode="json"))


@router.get("/{uuid}", response_model=SuccessResponse)
async def get_order_endpoint(uuid: str, service: OrderService = Depends(get_order_service)):
    """Fetches details for a specific order."""
    order = await service.find_one_by_uuid(uuid)
    return SuccessResponse(data=transform_order_to_response(order).model_dump(mode="json"))


@router.patch("/{uuid}", response_model=SuccessResponse)
async def update_order_endpoint(
    uuid: str, payload: OrderUpdateRequest, service: OrderService = Depends(get_order_service)
):
    """
    Partial update: items (replaced wholesale), status and/or customer.
    DELIVERED and CANCELED orders are rejected with 400.
    """
    order = await service.update(uuid, payload)
    log.info(f"Order {uuid} updated, status is now {order.status.value}.")
    return SuccessResponse(data=transform_order_to_response(order).model_dump(mode="json"))


@router.post("/{uuid}/cancel", response_model=SuccessResponse)
async def cancel_order_endpoint(uuid: str, service: OrderService = Depends(get_order_service)):
    order = await service.cancel(uuid)
    log.info(f"Order {uuid} cancelled.")
    return SuccessResponse(data=transform_order_to_response(order).model_dump(mode="json"))
