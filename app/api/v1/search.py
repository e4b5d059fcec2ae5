from fastapi import APIRouter, Depends, Query
from typing import Optional

from app.api.deps import get_search_service
from app.schemas.response import SuccessResponse
from app.services.search_service import SearchService

router = APIRouter()

# page/limit are validated by the search service so the error shape matches the other filters


@router.get("/uuid/{uuid}", response_model=SuccessResponse)
async def search_by_uuid(
    uuid: str,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    service: SearchService = Depends(get_search_service),
):
    result = await service.find_by_uuid(uuid, page, limit)
    return SuccessResponse(data=result.model_dump())


@router.get("/status/{order_status}", response_model=SuccessResponse)
async def search_by_status(
    order_status: str,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    service: SearchService = Depends(get_search_service),
):
    result = await service.find_by_status(order_status, page, limit)
    return SuccessResponse(data=result.model_dump())


@router.get("/date-range", response_model=SuccessResponse)
async def search_by_date_range(
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    page: Optional[int] = None,
    limit: Optional[int] = None,
    service: SearchService = Depends(get_search_service),
):
    """Both bounds are YYYY-MM-DD and inclusive; at least one is required."""
    result = await service.find_by_date_range(date_from, date_to, page, limit)
    return SuccessResponse(data=result.model_dump())


@router.get("/product/{product_id}", response_model=SuccessResponse)
async def search_by_product_id(
    product_id: str,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    service: SearchService = Depends(get_search_service),
):
    result = await service.find_by_product_id(product_id, page, limit)
    return SuccessResponse(data=result.model_dump())


@router.get("/product-name", response_model=SuccessResponse)
async def search_by_product_name(
    name: str = "",
    page: Optional[int] = None,
    limit: Optional[int] = None,
    service: SearchService = Depends(get_search_service),
):
    result = await service.find_by_product_name(name, page, limit)
    return SuccessResponse(data=result.model_dump())


@router.get("/customer/{customer_id}", response_model=SuccessResponse)
async def search_by_customer(
    customer_id: str,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    service: SearchService = Depends(get_search_service),
):
    result = await service.find_by_customer_id(customer_id, page, limit)
    return SuccessResponse(data=result.model_dump())


@router.get("/items", response_model=SuccessResponse)
async def search_by_items(
    q: str = "",
    page: Optional[int] = None,
    limit: Optional[int] = None,
    service: SearchService = Depends(get_search_service),
):
    """Comma separated product names, e.g. ?q=laptop,wireless mouse"""
    result = await service.find_by_items(q, page, limit)
    return SuccessResponse(data=result.model_dump())
