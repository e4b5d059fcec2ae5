from fastapi import Request

from app.services.order_service import OrderService
from app.services.search_service import SearchService


# Services are built once in the application lifespan and kept on app.state

def get_order_service(request: Request) -> OrderService:
    return request.app.state.order_service


def get_search_service(request: Request) -> SearchService:
    return request.app.state.search_service
